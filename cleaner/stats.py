from dataclasses import dataclass
from typing import Iterable

from cleaner.selection import SelectionSet
from tracker_api.models import Issue

SIZE_UNITS = (('GB', 1024**3), ('MB', 1024**2), ('KB', 1024))


@dataclass(frozen=True)
class Statistics:
    total_issues: int = 0
    total_attachments: int = 0
    total_size: int = 0
    selected_count: int = 0


def compute_stats(catalog: Iterable[Issue] | None, selection: SelectionSet | None) -> Statistics:
    issues = [i for i in catalog or () if i.attachments]
    return Statistics(
        total_issues=len(issues),
        total_attachments=sum(len(i.attachments) for i in issues),
        total_size=sum(a.size or 0 for i in issues for a in i.attachments),
        selected_count=len(selection) if selection is not None else 0,
    )


def format_size(size: int | None) -> str:
    if not size:
        return 'Unknown'
    for unit, factor in SIZE_UNITS:
        if size >= factor:
            return f'{size / factor:.1f} {unit}'
    return f'{size} B'

from dataclasses import dataclass
from typing import Iterable, Iterator, NamedTuple

from tracker_api.models import Attachment, Issue


class SelectionKey(NamedTuple):
    issue_id: str
    attachment_id: str


@dataclass(frozen=True)
class SelectionEntry:
    key: SelectionKey
    issue_key: str
    filename: str
    is_comment_attachment: bool = False
    comment_id: str | None = None

    @classmethod
    def from_attachment(cls, issue: Issue, attachment: Attachment) -> 'SelectionEntry':
        return cls(
            SelectionKey(issue.issue_id, attachment.attachment_id),
            issue.key,
            attachment.filename,
            attachment.is_comment_attachment,
            attachment.comment_id,
        )


class SelectionSet:
    def __init__(self):
        self._entries: dict[SelectionKey, SelectionEntry] = {}

    def toggle(self, key: SelectionKey, entry: SelectionEntry) -> bool:
        """Returns True when the key is selected after the call."""
        if key in self._entries:
            del self._entries[key]
            return False
        self._entries[key] = entry
        return True

    def toggle_all(self, catalog: Iterable[Issue]):
        # TODO: partial bulk selection needs an explicit mode instead of the emptiness check
        if self._entries:
            self.clear()
            return
        for issue in catalog:
            for attachment in issue.attachments:
                entry = SelectionEntry.from_attachment(issue, attachment)
                self._entries[entry.key] = entry

    def clear(self):
        self._entries.clear()

    def is_selected(self, key: SelectionKey) -> bool:
        return key in self._entries

    def entries(self) -> list[SelectionEntry]:
        return list(self._entries.values())

    def __contains__(self, key) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[SelectionEntry]:
        return iter(self.entries())

    def __len__(self) -> int:
        return len(self._entries)

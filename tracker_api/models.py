import re
from dataclasses import dataclass, field, replace
from datetime import datetime

from tracker_api.exceptions import IssueKeyRangeError

COMMENT_EXCERPT_LENGTH = 50
ISSUE_KEY_RE = re.compile(r'^([A-Za-z][A-Za-z0-9_]*)-(\d+)$')


@dataclass(frozen=True)
class Project:
    project_id: str
    name: str
    key: str


@dataclass(frozen=True)
class Attachment:
    attachment_id: str
    issue_id: str
    filename: str
    size: int | None = None
    created: datetime | None = None
    is_comment_attachment: bool = False
    comment_id: str | None = None
    comment_text: str | None = None

    @property
    def comment_excerpt(self) -> str | None:
        if self.comment_text is None:
            return None
        if len(self.comment_text) > COMMENT_EXCERPT_LENGTH:
            return f'{self.comment_text[:COMMENT_EXCERPT_LENGTH]}...'
        return self.comment_text

    def as_comment_attachment(self, comment_id: str, comment_text: str) -> 'Attachment':
        return replace(
            self,
            is_comment_attachment=True,
            comment_id=comment_id,
            comment_text=comment_text,
        )


@dataclass(frozen=True)
class Comment:
    comment_id: str
    issue_id: str
    body: str
    created: datetime | None = None
    attachments: tuple[Attachment, ...] = ()


@dataclass(frozen=True)
class Issue:
    issue_id: str
    key: str
    summary: str
    attachments: tuple[Attachment, ...] = field(default_factory=tuple)

    def with_attachments(self, attachments) -> 'Issue':
        return replace(self, attachments=tuple(attachments))


def parse_issue_key(issue_key: str) -> tuple[str, int]:
    match = ISSUE_KEY_RE.match(issue_key)
    if not match:
        raise IssueKeyRangeError(f'Malformed issue key {issue_key!r}, expected PROJECT-NUMBER')
    return match.group(1).upper(), int(match.group(2))


@dataclass(frozen=True)
class KeyRange:
    key_from: str
    key_to: str
    project_key: str
    start: int
    end: int

    @classmethod
    def from_input(cls, key_from: str | None, key_to: str | None) -> 'KeyRange | None':
        key_from = (key_from or '').strip()
        key_to = (key_to or '').strip()
        if not key_from or not key_to:
            return None
        prefix_from, start = parse_issue_key(key_from)
        prefix_to, end = parse_issue_key(key_to)
        if prefix_from != prefix_to:
            raise IssueKeyRangeError(f'Issue keys {key_from} and {key_to} belong to different projects')
        if start > end:
            raise IssueKeyRangeError(f'Range start {key_from} is after range end {key_to}')
        return cls(key_from, key_to, prefix_from, start, end)

    def contains(self, issue_key: str) -> bool:
        try:
            prefix, number = parse_issue_key(issue_key)
        except IssueKeyRangeError:
            return False
        return prefix == self.project_key and self.start <= number <= self.end

    def __str__(self):
        return f'{self.key_from}..{self.key_to}'

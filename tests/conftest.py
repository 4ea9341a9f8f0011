import threading
import time
from datetime import datetime

import pytest
from requests import Session

from cleaner.catalog import merge_attachments
from tracker_api.adapters import AbstractTrackerAdapter
from tracker_api.exceptions import RateLimitError, RemoteError, TrackerConnectionError
from tracker_api.models import Attachment, Comment, Issue, KeyRange, Project

CREATED = datetime(2024, 1, 10, 12, 0)
DEMO_COMMENT = 'Screenshot of the failing build, see the red line near the bottom of the log'


class FakeTrackerAdapter(AbstractTrackerAdapter):
    """In-memory tracker; deleted attachments disappear from later fetches."""

    def __init__(
        self,
        issues: list[Issue],
        comments: dict[str, list[Comment]] | None = None,
        projects: list[Project] | None = None,
        failing_deletes=(),
        failing_comments=(),
        forbidden_comments=(),
        rate_limits: dict[str, int] | None = None,
        delay: float = 0,
        comment_delays: dict[str, float] | None = None,
    ):
        super().__init__(Session())
        self.issues = list(issues)
        self.comments = comments or {}
        self.projects = projects or []
        self.failing_deletes = set(failing_deletes)
        self.failing_comments = set(failing_comments)
        self.forbidden_comments = set(forbidden_comments)
        self.rate_limits = dict(rate_limits or {})
        self.delay = delay
        self.comment_delays = comment_delays or {}
        self.connection_error = False
        self.fail_issue_fetch = False
        self.deleted: set[str] = set()
        self.delete_calls: list[tuple[str, str, str | None]] = []
        self.issue_calls = 0
        self.comment_calls: list[str] = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def test_connection(self):
        if self.connection_error:
            raise TrackerConnectionError('invalid credentials')

    def get_projects(self) -> list[Project]:
        return list(self.projects)

    def get_issues_with_attachments(self, project_id: str, key_range: KeyRange | None = None) -> list[Issue]:
        with self._lock:
            self.issue_calls += 1
        if self.fail_issue_fetch:
            raise RemoteError('search failed', status_code=500)
        return [
            i.with_attachments(a for a in i.attachments if a.attachment_id not in self.deleted)
            for i in self.issues
        ]

    def get_issue_comments(self, issue: Issue) -> list[Comment]:
        with self._lock:
            self.comment_calls.append(issue.key)
        time.sleep(self.comment_delays.get(issue.issue_id, 0))
        if issue.key in self.failing_comments:
            raise RemoteError('comments unavailable', status_code=500)
        if issue.key in self.forbidden_comments:
            raise TrackerConnectionError('HTTP 403 issue is restricted')
        result = []
        for c in self.comments.get(issue.issue_id, []):
            attachments = tuple(a for a in c.attachments if a.attachment_id not in self.deleted)
            result.append(Comment(c.comment_id, c.issue_id, c.body, c.created, attachments))
        return result

    def delete_attachment(self, issue_id: str, attachment_id: str, comment_id: str | None = None):
        with self._lock:
            self.delete_calls.append((issue_id, attachment_id, comment_id))
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            time.sleep(self.delay)
            with self._lock:
                if self.rate_limits.get(attachment_id, 0) > 0:
                    self.rate_limits[attachment_id] -= 1
                    raise RateLimitError('too many requests', retry_after=0)
            if attachment_id in self.failing_deletes:
                raise RemoteError('delete rejected', attachment_id=attachment_id, status_code=500)
            with self._lock:
                self.deleted.add(attachment_id)
        finally:
            with self._lock:
                self.active -= 1

    @staticmethod
    def _error_message(error_json) -> str:
        return ''


def make_demo_issues() -> tuple[list[Issue], dict[str, list[Comment]]]:
    issues = [
        Issue(
            '101',
            'DEMO-1',
            'Build fails on CI',
            (
                Attachment('1001', '101', 'build.log', 1024, CREATED),
                Attachment('1002', '101', 'recording.mp4', 2_097_152, CREATED),
            ),
        ),
        Issue('102', 'DEMO-2', 'Broken layout', ()),
        Issue('103', 'DEMO-3', 'Issue without files', ()),
    ]
    screenshot = Attachment('1003', '102', 'screenshot.png').as_comment_attachment('5001', DEMO_COMMENT)
    comments = {'102': [Comment('5001', '102', DEMO_COMMENT, CREATED, (screenshot,))]}
    return issues, comments


def make_demo_adapter(**kwargs) -> FakeTrackerAdapter:
    issues, comments = make_demo_issues()
    return FakeTrackerAdapter(issues, comments, [Project('10000', 'Demo project', 'DEMO')], **kwargs)


@pytest.fixture
def demo_adapter() -> FakeTrackerAdapter:
    return make_demo_adapter()


def make_demo_catalog() -> list[Issue]:
    issues, comments = make_demo_issues()
    merged = [merge_attachments(i, comments.get(i.issue_id, [])) for i in issues]
    return [i for i in merged if i.attachments]

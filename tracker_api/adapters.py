import json
import re
from abc import ABC, abstractmethod
from datetime import datetime

import requests
from requests import Response, Session

from settings import Settings, logger
from tracker_api.exceptions import (
    RateLimitError,
    RemoteError,
    TrackerConnectionError,
    ValidationError,
)
from tracker_api.models import Attachment, Comment, Issue, KeyRange, Project


class TrackerSession(Session):
    def __init__(self, base_url: str = None, timeout: float | None = None):
        super().__init__()
        self._base_url: str = base_url
        self._timeout: float | None = timeout

    def request(self, method, url, *args, **kwargs):
        joined_url: str = f'{self._base_url}{url}'
        kwargs.setdefault('timeout', self._timeout)
        return super().request(method, joined_url, *args, **kwargs)


def parse_time(value: str | None, time_format: str) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.strptime(value, time_format)
    except ValueError:
        logger.debug(f'Не удалось разобрать дату {value!r}')
        return None


class AbstractTrackerAdapter(ABC):
    def __init__(self, session: Session, page_size: int = 100):
        self._session: Session = session
        self._page_size: int = page_size

    @abstractmethod
    def test_connection(self):
        pass

    @abstractmethod
    def get_projects(self) -> list[Project]:
        pass

    @abstractmethod
    def get_issues_with_attachments(self, project_id: str, key_range: KeyRange | None = None) -> list[Issue]:
        pass

    @abstractmethod
    def get_issue_comments(self, issue: Issue) -> list[Comment]:
        pass

    @abstractmethod
    def delete_attachment(self, issue_id: str, attachment_id: str, comment_id: str | None = None):
        pass

    def close(self):
        self._session.close()

    def _request(self, method_name: str, method: str, url: str, **kwargs) -> Response:
        try:
            r: Response = self._session.request(method, url, **kwargs)
        except requests.Timeout as e:
            raise RemoteError(f'Timeout during method {method_name}: {e}') from e
        except requests.RequestException as e:
            raise RemoteError(f'Error during method {method_name}: {e}') from e
        self._check_response(method_name, r)
        return r

    def _get_json(self, method_name: str, url: str, params: dict | None = None):
        r = self._request(method_name, 'GET', url, params=params)
        try:
            return json.loads(r.text)
        except json.decoder.JSONDecodeError as e:
            raise RemoteError(f'Error during method {method_name}: invalid JSON in response') from e

    def _check_response(self, method_name: str, response: Response):
        if response.status_code // 100 == 2:
            return
        try:
            message = self._error_message(json.loads(response.text))
        except (json.decoder.JSONDecodeError, AttributeError, TypeError):
            message = response.text
        message = f'Error during method {method_name}: HTTP {response.status_code}\n{message}'
        if response.status_code in (401, 403):
            raise TrackerConnectionError(message)
        if response.status_code == 429:
            retry_after = response.headers.get('Retry-After')
            try:
                retry_after = float(retry_after) if retry_after else None
            except ValueError:
                retry_after = None
            raise RateLimitError(message, retry_after=retry_after)
        raise RemoteError(message, status_code=response.status_code)

    @staticmethod
    @abstractmethod
    def _error_message(error_json) -> str:
        pass


class JiraAPIAdapter(AbstractTrackerAdapter):
    time_format = '%Y-%m-%dT%H:%M:%S.%f%z'
    attachment_ref_re = re.compile(r'!([^!|\n]+)(?:\|[^!\n]*)?!|\[\^([^\]\n]+)\]')

    def __init__(self, base_url: str, login: str, password: str, timeout: float | None = None, page_size: int = 100):
        session = TrackerSession(f'{base_url}/rest/api/latest', timeout)
        session.auth = (login, password)
        super().__init__(session, page_size)

    def test_connection(self):
        try:
            self._request('test_connection', 'GET', '/myself')
        except RemoteError as e:
            raise TrackerConnectionError(str(e)) from e

    def get_projects(self) -> list[Project]:
        projects_json: list[dict] = self._get_json('get_projects', '/project')
        return [Project(str(p.get('id')), p.get('name'), p.get('key')) for p in projects_json]

    def get_issues_with_attachments(self, project_id: str, key_range: KeyRange | None = None) -> list[Issue]:
        # issuekey comparisons reject keys that do not exist, the range is filtered below
        jql = f'project = {project_id} AND attachments IS NOT EMPTY ORDER BY key ASC'
        issues: list[Issue] = []
        start_at = 0
        while True:
            params = {'jql': jql, 'fields': 'summary,attachment', 'startAt': start_at, 'maxResults': self._page_size}
            data: dict = self._get_json('get_issues_with_attachments', '/search', params)
            issues_json: list[dict] = data.get('issues', [])
            for i in issues_json:
                issue = self._parse_issue(i)
                if key_range is None or key_range.contains(issue.key):
                    issues.append(issue)
            start_at += len(issues_json)
            logger.debug(f'Получено {start_at} задач из {data.get("total", 0)}')
            if not issues_json or start_at >= data.get('total', 0):
                break
        return issues

    def get_issue_comments(self, issue: Issue) -> list[Comment]:
        by_name = {a.filename: a for a in issue.attachments}
        comments: list[Comment] = []
        start_at = 0
        while True:
            params = {'startAt': start_at, 'maxResults': self._page_size, 'orderBy': 'created'}
            data: dict = self._get_json('get_issue_comments', f'/issue/{issue.issue_id}/comment', params)
            comments_json: list[dict] = data.get('comments', [])
            for c in comments_json:
                comment_id = str(c.get('id'))
                body = c.get('body') or ''
                attachments = [
                    by_name[name].as_comment_attachment(comment_id, body)
                    for name in self._referenced_filenames(body)
                    if name in by_name
                ]
                comments.append(
                    Comment(
                        comment_id,
                        issue.issue_id,
                        body,
                        parse_time(c.get('created'), self.time_format),
                        tuple(attachments),
                    )
                )
            start_at += len(comments_json)
            if not comments_json or start_at >= data.get('total', 0):
                break
        return comments

    def delete_attachment(self, issue_id: str, attachment_id: str, comment_id: str | None = None):
        self._request('delete_attachment', 'DELETE', f'/attachment/{attachment_id}')
        if comment_id:
            logger.debug(f'Вложение {attachment_id} из комментария {comment_id} задачи {issue_id} удалено')
        else:
            logger.debug(f'Вложение {attachment_id} задачи {issue_id} удалено')

    def _parse_issue(self, issue_json: dict) -> Issue:
        issue_id = str(issue_json.get('id'))
        fields: dict = issue_json.get('fields') or {}
        attachments = tuple(
            Attachment(
                str(a.get('id')),
                issue_id,
                a.get('filename'),
                a.get('size'),
                parse_time(a.get('created'), self.time_format),
            )
            for a in fields.get('attachment') or []
        )
        return Issue(issue_id, issue_json.get('key'), fields.get('summary') or '', attachments)

    @classmethod
    def _referenced_filenames(cls, body: str) -> list[str]:
        names: list[str] = []
        for match in cls.attachment_ref_re.finditer(body):
            name = (match.group(1) or match.group(2)).strip()
            if name and name not in names:
                names.append(name)
        return names

    @staticmethod
    def _error_message(error_json) -> str:
        messages = [f'{m}' for m in error_json.get('errorMessages') or []]
        messages.extend([f'{k}:{v}' for k, v in (error_json.get('errors') or {}).items()])
        return '\n'.join(messages)


class BacklogSession(TrackerSession):
    def __init__(self, base_url: str, api_key: str, timeout: float | None = None):
        super().__init__(base_url, timeout)
        self.params = {'apiKey': api_key}


class BacklogAPIAdapter(AbstractTrackerAdapter):
    time_format = '%Y-%m-%dT%H:%M:%S%z'
    max_page_size = 100

    def __init__(self, base_url: str, api_key: str, timeout: float | None = None, page_size: int = 100):
        super().__init__(BacklogSession(f'{base_url}/api/v2', api_key, timeout), min(page_size, self.max_page_size))

    def test_connection(self):
        try:
            self._request('test_connection', 'GET', '/space')
        except RemoteError as e:
            raise TrackerConnectionError(str(e)) from e

    def get_projects(self) -> list[Project]:
        projects_json: list[dict] = self._get_json('get_projects', '/projects')
        return [Project(str(p.get('id')), p.get('name'), p.get('projectKey')) for p in projects_json]

    def get_issues_with_attachments(self, project_id: str, key_range: KeyRange | None = None) -> list[Issue]:
        issues: list[Issue] = []
        offset = 0
        while True:
            params = {
                'projectId[]': project_id,
                'attachment': 'true',
                'sort': 'created',
                'order': 'asc',
                'count': self._page_size,
                'offset': offset,
            }
            page: list[dict] = self._get_json('get_issues_with_attachments', '/issues', params)
            for i in page:
                issue = self._parse_issue(i)
                if key_range is None or key_range.contains(issue.key):
                    issues.append(issue)
            offset += len(page)
            logger.debug(f'Получено {offset} задач')
            if len(page) < self._page_size:
                break
        return issues

    def get_issue_comments(self, issue: Issue) -> list[Comment]:
        by_id = {a.attachment_id: a for a in issue.attachments}
        comments: list[Comment] = []
        min_id = None
        while True:
            params = {'count': self.max_page_size, 'order': 'asc'}
            if min_id is not None:
                params['minId'] = min_id
            page: list[dict] = self._get_json('get_issue_comments', f'/issues/{issue.issue_id}/comments', params)
            for c in page:
                comment_id = str(c.get('id'))
                content = c.get('content') or ''
                attachments = []
                for change in c.get('changeLog') or []:
                    info = change.get('attachmentInfo')
                    if change.get('field') != 'attachment' or not info or not change.get('newValue'):
                        continue
                    attachment_id = str(info.get('id'))
                    # changeLog keeps entries of attachments deleted since
                    if attachment_id not in by_id:
                        continue
                    attachments.append(by_id[attachment_id].as_comment_attachment(comment_id, content))
                comments.append(
                    Comment(
                        comment_id,
                        issue.issue_id,
                        content,
                        parse_time(c.get('created'), self.time_format),
                        tuple(attachments),
                    )
                )
            if len(page) < self.max_page_size:
                break
            min_id = int(page[-1].get('id')) + 1
        return comments

    def delete_attachment(self, issue_id: str, attachment_id: str, comment_id: str | None = None):
        self._request('delete_attachment', 'DELETE', f'/issues/{issue_id}/attachments/{attachment_id}')
        if comment_id:
            logger.debug(f'Вложение {attachment_id} из комментария {comment_id} задачи {issue_id} удалено')
        else:
            logger.debug(f'Вложение {attachment_id} задачи {issue_id} удалено')

    def _parse_issue(self, issue_json: dict) -> Issue:
        issue_id = str(issue_json.get('id'))
        attachments = tuple(
            Attachment(
                str(a.get('id')),
                issue_id,
                a.get('name'),
                a.get('size'),
                parse_time(a.get('created'), self.time_format),
            )
            for a in issue_json.get('attachments') or []
        )
        return Issue(issue_id, issue_json.get('issueKey'), issue_json.get('summary') or '', attachments)

    @staticmethod
    def _error_message(error_json) -> str:
        return '\n'.join(f'{e.get("message")} (code {e.get("code")})' for e in error_json.get('errors') or [])


def create_adapter(config: Settings) -> AbstractTrackerAdapter:
    if not config.base_url:
        raise ValidationError('Tracker base URL is not set (CLEANER_BASE_URL)')
    if config.tracker == 'backlog':
        if not config.api_key:
            raise ValidationError('Backlog API key is not set (CLEANER_API_KEY)')
        return BacklogAPIAdapter(config.base_url, config.api_key, config.request_timeout, config.page_size)
    if not config.login or not config.password:
        raise ValidationError('Jira login and password are not set (CLEANER_LOGIN, CLEANER_PASSWORD)')
    return JiraAPIAdapter(config.base_url, config.login, config.password, config.request_timeout, config.page_size)

import asyncio

from cleaner.utils import call_with_retries
from settings import logger
from tracker_api.adapters import AbstractTrackerAdapter
from tracker_api.exceptions import OperationCancelled, RemoteError, TrackerConnectionError, ValidationError
from tracker_api.models import Attachment, Comment, Issue, KeyRange


def merge_attachments(issue: Issue, comments: list[Comment]) -> Issue:
    """Direct attachments first, then comment attachments in comment order.

    An attachment referenced by several comments is bound to the first one and
    is removed from the direct attachments.
    """
    comment_attachments: list[Attachment] = []
    seen: set[str] = set()
    for comment in comments:
        for a in comment.attachments:
            if a.attachment_id in seen:
                continue
            seen.add(a.attachment_id)
            comment_attachments.append(a)
    direct: list[Attachment] = []
    for a in issue.attachments:
        if a.attachment_id in seen:
            continue
        seen.add(a.attachment_id)
        direct.append(a)
    return issue.with_attachments(direct + comment_attachments)


class CatalogBuilder:
    def __init__(
        self, adapter: AbstractTrackerAdapter, max_workers: int = 5, retries: int = 2, retry_delay: float = 1.0
    ):
        self._adapter = adapter
        self._max_workers = max_workers
        self._retries = retries
        self._retry_delay = retry_delay

    async def build(
        self, project_id: str, key_range: KeyRange | None = None, cancel_event: asyncio.Event | None = None
    ) -> list[Issue]:
        if not project_id or not str(project_id).strip():
            raise ValidationError('Please select a project')
        logger.info(f'Поиск задач с вложениями в проекте {project_id}' + (f', диапазон {key_range}' if key_range else ''))
        issues = await call_with_retries(
            self._adapter.get_issues_with_attachments,
            project_id,
            key_range,
            retries=self._retries,
            delay=self._retry_delay,
            description=f'задачи проекта {project_id}',
        )
        if key_range:
            issues = [i for i in issues if key_range.contains(i.key)]
        if cancel_event is not None and cancel_event.is_set():
            raise OperationCancelled('Catalog build cancelled')
        logger.debug(f'Получено {len(issues)} задач, получение комментариев в {self._max_workers} потоков')

        semaphore = asyncio.Semaphore(self._max_workers)

        async def collect(issue: Issue) -> Issue:
            async with semaphore:
                if cancel_event is not None and cancel_event.is_set():
                    raise OperationCancelled('Catalog build cancelled')
                try:
                    comments = await call_with_retries(
                        self._adapter.get_issue_comments,
                        issue,
                        retries=self._retries,
                        delay=self._retry_delay,
                        description=f'комментарии {issue.key}',
                    )
                except (RemoteError, TrackerConnectionError) as e:
                    status_code = e.status_code if isinstance(e, RemoteError) else None
                    raise RemoteError(
                        f'Failed to fetch comments: {e}', issue_key=issue.key, status_code=status_code
                    ) from e
            return merge_attachments(issue, comments)

        tasks = [asyncio.create_task(collect(i)) for i in issues]
        try:
            catalog = await asyncio.gather(*tasks)
        except BaseException as e:
            logger.error(f'Построение каталога прервано: {e}')
            for t in tasks:
                t.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        catalog = [i for i in catalog if i.attachments]
        logger.info(f'Найдено {len(catalog)} задач с вложениями')
        return catalog

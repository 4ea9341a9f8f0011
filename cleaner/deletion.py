import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable

from cleaner.selection import SelectionEntry, SelectionKey, SelectionSet
from cleaner.utils import call_with_retries
from settings import logger
from tracker_api.adapters import AbstractTrackerAdapter
from tracker_api.exceptions import CleanerException, ValidationError


@dataclass(frozen=True)
class DeletionResult:
    entry: SelectionEntry
    success: bool
    error: str | None = None
    dispatched: bool = True

    @property
    def key(self) -> SelectionKey:
        return self.entry.key


@dataclass
class DeletionReport:
    results: list[DeletionResult] = field(default_factory=list)
    refresh_error: CleanerException | None = None

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failure_count(self) -> int:
        return len(self.results) - self.success_count

    @property
    def failures(self) -> list[DeletionResult]:
        return [r for r in self.results if not r.success]

    @property
    def cancelled(self) -> bool:
        return any(not r.dispatched for r in self.results)

    def summary(self) -> str:
        if self.failure_count == 0:
            return f'Successfully deleted {self.success_count} attachments'
        return f'Deleted {self.success_count} attachments ({self.failure_count} failed)'


class DeletionOrchestrator:
    def __init__(
        self,
        adapter: AbstractTrackerAdapter,
        selection: SelectionSet,
        refresh: Callable[[], Awaitable],
        max_workers: int = 4,
        retries: int = 2,
        retry_delay: float = 1.0,
    ):
        self._adapter = adapter
        self._selection = selection
        self._refresh = refresh
        self._max_workers = max_workers
        self._retries = retries
        self._retry_delay = retry_delay

    async def delete_selected(
        self, entries: Iterable[SelectionEntry], cancel_event: asyncio.Event | None = None
    ) -> DeletionReport:
        entries = list(entries)
        if not entries:
            raise ValidationError('Please select attachments to delete')
        logger.info(f'Удаление {len(entries)} вложений, не более {self._max_workers} запросов одновременно')
        semaphore = asyncio.Semaphore(self._max_workers)
        results = await asyncio.gather(*(self._delete_one(e, semaphore, cancel_event) for e in entries))
        report = DeletionReport(list(results))
        logger.info(report.summary())
        if report.cancelled:
            logger.warning(f'Удаление отменено, не отправлено запросов: {sum(1 for r in results if not r.dispatched)}')

        self._selection.clear()
        try:
            await self._refresh()
        except CleanerException as e:
            logger.error(f'Не удалось обновить список вложений после удаления: {e}')
            report.refresh_error = e
        return report

    async def _delete_one(
        self, entry: SelectionEntry, semaphore: asyncio.Semaphore, cancel_event: asyncio.Event | None
    ) -> DeletionResult:
        async with semaphore:
            if cancel_event is not None and cancel_event.is_set():
                return DeletionResult(entry, False, 'Cancelled before dispatch', dispatched=False)
            comment_id = entry.comment_id if entry.is_comment_attachment else None
            try:
                await call_with_retries(
                    self._adapter.delete_attachment,
                    entry.key.issue_id,
                    entry.key.attachment_id,
                    comment_id,
                    retries=self._retries,
                    delay=self._retry_delay,
                    description=f'{entry.issue_key} {entry.filename}',
                )
            except CleanerException as e:
                logger.error(f'Ошибка удаления вложения {entry.filename} задачи {entry.issue_key}: {e}')
                return DeletionResult(entry, False, str(e))
        logger.debug(f'Вложение {entry.filename} задачи {entry.issue_key} удалено')
        return DeletionResult(entry, True)

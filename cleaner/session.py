import asyncio

from cleaner.catalog import CatalogBuilder
from cleaner.deletion import DeletionOrchestrator, DeletionReport
from cleaner.selection import SelectionEntry, SelectionKey, SelectionSet
from cleaner.stats import Statistics, compute_stats
from settings import Settings, logger
from tracker_api.adapters import AbstractTrackerAdapter, create_adapter
from tracker_api.exceptions import ValidationError
from tracker_api.models import Issue, KeyRange, Project


class CleanerSession:
    def __init__(
        self,
        adapter: AbstractTrackerAdapter,
        fetch_workers: int = 5,
        delete_workers: int = 4,
        retries: int = 2,
        retry_delay: float = 1.0,
    ):
        self._adapter = adapter
        self.projects: list[Project] = []
        self.catalog: list[Issue] = []
        self.selection = SelectionSet()
        self.project_id: str | None = None
        self.key_range: KeyRange | None = None
        self._builder = CatalogBuilder(adapter, fetch_workers, retries, retry_delay)
        self._orchestrator = DeletionOrchestrator(
            adapter, self.selection, self.refresh, delete_workers, retries, retry_delay
        )

    @classmethod
    def from_settings(cls, config: Settings) -> 'CleanerSession':
        return cls(
            create_adapter(config),
            config.fetch_workers,
            config.delete_workers,
            config.delete_retries,
            config.retry_delay,
        )

    async def connect(self) -> list[Project]:
        logger.info('Проверка подключения к трекеру')
        await asyncio.to_thread(self._adapter.test_connection)
        self.projects = await asyncio.to_thread(self._adapter.get_projects)
        logger.info(f'Подключение установлено, доступно проектов: {len(self.projects)}')
        return self.projects

    def find_project(self, id_or_key: str) -> Project | None:
        for p in self.projects:
            if id_or_key in (p.project_id, p.key):
                return p
        return None

    async def search(
        self,
        project_id: str | None,
        key_from: str | None = None,
        key_to: str | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> list[Issue]:
        if not project_id or not str(project_id).strip():
            raise ValidationError('Please select a project')
        key_range = KeyRange.from_input(key_from, key_to)
        project_id = str(project_id).strip()
        if self.projects:
            project = self.find_project(project_id)
            if project is None:
                raise ValidationError(f'Project {project_id} is not available for this account')
            project_id = project.project_id
        self.catalog = []
        self.selection.clear()
        self.project_id = project_id
        self.key_range = key_range
        self.catalog = await self._builder.build(project_id, key_range, cancel_event)
        return self.catalog

    async def refresh(self) -> list[Issue]:
        logger.info('Обновление списка вложений')
        self.catalog = []
        self.catalog = await self._builder.build(self.project_id, self.key_range)
        return self.catalog

    def toggle(self, issue_id: str, attachment_id: str) -> bool:
        for issue in self.catalog:
            if issue.issue_id != issue_id:
                continue
            for a in issue.attachments:
                if a.attachment_id == attachment_id:
                    return self.selection.toggle(
                        SelectionKey(issue_id, attachment_id), SelectionEntry.from_attachment(issue, a)
                    )
        raise ValidationError(f'Attachment {attachment_id} of issue {issue_id} is not in the current catalog')

    def toggle_all(self):
        self.selection.toggle_all(self.catalog)

    def is_selected(self, issue_id: str, attachment_id: str) -> bool:
        return self.selection.is_selected(SelectionKey(issue_id, attachment_id))

    @property
    def stats(self) -> Statistics:
        return compute_stats(self.catalog, self.selection)

    async def delete_selected(self, cancel_event: asyncio.Event | None = None) -> DeletionReport:
        return await self._orchestrator.delete_selected(self.selection.entries(), cancel_event)

    def close(self):
        self._adapter.close()

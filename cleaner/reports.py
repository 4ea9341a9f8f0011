import aiofiles

from cleaner.deletion import DeletionReport
from settings import logger, settings
from tracker_api.models import Issue

CATALOG_COLUMNS = [
    'issue_id',
    'issue_key',
    'summary',
    'attachment_id',
    'filename',
    'size',
    'created',
    'is_comment_attachment',
    'comment_id',
    'comment',
]

DELETION_COLUMNS = [
    'issue_id',
    'issue_key',
    'attachment_id',
    'filename',
    'is_comment_attachment',
    'comment_id',
    'success',
    'dispatched',
    'error',
]


def _cell(value) -> str:
    if value is None:
        return ''
    return ' '.join(str(value).replace(settings.delimiter, ',').split())


async def _write_csv(path: str, columns: list[str], rows: list[list]):
    async with aiofiles.open(path, 'w') as report_file:
        await report_file.write(f'{settings.delimiter.join(columns)}\n')
        for r in rows:
            await report_file.write(f'{settings.delimiter.join(_cell(x) for x in r)}\n')


async def export_catalog(path: str, catalog: list[Issue]):
    logger.info(f'Запись списка вложений в файл {path}')
    rows = []
    for issue in catalog:
        for a in issue.attachments:
            rows.append(
                [
                    issue.issue_id,
                    issue.key,
                    issue.summary,
                    a.attachment_id,
                    a.filename,
                    a.size,
                    a.created.strftime(settings.time_format) if a.created else None,
                    a.is_comment_attachment,
                    a.comment_id,
                    a.comment_excerpt,
                ]
            )
    await _write_csv(path, CATALOG_COLUMNS, rows)
    logger.info('Запись списка вложений завершена')


async def export_deletion_report(path: str, report: DeletionReport):
    logger.info(f'Запись отчета об удалении в файл {path}')
    rows = [
        [
            r.entry.key.issue_id,
            r.entry.issue_key,
            r.entry.key.attachment_id,
            r.entry.filename,
            r.entry.is_comment_attachment,
            r.entry.comment_id,
            r.success,
            r.dispatched,
            r.error,
        ]
        for r in report.results
    ]
    await _write_csv(path, DELETION_COLUMNS, rows)
    logger.info('Запись отчета об удалении завершена')

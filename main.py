import argparse
import asyncio
import signal
import sys

from cleaner import CleanerSession, Statistics, format_size
from cleaner.reports import export_catalog, export_deletion_report
from settings import logger, settings, setup_logging
from tracker_api.exceptions import CleanerException, ValidationError


def print_stats(stats: Statistics):
    print(
        f'Issues with attachments: {stats.total_issues}\n'
        f'Total attachments: {stats.total_attachments}\n'
        f'Total file size: {format_size(stats.total_size)}\n'
        f'Selected: {stats.selected_count}'
    )


def print_catalog(session: CleanerSession):
    for issue in session.catalog:
        print(f'{issue.key} {issue.summary}')
        for a in issue.attachments:
            mark = '[x]' if session.is_selected(issue.issue_id, a.attachment_id) else '[ ]'
            created = a.created.strftime('%Y-%m-%d') if a.created else '-'
            line = f'  {mark} {issue.issue_id}:{a.attachment_id} {a.filename}'
            line += f' | {format_size(a.size)} | Created: {created}'
            if a.is_comment_attachment:
                line += ' | Comment Attachment'
            print(line)
            if a.is_comment_attachment and a.comment_excerpt:
                print(f'      Comment: {a.comment_excerpt}')
    print_stats(session.stats)


async def confirm(count: int) -> bool:
    answer = await asyncio.to_thread(
        input, f'Are you sure you want to delete {count} attachments? This action cannot be undone. [y/N] '
    )
    return answer.strip().lower() in ('y', 'yes')


async def run_projects(session: CleanerSession, args: argparse.Namespace) -> int:
    for p in session.projects:
        print(f'{p.project_id}\t{p.key}\t{p.name}')
    return 0


async def run_search(session: CleanerSession, args: argparse.Namespace, cancel_event: asyncio.Event) -> int:
    await session.search(args.project, args.key_from, args.key_to, cancel_event)
    print(f'Found {len(session.catalog)} issues with attachments')
    print_catalog(session)
    if args.csv:
        await export_catalog(args.csv, session.catalog)
    return 0


async def run_delete(session: CleanerSession, args: argparse.Namespace, cancel_event: asyncio.Event) -> int:
    await session.search(args.project, args.key_from, args.key_to, cancel_event)
    if args.select_all:
        session.toggle_all()
    else:
        for item in args.attachments:
            issue_id, _, attachment_id = item.partition(':')
            if not issue_id or not attachment_id:
                raise ValidationError(f'Attachment must be given as ISSUE_ID:ATTACHMENT_ID, got {item!r}')
            if not session.is_selected(issue_id, attachment_id):
                session.toggle(issue_id, attachment_id)
    count = len(session.selection)
    if count == 0:
        raise ValidationError('Please select attachments to delete')
    if not args.yes and not await confirm(count):
        print('Deletion cancelled')
        return 0

    report = await session.delete_selected(cancel_event)
    print(report.summary())
    for r in report.failures:
        print(f'  {r.entry.issue_key} {r.entry.filename}: {r.error}')
    if report.refresh_error:
        print(f'Attachment list refresh failed: {report.refresh_error}')
    else:
        print_stats(session.stats)
    if args.report:
        await export_deletion_report(args.report, report)
    return 2 if report.failure_count else 0


async def main(args: argparse.Namespace, cancel_event: asyncio.Event) -> int:
    session = None
    try:
        session = CleanerSession.from_settings(settings)
        await session.connect()
        if args.command == 'projects':
            return await run_projects(session, args)
        if args.command == 'search':
            return await run_search(session, args, cancel_event)
        return await run_delete(session, args, cancel_event)
    except CleanerException as e:
        logger.error(f'{type(e).__name__}: {e}')
        return 1
    finally:
        if session is not None:
            session.close()


def add_range_arguments(p: argparse.ArgumentParser):
    p.add_argument('-p', '--project', dest='project', help='Id или ключ проекта', required=True)
    p.add_argument('--from', dest='key_from', help='Первая задача диапазона, пример: PROJ-1')
    p.add_argument('--to', dest='key_to', help='Последняя задача диапазона, пример: PROJ-100')


def get_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description='Поиск и массовое удаление вложений задач Jira/Backlog')
    p.add_argument('--log-level', dest='log_level', help='Уровень логирования', default=None)
    subparsers = p.add_subparsers(dest='command', required=True)

    subparsers.add_parser('projects', help='Список доступных проектов')

    search = subparsers.add_parser('search', help='Поиск задач с вложениями')
    add_range_arguments(search)
    search.add_argument('--csv', dest='csv', help='Сохранить список вложений в csv файл')

    delete = subparsers.add_parser('delete', help='Удаление выбранных вложений')
    add_range_arguments(delete)
    selection = delete.add_mutually_exclusive_group(required=True)
    selection.add_argument('--all', dest='select_all', action='store_true', help='Удалить все найденные вложения')
    selection.add_argument(
        '-a',
        '--attachment',
        dest='attachments',
        action='append',
        default=[],
        help='Вложение в формате ISSUE_ID:ATTACHMENT_ID, можно указать несколько раз',
    )
    delete.add_argument('-y', '--yes', dest='yes', action='store_true', help='Не запрашивать подтверждение')
    delete.add_argument('--report', dest='report', help='Сохранить результат удаления в csv файл')

    return p


if __name__ == '__main__':
    arguments = get_parser().parse_args()
    setup_logging(arguments.log_level)
    logger.info('Начало работы')
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    cancel = asyncio.Event()
    for sig in [signal.SIGINT, signal.SIGTERM]:
        loop.add_signal_handler(sig, cancel.set)
    try:
        exit_code = loop.run_until_complete(main(arguments, cancel))
    finally:
        loop.close()
    logger.info('Работа завершена')
    sys.exit(exit_code)

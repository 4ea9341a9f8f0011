import asyncio

from conftest import make_demo_catalog

from cleaner.deletion import DeletionReport, DeletionResult
from cleaner.reports import CATALOG_COLUMNS, DELETION_COLUMNS, export_catalog, export_deletion_report
from cleaner.selection import SelectionEntry
from tracker_api.models import Attachment, Issue


def read_rows(path) -> list[list[str]]:
    return [line.split(';') for line in path.read_text().splitlines()]


class TestExportCatalog:
    def test_one_row_per_attachment(self, tmp_path):
        path = tmp_path / 'catalog.csv'

        asyncio.run(export_catalog(str(path), make_demo_catalog()))

        rows = read_rows(path)
        assert rows[0] == CATALOG_COLUMNS
        assert len(rows) == 4
        assert rows[1][:6] == ['101', 'DEMO-1', 'Build fails on CI', '1001', 'build.log', '1024']
        assert rows[1][6] == '2024-01-10 12:00:00'
        assert rows[3][5] == ''
        assert rows[3][7] == 'True'
        assert rows[3][8] == '5001'
        assert rows[3][9].endswith('...')

    def test_delimiter_in_text_does_not_break_columns(self, tmp_path):
        path = tmp_path / 'catalog.csv'
        catalog = [Issue('1', 'P-1', 'first; second\nline', (Attachment('2', '1', 'a;b.txt', 3),))]

        asyncio.run(export_catalog(str(path), catalog))

        rows = read_rows(path)
        assert len(rows) == 2
        assert len(rows[1]) == len(CATALOG_COLUMNS)
        assert rows[1][2] == 'first, second line'


class TestExportDeletionReport:
    def test_failures_written_with_error(self, tmp_path):
        issue = make_demo_catalog()[0]
        ok, failed = (SelectionEntry.from_attachment(issue, a) for a in issue.attachments)
        report = DeletionReport([DeletionResult(ok, True), DeletionResult(failed, False, 'HTTP 500')])
        path = tmp_path / 'report.csv'

        asyncio.run(export_deletion_report(str(path), report))

        rows = read_rows(path)
        assert rows[0] == DELETION_COLUMNS
        assert rows[1][6] == 'True'
        assert rows[1][8] == ''
        assert rows[2][:4] == ['101', 'DEMO-1', '1002', 'recording.mp4']
        assert rows[2][6] == 'False'
        assert rows[2][8] == 'HTTP 500'

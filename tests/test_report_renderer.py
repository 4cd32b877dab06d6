import csv
import json
import threading
import unittest
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from models import CSV_REPORT_HEADER, ChangesetReport, Identity, IssueCounts, IssueReport, ReportEntry
from report.renderer import ReportSink, render_html, render_json


def _entry(login, commits=0, name=''):
    report = ChangesetReport(commits=commits, additions=commits * 10, latest_commit_sha='f' * 40 if commits else '', latest_commit_date=datetime(2021, 3, 4, tzinfo=timezone.utc) if commits else None)
    return ReportEntry(Identity(login, name, emails=[f'{login}@example.com']), report, IssueReport(IssueCounts(created=1), IssueCounts(merged=commits)))


class TestRenderer(unittest.TestCase):
    def test_render_json(self):
        data = json.loads(render_json([_entry('alice', 2)]))
        self.assertEqual(data[0]['login'], 'alice')
        self.assertEqual(data[0]['commits'], 2)
        self.assertEqual(data[0]['emails'], ['alice@example.com'])

    def test_render_html_ranks_and_escapes(self):
        html = render_html([_entry('quiet'), _entry('busy', 5, name='<b>Busy</b>')], generated_at='now', scope='vmware')
        self.assertIn('Member Contribution Report', html)
        self.assertIn('&lt;b&gt;Busy&lt;/b&gt;', html)
        self.assertLess(html.index('busy'), html.index('quiet'))
        self.assertIn('2021-03-04', html)

    def test_render_html_empty(self):
        self.assertIn('No members were reported.', render_html([], generated_at='now'))

    def test_sink_streams_csv_and_writes_json_on_close(self):
        with tempfile.TemporaryDirectory() as tmp:
            out = Path(tmp) / 'reports'
            sink = ReportSink(str(out), html=True)
            with sink:
                sink.emit(_entry('alice', 1))
                # rows are on disk before the sink is closed
                rows = list(csv.reader((out / 'report.csv').read_text(encoding='utf-8').splitlines()))
                self.assertEqual(rows[0], CSV_REPORT_HEADER)
                self.assertEqual(rows[1][0], 'alice')
                self.assertFalse((out / 'report.json').exists())
            self.assertEqual(len(json.loads((out / 'report.json').read_text(encoding='utf-8'))), 1)
            self.assertTrue((out / 'report.html').exists())
            self.assertEqual(len(sink.paths), 3)

    def test_sink_concurrent_emit(self):
        with tempfile.TemporaryDirectory() as tmp:
            sink = ReportSink(tmp)
            with sink:
                threads = [threading.Thread(target=lambda i=i: sink.emit(_entry(f'user{i}', i))) for i in range(20)]
                for t in threads:
                    t.start()
                for t in threads:
                    t.join()
            rows = list(csv.reader((Path(tmp) / 'report.csv').read_text(encoding='utf-8').splitlines()))
            self.assertEqual(len(rows), 21)
            self.assertEqual(sorted(r[0] for r in rows[1:]), sorted(f'user{i}' for i in range(20)))


if __name__ == '__main__':
    unittest.main()

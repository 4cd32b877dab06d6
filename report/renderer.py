"""
Report renderer: stream report entries to report.csv as they complete, then write
report.json and, optionally, report.html (Jinja2 template report/templates/report.html.j2)
when the sink is closed.
"""

import csv
import json
import os
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from models import CSV_REPORT_HEADER, ReportEntry

CSV_NAME = 'report.csv'
JSON_NAME = 'report.json'
HTML_NAME = 'report.html'


def render_json(entries: List[ReportEntry]) -> str:
    """Export the entries as a JSON array."""
    return json.dumps([e.to_dict() for e in entries], indent=2)


def _summary(entries: List[ReportEntry]) -> Dict[str, int]:
    return {
        'members': len(entries),
        'contributors': sum(1 for e in entries if e.commits),
        'commits': sum(e.commits for e in entries),
        'additions': sum(e.additions for e in entries),
        'deletions': sum(e.deletions for e in entries),
        'pull_requests_merged': sum(e.pull_requests.merged for e in entries),
    }


def render_html(entries: List[ReportEntry], generated_at: Optional[str] = None, scope: Optional[str] = None) -> str:
    """Render the HTML report, busiest contributors first."""
    tmpl_dir = os.path.join(os.path.dirname(__file__), 'templates')
    env = Environment(loader=FileSystemLoader(tmpl_dir), autoescape=select_autoescape(['html', 'xml']))
    tmpl = env.get_template('report.html.j2')
    ranked = sorted(entries, key=lambda e: (-e.commits, e.login))
    context = {
        'entries': ranked,
        'summary': _summary(entries),
        'generated_at': generated_at or datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M UTC'),
        'scope': scope,
    }
    return tmpl.render(**context)


class ReportSink:
    """Thread-safe consumer of report entries.

    Entries arrive in completion order from many workers; each one is written to the CSV
    file and flushed immediately so an aborted run still leaves the finished rows behind.
    """

    def __init__(self, output_dir: str, html: bool = False, scope: Optional[str] = None):
        self.output_dir = output_dir
        self.html = html
        self.scope = scope
        self.entries: List[ReportEntry] = []
        self._lock = threading.Lock()
        self._csv_file = None
        self._writer: Any = None

    def open(self) -> 'ReportSink':
        os.makedirs(self.output_dir, exist_ok=True)
        self._csv_file = open(os.path.join(self.output_dir, CSV_NAME), 'w', newline='', encoding='utf-8')
        self._writer = csv.writer(self._csv_file)
        self._writer.writerow(CSV_REPORT_HEADER)
        self._csv_file.flush()
        return self

    def emit(self, entry: ReportEntry):
        with self._lock:
            self.entries.append(entry)
            if self._writer is not None:
                self._writer.writerow(entry.fields())
                self._csv_file.flush()

    def close(self):
        with self._lock:
            if self._csv_file is None:
                return
            self._csv_file.close()
            self._csv_file = None
            self._writer = None
            entries = list(self.entries)
        with open(os.path.join(self.output_dir, JSON_NAME), 'w', encoding='utf-8') as f:
            f.write(render_json(entries))
        if self.html:
            with open(os.path.join(self.output_dir, HTML_NAME), 'w', encoding='utf-8') as f:
                f.write(render_html(entries, scope=self.scope))

    @property
    def paths(self) -> List[str]:
        names = [CSV_NAME, JSON_NAME] + ([HTML_NAME] if self.html else [])
        return [os.path.join(self.output_dir, n) for n in names]

    def __enter__(self):
        return self.open()

    def __exit__(self, exc_type, exc, tb):
        self.close()

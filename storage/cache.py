"""
SQLite member cache.
One record per login: the merged identity, its changesets, and the commit/issue reports
computed for it. Used as the offline data source and as seed data for incremental runs.
Writes are advisory; a torn run simply leaves older records behind.
"""

import json
import os
import sqlite3
import threading
import time
from typing import Any, Dict, Iterable, List, Optional

from models import Changeset, ChangesetReport, Identity, IssueReport

DB_PATH = None  # can be overridden by caller

# noinspection SqlResolve
SQL_CREATE = """
CREATE TABLE IF NOT EXISTS members (
    login TEXT PRIMARY KEY,
    record TEXT,
    timestamp REAL
);
CREATE TABLE IF NOT EXISTS changesets (
    login TEXT,
    sha TEXT,
    record TEXT,
    PRIMARY KEY (login, sha)
);
CREATE TABLE IF NOT EXISTS reports (
    login TEXT,
    kind TEXT,
    record TEXT,
    timestamp REAL,
    PRIMARY KEY (login, kind)
);
"""

COMMITS_REPORT = 'commits'
ISSUES_REPORT = 'issues'


class MemberCache:
    def __init__(self, path: Optional[str] = None):
        """Open (and create if needed) the cache.

        :param path: SQLite file path or None for in-memory.
        """
        self.path = path or DB_PATH or ':memory:'
        if self.path != ':memory:':
            parent = os.path.dirname(self.path)
            if parent:
                os.makedirs(parent, exist_ok=True)
        self.conn = sqlite3.connect(self.path, check_same_thread=False)
        self._lock = threading.RLock()
        self._init_db()

    def _init_db(self):
        with self._lock:
            cur = self.conn.cursor()
            cur.executescript(SQL_CREATE)
            self.conn.commit()

    def close(self):
        with self._lock:
            if self.conn is not None:
                try:
                    self.conn.close()
                finally:
                    self.conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # noinspection SqlResolve
    def stats(self) -> Dict[str, Any]:
        """Return basic statistics: member count, changeset count, oldest and newest member timestamps."""
        with self._lock:
            cur = self.conn.cursor()
            cur.execute('SELECT COUNT(1), MIN(timestamp), MAX(timestamp) FROM members')
            count, oldest, newest = cur.fetchone()
            cur.execute('SELECT COUNT(1) FROM changesets')
            changesets = cur.fetchone()[0]
        return {
            'members': int(count or 0),
            'changesets': int(changesets or 0),
            'oldest': float(oldest) if oldest is not None else None,
            'newest': float(newest) if newest is not None else None,
        }

    # noinspection SqlResolve
    def list_logins(self) -> List[str]:
        """Return every cached login in lexicographic order."""
        with self._lock:
            cur = self.conn.cursor()
            cur.execute('SELECT login FROM members ORDER BY login')
            rows = cur.fetchall()
        return [r[0] for r in rows]

    # noinspection SqlResolve
    def list_members(self, limit: int = 1000) -> List[Dict[str, Any]]:
        """Return logins with their last-write timestamp, newest first."""
        with self._lock:
            cur = self.conn.cursor()
            cur.execute('SELECT login, timestamp FROM members ORDER BY timestamp DESC LIMIT ?', (limit,))
            rows = cur.fetchall()
        return [{'login': login, 'timestamp': float(ts or 0)} for login, ts in rows]

    # noinspection SqlWithoutWhere
    def clear(self):
        """Clear every table."""
        with self._lock:
            cur = self.conn.cursor()
            cur.execute('DELETE FROM members')
            cur.execute('DELETE FROM changesets')
            cur.execute('DELETE FROM reports')
            self.conn.commit()

    # noinspection SqlResolve
    def delete_member(self, login: str) -> int:
        """Delete everything cached for login. Returns the number of member rows deleted."""
        with self._lock:
            cur = self.conn.cursor()
            cur.execute('DELETE FROM members WHERE login = ?', (login,))
            removed = cur.rowcount
            cur.execute('DELETE FROM changesets WHERE login = ?', (login,))
            cur.execute('DELETE FROM reports WHERE login = ?', (login,))
            self.conn.commit()
            return removed

    # noinspection SqlResolve
    def get_member(self, login: str) -> Optional[Identity]:
        with self._lock:
            cur = self.conn.cursor()
            cur.execute('SELECT record FROM members WHERE login = ?', (login,))
            row = cur.fetchone()
        if not row:
            return None
        return Identity.from_dict(json.loads(row[0]))

    # noinspection SqlResolve
    def put_member(self, identity: Identity):
        payload = json.dumps(identity.to_dict())
        with self._lock:
            cur = self.conn.cursor()
            cur.execute('REPLACE INTO members(login, record, timestamp) VALUES (?, ?, ?)', (identity.login, payload, time.time()))
            self.conn.commit()

    # noinspection SqlResolve
    def get_changesets(self, login: str) -> List[Changeset]:
        with self._lock:
            cur = self.conn.cursor()
            cur.execute('SELECT record FROM changesets WHERE login = ? ORDER BY sha', (login,))
            rows = cur.fetchall()
        return [Changeset.from_dict(json.loads(r[0])) for r in rows]

    # noinspection SqlResolve
    def put_changesets(self, login: str, changesets: Iterable[Changeset], report: ChangesetReport):
        """Replace the stored changesets and commit report of login."""
        rows = [(login, c.long_hash, json.dumps(c.to_dict())) for c in changesets]
        with self._lock:
            cur = self.conn.cursor()
            cur.execute('DELETE FROM changesets WHERE login = ?', (login,))
            if rows:
                cur.executemany('INSERT INTO changesets(login, sha, record) VALUES (?, ?, ?)', rows)
            self._put_report(cur, login, COMMITS_REPORT, report.to_dict())
            self.conn.commit()

    # noinspection SqlResolve
    def _put_report(self, cur, login: str, kind: str, record: Dict[str, Any]):
        cur.execute('REPLACE INTO reports(login, kind, record, timestamp) VALUES (?, ?, ?, ?)', (login, kind, json.dumps(record), time.time()))

    # noinspection SqlResolve
    def _get_report(self, login: str, kind: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            cur = self.conn.cursor()
            cur.execute('SELECT record FROM reports WHERE login = ? AND kind = ?', (login, kind))
            row = cur.fetchone()
        return json.loads(row[0]) if row else None

    def get_commit_report(self, login: str) -> Optional[ChangesetReport]:
        raw = self._get_report(login, COMMITS_REPORT)
        return ChangesetReport.from_dict(raw) if raw is not None else None

    def put_issue_report(self, login: str, report: IssueReport):
        with self._lock:
            cur = self.conn.cursor()
            self._put_report(cur, login, ISSUES_REPORT, report.to_dict())
            self.conn.commit()

    def get_issue_report(self, login: str) -> Optional[IssueReport]:
        raw = self._get_report(login, ISSUES_REPORT)
        return IssueReport.from_dict(raw) if raw is not None else None

    def describe(self, login: str) -> Optional[Dict[str, Any]]:
        """Everything cached for login as plain JSON-able data, or None if the login is unknown."""
        identity = self.get_member(login)
        if identity is None:
            return None
        return {
            'member': identity.to_dict(),
            'commits': self._get_report(login, COMMITS_REPORT),
            'issues': self._get_report(login, ISSUES_REPORT),
            'changesets': len(self.get_changesets(login)),
        }


__all__ = ["MemberCache"]

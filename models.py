"""
Data models for roster identities, mined changesets, affiliations and report entries.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)


class DateRange:
    """
    An employment window. A missing start or until means the window is open on that side.
    """

    def __init__(self, start: Optional[datetime] = None, until: Optional[datetime] = None):
        self.start = start
        self.until = until

    def contains(self, when: datetime) -> bool:
        if self.start is not None and when < self.start:
            return False
        if self.until is not None and when > self.until:
            return False
        return True

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        if self.start is not None:
            out['from'] = _iso(self.start)
        if self.until is not None:
            out['until'] = _iso(self.until)
        return out

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'DateRange':
        return cls(start=_parse_iso(raw.get('from')), until=_parse_iso(raw.get('until')))

    def __eq__(self, other):
        if not isinstance(other, DateRange):
            return NotImplemented
        return self.start == other.start and self.until == other.until

    def __repr__(self):
        return f"DateRange(start={self.start!r}, until={self.until!r})"


class FileChange:
    """
    One numstat line of a changeset. Binary files count as zero additions and deletions.
    """

    def __init__(self, additions: int, deletions: int, path: str):
        self.additions = additions
        self.deletions = deletions
        self.path = path

    def to_dict(self) -> Dict[str, Any]:
        return {'add': self.additions, 'del': self.deletions, 'path': self.path}

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'FileChange':
        return cls(int(raw.get('add') or 0), int(raw.get('del') or 0), raw.get('path') or '')


class Changeset:
    """
    A parsed commit: header fields plus per-file line-change stats. Keyed by long_hash.
    """

    def __init__(
        self,
        short_hash: str,
        long_hash: str,
        subject: str,
        author_name: str,
        author_email: str,
        author_date: datetime,
        changes: Optional[List[FileChange]] = None,
    ):
        self.short_hash = short_hash
        self.long_hash = long_hash
        self.subject = subject
        self.author_name = author_name
        self.author_email = author_email
        self.author_date = author_date
        self.changes: List[FileChange] = list(changes or [])
        self.additions = sum(c.additions for c in self.changes)
        self.deletions = sum(c.deletions for c in self.changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'shaShort': self.short_hash,
            'shaLong': self.long_hash,
            'subject': self.subject,
            'authorName': self.author_name,
            'authorEmail': self.author_email,
            'authorDate': _iso(self.author_date),
            'additions': self.additions,
            'deletions': self.deletions,
            'changes': [c.to_dict() for c in self.changes],
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'Changeset':
        return cls(
            short_hash=raw.get('shaShort') or '',
            long_hash=raw.get('shaLong') or '',
            subject=raw.get('subject') or '',
            author_name=raw.get('authorName') or '',
            author_email=raw.get('authorEmail') or '',
            author_date=_parse_iso(raw.get('authorDate')),
            changes=[FileChange.from_dict(c) for c in raw.get('changes') or []],
        )

    def __repr__(self):
        return f"Changeset({self.short_hash} {self.author_email} +{self.additions}/-{self.deletions})"


class Identity:
    """
    One roster account being enriched.

    emails is an insertion-ordered set that never holds the empty string. The record is
    mutated only by the worker that owns the login.
    """

    def __init__(
        self,
        login: str,
        name: str = '',
        email: str = '',
        emails: Optional[Iterable[str]] = None,
        ldap_login: str = '',
        employed: Optional[Iterable[DateRange]] = None,
        changesets: Optional[Iterable[Changeset]] = None,
    ):
        self.login = login
        self.name = name or ''
        self.email = email or ''
        self.ldap_login = ldap_login or ''
        self.emails: List[str] = []
        for e in emails or []:
            self.add_email(e)
        self.employed: List[DateRange] = []
        for window in employed or []:
            self.add_employment(window)
        self.changesets: List[Changeset] = list(changesets or [])

    def add_email(self, email: str) -> bool:
        """Append email unless empty or already present. Returns True when it was added."""
        if not email or email in self.emails:
            return False
        self.emails.append(email)
        return True

    def add_employment(self, window: DateRange):
        # a window sharing a start or an until with a known one refines it instead of duplicating it
        for known in self.employed:
            if known.start is not None and window.start is not None and known.start == window.start:
                if window.until is not None:
                    known.until = window.until
                return
            if known.until is not None and window.until is not None and known.until == window.until:
                if window.start is not None:
                    known.start = window.start
                return
        self.employed.append(DateRange(window.start, window.until))

    def employed_at(self, when: datetime) -> bool:
        """True when no employment data exists or when falls inside at least one window."""
        if not self.employed:
            return True
        return any(w.contains(when) for w in self.employed)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {'login': self.login}
        if self.name:
            out['name'] = self.name
        if self.email:
            out['email'] = self.email
        if self.ldap_login:
            out['ldapLogin'] = self.ldap_login
        if self.emails:
            out['emails'] = list(self.emails)
        if self.employed:
            out['employed'] = [w.to_dict() for w in self.employed]
        return out

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'Identity':
        return cls(
            login=raw.get('login') or '',
            name=raw.get('name') or '',
            email=raw.get('email') or '',
            emails=raw.get('emails') or [],
            ldap_login=raw.get('ldapLogin') or '',
            employed=[DateRange.from_dict(w) for w in raw.get('employed') or []],
        )


class AffiliatedCompany:
    def __init__(self, name: str, until: Optional[datetime] = None):
        self.name = name
        self.until = until

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {'name': self.name}
        if self.until is not None:
            out['until'] = _iso(self.until)
        return out


class Affiliation:
    """
    A developer affiliation record. occurrences counts the header blocks sharing this name;
    only records with a single occurrence are trusted when merging.
    """

    def __init__(self, name: str, emails: Optional[Iterable[str]] = None, companies: Optional[List[AffiliatedCompany]] = None, occurrences: int = 1):
        self.name = name
        self.emails: List[str] = []
        for e in emails or []:
            if e and e not in self.emails:
                self.emails.append(e)
        self.companies: List[AffiliatedCompany] = list(companies or [])
        self.occurrences = occurrences

    @property
    def unambiguous(self) -> bool:
        return self.occurrences == 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            'occurrences': self.occurrences,
            'name': self.name,
            'emails': list(self.emails),
            'companies': [c.to_dict() for c in self.companies],
        }


class ChangesetReport:
    """
    Totals computed over the changesets retained for an identity.
    """

    def __init__(
        self,
        author_name: str = '',
        author_email: str = '',
        commits: int = 0,
        additions: int = 0,
        deletions: int = 0,
        latest_commit_sha: str = '',
        latest_commit_date: Optional[datetime] = None,
    ):
        self.author_name = author_name
        self.author_email = author_email
        self.commits = commits
        self.additions = additions
        self.deletions = deletions
        self.latest_commit_sha = latest_commit_sha
        self.latest_commit_date = latest_commit_date

    def to_dict(self) -> Dict[str, Any]:
        return {
            'authorName': self.author_name,
            'authorEmail': self.author_email,
            'commits': self.commits,
            'additions': self.additions,
            'deletions': self.deletions,
            'latestCommitSHA': self.latest_commit_sha,
            'latestCommitDate': _iso(self.latest_commit_date),
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'ChangesetReport':
        return cls(
            author_name=raw.get('authorName') or '',
            author_email=raw.get('authorEmail') or '',
            commits=int(raw.get('commits') or 0),
            additions=int(raw.get('additions') or 0),
            deletions=int(raw.get('deletions') or 0),
            latest_commit_sha=raw.get('latestCommitSHA') or '',
            latest_commit_date=_parse_iso(raw.get('latestCommitDate')),
        )


class IssueCounts:
    def __init__(self, created: int = 0, assigned: int = 0, mentioned: int = 0, merged: int = 0):
        self.created = created
        self.assigned = assigned
        self.mentioned = mentioned
        self.merged = merged

    def to_dict(self) -> Dict[str, int]:
        return {'created': self.created, 'assigned': self.assigned, 'mentioned': self.mentioned, 'merged': self.merged}

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'IssueCounts':
        raw = raw or {}
        return cls(
            created=int(raw.get('created') or 0),
            assigned=int(raw.get('assigned') or 0),
            mentioned=int(raw.get('mentioned') or 0),
            merged=int(raw.get('merged') or 0),
        )


class IssueReport:
    """
    Issue and pull request activity of an identity in the target repository.
    """

    def __init__(self, issues: Optional[IssueCounts] = None, pull_requests: Optional[IssueCounts] = None):
        self.issues = issues or IssueCounts()
        self.pull_requests = pull_requests or IssueCounts()

    def to_dict(self) -> Dict[str, Any]:
        return {'issues': self.issues.to_dict(), 'pullRequests': self.pull_requests.to_dict()}

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'IssueReport':
        return cls(IssueCounts.from_dict(raw.get('issues')), IssueCounts.from_dict(raw.get('pullRequests')))


CSV_REPORT_HEADER = [
    'login',
    'name',
    'ldapLogin',
    'emails',
    'commits',
    'additions',
    'deletions',
    'latestCommitSHA',
    'latestCommitDate',
    'issuesCreated',
    'issuesAssigned',
    'issuesMentioned',
    'pullRequestsCreated',
    'pullRequestsAssigned',
    'pullRequestsMentioned',
    'pullRequestsMerged',
]


class ReportEntry:
    """
    Aggregated, read-only view of one enriched identity.
    """

    def __init__(self, identity: Identity, commits: Optional[ChangesetReport] = None, issues: Optional[IssueReport] = None):
        commits = commits or ChangesetReport()
        issues = issues or IssueReport()
        self.login = identity.login
        self.name = identity.name
        self.ldap_login = identity.ldap_login
        self.emails = tuple(identity.emails)
        self.commits = commits.commits
        self.additions = commits.additions
        self.deletions = commits.deletions
        self.latest_commit_sha = commits.latest_commit_sha
        self.latest_commit_date = commits.latest_commit_date
        self.issues = issues.issues
        self.pull_requests = issues.pull_requests

    def fields(self) -> List[str]:
        """Row values in CSV_REPORT_HEADER order."""
        return [
            self.login,
            self.name,
            self.ldap_login,
            ';'.join(self.emails),
            str(self.commits),
            str(self.additions),
            str(self.deletions),
            self.latest_commit_sha,
            _iso(self.latest_commit_date) or '',
            str(self.issues.created),
            str(self.issues.assigned),
            str(self.issues.mentioned),
            str(self.pull_requests.created),
            str(self.pull_requests.assigned),
            str(self.pull_requests.mentioned),
            str(self.pull_requests.merged),
        ]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'login': self.login,
            'name': self.name,
            'ldapLogin': self.ldap_login,
            'emails': list(self.emails),
            'commits': self.commits,
            'additions': self.additions,
            'deletions': self.deletions,
            'latestCommitSHA': self.latest_commit_sha,
            'latestCommitDate': _iso(self.latest_commit_date),
            'issues': self.issues.to_dict(),
            'pullRequests': self.pull_requests.to_dict(),
        }

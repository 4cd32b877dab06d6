"""
Git history access: run ``git log --numstat`` for an author and parse the output into changesets.

Each commit is printed as six header lines followed by its numstat block::

    SHORT_HASH
    LONG_HASH
    SUBJECT
    AUTHOR_NAME
    AUTHOR_EMAIL
    AUTHOR_DATE (unix epoch)
    ADD  DEL  PATH
    ...
    <blank line>

A commit without file changes has no numstat block and no blank line: the next commit's
header follows immediately, so the parser must look at the line after the header before
deciding whether it starts a numstat block or a new commit.
"""
import logging
import re
import subprocess
import tempfile
import threading
from datetime import datetime, timezone
from typing import Iterable, Iterator, List, Optional, Tuple

from models import Changeset, FileChange
from storage.retry import Cancelled, Governor

logger = logging.getLogger(__name__)

LOG_FORMAT = 'format:%h%n%H%n%s%n%an%n%ae%n%at'
HEADER_LINES = 6
NUMSTAT_RX = re.compile(r'^(-|\d+)\s+(-|\d+)\s*([^\s].*)$')


class GitError(RuntimeError):
    pass


class GitLogParseError(ValueError):
    pass


def _count(value: str) -> int:
    # binary files report "-" for both columns
    return 0 if value == '-' else int(value)


def _author_date(epoch: str, utc: bool) -> datetime:
    try:
        when = datetime.fromtimestamp(int(epoch), tz=timezone.utc)
    except ValueError as ex:
        raise GitLogParseError(f"error parsing author date: {epoch!r}") from ex
    return when if utc else when.astimezone()


def _read_header(it: Iterator[str], pending: Optional[str]) -> Optional[List[str]]:
    """The next six header lines, starting with pending if set. None at end of input."""
    header: List[str] = [] if pending is None else [pending]
    while len(header) < HEADER_LINES:
        line = next(it, None)
        if line is None:
            return None
        if header or line:
            header.append(line)
    return header


def _read_numstat(it: Iterator[str], short_hash: str) -> Tuple[List[FileChange], Optional[str]]:
    """Read the numstat block following a header.

    Returns the file changes and, when the commit touched no files, the line that
    already starts the next commit.
    """
    changes: List[FileChange] = []
    line = next(it, None)
    if not line:
        return changes, None
    match = NUMSTAT_RX.match(line)
    if match is None:
        return changes, line
    while match is not None:
        changes.append(FileChange(_count(match.group(1)), _count(match.group(2)), match.group(3)))
        line = next(it, None)
        if not line:
            break
        match = NUMSTAT_RX.match(line)
        if match is None:
            raise GitLogParseError(f"error matching changeset add/del line: commit={short_hash}, line={line!r}")
    return changes, None


def parse_git_log(lines: Iterable[str], utc: bool = False, cancel: Optional[threading.Event] = None) -> List[Changeset]:
    """Parse ``git log --format=LOG_FORMAT --numstat`` output.

    A malformed line inside a numstat block raises GitLogParseError. Input ending in the
    middle of a header stops parsing and returns the changesets completed so far.
    """
    it: Iterator[str] = (line.rstrip('\r\n') for line in lines)
    changesets: List[Changeset] = []
    pending: Optional[str] = None

    while True:
        if cancel is not None and cancel.is_set():
            raise Cancelled("cancelled while parsing git log")
        header = _read_header(it, pending)
        if header is None:
            return changesets
        short_hash, long_hash, subject, author_name, author_email, epoch = header
        author_date = _author_date(epoch, utc)
        changes, pending = _read_numstat(it, short_hash)
        changesets.append(Changeset(short_hash, long_hash, subject, author_name, author_email, author_date, changes))


class GitRepository:
    """A local repository queried through the Governor's git slots."""

    def __init__(self, git_dir: str, governor: Governor, utc: bool = False, git_binary: str = 'git'):
        self.git_dir = git_dir
        self.governor = governor
        self.utc = utc
        self.git_binary = git_binary

    @classmethod
    def from_config(cls, config, governor: Governor) -> 'GitRepository':
        return cls(config.git.git_dir, governor, utc=config.git.utc)

    def log_command(self, author: str) -> List[str]:
        return [
            self.git_binary,
            '--no-pager',
            '--git-dir',
            self.git_dir,
            'log',
            '--fixed-strings',
            '--author',
            author,
            f'--format={LOG_FORMAT}',
            '--numstat',
        ]

    def log_for_author(self, author: str) -> List[Changeset]:
        """Changesets whose author name or e-mail contains author."""
        cmd = self.log_command(author)
        logger.debug("%s", " ".join(cmd))
        # stderr goes to a file: an undrained pipe would stall git while stdout is being parsed
        with self.governor.git.slot(), tempfile.TemporaryFile(mode='w+', encoding='utf-8', errors='replace') as err:
            with subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=err,
                text=True,
                encoding='utf-8',
                errors='replace',
            ) as proc:
                try:
                    changesets = parse_git_log(proc.stdout, self.utc, self.governor.cancel)
                except BaseException:
                    proc.kill()
                    raise
                returncode = proc.wait()
            err.seek(0)
            stderr = err.read()
        if returncode != 0:
            raise GitError(f"git failed ({returncode}): {' '.join(cmd)}\n{stderr.strip()}")
        return changesets

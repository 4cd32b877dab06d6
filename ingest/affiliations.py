"""
Developer affiliations: download (or reuse) the gitdm-style affiliations file and parse it
into a read-only lookup table keyed by developer name and by each known e-mail.

File layout::

    # one leading comment line
    Jane Doe: jane!example.com, jdoe!users.noreply.github.com
    \tAcme Corp until 2016-04-30
    \tExample Inc
    Next Developer: ...

``!`` stands in for ``@`` in e-mail addresses. A company line without ``until`` is the
current affiliation.
"""
import logging
import os
import re
import threading
from datetime import datetime, timezone
from typing import Dict, Iterable, Iterator, Optional

import requests

from config import AFFILIATIONS_FILE_NAME, AffiliationSettings
from models import AffiliatedCompany, Affiliation
from storage.retry import Cancelled, Governor, RemoteError

logger = logging.getLogger(__name__)

DEV_RX = re.compile(r'^([^:\t][^:]*):\s*(.+)$')
CO_RX = re.compile(r'^\t(.+?)(?:\suntil\s(\d{4}-\d{2}-\d{2}))?$')


class AffiliationParseError(ValueError):
    pass


class AffiliationTable:
    """Affiliations indexed by name and e-mail. Built once, read-only afterwards."""

    def __init__(self):
        self._index: Dict[str, Affiliation] = {}
        self.developers = 0

    def lookup(self, key: str) -> Optional[Affiliation]:
        if not key:
            return None
        return self._index.get(key)

    def __contains__(self, key) -> bool:
        return key in self._index

    def __len__(self) -> int:
        return self.developers

    def _add_developer(self, name: str, emails) -> Affiliation:
        dev = self._index.get(name)
        if dev is not None and dev.name == name:
            dev.occurrences += 1
            for e in emails:
                if e not in dev.emails:
                    dev.emails.append(e)
        else:
            self.developers += 1
            dev = Affiliation(name=name, emails=emails)
            self._index[name] = dev
        for e in dev.emails:
            self._index[e] = dev
        return dev


def _split_emails(raw: str):
    return [e.strip().replace('!', '@') for e in raw.split(',') if e.strip()]


def _parse_until(value: str, line: str) -> datetime:
    try:
        return datetime.strptime(value, '%Y-%m-%d').replace(tzinfo=timezone.utc)
    except ValueError as ex:
        raise AffiliationParseError(f"error parsing company until date: {line!r}") from ex


def parse_affiliations(lines: Iterable[str], cancel: Optional[threading.Event] = None) -> AffiliationTable:
    """Parse affiliation file lines. Malformed developer or company lines raise AffiliationParseError."""
    table = AffiliationTable()
    it: Iterator[str] = (line.rstrip('\r\n') for line in lines)

    if next(it, None) is None:
        raise AffiliationParseError("affiliations file is empty")

    dev: Optional[Affiliation] = None
    for line in it:
        if cancel is not None and cancel.is_set():
            raise Cancelled("cancelled while parsing affiliations")
        if not line.strip():
            continue
        co_match = CO_RX.match(line)
        if co_match:
            if dev is None:
                raise AffiliationParseError(f"company line without a developer: {line!r}")
            until = _parse_until(co_match.group(2), line) if co_match.group(2) else None
            dev.companies.append(AffiliatedCompany(co_match.group(1), until))
            continue
        dev_match = DEV_RX.match(line)
        if not dev_match:
            raise AffiliationParseError(f"error matching affiliate+dev: {line!r}")
        dev = table._add_developer(dev_match.group(1).strip(), _split_emails(dev_match.group(2)))

    return table


def _local_path(output_dir: str) -> str:
    return os.path.join(output_dir, f".{AFFILIATIONS_FILE_NAME}")


def load_affiliations(settings: AffiliationSettings, output_dir: str, governor: Governor, session=None) -> AffiliationTable:
    """Build the affiliation table for a run.

    Downloads the file and keeps a local copy next to the cache unless fetching is disabled,
    in which case the local copy is read. A disabled source yields an empty table.
    """
    if settings.disabled:
        return AffiliationTable()

    path = _local_path(output_dir)
    if settings.no_fetch:
        with open(path, 'r', encoding='utf-8') as f:
            table = parse_affiliations(f, governor.cancel)
        logger.info("loaded %d affiliations from %s", len(table), path)
        return table

    http = session or requests
    resp = governor.with_retry(lambda: http.get(settings.url, timeout=60))
    if resp.status_code > 299:
        raise RemoteError(f"GET {settings.url} failed: {resp.status_code}", status=resp.status_code, url=settings.url)
    text = resp.text
    os.makedirs(output_dir, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        f.write(text)
    table = parse_affiliations(text.splitlines(), governor.cancel)
    logger.info("fetched %d affiliations from %s", len(table), settings.url)
    return table

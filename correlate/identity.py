"""
Identity merge: fold affiliation-file and directory-service data into a member's record.

Everything here mutates only the Identity handed in; the affiliation table is shared
between workers but never written after loading.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from ingest.affiliations import AffiliationTable
from ingest.directory import DirectoryClient, login_filter, name_filter
from models import Affiliation, DateRange, Identity
from normalize.util import directory_employment

logger = logging.getLogger(__name__)

MIN_UNAMBIGUOUS_NAME = 8


def name_is_distinctive(name: str) -> bool:
    """Guard for affiliation lookups: long enough or carrying a first/last name split."""
    return bool(name) and (len(name) >= MIN_UNAMBIGUOUS_NAME or ' ' in name)


def seed_known_emails(identity: Identity) -> List[str]:
    """Make sure the primary e-mail is part of the known set and return that set."""
    if identity.add_email(identity.email):
        logger.debug("%s: primary e-mail %s", identity.login, identity.email)
    return identity.emails


def end_of_day(day: Optional[datetime]) -> Optional[datetime]:
    """Last instant of a date-granular value; affiliation dates name a whole day."""
    if day is None:
        return None
    return day.replace(hour=0, minute=0, second=0, microsecond=0) + timedelta(days=1) - timedelta(microseconds=1)


def affiliation_employment(affiliation: Affiliation, org: str) -> List[DateRange]:
    """Windows spent at companies whose name mentions org.

    Companies are listed in chronological order and only carry an end date, so a window
    starts the day after the previous company's ended. Dates are whole days, so
    a window runs through the end of its last day.
    """
    windows = []
    start = None
    needle = (org or '').lower()
    for company in affiliation.companies:
        until = end_of_day(company.until)
        if needle and needle in company.name.lower():
            windows.append(DateRange(start, until))
        start = None if until is None else until + timedelta(microseconds=1)
    return windows


def _merge_affiliation(identity: Identity, affiliation: Optional[Affiliation], key: str, org: str) -> int:
    if affiliation is None or not affiliation.unambiguous:
        return 0
    added = 0
    for email in affiliation.emails:
        if identity.add_email(email):
            added += 1
            logger.debug("%s: affiliation e-mail %s (matched %r)", identity.login, email, key)
    for window in affiliation_employment(affiliation, org):
        identity.add_employment(window)
    return added


def merge_affiliations(identity: Identity, table: AffiliationTable, org: str = '') -> int:
    """Add the e-mails of unambiguous affiliation records matched by name and by primary e-mail.

    Returns the number of e-mails added.
    """
    if not len(table):
        return 0
    added = 0
    if name_is_distinctive(identity.name):
        added += _merge_affiliation(identity, table.lookup(identity.name), identity.name, org)
    if identity.email:
        added += _merge_affiliation(identity, table.lookup(identity.email), identity.email, org)
    return added


def merge_directory(identity: Identity, directory: Optional[DirectoryClient]) -> bool:
    """Look the member up in the directory, by login and then by display name.

    A unique match contributes its first unknown e-mail, its directory login and its
    employment window. Returns True when a unique entry was found.
    """
    if directory is None:
        return False
    entry = directory.find_unique(login_filter(identity.ldap_login or identity.login))
    if entry is None and identity.name:
        entry = directory.find_unique(name_filter(identity.name))
    if entry is None:
        return False

    mail = entry.get('mail') or ''
    if identity.add_email(mail):
        logger.debug("%s: directory e-mail %s", identity.login, mail)
    if entry.get('sAMAccountName'):
        identity.ldap_login = entry['sAMAccountName']
    window = directory_employment(entry)
    if window.start is not None or window.until is not None:
        identity.add_employment(window)
    return True


__all__ = [
    'affiliation_employment',
    'end_of_day',
    'merge_affiliations',
    'merge_directory',
    'name_is_distinctive',
    'seed_known_emails',
]

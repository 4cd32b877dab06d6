"""
Normalization utility helpers.
Small helpers to turn raw provider payloads into models entities.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from models import DateRange, Identity

DIRECTORY_TIME_FORMAT = '%Y%m%d%H%M%S.0Z'
CLOSED_ACCOUNT_MARKER = 'OU=Closed_Hold'


def normalize_github_user(raw: Dict[str, Any]) -> Identity:
    """Create an Identity from a GitHub user payload.
    Only the profile fields are taken: login, display name and primary e-mail.
    """
    return Identity(login=raw.get('login') or '', name=raw.get('name') or '', email=raw.get('email') or '')


def classify_issue(raw: Dict[str, Any]) -> Tuple[bool, bool]:
    """Return (is_pull_request, merged) for a GitHub issues-API item."""
    pr = raw.get('pull_request')
    if not isinstance(pr, dict):
        return False, False
    return True, bool(pr.get('merged_at'))


def parse_directory_time(value: Any) -> Optional[datetime]:
    """Parse a directory generalized-time value such as 20190102030405.0Z into an aware datetime."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, bytes):
        value = value.decode('utf-8')
    return datetime.strptime(value, DIRECTORY_TIME_FORMAT).replace(tzinfo=timezone.utc)


def directory_employment(attributes: Dict[str, str]) -> DateRange:
    """Employment window of a directory entry.
    The account creation time starts the window; the last change ends it only once the
    account has been moved to the closed-accounts unit.
    """
    window = DateRange(start=parse_directory_time(attributes.get('whenCreated')))
    if CLOSED_ACCOUNT_MARKER in (attributes.get('distinguishedName') or ''):
        window.until = parse_directory_time(attributes.get('whenChanged'))
    return window

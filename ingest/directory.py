"""
Directory-service (LDAP) lookups used to discover corporate e-mail addresses and
employment windows for roster members.
"""
import logging
import ssl
import threading
from typing import Dict, List, Optional

from ldap3 import SUBTREE, Connection, Server, Tls
from ldap3.core.exceptions import LDAPException
from ldap3.utils.conv import escape_filter_chars

from config import DirectorySettings

logger = logging.getLogger(__name__)

ATTRIBUTES = ['mail', 'sAMAccountName', 'distinguishedName', 'whenCreated', 'whenChanged']


class DirectoryError(RuntimeError):
    pass


def login_filter(login: str) -> str:
    return f"(sAMAccountName={escape_filter_chars(login)})"


def name_filter(name: str) -> str:
    return f"(&(objectClass=person)(displayName={escape_filter_chars(name)}))"


def _first_value(values) -> str:
    if not values:
        return ''
    value = values[0]
    if isinstance(value, bytes):
        return value.decode('utf-8', errors='replace')
    return str(value)


class DirectoryClient:
    """Thin ldap3 wrapper. Searches are serialized on one bound connection."""

    def __init__(self, connection: Connection, base_dn: str):
        self.connection = connection
        self.base_dn = base_dn
        self._lock = threading.Lock()

    @classmethod
    def connect(cls, settings: DirectorySettings) -> 'DirectoryClient':
        host, _, port = settings.host.partition(':')
        tls = Tls(validate=ssl.CERT_NONE if settings.insecure else ssl.CERT_REQUIRED)
        server = Server(host, port=int(port) if port else None, use_ssl=True, tls=tls)
        try:
            conn = Connection(server, user=settings.user, password=settings.password, auto_bind=True)
        except LDAPException as ex:
            raise DirectoryError(f"ldap bind to {settings.host} failed: {ex}") from ex
        return cls(conn, settings.base_dn)

    def search(self, search_filter: str) -> List[Dict[str, str]]:
        """Return the attribute mapping of every entry matching search_filter."""
        logger.debug("ldap search base=%s filter=%s", self.base_dn, search_filter)
        with self._lock:
            try:
                self.connection.search(
                    search_base=self.base_dn,
                    search_filter=search_filter,
                    search_scope=SUBTREE,
                    attributes=ATTRIBUTES,
                )
            except LDAPException as ex:
                raise DirectoryError(f"ldap search {search_filter} failed: {ex}") from ex
            response = list(self.connection.response or [])
        entries = []
        for item in response:
            if item.get('type') != 'searchResEntry':
                continue
            raw = item.get('raw_attributes') or {}
            entries.append({attr: _first_value(raw.get(attr)) for attr in ATTRIBUTES})
        return entries

    def find_unique(self, search_filter: str) -> Optional[Dict[str, str]]:
        """The single matching entry, or None when there are zero or several matches."""
        entries = self.search(search_filter)
        if len(entries) != 1:
            return None
        return entries[0]

    def close(self):
        with self._lock:
            self.connection.unbind()

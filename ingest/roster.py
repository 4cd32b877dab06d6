"""
Roster sources: where logins and base member records come from.

The source is picked once per run. ``LiveSource`` enumerates the organization through the
GitHub API and fetches fresh profiles, carrying over e-mails merged in earlier runs;
``CachedSource`` serves both from the local member cache.
"""
import threading
from typing import Iterable, Iterator, Optional

from ingest.github import GitHubClient
from models import Identity
from normalize.util import normalize_github_user
from storage.cache import MemberCache


class MemberSource:
    def iter_logins(self) -> Iterable[str]:
        raise NotImplementedError

    def load(self, login: str) -> Identity:
        raise NotImplementedError


class CachedSource(MemberSource):
    def __init__(self, cache: MemberCache):
        self.cache = cache

    def iter_logins(self) -> Iterable[str]:
        return self.cache.list_logins()

    def load(self, login: str) -> Identity:
        # an uncached login is not an error offline, it is just an identity with nothing known yet
        return self.cache.get_member(login) or Identity(login)


class LiveSource(MemberSource):
    def __init__(self, github: GitHubClient, org: str, cache: Optional[MemberCache] = None):
        self.github = github
        self.org = org
        self.cache = cache

    def iter_logins(self) -> Iterable[str]:
        return self.github.iter_member_logins(self.org)

    def load(self, login: str) -> Identity:
        """Fetch the profile; the fetched fields win, previously merged e-mails are kept."""
        identity = normalize_github_user(self.github.get_user(login))
        identity.login = identity.login or login
        cached = self.cache.get_member(login) if self.cache is not None else None
        if cached is not None:
            for email in cached.emails:
                identity.add_email(email)
            identity.ldap_login = cached.ldap_login
        return identity


def select_source(config, github: Optional[GitHubClient], cache: MemberCache) -> MemberSource:
    if config.github.no_fetch_users:
        return CachedSource(cache)
    return LiveSource(github, config.github.member_org, cache)


def admitted_logins(config, source: MemberSource, cancel: threading.Event) -> Iterator[str]:
    """Yield the logins to enrich.

    Named mode yields the configured logins. Otherwise the source's roster is walked and,
    in resume mode, only logins sorting at or after the resume anchor are admitted.
    Stops early once cancel is set.
    """
    logins = config.logins if config.named_mode else source.iter_logins()
    anchor = config.resume_anchor
    for login in logins:
        if cancel.is_set():
            return
        if anchor is not None and login < anchor:
            continue
        yield login

import threading

from config import build_config
from ingest.roster import CachedSource, LiveSource, admitted_logins, select_source
from models import Identity
from storage.cache import MemberCache


class FakeSource:
    def __init__(self, logins):
        self.logins = logins

    def iter_logins(self):
        return iter(self.logins)


class FakeGitHub:
    def __init__(self, users=None, members=None):
        self.users = users or {}
        self.members = members or []

    def iter_member_logins(self, org):
        return iter(self.members)

    def get_user(self, login):
        return self.users[login]


def _config(**run):
    return build_config(None, {'run': run}, env={})


def test_resume_admits_logins_at_or_after_anchor():
    config = _config(logins=['carol'], resume=True)
    source = FakeSource(['alice', 'bob', 'carol', 'dave'])
    assert list(admitted_logins(config, source, threading.Event())) == ['carol', 'dave']


def test_named_mode_deduplicates_and_ignores_roster():
    config = _config(logins=['bob', 'alice', 'bob'])
    source = FakeSource(['zed'])
    assert list(admitted_logins(config, source, threading.Event())) == ['bob', 'alice']


def test_full_roster_mode():
    config = _config()
    assert list(admitted_logins(config, FakeSource(['a', 'b']), threading.Event())) == ['a', 'b']


def test_cancel_stops_enumeration():
    cancel = threading.Event()
    config = _config()
    seen = []
    for login in admitted_logins(config, FakeSource(['a', 'b', 'c']), cancel):
        seen.append(login)
        cancel.set()
    assert seen == ['a']


def test_cached_source_serves_cache_and_bare_identities():
    cache = MemberCache()
    cache.put_member(Identity('bob', 'Bob Builder', emails=['bob@example.com']))
    cache.put_member(Identity('alice'))
    source = CachedSource(cache)
    assert source.iter_logins() == ['alice', 'bob']
    assert source.load('bob').emails == ['bob@example.com']
    missing = source.load('nobody')
    assert missing.login == 'nobody'
    assert missing.emails == []


def test_live_source_carries_over_cached_emails():
    cache = MemberCache()
    cache.put_member(Identity('bob', 'Old Name', 'old@example.com', emails=['old@example.com', 'bob@corp.com'], ldap_login='bbuilder'))
    github = FakeGitHub(users={'bob': {'login': 'bob', 'name': 'Bob Builder', 'email': 'bob@example.com'}})
    bob = LiveSource(github, 'vmware', cache).load('bob')
    assert bob.name == 'Bob Builder'
    assert bob.email == 'bob@example.com'
    assert bob.emails == ['old@example.com', 'bob@corp.com']
    assert bob.ldap_login == 'bbuilder'


def test_live_source_without_cached_record():
    github = FakeGitHub(users={'amy': {'login': 'amy', 'name': None, 'email': None}}, members=['amy'])
    source = LiveSource(github, 'vmware', MemberCache())
    assert list(source.iter_logins()) == ['amy']
    amy = source.load('amy')
    assert amy.name == ''
    assert amy.emails == []


def test_select_source():
    cache = MemberCache()
    offline = build_config(None, {'github': {'no_fetch_users': True}}, env={})
    assert isinstance(select_source(offline, None, cache), CachedSource)
    assert isinstance(select_source(_config(), FakeGitHub(), cache), LiveSource)

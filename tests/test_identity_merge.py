from datetime import datetime, timezone

from correlate.commits import filter_employed
from correlate.identity import (
    affiliation_employment,
    end_of_day,
    merge_affiliations,
    merge_directory,
    name_is_distinctive,
    seed_known_emails,
)
from ingest.affiliations import parse_affiliations
from ingest.directory import login_filter, name_filter
from models import Changeset, DateRange, FileChange, Identity

AFFILIATIONS = [
    '# header',
    'Jane Doe: jane!example.com, jane!corp.com',
    '\tAcme Corp until 2016-04-30',
    '\tVMware Inc until 2020-01-31',
    '\tOther Co',
    'John Smith: john!smith.org',
    'John Smith: jsmith!other.org',
    'Bo: bo!short.org',
]


def _table():
    return parse_affiliations(AFFILIATIONS)


def _changeset(sha, when):
    return Changeset(sha[:7], sha, 'subject', 'Jane Doe', 'jane@example.com', when, [FileChange(1, 0, 'f.go')])


def test_name_guard():
    assert name_is_distinctive('Jane Doe')
    assert name_is_distinctive('Jonathan')
    assert not name_is_distinctive('Bo')
    assert not name_is_distinctive('')


def test_seed_adds_primary_email_once():
    ident = Identity('jane', 'Jane Doe', 'jane@example.com', emails=['jane@example.com', 'old@example.com'])
    seed_known_emails(ident)
    assert ident.emails == ['jane@example.com', 'old@example.com']
    ident = Identity('jane', email='jane@example.com')
    seed_known_emails(ident)
    assert ident.emails == ['jane@example.com']


def test_unambiguous_affiliation_adds_only_novel_emails():
    ident = Identity('jane', 'Jane Doe', 'jane@example.com')
    seed_known_emails(ident)
    added = merge_affiliations(ident, _table())
    assert added == 1
    assert ident.emails == ['jane@example.com', 'jane@corp.com']


def test_ambiguous_affiliation_is_ignored():
    ident = Identity('jsmith', 'John Smith', 'john@smith.org')
    seed_known_emails(ident)
    assert merge_affiliations(ident, _table()) == 0
    assert ident.emails == ['john@smith.org']


def test_short_name_is_not_looked_up_but_email_is():
    ident = Identity('bo', 'Bo')
    assert merge_affiliations(ident, _table()) == 0
    ident = Identity('bo', 'Bo', 'bo@short.org')
    seed_known_emails(ident)
    assert merge_affiliations(ident, _table()) == 0
    assert ident.emails == ['bo@short.org']


def test_affiliation_employment_windows_for_org():
    jane = _table().lookup('Jane Doe')
    windows = affiliation_employment(jane, 'vmware')
    assert windows == [
        DateRange(datetime(2016, 5, 1, tzinfo=timezone.utc), datetime(2020, 1, 31, 23, 59, 59, 999999, tzinfo=timezone.utc))
    ]
    assert affiliation_employment(jane, 'nope') == []


def test_affiliation_merge_adds_employment():
    ident = Identity('jane', 'Jane Doe')
    merge_affiliations(ident, _table(), 'VMware')
    assert len(ident.employed) == 1
    assert not ident.employed_at(datetime(2021, 1, 1, tzinfo=timezone.utc))


def test_commits_on_last_affiliation_day_are_kept():
    table = parse_affiliations(['Jane Doe: jane!example.com', '\tVMware Inc until 2020-01-31', '\tOther Co'])
    ident = Identity('jane', 'Jane Doe')
    merge_affiliations(ident, table, 'vmware')
    last_day = datetime(2020, 1, 31, 15, 0, tzinfo=timezone.utc)
    next_day = datetime(2020, 2, 1, 0, 0, 1, tzinfo=timezone.utc)
    kept = filter_employed(ident, [_changeset('a' * 40, last_day), _changeset('b' * 40, next_day)])
    assert [c.long_hash for c in kept] == ['a' * 40]


def test_next_company_starts_the_day_after():
    table = parse_affiliations(['Jane Doe: jane!example.com', '\tAcme Corp until 2016-04-30', '\tVMware Inc'])
    ident = Identity('jane', 'Jane Doe')
    merge_affiliations(ident, table, 'vmware')
    assert not ident.employed_at(datetime(2016, 4, 30, 18, 0, tzinfo=timezone.utc))
    assert ident.employed_at(datetime(2016, 5, 1, tzinfo=timezone.utc))


def test_end_of_day():
    assert end_of_day(None) is None
    assert end_of_day(datetime(2020, 1, 31, tzinfo=timezone.utc)) == datetime(2020, 1, 31, 23, 59, 59, 999999, tzinfo=timezone.utc)


class FakeDirectory:
    def __init__(self, entries):
        self.entries = entries
        self.filters = []

    def find_unique(self, search_filter):
        self.filters.append(search_filter)
        return self.entries.get(search_filter)


def test_directory_disabled_is_a_noop():
    ident = Identity('jane', 'Jane Doe')
    assert merge_directory(ident, None) is False
    assert ident.emails == []


def test_directory_login_match():
    entry = {
        'mail': 'jdoe@corp.com',
        'sAMAccountName': 'jdoe',
        'distinguishedName': 'CN=Jane Doe,OU=Closed_Hold,DC=corp',
        'whenCreated': '20170101000000.0Z',
        'whenChanged': '20190101000000.0Z',
    }
    directory = FakeDirectory({login_filter('jane'): entry})
    ident = Identity('jane', 'Jane Doe', emails=['jane@example.com'])
    assert merge_directory(ident, directory)
    assert directory.filters == [login_filter('jane')]
    assert ident.emails == ['jane@example.com', 'jdoe@corp.com']
    assert ident.ldap_login == 'jdoe'
    assert ident.employed == [DateRange(datetime(2017, 1, 1, tzinfo=timezone.utc), datetime(2019, 1, 1, tzinfo=timezone.utc))]


def test_directory_falls_back_to_display_name():
    entry = {'mail': 'jdoe@corp.com', 'sAMAccountName': 'jdoe', 'distinguishedName': 'CN=Jane Doe,OU=Users', 'whenCreated': '20170101000000.0Z'}
    directory = FakeDirectory({name_filter('Jane Doe'): entry})
    ident = Identity('jane', 'Jane Doe')
    assert merge_directory(ident, directory)
    assert directory.filters == [login_filter('jane'), name_filter('Jane Doe')]
    assert ident.employed[0].until is None


def test_directory_prefers_cached_directory_login():
    directory = FakeDirectory({})
    ident = Identity('jane', 'Jane Doe', ldap_login='jdoe')
    assert not merge_directory(ident, directory)
    assert directory.filters[0] == login_filter('jdoe')


def test_directory_known_email_not_duplicated():
    entry = {'mail': 'jane@example.com', 'sAMAccountName': 'jdoe', 'distinguishedName': '', 'whenCreated': ''}
    ident = Identity('jane', emails=['jane@example.com'])
    merge_directory(ident, FakeDirectory({login_filter('jane'): entry}))
    assert ident.emails == ['jane@example.com']
    assert ident.employed == []

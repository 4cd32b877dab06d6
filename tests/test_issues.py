from unittest.mock import Mock

from correlate.issues import IssueMiner
from ingest.github import GitHubClient, _next_page
from models import Identity
from storage.retry import Governor


class FakeGitHub:
    def __init__(self, by_filter):
        self.by_filter = by_filter
        self.calls = []

    def iter_repo_issues(self, owner, repo, **filters):
        self.calls.append((owner, repo, filters))
        (key, value), = filters.items()
        return iter(self.by_filter.get((key, value), []))


def test_issue_miner_counts_roles_and_merges():
    issue = {'number': 1}
    open_pr = {'number': 2, 'pull_request': {'merged_at': None}}
    merged_pr = {'number': 3, 'pull_request': {'merged_at': '2020-01-01T00:00:00Z'}}
    github = FakeGitHub(
        {
            ('creator', 'alice'): [issue, open_pr, merged_pr],
            ('assignee', 'alice'): [issue, merged_pr],
            ('mentioned', 'alice'): [merged_pr],
        }
    )
    report = IssueMiner(github, 'kubernetes', 'kubernetes').mine(Identity('alice'))
    assert report.issues.created == 1
    assert report.issues.assigned == 1
    assert report.issues.mentioned == 0
    assert report.pull_requests.created == 2
    assert report.pull_requests.assigned == 1
    assert report.pull_requests.mentioned == 1
    assert report.pull_requests.merged == 1
    assert [c[:2] for c in github.calls] == [('kubernetes', 'kubernetes')] * 3


def _page(items, next_url=None):
    resp = Mock(status_code=200, headers={}, text='')
    resp.json.return_value = items
    resp.links = {'next': {'url': next_url}} if next_url else {}
    return resp


def test_next_page():
    assert _next_page(_page([], 'https://api.github.com/orgs/x/members?page=3&per_page=100')) == 3
    assert _next_page(_page([])) == 0


def test_member_pagination_follows_next_links():
    session = Mock()
    session.get.side_effect = [
        _page([{'login': 'alice'}, {'login': 'bob'}], 'https://api.github.com/orgs/vmware/members?page=2'),
        _page([{'login': 'carol'}]),
    ]
    client = GitHubClient('t', Governor(), session=session)
    assert list(client.iter_member_logins('vmware')) == ['alice', 'bob', 'carol']
    pages = [call.kwargs['params']['page'] for call in session.get.call_args_list]
    assert pages == [1, 2]
    assert session.get.call_args_list[0].args[0] == 'https://api.github.com/orgs/vmware/members'
    assert session.get.call_args_list[0].kwargs['headers']['Authorization'] == 'Bearer t'


def test_repo_issues_filters():
    session = Mock()
    session.get.return_value = _page([{'number': 1}])
    client = GitHubClient('t', Governor(), session=session)
    items = list(client.iter_repo_issues('kubernetes', 'kubernetes', creator='alice', assignee=None))
    assert items == [{'number': 1}]
    params = session.get.call_args.kwargs['params']
    assert params['state'] == 'all'
    assert params['creator'] == 'alice'
    assert 'assignee' not in params

"""
Issue and pull request activity of a member in the target repository.
"""
from ingest.github import GitHubClient
from models import Identity, IssueCounts, IssueReport
from normalize.util import classify_issue

ROLES = ('created', 'assigned', 'mentioned')
_FILTERS = {'created': 'creator', 'assigned': 'assignee', 'mentioned': 'mentioned'}


class IssueMiner:
    def __init__(self, github: GitHubClient, target_org: str, target_repo: str):
        self.github = github
        self.target_org = target_org
        self.target_repo = target_repo

    def _count(self, login: str, role: str, issues: IssueCounts, pulls: IssueCounts):
        items = self.github.iter_repo_issues(self.target_org, self.target_repo, **{_FILTERS[role]: login})
        for item in items:
            is_pr, merged = classify_issue(item)
            counts = pulls if is_pr else issues
            setattr(counts, role, getattr(counts, role) + 1)
            # merges are credited to the author only
            if is_pr and merged and role == 'created':
                pulls.merged += 1

    def mine(self, identity: Identity) -> IssueReport:
        issues, pulls = IssueCounts(), IssueCounts()
        for role in ROLES:
            self._count(identity.login, role, issues, pulls)
        return IssueReport(issues, pulls)

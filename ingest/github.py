"""
GitHub client for the roster and issue data.
Every request is issued through the Governor so the API concurrency cap, cool-down and
retry policy apply uniformly.
"""
from typing import Any, Dict, Iterator, List, Optional, Tuple
from urllib.parse import parse_qs, urlparse

import requests

from storage.retry import Governor


def _next_page(resp) -> int:
    """Page number of the rel="next" link, or 0 when this is the last page."""
    links = getattr(resp, 'links', None) or {}
    url = (links.get('next') or {}).get('url')
    if not url:
        return 0
    try:
        return int(parse_qs(urlparse(url).query).get('page', ['0'])[0])
    except ValueError:
        return 0


class GitHubClient:
    """Minimal GitHub REST client: organization members, user profiles and repository issues."""

    def __init__(self, token: str, governor: Governor, base_url: str = None, per_page: int = 100, timeout: float = 60.0, session=None):
        self.token = token
        self.governor = governor
        self.base_url = (base_url or "https://api.github.com").rstrip('/')
        self.per_page = per_page
        self.timeout = timeout
        self.headers = {
            "Authorization": f"Bearer {self.token}" if self.token else "",
            "Accept": "application/vnd.github+json",
        }
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config, governor: Governor) -> 'GitHubClient':
        gh = config.github
        return cls(gh.token, governor, base_url=gh.api_base_url, per_page=gh.per_page, timeout=gh.timeout)

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None):
        url = f"{self.base_url}{path}"
        return self.governor.call(lambda: self.session.get(url, headers=self.headers, params=params or {}, timeout=self.timeout))

    def _get_page(self, path: str, params: Dict[str, Any], page: int) -> Tuple[List[Dict[str, Any]], int]:
        resp = self._get(path, dict(params, page=page, per_page=self.per_page))
        data = resp.json()
        return (data if isinstance(data, list) else []), _next_page(resp)

    def _paginate(self, path: str, params: Optional[Dict[str, Any]] = None) -> Iterator[Dict[str, Any]]:
        """Yield items page by page, starting at page 1 and following the next-page link."""
        page = 1
        while page > 0:
            self.governor.check()
            items, page = self._get_page(path, params or {}, page)
            for item in items:
                yield item

    def iter_member_logins(self, org: str) -> Iterator[str]:
        """Yield the login of every member of org."""
        for member in self._paginate(f"/orgs/{org}/members"):
            login = member.get('login')
            if login:
                yield login

    def get_user(self, login: str) -> Dict[str, Any]:
        return self._get(f"/users/{login}").json()

    def iter_repo_issues(self, owner: str, repo: str, **filters) -> Iterator[Dict[str, Any]]:
        """Yield every issue and pull request of owner/repo matching filters (creator, assignee, mentioned)."""
        params = {"state": "all"}
        params.update({k: v for k, v in filters.items() if v})
        return self._paginate(f"/repos/{owner}/{repo}/issues", params)

"""
Run configuration: an immutable snapshot built once from defaults, an optional YAML file,
environment variables and CLI overrides, then handed to every component.
"""

import os
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Optional, Tuple

import yaml

AFFILIATIONS_FILE_NAME = 'developers_affiliations.txt'
AFFILIATIONS_URL = 'https://raw.githubusercontent.com/cncf/gitdm/master/' + AFFILIATIONS_FILE_NAME


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class GitHubSettings:
    token: str = ''
    api_base_url: str = 'https://api.github.com'
    member_org: str = 'vmware'
    target_org: str = 'kubernetes'
    target_repo: str = 'kubernetes'
    per_page: int = 100
    # concurrency cap and cool-down applied to every remote API call
    api_max: int = 10
    api_wait: float = 0.1
    retries: int = 3
    retry_wait: float = 5.0
    show_rate_limit: bool = False
    no_fetch_users: bool = False
    no_fetch_issues: bool = False
    timeout: float = 60.0


@dataclass(frozen=True)
class GitSettings:
    disabled: bool = False
    git_dir: str = ''
    max: int = 10
    utc: bool = False


@dataclass(frozen=True)
class DirectorySettings:
    enabled: bool = False
    host: str = ''
    user: str = ''
    password: str = ''
    base_dn: str = ''
    insecure: bool = False


@dataclass(frozen=True)
class AffiliationSettings:
    disabled: bool = False
    no_fetch: bool = False
    url: str = AFFILIATIONS_URL


@dataclass(frozen=True)
class RunConfig:
    logins: Tuple[str, ...] = ()
    resume: bool = False
    output_dir: str = 'data'
    cache_path: str = ''
    workers: int = 32
    html: bool = False
    verbose: bool = False
    github: GitHubSettings = field(default_factory=GitHubSettings)
    git: GitSettings = field(default_factory=GitSettings)
    ldap: DirectorySettings = field(default_factory=DirectorySettings)
    affiliations: AffiliationSettings = field(default_factory=AffiliationSettings)

    @property
    def resolved_cache_path(self) -> str:
        return self.cache_path or os.path.join(self.output_dir, 'cache.db')

    @property
    def named_mode(self) -> bool:
        return bool(self.logins) and not self.resume

    @property
    def resume_anchor(self) -> Optional[str]:
        return self.logins[0] if self.resume and self.logins else None

    @property
    def needs_token(self) -> bool:
        return not (self.github.no_fetch_users and self.github.no_fetch_issues)

    def validate(self):
        """Raise ConfigError for flag combinations the pipeline cannot run with."""
        if self.resume and len(self.logins) != 1:
            raise ConfigError('resume must be used with a single login')
        if self.needs_token and not self.github.token:
            raise ConfigError('a GitHub token is required (env GITHUB_API_KEY or --github-token)')
        if not self.git.disabled:
            if not self.git.git_dir:
                raise ConfigError('a git directory is required unless git mining is disabled (--target-git-dir or --no-git)')
            if not os.path.isdir(self.git.git_dir):
                raise ConfigError(f'git directory does not exist: {self.git.git_dir}')
        if self.ldap.enabled and not self.ldap.host:
            raise ConfigError('directory lookups require an LDAP host')
        if self.github.api_max < 1 or self.git.max < 1 or self.workers < 1:
            raise ConfigError('concurrency limits must be at least 1')


def _unique(values) -> Tuple[str, ...]:
    seen = set()
    out = []
    for v in values or []:
        if v and v not in seen:
            seen.add(v)
            out.append(v)
    return tuple(out)


def load_config_file(path: str) -> Dict[str, Any]:
    """Read a YAML config file. An empty file yields an empty mapping."""
    with open(path, 'r', encoding='utf-8') as f:
        doc = yaml.safe_load(f) or {}
    if not isinstance(doc, dict):
        raise ConfigError(f'config file {path} must contain a mapping')
    return doc


def _apply(settings, values: Optional[Dict[str, Any]]):
    """Return a copy of a settings dataclass with the known, non-None keys of values applied."""
    if not values:
        return settings
    known = {f.name for f in fields(settings)}
    unknown = set(values) - known
    if unknown:
        raise ConfigError(f'unknown {type(settings).__name__} keys: {", ".join(sorted(unknown))}')
    return replace(settings, **{k: v for k, v in values.items() if v is not None})


def _env_overrides(env) -> Dict[str, Dict[str, Any]]:
    out: Dict[str, Dict[str, Any]] = {'github': {}, 'ldap': {}, 'run': {}}
    token = env.get('GITHUB_API_KEY') or env.get('GITHUB_TOKEN')
    if token:
        out['github']['token'] = token
    if env.get('LDAP_USER'):
        out['ldap']['user'] = env.get('LDAP_USER')
    if env.get('LDAP_PASS'):
        out['ldap']['password'] = env.get('LDAP_PASS')
    if str(env.get('DEBUG', '')).lower() in ('1', 'true', 'yes', 'on'):
        out['run']['verbose'] = True
    return out


def build_config(
    file_data: Optional[Dict[str, Any]] = None,
    overrides: Optional[Dict[str, Dict[str, Any]]] = None,
    env=None,
) -> RunConfig:
    """Build the RunConfig snapshot.

    Precedence, lowest first: dataclass defaults, file_data (YAML layout with optional
    github/git/ldap/affiliations sections), environment, overrides (CLI). overrides uses
    the same section names plus 'run' for top-level keys; None values are ignored.
    """
    file_data = dict(file_data or {})
    overrides = overrides or {}
    env = os.environ if env is None else env
    env_data = _env_overrides(env)

    sections = ('github', 'git', 'ldap', 'affiliations')
    file_sections = {name: file_data.pop(name, None) for name in sections}

    cfg = _apply(RunConfig(), file_data)
    cfg = _apply(cfg, env_data['run'])
    cfg = _apply(cfg, overrides.get('run'))

    nested = {}
    for name in sections:
        settings = getattr(cfg, name)
        settings = _apply(settings, file_sections.get(name))
        settings = _apply(settings, env_data.get(name))
        settings = _apply(settings, overrides.get(name))
        nested[name] = settings

    return replace(cfg, logins=_unique(cfg.logins), **nested)


__all__ = [
    'AFFILIATIONS_URL',
    'AffiliationSettings',
    'ConfigError',
    'DirectorySettings',
    'GitHubSettings',
    'GitSettings',
    'RunConfig',
    'build_config',
    'load_config_file',
]

"""
CLI entry point for member_enrich. Wires the pipeline: roster -> merge -> mine -> persist -> report
"""

import argparse
import json
import sys

from config import ConfigError, RunConfig, build_config, load_config_file
from enricher import Enricher
from logging_config import configure_logging
from report.renderer import ReportSink
from storage.cache import MemberCache


def _print_json(obj):
    print(json.dumps(obj, indent=2, default=str))


def _print_cache_stats(cache: MemberCache):
    _print_json(cache.stats())


def _print_cache_list(cache: MemberCache):
    _print_json(cache.list_members(limit=1000))


def _print_cache_get(cache: MemberCache, login: str):
    entry = cache.describe(login)
    if entry is None:
        print(f"Login not cached: {login}")
    else:
        _print_json(entry)


def _confirm(prompt: str) -> bool:
    return input(prompt).strip().lower() in ("y", "yes")


def _remove_cache_login(cache: MemberCache, login: str, force: bool):
    if not force and not _confirm(f"Are you sure you want to remove '{login}' from {cache.path}? [y/N]: "):
        print("Aborted cache removal.")
        return
    removed = cache.delete_member(login)
    if removed:
        print(f"Removed {removed} member record(s) for: {login}")
    else:
        print(f"Login not cached: {login}")


def _clear_cache(cache: MemberCache, force: bool):
    if not force and not _confirm(f"Are you sure you want to clear the cache at {cache.path}? This cannot be undone. [y/N]: "):
        print("Aborted cache clear.")
        return
    cache.clear()
    print(f"Cleared cache at {cache.path}")


def _wants_cache_action(args) -> bool:
    return bool(args.cache_info or args.cache_clear or args.cache_list or args.cache_get or args.cache_remove)


def _handle_cache_actions(args, cache_path: str) -> bool:
    """Run the first requested cache inspection/management action.
    Returns True when an action was performed and the CLI should exit.
    """
    if not _wants_cache_action(args):
        return False
    with MemberCache(cache_path) as cache:
        flag_actions = [
            (args.cache_info, lambda: _print_cache_stats(cache)),
            (args.cache_clear, lambda: _clear_cache(cache, args.force)),
            (args.cache_list, lambda: _print_cache_list(cache)),
            (bool(args.cache_get), lambda: _print_cache_get(cache, args.cache_get)),
            (bool(args.cache_remove), lambda: _remove_cache_login(cache, args.cache_remove, args.force)),
        ]
        for enabled, handler in flag_actions:
            if enabled:
                handler()
                break
    return True


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Enrich an organization's member roster with e-mails, employment and commit history")
    parser.add_argument("logins", nargs="*", help="Only process these logins (or, with --resume, the login to resume from)")
    parser.add_argument("--config", type=str, default="", help="YAML config file")
    parser.add_argument("--output", type=str, default=None, help="Output directory for reports, cache and the affiliations copy (default: data)")
    parser.add_argument("--cache", type=str, default=None, help="Path to SQLite cache file (default: <output>/cache.db)")
    parser.add_argument("--resume", action="store_true", default=None, help="Process roster logins sorting at or after the given login")
    parser.add_argument("--workers", type=int, default=None, help="Members enriched concurrently (default: 32)")
    parser.add_argument("--html", action="store_true", default=None, help="Also write report.html")
    parser.add_argument("-v", "--verbose", action="store_true", default=None, help="Debug logging")
    parser.add_argument("--log-file", type=str, default="", help="Also write the log to this file")

    gh = parser.add_argument_group("github")
    gh.add_argument("--github-token", type=str, default=None, help="GitHub token (env GITHUB_API_KEY or GITHUB_TOKEN)")
    gh.add_argument("--member-org", type=str, default=None, help="Organization whose members are enriched (default: vmware)")
    gh.add_argument("--target-org", type=str, default=None, help="Owner of the repository mined for issues (default: kubernetes)")
    gh.add_argument("--target-repo", type=str, default=None, help="Repository mined for issues (default: kubernetes)")
    gh.add_argument("--no-fetch-users", action="store_true", default=None, help="Read members from the cache instead of GitHub")
    gh.add_argument("--no-fetch-issues", action="store_true", default=None, help="Reuse cached issue reports instead of querying GitHub")
    gh.add_argument("--api-max", type=int, default=None, help="Concurrent GitHub API calls (default: 10)")
    gh.add_argument("--api-wait", type=float, default=None, help="Seconds an API slot stays taken after a call (default: 0.1)")
    gh.add_argument("--api-retries", type=int, default=None, help="Retries per API call (default: 3)")
    gh.add_argument("--api-retry-wait", type=float, default=None, help="Seconds between retries of a failed call (default: 5)")
    gh.add_argument("--show-rate-limit", action="store_true", default=None, help="Log rate-limit headers after every call")

    git = parser.add_argument_group("git")
    git.add_argument("--target-git-dir", type=str, default=None, help="The .git directory of the repository to mine")
    git.add_argument("--no-git", action="store_true", default=None, help="Skip commit mining")
    git.add_argument("--git-max", type=int, default=None, help="Concurrent git processes (default: 10)")
    git.add_argument("--utc", action="store_true", default=None, help="Report commit dates in UTC instead of local time")

    ldap = parser.add_argument_group("ldap")
    ldap.add_argument("--ldap", action="store_true", default=None, help="Look members up in the directory (env LDAP_USER, LDAP_PASS)")
    ldap.add_argument("--ldap-host", type=str, default=None, help="Directory host[:port]")
    ldap.add_argument("--ldap-base-dn", type=str, default=None, help="Search base DN")
    ldap.add_argument("--ldap-insecure", action="store_true", default=None, help="Skip TLS certificate verification")

    aff = parser.add_argument_group("affiliations")
    aff.add_argument("--no-affiliations", action="store_true", default=None, help="Do not merge developer affiliations")
    aff.add_argument("--no-fetch-affiliations", action="store_true", default=None, help="Reuse the local affiliations copy")
    aff.add_argument("--affiliations-url", type=str, default=None, help="Affiliations file URL")

    parser.add_argument("--cache-info", action="store_true", help="Show cache statistics")
    parser.add_argument("--cache-clear", action="store_true", help="Clear the member cache")
    parser.add_argument("--cache-list", action="store_true", help="List cached logins, most recently written first")
    parser.add_argument("--cache-get", type=str, default="", help="Show everything cached for a login")
    parser.add_argument("--cache-remove", type=str, default="", help="Remove a login from the cache")
    parser.add_argument("--force", action="store_true", help="Force actions without confirmation (use with --cache-clear or --cache-remove)")
    return parser


def _overrides(args):
    """CLI values, grouped like the config file. Unset flags stay None and do not override."""
    return {
        'run': {
            'logins': tuple(args.logins) or None,
            'resume': args.resume,
            'output_dir': args.output,
            'cache_path': args.cache,
            'workers': args.workers,
            'html': args.html,
            'verbose': args.verbose,
        },
        'github': {
            'token': args.github_token,
            'member_org': args.member_org,
            'target_org': args.target_org,
            'target_repo': args.target_repo,
            'no_fetch_users': args.no_fetch_users,
            'no_fetch_issues': args.no_fetch_issues,
            'api_max': args.api_max,
            'api_wait': args.api_wait,
            'retries': args.api_retries,
            'retry_wait': args.api_retry_wait,
            'show_rate_limit': args.show_rate_limit,
        },
        'git': {
            'git_dir': args.target_git_dir,
            'disabled': args.no_git,
            'max': args.git_max,
            'utc': args.utc,
        },
        'ldap': {
            'enabled': args.ldap,
            'host': args.ldap_host,
            'base_dn': args.ldap_base_dn,
            'insecure': args.ldap_insecure,
        },
        'affiliations': {
            'disabled': args.no_affiliations,
            'no_fetch': args.no_fetch_affiliations,
            'url': args.affiliations_url,
        },
    }


def run_pipeline(config: RunConfig) -> ReportSink:
    """Enrich the roster described by config and write the reports."""
    scope = f"{config.github.member_org} in {config.github.target_org}/{config.github.target_repo}"
    with MemberCache(config.resolved_cache_path) as cache:
        enricher = Enricher.from_config(config, cache)
        try:
            with ReportSink(config.output_dir, html=config.html, scope=scope) as sink:
                enricher.run(sink)
        finally:
            enricher.close()
    return sink


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        file_data = load_config_file(args.config) if args.config else None
        config = build_config(file_data, _overrides(args))
    except (OSError, ConfigError) as ex:
        parser.error(str(ex))

    configure_logging(config.verbose, args.log_file or None)

    if _handle_cache_actions(args, config.resolved_cache_path):
        return 0

    try:
        config.validate()
    except ConfigError as ex:
        parser.error(str(ex))

    try:
        sink = run_pipeline(config)
    except KeyboardInterrupt:
        print("interrupted", file=sys.stderr)
        return 130
    except Exception as ex:
        print(f"error: {ex}", file=sys.stderr)
        return 1

    for path in sink.paths:
        print(f"Wrote report to {path}")
    print(f"Reported {len(sink.entries)} member(s)")
    return 0


if __name__ == "__main__":
    sys.exit(main())

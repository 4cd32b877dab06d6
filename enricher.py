"""
Enrichment pipeline.

Every admitted login becomes one task on a thread pool. A task resolves the member's base
record and merges affiliation and directory e-mails. Commit mining, issue mining and
persistence then run in parallel on a second pool, and the ReportEntry is emitted only
once all of them have finished.

The first error raised by any task (or by the roster enumeration) sets the shared cancel
event: queued tasks stop at their next check, in-flight work is discarded, and run()
re-raises that error.
"""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Optional

from config import RunConfig
from correlate.commits import CommitMiner, build_report
from correlate.identity import merge_affiliations, merge_directory, seed_known_emails
from correlate.issues import IssueMiner
from ingest.affiliations import AffiliationTable, load_affiliations
from ingest.directory import DirectoryClient
from ingest.git import GitRepository
from ingest.github import GitHubClient
from ingest.roster import MemberSource, admitted_logins, select_source
from models import ChangesetReport, Identity, IssueReport, ReportEntry
from storage.cache import MemberCache
from storage.retry import Cancelled, Governor

logger = logging.getLogger(__name__)

# put_member, commit report and issue report
SIDE_JOBS = 3


class Enricher:
    def __init__(
        self,
        config: RunConfig,
        source: MemberSource,
        cache: MemberCache,
        governor: Governor,
        affiliations: Optional[AffiliationTable] = None,
        directory: Optional[DirectoryClient] = None,
        miner: Optional[CommitMiner] = None,
        issues: Optional[IssueMiner] = None,
    ):
        self.config = config
        self.source = source
        self.cache = cache
        self.governor = governor
        self.affiliations = affiliations if affiliations is not None else AffiliationTable()
        self.directory = directory
        self.miner = miner
        self.issues = issues
        self._error: Optional[BaseException] = None
        self._error_lock = threading.Lock()

    @classmethod
    def from_config(cls, config: RunConfig, cache: MemberCache, cancel: Optional[threading.Event] = None) -> 'Enricher':
        """Wire the collaborators the configuration asks for."""
        governor = Governor.from_config(config, cancel)
        github = GitHubClient.from_config(config, governor) if config.needs_token else None
        affiliations = load_affiliations(config.affiliations, config.output_dir, governor)
        directory = DirectoryClient.connect(config.ldap) if config.ldap.enabled else None
        miner = None if config.git.disabled else CommitMiner(GitRepository.from_config(config, governor))
        issues = None
        if not config.github.no_fetch_issues:
            issues = IssueMiner(github, config.github.target_org, config.github.target_repo)
        return cls(
            config,
            select_source(config, github, cache),
            cache,
            governor,
            affiliations=affiliations,
            directory=directory,
            miner=miner,
            issues=issues,
        )

    @property
    def cancel(self) -> threading.Event:
        return self.governor.cancel

    def close(self):
        if self.directory is not None:
            self.directory.close()

    def enrich(self, login: str) -> Identity:
        """Resolve one member's base record and merge its affiliation and directory e-mails."""
        identity = self.source.load(login)
        self.governor.check()
        seed_known_emails(identity)
        merge_affiliations(identity, self.affiliations, self.config.github.member_org)
        self.governor.check()
        merge_directory(identity, self.directory)
        return identity

    def _commit_report(self, identity: Identity) -> Optional[ChangesetReport]:
        if self.miner is None:
            return self.cache.get_commit_report(identity.login)
        self.governor.check()
        changesets = self.miner.mine(identity)
        report = build_report(changesets)
        self.cache.put_changesets(identity.login, changesets, report)
        return report

    def _issue_report(self, identity: Identity) -> IssueReport:
        if self.issues is None:
            return self.cache.get_issue_report(identity.login) or IssueReport()
        report = self.issues.mine(identity)
        self.cache.put_issue_report(identity.login, report)
        return report

    def aggregate(self, identity: Identity, side_pool: ThreadPoolExecutor) -> ReportEntry:
        """Mine and persist the identity's reports in parallel; returns once every job is done."""
        persisted = side_pool.submit(self.cache.put_member, identity)
        commits = side_pool.submit(self._commit_report, identity)
        issues = side_pool.submit(self._issue_report, identity)
        wait([persisted, commits, issues])
        persisted.result()
        return ReportEntry(identity, commits.result(), issues.result())

    def _fail(self, error: BaseException):
        with self._error_lock:
            if self._error is None:
                self._error = error
                logger.error("aborting run: %s", error)
        self.cancel.set()

    def _process(self, login: str, sink, side_pool: ThreadPoolExecutor):
        try:
            self.governor.check()
            entry = self.aggregate(self.enrich(login), side_pool)
            # work finished after cancellation is dropped, not reported
            self.governor.check()
            sink.emit(entry)
            logger.info("%s: %d commits, %d e-mails", login, entry.commits, len(entry.emails))
        except Cancelled:
            return
        except Exception as ex:
            self._fail(ex)

    def run(self, sink) -> int:
        """Enrich every admitted login, emitting entries to sink. Returns the number of dispatched logins."""
        dispatched = 0
        workers = self.config.workers
        # the side pool is entered first so it outlives every enrich task that submits to it
        with ThreadPoolExecutor(max_workers=workers * SIDE_JOBS, thread_name_prefix='side') as side_pool, ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix='enrich'
        ) as pool:
            futures = []
            try:
                for login in admitted_logins(self.config, self.source, self.cancel):
                    futures.append(pool.submit(self._process, login, sink, side_pool))
                    dispatched += 1
                wait(futures)
            except Cancelled:
                pass
            except Exception as ex:
                self._fail(ex)
            except BaseException:
                # KeyboardInterrupt: workers must see the cancel before the pools join them
                self.cancel.set()
                raise
        if self._error is not None:
            raise self._error
        return dispatched


__all__ = ['Enricher']

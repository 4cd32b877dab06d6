"""
Commit history mining for one identity.

Each candidate author string (login, primary e-mail, distinctive display name) is
queried in turn; results are folded into a single map keyed by long hash where the
first candidate to report a commit keeps it. Commits outside the identity's
employment windows are dropped before totals are computed.
"""
import logging
from typing import Dict, Iterable, List

from models import Changeset, ChangesetReport, Identity

logger = logging.getLogger(__name__)

MIN_DISTINCTIVE_NAME = 8


def candidate_authors(identity: Identity) -> List[str]:
    candidates = [identity.login]
    if identity.email:
        candidates.append(identity.email)
    # stricter than the affiliation guard: both long enough and a full name
    if len(identity.name) >= MIN_DISTINCTIVE_NAME and ' ' in identity.name:
        candidates.append(identity.name)
    return candidates


def merge_changesets(batches: Iterable[Iterable[Changeset]]) -> List[Changeset]:
    merged: Dict[str, Changeset] = {}
    for batch in batches:
        for changeset in batch:
            merged.setdefault(changeset.long_hash, changeset)
    return list(merged.values())


def filter_employed(identity: Identity, changesets: Iterable[Changeset]) -> List[Changeset]:
    kept = []
    for changeset in changesets:
        if identity.employed_at(changeset.author_date):
            kept.append(changeset)
        else:
            logger.debug("%s: dropping %s dated %s, outside employment", identity.login, changeset.short_hash, changeset.author_date)
    return kept


def build_report(changesets: Iterable[Changeset]) -> ChangesetReport:
    """Totals over changesets; the latest commit by author date supplies the author fields."""
    report = ChangesetReport()
    latest = None
    for changeset in changesets:
        report.commits += 1
        report.additions += changeset.additions
        report.deletions += changeset.deletions
        if latest is None or changeset.author_date > latest.author_date:
            latest = changeset
    if latest is not None:
        report.author_name = latest.author_name
        report.author_email = latest.author_email
        report.latest_commit_sha = latest.long_hash
        report.latest_commit_date = latest.author_date
    return report


class CommitMiner:
    def __init__(self, repo):
        # repo: anything with log_for_author(author) -> List[Changeset], e.g. ingest.git.GitRepository
        self.repo = repo

    def mine(self, identity: Identity) -> List[Changeset]:
        """Attach the identity's retained changesets to it and return them."""
        batches = (self.repo.log_for_author(author) for author in candidate_authors(identity))
        changesets = filter_employed(identity, merge_changesets(batches))
        changesets.sort(key=lambda c: c.author_date, reverse=True)
        identity.changesets = changesets
        logger.debug("%s: %d changesets", identity.login, len(changesets))
        return changesets


__all__ = ['CommitMiner', 'build_report', 'candidate_authors', 'filter_employed', 'merge_changesets']

from .commits import CommitMiner, build_report, candidate_authors
from .identity import merge_affiliations, merge_directory, seed_known_emails
from .issues import IssueMiner

__all__ = [
    'CommitMiner',
    'IssueMiner',
    'build_report',
    'candidate_authors',
    'merge_affiliations',
    'merge_directory',
    'seed_known_emails',
]

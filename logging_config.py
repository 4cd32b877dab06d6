"""
Logging setup shared by the CLI entry point.
"""

import logging
from pathlib import Path
from typing import List, Optional

DEFAULT_LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def configure_logging(verbose: bool = False, log_file: Optional[str] = None) -> None:
    """Log to stderr, and to log_file as well when one is given."""
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format=DEFAULT_LOG_FORMAT, handlers=handlers, force=True)
    # requests/urllib3 connection chatter drowns the pipeline output at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)

"""
Remote call governor: bounded concurrency pools, retry/backoff and rate-limit telemetry.
Every GitHub API call and every git subprocess goes through a Governor so the configured
concurrency caps are never exceeded.
"""

import email.utils
import logging
import threading
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple

import requests

logger = logging.getLogger(__name__)

MAX_RATE_LIMIT_WAIT = 300.0
_POLL_SECONDS = 0.1


class Cancelled(RuntimeError):
    """Raised at a suspension point once the run has been cancelled."""


class RemoteError(RuntimeError):
    """A remote call that failed without being retryable, or that ran out of retries."""

    def __init__(self, message: str, status: int = 0, url: str = '', body: Any = None):
        super().__init__(message)
        self.status = status
        self.url = url
        self.body = body


def _parse_retry_after(raw_ra) -> Optional[float]:
    if not raw_ra:
        return None
    try:
        return max(0.0, float(raw_ra))
    except (TypeError, ValueError):
        try:
            dt = email.utils.parsedate_to_datetime(raw_ra)
        except (TypeError, ValueError):
            return None
        if dt is None:
            return None
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return max(0.0, (dt - datetime.now(timezone.utc)).total_seconds())


def _safe_int_from_headers(headers: Dict[str, Any], key: str) -> Optional[int]:
    try:
        val = headers.get(key)
        return int(val) if val is not None else None
    except (TypeError, ValueError):
        return None


def _safe_float_from_headers(headers: Dict[str, Any], key: str) -> Optional[float]:
    try:
        val = headers.get(key)
        return float(val) if val is not None else None
    except (TypeError, ValueError):
        return None


def _parse_rate_headers(resp) -> Tuple[Optional[float], Optional[int], Optional[int], Optional[float]]:
    """Return (retry_after, limit, remaining, reset_epoch) from a response's headers."""
    headers = getattr(resp, 'headers', None) or {}
    return (
        _parse_retry_after(headers.get('Retry-After')),
        _safe_int_from_headers(headers, 'X-RateLimit-Limit'),
        _safe_int_from_headers(headers, 'X-RateLimit-Remaining'),
        _safe_float_from_headers(headers, 'X-RateLimit-Reset'),
    )


def format_rate_reset(limit: Optional[int], remaining: Optional[int], reset: Optional[float], now: Optional[float] = None) -> str:
    """Format rate-limit headers like "[rate lim=5000, rem=4999, reset in 59m59s]"."""
    now = time.time() if now is None else now
    delta = (reset or now) - now
    negative = delta < 0
    total = int(0.5 + abs(delta))
    minutes, seconds = divmod(total, 60)
    span = f"{minutes}m{seconds:02d}s" if minutes > 0 else f"{seconds}s"
    if negative:
        return f"[rate lim={limit}, rem={remaining}, limit was reset {span} ago]"
    return f"[rate lim={limit}, rem={remaining}, reset in {span}]"


class SlotPool:
    """Counting semaphore whose acquire observes cancellation and whose release may be delayed."""

    def __init__(self, name: str, size: int, cancel: threading.Event, release_delay: float = 0.0):
        self.name = name
        self.size = int(size)
        self.release_delay = float(release_delay or 0.0)
        self._cancel = cancel
        self._sem = threading.BoundedSemaphore(self.size)

    def acquire(self):
        while True:
            if self._cancel.is_set():
                raise Cancelled(f"cancelled while waiting for a {self.name} slot")
            if self._sem.acquire(timeout=_POLL_SECONDS):
                return

    def release(self):
        if self.release_delay > 0:
            timer = threading.Timer(self.release_delay, self._sem.release)
            timer.daemon = True
            timer.start()
        else:
            self._sem.release()

    @contextmanager
    def slot(self):
        self.acquire()
        try:
            yield
        finally:
            self.release()


class Governor:
    """Gateway for remote API calls and git subprocesses.

    Two independent pools: ``api`` (released after a cool-down) and ``git`` (released at once).
    ``call`` runs a request-producing callable inside an API slot and applies the retry policy:
    a Retry-After header is honoured, a 5xx answer waits ``retry_wait``, an exhausted rate limit
    waits for its reset; anything else fails at once. After ``retries`` retries the last error
    is raised.
    """

    def __init__(
        self,
        api_max: int = 10,
        api_wait: float = 0.0,
        git_max: int = 10,
        retries: int = 3,
        retry_wait: float = 5.0,
        show_rate_limit: bool = False,
        cancel: Optional[threading.Event] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.cancel = cancel or threading.Event()
        self.api = SlotPool('api', api_max, self.cancel, api_wait)
        self.git = SlotPool('git', git_max, self.cancel)
        self.retries = int(retries)
        self.retry_wait = float(retry_wait)
        self.show_rate_limit = show_rate_limit
        self._sleep = sleep or self._interruptible_sleep

    @classmethod
    def from_config(cls, config, cancel: Optional[threading.Event] = None) -> 'Governor':
        gh = config.github
        return cls(
            api_max=gh.api_max,
            api_wait=gh.api_wait,
            git_max=config.git.max,
            retries=gh.retries,
            retry_wait=gh.retry_wait,
            show_rate_limit=gh.show_rate_limit,
            cancel=cancel,
        )

    def _interruptible_sleep(self, seconds: float):
        if self.cancel.wait(seconds):
            raise Cancelled("cancelled while backing off")

    def check(self):
        """Raise Cancelled if the run has been cancelled."""
        if self.cancel.is_set():
            raise Cancelled("run cancelled")

    def acquire(self):
        self.api.acquire()

    def release(self):
        self.api.release()

    def _print_rate_limit(self, resp):
        if not self.show_rate_limit:
            return
        _, limit, remaining, reset = _parse_rate_headers(resp)
        if limit is None and remaining is None:
            return
        logger.info(format_rate_reset(limit, remaining, reset))

    def _retry_wait_for(self, resp) -> Optional[float]:
        status = getattr(resp, 'status_code', 0)
        retry_after, _, remaining, reset = _parse_rate_headers(resp)
        if retry_after is not None:
            return retry_after
        if 500 <= status <= 599:
            return self.retry_wait
        if status in (403, 429) and remaining is not None and remaining <= 0 and reset:
            return min(max(0.0, reset - time.time()), MAX_RATE_LIMIT_WAIT)
        return None

    def _attempt(self, op: Callable[[], Any]):
        """Run op once. Returns ('success', response) or ('retry'|'fail', (wait, error))."""
        try:
            resp = op()
        except (requests.ConnectionError, requests.Timeout) as ex:
            return 'retry', (self.retry_wait, RemoteError(str(ex)))

        self._print_rate_limit(resp)
        status = getattr(resp, 'status_code', 0)
        if status < 400:
            return 'success', resp

        url = getattr(resp, 'url', '') or ''
        text = getattr(resp, 'text', '') or ''
        error = RemoteError(f"request {url} failed: {status} {text[:200]}", status=status, url=url, body=text)
        wait = self._retry_wait_for(resp)
        if wait is None:
            return 'fail', (None, error)
        return 'retry', (wait, error)

    def with_retry(self, op: Callable[[], Any], max_retries: Optional[int] = None):
        limit = self.retries if max_retries is None else int(max_retries)
        retried = 0
        while True:
            self.check()
            outcome, payload = self._attempt(op)
            if outcome == 'success':
                return payload
            wait, error = payload
            if outcome == 'fail' or retried >= limit:
                raise error
            retried += 1
            logger.warning("retrying in %.1fs (attempt %d/%d): %s", wait, retried, limit, error)
            self._sleep(wait)

    def _in_api_slot(self, op: Callable[[], Any]):
        with self.api.slot():
            return op()

    def call(self, op: Callable[[], Any], max_retries: Optional[int] = None):
        """Run op inside an API slot with the retry policy. Each attempt takes its own slot."""
        return self.with_retry(lambda: self._in_api_slot(op), max_retries)


__all__ = ["Cancelled", "Governor", "RemoteError", "SlotPool", "format_rate_reset"]

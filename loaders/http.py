"""
Shared HTTP plumbing for the loaders.

Only connection-level failures are retried; an HTTP error status is an
answer from the server and is returned to the caller as-is.
"""

import requests
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from core.settings import MapSettings

USER_AGENT = "ParcelMapEngine/1.0"

RETRYABLE_ERRORS = (requests.ConnectionError, requests.Timeout)


def make_session() -> requests.Session:
    session = requests.Session()
    session.headers.update({"User-Agent": USER_AGENT})
    return session


def make_retrying(settings: MapSettings) -> Retrying:
    """Retry policy for a single request, built from settings."""
    return Retrying(
        stop=stop_after_attempt(max(1, settings.fetch_attempts)),
        wait=wait_exponential(
            multiplier=settings.retry_min_wait_seconds,
            min=settings.retry_min_wait_seconds,
            max=settings.retry_max_wait_seconds,
        ),
        retry=retry_if_exception_type(RETRYABLE_ERRORS),
        reraise=True,
    )

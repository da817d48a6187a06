"""Bounded retry for outbound provider calls.

Connection errors, timeouts and 5xx responses are retried with a fixed
backoff; any other response (including 4xx) is returned on the first try.
The caller decides what a non-2xx response means.
"""
from __future__ import annotations
import logging
import time
from typing import Callable, Optional

import requests

logger = logging.getLogger(__name__)

TRANSIENT_EXCEPTIONS = (requests.ConnectionError, requests.Timeout)


def send_with_retry(
    send: Callable[[], requests.Response],
    *,
    retries: int = 2,
    backoff_seconds: float = 0.2,
    label: str = "request",
    sleep: Optional[Callable[[float], None]] = None,
) -> requests.Response:
    sleep = sleep or time.sleep
    attempt = 0
    while True:
        try:
            response = send()
        except TRANSIENT_EXCEPTIONS as exc:
            if attempt >= retries:
                raise
            logger.warning(
                "%s failed (attempt %d/%d): %s, retrying in %.1fs",
                label, attempt + 1, retries + 1, exc, backoff_seconds,
            )
        else:
            if response.status_code < 500 or attempt >= retries:
                return response
            logger.warning(
                "%s returned %d (attempt %d/%d), retrying in %.1fs",
                label, response.status_code, attempt + 1, retries + 1, backoff_seconds,
            )
        attempt += 1
        sleep(backoff_seconds)

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

import requests

logger = logging.getLogger(__name__)

DEFAULT_RETRIES = 3
DEFAULT_BASE_DELAY = 1.0
RATE_LIMITED_STATUS = 429


class ExhaustedRetries(RuntimeError):
    def __init__(self, message: str = "API request failed after multiple retries.") -> None:
        super().__init__(message)
        self.message = message


async def fetch_with_backoff(
    send: Callable[[], Awaitable[requests.Response]],
    *,
    retries: int = DEFAULT_RETRIES,
    base_delay: float = DEFAULT_BASE_DELAY,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
) -> requests.Response:
    """Call ``send`` until it returns something other than HTTP 429.

    Waits ``base_delay * 2**attempt`` seconds after each rate-limited or
    failed attempt except the last. Transport errors are retried unless they
    happen on the final attempt, in which case they are re-raised.
    """
    for attempt in range(retries):
        last_attempt = attempt == retries - 1
        try:
            response = await send()
        except requests.RequestException as exc:
            if last_attempt:
                raise
            logger.warning(
                "Request attempt %d/%d failed: %s", attempt + 1, retries, exc
            )
        else:
            if response.status_code != RATE_LIMITED_STATUS:
                return response
            logger.warning("Request attempt %d/%d rate limited", attempt + 1, retries)
        if not last_attempt:
            delay = base_delay * (2**attempt)
            logger.info("Retrying in %.1fs", delay)
            await sleep(delay)
    raise ExhaustedRetries()


__all__ = [
    "DEFAULT_BASE_DELAY",
    "DEFAULT_RETRIES",
    "ExhaustedRetries",
    "fetch_with_backoff",
]

"""Classified retry with exponential backoff for remote generation calls."""
from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, TypeVar

from google.genai import errors as genai_errors

from .config import MAX_RETRIES, RETRY_BASE_DELAY_SEC, RETRY_FACTOR
from .errors import MalformedResponse, ServiceError, StorybookError

log = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_STATUS = frozenset({429, 503})
TRANSIENT_MARKERS = (
    "resource_exhausted",
    "unavailable",
    "rate limit",
    "rate-limit",
    "too many requests",
    "overloaded",
)
# status codes only as whole numbers, never inside ids or byte counts
_TRANSIENT_CODE = re.compile(r"\b(?:429|503)\b")


def is_transient(exc: BaseException) -> bool:
    """Return True if *exc* looks like a rate-limit or service-unavailable error."""
    if isinstance(exc, MalformedResponse):
        return True
    if isinstance(exc, StorybookError):
        return False
    if isinstance(exc, ServiceError):
        return exc.status in TRANSIENT_STATUS
    if isinstance(exc, genai_errors.APIError):
        return exc.code in TRANSIENT_STATUS
    message = str(exc).lower()
    if any(marker in message for marker in TRANSIENT_MARKERS):
        return True
    return bool(_TRANSIENT_CODE.search(message))


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = MAX_RETRIES
    base_delay: float = RETRY_BASE_DELAY_SEC
    factor: float = RETRY_FACTOR
    retry_if: Callable[[BaseException], bool] = field(default=is_transient)

    def delay(self, retry_number: int) -> float:
        """Delay before retry *retry_number* (0-based)."""
        return self.base_delay * (self.factor ** retry_number)


DEFAULT_POLICY = RetryPolicy()


async def with_retry(
    fn: Callable[..., Awaitable[T]],
    *args: Any,
    policy: RetryPolicy = DEFAULT_POLICY,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    label: str = "call",
    **kwargs: Any,
) -> T:
    """Await ``fn(*args, **kwargs)``, retrying transient failures.

    Non-transient errors and the last transient error are re-raised as is.
    """
    retries = 0
    while True:
        try:
            return await fn(*args, **kwargs)
        except Exception as e:
            if retries >= policy.max_retries or not policy.retry_if(e):
                raise
            delay = policy.delay(retries)
            retries += 1
            log.warning(
                "%s failed with transient error (retry %d/%d in %.1fs): %s",
                label, retries, policy.max_retries, delay, e,
            )
            await sleep(delay)

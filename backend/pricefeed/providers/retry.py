from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TypeVar

from pricefeed.providers.errors import ProviderError, RateLimited
from pricefeed.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class RetryExecutor:
    """Run one fallible provider attempt with bounded exponential backoff."""

    def __init__(
        self,
        *,
        max_attempts: int = 3,
        initial_delay: float = 1.0,
        max_retry_after: float = 30.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.max_retry_after = max_retry_after
        self._sleep = sleep

    async def execute(
        self,
        fn: Callable[[], Awaitable[T]],
        max_attempts: int | None = None,
        initial_delay: float | None = None,
    ) -> T:
        """Call ``fn`` until it succeeds or ``max_attempts`` attempts have failed.

        The delay after failed attempt ``n`` (0-based) is
        ``initial_delay * 2 ** n``. Non-retryable provider errors propagate
        immediately; the last error propagates once every attempt has failed.
        A ``Retry-After`` hint can lengthen a wait, up to ``max_retry_after``.
        """

        attempts = max(1, max_attempts if max_attempts is not None else self.max_attempts)
        delay = initial_delay if initial_delay is not None else self.initial_delay

        for attempt in range(attempts):
            try:
                return await fn()
            except ProviderError as exc:
                if not exc.retryable or attempt + 1 >= attempts:
                    raise
                wait = delay * (2**attempt)
                if isinstance(exc, RateLimited) and exc.retry_after:
                    wait = max(wait, min(exc.retry_after, self.max_retry_after))
                logger.debug(
                    "Attempt %d/%d failed (%s); retrying in %.2fs", attempt + 1, attempts, exc, wait
                )
                await self._sleep(wait)
        raise AssertionError("unreachable")

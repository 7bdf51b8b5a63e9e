"""Bounded retry with linear backoff for transient AI failures."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from .ai.errors import AnalysisError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 2.0  # seconds; attempt n waits base_delay * n

    def delay_for(self, attempt: int) -> float:
        return self.base_delay * attempt


async def with_retry(
    call: Callable[[], Awaitable[T]], policy: RetryPolicy | None = None
) -> T:
    """Await ``call()``, retrying rate-limit and network failures.

    The delay grows linearly with the attempt number. Other failures are
    raised immediately.

    Raises:
        AnalysisError: The first non-retryable error, or the last retryable
            one once ``max_attempts`` is exhausted.
    """
    policy = policy or RetryPolicy()
    attempt = 1
    while True:
        try:
            return await call()
        except AnalysisError as e:
            if not e.retryable:
                raise
            if attempt >= policy.max_attempts:
                logger.error(
                    "リトライ上限 (%d回) に達しました: %s", policy.max_attempts, e.message
                )
                raise AnalysisError(
                    e.code,
                    f"{e.message} (リトライ上限 {policy.max_attempts}回に達しました)",
                ) from e
            delay = policy.delay_for(attempt)
            logger.warning(
                "%s: %.1f秒後に再試行します (%d/%d)",
                e.code, delay, attempt + 1, policy.max_attempts,
            )
            await asyncio.sleep(delay)
            attempt += 1

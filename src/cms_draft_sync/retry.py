"""
Retry with exponential backoff for repository reads.

Only idempotent calls are wrapped. Writes surface their first failure so the
caller can report it and keep the local draft intact.

Configuration:
    - Default retries: 3 attempts
    - Default base delay: 0.5 seconds
    - Default multiplier: 2.0x per retry
    - Jitter: Random variance of ±20% added to delay
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from .errors import NetworkError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryConfig:
    """
    Configuration for retry behavior.

    Attributes:
        max_retries: Maximum number of retry attempts
        base_delay: Initial delay in seconds before first retry
        multiplier: Exponential backoff multiplier
        jitter: Whether to add jitter to delays
        jitter_ratio: Random variance ratio for jitter (0.2 = ±20%)
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 0.5,
        multiplier: float = 2.0,
        jitter: bool = True,
        jitter_ratio: float = 0.2,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        if base_delay < 0:
            raise ValueError("base_delay must be non-negative")
        if multiplier < 1.0:
            raise ValueError("multiplier must be >= 1.0")
        if not 0.0 <= jitter_ratio <= 1.0:
            raise ValueError("jitter_ratio must be between 0.0 and 1.0")

        self.max_retries = max_retries
        self.base_delay = base_delay
        self.multiplier = multiplier
        self.jitter = jitter
        self.jitter_ratio = jitter_ratio

    def calculate_delay(self, attempt: int) -> float:
        """Delay before retry ``attempt`` (0-indexed): base * multiplier^attempt, plus jitter."""
        delay = self.base_delay * (self.multiplier**attempt)

        if self.jitter:
            variance = delay * self.jitter_ratio
            delay = delay + random.uniform(-variance, variance)

        return max(0.0, delay)


def is_retryable_error(exception: BaseException) -> bool:
    """
    Determine if an exception represents a transient, retryable error.

    Retryable: ``NetworkError``, which the GitHub client raises for 5xx, rate
    limits, timeouts and transport failures. Everything else (auth, not found,
    conflict, programming errors) is raised immediately.
    """
    return isinstance(exception, NetworkError)


async def call_with_retry(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    config: RetryConfig,
    **kwargs: Any,
) -> T:
    func_name = getattr(func, "__name__", repr(func))

    for attempt in range(config.max_retries + 1):
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            if not is_retryable_error(e):
                logger.debug(f"{func_name}: Non-retryable error on attempt {attempt + 1}: {e}")
                raise

            if attempt >= config.max_retries:
                logger.warning(f"{func_name}: Max retries ({config.max_retries}) exceeded: {e}")
                raise

            delay = config.calculate_delay(attempt)
            logger.info(
                f"{func_name}: Retry attempt {attempt + 1}/{config.max_retries} "
                f"after {delay:.2f}s due to: {e}"
            )
            await asyncio.sleep(delay)

    raise RuntimeError("Retry loop completed without success or exception")


__all__ = [
    "RetryConfig",
    "call_with_retry",
    "is_retryable_error",
]

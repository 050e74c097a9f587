"""Retry with a flat, randomized backoff."""

from __future__ import annotations

import asyncio
import logging
import math
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from repocheckout.errors import ConfigurationError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_MIN_SECONDS = 10
DEFAULT_MAX_SECONDS = 20


@dataclass
class RetryPolicy:
    """How often and how long to wait between attempts."""

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    min_seconds: float = DEFAULT_MIN_SECONDS
    max_seconds: float = DEFAULT_MAX_SECONDS

    def __post_init__(self) -> None:
        self.min_seconds = math.floor(self.min_seconds)
        self.max_seconds = math.floor(self.max_seconds)
        if self.min_seconds > self.max_seconds:
            raise ConfigurationError("min seconds should be less than or equal to max seconds")
        if self.max_attempts < 1:
            raise ConfigurationError("max attempts should be at least 1")

    def sleep_amount(self) -> int:
        """Pick a wait uniformly from [min_seconds, max_seconds]."""
        return random.randint(int(self.min_seconds), int(self.max_seconds))


class RetryExecutor:
    """Runs an async action, retrying failures up to ``max_attempts`` times.

    The wait between attempts is flat; randomization only spreads out
    concurrent clients hitting the same remote. The last attempt runs
    unguarded so its exception reaches the caller untouched.
    """

    def __init__(self, policy: RetryPolicy | None = None) -> None:
        self.policy = policy or RetryPolicy()

    async def execute(self, action: Callable[[], Awaitable[T]]) -> T:
        attempt = 1
        while attempt < self.policy.max_attempts:
            try:
                return await action()
            except Exception as e:
                logger.info(str(e))

            seconds = self.policy.sleep_amount()
            logger.info(f"Waiting {seconds} seconds before trying again")
            await asyncio.sleep(seconds)
            attempt += 1

        return await action()


async def execute(action: Callable[[], Awaitable[T]]) -> T:
    """Run ``action`` with the default retry policy."""
    return await RetryExecutor().execute(action)

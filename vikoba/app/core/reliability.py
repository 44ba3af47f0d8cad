"""
Reliability utilities.

RetryPolicy wraps the single side effect that is retried inside the core:
posting the loan transaction when a request becomes Approved.
"""

import asyncio
import logging
from typing import Any, Callable, Tuple, Type

from vikoba.app.core.exceptions import StoreError

logger = logging.getLogger("vikoba.reliability")


class RetryPolicy:
    """
    Bounded retry with linear backoff.

    Only the exception types in `retry_on` are retried; anything else, and
    the last failure once `attempts` are exhausted, propagates to the caller.
    """

    def __init__(
        self,
        attempts: int = 3,
        backoff_seconds: float = 0.05,
        retry_on: Tuple[Type[BaseException], ...] = (StoreError,),
    ):
        if attempts < 1:
            raise ValueError("attempts must be at least 1")
        self.attempts = attempts
        self.backoff_seconds = backoff_seconds
        self.retry_on = retry_on

    async def call(self, func: Callable, *args, **kwargs) -> Any:
        attempt = 1
        while True:
            try:
                return await func(*args, **kwargs)
            except self.retry_on as exc:
                if attempt >= self.attempts:
                    logger.error("Giving up after %s attempts: %s", attempt, exc)
                    raise
                logger.warning("Attempt %s/%s failed: %s", attempt, self.attempts, exc)
                await asyncio.sleep(self.backoff_seconds * attempt)
                attempt += 1

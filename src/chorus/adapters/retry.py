"""Retry policy for transient adapter failures."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from ..types import AIServiceError, NetworkError, RetryConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _should_retry(exception: BaseException) -> bool:
    """Only transient failures are retried."""
    if isinstance(exception, NetworkError):
        return True
    return isinstance(exception, (ConnectionError, asyncio.TimeoutError))


class RetryPolicy:
    """
    Retries transient failures with exponential backoff and jitter.

    Uses tenacity; only NetworkError and raw connection/timeouts are
    retried, everything else propagates immediately.

    Example:
        policy = RetryPolicy(RetryConfig(max_attempts=3))
        response = await policy.call(lambda: adapter_call(), label="openai/gpt-4o")
    """

    def __init__(self, config: RetryConfig | None = None):
        self.config = config or RetryConfig()

    async def call(self, fn: Callable[[], Awaitable[T]], label: str = "") -> T:
        """Run ``fn`` until it succeeds or the attempts are exhausted."""
        try:
            async for attempt_state in AsyncRetrying(
                stop=stop_after_attempt(self.config.max_attempts),
                wait=wait_exponential_jitter(
                    initial=self.config.initial_delay,
                    max=self.config.max_delay,
                    exp_base=self.config.exponential_base,
                    jitter=self.config.initial_delay if self.config.jitter else 0,
                ),
                retry=retry_if_exception(_should_retry),
                reraise=True,
            ):
                with attempt_state:
                    attempt = attempt_state.retry_state.attempt_number
                    if attempt > 1:
                        logger.info(
                            f"Retry attempt {attempt}/{self.config.max_attempts} for {label}"
                        )
                    return await fn()

        except RetryError as e:
            if e.last_attempt.failed:
                exc = e.last_attempt.exception()
                if exc is not None:
                    raise exc from e
            raise AIServiceError("Retry attempts exhausted") from e

        raise AIServiceError("Retry logic failed unexpectedly")

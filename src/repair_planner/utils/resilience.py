"""Resilience utilities for the repair planner.

This module provides the standard retry policies used for transient failures
when talking to the agent service, the planning service and the document
store. Every component owns its retry budget; the orchestrator never retries.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Tuple, Type, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _log_retry_attempt(retry_state: RetryCallState) -> None:
    """Custom retry logging with the failing operation's name."""
    if retry_state.attempt_number > 1:
        logger.warning(
            f"[Resilience] Retry attempt {retry_state.attempt_number} for "
            f"{retry_state.fn.__name__ if retry_state.fn else 'operation'} after "
            f"{retry_state.seconds_since_start:.1f}s. "
            f"Exception: {retry_state.outcome.exception() if retry_state.outcome else 'Unknown'}"
        )


# Standard retry policy for startup connections (Redis, etc.)
# - Wait 2^x * 1 seconds between retries (2s, 4s, 8s, 16s, 32s)
# - Stop after 5 attempts (total ~62s wait time)
# - Re-raise the exception if all retries fail
service_startup_retry = retry(
    stop=stop_after_attempt(5),
    wait=wait_exponential(multiplier=1, min=2, max=32),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff settings for one kind of remote call.

    Attributes:
        max_attempts: Total attempts including the first one
        min_wait: Minimum wait between attempts (seconds)
        max_wait: Maximum wait between attempts (seconds)
        multiplier: Exponential backoff multiplier
    """

    max_attempts: int = 3
    min_wait: float = 0.5
    max_wait: float = 8.0
    multiplier: float = 1.0

    @classmethod
    def no_wait(cls, max_attempts: int = 3) -> "RetryPolicy":
        """Policy without sleeping between attempts (tests, local mode)."""
        return cls(max_attempts=max_attempts, min_wait=0, max_wait=0, multiplier=0)

    def async_retrying(
        self, retry_on: Tuple[Type[BaseException], ...]
    ) -> AsyncRetrying:
        """Build an AsyncRetrying loop retrying only the given exception types.

        Example:
            ```python
            async for attempt in policy.async_retrying((DocumentThrottledError,)):
                with attempt:
                    await store.create_item(...)
            ```
        """
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(
                multiplier=self.multiplier, min=self.min_wait, max=self.max_wait
            ),
            retry=retry_if_exception_type(retry_on),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )


def create_custom_retry(
    max_attempts: int = 5,
    min_wait: int = 2,
    max_wait: int = 32,
    multiplier: int = 1,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Create a custom retry decorator with specific parameters.

    Args:
        max_attempts: Maximum number of retry attempts
        min_wait: Minimum wait time between retries (seconds)
        max_wait: Maximum wait time between retries (seconds)
        multiplier: Exponential backoff multiplier
        retry_on: Exception types that trigger a retry

    Returns:
        A retry decorator configured with the specified parameters

    Example:
        ```python
        agent_retry = create_custom_retry(
            max_attempts=4, min_wait=1, max_wait=10,
            retry_on=(AgentServiceUnavailableError,),
        )

        @agent_retry
        async def fetch_definition():
            ...
        ```
    """
    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=multiplier, min=min_wait, max=max_wait),
        retry=retry_if_exception_type(retry_on),
        before_sleep=_log_retry_attempt,
        reraise=True,
    )

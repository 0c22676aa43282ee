"""
Retry Manager for the KeepENS system.

Retry with exponential backoff for operations whose callers want it, such
as email delivery. Domain discovery and chain reads deliberately do not
retry; their callers degrade instead.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from .config import RetryConfig

T = TypeVar("T")


@dataclass
class RetryResult(Generic[T]):
    """Result of a retry operation."""

    success: bool
    result: Optional[T]
    attempts: int
    last_error: Optional[Exception]
    errors: list[str] = field(default_factory=list)


class RetryManager:
    """Runs an async operation until it succeeds or attempts run out."""

    def __init__(
        self,
        config: RetryConfig,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Initialize the retry manager.

        Args:
            config: Retry configuration with max_retries and delays
            sleep: Awaitable used between attempts
        """
        self._config = config
        self._sleep = sleep

    @property
    def max_attempts(self) -> int:
        """Total attempts = 1 initial + max_retries."""
        return self._config.max_retries + 1

    def calculate_delay(self, attempt: int) -> float:
        """
        Wait time before the next attempt.

        delay(n) = base_delay * 2^n, capped at max_delay.

        Args:
            attempt: The attempt that just failed (0-indexed)
        """
        delay = self._config.base_delay_seconds * (2 ** attempt)
        return min(delay, self._config.max_delay_seconds)

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        is_success: Callable[[T], bool] = lambda result: True,
        is_retryable: Optional[Callable[[Exception], bool]] = None,
    ) -> RetryResult[T]:
        """
        Execute an operation with retry logic and exponential backoff.

        Args:
            operation: The async operation to execute
            is_success: Judges a returned value; a falsy verdict is retried
            is_retryable: Decides whether an exception is worth retrying.
                         If not provided, all exceptions are retried.

        Returns:
            RetryResult with success status, result, attempts and errors
        """
        last_error: Optional[Exception] = None
        last_result: Optional[T] = None
        errors: list[str] = []
        attempts = 0

        while attempts < self.max_attempts:
            attempts += 1
            try:
                last_result = await operation()
            except Exception as e:
                last_error = e
                errors.append(str(e) or type(e).__name__)
                if is_retryable is not None and not is_retryable(e):
                    break
            else:
                if is_success(last_result):
                    return RetryResult(
                        success=True,
                        result=last_result,
                        attempts=attempts,
                        last_error=None,
                        errors=errors,
                    )
                errors.append("Operation reported failure")

            if attempts < self.max_attempts:
                await self._sleep(self.calculate_delay(attempts - 1))

        return RetryResult(
            success=False,
            result=last_result,
            attempts=attempts,
            last_error=last_error,
            errors=errors,
        )

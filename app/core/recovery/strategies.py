"""
Retry policies for RPC and bundler calls.

A policy wraps a zero-argument coroutine factory. Errors the recovery layer
classifies as transient are retried with a growing pause; anything else is
raised from the first attempt unchanged.
"""

import asyncio
import logging
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from .errors import RecoverableError, UnrecoverableError, classify_error

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


@dataclass
class RetryConfig:
    max_attempts: int = 3
    initial_delay_seconds: float = 0.5
    max_delay_seconds: float = 10.0
    exponential_base: float = 2.0
    jitter: bool = True
    jitter_factor: float = 0.1

    def get_delay(self, attempt: int) -> float:
        """Pause after the zero-based ``attempt``, capped and optionally jittered."""
        base = self.initial_delay_seconds * self.exponential_base ** attempt
        base = min(base, self.max_delay_seconds)
        if not self.jitter:
            return max(base, 0.0)
        spread = base * self.jitter_factor
        return max(base + random.uniform(-spread, spread), 0.0)


class RecoveryStrategy(ABC):
    @abstractmethod
    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        context: Optional[Dict[str, Any]] = None,
    ) -> T:
        ...

    @abstractmethod
    def should_retry(self, error: Exception, attempt: int) -> bool:
        ...


class RetryStrategy(RecoveryStrategy):
    """
    Fixed-budget retry.

    ``context["operation"]`` labels the warning logged before each pause.
    A RecoverableError carrying ``retry_after`` overrides the computed pause.
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        logger: Optional[logging.Logger] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.config = config or RetryConfig()
        self.logger = logger or logging.getLogger(__name__)
        self._sleep = sleep

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        context: Optional[Dict[str, Any]] = None,
    ) -> T:
        label = (context or {}).get("operation", "operation")
        attempt = 0
        while True:
            try:
                return await operation()
            except Exception as exc:
                if not self.should_retry(exc, attempt):
                    raise
                pause = self._pause_for(exc, attempt)
                attempt += 1
                self.logger.warning(
                    f"{label} failed ({attempt}/{self.config.max_attempts}): {exc}; "
                    f"next try in {pause:.2f}s"
                )
                await self._sleep(pause)

    def should_retry(self, error: Exception, attempt: int) -> bool:
        if attempt + 1 >= self.config.max_attempts:
            return False
        if isinstance(error, RecoverableError):
            return True
        if isinstance(error, UnrecoverableError):
            return False
        return classify_error(error).recoverable

    def _pause_for(self, error: Exception, attempt: int) -> float:
        hint = getattr(error, "retry_after", None) if isinstance(error, RecoverableError) else None
        if hint:
            return min(hint, self.config.max_delay_seconds)
        return self.config.get_delay(attempt)


class ExponentialBackoffStrategy(RetryStrategy):
    """RetryStrategy with jittered exponential pauses, built from plain arguments."""

    def __init__(
        self,
        max_attempts: int = 3,
        initial_delay: float = 0.5,
        max_delay: float = 10.0,
        exponential_base: float = 2.0,
        logger: Optional[logging.Logger] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        super().__init__(
            RetryConfig(
                max_attempts=max_attempts,
                initial_delay_seconds=initial_delay,
                max_delay_seconds=max_delay,
                exponential_base=exponential_base,
            ),
            logger,
            sleep,
        )

"""
Resilience wrapper for provider calls

Every adapter call made by the facade goes through ResilientCaller, which bounds
it with a timeout and retries it according to its failure kind:

- rate limited: wait at least the provider's Retry-After, then retry
- transient: exponential backoff with jitter, bounded attempts
- order creation failed: one retry with the same payload
- everything else: surfaced immediately

Rate-limit backoff is tracked per provider, so a 429 from one provider delays
further calls to that provider only.
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from DropshipHub.exceptions import (
    FailureKind,
    ProviderConnectionError,
    failure_kind,
    is_retryable,
)
from DropshipHub.models.provider_config_models import DropshipSettings

logger = logging.getLogger(__name__)


@dataclass
class RetryPolicy:
    """Retry budget shared by all providers"""
    max_attempts: int = 3
    base_delay: float = 0.5
    backoff_factor: float = 2.0
    max_delay: float = 30.0
    jitter: bool = True
    order_creation_max_attempts: int = 2

    @classmethod
    def from_settings(cls, settings: DropshipSettings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay,
            backoff_factor=settings.retry_backoff_factor,
            max_delay=settings.retry_max_delay,
            jitter=settings.retry_jitter,
        )

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based)"""
        delay = min(self.base_delay * (self.backoff_factor ** (attempt - 1)), self.max_delay)
        if self.jitter:
            # full jitter in [delay/2, delay]
            delay = delay / 2 + random.uniform(0, delay / 2)
        return delay

    def attempts_for(self, idempotent: bool) -> int:
        if idempotent:
            return self.max_attempts
        return min(self.max_attempts, self.order_creation_max_attempts)


class ProviderBackoffState:
    """Rate-limit window for one provider"""

    def __init__(self, provider_name: str, clock: Callable[[], float] = time.monotonic):
        self.provider_name = provider_name
        self._clock = clock
        self._blocked_until = 0.0
        self._lock = asyncio.Lock()

    def block_for(self, seconds: float):
        """Extend the window; never shortens one already in force"""
        self._blocked_until = max(self._blocked_until, self._clock() + seconds)

    def remaining(self) -> float:
        return max(self._blocked_until - self._clock(), 0.0)

    async def wait_if_blocked(self, sleep: Callable[[float], Awaitable[Any]]):
        async with self._lock:
            remaining = self.remaining()
            if remaining > 0:
                logger.info(f"Waiting {remaining:.2f}s for {self.provider_name} rate limit window")
                await sleep(remaining)


class ResilientCaller:
    """
    Applies timeout, retry and backoff to provider calls.

    ``sleep`` and ``clock`` are injectable so the backoff can be observed in tests
    without waiting in real time.
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        timeout: Optional[float] = 30.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.policy = policy or RetryPolicy()
        self.timeout = timeout
        self._sleep = sleep
        self._clock = clock
        self._backoff: Dict[str, ProviderBackoffState] = {}

    def backoff_state(self, provider_name: str) -> ProviderBackoffState:
        state = self._backoff.get(provider_name)
        if state is None:
            state = self._backoff[provider_name] = ProviderBackoffState(provider_name, clock=self._clock)
        return state

    async def _run_once(self, provider_name: str, operation: str, func, *args, **kwargs):
        if self.timeout is None:
            return await func(*args, **kwargs)
        try:
            return await asyncio.wait_for(func(*args, **kwargs), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise ProviderConnectionError(
                f"{provider_name} {operation} timed out after {self.timeout}s",
                provider_name=provider_name,
            ) from e

    async def call(
        self,
        provider_name: str,
        operation: str,
        func: Callable[..., Awaitable[Any]],
        *args,
        idempotent: bool = True,
        **kwargs
    ) -> Any:
        """
        Run ``func(*args, **kwargs)`` for provider_name with retries.

        Args:
            operation: name used in log messages
            idempotent: False caps the attempts at the order-creation budget

        Raises:
            The last failure once it is not retryable or the budget is spent.
        """
        state = self.backoff_state(provider_name)
        max_attempts = self.policy.attempts_for(idempotent)
        attempt = 0

        while True:
            attempt += 1
            await state.wait_if_blocked(self._sleep)

            try:
                return await self._run_once(provider_name, operation, func, *args, **kwargs)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                kind = failure_kind(e)
                if not is_retryable(e):
                    raise
                if attempt >= max_attempts:
                    logger.error(
                        f"{provider_name} {operation} failed after {attempt} attempt(s): {e}",
                        extra={"provider_name": provider_name, "error_kind": kind.value},
                    )
                    raise

                delay = self.policy.backoff_delay(attempt)
                if kind == FailureKind.RATE_LIMITED:
                    retry_after = getattr(e, "retry_after", None) or 0.0
                    delay = max(delay, retry_after)
                    state.block_for(delay)
                    logger.warning(
                        f"{provider_name} rate limited during {operation}; retrying in {delay:.2f}s "
                        f"(attempt {attempt + 1}/{max_attempts})"
                    )
                else:
                    logger.warning(
                        f"{provider_name} {operation} failed ({kind.value}): {e}; retrying in {delay:.2f}s "
                        f"(attempt {attempt + 1}/{max_attempts})"
                    )
                    await self._sleep(delay)

# src/services/retry_executor.py

"""Bounded retries with capped exponential backoff for one source call."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from src.config.settings import Settings

logger = logging.getLogger("sourcing.retry")

T = TypeVar("T")


@dataclass(frozen=True)
class AttemptEvent:
    """One attempt of a wrapped source call and how it went."""

    source: str
    attempt: int
    max_attempts: int
    ok: bool
    latency_ms: float
    error: str | None = None
    next_delay: float | None = None


@dataclass
class ExecutionResult(Generic[T]):
    """Value of a wrapped call, or the default after exhausted retries."""

    value: T
    degraded: bool
    attempts: int
    error: str | None = None


AttemptListener = Callable[[AttemptEvent], None]


class RetryExecutor:
    """Run an async operation with retries and degrade instead of raising.

    The delay before attempt ``n + 1`` is
    ``min(base_delay * 2 ** (n - 1), max_delay)``.  After the last
    failed attempt the caller gets ``default`` back with
    ``degraded=True``; the exception itself is logged, never raised.
    """

    def __init__(
        self,
        max_attempts: int | None = None,
        base_delay: float | None = None,
        max_delay: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        settings = Settings()
        self.max_attempts = max_attempts or settings.MAX_ATTEMPTS
        self.base_delay = (
            settings.BACKOFF_BASE_DELAY if base_delay is None else base_delay
        )
        self.max_delay = (
            settings.BACKOFF_MAX_DELAY if max_delay is None else max_delay
        )
        self._sleep = sleep
        self._listeners: list[AttemptListener] = []

    def add_listener(self, listener: AttemptListener) -> None:
        """Receive an ``AttemptEvent`` after every attempt."""
        self._listeners.append(listener)

    def backoff_delay(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number *attempt* (1-based)."""
        return min(self.base_delay * 2 ** (attempt - 1), self.max_delay)

    def _emit(self, event: AttemptEvent) -> None:
        if event.ok:
            logger.info(
                "[%s] Attempt %d/%d succeeded in %.0fms",
                event.source,
                event.attempt,
                event.max_attempts,
                event.latency_ms,
            )
        elif event.next_delay is not None:
            logger.warning(
                "[%s] Attempt %d/%d failed after %.0fms (%s), "
                "retrying in %.1fs",
                event.source,
                event.attempt,
                event.max_attempts,
                event.latency_ms,
                event.error,
                event.next_delay,
            )
        else:
            logger.error(
                "[%s] Attempt %d/%d failed after %.0fms (%s), giving up",
                event.source,
                event.attempt,
                event.max_attempts,
                event.latency_ms,
                event.error,
            )
        for listener in self._listeners:
            try:
                listener(event)
            except Exception:
                logger.exception(
                    "Attempt listener %r raised", listener
                )

    async def execute(
        self,
        source: str,
        operation: Callable[[], Awaitable[T]],
        default: T,
        max_attempts: int | None = None,
    ) -> ExecutionResult[T]:
        """Call *operation* until it succeeds or attempts run out."""
        limit = max(1, max_attempts or self.max_attempts)
        last_error: str | None = None

        for attempt in range(1, limit + 1):
            start = time.monotonic()
            try:
                value = await operation()
            except Exception as exc:
                latency_ms = (time.monotonic() - start) * 1000
                last_error = str(exc) or type(exc).__name__
                delay = (
                    self.backoff_delay(attempt) if attempt < limit else None
                )
                self._emit(
                    AttemptEvent(
                        source=source,
                        attempt=attempt,
                        max_attempts=limit,
                        ok=False,
                        latency_ms=latency_ms,
                        error=last_error,
                        next_delay=delay,
                    )
                )
                logger.debug(
                    "[%s] Attempt %d traceback",
                    source,
                    attempt,
                    exc_info=exc,
                )
                if delay is not None:
                    await self._sleep(delay)
                continue

            self._emit(
                AttemptEvent(
                    source=source,
                    attempt=attempt,
                    max_attempts=limit,
                    ok=True,
                    latency_ms=(time.monotonic() - start) * 1000,
                )
            )
            return ExecutionResult(
                value=value, degraded=False, attempts=attempt
            )

        return ExecutionResult(
            value=default,
            degraded=True,
            attempts=limit,
            error=last_error,
        )

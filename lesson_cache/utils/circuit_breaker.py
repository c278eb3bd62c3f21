"""
Circuit breaker guarding calls to the remote record store.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Optional

log = logging.getLogger(__name__)


class CircuitState(Enum):
    """States of the circuit breaker."""

    CLOSED = "closed"  # Calls pass through
    OPEN = "open"  # Calls are refused
    HALF_OPEN = "half_open"  # Probing whether the remote recovered


class CircuitBreakerError(Exception):
    """Raised when a call is refused because the circuit is open."""


class CircuitBreaker:
    """
    Stops calling a failing remote after `failure_threshold` consecutive
    failures, then lets probe calls through once `recovery_timeout` seconds
    have passed. `success_threshold` consecutive probe successes close it again.

    Usage:
        async with breaker:
            await store.update_fields(...)
    """

    def __init__(
        self,
        failure_threshold: int = 3,
        recovery_timeout: float = 60.0,
        success_threshold: int = 1,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.success_threshold = success_threshold

        self._state = CircuitState.CLOSED
        self._failures = 0
        self._probe_successes = 0
        self._opened_at: Optional[float] = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    def _maybe_half_open(self) -> None:
        if self._state != CircuitState.OPEN or self._opened_at is None:
            return
        waited = time.monotonic() - self._opened_at
        if waited >= self.recovery_timeout:
            log.info(f"Remote circuit half-open after {waited:.0f}s, probing.")
            self._state = CircuitState.HALF_OPEN
            self._probe_successes = 0

    async def record_success(self) -> None:
        async with self._lock:
            self._failures = 0
            if self._state != CircuitState.HALF_OPEN:
                return
            self._probe_successes += 1
            if self._probe_successes >= self.success_threshold:
                log.info("[green]✓ Remote store recovered, circuit closed.[/green]")
                self._state = CircuitState.CLOSED

    async def record_failure(self) -> None:
        async with self._lock:
            self._failures += 1
            if self._state == CircuitState.HALF_OPEN or (
                self._state == CircuitState.CLOSED
                and self._failures >= self.failure_threshold
            ):
                log.warning(
                    f"[yellow]Remote circuit opened after {self._failures} "
                    f"failure(s); pausing remote calls for "
                    f"{self.recovery_timeout:.0f}s.[/yellow]"
                )
                self._state = CircuitState.OPEN
                self._opened_at = time.monotonic()
                self._failures = 0

    async def __aenter__(self):
        async with self._lock:
            self._maybe_half_open()
            if self._state == CircuitState.OPEN:
                raise CircuitBreakerError(
                    f"Circuit is open. Will try to recover after "
                    f"{self.recovery_timeout:.0f} seconds."
                )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            await self.record_failure()
        else:
            await self.record_success()

"""
Circuit Breaker - per-resource failure isolation for outbound calls.

A breaker wraps an async operation and tracks consecutive failures:

- CLOSED: calls pass through; failures are counted, successes reset the count
- OPEN: calls short-circuit with CircuitOpenError, no call is attempted
- HALF_OPEN: after the cool-down one trial call is admitted; success closes
  the circuit, failure re-opens it with a fresh cool-down

Breakers are grouped in a CircuitBreakerRegistry keyed by resource (service
name, webhook URL, hostname). Each WorkflowEngine owns its own registry, so
breaker state never leaks between unrelated runs.

Usage::

    breakers = CircuitBreakerRegistry(failure_threshold=5, recovery_timeout=30.0)
    data = await breakers.execute("api.example.com", lambda: client.get(url))
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import Any, TypeVar

from nodeflow.errors import CircuitOpenError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(StrEnum):
    """State of a single circuit breaker."""

    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class CircuitBreaker:
    """Failure-isolation state machine for one resource key."""

    def __init__(
        self,
        name: str = "",
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at = 0.0
        self._trial_in_flight = False

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    def _remaining_cooldown(self) -> float:
        return max(0.0, self.recovery_timeout - (self._clock() - self._opened_at))

    async def execute(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Await ``fn()`` through the breaker and return its value."""
        if self._state == CircuitState.OPEN:
            remaining = self._remaining_cooldown()
            if remaining > 0:
                raise CircuitOpenError(self.name, remaining)
            self._half_open()

        if self._state == CircuitState.HALF_OPEN:
            # Only one trial call at a time while probing the resource
            if self._trial_in_flight:
                raise CircuitOpenError(self.name, 0.0)
            self._trial_in_flight = True

        try:
            result = await fn()
        except Exception:
            self._on_failure()
            raise
        else:
            self._on_success()
            return result
        finally:
            self._trial_in_flight = False

    async def fire(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Alias of execute(), used for read-style calls."""
        return await self.execute(fn)

    def reset(self) -> None:
        """Force the breaker back to CLOSED with cleared counters."""
        self._close()

    def _on_success(self) -> None:
        if self._state == CircuitState.HALF_OPEN:
            self._close()
        else:
            self._failure_count = 0

    def _on_failure(self) -> None:
        self._failure_count += 1
        if self._state == CircuitState.HALF_OPEN:
            self._open()
        elif (
            self._state == CircuitState.CLOSED
            and self._failure_count >= self.failure_threshold
        ):
            self._open()

    def _close(self) -> None:
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at = 0.0
        logger.info("Circuit breaker '%s' state changed to CLOSED", self.name)

    def _open(self) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()
        logger.warning(
            "Circuit breaker '%s' state changed to OPEN after %d consecutive failures",
            self.name,
            self._failure_count,
            extra={"resource_key": self.name},
        )

    def _half_open(self) -> None:
        self._state = CircuitState.HALF_OPEN
        logger.info("Circuit breaker '%s' state changed to HALF_OPEN", self.name)


class CircuitBreakerRegistry:
    """
    Lazily created breakers, one per resource key.

    Owned by a single engine; not a process-wide singleton.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}

    def get(self, resource_key: str) -> CircuitBreaker:
        """Return the breaker for a resource key, creating it on first use."""
        breaker = self._breakers.get(resource_key)
        if breaker is None:
            breaker = CircuitBreaker(
                name=resource_key,
                failure_threshold=self.failure_threshold,
                recovery_timeout=self.recovery_timeout,
                clock=self._clock,
            )
            self._breakers[resource_key] = breaker
        return breaker

    async def execute(self, resource_key: str, fn: Callable[[], Awaitable[T]]) -> T:
        return await self.get(resource_key).execute(fn)

    async def fire(self, resource_key: str, fn: Callable[[], Awaitable[T]]) -> T:
        return await self.get(resource_key).fire(fn)

    def get_state(self, resource_key: str) -> CircuitState:
        """State for a key; keys never called are CLOSED."""
        breaker = self._breakers.get(resource_key)
        return breaker.state if breaker else CircuitState.CLOSED

    def reset(self, resource_key: str | None = None) -> None:
        """Reset one breaker, or all of them when no key is given."""
        if resource_key is None:
            for breaker in self._breakers.values():
                breaker.reset()
        elif resource_key in self._breakers:
            self._breakers[resource_key].reset()

    def snapshot(self) -> dict[str, Any]:
        """Current state of every known breaker, for run logs."""
        return {key: str(b.state) for key, b in self._breakers.items()}

    def __contains__(self, resource_key: str) -> bool:
        return resource_key in self._breakers

    def __len__(self) -> int:
        return len(self._breakers)

"""Failure isolation for outbound calls made by node handlers."""

from nodeflow.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitState,
)

__all__ = ["CircuitBreaker", "CircuitBreakerRegistry", "CircuitState"]

"""
HTTP Request Handler - Call arbitrary HTTP endpoints from a workflow.

Isolated per hostname behind a circuit breaker.
"""

from .http_request_handler import breaker_key, register_handlers

__all__ = ["breaker_key", "register_handlers"]

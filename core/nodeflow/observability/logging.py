"""
Run-correlated logging for workflow executions.

Every module logs through ``logging.getLogger(__name__)``. The engine puts
``workflow_id`` and ``execution_id`` into a ContextVar when a run starts and
adds ``node_id`` as it enters each node; both formatters below read that
ContextVar, so a handler's plain ``logger.info(...)`` comes out tagged with
the run and node it belongs to.

    WorkflowEngine.run()     -> set_trace_context(workflow_id=..., execution_id=...)
    WorkflowEngine._visit()  -> set_trace_context(node_id=...)
    handler code             -> logger.info("sent")  # tagged automatically

Concurrent runs in separate asyncio tasks each see their own context.
"""

import json
import logging
import os
import re
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import IO, Any

trace_context: ContextVar[dict[str, Any] | None] = ContextVar("trace_context", default=None)

_ANSI = re.compile(r"\x1b\[[0-9;]*m")

# Optional ``extra={...}`` attributes promoted to top-level JSON fields
_EXTRA_FIELDS = ("event", "node_type", "resource_key", "latency_ms", "status_code")

# Client libraries whose loggers are routed through the root handler in JSON mode
_LIBRARY_LOGGERS = ("LiteLLM", "httpcore", "httpx")

_LEVEL_COLORS = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[35m",
}
_RESET = "\033[0m"


def strip_ansi_codes(text: str) -> str:
    """Drop terminal color codes (handler output and tracebacks may carry them)."""
    return _ANSI.sub("", text)


def _clean(value: Any) -> Any:
    return strip_ansi_codes(value) if isinstance(value, str) else value


class StructuredFormatter(logging.Formatter):
    """
    One JSON object per line.

    Fields: ``timestamp``, ``level``, ``logger``, ``message``, then the run
    context (``workflow_id``, ``execution_id``, ``node_id``), then any
    recognised ``extra`` attributes and the formatted exception.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": strip_ansi_codes(record.getMessage()),
            **(trace_context.get() or {}),
        }
        entry.update(
            {
                name: _clean(getattr(record, name))
                for name in _EXTRA_FIELDS
                if getattr(record, name, None) is not None
            }
        )
        if record.exc_info:
            entry["exception"] = strip_ansi_codes(self.formatException(record.exc_info))
        return json.dumps(entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Colored single-line output prefixed with the short run context."""

    @staticmethod
    def _context_prefix(context: dict[str, Any]) -> str:
        parts = []
        if context.get("workflow_id"):
            parts.append(f"wf:{context['workflow_id']}")
        if context.get("execution_id"):
            # Random suffix of the run id
            parts.append(f"exec:{context['execution_id'][-8:]}")
        if context.get("node_id"):
            parts.append(f"node:{context['node_id']}")
        return f"[{' | '.join(parts)}] " if parts else ""

    def format(self, record: logging.LogRecord) -> str:
        color = _LEVEL_COLORS.get(record.levelname, "")
        prefix = self._context_prefix(trace_context.get() or {})
        line = f"{color}[{record.levelname:<8}]{_RESET} {prefix}{record.getMessage()}"

        event = getattr(record, "event", None)
        if event is not None:
            line += f" [{event}]"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _resolve_format(format: str) -> str:
    if format != "auto":
        return format
    if os.getenv("LOG_FORMAT", "").lower() == "json":
        return "json"
    return "json" if os.getenv("ENV", "development").lower() == "production" else "human"


def configure_logging(
    level: str = "INFO",
    format: str = "auto",  # "json", "human", or "auto"
    stream: IO[str] | None = None,
) -> None:
    """
    Install a single root handler with the chosen formatter.

    Call once from the process entry point (or a test fixture).

    Args:
        level: Root log level name
        format: "json" for production, "human" for a terminal, "auto" to pick
            JSON when LOG_FORMAT=json or ENV=production
        stream: Where to write (stderr by default)
    """
    format = _resolve_format(format)

    handler = logging.StreamHandler(stream)
    if format == "json":
        # NO_COLOR is honoured by LiteLLM and most CLI-ish libraries
        os.environ["NO_COLOR"] = "1"
        os.environ["FORCE_COLOR"] = "0"
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(HumanReadableFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())

    if format == "json":
        for name in _LIBRARY_LOGGERS:
            library_logger = logging.getLogger(name)
            library_logger.handlers.clear()
            library_logger.propagate = True


def set_trace_context(**fields: Any) -> None:
    """Merge ``fields`` into the current run context."""
    trace_context.set({**(trace_context.get() or {}), **fields})


def get_trace_context() -> dict:
    """Copy of the current run context; ``{}`` outside a run."""
    return dict(trace_context.get() or {})


def clear_trace_context() -> None:
    trace_context.set(None)

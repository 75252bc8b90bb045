"""Config validation for workflow nodes.

Checks node configs against type-specific required-field rules before the
handler runs, so a misconfigured node fails fast with a readable message
instead of a confusing error from the external service.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx

from nodeflow.errors import ConfigValidationError
from nodeflow.graph.node import Node, NodeType

logger = logging.getLogger(__name__)

# node type -> [(config field, human label)]
REQUIRED_FIELDS: dict[str, list[tuple[str, str]]] = {
    NodeType.HTTP_REQUEST: [("url", "URL")],
    NodeType.SLACK_SEND: [("channel", "Channel"), ("text", "Message text")],
    NodeType.DISCORD_SEND: [("webhookUrl", "Webhook URL")],
    NodeType.TELEGRAM_SEND: [("chatId", "Chat ID")],
    NodeType.SUB_WORKFLOW: [("subWorkflowId", "Sub-workflow ID")],
    "google_sheets_read": [("spreadsheetId", "Spreadsheet ID"), ("range", "Range")],
    "google_gmail_send": [("to", "Recipient"), ("subject", "Subject"), ("body", "Body")],
}


@dataclass
class ValidationResult:
    """Result of validating a node config."""

    success: bool
    errors: list[str]

    @property
    def error(self) -> str:
        """Get combined error message."""
        return "; ".join(self.errors) if self.errors else ""


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def _check_url(config: dict[str, Any]) -> list[str]:
    url = config.get("url")
    if _is_blank(url):
        return []
    try:
        parsed = httpx.URL(str(url))
    except (httpx.InvalidURL, TypeError, ValueError):
        return ["Invalid URL format"]
    if parsed.scheme not in ("http", "https") or not parsed.host:
        return ["Invalid URL format"]
    return []


class ConfigValidator:
    """
    Validates node configs against required-field rules.

    Used by the engine right before a handler is invoked. Node types with no
    rule always pass.
    """

    def __init__(self, rules: dict[str, list[tuple[str, str]]] | None = None):
        self.rules = dict(REQUIRED_FIELDS if rules is None else rules)
        self._extra_checks: dict[str, Callable[[dict[str, Any]], list[str]]] = {
            NodeType.HTTP_REQUEST: _check_url,
        }

    def add_rule(self, type_tag: str, field_name: str, label: str | None = None) -> None:
        self.rules.setdefault(type_tag, []).append((field_name, label or field_name))

    def validate(self, node: Node) -> ValidationResult:
        config = node.config or {}
        errors = [
            f"{label} is required"
            for field_name, label in self.rules.get(node.type, [])
            if _is_blank(config.get(field_name))
        ]
        check = self._extra_checks.get(node.type)
        if check is not None:
            errors.extend(check(config))
        return ValidationResult(success=not errors, errors=errors)

    def ensure_valid(self, node: Node) -> None:
        """Raise ConfigValidationError if the node config is incomplete."""
        result = self.validate(node)
        if not result.success:
            logger.debug(f"Config validation failed for {node.id}: {result.error}")
            raise ConfigValidationError(node.id, result.errors)

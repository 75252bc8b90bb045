"""
Credential providers - how handlers obtain service credentials.

Handlers ask for credentials by service type ("slack", "telegram", "openai")
and receive a dict of named keys ({"access_token": ...}, {"api_key": ...}).
OAuth acquisition, refresh and encryption at rest live outside this package;
a provider only hands over what is already configured.

Usage:
    # Production: environment variables, falling back to a .env file
    provider = EnvCredentialProvider()
    creds = await provider.get_credentials("user-1", "slack")

    # Tests and embedding
    provider = StaticCredentialProvider({"slack": {"access_token": "xoxb-test"}})
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from dotenv import dotenv_values

from nodeflow.errors import CredentialNotFoundError


@runtime_checkable
class CredentialProvider(Protocol):
    """Supplies stored credentials for a user and service."""

    async def get_credentials(self, user_id: str, service_type: str) -> dict[str, Any]:
        """Return the credential keys for ``service_type`` or raise CredentialNotFoundError."""
        ...


@dataclass(frozen=True)
class CredentialSpec:
    """Where one credential key comes from."""

    env_var: str
    """Environment variable name (e.g., 'SLACK_BOT_TOKEN')"""

    credential_key: str = "api_key"
    """Key name within the returned credential dict (e.g., 'access_token')"""

    description: str = ""


# service type -> specs for each key the handlers read
DEFAULT_CREDENTIAL_SPECS: dict[str, list[CredentialSpec]] = {
    "slack": [CredentialSpec("SLACK_BOT_TOKEN", "access_token", "Slack bot OAuth token")],
    "telegram": [
        CredentialSpec("TELEGRAM_BOT_TOKEN", "bot_token", "Telegram Bot Token from @BotFather")
    ],
    "openai": [CredentialSpec("OPENAI_API_KEY", "api_key", "OpenAI API key")],
    "anthropic": [CredentialSpec("ANTHROPIC_API_KEY", "api_key", "Anthropic API key")],
    "gemini": [CredentialSpec("GEMINI_API_KEY", "api_key", "Google Gemini API key")],
}


class EnvCredentialProvider:
    """
    Credentials from environment variables, falling back to a .env file.

    The .env file is read fresh on each lookup with dotenv_values(), which
    never modifies os.environ, so edits take effect without a restart.
    The user id is ignored: one process serves one set of credentials.
    """

    def __init__(
        self,
        specs: dict[str, list[CredentialSpec]] | None = None,
        dotenv_path: Path | None = None,
    ):
        self._specs = specs if specs is not None else DEFAULT_CREDENTIAL_SPECS
        self._dotenv_path = dotenv_path

    def _read_from_dotenv(self, env_var: str) -> str | None:
        dotenv_path = self._dotenv_path or Path.cwd() / ".env"
        if not dotenv_path.exists():
            return None
        return dotenv_values(dotenv_path).get(env_var)

    def _get_raw(self, env_var: str) -> str | None:
        # os.environ takes precedence over the .env file
        return os.environ.get(env_var) or self._read_from_dotenv(env_var)

    async def get_credentials(self, user_id: str, service_type: str) -> dict[str, Any]:
        specs = self._specs.get(service_type)
        if not specs:
            raise CredentialNotFoundError(service_type)

        credentials: dict[str, Any] = {}
        for spec in specs:
            value = self._get_raw(spec.env_var)
            if value:
                credentials[spec.credential_key] = value
        if not credentials:
            raise CredentialNotFoundError(service_type)
        return credentials


class StaticCredentialProvider:
    """
    Fixed credentials keyed by service type.

    Example:
        provider = StaticCredentialProvider({"telegram": {"bot_token": "123:abc"}})
    """

    def __init__(self, credentials: dict[str, dict[str, Any]] | None = None):
        self._credentials = dict(credentials or {})

    def set(self, service_type: str, values: dict[str, Any]) -> None:
        self._credentials[service_type] = dict(values)

    async def get_credentials(self, user_id: str, service_type: str) -> dict[str, Any]:
        values = self._credentials.get(service_type)
        if not values:
            raise CredentialNotFoundError(service_type)
        return dict(values)

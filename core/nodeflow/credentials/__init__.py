"""Credential contract used by node handlers."""

from nodeflow.credentials.provider import (
    DEFAULT_CREDENTIAL_SPECS,
    CredentialProvider,
    CredentialSpec,
    EnvCredentialProvider,
    StaticCredentialProvider,
)

__all__ = [
    "DEFAULT_CREDENTIAL_SPECS",
    "CredentialProvider",
    "CredentialSpec",
    "EnvCredentialProvider",
    "StaticCredentialProvider",
]

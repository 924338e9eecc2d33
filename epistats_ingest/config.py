"""Run configuration loaded from environment variables and CLI overrides.

Uses pydantic-settings so every field can be supplied through the
environment; values passed explicitly (the CLI does this) win over env.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings

from .errors import ConfigurationError
from .imap_client import BearerTokenCredentials, Credentials, PasswordCredentials


class AppMode(str, Enum):
    """Where the spreadsheet comes from."""

    REMOTE = "remote"
    LOCAL = "local"


class LoginMethod(str, Enum):
    """How the IMAP session authenticates."""

    PASSWORD = "password"
    OAUTH2 = "oauth2"


class ImapConfig(BaseSettings):
    """IMAP server connection and search settings."""

    model_config = {"env_prefix": "IMAP_"}

    host: str | None = Field(default=None, description="IMAP server hostname")
    port: int = Field(default=993, description="IMAP server port (implicit TLS)")
    username: str | None = Field(default=None, description="IMAP login username")
    login_type: LoginMethod | None = Field(default=None, description="Login method")
    password: SecretStr | None = Field(default=None, description="Password for password login")
    mailbox: str = Field(default="INBOX", description="Mailbox to search")
    query: str | None = Field(default=None, description="IMAP SEARCH criteria")
    fetch_size: int = Field(
        default=4,
        ge=1,
        description="Maximum number of messages fetched per FETCH command",
    )


class OAuth2Config(BaseSettings):
    """OAuth2 client used to trade a refresh token for an access token."""

    model_config = {"env_prefix": "OAUTH2_"}

    auth_url: str | None = Field(default=None, description="Authorization endpoint URL")
    token_url: str | None = Field(default=None, description="Token endpoint URL")
    client_id: str | None = Field(default=None, description="OAuth2 client ID")
    client_secret: SecretStr | None = Field(default=None, description="OAuth2 client secret")
    refresh_token: SecretStr | None = Field(default=None, description="Long-lived refresh token")
    timeout_seconds: float = Field(default=30.0, description="HTTP timeout for the token request")


class WorksheetConfig(BaseSettings):
    """Names of the workbook's required sheets and of the attachment itself."""

    model_config = {"env_prefix": "SHEET_"}

    patients: str = Field(default="日毎の陽性者数", description="Daily positive-count sheet")
    inspections: str = Field(default="PCR検査件数", description="Cumulative test-count sheet")
    news: str = Field(default="最新の情報", description="News sheet")
    attachment_pattern: str = Field(
        default=r"[0-9]{8}data\.xlsx",
        description="Full-match regex an attachment name must satisfy",
    )

    @field_validator("attachment_pattern")
    @classmethod
    def _pattern_compiles(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as exc:
            raise ValueError(f"invalid attachment pattern: {exc}") from exc
        return value

    @property
    def required(self) -> list[str]:
        """Sheets in the order they are processed."""
        return [self.patients, self.inspections, self.news]


class IngestConfig(BaseSettings):
    """Root configuration for one ingestion run."""

    model_config = {"env_prefix": "EPISTATS_"}

    mode: AppMode = Field(description="remote (IMAP) or local (file on disk)")
    file_path: Path | None = Field(default=None, description="Spreadsheet path for local mode")
    data_dir: Path = Field(default=Path("./data"), description="Output directory for JSON files")
    tmp_dir: Path = Field(default=Path("./tmp"), description="Scratch directory for downloads")
    log_json: bool = Field(default=True, description="Emit JSON log lines")
    log_level: str = Field(default="INFO", description="Root log level")

    imap: ImapConfig = Field(default_factory=ImapConfig)
    oauth2: OAuth2Config = Field(default_factory=OAuth2Config)
    sheets: WorksheetConfig = Field(default_factory=WorksheetConfig)

    def validate_for_mode(self) -> None:
        """Raise :class:`ConfigurationError` naming the first missing flag."""
        if self.mode is AppMode.LOCAL:
            _require(self.file_path, "--file-path", "local mode")
            return

        _require(self.imap.login_type, "--login-type", "remote mode")
        _require(self.imap.host, "--server", "logging in to the IMAP server")
        _require(self.imap.username, "--user", "logging in to the IMAP server")

        if self.imap.login_type is LoginMethod.OAUTH2:
            for value, flag in (
                (self.oauth2.auth_url, "--auth-url"),
                (self.oauth2.client_id, "--client-id"),
                (self.oauth2.client_secret, "--client-secret"),
                (self.oauth2.refresh_token, "--refresh-token"),
                (self.oauth2.token_url, "--token-url"),
            ):
                _require(value, flag, "oauth2 login")
        else:
            _require(self.imap.password, "--password", "password login")

        _require(self.imap.query, "--query", "searching the mailbox")

    def credentials(self, token_provider: Callable[[OAuth2Config], str]) -> Credentials:
        """Build the credential variant for the configured login method.

        *token_provider* is only called for oauth2 login.
        """
        assert self.imap.username is not None
        if self.imap.login_type is LoginMethod.OAUTH2:
            return BearerTokenCredentials(
                user=self.imap.username,
                access_token=token_provider(self.oauth2),
            )
        assert self.imap.password is not None
        return PasswordCredentials(
            user=self.imap.username,
            password=self.imap.password.get_secret_value(),
        )


def load_config(
    *,
    imap: dict[str, Any] | None = None,
    oauth2: dict[str, Any] | None = None,
    sheets: dict[str, Any] | None = None,
    **overrides: Any,
) -> IngestConfig:
    """Build an :class:`IngestConfig` from env plus explicit overrides.

    ``None`` overrides are dropped so the environment still applies.
    Validation failures surface as :class:`ConfigurationError`.
    """
    try:
        return IngestConfig(
            imap=ImapConfig(**_present(imap)),
            oauth2=OAuth2Config(**_present(oauth2)),
            sheets=WorksheetConfig(**_present(sheets)),
            **_present(overrides),
        )
    except ValidationError as exc:
        raise ConfigurationError(f"invalid configuration: {exc}") from exc


def _present(values: dict[str, Any] | None) -> dict[str, Any]:
    return {k: v for k, v in (values or {}).items() if v is not None}


def _require(value: object, flag: str, purpose: str) -> None:
    if value is None or value == "":
        raise ConfigurationError(f"{flag} is required for {purpose}")

"""Shared test fixtures for the ingestion test suite."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from datetime import datetime
from email import encoders
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path
from typing import Any

import openpyxl
import pytest

from epistats_ingest.config import (
    AppMode,
    ImapConfig,
    IngestConfig,
    LoginMethod,
    OAuth2Config,
    WorksheetConfig,
)

PATIENTS_SHEET = "日毎の陽性者数"
INSPECTIONS_SHEET = "PCR検査件数"
NEWS_SHEET = "最新の情報"

_ENV_PREFIXES = ("IMAP_", "OAUTH2_", "SHEET_", "EPISTATS_")


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's environment out of pydantic-settings."""
    for key in list(os.environ):
        if key.upper().startswith(_ENV_PREFIXES):
            monkeypatch.delenv(key)


@pytest.fixture(autouse=True)
def _restore_root_logger():
    """Undo handler changes made by setup_logging() in a test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


# ------------------------------------------------------------------
# Workbooks
# ------------------------------------------------------------------


def build_workbook(path: Path, sheets: dict[str, list[list[Any]]]) -> Path:
    """Write an xlsx file with one worksheet per entry, rows in order."""
    workbook = openpyxl.Workbook()
    workbook.remove(workbook.active)
    for name, rows in sheets.items():
        worksheet = workbook.create_sheet(name)
        for row in rows:
            worksheet.append(row)
    workbook.save(path)
    return path


def sample_sheets() -> dict[str, list[list[Any]]]:
    """A small workbook laid out like the published one, newest row first."""
    return {
        PATIENTS_SHEET: [
            [datetime(2023, 5, 3), 7],
            [datetime(2023, 5, 2), 12],
            [datetime(2023, 5, 1), 10],
        ],
        INSPECTIONS_SHEET: [
            [datetime(2023, 5, 3), 120, 45, 2, 30, 5, 1, 3, 8, 60, 4],
            [datetime(2023, 5, 2), 100],
            [datetime(2023, 5, 1), 60],
        ],
        NEWS_SHEET: [
            [datetime(2023, 5, 3), "Vaccination centre opens", "https://example.org/a"],
            [datetime(2023, 5, 1), "Testing hours extended", "https://example.org/b"],
        ],
    }


@pytest.fixture
def workbook_factory(tmp_path: Path) -> Callable[..., Path]:
    def factory(
        sheets: dict[str, list[list[Any]]] | None = None,
        name: str = "20230503data.xlsx",
    ) -> Path:
        return build_workbook(tmp_path / name, sheets if sheets is not None else sample_sheets())

    return factory


@pytest.fixture
def sample_workbook(workbook_factory: Callable[..., Path]) -> Path:
    return workbook_factory()


# ------------------------------------------------------------------
# Messages
# ------------------------------------------------------------------


def build_email(
    *,
    date: str = "Wed, 03 May 2023 10:00:00 +0900",
    attachments: list[tuple[str, str, bytes]] | None = None,
    subject: str = "Daily statistics",
) -> bytes:
    """Build a multipart email with a text body and optional attachments."""
    msg = MIMEMultipart("mixed")
    msg["Subject"] = subject
    msg["From"] = "stats@example.org"
    msg["To"] = "ingest@example.org"
    msg["Date"] = date
    msg.attach(MIMEText("See attached.", "plain"))

    for filename, content_type, payload in attachments or []:
        maintype, subtype = content_type.split("/", 1)
        part = MIMEBase(maintype, subtype)
        part.set_payload(payload)
        encoders.encode_base64(part)
        part.add_header("Content-Disposition", "attachment", filename=filename)
        msg.attach(part)

    return msg.as_bytes()


@pytest.fixture
def email_factory() -> Callable[..., bytes]:
    return build_email


# ------------------------------------------------------------------
# Configuration
# ------------------------------------------------------------------


@pytest.fixture
def remote_config(tmp_path: Path) -> IngestConfig:
    return IngestConfig(
        mode=AppMode.REMOTE,
        data_dir=tmp_path / "data",
        tmp_dir=tmp_path / "tmp",
        imap=ImapConfig(
            host="imap.test.com",
            port=993,
            username="testuser",
            login_type=LoginMethod.PASSWORD,
            password="testpass",
            query='SUBJECT "statistics"',
            fetch_size=4,
        ),
        oauth2=OAuth2Config(),
        sheets=WorksheetConfig(),
    )


@pytest.fixture
def oauth2_config() -> OAuth2Config:
    return OAuth2Config(
        auth_url="https://auth.test.com/authorize",
        token_url="https://auth.test.com/token",
        client_id="client-123",
        client_secret="secret-456",
        refresh_token="refresh-789",
        timeout_seconds=5.0,
    )


@pytest.fixture
def sheets_data() -> dict[str, list[list[Any]]]:
    return sample_sheets()

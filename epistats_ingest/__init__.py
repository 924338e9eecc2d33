"""Epistats ingest: mailbox or local workbook to JSON artifacts."""

from .config import AppMode, ImapConfig, IngestConfig, LoginMethod, OAuth2Config, WorksheetConfig
from .errors import DataAlreadyCurrent, IngestError
from .extractor import ExtractionResult, SheetRange, SpreadsheetExtractor, resolve_value
from .imap_client import BearerTokenCredentials, FetchedMessage, ImapClient, PasswordCredentials
from .models import Attribute, LastUpdate, NewsItem, NewsItems, Status, Summary, SummaryContent
from .pipeline import IngestPipeline, RunResult
from .selector import Accepted, AttachmentCandidate, AttachmentSelector, NotFound, Rejected
from .state import TimestampStore
from .writer import ArtifactWriter

__all__ = [
    "Accepted",
    "AppMode",
    "ArtifactWriter",
    "AttachmentCandidate",
    "AttachmentSelector",
    "Attribute",
    "BearerTokenCredentials",
    "DataAlreadyCurrent",
    "ExtractionResult",
    "FetchedMessage",
    "ImapClient",
    "ImapConfig",
    "IngestConfig",
    "IngestError",
    "IngestPipeline",
    "LastUpdate",
    "LoginMethod",
    "NewsItem",
    "NewsItems",
    "NotFound",
    "OAuth2Config",
    "PasswordCredentials",
    "Rejected",
    "RunResult",
    "SheetRange",
    "SpreadsheetExtractor",
    "Status",
    "Summary",
    "SummaryContent",
    "TimestampStore",
    "WorksheetConfig",
    "resolve_value",
]

"""Exception hierarchy for the ingestion run.

Every fatal condition aborts the whole run.  The top-level entry point
catches :class:`IngestError` once and maps the concrete class to an exit
code, so :class:`DataAlreadyCurrent` can be told apart from a failure.
"""

from __future__ import annotations


class IngestError(Exception):
    """Base class for every condition that terminates a run."""

    exit_code: int = 1


class ConfigurationError(IngestError):
    """A flag required by the selected mode or login method is missing."""

    exit_code = 2


class TransportError(IngestError):
    """Connecting to the mail server or establishing TLS failed."""


class AuthError(IngestError):
    """Login, XOAUTH2 authentication, or the token exchange failed."""


class ProtocolError(IngestError):
    """Mailbox selection, SEARCH, or FETCH failed."""


class FormatError(IngestError):
    """Input data could not be interpreted."""


class SpreadsheetOpenError(FormatError):
    """The spreadsheet file could not be opened or parsed."""


class MissingWorksheetError(FormatError):
    """A required worksheet is absent from the workbook."""


class UnexpectedWorksheetError(FormatError):
    """A worksheet name has no extraction strategy bound to it."""


class CellValueError(FormatError):
    """A required cell is missing or holds a value of the wrong type."""


class AttachmentNotFoundError(IngestError):
    """No mailbox attachment matched the naming pattern."""


class ArtifactWriteError(IngestError):
    """An output JSON file could not be written."""


class ScratchDirectoryError(IngestError):
    """The temporary download directory could not be created."""


class DataAlreadyCurrent(IngestError):
    """The newest matching attachment is not newer than the stored state.

    Terminal but not a failure: the data on disk is already up to date.
    """

    exit_code = 3

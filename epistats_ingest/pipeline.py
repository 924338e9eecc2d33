"""One ingestion run: prior state, acquisition, extraction, output."""

from __future__ import annotations

import shutil
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path

import structlog

from .config import AppMode, IngestConfig, OAuth2Config
from .errors import AttachmentNotFoundError, DataAlreadyCurrent, ScratchDirectoryError
from .extractor import SpreadsheetExtractor
from .imap_client import ImapClient
from .message_time import local_utc_offset, parse_message_date, to_local_instant
from .models import LastUpdate
from .oauth2 import exchange_refresh_token
from .parser import parse_message
from .selector import Accepted, AttachmentCandidate, AttachmentSelector, Rejected
from .state import TimestampStore
from .writer import ArtifactWriter

logger = structlog.get_logger()


@dataclass
class RunResult:
    """What a successful run produced."""

    last_update: LastUpdate
    spreadsheet_path: Path
    artifacts: list[Path]


@contextmanager
def scratch_directory(path: Path) -> Iterator[Path]:
    """Create *path* for the duration of the block and remove it afterwards."""
    path = Path(path)
    created = not path.is_dir()
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ScratchDirectoryError(f"could not create temporary directory {path}: {exc}") from exc
    if created:
        logger.info("tmp_dir_created", path=str(path))
    try:
        yield path
    finally:
        try:
            shutil.rmtree(path)
            logger.info("tmp_dir_removed", path=str(path))
        except OSError as exc:
            logger.warning("tmp_dir_remove_failed", path=str(path), error=str(exc))


class IngestPipeline:
    """Runs the whole ingestion for one :class:`IngestConfig`.

    Collaborators are injectable so tests can stand in for the mail
    server, the token endpoint and the clock.
    """

    def __init__(
        self,
        config: IngestConfig,
        *,
        client_factory: Callable[[str, int], ImapClient] = ImapClient,
        token_provider: Callable[[OAuth2Config], str] = exchange_refresh_token,
        clock: Callable[[], datetime] | None = None,
        local_offset: timedelta | None = None,
    ) -> None:
        self._config = config
        self._client_factory = client_factory
        self._token_provider = token_provider
        self._clock = clock or (lambda: datetime.now().astimezone())
        self._local_offset = local_offset

    def run(self) -> RunResult:
        self._config.validate_for_mode()
        stored = TimestampStore(self._config.data_dir).load()

        if self._config.mode is AppMode.LOCAL:
            return self._run_local()

        with scratch_directory(self._config.tmp_dir) as tmp_dir:
            return self._run_remote(stored, tmp_dir)

    # ------------------------------------------------------------------
    # Modes
    # ------------------------------------------------------------------

    def _run_local(self) -> RunResult:
        assert self._config.file_path is not None
        logger.info("using_local_spreadsheet", path=str(self._config.file_path))
        last_update = LastUpdate(datetime=self._clock())
        return self._extract_and_write(self._config.file_path, last_update)

    def _run_remote(self, stored: LastUpdate | None, tmp_dir: Path) -> RunResult:
        imap = self._config.imap
        assert imap.host is not None and imap.query is not None

        credentials = self._config.credentials(self._token_provider)
        selector = AttachmentSelector(
            self._config.sheets.attachment_pattern,
            stored,
            tmp_dir,
        )

        with self._client_factory(imap.host, imap.port) as client:
            client.authenticate(credentials)
            client.select(imap.mailbox)
            ids = client.search(imap.query)
            outcome = selector.select(self._candidates(client, ids))

        if isinstance(outcome, Rejected):
            raise DataAlreadyCurrent(
                f"{outcome.name} ({outcome.instant.isoformat()}) is not newer than "
                f"the stored update ({outcome.stored.isoformat()}); nothing to do"
            )
        if not isinstance(outcome, Accepted):
            raise AttachmentNotFoundError(
                f"no attachment matching {self._config.sheets.attachment_pattern!r} "
                f"among {len(ids)} message(s) found by {imap.query!r}"
            )

        return self._extract_and_write(outcome.path, LastUpdate(datetime=outcome.instant))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _candidates(self, client: ImapClient, ids: list[int]) -> Iterator[AttachmentCandidate]:
        """Yield attachments newest message first, fetching batches lazily."""
        offset = self._local_offset if self._local_offset is not None else local_utc_offset()
        for batch in ImapClient.batches(ids, self._config.imap.fetch_size):
            for message in client.fetch(batch):
                parsed = parse_message(message.raw_bytes)
                instant = to_local_instant(parse_message_date(parsed.date), offset)
                logger.debug(
                    "message_inspected",
                    seq=message.seq,
                    instant=instant.isoformat(),
                    attachments=len(parsed.attachments),
                )
                for attachment in parsed.attachments:
                    yield AttachmentCandidate(
                        name=attachment.filename,
                        payload=attachment.payload,
                        instant=instant,
                    )

    def _extract_and_write(self, path: Path, last_update: LastUpdate) -> RunResult:
        extractor = SpreadsheetExtractor(self._config.sheets, last_update.datetime)
        result = extractor.extract(path)
        artifacts = ArtifactWriter(self._config.data_dir).write(result, last_update)
        logger.info(
            "ingest_complete",
            last_update=last_update.datetime.isoformat(),
            artifacts=len(artifacts),
        )
        return RunResult(last_update=last_update, spreadsheet_path=path, artifacts=artifacts)

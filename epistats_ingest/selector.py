"""First-match attachment selection behind the freshness gate."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import structlog

from .errors import ArtifactWriteError
from .models import LastUpdate

logger = structlog.get_logger()


@dataclass(frozen=True)
class AttachmentCandidate:
    """An attachment together with the instant of the message carrying it."""

    name: str
    payload: bytes
    instant: datetime


@dataclass(frozen=True)
class Accepted:
    """The first matching attachment is newer than the stored state."""

    path: Path
    instant: datetime


@dataclass(frozen=True)
class Rejected:
    """The first matching attachment is not newer than the stored state."""

    name: str
    instant: datetime
    stored: datetime


@dataclass(frozen=True)
class NotFound:
    """No attachment name matched the pattern."""


SelectionOutcome = Accepted | Rejected | NotFound


class AttachmentSelector:
    """Picks the first candidate whose name fully matches *pattern*.

    Only that first match is judged: if it is newer than *last_update*
    (or there is no stored state) it is written to *download_dir* and
    accepted, otherwise the whole selection is rejected.  Later
    candidates are never consumed, so a lazy candidate stream stops
    fetching as soon as a match is found.
    """

    def __init__(
        self,
        pattern: str | re.Pattern[str],
        last_update: LastUpdate | None,
        download_dir: Path,
    ) -> None:
        self._pattern = re.compile(pattern) if isinstance(pattern, str) else pattern
        self._last_update = last_update
        self._download_dir = Path(download_dir)

    def matches(self, name: str) -> bool:
        return self._pattern.fullmatch(name) is not None

    def select(self, candidates: Iterable[AttachmentCandidate]) -> SelectionOutcome:
        for candidate in candidates:
            if not self.matches(candidate.name):
                logger.debug("attachment_skipped", name=candidate.name)
                continue

            if self._last_update is not None and not self._is_fresh(candidate):
                logger.info(
                    "attachment_not_newer",
                    name=candidate.name,
                    instant=candidate.instant.isoformat(),
                    stored=self._last_update.datetime.isoformat(),
                )
                return Rejected(
                    name=candidate.name,
                    instant=candidate.instant,
                    stored=self._last_update.datetime,
                )

            path = self._save(candidate)
            logger.info(
                "attachment_selected",
                name=candidate.name,
                instant=candidate.instant.isoformat(),
                path=str(path),
            )
            return Accepted(path=path, instant=candidate.instant)

        logger.info("attachment_not_found", pattern=self._pattern.pattern)
        return NotFound()

    def _is_fresh(self, candidate: AttachmentCandidate) -> bool:
        assert self._last_update is not None
        # Strictly newer only: rerunning over an unchanged mailbox must end as
        # already current, so each revision is processed at most once.
        return candidate.instant > self._last_update.datetime

    def _save(self, candidate: AttachmentCandidate) -> Path:
        path = self._download_dir / Path(candidate.name).name
        try:
            path.write_bytes(candidate.payload)
        except OSError as exc:
            raise ArtifactWriteError(f"could not save attachment to {path}: {exc}") from exc
        return path

"""Prior-run state: the ``last_update.json`` written by the previous run."""

from __future__ import annotations

from pathlib import Path

import structlog
from pydantic import ValidationError

from .models import LastUpdate

logger = structlog.get_logger()

LAST_UPDATE_FILE = "last_update.json"


class TimestampStore:
    """Reads the stored :class:`LastUpdate` from the output directory.

    A missing, unreadable or malformed file is not an error: the run
    proceeds as if no data had ever been ingested.
    """

    def __init__(self, data_dir: Path) -> None:
        self._path = Path(data_dir) / LAST_UPDATE_FILE

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> LastUpdate | None:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.info("last_update_missing", path=str(self._path))
            return None
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("last_update_unreadable", path=str(self._path), error=str(exc))
            return None

        try:
            last_update = LastUpdate.model_validate_json(text)
        except ValidationError as exc:
            logger.warning(
                "last_update_malformed",
                path=str(self._path),
                errors=exc.error_count(),
            )
            return None

        if last_update.datetime.tzinfo is None:
            logger.warning("last_update_naive", path=str(self._path))
            return None

        logger.info("last_update_loaded", datetime=last_update.datetime.isoformat())
        return last_update

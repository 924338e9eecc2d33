"""JSON artifact output."""

from __future__ import annotations

from pathlib import Path

import structlog
from pydantic import BaseModel

from .errors import ArtifactWriteError
from .extractor import ExtractionResult
from .models import LastUpdate
from .state import LAST_UPDATE_FILE

logger = structlog.get_logger()

INSPECTIONS_SUMMARY_FILE = "inspections_summary.json"
MAIN_SUMMARY_FILE = "main_summary.json"
NEWS_FILE = "news.json"
PATIENTS_SUMMARY_FILE = "patients_summary.json"


class ArtifactWriter:
    """Writes each record as pretty-printed JSON under *data_dir*.

    Existing files are overwritten.  ``last_update.json`` is written
    last so an interrupted run never advances the stored state past
    data that was not written.
    """

    def __init__(self, data_dir: Path) -> None:
        self._data_dir = Path(data_dir)

    def write(self, result: ExtractionResult, last_update: LastUpdate) -> list[Path]:
        try:
            self._data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ArtifactWriteError(
                f"could not create output directory {self._data_dir}: {exc}"
            ) from exc

        records: list[tuple[str, BaseModel]] = [
            (PATIENTS_SUMMARY_FILE, result.patients_summary),
            (INSPECTIONS_SUMMARY_FILE, result.inspections_summary),
            (MAIN_SUMMARY_FILE, result.main_summary),
            (NEWS_FILE, result.news),
            (LAST_UPDATE_FILE, last_update),
        ]
        return [self.write_record(name, record) for name, record in records]

    def write_record(self, name: str, record: BaseModel) -> Path:
        path = self._data_dir / name
        body = record.model_dump_json(indent=2)
        try:
            path.write_text(body, encoding="utf-8")
        except OSError as exc:
            raise ArtifactWriteError(f"could not write {path}: {exc}") from exc
        logger.info("artifact_written", path=str(path), size_bytes=len(body.encode("utf-8")))
        return path

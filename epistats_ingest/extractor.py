"""Worksheet extraction: three fixed sheet layouts into normalized records.

Each required worksheet is bound to one strategy:

* daily positive counts: ``(date, count)`` rows, emitted last row first;
* PCR tests: ``(date, cumulative total, status columns...)`` rows, emitted
  last row first as per-day deltas, plus the status tree from row 0;
* news: ``(date, text, url)`` rows, emitted in sheet order.

Rows are relative to the sheet's used range, so row 0 is the first
populated row and column 0 the first populated column.
"""

from __future__ import annotations

import zipfile
from xml.etree.ElementTree import ParseError
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass
from datetime import UTC, date, datetime, time
from pathlib import Path
from typing import Any

import openpyxl
import structlog
from openpyxl.utils.datetime import from_excel
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.workbook.workbook import Workbook
from openpyxl.worksheet.worksheet import Worksheet

from .config import WorksheetConfig
from .errors import (
    CellValueError,
    MissingWorksheetError,
    SpreadsheetOpenError,
    UnexpectedWorksheetError,
)
from .models import Attribute, NewsItem, NewsItems, Status, Summary, SummaryContent

logger = structlog.get_logger()

ROOT_COLUMN = 1
PATIENTS_COLUMN = 2

# Children of the "Patients" node in output order.  "Leave" sits in
# column 3, between the patient total and the hospitalization count.
STATUS_COLUMNS: tuple[tuple[Attribute, int], ...] = (
    (Attribute.HOSPITALIZATIONS, 4),
    (Attribute.SEVERELY_PATIENTS, 5),
    (Attribute.OTHER, 6),
    (Attribute.ACCOMMODATIONS, 7),
    (Attribute.HOME, 8),
    (Attribute.DEAD, 9),
    (Attribute.LEAVE, 3),
    (Attribute.COORDINATING, 10),
)


class SheetRange:
    """The used cell range of one worksheet as a dense grid of values."""

    def __init__(self, name: str, rows: Sequence[Sequence[Any]]) -> None:
        self.name = name
        self._rows = [list(row) for row in rows]
        # Trailing blank rows are formatting residue, not data.
        while self._rows and all(value is None for value in self._rows[-1]):
            self._rows.pop()

    @classmethod
    def from_worksheet(cls, worksheet: Worksheet) -> SheetRange:
        rows = worksheet.iter_rows(
            min_row=worksheet.min_row,
            max_row=worksheet.max_row,
            min_col=worksheet.min_column,
            max_col=worksheet.max_column,
            values_only=True,
        )
        return cls(worksheet.title, list(rows))

    @property
    def height(self) -> int:
        return len(self._rows)

    def rows(self) -> Iterator[list[Any]]:
        return iter(self._rows)

    def contains(self, row: int, col: int) -> bool:
        return 0 <= row < len(self._rows) and 0 <= col < len(self._rows[row])

    def get(self, row: int, col: int) -> Any:
        """Value at ``(row, col)``; ``None`` for blank or out-of-range cells."""
        if not self.contains(row, col):
            return None
        return self._rows[row][col]


def resolve_value(sheet: SheetRange, row: int, col: int) -> int | None:
    """Numeric value at ``(row, col)``, inherited from below when blank.

    A vertically merged cell stores its value in only one of the rows it
    spans, so a non-numeric cell defers to the cell beneath it.  Returns
    ``None`` once the probe leaves the sheet.
    """
    for probe in range(row, sheet.height):
        if not sheet.contains(probe, col):
            return None
        value = sheet.get(probe, col)
        if _is_number(value):
            return int(value)
    return None


@dataclass
class ExtractionResult:
    """Everything extracted from one workbook."""

    patients_summary: Summary
    inspections_summary: Summary
    main_summary: Status
    news: NewsItems


class SpreadsheetExtractor:
    """Runs the per-sheet strategies over one workbook."""

    def __init__(self, sheets: WorksheetConfig, last_update: datetime) -> None:
        self._sheets = sheets
        self._last_update = last_update
        self._strategies: dict[str, Callable[[SheetRange, ExtractionResult], None]] = {
            sheets.patients: self._extract_patients,
            sheets.inspections: self._extract_inspections,
            sheets.news: self._extract_news,
        }

    def extract(self, path: Path) -> ExtractionResult:
        """Open the workbook at *path* and extract all required sheets."""
        workbook = open_workbook(path)
        try:
            return self.extract_workbook(workbook, self._sheets.required)
        finally:
            workbook.close()

    def extract_workbook(
        self,
        workbook: Workbook,
        required: Sequence[str],
    ) -> ExtractionResult:
        result = ExtractionResult(
            patients_summary=Summary(last_update=self._last_update),
            inspections_summary=Summary(last_update=self._last_update),
            main_summary=Status(attr=Attribute.INSPECTIONS, value=0),
            news=NewsItems(),
        )

        for name in required:
            if name not in workbook.sheetnames:
                raise MissingWorksheetError(f"workbook has no worksheet named {name!r}")
            strategy = self._strategies.get(name)
            if strategy is None:
                raise UnexpectedWorksheetError(f"no extraction defined for worksheet {name!r}")

            sheet = SheetRange.from_worksheet(workbook[name])
            strategy(sheet, result)
            logger.info("worksheet_processed", worksheet=name, rows=sheet.height)

        return result

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    def _extract_patients(self, sheet: SheetRange, result: ExtractionResult) -> None:
        data = result.patients_summary.data
        for row in range(sheet.height - 1, -1, -1):
            data.append(
                SummaryContent(
                    date=_utc_midnight(_date_cell(sheet, row, 0)),
                    sum=_count_cell(sheet, row, 1),
                )
            )

    def _extract_inspections(self, sheet: SheetRange, result: ExtractionResult) -> None:
        data = result.inspections_summary.data
        last_sum = 0
        for row in range(sheet.height - 1, -1, -1):
            total = _count_cell(sheet, row, 1)
            if total < last_sum:
                raise CellValueError(
                    f"{_where(sheet, row, 1)}: cumulative total {total} is below "
                    f"the previous day's {last_sum}"
                )
            data.append(
                SummaryContent(
                    date=_utc_midnight(_date_cell(sheet, row, 0)),
                    sum=total - last_sum,
                )
            )
            last_sum = total

        result.main_summary = self._build_status(sheet)

    def _extract_news(self, sheet: SheetRange, result: ExtractionResult) -> None:
        items = result.news.news_items
        for row in range(sheet.height):
            items.append(
                NewsItem(
                    date=_date_cell(sheet, row, 0),
                    text=_text_cell(sheet, row, 1),
                    url=_text_cell(sheet, row, 2),
                )
            )

    def _build_status(self, sheet: SheetRange) -> Status:
        children = [
            Status(attr=attr, value=_required_value(sheet, 0, col))
            for attr, col in STATUS_COLUMNS
        ]
        patients = Status(
            attr=Attribute.PATIENTS,
            value=_required_value(sheet, 0, PATIENTS_COLUMN),
            children=children,
            last_update=self._last_update,
        )
        return Status(
            attr=Attribute.INSPECTIONS,
            value=_required_value(sheet, 0, ROOT_COLUMN),
            children=[patients],
            last_update=self._last_update,
        )


def open_workbook(path: Path) -> Workbook:
    """Load an xlsx workbook with cached formula results as values."""
    try:
        return openpyxl.load_workbook(path, data_only=True)
    except (
        InvalidFileException,
        zipfile.BadZipFile,
        ParseError,
        SyntaxError,  # lxml's XMLSyntaxError when openpyxl parses with lxml
        OSError,
        KeyError,
        TypeError,
        ValueError,
    ) as exc:
        raise SpreadsheetOpenError(f"could not open spreadsheet {path}: {exc}") from exc


# ----------------------------------------------------------------------
# Cell conversion
# ----------------------------------------------------------------------


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _where(sheet: SheetRange, row: int, col: int) -> str:
    return f"worksheet {sheet.name!r} row {row} column {col}"


def _date_cell(sheet: SheetRange, row: int, col: int) -> date:
    value = sheet.get(row, col)
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if _is_number(value):
        # Date-valued cell without a date number format: an Excel serial.
        try:
            converted = from_excel(value)
        except (OverflowError, ValueError) as exc:
            raise CellValueError(
                f"{_where(sheet, row, col)}: serial {value!r} is not a valid date"
            ) from exc
        if isinstance(converted, datetime):
            return converted.date()
        if isinstance(converted, date):
            return converted
    raise CellValueError(f"{_where(sheet, row, col)}: expected a date, got {value!r}")


def _count_cell(sheet: SheetRange, row: int, col: int) -> int:
    value = sheet.get(row, col)
    if not _is_number(value):
        raise CellValueError(f"{_where(sheet, row, col)}: expected a number, got {value!r}")
    if value < 0:
        raise CellValueError(f"{_where(sheet, row, col)}: negative count {value!r}")
    return int(value)


def _text_cell(sheet: SheetRange, row: int, col: int) -> str:
    value = sheet.get(row, col)
    if not isinstance(value, str):
        raise CellValueError(f"{_where(sheet, row, col)}: expected text, got {value!r}")
    return value


def _required_value(sheet: SheetRange, row: int, col: int) -> int:
    value = resolve_value(sheet, row, col)
    if value is None:
        raise CellValueError(f"{_where(sheet, row, col)}: no numeric value at or below")
    if value < 0:
        raise CellValueError(f"{_where(sheet, row, col)}: negative count {value}")
    return value


def _utc_midnight(day: date) -> datetime:
    return datetime.combine(day, time(0), tzinfo=UTC)

"""
Bulk import of delivery stops from a spreadsheet.

The first sheet of an Excel workbook (or a CSV file) is read with
pandas. The dispatcher maps three of its columns to the stop fields
``buyer``, ``town`` and ``address``; rows missing any of them are
skipped. The remaining rows are geocoded one after another with a
fixed pause between requests, because the free geocoding services
throttle bursts.
"""

from __future__ import annotations

import logging
import string
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Any, Callable, Dict, List, Optional, Union

import pandas as pd

from truckroute.stops import LonLat, Stop

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("buyer", "town", "address")

Source = Union[str, Path, IO[bytes]]
Resolver = Callable[[str, str], Optional[LonLat]]
ProgressCallback = Callable[[int, int], None]


class ImportFormatError(ValueError):
    """The file could not be read or the column mapping does not fit it."""


@dataclass
class TabularData:
    columns: List[str]
    rows: List[Dict[str, str]]


@dataclass
class ImportRow:
    buyer: str
    town: str
    address: str

    @property
    def complete(self) -> bool:
        return bool(self.buyer and self.town and self.address)


@dataclass
class ImportReport:
    total: int = 0
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    cancelled: bool = False
    stops: List[Stop] = field(default_factory=list)

    @property
    def imported(self) -> int:
        return len(self.stops)


def _column_letter(index: int) -> str:
    letters = ""
    index += 1
    while index:
        index, remainder = divmod(index - 1, 26)
        letters = string.ascii_uppercase[remainder] + letters
    return letters


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float):
        if value != value:  # NaN
            return ""
        if value.is_integer():
            return str(int(value))
    return str(value).strip()


def parse_tabular_import(source: Source, filename: Optional[str] = None) -> TabularData:
    """Read the header row and data rows of a spreadsheet or CSV file.

    Args:
        source: Path or binary file object.
        filename: Name used to pick the format when ``source`` is a file
            object. Files ending in ``.csv`` are read as CSV, everything
            else as Excel.

    Returns:
        Column names (blank headers become ``Column <letter>``) and the
        rows as column-to-text mappings.
    """
    name = filename or (str(source) if isinstance(source, (str, Path)) else "")
    try:
        if name.lower().endswith(".csv"):
            frame = pd.read_csv(source, dtype=object, keep_default_na=False)
        else:
            frame = pd.read_excel(source, sheet_name=0, dtype=object)
    except (OSError, ValueError) as exc:
        raise ImportFormatError(f"Could not read {name or 'import file'}: {exc}") from exc

    columns = []
    for index, column in enumerate(frame.columns):
        header = _cell_text(column)
        if not header or header.startswith("Unnamed:"):
            header = f"Column {_column_letter(index)}"
        columns.append(header)
    frame.columns = columns

    rows = [
        {column: _cell_text(value) for column, value in record.items()}
        for record in frame.to_dict(orient="records")
    ]
    logger.info("Parsed %d rows with columns %s", len(rows), columns)
    return TabularData(columns=columns, rows=rows)


def map_rows(data: TabularData, mapping: Dict[str, str]) -> List[ImportRow]:
    """Apply a field-to-column mapping, trimming every value."""
    missing = [name for name in REQUIRED_FIELDS if not mapping.get(name)]
    if missing:
        raise ImportFormatError(f"No column mapped for: {', '.join(missing)}")
    unknown = [mapping[name] for name in REQUIRED_FIELDS if mapping[name] not in data.columns]
    if unknown:
        raise ImportFormatError(f"Unknown columns: {', '.join(unknown)}")
    return [
        ImportRow(
            buyer=row.get(mapping["buyer"], "").strip(),
            town=row.get(mapping["town"], "").strip(),
            address=row.get(mapping["address"], "").strip(),
        )
        for row in data.rows
    ]


def geocode_rows(
    rows: List[ImportRow],
    resolve: Resolver,
    delay_s: float = 0.3,
    sleep: Callable[[float], None] = time.sleep,
    should_cancel: Optional[Callable[[], bool]] = None,
    progress: Optional[ProgressCallback] = None,
) -> ImportReport:
    """Geocode import rows one at a time and build stops from the hits.

    Args:
        rows: Mapped rows, in file order.
        resolve: Returns coordinates for ``(address, town)`` or ``None``.
        delay_s: Pause between two geocoding requests.
        sleep: Injected for tests.
        should_cancel: Checked before every row; once it returns True the
            remaining rows are left alone and the report is marked cancelled.
        progress: Called with ``(rows_done, total_rows)`` after every row.

    Returns:
        Counts of processed, skipped and failed rows plus the new stops.
    """
    report = ImportReport(total=len(rows))
    for index, row in enumerate(rows):
        if should_cancel is not None and should_cancel():
            logger.info("Import cancelled after %d of %d rows", index, len(rows))
            report.cancelled = True
            break

        if not row.complete:
            logger.debug("Skipping incomplete row %d: %s", index + 1, row)
            report.skipped += 1
        else:
            if report.processed and delay_s > 0:
                sleep(delay_s)
            report.processed += 1
            try:
                coordinates = resolve(row.address, row.town)
            except Exception as exc:
                logger.error("Error geocoding row %d (%s): %s", index + 1, row.buyer, exc)
                coordinates = None
            if coordinates is None or (coordinates[0] == 0 and coordinates[1] == 0):
                logger.warning("Failed to geocode row %d: %s, %s", index + 1, row.address, row.town)
                report.failed += 1
            else:
                report.stops.append(
                    Stop(buyer=row.buyer, town=row.town, address=row.address, coordinates=coordinates)
                )

        if progress is not None:
            progress(index + 1, len(rows))

    logger.info(
        "Import complete: %d processed, %d imported, %d skipped (empty), %d failed (geocoding)",
        report.processed,
        report.imported,
        report.skipped,
        report.failed,
    )
    return report

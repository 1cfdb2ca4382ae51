"""Row sources for seeding: property CSV exports, bookings, and sample data.

Sources are lazy: rows are parsed as they are consumed so a large export
is never held in memory. Malformed rows are yielded as ``RowParseError``
values instead of raising, so the seeder can count and skip them.
"""

from __future__ import annotations

import csv
import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from .errors import SourceUnavailableError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceRow:
    """A property row with its two rating metrics.

    ``position`` is the 0-based index among valid rows.
    """

    position: int
    property_id: int
    cleanliness_rating: int
    satisfaction_rating: int


@dataclass(frozen=True)
class RowParseError:
    """A skipped source line."""

    line_number: int
    reason: str
    raw: str = ""


@dataclass(frozen=True)
class Booking:
    """A completed-or-not booking that may produce one review."""

    booking_id: int
    property_id: int
    booking_end: datetime


@dataclass(frozen=True)
class CsvLayout:
    """Column positions of the cleaned listings export."""

    id_column: int = 0
    cleanliness_column: int = 4
    satisfaction_column: int = 5
    min_columns: int = 11


DEFAULT_LAYOUT = CsvLayout()

# BSON stores integers as at most 8 bytes
INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

SAMPLE_ROWS: tuple[SourceRow, ...] = (
    SourceRow(0, 1, 100, 93),
    SourceRow(1, 2, 80, 85),
    SourceRow(2, 3, 90, 87),
    SourceRow(3, 4, 90, 90),
    SourceRow(4, 5, 100, 98),
)


def _utc(year: int, month: int, day: int) -> datetime:
    return datetime(year, month, day, tzinfo=timezone.utc)


# Demonstration bookings; in production these come from the bookings database
SAMPLE_BOOKINGS: tuple[Booking, ...] = (
    Booking(1, 140, _utc(2024, 11, 5)),
    Booking(2, 18272, _utc(2025, 5, 19)),
    Booking(3, 11608, _utc(2024, 12, 11)),
    Booking(4, 5581, _utc(2024, 12, 19)),
    Booking(5, 1985, _utc(2024, 8, 27)),
    Booking(6, 24879, _utc(2025, 3, 31)),
    Booking(7, 16753, _utc(2025, 3, 24)),
    Booking(8, 3561, _utc(2025, 1, 16)),
    Booking(9, 11260, _utc(2025, 4, 5)),
    Booking(10, 17179, _utc(2024, 6, 18)),
)


def parse_int(value: str) -> int:
    """Parse an integer field, accepting integral decimals such as ``"95.0"``.

    Raises:
        ValueError: Empty, non-numeric, fractional, or outside the BSON
            64-bit integer range.
    """
    text = value.strip()
    try:
        number = int(text)
    except ValueError:
        parsed = float(text)
        if not parsed.is_integer():
            raise ValueError(f"not an integer: {value!r}") from None
        number = int(parsed)

    if not INT64_MIN <= number <= INT64_MAX:
        raise ValueError(f"integer out of range: {value!r}")
    return number


def parse_date(value: str) -> datetime:
    """Parse an ISO date or datetime, treating naive values as UTC."""
    parsed = datetime.fromisoformat(value.strip())
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _open_source(path: Path) -> None:
    if not path.is_file():
        raise SourceUnavailableError(f"Source file not found: {path}")


def _iter_csv_rows(path: Path, layout: CsvLayout) -> Iterator[SourceRow | RowParseError]:
    position = 0
    with open(path, newline="", encoding="utf-8") as f:
        reader = csv.reader(f)
        next(reader, None)  # header

        for columns in reader:
            line_number = reader.line_num
            raw = ",".join(columns)
            if not raw.strip():
                continue

            if len(columns) < layout.min_columns:
                yield RowParseError(
                    line_number,
                    f"expected at least {layout.min_columns} columns, got {len(columns)}",
                    raw,
                )
                continue

            try:
                row = SourceRow(
                    position=position,
                    property_id=parse_int(columns[layout.id_column]),
                    cleanliness_rating=parse_int(columns[layout.cleanliness_column]),
                    satisfaction_rating=parse_int(columns[layout.satisfaction_column]),
                )
            except ValueError as e:
                yield RowParseError(line_number, str(e), raw)
                continue

            position += 1
            yield row


def read_csv_rows(
    path: Path,
    layout: CsvLayout = DEFAULT_LAYOUT,
) -> Iterator[SourceRow | RowParseError]:
    """Lazily read property rows from a CSV export.

    The header line is skipped, blank lines are ignored, and short or
    non-numeric lines are yielded as ``RowParseError``.

    Raises:
        SourceUnavailableError: The file does not exist (raised immediately).
    """
    _open_source(path)
    logger.info(f"Loading properties from {path}")
    return _iter_csv_rows(path, layout)


def _iter_booking_rows(path: Path) -> Iterator[Booking | RowParseError]:
    with open(path, newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        for record in reader:
            line_number = reader.line_num
            try:
                yield Booking(
                    booking_id=parse_int(record["booking_id"] or ""),
                    property_id=parse_int(record["property_id"] or ""),
                    booking_end=parse_date(record["booking_end"] or ""),
                )
            except (KeyError, TypeError, ValueError) as e:
                yield RowParseError(line_number, str(e), ",".join(str(v) for v in record.values()))


def read_booking_rows(path: Path) -> Iterator[Booking | RowParseError]:
    """Lazily read bookings from a ``booking_id,property_id,booking_end`` CSV.

    Raises:
        SourceUnavailableError: The file does not exist (raised immediately).
    """
    _open_source(path)
    logger.info(f"Loading bookings from {path}")
    return _iter_booking_rows(path)


def sample_rows() -> Iterable[SourceRow]:
    """Return the built-in five-row sample."""
    return iter(SAMPLE_ROWS)

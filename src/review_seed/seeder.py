"""Seeder: turn source rows into review documents and write them in batches.

Each batch is an unordered ``insert_many`` so one bad document never
blocks the rest of its batch. Batch N+1 is only submitted after batch N
returns. Batch failures are recorded in the report and never retried.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Optional

from bson.errors import InvalidDocument
from pymongo import ASCENDING
from pymongo.errors import BulkWriteError, ConnectionFailure, PyMongoError
from pymongo.write_concern import WriteConcern

from .config import DEFAULT_BATCH_SIZE
from .models import ReviewRecord
from .sources import Booking, RowParseError, SourceRow

if TYPE_CHECKING:
    from pymongo.collection import Collection

logger = logging.getLogger(__name__)

COMMENT_POOL: tuple[str, ...] = (
    "Excellent property with great amenities! The location was perfect and the host was very responsive.",
    "Good value for money. The place was clean and comfortable. Would definitely stay again.",
    "Amazing experience! Everything was exactly as described. Highly recommend this property.",
    "Nice place but could use some minor improvements. Overall a pleasant stay with good facilities.",
    "Outstanding property! Beautiful location and well-maintained. Perfect for our vacation needs.",
)

SYNTHETIC_BASE_DATE = datetime(2024, 1, 1, tzinfo=timezone.utc)
REVIEW_INDEX_FIELDS = ("property_id", "cleanliness_rating", "satisfaction_rating", "created_at")
BOOKING_INDEX_FIELD = "booking_id"
BOOKING_RATING_MIN = 80
BOOKING_RATING_MAX = 100
MAX_REVIEW_DELAY = timedelta(days=7)

# Fast bulk load: acknowledged by the primary, no journal wait
BULK_WRITE_CONCERN = WriteConcern(w=1, j=False)


class SeedMode(str, Enum):
    """Whether existing reviews are replaced or kept."""

    FULL_RESEED = "full_reseed"
    APPEND = "append"


class TimestampPolicy(str, Enum):
    """How review timestamps are derived."""

    SYNTHETIC = "synthetic"
    BOOKING_DRIVEN = "booking_driven"


@dataclass
class BatchOutcome:
    """Result of one ``insert_many`` call."""

    index: int
    size: int
    written: int
    failed: int
    elapsed: float
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.failed == 0


@dataclass
class SeedReport:
    """Counts and timings from a seeding run."""

    mode: SeedMode = SeedMode.FULL_RESEED
    existing_before: int = 0
    rows_seen: int = 0
    rows_filtered: int = 0
    cleared: int = 0
    indexes_created: list[str] = field(default_factory=list)
    batches: list[BatchOutcome] = field(default_factory=list)
    parse_failures: list[RowParseError] = field(default_factory=list)
    elapsed: float = 0.0

    @property
    def records_written(self) -> int:
        return sum(b.written for b in self.batches)

    @property
    def records_failed(self) -> int:
        return sum(b.failed for b in self.batches)

    @property
    def batch_count(self) -> int:
        return len(self.batches)

    @property
    def failed_batches(self) -> list[BatchOutcome]:
        return [b for b in self.batches if not b.ok]

    @property
    def expected_total(self) -> int:
        """Reviews that should be persisted once the run completes."""
        return self.existing_before - self.cleared + self.records_written

    @property
    def insert_time(self) -> float:
        """Seconds spent inside ``insert_many`` calls."""
        return sum(b.elapsed for b in self.batches)

    @property
    def insert_rate(self) -> float:
        """Documents per second of pure insert time."""
        if self.insert_time <= 0:
            return 0.0
        return self.records_written / self.insert_time


def comment_for(position: int) -> str:
    """Cycle through the canned comment pool."""
    return COMMENT_POOL[position % len(COMMENT_POOL)]


def build_review(row: SourceRow) -> ReviewRecord:
    """Synthetic policy: canned comment and ``base date + position days``."""
    return ReviewRecord(
        property_id=row.property_id,
        cleanliness_rating=row.cleanliness_rating,
        satisfaction_rating=row.satisfaction_rating,
        comment_text=comment_for(row.position),
        created_at=SYNTHETIC_BASE_DATE + timedelta(days=row.position),
    )


class BookingReviewBuilder:
    """Booking-driven policy: one review per booking that ended before a cutoff.

    The cutoff is explicit so that two runs with the same inputs and the
    same ``rng`` seed produce the same reviews.
    """

    def __init__(self, completed_before: datetime, rng: random.Random | None = None) -> None:
        self.completed_before = completed_before
        self.rng = rng or random.Random()
        self._position = 0

    def __call__(self, booking: Booking) -> ReviewRecord | None:
        position = self._position
        self._position += 1

        if booking.booking_end >= self.completed_before:
            return None

        delay = MAX_REVIEW_DELAY.total_seconds() * self.rng.random()
        return ReviewRecord(
            property_id=booking.property_id,
            cleanliness_rating=self.rng.randint(BOOKING_RATING_MIN, BOOKING_RATING_MAX),
            satisfaction_rating=self.rng.randint(BOOKING_RATING_MIN, BOOKING_RATING_MAX),
            comment_text=comment_for(position),
            created_at=booking.booking_end + timedelta(seconds=delay),
            booking_id=booking.booking_id,
        )


def ensure_review_indexes(collection: Collection, include_booking: bool = False) -> list[str]:
    """Create the review query indexes; returns the index names."""
    fields = list(REVIEW_INDEX_FIELDS)
    if include_booking:
        fields.append(BOOKING_INDEX_FIELD)

    started = time.perf_counter()
    names = [collection.create_index([(name, ASCENDING)]) for name in fields]
    logger.info(f"Created {len(names)} review indexes in {time.perf_counter() - started:.3f}s")
    return names


def write_batch(collection: Collection, documents: list[dict[str, Any]], index: int) -> BatchOutcome:
    """Insert one batch unordered and record what happened.

    Connection loss propagates; every other write failure is recorded.
    """
    started = time.perf_counter()
    error = None
    try:
        result = collection.insert_many(documents, ordered=False)
        written = len(result.inserted_ids)
    except BulkWriteError as e:
        written = e.details.get("nInserted", 0)
        error = f"{len(e.details.get('writeErrors', []))} write errors"
    except ConnectionFailure:
        raise
    except (PyMongoError, InvalidDocument, OverflowError) as e:
        # Encoding errors reject the whole batch before anything is sent
        written = 0
        error = str(e)
    elapsed = time.perf_counter() - started

    outcome = BatchOutcome(
        index=index,
        size=len(documents),
        written=written,
        failed=len(documents) - written,
        elapsed=elapsed,
        error=error,
    )
    if outcome.ok:
        logger.info(f"Inserted batch {index}: {written} docs in {elapsed * 1000:.0f}ms")
    else:
        logger.warning(f"Batch {index}: {written}/{len(documents)} written ({error})")
    return outcome


def seed_reviews(
    collection: Collection,
    items: Iterable[Any],
    *,
    batch_size: int = DEFAULT_BATCH_SIZE,
    mode: SeedMode = SeedMode.FULL_RESEED,
    build: Callable[[Any], Optional[ReviewRecord]] = build_review,
    include_booking_index: bool = False,
    on_batch: Callable[[BatchOutcome], None] | None = None,
) -> SeedReport:
    """Write reviews built from ``items`` in batches of ``batch_size``.

    Full reseed clears the collection first. Indexes are created only when
    the collection starts empty; a non-empty collection already has them.

    Args:
        collection: Target review collection.
        items: Lazy source of rows and ``RowParseError`` values.
        batch_size: Maximum documents per ``insert_many`` call.
        mode: Replace existing reviews or append to them.
        build: Turns one source item into a ReviewRecord, or None to skip it.
        include_booking_index: Also index ``booking_id``.
        on_batch: Called with each BatchOutcome as soon as it is written.

    Returns:
        SeedReport with per-batch outcomes and skipped rows.
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be at least 1, got {batch_size}")

    report = SeedReport(mode=mode)
    started = time.perf_counter()
    collection = collection.with_options(write_concern=BULK_WRITE_CONCERN)

    existing = collection.count_documents({})
    report.existing_before = existing
    if existing and mode is SeedMode.FULL_RESEED:
        logger.info(f"Collection already has {existing} reviews - clearing for reseed")
        report.cleared = collection.delete_many({}).deleted_count
    if existing == 0:
        report.indexes_created = ensure_review_indexes(collection, include_booking_index)

    def flush(documents: list[dict[str, Any]]) -> None:
        outcome = write_batch(collection, documents, report.batch_count)
        report.batches.append(outcome)
        if on_batch is not None:
            on_batch(outcome)

    batch: list[dict[str, Any]] = []
    for item in items:
        report.rows_seen += 1
        if isinstance(item, RowParseError):
            logger.warning(f"Skipping line {item.line_number}: {item.reason}")
            report.parse_failures.append(item)
            continue

        record = build(item)
        if record is None:
            report.rows_filtered += 1
            continue

        batch.append(record.to_document())
        if len(batch) >= batch_size:
            flush(batch)
            batch = []

    if batch:
        flush(batch)

    report.elapsed = time.perf_counter() - started
    logger.info(
        f"Seeded {report.records_written} reviews from {report.rows_seen} rows "
        f"in {report.batch_count} batches ({report.elapsed:.2f}s)"
    )
    return report

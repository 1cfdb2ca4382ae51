"""Workflow orchestration: bootstrap, seed, aggregate, verify.

Steps run strictly in order because each depends on the durable state
left by the previous one. The MongoClient is owned by the caller and
passed in; nothing here opens or closes connections.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Optional

from .aggregator import AggregationReport, rebuild_all, recompute_properties
from .bootstrap import BootstrapResult, ensure_collection, ensure_writable_primary
from .config import MongoSettings
from .errors import BootstrapTimeoutError, CollectionStatus, SourceUnavailableError
from .models import ReviewRecord
from .seeder import (
    BatchOutcome,
    BookingReviewBuilder,
    SeedMode,
    SeedReport,
    TimestampPolicy,
    build_review,
    seed_reviews,
)
from .sources import (
    DEFAULT_LAYOUT,
    SAMPLE_BOOKINGS,
    SAMPLE_ROWS,
    CsvLayout,
    read_booking_rows,
    read_csv_rows,
)
from .topology import DEFAULT_TOPOLOGY, ReplicaSetTopology
from .verifier import VerificationResult, verify_review_count

if TYPE_CHECKING:
    from pymongo import MongoClient

logger = logging.getLogger(__name__)

# Exit codes
EXIT_OK = 0
EXIT_VERIFICATION_FAILED = 1
EXIT_BOOTSTRAP_TIMEOUT = 2


class WorkflowMode(str, Enum):
    """What a run does to the review collection."""

    FULL_RESEED = "full_reseed"
    APPEND = "append"
    RECOMPUTE_PROPERTY = "recompute_property"


class SourceKind(str, Enum):
    """Where review rows come from."""

    CSV = "csv"
    SAMPLE = "sample"
    BOOKINGS = "bookings"


@dataclass
class WorkflowConfig:
    """Every option of a workflow run.

    ``timeout``, ``batch_size`` and ``poll_interval`` fall back to
    ``MongoSettings`` when left as None.
    """

    mode: WorkflowMode = WorkflowMode.FULL_RESEED
    source: SourceKind = SourceKind.SAMPLE
    csv_path: Path | None = None
    bookings_path: Path | None = None
    layout: CsvLayout = DEFAULT_LAYOUT
    property_ids: list[int] = field(default_factory=list)
    topology: ReplicaSetTopology = DEFAULT_TOPOLOGY
    timeout: float | None = None
    poll_interval: float | None = None
    batch_size: int | None = None
    completed_before: datetime | None = None
    random_seed: int | None = None
    fallback_to_sample: bool = False
    skip_bootstrap: bool = False
    on_batch: Callable[[BatchOutcome], None] | None = None

    def validate(self) -> None:
        """Reject option combinations that cannot run."""
        if self.mode is WorkflowMode.RECOMPUTE_PROPERTY and not self.property_ids:
            raise ValueError("recompute_property mode needs at least one property id")
        if self.source is SourceKind.CSV and self.csv_path is None and not self.fallback_to_sample:
            raise ValueError("csv source needs a csv path")
        if self.batch_size is not None and self.batch_size < 1:
            raise ValueError(f"batch size must be at least 1, got {self.batch_size}")


@dataclass
class WorkflowReport:
    """End-of-run report; never a silent partial success."""

    mode: WorkflowMode
    bootstrap: BootstrapResult | None = None
    bootstrap_error: BootstrapTimeoutError | None = None
    collection_status: CollectionStatus | None = None
    seed: SeedReport | None = None
    aggregation: AggregationReport | None = None
    verification: VerificationResult | None = None
    timestamp_policy: TimestampPolicy | None = None
    completed_before: datetime | None = None
    used_sample_fallback: bool = False

    @property
    def succeeded(self) -> bool:
        if self.bootstrap_error is not None:
            return False
        if self.verification is not None and not self.verification.passed:
            return False
        return self.aggregation is None or self.aggregation.ok

    def exit_code(self, strict: bool = False) -> int:
        """0 on success, 2 on bootstrap timeout, 1 on mismatch when strict."""
        if self.bootstrap_error is not None:
            return EXIT_BOOTSTRAP_TIMEOUT
        if strict and not self.succeeded:
            return EXIT_VERIFICATION_FAILED
        return EXIT_OK


@dataclass
class PreparedSource:
    """Items to seed plus how to turn each one into a review."""

    items: Iterable[Any]
    build: Callable[[Any], Optional[ReviewRecord]]
    policy: TimestampPolicy = TimestampPolicy.SYNTHETIC
    include_booking_index: bool = False
    used_sample_fallback: bool = False


def prepare_source(config: WorkflowConfig, completed_before: datetime) -> PreparedSource:
    """Open the configured row source.

    Raises:
        SourceUnavailableError: The CSV is missing and fallback is off.
    """
    if config.source is SourceKind.BOOKINGS:
        builder = BookingReviewBuilder(completed_before, random.Random(config.random_seed))
        items: Iterable[Any] = (
            read_booking_rows(config.bookings_path) if config.bookings_path else SAMPLE_BOOKINGS
        )
        return PreparedSource(
            items, builder, TimestampPolicy.BOOKING_DRIVEN, include_booking_index=True
        )

    if config.source is SourceKind.CSV:
        try:
            if config.csv_path is None:
                raise SourceUnavailableError("No CSV path given")
            return PreparedSource(read_csv_rows(config.csv_path, config.layout), build_review)
        except SourceUnavailableError as e:
            if not config.fallback_to_sample:
                raise
            logger.warning(f"{e} - falling back to sample data")
            return PreparedSource(SAMPLE_ROWS, build_review, used_sample_fallback=True)

    return PreparedSource(SAMPLE_ROWS, build_review)


def run_workflow(
    client: MongoClient,
    settings: MongoSettings,
    config: WorkflowConfig,
) -> WorkflowReport:
    """Run bootstrap, seed, aggregate and verify in sequence.

    A bootstrap timeout stops the run before any write and is recorded in
    the report. Source and connection errors propagate.
    """
    config.validate()
    report = WorkflowReport(mode=config.mode)

    if not config.skip_bootstrap:
        try:
            report.bootstrap = ensure_writable_primary(
                client,
                config.topology,
                settings,
                timeout=config.timeout,
                interval=config.poll_interval,
            )
        except BootstrapTimeoutError as e:
            logger.error(str(e))
            report.bootstrap_error = e
            return report

    db = client[settings.database]
    report.collection_status = ensure_collection(db, settings.reviews_collection)

    if config.mode is WorkflowMode.RECOMPUTE_PROPERTY:
        report.aggregation = recompute_properties(
            db,
            config.property_ids,
            reviews_collection=settings.reviews_collection,
            ratings_collection=settings.ratings_collection,
        )
        return report

    completed_before = config.completed_before or datetime.now(timezone.utc)
    if config.source is SourceKind.BOOKINGS:
        report.completed_before = completed_before

    source = prepare_source(config, completed_before)
    report.used_sample_fallback = source.used_sample_fallback
    report.timestamp_policy = source.policy

    seed_mode = SeedMode.APPEND if config.mode is WorkflowMode.APPEND else SeedMode.FULL_RESEED
    reviews = db[settings.reviews_collection]
    report.seed = seed_reviews(
        reviews,
        source.items,
        batch_size=config.batch_size or settings.batch_size,
        mode=seed_mode,
        build=source.build,
        include_booking_index=source.include_booking_index,
        on_batch=config.on_batch,
    )

    report.aggregation = rebuild_all(
        db,
        reviews_collection=settings.reviews_collection,
        ratings_collection=settings.ratings_collection,
    )

    report.verification = verify_review_count(reviews, report.seed.expected_total)
    return report

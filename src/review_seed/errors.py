"""Exception hierarchy and benign-status enums for review seeding.

Failures that abort a run are exceptions. Outcomes local to a single row
or batch are plain values collected in reports (see ``sources.RowParseError``
and ``seeder.BatchOutcome``).
"""

from __future__ import annotations

from enum import Enum


class ReviewSeedError(Exception):
    """Base class for errors that abort a seeding workflow."""


class BootstrapTimeoutError(ReviewSeedError):
    """No writable primary was confirmed before the deadline."""

    def __init__(self, timeout: float, attempts: int) -> None:
        self.timeout = timeout
        self.attempts = attempts
        super().__init__(
            f"Timed out after {timeout:g}s waiting for a writable primary "
            f"({attempts} attempts)"
        )


class TopologyError(ReviewSeedError):
    """Replica-set topology file is missing or invalid."""

    def __init__(self, message: str, problems: list[str] | None = None) -> None:
        self.problems = problems or []
        if self.problems:
            message = message + ": " + "; ".join(self.problems)
        super().__init__(message)


class SourceUnavailableError(ReviewSeedError):
    """Row source could not be opened."""


class AggregationError(ReviewSeedError):
    """The rating grouping query could not be executed."""


class InitStatus(str, Enum):
    """Result of a replica-set initiation call."""

    INITIATED = "initiated"
    ALREADY_INITIALIZED = "already_initialized"


class CollectionStatus(str, Enum):
    """Result of a collection creation call."""

    CREATED = "created"
    ALREADY_EXISTS = "already_exists"

"""Review seeding toolkit for the MongoDB review replica set.

Bootstraps the replica set, seeds review documents from CSV exports,
bookings or sample data, materializes per-property rating rollups and
verifies the result.
"""

from .aggregator import AggregationReport, AllProperties, SingleProperty, recompute
from .bootstrap import BootstrapResult, ensure_writable_primary
from .config import MongoSettings, get_mongo_client
from .errors import (
    AggregationError,
    BootstrapTimeoutError,
    CollectionStatus,
    InitStatus,
    ReviewSeedError,
    SourceUnavailableError,
    TopologyError,
)
from .models import PropertyRating, ReviewRecord
from .seeder import SeedMode, SeedReport, seed_reviews
from .verifier import VerificationResult, verify_review_count
from .workflow import SourceKind, WorkflowConfig, WorkflowMode, WorkflowReport, run_workflow

__all__ = [
    "AggregationError",
    "AggregationReport",
    "AllProperties",
    "BootstrapResult",
    "BootstrapTimeoutError",
    "CollectionStatus",
    "InitStatus",
    "MongoSettings",
    "PropertyRating",
    "ReviewRecord",
    "ReviewSeedError",
    "SeedMode",
    "SeedReport",
    "SingleProperty",
    "SourceKind",
    "SourceUnavailableError",
    "TopologyError",
    "VerificationResult",
    "WorkflowConfig",
    "WorkflowMode",
    "WorkflowReport",
    "ensure_writable_primary",
    "get_mongo_client",
    "recompute",
    "run_workflow",
    "seed_reviews",
    "verify_review_count",
]

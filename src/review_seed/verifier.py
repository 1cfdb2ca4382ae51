"""Verifier: reconcile expected and persisted counts.

Results are diagnostics only; nothing here repairs data.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .aggregator import RATING_SORT_FIELDS
from .config import DEFAULT_RATINGS_COLLECTION, DEFAULT_REVIEWS_COLLECTION
from .seeder import REVIEW_INDEX_FIELDS

if TYPE_CHECKING:
    from pymongo.collection import Collection
    from pymongo.database import Database

logger = logging.getLogger(__name__)

# Cap the ids listed in a failure message
MAX_LISTED_IDS = 10


@dataclass
class VerificationResult:
    """Result of a verification check."""

    name: str
    expected: int | None
    actual: int
    passed: bool
    message: str = ""

    @property
    def matched(self) -> bool:
        return self.passed


@dataclass
class ValidationReport:
    """Complete validation report."""

    reviews: list[VerificationResult] = field(default_factory=list)
    ratings: list[VerificationResult] = field(default_factory=list)
    indexes: list[VerificationResult] = field(default_factory=list)

    @property
    def all_passed(self) -> bool:
        return all(r.passed for r in self.reviews + self.ratings + self.indexes)

    @property
    def failures(self) -> list[VerificationResult]:
        return [r for r in self.reviews + self.ratings + self.indexes if not r.passed]


def _list_ids(ids: list[int]) -> str:
    shown = ", ".join(str(i) for i in ids[:MAX_LISTED_IDS])
    if len(ids) > MAX_LISTED_IDS:
        shown += f", ... ({len(ids) - MAX_LISTED_IDS} more)"
    return shown


def verify_review_count(collection: Collection, expected: int) -> VerificationResult:
    """Compare the persisted review count with the seeder's total."""
    actual = collection.count_documents({})
    passed = actual == expected
    if not passed:
        logger.warning(f"Count mismatch - expected {expected} but found {actual}")

    return VerificationResult(
        name="Review count",
        expected=expected,
        actual=actual,
        passed=passed,
        message="" if passed else f"expected {expected}, found {actual}",
    )


def verify_ratings(
    db: Database,
    reviews_collection: str = DEFAULT_REVIEWS_COLLECTION,
    ratings_collection: str = DEFAULT_RATINGS_COLLECTION,
) -> list[VerificationResult]:
    """Check the ratings collection against the live review counts.

    Three checks: rows whose ``total_reviews`` disagrees with the reviews,
    rating rows without any reviews, and reviewed properties with no row.
    """
    review_counts = {
        doc["_id"]: doc["count"]
        for doc in db[reviews_collection].aggregate(
            [{"$group": {"_id": "$property_id", "count": {"$sum": 1}}}]
        )
    }
    rated = {
        doc["property_id"]: doc["total_reviews"]
        for doc in db[ratings_collection].find({}, {"property_id": 1, "total_reviews": 1})
    }

    stale = sorted(pid for pid, total in rated.items() if pid in review_counts and review_counts[pid] != total)
    orphaned = sorted(pid for pid in rated if pid not in review_counts)
    missing = sorted(pid for pid in review_counts if pid not in rated)

    return [
        VerificationResult(
            name="Stale review totals",
            expected=0,
            actual=len(stale),
            passed=not stale,
            message="" if not stale else f"total_reviews out of date for {_list_ids(stale)}",
        ),
        VerificationResult(
            name="Ratings without reviews",
            expected=0,
            actual=len(orphaned),
            passed=not orphaned,
            message="" if not orphaned else f"no reviews for {_list_ids(orphaned)}",
        ),
        VerificationResult(
            name="Reviewed properties without rating",
            expected=0,
            actual=len(missing),
            passed=not missing,
            message="" if not missing else f"no rating for {_list_ids(missing)}",
        ),
    ]


def verify_indexes(collection: Collection, expected_fields: Iterable[str]) -> list[VerificationResult]:
    """Check that every expected field leads some index on the collection."""
    indexed = {
        info["key"][0][0] for info in collection.index_information().values() if info.get("key")
    }
    results = []
    for name in expected_fields:
        exists = name in indexed
        results.append(VerificationResult(
            name=f"Index: {collection.name}.{name}",
            expected=1,
            actual=1 if exists else 0,
            passed=exists,
            message="" if exists else f"Missing index on {name}",
        ))
    return results


def run_validation(
    db: Database,
    expected_reviews: int | None = None,
    reviews_collection: str = DEFAULT_REVIEWS_COLLECTION,
    ratings_collection: str = DEFAULT_RATINGS_COLLECTION,
    check_indexes: bool = False,
) -> ValidationReport:
    """Run every check; the review count is only compared when expected is given."""
    report = ValidationReport()
    reviews = db[reviews_collection]

    if expected_reviews is None:
        actual = reviews.count_documents({})
        report.reviews.append(
            VerificationResult(name="Review count", expected=None, actual=actual, passed=True)
        )
    else:
        report.reviews.append(verify_review_count(reviews, expected_reviews))

    report.ratings = verify_ratings(db, reviews_collection, ratings_collection)

    if check_indexes:
        report.indexes = verify_indexes(reviews, REVIEW_INDEX_FIELDS)
        report.indexes.extend(
            verify_indexes(db[ratings_collection], ("property_id", *RATING_SORT_FIELDS))
        )
    return report

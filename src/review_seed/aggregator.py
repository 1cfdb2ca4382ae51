"""Rating aggregator: materialize per-property rating rollups from reviews.

Two scopes are supported:

1. ``AllProperties`` rebuilds the whole ratings collection. Results are
   written to a staging collection which is then renamed over the target,
   so readers never see a mix of old and new rows and properties that lost
   all their reviews disappear.
2. ``SingleProperty`` upserts one property's row, or deletes it when the
   property has no reviews left.

Averages are rounded half-up to two places in Python; the server's
``$round`` rounds half to even.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Any, Union

from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError

from .config import DEFAULT_RATINGS_COLLECTION, DEFAULT_REVIEWS_COLLECTION
from .errors import AggregationError
from .models import PropertyRating, as_utc

if TYPE_CHECKING:
    from pymongo.collection import Collection
    from pymongo.database import Database

logger = logging.getLogger(__name__)

STAGING_SUFFIX = "_staging"
RATING_PLACES = Decimal("0.01")
RATING_SORT_FIELDS = ("avg_satisfaction_rating", "avg_cleanliness_rating", "total_reviews")


@dataclass(frozen=True)
class AllProperties:
    """Rebuild ratings for every property."""

    def describe(self) -> str:
        return "all properties"


@dataclass(frozen=True)
class SingleProperty:
    """Recompute the rating of one property."""

    property_id: int

    def describe(self) -> str:
        return f"property {self.property_id}"


RatingScope = Union[AllProperties, SingleProperty]


@dataclass
class AggregationReport:
    """What a recompute changed."""

    scope: str
    properties_written: int = 0
    properties_deleted: int = 0
    failures: dict[int, str] = field(default_factory=dict)
    index_error: str | None = None
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return not self.failures


def round_half_up(value: float) -> float:
    """Round to two decimal places, halves away from zero."""
    return float(Decimal(str(value)).quantize(RATING_PLACES, rounding=ROUND_HALF_UP))


def rating_pipeline(property_id: int | None = None) -> list[dict[str, Any]]:
    """Build the grouping pipeline, optionally restricted to one property."""
    pipeline: list[dict[str, Any]] = []
    if property_id is not None:
        pipeline.append({"$match": {"property_id": property_id}})
    pipeline.append(
        {
            "$group": {
                "_id": "$property_id",
                "avg_cleanliness_rating": {"$avg": "$cleanliness_rating"},
                "avg_satisfaction_rating": {"$avg": "$satisfaction_rating"},
                "total_reviews": {"$sum": 1},
                "last_review_at": {"$max": "$created_at"},
            }
        }
    )
    pipeline.append({"$sort": {"_id": ASCENDING}})
    return pipeline


def rating_from_group(group: dict[str, Any], computed_at: datetime) -> PropertyRating:
    """Turn one ``$group`` result into a PropertyRating."""
    last_review_at = group.get("last_review_at")
    return PropertyRating(
        property_id=group["_id"],
        avg_cleanliness_rating=round_half_up(group["avg_cleanliness_rating"]),
        avg_satisfaction_rating=round_half_up(group["avg_satisfaction_rating"]),
        total_reviews=group["total_reviews"],
        last_updated=computed_at,
        last_review_at=as_utc(last_review_at) if last_review_at else computed_at,
    )


def ensure_rating_indexes(collection: Collection) -> list[str]:
    """Unique key on property_id plus descending sort indexes."""
    names = [collection.create_index([("property_id", ASCENDING)], unique=True)]
    names.extend(
        collection.create_index([(name, DESCENDING)]) for name in RATING_SORT_FIELDS
    )
    return names


def rebuild_all(
    db: Database,
    *,
    reviews_collection: str = DEFAULT_REVIEWS_COLLECTION,
    ratings_collection: str = DEFAULT_RATINGS_COLLECTION,
    computed_at: datetime | None = None,
) -> AggregationReport:
    """Drop and rebuild the ratings collection from every review.

    Raises:
        AggregationError: The grouping query or the rebuild failed.
    """
    computed_at = computed_at or datetime.now(timezone.utc)
    report = AggregationReport(scope=AllProperties().describe())
    started = time.perf_counter()

    try:
        groups = list(db[reviews_collection].aggregate(rating_pipeline()))
    except PyMongoError as e:
        raise AggregationError(f"Rating aggregation failed: {e}") from e

    ratings = [rating_from_group(group, computed_at) for group in groups]
    staging_name = ratings_collection + STAGING_SUFFIX

    try:
        if not ratings:
            logger.info("No reviews found - dropping property ratings")
            db.drop_collection(ratings_collection)
        else:
            db.drop_collection(staging_name)
            staging = db[staging_name]
            staging.insert_many([r.to_document() for r in ratings], ordered=False)
            ensure_rating_indexes(staging)
            staging.rename(ratings_collection, dropTarget=True)
    except PyMongoError as e:
        raise AggregationError(f"Rebuilding {ratings_collection} failed: {e}") from e

    report.properties_written = len(ratings)
    report.elapsed = time.perf_counter() - started
    logger.info(
        f"Rebuilt {len(ratings)} property ratings in {report.elapsed * 1000:.0f}ms"
    )
    return report


def _recompute_one(
    reviews: Collection,
    ratings: Collection,
    property_id: int,
    computed_at: datetime,
    report: AggregationReport,
) -> None:
    try:
        groups = list(reviews.aggregate(rating_pipeline(property_id)))
        if groups:
            rating = rating_from_group(groups[0], computed_at)
            ratings.replace_one({"property_id": property_id}, rating.to_document(), upsert=True)
            report.properties_written += 1
        else:
            # A property with no reviews cannot keep a rating
            result = ratings.delete_one({"property_id": property_id})
            report.properties_deleted += result.deleted_count
    except PyMongoError as e:
        logger.warning(f"Rating recompute failed for property {property_id}: {e}")
        report.failures[property_id] = str(e)


def recompute_properties(
    db: Database,
    property_ids: Iterable[int],
    *,
    reviews_collection: str = DEFAULT_REVIEWS_COLLECTION,
    ratings_collection: str = DEFAULT_RATINGS_COLLECTION,
    computed_at: datetime | None = None,
) -> AggregationReport:
    """Recompute several properties one at a time.

    A failure for one property is recorded and the rest still run.
    """
    ids = list(property_ids)
    computed_at = computed_at or datetime.now(timezone.utc)
    scope = SingleProperty(ids[0]).describe() if len(ids) == 1 else f"{len(ids)} properties"
    report = AggregationReport(scope=scope)
    started = time.perf_counter()

    ratings = db[ratings_collection]
    try:
        ensure_rating_indexes(ratings)
    except PyMongoError as e:
        # Upserts still work without the sort indexes
        logger.warning(f"Rating index creation failed: {e}")
        report.index_error = str(e)
    for property_id in ids:
        _recompute_one(db[reviews_collection], ratings, property_id, computed_at, report)

    report.elapsed = time.perf_counter() - started
    return report


def recompute(
    db: Database,
    scope: RatingScope,
    *,
    reviews_collection: str = DEFAULT_REVIEWS_COLLECTION,
    ratings_collection: str = DEFAULT_RATINGS_COLLECTION,
    computed_at: datetime | None = None,
) -> AggregationReport:
    """Recompute ratings for ``scope``."""
    if isinstance(scope, SingleProperty):
        return recompute_properties(
            db,
            [scope.property_id],
            reviews_collection=reviews_collection,
            ratings_collection=ratings_collection,
            computed_at=computed_at,
        )
    return rebuild_all(
        db,
        reviews_collection=reviews_collection,
        ratings_collection=ratings_collection,
        computed_at=computed_at,
    )

"""Read helpers for the materialized property-ratings collection."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from pymongo import DESCENDING

from .config import DEFAULT_RATINGS_COLLECTION
from .models import PropertyRating

if TYPE_CHECKING:
    from pymongo.database import Database

RATING_TYPE_FIELDS = {
    "satisfaction": "avg_satisfaction_rating",
    "cleanliness": "avg_cleanliness_rating",
}


@dataclass
class RatingPage:
    """One page of ratings plus the collection total."""

    items: list[PropertyRating] = field(default_factory=list)
    total: int = 0
    limit: int = 100
    skip: int = 0


def get_property_rating(
    db: Database,
    property_id: int,
    ratings_collection: str = DEFAULT_RATINGS_COLLECTION,
) -> PropertyRating | None:
    doc = db[ratings_collection].find_one({"property_id": property_id})
    return PropertyRating.from_document(doc) if doc else None


def list_property_ratings(
    db: Database,
    limit: int = 100,
    skip: int = 0,
    ratings_collection: str = DEFAULT_RATINGS_COLLECTION,
) -> RatingPage:
    """Page through ratings, best satisfaction first."""
    collection = db[ratings_collection]
    cursor = (
        collection.find()
        .sort([("avg_satisfaction_rating", DESCENDING), ("property_id", DESCENDING)])
        .skip(skip)
        .limit(limit)
    )
    return RatingPage(
        items=[PropertyRating.from_document(doc) for doc in cursor],
        total=collection.count_documents({}),
        limit=limit,
        skip=skip,
    )


def top_rated_properties(
    db: Database,
    limit: int = 10,
    rating_type: str = "satisfaction",
    ratings_collection: str = DEFAULT_RATINGS_COLLECTION,
) -> list[PropertyRating]:
    """Return the highest rated properties by satisfaction or cleanliness."""
    if rating_type not in RATING_TYPE_FIELDS:
        raise ValueError(
            f"Unknown rating type {rating_type!r}; expected one of {sorted(RATING_TYPE_FIELDS)}"
        )

    cursor = (
        db[ratings_collection]
        .find()
        .sort([(RATING_TYPE_FIELDS[rating_type], DESCENDING), ("total_reviews", DESCENDING)])
        .limit(limit)
    )
    return [PropertyRating.from_document(doc) for doc in cursor]

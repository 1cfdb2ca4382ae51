"""Document models for the review and property-rating collections."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes as returned by pymongo by default."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class ReviewRecord:
    """A single guest review. Immutable once written."""

    property_id: int
    cleanliness_rating: int
    satisfaction_rating: int
    comment_text: str
    created_at: datetime
    booking_id: int | None = None

    def to_document(self) -> dict[str, Any]:
        """Return the MongoDB document for this review."""
        doc: dict[str, Any] = {
            "property_id": self.property_id,
            "cleanliness_rating": self.cleanliness_rating,
            "satisfaction_rating": self.satisfaction_rating,
            "comment_text": self.comment_text,
            "created_at": self.created_at,
        }
        if self.booking_id is not None:
            doc["booking_id"] = self.booking_id
        return doc

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> ReviewRecord:
        """Create a ReviewRecord from a stored document."""
        return cls(
            property_id=doc["property_id"],
            cleanliness_rating=doc["cleanliness_rating"],
            satisfaction_rating=doc["satisfaction_rating"],
            comment_text=doc.get("comment_text", ""),
            created_at=as_utc(doc["created_at"]),
            booking_id=doc.get("booking_id"),
        )


@dataclass(frozen=True)
class PropertyRating:
    """Materialized rating rollup for one property.

    Entirely derived from the property's reviews; never edited by hand.
    """

    property_id: int
    avg_cleanliness_rating: float
    avg_satisfaction_rating: float
    total_reviews: int
    last_updated: datetime
    last_review_at: datetime

    def to_document(self) -> dict[str, Any]:
        """Return the MongoDB document for this rating."""
        return {
            "property_id": self.property_id,
            "avg_cleanliness_rating": self.avg_cleanliness_rating,
            "avg_satisfaction_rating": self.avg_satisfaction_rating,
            "total_reviews": self.total_reviews,
            "last_updated": self.last_updated,
            "last_review_at": self.last_review_at,
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> PropertyRating:
        """Create a PropertyRating from a stored document."""
        return cls(
            property_id=doc["property_id"],
            avg_cleanliness_rating=doc["avg_cleanliness_rating"],
            avg_satisfaction_rating=doc["avg_satisfaction_rating"],
            total_reviews=doc["total_reviews"],
            last_updated=as_utc(doc["last_updated"]),
            last_review_at=as_utc(doc["last_review_at"]),
        )

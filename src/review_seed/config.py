"""Environment-driven configuration for the MongoDB connection and run defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import TYPE_CHECKING

from dotenv import load_dotenv

if TYPE_CHECKING:
    from pymongo import MongoClient

# Defaults
DEFAULT_MONGO_URI = "mongodb://localhost:27017/?directConnection=true"
DEFAULT_DATABASE = "airbnb"
DEFAULT_REVIEWS_COLLECTION = "reviews"
DEFAULT_RATINGS_COLLECTION = "property_ratings"
DEFAULT_PROBE_DATABASE = "test"
DEFAULT_PROBE_COLLECTION = "testWrite"
DEFAULT_BATCH_SIZE = 1000
DEFAULT_BOOTSTRAP_TIMEOUT = 60.0
DEFAULT_POLL_INTERVAL = 2.0
DEFAULT_SERVER_SELECTION_TIMEOUT_MS = 5000


@dataclass
class MongoSettings:
    """Connection and collection settings.

    Built from environment variables (optionally via a ``.env`` file);
    command-line options override individual fields afterwards.
    """

    uri: str = DEFAULT_MONGO_URI
    database: str = DEFAULT_DATABASE
    reviews_collection: str = DEFAULT_REVIEWS_COLLECTION
    ratings_collection: str = DEFAULT_RATINGS_COLLECTION
    probe_database: str = DEFAULT_PROBE_DATABASE
    probe_collection: str = DEFAULT_PROBE_COLLECTION
    server_selection_timeout_ms: int = DEFAULT_SERVER_SELECTION_TIMEOUT_MS
    batch_size: int = DEFAULT_BATCH_SIZE
    bootstrap_timeout: float = DEFAULT_BOOTSTRAP_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL

    @classmethod
    def from_env(cls) -> MongoSettings:
        """Create settings from the process environment."""
        load_dotenv()

        return cls(
            uri=os.getenv("MONGO_URI", DEFAULT_MONGO_URI),
            database=os.getenv("MONGO_DB", DEFAULT_DATABASE),
            reviews_collection=os.getenv("REVIEWS_COLLECTION", DEFAULT_REVIEWS_COLLECTION),
            ratings_collection=os.getenv("RATINGS_COLLECTION", DEFAULT_RATINGS_COLLECTION),
            probe_database=os.getenv("PROBE_DB", DEFAULT_PROBE_DATABASE),
            probe_collection=os.getenv("PROBE_COLLECTION", DEFAULT_PROBE_COLLECTION),
            server_selection_timeout_ms=int(
                os.getenv(
                    "MONGO_SERVER_SELECTION_TIMEOUT_MS",
                    str(DEFAULT_SERVER_SELECTION_TIMEOUT_MS),
                )
            ),
            batch_size=int(os.getenv("SEED_BATCH_SIZE", str(DEFAULT_BATCH_SIZE))),
            bootstrap_timeout=float(
                os.getenv("BOOTSTRAP_TIMEOUT", str(DEFAULT_BOOTSTRAP_TIMEOUT))
            ),
            poll_interval=float(
                os.getenv("BOOTSTRAP_POLL_INTERVAL", str(DEFAULT_POLL_INTERVAL))
            ),
        )


def get_mongo_client(settings: MongoSettings) -> MongoClient:
    """Create a single MongoClient for the whole run.

    The caller owns the client and must close it.
    """
    from pymongo import MongoClient

    return MongoClient(
        settings.uri,
        serverSelectionTimeoutMS=settings.server_selection_timeout_ms,
    )

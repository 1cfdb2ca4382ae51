"""Pytest configuration and fixtures for review-seed."""

from __future__ import annotations

import copy
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from itertools import count
from pathlib import Path
from typing import Any

import pytest
from pymongo.errors import BulkWriteError, CollectionInvalid, OperationFailure

from review_seed.config import MongoSettings
from review_seed.sources import SourceRow

# ============================================================================
# In-memory MongoDB fakes
#
# Only the calls this project makes are supported: equality filters,
# $match/$group/$sort pipelines with $avg, $sum and $max accumulators.
# ============================================================================

_object_ids = count(1)


@dataclass
class _InsertManyResult:
    inserted_ids: list[Any]


@dataclass
class _DeleteResult:
    deleted_count: int


@dataclass
class _UpdateResult:
    matched_count: int
    modified_count: int
    upserted_id: Any = None


def _matches(doc: dict[str, Any], filter_: dict[str, Any] | None) -> bool:
    return all(doc.get(key) == value for key, value in (filter_ or {}).items())


def _field(expression: Any, doc: dict[str, Any]) -> Any:
    if isinstance(expression, str) and expression.startswith("$"):
        return doc.get(expression[1:])
    return expression


def _accumulate(operator: str, argument: Any, docs: list[dict[str, Any]]) -> Any:
    values = [_field(argument, d) for d in docs]
    present = [v for v in values if v is not None]
    if operator == "$sum":
        return sum(present)
    if operator == "$avg":
        return sum(present) / len(present) if present else None
    if operator == "$max":
        return max(present) if present else None
    raise NotImplementedError(operator)


def _group(docs: list[dict[str, Any]], spec: dict[str, Any]) -> list[dict[str, Any]]:
    groups: dict[Any, list[dict[str, Any]]] = {}
    for doc in docs:
        groups.setdefault(_field(spec["_id"], doc), []).append(doc)

    results = []
    for key, members in groups.items():
        out: dict[str, Any] = {"_id": key}
        for name, accumulator in spec.items():
            if name == "_id":
                continue
            ((operator, argument),) = accumulator.items()
            out[name] = _accumulate(operator, argument, members)
        results.append(out)
    return results


def _sorted(docs: list[dict[str, Any]], keys: list[tuple[str, int]]) -> list[dict[str, Any]]:
    result = list(docs)
    for name, direction in reversed(keys):
        result.sort(key=lambda d: d.get(name), reverse=direction < 0)
    return result


class FakeCursor:
    """Chainable cursor over a snapshot of documents."""

    def __init__(self, docs: list[dict[str, Any]]) -> None:
        self._docs = docs

    def sort(self, keys: list[tuple[str, int]]) -> FakeCursor:
        self._docs = _sorted(self._docs, keys)
        return self

    def skip(self, n: int) -> FakeCursor:
        self._docs = self._docs[n:]
        return self

    def limit(self, n: int) -> FakeCursor:
        if n:
            self._docs = self._docs[:n]
        return self

    def __iter__(self) -> Iterator[dict[str, Any]]:
        return iter(copy.deepcopy(self._docs))


class FakeCollection:
    """In-memory stand-in for ``pymongo.collection.Collection``."""

    def __init__(self, database: FakeDatabase, name: str) -> None:
        self.database = database
        self.name = name
        self.docs: list[dict[str, Any]] = []
        self.indexes: dict[str, dict[str, Any]] = {"_id_": {"key": [("_id", 1)]}}
        self.insert_calls: list[int] = []
        # Return True for documents the server should reject
        self.reject: Callable[[dict[str, Any]], bool] | None = None
        self.insert_error: Exception | None = None
        self.aggregate_error: Exception | None = None
        self.write_error: Exception | None = None
        self.index_error: Exception | None = None

    def with_options(self, **_kwargs: Any) -> FakeCollection:
        return self

    def count_documents(self, filter_: dict[str, Any]) -> int:
        return sum(1 for d in self.docs if _matches(d, filter_))

    def insert_one(self, doc: dict[str, Any]) -> None:
        if self.write_error is not None:
            raise self.write_error
        self.insert_many([doc])

    def insert_many(self, docs: list[dict[str, Any]], ordered: bool = True) -> _InsertManyResult:
        self.insert_calls.append(len(docs))
        if self.insert_error is not None:
            raise self.insert_error

        inserted, errors = [], []
        for i, doc in enumerate(docs):
            if self.reject is not None and self.reject(doc):
                errors.append({"index": i, "code": 121, "errmsg": "Document failed validation"})
                if ordered:
                    break
                continue
            stored = dict(doc)
            stored.setdefault("_id", next(_object_ids))
            self.docs.append(stored)
            inserted.append(stored["_id"])

        if errors:
            raise BulkWriteError({"nInserted": len(inserted), "writeErrors": errors})
        return _InsertManyResult(inserted)

    def delete_many(self, filter_: dict[str, Any]) -> _DeleteResult:
        before = len(self.docs)
        self.docs = [d for d in self.docs if not _matches(d, filter_)]
        return _DeleteResult(before - len(self.docs))

    def delete_one(self, filter_: dict[str, Any]) -> _DeleteResult:
        if self.write_error is not None:
            raise self.write_error
        for i, doc in enumerate(self.docs):
            if _matches(doc, filter_):
                del self.docs[i]
                return _DeleteResult(1)
        return _DeleteResult(0)

    def replace_one(
        self, filter_: dict[str, Any], replacement: dict[str, Any], upsert: bool = False
    ) -> _UpdateResult:
        if self.write_error is not None:
            raise self.write_error
        for i, doc in enumerate(self.docs):
            if _matches(doc, filter_):
                self.docs[i] = {"_id": doc["_id"], **replacement}
                return _UpdateResult(1, 1)
        if upsert:
            new_id = next(_object_ids)
            self.docs.append({"_id": new_id, **replacement})
            return _UpdateResult(0, 0, new_id)
        return _UpdateResult(0, 0)

    def find(self, filter_: dict[str, Any] | None = None, projection: Any = None) -> FakeCursor:
        return FakeCursor([d for d in self.docs if _matches(d, filter_)])

    def find_one(self, filter_: dict[str, Any] | None = None) -> dict[str, Any] | None:
        for doc in self.find(filter_):
            return doc
        return None

    def aggregate(self, pipeline: list[dict[str, Any]]) -> list[dict[str, Any]]:
        if self.aggregate_error is not None:
            raise self.aggregate_error
        docs = copy.deepcopy(self.docs)
        for stage in pipeline:
            ((operator, spec),) = stage.items()
            if operator == "$match":
                docs = [d for d in docs if _matches(d, spec)]
            elif operator == "$group":
                docs = _group(docs, spec)
            elif operator == "$sort":
                docs = _sorted(docs, list(spec.items()))
            else:
                raise NotImplementedError(operator)
        return docs

    def create_index(self, keys: list[tuple[str, int]], unique: bool = False) -> str:
        if self.index_error is not None:
            raise self.index_error
        name = "_".join(f"{field}_{direction}" for field, direction in keys)
        self.indexes[name] = {"key": list(keys), "unique": unique}
        return name

    def index_information(self) -> dict[str, dict[str, Any]]:
        return copy.deepcopy(self.indexes)

    def rename(self, new_name: str, dropTarget: bool = False) -> None:
        if new_name in self.database.collections and not dropTarget:
            raise OperationFailure("target namespace exists", code=48)
        self.database.collections.pop(self.name)
        self.name = new_name
        self.database.collections[new_name] = self

    def drop(self) -> None:
        self.database.drop_collection(self.name)


class FakeDatabase:
    """In-memory stand-in for ``pymongo.database.Database``."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.collections: dict[str, FakeCollection] = {}

    def __getitem__(self, name: str) -> FakeCollection:
        if name not in self.collections:
            self.collections[name] = FakeCollection(self, name)
        return self.collections[name]

    def create_collection(self, name: str) -> FakeCollection:
        if name in self.collections:
            raise CollectionInvalid(f"collection {name} already exists")
        return self[name]

    def drop_collection(self, name: str) -> None:
        self.collections.pop(name, None)

    def list_collection_names(self) -> list[str]:
        return sorted(self.collections)


class FakeAdmin:
    """Scripted replica-set admin commands.

    ``statuses`` is consumed one entry per ``replSetGetStatus`` call; the
    last entry repeats. An Exception entry is raised instead of returned.
    """

    def __init__(self) -> None:
        self.initialized = False
        self.initiate_calls: list[dict[str, Any]] = []
        self.statuses: list[Any] = []

    def command(self, name: str, *args: Any) -> dict[str, Any]:
        if name == "replSetInitiate":
            self.initiate_calls.append(args[0])
            if self.initialized:
                raise OperationFailure("already initialized", code=23)
            self.initialized = True
            return {"ok": 1}
        if name == "replSetGetStatus":
            if not self.statuses:
                raise OperationFailure("no replset config has been received", code=94)
            status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
            if isinstance(status, Exception):
                raise status
            return status
        raise NotImplementedError(name)


class FakeClient:
    """In-memory stand-in for ``pymongo.MongoClient``."""

    def __init__(self) -> None:
        self.admin = FakeAdmin()
        self.databases: dict[str, FakeDatabase] = {}
        self.closed = False

    def __getitem__(self, name: str) -> FakeDatabase:
        if name not in self.databases:
            self.databases[name] = FakeDatabase(name)
        return self.databases[name]

    def close(self) -> None:
        self.closed = True


def primary_status(primary: str = "mongo1:27017") -> dict[str, Any]:
    """A replSetGetStatus document with one PRIMARY and two SECONDARY members."""
    hosts = [primary] + [h for h in ("mongo2:27017", "mongo3:27017") if h != primary]
    return {
        "ok": 1,
        "set": "rs0",
        "members": [
            {"name": host, "stateStr": "PRIMARY" if i == 0 else "SECONDARY", "health": 1}
            for i, host in enumerate(hosts)
        ],
    }


def election_pending_status() -> dict[str, Any]:
    """A replSetGetStatus document while no member has been elected."""
    return {
        "ok": 1,
        "set": "rs0",
        "members": [
            {"name": host, "stateStr": "STARTUP2", "health": 1}
            for host in ("mongo1:27017", "mongo2:27017", "mongo3:27017")
        ],
    }


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def settings() -> MongoSettings:
    """Settings with a short bootstrap window for tests."""
    return MongoSettings(database="airbnb_test", bootstrap_timeout=4, poll_interval=2)


@pytest.fixture
def fake_client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def ready_client(fake_client: FakeClient) -> FakeClient:
    """A fake client whose replica set already has a primary."""
    fake_client.admin.initialized = True
    fake_client.admin.statuses = [primary_status()]
    return fake_client


@pytest.fixture
def make_primary_status() -> Callable[..., dict[str, Any]]:
    return primary_status


@pytest.fixture
def pending_status() -> dict[str, Any]:
    return election_pending_status()


@pytest.fixture
def fake_db(fake_client: FakeClient, settings: MongoSettings) -> FakeDatabase:
    return fake_client[settings.database]


@pytest.fixture
def reviews(fake_db: FakeDatabase, settings: MongoSettings) -> FakeCollection:
    return fake_db[settings.reviews_collection]


@pytest.fixture
def scenario_rows() -> list[SourceRow]:
    """Two reviews for property 1 and one for property 2."""
    return [
        SourceRow(0, 1, 100, 93),
        SourceRow(1, 2, 80, 85),
        SourceRow(2, 1, 90, 87),
    ]


@pytest.fixture
def write_listings_csv(tmp_path: Path) -> Callable[[list[str]], Path]:
    """Factory fixture writing a listings CSV with the standard header.

    Each line is written verbatim after the header.
    """
    header = (
        "id,name,host_id,neighbourhood,cleanliness_rating,guest_satisfaction_overall,"
        "room_type,price,bedrooms,city,weekday"
    )

    def _write(lines: list[str], name: str = "listings.csv") -> Path:
        path = tmp_path / name
        path.write_text("\n".join([header, *lines]) + "\n", encoding="utf-8")
        return path

    return _write


def listing_line(property_id: Any, cleanliness: Any, satisfaction: Any) -> str:
    """One 11-column listings line with the given id and ratings."""
    return f"{property_id},Flat,7,Centre,{cleanliness},{satisfaction},Entire home,120,1,Amsterdam,True"


@pytest.fixture
def listing() -> Callable[[Any, Any, Any], str]:
    return listing_line


# ============================================================================
# Markers
# ============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests (deselect with '-m \"not integration\"')",
    )
    config.addinivalue_line(
        "markers",
        "requires_mongo: marks tests requiring a MongoDB replica set",
    )

"""Bootstrap coordinator: make sure the replica set has a writable primary.

The coordinator initiates the replica set (treating "already initialized"
as success), then polls ``replSetGetStatus`` until a member reports
PRIMARY and a probe write-then-drop against a throwaway collection
succeeds. Nothing else in the workflow may write before this returns.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable

from pymongo.errors import CollectionInvalid, OperationFailure, PyMongoError

from .config import MongoSettings
from .errors import BootstrapTimeoutError, CollectionStatus, InitStatus
from .retry import poll_until
from .topology import DEFAULT_TOPOLOGY, ReplicaSetTopology

if TYPE_CHECKING:
    from pymongo import MongoClient
    from pymongo.database import Database

logger = logging.getLogger(__name__)

# Server error codes
ALREADY_INITIALIZED_CODE = 23
NAMESPACE_EXISTS_CODE = 48
PRIMARY_STATE = "PRIMARY"


@dataclass
class BootstrapResult:
    """Outcome of a successful ``ensure_writable_primary`` call."""

    init_status: InitStatus
    primary: str
    attempts: int
    elapsed: float


@dataclass
class MemberStatus:
    """State of one replica-set member as reported by the server."""

    name: str
    state: str
    health: float


@dataclass
class ClusterStatus:
    """Replica-set name and member states."""

    set_name: str
    members: list[MemberStatus] = field(default_factory=list)

    @property
    def primary(self) -> str | None:
        for member in self.members:
            if member.state == PRIMARY_STATE:
                return member.name
        return None


def initiate_replica_set(
    client: MongoClient,
    topology: ReplicaSetTopology = DEFAULT_TOPOLOGY,
) -> InitStatus:
    """Run ``replSetInitiate`` once; an existing replica set is left untouched."""
    try:
        result = client.admin.command("replSetInitiate", topology.to_config())
    except OperationFailure as e:
        if e.code == ALREADY_INITIALIZED_CODE or "already initialized" in str(e).lower():
            logger.info(f"Replica set {topology.name} already initialized")
            return InitStatus.ALREADY_INITIALIZED
        raise

    logger.info(f"Replica set {topology.name} initiated: {result}")
    return InitStatus.INITIATED


def primary_member(status: dict[str, Any]) -> dict[str, Any] | None:
    """Return the PRIMARY member from a ``replSetGetStatus`` document."""
    if status.get("ok") != 1:
        return None
    for member in status.get("members", []):
        if member.get("stateStr") == PRIMARY_STATE:
            return member
    return None


def current_primary(client: MongoClient) -> str | None:
    """Return the primary's host name, or None while no primary is elected."""
    try:
        status = client.admin.command("replSetGetStatus")
    except PyMongoError as e:
        logger.debug(f"Replica set status unavailable: {e}")
        return None

    member = primary_member(status)
    return member.get("name") if member else None


def probe_write(client: MongoClient, settings: MongoSettings) -> bool:
    """Insert into and drop a throwaway collection; False means not ready yet."""
    collection = client[settings.probe_database][settings.probe_collection]
    try:
        collection.insert_one({"probe": datetime.now(timezone.utc)})
        collection.drop()
    except PyMongoError as e:
        logger.info(f"Primary not ready for writes, waiting... ({e})")
        return False
    return True


def ensure_writable_primary(
    client: MongoClient,
    topology: ReplicaSetTopology = DEFAULT_TOPOLOGY,
    settings: MongoSettings | None = None,
    *,
    timeout: float | None = None,
    interval: float | None = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> BootstrapResult:
    """Initiate the replica set if needed and wait for a writable primary.

    Safe to call repeatedly: an initialized replica set is never
    reconfigured.

    Args:
        client: Connected MongoClient.
        topology: Members and priorities used for initiation.
        settings: Probe location and default timeout/interval.
        timeout: Seconds to wait before giving up.
        interval: Seconds between status polls.
        sleep: Injectable sleep function.
        clock: Injectable monotonic clock.

    Raises:
        BootstrapTimeoutError: No writable primary before the deadline.
    """
    settings = settings or MongoSettings()
    timeout = settings.bootstrap_timeout if timeout is None else timeout
    interval = settings.poll_interval if interval is None else interval

    init_status = initiate_replica_set(client, topology)

    logger.info("Waiting for replica set primary election...")

    def check() -> str | None:
        primary = current_primary(client)
        if primary is None:
            return None
        if not probe_write(client, settings):
            return None
        return primary

    result = poll_until(check, timeout=timeout, interval=interval, sleep=sleep, clock=clock)
    if not result.succeeded:
        raise BootstrapTimeoutError(timeout, result.attempts)

    logger.info(f"Primary elected and ready: {result.value} ({result.elapsed:.1f}s)")
    return BootstrapResult(
        init_status=init_status,
        primary=result.value,
        attempts=result.attempts,
        elapsed=result.elapsed,
    )


def ensure_collection(db: Database, name: str) -> CollectionStatus:
    """Create a collection, reporting an existing one as benign."""
    try:
        db.create_collection(name)
    except CollectionInvalid:
        logger.debug(f"Collection {name} already exists")
        return CollectionStatus.ALREADY_EXISTS
    except OperationFailure as e:
        if e.code == NAMESPACE_EXISTS_CODE:
            return CollectionStatus.ALREADY_EXISTS
        raise

    logger.info(f"Created collection {name}")
    return CollectionStatus.CREATED


def describe_cluster(client: MongoClient) -> ClusterStatus:
    """Return the replica-set name and per-member state."""
    status = client.admin.command("replSetGetStatus")
    return ClusterStatus(
        set_name=status.get("set", ""),
        members=[
            MemberStatus(
                name=m.get("name", ""),
                state=m.get("stateStr", "UNKNOWN"),
                health=m.get("health", 0),
            )
            for m in status.get("members", [])
        ],
    )

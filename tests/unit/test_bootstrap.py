"""Unit tests for the bootstrap coordinator.

These tests validate:
1. "Already initialized" is success and never reconfigures the set
2. Polling waits for a PRIMARY and a successful probe write
3. A failing probe write is retried, not fatal
4. Timeout raises BootstrapTimeoutError
5. Collection creation reports an existing collection as benign
"""

from __future__ import annotations

from typing import Any, Callable
from unittest.mock import MagicMock, patch

import pytest
from pymongo.errors import NotPrimaryError, OperationFailure

from review_seed.bootstrap import (
    current_primary,
    describe_cluster,
    ensure_collection,
    ensure_writable_primary,
    initiate_replica_set,
    primary_member,
    probe_write,
)
from review_seed.config import MongoSettings
from review_seed.errors import BootstrapTimeoutError, CollectionStatus, InitStatus
from review_seed.topology import DEFAULT_TOPOLOGY


def no_sleep(_seconds: float) -> None:
    return None


class SteppingClock:
    """Clock that advances by ``step`` on every read."""

    def __init__(self, step: float = 1.0) -> None:
        self.now = 0.0
        self.step = step

    def __call__(self) -> float:
        current = self.now
        self.now += self.step
        return current


class TestInitiateReplicaSet:
    """Tests for initiate_replica_set."""

    def test_first_call_initiates(self, fake_client: Any) -> None:
        status = initiate_replica_set(fake_client, DEFAULT_TOPOLOGY)

        assert status is InitStatus.INITIATED
        assert fake_client.admin.initiate_calls == [DEFAULT_TOPOLOGY.to_config()]

    def test_already_initialized_is_success(self, fake_client: Any) -> None:
        fake_client.admin.initialized = True

        assert initiate_replica_set(fake_client) is InitStatus.ALREADY_INITIALIZED

    def test_other_failures_propagate(self) -> None:
        client = MagicMock()
        client.admin.command.side_effect = OperationFailure("No host described in new configuration", code=93)

        with pytest.raises(OperationFailure):
            initiate_replica_set(client)


class TestPrimaryDetection:
    """Tests for primary_member and current_primary."""

    def test_primary_member(self, make_primary_status: Callable[..., dict[str, Any]]) -> None:
        member = primary_member(make_primary_status("mongo2:27017"))

        assert member is not None
        assert member["name"] == "mongo2:27017"

    def test_no_primary_during_election(self, pending_status: dict[str, Any]) -> None:
        assert primary_member(pending_status) is None

    def test_not_ok_status(self, make_primary_status: Callable[..., dict[str, Any]]) -> None:
        status = make_primary_status()
        status["ok"] = 0

        assert primary_member(status) is None

    def test_status_error_means_no_primary(self, fake_client: Any) -> None:
        # No statuses scripted: replSetGetStatus raises NotYetInitialized
        assert current_primary(fake_client) is None


class TestProbeWrite:
    """Tests for probe_write."""

    def test_success_inserts_then_drops(self, settings: MongoSettings) -> None:
        client = MagicMock()
        collection = client[settings.probe_database][settings.probe_collection]

        assert probe_write(client, settings) is True
        collection.insert_one.assert_called_once()
        collection.drop.assert_called_once()

    def test_failure_means_not_ready(self, settings: MongoSettings) -> None:
        client = MagicMock()
        collection = client[settings.probe_database][settings.probe_collection]
        collection.insert_one.side_effect = NotPrimaryError("not primary")

        assert probe_write(client, settings) is False
        collection.drop.assert_not_called()

    def test_probe_leaves_no_collection(self, ready_client: Any, settings: MongoSettings) -> None:
        assert probe_write(ready_client, settings) is True
        assert ready_client[settings.probe_database].list_collection_names() == []


class TestEnsureWritablePrimary:
    """Tests for ensure_writable_primary."""

    def test_fresh_cluster_waits_for_election(
        self,
        fake_client: Any,
        settings: MongoSettings,
        pending_status: dict[str, Any],
        make_primary_status: Callable[..., dict[str, Any]],
    ) -> None:
        fake_client.admin.statuses = [pending_status, pending_status, make_primary_status()]

        result = ensure_writable_primary(
            fake_client, settings=settings, timeout=60, interval=2, sleep=no_sleep
        )

        assert result.init_status is InitStatus.INITIATED
        assert result.primary == "mongo1:27017"
        assert result.attempts == 3

    def test_already_initialized_cluster(self, ready_client: Any, settings: MongoSettings) -> None:
        result = ensure_writable_primary(ready_client, settings=settings, sleep=no_sleep)

        assert result.init_status is InitStatus.ALREADY_INITIALIZED
        assert result.attempts == 1

    def test_repeated_calls_never_reconfigure(self, ready_client: Any, settings: MongoSettings) -> None:
        ensure_writable_primary(ready_client, settings=settings, sleep=no_sleep)
        ensure_writable_primary(ready_client, settings=settings, sleep=no_sleep)

        assert ready_client.admin.initialized
        assert all(
            call == DEFAULT_TOPOLOGY.to_config() for call in ready_client.admin.initiate_calls
        )

    def test_probe_failure_is_retried(self, ready_client: Any, settings: MongoSettings) -> None:
        with patch("review_seed.bootstrap.probe_write", side_effect=[False, False, True]) as probe:
            result = ensure_writable_primary(
                ready_client, settings=settings, timeout=60, interval=2, sleep=no_sleep
            )

        assert probe.call_count == 3
        assert result.attempts == 3

    def test_timeout(self, fake_client: Any, settings: MongoSettings, pending_status: dict[str, Any]) -> None:
        fake_client.admin.statuses = [pending_status]

        with pytest.raises(BootstrapTimeoutError) as excinfo:
            ensure_writable_primary(
                fake_client,
                settings=settings,
                timeout=10,
                interval=2,
                sleep=no_sleep,
                clock=SteppingClock(step=1),
            )

        assert excinfo.value.timeout == 10
        assert excinfo.value.attempts >= 1
        assert "writable primary" in str(excinfo.value)

    def test_uses_settings_defaults(self, fake_client: Any, pending_status: dict[str, Any]) -> None:
        fake_client.admin.statuses = [pending_status]
        settings = MongoSettings(bootstrap_timeout=0, poll_interval=2)

        with pytest.raises(BootstrapTimeoutError) as excinfo:
            ensure_writable_primary(fake_client, settings=settings, sleep=no_sleep)

        assert excinfo.value.attempts == 1


class TestEnsureCollection:
    """Tests for ensure_collection."""

    def test_create_then_exists(self, fake_db: Any) -> None:
        assert ensure_collection(fake_db, "reviews") is CollectionStatus.CREATED
        assert ensure_collection(fake_db, "reviews") is CollectionStatus.ALREADY_EXISTS

    def test_namespace_exists_race(self) -> None:
        db = MagicMock()
        db.create_collection.side_effect = OperationFailure("Collection already exists", code=48)

        assert ensure_collection(db, "reviews") is CollectionStatus.ALREADY_EXISTS

    def test_other_failures_propagate(self) -> None:
        db = MagicMock()
        db.create_collection.side_effect = OperationFailure("not authorized", code=13)

        with pytest.raises(OperationFailure):
            ensure_collection(db, "reviews")


class TestDescribeCluster:
    """Tests for describe_cluster."""

    def test_members(self, ready_client: Any) -> None:
        status = describe_cluster(ready_client)

        assert status.set_name == "rs0"
        assert status.primary == "mongo1:27017"
        assert [m.state for m in status.members] == ["PRIMARY", "SECONDARY", "SECONDARY"]

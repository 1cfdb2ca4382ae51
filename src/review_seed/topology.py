"""Replica-set topology: member endpoints and priority weights.

The topology is either the built-in three-node default or a YAML file
validated against ``schemas/replica_set.schema.json``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from jsonschema import Draft7Validator

from .errors import TopologyError

SCHEMA_PATH = Path(__file__).parent / "schemas" / "replica_set.schema.json"


@dataclass(frozen=True)
class ReplicaSetMember:
    """One replica-set member endpoint."""

    member_id: int
    host: str
    priority: float = 1

    def to_config(self) -> dict[str, Any]:
        return {"_id": self.member_id, "host": self.host, "priority": self.priority}


@dataclass(frozen=True)
class ReplicaSetTopology:
    """Replica-set name plus its members."""

    name: str
    members: tuple[ReplicaSetMember, ...] = field(default_factory=tuple)

    def to_config(self) -> dict[str, Any]:
        """Return the document passed to ``replSetInitiate``."""
        return {
            "_id": self.name,
            "members": [m.to_config() for m in self.members],
        }

    @property
    def hosts(self) -> list[str]:
        return [m.host for m in self.members]


DEFAULT_TOPOLOGY = ReplicaSetTopology(
    name="rs0",
    members=(
        ReplicaSetMember(0, "mongo1:27017", priority=2),
        ReplicaSetMember(1, "mongo2:27017", priority=1),
        ReplicaSetMember(2, "mongo3:27017", priority=1),
    ),
)


def load_schema(schema_path: Path = SCHEMA_PATH) -> dict[str, Any]:
    """Load the topology JSON schema."""
    with open(schema_path) as f:
        return json.load(f)


def validate_topology_data(data: Any) -> list[str]:
    """Return every problem found in raw topology data (empty if valid)."""
    validator = Draft7Validator(load_schema())
    errors = sorted(validator.iter_errors(data), key=lambda e: [str(p) for p in e.absolute_path])
    problems = [
        f"{'/'.join(str(p) for p in error.absolute_path) or '<root>'}: {error.message}"
        for error in errors
    ]
    if problems:
        return problems

    # Uniqueness is not expressible per-property in draft 7
    ids = [m["id"] for m in data["members"]]
    hosts = [m["host"] for m in data["members"]]
    if len(set(ids)) != len(ids):
        problems.append("members: duplicate member id")
    if len(set(hosts)) != len(hosts):
        problems.append("members: duplicate host")
    return problems


def topology_from_dict(data: Any) -> ReplicaSetTopology:
    """Build a topology from parsed YAML/JSON data, validating it first."""
    problems = validate_topology_data(data)
    if problems:
        raise TopologyError("Invalid replica set topology", problems)

    return ReplicaSetTopology(
        name=data["name"],
        members=tuple(
            ReplicaSetMember(m["id"], m["host"], m.get("priority", 1))
            for m in data["members"]
        ),
    )


def load_topology(path: Path) -> ReplicaSetTopology:
    """Load and validate a topology YAML file."""
    if not path.exists():
        raise TopologyError(f"Topology file not found: {path}")

    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise TopologyError(f"Invalid YAML in {path}", [str(e)]) from e

    return topology_from_dict(data)

"""Domain models for the Chef keepalive handler."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from .errors import EventError


def _metadata(section: Mapping[str, Any], kind: str) -> Mapping[str, Any]:
    metadata = section.get("metadata")
    if metadata is None:
        return {}
    if not isinstance(metadata, Mapping):
        raise EventError(f"{kind} metadata must be a JSON object")
    return metadata


def _string_map(value: Any) -> Dict[str, str]:
    if not isinstance(value, Mapping):
        return {}
    return {str(key): str(item) for key, item in value.items() if item is not None}


@dataclass(frozen=True)
class EntityRef:
    """The monitored entity an event was raised for."""

    name: str
    namespace: str
    annotations: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class CheckRef:
    name: str
    annotations: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Event:
    """Sensu event as handed to the handler on stdin.

    Only the fields the handler reads are kept; ``raw`` holds the full payload.
    """

    check: CheckRef
    entity: EntityRef
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Event":
        if not isinstance(payload, Mapping):
            raise EventError("event payload must be a JSON object")

        entity = payload.get("entity")
        if not isinstance(entity, Mapping):
            raise EventError("event is missing an entity")
        entity_meta = _metadata(entity, "entity")
        entity_name = entity_meta.get("name") or ""
        if not entity_name:
            raise EventError("entity name must not be empty")

        check = payload.get("check")
        if not isinstance(check, Mapping):
            raise EventError("event is missing a check")
        check_meta = _metadata(check, "check")
        check_name = check_meta.get("name") or ""
        if not check_name:
            raise EventError("check name must not be empty")

        return cls(
            check=CheckRef(
                name=str(check_name),
                annotations=_string_map(check_meta.get("annotations")),
            ),
            entity=EntityRef(
                name=str(entity_name),
                namespace=str(entity_meta.get("namespace") or "default"),
                annotations=_string_map(entity_meta.get("annotations")),
            ),
            raw=dict(payload),
        )


class NodeStatus(str, Enum):
    EXISTS = "exists"
    ABSENT = "absent"
    INDETERMINATE = "indeterminate"


@dataclass(frozen=True)
class NodeLookup:
    """Outcome of asking the Chef Server whether a node exists.

    An indeterminate lookup carries the error and is treated like an existing
    node, so nothing gets deleted on an inconclusive answer.
    """

    node_name: str
    status: NodeStatus
    error: Optional[str] = None

    @classmethod
    def exists(cls, node_name: str) -> "NodeLookup":
        return cls(node_name=node_name, status=NodeStatus.EXISTS)

    @classmethod
    def absent(cls, node_name: str) -> "NodeLookup":
        return cls(node_name=node_name, status=NodeStatus.ABSENT)

    @classmethod
    def indeterminate(cls, node_name: str, error: str) -> "NodeLookup":
        return cls(node_name=node_name, status=NodeStatus.INDETERMINATE, error=error)

    @property
    def should_keep(self) -> bool:
        return self.status is not NodeStatus.ABSENT


class HandlerOutcome(str, Enum):
    """What a successful invocation did."""

    NODE_EXISTS = "node_exists"
    ENTITY_REMOVED = "entity_removed"
    ENTITY_ALREADY_ABSENT = "entity_already_absent"

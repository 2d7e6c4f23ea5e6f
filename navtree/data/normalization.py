"""Normalization of inbound node records.

The remote API and the push channel both deliver flat node records shaped
like ``{id, parentId, label, status}``. This module converts them into a
consistent internal form:

1. Field names → snake_case (``parentId`` → ``parent_id``)
2. Status values → NodeStatus (strings, booleans, enum values)
3. Parent ids → ``None`` for every root sentinel (null, 0, "0", "")
4. Only supplied fields are kept, so merges can tell "absent" from "empty"
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from .models import NodeId, NodeStatus


class RecordError(ValueError):
    """Raised when a node record cannot be normalized."""


# Raw status strings → normalized status
STATUS_MAP = {
    "idle": NodeStatus.IDLE,
    "unknown": NodeStatus.IDLE,
    "pending": NodeStatus.IDLE,
    "inactive": NodeStatus.INACTIVE,
    "off": NodeStatus.INACTIVE,
    "offline": NodeStatus.INACTIVE,
    "down": NodeStatus.INACTIVE,
    "disabled": NodeStatus.INACTIVE,
    "false": NodeStatus.INACTIVE,
    "active": NodeStatus.ACTIVE,
    "on": NodeStatus.ACTIVE,
    "online": NodeStatus.ACTIVE,
    "up": NodeStatus.ACTIVE,
    "running": NodeStatus.ACTIVE,
    "enabled": NodeStatus.ACTIVE,
    "true": NodeStatus.ACTIVE,
}

# Accepted spellings for each normalized field
FIELD_ALIASES = {
    "id": ("id",),
    "parent_id": ("parentId", "parent_id", "parent"),
    "label": ("label", "name", "title"),
    "status": ("status", "state", "isActive", "is_active"),
    "has_children": ("hasChildren", "has_children"),
    "version": ("version", "rowVersion", "seq"),
}

ROOT_SENTINELS = (None, 0, "0", "")


def normalize_status(value: Any) -> NodeStatus:
    """Normalize a raw status value.

    Args:
        value: Status string, boolean (``isActive``), integer or NodeStatus

    Returns:
        NodeStatus; unrecognized values map to IDLE
    """
    if isinstance(value, NodeStatus):
        return value
    if isinstance(value, bool):
        return NodeStatus.ACTIVE if value else NodeStatus.INACTIVE
    if isinstance(value, int):
        # Enum ordinals as sent by some backends: 0=idle, 1=inactive, 2=active
        return {0: NodeStatus.IDLE, 1: NodeStatus.INACTIVE, 2: NodeStatus.ACTIVE}.get(value, NodeStatus.IDLE)
    if value is None:
        return NodeStatus.IDLE
    return STATUS_MAP.get(str(value).strip().lower(), NodeStatus.IDLE)


def is_node_id(value: Any) -> bool:
    """Ids are strings or integers; booleans are rejected."""
    return isinstance(value, (str, int)) and not isinstance(value, bool)


def normalize_parent_id(value: Any) -> Optional[NodeId]:
    """Return ``None`` for any root sentinel, else the id unchanged.

    Raises:
        RecordError: If the value is neither a sentinel nor a usable id
    """
    if value is None or (is_node_id(value) and value in ROOT_SENTINELS):
        return None
    if not is_node_id(value):
        raise RecordError(f"Unusable parent id: {value!r}")
    return value


def _pick(raw: Dict[str, Any], names: Iterable[str]) -> tuple:
    for name in names:
        if name in raw:
            return True, raw[name]
    return False, None


def normalize_record(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Normalize a flat node record.

    Args:
        raw: Record from the API, the push channel or the cache

    Returns:
        Dict holding only the supplied fields among ``id``, ``parent_id``,
        ``label``, ``status``, ``has_children`` and ``version``

    Raises:
        RecordError: If the record is not a mapping or has no usable id
    """
    if not isinstance(raw, dict):
        raise RecordError(f"Node record must be an object, got {type(raw).__name__}")

    found, node_id = _pick(raw, FIELD_ALIASES["id"])
    if not found or node_id is None or node_id == "":
        raise RecordError(f"Node record has no id: {raw!r}")
    if not is_node_id(node_id):
        raise RecordError(f"Node id must be a string or an integer, got {node_id!r}")

    record: Dict[str, Any] = {"id": node_id}

    found, value = _pick(raw, FIELD_ALIASES["parent_id"])
    if found:
        record["parent_id"] = normalize_parent_id(value)

    found, value = _pick(raw, FIELD_ALIASES["label"])
    if found:
        record["label"] = "" if value is None else str(value)

    found, value = _pick(raw, FIELD_ALIASES["status"])
    if found:
        record["status"] = normalize_status(value)

    found, value = _pick(raw, FIELD_ALIASES["has_children"])
    if found and value is not None:
        record["has_children"] = bool(value)

    found, value = _pick(raw, FIELD_ALIASES["version"])
    if found and value is not None:
        try:
            record["version"] = int(value)
        except (TypeError, ValueError):
            raise RecordError(f"Node {node_id!r} has a non-integer version: {value!r}")

    return record


def normalize_records(raws: Iterable[Dict[str, Any]], *, strict: bool = False) -> List[Dict[str, Any]]:
    """Normalize a list of records, dropping malformed ones unless ``strict``."""
    records = []
    for raw in raws:
        try:
            records.append(normalize_record(raw))
        except RecordError:
            if strict:
                raise
    return records


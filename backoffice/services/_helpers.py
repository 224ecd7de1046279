"""Shared utilities for the service layer."""

import json
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from uuid import uuid4

# JSON column type — object-shaped JSON TEXT columns.
JsonDict = dict[str, object]
Record = dict[str, object]
Serializable = Mapping[str, object] | Sequence[Mapping[str, object]]


def new_id() -> str:
    return str(uuid4())


def now_iso() -> str:
    return datetime.now(UTC).isoformat()


def file_timestamp() -> str:
    """Timestamp safe for filenames, e.g. 2026-01-15T09-30-00."""
    return now_iso().replace(":", "-").replace(".", "-")[:19]


def load_json(raw: str | None) -> JsonDict | None:
    """Deserialize an object-shaped JSON TEXT column."""
    if not raw:
        return None
    result: object = json.loads(raw)
    if isinstance(result, dict):
        return dict(result)
    return None


def load_json_list(raw: str | None) -> list[Record] | None:
    """Deserialize a JSON TEXT column holding a list of objects (rollback snapshots)."""
    if not raw:
        return None
    result: object = json.loads(raw)
    if not isinstance(result, list):
        return None
    return [dict(item) for item in result if isinstance(item, dict)]


def dump_json(obj: Serializable) -> str:
    return json.dumps(obj, default=str)

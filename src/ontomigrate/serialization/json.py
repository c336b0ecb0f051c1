"""
JSON serialization utilities for ontomigrate payloads.

Legacy rows, run options, audit metadata and entity props all travel as
JSON. This module centralizes the encoder so that UUIDs, datetimes and
dates serialize the same way everywhere, and derives the stable content
checksum recorded in the mapping ledger.

Example:
    >>> from ontomigrate.serialization import json_dumps, content_checksum
    >>> from uuid import uuid4
    >>>
    >>> payload = {"id": uuid4(), "name": "Launch"}
    >>> json_str = json_dumps(payload)
    >>> digest = content_checksum(payload)
"""

import hashlib
import json
from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any
from uuid import UUID


class OntologyJSONEncoder(json.JSONEncoder):
    """
    JSON encoder for the non-native types found in migration payloads.

    - UUID objects: string representation
    - datetime/date objects: ISO 8601 string
    - Enum members: their value
    - dataclass instances: their field dictionary
    """

    def default(self, obj: Any) -> Any:
        if isinstance(obj, UUID):
            return str(obj)
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        if is_dataclass(obj) and not isinstance(obj, type):
            return asdict(obj)
        return super().default(obj)


def json_dumps(obj: Any) -> str:
    """
    Serialize object to a JSON string using OntologyJSONEncoder.

    Args:
        obj: Object to serialize

    Returns:
        JSON string representation
    """
    return json.dumps(obj, cls=OntologyJSONEncoder)


def json_loads(s: str) -> Any:
    """
    Deserialize a JSON string.

    UUID and datetime strings are NOT converted back to their original
    types; callers decide how to interpret them.
    """
    return json.loads(s)


def canonical_json(obj: Any) -> str:
    """
    Serialize to a canonical JSON form.

    Keys are sorted and separators are compact, so two structurally equal
    payloads always produce identical text regardless of key insertion
    order.

    Args:
        obj: Object to serialize

    Returns:
        Canonical JSON string
    """
    return json.dumps(
        obj,
        cls=OntologyJSONEncoder,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )


def content_checksum(obj: Any) -> str:
    """
    Compute the sha256 hex digest of an object's canonical JSON form.

    Args:
        obj: Source record (dict, dataclass or any JSON-serializable value)

    Returns:
        64-character lowercase hex digest

    Example:
        >>> content_checksum({"a": 1, "b": 2}) == content_checksum({"b": 2, "a": 1})
        True
    """
    return hashlib.sha256(canonical_json(obj).encode("utf-8")).hexdigest()


__all__ = [
    "OntologyJSONEncoder",
    "json_dumps",
    "json_loads",
    "canonical_json",
    "content_checksum",
]

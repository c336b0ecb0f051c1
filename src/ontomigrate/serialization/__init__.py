"""
Serialization utilities for ontomigrate.

Example:
    >>> from ontomigrate.serialization import json_dumps, content_checksum
    >>> json_str = json_dumps({"id": uuid4()})
"""

from ontomigrate.serialization.json import (
    OntologyJSONEncoder,
    canonical_json,
    content_checksum,
    json_dumps,
    json_loads,
)

__all__ = [
    "OntologyJSONEncoder",
    "canonical_json",
    "content_checksum",
    "json_dumps",
    "json_loads",
]

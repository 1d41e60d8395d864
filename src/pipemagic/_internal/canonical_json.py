"""Centralized JSON serialization for pipeline documents and CLI reports.

Two flavours:
- canonical_dumps: byte-stable (sorted keys, compact) for machine reports
- pretty_dumps: the 2-space indented layout pipeline files are saved in
"""

import json
from typing import Any


def canonical_dumps(obj: Any) -> str:
    """
    Canonical JSON serialization for byte-stable output.

    Rules:
    - UTF-8 encoding
    - Sorted keys
    - Stable separators (",", ":")
    - No trailing whitespace
    """
    return json.dumps(
        obj,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False
    )


def pretty_dumps(obj: Any) -> str:
    """Human-readable JSON, key order preserved, 2-space indent."""
    return json.dumps(obj, indent=2, ensure_ascii=False)

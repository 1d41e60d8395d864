"""Hash utilities with explicit canonicalization rules for stable cache keys.

This module provides canonicalization and hashing functions that guarantee
stable, deterministic output for identical inputs, independent of dict
insertion order or object identity.

Key rules:
- Object keys sorted recursively
- Arrays preserve order
- Finite floats allowed; NaN and Infinity rejected
- Strings normalized to NFC
- Non-JSON types forbidden
"""

import json
import math
import unicodedata
from typing import Any, Mapping, Sequence

FNV64_OFFSET_BASIS = 0xCBF29CE484222325
FNV64_PRIME = 0x100000001B3
_MASK64 = 0xFFFFFFFFFFFFFFFF


class CanonicalizationError(ValueError):
    """Raised when an object cannot be canonicalized."""
    pass


def _normalize_string(s: str) -> str:
    """Normalize string to NFC (Unicode Normalization Form Canonical Composition)."""
    return unicodedata.normalize('NFC', s)


def _validate_json_type(obj: Any, path: str = "") -> None:
    """Validate that object contains only JSON-compatible types.

    Raises CanonicalizationError if non-JSON types are found.
    """
    if obj is None or isinstance(obj, (bool, int, str)):
        return
    elif isinstance(obj, float):
        if math.isnan(obj) or math.isinf(obj):
            raise CanonicalizationError(
                f"Invalid number at {path or '<root>'}: NaN or Inf not allowed"
            )
    elif isinstance(obj, dict):
        for key, value in obj.items():
            if not isinstance(key, str):
                raise CanonicalizationError(
                    f"Dictionary keys must be strings at {path or '<root>'}, got {type(key).__name__}"
                )
            _validate_json_type(value, f"{path}.{key}" if path else key)
    elif isinstance(obj, (list, tuple)):
        for i, item in enumerate(obj):
            _validate_json_type(item, f"{path}[{i}]" if path else f"[{i}]")
    else:
        raise CanonicalizationError(
            f"Non-JSON type at {path or '<root>'}: {type(obj).__name__}. "
            f"Only None, bool, int, float, str, dict, and list are allowed."
        )


def _canonicalize_value(obj: Any) -> Any:
    """Canonicalize a single (already validated) value."""
    if isinstance(obj, str):
        return _normalize_string(obj)
    elif isinstance(obj, dict):
        return {
            _normalize_string(k): _canonicalize_value(v)
            for k, v in sorted(obj.items())
        }
    elif isinstance(obj, (list, tuple)):
        return [_canonicalize_value(item) for item in obj]
    return obj


def canonicalize_json(obj: Any) -> str:
    """Canonicalize a JSON-serializable object to a stable string representation.

    Rules:
    - Object keys sorted recursively (all nested objects)
    - Arrays preserve order
    - Numbers: int and finite float allowed
    - Strings: Unicode normalization (NFC)
    - Types: Only JSON types allowed (None, bool, int, float, str, dict, list)

    Raises:
        CanonicalizationError: If object contains NaN/Inf or non-JSON types
    """
    _validate_json_type(obj)
    canonicalized = _canonicalize_value(obj)
    return json.dumps(
        canonicalized,
        sort_keys=True,
        ensure_ascii=False,
        separators=(',', ':'),
        allow_nan=False,
    )


def fnv1a_64(data: bytes) -> int:
    """64-bit FNV-1a hash of a byte string."""
    h = FNV64_OFFSET_BASIS
    for byte in data:
        h ^= byte
        h = (h * FNV64_PRIME) & _MASK64
    return h


def compute_cache_key(
    node_id: str,
    params: Mapping[str, Any] | None,
    input_revisions: Sequence[int],
) -> str:
    """Fingerprint a node's recomputation inputs.

    The key covers the node id, its full parameter mapping, and the revisions
    of its upstream outputs in upstream order. The node id is always part of
    the hash, so identically configured nodes never share a key.

    Returns:
        16 lowercase hex digits (FNV-1a 64 over canonical JSON).

    Raises:
        CanonicalizationError: If params contain NaN/Inf or non-JSON types
    """
    payload = [node_id, dict(params or {}), list(input_revisions)]
    canonical_str = canonicalize_json(payload)
    return f"{fnv1a_64(canonical_str.encode('utf-8')):016x}"

"""Canonical JSON helpers for sealed evidence snapshots.

The vault seal path and the verify path both go through ``canonical_dumps``;
field order and separators must never differ between the two.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any


def canonical_dumps(obj: Any) -> str:
    """Serialize a JSON-compatible object with stable canonical formatting."""
    return json.dumps(
        obj,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )


def sha256_text(text: str) -> str:
    """Compute SHA-256 for UTF-8 text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def canonical_hash(obj: Any) -> str:
    """SHA-256 of the canonical serialization."""
    return sha256_text(canonical_dumps(obj))

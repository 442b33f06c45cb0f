"""
Common primitives shared by the engine records.
"""

from __future__ import annotations

from datetime import datetime, timezone

from ulid import ULID


def generate_ulid() -> str:
    """Generate a ULID for object IDs.

    ULIDs are lexicographically sortable and globally unique.
    """
    return str(ULID())


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def normalize_choice(value: object) -> object:
    """Normalize a categorical answer before enum coercion.

    Booleans map to yes/no, strings are lowercased and spaces/hyphens become
    underscores ("Upon request" -> "upon_request"). Blank strings are treated
    as unanswered.
    """
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, str):
        cleaned = value.strip().lower().replace("-", "_").replace(" ", "_")
        return cleaned or None
    return value

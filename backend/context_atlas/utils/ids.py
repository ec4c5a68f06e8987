"""ID helpers."""

from __future__ import annotations

import secrets

from context_atlas.utils.time import now_ms


def new_id(prefix: str | None = None) -> str:
    """Generate a time-ordered identifier with optional prefix.

    The leading 12 hex digits are the millisecond timestamp, so ids created
    later sort after earlier ones (same idea as UUIDv7).
    """
    base = f"{now_ms():012x}{secrets.token_hex(10)}"
    return f"{prefix}_{base}" if prefix else base

"""
Shared utility functions.
"""

from __future__ import annotations

import secrets
import string
import uuid
from datetime import datetime, timezone

JOIN_CODE_ALPHABET = string.digits + string.ascii_uppercase


def generate_id(prefix: str = "") -> str:
    """
    Generate a unique ID with optional prefix.

    Args:
        prefix: Optional prefix (e.g., "org", "mem", "inv")

    Returns:
        A unique ID like "org_a1b2c3d4e5f6"
    """
    uid = str(uuid.uuid4())[:12]
    return f"{prefix}_{uid}" if prefix else uid


def generate_join_code(length: int = 8) -> str:
    """Random uppercase base-36 token, e.g. "AB12CD34"."""
    return "".join(secrets.choice(JOIN_CODE_ALPHABET) for _ in range(length))


def normalize_join_code(code: str) -> str:
    """Trim and upper-case a user-entered join code."""
    return code.strip().upper()


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)

"""
Utility functions shared by the sync engine.
"""
import math
import re
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

SKU_MAX_LENGTH = 100
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def monotonic() -> float:
    return time.monotonic()


def normalize_sku(value: Any) -> str:
    """
    Normalize a merchant SKU to its canonical form.

    Strips surrounding whitespace and upper-cases. Raises ValueError for an
    empty value, values longer than 100 characters, or values containing
    control characters.
    """
    if value is None:
        raise ValueError("SKU is required")
    sku = str(value).strip().upper()
    if not sku:
        raise ValueError("SKU is required")
    if len(sku) > SKU_MAX_LENGTH:
        raise ValueError(f"SKU must be at most {SKU_MAX_LENGTH} characters")
    if _CONTROL_CHARS.search(sku):
        raise ValueError("SKU must not contain control characters")
    return sku


def pagination(page: int, limit: int, total: int) -> Dict[str, int]:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": math.ceil(total / limit) if limit else 0,
    }


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value

from __future__ import annotations

import math
from datetime import UTC, datetime, timedelta


def now_utc_iso() -> str:
    return datetime.now(UTC).isoformat()


def utc_iso_after(*, hours: float) -> str:
    return (datetime.now(UTC) + timedelta(hours=hours)).isoformat()


def page_offset(page: int, limit: int) -> int:
    return (page - 1) * limit


def total_pages(count: int, limit: int) -> int:
    if limit <= 0:
        return 0
    return math.ceil(count / limit)


# bcrypt only looks at the first 72 bytes of a secret.
PASSWORD_MAX_BYTES = 72


def check_password_bytes(value: str) -> str:
    if len(value.encode("utf-8")) > PASSWORD_MAX_BYTES:
        raise ValueError(f"Password must be at most {PASSWORD_MAX_BYTES} bytes when UTF-8 encoded.")
    return value

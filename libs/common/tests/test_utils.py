from __future__ import annotations

from datetime import UTC, datetime

import pytest
from common.roles import Role, dashboard_for
from common.utils import (
    check_password_bytes,
    now_utc_iso,
    page_offset,
    total_pages,
    utc_iso_after,
)

pytestmark = pytest.mark.unit


def test_now_utc_iso_returns_parseable_utc_timestamp() -> None:
    parsed = datetime.fromisoformat(now_utc_iso())
    assert parsed.tzinfo is not None
    assert parsed.utcoffset() is not None
    assert parsed.utcoffset().total_seconds() == 0


def test_utc_iso_after_is_in_the_future() -> None:
    parsed = datetime.fromisoformat(utc_iso_after(hours=1))
    assert parsed > datetime.now(UTC)


def test_page_offset_and_total_pages() -> None:
    assert page_offset(1, 10) == 0
    assert page_offset(3, 25) == 50
    assert total_pages(0, 10) == 0
    assert total_pages(10, 10) == 1
    assert total_pages(11, 10) == 2


def test_role_parse_accepts_known_values_only() -> None:
    assert Role.parse("recruiter") is Role.RECRUITER
    assert Role.parse(" Admin ") is Role.ADMIN
    assert Role.parse(Role.CANDIDATE) is Role.CANDIDATE
    assert Role.parse("super_admin") is None
    assert Role.parse(None) is None


@pytest.mark.parametrize(
    ("role", "expected"),
    [
        (Role.CANDIDATE, "/dashboard/candidate"),
        (Role.RECRUITER, "/dashboard/recruiter"),
        (Role.ADMIN, "/dashboard/admin"),
        (None, "/"),
    ],
)
def test_dashboard_for_role(role: Role | None, expected: str) -> None:
    assert dashboard_for(role) == expected


def test_check_password_bytes_counts_utf8_bytes() -> None:
    assert check_password_bytes("a" * 72) == "a" * 72
    assert check_password_bytes("é" * 36) == "é" * 36
    with pytest.raises(ValueError):
        check_password_bytes("é" * 37)

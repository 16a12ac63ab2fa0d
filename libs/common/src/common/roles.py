from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    CANDIDATE = "candidate"
    RECRUITER = "recruiter"
    ADMIN = "admin"

    @classmethod
    def parse(cls, value: object) -> Role | None:
        """Map a stored role string to a member, or None for anything unknown."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


DASHBOARDS: dict[Role, str] = {
    Role.CANDIDATE: "/dashboard/candidate",
    Role.RECRUITER: "/dashboard/recruiter",
    Role.ADMIN: "/dashboard/admin",
}
HOME_PATH = "/"


def dashboard_for(role: Role | None) -> str:
    if role is None:
        return HOME_PATH
    return DASHBOARDS.get(role, HOME_PATH)

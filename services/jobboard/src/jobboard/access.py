from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from common.roles import Role

OUTCOME_UNAUTHORIZED = "unauthorized"
OUTCOME_FORBIDDEN = "forbidden"
OUTCOME_NOT_FOUND = "not_found"
OUTCOME_BAD_REQUEST = "bad_request"


class FieldReader(Protocol):
    def fetch_field(self, table: str, column: str, row_id: str) -> str | None: ...


@dataclass(frozen=True)
class Identity:
    user_id: str
    email: str | None = None


@dataclass(frozen=True)
class Ownership:
    """The caller must be the value stored in ``table.owner_column`` for ``row_id``."""

    table: str
    owner_column: str
    row_id: str
    message: str = "Not found"


@dataclass(frozen=True)
class SelfAction:
    """Reject the request when the caller targets their own account."""

    target_id: str
    message: str


@dataclass(frozen=True)
class AccessPolicy:
    role: Role | None = None
    role_message: str = "Forbidden"
    ownership: Ownership | None = None
    self_action: SelfAction | None = None

    @property
    def required_role(self) -> str | None:
        return self.role.value if self.role else None


class AccessDenied(Exception):
    def __init__(self, status_code: int, message: str, outcome: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.outcome = outcome


def job_ownership(job_id: str) -> Ownership:
    return Ownership(
        table="jobs",
        owner_column="recruiter_id",
        row_id=job_id,
        message="Job not found or access denied",
    )


def application_ownership(app_id: str) -> Ownership:
    return Ownership(
        table="applications",
        owner_column="candidate_id",
        row_id=app_id,
        message="Application not found",
    )


def lookup_role(store: FieldReader, user_id: str) -> Role | None:
    return Role.parse(store.fetch_field("users", "role", user_id))


def check_access(
    store: FieldReader,
    identity: Identity | None,
    policy: AccessPolicy,
) -> Identity:
    """Evaluate ``policy`` for ``identity`` and return the identity when allowed.

    Checks run in a fixed order: authentication, self-action, role, ownership.
    Self-targeting is rejected before the role is looked up so the answer does
    not depend on who is asking. Ownership failures report not-found so an
    unauthorized caller cannot confirm that the row exists.
    """
    if identity is None:
        raise AccessDenied(401, "Unauthorized", OUTCOME_UNAUTHORIZED)

    if policy.self_action is not None and policy.self_action.target_id == identity.user_id:
        raise AccessDenied(400, policy.self_action.message, OUTCOME_BAD_REQUEST)

    if policy.role is not None and lookup_role(store, identity.user_id) is not policy.role:
        raise AccessDenied(403, policy.role_message, OUTCOME_FORBIDDEN)

    if policy.ownership is not None:
        ownership = policy.ownership
        owner_id = store.fetch_field(ownership.table, ownership.owner_column, ownership.row_id)
        if owner_id is None or owner_id != identity.user_id:
            raise AccessDenied(404, ownership.message, OUTCOME_NOT_FOUND)

    return identity

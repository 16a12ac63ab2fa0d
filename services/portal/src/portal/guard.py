from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any
from urllib.parse import urlencode

import httpx
from common.roles import Role, dashboard_for

LOGGER = logging.getLogger("jobboard.portal")

SIGN_IN_PATH = "/sign-in"
AUTH_ENTRY_PATHS = frozenset({"/sign-in", "/sign-up"})
GUARD_EXEMPT_PREFIXES = ("/api", "/static", "/health", "/favicon.ico")


class Access(str, Enum):
    PUBLIC = "public"
    AUTHENTICATED = "authenticated"
    ROLE = "role"


@dataclass(frozen=True)
class RouteRule:
    prefix: str
    access: Access
    role: Role | None = None
    denied_redirect: str | None = None
    exact: bool = False

    def matches(self, path: str) -> bool:
        if self.exact:
            return path == self.prefix
        return path == self.prefix or path.startswith(self.prefix + "/")


@dataclass(frozen=True)
class GuardDecision:
    action: str
    location: str | None = None

    @property
    def allowed(self) -> bool:
        return self.action == "allow"


ALLOW = GuardDecision(action="allow")
DEFAULT_RULE = RouteRule(prefix="", access=Access.AUTHENTICATED)
DEFAULT_RULES: tuple[RouteRule, ...] = (
    RouteRule("/", Access.PUBLIC, exact=True),
    RouteRule("/sign-in", Access.PUBLIC),
    RouteRule("/sign-up", Access.PUBLIC),
    RouteRule("/jobs", Access.PUBLIC),
    RouteRule("/about", Access.PUBLIC),
    RouteRule("/contact", Access.PUBLIC),
    RouteRule("/profile", Access.AUTHENTICATED),
    RouteRule("/jobs/create", Access.ROLE, role=Role.RECRUITER, denied_redirect="/jobs"),
    RouteRule("/dashboard/candidate", Access.ROLE, role=Role.CANDIDATE),
    RouteRule("/dashboard/recruiter", Access.ROLE, role=Role.RECRUITER),
    RouteRule("/dashboard/admin", Access.ROLE, role=Role.ADMIN),
    RouteRule("/admin", Access.ROLE, role=Role.ADMIN),
)


def is_guard_exempt(path: str) -> bool:
    return any(path == prefix or path.startswith(prefix + "/") for prefix in GUARD_EXEMPT_PREFIXES)


def classify(path: str, rules: tuple[RouteRule, ...] = DEFAULT_RULES) -> RouteRule:
    """Return the rule with the longest prefix matching ``path``.

    Paths that match nothing require a signed-in caller.
    """
    matched = [rule for rule in rules if rule.matches(path)]
    if not matched:
        return DEFAULT_RULE
    return max(matched, key=lambda rule: len(rule.prefix))


def sign_in_redirect(path: str) -> str:
    return f"{SIGN_IN_PATH}?{urlencode({'redirect': path}, safe='/')}"


def decide(
    path: str,
    identity: dict[str, Any] | None,
    role: Role | None,
    rules: tuple[RouteRule, ...] = DEFAULT_RULES,
) -> GuardDecision:
    rule = classify(path, rules)

    if rule.access is Access.PUBLIC:
        if identity is not None and path in AUTH_ENTRY_PATHS:
            return GuardDecision(action="redirect", location=dashboard_for(role))
        return ALLOW

    if identity is None:
        return GuardDecision(action="redirect", location=sign_in_redirect(path))

    if rule.access is Access.ROLE and role is not rule.role:
        location = rule.denied_redirect or dashboard_for(role)
        return GuardDecision(action="redirect", location=location)

    return ALLOW


class SessionResolver:
    """Looks up the caller behind a session token on the job board API.

    Any upstream problem is logged and reported as ``None`` so the guard can
    fall back to treating the caller as anonymous.
    """

    def __init__(self, base_url: str, *, timeout: float = 15) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def _get_data(self, path: str, token: str) -> dict[str, Any] | None:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(
                    f"{self.base_url}{path}",
                    headers={"authorization": f"Bearer {token}"},
                )
        except httpx.HTTPError as exc:
            LOGGER.warning(
                json.dumps({"event": "guard_upstream_error", "path": path, "error": str(exc)})
            )
            return None

        if response.status_code != 200:
            if response.status_code != 401:
                LOGGER.warning(
                    json.dumps(
                        {
                            "event": "guard_upstream_status",
                            "path": path,
                            "status_code": response.status_code,
                        }
                    )
                )
            return None

        try:
            payload = response.json()
        except ValueError:
            LOGGER.warning(json.dumps({"event": "guard_upstream_malformed", "path": path}))
            return None
        data = payload.get("data") if isinstance(payload, dict) else None
        return data if isinstance(data, dict) else None

    async def resolve_identity(self, token: str | None) -> dict[str, Any] | None:
        if not token:
            return None
        data = await self._get_data("/auth/session", token)
        if data is None or not data.get("user_id"):
            return None
        return data

    async def fetch_role(self, token: str | None) -> Role | None:
        if not token:
            return None
        data = await self._get_data("/me/role", token)
        if data is None:
            return None
        return Role.parse(data.get("role"))

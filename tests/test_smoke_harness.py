from __future__ import annotations

from pathlib import Path

import httpx
import portal.main as portal_main
import pytest
from fastapi.testclient import TestClient
from jobboard.main import create_app

pytestmark = [pytest.mark.integration, pytest.mark.smoke]

PASSWORD = "correct-horse-battery"


@pytest.fixture
def stack(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Portal wired to a real job board app through an in-process transport."""
    jobboard_app = create_app(
        database_path=str(tmp_path / "jobboard.sqlite3"),
        bcrypt_rounds=4,
        admin_email="admin@example.com",
        admin_password=PASSWORD,
    )
    real_async_client = httpx.AsyncClient

    def in_process_client(*_: object, **kwargs: object) -> httpx.AsyncClient:
        return real_async_client(
            transport=httpx.ASGITransport(app=jobboard_app),
            timeout=kwargs.get("timeout", 15),
        )

    monkeypatch.setattr(portal_main.httpx, "AsyncClient", in_process_client)
    monkeypatch.setattr(portal_main, "JOBBOARD_BASE_URL", "http://jobboard")

    with TestClient(jobboard_app) as jobboard, TestClient(
        portal_main.app, follow_redirects=False
    ) as portal:
        yield {"jobboard": jobboard, "portal": portal}


def test_smoke_both_services_ready(stack: dict[str, TestClient]) -> None:
    assert stack["jobboard"].get("/health").json() == {"status": "ok", "service": "jobboard"}
    assert stack["portal"].get("/health").json() == {"status": "ok", "service": "portal"}


def test_smoke_candidate_journey(stack: dict[str, TestClient]) -> None:
    portal = stack["portal"]

    sign_up = portal.post(
        "/api/auth/sign-up",
        json={
            "email": "casey@example.com",
            "password": PASSWORD,
            "first_name": "Casey",
            "last_name": "Jones",
            "role": "candidate",
        },
    )
    assert sign_up.status_code == 201

    anonymous = portal.get("/dashboard/candidate")
    assert anonymous.headers["location"] == "/sign-in?redirect=/dashboard/candidate"

    session = portal.post(
        "/api/session",
        json={"email": "casey@example.com", "password": PASSWORD},
    )
    assert session.status_code == 200
    assert session.json()["data"]["redirect"] == "/dashboard/candidate"

    assert portal.get("/dashboard/candidate").status_code == 200
    assert portal.get("/dashboard/recruiter").headers["location"] == "/dashboard/candidate"
    assert portal.get("/sign-in").headers["location"] == "/dashboard/candidate"

    me = portal.get("/api/me")
    assert me.status_code == 200
    assert me.json()["data"]["email"] == "casey@example.com"

    forbidden = portal.get("/api/admin/users")
    assert forbidden.status_code == 403
    assert forbidden.json() == {"error": "Admin access required"}

    assert portal.delete("/api/session").status_code == 200
    portal.cookies.clear()
    assert portal.get("/profile").headers["location"] == "/sign-in?redirect=/profile"


def test_smoke_recruiter_posts_job_seen_publicly(stack: dict[str, TestClient]) -> None:
    portal = stack["portal"]
    portal.post(
        "/api/auth/sign-up",
        json={
            "email": "rita@example.com",
            "password": PASSWORD,
            "first_name": "Rita",
            "last_name": "Recruiter",
            "role": "recruiter",
            "company": "Acme Labs",
        },
    )
    portal.post("/api/session", json={"email": "rita@example.com", "password": PASSWORD})

    assert portal.get("/jobs/create").status_code == 200
    created = portal.post(
        "/api/recruiter/jobs",
        json={
            "title": "Backend Engineer",
            "description": "Build and operate Python services.",
            "tags": ["python"],
        },
    )
    assert created.status_code == 201
    assert created.headers.get("x-audit-event-id")

    portal.cookies.clear()
    listed = portal.get("/api/jobs")
    assert listed.status_code == 200
    assert [job["title"] for job in listed.json()["data"]] == ["Backend Engineer"]


def test_smoke_admin_reaches_admin_pages(stack: dict[str, TestClient]) -> None:
    portal = stack["portal"]
    session = portal.post(
        "/api/session",
        json={"email": "admin@example.com", "password": PASSWORD, "redirect": "/admin/users"},
    )

    assert session.json()["data"]["redirect"] == "/admin/users"
    assert portal.get("/admin/users").status_code == 200
    assert portal.get("/dashboard/admin").status_code == 200
    users = portal.get("/api/admin/users")
    assert users.json()["count"] == 1

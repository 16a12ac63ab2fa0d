from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient
from jobboard.main import create_app

PASSWORD = "correct-horse-battery"
ADMIN_EMAIL = "admin@example.com"

User = dict[str, Any]


@pytest.fixture
def client(tmp_path: Path):
    db_path = tmp_path / "jobboard.sqlite3"
    app = create_app(
        database_path=str(db_path),
        bcrypt_rounds=4,
        admin_email=ADMIN_EMAIL,
        admin_password=PASSWORD,
    )
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def sign_in(client: TestClient) -> Callable[..., User]:
    def _sign_in(email: str, password: str = PASSWORD) -> User:
        response = client.post("/auth/sign-in", json={"email": email, "password": password})
        assert response.status_code == 200, response.text
        grant = response.json()["data"]
        return {
            "id": grant["user"]["id"],
            "role": grant["user"]["role"],
            "token": grant["token"],
            "headers": {"authorization": f"Bearer {grant['token']}"},
        }

    return _sign_in


@pytest.fixture
def make_user(client: TestClient, sign_in: Callable[..., User]) -> Callable[..., User]:
    def _make_user(email: str, role: str = "candidate") -> User:
        payload = {
            "email": email,
            "password": PASSWORD,
            "first_name": email.split("@")[0].title(),
            "last_name": "Tester",
            "role": role,
        }
        if role == "recruiter":
            payload["company"] = "Acme Labs"
        response = client.post("/auth/sign-up", json=payload)
        assert response.status_code == 201, response.text
        return sign_in(email)

    return _make_user


@pytest.fixture
def admin(sign_in: Callable[..., User]) -> User:
    return sign_in(ADMIN_EMAIL)


@pytest.fixture
def create_job(client: TestClient) -> Callable[..., dict[str, Any]]:
    def _create_job(recruiter: User, **overrides: Any) -> dict[str, Any]:
        payload = {
            "title": "Backend Engineer",
            "description": "Build and operate Python services for the hiring platform.",
            "location": "Remote",
            "salary_range": "$120k - $150k",
            "tags": ["python", "backend"],
        }
        payload.update(overrides)
        response = client.post("/recruiter/jobs", headers=recruiter["headers"], json=payload)
        assert response.status_code == 201, response.text
        return response.json()["data"]

    return _create_job


@pytest.fixture
def complete_profile(client: TestClient) -> Callable[[User], None]:
    def _complete_profile(candidate: User) -> None:
        response = client.put(
            "/me/candidate-profile",
            headers=candidate["headers"],
            json={
                "resume_url": "https://files.example.com/resume.pdf",
                "skills": ["python", "sql"],
                "experience_years": 4,
            },
        )
        assert response.status_code == 200, response.text

    return _complete_profile

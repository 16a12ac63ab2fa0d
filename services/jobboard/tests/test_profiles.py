from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest
from fastapi.testclient import TestClient

pytestmark = pytest.mark.integration


def test_me_returns_user_with_profiles(
    client: TestClient,
    make_user: Callable[..., dict[str, Any]],
    complete_profile: Callable[[dict[str, Any]], None],
) -> None:
    candidate = make_user("casey@example.com")
    before = client.get("/me", headers=candidate["headers"]).json()["data"]
    complete_profile(candidate)
    after = client.get("/me", headers=candidate["headers"]).json()["data"]

    assert before["candidate_profile"] is None
    assert after["candidate_profile"]["skills"] == ["python", "sql"]
    assert after["candidate_profile"]["experience_years"] == 4
    assert after["recruiter_profile"] is None


def test_update_me_changes_profile_fields(
    client: TestClient,
    make_user: Callable[..., dict[str, Any]],
) -> None:
    candidate = make_user("casey@example.com")

    response = client.put(
        "/me",
        headers=candidate["headers"],
        json={"full_name": "Casey J.", "location": "Lisbon", "website": "https://casey.dev"},
    )

    assert response.status_code == 200
    user = response.json()["data"]
    assert user["full_name"] == "Casey J."
    assert user["location"] == "Lisbon"
    assert user["website"].startswith("https://casey.dev")
    assert user["role"] == "candidate"


def test_user_can_switch_between_candidate_and_recruiter(
    client: TestClient,
    make_user: Callable[..., dict[str, Any]],
) -> None:
    user = make_user("casey@example.com")

    switched = client.put("/me", headers=user["headers"], json={"role": "recruiter"})
    role = client.get("/me/role", headers=user["headers"]).json()["data"]["role"]

    assert switched.status_code == 200
    assert role == "recruiter"


def test_user_cannot_self_assign_admin(
    client: TestClient,
    make_user: Callable[..., dict[str, Any]],
) -> None:
    user = make_user("casey@example.com")

    response = client.put("/me", headers=user["headers"], json={"role": "admin"})

    assert response.status_code == 403
    assert client.get("/me/role", headers=user["headers"]).json()["data"]["role"] == "candidate"


def test_admin_cannot_change_own_role_through_me(
    client: TestClient,
    admin: dict[str, Any],
) -> None:
    response = client.put("/me", headers=admin["headers"], json={"role": "candidate"})

    assert response.status_code == 400
    assert response.json() == {"error": "Cannot change your own role"}


def test_candidate_profile_is_candidate_only(
    client: TestClient,
    make_user: Callable[..., dict[str, Any]],
) -> None:
    recruiter = make_user("rita@example.com", role="recruiter")

    read = client.get("/me/candidate-profile", headers=recruiter["headers"])
    write = client.put(
        "/me/candidate-profile",
        headers=recruiter["headers"],
        json={"resume_url": "https://files.example.com/resume.pdf"},
    )

    assert read.status_code == 403
    assert write.status_code == 403


def test_candidate_profile_upsert_replaces_values(
    client: TestClient,
    make_user: Callable[..., dict[str, Any]],
    complete_profile: Callable[[dict[str, Any]], None],
) -> None:
    candidate = make_user("casey@example.com")
    complete_profile(candidate)
    first_id = client.get("/me/candidate-profile", headers=candidate["headers"]).json()["data"]["id"]

    response = client.put(
        "/me/candidate-profile",
        headers=candidate["headers"],
        json={"skills": ["go"], "experience_years": 7, "bio": "Gopher"},
    )

    profile = response.json()["data"]
    assert response.status_code == 200
    assert profile["id"] == first_id
    assert profile["skills"] == ["go"]
    assert profile["experience_years"] == 7
    assert profile["resume_url"] is None


@pytest.mark.parametrize(
    "payload",
    [
        {"experience_years": 51},
        {"experience_years": -1},
        {"bio": "x" * 1001},
        {"resume_url": "not a url"},
    ],
)
def test_candidate_profile_validation(
    client: TestClient,
    make_user: Callable[..., dict[str, Any]],
    payload: dict[str, Any],
) -> None:
    candidate = make_user("casey@example.com")

    response = client.put("/me/candidate-profile", headers=candidate["headers"], json=payload)

    assert response.status_code == 400


def test_recruiter_profile_round_trip(
    client: TestClient,
    make_user: Callable[..., dict[str, Any]],
) -> None:
    recruiter = make_user("rita@example.com", role="recruiter")

    empty = client.get("/me/recruiter-profile", headers=recruiter["headers"]).json()
    saved = client.put(
        "/me/recruiter-profile",
        headers=recruiter["headers"],
        json={"company_name": "Acme Labs", "company_website": "https://acme.example.com"},
    )
    too_short = client.put(
        "/me/recruiter-profile",
        headers=recruiter["headers"],
        json={"company_name": "A"},
    )

    assert empty["data"] is None
    assert saved.status_code == 200
    assert saved.json()["data"]["company_name"] == "Acme Labs"
    assert too_short.status_code == 400


def test_recruiter_profile_is_recruiter_only(
    client: TestClient,
    make_user: Callable[..., dict[str, Any]],
) -> None:
    candidate = make_user("casey@example.com")

    response = client.get("/me/recruiter-profile", headers=candidate["headers"])

    assert response.status_code == 403
    assert response.json() == {"error": "Recruiter access required"}

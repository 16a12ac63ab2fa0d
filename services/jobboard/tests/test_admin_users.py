from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest
from fastapi.testclient import TestClient

pytestmark = pytest.mark.integration


def test_admin_lists_and_reads_users(
    client: TestClient,
    admin: dict[str, Any],
    make_user: Callable[..., dict[str, Any]],
    complete_profile: Callable[[dict[str, Any]], None],
) -> None:
    candidate = make_user("casey@example.com")
    complete_profile(candidate)
    make_user("rita@example.com", role="recruiter")

    listed = client.get("/admin/users?limit=2", headers=admin["headers"]).json()
    detail = client.get(f"/admin/users/{candidate['id']}", headers=admin["headers"])
    missing = client.get("/admin/users/nobody", headers=admin["headers"])

    assert listed["count"] == 3
    assert listed["total_pages"] == 2
    assert len(listed["data"]) == 2
    assert detail.json()["data"]["candidate_profile"]["resume_url"]
    assert missing.status_code == 404
    assert missing.json() == {"error": "User not found"}


def test_non_admins_are_forbidden(
    client: TestClient,
    make_user: Callable[..., dict[str, Any]],
) -> None:
    recruiter = make_user("rita@example.com", role="recruiter")

    for path in ("/admin/users", "/admin/applications", "/admin/audit-events"):
        response = client.get(path, headers=recruiter["headers"])
        assert response.status_code == 403
        assert response.json() == {"error": "Admin access required"}
    assert client.get("/admin/users").status_code == 401


def test_admin_changes_another_users_role(
    client: TestClient,
    admin: dict[str, Any],
    make_user: Callable[..., dict[str, Any]],
) -> None:
    candidate = make_user("casey@example.com")

    response = client.put(
        f"/admin/users/{candidate['id']}/role",
        headers=admin["headers"],
        json={"role": "recruiter"},
    )

    assert response.status_code == 200
    assert response.json()["data"]["role"] == "recruiter"
    assert response.headers.get("x-audit-event-id")
    role = client.get("/me/role", headers=candidate["headers"]).json()["data"]["role"]
    assert role == "recruiter"


def test_role_update_rejects_unknown_roles(
    client: TestClient,
    admin: dict[str, Any],
    make_user: Callable[..., dict[str, Any]],
) -> None:
    candidate = make_user("casey@example.com")

    response = client.put(
        f"/admin/users/{candidate['id']}/role",
        headers=admin["headers"],
        json={"role": "super_admin"},
    )

    assert response.status_code == 400


def test_role_update_for_missing_user(client: TestClient, admin: dict[str, Any]) -> None:
    response = client.put(
        "/admin/users/nobody/role",
        headers=admin["headers"],
        json={"role": "candidate"},
    )

    assert response.status_code == 404


def test_self_role_change_is_bad_request_for_any_role(
    client: TestClient,
    admin: dict[str, Any],
    make_user: Callable[..., dict[str, Any]],
) -> None:
    recruiter = make_user("rita@example.com", role="recruiter")

    for user in (admin, recruiter):
        response = client.put(
            f"/admin/users/{user['id']}/role",
            headers=user["headers"],
            json={"role": "admin"},
        )
        assert response.status_code == 400
        assert response.json() == {"error": "Cannot change your own role"}

    assert client.get("/me/role", headers=recruiter["headers"]).json()["data"]["role"] == "recruiter"


def test_self_delete_is_bad_request(client: TestClient, admin: dict[str, Any]) -> None:
    response = client.delete(f"/admin/users/{admin['id']}", headers=admin["headers"])

    assert response.status_code == 400
    assert response.json() == {"error": "Cannot delete your own account"}
    assert client.get("/auth/session", headers=admin["headers"]).status_code == 200


def test_delete_user_cascades(
    client: TestClient,
    admin: dict[str, Any],
    make_user: Callable[..., dict[str, Any]],
    create_job: Callable[..., dict[str, Any]],
    complete_profile: Callable[[dict[str, Any]], None],
) -> None:
    recruiter = make_user("rita@example.com", role="recruiter")
    candidate = make_user("casey@example.com")
    complete_profile(candidate)
    job = create_job(recruiter)
    client.post(f"/jobs/{job['id']}/apply", headers=candidate["headers"])

    deleted = client.delete(f"/admin/users/{recruiter['id']}", headers=admin["headers"])
    missing = client.delete(f"/admin/users/{recruiter['id']}", headers=admin["headers"])

    assert deleted.status_code == 200
    assert deleted.json() == {"message": "User deleted successfully"}
    assert missing.status_code == 404
    assert client.get(f"/jobs/{job['id']}").status_code == 404
    assert client.get("/my/applications", headers=candidate["headers"]).json()["count"] == 0
    assert client.get("/auth/session", headers=recruiter["headers"]).status_code == 401


def test_admin_lists_all_applications(
    client: TestClient,
    admin: dict[str, Any],
    make_user: Callable[..., dict[str, Any]],
    create_job: Callable[..., dict[str, Any]],
    complete_profile: Callable[[dict[str, Any]], None],
) -> None:
    candidate = make_user("casey@example.com")
    complete_profile(candidate)
    for email in ("rita@example.com", "rob@example.com"):
        job = create_job(make_user(email, role="recruiter"))
        client.post(f"/jobs/{job['id']}/apply", headers=candidate["headers"])

    response = client.get("/admin/applications", headers=admin["headers"]).json()

    assert response["count"] == 2


def test_denials_are_audited(
    client: TestClient,
    admin: dict[str, Any],
    make_user: Callable[..., dict[str, Any]],
) -> None:
    recruiter = make_user("rita@example.com", role="recruiter")
    client.get("/admin/users")
    client.get("/admin/users", headers=recruiter["headers"])
    client.delete(f"/admin/users/{admin['id']}", headers=admin["headers"])

    events = client.get("/admin/audit-events?limit=50", headers=admin["headers"]).json()

    outcomes = {(event["action"], event["status"]) for event in events}
    assert ("admin_users_list", "unauthorized") in outcomes
    assert ("admin_users_list", "forbidden") in outcomes
    assert ("admin_user_delete", "bad_request") in outcomes
    forbidden = next(event for event in events if event["status"] == "forbidden")
    assert forbidden["auth_subject"] == f"user:{recruiter['id']}"
    assert forbidden["required_role"] == "admin"
    assert all(event["request_id"] for event in events)

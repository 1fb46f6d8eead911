from .conftest import client, ensure_auth_headers, register_user, create_project


def test_profile_read_and_update(client):
    headers, user = ensure_auth_headers(client, affiliation="Old Institute")
    profile = client.get("/api/users/profile", headers=headers)
    assert profile.status_code == 200
    assert profile.json()["data"]["affiliation"] == "Old Institute"

    resp = client.put(
        "/api/users/profile",
        json={"username": f"{user['username']}_x", "affiliation": "New Institute"},
        headers=headers,
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["username"] == f"{user['username']}_x"
    assert data["affiliation"] == "New Institute"


def test_profile_update_rejects_taken_username(client):
    other = register_user(client)
    headers, _ = ensure_auth_headers(client)
    resp = client.put("/api/users/profile", json={"username": other["username"]}, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Username already taken"

    short = client.put("/api/users/profile", json={"affiliation": "X"}, headers=headers)
    assert short.status_code == 400


def test_check_status(client):
    headers, _ = ensure_auth_headers(client)
    pending = register_user(client, verify=False)
    resp = client.get("/api/users/check-status", params={"email": pending["email"]}, headers=headers)
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["is_email_verified"] is False
    assert data["can_be_added_to_project"] is False

    missing = client.get("/api/users/check-status", params={"email": "ghost@example.com"}, headers=headers)
    assert missing.status_code == 404


def test_dashboard_counts(client):
    owner_headers, owner = ensure_auth_headers(client)
    member_headers, member = ensure_auth_headers(client)
    create_project(client, owner_headers)
    shared = create_project(client, owner_headers, title="Shared project")
    added = client.post(
        f"/api/projects/{shared['id']}/members",
        json={"email": member["email"]},
        headers=owner_headers,
    )
    assert added.status_code == 200

    own = client.get("/api/users/dashboard", headers=owner_headers).json()["data"]["stats"]
    assert own["owned_projects"] == 2
    assert own["total_projects"] == 2
    assert own["total_collaborations"] == 0

    theirs = client.get("/api/users/dashboard", headers=member_headers).json()["data"]["stats"]
    assert theirs["owned_projects"] == 0
    assert theirs["total_projects"] == 1
    assert theirs["total_collaborations"] == 1

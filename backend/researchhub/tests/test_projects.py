from .conftest import client, ensure_auth_headers, register_user, create_project, project_payload


def test_create_and_get_project(client):
    headers, owner = ensure_auth_headers(client)
    project = create_project(client, headers, goals=["  ", "Map the proteome"], tags=["omics", " "])
    assert project["goals"] == ["Map the proteome"]
    assert project["tags"] == ["omics"]
    assert project["status"] == "planning"
    assert project["user_role"] == "project_manager"
    assert project["user_permissions"] == {
        "can_edit": True,
        "can_manage_members": True,
        "can_upload_documents": True,
        "can_view_documents": True,
    }
    assert [m["user_id"] for m in project["members"]] == [owner["id"]]

    fetched = client.get(f"/api/projects/{project['id']}", headers=headers)
    assert fetched.status_code == 200
    assert fetched.json()["data"]["title"] == project["title"]


def test_create_project_validation(client):
    headers, _ = ensure_auth_headers(client)
    cases = [
        project_payload(title="ab"),
        project_payload(description="too short"),
        project_payload(goals=["", "   "]),
        project_payload(objectives=[]),
        project_payload(start_date="2026-06-01T00:00:00", end_date="2026-06-01T00:00:00"),
    ]
    for payload in cases:
        resp = client.post("/api/projects", json=payload, headers=headers)
        assert resp.status_code == 400, payload
        assert resp.json()["success"] is False


def test_private_project_hidden_from_strangers(client):
    owner_headers, _ = ensure_auth_headers(client)
    stranger_headers, _ = ensure_auth_headers(client)
    project = create_project(client, owner_headers)
    resp = client.get(f"/api/projects/{project['id']}", headers=stranger_headers)
    assert resp.status_code == 403
    assert resp.json() == {"success": False, "message": "Access denied"}
    missing = client.get("/api/projects/00000000-0000-0000-0000-000000000000", headers=owner_headers)
    assert missing.status_code == 404


def test_public_listing_is_unauthenticated(client):
    headers, _ = ensure_auth_headers(client)
    public = create_project(client, headers, title="Open glacier dataset", is_public=True)
    create_project(client, headers, title="Closed glacier dataset")
    resp = client.get("/api/projects/public", params={"search": "GLACIER"})
    assert resp.status_code == 200
    titles = [p["title"] for p in resp.json()["data"]["projects"]]
    assert public["title"] in titles
    assert "Closed glacier dataset" not in titles
    assert resp.json()["data"]["projects"][0]["user_role"] is None


def test_list_my_projects_with_filters(client):
    headers, _ = ensure_auth_headers(client)
    create_project(client, headers, title="Analysis alpha", category="analysis")
    create_project(client, headers, title="Research beta")
    resp = client.get("/api/projects", params={"category": "analysis"}, headers=headers)
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert [p["title"] for p in data["projects"]] == ["Analysis alpha"]
    assert data["pagination"]["total_items"] == 1

    paged = client.get("/api/projects", params={"limit": 1, "page": 2}, headers=headers).json()["data"]
    assert paged["pagination"]["total_pages"] == 2
    assert paged["pagination"]["has_prev"] is True
    assert paged["pagination"]["has_next"] is False


def test_update_requires_edit_capability(client):
    owner_headers, _ = ensure_auth_headers(client)
    viewer_headers, viewer = ensure_auth_headers(client)
    project = create_project(client, owner_headers)
    client.post(
        f"/api/projects/{project['id']}/members",
        json={"email": viewer["email"], "role": "viewer"},
        headers=owner_headers,
    )
    denied = client.put(f"/api/projects/{project['id']}", json={"status": "active"}, headers=viewer_headers)
    assert denied.status_code == 403

    ok = client.put(
        f"/api/projects/{project['id']}",
        json={"status": "active", "title": "Renamed project"},
        headers=owner_headers,
    )
    assert ok.status_code == 200
    assert ok.json()["data"]["status"] == "active"
    assert ok.json()["data"]["title"] == "Renamed project"

    backwards = client.put(
        f"/api/projects/{project['id']}",
        json={"end_date": "2025-01-01T00:00:00"},
        headers=owner_headers,
    )
    assert backwards.status_code == 400


def test_add_member_rules(client):
    owner_headers, _ = ensure_auth_headers(client)
    member_headers, member = ensure_auth_headers(client)
    pending = register_user(client, verify=False)
    project = create_project(client, owner_headers)
    url = f"/api/projects/{project['id']}/members"

    unverified = client.post(url, json={"email": pending["email"]}, headers=owner_headers)
    assert unverified.status_code == 400
    assert unverified.json()["message"] == "Cannot add user to project. User email is not verified."

    unknown = client.post(url, json={"email": "ghost@example.com"}, headers=owner_headers)
    assert unknown.status_code == 404

    added = client.post(url, json={"email": member["email"], "role": "researcher"}, headers=owner_headers)
    assert added.status_code == 200
    row = next(m for m in added.json()["data"]["members"] if m["user_id"] == member["id"])
    assert row["role"] == "researcher"
    assert row["can_edit"] is True
    assert row["can_manage_members"] is False

    duplicate = client.post(url, json={"email": member["email"]}, headers=owner_headers)
    assert duplicate.status_code == 400
    assert duplicate.json()["message"] == "User is already a member of this project"

    # researchers cannot manage members
    third = register_user(client)
    denied = client.post(url, json={"email": third["email"]}, headers=member_headers)
    assert denied.status_code == 403


def test_add_member_with_explicit_permissions(client):
    owner_headers, _ = ensure_auth_headers(client)
    _, member = ensure_auth_headers(client)
    project = create_project(client, owner_headers)
    resp = client.post(
        f"/api/projects/{project['id']}/members",
        json={
            "email": member["email"],
            "role": "viewer",
            "permissions": {"can_edit": False, "can_manage_members": True, "can_upload_documents": False, "can_view_documents": True},
        },
        headers=owner_headers,
    )
    assert resp.status_code == 200
    row = next(m for m in resp.json()["data"]["members"] if m["user_id"] == member["id"])
    assert row["role"] == "viewer"
    assert row["can_manage_members"] is True


def test_self_join_public_project(client):
    owner_headers, _ = ensure_auth_headers(client)
    joiner_headers, joiner = ensure_auth_headers(client)
    project = create_project(client, owner_headers, is_public=True)
    client.put(f"/api/projects/{project['id']}", json={"status": "active"}, headers=owner_headers)

    resp = client.post(
        f"/api/projects/{project['id']}/join",
        json={"role": "project_manager"},
        headers=joiner_headers,
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["user_role"] == "collaborator"
    assert data["user_permissions"] == {
        "can_edit": False,
        "can_manage_members": False,
        "can_upload_documents": True,
        "can_view_documents": True,
    }
    row = next(m for m in data["members"] if m["user_id"] == joiner["id"])
    assert row["role"] == "collaborator"

    again = client.post(f"/api/projects/{project['id']}/join", headers=joiner_headers)
    assert again.status_code == 400
    assert again.json()["message"] == "You are already a member of this project"

    creator = client.post(f"/api/projects/{project['id']}/join", headers=owner_headers)
    assert creator.status_code == 400


def test_self_join_private_project_fails(client):
    owner_headers, _ = ensure_auth_headers(client)
    joiner_headers, _ = ensure_auth_headers(client)
    project = create_project(client, owner_headers)
    resp = client.post(f"/api/projects/{project['id']}/join", headers=joiner_headers)
    assert resp.status_code == 403


def test_task_lifecycle(client):
    owner_headers, owner = ensure_auth_headers(client)
    stranger_headers, stranger = ensure_auth_headers(client)
    project = create_project(client, owner_headers)
    base = f"/api/projects/{project['id']}/tasks"

    created = client.post(base, json={"title": "Draft protocol", "assigned_to": owner["id"]}, headers=owner_headers)
    assert created.status_code == 201
    task = created.json()["data"]
    assert task["status"] == "pending"
    assert task["completed_at"] is None

    outsider = client.post(base, json={"title": "Nope", "assigned_to": stranger["id"]}, headers=owner_headers)
    assert outsider.status_code == 400
    assert client.post(base, json={"title": "Nope"}, headers=stranger_headers).status_code == 403
    assert client.get(base, headers=stranger_headers).status_code == 403

    done = client.put(f"{base}/{task['id']}", json={"status": "completed"}, headers=owner_headers)
    assert done.status_code == 200
    assert done.json()["data"]["completed_at"] is not None

    listed = client.get(base, params={"status": "completed"}, headers=owner_headers).json()["data"]
    assert [t["id"] for t in listed] == [task["id"]]

    assert client.delete(f"{base}/{task['id']}", headers=owner_headers).status_code == 200
    assert client.get(base, headers=owner_headers).json()["data"] == []

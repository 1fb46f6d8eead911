import uuid
from datetime import datetime

import pytest
from sqlalchemy.exc import OperationalError

from .conftest import client, db_session, ensure_auth_headers, create_project
from researchhub import models
from researchhub.errors import StorageError
from researchhub.services import documents as document_service


def _upload(client, headers, project_id, *, content=b"sequence data", name="notes.txt", **form):
    data = {"title": "Lab notes", "description": "Raw notes", "tags": "lab, notes ,", **form}
    return client.post(
        f"/api/documents/upload/{project_id}",
        data=data,
        files={"file": (name, content, "text/plain")},
        headers=headers,
    )


def _add(client, owner_headers, project_id, email, role):
    resp = client.post(
        f"/api/projects/{project_id}/members",
        json={"email": email, "role": role},
        headers=owner_headers,
    )
    assert resp.status_code == 200, resp.text


def test_upload_creates_first_version(client, upload_dir):
    headers, owner = ensure_auth_headers(client)
    project = create_project(client, headers)
    resp = _upload(client, headers, project["id"])
    assert resp.status_code == 201
    doc = resp.json()["data"]
    assert doc["current_version"] == 1
    assert doc["tags"] == ["lab", "notes"]
    assert doc["file_extension"] == ".txt"
    assert doc["file_url"] == f"/api/documents/{doc['id']}/download"
    assert [(v["version_number"], v["change_log"]) for v in doc["versions"]] == [(1, "Initial upload")]
    stored = [p for p in upload_dir.rglob("*") if p.is_file()]
    assert len(stored) == 1
    assert stored[0].read_bytes() == b"sequence data"


def test_upload_requires_capability_and_file(client):
    owner_headers, _ = ensure_auth_headers(client)
    viewer_headers, viewer = ensure_auth_headers(client)
    stranger_headers, _ = ensure_auth_headers(client)
    project = create_project(client, owner_headers)
    _add(client, owner_headers, project["id"], viewer["email"], "viewer")

    assert _upload(client, viewer_headers, project["id"]).status_code == 403
    assert _upload(client, stranger_headers, project["id"]).status_code == 403
    empty = client.post(
        f"/api/documents/upload/{project['id']}",
        data={"title": "Nothing"},
        headers=owner_headers,
    )
    assert empty.status_code == 400
    assert empty.json()["message"] == "No file uploaded"


def test_listing_and_search(client):
    owner_headers, _ = ensure_auth_headers(client)
    stranger_headers, _ = ensure_auth_headers(client)
    project = create_project(client, owner_headers)
    _upload(client, owner_headers, project["id"], title="Microscopy images", category="dataset")
    _upload(client, owner_headers, project["id"], title="Budget report", category="report")
    url = f"/api/documents/project/{project['id']}"

    listed = client.get(url, headers=owner_headers).json()["data"]
    assert listed["pagination"]["total_items"] == 2
    found = client.get(url, params={"search": "microscopy"}, headers=owner_headers).json()["data"]
    assert [d["title"] for d in found["documents"]] == ["Microscopy images"]
    by_category = client.get(url, params={"category": "report"}, headers=owner_headers).json()["data"]
    assert [d["title"] for d in by_category["documents"]] == ["Budget report"]

    assert client.get(url, headers=stranger_headers).status_code == 403


def test_public_project_documents_visible_to_any_user(client):
    owner_headers, _ = ensure_auth_headers(client)
    reader_headers, _ = ensure_auth_headers(client)
    project = create_project(client, owner_headers, is_public=True)
    doc = _upload(client, owner_headers, project["id"]).json()["data"]
    assert client.get(f"/api/documents/project/{project['id']}", headers=reader_headers).status_code == 200
    assert client.get(f"/api/documents/{doc['id']}", headers=reader_headers).status_code == 200


def test_document_acl_grants_access_outside_project(client):
    owner_headers, _ = ensure_auth_headers(client)
    guest_headers, guest = ensure_auth_headers(client)
    project = create_project(client, owner_headers)
    doc = _upload(client, owner_headers, project["id"]).json()["data"]

    assert client.get(f"/api/documents/{doc['id']}", headers=guest_headers).status_code == 403

    resp = client.put(
        f"/api/documents/{doc['id']}/permissions",
        json={"allowed_users": [{"user_id": guest["id"], "permission": "comment"}]},
        headers=owner_headers,
    )
    assert resp.status_code == 200
    grants = resp.json()["data"]["allowed_users"]
    assert grants[0]["permission"] == "comment"
    assert grants[0]["granted_by"] is not None

    assert client.get(f"/api/documents/{doc['id']}", headers=guest_headers).status_code == 200
    # the guest is no project member and cannot list the project
    assert client.get(f"/api/documents/project/{project['id']}", headers=guest_headers).status_code == 403

    revoked = client.put(
        f"/api/documents/{doc['id']}/permissions",
        json={"allowed_users": []},
        headers=owner_headers,
    )
    assert revoked.json()["data"]["allowed_users"] == []
    assert client.get(f"/api/documents/{doc['id']}", headers=guest_headers).status_code == 403


def test_only_owner_updates_permissions(client):
    owner_headers, _ = ensure_auth_headers(client)
    manager_headers, manager = ensure_auth_headers(client)
    project = create_project(client, owner_headers)
    _add(client, owner_headers, project["id"], manager["email"], "project_manager")
    doc = _upload(client, owner_headers, project["id"]).json()["data"]
    resp = client.put(f"/api/documents/{doc['id']}/permissions", json={"is_public": True}, headers=manager_headers)
    assert resp.status_code == 403
    unknown = client.put(
        f"/api/documents/{doc['id']}/permissions",
        json={"allowed_users": [{"user_id": "00000000-0000-0000-0000-000000000001"}]},
        headers=owner_headers,
    )
    assert unknown.status_code == 400


def test_download_streams_and_counts(client):
    headers, _ = ensure_auth_headers(client)
    project = create_project(client, headers)
    doc = _upload(client, headers, project["id"], content=b"x" * 200_000, name="big.txt").json()["data"]
    resp = client.get(f"/api/documents/{doc['id']}/download", headers=headers)
    assert resp.status_code == 200
    assert resp.content == b"x" * 200_000
    assert "big.txt" in resp.headers["content-disposition"]
    detail = client.get(f"/api/documents/{doc['id']}", headers=headers).json()["data"]
    assert detail["view_count"] == 1


def test_update_metadata_rules(client):
    owner_headers, _ = ensure_auth_headers(client)
    collaborator_headers, collaborator = ensure_auth_headers(client)
    researcher_headers, researcher = ensure_auth_headers(client)
    project = create_project(client, owner_headers)
    _add(client, owner_headers, project["id"], collaborator["email"], "collaborator")
    _add(client, owner_headers, project["id"], researcher["email"], "researcher")
    doc = _upload(client, owner_headers, project["id"]).json()["data"]
    url = f"/api/documents/{doc['id']}"

    assert client.put(url, json={"title": "Hijack"}, headers=collaborator_headers).status_code == 403
    edited = client.put(url, json={"title": "Edited", "category": "report"}, headers=researcher_headers)
    assert edited.status_code == 200
    assert edited.json()["data"]["title"] == "Edited"
    assert edited.json()["data"]["category"] == "report"


def test_soft_delete_and_restore(client):
    headers, _ = ensure_auth_headers(client)
    project = create_project(client, headers)
    doc = _upload(client, headers, project["id"]).json()["data"]
    url = f"/api/documents/{doc['id']}"

    assert client.patch(f"{url}/restore", headers=headers).status_code == 400
    assert client.delete(url, headers=headers).status_code == 200
    assert client.get(url, headers=headers).status_code == 404
    active = client.get(f"/api/documents/project/{project['id']}", headers=headers).json()["data"]
    assert active["documents"] == []
    deleted = client.get(f"/api/documents/project/{project['id']}/deleted", headers=headers).json()["data"]
    assert [d["id"] for d in deleted["documents"]] == [doc["id"]]

    restored = client.patch(f"{url}/restore", headers=headers)
    assert restored.status_code == 200
    assert restored.json()["data"]["status"] == "active"
    assert client.get(url, headers=headers).status_code == 200


def test_deleted_listing_requires_edit(client):
    owner_headers, _ = ensure_auth_headers(client)
    member_headers, member = ensure_auth_headers(client)
    project = create_project(client, owner_headers)
    _add(client, owner_headers, project["id"], member["email"], "collaborator")
    resp = client.get(f"/api/documents/project/{project['id']}/deleted", headers=member_headers)
    assert resp.status_code == 403


def test_hard_delete_removes_file(client, upload_dir):
    headers, _ = ensure_auth_headers(client)
    project = create_project(client, headers)
    doc = _upload(client, headers, project["id"]).json()["data"]
    assert any(p.is_file() for p in upload_dir.rglob("*"))
    resp = client.delete(f"/api/documents/{doc['id']}", params={"hard_delete": "true"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["message"] == "Document permanently deleted"
    assert not any(p.is_file() for p in upload_dir.rglob("*"))
    assert client.get(f"/api/documents/{doc['id']}", headers=headers).status_code == 404


def test_failed_commit_removes_stored_file(db_session, upload_dir, monkeypatch):
    owner = models.User(
        username=f"compensate_{uuid.uuid4().hex[:8]}",
        email=f"compensate-{uuid.uuid4().hex[:8]}@example.com",
        hashed_password="x",
        is_email_verified=True,
    )
    db_session.add(owner)
    db_session.commit()
    project = models.Project(
        title="Compensation",
        description="Upload compensation project",
        created_by=owner.id,
        start_date=datetime(2026, 1, 1),
        end_date=datetime(2026, 2, 1),
    )
    db_session.add(project)
    db_session.commit()

    def fail_commit():
        raise OperationalError("INSERT", {}, Exception("disk full"))

    monkeypatch.setattr(db_session, "commit", fail_commit)
    with pytest.raises(StorageError):
        document_service.create_document(
            db_session,
            project=project,
            uploader=owner,
            data=b"payload",
            original_name="data.csv",
            content_type="text/csv",
            title="Orphan",
        )
    assert not any(p.is_file() for p in upload_dir.rglob("*"))

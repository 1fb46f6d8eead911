from .conftest import client
from researchhub.main import PUBLIC_PATHS, _depends_on, audit_routes, iter_api_routes
from researchhub.auth import get_current_user


def test_all_routes_protected():
    checked = 0
    for route in iter_api_routes():
        if not route.path.startswith("/api") or route.path in PUBLIC_PATHS:
            continue
        assert _depends_on(route.dependant, get_current_user), f"{route.path} missing authentication"
        checked += 1
    assert checked > 30
    assert audit_routes() == checked


def test_router_routes_are_visible_to_the_audit():
    paths = {route.path for route in iter_api_routes()}
    assert PUBLIC_PATHS <= paths
    assert "/api/forums/discussions/{discussion_id}/replies" in paths
    assert "/api/documents/{document_id}/download" in paths


def test_error_envelope_shapes(client):
    unauth = client.get("/api/projects")
    assert unauth.status_code == 401
    assert unauth.json() == {"success": False, "message": "Access token required"}

    unknown = client.get("/api/does-not-exist")
    assert unknown.status_code == 404
    assert unknown.json()["success"] is False

    invalid = client.post("/api/auth/login", json={"email": "not-an-email"})
    assert invalid.status_code == 400
    body = invalid.json()
    assert body["success"] is False
    assert body["message"] == "Validation failed"
    assert body["errors"]


def test_metrics_endpoint(client):
    client.get("/api/health")
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert b"request_count" in resp.content

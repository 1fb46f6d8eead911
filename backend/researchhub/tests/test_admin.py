from .conftest import client, ensure_auth_headers, register_user, promote_to_admin


def test_admin_routes_require_administrator(client):
    headers, _ = ensure_auth_headers(client)
    assert client.get("/api/admin/users", headers=headers).status_code == 403
    assert client.get("/api/admin/stats", headers=headers).status_code == 403


def test_admin_lists_and_counts_users(client):
    headers, admin = ensure_auth_headers(client)
    promote_to_admin(admin["email"])
    pending = register_user(client, verify=False, affiliation="Zebrafish Institute")

    resp = client.get("/api/admin/users", params={"search": "zebrafish"}, headers=headers)
    assert resp.status_code == 200
    users = resp.json()["data"]["users"]
    assert [u["email"] for u in users] == [pending["email"]]
    assert "hashed_password" not in users[0]

    stats = client.get("/api/admin/stats", headers=headers).json()["data"]
    assert stats["total_users"] == stats["verified_users"] + stats["unverified_users"]
    assert stats["unverified_users"] >= 1
    assert stats["role_distribution"]["administrator"] >= 1
    assert set(stats["role_distribution"]) == {"researcher", "academic_manager", "administrator"}

    paged = client.get("/api/admin/users", params={"limit": 1, "page": 1}, headers=headers).json()["data"]
    assert len(paged["users"]) == 1
    assert paged["pagination"]["has_prev"] is False

    bad = client.get("/api/admin/users", params={"limit": 500}, headers=headers)
    assert bad.status_code == 400

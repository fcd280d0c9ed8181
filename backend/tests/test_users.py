"""Tests for User CRUD endpoints."""


class TestUserCRUD:
    """User create / get / update / list."""

    def test_create_user(self, make_user):
        data = make_user(name="Alice", role="approver", email="alice@example.org")
        assert data["display_name"] == "Alice"
        assert data["role"] == "approver"
        assert data["email"] == "alice@example.org"
        assert "user_id" in data

    def test_default_role_is_requester(self, client):
        resp = client.post("/api/users/", json={"display_name": "Bob", "email": "bob@example.org"})
        assert resp.status_code == 201
        assert resp.json()["role"] == "requester"

    def test_unknown_role_rejected(self, client):
        resp = client.post("/api/users/", json={
            "display_name": "Eve", "email": "eve@example.org", "role": "superuser",
        })
        assert resp.status_code == 400
        assert resp.json()["code"] == "VALIDATION_ERROR"

    def test_duplicate_email_rejected(self, client, make_user):
        make_user(email="dup@example.org")
        resp = client.post("/api/users/", json={"display_name": "Again", "email": "dup@example.org"})
        assert resp.status_code == 400

    def test_get_user(self, client, make_user):
        user = make_user()
        resp = client.get(f"/api/users/{user['user_id']}")
        assert resp.status_code == 200
        assert resp.json()["display_name"] == "Test User"

    def test_get_user_not_found(self, client):
        resp = client.get("/api/users/00000000-0000-0000-0000-000000000000")
        assert resp.status_code == 404
        assert resp.json()["code"] == "NOT_FOUND"

    def test_update_user(self, client, make_user):
        user = make_user()
        resp = client.patch(f"/api/users/{user['user_id']}", json={
            "display_name": "Updated Name",
            "role": "admin",
        })
        assert resp.status_code == 200
        assert resp.json()["display_name"] == "Updated Name"
        assert resp.json()["role"] == "admin"

    def test_list_users(self, client, make_user):
        make_user(name="Alice")
        make_user(name="Bob")
        resp = client.get("/api/users/")
        assert resp.status_code == 200
        names = [u["display_name"] for u in resp.json()]
        assert "Alice" in names
        assert "Bob" in names

"""
Tests for the HTTP surface, end to end through the app lifespan.
"""

import pytest
from fastapi.testclient import TestClient

from cloudcast.config import get_settings

SEED = """
accounts:
  - email: admin@company.edu
    password: admin-password
    full_name: Global Admin
  - email: alice@company.edu
    password: alice-password
    full_name: Alice
  - email: bob@company.edu
    password: bob-password
    full_name: Bob
  - email: eve@elsewhere.com
    password: eve-password
organizations:
  - name: Acme Research
    join_code: ACME2024
    created_by: alice@company.edu
    members:
      - email: alice@company.edu
        role: admin
invites:
  - organization: Acme Research
    email: bob@company.edu
"""


@pytest.fixture
def client(tmp_path, monkeypatch):
    """App client with a seeded directory; settings come from the environment."""
    seed_file = tmp_path / "seed.yaml"
    seed_file.write_text(SEED)
    monkeypatch.setenv("SEED_FILE", str(seed_file))
    monkeypatch.setenv("ALLOWED_EMAIL_DOMAINS", "company.edu")
    monkeypatch.setenv("GLOBAL_ADMIN_EMAILS", "admin@company.edu")
    monkeypatch.setenv("JWT_SECRET_KEY", "api-test-secret-key-with-enough-length")
    monkeypatch.setenv("SENTRY_DSN", "")
    get_settings.cache_clear()

    from cloudcast.api.app import app

    with TestClient(app) as client:
        yield client
    get_settings.cache_clear()


def sign_in(client, email, password):
    response = client.post("/auth/sign-in", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return response.json()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


class TestAuth:
    def test_bad_password(self, client):
        response = client.post(
            "/auth/sign-in", json={"email": "alice@company.edu", "password": "nope"}
        )
        assert response.status_code == 401

    def test_me_after_sign_in(self, client):
        me = sign_in(client, "alice@company.edu", "alice-password")

        assert me["authenticated"]
        assert not me["loading"]
        assert me["email_domain_valid"]
        assert me["profile"]["full_name"] == "Alice"
        assert me["memberships"][0]["organization"]["join_code"] == "ACME2024"

    def test_sign_out(self, client):
        sign_in(client, "alice@company.edu", "alice-password")
        assert client.post("/auth/sign-out").status_code == 200
        assert not client.get("/auth/me").json()["authenticated"]

    def test_refresh_keeps_session(self, client):
        sign_in(client, "alice@company.edu", "alice-password")
        me = client.post("/auth/refresh").json()

        assert me["authenticated"]
        assert me["memberships"]

    def test_refresh_without_session(self, client):
        assert client.post("/auth/refresh").status_code == 401


class TestPages:
    def test_signed_out_redirects_to_login(self, client):
        response = client.get("/pages/projects/42", follow_redirects=False)

        assert response.status_code == 307
        assert response.headers["location"] == "/login?next=%2Fprojects%2F42"

    def test_public_page_renders(self, client):
        assert client.get("/pages/login").json() == {"render": "/login"}

    def test_member_sees_dashboard(self, client):
        sign_in(client, "alice@company.edu", "alice-password")
        assert client.get("/pages/dashboard").json() == {"render": "/dashboard"}

    def test_outsider_is_restricted(self, client):
        sign_in(client, "eve@elsewhere.com", "eve-password")
        response = client.get("/pages/dashboard", follow_redirects=False)

        assert response.headers["location"] == "/domain-restricted"

    def test_invited_user_lands_on_dashboard(self, client):
        me = sign_in(client, "bob@company.edu", "bob-password")

        assert me["memberships"][0]["organization"]["name"] == "Acme Research"
        response = client.get("/pages/organization-onboarding", follow_redirects=False)
        assert response.headers["location"] == "/dashboard"


class TestOrganizations:
    def test_create_requires_sign_in(self, client):
        response = client.post("/organizations", json={"name": "New Org"})
        assert response.status_code == 401

    def test_create_then_list(self, client):
        sign_in(client, "admin@company.edu", "admin-password")

        response = client.post("/organizations", json={"name": "New Org"})
        assert response.status_code == 201
        org_id = response.json()["organization_id"]

        listing = client.get("/organizations/memberships").json()
        assert [m["organization_id"] for m in listing["memberships"]] == [org_id]
        assert listing["join_codes"][0]["organization_id"] == org_id

    def test_bad_join_code(self, client):
        sign_in(client, "admin@company.edu", "admin-password")
        response = client.post("/organizations/join", json={"code": "WRONG000"})
        assert response.status_code == 404

    def test_join_with_code(self, client):
        sign_in(client, "admin@company.edu", "admin-password")
        response = client.post("/organizations/join", json={"code": "acme2024"})

        assert response.json() == {"joined": True}
        assert client.get("/auth/me").json()["memberships"]

    def test_join_request_review(self, client):
        sign_in(client, "admin@company.edu", "admin-password")
        joinable = client.get("/organizations/joinable").json()["organizations"]
        org_id = joinable[0]["id"]
        assert joinable[0]["join_code"] is None

        request = client.post(f"/organizations/{org_id}/join-requests").json()
        assert request["status"] == "pending"
        client.post("/auth/sign-out")

        sign_in(client, "alice@company.edu", "alice-password")
        pending = client.get(f"/organizations/{org_id}/join-requests").json()["join_requests"]
        assert [r["id"] for r in pending] == [request["id"]]

        reviewed = client.post(f"/join-requests/{request['id']}/review", json={"approve": True})
        assert reviewed.json()["status"] == "approved"
        again = client.post(f"/join-requests/{request['id']}/review", json={"approve": False})
        assert again.status_code == 409

    def test_invite_and_regenerate(self, client):
        me = sign_in(client, "alice@company.edu", "alice-password")
        org_id = me["memberships"][0]["organization_id"]

        invite = client.post(f"/organizations/{org_id}/invites", json={"email": "carol@company.edu"})
        assert invite.status_code == 201
        assert invite.json()["role"] == "member"

        code = client.post(f"/organizations/{org_id}/join-code").json()["join_code"]
        assert code != "ACME2024"


class TestAdmin:
    def test_regular_user_forbidden(self, client):
        sign_in(client, "alice@company.edu", "alice-password")
        assert client.get("/admin/organizations").status_code == 403

    def test_admin_views(self, client):
        sign_in(client, "admin@company.edu", "admin-password")

        orgs = client.get("/admin/organizations").json()["organizations"]
        assert orgs[0]["member_count"] == 1

        profiles = client.get("/admin/profiles").json()["profiles"]
        assert len(profiles) == 4

        created = client.post("/admin/organizations", json={"name": "Physics Lab"})
        assert created.status_code == 201
        assert created.json()["join_code"]

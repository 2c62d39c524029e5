"""
tests/test_profiles_routes.py -- Integration tests for /api/profiles/*.

Coverage:
  - create for the caller; a second create is 409
  - public view hides email from strangers, shows it to owner and admin
  - an account without a profile still has a (blank) public view
  - partial updates only touch fields present in the body
  - owner-or-admin guard on update and delete
  - phone number validation
"""

from __future__ import annotations

from fastapi.testclient import TestClient

from directory.models import Profile
from directory.store import DirectoryStore
from conftest import bearer, make_user

PROFILE = {"bio": "Builds things", "location": "Lisbon", "country": "Portugal", "phoneNumber": "+351912345678"}


class TestCreate:
    def test_create_for_caller(self, client: TestClient, member) -> None:
        resp = client.post("/api/profiles", json=PROFILE, headers=bearer(member))
        assert resp.status_code == 201, resp.text
        data = resp.json()["data"]
        assert data["userId"] == member.id
        assert data["fullName"] == member.full_name
        assert data["email"] == member.email
        assert data["bio"] == "Builds things"

    def test_second_create_is_409(self, client: TestClient, member) -> None:
        client.post("/api/profiles", json=PROFILE, headers=bearer(member))
        resp = client.post("/api/profiles", json=PROFILE, headers=bearer(member))
        assert resp.status_code == 409
        assert resp.json()["message"] == "Profile already exists"

    def test_requires_auth(self, client: TestClient) -> None:
        assert client.post("/api/profiles", json=PROFILE).status_code == 401

    def test_bad_phone_is_400(self, client: TestClient, member) -> None:
        resp = client.post("/api/profiles", json={"phoneNumber": "call me"}, headers=bearer(member))
        assert resp.status_code == 400
        assert resp.json()["errors"] == [{"field": "phoneNumber", "message": "Please enter a valid phone number"}]

    def test_long_bio_is_400(self, client: TestClient, member) -> None:
        resp = client.post("/api/profiles", json={"bio": "x" * 501}, headers=bearer(member))
        assert resp.status_code == 400


class TestView:
    def test_anonymous_view_hides_email(self, client: TestClient, member, directory_store: DirectoryStore) -> None:
        directory_store.create_profile(Profile(user_id=member.id, bio="hi"))
        resp = client.get(f"/api/profiles/{member.id}")
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["bio"] == "hi"
        assert "email" not in data

    def test_other_user_does_not_see_email(self, client: TestClient, member, user_store) -> None:
        stranger = make_user(user_store, email="stranger@x.com")
        data = client.get(f"/api/profiles/{member.id}", headers=bearer(stranger)).json()["data"]
        assert "email" not in data

    def test_owner_and_admin_see_email(self, client: TestClient, member, admin) -> None:
        for viewer in (member, admin):
            data = client.get(f"/api/profiles/{member.id}", headers=bearer(viewer)).json()["data"]
            assert data["email"] == member.email

    def test_account_without_profile_has_blank_view(self, client: TestClient, member) -> None:
        data = client.get(f"/api/profiles/{member.id}").json()["data"]
        assert data["fullName"] == member.full_name
        assert data["bio"] == ""

    def test_missing_account_is_404(self, client: TestClient) -> None:
        resp = client.get("/api/profiles/99999")
        assert resp.status_code == 404
        assert resp.json()["message"] == "User not found"

    def test_garbage_token_is_treated_as_anonymous(self, client: TestClient, member) -> None:
        resp = client.get(f"/api/profiles/{member.id}", headers={"Authorization": "Bearer junk"})
        assert resp.status_code == 200
        assert "email" not in resp.json()["data"]


class TestUpdateAndDelete:
    def test_partial_update_keeps_other_fields(self, client: TestClient, member) -> None:
        client.post("/api/profiles", json=PROFILE, headers=bearer(member))
        resp = client.put(f"/api/profiles/{member.id}", json={"location": "Porto"}, headers=bearer(member))
        assert resp.status_code == 200, resp.text
        data = resp.json()["data"]
        assert data["location"] == "Porto"
        assert data["bio"] == "Builds things"
        assert data["country"] == "Portugal"

    def test_admin_may_update_any_profile(self, client: TestClient, member, admin) -> None:
        client.post("/api/profiles", json=PROFILE, headers=bearer(member))
        resp = client.put(f"/api/profiles/{member.id}", json={"bio": ""}, headers=bearer(admin))
        assert resp.status_code == 200
        assert resp.json()["data"]["bio"] == ""

    def test_stranger_cannot_update(self, client: TestClient, member, admin) -> None:
        client.post("/api/profiles", json=PROFILE, headers=bearer(admin))
        resp = client.put(f"/api/profiles/{admin.id}", json={"bio": "mine now"}, headers=bearer(member))
        assert resp.status_code == 403
        assert resp.json()["message"] == "Not authorized to modify this profile"

    def test_update_missing_profile_is_404(self, client: TestClient, member) -> None:
        resp = client.put(f"/api/profiles/{member.id}", json={"bio": "x"}, headers=bearer(member))
        assert resp.status_code == 404
        assert resp.json()["message"] == "Profile not found"

    def test_owner_deletes(self, client: TestClient, member, directory_store: DirectoryStore) -> None:
        client.post("/api/profiles", json=PROFILE, headers=bearer(member))
        resp = client.delete(f"/api/profiles/{member.id}", headers=bearer(member))
        assert resp.status_code == 200
        assert directory_store.get_profile(member.id) is None
        assert client.delete(f"/api/profiles/{member.id}", headers=bearer(member)).status_code == 404

    def test_stranger_cannot_delete(self, client: TestClient, member, admin) -> None:
        client.post("/api/profiles", json=PROFILE, headers=bearer(admin))
        assert client.delete(f"/api/profiles/{admin.id}", headers=bearer(member)).status_code == 403

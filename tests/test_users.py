"""Account management: profile updates, roles, listing and deletion."""
from dataclasses import replace

from bson.objectid import ObjectId
from pymongo.errors import DuplicateKeyError

import users
from security import verify_password
from users import bootstrap_admin


class TestRetrieve:
    def test_admin_lists_users_without_secrets(self, client, api, owner, visitor):
        response = client.get(f"{api}/users/retrieve", headers=owner.headers)

        assert response.status_code == 200
        listed = response.json()["data"]["users"]
        assert {u["username"] for u in listed} == {"dev1", "guest"}
        assert all("password" not in u and "refresh_token" not in u for u in listed)

    def test_admin_reads_one_user(self, client, api, owner, visitor):
        response = client.get(f"{api}/users/retrieve/{visitor.id}", headers=owner.headers)
        assert response.status_code == 200
        assert response.json()["data"]["user"]["id"] == visitor.id

    def test_invalid_and_unknown_ids(self, client, api, owner):
        invalid = client.get(f"{api}/users/retrieve/not-an-id", headers=owner.headers)
        unknown = client.get(f"{api}/users/retrieve/{ObjectId()}", headers=owner.headers)

        assert invalid.status_code == 400
        assert invalid.json()["message"] == "Invalid userId"
        assert unknown.status_code == 404

    def test_regular_user_is_forbidden(self, client, api, visitor):
        response = client.get(f"{api}/users/retrieve/{visitor.id}", headers=visitor.headers)
        assert response.status_code == 403


class TestUpdateRole:
    def test_admin_promotes_user(self, client, api, db, owner, visitor):
        response = client.patch(
            f"{api}/users/update-role/{visitor.id}", json={"role": "admin"}, headers=owner.headers
        )

        assert response.status_code == 200
        assert response.json()["data"]["user"]["role"] == "admin"
        assert db["user"].find_one({"username": "guest"})["role"] == "admin"

    def test_unknown_role(self, client, api, owner, visitor):
        response = client.patch(
            f"{api}/users/update-role/{visitor.id}", json={"role": "root"}, headers=owner.headers
        )
        assert response.status_code == 400
        assert response.json()["message"] == 'Role must be either "admin" or "user"'

    def test_non_admin_cannot_change_roles(self, client, api, owner, visitor):
        response = client.patch(
            f"{api}/users/update-role/{visitor.id}", json={"role": "admin"}, headers=visitor.headers
        )
        assert response.status_code == 403


class TestUpdateUser:
    def test_user_renames_self(self, client, api, visitor):
        response = client.patch(
            f"{api}/users/update/{visitor.id}", json={"username": "guest2"}, headers=visitor.headers
        )

        assert response.status_code == 200
        user = response.json()["data"]["user"]
        assert user["username"] == "guest2"
        assert user["email"] == "guest@x.com"

    def test_user_cannot_update_someone_else(self, client, api, owner, visitor):
        response = client.patch(
            f"{api}/users/update/{owner.id}", json={"username": "hijack"}, headers=visitor.headers
        )
        assert response.status_code == 403

    def test_admin_can_update_someone_else(self, client, api, owner, visitor):
        response = client.patch(
            f"{api}/users/update/{visitor.id}", json={"email": "Guest@New.com"}, headers=owner.headers
        )
        assert response.status_code == 200
        assert response.json()["data"]["user"]["email"] == "guest@new.com"

    def test_taken_username(self, client, api, owner, visitor):
        response = client.patch(
            f"{api}/users/update/{visitor.id}", json={"username": "dev1"}, headers=visitor.headers
        )
        assert response.status_code == 409

    def test_update_keeps_password(self, client, api, db, visitor):
        client.patch(f"{api}/users/update/{visitor.id}", json={"username": "guest2"},
                     headers=visitor.headers)
        stored = db["user"].find_one({"username": "guest2"})
        assert verify_password("secret123", stored["password"])

    def test_avatar_swap_releases_old_image_once(self, client, api, media, visitor):
        url = f"{api}/users/update/{visitor.id}"
        first = client.patch(url, files={"profile_image": ("a.png", b"a", "image/png")},
                             headers=visitor.headers)
        old_avatar = first.json()["data"]["user"]["profile_image"]
        assert media.deleted == []

        second = client.patch(url, files={"profile_image": ("b.png", b"b", "image/png")},
                              headers=visitor.headers)

        assert second.status_code == 200
        assert second.json()["data"]["user"]["profile_image"] != old_avatar
        assert media.uploaded == ["a.png", "b.png"]
        assert media.deleted == ["portfolio/a-1"]


class TestDeleteUser:
    def test_delete_self_revokes_access(self, client, api, db, visitor):
        response = client.delete(f"{api}/users/delete", headers=visitor.headers)

        assert response.status_code == 200
        assert "password" not in response.json()["data"]["user"]
        assert db["user"].find_one({"username": "guest"}) is None
        client.cookies.clear()
        assert client.get(f"{api}/users/current-user", headers=visitor.headers).status_code == 401

    def test_admin_delete_releases_hosted_avatar(self, client, api, db, media, owner, visitor):
        hosted = "https://res.cloudinary.com/demo/image/upload/v9/portfolio/guest.png"
        db["user"].update_one({"username": "guest"}, {"$set": {"profile_image": hosted}})

        response = client.delete(f"{api}/users/delete/{visitor.id}", headers=owner.headers)

        assert response.status_code == 200
        assert media.deleted == ["portfolio/guest"]

    def test_external_avatar_is_left_alone(self, client, api, db, media, owner, visitor):
        db["user"].update_one(
            {"username": "guest"}, {"$set": {"profile_image": "https://example.com/guest.png"}}
        )
        client.delete(f"{api}/users/delete/{visitor.id}", headers=owner.headers)
        assert media.deleted == []

    def test_non_admin_cannot_delete_others(self, client, api, owner, visitor):
        response = client.delete(f"{api}/users/delete/{owner.id}", headers=visitor.headers)
        assert response.status_code == 403


class TestBootstrapAdmin:
    def test_creates_admin_once(self, context, db):
        configured = replace(
            context,
            settings=replace(context.settings, admin_username="root",
                             admin_email="root@x.com", admin_password="rootpass"),
        )

        created = bootstrap_admin(configured)
        again = bootstrap_admin(configured)

        assert created["role"] == "admin"
        assert "password" not in created
        assert again is None
        assert db["user"].count_documents({"username": "root"}) == 1

    def test_skipped_without_credentials(self, context, db):
        assert bootstrap_admin(context) is None
        assert db["user"].count_documents({}) == 0


class TestRegisterRace:
    def test_insert_race_releases_uploaded_avatar(self, client, api, media, monkeypatch):
        def duplicate(*args, **kwargs):
            raise DuplicateKeyError("E11000 duplicate key")

        monkeypatch.setattr(users, "create_document", duplicate)
        response = client.post(
            f"{api}/users/register",
            data={"username": "dev1", "email": "dev1@x.com", "password": "secret123"},
            files={"profile_image": ("me.png", b"png", "image/png")},
        )

        assert response.status_code == 409
        assert media.deleted == ["portfolio/me-1"]

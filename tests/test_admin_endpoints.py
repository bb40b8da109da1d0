"""Admin-only surface: user management, dashboard stats and report moderation."""

import pytest
from bson import ObjectId

from tests.conftest import auth


class TestAdminGate:
    @pytest.mark.parametrize(
        "method,path",
        [
            ("get", "/users"),
            ("get", "/admin/stats"),
            ("get", "/admin/reports"),
            ("delete", f"/users/{ObjectId()}"),
        ],
    )
    def test_regular_user_is_forbidden(self, test_client, api, alice, method, path):
        response = test_client.request(method.upper(), f"{api}{path}", headers=auth(alice[1]))
        assert response.status_code == 403
        assert "message" in response.json()

    def test_anonymous_is_unauthenticated(self, test_client, api):
        assert test_client.get(f"{api}/users").status_code == 401
        assert test_client.get(f"{api}/admin/stats").status_code == 401


class TestUserManagement:
    def test_list_users_is_sanitized_and_newest_first(self, test_client, api, make_user, admin):
        make_user("first@matzip.kr")
        make_user("second@matzip.kr")

        response = test_client.get(f"{api}/users", headers=auth(admin[1]))

        assert response.status_code == 200
        users = response.json()
        assert [u["email"] for u in users][:2] == ["second@matzip.kr", "first@matzip.kr"]
        assert all("passwordHash" not in u and "password_hash" not in u for u in users)

    def test_change_role_and_display_name(self, test_client, api, alice, admin, login):
        user, _ = alice
        response = test_client.put(
            f"{api}/users/{user['id']}",
            headers=auth(admin[1]),
            json={"role": "admin", "displayName": "Alice K"},
        )

        assert response.status_code == 200
        assert response.json()["role"] == "admin"
        assert response.json()["displayName"] == "Alice K"
        fresh_token = login("alice@matzip.kr").json()["token"]
        assert test_client.get(f"{api}/admin/stats", headers=auth(fresh_token)).status_code == 200

    def test_invalid_role_rejected(self, test_client, api, alice, admin):
        response = test_client.put(f"{api}/users/{alice[0]['id']}", headers=auth(admin[1]), json={"role": "root"})
        assert response.status_code == 400

    def test_unlock_locked_account(self, test_client, api, alice, admin, login, db):
        for _ in range(5):
            login("alice@matzip.kr", "wrong")
        assert db["user"].find_one({"email": "alice@matzip.kr"})["is_active"] is False

        response = test_client.put(f"{api}/users/{alice[0]['id']}", headers=auth(admin[1]), json={"isActive": True})

        assert response.status_code == 200
        assert response.json()["isActive"] is True
        assert response.json()["loginAttempts"] == 0
        assert login("alice@matzip.kr").status_code == 200

    def test_only_admin_cannot_demote_self(self, test_client, api, admin):
        user, token = admin
        response = test_client.put(f"{api}/users/{user['id']}", headers=auth(token), json={"role": "user"})
        assert response.status_code == 400

    def test_only_admin_cannot_deactivate_self(self, test_client, api, admin, login, db):
        user, token = admin
        response = test_client.put(f"{api}/users/{user['id']}", headers=auth(token), json={"isActive": False})
        assert response.status_code == 400
        assert db["user"].find_one({"email": "admin@matzip.kr"})["is_active"] is True
        assert login("admin@matzip.kr").status_code == 200

    def test_locked_admin_does_not_count_as_active(self, test_client, api, admin, make_admin, db):
        make_admin("second-admin@matzip.kr")
        db["user"].update_one({"email": "second-admin@matzip.kr"}, {"$set": {"is_active": False}})
        user, token = admin
        response = test_client.put(f"{api}/users/{user['id']}", headers=auth(token), json={"role": "user"})
        assert response.status_code == 400

    def test_admin_can_deactivate_self_when_another_admin_exists(self, test_client, api, admin, make_admin):
        make_admin("second-admin@matzip.kr")
        user, token = admin
        response = test_client.put(f"{api}/users/{user['id']}", headers=auth(token), json={"isActive": False})
        assert response.status_code == 200
        assert response.json()["isActive"] is False

    def test_admin_can_demote_self_when_another_admin_exists(self, test_client, api, admin, make_admin):
        make_admin("second-admin@matzip.kr")
        user, token = admin
        response = test_client.put(f"{api}/users/{user['id']}", headers=auth(token), json={"role": "user"})
        assert response.status_code == 200
        assert response.json()["role"] == "user"

    def test_update_unknown_user(self, test_client, api, admin):
        response = test_client.put(f"{api}/users/{ObjectId()}", headers=auth(admin[1]), json={"role": "user"})
        assert response.status_code == 404

    def test_admin_cannot_delete_self(self, test_client, api, admin):
        user, token = admin
        assert test_client.delete(f"{api}/users/{user['id']}", headers=auth(token)).status_code == 400

    def test_delete_user_cascades(self, test_client, api, alice, bob, admin, create_photo, db):
        alice_photo = create_photo(alice[1], isPublic="true").json()
        create_photo(bob[1], isPublic="true")
        bob_photo = create_photo(bob[1], isPublic="true").json()
        test_client.post(f"{api}/photos/{bob_photo['id']}/like", headers=auth(alice[1]))
        test_client.post(f"{api}/photos/{bob_photo['id']}/comments", headers=auth(alice[1]), json={"text": "yum"})
        test_client.post(
            f"{api}/reports",
            headers=auth(alice[1]),
            json={"targetType": "Photo", "targetId": bob_photo["id"], "reason": "wrong address"},
        )
        test_client.post(
            f"{api}/reports",
            headers=auth(bob[1]),
            json={"targetType": "Photo", "targetId": alice_photo["id"], "reason": "not food"},
        )

        response = test_client.delete(f"{api}/users/{alice[0]['id']}", headers=auth(admin[1]))

        assert response.status_code == 200
        alice_oid = ObjectId(alice[0]["id"])
        assert db["user"].find_one({"_id": alice_oid}) is None
        assert db["photo"].count_documents({"owner": alice_oid}) == 0
        assert db["photo"].count_documents({}) == 2
        remaining = db["photo"].find_one({"_id": ObjectId(bob_photo["id"])})
        assert remaining["likes"] == []
        assert remaining["comments"] == []
        assert db["report"].count_documents({"reporter": alice_oid}) == 0
        assert db["report"].count_documents({"target_id": ObjectId(alice_photo["id"])}) == 1

    def test_delete_unknown_user(self, test_client, api, admin):
        assert test_client.delete(f"{api}/users/{ObjectId()}", headers=auth(admin[1])).status_code == 404

    def test_delete_own_account(self, test_client, api, alice, create_photo, db, login):
        create_photo(alice[1])
        response = test_client.delete(f"{api}/users/me", headers=auth(alice[1]))
        assert response.status_code == 200
        assert db["photo"].count_documents({}) == 0
        assert login("alice@matzip.kr").status_code == 400


class TestStats:
    def test_dashboard_counts(self, test_client, api, alice, bob, admin, create_photo):
        create_photo(alice[1])
        create_photo(bob[1], isPublic="true")

        stats = test_client.get(f"{api}/admin/stats", headers=auth(admin[1])).json()

        assert stats == {
            "totalUsers": 3,
            "todayUsers": 3,
            "todayDeletedUsers": 0,
            "totalPhotos": 2,
            "pendingReports": 0,
        }


class TestReportModeration:
    @pytest.fixture
    def reported_photo(self, test_client, api, create_photo, alice, bob):
        photo = create_photo(alice[1], name="Questionable Soup", isPublic="true").json()
        report = test_client.post(
            f"{api}/reports",
            headers=auth(bob[1]),
            json={"targetType": "Photo", "targetId": photo["id"], "reason": "this is not a restaurant"},
        )
        assert report.status_code == 201
        return photo, report.json()

    def test_report_is_created_pending(self, reported_photo, bob):
        photo, report = reported_photo
        assert report["status"] == "Pending"
        assert report["targetPhotoId"] == photo["id"]
        assert report["reporter"] == bob[0]["id"]

    def test_short_reason_rejected(self, test_client, api, public_photo_of_alice, bob):
        response = test_client.post(
            f"{api}/reports",
            headers=auth(bob[1]),
            json={"targetType": "Photo", "targetId": public_photo_of_alice["id"], "reason": "bad"},
        )
        assert response.status_code == 400
        assert "reason" in response.json()["message"]

    def test_unknown_target_type_rejected(self, test_client, api, public_photo_of_alice, bob):
        response = test_client.post(
            f"{api}/reports",
            headers=auth(bob[1]),
            json={"targetType": "User", "targetId": public_photo_of_alice["id"], "reason": "spam account"},
        )
        assert response.status_code == 400

    def test_report_comment(self, test_client, api, public_photo_of_alice, alice, bob, admin):
        comment = test_client.post(
            f"{api}/photos/{public_photo_of_alice['id']}/comments",
            headers=auth(alice[1]),
            json={"text": "buy cheap watches"},
        ).json()

        response = test_client.post(
            f"{api}/reports",
            headers=auth(bob[1]),
            json={
                "targetType": "Comment",
                "targetId": comment["id"],
                "targetPhotoId": public_photo_of_alice["id"],
                "reason": "spam in comments",
            },
        )
        assert response.status_code == 201

        listing = test_client.get(f"{api}/admin/reports", headers=auth(admin[1])).json()
        assert listing["reports"][0]["targetTitle"] == "buy cheap watches"

    def test_resolve_scenario(self, test_client, api, reported_photo, admin):
        photo, report = reported_photo
        headers = auth(admin[1])

        assert test_client.get(f"{api}/admin/stats", headers=headers).json()["pendingReports"] == 1
        pending = test_client.get(f"{api}/admin/reports", headers=headers, params={"status": "Pending"}).json()
        assert [r["id"] for r in pending["reports"]] == [report["id"]]
        assert pending["reports"][0]["targetTitle"] == "Questionable Soup"
        assert pending["reports"][0]["reporter"]["email"] == "bob@matzip.kr"

        response = test_client.put(f"{api}/admin/reports/{report['id']}", headers=headers, json={"newStatus": "Resolved"})

        assert response.status_code == 200
        assert response.json()["status"] == "Resolved"
        assert response.json()["resolvedBy"] == admin[0]["id"]
        assert test_client.get(f"{api}/admin/stats", headers=headers).json()["pendingReports"] == 0
        pending = test_client.get(f"{api}/admin/reports", headers=headers, params={"status": "Pending"}).json()
        assert pending["reports"] == []
        assert pending["totalCount"] == 0
        # the reported photo itself is untouched
        assert test_client.get(f"{api}/photos/{photo['id']}", headers=headers).status_code == 200

    def test_processed_report_cannot_change_again(self, test_client, api, reported_photo, admin):
        _, report = reported_photo
        url = f"{api}/admin/reports/{report['id']}"
        assert test_client.put(url, headers=auth(admin[1]), json={"newStatus": "Dismissed"}).status_code == 200
        response = test_client.put(url, headers=auth(admin[1]), json={"newStatus": "Resolved"})
        assert response.status_code == 400

    def test_invalid_status_value(self, test_client, api, reported_photo, admin):
        _, report = reported_photo
        response = test_client.put(
            f"{api}/admin/reports/{report['id']}",
            headers=auth(admin[1]),
            json={"newStatus": "Closed"},
        )
        assert response.status_code == 400

    def test_unknown_report(self, test_client, api, admin):
        response = test_client.put(
            f"{api}/admin/reports/{ObjectId()}",
            headers=auth(admin[1]),
            json={"newStatus": "Resolved"},
        )
        assert response.status_code == 404

    @pytest.mark.parametrize("page,limit", [("0", "0"), ("-3", "abc")])
    def test_invalid_paging_falls_back_to_defaults(self, test_client, api, reported_photo, admin, page, limit):
        response = test_client.get(
            f"{api}/admin/reports",
            headers=auth(admin[1]),
            params={"page": page, "limit": limit},
        )

        assert response.status_code == 200
        listing = response.json()
        assert listing["currentPage"] == 1
        assert listing["totalCount"] == 1
        assert len(listing["reports"]) == 1


@pytest.fixture
def public_photo_of_alice(create_photo, alice):
    return create_photo(alice[1], isPublic="true").json()

"""End-to-end tests for the user REST endpoints."""

import pytest


pytestmark = pytest.mark.integration


class TestUserReads:
    def test_list_filters_and_pagination(self, client, users, headers):
        response = client.get("/api/users", params={"role": "vendor"}, headers=headers["customer"])

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 2
        assert {user["name"] for user in body["data"]} == {"Vera Vendor", "Victor Vendor"}

        searched = client.get("/api/users", params={"search": "CARL"}, headers=headers["vendor"]).json()
        assert [user["email"] for user in searched["data"]] == ["carl@example.com"]

        paged = client.get(
            "/api/users", params={"sort_by": "name", "sort_order": "asc", "limit": 2, "page": 3}, headers=headers["admin"]
        ).json()
        assert [user["name"] for user in paged["data"]] == ["Victor Vendor"]
        assert paged["pagination"] == {"page": 3, "limit": 2, "pages": 3}

    def test_list_requires_token(self, client, users):
        assert client.get("/api/users").status_code == 401

    def test_user_with_task_stats(self, client, users, headers, create_task):
        create_task(time_spent_seconds=300)
        create_task(status="done", time_spent_seconds=60)

        response = client.get(f"/api/users/{users['customer'].id}", headers=headers["vendor"])

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["email"] == "cleo@example.com"
        assert data["task_stats"] == {
            "total": 2,
            "todo": 1,
            "inprogress": 0,
            "done": 1,
            "total_time_spent_seconds": 360,
        }

    def test_missing_user(self, client, users, headers):
        response = client.get("/api/users/ghost", headers=headers["admin"])
        assert response.status_code == 404
        assert response.json()["message"] == "User not found: ghost"

    def test_stats_admin_only(self, client, users, headers):
        assert client.get("/api/users/stats", headers=headers["vendor"]).status_code == 403

        data = client.get("/api/users/stats", headers=headers["admin"]).json()["data"]
        assert data["overview"] == {
            "total": 5,
            "active": 5,
            "inactive": 0,
            "admins": 1,
            "vendors": 2,
            "customers": 2,
        }
        assert data["role_distribution"] == {"admin": 1, "vendor": 2, "customer": 2}
        assert len(data["recent_users"]) == 5


class TestUserAdministration:
    def test_admin_deactivates_user(self, client, users, headers):
        customer_id = users["customer"].id

        response = client.put(f"/api/users/{customer_id}", json={"is_active": False}, headers=headers["admin"])
        assert response.status_code == 200
        assert response.json()["data"]["is_active"] is False

        refused = client.get("/api/tasks", headers=headers["customer"])
        assert refused.status_code == 401
        assert refused.json()["message"] == "User account is deactivated"

        stats = client.get("/api/users/stats", headers=headers["admin"]).json()["data"]
        assert (stats["overview"]["active"], stats["overview"]["inactive"]) == (4, 1)

    def test_non_admin_cannot_update(self, client, users, headers):
        response = client.put(f"/api/users/{users['customer'].id}", json={"role": "admin"}, headers=headers["vendor"])
        assert response.status_code == 403
        assert response.json()["code"] == "ERR_FORBIDDEN"

    def test_update_validation(self, client, users, headers):
        url = f"/api/users/{users['customer'].id}"

        taken = client.put(url, json={"email": "vera@example.com"}, headers=headers["admin"])
        assert taken.status_code == 400
        assert taken.json()["message"] == "Email is already taken"

        assert client.put(url, json={"role": "owner"}, headers=headers["admin"]).status_code == 400
        assert client.put(url, json={"name": None}, headers=headers["admin"]).status_code == 400

    def test_rename_reaches_assigned_tasks(self, client, users, headers, create_task):
        task = create_task()

        client.put(f"/api/users/{users['customer'].id}", json={"name": "Cleo Renamed"}, headers=headers["admin"])

        stored = client.get(f"/api/tasks/{task['id']}", headers=headers["vendor"]).json()["data"]
        assert stored["assignee_name"] == "Cleo Renamed"

    def test_delete_refused_while_tasks_assigned(self, client, users, headers, create_task):
        create_task()

        response = client.delete(f"/api/users/{users['customer'].id}", headers=headers["admin"])

        assert response.status_code == 400
        assert "User has 1 assigned tasks" in response.json()["message"]

    def test_admin_deletes_user(self, client, users, headers):
        other_id = users["other_customer"].id

        assert client.delete(f"/api/users/{other_id}", headers=headers["vendor"]).status_code == 403

        response = client.delete(f"/api/users/{other_id}", headers=headers["admin"])
        assert response.json() == {"success": True, "message": "User deleted successfully"}
        assert client.get(f"/api/users/{other_id}", headers=headers["admin"]).status_code == 404

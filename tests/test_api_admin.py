from fastapi.testclient import TestClient

from todo_api.schemas import TodoCreate


def test_admin_get_all_users(client: TestClient, admin_token_headers, test_user, test_admin):
    """Test admin endpoint to get all users."""
    response = client.get("/api/admin/users", headers=admin_token_headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert isinstance(data, list)
    assert {user["id"] for user in data} == {test_user.id, test_admin.id}
    assert all("hashed_password" not in user for user in data)

    # Invalid token is rejected before the role check
    response = client.get("/api/admin/users", headers={"Authorization": "Bearer invalid_token"})
    assert response.status_code == 401


def test_admin_get_user_by_id(client: TestClient, repos, admin_token_headers, test_user, test_todo):
    """Test admin endpoint to get a specific user by ID."""
    response = client.get(f"/api/admin/users/{test_user.id}", headers=admin_token_headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["id"] == test_user.id
    assert data["email"] == test_user.email
    assert [todo["id"] for todo in data["todos"]] == [test_todo.id]
    assert data["todo_count"] == 1

    response = client.get("/api/admin/users/9999", headers=admin_token_headers)
    assert response.status_code == 404
    assert response.json()["error"] == "User not found"


def test_regular_user_cannot_access_admin_endpoints(client: TestClient, user_token_headers):
    """Test that regular users cannot access admin endpoints."""
    for method, url in (
        ("get", "/api/admin/users"),
        ("get", "/api/admin/users/1"),
        ("get", "/api/admin/todos"),
        ("delete", "/api/admin/users/1"),
    ):
        response = client.request(method, url, headers=user_token_headers)
        assert response.status_code == 403, url
        assert response.json() == {"success": False, "error": "Admin privileges required"}


def test_admin_updates_user(client: TestClient, admin_token_headers, test_user):
    response = client.patch(
        f"/api/admin/users/{test_user.id}",
        json={"role": "admin", "name": "Promoted"},
        headers=admin_token_headers,
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["role"] == "admin"
    assert data["name"] == "Promoted"
    assert data["is_active"] is True

    response = client.patch(
        f"/api/admin/users/{test_user.id}",
        json={"is_active": False},
        headers=admin_token_headers,
    )
    assert response.json()["data"]["is_active"] is False

    response = client.patch(
        "/api/admin/users/9999", json={"is_active": False}, headers=admin_token_headers
    )
    assert response.status_code == 404


def test_admin_cannot_demote_or_deactivate_self(client: TestClient, admin_token_headers, test_admin):
    for body in ({"role": "user"}, {"is_active": False}):
        response = client.patch(
            f"/api/admin/users/{test_admin.id}", json=body, headers=admin_token_headers
        )
        assert response.status_code == 400, body

    response = client.patch(
        f"/api/admin/users/{test_admin.id}", json={"name": "Root"}, headers=admin_token_headers
    )
    assert response.status_code == 200


def test_admin_deletes_user_and_their_todos(
        client: TestClient, repos, admin_token_headers, test_user, test_todo):
    user_id, todo_id = test_user.id, test_todo.id

    response = client.delete(f"/api/admin/users/{user_id}", headers=admin_token_headers)

    assert response.status_code == 200
    assert response.json()["data"] == {"id": user_id, "deleted": True}
    assert repos.users.get(user_id) is None
    assert repos.todos.get_user_todo(todo_id, user_id) is None

    response = client.delete(f"/api/admin/users/{user_id}", headers=admin_token_headers)
    assert response.status_code == 404


def test_admin_cannot_delete_self(client: TestClient, admin_token_headers, test_admin):
    response = client.delete(f"/api/admin/users/{test_admin.id}", headers=admin_token_headers)
    assert response.status_code == 400


def test_admin_lists_all_todos(client: TestClient, repos, admin_token_headers, test_admin, test_user, test_todo):
    repos.todos.create(TodoCreate(task="Admin's Todo"), test_admin.id)

    response = client.get("/api/admin/todos", headers=admin_token_headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert len(data) == 2
    owners = {todo["task"]: todo["owner"] for todo in data}
    assert owners["Test Todo"] == {"id": test_user.id, "name": "Test User", "email": "test@example.com"}
    assert owners["Admin's Todo"]["email"] == "admin@example.com"


def test_admin_pages_user_todos(client: TestClient, repos, admin_token_headers, test_user):
    created = [repos.todos.create(TodoCreate(task=f"Task {n}"), test_user.id) for n in range(5)]

    response = client.get(
        f"/api/admin/users/{test_user.id}",
        params={"todo_skip": 2, "todo_limit": 2},
        headers=admin_token_headers,
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert [todo["id"] for todo in data["todos"]] == [created[2].id, created[3].id]
    assert data["todo_count"] == 5

    response = client.get(
        f"/api/admin/users/{test_user.id}", params={"todo_limit": 0}, headers=admin_token_headers
    )
    assert response.status_code == 400

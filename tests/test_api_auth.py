from datetime import timedelta

from fastapi.testclient import TestClient

from todo_api.schemas import UserAdminUpdate
from todo_api.security import create_user_token


def test_user_registration(client: TestClient):
    """Test user registration."""
    user_data = {
        "name": "New User",
        "email": "NewUser@example.com",
        "password": "password123",
    }

    response = client.post("/api/auth/register", json=user_data)

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    data = body["data"]
    assert data["token"]
    assert data["token_type"] == "bearer"
    assert data["user"]["email"] == "newuser@example.com"
    assert data["user"]["name"] == "New User"
    assert data["user"]["role"] == "user"
    assert data["user"]["is_active"] is True
    assert "password" not in data["user"]
    assert "hashed_password" not in data["user"]

    # The returned token works straight away
    response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {data['token']}"})
    assert response.status_code == 200

    # Try to register with the same email
    response = client.post("/api/auth/register", json=user_data)
    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "User with this email already exists"}


def test_registration_validation(client: TestClient):
    response = client.post(
        "/api/auth/register",
        json={"name": "Shorty", "email": "short@example.com", "password": "short"},
    )
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert "password" in body["error"]
    assert body["details"][0]["field"] == "password"

    response = client.post(
        "/api/auth/register",
        json={"name": "   ", "email": "blank@example.com", "password": "password123"},
    )
    assert response.status_code == 400

    response = client.post(
        "/api/auth/register",
        json={"name": "Bad Email", "email": "not-an-email", "password": "password123"},
    )
    assert response.status_code == 400


def test_login_valid_credentials(client: TestClient, test_user):
    """Test login with valid credentials."""
    assert test_user.last_login is None

    response = client.post(
        "/api/auth/login",
        json={"email": "Test@Example.com", "password": "testpassword"},
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["token"]
    assert data["user"]["id"] == test_user.id
    assert data["user"]["last_login"] is not None


def test_login_invalid_credentials(client: TestClient, test_user):
    """Test login with invalid credentials."""
    response = client.post(
        "/api/auth/login",
        json={"email": "test@example.com", "password": "wrongpassword"},
    )
    assert response.status_code == 401
    assert response.json()["success"] is False

    response = client.post(
        "/api/auth/login",
        json={"email": "nonexistent@example.com", "password": "testpassword"},
    )
    assert response.status_code == 401


def test_deactivated_user_cannot_log_in(client: TestClient, repos, test_user):
    repos.users.update(test_user.id, UserAdminUpdate(is_active=False))

    response = client.post(
        "/api/auth/login",
        json={"email": "test@example.com", "password": "testpassword"},
    )
    assert response.status_code == 401


def test_oauth2_token_endpoint(client: TestClient, test_user):
    response = client.post(
        "/api/auth/token",
        data={"username": test_user.email, "password": "testpassword"},
    )

    assert response.status_code == 200
    data = response.json()
    assert "access_token" in data
    assert data["token_type"] == "bearer"

    response = client.post(
        "/api/auth/token",
        data={"username": test_user.email, "password": "wrongpassword"},
    )
    assert response.status_code == 401


def test_get_current_user(client: TestClient, user_token_headers, test_user):
    """Test getting the current user with a valid token."""
    response = client.get("/api/auth/me", headers=user_token_headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["id"] == test_user.id
    assert data["email"] == "test@example.com"


def test_access_without_token(client: TestClient):
    """Test accessing protected endpoints without a token."""
    response = client.get("/api/auth/me")
    assert response.status_code == 401, f"Expected 401, got {response.status_code}"
    assert response.headers["www-authenticate"] == "Bearer"
    assert response.json() == {"success": False, "error": "Not authenticated"}

    response = client.get("/api/todos")
    assert response.status_code == 401, f"Expected 401, got {response.status_code}"


def test_access_with_invalid_token(client: TestClient):
    response = client.get("/api/auth/me", headers={"Authorization": "Bearer invalid_token"})

    assert response.status_code == 401
    assert response.json()["error"] == "Could not validate credentials"


def test_token_for_deleted_user(client: TestClient, repos, test_user, user_token_headers):
    repos.users.delete(test_user.id)

    response = client.get("/api/auth/me", headers=user_token_headers)
    assert response.status_code == 401


def test_inactive_user_token(client: TestClient, repos, test_user):
    headers = {"Authorization": f"Bearer {create_user_token(test_user, timedelta(minutes=5))}"}
    repos.users.update(test_user.id, UserAdminUpdate(is_active=False))

    response = client.get("/api/auth/me", headers=headers)
    assert response.status_code == 400
    assert response.json()["error"] == "Inactive user"


def test_update_current_user(client: TestClient, user_token_headers):
    response = client.put(
        "/api/auth/me",
        json={"name": "Renamed", "password": "anotherpassword"},
        headers=user_token_headers,
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["name"] == "Renamed"
    assert data["email"] == "test@example.com"

    # The new password is the one that works now
    response = client.post(
        "/api/auth/login",
        json={"email": "test@example.com", "password": "anotherpassword"},
    )
    assert response.status_code == 200


def test_update_current_user_email_conflict(client: TestClient, user_token_headers, test_admin):
    response = client.put(
        "/api/auth/me",
        json={"email": test_admin.email},
        headers=user_token_headers,
    )
    assert response.status_code == 400
    assert response.json()["error"] == "User with this email already exists"

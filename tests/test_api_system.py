from fastapi.testclient import TestClient
from sqlmodel import create_engine

from todo_api.database import get_store
from todo_api.main import app
from todo_api.repositories.sql import SQLStore


def test_hello(client: TestClient):
    response = client.get("/api/hello")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["message"] == "Hello"
    assert "timestamp" in data


def test_time(client: TestClient):
    data = client.get("/api/time").json()["data"]

    assert data["timezone"] == "UTC"
    assert isinstance(data["unix"], int)
    assert 1 <= data["month"] <= 12


def test_echo(client: TestClient):
    payload = {"name": "John", "age": 30}

    response = client.post("/api/echo", json=payload)

    assert response.status_code == 200
    assert response.json()["data"]["received"] == payload


def test_echo_without_body(client: TestClient):
    response = client.post("/api/echo")
    assert response.status_code == 400
    assert response.json()["success"] is False

    response = client.post("/api/echo", json={})
    assert response.status_code == 400


def test_api_info(client: TestClient):
    data = client.get("/api").json()["data"]

    assert data["version"]
    assert {"method": "GET", "path": "/api/health", "description": "Health check"} in data["endpoints"]


def test_health_reports_backend(client: TestClient, store):
    response = client.get("/api/health")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["database"] == store.name
    assert data["service"] == "Todo API"
    assert data["uptime"] >= 0


def test_index_page(client: TestClient):
    response = client.get("/")

    assert response.status_code == 200
    assert "text/html" in response.headers["content-type"]
    assert "/api/todos" in response.text


def test_unknown_route(client: TestClient):
    response = client.get("/api/nowhere")

    assert response.status_code == 404
    assert response.json() == {
        "success": False,
        "error": "Endpoint not found",
        "message": "The route /api/nowhere does not exist",
    }


def test_health_degraded_when_store_unreachable(tmp_path):
    """Health stays up and reports a store that does not answer."""
    engine = create_engine(f"sqlite:///{tmp_path / 'missing' / 'todo.db'}")
    app.dependency_overrides[get_store] = lambda: SQLStore(engine)
    try:
        response = TestClient(app).get("/api/health")
    finally:
        app.dependency_overrides = {}

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "degraded"
    assert data["connected"] is False
    assert data["database"] == "sql"


def test_method_not_allowed_uses_error_envelope(client: TestClient):
    response = client.delete("/api/hello")

    assert response.status_code == 405
    assert response.json() == {"success": False, "error": "Method Not Allowed"}

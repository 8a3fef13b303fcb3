from fastapi.testclient import TestClient

from timesync.auth import create_user

def test_health(client: TestClient):
    response = client.get("/api/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert "version" in data

def test_root(client: TestClient):
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert data["message"] == "Time Entry Sync API"

def test_login(client: TestClient, db):
    create_user(db, "admin", "changeme")
    form_data = {
        "username": "admin",
        "password": "changeme"
    }
    response = client.post("/api/v1/token", data=form_data)
    assert response.status_code == 200
    data = response.json()
    assert "access_token" in data
    assert data["token_type"] == "bearer"

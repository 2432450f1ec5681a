import mongomock
import pytest
from fastapi.testclient import TestClient

import database
from main import app


@pytest.fixture
def mongo(monkeypatch):
    fake = mongomock.MongoClient().db
    monkeypatch.setattr(database, "db", fake)
    database.ensure_indexes()
    return fake


@pytest.fixture
def client(mongo):
    return TestClient(app)


def register(client, username="ada", email="ada@mail.com", password="secret1"):
    response = client.post(
        "/api/auth/register",
        json={"username": username, "email": email, "password": password},
    )
    assert response.status_code == 200, response.text
    return response.json()["token"]


@pytest.fixture
def auth_headers(client):
    return {"Authorization": f"Bearer {register(client)}"}


@pytest.fixture
def other_headers(client):
    token = register(client, username="grace", email="grace@mail.com")
    return {"Authorization": f"Bearer {token}"}

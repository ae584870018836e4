from datetime import datetime, timedelta

import mongomock
import pytest
from fastapi.testclient import TestClient

import database
from config import Config
from main import app
from schemas import Festival


@pytest.fixture(autouse=True)
def mongo(monkeypatch, tmp_path):
    db = mongomock.MongoClient()["festivalsphere_test"]
    monkeypatch.setattr(database, "db", db)
    monkeypatch.setattr(Config, "PUBLIC_DIR", str(tmp_path / "public"))
    return db


@pytest.fixture
def client():
    return TestClient(app)


def auth(token):
    return {"Authorization": f"Bearer {token}"}


def register(client, name, email, password="secret123"):
    res = client.post("/api/auth/register", json={"name": name, "email": email, "password": password})
    assert res.status_code == 201, res.text
    return res.json()


@pytest.fixture
def alice(client):
    return register(client, "Alice", "alice@example.com")


@pytest.fixture
def bob(client):
    return register(client, "Bob", "bob@example.com")


@pytest.fixture
def admin(client, mongo):
    data = register(client, "Root", "root@example.com")
    mongo["user"].update_one({"email": "root@example.com"}, {"$set": {"is_admin": True}})
    data["is_admin"] = True
    return data


def make_festival(created_by, **overrides):
    fields = dict(
        name="Sunwave",
        description="Beach techno",
        location={"city": "Lisbon", "country": "Portugal"},
        start_date=datetime(2030, 7, 1),
        end_date=datetime(2030, 7, 3),
        genre="Techno",
        price=80,
        created_by=created_by,
        approved=True,
    )
    fields.update(overrides)
    return database.create_document("festival", Festival(**fields))


@pytest.fixture
def festival_id(alice):
    return make_festival(alice["id"])


@pytest.fixture
def tomorrow():
    return database.now() + timedelta(days=1)

import warnings

from fastapi.testclient import TestClient

from auth import create_token, get_user_from_token
from config import DEV_JWT_SECRET, Config
from main import app


def test_startup_creates_indexes(mongo):
    with TestClient(app) as client:
        assert client.get("/api/health").json() == {"status": "ok", "database": True}
    assert "email_1" in mongo["user"].index_information()


def test_default_secret_is_long_enough_for_hs256(monkeypatch, alice):
    assert len(DEV_JWT_SECRET.encode()) >= 32
    monkeypatch.setattr(Config, "JWT_SECRET", DEV_JWT_SECRET)
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        token = create_token(alice["id"])
        assert get_user_from_token(f"Bearer {token}").email == "alice@example.com"
    assert not [w for w in caught if "HMAC key" in str(w.message)]


def test_root_and_unknown_route(client):
    assert client.get("/").json() == {"message": "Welcome to FestivalSphere API"}
    res = client.get("/api/nothing-here")
    assert res.status_code == 404
    assert res.json() == {"message": "Not Found"}

from datetime import datetime

from bson import ObjectId

from routes.admin_routes import month_start, next_month
from tests.conftest import auth, make_festival


def test_month_helpers():
    assert month_start(datetime(2030, 2, 17), 3) == datetime(2029, 11, 1)
    assert next_month(datetime(2030, 12, 1)) == datetime(2031, 1, 1)


def test_admin_routes_need_admin(client, alice):
    assert client.get("/api/admin/stats").status_code == 401
    res = client.get("/api/admin/stats", headers=auth(alice["token"]))
    assert res.status_code == 403
    assert res.json()["message"] == "Not authorized as an admin"


def test_stats(client, admin, alice, festival_id):
    make_festival(alice["id"], name="Pending", approved=False, genre="Jazz")
    client.post(f"/api/users/like/{festival_id}", headers=auth(alice["token"]))
    client.post("/api/auth/login", json={"email": "alice@example.com", "password": "secret123"})

    res = client.get("/api/admin/stats", headers=auth(admin["token"]))
    assert res.status_code == 200
    stats = res.json()
    assert stats["total_festivals"] == 2
    assert stats["total_users"] == 2
    assert stats["total_likes"] == 1
    assert stats["pending_approval"] == 1
    assert stats["new_users_this_month"] == 2
    assert stats["active_users_this_month"] == 1
    assert stats["most_popular_festivals"][0]["name"] == "Sunwave"
    assert {g["genre"] for g in stats["genre_distribution"]} == {"Techno", "Jazz"}
    assert len(stats["monthly_stats"]) == 6
    assert stats["monthly_stats"][0]["festivals"] == 2


def test_export_json_and_csv(client, admin, festival_id):
    res = client.post("/api/admin/export/festivals", headers=auth(admin["token"]))
    data = res.json()
    assert [f["id"] for f in data["festivals"]] == [festival_id]
    assert data["festivals"][0]["created_by"]["name"] == "Alice"
    assert "users" not in data

    res = client.post("/api/admin/export/all", json={"format": "csv"}, headers=auth(admin["token"]))
    assert res.status_code == 200
    assert res.headers["content-type"].startswith("text/csv")
    assert "festivalsphere-all.csv" in res.headers["content-disposition"]
    assert "Festival Data" in res.text and "User Data" in res.text
    assert "password" not in res.text

    res = client.post("/api/admin/export/tickets", headers=auth(admin["token"]))
    assert res.status_code == 400
    assert res.json()["message"] == "Invalid export type"


def test_role_update(client, admin, alice):
    res = client.put(f"/api/admin/users/{alice['id']}/role", json={"is_admin": True}, headers=auth(admin["token"]))
    assert res.json()["is_admin"] is True
    assert client.get("/api/admin/users", headers=auth(alice["token"])).status_code == 200

    res = client.put(f"/api/admin/users/{admin['id']}/role", json={"is_admin": False}, headers=auth(admin["token"]))
    assert res.status_code == 400


def test_delete_user_keeps_threads(client, mongo, admin, alice, bob, festival_id):
    client.post(f"/api/users/like/{festival_id}", headers=auth(bob["token"]))
    question = client.post(f"/api/comments/{festival_id}", json={"content": "Question"},
                           headers=auth(bob["token"])).json()
    client.post(f"/api/comments/{festival_id}", json={"content": "Answer", "parent_comment": question["id"]},
                headers=auth(alice["token"]))
    client.post(f"/api/comments/{festival_id}", json={"content": "Lonely"}, headers=auth(bob["token"]))

    assert client.delete(f"/api/admin/users/{admin['id']}", headers=auth(admin["token"])).status_code == 400
    res = client.delete(f"/api/admin/users/{bob['id']}", headers=auth(admin["token"]))
    assert res.json() == {"message": "User deleted successfully"}

    assert mongo["user"].find_one({"email": "bob@example.com"}) is None
    assert mongo["comment"].find_one({"content": "Lonely"}) is None
    assert mongo["comment"].find_one({"_id": ObjectId(question["id"])})["is_deleted"] is True
    assert mongo["comment"].find_one({"content": "Answer"}) is not None
    assert mongo["festival"].find_one({})["likes"] == 0


def test_reset_counts(client, mongo, admin, alice, festival_id):
    client.post(f"/api/users/going/{festival_id}", headers=auth(alice["token"]))
    res = client.post("/api/admin/reset-counts", headers=auth(admin["token"]))
    assert res.status_code == 200
    assert mongo["festival"].find_one({})["going_to"] == 0
    assert mongo["user"].find_one({"email": "alice@example.com"})["going_to"] == []


def test_pending_festivals_include_creator(client, admin, alice):
    make_festival(alice["id"], approved=False)
    pending = client.get("/api/admin/pending-festivals", headers=auth(admin["token"])).json()
    assert pending[0]["created_by"]["email"] == "alice@example.com"

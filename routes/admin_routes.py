import csv
import io
import logging
from datetime import datetime, timedelta
from typing import Literal

from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response
from pydantic import BaseModel

from auth import AuthUser, require_admin
from database import find_by_id, get_collection, now, serialize_doc, update_document
from discussion import remove_node
from routes.notification_routes import send_festival_reminders
from routes.user_routes import public_user

logger = logging.getLogger(__name__)

# Every route here requires an admin token
router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])

EXPORT_TYPES = ("festivals", "users", "all")


def month_start(reference: datetime, months_back: int = 0) -> datetime:
    year, month = reference.year, reference.month - months_back
    while month < 1:
        month += 12
        year -= 1
    return datetime(year, month, 1)


def next_month(start: datetime) -> datetime:
    if start.month == 12:
        return datetime(start.year + 1, 1, 1)
    return datetime(start.year, start.month + 1, 1)


def _first(result: list, key: str, default=0):
    return result[0].get(key, default) if result else default


ACTIONS = {
    "$add": [
        {"$size": {"$ifNull": ["$liked", []]}},
        {"$size": {"$ifNull": ["$going_to", []]}},
    ]
}


# --- Stats & analytics ---

@router.get("/stats")
def get_admin_stats():
    users = get_collection("user")
    festivals = get_collection("festival")
    current = now()
    this_month = month_start(current)

    user_stats = list(users.aggregate([
        {"$project": {
            "liked_count": {"$size": {"$ifNull": ["$liked", []]}},
            "going_to_count": {"$size": {"$ifNull": ["$going_to", []]}},
        }},
        {"$group": {
            "_id": None,
            "total_likes": {"$sum": "$liked_count"},
            "total_going_to": {"$sum": "$going_to_count"},
            "average_likes_per_user": {"$avg": "$liked_count"},
            "average_going_to_per_user": {"$avg": "$going_to_count"},
        }},
    ]))

    most_active_users = list(users.aggregate([
        {"$project": {"name": 1, "total_actions": ACTIONS}},
        {"$sort": {"total_actions": -1}},
        {"$limit": 5},
    ]))

    popular_festivals = list(festivals.aggregate([
        {"$project": {
            "name": 1,
            "city": "$location.city",
            "date": "$start_date",
            "likes": {"$ifNull": ["$likes", 0]},
            "going_to": {"$ifNull": ["$going_to", 0]},
            "total_engagement": {"$add": [{"$ifNull": ["$likes", 0]}, {"$ifNull": ["$going_to", 0]}]},
        }},
        {"$sort": {"total_engagement": -1}},
        {"$limit": 5},
    ]))

    city_stats = list(festivals.aggregate([
        {"$group": {
            "_id": "$location.city",
            "count": {"$sum": 1},
            "total_likes": {"$sum": {"$ifNull": ["$likes", 0]}},
            "total_going_to": {"$sum": {"$ifNull": ["$going_to", 0]}},
        }},
        {"$sort": {"count": -1}},
        {"$limit": 5},
    ]))

    genre_stats = list(festivals.aggregate([
        {"$group": {
            "_id": "$genre",
            "count": {"$sum": 1},
            "total_likes": {"$sum": {"$ifNull": ["$likes", 0]}},
            "total_going_to": {"$sum": {"$ifNull": ["$going_to", 0]}},
        }},
        {"$sort": {"count": -1}},
    ]))

    monthly_stats = []
    for i in range(6):
        start = month_start(current, i)
        window = {"$gte": start, "$lt": next_month(start)}
        engagement = list(festivals.aggregate([
            {"$match": {"created_at": window}},
            {"$group": {
                "_id": None,
                "total_likes": {"$sum": {"$ifNull": ["$likes", 0]}},
                "total_going_to": {"$sum": {"$ifNull": ["$going_to", 0]}},
            }},
        ]))
        monthly_stats.append({
            "month": start.strftime("%B %Y"),
            "festivals": festivals.count_documents({"created_at": window}),
            "active_users": users.count_documents({"last_login": window}),
            "new_users": users.count_documents({"created_at": window}),
            "likes": _first(engagement, "total_likes"),
            "going_to": _first(engagement, "total_going_to"),
        })

    return {
        "total_festivals": festivals.count_documents({}),
        "total_users": users.count_documents({}),
        "total_likes": _first(user_stats, "total_likes"),
        "total_going_to": _first(user_stats, "total_going_to"),
        "active_users_this_month": users.count_documents({"last_login": {"$gte": this_month}}),
        "new_users_this_month": users.count_documents({"created_at": {"$gte": this_month}}),
        "pending_approval": festivals.count_documents({"approved": False}),
        "user_engagement": {
            "average_likes_per_user": _first(user_stats, "average_likes_per_user"),
            "average_going_to_per_user": _first(user_stats, "average_going_to_per_user"),
            "most_active_users": [
                {"user_id": str(u["_id"]), "name": u.get("name"), "total_actions": u.get("total_actions", 0)}
                for u in most_active_users
            ],
        },
        "most_popular_festivals": serialize_doc(popular_festivals),
        "most_active_cities": [
            {"city": c["_id"], "count": c["count"], "total_likes": c["total_likes"], "total_going_to": c["total_going_to"]}
            for c in city_stats
        ],
        "genre_distribution": [
            {"genre": g["_id"], "count": g["count"], "popularity": g["total_likes"] + g["total_going_to"]}
            for g in genre_stats
        ],
        "monthly_stats": monthly_stats,
    }


# --- Export ---

class ExportBody(BaseModel):
    format: Literal["json", "csv"] = "json"
    date_range: Literal["all", "month", "week"] = "all"


def _date_filter(date_range: str) -> dict:
    current = now()
    if date_range == "month":
        return {"created_at": {"$gte": month_start(current, 1)}}
    if date_range == "week":
        return {"created_at": {"$gte": current - timedelta(days=7)}}
    return {}


def _creators(festivals: list) -> dict:
    oids = [ObjectId(f["created_by"]) for f in festivals if ObjectId.is_valid(f.get("created_by") or "")]
    if not oids:
        return {}
    cursor = get_collection("user").find({"_id": {"$in": oids}}, {"name": 1, "email": 1, "is_admin": 1})
    return {str(u["_id"]): serialize_doc(u) for u in cursor}


def _with_creators(festivals: list) -> list:
    creators = _creators(festivals)
    out = []
    for f in festivals:
        item = serialize_doc(f)
        item["created_by"] = creators.get(f.get("created_by"), f.get("created_by"))
        out.append(item)
    return out


def export_csv(data: dict) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf)
    if data.get("festivals"):
        writer.writerow(["Festival Data"])
        writer.writerow(["ID", "Name", "Description", "City", "Country", "Start Date", "End Date",
                         "Genre", "Price", "Likes", "Going"])
        for f in data["festivals"]:
            location = f.get("location") or {}
            writer.writerow([f["id"], f.get("name"), f.get("description"), location.get("city"),
                             location.get("country"), f.get("start_date"), f.get("end_date"),
                             f.get("genre"), f.get("price"), f.get("likes", 0), f.get("going_to", 0)])
    if data.get("users"):
        if data.get("festivals"):
            writer.writerow([])
        writer.writerow(["User Data"])
        writer.writerow(["ID", "Name", "Email", "Is Admin", "Liked Count", "Going Count"])
        for u in data["users"]:
            writer.writerow([u["id"], u.get("name"), u.get("email"), u.get("is_admin", False),
                             len(u.get("liked") or []), len(u.get("going_to") or [])])
    return buf.getvalue()


@router.post("/export/{export_type}")
def export_data(export_type: str, body: ExportBody = ExportBody()):
    if export_type not in EXPORT_TYPES:
        raise HTTPException(status_code=400, detail="Invalid export type")
    date_filter = _date_filter(body.date_range)

    data = {}
    if export_type in ("festivals", "all"):
        data["festivals"] = _with_creators(list(get_collection("festival").find(date_filter)))
    if export_type in ("users", "all"):
        data["users"] = [public_user(u) for u in get_collection("user").find(date_filter)]

    if body.format == "csv":
        return Response(
            content=export_csv(data),
            media_type="text/csv",
            headers={"Content-Disposition": f"attachment; filename=festivalsphere-{export_type}.csv"},
        )
    return data


# --- User management ---

@router.get("/users")
def get_user_management_data():
    return [public_user(u) for u in get_collection("user").find({})]


class RoleBody(BaseModel):
    is_admin: bool


@router.put("/users/{user_id}/role")
def update_user_role(user_id: str, body: RoleBody, admin: AuthUser = Depends(require_admin)):
    find_by_id("user", user_id, "User not found")
    if user_id == admin.id and not body.is_admin:
        raise HTTPException(status_code=400, detail="You cannot remove your own admin rights")
    updated = update_document("user", user_id, {"is_admin": body.is_admin})
    logger.info("User %s is_admin=%s (by %s)", user_id, body.is_admin, admin.id)
    return public_user(updated)


@router.delete("/users/{user_id}")
def delete_user(user_id: str, admin: AuthUser = Depends(require_admin)):
    user = find_by_id("user", user_id, "User not found")
    if user_id == admin.id:
        raise HTTPException(status_code=400, detail="You cannot delete your own account")

    # threads keep their shape: nodes with replies become tombstones
    for name, label in (("comment", "Comment deleted"), ("topic", "Topic deleted")):
        for node in list(get_collection(name).find({"user_id": user_id})):
            if get_collection(name).find_one({"_id": node["_id"]}):
                remove_node(name, node, label)
    get_collection("notification").delete_many({"user_id": user_id})

    festivals = get_collection("festival")
    for field, counter in (("liked", "likes"), ("going_to", "going_to")):
        ids = [ObjectId(i) for i in user.get(field, []) if ObjectId.is_valid(i)]
        if ids:
            festivals.update_many({"_id": {"$in": ids}}, {"$inc": {counter: -1}})
        festivals.update_many({counter: {"$lt": 0}}, {"$set": {counter: 0}})

    get_collection("user").delete_one({"_id": user["_id"]})
    logger.info("User %s deleted by %s", user_id, admin.id)
    return {"message": "User deleted successfully"}


# --- Festivals & counters ---

@router.get("/pending-festivals")
def get_pending_festivals():
    return _with_creators(list(get_collection("festival").find({"approved": False}).sort("created_at", -1)))


@router.post("/reset-counts")
def reset_counts():
    get_collection("user").update_many({}, {"$set": {"liked": [], "going_to": []}})
    get_collection("festival").update_many({}, {"$set": {"likes": 0, "going_to": 0}})
    logger.info("Reset all likes and going counts")
    return {"message": "Successfully reset all counts"}


@router.post("/send-reminders")
def send_reminders():
    return {"created": send_festival_reminders()}

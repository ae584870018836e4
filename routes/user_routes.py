import logging
from typing import Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, File, UploadFile
from pydantic import BaseModel, Field

from auth import AuthUser, get_current_user
from database import find_by_id, get_collection, serialize_doc, update_document
from schemas import SocialLinks
from uploads import save_image

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])


def public_user(doc: dict) -> dict:
    data = serialize_doc(doc)
    data.pop("password_hash", None)
    return data


def _festivals(ids):
    oids = [ObjectId(i) for i in ids if ObjectId.is_valid(i)]
    if not oids:
        return []
    return serialize_doc(list(get_collection("festival").find({"_id": {"$in": oids}})))


@router.get("/me")
def get_profile(current: AuthUser = Depends(get_current_user)):
    user = find_by_id("user", current.id, "User not found")
    data = public_user(user)
    data["liked"] = _festivals(user.get("liked", []))
    data["going_to"] = _festivals(user.get("going_to", []))
    return data


class UpdateProfileBody(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    avatar: Optional[str] = None
    social_links: Optional[SocialLinks] = None


@router.put("/me")
def update_profile(body: UpdateProfileBody, current: AuthUser = Depends(get_current_user)):
    find_by_id("user", current.id, "User not found")
    changes = body.model_dump(exclude_none=True)
    updated = update_document("user", current.id, changes)
    return public_user(updated)


@router.post("/me/avatar")
async def upload_avatar(avatar: UploadFile = File(...), current: AuthUser = Depends(get_current_user)):
    find_by_id("user", current.id, "User not found")
    path = await save_image(avatar, "avatars", current.name)
    updated = update_document("user", current.id, {"avatar": path})
    return public_user(updated)


def _total(field: str) -> int:
    result = list(get_collection("festival").aggregate([
        {"$group": {"_id": None, "total": {"$sum": f"${field}"}}}
    ]))
    return result[0]["total"] if result else 0


def _toggle(current: AuthUser, festival_id: str, user_field: str, festival_field: str):
    """Add or remove a festival from one of the user's lists and move the festival counter with it."""
    user = find_by_id("user", current.id, "User not found")
    festival = find_by_id("festival", festival_id, "Festival not found")
    festival_id = str(festival["_id"])

    selected = list(user.get(user_field, []))
    count = festival.get(festival_field, 0) or 0
    if festival_id in selected:
        selected.remove(festival_id)
        count = max(0, count - 1)
    else:
        selected.append(festival_id)
        count += 1

    get_collection("user").update_one({"_id": user["_id"]}, {"$set": {user_field: selected}})
    get_collection("festival").update_one({"_id": festival["_id"]}, {"$set": {festival_field: count}})
    return selected, count


@router.post("/going/{festival_id}")
def toggle_going(festival_id: str, current: AuthUser = Depends(get_current_user)):
    going_to, count = _toggle(current, festival_id, "going_to", "going_to")
    return {"going_to": going_to, "festival_going_to": count, "total_going_to": _total("going_to")}


@router.post("/like/{festival_id}")
def toggle_liked(festival_id: str, current: AuthUser = Depends(get_current_user)):
    liked, count = _toggle(current, festival_id, "liked", "likes")
    return {"liked": liked, "festival_likes": count, "total_likes": _total("likes")}

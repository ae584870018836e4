import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from pydantic import ValidationError

from auth import AuthUser, get_current_user, require_admin
from database import (create_document, find_by_id, get_collection, get_documents,
                      serialize_doc, to_utc, update_document)
from schemas import Festival as FestivalSchema, FestivalData
from uploads import save_image

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/festivals", tags=["festivals"])


def parse_festival_data(raw: str) -> FestivalData:
    try:
        return FestivalData.model_validate_json(raw)
    except ValidationError as e:
        logger.warning("Invalid festival data: %s", e)
        raise HTTPException(status_code=400, detail="Invalid festival data format")


def can_manage(festival: dict, current: AuthUser) -> bool:
    return festival.get("created_by") == current.id or current.is_admin


# --- Admin moderation (declared before /{festival_id}) ---

@router.get("/pending")
def get_unapproved_festivals(admin: AuthUser = Depends(require_admin)):
    return serialize_doc(get_documents("festival", {"approved": False}, sort=[("created_at", -1)]))


@router.put("/approve/{festival_id}")
def approve_festival(festival_id: str, admin: AuthUser = Depends(require_admin)):
    find_by_id("festival", festival_id, "Festival not found")
    updated = update_document("festival", festival_id, {"approved": True})
    logger.info("Festival %s approved by %s", festival_id, admin.id)
    return serialize_doc(updated)


# --- Public ---

@router.get("")
def get_festivals(
    genre: Optional[str] = None,
    city: Optional[str] = None,
    country: Optional[str] = None,
    is_free: Optional[bool] = None,
    approved: Optional[bool] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
):
    query = {}
    if genre:
        query["genre"] = genre
    if city:
        query["location.city"] = city
    if country:
        query["location.country"] = country
    if is_free is not None:
        query["is_free"] = is_free
    if approved is not None:
        query["approved"] = approved
    if start_date or end_date:
        query["start_date"] = {}
        if start_date:
            query["start_date"]["$gte"] = to_utc(start_date)
        if end_date:
            query["start_date"]["$lte"] = to_utc(end_date)
    return serialize_doc(get_documents("festival", query, sort=[("start_date", 1)]))


@router.get("/{festival_id}")
def get_festival_by_id(festival_id: str):
    return serialize_doc(find_by_id("festival", festival_id, "Festival not found"))


# --- Authenticated ---

@router.post("", status_code=201)
async def create_festival(
    festival_data: str = Form(...),
    image: Optional[UploadFile] = File(None),
    current: AuthUser = Depends(get_current_user),
):
    data = parse_festival_data(festival_data)
    if image is not None and image.filename:
        data.image_url = await save_image(image, "festivals", data.name)

    # only admin submissions skip moderation
    festival = FestivalSchema(**data.model_dump(), created_by=current.id, approved=current.is_admin)
    festival_id = create_document("festival", festival)
    logger.info("Festival %s created by %s (approved=%s)", festival_id, current.id, current.is_admin)
    return serialize_doc(find_by_id("festival", festival_id))


@router.put("/{festival_id}")
async def update_festival(
    festival_id: str,
    festival_data: str = Form(...),
    image: Optional[UploadFile] = File(None),
    current: AuthUser = Depends(get_current_user),
):
    festival = find_by_id("festival", festival_id, "Festival not found")
    if not can_manage(festival, current):
        raise HTTPException(status_code=403, detail="Not authorized")

    data = parse_festival_data(festival_data)
    image_url = festival.get("image_url")
    if image is not None and image.filename:
        image_url = await save_image(image, "festivals", data.name)

    changes = data.model_dump()
    changes["image_url"] = image_url
    updated = update_document("festival", festival_id, changes)
    return serialize_doc(updated)


@router.delete("/{festival_id}")
def delete_festival(festival_id: str, current: AuthUser = Depends(get_current_user)):
    festival = find_by_id("festival", festival_id, "Festival not found")
    if not can_manage(festival, current):
        raise HTTPException(status_code=403, detail="Not authorized")

    festival_id = str(festival["_id"])
    get_collection("festival").delete_one({"_id": festival["_id"]})
    get_collection("comment").delete_many({"festival_id": festival_id})
    get_collection("topic").delete_many({"festival_id": festival_id})
    get_collection("user").update_many({}, {"$pull": {"liked": festival_id, "going_to": festival_id}})
    logger.info("Festival %s deleted by %s", festival_id, current.id)
    return {"message": "Festival deleted"}

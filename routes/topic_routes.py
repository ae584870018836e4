import logging
import re
from typing import List, Literal, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from auth import AuthUser, get_current_user, require_admin
from database import create_document, find_by_id, get_collection, get_documents, update_document
from discussion import (attach_authors, build_tree, cast_vote, collect_tags, count_replies,
                        filter_by_tags, parse_tags, prune_deleted, remove_node, sort_nodes)
from schemas import Topic as TopicSchema

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/topics", tags=["topics"])

TOMBSTONE = "Topic deleted"

TopicSort = Literal["newest", "top", "controversial", "views"]


class TopicBody(BaseModel):
    title: Optional[str] = None
    content: str = ""
    parent_comment: Optional[str] = None
    tags: List[str] = []


class EditTopicBody(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    tags: Optional[List[str]] = None


class VoteBody(BaseModel):
    vote: str


def _festival_names(festival_ids) -> dict:
    oids = [ObjectId(i) for i in set(festival_ids) if i and ObjectId.is_valid(i)]
    if not oids:
        return {}
    cursor = get_collection("festival").find({"_id": {"$in": oids}}, {"name": 1})
    return {str(f["_id"]): {"id": str(f["_id"]), "name": f.get("name")} for f in cursor}


def _with_festival(nodes: List[dict]) -> List[dict]:
    names = _festival_names(n.get("festival_id") for n in nodes)
    for node in nodes:
        node["festival"] = names.get(node.get("festival_id"))
    return nodes


def _populated(doc: dict) -> dict:
    return _with_festival(attach_authors([doc]))[0]


def _matching_ids(scope: dict, search: str) -> set:
    pattern = {"$regex": re.escape(search), "$options": "i"}
    query = {**scope, "$or": [{"title": pattern}, {"content": pattern}]}
    return {str(d["_id"]) for d in get_collection("topic").find(query, {"_id": 1})}


# Declared before /{festival_id} so "single" is not taken for a festival id
@router.get("/single/{topic_id}")
def get_topic_by_id(topic_id: str):
    topic = find_by_id("topic", topic_id, "Topic not found")
    nodes = attach_authors(get_documents("topic", {"festival_id": topic.get("festival_id")}))
    replies = prune_deleted(build_tree(nodes, root_id=str(topic["_id"])))

    data = _populated(topic)
    data["replies"] = replies
    data["reply_count"] = count_replies(data)
    data["available_tags"] = collect_tags([data])
    return data


def _list_topics(festival_id: Optional[str], sort: str, parent_id: Optional[str],
                 search: Optional[str], tags: Optional[str]):
    scope = {"festival_id": festival_id} if festival_id else {}
    nodes = attach_authors(get_documents("topic", scope))
    forest = prune_deleted(build_tree(nodes, root_id=parent_id))

    if search and search.strip():
        matching = _matching_ids(scope, search.strip())
        forest = [t for t in forest if t["id"] in matching]

    for topic in forest:
        topic["reply_count"] = count_replies(topic)
    forest = sort_nodes(_with_festival(forest), sort, pinned_first=True)
    return {
        "topics": filter_by_tags(forest, parse_tags(tags)),
        "available_tags": collect_tags(forest),
    }


@router.get("")
def get_all_topics(
    sort: TopicSort = "newest",
    parent_id: Optional[str] = None,
    search: Optional[str] = None,
    tags: Optional[str] = None,
):
    return _list_topics(None, sort, parent_id, search, tags)


@router.get("/{festival_id}")
def get_festival_topics(
    festival_id: str,
    sort: TopicSort = "newest",
    parent_id: Optional[str] = None,
    search: Optional[str] = None,
    tags: Optional[str] = None,
):
    return _list_topics(festival_id, sort, parent_id, search, tags)


@router.post("/{festival_id}", status_code=201)
def create_topic(festival_id: str, body: TopicBody, current: AuthUser = Depends(get_current_user)):
    title = (body.title or "").strip()
    content = body.content.strip()
    # replies only need content
    if not body.parent_comment and (not title or not content):
        raise HTTPException(status_code=400, detail="Title and content are required")
    if body.parent_comment and not content:
        raise HTTPException(status_code=400, detail="Content is required")

    festival = find_by_id("festival", festival_id, "Festival not found")
    festival_id = str(festival["_id"])
    if body.parent_comment:
        parent = find_by_id("topic", body.parent_comment, "Parent topic not found")
        if parent.get("festival_id") != festival_id:
            raise HTTPException(status_code=400, detail="Parent topic belongs to another festival")
        if parent.get("is_deleted"):
            raise HTTPException(status_code=400, detail="Cannot reply to a deleted topic")

    topic = TopicSchema(
        user_id=current.id,
        festival_id=festival_id,
        title=title or None,
        content=content,
        parent_comment=body.parent_comment,
        tags=parse_tags(body.tags),
    )
    topic_id = create_document("topic", topic)
    return _populated(find_by_id("topic", topic_id))


@router.put("/{topic_id}/pin")
def toggle_pin(topic_id: str, admin: AuthUser = Depends(require_admin)):
    topic = find_by_id("topic", topic_id, "Topic not found")
    updated = update_document("topic", topic_id, {"is_pinned": not topic.get("is_pinned", False)})
    logger.info("Topic %s pinned=%s by %s", topic_id, updated.get("is_pinned"), admin.id)
    return _populated(updated)


@router.put("/{topic_id}")
def update_topic(topic_id: str, body: EditTopicBody, current: AuthUser = Depends(get_current_user)):
    topic = find_by_id("topic", topic_id, "Topic not found")
    if topic.get("user_id") != current.id:
        raise HTTPException(status_code=403, detail="Not authorized to update this topic")
    if topic.get("is_deleted"):
        raise HTTPException(status_code=400, detail="Cannot edit a deleted topic")

    changes = {"is_edited": True}
    if body.title and body.title.strip():
        changes["title"] = body.title.strip()
    if body.content and body.content.strip():
        changes["content"] = body.content.strip()
    if body.tags is not None:
        changes["tags"] = parse_tags(body.tags)
    return _populated(update_document("topic", topic_id, changes))


@router.delete("/{topic_id}")
def delete_topic(
    topic_id: str,
    soft_delete: bool = False,
    hard_delete: bool = False,
    current: AuthUser = Depends(get_current_user),
):
    topic = find_by_id("topic", topic_id, "Topic not found")
    if topic.get("user_id") != current.id and not current.is_admin:
        raise HTTPException(status_code=403, detail="Not authorized to delete this topic")

    remaining = remove_node("topic", topic, TOMBSTONE, soft_delete=soft_delete, hard_delete=hard_delete)
    if remaining is None:
        return {"message": "Topic permanently deleted", "topic": None}
    return {"message": "Topic soft deleted", "topic": _populated(remaining)}


@router.post("/{topic_id}/vote")
def vote_topic(topic_id: str, body: VoteBody, current: AuthUser = Depends(get_current_user)):
    topic = find_by_id("topic", topic_id, "Topic not found")
    return _populated(cast_vote("topic", topic, current.id, body.vote))


@router.post("/{topic_id}/view")
def increment_views(topic_id: str):
    topic = find_by_id("topic", topic_id, "Topic not found")
    coll = get_collection("topic")
    coll.update_one({"_id": topic["_id"]}, {"$inc": {"views": 1}})
    return _populated(coll.find_one({"_id": topic["_id"]}))

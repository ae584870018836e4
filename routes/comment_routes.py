import logging
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from auth import AuthUser, get_current_user
from database import create_document, find_by_id, get_documents, update_document
from discussion import (attach_authors, build_tree, cast_vote, collect_tags, filter_by_tags,
                        parse_tags, prune_deleted, remove_node, sort_nodes)
from schemas import Comment as CommentSchema

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/comments", tags=["comments"])

TOMBSTONE = "Comment deleted"


class CommentBody(BaseModel):
    content: str = ""
    parent_comment: Optional[str] = None
    tags: List[str] = []


class EditCommentBody(BaseModel):
    content: str = ""
    tags: Optional[List[str]] = None


class VoteBody(BaseModel):
    vote: str


def _populated(doc: dict) -> dict:
    return attach_authors([doc])[0]


def _owned(comment: dict, current: AuthUser) -> bool:
    return comment.get("user_id") == current.id or current.is_admin


@router.get("/{festival_id}")
def get_comments(
    festival_id: str,
    sort: Literal["newest", "top", "controversial"] = "newest",
    parent_id: Optional[str] = None,
    tags: Optional[str] = None,
    layout: Literal["tree", "flat"] = "tree",
):
    """
    Comments of a festival. The tree layout nests replies, hides fully deleted
    threads and lists the tags available for filtering; `tags` keeps the
    threads whose root carries one of them.
    """
    selected = parse_tags(tags)
    nodes = attach_authors(get_documents("comment", {"festival_id": festival_id}))

    if layout == "flat":
        if parent_id:
            nodes = [n for n in nodes if n.get("parent_comment") == parent_id]
        return sort_nodes(filter_by_tags(nodes, selected), sort)

    forest = prune_deleted(build_tree(nodes, root_id=parent_id))
    return {
        "comments": filter_by_tags(sort_nodes(forest, sort), selected),
        "available_tags": collect_tags(forest),
    }


@router.post("/{festival_id}", status_code=201)
def post_comment(festival_id: str, body: CommentBody, current: AuthUser = Depends(get_current_user)):
    if not body.content.strip():
        raise HTTPException(status_code=400, detail="Content is required")
    festival = find_by_id("festival", festival_id, "Festival not found")
    festival_id = str(festival["_id"])

    if body.parent_comment:
        parent = find_by_id("comment", body.parent_comment, "Parent comment not found")
        if parent.get("festival_id") != festival_id:
            raise HTTPException(status_code=400, detail="Parent comment belongs to another festival")
        if parent.get("is_deleted"):
            raise HTTPException(status_code=400, detail="Cannot reply to a deleted comment")

    comment = CommentSchema(
        user_id=current.id,
        festival_id=festival_id,
        content=body.content.strip(),
        parent_comment=body.parent_comment,
        tags=parse_tags(body.tags),
    )
    comment_id = create_document("comment", comment)
    return _populated(find_by_id("comment", comment_id))


@router.put("/{comment_id}")
def update_comment(comment_id: str, body: EditCommentBody, current: AuthUser = Depends(get_current_user)):
    comment = find_by_id("comment", comment_id, "Comment not found")
    if not _owned(comment, current):
        raise HTTPException(status_code=403, detail="Not authorized")
    if comment.get("is_deleted"):
        raise HTTPException(status_code=400, detail="Cannot edit a deleted comment")
    if not body.content.strip():
        raise HTTPException(status_code=400, detail="Content is required")

    changes = {"content": body.content.strip(), "is_edited": True}
    if body.tags is not None:
        changes["tags"] = parse_tags(body.tags)
    return _populated(update_document("comment", comment_id, changes))


@router.delete("/{comment_id}")
def delete_comment(
    comment_id: str,
    soft_delete: bool = False,
    hard_delete: bool = False,
    current: AuthUser = Depends(get_current_user),
):
    comment = find_by_id("comment", comment_id, "Comment not found")
    if not _owned(comment, current):
        raise HTTPException(status_code=403, detail="Not authorized")

    remaining = remove_node("comment", comment, TOMBSTONE, soft_delete=soft_delete, hard_delete=hard_delete)
    if remaining is None:
        return {"message": "Comment permanently deleted", "comment": None}
    return {"message": "Comment soft deleted", "comment": _populated(remaining)}


@router.post("/{comment_id}/vote")
def vote_comment(comment_id: str, body: VoteBody, current: AuthUser = Depends(get_current_user)):
    comment = find_by_id("comment", comment_id, "Comment not found")
    return _populated(cast_vote("comment", comment, current.id, body.vote))

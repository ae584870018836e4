"""
Discussion trees

Comments (festival-scoped) and topics (forum-wide) are stored flat: every node
keeps an optional `parent_comment` id. This module turns those flat lists into
reply trees and holds the rules shared by both kinds of node: voting, the
soft/hard delete policy and tag filtering.

Tree functions work on serialized nodes (dicts with an `id` key).
"""
import logging
from collections import defaultdict
from typing import Iterable, List, Optional, Tuple

from bson import ObjectId
from fastapi import HTTPException

from database import get_collection, now, serialize_doc, to_object_id

logger = logging.getLogger(__name__)

VOTE_CHOICES = ("up", "down")


# --- Reply trees ---

def _created(node):
    # ObjectId hex grows with insertion order, breaking timestamp ties
    return str(node.get("created_at") or ""), str(node.get("id", ""))


def build_tree(nodes: Iterable[dict], root_id: Optional[str] = None) -> List[dict]:
    """
    Nest a flat list of nodes by `parent_comment`, to any depth.

    With `root_id` the forest holds the replies of that node. Without it the
    roots are the nodes whose parent is not in the list (top-level nodes, or
    replies whose parent was removed). Duplicate ids keep their first copy.
    Replies are ordered oldest first; roots keep the input order.
    """
    unique = {}
    for node in nodes:
        if node["id"] not in unique:
            unique[node["id"]] = dict(node)

    children = defaultdict(list)
    roots = []
    for node in unique.values():
        parent = node.get("parent_comment")
        if root_id is not None:
            if parent == root_id:
                roots.append(node)
            elif parent in unique:
                children[parent].append(node)
        elif parent and parent in unique:
            children[parent].append(node)
        else:
            roots.append(node)

    if root_id is not None:
        roots.sort(key=_created)

    seen = set()
    for node in roots:
        _attach(node, children, seen)
    return roots


def _attach(node, children, seen):
    seen.add(node["id"])
    replies = [c for c in sorted(children.get(node["id"], []), key=_created) if c["id"] not in seen]
    node["replies"] = replies
    for reply in replies:
        _attach(reply, children, seen)


def count_replies(node: dict) -> int:
    return sum(1 + count_replies(r) for r in node.get("replies", []))


def prune_deleted(nodes: List[dict]) -> List[dict]:
    """Drop soft-deleted nodes whose whole subtree is deleted too."""
    kept = []
    for node in nodes:
        replies = prune_deleted(node.get("replies", []))
        if node.get("is_deleted") and not replies:
            continue
        kept.append({**node, "replies": replies})
    return kept


def controversy(node: dict) -> float:
    # many votes, evenly split
    up = node.get("upvotes", 0)
    down = node.get("downvotes", 0)
    return (up + down) / (abs(up - down) + 1)


def sort_nodes(nodes: List[dict], sort: str = "newest", pinned_first: bool = False) -> List[dict]:
    if sort == "top":
        ordered = sorted(nodes, key=lambda n: n.get("upvotes", 0), reverse=True)
    elif sort == "controversial":
        ordered = sorted(nodes, key=controversy, reverse=True)
    elif sort == "views":
        ordered = sorted(nodes, key=lambda n: n.get("views", 0), reverse=True)
    else:
        ordered = sorted(nodes, key=_created, reverse=True)
        if pinned_first:
            # stable sort keeps newest-first inside each group
            ordered.sort(key=lambda n: not n.get("is_pinned", False))
    return ordered


# --- Tags ---

def parse_tags(raw) -> List[str]:
    """Normalize a comma separated string or a list of tags, dropping blanks and repeats."""
    if not raw:
        return []
    items = raw.split(",") if isinstance(raw, str) else raw
    tags = []
    for item in items:
        tag = str(item).strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tags


def collect_tags(nodes: List[dict]) -> List[str]:
    tags = []
    stack = list(reversed(nodes))
    while stack:
        node = stack.pop()
        for tag in node.get("tags", []):
            if tag not in tags:
                tags.append(tag)
        stack.extend(reversed(node.get("replies", [])))
    return tags


def filter_by_tags(nodes: List[dict], selected: Iterable[str]) -> List[dict]:
    """Keep the nodes sharing at least one tag with `selected`; nothing selected keeps all."""
    wanted = set(selected or [])
    if not wanted:
        return list(nodes)
    return [n for n in nodes if wanted.intersection(n.get("tags", []))]


# --- Voting ---

def apply_vote(node: dict, user_id: str, vote: str) -> Tuple[int, int, List[dict]]:
    """
    Toggle `user_id`'s vote on a node and return (upvotes, downvotes, voters).

    Repeating a vote removes it, the opposite vote flips it.
    """
    if vote not in VOTE_CHOICES:
        raise ValueError("Invalid vote type")
    upvotes = node.get("upvotes", 0)
    downvotes = node.get("downvotes", 0)
    voters = [dict(v) for v in node.get("voters", [])]

    existing = next((v for v in voters if v.get("user_id") == user_id), None)
    if existing is None:
        voters.append({"user_id": user_id, "vote": vote})
        if vote == "up":
            upvotes += 1
        else:
            downvotes += 1
    elif existing["vote"] == vote:
        voters.remove(existing)
        if vote == "up":
            upvotes -= 1
        else:
            downvotes -= 1
    else:
        existing["vote"] = vote
        if vote == "up":
            upvotes += 1
            downvotes -= 1
        else:
            upvotes -= 1
            downvotes += 1
    return max(0, upvotes), max(0, downvotes), voters


# --- Deletion ---

def should_hard_delete(has_replies: bool, soft_delete: bool = False, hard_delete: bool = False) -> bool:
    if hard_delete:
        return True
    return not soft_delete and not has_replies


def tombstone(label: str) -> dict:
    return {
        "content": label,
        "upvotes": 0,
        "downvotes": 0,
        "voters": [],
        "is_deleted": True,
    }


def remove_node(collection_name: str, doc: dict, label: str, soft_delete: bool = False, hard_delete: bool = False):
    """
    Delete a node following the policy above.

    Returns None when the node was removed for good, otherwise the tombstoned
    document. A forced hard delete takes the node's whole subtree with it so no
    reply is left without its parent. Removing a node also removes every
    tombstoned ancestor left without replies.
    """
    coll = get_collection(collection_name)
    node_id = str(doc["_id"])
    has_replies = coll.find_one({"parent_comment": node_id}) is not None

    if should_hard_delete(has_replies, soft_delete, hard_delete):
        subtree = subtree_ids(coll, node_id)
        coll.delete_many({"_id": {"$in": [to_object_id(i) for i in subtree]}})
        logger.info("Removed %s %s (%d nodes)", collection_name, node_id, len(subtree))
        _remove_empty_tombstones(coll, doc.get("parent_comment"))
        return None

    coll.update_one({"_id": doc["_id"]}, {"$set": {**tombstone(label), "updated_at": now()}})
    logger.info("Soft deleted %s %s", collection_name, node_id)
    return coll.find_one({"_id": doc["_id"]})


def subtree_ids(coll, node_id: str) -> List[str]:
    """Ids of a node and all of its descendants, walking `parent_comment` down level by level."""
    found = [node_id]
    seen = {node_id}
    frontier = [node_id]
    while frontier:
        children = coll.find({"parent_comment": {"$in": frontier}}, {"_id": 1})
        frontier = [str(c["_id"]) for c in children if str(c["_id"]) not in seen]
        seen.update(frontier)
        found.extend(frontier)
    return found


def _remove_empty_tombstones(coll, parent_id):
    while parent_id:
        parent = coll.find_one({"_id": to_object_id(parent_id)})
        if not parent or not parent.get("is_deleted"):
            return
        if coll.find_one({"parent_comment": parent_id}) is not None:
            return
        coll.delete_one({"_id": parent["_id"]})
        logger.info("Removed empty tombstone %s", parent_id)
        parent_id = parent.get("parent_comment")


# --- Authors ---

def attach_authors(docs: List[dict]) -> List[dict]:
    """Serialize nodes and populate `user` with the author's public fields."""
    ids = {d.get("user_id") for d in docs}
    oids = [ObjectId(i) for i in ids if i and ObjectId.is_valid(i)]
    authors = {}
    if oids:
        for u in get_collection("user").find({"_id": {"$in": oids}}, {"name": 1, "avatar": 1}):
            authors[str(u["_id"])] = {"id": str(u["_id"]), "name": u.get("name"), "avatar": u.get("avatar")}
    out = []
    for d in docs:
        item = serialize_doc(d)
        item["user"] = authors.get(d.get("user_id"))
        out.append(item)
    return out


def cast_vote(collection_name: str, doc: dict, user_id: str, vote: str) -> dict:
    if doc.get("is_deleted"):
        raise HTTPException(status_code=400, detail="Cannot vote on deleted content")
    try:
        upvotes, downvotes, voters = apply_vote(doc, user_id, vote)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    coll = get_collection(collection_name)
    coll.update_one(
        {"_id": doc["_id"]},
        {"$set": {"upvotes": upvotes, "downvotes": downvotes, "voters": voters}},
    )
    return coll.find_one({"_id": doc["_id"]})

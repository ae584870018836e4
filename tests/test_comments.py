import pytest

from tests.conftest import auth, make_festival


@pytest.fixture
def post(client, festival_id):
    def _post(user, content, parent=None, tags=(), festival=None):
        res = client.post(f"/api/comments/{festival or festival_id}",
                          json={"content": content, "parent_comment": parent, "tags": list(tags)},
                          headers=auth(user["token"]))
        assert res.status_code == 201, res.text
        return res.json()
    return _post


def thread(client, festival_id, **params):
    res = client.get(f"/api/comments/{festival_id}", params=params)
    assert res.status_code == 200
    return res.json()


def test_post_populates_author(post, alice):
    comment = post(alice, "  First!  ", tags=["lineup", " lineup "])
    assert comment["content"] == "First!"
    assert comment["user"] == {"id": alice["id"], "name": "Alice", "avatar": None}
    assert comment["tags"] == ["lineup"]
    assert comment["parent_comment"] is None


def test_post_validation(client, alice, festival_id, post):
    res = client.post(f"/api/comments/{festival_id}", json={"content": "   "}, headers=auth(alice["token"]))
    assert res.status_code == 400
    assert res.json()["message"] == "Content is required"

    res = client.post(f"/api/comments/{'0' * 24}", json={"content": "hi"}, headers=auth(alice["token"]))
    assert res.status_code == 404

    res = client.post(f"/api/comments/{festival_id}", json={"content": "hi", "parent_comment": "0" * 24},
                      headers=auth(alice["token"]))
    assert res.json()["message"] == "Parent comment not found"

    other = make_festival(alice["id"], name="Other")
    foreign = post(alice, "elsewhere", festival=other)
    res = client.post(f"/api/comments/{festival_id}", json={"content": "hi", "parent_comment": foreign["id"]},
                      headers=auth(alice["token"]))
    assert res.status_code == 400


def test_replies_nest_in_tree(client, festival_id, post, alice, bob):
    root = post(alice, "root")
    reply = post(bob, "reply", parent=root["id"])
    post(alice, "reply to reply", parent=reply["id"])
    post(bob, "second root")

    data = thread(client, festival_id)
    roots = data["comments"]
    assert [c["content"] for c in roots] == ["second root", "root"]
    nested = roots[1]["replies"][0]
    assert nested["content"] == "reply"
    assert nested["replies"][0]["content"] == "reply to reply"

    flat = thread(client, festival_id, layout="flat")
    assert len(flat) == 4

    subtree = thread(client, festival_id, parent_id=root["id"])["comments"]
    assert [c["content"] for c in subtree] == ["reply"]


def test_tag_filter_and_available_tags(client, festival_id, post, alice):
    post(alice, "food trucks?", tags=["food"])
    post(alice, "bring a tent", tags=["camping", "gear"])
    post(alice, "untagged")

    data = thread(client, festival_id, tags="camping")
    assert [c["content"] for c in data["comments"]] == ["bring a tent"]
    assert set(data["available_tags"]) == {"food", "camping", "gear"}


def test_vote_cycle(client, post, alice, bob):
    comment = post(alice, "vote me")
    url = f"/api/comments/{comment['id']}/vote"

    up = client.post(url, json={"vote": "up"}, headers=auth(bob["token"])).json()
    assert (up["upvotes"], up["downvotes"]) == (1, 0)

    flipped = client.post(url, json={"vote": "down"}, headers=auth(bob["token"])).json()
    assert (flipped["upvotes"], flipped["downvotes"]) == (0, 1)

    cleared = client.post(url, json={"vote": "down"}, headers=auth(bob["token"])).json()
    assert (cleared["upvotes"], cleared["downvotes"]) == (0, 0)
    assert cleared["voters"] == []

    res = client.post(url, json={"vote": "meh"}, headers=auth(bob["token"]))
    assert res.status_code == 400
    assert res.json()["message"] == "Invalid vote type"


def test_top_sort(client, festival_id, post, alice, bob):
    post(alice, "meh")
    liked = post(alice, "great")
    client.post(f"/api/comments/{liked['id']}/vote", json={"vote": "up"}, headers=auth(bob["token"]))
    roots = thread(client, festival_id, sort="top")["comments"]
    assert roots[0]["content"] == "great"


def test_edit(client, post, alice, bob):
    comment = post(alice, "typo")
    url = f"/api/comments/{comment['id']}"
    assert client.put(url, json={"content": "fixed"}, headers=auth(bob["token"])).status_code == 403
    res = client.put(url, json={"content": "fixed", "tags": ["news"]}, headers=auth(alice["token"]))
    assert res.json()["content"] == "fixed"
    assert res.json()["is_edited"] is True
    assert res.json()["tags"] == ["news"]


def test_delete_leaf_is_permanent(client, mongo, post, alice):
    comment = post(alice, "bye")
    res = client.delete(f"/api/comments/{comment['id']}", headers=auth(alice["token"]))
    assert res.json() == {"message": "Comment permanently deleted", "comment": None}
    assert mongo["comment"].count_documents({}) == 0


def test_delete_with_replies_leaves_tombstone(client, festival_id, mongo, post, alice, bob):
    root = post(alice, "original")
    client.post(f"/api/comments/{root['id']}/vote", json={"vote": "up"}, headers=auth(bob["token"]))
    reply = post(bob, "answer", parent=root["id"])

    res = client.delete(f"/api/comments/{root['id']}", headers=auth(alice["token"]))
    body = res.json()
    assert body["message"] == "Comment soft deleted"
    assert body["comment"]["content"] == "Comment deleted"
    assert body["comment"]["is_deleted"] is True
    assert body["comment"]["upvotes"] == 0

    roots = thread(client, festival_id)["comments"]
    assert roots[0]["replies"][0]["id"] == reply["id"]

    res = client.post(f"/api/comments/{festival_id}", json={"content": "x", "parent_comment": root["id"]},
                      headers=auth(bob["token"]))
    assert res.status_code == 400
    res = client.post(f"/api/comments/{root['id']}/vote", json={"vote": "up"}, headers=auth(bob["token"]))
    assert res.status_code == 400

    # the last reply going away takes the empty tombstone with it
    client.delete(f"/api/comments/{reply['id']}", headers=auth(bob["token"]))
    assert mongo["comment"].count_documents({}) == 0
    assert thread(client, festival_id)["comments"] == []


def test_soft_delete_flag_keeps_leaf(client, post, alice):
    leaf = post(alice, "keep my place")
    res = client.delete(f"/api/comments/{leaf['id']}", params={"soft_delete": "true"},
                        headers=auth(alice["token"]))
    assert res.json()["message"] == "Comment soft deleted"


def test_forced_hard_delete_removes_subtree(client, festival_id, mongo, post, alice, bob, admin):
    root = post(alice, "root")
    child = post(bob, "child", parent=root["id"])
    post(alice, "grandchild", parent=child["id"])
    other = post(bob, "unrelated")

    res = client.delete(f"/api/comments/{root['id']}", params={"hard_delete": "true"},
                        headers=auth(admin["token"]))
    assert res.json()["message"] == "Comment permanently deleted"
    assert mongo["comment"].count_documents({}) == 1
    assert [c["id"] for c in thread(client, festival_id)["comments"]] == [other["id"]]


def test_delete_by_stranger_is_forbidden(client, post, alice, bob):
    comment = post(alice, "mine")
    assert client.delete(f"/api/comments/{comment['id']}", headers=auth(bob["token"])).status_code == 403

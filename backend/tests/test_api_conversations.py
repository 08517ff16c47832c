"""Tests for conversation CRUD endpoints."""

from sqlmodel import Session, select

from chathome.models.conversation import ChatMessage, Conversation


def _seed_conversation(engine, owner_id, title="Test Chat", messages=None):
    """Insert a conversation + messages directly into the test DB."""
    with Session(engine) as session:
        conv = Conversation(owner_id=owner_id, title=title)
        session.add(conv)
        session.commit()
        session.refresh(conv)

        if messages:
            for role, content in messages:
                msg = ChatMessage(conversation_id=conv.id, role=role, content=content)
                session.add(msg)
            session.commit()

        session.refresh(conv)
        return conv.id


def test_list_conversations_empty(client, make_user, auth_headers):
    user, _ = make_user()
    response = client.get("/api/conversations/", headers=auth_headers(user))
    assert response.status_code == 200
    assert response.json() == []


def test_list_conversations(client, engine, make_user, auth_headers):
    user, _ = make_user()
    _seed_conversation(engine, user.id, "Chat A", [("user", "first")])
    _seed_conversation(engine, user.id, "Chat B")
    response = client.get("/api/conversations/", headers=auth_headers(user))
    assert response.status_code == 200
    data = response.json()
    assert len(data) == 2
    titles = {c["title"] for c in data}
    assert titles == {"Chat A", "Chat B"}
    by_title = {c["title"]: c for c in data}
    assert by_title["Chat A"]["last_message"] == "first"
    assert by_title["Chat B"]["last_message"] == ""


def test_list_only_shows_own_conversations(client, engine, make_user, auth_headers):
    alice, _ = make_user("alice")
    bob, _ = make_user("bob")
    _seed_conversation(engine, alice.id, "Alice's")
    _seed_conversation(engine, bob.id, "Bob's")
    data = client.get("/api/conversations/", headers=auth_headers(alice)).json()
    assert [c["title"] for c in data] == ["Alice's"]


def test_create_conversation(client, make_user, auth_headers):
    user, _ = make_user()
    response = client.post("/api/conversations/", headers=auth_headers(user))
    assert response.status_code == 200
    assert response.json()["title"] is None


def test_get_conversation(client, engine, make_user, auth_headers):
    user, _ = make_user()
    cid = _seed_conversation(engine, user.id, "My Chat", [("user", "hello"), ("assistant", "hi there")])
    response = client.get(f"/api/conversations/{cid}", headers=auth_headers(user))
    assert response.status_code == 200
    data = response.json()
    assert data["title"] == "My Chat"
    assert len(data["messages"]) == 2
    assert data["messages"][0]["role"] == "user"
    assert data["messages"][0]["content"] == "hello"
    assert data["messages"][1]["role"] == "assistant"


def test_get_conversation_not_found(client, make_user, auth_headers):
    user, _ = make_user()
    response = client.get("/api/conversations/9999", headers=auth_headers(user))
    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


def test_get_other_users_conversation_is_not_found(client, engine, make_user, auth_headers):
    alice, _ = make_user("alice")
    bob, _ = make_user("bob")
    cid = _seed_conversation(engine, alice.id, "Private", [("user", "secret")])
    response = client.get(f"/api/conversations/{cid}", headers=auth_headers(bob))
    assert response.status_code == 404


def test_rename_conversation(client, engine, make_user, auth_headers):
    user, _ = make_user()
    cid = _seed_conversation(engine, user.id, "Old")
    response = client.patch(f"/api/conversations/{cid}", json={"title": "  New name "}, headers=auth_headers(user))
    assert response.status_code == 200
    assert response.json()["title"] == "New name"


def test_delete_conversation(client, engine, make_user, auth_headers):
    user, _ = make_user()
    headers = auth_headers(user)
    cid = _seed_conversation(engine, user.id, "To Delete", [("user", "bye")])
    response = client.delete(f"/api/conversations/{cid}", headers=headers)
    assert response.status_code == 200
    assert response.json()["status"] == "deleted"

    # Verify it's gone
    response = client.get(f"/api/conversations/{cid}", headers=headers)
    assert response.status_code == 404
    with Session(engine) as session:
        assert session.exec(select(ChatMessage).where(ChatMessage.conversation_id == cid)).all() == []


def test_delete_removes_attached_files(client, make_user, auth_headers):
    user, _ = make_user()
    headers = auth_headers(user)
    cid = client.post("/api/conversations/", headers=headers).json()["id"]
    key = client.post(
        f"/api/files/upload?conversation_id={cid}",
        files={"file": ("notes.txt", b"some notes", "text/plain")},
        headers=headers,
    ).json()["key"]
    assert client.get(f"/api/files/{key}", headers=headers).status_code == 200

    client.delete(f"/api/conversations/{cid}", headers=headers)
    assert client.get(f"/api/files/{key}", headers=headers).status_code == 404


def test_delete_other_users_conversation_is_not_found(client, engine, make_user, auth_headers):
    alice, _ = make_user("alice")
    bob, _ = make_user("bob")
    cid = _seed_conversation(engine, alice.id, "Keep")
    response = client.delete(f"/api/conversations/{cid}", headers=auth_headers(bob))
    assert response.status_code == 404
    assert client.get(f"/api/conversations/{cid}", headers=auth_headers(alice)).status_code == 200

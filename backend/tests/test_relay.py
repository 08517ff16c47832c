"""Tests for the peer-messaging relay."""

import asyncio
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import Session

from chathome.core.errors import NotFound
from chathome.services.relay import RELAY_CONVERSATION_TITLE, PeerRelay


@pytest.fixture
def relay(engine, store, fake_llm):
    return PeerRelay(engine=engine, store=store, llm=fake_llm)


def _relay_conversation(store, owner_id):
    return next(
        s.conversation for s in store.list_for_user(owner_id)
        if s.conversation.title == RELAY_CONVERSATION_TITLE
    )


def test_send_rewrites_and_mirrors(relay, store, make_user, fake_llm):
    _, dad = make_user("dad", display_name="Dad")
    _, kid = make_user("kid")
    fake_llm.replies["rewrite"] = "Please come down for dinner at 7."

    record = asyncio.run(relay.send(dad, kid.user_id, "dinner 7 come down"))
    assert record.content == "Please come down for dinner at 7."
    assert record.sender_name == "Dad"
    assert "dinner 7 come down" in fake_llm.last("rewrite").messages[0].content

    conv = _relay_conversation(store, kid.user_id)
    _, messages = store.get_with_messages(kid.user_id, conv.id)
    assert [(m.role, m.content) for m in messages] == [("system", "Dad: Please come down for dinner at 7.")]


def test_mirror_reuses_the_messages_conversation(relay, store, make_user):
    _, mom = make_user("mom")
    _, kid = make_user("kid")
    asyncio.run(relay.send(mom, kid.user_id, "one"))
    asyncio.run(relay.send(mom, kid.user_id, "two"))
    titles = [s.conversation.title for s in store.list_for_user(kid.user_id)]
    assert titles.count(RELAY_CONVERSATION_TITLE) == 1


def test_rewrite_failure_delivers_original(relay, make_user, fake_llm):
    _, mom = make_user("mom")
    _, kid = make_user("kid")
    fake_llm.failing.add("rewrite")
    record = asyncio.run(relay.send(mom, kid.user_id, "homework first"))
    assert record.content == "homework first"


def test_from_name_overrides_display_name(relay, make_user):
    _, mom = make_user("mom", display_name="Mom")
    _, kid = make_user("kid")
    record = asyncio.run(relay.send(mom, kid.user_id, "hi", from_name="Mum"))
    assert record.sender_name == "Mum"


def test_unknown_recipient_is_not_found(relay, make_user):
    _, mom = make_user("mom")
    with pytest.raises(NotFound):
        asyncio.run(relay.send(mom, "no-such-user", "hello"))


def test_inbox_marks_read(relay, make_user):
    _, mom = make_user("mom")
    _, kid = make_user("kid")
    asyncio.run(relay.send(mom, kid.user_id, "one"))
    asyncio.run(relay.send(mom, kid.user_id, "two"))

    assert relay.unread_count(kid.user_id) == 2
    inbox = relay.inbox(kid.user_id)
    assert len(inbox) == 2
    assert all(m.read for m in inbox)
    assert relay.unread_count(kid.user_id) == 0


def test_messages_api(client, make_user, auth_headers):
    mom, _ = make_user("mom", display_name="Mom")
    kid, _ = make_user("kid")

    response = client.post(
        "/api/messages/",
        json={"recipient_id": kid.id, "message": "bed time"},
        headers=auth_headers(mom),
    )
    assert response.status_code == 200
    assert response.json() == {"ok": True}

    kid_headers = auth_headers(kid)
    assert client.get("/api/messages/unread-count", headers=kid_headers).json() == {"count": 1}
    inbox = client.get("/api/messages/inbox", headers=kid_headers).json()
    assert inbox[0]["sender_name"] == "Mom"
    assert inbox[0]["content"] == "Rewritten message"
    assert client.get("/api/messages/unread-count", headers=kid_headers).json() == {"count": 0}


def test_messages_api_unknown_recipient(client, make_user, auth_headers):
    mom, _ = make_user("mom")
    response = client.post(
        "/api/messages/",
        json={"recipient_id": "ghost", "message": "hello?"},
        headers=auth_headers(mom),
    )
    assert response.status_code == 404


def test_rewrite_unexpected_error_delivers_original(relay, make_user, fake_llm):
    _, mom = make_user("mom")
    _, kid = make_user("kid")
    fake_llm.crashing["rewrite"] = RuntimeError("client closed")
    record = asyncio.run(relay.send(mom, kid.user_id, "shoes off inside"))
    assert record.content == "shoes off inside"


def test_mirror_lookup_failure_still_delivers(relay, store, make_user):
    _, mom = make_user("mom")
    _, kid = make_user("kid")
    locked = OperationalError("SELECT", {}, Exception("database is locked"))

    with patch.object(Session, "exec", side_effect=locked):
        record = asyncio.run(relay.send(mom, kid.user_id, "lunch is ready"))

    assert record.content == "Rewritten message"
    assert relay.unread_count(kid.user_id) == 1
    assert store.list_for_user(kid.user_id) == []

"""REST API for conversation history management."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from chathome.api.deps import get_current_user, get_store
from chathome.core.security import Identity
from chathome.models.conversation import ChatMessage, Conversation
from chathome.services.store import ConversationStore

router = APIRouter()
logger = logging.getLogger(__name__)


class RenameRequest(BaseModel):
    title: str = Field(min_length=1, max_length=200)


def conversation_payload(c: Conversation, last_message: Optional[str] = None) -> dict:
    payload = {
        "id": c.id,
        "title": c.title,
        "created_at": c.created_at.isoformat(),
        "updated_at": c.updated_at.isoformat(),
    }
    if last_message is not None:
        payload["last_message"] = last_message
    return payload


def message_payload(m: ChatMessage) -> dict:
    return {
        "id": m.id,
        "conversation_id": m.conversation_id,
        "role": m.role,
        "content": m.content,
        "model": m.model,
        "attachments": m.attachment_refs(),
        "created_at": m.created_at.isoformat(),
    }


@router.get("/")
async def list_conversations(
    identity: Identity = Depends(get_current_user),
    store: ConversationStore = Depends(get_store),
):
    return [
        conversation_payload(s.conversation, s.last_message or "")
        for s in store.list_for_user(identity.user_id)
    ]


@router.post("/")
async def create_conversation(
    identity: Identity = Depends(get_current_user),
    store: ConversationStore = Depends(get_store),
):
    return conversation_payload(store.create(identity.user_id))


@router.get("/{conversation_id}")
async def get_conversation(
    conversation_id: str,
    identity: Identity = Depends(get_current_user),
    store: ConversationStore = Depends(get_store),
):
    conv, messages = store.get_with_messages(identity.user_id, conversation_id)
    return {
        **conversation_payload(conv),
        "messages": [message_payload(m) for m in messages],
    }


@router.patch("/{conversation_id}")
async def rename_conversation(
    conversation_id: str,
    body: RenameRequest,
    identity: Identity = Depends(get_current_user),
    store: ConversationStore = Depends(get_store),
):
    conv = store.rename(identity.user_id, conversation_id, body.title.strip())
    return conversation_payload(conv)


@router.delete("/{conversation_id}")
async def delete_conversation(
    conversation_id: str,
    identity: Identity = Depends(get_current_user),
    store: ConversationStore = Depends(get_store),
):
    store.delete(identity.user_id, conversation_id)
    logger.debug(f"Deleted conversation {conversation_id}")
    return {"status": "deleted"}

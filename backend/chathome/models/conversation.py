"""Conversation and message models for chat history persistence."""

import json
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, Relationship, SQLModel

# Assigned when a send creates a conversation on demand; replaced by the first
# generated title.
DEFAULT_TITLE = "New Chat"


def _new_id() -> str:
    return str(uuid.uuid4())


class Conversation(SQLModel, table=True):
    __tablename__ = "conversations"

    id: str = Field(default_factory=_new_id, primary_key=True)
    owner_id: str = Field(foreign_key="users.id", index=True)
    title: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    messages: list["ChatMessage"] = Relationship(back_populates="conversation")


class ChatMessage(SQLModel, table=True):
    __tablename__ = "messages"

    id: str = Field(default_factory=_new_id, primary_key=True)
    conversation_id: str = Field(foreign_key="conversations.id", index=True)
    role: str  # "user" | "assistant" | "system"
    content: str
    model: Optional[str] = None  # tier that produced an assistant message
    attachments: Optional[str] = None  # JSON list of attachment references
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    conversation: Optional[Conversation] = Relationship(back_populates="messages")

    def attachment_refs(self) -> list[dict]:
        if not self.attachments:
            return []
        return json.loads(self.attachments)


def title_is_placeholder(title: Optional[str]) -> bool:
    """True when the conversation still needs an automatic title."""
    current = (title or "").strip()
    return not current or current.lower() == DEFAULT_TITLE.lower()

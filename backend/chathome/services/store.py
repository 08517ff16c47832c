"""Conversation store: ownership-checked access to conversations and messages.

Every operation that takes a conversation id verifies the owner and raises
NotFound on a mismatch, so other users' conversations are indistinguishable
from missing ones. Each call opens its own short-lived session, which lets
post-stream finalization run after the request scope has ended. Database
errors, reads included, surface as PersistenceFailed.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from chathome.core.blobs import BlobStore, owned_by
from chathome.core.errors import NotFound, PersistenceFailed
from chathome.models.conversation import ChatMessage, Conversation

logger = logging.getLogger(__name__)


@dataclass
class ConversationSummary:
    conversation: Conversation
    last_message: Optional[str]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_message(
    conversation_id: str,
    role: str,
    content: str,
    model: Optional[str],
    attachments: Optional[list[dict]],
    message_id: Optional[str],
) -> ChatMessage:
    msg = ChatMessage(
        conversation_id=conversation_id,
        role=role,
        content=content,
        model=model,
        attachments=json.dumps(attachments) if attachments else None,
    )
    if message_id:
        msg.id = message_id
    return msg


class ConversationStore:
    def __init__(self, engine: Engine, blobs: Optional[BlobStore] = None):
        self.engine = engine
        self.blobs = blobs

    def _owned(self, session: Session, owner_id: str, conversation_id: str) -> Conversation:
        conv = session.get(Conversation, conversation_id)
        if conv is None or conv.owner_id != owner_id:
            logger.debug(f"Conversation {conversation_id} not found for {owner_id}")
            raise NotFound("Conversation not found")
        return conv

    def list_for_user(self, owner_id: str) -> list[ConversationSummary]:
        try:
            with Session(self.engine) as session:
                conversations = session.exec(
                    select(Conversation)
                    .where(Conversation.owner_id == owner_id)
                    .order_by(Conversation.updated_at.desc())  # type: ignore
                ).all()
                summaries = []
                for conv in conversations:
                    last = session.exec(
                        select(ChatMessage.content)
                        .where(ChatMessage.conversation_id == conv.id)
                        .order_by(ChatMessage.created_at.desc())  # type: ignore
                        .limit(1)
                    ).first()
                    summaries.append(ConversationSummary(conversation=conv, last_message=last))
                return summaries
        except SQLAlchemyError as e:
            raise PersistenceFailed("Failed to list conversations") from e

    def create(self, owner_id: str, title: Optional[str] = None) -> Conversation:
        try:
            with Session(self.engine) as session:
                conv = Conversation(owner_id=owner_id, title=title)
                session.add(conv)
                session.commit()
                session.refresh(conv)
                return conv
        except SQLAlchemyError as e:
            raise PersistenceFailed("Failed to create conversation") from e

    def create_with_message(
        self,
        owner_id: str,
        title: Optional[str],
        role: str,
        content: str,
        attachments: Optional[list[dict]] = None,
    ) -> tuple[Conversation, ChatMessage]:
        """Create a conversation and its first message in one transaction."""
        try:
            with Session(self.engine) as session:
                conv = Conversation(owner_id=owner_id, title=title)
                msg = _new_message(conv.id, role, content, None, attachments, None)
                session.add(conv)
                session.add(msg)
                session.commit()
                session.refresh(conv)
                session.refresh(msg)
                return conv, msg
        except SQLAlchemyError as e:
            raise PersistenceFailed(f"Failed to save {role} message") from e

    def get(self, owner_id: str, conversation_id: str) -> Conversation:
        try:
            with Session(self.engine) as session:
                return self._owned(session, owner_id, conversation_id)
        except SQLAlchemyError as e:
            raise PersistenceFailed("Failed to load conversation") from e

    def get_with_messages(self, owner_id: str, conversation_id: str) -> tuple[Conversation, list[ChatMessage]]:
        try:
            with Session(self.engine) as session:
                conv = self._owned(session, owner_id, conversation_id)
                messages = session.exec(
                    select(ChatMessage)
                    .where(ChatMessage.conversation_id == conversation_id)
                    .order_by(ChatMessage.created_at)  # type: ignore
                ).all()
                return conv, list(messages)
        except SQLAlchemyError as e:
            raise PersistenceFailed("Failed to load conversation") from e

    def history(self, owner_id: str, conversation_id: str, limit: int) -> list[ChatMessage]:
        """The most recent ``limit`` messages, oldest first."""
        try:
            with Session(self.engine) as session:
                self._owned(session, owner_id, conversation_id)
                recent = session.exec(
                    select(ChatMessage)
                    .where(ChatMessage.conversation_id == conversation_id)
                    .order_by(ChatMessage.created_at.desc())  # type: ignore
                    .limit(limit)
                ).all()
                return list(reversed(recent))
        except SQLAlchemyError as e:
            raise PersistenceFailed("Failed to load history") from e

    def append_message(
        self,
        owner_id: str,
        conversation_id: str,
        role: str,
        content: str,
        model: Optional[str] = None,
        attachments: Optional[list[dict]] = None,
        message_id: Optional[str] = None,
    ) -> ChatMessage:
        """Insert a message and advance the conversation's updated_at."""
        try:
            with Session(self.engine) as session:
                conv = self._owned(session, owner_id, conversation_id)
                msg = _new_message(conversation_id, role, content, model, attachments, message_id)
                conv.updated_at = _now()
                session.add(msg)
                session.add(conv)
                session.commit()
                session.refresh(msg)
                return msg
        except SQLAlchemyError as e:
            raise PersistenceFailed(f"Failed to save {role} message") from e

    def touch(self, owner_id: str, conversation_id: str, title: Optional[str] = None) -> Conversation:
        """Advance updated_at, optionally setting the title in the same write."""
        try:
            with Session(self.engine) as session:
                conv = self._owned(session, owner_id, conversation_id)
                conv.updated_at = _now()
                if title is not None:
                    conv.title = title
                session.add(conv)
                session.commit()
                session.refresh(conv)
                return conv
        except SQLAlchemyError as e:
            raise PersistenceFailed("Failed to update conversation") from e

    def set_title(self, owner_id: str, conversation_id: str, title: str) -> Conversation:
        return self.touch(owner_id, conversation_id, title=title)

    def rename(self, owner_id: str, conversation_id: str, title: str) -> Conversation:
        return self.set_title(owner_id, conversation_id, title)

    def find_or_create_by_title(self, owner_id: str, title: str) -> Conversation:
        try:
            with Session(self.engine) as session:
                conv = session.exec(
                    select(Conversation)
                    .where(Conversation.owner_id == owner_id, Conversation.title == title)
                    .order_by(Conversation.created_at)  # type: ignore
                ).first()
        except SQLAlchemyError as e:
            raise PersistenceFailed(f"Failed to look up conversation {title!r}") from e
        if conv is not None:
            return conv
        return self.create(owner_id, title=title)

    def delete(self, owner_id: str, conversation_id: str) -> None:
        """Delete a conversation, its messages and the blobs it owns."""
        try:
            with Session(self.engine) as session:
                self._owned(session, owner_id, conversation_id)
                messages = session.exec(
                    select(ChatMessage).where(ChatMessage.conversation_id == conversation_id)
                ).all()
                blob_keys = [ref["key"] for msg in messages for ref in msg.attachment_refs() if ref.get("key")]
                for msg in messages:
                    session.delete(msg)
                session.delete(session.get(Conversation, conversation_id))
                session.commit()
        except SQLAlchemyError as e:
            raise PersistenceFailed("Failed to delete conversation") from e

        if self.blobs is not None:
            for key in blob_keys:
                if owned_by(key, owner_id):
                    self.blobs.delete(key)
            self.blobs.delete_prefix(f"{owner_id}/{conversation_id}/")
        logger.debug(f"Deleted conversation {conversation_id} ({len(messages)} messages)")

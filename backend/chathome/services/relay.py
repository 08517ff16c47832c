"""Peer-messaging relay.

A user sends a raw message to another user. The assistant rewrites it to be
clearer and politer, the result is logged as a relayed message, and a copy is
mirrored into the recipient's "Messages" conversation as a system entry. The
rewrite and the mirror are best-effort; only the relay log write is required.
"""

import asyncio
import logging
from typing import Optional

from sqlalchemy import func
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from chathome.core.config import settings
from chathome.core.errors import NotFound, PersistenceFailed
from chathome.core.security import Identity
from chathome.models.relay import RelayedMessage
from chathome.models.user import User
from chathome.services.llm.base import BaseLLMProvider, LLMRequest, Message
from chathome.services.llm.tiers import Tier
from chathome.services.store import ConversationStore

logger = logging.getLogger(__name__)

RELAY_CONVERSATION_TITLE = "Messages"
REWRITE_SYSTEM_PROMPT = "Rewrite the user message to be clear, concise, and polite. Output only the message."


class PeerRelay:
    def __init__(self, engine: Engine, store: ConversationStore, llm: BaseLLMProvider):
        self.engine = engine
        self.store = store
        self.llm = llm

    async def rewrite(self, sender_name: str, raw_message: str, context: Optional[str]) -> str:
        prompt = (
            f"Rewrite the following message to be delivered from {sender_name} to the recipient. "
            "Be clear, concise, polite, and keep the original meaning. Output only the final "
            f"message body without quotes.\n\nContext (optional): {context or 'N/A'}\n\n"
            f"Original message:\n{raw_message}"
        )
        request = LLMRequest(
            messages=[Message(role="user", content=prompt)],
            tier=Tier.FAST,
            system=REWRITE_SYSTEM_PROMPT,
            purpose="rewrite",
        )
        try:
            refined = await asyncio.wait_for(self.llm.complete(request), settings.aux_timeout_seconds)
        except Exception as e:
            logger.warning(f"Relay rewrite failed, delivering original text: {e}")
            return raw_message
        return refined.strip() or raw_message

    def _mirror(self, recipient_id: str, sender_name: str, content: str) -> None:
        conv = self.store.find_or_create_by_title(recipient_id, RELAY_CONVERSATION_TITLE)
        self.store.append_message(recipient_id, conv.id, "system", f"{sender_name}: {content}")

    async def send(
        self,
        sender: Identity,
        recipient_id: str,
        raw_message: str,
        context: Optional[str] = None,
        from_name: Optional[str] = None,
    ) -> RelayedMessage:
        with Session(self.engine) as session:
            if session.get(User, recipient_id) is None:
                raise NotFound("Recipient not found")

        sender_name = (from_name or "").strip() or sender.display_name or "Someone"
        refined = await self.rewrite(sender_name, raw_message, context)

        try:
            with Session(self.engine) as session:
                record = RelayedMessage(
                    sender_id=sender.user_id,
                    recipient_id=recipient_id,
                    sender_name=sender_name,
                    content=refined,
                )
                session.add(record)
                session.commit()
                session.refresh(record)
        except SQLAlchemyError as e:
            raise PersistenceFailed("Failed to save message") from e
        logger.info(f"Relayed message {record.id} from {sender.user_id} to {recipient_id}")

        try:
            self._mirror(recipient_id, sender_name, refined)
        except (NotFound, PersistenceFailed) as e:
            logger.error(f"Failed to mirror message {record.id} to recipient chat: {e}")
        return record

    def unread_count(self, recipient_id: str) -> int:
        with Session(self.engine) as session:
            return session.exec(
                select(func.count())
                .select_from(RelayedMessage)
                .where(RelayedMessage.recipient_id == recipient_id, RelayedMessage.read == False)  # noqa: E712
            ).one()

    def inbox(self, recipient_id: str) -> list[RelayedMessage]:
        """Relayed messages addressed to the recipient, newest first. Marks them read."""
        with Session(self.engine) as session:
            messages = session.exec(
                select(RelayedMessage)
                .where(RelayedMessage.recipient_id == recipient_id)
                .order_by(RelayedMessage.created_at.desc())  # type: ignore
            ).all()
            unread = [m for m in messages if not m.read]
            for m in unread:
                m.read = True
                session.add(m)
            if unread:
                session.commit()
                for m in messages:
                    session.refresh(m)
            return list(messages)

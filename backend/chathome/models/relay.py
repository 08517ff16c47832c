"""Log of human-to-human messages relayed through the assistant."""

import uuid
from datetime import datetime, timezone

from sqlmodel import Field, SQLModel


class RelayedMessage(SQLModel, table=True):
    __tablename__ = "relayed_messages"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    sender_id: str = Field(foreign_key="users.id", index=True)
    recipient_id: str = Field(foreign_key="users.id", index=True)
    sender_name: str
    content: str
    read: bool = Field(default=False)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

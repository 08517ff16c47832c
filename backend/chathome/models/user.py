"""User accounts. Roles govern system-prompt tone and content policy."""

import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlmodel import Field, SQLModel


class Role(str, Enum):
    ADMIN = "admin"
    ADULT = "adult"
    KID = "kid"


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    username: str = Field(index=True, unique=True)
    display_name: str = Field(default="")
    role: str = Field(default=Role.ADULT.value)
    password_hash: str = Field(default="")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

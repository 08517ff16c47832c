"""Account registration, login and the current-user lookup."""

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import func
from sqlmodel import Session, select

from chathome.api.deps import get_current_user
from chathome.core.database import get_session
from chathome.core.errors import Unauthenticated, ValidationFailed
from chathome.core.security import Identity, hash_password, issue_token, verify_password
from chathome.models.user import Role, User

router = APIRouter()
logger = logging.getLogger(__name__)


class RegisterRequest(BaseModel):
    username: str = Field(min_length=3, max_length=20, pattern=r"^[a-zA-Z0-9_]+$")
    password: str = Field(min_length=6, max_length=100)
    display_name: str = Field(default="", max_length=64)


class LoginRequest(BaseModel):
    username: str
    password: str


def _user_payload(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "display_name": user.display_name or user.username,
        "role": user.role,
    }


@router.post("/register")
async def register(body: RegisterRequest, session: Session = Depends(get_session)):
    existing = session.exec(select(User).where(User.username == body.username)).first()
    if existing:
        raise ValidationFailed("Username already exists")

    # The first account becomes the admin.
    is_first_user = session.exec(select(func.count()).select_from(User)).one() == 0
    user = User(
        username=body.username,
        display_name=body.display_name.strip() or body.username,
        role=Role.ADMIN.value if is_first_user else Role.ADULT.value,
        password_hash=hash_password(body.password),
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info(f"Registered user {user.id} ({user.role})")

    return {"token": issue_token(user), "user": _user_payload(user)}


@router.post("/login")
async def login(body: LoginRequest, session: Session = Depends(get_session)):
    user = session.exec(select(User).where(User.username == body.username)).first()
    if not user or not verify_password(body.password, user.password_hash):
        raise Unauthenticated("Invalid username or password")
    return {"token": issue_token(user), "user": _user_payload(user)}


@router.get("/me")
async def me(identity: Identity = Depends(get_current_user), session: Session = Depends(get_session)):
    user = session.get(User, identity.user_id)
    return {**_user_payload(user), "created_at": user.created_at.isoformat()}

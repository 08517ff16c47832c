"""Credential & identity gate.

Bearer tokens are itsdangerous timed signatures over the user id. The user row
is re-read on every request so that role changes and deletions take effect
immediately; stale claims in the token are never trusted. Every failure mode
collapses to the same ``Unauthenticated`` error.
"""

import logging
from dataclasses import dataclass

import bcrypt
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from sqlmodel import Session

from chathome.core.config import settings
from chathome.core.errors import Unauthenticated
from chathome.models.user import Role, User

logger = logging.getLogger(__name__)

_TOKEN_SALT = "chathome-auth"
_INVALID = "Invalid or expired credentials"


@dataclass(frozen=True)
class Identity:
    user_id: str
    role: Role
    display_name: str


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(settings.secret_key, salt=_TOKEN_SALT)


def issue_token(user: User) -> str:
    return _serializer().dumps({"sub": user.id})


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def identity_for(user: User) -> Identity:
    return Identity(
        user_id=user.id,
        role=Role(user.role),
        display_name=user.display_name or user.username,
    )


def resolve_identity(session: Session, token: str | None) -> Identity:
    """Verify a bearer token and load the current user record behind it."""
    if not token:
        raise Unauthenticated(_INVALID)

    try:
        payload = _serializer().loads(token, max_age=settings.token_ttl_seconds)
    except SignatureExpired:
        logger.debug("Rejected expired token")
        raise Unauthenticated(_INVALID)
    except BadSignature:
        logger.debug("Rejected token with bad signature")
        raise Unauthenticated(_INVALID)

    user_id = payload.get("sub") if isinstance(payload, dict) else None
    if not isinstance(user_id, str):
        raise Unauthenticated(_INVALID)

    user = session.get(User, user_id)
    if user is None:
        logger.debug(f"Token for unknown user {user_id}")
        raise Unauthenticated(_INVALID)

    try:
        return identity_for(user)
    except ValueError:
        logger.warning(f"User {user_id} has unknown role {user.role!r}")
        raise Unauthenticated(_INVALID)

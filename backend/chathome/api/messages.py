"""Peer messages between household members."""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from chathome.api.deps import get_current_user, get_relay
from chathome.core.security import Identity
from chathome.services.relay import PeerRelay

router = APIRouter()


class RelayRequest(BaseModel):
    recipient_id: str
    message: str = Field(min_length=1, max_length=10000)
    context: Optional[str] = None
    from_name: Optional[str] = None


@router.post("/")
async def send_message(
    body: RelayRequest,
    identity: Identity = Depends(get_current_user),
    relay: PeerRelay = Depends(get_relay),
):
    await relay.send(identity, body.recipient_id, body.message, context=body.context, from_name=body.from_name)
    return {"ok": True}


@router.get("/unread-count")
async def unread_count(
    identity: Identity = Depends(get_current_user),
    relay: PeerRelay = Depends(get_relay),
):
    return {"count": relay.unread_count(identity.user_id)}


@router.get("/inbox")
async def inbox(
    identity: Identity = Depends(get_current_user),
    relay: PeerRelay = Depends(get_relay),
):
    return [
        {
            "id": m.id,
            "sender_id": m.sender_id,
            "sender_name": m.sender_name,
            "content": m.content,
            "read": m.read,
            "created_at": m.created_at.isoformat(),
        }
        for m in relay.inbox(identity.user_id)
    ]

"""Message send endpoint.

One completion engine, three wire shapes: server-sent events (the default),
a single JSON document, and raw text chunks with metadata in headers.
"""

import json
import logging
from contextlib import aclosing
from typing import Literal, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field
from starlette.background import BackgroundTask

from chathome.api.conversations import conversation_payload, message_payload
from chathome.api.deps import get_current_user, get_pipeline
from chathome.core.errors import UpstreamUnavailable, ValidationFailed
from chathome.core.security import Identity
from chathome.services.completion import ChatPipeline, Exchange, SendRequest
from chathome.services.llm.tiers import Tier

router = APIRouter()
logger = logging.getLogger(__name__)


class SendMessageRequest(BaseModel):
    conversation_id: Optional[str] = None
    content: str = Field(min_length=1)
    model: str = Tier.FAST.value
    attachments: list[str] = []
    web_search: bool = False
    response_format: Literal["sse", "json", "text"] = "sse"


def _sse(payload: dict) -> str:
    return f"data: {json.dumps(payload)}\n\n"


def _stream_events(pipeline: ChatPipeline, exchange: Exchange) -> StreamingResponse:
    async def events():
        try:
            async with aclosing(pipeline.stream(exchange)) as deltas:
                async for delta in deltas:
                    yield _sse({"content": delta})
        except UpstreamUnavailable as e:
            yield _sse({"error": e.reason})
            return
        yield _sse({
            "done": True,
            "message_id": exchange.assistant_message_id,
            "conversation_id": exchange.conversation_id,
            "conversation_created": exchange.conversation_created,
        })

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        background=BackgroundTask(pipeline.finalize, exchange),
    )


def _stream_text(pipeline: ChatPipeline, exchange: Exchange) -> StreamingResponse:
    async def chunks():
        async with aclosing(pipeline.stream(exchange)) as deltas:
            async for delta in deltas:
                yield delta

    headers = {"X-Chat-Id": exchange.conversation_id}
    if exchange.conversation_created:
        headers["X-Chat-Title"] = quote(exchange.conversation.title or "")
        headers["X-Chat-Created"] = "1"
    return StreamingResponse(
        chunks(),
        media_type="text/plain; charset=utf-8",
        headers=headers,
        background=BackgroundTask(pipeline.finalize, exchange),
    )


async def _complete_json(pipeline: ChatPipeline, exchange: Exchange) -> dict:
    await pipeline.run(exchange)
    assistant = await pipeline.finalize(exchange)
    response = {
        "user_message": message_payload(exchange.user_message),
        "assistant_message": message_payload(assistant) if assistant else None,
    }
    if exchange.conversation_created:
        conversation = pipeline.store.get(exchange.identity.user_id, exchange.conversation_id)
        response["conversation"] = conversation_payload(conversation)
    return response


@router.post("/messages")
async def send_message(
    body: SendMessageRequest,
    identity: Identity = Depends(get_current_user),
    pipeline: ChatPipeline = Depends(get_pipeline),
):
    try:
        tier = Tier.parse(body.model)
    except ValueError:
        raise ValidationFailed(f"Unknown model tier '{body.model}'")

    exchange = await pipeline.prepare(
        identity,
        SendRequest(
            content=body.content,
            model=tier,
            conversation_id=body.conversation_id,
            attachments=body.attachments,
            web_search=body.web_search,
        ),
    )

    if body.response_format == "json":
        return await _complete_json(pipeline, exchange)
    if body.response_format == "text":
        return _stream_text(pipeline, exchange)
    return _stream_events(pipeline, exchange)

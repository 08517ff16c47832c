"""Message-send pipeline and completion streaming engine.

One send is one ``Exchange`` moving through three phases:

1. ``prepare``: resolve the conversation and attachments, load history, persist
   the user message, then run attachment extraction and the web search bridge
   concurrently and assemble the model context. Persisting the user message
   happens before any model call, so a failed or aborted stream never loses it.
2. ``stream``: forward provider increments to the caller as they arrive while
   accumulating them. Idle -> Streaming -> Completed | Failed | Aborted.
3. ``finalize``: only for Completed exchanges, persist the assistant message
   and, for a conversation that had no real title yet, the generated title.

Nothing is retried automatically; a resend creates a new exchange.
"""

import asyncio
import logging
import uuid
from contextlib import aclosing
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Optional

from chathome.core.blobs import BlobInfo, BlobStore, owned_by
from chathome.core.config import settings
from chathome.core.errors import NotFound, PersistenceFailed, UpstreamUnavailable, ValidationFailed
from chathome.core.security import Identity
from chathome.models.conversation import DEFAULT_TITLE, ChatMessage, Conversation, title_is_placeholder
from chathome.services.context import AssembledContext, assemble_context, history_messages
from chathome.services.extractor import AttachmentExtractor, ExtractedAttachment
from chathome.services.grounding import SearchOutcome, WebSearchBridge
from chathome.services.llm.base import BaseLLMProvider, LLMRequest
from chathome.services.llm.tiers import Tier, effective_tier
from chathome.services.search.base import BaseSearchProvider
from chathome.services.store import ConversationStore
from chathome.services.titles import TitleGenerator

logger = logging.getLogger(__name__)


class ExchangeState(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    ABORTED = "aborted"


@dataclass
class SendRequest:
    content: str
    model: Tier = Tier.FAST
    conversation_id: Optional[str] = None
    attachments: list[str] = field(default_factory=list)
    web_search: bool = False


@dataclass
class Exchange:
    identity: Identity
    conversation: Conversation
    conversation_created: bool
    needs_title: bool
    text: str
    requested_tier: Tier
    tier: Tier
    user_message: ChatMessage
    context: AssembledContext
    search: SearchOutcome
    extracted: list[ExtractedAttachment] = field(default_factory=list)
    assistant_message_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    chunks: list[str] = field(default_factory=list)
    state: ExchangeState = ExchangeState.IDLE
    title: Optional[str] = None

    @property
    def conversation_id(self) -> str:
        return self.conversation.id

    @property
    def output(self) -> str:
        return "".join(self.chunks)


class ChatPipeline:
    def __init__(
        self,
        store: ConversationStore,
        llm: BaseLLMProvider,
        search: BaseSearchProvider,
        blobs: BlobStore,
        extractor: Optional[AttachmentExtractor] = None,
    ):
        self.store = store
        self.llm = llm
        self.blobs = blobs
        self.extractor = extractor or AttachmentExtractor()
        self.bridge = WebSearchBridge(llm, search)
        self.titles = TitleGenerator(llm)

    def _resolve_attachments(self, identity: Identity, keys: list[str]) -> list[BlobInfo]:
        refs = []
        for key in keys[:settings.max_attachments]:
            info = self.blobs.info(key) if owned_by(key, identity.user_id) else None
            if info is None:
                raise NotFound("Attachment not found")
            refs.append(info)
        return refs

    async def _extract_all(self, refs: list[BlobInfo]) -> list[ExtractedAttachment]:
        extracted = []
        for ref in refs:
            data = self.blobs.read(ref.key) or b""
            result = await asyncio.to_thread(self.extractor.extract, data, ref.content_type, ref.name)
            if result.degraded:
                logger.warning(f"Attachment {ref.name} extracted in degraded form")
            extracted.append(result)
        return extracted

    async def _search(self, request: SendRequest, history: list[ChatMessage], text: str) -> SearchOutcome:
        if not request.web_search:
            return SearchOutcome.skipped("disabled")
        return await self.bridge.gather(history_messages(history), text)

    async def prepare(self, identity: Identity, request: SendRequest) -> Exchange:
        text = request.content.strip()
        if not text:
            raise ValidationFailed("Message content is empty")
        if len(text) > settings.max_message_chars:
            raise ValidationFailed(f"Message exceeds {settings.max_message_chars} characters")

        refs = self._resolve_attachments(identity, request.attachments)

        attachments = [
            {"key": r.key, "name": r.name, "size": r.size, "content_type": r.content_type}
            for r in refs
        ]

        # The user message must be saved before any model call.
        if request.conversation_id:
            conversation = self.store.get(identity.user_id, request.conversation_id)
            created = False
            history = self.store.history(identity.user_id, conversation.id, settings.history_window)
            user_message = self.store.append_message(
                identity.user_id, conversation.id, "user", text, attachments=attachments
            )
        else:
            conversation, user_message = self.store.create_with_message(
                identity.user_id, DEFAULT_TITLE, "user", text, attachments=attachments
            )
            created = True
            history = []
            logger.info(f"Created conversation {conversation.id} for {identity.user_id}")

        extracted, search = await asyncio.gather(
            self._extract_all(refs),
            self._search(request, history, text),
        )
        tier = effective_tier(request.model, any(a.is_image for a in extracted))
        if tier is not request.model:
            logger.info(f"Image attachment present, using {tier.value} instead of {request.model.value}")

        context = assemble_context(identity, history, text, extracted, tier, search.context)
        logger.info(
            f"Exchange prepared: conversation={conversation.id} tier={tier.value} "
            f"history={len(history)} attachments={len(extracted)} search={search.status}"
        )
        return Exchange(
            identity=identity,
            conversation=conversation,
            conversation_created=created,
            needs_title=title_is_placeholder(conversation.title),
            text=text,
            requested_tier=request.model,
            tier=tier,
            user_message=user_message,
            context=context,
            search=search,
            extracted=extracted,
        )

    async def stream(self, exchange: Exchange) -> AsyncIterator[str]:
        """Yield text increments as the provider produces them."""
        if exchange.state is not ExchangeState.IDLE:
            raise RuntimeError(f"Exchange already {exchange.state.value}")
        exchange.state = ExchangeState.STREAMING

        request = LLMRequest(
            messages=exchange.context.messages,
            tier=exchange.tier,
            system=exchange.context.system_instruction,
            purpose="chat",
        )
        try:
            async with aclosing(self.llm.stream(request)) as deltas:
                async for delta in deltas:
                    if not delta:
                        continue
                    exchange.chunks.append(delta)
                    yield delta
        except UpstreamUnavailable as e:
            exchange.state = ExchangeState.FAILED
            logger.error(f"Completion failed for conversation {exchange.conversation_id}: {e}")
            raise
        except (GeneratorExit, asyncio.CancelledError):
            exchange.state = ExchangeState.ABORTED
            logger.info(
                f"Stream aborted for conversation {exchange.conversation_id} "
                f"after {len(exchange.chunks)} increments"
            )
            raise

        exchange.state = ExchangeState.COMPLETED
        logger.info(f"Stream completed for conversation {exchange.conversation_id} ({len(exchange.output)} chars)")

    async def run(self, exchange: Exchange) -> str:
        """Drain the stream without forwarding; used by the JSON adapter."""
        async for _ in self.stream(exchange):
            pass
        return exchange.output

    async def finalize(self, exchange: Exchange) -> Optional[ChatMessage]:
        """Persist the assistant turn and the first title. Never raises."""
        if exchange.state is not ExchangeState.COMPLETED:
            logger.info(f"Skipping persistence for {exchange.state.value} exchange in {exchange.conversation_id}")
            return None

        owner = exchange.identity.user_id
        try:
            assistant = self.store.append_message(
                owner,
                exchange.conversation_id,
                "assistant",
                exchange.output or " ",
                model=exchange.tier.value,
                message_id=exchange.assistant_message_id,
            )
        except (NotFound, PersistenceFailed) as e:
            logger.error(f"Assistant message for {exchange.conversation_id} was not saved: {e}")
            return None
        logger.info(f"Saved assistant message {assistant.id} in {exchange.conversation_id}")

        if exchange.needs_title:
            outcome = await self.titles.generate(exchange.text, exchange.output)
            try:
                self.store.set_title(owner, exchange.conversation_id, outcome.title)
                exchange.title = outcome.title
                logger.info(
                    f"Titled conversation {exchange.conversation_id}: {outcome.title!r}"
                    + (" (fallback)" if outcome.degraded else "")
                )
            except (NotFound, PersistenceFailed) as e:
                logger.error(f"Title for {exchange.conversation_id} was not saved: {e}")
        return assistant

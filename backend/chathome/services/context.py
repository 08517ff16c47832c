"""Context assembly for the completion call.

Builds the system instruction (role template plus optional search findings)
and the ordered message list: persisted history oldest first, then the new
user turn with any extracted attachment content.
"""

from dataclasses import dataclass
from typing import Optional

from chathome.core.security import Identity
from chathome.models.conversation import ChatMessage
from chathome.services.extractor import ExtractedAttachment
from chathome.services.llm.base import ContentPart, Message, MessageContent
from chathome.services.llm.tiers import Tier, tier_config
from chathome.services.prompts import template_for

SEARCH_CONTEXT_HEADER = "\n\nWeb search results for context:\n"


@dataclass
class AssembledContext:
    system_instruction: str
    messages: list[Message]

    def as_messages(self) -> list[Message]:
        return [Message(role="system", content=self.system_instruction), *self.messages]


def history_messages(history: list[ChatMessage]) -> list[Message]:
    """Map stored rows to model turns, content unchanged.

    Stored system messages (relayed peer messages) become assistant turns so the
    system instruction stays the single leading system entry.
    """
    return [
        Message(role="user" if m.role == "user" else "assistant", content=m.content)
        for m in history
    ]


def build_system_instruction(identity: Identity, search_context: Optional[str] = None) -> str:
    instruction = template_for(identity.role).render(identity.display_name)
    if search_context:
        instruction += SEARCH_CONTEXT_HEADER + search_context
    return instruction


def build_user_content(text: str, extracted: list[ExtractedAttachment], tier: Tier) -> MessageContent:
    if not extracted:
        return text
    if any(a.is_image for a in extracted) and not tier_config(tier).vision:
        raise ValueError(f"Tier {tier.value} cannot take image input")

    parts = [ContentPart(type="text", text=text)]
    for attachment in extracted:
        if attachment.is_image:
            parts.append(ContentPart(type="image", data_uri=attachment.data_uri))
        else:
            parts.append(ContentPart(type="text", text=attachment.text))
    return parts


def assemble_context(
    identity: Identity,
    history: list[ChatMessage],
    text: str,
    extracted: list[ExtractedAttachment],
    tier: Tier,
    search_context: Optional[str] = None,
) -> AssembledContext:
    messages = history_messages(history)
    messages.append(Message(role="user", content=build_user_content(text, extracted, tier)))
    return AssembledContext(
        system_instruction=build_system_instruction(identity, search_context),
        messages=messages,
    )

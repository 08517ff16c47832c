"""Conversation title generation."""

import asyncio
import logging
import re
from dataclasses import dataclass

from chathome.core.config import settings
from chathome.models.conversation import DEFAULT_TITLE
from chathome.services.llm.base import BaseLLMProvider, LLMRequest, Message
from chathome.services.llm.tiers import Tier

logger = logging.getLogger(__name__)

TITLE_SYSTEM_PROMPT = "Return only a concise, descriptive chat title. Max 6 words. No quotes."
FALLBACK_CHARS = 50

_QUOTES = "\"'`“”‘’«»"


@dataclass
class TitleOutcome:
    title: str
    degraded: bool = False


def clean_title(raw: str, max_length: int | None = None) -> str:
    """Trim, collapse whitespace, strip surrounding quotes and cap the length."""
    limit = max_length or settings.title_max_length
    title = re.sub(r"\s+", " ", raw or "").strip()
    while True:
        stripped = title.strip(_QUOTES).strip()
        stripped = stripped[:limit].rstrip()
        if stripped == title:
            return title
        title = stripped


class TitleGenerator:
    def __init__(self, llm: BaseLLMProvider):
        self.llm = llm

    def fallback(self, user_text: str) -> str:
        return clean_title(user_text[:FALLBACK_CHARS]) or DEFAULT_TITLE

    async def generate(self, user_text: str, assistant_text: str) -> TitleOutcome:
        prompt = (
            "Create a very short, descriptive chat title (max 6 words, no quotes) based on "
            f"this conversation.\n\nUser: {user_text}\nAssistant: {assistant_text[:300]}"
        )
        request = LLMRequest(
            messages=[Message(role="user", content=prompt)],
            tier=Tier.FAST,
            system=TITLE_SYSTEM_PROMPT,
            purpose="title",
            temperature=0.3,
            max_output_tokens=30,
        )
        try:
            raw = await asyncio.wait_for(self.llm.complete(request), settings.aux_timeout_seconds)
        except Exception as e:
            logger.warning(f"Title generation failed, falling back to message text: {e}")
            return TitleOutcome(title=self.fallback(user_text), degraded=True)

        title = clean_title(raw)
        if not title:
            logger.warning("Title generation returned nothing usable")
            return TitleOutcome(title=self.fallback(user_text), degraded=True)
        return TitleOutcome(title=title)

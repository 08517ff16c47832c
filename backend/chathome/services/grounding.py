"""Relevance classifier and web search bridge.

Decides whether a message warrants a web search, turns the conversation into a
query, runs it and formats the findings as grounding context for the system
instruction. Nothing in here ever blocks a send: every failure degrades to
"proceed without search context" and is reported through ``SearchOutcome``.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from chathome.core.config import settings
from chathome.core.errors import UpstreamUnavailable
from chathome.services.llm.base import BaseLLMProvider, LLMRequest, Message
from chathome.services.llm.tiers import Tier
from chathome.services.search.base import BaseSearchProvider, format_search_results

logger = logging.getLogger(__name__)

CLASSIFIER_PROMPT = " ".join([
    "You are a classifier that determines if a web search would help answer the user's request.",
    'Respond "YES" if the user is asking for:',
    "- News, headlines, trending topics, or current events.",
    "- Weather, forecasts, air quality, or conditions for a specific place and time.",
    "- Sports scores, schedules, live results, stocks/crypto prices, exchange rates, or any other live data.",
    "- Product details, reviews, prices, or availability.",
    "- Any topic where up-to-date information is better than your training data.",
    "- The conversation shows the assistant previously lacked information or could not answer.",
    'If you are even slightly unsure, respond "YES".',
    'Respond "NO" only if the request is clearly:',
    "- Purely creative writing, math, or coding.",
    "- Personal chitchat or greeting.",
    "- General static knowledge (e.g. history, definitions) that definitely hasn't changed.",
    'Output ONLY "YES" or "NO".',
])

QUERY_PROMPT = (
    "Based on the conversation history and the following user message, generate a single, "
    "concise search query that best addresses the user's need. If the user's message is "
    "standalone, just use that. Output ONLY the query text."
)

CLASSIFIER_TURNS = 3
QUERY_TURNS = 5


@dataclass
class SearchOutcome:
    status: str  # "used" | "skipped" | "degraded"
    reason: str = ""
    query: Optional[str] = None
    context: Optional[str] = None

    @property
    def degraded(self) -> bool:
        return self.status == "degraded"

    @classmethod
    def skipped(cls, reason: str) -> "SearchOutcome":
        return cls(status="skipped", reason=reason)


class WebSearchBridge:
    def __init__(self, llm: BaseLLMProvider, search: BaseSearchProvider):
        self.llm = llm
        self.search = search

    async def _ask(self, request: LLMRequest) -> str:
        return await asyncio.wait_for(self.llm.complete(request), settings.aux_timeout_seconds)

    async def should_search(self, history: list[Message], message: str) -> bool:
        """Cheap deterministic YES/NO call on the fast tier.

        Raises UpstreamUnavailable when the classifier could not answer.
        """
        request = LLMRequest(
            messages=[*history[-CLASSIFIER_TURNS:], Message(role="user", content=message)],
            tier=Tier.FAST,
            system=CLASSIFIER_PROMPT,
            purpose="classify",
            temperature=0.0,
            max_output_tokens=5,
        )
        try:
            answer = await self._ask(request)
        except asyncio.TimeoutError as e:
            raise UpstreamUnavailable("Classifier timed out") from e
        return answer.strip().upper().rstrip(".") == "YES"

    async def build_query(self, history: list[Message], message: str) -> str:
        request = LLMRequest(
            messages=[*history[-QUERY_TURNS:], Message(role="user", content=message)],
            tier=Tier.FAST,
            system=QUERY_PROMPT,
            purpose="search_query",
            temperature=0.3,
            max_output_tokens=100,
        )
        try:
            query = (await self._ask(request)).strip().strip('"')
        except Exception as e:
            logger.warning(f"Search query generation failed, using raw message: {e}")
            return message
        return query or message

    async def gather(self, history: list[Message], message: str) -> SearchOutcome:
        try:
            wanted = await self.should_search(history, message)
        except Exception as e:
            logger.warning(f"Search classifier failed, proceeding without search: {e}")
            return SearchOutcome.skipped("classifier_failed")
        if not wanted:
            return SearchOutcome.skipped("not_relevant")

        query = await self.build_query(history, message)
        try:
            results = await self.search.search(query, settings.search_results)
        except Exception as e:
            logger.warning(f"Web search failed for {query!r}: {e}")
            return SearchOutcome(status="degraded", reason="search_failed", query=query)

        logger.info(f"Web search for {query!r} returned {len(results)} results")
        return SearchOutcome(
            status="used",
            query=query,
            context=format_search_results(results[:settings.search_results]),
        )

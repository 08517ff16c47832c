"""Abstract LLM provider interface. All providers must implement this."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator, Union

from chathome.services.llm.tiers import Tier


@dataclass
class ContentPart:
    type: str  # "text" | "image"
    text: str = ""
    data_uri: str = ""  # data:<mime>;base64,<payload> for images


MessageContent = Union[str, list[ContentPart]]


@dataclass
class Message:
    role: str  # "user" | "assistant" | "system"
    content: MessageContent

    def text(self) -> str:
        if isinstance(self.content, str):
            return self.content
        return "\n".join(p.text for p in self.content if p.type == "text")


@dataclass
class LLMRequest:
    messages: list[Message]
    tier: Tier = Tier.FAST
    system: str = ""
    purpose: str = "chat"  # chat | classify | search_query | title | rewrite
    temperature: float | None = None  # None keeps the tier's fixed temperature
    max_output_tokens: int | None = None


class BaseLLMProvider(ABC):
    @abstractmethod
    async def complete(self, request: LLMRequest) -> str:
        """Run a non-streaming completion and return the full text.

        Raises UpstreamUnavailable on provider errors or timeouts.
        """
        ...

    @abstractmethod
    async def stream(self, request: LLMRequest) -> AsyncIterator[str]:
        """Stream a completion as text increments.

        Raises UpstreamUnavailable on provider errors or timeouts.
        """
        ...

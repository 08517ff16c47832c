"""LLM provider factory."""

from chathome.core.config import settings
from chathome.services.llm.base import BaseLLMProvider


def get_llm_provider(name: str | None = None) -> BaseLLMProvider:
    """Build the named provider, defaulting to ``settings.llm_provider``.

    Called once per process from the application lifespan; the instance is
    shared by every request.
    """
    provider = (name or settings.llm_provider).strip().lower()
    if provider == "gemini":
        from chathome.services.llm.gemini import GeminiProvider
        return GeminiProvider()
    raise ValueError(f"Unknown LLM provider: {provider}")

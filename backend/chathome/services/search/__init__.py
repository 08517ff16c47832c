"""Web search provider factory."""

from chathome.core.config import settings
from chathome.services.search.base import BaseSearchProvider


def get_search_provider(name: str | None = None) -> BaseSearchProvider:
    """Build the named search provider, defaulting to ``settings.search_provider``."""
    provider = (name or settings.search_provider).strip().lower()
    if provider == "duckduckgo":
        from chathome.services.search.duckduckgo import DuckDuckGoSearchProvider
        return DuckDuckGoSearchProvider()
    if provider == "scrapingdog":
        from chathome.services.search.scrapingdog import ScrapingDogSearchProvider
        return ScrapingDogSearchProvider()
    raise ValueError(f"Unknown search provider: {provider}")

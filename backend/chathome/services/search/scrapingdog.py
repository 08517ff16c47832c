"""ScrapingDog Google search API."""

import httpx

from chathome.core.config import settings
from chathome.core.errors import UpstreamUnavailable
from chathome.services.search.base import BaseSearchProvider, SearchResult


class ScrapingDogSearchProvider(BaseSearchProvider):
    URL = "https://api.scrapingdog.com/google"

    def __init__(self, api_key: str | None = None):
        self.api_key = api_key or settings.scrapingdog_api_key

    async def search(self, query: str, num_results: int = 5) -> list[SearchResult]:
        try:
            async with httpx.AsyncClient(timeout=settings.search_timeout_seconds) as client:
                response = await client.get(
                    self.URL,
                    params={"api_key": self.api_key, "query": query, "results": num_results},
                )
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise UpstreamUnavailable(f"Search API error: {e}") from e

        return [
            SearchResult(
                title=r.get("title", ""),
                link=r.get("link", ""),
                snippet=r.get("snippet", ""),
            )
            for r in (data.get("organic_results") or [])[:num_results]
        ]

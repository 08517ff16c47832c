"""DuckDuckGo HTML search (no API key required)."""

import re

import httpx

from chathome.core.config import settings
from chathome.core.errors import UpstreamUnavailable
from chathome.services.search.base import BaseSearchProvider, SearchResult

_RESULT_RE = re.compile(
    r'<a rel="nofollow" class="result__a" href="([^"]+)"[^>]*>(.*?)</a>.*?'
    r'<a class="result__snippet"[^>]*>(.*?)</a>',
    re.DOTALL,
)


def _strip_tags(html: str) -> str:
    return re.sub(r'<[^>]+>', '', html).strip()


def parse_results(html: str, num: int) -> list[SearchResult]:
    results = []
    for href, title, snippet in _RESULT_RE.findall(html)[:num]:
        results.append(SearchResult(
            title=_strip_tags(title),
            link=href,
            snippet=_strip_tags(snippet),
        ))
    return results


class DuckDuckGoSearchProvider(BaseSearchProvider):
    URL = "https://html.duckduckgo.com/html/"

    async def search(self, query: str, num_results: int = 5) -> list[SearchResult]:
        try:
            async with httpx.AsyncClient(
                follow_redirects=True, timeout=settings.search_timeout_seconds
            ) as client:
                response = await client.get(
                    self.URL,
                    params={"q": query},
                    headers={"User-Agent": "ChatHome/1.0"},
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(f"Search error: {e}") from e

        return parse_results(response.text, num_results)

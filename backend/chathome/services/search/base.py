"""Abstract web search provider interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class SearchResult:
    title: str
    link: str
    snippet: str


class BaseSearchProvider(ABC):
    @abstractmethod
    async def search(self, query: str, num_results: int = 5) -> list[SearchResult]:
        """Run a query. Raises UpstreamUnavailable on provider errors or timeouts."""
        ...


def format_search_results(results: list[SearchResult]) -> str:
    if not results:
        return "No search results found."
    return "\n\n".join(
        f"[{i}] {r.title}\n{r.snippet}\nSource: {r.link}"
        for i, r in enumerate(results, start=1)
    )

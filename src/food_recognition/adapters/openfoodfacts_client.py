"""Open Food Facts search API client."""

from dataclasses import dataclass
from typing import Protocol

import httpx

DEFAULT_USER_AGENT = "food-recognition/0.1 (nutrition lookup)"


class ReferenceClient(Protocol):
    """Interface for nutrition reference database searches."""

    async def search_products(self, query: str, page_size: int = 3) -> object:
        """Search products by free text and return the decoded payload."""


@dataclass
class HttpxOpenFoodFactsClient(ReferenceClient):
    """HTTPX-backed Open Food Facts client."""

    base_url: str
    http_client: httpx.AsyncClient
    timeout_seconds: float = 12.0
    user_agent: str = DEFAULT_USER_AGENT

    @classmethod
    def create(
        cls,
        base_url: str,
        timeout_seconds: float = 12.0,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> "HttpxOpenFoodFactsClient":
        """Create a client with a managed httpx session."""
        return cls(
            base_url=base_url,
            http_client=httpx.AsyncClient(),
            timeout_seconds=timeout_seconds,
            user_agent=user_agent,
        )

    async def search_products(self, query: str, page_size: int = 3) -> object:
        """Run a popularity-sorted simple search."""
        url = f"{self.base_url.rstrip('/')}/cgi/search.pl"
        response = await self.http_client.get(
            url,
            params={
                "search_terms": query.strip(),
                "search_simple": 1,
                "action": "process",
                "json": 1,
                "page_size": page_size,
                "sort_by": "popularity",
            },
            headers={"User-Agent": self.user_agent},
            timeout=self.timeout_seconds,
        )
        response.raise_for_status()
        return response.json()

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()

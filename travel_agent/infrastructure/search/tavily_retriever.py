from typing import Any, Dict, List, Optional

import httpx
import structlog

from travel_agent.domain.collaborators.base import Retriever
from travel_agent.domain.errors import RetrievalError
from travel_agent.domain.models.turn_state import SearchResult

logger = structlog.get_logger(__name__)


class TavilyRetriever(Retriever):
    """Web search through the Tavily search API"""

    def __init__(
        self,
        api_key: str,
        url: str = "https://api.tavily.com/search",
        max_results: int = 5,
        timeout_s: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.url = url
        self.max_results = max_results
        self.http = http_client or httpx.AsyncClient(timeout=timeout_s)

    async def search(self, search_query: str) -> List[SearchResult]:
        if not search_query.strip():
            raise RetrievalError("Empty search query")

        payload = {
            "api_key": self.api_key,
            "query": search_query,
            "max_results": self.max_results,
            "search_depth": "basic",
        }

        try:
            response = await self.http.post(self.url, json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.TimeoutException as e:
            raise RetrievalError(f"Tavily request timed out: {e}", timed_out=True) from e
        except httpx.HTTPStatusError as e:
            raise RetrievalError(f"Tavily HTTP error ({e.response.status_code})") from e
        except (httpx.HTTPError, ValueError) as e:
            raise RetrievalError(f"Tavily request failed: {e}") from e

        results = self.parse_results(body)
        logger.info("Search completed", query=search_query[:80], results=len(results))
        return results

    @staticmethod
    def parse_results(body: Any) -> List[SearchResult]:
        if not isinstance(body, dict) or not isinstance(body.get("results"), list):
            raise RetrievalError("Malformed search response: missing 'results' list")

        results: List[SearchResult] = []
        for item in body["results"]:
            if not isinstance(item, dict):
                raise RetrievalError("Malformed search response: result is not an object")
            entry: Dict[str, Any] = {
                "title": str(item.get("title") or ""),
                "content": str(item.get("content") or ""),
                "url": str(item.get("url") or ""),
                "score": item.get("score") if isinstance(item.get("score"), (int, float)) else None,
            }
            results.append(SearchResult(**entry))
        return results

    async def close(self) -> None:
        await self.http.aclose()

from typing import Any, Dict, List, Optional, get_args
import json
import re

from pydantic import ValidationError
import structlog

from travel_agent.domain.collaborators.base import QueryAnalyzer, ResponseGenerator
from travel_agent.domain.context.context_window import ContextWindowSelector
from travel_agent.domain.errors import AnalysisError, GenerationError
from travel_agent.domain.models.conversation import Message
from travel_agent.domain.models.turn_state import AnalysisResult, Category, SearchResult
from travel_agent.domain.prompts.travel_assistant import (
    CONTEXT_HEADER,
    DIRECT_RESPONSE_PROMPT,
    QUERY_ANALYSIS_PROMPT,
    RESPONSE_GENERATION_PROMPT,
    TRAVEL_ASSISTANT_SYSTEM_PROMPT,
)
from .gemini_client import GeminiClient

logger = structlog.get_logger(__name__)

VALID_CATEGORIES = frozenset(get_args(Category))
_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


def build_context_prompt(history: List[Message], limit: int = 6) -> str:
    """Render the last `limit` messages as a plain-text transcript"""

    recent = ContextWindowSelector.recent(history, limit)
    if not recent:
        return ""

    lines = []
    for msg in recent:
        speaker = "User" if msg.role == "user" else "Assistant"
        lines.append(f"{speaker}: {msg.content}")

    return f"{CONTEXT_HEADER}\n" + "\n".join(lines) + "\n\n---"


def format_search_results(results: Optional[List[SearchResult]], limit: int = 5) -> str:
    if not results:
        return "No search results available."

    blocks = []
    for index, result in enumerate(results[:limit], start=1):
        blocks.append(
            f"Result {index}:\n"
            f"Title: {result.title}\n"
            f"Content: {result.content}\n"
            f"URL: {result.url}\n"
            f"---"
        )
    return "\n\n".join(blocks)


class GeminiQueryAnalyzer(QueryAnalyzer):
    """Classifies travel queries with Gemini in JSON output mode"""

    def __init__(self, client: GeminiClient, history_limit: int = 6):
        self.client = client
        self.history_limit = history_limit

    async def analyze(self, query: str, context_window: List[Message]) -> AnalysisResult:
        context_prompt = build_context_prompt(context_window, self.history_limit)
        prompt = f"{context_prompt}\n\n{QUERY_ANALYSIS_PROMPT.format(query=query)}".strip()

        content = await self.client.generate_text(prompt, error_type=AnalysisError, json_output=True)
        analysis = self.parse_analysis(content)

        logger.info("Query analyzed",
                    category=analysis.category,
                    location=analysis.location,
                    needs_retrieval=analysis.needs_retrieval)
        return analysis

    @staticmethod
    def parse_analysis(content: str) -> AnalysisResult:
        """
        Validate the model's JSON. Only a surrounding markdown fence is
        tolerated; anything else malformed is an AnalysisError.
        """
        text = content.strip()
        fenced = _FENCE.match(text)
        if fenced:
            text = fenced.group(1)

        try:
            data: Any = json.loads(text)
        except json.JSONDecodeError as e:
            raise AnalysisError(f"Invalid query analysis: {e.msg}") from e

        if not isinstance(data, dict):
            raise AnalysisError("Invalid query analysis: expected a JSON object")

        if data.get("category") == "non_travel" or data.get("intent") == "not_travel_related":
            raise AnalysisError("Query is not travel-related", off_topic=True)
        category = data.get("category")
        if not isinstance(category, str) or category not in VALID_CATEGORIES:
            raise AnalysisError(f"Query is not travel-related (category={category!r})", off_topic=True)

        payload: Dict[str, Any] = dict(data)
        if "needsRetrieval" not in payload and "needs_retrieval" not in payload:
            payload["needsRetrieval"] = bool(str(payload.get("searchQuery") or "").strip())

        try:
            return AnalysisResult.model_validate(payload)
        except ValidationError as e:
            raise AnalysisError(f"Invalid query analysis: {e.error_count()} invalid field(s)") from e

    async def close(self) -> None:
        await self.client.close()


class GeminiResponseGenerator(ResponseGenerator):
    """Writes the reply, grounded on search results when there are any"""

    def __init__(self, client: GeminiClient, history_limit: int = 6, max_results: int = 5):
        self.client = client
        self.history_limit = history_limit
        self.max_results = max_results

    def build_prompt(
        self,
        query: str,
        context_window: List[Message],
        search_results: Optional[List[SearchResult]] = None,
    ) -> str:
        context_prompt = build_context_prompt(context_window, self.history_limit)

        if search_results:
            task = RESPONSE_GENERATION_PROMPT.format(
                original_query=query,
                search_results=format_search_results(search_results, self.max_results),
            )
        else:
            task = DIRECT_RESPONSE_PROMPT.format(query=query)

        sections = [TRAVEL_ASSISTANT_SYSTEM_PROMPT, context_prompt, task]
        return "\n\n".join(section for section in sections if section)

    async def generate(
        self,
        query: str,
        context_window: List[Message],
        search_results: Optional[List[SearchResult]] = None,
    ) -> str:
        prompt = self.build_prompt(query, context_window, search_results)
        text = await self.client.generate_text(prompt, error_type=GenerationError)
        logger.info("Response drafted", chars=len(text), grounded=bool(search_results))
        return text.strip()

    async def close(self) -> None:
        await self.client.close()

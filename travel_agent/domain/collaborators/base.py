from abc import ABC, abstractmethod
from typing import List, Optional

from travel_agent.domain.models.conversation import Message
from travel_agent.domain.models.turn_state import (
    AnalysisResult, FollowUpResult, SearchResult, TurnState
)


class Collaborator(ABC):
    """Base class for external capabilities the turn router calls"""

    name = "collaborator"

    async def close(self) -> None:
        """Release network resources"""


class QueryAnalyzer(Collaborator):
    name = "analyzer"

    @abstractmethod
    async def analyze(self, query: str, context_window: List[Message]) -> AnalysisResult:
        """Classify the query. Raises AnalysisError, including for off-topic queries."""
        pass


class Retriever(Collaborator):
    name = "retriever"

    @abstractmethod
    async def search(self, search_query: str) -> List[SearchResult]:
        """Search for documents. Raises RetrievalError."""
        pass


class ResponseGenerator(Collaborator):
    name = "generator"

    @abstractmethod
    async def generate(
        self,
        query: str,
        context_window: List[Message],
        search_results: Optional[List[SearchResult]] = None,
    ) -> str:
        """Compose the reply. Raises GenerationError, also for empty output."""
        pass


class FollowUpChecker(Collaborator):
    name = "follow_up"

    @abstractmethod
    async def check(self, state: TurnState) -> FollowUpResult:
        """Decide whether the user should be asked for more detail. Raises FollowUpError."""
        pass

import asyncio
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest

from travel_agent.domain.collaborators.base import (
    FollowUpChecker, QueryAnalyzer, ResponseGenerator, Retriever
)
from travel_agent.domain.collaborators.follow_up import HeuristicFollowUpChecker
from travel_agent.domain.context.context_window import ContextWindowSelector
from travel_agent.domain.context.memory.session_store import InMemorySessionStore, SessionStore
from travel_agent.domain.errors import StoreUnavailable
from travel_agent.domain.models.conversation import Message
from travel_agent.domain.models.turn_state import (
    AnalysisResult, FollowUpResult, SearchResult, TurnState
)
from travel_agent.domain.orchestration.core.travel_assistant import TravelAssistant
from travel_agent.domain.orchestration.core.turn_router import TurnRouter


APOLOGY = "Sorry, something went wrong on our side."


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class FakeAnalyzer(QueryAnalyzer):
    def __init__(self, result: Optional[AnalysisResult] = None, error: Optional[Exception] = None, delay: float = 0):
        self.result = result
        self.error = error
        self.delay = delay
        self.calls = 0
        self.seen_history: List[Message] = []

    async def analyze(self, query, context_window):
        self.calls += 1
        self.seen_history = list(context_window)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.result


class FakeRetriever(Retriever):
    def __init__(self, results: Optional[List[SearchResult]] = None, error: Optional[Exception] = None):
        self.results = results if results is not None else []
        self.error = error
        self.calls = 0
        self.queries: List[str] = []

    async def search(self, search_query):
        self.calls += 1
        self.queries.append(search_query)
        if self.error:
            raise self.error
        return list(self.results)


class FakeGenerator(ResponseGenerator):
    def __init__(self, text: str = "Here are some ideas.", error: Optional[Exception] = None, delay: float = 0):
        self.text = text
        self.error = error
        self.delay = delay
        self.calls = 0
        self.seen_results = None

    async def generate(self, query, context_window, search_results=None):
        self.calls += 1
        self.seen_results = search_results
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.text


class FakeFollowUp(FollowUpChecker):
    def __init__(self, needs_more_info: bool = False, error: Optional[Exception] = None):
        self.needs_more_info = needs_more_info
        self.error = error
        self.calls = 0

    async def check(self, state: TurnState):
        self.calls += 1
        if self.error:
            raise self.error
        return FollowUpResult(needs_more_info=self.needs_more_info)


class DownSessionStore(SessionStore):
    """Store whose backend is unreachable"""

    backend_name = "down"

    def __init__(self):
        super().__init__()
        self.attempts = 0

    async def _fail(self, *args, **kwargs):
        self.attempts += 1
        raise StoreUnavailable("connection refused")

    _append = _fail
    _read = _fail
    _delete = _fail
    _refresh_ttl = _fail
    _ping = _fail


def food_analysis(**overrides) -> AnalysisResult:
    data = dict(
        category="food",
        location="Tokyo",
        intent="restaurant_recommendation",
        keywords=["restaurants", "Tokyo", "best"],
        search_query="best restaurants in Tokyo",
        needs_retrieval=True,
    )
    data.update(overrides)
    return AnalysisResult(**data)


def search_results(count: int) -> List[SearchResult]:
    return [
        SearchResult(title=f"Place {i}", content=f"Great spot number {i}", url=f"https://example.com/{i}")
        for i in range(count)
    ]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock) -> InMemorySessionStore:
    return InMemorySessionStore(max_messages=20, ttl_seconds=3600, clock=clock)


@pytest.fixture
def analyzer() -> FakeAnalyzer:
    return FakeAnalyzer(result=food_analysis())


@pytest.fixture
def retriever() -> FakeRetriever:
    return FakeRetriever(results=search_results(3))


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator(text="Try Sukiyabashi Jiro and Ichiran Shibuya.")


@pytest.fixture
def follow_up() -> HeuristicFollowUpChecker:
    return HeuristicFollowUpChecker()


@pytest.fixture
def make_router(analyzer, retriever, generator, follow_up):
    def _make(**overrides) -> TurnRouter:
        kwargs = dict(
            analyzer=analyzer,
            retriever=retriever,
            generator=generator,
            follow_up_checker=follow_up,
            timeout_s=5.0,
            max_search_results=5,
        )
        kwargs.update(overrides)
        return TurnRouter(**kwargs)

    return _make


@pytest.fixture
def make_assistant(make_router, store):
    def _make(router: Optional[TurnRouter] = None, session_store: Optional[SessionStore] = None, **kwargs) -> TravelAssistant:
        kwargs.setdefault("apology_message", APOLOGY)
        kwargs.setdefault("context_window", ContextWindowSelector(10))
        return TravelAssistant(
            router=router or make_router(),
            store=session_store or store,
            **kwargs
        )

    return _make

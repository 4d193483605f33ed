"""Builds a ready-to-use TravelAssistant from settings."""

import structlog

from travel_agent.domain.collaborators.follow_up import HeuristicFollowUpChecker
from travel_agent.domain.context.context_window import ContextWindowSelector
from travel_agent.domain.context.memory.session_store import InMemorySessionStore, SessionStore
from travel_agent.domain.orchestration.core.travel_assistant import TravelAssistant
from travel_agent.domain.orchestration.core.turn_router import TurnRouter
from travel_agent.infrastructure.config.settings import Settings
from travel_agent.infrastructure.llm.gemini_agents import GeminiQueryAnalyzer, GeminiResponseGenerator
from travel_agent.infrastructure.llm.gemini_client import GeminiClient
from travel_agent.infrastructure.search.tavily_retriever import TavilyRetriever
from travel_agent.infrastructure.storage.redis_session_store import RedisSessionStore

logger = structlog.get_logger(__name__)


def build_session_store(settings: Settings) -> SessionStore:
    if settings.store_backend == "redis":
        return RedisSessionStore.from_url(
            settings.redis_url,
            max_messages=settings.max_messages_per_session,
            ttl_seconds=settings.session_ttl,
        )
    return InMemorySessionStore(
        max_messages=settings.max_messages_per_session,
        ttl_seconds=settings.session_ttl,
    )


def build_assistant(settings: Settings) -> TravelAssistant:
    """Wire collaborators, router and store. Raises ConfigError on missing credentials."""

    settings.validate_required()

    gemini = GeminiClient(
        api_key=settings.gemini_api_key,
        model=settings.gemini_model,
        base_url=settings.gemini_base_url,
        temperature=settings.temperature,
        max_output_tokens=settings.max_output_tokens,
        timeout_s=settings.collaborator_timeout_s,
    )

    router = TurnRouter(
        analyzer=GeminiQueryAnalyzer(gemini, history_limit=settings.prompt_history_size),
        retriever=TavilyRetriever(
            api_key=settings.tavily_api_key,
            url=settings.tavily_url,
            max_results=settings.max_search_results,
            timeout_s=settings.collaborator_timeout_s,
        ),
        generator=GeminiResponseGenerator(
            gemini,
            history_limit=settings.prompt_history_size,
            max_results=settings.max_search_results,
        ),
        follow_up_checker=HeuristicFollowUpChecker(),
        timeout_s=settings.collaborator_timeout_s,
        max_search_results=settings.max_search_results,
    )

    logger.info("Assistant wired",
                model=settings.gemini_model,
                store_backend=settings.store_backend)

    return TravelAssistant(
        router=router,
        store=build_session_store(settings),
        context_window=ContextWindowSelector(settings.context_window_size),
        apology_message=settings.apology_message,
        empty_message_reply=settings.empty_message_reply,
        serialize_session_turns=settings.serialize_session_turns,
    )

from typing import Dict, List, Optional
from contextlib import asynccontextmanager
import asyncio
import secrets
import time
import structlog

from travel_agent.domain.collaborators.base import Collaborator
from travel_agent.domain.context.context_window import ContextWindowSelector
from travel_agent.domain.context.memory.session_store import SessionStore
from travel_agent.domain.models.conversation import HealthStatus, Message, SessionSummary
from travel_agent.domain.models.turn_result import Readiness, TurnMetadata, TurnResult
from travel_agent.domain.models.turn_state import Stage, TurnError, TurnState
from travel_agent.infrastructure.observability.logging import metrics
from .turn_router import TurnRouter

logger = structlog.get_logger(__name__)

DEFAULT_APOLOGY = "Sorry, I ran into an unexpected problem. Please try again."
DEFAULT_EMPTY_REPLY = "Please provide a message."


def new_session_id() -> str:
    """Wall-clock milliseconds plus a random suffix"""
    return f"session_{int(time.time() * 1000)}_{secrets.token_hex(5)}"


class TravelAssistant:
    """
    Per-session coordinator around the turn router.

    Construct it, then `await ensure_ready()`. `handle_turn` calls the ready
    check itself, so a turn can never start before the store has been probed.
    """

    def __init__(
        self,
        router: TurnRouter,
        store: SessionStore,
        context_window: Optional[ContextWindowSelector] = None,
        apology_message: str = DEFAULT_APOLOGY,
        empty_message_reply: str = DEFAULT_EMPTY_REPLY,
        serialize_session_turns: bool = True,
    ):
        self.router = router
        self.store = store
        self.context_window = context_window or ContextWindowSelector()
        self.apology_message = apology_message
        self.empty_message_reply = empty_message_reply
        self.serialize_session_turns = serialize_session_turns

        self._readiness: Optional[Readiness] = None
        self._ready_lock = asyncio.Lock()
        # session_id -> [lock, holders]
        self._session_locks: Dict[str, list] = {}

    # -------------------------
    # lifecycle
    # -------------------------
    async def ensure_ready(self) -> Readiness:
        """Probe the session store once; later calls return the cached result"""

        if self._readiness is not None:
            return self._readiness

        async with self._ready_lock:
            if self._readiness is None:
                memory_enabled = await self.store.ping()
                detail = None
                if not memory_enabled:
                    detail = str(self.store.last_failure) if self.store.last_failure else "ping failed"
                    logger.warning("Session memory not available, running stateless",
                                   backend=self.store.backend_name, detail=detail)

                self._readiness = Readiness(
                    ready=True,
                    memory_enabled=memory_enabled,
                    backend=self.store.backend_name,
                    detail=detail,
                )
                logger.info("Travel assistant ready",
                            memory_enabled=memory_enabled,
                            backend=self.store.backend_name)

        return self._readiness

    @property
    def is_ready(self) -> bool:
        return self._readiness is not None

    @property
    def memory_enabled(self) -> bool:
        return bool(self._readiness and self._readiness.memory_enabled)

    async def close(self) -> None:
        """Close the store and collaborator clients"""

        await self.store.close()
        collaborators: List[Collaborator] = [
            self.router.analyzer,
            self.router.retriever,
            self.router.generator,
            self.router.follow_up_checker,
        ]
        for collaborator in collaborators:
            await collaborator.close()
        self._readiness = None

    # -------------------------
    # turns
    # -------------------------
    async def handle_turn(self, user_text: str, session_id: Optional[str] = None) -> TurnResult:
        """Run one user message through the router and persist the exchange"""

        readiness = await self.ensure_ready()

        if not user_text or not user_text.strip():
            logger.info("Rejected empty message", session_id=session_id)
            return TurnResult(
                response=self.empty_message_reply,
                session_id=session_id,
                metadata=TurnMetadata(memory_enabled=readiness.memory_enabled, rejected=True),
            )

        session_id = session_id or new_session_id()
        metrics.increment_counter("turns")

        with structlog.contextvars.bound_contextvars(session_id=session_id):
            async with self._session_turn(session_id):
                return await self._process_turn(user_text, session_id, readiness.memory_enabled)

    async def _process_turn(self, user_text: str, session_id: str, memory_enabled: bool) -> TurnResult:
        logger.info("Processing message", session_id=session_id, length=len(user_text))

        history: List[Message] = []
        if memory_enabled:
            history = await self.context_window.select(self.store, session_id)

        state = TurnState(session_id=session_id, query=user_text, history=history)

        try:
            final = await self.router.run(state)
        except Exception as e:
            logger.exception("Turn execution failed", session_id=session_id)
            return await self._finish_with_apology(
                session_id, user_text, memory_enabled,
                error=f"{type(e).__name__}: {e}", error_kind="internal",
            )

        if final.response is None:
            turn_error = final.error or TurnError(
                stage=Stage.DONE, kind="internal", message="Turn finished without a response"
            )
            return await self._finish_with_apology(
                session_id, user_text, memory_enabled,
                error=turn_error.message, error_kind=turn_error.error_kind,
            )

        metadata = TurnMetadata(
            category=final.analysis.category if final.analysis else None,
            location=final.analysis.location if final.analysis else None,
            search_results_count=len(final.retrieval or []),
            needs_more_info=final.needs_follow_up,
            memory_enabled=memory_enabled,
            error=final.error.message if final.error else None,
            error_kind=final.error.error_kind if final.error else None,
        )

        if memory_enabled:
            await self._persist_exchange(session_id, user_text, final.response, metadata)

        logger.info("Response generated successfully",
                    session_id=session_id,
                    category=metadata.category,
                    search_results=metadata.search_results_count)

        return TurnResult(response=final.response, session_id=session_id, metadata=metadata)

    async def _finish_with_apology(
        self,
        session_id: str,
        user_text: str,
        memory_enabled: bool,
        error: str,
        error_kind: str,
    ) -> TurnResult:
        metadata = TurnMetadata(memory_enabled=memory_enabled, error=error, error_kind=error_kind)

        if memory_enabled:
            await self._persist_exchange(session_id, user_text, self.apology_message, metadata)

        return TurnResult(response=self.apology_message, session_id=session_id, metadata=metadata)

    async def _persist_exchange(
        self,
        session_id: str,
        user_text: str,
        assistant_text: str,
        metadata: TurnMetadata,
    ) -> None:
        """User message first, then the assistant message, then the TTL refresh"""

        user_saved = await self.store.append(session_id, Message(role="user", content=user_text))
        if not user_saved:
            logger.warning("Conversation not persisted", session_id=session_id)
            return

        await self.store.append(
            session_id,
            Message(role="assistant", content=assistant_text, metadata=metadata.to_message_metadata()),
        )
        await self.store.refresh_ttl(session_id)

    @asynccontextmanager
    async def _session_turn(self, session_id: str):
        """Serialise turns of one session when enabled"""

        if not self.serialize_session_turns:
            yield
            return

        slot = self._session_locks.setdefault(session_id, [asyncio.Lock(), 0])
        slot[1] += 1
        try:
            async with slot[0]:
                yield
        finally:
            slot[1] -= 1
            if slot[1] == 0:
                self._session_locks.pop(session_id, None)

    # -------------------------
    # session pass-throughs
    # -------------------------
    async def get_history(self, session_id: Optional[str]) -> List[Message]:
        readiness = await self.ensure_ready()
        if not session_id or not readiness.memory_enabled:
            return []
        return await self.store.read_all(session_id)

    async def clear_history(self, session_id: Optional[str]) -> bool:
        readiness = await self.ensure_ready()
        if not session_id:
            logger.warning("Cannot clear history: no session ID provided")
            return False
        if not readiness.memory_enabled:
            logger.warning("Cannot clear history: memory not initialized", session_id=session_id)
            return False

        result = await self.store.delete(session_id)
        if result.ok:
            logger.info("History cleared", session_id=session_id)
        else:
            logger.warning("Failed to clear history", session_id=session_id)
        return result.ok

    async def get_summary(self, session_id: Optional[str]) -> SessionSummary:
        readiness = await self.ensure_ready()
        if not session_id:
            return SessionSummary(
                session_id="unknown",
                memory_enabled=readiness.memory_enabled,
                error="No session ID provided",
            )
        if not readiness.memory_enabled:
            return SessionSummary(session_id=session_id, memory_enabled=False, error="Memory not initialized")

        history = await self.store.read_all(session_id)
        summary = SessionSummary.from_history(session_id, history)
        if not self.store.available:
            summary.error = str(self.store.last_failure)
        return summary

    async def health_check(self) -> HealthStatus:
        """Live probe of the session store"""

        readiness = await self.ensure_ready()
        if not readiness.memory_enabled:
            return HealthStatus(status="disabled", message="Memory not initialized", backend=readiness.backend)

        if await self.store.ping():
            return HealthStatus(
                status="healthy",
                message="Session store connection is active",
                backend=readiness.backend,
            )
        return HealthStatus(
            status="unhealthy",
            message=str(self.store.last_failure or "ping failed"),
            backend=readiness.backend,
        )


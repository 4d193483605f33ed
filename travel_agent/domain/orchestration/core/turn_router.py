from typing import Any, Awaitable, Callable, Dict, Tuple, Type, Union
from langgraph.graph import StateGraph, END
import asyncio
import time
import structlog

from travel_agent.domain.collaborators.base import (
    QueryAnalyzer, Retriever, ResponseGenerator, FollowUpChecker
)
from travel_agent.domain.errors import (
    AnalysisError, CollaboratorError, FollowUpError, GenerationError, RetrievalError, TurnStateViolation
)
from travel_agent.domain.models.turn_state import Stage, TurnError, TurnState
from travel_agent.infrastructure.observability.logging import agent_logger, metrics

logger = structlog.get_logger(__name__)


StageHandler = Callable[[TurnState], Awaitable[Dict[str, Any]]]

# Successors reachable from each stage
TRANSITIONS: Dict[Stage, Tuple[Stage, ...]] = {
    Stage.ANALYZE: (Stage.DECIDE_RETRIEVAL, Stage.ERROR),
    Stage.DECIDE_RETRIEVAL: (Stage.RETRIEVE, Stage.GENERATE, Stage.ERROR, Stage.DONE),
    Stage.RETRIEVE: (Stage.GENERATE, Stage.ERROR),
    Stage.GENERATE: (Stage.CHECK_FOLLOW_UP, Stage.ERROR),
    Stage.CHECK_FOLLOW_UP: (Stage.DONE, Stage.ERROR),
    Stage.ERROR: (Stage.DONE,),
}

# Error type recorded when a stage fails without a typed collaborator error
STAGE_ERRORS: Dict[Stage, Type[CollaboratorError]] = {
    Stage.ANALYZE: AnalysisError,
    Stage.DECIDE_RETRIEVAL: AnalysisError,
    Stage.RETRIEVE: RetrievalError,
    Stage.GENERATE: GenerationError,
    Stage.CHECK_FOLLOW_UP: FollowUpError,
}


def next_stage(current: Stage, state: TurnState) -> Stage:
    """
    Total transition function of the turn router.

    `error` is checked first at every junction. The single exception is
    DECIDE_RETRIEVAL, which finishes the turn instead of failing it when a
    response has already been drafted.
    """
    if current is Stage.ANALYZE:
        return Stage.ERROR if state.error else Stage.DECIDE_RETRIEVAL

    if current is Stage.DECIDE_RETRIEVAL:
        if state.error:
            return Stage.DONE if state.response is not None else Stage.ERROR
        return Stage.RETRIEVE if state.needs_retrieval else Stage.GENERATE

    if current is Stage.RETRIEVE:
        return Stage.ERROR if state.error else Stage.GENERATE

    if current is Stage.GENERATE:
        return Stage.ERROR if state.error else Stage.CHECK_FOLLOW_UP

    if current is Stage.CHECK_FOLLOW_UP:
        return Stage.ERROR if state.error else Stage.DONE

    if current is Stage.ERROR:
        return Stage.DONE

    raise ValueError(f"No transition out of terminal stage {current.value}")


def _node_name(stage: Stage) -> str:
    return END if stage is Stage.DONE else stage.value


def _as_state(value: Union[TurnState, Dict[str, Any]]) -> TurnState:
    if isinstance(value, TurnState):
        return value
    return TurnState.model_validate(dict(value))


class TurnRouter:
    """Drives one turn through the stage graph using LangGraph"""

    def __init__(
        self,
        analyzer: QueryAnalyzer,
        retriever: Retriever,
        generator: ResponseGenerator,
        follow_up_checker: FollowUpChecker,
        timeout_s: float = 30.0,
        max_search_results: int = 5,
    ):
        self.analyzer = analyzer
        self.retriever = retriever
        self.generator = generator
        self.follow_up_checker = follow_up_checker
        self.timeout_s = timeout_s
        self.max_search_results = max_search_results
        self.workflow = self._create_workflow()

    def _create_workflow(self):
        """Create the turn workflow graph"""

        workflow = StateGraph(TurnState)

        workflow.add_node(Stage.ANALYZE.value, self.analyze_node)
        workflow.add_node(Stage.DECIDE_RETRIEVAL.value, self.decide_retrieval_node)
        workflow.add_node(Stage.RETRIEVE.value, self.retrieve_node)
        workflow.add_node(Stage.GENERATE.value, self.generate_node)
        workflow.add_node(Stage.CHECK_FOLLOW_UP.value, self.check_follow_up_node)
        workflow.add_node(Stage.ERROR.value, self.error_handler_node)

        workflow.set_entry_point(Stage.ANALYZE.value)

        for stage, successors in TRANSITIONS.items():
            if stage is Stage.ERROR:
                continue
            workflow.add_conditional_edges(
                stage.value,
                self._router_for(stage),
                {successor: _node_name(successor) for successor in successors}
            )

        # Error handling always ends the turn
        workflow.add_edge(Stage.ERROR.value, END)

        return workflow.compile()

    async def run(self, state: TurnState) -> TurnState:
        """Execute the graph until DONE and return the final turn state"""

        result = await self.workflow.ainvoke(state)
        return _as_state(result)

    def _router_for(self, current: Stage) -> Callable[[TurnState], Stage]:
        def route(state: TurnState) -> Stage:
            state = _as_state(state)
            target = next_stage(current, state)
            agent_logger.log_workflow_transition(
                session_id=state.session_id,
                from_node=current.value,
                to_node=target.value,
                condition="error" if state.error else None,
                state_summary=state.get_state_summary()
            )
            return target

        return route

    # -------------------------
    # stage nodes
    # -------------------------
    async def analyze_node(self, state: TurnState) -> Dict[str, Any]:
        return await self._run_stage(Stage.ANALYZE, state, self._analyze)

    async def decide_retrieval_node(self, state: TurnState) -> Dict[str, Any]:
        return await self._run_stage(Stage.DECIDE_RETRIEVAL, state, self._decide_retrieval)

    async def retrieve_node(self, state: TurnState) -> Dict[str, Any]:
        return await self._run_stage(Stage.RETRIEVE, state, self._retrieve)

    async def generate_node(self, state: TurnState) -> Dict[str, Any]:
        return await self._run_stage(Stage.GENERATE, state, self._generate)

    async def check_follow_up_node(self, state: TurnState) -> Dict[str, Any]:
        return await self._run_stage(Stage.CHECK_FOLLOW_UP, state, self._check_follow_up)

    async def error_handler_node(self, state: TurnState) -> Dict[str, Any]:
        """Terminal error handling. Never fails and writes nothing."""

        state = _as_state(state)
        error = state.error
        logger.error("Handling turn error",
                     session_id=state.session_id,
                     stage=error.stage.value if error else None,
                     kind=error.error_kind if error else None,
                     error=error.message if error else None,
                     has_response=state.response is not None)

        metrics.increment_counter("turn_errors", tags={"kind": error.error_kind if error else "unknown"})
        return {}

    # -------------------------
    # stage bodies
    # -------------------------
    async def _analyze(self, state: TurnState) -> Dict[str, Any]:
        analysis = await self.analyzer.analyze(state.query, list(state.history))
        if analysis is None:
            raise AnalysisError("Analyzer returned no result")
        return {"analysis": analysis}

    async def _decide_retrieval(self, state: TurnState) -> Dict[str, Any]:
        analysis = state.analysis
        if analysis is None or not analysis.intent.strip():
            raise AnalysisError("No actionable intent extracted")
        if analysis.needs_retrieval and not analysis.search_query.strip():
            raise AnalysisError("Retrieval requested without a search query")
        return {"needs_retrieval": analysis.needs_retrieval}

    async def _retrieve(self, state: TurnState) -> Dict[str, Any]:
        search_query = state.analysis.search_query if state.analysis else ""
        results = await self.retriever.search(search_query)
        if not isinstance(results, list):
            raise RetrievalError(f"Retriever returned {type(results).__name__}, expected list")
        return {"retrieval": results[:self.max_search_results]}

    async def _generate(self, state: TurnState) -> Dict[str, Any]:
        text = await self.generator.generate(state.query, list(state.history), state.retrieval)
        if not text or not text.strip():
            raise GenerationError("Generator returned empty output")
        return {"response": text}

    async def _check_follow_up(self, state: TurnState) -> Dict[str, Any]:
        result = await self.follow_up_checker.check(state)
        return {"needs_follow_up": result.needs_more_info}

    async def _run_stage(self, stage: Stage, state: TurnState, handler: StageHandler) -> Dict[str, Any]:
        """
        Run one stage body under the collaborator timeout.

        Any failure is captured as `error`, including a stage body writing
        fields it does not own. Nothing raised inside a stage leaves the router.
        """
        state = _as_state(state)
        error_type = STAGE_ERRORS[stage]
        started = time.perf_counter()

        try:
            update = await asyncio.wait_for(handler(state), timeout=self.timeout_s)
            state.check_update(stage, update)
        except asyncio.TimeoutError:
            failure = error_type(f"{stage.value} timed out after {self.timeout_s}s", timed_out=True)
            update = {"error": TurnError.from_exception(stage, failure)}
        except CollaboratorError as e:
            update = {"error": TurnError.from_exception(stage, e)}
        except TurnStateViolation as e:
            logger.error("Stage broke turn state ownership",
                         stage=stage.value, session_id=state.session_id, error=str(e))
            failure = error_type(f"Turn state violation: {e}")
            update = {"error": TurnError.from_exception(stage, failure)}
        except Exception as e:
            logger.exception("Unexpected stage failure", stage=stage.value, session_id=state.session_id)
            failure = error_type(f"Unexpected {type(e).__name__}: {e}")
            update = {"error": TurnError.from_exception(stage, failure)}

        duration_ms = (time.perf_counter() - started) * 1000
        metrics.record_latency(f"stage.{stage.value}", duration_ms)

        error = update.get("error")
        agent_logger.log_stage_event(
            stage=stage.value,
            session_id=state.session_id,
            duration_ms=round(duration_ms, 2),
            success=error is None,
            error=error.message if error else None
        )

        return update

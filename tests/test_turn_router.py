import pytest

from travel_agent.domain.errors import (
    AnalysisError, FollowUpError, GenerationError, RetrievalError, TurnStateViolation
)
from travel_agent.domain.models.turn_state import Stage, TurnError, TurnState
from travel_agent.domain.orchestration.core.turn_router import next_stage

from .conftest import FakeAnalyzer, FakeFollowUp, FakeGenerator, FakeRetriever, food_analysis, search_results


def new_state(query: str = "Best restaurants in Tokyo?") -> TurnState:
    return TurnState(session_id="s1", query=query)


def failed(stage: Stage, kind: str = "analysis") -> TurnError:
    return TurnError(stage=stage, kind=kind, message="boom")


class TestNextStage:
    def test_error_dominates_after_analysis(self):
        state = new_state().model_copy(update={"error": failed(Stage.ANALYZE)})
        assert next_stage(Stage.ANALYZE, state) is Stage.ERROR
        assert next_stage(Stage.ANALYZE, new_state()) is Stage.DECIDE_RETRIEVAL

    def test_decide_retrieval_branches_on_flag(self):
        assert next_stage(Stage.DECIDE_RETRIEVAL, new_state()) is Stage.GENERATE

        state = new_state().model_copy(update={"needs_retrieval": True})
        assert next_stage(Stage.DECIDE_RETRIEVAL, state) is Stage.RETRIEVE

    def test_decide_retrieval_finishes_when_response_already_drafted(self):
        state = new_state().model_copy(update={
            "error": failed(Stage.DECIDE_RETRIEVAL),
            "response": "Already answered",
        })
        assert next_stage(Stage.DECIDE_RETRIEVAL, state) is Stage.DONE

        state = new_state().model_copy(update={"error": failed(Stage.DECIDE_RETRIEVAL)})
        assert next_stage(Stage.DECIDE_RETRIEVAL, state) is Stage.ERROR

    def test_error_always_leads_to_done(self):
        state = new_state().model_copy(update={"error": failed(Stage.GENERATE, "generation")})
        assert next_stage(Stage.GENERATE, state) is Stage.ERROR
        assert next_stage(Stage.ERROR, state) is Stage.DONE

    def test_done_is_terminal(self):
        with pytest.raises(ValueError):
            next_stage(Stage.DONE, new_state())


class TestTurnStateOwnership:
    def test_stage_cannot_write_foreign_field(self):
        with pytest.raises(TurnStateViolation):
            new_state().check_update(Stage.RETRIEVE, {"response": "sneaky"})

    def test_set_once_field_cannot_be_overwritten(self):
        state = new_state().model_copy(update={"response": "first"})
        with pytest.raises(TurnStateViolation):
            state.check_update(Stage.GENERATE, {"response": "second"})

    def test_any_stage_may_record_error(self):
        new_state().check_update(Stage.CHECK_FOLLOW_UP, {"error": failed(Stage.CHECK_FOLLOW_UP, "follow_up")})


@pytest.mark.asyncio
async def test_turn_with_retrieval_runs_every_stage(make_router, analyzer, retriever, generator):
    router = make_router()

    final = await router.run(new_state())

    assert final.error is None
    assert final.analysis.category == "food"
    assert final.needs_retrieval is True
    assert len(final.retrieval) == 3
    assert final.response == generator.text
    assert retriever.queries == ["best restaurants in Tokyo"]
    assert generator.seen_results == final.retrieval


@pytest.mark.asyncio
async def test_retriever_not_called_when_retrieval_not_needed(make_router, retriever, generator):
    analyzer = FakeAnalyzer(result=food_analysis(search_query="", needs_retrieval=False))
    router = make_router(analyzer=analyzer)

    final = await router.run(new_state())

    assert retriever.calls == 0
    assert final.retrieval is None
    assert final.response == generator.text
    assert generator.seen_results is None


@pytest.mark.asyncio
async def test_retrieval_results_truncated_to_limit(make_router):
    router = make_router(retriever=FakeRetriever(results=search_results(8)))

    final = await router.run(new_state())

    assert len(final.retrieval) == 5
    assert [r.title for r in final.retrieval] == [f"Place {i}" for i in range(5)]


@pytest.mark.asyncio
async def test_analysis_failure_skips_downstream_stages(make_router, retriever, generator):
    router = make_router(analyzer=FakeAnalyzer(error=AnalysisError("bad json")))

    final = await router.run(new_state())

    assert final.response is None
    assert final.error.stage is Stage.ANALYZE
    assert final.error.kind == "analysis"
    assert retriever.calls == 0
    assert generator.calls == 0


@pytest.mark.asyncio
async def test_off_topic_query_is_reported_as_analysis_error(make_router):
    router = make_router(analyzer=FakeAnalyzer(error=AnalysisError("not about travel", off_topic=True)))

    final = await router.run(new_state("What is the capital of physics?"))

    assert final.error.off_topic is True
    assert final.error.error_kind == "analysis"


@pytest.mark.asyncio
async def test_missing_search_query_fails_retrieval_decision(make_router, retriever):
    analyzer = FakeAnalyzer(result=food_analysis(search_query="  ", needs_retrieval=True))
    router = make_router(analyzer=analyzer)

    final = await router.run(new_state())

    assert final.error.stage is Stage.DECIDE_RETRIEVAL
    assert retriever.calls == 0


@pytest.mark.asyncio
async def test_slow_collaborator_times_out(make_router, generator):
    router = make_router(analyzer=FakeAnalyzer(result=food_analysis(), delay=0.5), timeout_s=0.05)

    final = await router.run(new_state())

    assert final.error.stage is Stage.ANALYZE
    assert final.error.timed_out is True
    assert final.error.error_kind == "timeout"
    assert generator.calls == 0


@pytest.mark.asyncio
async def test_unexpected_exception_is_wrapped_as_stage_error(make_router, generator):
    router = make_router(retriever=FakeRetriever(error=RuntimeError("socket closed")))

    final = await router.run(new_state())

    assert final.error.kind == "retrieval"
    assert "RuntimeError" in final.error.message
    assert generator.calls == 0


@pytest.mark.asyncio
async def test_retrieval_error_is_recorded(make_router):
    router = make_router(retriever=FakeRetriever(error=RetrievalError("quota exceeded")))

    final = await router.run(new_state())

    assert final.error.stage is Stage.RETRIEVE
    assert final.error.message == "quota exceeded"


@pytest.mark.asyncio
async def test_empty_generation_is_an_error(make_router):
    router = make_router(generator=FakeGenerator(text="   "))

    final = await router.run(new_state())

    assert final.response is None
    assert final.error.kind == "generation"


@pytest.mark.asyncio
async def test_generation_error_propagates_kind(make_router):
    router = make_router(generator=FakeGenerator(error=GenerationError("model overloaded")))

    final = await router.run(new_state())

    assert final.error.stage is Stage.GENERATE
    assert final.error.error_kind == "generation"


@pytest.mark.asyncio
async def test_follow_up_failure_keeps_drafted_response(make_router, generator):
    router = make_router(follow_up_checker=FakeFollowUp(error=FollowUpError("checker down")))

    final = await router.run(new_state())

    assert final.response == generator.text
    assert final.error.kind == "follow_up"
    assert final.needs_follow_up is False


@pytest.mark.asyncio
async def test_follow_up_flag_is_recorded(make_router):
    router = make_router(follow_up_checker=FakeFollowUp(needs_more_info=True))

    final = await router.run(new_state())

    assert final.error is None
    assert final.needs_follow_up is True


@pytest.mark.asyncio
async def test_stage_writing_foreign_field_is_recorded_as_error(make_router, monkeypatch):
    router = make_router()

    async def overreaching_generate(state):
        return {"response": "Drafted.", "needs_follow_up": True}

    monkeypatch.setattr(router, "_generate", overreaching_generate)

    final = await router.run(new_state())

    assert final.response is None
    assert final.needs_follow_up is False
    assert final.error.stage is Stage.GENERATE
    assert final.error.kind == "generation"
    assert "may not write 'needs_follow_up'" in final.error.message

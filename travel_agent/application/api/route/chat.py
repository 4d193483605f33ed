from typing import Any, Dict, Optional
from datetime import datetime, timezone

from fastapi import APIRouter, Request
import structlog

from travel_agent.application.api.schema.chat import (
    ChatRequest,
    ChatResponse,
    ClearHistoryResponse,
    ErrorResponse,
    HealthResponse,
    HistoryResponse,
    SummaryResponse,
)
from travel_agent.domain.orchestration.core.travel_assistant import TravelAssistant
from travel_agent.infrastructure.observability.logging import metrics

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api")

NOT_INITIALIZED = "Assistant is not initialized. Please try again later."


def get_assistant(request: Request) -> Optional[TravelAssistant]:
    assistant = getattr(request.app.state, "assistant", None)
    if assistant is None or not assistant.is_ready:
        return None
    return assistant


def _error(message: str) -> Dict[str, Any]:
    return ErrorResponse(error=message).to_json()


@router.post("/chat")
async def chat_endpoint(body: ChatRequest, request: Request):
    assistant = get_assistant(request)
    if assistant is None:
        return _error(NOT_INITIALIZED)

    if not body.message or not body.message.strip():
        return _error("Please provide a message.")

    try:
        result = await assistant.handle_turn(body.message, body.session_id)
    except Exception:
        logger.exception("Chat API error")
        return _error("Sorry, something went wrong while processing your request. Please try again.")

    return ChatResponse(
        response=result.response,
        session_id=result.session_id,
        metadata=result.metadata,
    ).to_json()


@router.get("/history/{session_id}")
async def get_history(session_id: str, request: Request):
    assistant = get_assistant(request)
    if assistant is None:
        return _error(NOT_INITIALIZED)

    try:
        history = await assistant.get_history(session_id)
    except Exception:
        logger.exception("History API error", session_id=session_id)
        return _error("Could not load the conversation history.")

    return HistoryResponse(session_id=session_id, history=history, count=len(history)).to_json()


@router.delete("/history/{session_id}")
async def clear_history(session_id: str, request: Request):
    assistant = get_assistant(request)
    if assistant is None:
        return _error(NOT_INITIALIZED)

    try:
        cleared = await assistant.clear_history(session_id)
    except Exception:
        logger.exception("Clear history API error", session_id=session_id)
        return _error("Could not clear the conversation history.")

    return ClearHistoryResponse(
        success=cleared,
        session_id=session_id,
        message="History cleared" if cleared else "Could not clear history",
    ).to_json()


@router.get("/summary/{session_id}")
async def get_summary(session_id: str, request: Request):
    assistant = get_assistant(request)
    if assistant is None:
        return _error(NOT_INITIALIZED)

    try:
        summary = await assistant.get_summary(session_id)
    except Exception:
        logger.exception("Summary API error", session_id=session_id)
        return _error("Could not load the conversation summary.")

    return SummaryResponse(summary=summary).to_json()


@router.get("/health")
async def health_check(request: Request):
    assistant = get_assistant(request)
    timestamp = datetime.now(timezone.utc).isoformat()

    if assistant is None:
        return HealthResponse(status="ok", initialized=False, timestamp=timestamp).to_json()

    try:
        memory = await assistant.health_check()
    except Exception as e:
        logger.exception("Health check failed")
        return HealthResponse(status="error", initialized=True, timestamp=timestamp, error=str(e)).to_json()

    return HealthResponse(
        status="ok",
        initialized=True,
        timestamp=timestamp,
        memory=memory,
        metrics=metrics.get_metrics_summary(),
    ).to_json()

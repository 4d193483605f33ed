# Models shared by the router, the session store and the API layer

from .conversation import Message, StoreResult, SessionSummary, HealthStatus
from .turn_state import Stage, AnalysisResult, SearchResult, FollowUpResult, TurnError, TurnState
from .turn_result import Readiness, TurnMetadata, TurnResult

__all__ = [
    "Message",
    "StoreResult",
    "SessionSummary",
    "HealthStatus",
    "Stage",
    "AnalysisResult",
    "SearchResult",
    "FollowUpResult",
    "TurnError",
    "TurnState",
    "Readiness",
    "TurnMetadata",
    "TurnResult",
]

from typing import Dict, Any, List, Optional, Literal, FrozenSet
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from enum import Enum

from travel_agent.domain.errors import CollaboratorError, TurnStateViolation
from travel_agent.domain.models.conversation import Message


Category = Literal["food", "accommodation", "attractions", "weather", "transportation", "general"]


class Stage(str, Enum):
    """Stages of the turn router, plus the terminal DONE marker"""
    ANALYZE = "analyze_query"
    DECIDE_RETRIEVAL = "decide_retrieval"
    RETRIEVE = "retrieve_information"
    GENERATE = "generate_response"
    CHECK_FOLLOW_UP = "check_follow_up"
    ERROR = "handle_error"
    DONE = "done"


class AnalysisResult(BaseModel):
    """Structured classification of a travel query"""
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    category: Category
    location: Optional[str] = None
    intent: str
    keywords: List[str] = Field(default_factory=list)
    search_query: str = ""
    needs_retrieval: bool = False
    urgency: Optional[str] = None


class SearchResult(BaseModel):
    """A single retrieved document"""
    model_config = ConfigDict(frozen=True)

    title: str = ""
    content: str = ""
    url: str = ""
    score: Optional[float] = None


class FollowUpResult(BaseModel):
    needs_more_info: bool = False


class TurnError(BaseModel):
    """A stage failure captured into the turn state"""
    model_config = ConfigDict(frozen=True)

    stage: Stage
    kind: str
    message: str
    timed_out: bool = False
    off_topic: bool = False

    @classmethod
    def from_exception(cls, stage: Stage, exc: CollaboratorError) -> "TurnError":
        return cls(
            stage=stage,
            kind=exc.kind,
            message=str(exc) or exc.__class__.__name__,
            timed_out=exc.timed_out,
            off_topic=getattr(exc, "off_topic", False),
        )

    @property
    def error_kind(self) -> str:
        """Kind reported to callers; timeouts are only told apart here"""
        return "timeout" if self.timed_out else self.kind


# Fields each stage may write. `error` is writable by every stage.
STAGE_FIELDS: Dict[Stage, FrozenSet[str]] = {
    Stage.ANALYZE: frozenset({"analysis"}),
    Stage.DECIDE_RETRIEVAL: frozenset({"needs_retrieval"}),
    Stage.RETRIEVE: frozenset({"retrieval"}),
    Stage.GENERATE: frozenset({"response"}),
    Stage.CHECK_FOLLOW_UP: frozenset({"needs_follow_up"}),
    Stage.ERROR: frozenset(),
}

SET_ONCE_FIELDS: FrozenSet[str] = frozenset({"analysis", "retrieval", "response", "error"})


class TurnState(BaseModel):
    """
    Mutable record threaded through one turn.

    Owned by a single in-flight turn and never shared, even between two turns
    of the same session.
    """

    session_id: str = Field(frozen=True)
    query: str = Field(frozen=True)
    history: List[Message] = Field(default_factory=list, frozen=True)

    analysis: Optional[AnalysisResult] = None
    retrieval: Optional[List[SearchResult]] = None
    response: Optional[str] = None
    error: Optional[TurnError] = None

    needs_retrieval: bool = False
    needs_follow_up: bool = False

    def check_update(self, stage: Stage, update: Dict[str, Any]) -> None:
        """Reject writes outside the stage's fields and second writes to set-once fields"""

        allowed = STAGE_FIELDS.get(stage, frozenset()) | {"error"}
        for field_name in update:
            if field_name not in allowed:
                raise TurnStateViolation(f"{stage.value} may not write '{field_name}'")
            if field_name in SET_ONCE_FIELDS and getattr(self, field_name) is not None:
                raise TurnStateViolation(f"'{field_name}' already set before {stage.value}")

    def get_state_summary(self) -> Dict[str, Any]:
        """Compact view for transition logs"""
        return {
            "category": self.analysis.category if self.analysis else None,
            "needs_retrieval": self.needs_retrieval,
            "results": len(self.retrieval) if self.retrieval is not None else None,
            "has_response": self.response is not None,
            "error": self.error.kind if self.error else None,
        }

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from travel_agent.domain.models.conversation import HealthStatus, Message, SessionSummary
from travel_agent.domain.models.turn_result import TurnMetadata


class ApiModel(BaseModel):
    """camelCase on the wire, snake_case in Python"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class ChatRequest(ApiModel):
    message: str = ""
    session_id: Optional[str] = None


class ChatResponse(ApiModel):
    success: bool = True
    response: str
    session_id: Optional[str] = None
    metadata: TurnMetadata


class HistoryResponse(ApiModel):
    success: bool = True
    session_id: str
    history: List[Message] = Field(default_factory=list)
    count: int = 0


class ClearHistoryResponse(ApiModel):
    success: bool
    session_id: str
    message: str


class SummaryResponse(ApiModel):
    success: bool = True
    summary: SessionSummary


class HealthResponse(ApiModel):
    status: str
    initialized: bool
    timestamp: str
    memory: Optional[HealthStatus] = None
    metrics: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class ErrorResponse(ApiModel):
    success: bool = False
    error: str

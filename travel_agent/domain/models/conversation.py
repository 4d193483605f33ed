from typing import Dict, Any, List, Optional, Literal
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from datetime import datetime

from travel_agent.domain.errors import StoreUnavailable


Role = Literal["user", "assistant"]


class Message(BaseModel):
    """One transcript entry. Immutable once appended."""
    model_config = ConfigDict(frozen=True)

    role: Role
    content: str
    timestamp: Optional[datetime] = Field(None, description="Stamped by the session store on append")
    metadata: Optional[Dict[str, Any]] = None


class StoreResult(BaseModel):
    """Outcome of a session store write"""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    ok: bool
    error: Optional[StoreUnavailable] = None

    @classmethod
    def success(cls) -> "StoreResult":
        return cls(ok=True)

    @classmethod
    def unavailable(cls, error: StoreUnavailable) -> "StoreResult":
        return cls(ok=False, error=error)

    def __bool__(self) -> bool:
        return self.ok


class SessionSummary(BaseModel):
    """Aggregated statistics for one session transcript"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    session_id: str
    total_messages: int = 0
    user_messages: int = 0
    assistant_messages: int = 0
    categories_discussed: List[str] = Field(default_factory=list)
    locations_discussed: List[str] = Field(default_factory=list)
    start_time: Optional[datetime] = None
    last_activity: Optional[datetime] = None
    memory_enabled: bool = True
    error: Optional[str] = None

    @classmethod
    def from_history(cls, session_id: str, history: List[Message], memory_enabled: bool = True) -> "SessionSummary":
        """Count messages by role and collect distinct categories/locations in first-seen order"""

        user_count = sum(1 for msg in history if msg.role == "user")
        assistant_messages = [msg for msg in history if msg.role == "assistant"]

        categories: List[str] = []
        locations: List[str] = []
        for msg in assistant_messages:
            meta = msg.metadata or {}
            category = meta.get("category")
            location = meta.get("location")
            if category and category not in categories:
                categories.append(category)
            if location and location not in locations:
                locations.append(location)

        return cls(
            session_id=session_id,
            total_messages=len(history),
            user_messages=user_count,
            assistant_messages=len(assistant_messages),
            categories_discussed=categories,
            locations_discussed=locations,
            start_time=history[0].timestamp if history else None,
            last_activity=history[-1].timestamp if history else None,
            memory_enabled=memory_enabled,
        )


class HealthStatus(BaseModel):
    """Session memory health"""
    status: Literal["healthy", "unhealthy", "disabled"]
    message: str
    backend: Optional[str] = None

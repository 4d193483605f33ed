from typing import Dict, Any, Optional
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class Readiness(BaseModel):
    """Result of the assistant's ready-check"""
    ready: bool
    memory_enabled: bool
    backend: str
    detail: Optional[str] = None


class TurnMetadata(BaseModel):
    """Structured metadata returned with every turn (camelCase on the wire)"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    category: Optional[str] = None
    location: Optional[str] = None
    search_results_count: int = 0
    needs_more_info: bool = False
    memory_enabled: bool = False
    error: Optional[str] = None
    error_kind: Optional[str] = None
    rejected: Optional[bool] = None

    def to_message_metadata(self) -> Dict[str, Any]:
        """Metadata persisted on the assistant message"""
        return self.model_dump(by_alias=True, exclude_none=True, exclude={"memory_enabled", "rejected"})


class TurnResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    response: str
    session_id: Optional[str] = None
    metadata: TurnMetadata

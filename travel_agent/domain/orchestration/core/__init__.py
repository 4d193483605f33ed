from .turn_router import TurnRouter, next_stage
from .travel_assistant import TravelAssistant, new_session_id

__all__ = [
    "TurnRouter",
    "next_stage",
    "TravelAssistant",
    "new_session_id",
]

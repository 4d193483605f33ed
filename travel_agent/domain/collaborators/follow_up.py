from typing import FrozenSet

from travel_agent.domain.errors import FollowUpError
from travel_agent.domain.models.turn_state import FollowUpResult, TurnState
from .base import FollowUpChecker


class HeuristicFollowUpChecker(FollowUpChecker):
    """
    Cheap follow-up detection without a model call.

    More information is needed when the category only makes sense for a place
    but no location was extracted, or when the drafted reply itself ends with
    a question to the user.
    """

    LOCATION_BOUND: FrozenSet[str] = frozenset(
        {"food", "accommodation", "attractions", "weather", "transportation"}
    )

    async def check(self, state: TurnState) -> FollowUpResult:
        if state.response is None:
            raise FollowUpError("No drafted response to inspect")

        analysis = state.analysis
        missing_location = (
            analysis is not None
            and analysis.category in self.LOCATION_BOUND
            and not (analysis.location or "").strip()
        )
        asks_question = state.response.rstrip().endswith("?")

        return FollowUpResult(needs_more_info=missing_location or asks_question)

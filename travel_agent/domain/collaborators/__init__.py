from .base import (
    Collaborator,
    QueryAnalyzer,
    Retriever,
    ResponseGenerator,
    FollowUpChecker,
)
from .follow_up import HeuristicFollowUpChecker

__all__ = [
    "Collaborator",
    "QueryAnalyzer",
    "Retriever",
    "ResponseGenerator",
    "FollowUpChecker",
    "HeuristicFollowUpChecker",
]

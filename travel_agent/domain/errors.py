from typing import Optional


class AppError(Exception):
    """Base application error"""


class ConfigError(AppError):
    """Missing or invalid configuration"""


class StoreUnavailable(AppError):
    """Session store unreachable or returned unusable data"""

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message)
        self.operation = operation


class TurnStateViolation(AppError):
    """A stage wrote a turn state field it does not own, or wrote one twice"""


class CollaboratorError(AppError):
    """External collaborator (analysis, search, generation) failed"""

    kind = "collaborator"

    def __init__(self, message: str, timed_out: bool = False):
        super().__init__(message)
        self.timed_out = timed_out


class AnalysisError(CollaboratorError):
    """Query could not be classified, including off-topic queries"""

    kind = "analysis"

    def __init__(self, message: str, timed_out: bool = False, off_topic: bool = False):
        super().__init__(message, timed_out=timed_out)
        self.off_topic = off_topic


class RetrievalError(CollaboratorError):
    """Search collaborator unreachable or returned malformed data"""

    kind = "retrieval"


class GenerationError(CollaboratorError):
    """Generation collaborator unreachable or returned empty output"""

    kind = "generation"


class FollowUpError(CollaboratorError):
    """Follow-up heuristic failed"""

    kind = "follow_up"

from typing import List
import structlog

from travel_agent.domain.models.conversation import Message
from .memory.session_store import SessionStore

logger = structlog.get_logger(__name__)


class ContextWindowSelector:
    """
    Picks the slice of a session transcript handed to reasoning calls.

    The window is independent of the store's retention bound: a store may keep
    20 messages while turns only ever see the last 10.
    """

    def __init__(self, window_size: int = 10):
        if window_size < 0:
            raise ValueError("window_size must not be negative")
        self.window_size = window_size

    async def select(self, store: SessionStore, session_id: str) -> List[Message]:
        """Load the recency window for one turn"""

        messages = await store.read_recent(session_id, self.window_size)

        logger.info("Selected context window",
                    session_id=session_id,
                    messages=len(messages),
                    window_size=self.window_size)

        return messages

    @staticmethod
    def recent(history: List[Message], limit: int) -> List[Message]:
        """Trim an already loaded window further, e.g. for prompt building"""

        if limit <= 0:
            return []
        return history[-limit:]

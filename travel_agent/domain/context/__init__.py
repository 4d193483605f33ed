# This module handles session memory and context selection

# +---------------------+
# |   Session Store     |   (Persistent, bounded, expiring)
# |---------------------|
# | Message log per key |
# | FIFO eviction       |
# | TTL per session     |
# +---------------------+
#         |
#         v
# +------------------------------+
# |       Context Window         |   (Selected per turn)
# |------------------------------|
# | Last N messages of the log   |
# | Read-only during the turn    |
# +------------------------------+
#         |
#         v
#   [analysis / generation calls]

from .context_window import ContextWindowSelector
from .memory.session_store import SessionStore, InMemorySessionStore

__all__ = [
    "ContextWindowSelector",
    "SessionStore",
    "InMemorySessionStore",
]

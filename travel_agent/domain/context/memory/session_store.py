from abc import ABC, abstractmethod
from typing import Callable, Dict, Any, List, Optional
import asyncio
from datetime import datetime, timedelta, timezone

from travel_agent.domain.errors import StoreUnavailable
from travel_agent.domain.models.conversation import Message, StoreResult
from travel_agent.infrastructure.observability.logging import agent_logger, metrics


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionStore(ABC):
    """
    Bounded, expiring message log per session key.

    Backends implement the underscore methods and raise StoreUnavailable when
    the backing store cannot be used. The public methods never raise: writes
    return a StoreResult, reads degrade to an empty list, and the failure is
    kept on `last_failure` so callers can observe degraded mode.
    """

    backend_name = "abstract"

    def __init__(
        self,
        max_messages: int = 20,
        ttl_seconds: int = 3600,
        clock: Callable[[], datetime] = utcnow,
    ):
        if max_messages < 1:
            raise ValueError("max_messages must be at least 1")
        self.max_messages = max_messages
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.last_failure: Optional[StoreUnavailable] = None

    @property
    def available(self) -> bool:
        return self.last_failure is None

    async def append(self, key: str, message: Message) -> StoreResult:
        """Stamp, append, trim to the bound and re-apply the TTL"""

        stamped = message.model_copy(update={"timestamp": self.clock()})
        try:
            await self._append(key, stamped)
        except StoreUnavailable as e:
            return self._write_failed("append", key, e)
        self._succeeded("append", key, {"role": message.role})
        return StoreResult.success()

    async def read_all(self, key: str) -> List[Message]:
        """Full transcript in insertion order, [] if missing or expired"""

        try:
            messages = await self._read(key, None)
        except StoreUnavailable as e:
            self._read_failed("read_all", key, e)
            return []
        self._succeeded("read_all", key, {"count": len(messages)})
        return messages

    async def read_recent(self, key: str, n: int) -> List[Message]:
        """Last `n` messages of the transcript"""

        if n <= 0:
            return []
        try:
            messages = await self._read(key, n)
        except StoreUnavailable as e:
            self._read_failed("read_recent", key, e)
            return []
        self._succeeded("read_recent", key, {"count": len(messages)})
        return messages

    async def delete(self, key: str) -> StoreResult:
        """Delete a session. Deleting a missing key succeeds."""

        try:
            await self._delete(key)
        except StoreUnavailable as e:
            return self._write_failed("delete", key, e)
        self._succeeded("delete", key)
        return StoreResult.success()

    async def refresh_ttl(self, key: str) -> StoreResult:
        """Restart the expiry countdown without touching content"""

        try:
            await self._refresh_ttl(key)
        except StoreUnavailable as e:
            return self._write_failed("refresh_ttl", key, e)
        self._succeeded("refresh_ttl", key)
        return StoreResult.success()

    async def ping(self) -> bool:
        try:
            await self._ping()
        except StoreUnavailable as e:
            self._read_failed("ping", None, e)
            return False
        self.last_failure = None
        return True

    async def close(self) -> None:
        """Release backend resources"""

    # -------------------------
    # backend hooks
    # -------------------------
    @abstractmethod
    async def _append(self, key: str, message: Message) -> None:
        pass

    @abstractmethod
    async def _read(self, key: str, last_n: Optional[int]) -> List[Message]:
        pass

    @abstractmethod
    async def _delete(self, key: str) -> None:
        pass

    @abstractmethod
    async def _refresh_ttl(self, key: str) -> None:
        pass

    @abstractmethod
    async def _ping(self) -> None:
        pass

    # -------------------------
    # bookkeeping
    # -------------------------
    def _succeeded(self, operation: str, key: Optional[str], details: Optional[Dict[str, Any]] = None) -> None:
        self.last_failure = None
        agent_logger.log_store_event(operation, key, success=True, details=details)

    def _read_failed(self, operation: str, key: Optional[str], error: StoreUnavailable) -> None:
        error.operation = error.operation or operation
        self.last_failure = error
        metrics.increment_counter("store_failures", tags={"operation": operation})
        agent_logger.log_store_event(
            operation, key, success=False,
            details={"backend": self.backend_name, "error": str(error)}
        )

    def _write_failed(self, operation: str, key: Optional[str], error: StoreUnavailable) -> StoreResult:
        self._read_failed(operation, key, error)
        return StoreResult.unavailable(error)


class InMemorySessionStore(SessionStore):
    """In-process session store with TTL support"""

    backend_name = "memory"

    def __init__(
        self,
        max_messages: int = 20,
        ttl_seconds: int = 3600,
        clock: Callable[[], datetime] = utcnow,
    ):
        super().__init__(max_messages=max_messages, ttl_seconds=ttl_seconds, clock=clock)
        self.sessions: Dict[str, Dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    async def _append(self, key: str, message: Message) -> None:
        async with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                # Abandoned sessions are reclaimed whenever a new one starts
                self._sweep_expired()
                entry = {"messages": []}
                self.sessions[key] = entry

            entry["messages"].append(message)

            # Oldest first out
            if len(entry["messages"]) > self.max_messages:
                entry["messages"] = entry["messages"][-self.max_messages:]

            entry["expires_at"] = self.clock() + timedelta(seconds=self.ttl_seconds)

    async def _read(self, key: str, last_n: Optional[int]) -> List[Message]:
        async with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                return []
            messages = entry["messages"]
            if last_n is not None:
                messages = messages[-last_n:]
            return list(messages)

    async def _delete(self, key: str) -> None:
        async with self._lock:
            self.sessions.pop(key, None)

    async def _refresh_ttl(self, key: str) -> None:
        async with self._lock:
            entry = self._live_entry(key)
            if entry is not None:
                entry["expires_at"] = self.clock() + timedelta(seconds=self.ttl_seconds)

    async def _ping(self) -> None:
        return None

    def _live_entry(self, key: str) -> Optional[Dict[str, Any]]:
        """Return the entry for key, dropping it if expired. Caller holds the lock."""

        entry = self.sessions.get(key)
        if entry is None:
            return None
        if self.clock() > entry["expires_at"]:
            del self.sessions[key]
            return None
        return entry

    async def clear_expired(self) -> int:
        """Clear expired sessions and return count"""

        async with self._lock:
            return self._sweep_expired()

    def _sweep_expired(self) -> int:
        """Drop every expired session. Caller holds the lock."""

        now = self.clock()
        expired_keys = [
            key for key, entry in self.sessions.items()
            if now > entry["expires_at"]
        ]

        for key in expired_keys:
            del self.sessions[key]

        return len(expired_keys)

    async def get_stats(self) -> Dict[str, Any]:
        """Get store statistics"""

        async with self._lock:
            now = self.clock()
            active_count = sum(
                1 for entry in self.sessions.values()
                if now <= entry["expires_at"]
            )

            return {
                "total_sessions": len(self.sessions),
                "active_sessions": active_count,
                "expired_sessions": len(self.sessions) - active_count
            }

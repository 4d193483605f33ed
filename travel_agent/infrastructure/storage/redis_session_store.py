from typing import Callable, List, Optional
from datetime import datetime

import redis.asyncio as redis
from redis.exceptions import RedisError
from pydantic import ValidationError
import structlog

from travel_agent.domain.context.memory.session_store import SessionStore, utcnow
from travel_agent.domain.errors import StoreUnavailable
from travel_agent.domain.models.conversation import Message

logger = structlog.get_logger(__name__)


class RedisSessionStore(SessionStore):
    """
    Session store backed by one Redis list per session.

    Each message is stored as a JSON string. Appends push, trim and expire in a
    single MULTI/EXEC so the bound and the TTL hold after every write.
    """

    backend_name = "redis"
    key_prefix = "chat_session:"

    def __init__(
        self,
        client: "redis.Redis",
        max_messages: int = 20,
        ttl_seconds: int = 3600,
        clock: Callable[[], datetime] = utcnow,
    ):
        super().__init__(max_messages=max_messages, ttl_seconds=ttl_seconds, clock=clock)
        self.client = client

    @classmethod
    def from_url(
        cls,
        url: str,
        max_messages: int = 20,
        ttl_seconds: int = 3600,
        socket_timeout: float = 5.0,
    ) -> "RedisSessionStore":
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return cls(client, max_messages=max_messages, ttl_seconds=ttl_seconds)

    def session_key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def _append(self, key: str, message: Message) -> None:
        redis_key = self.session_key(key)
        try:
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.rpush(redis_key, message.model_dump_json())
                pipe.ltrim(redis_key, -self.max_messages, -1)
                pipe.expire(redis_key, self.ttl_seconds)
                await pipe.execute()
        except (RedisError, OSError) as e:
            raise StoreUnavailable(f"Redis append failed: {e}", operation="append") from e

    async def _read(self, key: str, last_n: Optional[int]) -> List[Message]:
        start = -last_n if last_n is not None else 0
        try:
            raw_messages = await self.client.lrange(self.session_key(key), start, -1)
        except (RedisError, OSError) as e:
            raise StoreUnavailable(f"Redis read failed: {e}", operation="read") from e

        messages: List[Message] = []
        for raw in raw_messages:
            try:
                messages.append(Message.model_validate_json(raw))
            except ValidationError:
                logger.warning("Skipping malformed stored message", session_id=key)
        return messages

    async def _delete(self, key: str) -> None:
        try:
            await self.client.delete(self.session_key(key))
        except (RedisError, OSError) as e:
            raise StoreUnavailable(f"Redis delete failed: {e}", operation="delete") from e

    async def _refresh_ttl(self, key: str) -> None:
        try:
            await self.client.expire(self.session_key(key), self.ttl_seconds)
        except (RedisError, OSError) as e:
            raise StoreUnavailable(f"Redis expire failed: {e}", operation="refresh_ttl") from e

    async def _ping(self) -> None:
        try:
            await self.client.ping()
        except (RedisError, OSError) as e:
            raise StoreUnavailable(f"Redis ping failed: {e}", operation="ping") from e

    async def close(self) -> None:
        try:
            await self.client.aclose()
        except (RedisError, OSError) as e:
            logger.warning("Error closing Redis connection", error=str(e))

"""Redis Streams publisher for risk alerts."""

from __future__ import annotations

import redis.asyncio as aioredis
import structlog

from liquidation_engine.models.messages import StreamMessage

logger = structlog.get_logger()


class RedisClient:
    def __init__(
        self,
        redis_url: str = "redis://redis:6379",
        socket_timeout: float = 30.0,
        socket_connect_timeout: float = 10.0,
        retry_on_timeout: bool = True,
        stream_maxlen: int = 100_000,
    ) -> None:
        self.redis_url = redis_url
        self.socket_timeout = socket_timeout
        self.socket_connect_timeout = socket_connect_timeout
        self.retry_on_timeout = retry_on_timeout
        self.stream_maxlen = stream_maxlen
        self.client: aioredis.Redis | None = None

    async def connect(self) -> None:
        self.client = aioredis.from_url(
            self.redis_url,
            decode_responses=False,
            max_connections=20,
            socket_timeout=self.socket_timeout,
            socket_connect_timeout=self.socket_connect_timeout,
            retry_on_timeout=self.retry_on_timeout,
        )
        await self.client.ping()
        logger.info("redis_connected", url=self.redis_url)

    async def disconnect(self) -> None:
        """Close Redis connection."""
        if self.client:
            await self.client.aclose()
            logger.info("redis_disconnected")

    async def publish(self, stream: str, message: StreamMessage) -> str:
        """XADD message to stream (approximately capped). Returns message ID."""
        assert self.client is not None
        msg_id = await self.client.xadd(
            stream, message.to_redis(), maxlen=self.stream_maxlen, approximate=True
        )
        logger.debug("redis_published", stream=stream, msg_id=msg_id, type=message.type)
        return msg_id.decode() if isinstance(msg_id, bytes) else msg_id

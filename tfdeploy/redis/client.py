import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass
import json
from typing import Any

from pydantic import BaseModel
import redis.asyncio as redis
import structlog

logger = structlog.get_logger(__name__)


@dataclass
class StreamMessage:
    """A message from a Redis Stream."""

    message_id: str
    data: dict[str, Any]


class RedisStreamClient:
    """Client for Redis Streams-based message passing."""

    def __init__(self, redis_url: str):
        self.redis_url = redis_url
        self._redis: redis.Redis | None = None

    @classmethod
    def from_connection(cls, connection: redis.Redis) -> "RedisStreamClient":
        """Wrap an existing connection (tests pass a FakeAsyncRedis)."""
        client = cls(redis_url="")
        client._redis = connection
        return client

    async def connect(self) -> None:
        """Connect to Redis."""
        if self._redis is None:
            self._redis = redis.from_url(self.redis_url, decode_responses=True)
            logger.info("redis_connected", redis_url=self.redis_url)

    async def close(self) -> None:
        """Close Redis connection."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None
            logger.info("redis_connection_closed")

    @property
    def redis(self) -> redis.Redis:
        """Get Redis client, ensuring connection."""
        if self._redis is None:
            raise RuntimeError("Redis not connected. Call connect() first.")
        return self._redis

    async def publish(self, stream: str, data: dict[str, Any]) -> str:
        """Publish a dict to a Redis Stream."""
        message = {"data": json.dumps(data)}
        message_id = await self.redis.xadd(stream, message)
        logger.debug("message_published", stream=stream, message_id=message_id)
        return message_id

    async def publish_message(self, stream: str, message: BaseModel) -> str:
        """Publish a pydantic model to a Redis Stream."""
        return await self.publish(stream, message.model_dump(mode="json"))

    async def ensure_consumer_group(self, stream: str, group: str) -> None:
        """Ensure a consumer group exists for the stream."""
        try:
            await self.redis.xgroup_create(stream, group, id="0", mkstream=True)
            logger.info("consumer_group_created", stream=stream, group=group)
        except redis.ResponseError as e:
            if "BUSYGROUP" in str(e):
                logger.debug("consumer_group_exists", stream=stream, group=group)
            else:
                raise

    async def ack(self, stream: str, group: str, message_id: str) -> None:
        await self.redis.xack(stream, group, message_id)
        logger.debug("message_acked", stream=stream, message_id=message_id)

    async def read_group(
        self,
        stream: str,
        group: str,
        consumer: str,
        last_id: str = ">",
        block_ms: int | None = 5000,
        count: int = 10,
    ) -> list[StreamMessage]:
        """Read a batch for ``consumer``.

        ``last_id=">"`` reads new messages; ``"0"`` re-reads the consumer's
        delivered but unacknowledged messages.
        """
        response = await self.redis.xreadgroup(
            groupname=group,
            consumername=consumer,
            streams={stream: last_id},
            count=count,
            block=block_ms,
        )
        result: list[StreamMessage] = []
        for _stream_name, stream_messages in response or []:
            for message_id, fields in stream_messages:
                if not fields:
                    continue
                try:
                    data = json.loads(fields.get("data", "{}"))
                except json.JSONDecodeError as e:
                    logger.error("message_parse_failed", message_id=message_id, error=str(e))
                    await self.ack(stream, group, message_id)
                    continue
                result.append(StreamMessage(message_id=message_id, data=data))
        return result

    async def consume(
        self,
        stream: str,
        group: str,
        consumer: str,
        block_ms: int = 5000,
        count: int = 10,
    ) -> AsyncIterator[StreamMessage | None]:
        """Consume messages from a Redis Stream using consumer groups.

        Pending messages left over from a previous run of the same consumer
        are yielded first. Callers ack each message once it is handled.
        ``None`` is yielded when a read times out.
        """
        await self.ensure_consumer_group(stream, group)

        for message in await self.read_group(stream, group, consumer, last_id="0", block_ms=None, count=1000):
            logger.info("message_redelivered", stream=stream, message_id=message.message_id)
            yield message

        while True:
            try:
                messages = await self.read_group(stream, group, consumer, block_ms=block_ms, count=count)
            except asyncio.CancelledError:
                logger.info("consumer_cancelled", consumer=consumer)
                raise
            except redis.RedisError as e:
                logger.error("consume_error", stream=stream, error=str(e))
                await asyncio.sleep(1)
                continue

            if not messages:
                yield None
                continue

            for message in messages:
                yield message

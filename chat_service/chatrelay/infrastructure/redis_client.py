# chatrelay/infrastructure/redis_client.py
import json
import logging
from typing import Any

import redis.asyncio as redis
from redis.exceptions import RedisError


class RedisClient:
    """Long-lived redis connection shared by every event of this server instance.

    Opened once in the application lifespan and reused for every publish,
    instead of opening a client per outbound event.
    """

    def __init__(self, host: str, port: int, logger: logging.Logger):
        self.host = host
        self.port = port
        self.client: redis.Redis | None = None
        self.logger = logger

    async def connect(self) -> None:
        self.client = redis.Redis(
            host=self.host,
            port=self.port,
            db=0,
            decode_responses=True,
        )
        try:
            await self.client.ping()
        except redis.ConnectionError as e:
            self.logger.error(f"Failed to connect to Redis: {e!s}")
            self.logger.error(f"Redis host: {self.host}, Redis port: {self.port}")
            raise
        self.logger.info(f"Successfully connected to Redis at {self.host}:{self.port}")

    async def disconnect(self) -> None:
        if self.client:
            await self.client.aclose()
            self.client = None
            self.logger.info("Disconnected from Redis")

    async def publish(self, channel: str, message: str) -> int:
        if self.client is None:
            raise RuntimeError("Redis client not connected")
        receivers = await self.client.publish(channel, message)
        self.logger.debug(f"Published message to channel {channel}")
        return receivers

    async def publish_json(self, channel: str, payload: dict[str, Any]) -> int | None:
        """Publish a JSON document; broker errors are logged, not raised.

        Callers publish after the database commit, so a broker outage must not
        turn an already persisted write into a failed request.
        """
        try:
            return await self.publish(channel, json.dumps(payload, default=str))
        except RedisError as e:
            self.logger.error(f"Failed to publish to channel {channel}: {e!s}")
            return None

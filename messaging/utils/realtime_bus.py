import asyncio
import logging
from typing import Awaitable, Callable, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from messaging.config import get_settings

logger = logging.getLogger(__name__)


class NoopBus:
    """Single-process mode: fan-out goes straight to the local connection manager."""

    enabled = False

    async def publish(self, channel: str, message: str) -> None:
        return

    async def subscribe(self, channel: str, on_message: Callable[[str], Awaitable[None]]):
        class _Sub:
            async def run(self):
                await asyncio.Future()

            async def cancel(self):
                return

        return _Sub()

    async def set_presence(self, user_id: int, ttl_seconds: int = 60) -> None:
        return

    async def is_online(self, user_id: int) -> bool:
        return False


class RedisBus:

    enabled = True

    def __init__(self, url: str) -> None:
        self._redis = redis.from_url(url)

    async def publish(self, channel: str, message: str) -> None:
        await self._redis.publish(channel, message)

    async def subscribe(self, channel: str, on_message: Callable[[str], Awaitable[None]]):
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(channel)

        class _Sub:
            _running = True

            async def run(self_inner):
                while self_inner._running:
                    try:
                        msg = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                        if msg and msg.get("type") == "message":
                            data = msg.get("data")
                            if isinstance(data, bytes):
                                data = data.decode("utf-8")
                            await on_message(data)
                    except RedisError as exc:
                        logger.warning("Redis subscription on %s failed: %s", channel, exc)
                        await asyncio.sleep(0.5)

            async def cancel(self_inner):
                self_inner._running = False
                try:
                    await pubsub.unsubscribe(channel)
                    await pubsub.aclose()
                except RedisError as exc:
                    logger.debug("Redis unsubscribe from %s failed: %s", channel, exc)

        return _Sub()

    async def set_presence(self, user_id: int, ttl_seconds: int = 60) -> None:
        await self._redis.set(f"presence:{user_id}", "online", ex=ttl_seconds)

    async def is_online(self, user_id: int) -> bool:
        ttl = await self._redis.ttl(f"presence:{user_id}")
        return bool(ttl and ttl > 0)


_bus: Optional[NoopBus | RedisBus] = None


async def get_bus():
    global _bus
    if _bus is not None:
        return _bus
    url = get_settings().redis_url
    if not url:
        _bus = NoopBus()
        return _bus
    _bus = RedisBus(url)
    logger.info("Realtime fan-out through Redis pub/sub")
    return _bus

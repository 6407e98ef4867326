import asyncio
import logging
import uuid

import redis
from asgiref.sync import sync_to_async
from django.conf import settings

logger = logging.getLogger(__name__)

ENGINE_LOCK_KEY = "crash:engine"


def get_redis():
    return redis.Redis.from_url(settings.REDIS_URL, decode_responses=True)


class LockLost(RuntimeError):
    def __init__(self, key):
        self.key = key
        super().__init__(f"Lost engine lock {key}")


class RedisEngineLock:
    """
    Single-engine guarantee: only the holder of this key may drive rounds.

    - acquire: SET NX PX
    - renew:   SET XX PX, only while the stored token is ours
    - release: compare-and-delete under WATCH
    """

    def __init__(self, key: str = ENGINE_LOCK_KEY, ttl_seconds: int = 30, client=None):
        self.key = key
        self.ttl_ms = int(ttl_seconds * 1000)
        self.token = uuid.uuid4().hex
        self.r = client if client is not None else get_redis()

    def acquire(self) -> bool:
        return bool(self.r.set(self.key, self.token, nx=True, px=self.ttl_ms))

    def renew(self) -> bool:
        if self.r.get(self.key) != self.token:
            return False
        return bool(self.r.set(self.key, self.token, xx=True, px=self.ttl_ms))

    def release(self) -> bool:
        pipe = self.r.pipeline()
        try:
            pipe.watch(self.key)
            if pipe.get(self.key) == self.token:
                pipe.multi()
                pipe.delete(self.key)
                pipe.execute()
                return True
            pipe.unwatch()
        except redis.WatchError:
            logger.warning("Engine lock %s changed during release", self.key)
        finally:
            pipe.reset()
        return False


class LockHeartbeat:
    """Renews the lock every ``every_seconds``; raises LockLost when renewal fails."""

    def __init__(self, lock: RedisEngineLock, every_seconds: float = 10.0, sleep=asyncio.sleep):
        self.lock = lock
        self.every = every_seconds
        self._sleep = sleep

    async def run(self):
        while True:
            await self._sleep(self.every)
            renewed = await sync_to_async(self.lock.renew, thread_sensitive=False)()
            if not renewed:
                raise LockLost(self.lock.key)
            logger.debug("Engine lock %s renewed", self.lock.key)

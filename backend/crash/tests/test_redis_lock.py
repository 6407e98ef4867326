from unittest.mock import MagicMock

import pytest
import redis

from crash.redis_lock import LockHeartbeat, LockLost, RedisEngineLock


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def lock(client):
    return RedisEngineLock("crash:engine:test", ttl_seconds=30, client=client)


class TestRedisEngineLock:
    def test_acquire_sets_nx_with_ttl(self, lock, client):
        client.set.return_value = True

        assert lock.acquire()
        client.set.assert_called_once_with("crash:engine:test", lock.token, nx=True, px=30000)

    def test_acquire_when_held_elsewhere(self, lock, client):
        client.set.return_value = None
        assert not lock.acquire()

    def test_renew_only_own_token(self, lock, client):
        client.get.return_value = "someone-else"

        assert not lock.renew()
        client.set.assert_not_called()

    def test_renew(self, lock, client):
        client.get.return_value = lock.token
        client.set.return_value = True

        assert lock.renew()
        client.set.assert_called_once_with("crash:engine:test", lock.token, xx=True, px=30000)

    def test_release_deletes_own_key(self, lock, client):
        pipe = client.pipeline.return_value
        pipe.get.return_value = lock.token

        assert lock.release()
        pipe.delete.assert_called_once_with("crash:engine:test")
        pipe.reset.assert_called_once()

    def test_release_leaves_foreign_key(self, lock, client):
        pipe = client.pipeline.return_value
        pipe.get.return_value = "someone-else"

        assert not lock.release()
        pipe.delete.assert_not_called()

    def test_release_race(self, lock, client, caplog):
        pipe = client.pipeline.return_value
        pipe.get.return_value = lock.token
        pipe.execute.side_effect = redis.WatchError()

        assert not lock.release()
        assert "changed during release" in caplog.text
        pipe.reset.assert_called_once()


class TestLockHeartbeat:
    async def test_raises_when_renewal_fails(self, lock, client):
        client.get.side_effect = [lock.token, lock.token, "stolen"]
        client.set.return_value = True
        sleeps = []

        async def sleep(seconds):
            sleeps.append(seconds)

        with pytest.raises(LockLost):
            await LockHeartbeat(lock, every_seconds=10, sleep=sleep).run()

        assert sleeps == [10, 10, 10]

"""
Tests for the key-value store layer.

MemoryStore is exercised directly with a FakeClock; RedisStore is tested
against a mocked redis-py client so no server is needed.
"""

from unittest.mock import MagicMock, patch

import pytest
import redis

from conftest import FakeClock
from cultureconnect.security import MemoryStore, RedisStore, StoreError, create_store


@pytest.fixture
def store(clock):
    return MemoryStore(clock=clock)


class TestMemoryStore:

    def test_set_and_get_until_expiry(self, store, clock):
        store.set('k', 'v', 10)
        clock.advance(9)
        assert store.get('k') == 'v'
        clock.advance(1)
        assert store.get('k') is None

    def test_ttl_states(self, store, clock):
        assert store.ttl('missing') == -2
        store.incr('counter')
        assert store.ttl('counter') == -1
        store.set('k', 'v', 60)
        clock.advance(20.5)
        assert store.ttl('k') == 40

    def test_add_only_when_absent(self, store, clock):
        assert store.add('claim', '1', 30) is True
        assert store.add('claim', '1', 30) is False
        clock.advance(30)
        assert store.add('claim', '1', 30) is True

    def test_incr_window_keeps_first_expiry(self, store, clock):
        assert store.incr_window('w', 60) == 1
        clock.advance(30)
        assert store.incr_window('w', 60) == 2
        assert store.ttl('w') == 30
        clock.advance(30)
        assert store.incr_window('w', 60) == 1

    def test_sweep_removes_expired(self, store, clock):
        store.set('a', 1, 10)
        store.set('b', 1, 100)
        clock.advance(50)
        assert store.sweep() == 1
        assert store.get('a') is None
        assert store.get('b') == '1'

    def test_delete(self, store):
        store.set('k', 'v', 10)
        store.delete('k')
        assert store.get('k') is None
        store.delete('never-set')

    def test_ring_buffer(self, store):
        for i in range(5):
            store.push_front('events', f'e{i}')
        store.trim('events', 3)
        assert store.range('events') == ['e4', 'e3', 'e2']
        assert store.range('events', 0, 0) == ['e4']
        assert store.range('nothing') == []

    def test_ping(self, store):
        assert store.ping() is True


class TestRedisStore:

    def test_errors_wrapped(self):
        client = MagicMock()
        client.get.side_effect = redis.ConnectionError('refused')
        with pytest.raises(StoreError):
            RedisStore(client).get('k')

    def test_add_uses_set_nx(self):
        client = MagicMock()
        client.set.return_value = None
        assert RedisStore(client).add('claim', '1', 30) is False
        client.set.assert_called_once_with('claim', '1', ex=30, nx=True)

    def test_incr_window_is_one_transaction(self):
        client = MagicMock()
        pipe = client.pipeline.return_value.__enter__.return_value
        pipe.execute.return_value = [True, 1]

        assert RedisStore(client).incr_window('rate_limit:login:1.2.3.4', 300) == 1
        client.pipeline.assert_called_once_with(transaction=True)
        pipe.set.assert_called_once_with('rate_limit:login:1.2.3.4', 0, ex=300, nx=True)
        pipe.incr.assert_called_once_with('rate_limit:login:1.2.3.4')

    def test_incr_window_error_wrapped(self):
        client = MagicMock()
        client.pipeline.return_value.__enter__.return_value.execute.side_effect = (
            redis.TimeoutError('slow')
        )
        with pytest.raises(StoreError):
            RedisStore(client).incr_window('k', 60)

    def test_trim_keeps_length(self):
        client = MagicMock()
        RedisStore(client).trim('events', 1000)
        client.ltrim.assert_called_once_with('events', 0, 999)


class TestCreateStore:

    def test_memory_without_redis_url(self):
        assert isinstance(create_store({'REDIS_URL': None}), MemoryStore)

    def test_redis_when_reachable(self):
        client = MagicMock()
        with patch('cultureconnect.security.store.redis.Redis.from_url', return_value=client):
            store = create_store({'REDIS_URL': 'redis://cache:6379/0'})
        assert isinstance(store, RedisStore)
        assert store.client is client

    def test_falls_back_when_unreachable(self):
        client = MagicMock()
        client.ping.side_effect = redis.ConnectionError('refused')
        with patch('cultureconnect.security.store.redis.Redis.from_url', return_value=client):
            store = create_store({'REDIS_URL': 'redis://cache:6379/0'}, clock=FakeClock())
        assert isinstance(store, MemoryStore)

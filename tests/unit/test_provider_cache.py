"""Unit tests for ProviderClientCache."""

import hashlib

import pytest

from kgrag.providers.cache import ProviderClientCache


class FakeClient:
    def __init__(self, fail_on_close: bool = False) -> None:
        self.closed = False
        self.fail_on_close = fail_on_close

    async def close(self) -> None:
        if self.fail_on_close:
            raise RuntimeError("already gone")
        self.closed = True


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestProviderClientCache:
    """Test LRU and TTL behaviour."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def built(self):
        return []

    @pytest.fixture
    def factory(self, built):
        def _factory(api_key):
            client = FakeClient()
            built.append((api_key, client))
            return client

        return _factory

    def test_reuses_client_for_same_key(self, factory, built):
        cache = ProviderClientCache(max_size=2, ttl_seconds=60)

        first = cache.get("sk-a", factory)
        second = cache.get("sk-a", factory)

        assert first is second
        assert len(built) == 1
        assert len(cache) == 1

    def test_distinct_keys_get_distinct_clients(self, factory):
        cache = ProviderClientCache(max_size=2, ttl_seconds=60)
        assert cache.get("sk-a", factory) is not cache.get("sk-b", factory)

    def test_evicts_least_recently_used(self, factory, built):
        cache = ProviderClientCache(max_size=2, ttl_seconds=60)

        a = cache.get("sk-a", factory)
        cache.get("sk-b", factory)
        cache.get("sk-a", factory)  # a is now most recent
        cache.get("sk-c", factory)  # evicts b

        assert len(cache) == 2
        assert cache.get("sk-a", factory) is a
        cache.get("sk-b", factory)
        assert [key for key, _ in built] == ["sk-a", "sk-b", "sk-c", "sk-b"]

    def test_expired_entries_are_rebuilt(self, factory, built, clock):
        cache = ProviderClientCache(max_size=2, ttl_seconds=300, clock=clock)

        first = cache.get("sk-a", factory)
        clock.now = 299.0
        assert cache.get("sk-a", factory) is first
        clock.now = 300.0
        assert cache.get("sk-a", factory) is not first
        assert len(built) == 2
        assert len(cache) == 1

    def test_cleanup_drops_expired(self, factory, clock):
        cache = ProviderClientCache(max_size=5, ttl_seconds=10, clock=clock)
        cache.get("sk-a", factory)
        clock.now = 5.0
        cache.get("sk-b", factory)
        clock.now = 12.0

        assert cache.cleanup() == 1
        assert len(cache) == 1

    def test_clear(self, factory):
        cache = ProviderClientCache()
        cache.get("sk-a", factory)
        cache.clear()
        assert len(cache) == 0

    def test_keys_are_digests(self, factory):
        cache = ProviderClientCache()
        cache.get("sk-secret", factory)

        assert "sk-secret" not in cache._entries
        assert hashlib.sha256(b"sk-secret").hexdigest() in cache._entries

    def test_instances_are_isolated(self, factory):
        one = ProviderClientCache()
        two = ProviderClientCache()
        one.get("sk-a", factory)
        assert len(two) == 0

    @pytest.mark.parametrize("kwargs", [{"max_size": 0}, {"ttl_seconds": 0}, {"ttl_seconds": -1}])
    def test_invalid_parameters(self, kwargs):
        with pytest.raises(ValueError):
            ProviderClientCache(**kwargs)

    def test_empty_key_rejected(self, factory):
        with pytest.raises(ValueError):
            ProviderClientCache().get("", factory)


@pytest.mark.asyncio
class TestRetiredClients:
    """Dropped clients are closed, never just forgotten."""

    @pytest.fixture
    def factory(self):
        return lambda api_key: FakeClient()

    async def test_evicted_client_is_closed(self, factory):
        cache = ProviderClientCache(max_size=1, ttl_seconds=60)
        first = cache.get("sk-a", factory)
        cache.get("sk-b", factory)

        assert cache.retired_count == 1
        assert first.closed is False

        assert await cache.close_retired() == 1
        assert first.closed is True
        assert cache.retired_count == 0

    async def test_expired_client_is_retired(self, factory):
        clock = FakeClock()
        cache = ProviderClientCache(max_size=2, ttl_seconds=10, clock=clock)
        first = cache.get("sk-a", factory)
        clock.now = 10.0
        cache.get("sk-a", factory)

        await cache.close_retired()

        assert first.closed is True
        assert len(cache) == 1

    async def test_cleanup_and_clear_retire_clients(self, factory):
        clock = FakeClock()
        cache = ProviderClientCache(max_size=5, ttl_seconds=10, clock=clock)
        old = cache.get("sk-a", factory)
        clock.now = 5.0
        young = cache.get("sk-b", factory)
        clock.now = 12.0

        cache.cleanup()
        assert cache.retired_count == 1
        cache.clear()
        assert cache.retired_count == 2

        await cache.close_retired()
        assert old.closed and young.closed

    async def test_aclose_closes_everything(self, factory):
        cache = ProviderClientCache(max_size=1, ttl_seconds=60)
        evicted = cache.get("sk-a", factory)
        live = cache.get("sk-b", factory)

        await cache.aclose()

        assert evicted.closed and live.closed
        assert len(cache) == 0
        assert cache.retired_count == 0

    async def test_close_failure_does_not_stop_others(self):
        clients = iter([FakeClient(fail_on_close=True), FakeClient()])
        cache = ProviderClientCache(max_size=5, ttl_seconds=60)
        cache.get("sk-a", lambda key: next(clients))
        second = cache.get("sk-b", lambda key: next(clients))

        await cache.aclose()

        assert second.closed is True

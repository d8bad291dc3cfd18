import pytest

from mixinkit.neighbors import RELAYER_TTL, ConfirmCache, NeighborMap, RelayersMap


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def test_confirm_none_key():
    cache = ConfirmCache()
    assert cache.contains(None, 3600) is False
    with pytest.raises(ValueError):
        cache.store(None, 0.0)


def test_confirm_expiry():
    clock = FakeClock()
    cache = ConfirmCache(clock=clock)
    cache.store(b"key")
    assert cache.contains(b"key", 60)
    clock.now += 61
    assert not cache.contains(b"key", 60)
    assert cache.contains(b"key", 3600)
    assert not cache.contains(b"other", 3600)


def test_confirm_explicit_timestamp():
    clock = FakeClock()
    cache = ConfirmCache(clock=clock)
    cache.store(b"old", clock.now - 120)
    assert not cache.contains(b"old", 60)
    assert cache.contains(b"old", 3600)


def test_confirm_capacity_evicts_oldest():
    cache = ConfirmCache(capacity=2, clock=FakeClock())
    for key in (b"a", b"b", b"c"):
        cache.store(key)
    assert not cache.contains(b"a", 3600)
    assert cache.contains(b"b", 3600)
    assert cache.contains(b"c", 3600)


def test_relayers_add_and_get():
    clock = FakeClock()
    relayers = RelayersMap(clock=clock)
    relayers.add(b"peer", b"r1")
    relayers.add(b"peer", b"r2")
    relayers.add(b"peer", b"r1")
    assert relayers.get(b"peer") == [b"r1", b"r2"]
    assert relayers.get(b"unknown") == []


def test_relayers_expire_and_refresh():
    clock = FakeClock()
    relayers = RelayersMap(clock=clock)
    relayers.add(b"peer", b"r1")
    relayers.add(b"peer", b"r2")
    clock.now += RELAYER_TTL * 2 / 3
    relayers.add(b"peer", b"r1")
    clock.now += RELAYER_TTL * 2 / 3
    assert relayers.get(b"peer") == [b"r1"]
    clock.now += RELAYER_TTL * 2
    assert relayers.get(b"peer") == []
    relayers.add(b"peer", b"r2")
    assert relayers.get(b"peer") == [b"r2"]


def test_neighbor_map_put_set_delete():
    peers = NeighborMap()
    assert peers.put(b"a", "peer-a") is True
    assert peers.put(b"a", "peer-b") is False
    assert peers.get(b"a") == "peer-a"
    peers.set(b"a", "peer-b")
    assert peers.get(b"a") == "peer-b"
    peers.delete(b"a")
    peers.delete(b"a")
    assert peers.get(b"a") is None
    assert peers.put(b"a", "peer-c") is True


def test_neighbor_map_values():
    peers = NeighborMap()
    peers.put(b"a", "peer-a")
    peers.put(b"b", "peer-b")
    assert sorted(peers.values()) == ["peer-a", "peer-b"]


def test_neighbor_map_put_over_none():
    peers = NeighborMap()
    peers.set(b"a", None)
    assert peers.put(b"a", "peer-a") is True
    assert peers.values() == ["peer-a"]
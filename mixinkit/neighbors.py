"""Thread-safe maps of confirmations, neighbours and remote relayers."""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Hashable, List, Optional, TypeVar

RELAYER_TTL = 60.0

Clock = Callable[[], float]
P = TypeVar("P")


class ConfirmCache:
    """Bounded cache of keys with the time they were confirmed."""

    def __init__(self, capacity: int = 1 << 20, clock: Clock = time.time) -> None:
        self._capacity = capacity
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: "OrderedDict[bytes, float]" = OrderedDict()

    def contains(self, key: Optional[bytes], duration: float) -> bool:
        """True if ``key`` was stored less than ``duration`` seconds ago."""
        if key is None:
            return False
        with self._lock:
            ts = self._entries.get(key)
            if ts is None:
                return False
            self._entries.move_to_end(key)
        return ts + duration > self._clock()

    def store(self, key: Optional[bytes], ts: Optional[float] = None) -> None:
        """Record ``key`` as confirmed at ``ts`` (now by default)."""
        if key is None:
            raise ValueError("confirm cache key is required")
        if ts is None:
            ts = self._clock()
        with self._lock:
            self._entries[key] = ts
            self._entries.move_to_end(key)
            while len(self._entries) > self._capacity:
                self._entries.popitem(last=False)


@dataclass
class _RemoteRelayer:
    id: Hashable
    active_at: float


class RelayersMap:
    """Remote relayers through which a peer was last seen, expiring after a minute."""

    def __init__(self, clock: Clock = time.time) -> None:
        self._clock = clock
        self._lock = threading.RLock()
        self._relayers: Dict[Hashable, List[_RemoteRelayer]] = {}

    def get(self, key: Hashable) -> list:
        """Return the ids of the still active relayers for ``key``."""
        now = self._clock()
        with self._lock:
            return [
                r.id
                for r in self._relayers.get(key, [])
                if r.active_at + RELAYER_TTL >= now
            ]

    def add(self, key: Hashable, relayer_id: Hashable) -> None:
        """Mark ``relayer_id`` as active for ``key``, dropping expired ones."""
        now = self._clock()
        with self._lock:
            alive = [
                r for r in self._relayers.get(key, []) if r.active_at + RELAYER_TTL > now
            ]
            for r in alive:
                if r.id == relayer_id:
                    r.active_at = now
                    break
            else:
                alive.append(_RemoteRelayer(id=relayer_id, active_at=now))
            self._relayers[key] = alive


class NeighborMap(Generic[P]):
    """Connected peers by id."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._peers: Dict[Hashable, P] = {}

    def get(self, key: Hashable) -> Optional[P]:
        with self._lock:
            return self._peers.get(key)

    def delete(self, key: Hashable) -> None:
        with self._lock:
            self._peers.pop(key, None)

    def set(self, key: Hashable, peer: P) -> None:
        with self._lock:
            self._peers[key] = peer

    def put(self, key: Hashable, peer: P) -> bool:
        """Insert ``peer`` unless one is already present; report success."""
        with self._lock:
            if self._peers.get(key) is not None:
                return False
            self._peers[key] = peer
            return True

    def values(self) -> List[P]:
        with self._lock:
            return list(self._peers.values())
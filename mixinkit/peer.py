"""A peer in the relay network: outgoing queues, routing and message dispatch."""

from __future__ import annotations

import hashlib
import queue
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Protocol

from . import logger
from .framing import MessageType
from .messages import (
    HASH_SIZE,
    KEY_SIZE,
    PeerMessage,
    SyncPoint,
    build_commitments_message,
    build_relay_message,
    build_snapshot_confirm_message,
    build_transaction_request_message,
    parse_network_message,
)
from .metric import MetricPool
from .neighbors import ConfirmCache, NeighborMap, RelayersMap

MSG_PRIORITY_NORMAL = 0
MSG_PRIORITY_HIGH = 1

RING_SIZE = 1024
CONFIRM_WINDOW = 60.0
SNAPSHOT_CONFIRM_WINDOW = 3600.0
CONSUMER_AUTH_SIZE = 137


def _digest(data: bytes) -> bytes:
    """32-byte digest used to derive local deduplication keys."""
    return hashlib.blake2b(data, digest_size=32).digest()


class SyncHandle(Protocol):
    """What a peer needs from the node it belongs to."""

    def sign_data(self, data: bytes) -> bytes: ...

    def authenticate_as(self, recipient_id: bytes, msg: bytes, timeout_sec: int) -> Any:
        """Return a token with ``peer_id``, ``is_relayer`` and ``data``."""
        ...

    def build_graph(self) -> List[SyncPoint]: ...

    def update_sync_point(
        self, peer_id: bytes, points: List[SyncPoint], data: Optional[bytes], sig: Optional[bytes]
    ) -> None: ...

    def send_transaction_to_peer(self, peer_id: bytes, tx: bytes) -> None: ...

    def cache_put_transaction(self, peer_id: bytes, tx: Optional[bytes]) -> None: ...

    def cosi_queue_external_announcement(
        self, peer_id: bytes, snapshot: Optional[bytes], commitment: bytes, sig: Optional[bytes]
    ) -> None: ...

    def cosi_aggregate_self_commitments(
        self,
        peer_id: bytes,
        snap: bytes,
        commitment: bytes,
        want_tx: bool,
        data: Optional[bytes],
        sig: Optional[bytes],
    ) -> None: ...

    def cosi_queue_external_challenge(
        self, peer_id: bytes, snap: bytes, signature: bytes, mask: int, tx: Optional[bytes]
    ) -> None: ...

    def cosi_queue_external_full_challenge(
        self,
        peer_id: bytes,
        snapshot: Optional[bytes],
        commitment: bytes,
        challenge: bytes,
        tx: Optional[bytes],
    ) -> None: ...

    def cosi_aggregate_self_responses(self, peer_id: bytes, snap: bytes, response: bytes) -> None: ...

    def verify_and_queue_append_snapshot_finalization(
        self, peer_id: bytes, snapshot: Optional[bytes]
    ) -> None: ...

    def cosi_queue_external_commitments(
        self, peer_id: bytes, commitments: List[bytes], data: Optional[bytes], sig: Optional[bytes]
    ) -> None: ...


@dataclass
class ChanMsg:
    """A queued outgoing message and the key that marks it as sent."""

    key: Optional[bytes]
    data: bytes


class Peer:
    """Either the local node or one of its connected neighbours."""

    def __init__(
        self,
        handle: Optional[SyncHandle],
        id_for_network: bytes,
        address: str,
        is_relayer: bool = False,
        *,
        cache: Optional[ConfirmCache] = None,
        metrics: bool = False,
        ring_size: int = RING_SIZE,
    ) -> None:
        self.id_for_network = bytes(id_for_network)
        self.address = address
        self.handle = handle
        self.is_relayer = is_relayer
        self.relayers: NeighborMap[Peer] = NeighborMap()
        self.consumers: NeighborMap[Peer] = NeighborMap()
        self.remote_relayers = RelayersMap()
        self.snapshots_caches = cache if cache is not None else ConfirmCache()
        self.high_ring: "queue.Queue[ChanMsg]" = queue.Queue(maxsize=ring_size)
        self.normal_ring: "queue.Queue[ChanMsg]" = queue.Queue(maxsize=ring_size)
        self.sync_ring: "queue.Queue[List[SyncPoint]]" = queue.Queue(maxsize=ring_size)
        self.sent_metric = MetricPool(enabled=metrics)
        self.received_metric = MetricPool(enabled=metrics)
        self.consumer_auth: Any = None
        self.closing = False

    def __repr__(self) -> str:
        return f"Peer({self.id_for_network.hex()}, {self.address!r}, relayer={self.is_relayer})"

    def _require_handle(self) -> SyncHandle:
        if self.handle is None:
            raise RuntimeError("peer has no sync handle")
        return self.handle

    # Queues

    def offer(self, priority: int, msg: ChanMsg) -> bool:
        """Queue ``msg`` without blocking; False if closing or the ring is full."""
        if priority == MSG_PRIORITY_NORMAL:
            ring = self.normal_ring
        elif priority == MSG_PRIORITY_HIGH:
            ring = self.high_ring
        else:
            raise ValueError(f"invalid message priority {priority}")
        if self.closing:
            return False
        try:
            ring.put_nowait(msg)
        except queue.Full:
            return False
        return True

    def poll_ring(self, ring: "queue.Queue[ChanMsg]", limit: int) -> List[ChanMsg]:
        """Take up to ``limit`` messages, dropping those confirmed in the last minute."""
        msgs: List[ChanMsg] = []
        while len(msgs) < limit:
            try:
                msg = ring.get_nowait()
            except queue.Empty:
                break
            if self.snapshots_caches.contains(msg.key, CONFIRM_WINDOW):
                continue
            msgs.append(msg)
        return msgs

    def _offer_to_peer_with_cache_check(self, peer: "Peer", priority: int, msg: ChanMsg) -> bool:
        if peer.id_for_network == self.id_for_network:
            return True
        if self.snapshots_caches.contains(msg.key, CONFIRM_WINDOW):
            return True
        return peer.offer(priority, msg)

    # Routing

    def neighbors(self) -> List["Peer"]:
        return self.relayers.values() + self.consumers.values()

    def get_neighbors(self, key: bytes) -> List["Peer"]:
        """Directly connected peers with id ``key``, relayer first."""
        found = [self.relayers.get(key), self.consumers.get(key)]
        return [p for p in found if p is not None]

    def get_remote_relayers(self, key: bytes) -> List["Peer"]:
        """Connected relayers through which ``key`` was recently announced."""
        peers: List[Peer] = []
        for relayer_id in self.remote_relayers.get(key):
            peers.extend(self.get_neighbors(relayer_id))
        return peers

    def send_to_peer(
        self, to: bytes, msg_type: int, key: Optional[bytes], data: bytes, priority: int
    ) -> None:
        """Deliver ``data`` to ``to`` directly or wrapped for a relayer."""
        to = bytes(to)
        if to == self.id_for_network:
            return
        if self.snapshots_caches.contains(key, CONFIRM_WINDOW):
            return
        self.sent_metric.handle(msg_type)

        for peer in self.get_neighbors(to):
            if peer.offer(priority, ChanMsg(key, data)):
                return
            logger.verbosef("peer.offer(%s) send timeout\n", peer.id_for_network.hex())

        relay = build_relay_message(self.id_for_network, to, data)
        base = _digest(_digest(relay) + b"REMOTE")
        relayers = self.get_remote_relayers(to) or self.relayers.values()
        for peer in relayers:
            if not peer.is_relayer:
                raise RuntimeError(f"peer {peer.id_for_network.hex()} is not a relayer")
            rk = _digest(base + peer.id_for_network)
            if self._offer_to_peer_with_cache_check(peer, priority, ChanMsg(rk, relay)):
                return
            logger.verbosef("me.offerToPeerWithCacheCheck(%s) send timeout\n", peer.id_for_network.hex())

    def _send_high_to_peer(self, to: bytes, msg_type: int, key: Optional[bytes], data: bytes) -> None:
        self.send_to_peer(to, msg_type, key, data, MSG_PRIORITY_HIGH)

    # Outgoing messages

    def confirm_snapshot_for_peer(self, id_for_network: bytes, snap: bytes) -> None:
        """Remember that ``id_for_network`` already has snapshot ``snap``."""
        self.snapshots_caches.store(bytes(id_for_network) + bytes(snap) + b"SCO")

    def send_snapshot_confirm_message(self, id_for_network: bytes, snap: bytes) -> None:
        key = bytes(id_for_network) + bytes(snap) + b"SNAP" + bytes([MessageType.SNAPSHOT_CONFIRM])
        self._send_high_to_peer(
            id_for_network, MessageType.SNAPSHOT_CONFIRM, key, build_snapshot_confirm_message(snap)
        )

    def send_transaction_request_message(self, id_for_network: bytes, tx: bytes) -> None:
        key = bytes(id_for_network) + bytes(tx) + b"TX" + bytes([MessageType.TRANSACTION_REQUEST])
        self._send_high_to_peer(
            id_for_network,
            MessageType.TRANSACTION_REQUEST,
            key,
            build_transaction_request_message(tx),
        )

    def send_commitments_message(self, id_for_network: bytes, commitments: Iterable[bytes]) -> None:
        data = build_commitments_message(self._require_handle().sign_data, commitments)
        key = bytes(id_for_network) + b"CR" + _digest(data)
        self._send_high_to_peer(id_for_network, MessageType.COMMITMENTS, key, data)

    # Incoming messages

    def _relay_or_handle_peer_message(self, relayer_id: bytes, msg: PeerMessage) -> None:
        data = msg.data
        if len(data) < 1 + 2 * HASH_SIZE:
            return
        sender, to = data[1:33], data[33:65]
        if to == self.id_for_network:
            inner = parse_network_message(msg.version, data[65:])
            self.handle_peer_message(sender, inner)
            return
        if not self.is_relayer:
            return
        relayers = self.get_neighbors(to) or self.get_remote_relayers(to)
        base = _digest(_digest(data) + b"REMOTE")
        for peer in relayers:
            if peer.id_for_network == relayer_id:
                continue
            rk = _digest(base + peer.id_for_network)
            if self._offer_to_peer_with_cache_check(peer, MSG_PRIORITY_NORMAL, ChanMsg(rk, data)):
                return
            logger.verbosef("me.offerToPeerWithCacheCheck(%s) relayer timeout\n", peer.id_for_network.hex())

    def _update_remote_relayer_consumers(self, relayer_id: bytes, data: bytes) -> None:
        if not self.is_relayer:
            return
        handle = self._require_handle()
        size = KEY_SIZE + CONSUMER_AUTH_SIZE
        for start in range(0, len(data) - size + 1, size):
            chunk = data[start:start + size]
            consumer_id = chunk[:HASH_SIZE]
            token = handle.authenticate_as(relayer_id, chunk[HASH_SIZE:], 0)
            if bytes(token.peer_id) != consumer_id:
                raise ValueError(f"consumer id mismatch {consumer_id.hex()}")
            self.remote_relayers.add(consumer_id, bytes(relayer_id))

    def handle_peer_message(self, peer_id: bytes, msg: PeerMessage) -> None:
        """Act on a message received from ``peer_id``."""
        peer_id = bytes(peer_id)
        kind = msg.type
        if kind == MessageType.RELAY:
            self._relay_or_handle_peer_message(peer_id, msg)
            return
        if kind == MessageType.CONSUMERS:
            self._update_remote_relayer_consumers(peer_id, msg.data)
            return
        if kind == MessageType.SNAPSHOT_CONFIRM:
            self.confirm_snapshot_for_peer(peer_id, msg.snapshot_hash)
            return
        if kind not in _HANDLED:
            return
        handle = self._require_handle()
        logger.verbosef("network.handle handlePeerMessage %d %s\n", int(kind), peer_id.hex())
        if kind == MessageType.COMMITMENTS:
            handle.cosi_queue_external_commitments(peer_id, msg.commitments, msg.unsigned, msg.signature)
        elif kind == MessageType.GRAPH:
            handle.update_sync_point(peer_id, msg.graph, msg.unsigned, msg.signature)
            for peer in self.get_neighbors(peer_id):
                try:
                    peer.sync_ring.put_nowait(msg.graph)
                except queue.Full:
                    pass
        elif kind == MessageType.TRANSACTION_REQUEST:
            handle.send_transaction_to_peer(peer_id, msg.transaction_hash)
        elif kind == MessageType.TRANSACTION:
            handle.cache_put_transaction(peer_id, msg.transaction)
        elif kind == MessageType.SNAPSHOT_ANNOUNCEMENT:
            handle.cosi_queue_external_announcement(peer_id, msg.snapshot, msg.commitment, msg.signature)
        elif kind == MessageType.SNAPSHOT_COMMITMENT:
            handle.cosi_aggregate_self_commitments(
                peer_id, msg.snapshot_hash, msg.commitment, msg.want_tx, msg.unsigned, msg.signature
            )
        elif kind == MessageType.TRANSACTION_CHALLENGE:
            handle.cosi_queue_external_challenge(
                peer_id, msg.snapshot_hash, msg.cosi_signature, msg.cosi_mask, msg.transaction
            )
        elif kind == MessageType.FULL_CHALLENGE:
            handle.cosi_queue_external_full_challenge(
                peer_id, msg.snapshot, msg.commitment, msg.challenge, msg.transaction
            )
        elif kind == MessageType.SNAPSHOT_RESPONSE:
            handle.cosi_aggregate_self_responses(peer_id, msg.snapshot_hash, msg.response)
        elif kind == MessageType.SNAPSHOT_FINALIZATION:
            handle.verify_and_queue_append_snapshot_finalization(peer_id, msg.snapshot)

    def metric(self) -> Dict[str, MetricPool]:
        """The enabled metric pools, by direction."""
        metrics: Dict[str, MetricPool] = {}
        if self.sent_metric.enabled:
            metrics["sent"] = self.sent_metric
        if self.received_metric.enabled:
            metrics["received"] = self.received_metric
        return metrics


_HANDLED = frozenset(
    {
        MessageType.COMMITMENTS,
        MessageType.GRAPH,
        MessageType.TRANSACTION_REQUEST,
        MessageType.TRANSACTION,
        MessageType.SNAPSHOT_ANNOUNCEMENT,
        MessageType.SNAPSHOT_COMMITMENT,
        MessageType.TRANSACTION_CHALLENGE,
        MessageType.FULL_CHALLENGE,
        MessageType.SNAPSHOT_RESPONSE,
        MessageType.SNAPSHOT_FINALIZATION,
    }
)
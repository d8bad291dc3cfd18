"""Bringing a neighbour up to date with the local snapshot graph.

Snapshots handed around here are objects with the attributes ``node_id``,
``round_number``, ``topological_order``, ``hash`` and ``payload``. The
last one is the snapshot's versioned encoding, sent as it is.
"""

from __future__ import annotations

import time
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from . import logger
from .framing import MessageType
from .messages import SyncPoint
from .peer import MSG_PRIORITY_NORMAL, SNAPSHOT_CONFIRM_WINDOW, Peer

SYNC_LIMIT = 200
SYNC_PAUSE = 0.1
ROUND_MARGIN = 2


class FutureSnapshotError(Exception):
    """A local snapshot is too far ahead of what the neighbour has."""

    def __init__(self, node_id: bytes, round_number: int, remote_round: int, offset: int) -> None:
        super().__init__(f"FUTURE {node_id.hex()} {round_number} {remote_round}")
        self.node_id = node_id
        self.round_number = round_number
        self.remote_round = remote_round
        self.offset = offset


def _send_snapshot_finalization(peer: Peer, to: bytes, snapshot: Any) -> bool:
    """Queue a finalized snapshot for ``to``; False if it is known there."""
    to = bytes(to)
    if to == peer.id_for_network:
        return False
    snap_hash = bytes(snapshot.hash)
    if peer.snapshots_caches.contains(to + snap_hash + b"SCO", SNAPSHOT_CONFIRM_WINDOW):
        return False
    kind = MessageType.SNAPSHOT_FINALIZATION
    data = bytes([kind]) + bytes(snapshot.payload)
    key = to + snap_hash + b"SNAP" + bytes([kind])
    peer.send_to_peer(to, kind, key, data, MSG_PRIORITY_NORMAL)
    return True


def topological_offset(handle: Any, local: Iterable[SyncPoint], remote: Iterable[SyncPoint]) -> int:
    """The lowest topological order from which the remote graph lags behind.

    For every node the remote side has not passed, the round two past the
    remote one is read; the smallest first topology among them wins. Zero
    means there is nothing to start from.
    """
    remote_by_node: Dict[bytes, SyncPoint] = {bytes(p.node_id): p for p in remote}
    offset = 0
    for point in local:
        node_id = bytes(point.node_id)
        theirs = remote_by_node.get(node_id)
        if theirs is None or theirs.number > point.number:
            continue
        number = theirs.number + ROUND_MARGIN
        snapshots = handle.read_snapshots_for_node_round(node_id, number)
        if not snapshots:
            logger.verbosef(
                "network.sync topological_offset local round empty %s:%d:%d\n",
                node_id.hex(),
                number,
                point.number,
            )
            continue
        topo = snapshots[0].topological_order
        if offset == 0 or topo < offset:
            offset = topo
    return offset


def sync_since(
    peer: Peer,
    graph: Mapping[bytes, SyncPoint],
    target: Peer,
    offset: int,
    threshold: int,
) -> Tuple[int, bool]:
    """Send one batch of snapshots after ``offset`` to ``target``.

    Returns the new offset and whether more snapshots may follow. Raises
    :class:`FutureSnapshotError` when a snapshot is ``2 * threshold`` or
    more rounds ahead of the target's graph.
    """
    handle = peer.handle
    if handle is None:
        raise RuntimeError("peer has no sync handle")
    logger.verbosef("network.sync sync_since %s %d\n", target.id_for_network.hex(), offset)
    snapshots: List[Any] = list(handle.read_snapshots_since_topology(offset, SYNC_LIMIT))
    for snapshot in snapshots:
        node_id = bytes(snapshot.node_id)
        point: Optional[SyncPoint] = graph.get(node_id)
        remote_round = point.number if point is not None else 0
        if snapshot.round_number < remote_round:
            offset = snapshot.topological_order
            continue
        if snapshot.round_number >= remote_round + threshold * 2:
            raise FutureSnapshotError(node_id, snapshot.round_number, remote_round, offset)
        _send_snapshot_finalization(peer, target.id_for_network, snapshot)
        offset = snapshot.topological_order
    time.sleep(SYNC_PAUSE)
    return offset, len(snapshots) >= SYNC_LIMIT


def sync_head_round(
    peer: Peer,
    local: Mapping[bytes, SyncPoint],
    remote: Mapping[bytes, SyncPoint],
    target: Peer,
    node_id: bytes,
    threshold: int,
) -> int:
    """Send the rounds just past the target's head for ``node_id``.

    Nothing is sent when the target is ahead of the local graph. Returns
    the number of snapshots passed on for sending.
    """
    handle = peer.handle
    if handle is None:
        raise RuntimeError("peer has no sync handle")
    node_id = bytes(node_id)
    theirs = remote.get(node_id)
    ours = local.get(node_id)
    remote_final = theirs.number if theirs is not None else 0
    local_final = ours.number if ours is not None else 0
    if remote_final > local_final:
        return 0
    logger.verbosef(
        "network.sync sync_head_round %s %s:%d\n",
        target.id_for_network.hex(),
        node_id.hex(),
        remote_final,
    )
    sent = 0
    for number in range(remote_final, remote_final + threshold + ROUND_MARGIN + 1):
        try:
            snapshots = handle.read_snapshots_for_node_round(node_id, number) or []
        except Exception:
            snapshots = []
        for snapshot in snapshots:
            try:
                if _send_snapshot_finalization(peer, target.id_for_network, snapshot):
                    sent += 1
            except (RuntimeError, ValueError) as err:
                logger.verbosef(
                    "network.sync send finalization %s %s\n", target.id_for_network.hex(), err
                )
    return sent
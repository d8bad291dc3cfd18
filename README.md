# mixinkit

Building blocks for working with nodes of a decentralized asset-transfer
kernel network: the peer wire messages and their framing, a peer's outgoing
queues and relay routing, helpers that decide which finalized snapshots to
send to a neighbour, a JSON-RPC client, and the response envelope of the RPC
server. It uses only the standard library.

## Install

    pip install .

To run the tests:

    pip install ".[test]"
    pytest

## Modules

- `mixinkit.logger`: levelled logging to standard error (`set_level`,
  `println`, `printf`, `verbosef`, `debugf`). `set_filter` installs a regular
  expression; verbose and debug lines that do not match it are dropped, and
  `filter_output` returns the formatted line or `""`. Levels are `ERROR`,
  `INFO`, `VERBOSE` and `DEBUG`.
- `mixinkit.framing`: the 6-byte transport header (version 2, a 32-bit
  big-endian size, messages of 1 byte to 32 MiB). `encode_frame`,
  `read_frame` and `write_frame` work on bytes and binary streams;
  `StreamClient` wraps a connected socket with `send`, `receive` and `close`.
  `MessageType` lists the peer message types; errors raise `FramingError`.
- `mixinkit.metric`: `MetricPool` counts messages by type when enabled and
  dumps the counters with `to_json`.
- `mixinkit.neighbors`: `ConfirmCache` (keys with the time they were
  confirmed, bounded in size), `RelayersMap` (relayers seen for a peer within
  the last minute) and `NeighborMap` (connected peers by id).
- `mixinkit.messages`: a builder for each peer message
  (`build_snapshot_commitment_message`, `build_commitments_message`,
  `build_relay_message`, ...) and `parse_network_message`, which turns raw
  bytes into a `PeerMessage` or raises `MessageError`. Snapshots and
  transactions inside messages are kept as their encoded bytes.
- `mixinkit.peer`: `Peer` with high and normal priority queues (`offer`,
  `poll_ring`), direct and relayed delivery (`send_to_peer`), neighbour
  lookup, and `handle_peer_message`, which relays messages or passes them to
  a `SyncHandle` supplied by the caller.
- `mixinkit.syncing`: `topological_offset`, `sync_since` and
  `sync_head_round` work out where a neighbour lags and queue finalized
  snapshots for it. Snapshots are any objects with `node_id`,
  `round_number`, `topological_order`, `hash` and `payload`.
- `mixinkit.client`: `call_rpc` and helpers built on it: `get_info`,
  `get_transaction`, `get_snapshot`, `get_deposit_transaction`,
  `get_utxo`, `send_raw_transaction`, `list_mint_distributions`. Failures
  raise `RPCError`.
- `mixinkit.render`: `Render` builds the server's JSON envelope
  (`render_data`, `render_error`) as a `Response`, which is also a WSGI
  application; `cors_middleware` wraps a WSGI application with the server's
  CORS handling.
- `mixinkit.objects`: `object_response` serves `/objects/<hash>[/<field>]`
  from a transaction's extra, with `parse_data_uri`, `parse_json`,
  `find_charset` and `decide_content_type` deciding the content type.

## Example

```python
from mixinkit.client import RPCError, call_rpc, get_info

try:
    info = get_info("http://127.0.0.1:6860")
    print(info["consensus"].hex(), info["timestamp"], info["pool"])
    snapshots = call_rpc("http://127.0.0.1:6860", "listsnapshots", [0, 10, False, False])
except RPCError as err:
    print("node refused:", err)
```

Framing messages over a socket:

```python
import socket
from mixinkit.framing import StreamClient

client = StreamClient(socket.create_connection(("127.0.0.1", 7000)))
with client:
    client.send(b"hello mixin")
```

Parsing a message:

```python
from mixinkit.messages import build_snapshot_confirm_message, parse_network_message

msg = parse_network_message(2, build_snapshot_confirm_message(bytes(32)))
print(msg.type, msg.snapshot_hash.hex())
```

## What it does not do

mixinkit is a library, not a node. It has no command line and no daemon,
does not store the graph, does not verify signatures or run consensus, and
does not decode snapshots or transactions beyond the fields named above.
Signing and consensus steps are left to the `SyncHandle` you provide. The
transport is plain framed sockets; there is no QUIC or TLS listener. The RPC
server is limited to its response envelope, CORS wrapper and object
serving; there is no method dispatch over a store.
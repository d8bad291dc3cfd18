"""JSON RPC client for a kernel node."""

from __future__ import annotations

import json
import urllib.error
import urllib.request
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Sequence, Tuple

RPC_TIMEOUT = 20.0
HASH_SIZE = 32


class RPCError(Exception):
    """The node could not be reached or returned an error or malformed data."""


def call_rpc(node: str, method: str, params: Sequence[Any]) -> Any:
    """Call ``method`` on ``node`` and return the decoded ``data`` field.

    Decimal numbers in the reply come back as :class:`decimal.Decimal`.
    Returns None when the node sends no data.
    """
    params = list(params)
    body = json.dumps({"method": method, "params": params}).encode()
    request = urllib.request.Request(
        node,
        data=body,
        method="POST",
        headers={"Content-Type": "application/json", "Connection": "close"},
    )
    where = f"CallMixinRPC({node}, {method}, {params})"
    try:
        with urllib.request.urlopen(request, timeout=RPC_TIMEOUT) as response:
            status = response.status
            payload = response.read()
    except urllib.error.HTTPError as err:
        raise RPCError(f"{where} => status {err.code}") from None
    except (urllib.error.URLError, OSError) as err:
        raise RPCError(f"{where} => {err}") from err
    if status != 200:
        raise RPCError(f"{where} => status {status}")
    try:
        result = json.loads(payload, parse_float=Decimal)
    except ValueError as err:
        raise RPCError(f"{where} => {err}") from err
    if not isinstance(result, dict):
        raise RPCError(f"{where} => malformed response")
    if result.get("error") is not None:
        raise RPCError(f"{where} => {result['error']}")
    return result.get("data")


def _field(data: Any, name: str) -> Any:
    if not isinstance(data, dict) or name not in data:
        raise RPCError(f"missing {name} in {data!r}")
    return data[name]


def _hex(value: Any, name: str) -> bytes:
    if not isinstance(value, str):
        raise RPCError(f"invalid {name} {value!r}")
    try:
        return bytes.fromhex(value)
    except ValueError:
        raise RPCError(f"invalid {name} {value!r}") from None


def _hash(value: Any, name: str) -> bytes:
    raw = _hex(value, name)
    if len(raw) != HASH_SIZE:
        raise RPCError(f"invalid {name} {value!r}")
    return raw


def _amount(value: Any) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise RPCError(f"invalid amount {value!r}") from None


def _fetch(node: str, method: str, params: List[Any]) -> Optional[Dict[str, Any]]:
    data = call_rpc(node, method, params)
    if data is None:
        return None
    if not isinstance(data, dict):
        raise RPCError(f"malformed {method} data {data!r}")
    return data


def get_transaction(node: str, tx_hash: str) -> Tuple[Optional[bytes], str]:
    """The encoded transaction and the hash of its snapshot, if finalized."""
    data = _fetch(node, "gettransaction", [tx_hash])
    if data is None:
        return None, ""
    raw = _hex(_field(data, "hex"), "transaction hex")
    snapshot = data.get("snapshot")
    return raw, snapshot if isinstance(snapshot, str) else ""


def get_snapshot(node: str, snapshot_hash: str) -> Optional[bytes]:
    """The encoded snapshot, or None if the node does not have it."""
    data = _fetch(node, "getsnapshot", [snapshot_hash])
    if data is None:
        return None
    return _hex(_field(data, "hex"), "snapshot hex")


def get_deposit_transaction(
    node: str, chain: str, tx_hash: str, index: int
) -> Tuple[Optional[bytes], str]:
    """The transaction that locked an external deposit, with its snapshot."""
    data = _fetch(node, "getdeposittransaction", [chain, tx_hash, index])
    if data is None:
        return None, ""
    raw = _hex(_field(data, "hex"), "transaction hex")
    snapshot = _field(data, "snapshot")
    if not isinstance(snapshot, str):
        raise RPCError(f"invalid snapshot {snapshot!r}")
    return raw, snapshot


def get_info(node: str) -> Optional[Dict[str, Any]]:
    """The consensus snapshot hash, graph timestamp and mint pool size."""
    data = _fetch(node, "getinfo", [])
    if data is None:
        return None
    timestamp = _field(data, "timestamp")
    if not isinstance(timestamp, str):
        raise RPCError(f"invalid timestamp {timestamp!r}")
    mint = data.get("mint") or {}
    return {
        "consensus": _hash(_field(data, "consensus"), "consensus"),
        "timestamp": timestamp,
        "pool": _amount(mint.get("pool", "0")),
    }


def send_raw_transaction(node: str, raw: str) -> bytes:
    """Broadcast a hex encoded signed transaction and return its hash."""
    data = call_rpc(node, "sendrawtransaction", [raw])
    tx_hash = _hash(_field(data, "hash"), "transaction hash")
    if not any(tx_hash):
        raise RPCError(f"empty transaction hash {data!r}")
    return tx_hash


def get_utxo(node: str, tx_hash: str, index: int) -> Dict[str, Any]:
    """The unspent output at ``index`` of ``tx_hash`` with its lock."""
    data = call_rpc(node, "getutxo", [tx_hash, index])
    if not isinstance(data, dict):
        raise RPCError(f"invalid utxo {tx_hash}:{index}")
    lock = data.get("lock")
    return {
        "type": int(data.get("type", 0)),
        "hash": _hash(_field(data, "hash"), "utxo hash"),
        "index": int(data.get("index", 0)),
        "amount": _amount(data.get("amount", "0")),
        "keys": [_hex(k, "key") for k in data.get("keys") or []],
        "script": _hex(data.get("script", ""), "script"),
        "mask": _hex(_field(data, "mask"), "mask"),
        "lock": _hash(lock, "lock") if lock else bytes(HASH_SIZE),
    }


def list_mint_distributions(node: str, offset: int, count: int) -> List[bytes]:
    """The encoded mint transactions from batch ``offset`` on.

    Each transaction's mint input must agree with the listed distribution.
    """
    mints = call_rpc(node, "listmintdistributions", [offset, count, False])
    if mints is None:
        return []
    if not isinstance(mints, list):
        raise RPCError(f"malformed mint distributions {mints!r}")
    transactions = []
    for md in mints:
        tx_hash = _field(md, "transaction")
        data = _fetch(node, "gettransaction", [tx_hash])
        if data is None:
            raise RPCError(f"mint transaction not found {tx_hash}")
        inputs = data.get("inputs") or []
        mint = inputs[0].get("mint") if inputs and isinstance(inputs[0], dict) else None
        if not isinstance(mint, dict):
            raise RPCError(f"not a mint transaction {tx_hash}")
        if str(mint.get("amount")) != str(_field(md, "amount")):
            raise RPCError(f"mint amount mismatch {tx_hash}")
        if mint.get("batch") != _field(md, "batch"):
            raise RPCError(f"mint batch mismatch {tx_hash}")
        transactions.append(_hex(_field(data, "hex"), "transaction hex"))
    return transactions
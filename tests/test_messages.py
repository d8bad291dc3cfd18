import pytest

from mixinkit.framing import TRANSPORT_MESSAGE_MAX_SIZE, MessageType
from mixinkit.messages import (
    MessageError,
    build_authentication_message,
    build_commitments_message,
    build_consumers_message,
    build_relay_message,
    build_snapshot_commitment_message,
    build_snapshot_confirm_message,
    build_snapshot_response_message,
    build_transaction_challenge_message,
    build_transaction_message,
    build_transaction_request_message,
    parse_network_message,
)

SNAP = bytes(range(32))
KEY_A = bytes([0xAA]) * 32
KEY_B = bytes([0xBB]) * 32
SIG = bytes([0x55]) * 64


def fake_sign(data):
    return SIG


def test_empty_message_rejected():
    with pytest.raises(MessageError):
        parse_network_message(2, b"")


def test_authentication_round_trip():
    raw = build_authentication_message(b"hello")
    assert raw[0] == 3
    msg = parse_network_message(2, raw)
    assert msg.type == MessageType.AUTHENTICATION
    assert msg.version == 2
    assert msg.data == b"hello"


def test_snapshot_confirm_round_trip():
    raw = build_snapshot_confirm_message(SNAP)
    assert raw == bytes([5]) + SNAP
    msg = parse_network_message(2, raw)
    assert msg.snapshot_hash == SNAP


def test_transaction_request_round_trip():
    raw = build_transaction_request_message(KEY_A)
    msg = parse_network_message(2, raw)
    assert msg.type == MessageType.TRANSACTION_REQUEST
    assert msg.transaction_hash == KEY_A


def test_short_hash_is_zero_padded():
    msg = parse_network_message(2, bytes([MessageType.SNAPSHOT_CONFIRM]) + b"\x01\x02")
    assert msg.snapshot_hash == b"\x01\x02" + bytes(30)


def test_transaction_round_trip():
    msg = parse_network_message(2, build_transaction_message(b"encoded-tx"))
    assert msg.transaction == b"encoded-tx"


def test_empty_transaction_rejected():
    with pytest.raises(MessageError):
        parse_network_message(2, bytes([MessageType.TRANSACTION]))


def test_snapshot_commitment_round_trip():
    signed = []

    def sign(data):
        signed.append(data)
        return SIG

    raw = build_snapshot_commitment_message(sign, SNAP, KEY_A, True)
    assert len(raw) == 130
    msg = parse_network_message(2, raw)
    assert msg.snapshot_hash == SNAP
    assert msg.commitment == KEY_A
    assert msg.want_tx is True
    assert msg.signature == SIG
    assert msg.unsigned == signed[0]


def test_snapshot_commitment_without_tx():
    raw = build_snapshot_commitment_message(fake_sign, SNAP, KEY_A, False)
    assert parse_network_message(2, raw).want_tx is False


def test_snapshot_commitment_wrong_size():
    raw = build_snapshot_commitment_message(fake_sign, SNAP, KEY_A, False)
    with pytest.raises(MessageError):
        parse_network_message(2, raw[:-1])


def test_transaction_challenge_with_and_without_tx():
    raw = build_transaction_challenge_message(SNAP, SIG, 0x0102, None)
    assert len(raw) == 105
    msg = parse_network_message(2, raw)
    assert msg.snapshot_hash == SNAP
    assert msg.cosi_signature == SIG
    assert msg.cosi_mask == 0x0102
    assert msg.transaction is None

    msg = parse_network_message(2, build_transaction_challenge_message(SNAP, SIG, 7, b"tx"))
    assert msg.transaction == b"tx"
    assert msg.cosi_mask == 7


def test_transaction_challenge_too_short():
    raw = build_transaction_challenge_message(SNAP, SIG, 1, None)
    with pytest.raises(MessageError):
        parse_network_message(2, raw[:-1])


def test_snapshot_response_round_trip():
    raw = build_snapshot_response_message(SNAP, KEY_B)
    msg = parse_network_message(2, raw)
    assert msg.snapshot_hash == SNAP
    assert msg.response == KEY_B
    with pytest.raises(MessageError):
        parse_network_message(2, raw + b"\x00")


def test_commitments_round_trip():
    raw = build_commitments_message(fake_sign, [KEY_A, KEY_B])
    msg = parse_network_message(2, raw)
    assert msg.commitments == [KEY_A, KEY_B]
    assert msg.signature == SIG
    assert msg.unsigned == raw[65:]


def test_commitments_limit_on_build():
    with pytest.raises(ValueError):
        build_commitments_message(fake_sign, [KEY_A] * 1025)


def test_commitments_malformed_length():
    raw = build_commitments_message(fake_sign, [KEY_A, KEY_B])
    with pytest.raises(MessageError):
        parse_network_message(2, raw[:-1])


def test_commitments_too_short():
    raw = build_commitments_message(fake_sign, [])
    with pytest.raises(MessageError):
        parse_network_message(2, raw)


def test_relay_message_layout_and_parse():
    inner = build_snapshot_confirm_message(SNAP)
    raw = build_relay_message(KEY_A, KEY_B, inner)
    assert raw[:1] == bytes([200])
    assert raw[1:33] == KEY_A
    assert raw[33:65] == KEY_B
    msg = parse_network_message(2, raw)
    assert msg.data == raw
    nested = parse_network_message(2, msg.data[65:])
    assert nested.snapshot_hash == SNAP


def test_relay_message_too_large():
    with pytest.raises(ValueError):
        build_relay_message(KEY_A, KEY_B, bytes(TRANSPORT_MESSAGE_MAX_SIZE + 1))


def test_consumers_message_round_trip():
    raw = build_consumers_message([(KEY_A, b"auth-a"), (KEY_B, b"auth-b")])
    msg = parse_network_message(2, raw)
    assert msg.type == MessageType.CONSUMERS
    assert msg.data == KEY_A + b"auth-a" + KEY_B + b"auth-b"


def test_graph_message_too_short():
    with pytest.raises(MessageError):
        parse_network_message(2, bytes([MessageType.GRAPH]) + SIG[:10])


def test_announcement_too_short():
    with pytest.raises(MessageError):
        parse_network_message(2, bytes([MessageType.SNAPSHOT_ANNOUNCEMENT]) + bytes(99))


def test_announcement_fields():
    raw = bytes([MessageType.SNAPSHOT_ANNOUNCEMENT]) + SIG + KEY_A + b"snapshot-bytes"
    msg = parse_network_message(2, raw)
    assert msg.signature == SIG
    assert msg.commitment == KEY_A
    assert msg.snapshot == b"snapshot-bytes"


def test_full_challenge_too_short():
    with pytest.raises(MessageError):
        parse_network_message(2, bytes([MessageType.FULL_CHALLENGE]) + bytes(255))


def test_unknown_type_keeps_only_type():
    msg = parse_network_message(2, bytes([99, 1, 2, 3]))
    assert msg.type == 99
    assert msg.data == b""
    assert msg.snapshot is None


def test_builder_rejects_wrong_hash_size():
    with pytest.raises(ValueError):
        build_snapshot_confirm_message(b"short")
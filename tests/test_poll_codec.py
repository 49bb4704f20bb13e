"""Unit tests for poll validation and module-init encoding."""

import os
import sys
import time

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from eas_poll.errors import ValidationError
from eas_poll.poll_codec import (
    create_poll_action_module_input,
    decode_poll,
    encode_option,
    encode_poll,
)
from eas_poll.schema_registry import (
    EAS_POLL_ACTION_MODULE_ADDRESS,
    POLL_SCHEMA_V1,
    POLL_SCHEMA_V2,
    Network,
)
from eas_poll.types import GateParams, PollDefinition

NOW = 1_700_000_000
TOKEN = "0x" + "ab" * 20


def _clock():
    return NOW


def test_encode_option_pads_to_bytes32():
    assert encode_option("yes") == b"yes" + b"\x00" * 29
    assert encode_option("") == b"\x00" * 32
    assert encode_option("x" * 32) == b"x" * 32


def test_encode_option_rejects_oversized_option():
    with pytest.raises(ValidationError):
        encode_option("x" * 33)
    # multi-byte characters count in encoded bytes
    with pytest.raises(ValidationError):
        encode_option("é" * 17)


def test_two_option_poll_pads_to_four_slots():
    poll = PollDefinition(options=["yes", "no"])
    data = encode_poll(poll, time_fn=_clock)

    decoded = decode_poll(data)
    assert decoded.options == ["yes", "no", "", ""]
    assert decoded.followers_only is False
    assert decoded.end_timestamp is None
    assert decoded.signature_required is False
    assert decoded.gate_params is None

    # caller's list is left untouched
    assert poll.options == ["yes", "no"]


def test_full_poll_round_trip():
    poll = PollDefinition(
        options=["red", "green", "blue", "none"],
        followers_only=True,
        end_timestamp=NOW + 3600,
        signature_required=True,
        gate_params=GateParams(token_address=TOKEN, min_threshold=10**18),
    )
    decoded = decode_poll(encode_poll(poll, time_fn=_clock))
    assert decoded.options == ["red", "green", "blue", "none"]
    assert decoded.followers_only is True
    assert decoded.end_timestamp == NOW + 3600
    assert decoded.signature_required is True
    assert decoded.gate_params.token_address.lower() == TOKEN
    assert decoded.gate_params.min_threshold == 10**18


def test_option_count_bounds():
    for options in ([], ["only"], ["a", "b", "c", "d", "e"]):
        with pytest.raises(ValidationError):
            encode_poll(PollDefinition(options=options), time_fn=_clock)

    for options in (["a", "b"], ["a", "b", "c"], ["a", "b", "c", "d"]):
        encode_poll(PollDefinition(options=options), time_fn=_clock)


def test_end_timestamp_must_be_strictly_future():
    with pytest.raises(ValidationError):
        encode_poll(PollDefinition(options=["a", "b"], end_timestamp=NOW), time_fn=_clock)
    with pytest.raises(ValidationError):
        encode_poll(PollDefinition(options=["a", "b"], end_timestamp=NOW - 1), time_fn=_clock)

    data = encode_poll(PollDefinition(options=["a", "b"], end_timestamp=NOW + 1), time_fn=_clock)
    assert decode_poll(data).end_timestamp == NOW + 1


def test_end_timestamp_uses_wall_clock_by_default():
    past = int(time.time()) - 10
    with pytest.raises(ValidationError):
        encode_poll(PollDefinition(options=["a", "b"], end_timestamp=past))


def test_schema_shape_drives_layout():
    poll = PollDefinition(options=["a", "b"])
    v1 = encode_poll(poll, schema=POLL_SCHEMA_V1, time_fn=_clock)
    v2 = encode_poll(poll, schema=POLL_SCHEMA_V2, time_fn=_clock)

    assert len(v1) == 7 * 32
    assert len(v2) == 9 * 32
    assert v2[: len(v1)] == v1
    # absent gate params encode as (zero address, 0)
    assert v2[len(v1):] == b"\x00" * 64

    assert decode_poll(v1, schema=POLL_SCHEMA_V1).options == ["a", "b", "", ""]


def test_gate_params_rejected_by_schema_without_gate():
    poll = PollDefinition(options=["a", "b"], gate_params=GateParams(TOKEN, 1))
    with pytest.raises(ValidationError):
        encode_poll(poll, schema=POLL_SCHEMA_V1, time_fn=_clock)


def test_invalid_gate_token_rejected():
    poll = PollDefinition(options=["a", "b"], gate_params=GateParams("not-an-address", 1))
    with pytest.raises(ValidationError):
        encode_poll(poll, time_fn=_clock)


def test_module_input_envelope():
    poll = PollDefinition(options=["yes", "no"])
    module_input = create_poll_action_module_input(poll, network=Network.TESTNET, time_fn=_clock)

    assert module_input.address == EAS_POLL_ACTION_MODULE_ADDRESS
    assert module_input.data.startswith("0x")
    assert bytes.fromhex(module_input.data[2:]) == encode_poll(poll, time_fn=_clock)
    assert module_input.to_dict() == {
        "unknownOpenAction": {"address": EAS_POLL_ACTION_MODULE_ADDRESS, "data": module_input.data}
    }

"""Poll definition validation and module-init encoding."""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, List, Optional, Union

from eth_abi import decode, encode
from eth_utils import encode_hex, is_address, to_bytes, to_checksum_address

from eas_poll.errors import ValidationError
from eas_poll.schema_registry import (
    POLL_SCHEMA,
    ZERO_ADDRESS,
    Network,
    SchemaDescriptor,
    get_deployment,
)
from eas_poll.types import (
    MAX_POLL_OPTIONS,
    MIN_POLL_OPTIONS,
    GateParams,
    OpenActionModuleInput,
    PollDefinition,
)

OPTION_BYTES = 32
MAX_UINT40 = 2**40 - 1


def encode_option(option: str) -> bytes:
    """Left-justify ``option`` into a null-padded bytes32 value."""
    if not isinstance(option, str):
        raise ValidationError("poll options must be strings")
    raw = option.encode("utf-8")
    if len(raw) > OPTION_BYTES:
        raise ValidationError(f"poll option too long (max {OPTION_BYTES} bytes): {option!r}")
    return raw.ljust(OPTION_BYTES, b"\x00")


def decode_option(raw: bytes) -> str:
    return raw.rstrip(b"\x00").decode("utf-8")


def _validate_gate_params(gate_params: GateParams) -> None:
    if not is_address(gate_params.token_address):
        raise ValidationError(f"invalid gate token address: {gate_params.token_address!r}")
    if not isinstance(gate_params.min_threshold, int) or gate_params.min_threshold < 0:
        raise ValidationError("gate min_threshold must be a non-negative integer")


def validate_poll(poll: PollDefinition, now: int) -> None:
    if not isinstance(poll.options, (list, tuple)):
        raise ValidationError("poll options must be a list")
    if len(poll.options) < MIN_POLL_OPTIONS or len(poll.options) > MAX_POLL_OPTIONS:
        raise ValidationError(
            f"There must be between {MIN_POLL_OPTIONS} and {MAX_POLL_OPTIONS} poll options"
        )
    if poll.end_timestamp is not None:
        if not isinstance(poll.end_timestamp, int) or poll.end_timestamp > MAX_UINT40:
            raise ValidationError("poll end timestamp must be a uint40 unix timestamp")
        if poll.end_timestamp <= now:
            raise ValidationError("Poll end timestamp must be in the future")
    if poll.gate_params is not None:
        _validate_gate_params(poll.gate_params)


def _pad_options(options: List[str]) -> List[str]:
    return list(options) + [""] * (MAX_POLL_OPTIONS - len(options))


def encode_poll(
    poll: PollDefinition,
    schema: SchemaDescriptor = POLL_SCHEMA,
    time_fn: Callable[[], float] = time.time,
) -> bytes:
    """Validate ``poll`` and ABI-encode it as the module's init tuple.

    Options are right-padded with empty strings to four slots; an empty slot
    marks the option as unused. The tuple layout follows ``schema``, so a
    schema without ``gateParams`` rejects polls that carry gate params.
    """
    validate_poll(poll, int(time_fn()))

    if poll.gate_params is not None and not schema.has_field("gateParams"):
        raise ValidationError(f"poll schema v{schema.version} does not support gate params")

    gate = poll.gate_params
    values: Dict[str, Any] = {
        "options": [encode_option(opt) for opt in _pad_options(poll.options)],
        "followersOnly": bool(poll.followers_only),
        "endTimestamp": poll.end_timestamp or 0,
        "signatureRequired": bool(poll.signature_required),
        "gateParams": (
            (to_checksum_address(gate.token_address), gate.min_threshold)
            if gate
            else (ZERO_ADDRESS, 0)
        ),
    }
    row = tuple(values[name] for name in schema.field_names)
    return encode([schema.tuple_type], [row])


def decode_poll(data: Union[bytes, str], schema: SchemaDescriptor = POLL_SCHEMA) -> PollDefinition:
    """Inverse of ``encode_poll``; unused option slots come back as empty strings."""
    raw = to_bytes(hexstr=data) if isinstance(data, str) else data
    (row,) = decode([schema.tuple_type], raw)
    fields = dict(zip(schema.field_names, row))

    gate_params: Optional[GateParams] = None
    if "gateParams" in fields:
        token_address, min_threshold = fields["gateParams"]
        if int(token_address, 16) != 0 or min_threshold:
            gate_params = GateParams(to_checksum_address(token_address), int(min_threshold))

    return PollDefinition(
        options=[decode_option(opt) for opt in fields["options"]],
        followers_only=bool(fields["followersOnly"]),
        end_timestamp=int(fields["endTimestamp"]) or None,
        signature_required=bool(fields["signatureRequired"]),
        gate_params=gate_params,
    )


def create_poll_action_module_input(
    poll: PollDefinition,
    network: Network = Network.MAINNET,
    schema: Optional[SchemaDescriptor] = None,
    time_fn: Callable[[], float] = time.time,
) -> OpenActionModuleInput:
    """Wrap the encoded poll into an invocation addressed to the action module."""
    deployment = get_deployment(network)
    data = encode_poll(poll, schema=schema or deployment.poll_schema, time_fn=time_fn)
    return OpenActionModuleInput(address=deployment.action_module_address, data=encode_hex(data))

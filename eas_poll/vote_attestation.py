"""Vote attestation encoding for the EAS poll action module.

Two paths produce the 7-field vote payload
``(publicationProfileId, publicationId, actorProfileId, actorProfileOwner,
transactionExecutor, optionIndex, timestamp)``:

* unsigned: raw tuple encoding, actor fields zeroed, for self-submission;
* delegated: the same fields encoded through the registry's schema string,
  followed by the relayer-verifiable ``(v, r, s)`` signature and deadline.

Both paths must produce byte-identical payloads for equal field values, and
the payload must start with the poll identifier so that prefix queries find it.
"""

from __future__ import annotations

import re
import time
from typing import Any, Callable, Optional, Tuple, Union

from eth_abi import encode
from eth_utils import encode_hex, is_address, to_bytes, to_checksum_address

from eas_poll.errors import (
    AttestationSigningError,
    DisconnectedSignerError,
    MalformedIdentifierError,
    ValidationError,
)
from eas_poll.schema_registry import (
    NO_EXPIRATION,
    SIGNATURE_SCHEMA,
    VOTE_SCHEMA,
    ZERO_ADDRESS,
    ZERO_BYTES32,
    Deployment,
    Network,
    SchemaEncoder,
    get_deployment,
)
from eas_poll.types import (
    POLL_OPTION_INDEXES,
    ActOnOpenActionRequest,
    DelegatedAttestationRequest,
    DelegatedSignature,
    Logger,
    OpenActionModuleInput,
    RegistryFactory,
    SignedVote,
    SigningCapability,
    VoteIntent,
)

PUBLICATION_ID_SEPARATOR = "-"
MAX_UINT256 = 2**256 - 1
MAX_UINT40 = 2**40 - 1
HEX_ID_PATTERN = re.compile(r"(0[xX])?[0-9a-fA-F]+")

VotePayload = Tuple[int, int, int, str, str, int, int]


def parse_hex_id(value: Union[str, int], label: str = "identifier") -> int:
    """Parse a profile/publication id. Strings are hexadecimal, ``0x`` optional."""
    if isinstance(value, bool):
        raise MalformedIdentifierError(f"invalid {label}: {value!r}")
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if not HEX_ID_PATTERN.fullmatch(text):
            raise MalformedIdentifierError(f"invalid {label}: {value!r}")
        parsed = int(text, 16)
    else:
        raise MalformedIdentifierError(f"invalid {label}: {value!r}")
    if parsed < 0 or parsed > MAX_UINT256:
        raise MalformedIdentifierError(f"{label} out of uint256 range: {value!r}")
    return parsed


def split_publication_id(publication_id: str) -> Tuple[int, int]:
    """Split ``"{profileIdHex}-{pubIdHex}"`` into its two numeric halves."""
    if not isinstance(publication_id, str):
        raise MalformedIdentifierError(f"publication id must be a string: {publication_id!r}")
    parts = publication_id.split(PUBLICATION_ID_SEPARATOR)
    if len(parts) != 2:
        raise MalformedIdentifierError(
            f"publication id must look like '<profileId>-<pubId>': {publication_id!r}"
        )
    return (
        parse_hex_id(parts[0], "publication profile id"),
        parse_hex_id(parts[1], "publication id"),
    )


def build_poll_id(publication_id: str) -> bytes:
    """ABI prefix ``(uint256 publicationProfileId, uint256 publicationId)`` shared by all votes."""
    profile_id, pub_id = split_publication_id(publication_id)
    return encode(["uint256", "uint256"], [profile_id, pub_id])


def build_actor_vote_prefix(publication_id: str, actor_profile_id: Union[str, int]) -> bytes:
    profile_id, pub_id = split_publication_id(publication_id)
    actor_id = parse_hex_id(actor_profile_id, "actor profile id")
    return encode(["uint256", "uint256", "uint256"], [profile_id, pub_id, actor_id])


def validate_option_index(option_index: Any) -> int:
    if isinstance(option_index, bool) or option_index not in POLL_OPTION_INDEXES:
        raise ValidationError(f"option index must be one of {list(POLL_OPTION_INDEXES)}: {option_index!r}")
    return int(option_index)


def _normalize_address(value: Any, label: str) -> str:
    if not isinstance(value, (str, bytes)) or not is_address(value):
        raise ValidationError(f"invalid {label} address: {value!r}")
    return to_checksum_address(value)


def _resolve_timestamp(timestamp: Optional[int], time_fn: Callable[[], float]) -> int:
    if timestamp is None:
        return int(time_fn())
    if isinstance(timestamp, bool) or not isinstance(timestamp, int) or not 0 <= timestamp <= MAX_UINT40:
        raise ValidationError(f"vote timestamp must be a uint40 unix timestamp: {timestamp!r}")
    return timestamp


def encode_vote_payload(payload: VotePayload) -> bytes:
    """Raw tuple encoding of the 7 vote fields."""
    return encode([VOTE_SCHEMA.tuple_type], [payload])


def encode_vote_payload_with_schema(payload: VotePayload, schema_string: str) -> bytes:
    """Schema-string driven encoding of the 7 vote fields."""
    encoder = SchemaEncoder(schema_string)
    items = [
        {"name": field.name, "type": field.type, "value": value}
        for field, value in zip(encoder.fields, payload)
    ]
    return encoder.encode_data(items)


def encode_unsigned_attestation(vote: VoteIntent, time_fn: Callable[[], float] = time.time) -> bytes:
    """Encode a self-submitted vote: actor fields are zeroed, no signature."""
    profile_id, pub_id = split_publication_id(vote.publication_id)
    option_index = validate_option_index(vote.option_index)
    timestamp = _resolve_timestamp(vote.timestamp, time_fn)
    return encode_vote_payload(
        (profile_id, pub_id, 0, ZERO_ADDRESS, ZERO_ADDRESS, option_index, timestamp)
    )


def _to_bytes32(value: Union[bytes, str, int], label: str) -> bytes:
    if isinstance(value, str):
        raw = to_bytes(hexstr=value)
    elif isinstance(value, int):
        raw = value.to_bytes(32, "big")
    else:
        raw = bytes(value)
    if len(raw) != 32:
        raise AttestationSigningError(f"signature component {label} must be 32 bytes, got {len(raw)}")
    return raw


def resolve_network(signer: SigningCapability) -> Network:
    """Resolve the network from the signer's connected chain, on every call."""
    try:
        chain_id = signer.get_connected_chain_id()
    except Exception as exc:
        raise DisconnectedSignerError(f"could not read signer chain id: {exc}") from exc
    return Network.from_chain_id(chain_id)


def _default_registry_factory() -> RegistryFactory:
    from eas_poll.eas_web3 import web3_registry_factory

    return web3_registry_factory


class VoteAttestationBuilder:
    """Builds vote attestation bytes and act-on envelopes for the poll module."""

    REQUIRED_SIGNED_FIELDS = ("publication_id", "actor_profile_id", "actor_profile_owner")

    def __init__(
        self,
        registry_factory: Optional[RegistryFactory] = None,
        logger: Optional[Logger] = None,
        time_fn: Callable[[], float] = time.time,
    ):
        self._registry_factory = registry_factory
        self._logger = logger
        self._time_fn = time_fn

    def _log(self, message: str, level: str = "info") -> None:
        if self._logger:
            self._logger(message, level)

    def _registry_for(self, deployment: Deployment, signer: SigningCapability):
        factory = self._registry_factory or _default_registry_factory()
        return factory(deployment, signer)

    def encode_unsigned_attestation(self, vote: VoteIntent) -> bytes:
        return encode_unsigned_attestation(vote, time_fn=self._time_fn)

    def encode_delegated_attestation(self, vote: SignedVote, signer: SigningCapability) -> bytes:
        data, _ = self._encode_delegated(vote, signer)
        return data

    def _encode_delegated(self, vote: SignedVote, signer: SigningCapability) -> Tuple[bytes, Deployment]:
        network = resolve_network(signer)
        deployment = get_deployment(network)

        missing = [name for name in self.REQUIRED_SIGNED_FIELDS if getattr(vote, name, None) in (None, "")]
        if missing:
            raise ValidationError(
                "Signed votes must have publication_id, actor_profile_id, actor_profile_owner "
                f"(missing: {', '.join(missing)})"
            )

        profile_id, pub_id = split_publication_id(vote.publication_id)
        actor_profile_id = parse_hex_id(vote.actor_profile_id, "actor profile id")
        actor_profile_owner = _normalize_address(vote.actor_profile_owner, "actor profile owner")
        option_index = validate_option_index(vote.option_index)
        timestamp = _resolve_timestamp(vote.timestamp, self._time_fn)

        try:
            account = _normalize_address(signer.get_address(), "signer")
        except Exception as exc:
            self._log(f"eas-poll: signer address lookup failed: {exc}", "warn")
            raise AttestationSigningError(f"could not resolve signer address: {exc}") from exc

        if vote.transaction_executor:
            executor = _normalize_address(vote.transaction_executor, "transaction executor")
        else:
            executor = account

        payload: VotePayload = (
            profile_id,
            pub_id,
            actor_profile_id,
            actor_profile_owner,
            executor,
            option_index,
            timestamp,
        )
        encoded = encode_vote_payload_with_schema(payload, deployment.schema_string)

        try:
            registry = self._registry_for(deployment, signer)
            nonce = registry.get_nonce(account)
            request = DelegatedAttestationRequest(
                schema=deployment.vote_schema_uid,
                data=encoded,
                nonce=int(nonce),
                recipient=deployment.action_module_address,
                revocable=True,
                expiration_time=NO_EXPIRATION,
                ref_uid=ZERO_BYTES32,
                value=0,
                deadline=NO_EXPIRATION,
            )
            signature: DelegatedSignature = registry.sign_delegated_attestation(request)
        except AttestationSigningError:
            raise
        except Exception as exc:
            self._log(f"eas-poll: delegated attestation signing failed on {network.value}: {exc}", "warn")
            raise AttestationSigningError(f"delegated attestation signing failed: {exc}") from exc

        self._log(
            f"eas-poll: signed delegated vote attestation on {network.value} "
            f"(attester={account}, nonce={request.nonce})",
            "debug",
        )

        data = encode(
            [VOTE_SCHEMA.tuple_type, SIGNATURE_SCHEMA.tuple_type, "uint64"],
            [
                payload,
                (
                    int(signature.v),
                    _to_bytes32(signature.r, "r"),
                    _to_bytes32(signature.s, "s"),
                ),
                request.deadline,
            ],
        )
        return data, deployment

    def build_vote_action(
        self,
        vote: VoteIntent,
        signer: Optional[SigningCapability] = None,
        network: Network = Network.MAINNET,
    ) -> ActOnOpenActionRequest:
        """Select the delegated path iff a signer is given and the vote carries actor identity.

        ``network`` only applies to the unsigned path; the delegated path
        routes by the signer's connected chain.
        """
        if signer is not None and isinstance(vote, SignedVote) and vote.has_actor_identity:
            data, deployment = self._encode_delegated(vote, signer)
            signed = True
        else:
            data = self.encode_unsigned_attestation(vote)
            deployment = get_deployment(network)
            signed = False

        return ActOnOpenActionRequest(
            action=OpenActionModuleInput(address=deployment.action_module_address, data=encode_hex(data)),
            publication_id=vote.publication_id,
            signed=signed,
        )


def encode_delegated_attestation(
    vote: SignedVote,
    signer: SigningCapability,
    registry_factory: Optional[RegistryFactory] = None,
    logger: Optional[Logger] = None,
    time_fn: Callable[[], float] = time.time,
) -> bytes:
    builder = VoteAttestationBuilder(registry_factory=registry_factory, logger=logger, time_fn=time_fn)
    return builder.encode_delegated_attestation(vote, signer)


def build_vote_action(
    vote: VoteIntent,
    signer: Optional[SigningCapability] = None,
    network: Network = Network.MAINNET,
    registry_factory: Optional[RegistryFactory] = None,
    logger: Optional[Logger] = None,
    time_fn: Callable[[], float] = time.time,
) -> ActOnOpenActionRequest:
    builder = VoteAttestationBuilder(registry_factory=registry_factory, logger=logger, time_fn=time_fn)
    return builder.build_vote_action(vote, signer=signer, network=network)

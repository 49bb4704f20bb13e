"""Data model, envelopes and injected ports for the poll action module client."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol, Union

from eas_poll.schema_registry import NO_EXPIRATION, ZERO_BYTES32, Deployment

POLL_OPTION_INDEXES = (0, 1, 2, 3)
MAX_POLL_OPTIONS = 4
MIN_POLL_OPTIONS = 2


@dataclass(frozen=True)
class GateParams:
    """ERC20/ERC721 token gate: voters must hold at least ``min_threshold``."""

    token_address: str
    min_threshold: int


@dataclass
class PollDefinition:
    options: List[str]
    followers_only: bool = False
    end_timestamp: Optional[int] = None
    signature_required: bool = False
    gate_params: Optional[GateParams] = None


@dataclass(frozen=True)
class UnsignedVote:
    """Vote without actor identity, self-submitted by the voter's own transaction."""

    publication_id: str
    option_index: int
    timestamp: Optional[int] = None


@dataclass(frozen=True)
class SignedVote:
    """Vote carrying the actor identity needed for a delegated attestation."""

    publication_id: str
    option_index: int
    actor_profile_id: Union[str, int, None]
    actor_profile_owner: Optional[str]
    transaction_executor: Optional[str] = None
    timestamp: Optional[int] = None

    @property
    def has_actor_identity(self) -> bool:
        return self.actor_profile_id not in (None, "") and bool(self.actor_profile_owner)


VoteIntent = Union[UnsignedVote, SignedVote]


@dataclass(frozen=True)
class AttestationData:
    """Decoded 7-field vote payload."""

    publication_profile_id: str
    publication_id: str
    actor_profile_id: str
    actor_profile_owner: str
    transaction_executor: str
    option_index: int
    timestamp: int


@dataclass(frozen=True)
class VoteAttestation:
    attester: str
    id: str
    revoked: bool
    data: AttestationData


@dataclass(frozen=True)
class DelegatedSignature:
    v: int
    r: bytes
    s: bytes
    deadline: int = NO_EXPIRATION


@dataclass(frozen=True)
class DelegatedAttestationRequest:
    schema: str
    data: bytes
    nonce: int
    recipient: str
    revocable: bool = True
    expiration_time: int = NO_EXPIRATION
    ref_uid: str = ZERO_BYTES32
    value: int = 0
    deadline: int = NO_EXPIRATION


@dataclass(frozen=True)
class OpenActionModuleInput:
    """Action-module invocation: module address plus hex-encoded module data."""

    address: str
    data: str

    def to_dict(self) -> Dict[str, Any]:
        return {"unknownOpenAction": {"address": self.address, "data": self.data}}


@dataclass(frozen=True)
class ActOnOpenActionRequest:
    action: OpenActionModuleInput
    publication_id: str
    signed: bool = field(default=False, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"actOn": self.action.to_dict(), "for": self.publication_id}


@dataclass(frozen=True)
class VoteCountVariables:
    schema_id: str
    poll_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {"schemaId": self.schema_id, "pollId": self.poll_id}


@dataclass(frozen=True)
class OptionCountVariables:
    schema_id: str
    poll_id: str
    option_index: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schemaId": self.schema_id,
            "pollId": self.poll_id,
            "optionIndex": self.option_index,
        }


@dataclass(frozen=True)
class ActorVoteVariables:
    schema_id: str
    data: str

    def to_dict(self) -> Dict[str, Any]:
        return {"schemaId": self.schema_id, "data": self.data}


class SigningCapability(Protocol):
    def get_address(self) -> str:
        ...

    def get_connected_chain_id(self) -> Optional[int]:
        ...


class AttestationRegistryClient(Protocol):
    def get_nonce(self, address: str) -> int:
        ...

    def sign_delegated_attestation(self, request: DelegatedAttestationRequest) -> DelegatedSignature:
        ...


RegistryFactory = Callable[[Deployment, SigningCapability], AttestationRegistryClient]
Logger = Callable[[str, str], None]

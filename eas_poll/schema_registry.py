"""Static schema and deployment table for the EAS poll action module.

Two deployments are supported: Polygon mainnet and the Mumbai testnet. Each
row binds the attestation registry (EAS) address, the vote schema UID used to
filter attestations, the poll action module address and the GraphQL indexer
endpoint. Schema shapes are described by versioned ``SchemaDescriptor``
values so the codecs can be driven by the shape rather than hardcoded to it.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from eth_abi import decode, encode
from eth_utils import to_bytes

from eas_poll.errors import DisconnectedSignerError, ValidationError

POLYGON_MAINNET_CHAIN_ID = 137

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
ZERO_BYTES32 = "0x" + "00" * 32
NO_EXPIRATION = 0


class Network(str, Enum):
    MAINNET = "mainnet"
    TESTNET = "testnet"

    @classmethod
    def from_chain_id(cls, chain_id: Optional[int]) -> "Network":
        """Chain 137 is mainnet; any other resolvable chain is routed to testnet."""
        if chain_id is None:
            raise DisconnectedSignerError("signer is not connected to a network")
        try:
            resolved = int(chain_id)
        except (TypeError, ValueError) as exc:
            raise DisconnectedSignerError(f"unresolvable chain id: {chain_id!r}") from exc
        return cls.MAINNET if resolved == POLYGON_MAINNET_CHAIN_ID else cls.TESTNET

    @classmethod
    def from_testnet_flag(cls, testnet: bool) -> "Network":
        return cls.TESTNET if testnet else cls.MAINNET


@dataclass(frozen=True)
class SchemaField:
    name: str
    type: str
    components: Tuple["SchemaField", ...] = ()

    @property
    def abi_type(self) -> str:
        if self.components:
            return "(" + ",".join(c.abi_type for c in self.components) + ")"
        return self.type


@dataclass(frozen=True)
class SchemaDescriptor:
    """Ordered field layout of one on-chain data shape."""

    name: str
    version: int
    fields: Tuple[SchemaField, ...]

    @property
    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]

    @property
    def abi_types(self) -> List[str]:
        return [f.abi_type for f in self.fields]

    @property
    def tuple_type(self) -> str:
        return "(" + ",".join(self.abi_types) + ")"

    @property
    def schema_string(self) -> str:
        return ",".join(f"{f.abi_type} {f.name}" for f in self.fields)

    def has_field(self, name: str) -> bool:
        return name in self.field_names


POLL_SCHEMA_V1 = SchemaDescriptor(
    name="poll",
    version=1,
    fields=(
        SchemaField("options", "bytes32[4]"),
        SchemaField("followersOnly", "bool"),
        SchemaField("endTimestamp", "uint40"),
        SchemaField("signatureRequired", "bool"),
    ),
)

POLL_SCHEMA_V2 = SchemaDescriptor(
    name="poll",
    version=2,
    fields=POLL_SCHEMA_V1.fields
    + (
        SchemaField(
            "gateParams",
            "tuple",
            components=(
                SchemaField("tokenAddress", "address"),
                SchemaField("minThreshold", "uint256"),
            ),
        ),
    ),
)

VOTE_SCHEMA_V1 = SchemaDescriptor(
    name="vote",
    version=1,
    fields=(
        SchemaField("publicationProfileId", "uint256"),
        SchemaField("publicationId", "uint256"),
        SchemaField("actorProfileId", "uint256"),
        SchemaField("actorProfileOwner", "address"),
        SchemaField("transactionExecutor", "address"),
        SchemaField("optionIndex", "uint8"),
        SchemaField("timestamp", "uint40"),
    ),
)

SIGNATURE_SCHEMA = SchemaDescriptor(
    name="signature",
    version=1,
    fields=(
        SchemaField("v", "uint8"),
        SchemaField("r", "bytes32"),
        SchemaField("s", "bytes32"),
    ),
)

POLL_SCHEMA = POLL_SCHEMA_V2
VOTE_SCHEMA = VOTE_SCHEMA_V1

EAS_POLL_ACTION_MODULE_ADDRESS = "0xc91C3d3eD7089a9b52945c8967CF0854f08E9e7a"


@dataclass(frozen=True)
class Deployment:
    network: Network
    registry_address: str
    vote_schema_uid: str
    action_module_address: str
    graphql_endpoint: str
    poll_schema: SchemaDescriptor = POLL_SCHEMA
    vote_schema: SchemaDescriptor = VOTE_SCHEMA
    # Polls live in the action module's storage and are never attested.
    poll_schema_uid: Optional[str] = None

    @property
    def schema_string(self) -> str:
        return self.vote_schema.schema_string


DEPLOYMENTS: Dict[Network, Deployment] = {
    Network.MAINNET: Deployment(
        network=Network.MAINNET,
        registry_address="0x5E634ef5355f45A855d02D66eCD687b1502AF790",
        vote_schema_uid="0x5e67b8b854d74789f6fa56f202907f85e3e53b87abe3d218c9f6dee1cc60ecbd",
        action_module_address=EAS_POLL_ACTION_MODULE_ADDRESS,
        graphql_endpoint="https://polygon.easscan.org/graphql",
    ),
    Network.TESTNET: Deployment(
        network=Network.TESTNET,
        registry_address="0xaEF4103A04090071165F78D45D83A0C0782c2B2a",
        vote_schema_uid="0x44c235a2465c4d70bd980bdcf968d1997b237e2c7d30a2de1b59b98fee4a1f37",
        action_module_address=EAS_POLL_ACTION_MODULE_ADDRESS,
        graphql_endpoint="https://polygon-mumbai.easscan.org/graphql",
    ),
}


def get_deployment(network: Network) -> Deployment:
    """Return the deployment row for ``network``; unknown networks raise KeyError."""
    try:
        return DEPLOYMENTS[Network(network)]
    except ValueError as exc:
        raise KeyError(f"unknown network: {network!r}") from exc


class SchemaEncoder:
    """Encode and decode attestation data driven by an EAS schema string.

    The schema string has the form ``"uint256 publicationProfileId,address owner"``.
    Items passed to ``encode_data`` must name every field, in order, with the
    declared type.
    """

    def __init__(self, schema: str):
        self.schema = schema
        self.fields: List[SchemaField] = []
        for part in schema.split(","):
            tokens = part.strip().split()
            if len(tokens) != 2:
                raise ValueError(f"invalid schema field: {part.strip()!r}")
            self.fields.append(SchemaField(name=tokens[1], type=tokens[0]))
        if not self.fields:
            raise ValueError("empty schema")

    @property
    def types(self) -> List[str]:
        return [f.type for f in self.fields]

    def encode_data(self, items: Sequence[Mapping[str, Any]]) -> bytes:
        if len(items) != len(self.fields):
            raise ValidationError(
                f"expected {len(self.fields)} schema items, got {len(items)}"
            )
        values = []
        for field, item in zip(self.fields, items):
            if item.get("name") != field.name or item.get("type") != field.type:
                raise ValidationError(
                    f"schema item mismatch: expected {field.type} {field.name}, "
                    f"got {item.get('type')} {item.get('name')}"
                )
            values.append(item.get("value"))
        return encode(self.types, values)

    def decode_data(self, data: Union[bytes, str]) -> List[Dict[str, Any]]:
        raw = to_bytes(hexstr=data) if isinstance(data, str) else data
        values = decode(self.types, raw)
        return [
            {"name": field.name, "type": field.type, "value": value}
            for field, value in zip(self.fields, values)
        ]

"""web3-backed signing capability and attestation registry client.

``Web3Signer`` wraps a local account and a connected ``Web3`` instance.
``Web3EasRegistryClient`` reads the signer's nonce from the EAS contract and
produces the EIP-712 ``Attest`` signature the contract verifies for delegated
attestations.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from eth_account import Account
from eth_utils import to_bytes, to_checksum_address
from web3 import Web3

from eas_poll.schema_registry import Deployment
from eas_poll.types import (
    DelegatedAttestationRequest,
    DelegatedSignature,
    Logger,
    SigningCapability,
)

EAS_ABI = [
    {
        "type": "function",
        "name": "getNonce",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
    },
    {
        "type": "function",
        "name": "eip712Domain",
        "inputs": [],
        "outputs": [
            {"name": "fields", "type": "bytes1"},
            {"name": "name", "type": "string"},
            {"name": "version", "type": "string"},
            {"name": "chainId", "type": "uint256"},
            {"name": "verifyingContract", "type": "address"},
            {"name": "salt", "type": "bytes32"},
            {"name": "extensions", "type": "uint256[]"},
        ],
        "stateMutability": "view",
    },
]

ATTEST_TYPES = {
    "Attest": [
        {"name": "attester", "type": "address"},
        {"name": "schema", "type": "bytes32"},
        {"name": "recipient", "type": "address"},
        {"name": "expirationTime", "type": "uint64"},
        {"name": "revocable", "type": "bool"},
        {"name": "refUID", "type": "bytes32"},
        {"name": "data", "type": "bytes"},
        {"name": "value", "type": "uint256"},
        {"name": "nonce", "type": "uint256"},
        {"name": "deadline", "type": "uint64"},
    ]
}


class Web3Signer:
    """Signing capability backed by a local account and a web3 provider."""

    def __init__(self, w3: Any, account: Any, logger: Optional[Logger] = None):
        self.w3 = w3
        self.account = account
        self._logger = logger

    @classmethod
    def from_private_key(cls, rpc_url: str, private_key: str, logger: Optional[Logger] = None) -> "Web3Signer":
        w3 = Web3(Web3.HTTPProvider(rpc_url))
        return cls(w3, Account.from_key(private_key), logger=logger)

    def _log(self, message: str, level: str = "info") -> None:
        if self._logger:
            self._logger(message, level)

    def get_address(self) -> str:
        return to_checksum_address(self.account.address)

    def get_connected_chain_id(self) -> Optional[int]:
        try:
            if not self.w3.is_connected():
                return None
            return int(self.w3.eth.chain_id)
        except Exception as exc:
            self._log(f"eas-poll: chain id lookup failed: {exc}", "warn")
            return None

    def sign_typed_data(self, domain: Dict[str, Any], types: Dict[str, Any], message: Dict[str, Any]) -> Any:
        return self.account.sign_typed_data(domain, types, message)


class Web3EasRegistryClient:
    """EAS contract client: nonces and delegated attestation signatures."""

    def __init__(self, w3: Any, registry_address: str, signer: Web3Signer, logger: Optional[Logger] = None):
        self.registry_address = to_checksum_address(registry_address)
        self._signer = signer
        self._logger = logger
        self._contract = w3.eth.contract(address=self.registry_address, abi=EAS_ABI)

    def _log(self, message: str, level: str = "info") -> None:
        if self._logger:
            self._logger(message, level)

    def get_nonce(self, address: str) -> int:
        return int(self._contract.functions.getNonce(to_checksum_address(address)).call())

    def _domain(self) -> Dict[str, Any]:
        _, name, version, chain_id, verifying_contract = self._contract.functions.eip712Domain().call()[:5]
        return {
            "name": name,
            "version": version,
            "chainId": int(chain_id),
            "verifyingContract": to_checksum_address(verifying_contract),
        }

    def sign_delegated_attestation(self, request: DelegatedAttestationRequest) -> DelegatedSignature:
        domain = self._domain()
        message = {
            "attester": self._signer.get_address(),
            "schema": to_bytes(hexstr=request.schema),
            "recipient": to_checksum_address(request.recipient),
            "expirationTime": request.expiration_time,
            "revocable": request.revocable,
            "refUID": to_bytes(hexstr=request.ref_uid),
            "data": request.data,
            "value": request.value,
            "nonce": request.nonce,
            "deadline": request.deadline,
        }
        self._log(
            f"eas-poll: signing Attest for {domain['name']} v{domain['version']} "
            f"on chain {domain['chainId']}",
            "debug",
        )
        signed = self._signer.sign_typed_data(domain, ATTEST_TYPES, message)
        return DelegatedSignature(
            v=int(signed.v),
            r=int(signed.r).to_bytes(32, "big"),
            s=int(signed.s).to_bytes(32, "big"),
            deadline=request.deadline,
        )


def web3_registry_factory(deployment: Deployment, signer: SigningCapability) -> Web3EasRegistryClient:
    if not isinstance(signer, Web3Signer):
        raise TypeError("the web3 registry client requires a Web3Signer")
    return Web3EasRegistryClient(signer.w3, deployment.registry_address, signer, logger=signer._logger)

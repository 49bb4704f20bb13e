"""GraphQL query construction and vote reading against the EAS indexer."""

from __future__ import annotations

import http.client
import json
import urllib.error
import urllib.request
from typing import Any, Dict, List, Optional, Union
from urllib.parse import urlparse

from eth_abi.exceptions import DecodingError
from eth_utils import encode_hex, to_checksum_address

from eas_poll.errors import IndexerError
from eas_poll.schema_registry import VOTE_SCHEMA, Network, SchemaEncoder, get_deployment
from eas_poll.types import (
    ActorVoteVariables,
    AttestationData,
    Logger,
    OptionCountVariables,
    VoteAttestation,
    VoteCountVariables,
)
from eas_poll.vote_attestation import (
    build_actor_vote_prefix,
    build_poll_id,
    validate_option_index,
)

GET_VOTE_COUNT_QUERY = """
  query GetVoteCount($schemaId: String!, $pollId: String!) {
    groupByAttestation(
      where: { schemaId: { equals: $schemaId }, data: { startsWith: $pollId }, revoked: { equals: false } }
      by: [schemaId]
      orderBy: [{ _count: { schemaId: asc } }]
    ) {
      _count {
        _all
      }
    }
  }
"""

GET_VOTE_COUNT_FOR_OPTION_QUERY = """
  query GetVoteCountForOptionIndex($schemaId: String!, $pollId: String!, $optionIndex: String!) {
    groupByAttestation(
      where: {
        schemaId: { equals: $schemaId }
        decodedDataJson: { contains: $optionIndex }
        data: { startsWith: $pollId }
        revoked: { equals: false }
      }
      by: [schemaId]
    ) {
      _count {
        _all
      }
    }
  }
"""

GET_VOTE_FOR_ACTOR_QUERY = """
  query GetVote($schemaId: String!, $data: String!) {
    attestations(
      where: {schemaId: {equals: $schemaId}, data: {startsWith: $data}}
    ) {
      attester
      id
      revoked
      data
    }
  }
"""


def build_poll_identifier_query(publication_id: str, network: Network = Network.MAINNET) -> VoteCountVariables:
    deployment = get_deployment(network)
    return VoteCountVariables(
        schema_id=deployment.vote_schema_uid,
        poll_id=encode_hex(build_poll_id(publication_id)),
    )


def build_option_count_query(
    publication_id: str,
    option_index: int,
    network: Network = Network.MAINNET,
) -> OptionCountVariables:
    """Add a ``decodedDataJson`` substring filter for one option.

    The indexer cannot filter on decoded fields, so the option is matched by
    substring containment against its JSON rendering of the decoded data.
    """
    base = build_poll_identifier_query(publication_id, network)
    index = validate_option_index(option_index)
    return OptionCountVariables(
        schema_id=base.schema_id,
        poll_id=base.poll_id,
        option_index=f'{{"name":"optionIndex","type":"uint8","value":{index}}}',
    )


def build_actor_vote_query(
    publication_id: str,
    actor_profile_id: Union[str, int],
    network: Network = Network.MAINNET,
) -> ActorVoteVariables:
    deployment = get_deployment(network)
    return ActorVoteVariables(
        schema_id=deployment.vote_schema_uid,
        data=encode_hex(build_actor_vote_prefix(publication_id, actor_profile_id)),
    )


def decode_vote_attestation_data(data: Union[bytes, str]) -> AttestationData:
    """Decode raw attestation bytes back into the 7 vote fields."""
    items = SchemaEncoder(VOTE_SCHEMA.schema_string).decode_data(data)
    values = {item["name"]: item["value"] for item in items}
    return AttestationData(
        publication_profile_id=str(values["publicationProfileId"]),
        publication_id=str(values["publicationId"]),
        actor_profile_id=str(values["actorProfileId"]),
        actor_profile_owner=to_checksum_address(values["actorProfileOwner"]),
        transaction_executor=to_checksum_address(values["transactionExecutor"]),
        option_index=int(values["optionIndex"]),
        timestamp=int(values["timestamp"]),
    )


def is_valid_endpoint_url(url: str) -> bool:
    if not isinstance(url, str) or not url.strip():
        return False
    parsed = urlparse(url)
    if parsed.scheme not in ("https", "http"):
        return False
    if not parsed.netloc or not parsed.hostname:
        return False
    return True


def _extract_count(data: Dict[str, Any]) -> int:
    groups = data.get("groupByAttestation")
    if groups is None:
        return 0
    if not isinstance(groups, list):
        raise IndexerError("malformed indexer response: groupByAttestation is not a list")
    if not groups:
        return 0
    row = groups[0]
    count = row.get("_count") if isinstance(row, dict) else None
    total = count.get("_all") if isinstance(count, dict) else None
    if isinstance(total, bool) or not isinstance(total, int):
        raise IndexerError("malformed indexer response: missing _count._all")
    return total


class EasIndexerClient:
    """Small GraphQL client for the EAS indexer (easscan)."""

    def __init__(self, endpoint: str, timeout_seconds: int = 10, logger: Optional[Logger] = None):
        if not is_valid_endpoint_url(endpoint):
            raise ValueError(f"invalid GraphQL endpoint: {endpoint!r}")
        self.endpoint = endpoint
        self.timeout_seconds = timeout_seconds
        self._logger = logger

    @classmethod
    def for_network(
        cls,
        network: Network = Network.MAINNET,
        timeout_seconds: int = 10,
        logger: Optional[Logger] = None,
    ) -> "EasIndexerClient":
        return cls(get_deployment(network).graphql_endpoint, timeout_seconds=timeout_seconds, logger=logger)

    def _log(self, message: str, level: str = "info") -> None:
        if self._logger:
            self._logger(message, level)

    def _request(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        body = json.dumps({"query": query, "variables": variables}, separators=(",", ":")).encode("utf-8")
        req = urllib.request.Request(
            self.endpoint,
            data=body,
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_seconds) as response:
                status = int(response.status)
                if status < 200 or status >= 300:
                    raise IndexerError(f"HTTP error: {status}", status=status)
                body_bytes = response.read()
        except urllib.error.HTTPError as exc:
            self._log(f"eas-poll: indexer returned HTTP {exc.code}", "warn")
            raise IndexerError(f"HTTP error: {exc.code} {exc.reason}", status=exc.code) from exc
        except (OSError, http.client.HTTPException) as exc:
            self._log(f"eas-poll: indexer request failed: {exc}", "warn")
            raise IndexerError(f"indexer request failed: {exc}") from exc

        try:
            raw = body_bytes.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise IndexerError("malformed indexer response: invalid UTF-8", status=status) from exc

        try:
            payload = json.loads(raw) if raw else {}
        except json.JSONDecodeError as exc:
            raise IndexerError("malformed indexer response: invalid JSON") from exc
        if not isinstance(payload, dict):
            raise IndexerError("malformed indexer response: expected an object")

        errors = payload.get("errors")
        if errors:
            first = errors[0] if isinstance(errors, list) and errors else errors
            message = first.get("message") if isinstance(first, dict) else str(first)
            raise IndexerError(f"indexer query failed: {message}", status=status)

        data = payload.get("data")
        if not isinstance(data, dict):
            raise IndexerError("malformed indexer response: missing data")
        return data

    def fetch_vote_count(self, variables: VoteCountVariables) -> int:
        return _extract_count(self._request(GET_VOTE_COUNT_QUERY, variables.to_dict()))

    def fetch_vote_count_for_option(self, variables: OptionCountVariables) -> int:
        return _extract_count(self._request(GET_VOTE_COUNT_FOR_OPTION_QUERY, variables.to_dict()))

    def fetch_actor_vote(self, variables: ActorVoteVariables) -> Optional[VoteAttestation]:
        data = self._request(GET_VOTE_FOR_ACTOR_QUERY, variables.to_dict())
        attestations: Optional[List[Any]] = data.get("attestations")
        if attestations is None:
            return None
        if not isinstance(attestations, list):
            raise IndexerError("malformed indexer response: attestations is not a list")
        if not attestations:
            return None

        first = attestations[0]
        try:
            decoded = decode_vote_attestation_data(first["data"])
            return VoteAttestation(
                attester=str(first["attester"]),
                id=str(first["id"]),
                revoked=bool(first["revoked"]),
                data=decoded,
            )
        except (KeyError, TypeError, ValueError, DecodingError) as exc:
            raise IndexerError(f"malformed attestation record: {exc}") from exc


def fetch_vote_count(
    variables: VoteCountVariables,
    network: Network = Network.MAINNET,
    timeout_seconds: int = 10,
) -> int:
    return EasIndexerClient.for_network(network, timeout_seconds).fetch_vote_count(variables)


def fetch_vote_count_for_option(
    variables: OptionCountVariables,
    network: Network = Network.MAINNET,
    timeout_seconds: int = 10,
) -> int:
    return EasIndexerClient.for_network(network, timeout_seconds).fetch_vote_count_for_option(variables)


def fetch_actor_vote(
    variables: ActorVoteVariables,
    network: Network = Network.MAINNET,
    timeout_seconds: int = 10,
) -> Optional[VoteAttestation]:
    return EasIndexerClient.for_network(network, timeout_seconds).fetch_actor_vote(variables)

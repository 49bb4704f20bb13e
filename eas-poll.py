#!/usr/bin/env python3
"""eas-poll: command-line surface for the EAS poll action module client."""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import os
import sys
from typing import Any, Dict, List, Optional

# Ensure this script's real directory is on sys.path so that `from eas_poll.X`
# works when the script is invoked through a symlink.
sys.path.insert(0, os.path.dirname(os.path.realpath(__file__)))

from eas_poll.errors import EasPollError
from eas_poll.poll_codec import create_poll_action_module_input
from eas_poll.queries import (
    EasIndexerClient,
    build_actor_vote_query,
    build_option_count_query,
    build_poll_identifier_query,
    is_valid_endpoint_url,
)
from eas_poll.schema_registry import Network
from eas_poll.types import GateParams, PollDefinition, SignedVote, UnsignedVote, VoteIntent
from eas_poll.vote_attestation import VoteAttestationBuilder

log = logging.getLogger("eas-poll")

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return False


def _parse_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _logger(message: str, level: str = "info") -> None:
    log.log(_LEVELS.get(level, logging.INFO), message)


def _network(options: argparse.Namespace) -> Network:
    return Network.from_testnet_flag(options.testnet)


def _indexer(options: argparse.Namespace) -> EasIndexerClient:
    endpoint = (options.graphql_endpoint or "").strip()
    if endpoint and not is_valid_endpoint_url(endpoint):
        _logger("eas-poll: invalid GraphQL endpoint override; using the network default", "warn")
        endpoint = ""
    if endpoint:
        return EasIndexerClient(endpoint, timeout_seconds=options.timeout, logger=_logger)
    return EasIndexerClient.for_network(_network(options), timeout_seconds=options.timeout, logger=_logger)


def _signer(options: argparse.Namespace):
    private_key = os.environ.get("EAS_POLL_PRIVATE_KEY", "").strip()
    if not options.rpc_url or not private_key:
        return None
    from eas_poll.eas_web3 import Web3Signer

    return Web3Signer.from_private_key(options.rpc_url, private_key, logger=_logger)


def encode_poll(options: argparse.Namespace) -> Dict[str, Any]:
    try:
        poll_options = json.loads(options.options_json)
    except (json.JSONDecodeError, TypeError):
        return {"error": "invalid options_json"}
    if not isinstance(poll_options, list):
        return {"error": "options_json must decode to a list"}

    gate_params: Optional[GateParams] = None
    if options.gate_token:
        gate_params = GateParams(
            token_address=options.gate_token,
            min_threshold=max(0, _parse_int(options.gate_threshold, 0)),
        )

    poll = PollDefinition(
        options=poll_options,
        followers_only=options.followers_only,
        end_timestamp=options.end_timestamp,
        signature_required=options.signature_required,
        gate_params=gate_params,
    )
    module_input = create_poll_action_module_input(poll, network=_network(options))
    return {"ok": True, "network": _network(options).value, **module_input.to_dict()}


def encode_vote(options: argparse.Namespace) -> Dict[str, Any]:
    vote: VoteIntent
    if options.actor_profile_id or options.actor_profile_owner:
        vote = SignedVote(
            publication_id=options.publication_id,
            option_index=options.option_index,
            actor_profile_id=options.actor_profile_id,
            actor_profile_owner=options.actor_profile_owner,
            transaction_executor=options.transaction_executor,
            timestamp=options.timestamp,
        )
    else:
        vote = UnsignedVote(
            publication_id=options.publication_id,
            option_index=options.option_index,
            timestamp=options.timestamp,
        )

    try:
        signer = _signer(options)
    except ValueError:
        return {"error": "invalid EAS_POLL_PRIVATE_KEY"}

    builder = VoteAttestationBuilder(logger=_logger)
    request = builder.build_vote_action(vote, signer=signer, network=_network(options))
    return {"ok": True, "signed": request.signed, **request.to_dict()}


def vote_count(options: argparse.Namespace) -> Dict[str, Any]:
    variables = build_poll_identifier_query(options.publication_id, _network(options))
    count = _indexer(options).fetch_vote_count(variables)
    return {"ok": True, "variables": variables.to_dict(), "count": count}


def option_count(options: argparse.Namespace) -> Dict[str, Any]:
    variables = build_option_count_query(options.publication_id, options.option_index, _network(options))
    count = _indexer(options).fetch_vote_count_for_option(variables)
    return {"ok": True, "variables": variables.to_dict(), "count": count}


def actor_vote(options: argparse.Namespace) -> Dict[str, Any]:
    variables = build_actor_vote_query(options.publication_id, options.actor_profile_id, _network(options))
    vote = _indexer(options).fetch_actor_vote(variables)
    return {
        "ok": True,
        "variables": variables.to_dict(),
        "vote": dataclasses.asdict(vote) if vote else None,
    }


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="eas-poll", description=__doc__)
    parser.add_argument(
        "--testnet",
        action="store_true",
        default=_parse_bool(os.environ.get("EAS_POLL_TESTNET", "false")),
        help="Use the testnet deployment (env EAS_POLL_TESTNET)",
    )
    parser.add_argument(
        "--graphql-endpoint",
        default=os.environ.get("EAS_POLL_GRAPHQL_ENDPOINT", ""),
        help="Override the indexer GraphQL endpoint (env EAS_POLL_GRAPHQL_ENDPOINT)",
    )
    parser.add_argument(
        "--timeout",
        type=lambda v: max(1, _parse_int(v, 10)),
        default=max(1, _parse_int(os.environ.get("EAS_POLL_HTTP_TIMEOUT"), 10)),
        help="Indexer HTTP timeout in seconds (env EAS_POLL_HTTP_TIMEOUT)",
    )
    parser.add_argument(
        "--rpc-url",
        default=os.environ.get("EAS_POLL_RPC_URL", ""),
        help="JSON-RPC endpoint used for delegated vote signing (env EAS_POLL_RPC_URL)",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("EAS_POLL_LOG_LEVEL", "warning"),
        choices=sorted(_LEVELS),
        help="Log level for stderr output (env EAS_POLL_LOG_LEVEL)",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    poll = commands.add_parser("encode-poll", help="Encode poll module-init data")
    poll.add_argument("options_json", help='JSON list of 2-4 options, e.g. \'["yes","no"]\'')
    poll.add_argument("--followers-only", action="store_true")
    poll.add_argument("--end-timestamp", type=int, default=None)
    poll.add_argument("--signature-required", action="store_true")
    poll.add_argument("--gate-token", default="")
    poll.add_argument("--gate-threshold", default="0")
    poll.set_defaults(handler=encode_poll)

    vote = commands.add_parser("encode-vote", help="Encode an act-on request for a vote")
    vote.add_argument("publication_id")
    vote.add_argument("option_index", type=int)
    vote.add_argument("--actor-profile-id", default=None)
    vote.add_argument("--actor-profile-owner", default=None)
    vote.add_argument("--transaction-executor", default=None)
    vote.add_argument("--timestamp", type=int, default=None)
    vote.set_defaults(handler=encode_vote)

    count = commands.add_parser("vote-count", help="Count votes on a poll")
    count.add_argument("publication_id")
    count.set_defaults(handler=vote_count)

    per_option = commands.add_parser("option-count", help="Count votes for one option")
    per_option.add_argument("publication_id")
    per_option.add_argument("option_index", type=int)
    per_option.set_defaults(handler=option_count)

    actor = commands.add_parser("actor-vote", help="Look up one profile's vote")
    actor.add_argument("publication_id")
    actor.add_argument("actor_profile_id")
    actor.set_defaults(handler=actor_vote)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    options = build_parser().parse_args(argv)
    logging.basicConfig(
        level=_LEVELS.get(str(options.log_level).lower(), logging.WARNING),
        stream=sys.stderr,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    try:
        result = options.handler(options)
    except EasPollError as exc:
        result = {"error": str(exc), "error_type": type(exc).__name__}

    print(json.dumps(result, sort_keys=True))
    return 1 if "error" in result else 0


if __name__ == "__main__":
    sys.exit(main())

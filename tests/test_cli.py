"""Tests for the eas-poll command-line entry script."""

import importlib.util
import json
import os
import sys
from unittest.mock import MagicMock, patch

import pytest

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, ROOT)

from eas_poll.schema_registry import EAS_POLL_ACTION_MODULE_ADDRESS, Network, get_deployment
from eas_poll.vote_attestation import build_poll_id


def _load_cli():
    spec = importlib.util.spec_from_file_location("eas_poll_cli", os.path.join(ROOT, "eas-poll.py"))
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


cli = _load_cli()


def _mock_urlopen_response(data: dict, status: int = 200):
    """Create a mock context manager for urllib.request.urlopen."""
    body = json.dumps(data).encode("utf-8")
    mock_response = MagicMock()
    mock_response.read.return_value = body
    mock_response.status = status
    mock_response.__enter__ = lambda s: s
    mock_response.__exit__ = MagicMock(return_value=False)
    return mock_response


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (
        "EAS_POLL_TESTNET",
        "EAS_POLL_GRAPHQL_ENDPOINT",
        "EAS_POLL_HTTP_TIMEOUT",
        "EAS_POLL_LOG_LEVEL",
        "EAS_POLL_RPC_URL",
        "EAS_POLL_PRIVATE_KEY",
    ):
        monkeypatch.delenv(name, raising=False)


def _run(capsys, argv):
    code = cli.main(argv)
    return code, json.loads(capsys.readouterr().out)


def test_parse_helpers():
    assert cli._parse_bool("yes") is True
    assert cli._parse_bool("0") is False
    assert cli._parse_bool(None) is False
    assert cli._parse_int("7", 10) == 7
    assert cli._parse_int("seven", 10) == 10


def test_encode_poll(capsys):
    code, result = _run(capsys, ["encode-poll", '["yes", "no"]', "--followers-only"])
    assert code == 0
    assert result["ok"] is True
    assert result["network"] == "mainnet"
    assert result["unknownOpenAction"]["address"] == EAS_POLL_ACTION_MODULE_ADDRESS
    assert result["unknownOpenAction"]["data"].startswith("0x")


def test_encode_poll_validation_error(capsys):
    code, result = _run(capsys, ["encode-poll", '["only"]'])
    assert code == 1
    assert result["error_type"] == "ValidationError"


def test_encode_poll_rejects_bad_json(capsys):
    code, result = _run(capsys, ["encode-poll", "{not json"])
    assert code == 1
    assert result == {"error": "invalid options_json"}


def test_encode_vote_without_signer_is_unsigned(capsys):
    code, result = _run(
        capsys,
        ["encode-vote", "0xd8-0x01", "2", "--actor-profile-id", "0x2a", "--actor-profile-owner", "0x" + "11" * 20],
    )
    assert code == 0
    assert result["signed"] is False
    assert result["for"] == "0xd8-0x01"
    data = result["actOn"]["unknownOpenAction"]["data"]
    assert bytes.fromhex(data[2:])[:64] == build_poll_id("0xd8-0x01")


def test_encode_vote_bad_private_key_reported_as_error(capsys, monkeypatch):
    monkeypatch.setenv("EAS_POLL_PRIVATE_KEY", "not-a-key")
    code, result = _run(
        capsys,
        [
            "--rpc-url",
            "http://127.0.0.1:8545",
            "encode-vote",
            "0xd8-0x01",
            "2",
            "--actor-profile-id",
            "0x2a",
            "--actor-profile-owner",
            "0x" + "11" * 20,
        ],
    )
    assert code == 1
    assert result == {"error": "invalid EAS_POLL_PRIVATE_KEY"}


def test_encode_vote_malformed_publication_id(capsys):
    code, result = _run(capsys, ["encode-vote", "0xd8", "1"])
    assert code == 1
    assert result["error_type"] == "MalformedIdentifierError"


@patch("eas_poll.queries.urllib.request.urlopen")
def test_vote_count_testnet(mock_urlopen, capsys):
    mock_urlopen.return_value = _mock_urlopen_response(
        {"data": {"groupByAttestation": [{"_count": {"_all": 4}}]}}
    )

    code, result = _run(capsys, ["--testnet", "vote-count", "0xd8-0x01"])
    assert code == 0
    assert result["count"] == 4
    assert result["variables"]["schemaId"] == get_deployment(Network.TESTNET).vote_schema_uid
    assert mock_urlopen.call_args[0][0].full_url == get_deployment(Network.TESTNET).graphql_endpoint


@patch("eas_poll.queries.urllib.request.urlopen")
def test_invalid_endpoint_override_falls_back(mock_urlopen, capsys):
    mock_urlopen.return_value = _mock_urlopen_response({"data": {"attestations": []}})

    code, result = _run(capsys, ["--graphql-endpoint", "ftp://nowhere", "actor-vote", "0xd8-0x01", "0x2a"])
    assert code == 0
    assert result["vote"] is None
    assert mock_urlopen.call_args[0][0].full_url == get_deployment(Network.MAINNET).graphql_endpoint


@patch("eas_poll.queries.urllib.request.urlopen")
def test_indexer_failure_reported_as_error(mock_urlopen, capsys):
    mock_urlopen.return_value = _mock_urlopen_response({"errors": [{"message": "boom"}]})

    code, result = _run(capsys, ["option-count", "0xd8-0x01", "1"])
    assert code == 1
    assert result["error_type"] == "IndexerError"

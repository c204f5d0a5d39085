import base64
import json

import pytest

from fabricx.errors import ExternalCommandFailed
from fabricx.services.docker_runtime import DockerRuntimeService
from fabricx.services.gateway import TransactionGateway, build_args_json, build_transient_json


def _gateway(runner, logger, console):
    docker_runtime = DockerRuntimeService(runner=runner, logger=logger, console=console, compose_cmd=["docker", "compose"])
    return TransactionGateway(docker_runtime=docker_runtime, logger=logger)


def test_args_json_puts_function_first():
    assert json.loads(build_args_json("CreateAsset", ["asset1", "blue"])) == {"Args": ["CreateAsset", "asset1", "blue"]}
    assert json.loads(build_args_json("GetAllAssets")) == {"Args": ["GetAllAssets"]}


def test_transient_json_is_base64_encoded():
    encoded = json.loads(build_transient_json({"secret": b"\x00\x01", "name": "tom"}))

    assert base64.b64decode(encoded["secret"]) == b"\x00\x01"
    assert base64.b64decode(encoded["name"]) == b"tom"


def test_invoke_extracts_txid_and_payload(network, happy_runner, dummy_logger, dummy_console):
    gateway = _gateway(happy_runner, dummy_logger, dummy_console)

    tx_id, payload = gateway.invoke(network, "basic", "CreateAsset", ["asset1", "blue", "5", "Tom", "35"])

    assert tx_id == "abc123def456"
    assert json.loads(payload) == {"ID": "asset1", "Color": "blue"}
    command = happy_runner.calls[-1]
    assert "--waitForEvent" in command
    assert command.count("--peerAddresses") == 2
    assert command[command.index("-o") + 1] == "orderer.example.com:7050"
    assert json.loads(command[command.index("-c") + 1])["Args"][0] == "CreateAsset"


def test_invoke_without_markers_returns_unknown_and_cleaned_output(
    network,
    scripted_runner,
    dummy_logger,
    dummy_console,
):
    scripted_runner.on("chaincode invoke", output="\x1b[32mdone\x1b[0m\n\n")
    gateway = _gateway(scripted_runner, dummy_logger, dummy_console)

    tx_id, payload = gateway.invoke(network, "basic", "Ping")

    assert tx_id == "unknown"
    assert payload == b"done"


def test_invoke_with_transient_adds_flag(network, happy_runner, dummy_logger, dummy_console):
    gateway = _gateway(happy_runner, dummy_logger, dummy_console)

    gateway.invoke_with_transient(network, "private", "Store", [], {"asset": b"{}"})

    command = happy_runner.calls[-1]
    transient = json.loads(command[command.index("--transient") + 1])
    assert base64.b64decode(transient["asset"]) == b"{}"


def test_query_returns_raw_output(network, happy_runner, dummy_logger, dummy_console):
    gateway = _gateway(happy_runner, dummy_logger, dummy_console)

    payload = gateway.query(network, "basic", "ReadAsset", ["asset1"])

    assert json.loads(payload)["ID"] == "asset1"
    assert payload.endswith(b"\n")
    assert "--peerAddresses" not in happy_runner.calls[-1]


def test_query_failure_carries_operation_and_output(network, scripted_runner, dummy_logger, dummy_console):
    scripted_runner.on("chaincode query", returncode=1, output="asset asset9 does not exist")
    gateway = _gateway(scripted_runner, dummy_logger, dummy_console)

    with pytest.raises(ExternalCommandFailed, match="query_ledger") as exc_info:
        gateway.query(network, "basic", "ReadAsset", ["asset9"])

    assert exc_info.value.details["chaincode"] == "basic"
    assert "does not exist" in exc_info.value.output


def test_transaction_lookup_uses_qscc(network, scripted_runner, dummy_logger, dummy_console):
    gateway = _gateway(scripted_runner, dummy_logger, dummy_console)

    gateway.get_transaction_by_id(network, "abc123")
    gateway.channel_info(network)

    lookup, info = scripted_runner.calls
    assert lookup[lookup.index("-n") + 1] == "qscc"
    assert json.loads(lookup[lookup.index("-c") + 1]) == {"Args": ["GetTransactionByID", "mychannel", "abc123"]}
    assert info[-4:] == ["channel", "getinfo", "-c", "mychannel"]

"""Transaction gateway: invoke and query chaincode through the ``cli`` container."""

import base64
import json
from typing import Dict, List, Optional, Tuple

from fabricx.cancellation import CancellationToken, ensure_token
from fabricx.constants import CLI_CONTAINER
from fabricx.errors import FabricXError
from fabricx.models import Network
from fabricx.services.output_parsing import clean_output, extract_invoke_payload, extract_transaction_id
from fabricx.services.peer_cli import lead_environment, peer_address_args


def build_args_json(function: str, args: Optional[List[str]] = None) -> str:
    return json.dumps({"Args": [function, *(args or [])]}, separators=(",", ":"))


def build_transient_json(transient: Dict[str, bytes]) -> str:
    encoded = {}
    for key, value in transient.items():
        if isinstance(value, str):
            value = value.encode("utf-8")
        encoded[key] = base64.b64encode(value).decode("ascii")
    return json.dumps(encoded, separators=(",", ":"), sort_keys=True)


class TransactionGateway:
    """Submits transactions and queries as the lead organization's admin."""

    def __init__(self, docker_runtime, logger):
        self.docker_runtime = docker_runtime
        self.logger = logger

    def _peer(self, network: Network, command: List[str], token: CancellationToken, operation: str, **details) -> str:
        token.check(operation)
        try:
            return self.docker_runtime.execute_in_container(
                CLI_CONTAINER,
                command,
                env=lead_environment(network),
                token=token,
                operation=operation,
            )
        except FabricXError as exc:
            raise exc.wrap(operation, network_id=network.id, **details) from exc

    def _invoke_command(self, network: Network, chaincode: str, args_json: str) -> List[str]:
        return [
            "peer",
            "chaincode",
            "invoke",
            "-o",
            network.orderer.address,
            "-C",
            network.channel.name,
            "-n",
            chaincode,
            "-c",
            args_json,
            "--waitForEvent",
            *peer_address_args(network),
        ]

    def _invoke(
        self,
        network: Network,
        chaincode: str,
        function: str,
        command: List[str],
        token: CancellationToken,
        operation: str,
    ) -> Tuple[str, bytes]:
        output = self._peer(network, command, token, operation, chaincode=chaincode, function=function)
        tx_id = extract_transaction_id(output)
        payload = extract_invoke_payload(output)
        if payload is None:
            payload = clean_output(output)
        self.logger.info("Invoked %s.%s on %s: txid %s", chaincode, function, network.id, tx_id)
        return tx_id, payload.encode("utf-8")

    def invoke(
        self,
        network: Network,
        chaincode: str,
        function: str,
        args: Optional[List[str]] = None,
        token: Optional[CancellationToken] = None,
    ) -> Tuple[str, bytes]:
        command = self._invoke_command(network, chaincode, build_args_json(function, args))
        return self._invoke(network, chaincode, function, command, ensure_token(token), "invoke_transaction")

    def invoke_with_transient(
        self,
        network: Network,
        chaincode: str,
        function: str,
        args: Optional[List[str]] = None,
        transient: Optional[Dict[str, bytes]] = None,
        token: Optional[CancellationToken] = None,
    ) -> Tuple[str, bytes]:
        command = self._invoke_command(network, chaincode, build_args_json(function, args))
        if transient:
            command.extend(["--transient", build_transient_json(transient)])
        return self._invoke(network, chaincode, function, command, ensure_token(token), "invoke_with_transient")

    def query(
        self,
        network: Network,
        chaincode: str,
        function: str,
        args: Optional[List[str]] = None,
        token: Optional[CancellationToken] = None,
    ) -> bytes:
        command = [
            "peer",
            "chaincode",
            "query",
            "-C",
            network.channel.name,
            "-n",
            chaincode,
            "-c",
            build_args_json(function, args),
        ]
        output = self._peer(network, command, ensure_token(token), "query_ledger", chaincode=chaincode, function=function)
        return output.encode("utf-8")

    def channel_info(self, network: Network, token: Optional[CancellationToken] = None) -> str:
        command = ["peer", "channel", "getinfo", "-c", network.channel.name]
        return self._peer(network, command, ensure_token(token), "channel_info")

    def get_transaction_by_id(self, network: Network, tx_id: str, token: Optional[CancellationToken] = None) -> str:
        command = [
            "peer",
            "chaincode",
            "query",
            "-C",
            network.channel.name,
            "-n",
            "qscc",
            "-c",
            build_args_json("GetTransactionByID", [network.channel.name, tx_id]),
        ]
        return self._peer(network, command, ensure_token(token), "get_transaction_by_id", tx_id=tx_id)

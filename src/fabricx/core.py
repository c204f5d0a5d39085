import logging
from typing import Any, Dict, Iterator, Optional

import requests
from rich.console import Console

from .cancellation import CancellationToken, ensure_token
from .errors import FabricXError, NetworkNotFound
from .errors_catalog import actionable_error
from .messages import (
    DeployChaincodeRequest,
    DeployChaincodeResponse,
    GetNetworkStatusRequest,
    GetNetworkStatusResponse,
    InitNetworkRequest,
    InitNetworkResponse,
    InvokeTransactionRequest,
    InvokeTransactionResponse,
    OrdererStatus,
    PeerStatus,
    QueryLedgerRequest,
    QueryLedgerResponse,
    StopNetworkRequest,
    StopNetworkResponse,
    StreamLogsRequest,
)
from .models import DeployRequest, LogMessage, Network, NetworkConfig, RuntimeSettings
from .registry import NetworkRegistry
from .services.bootstrap import NetworkBootstrapper
from .services.chaincode import ChaincodeDeployer
from .services.channel import ChannelService
from .services.command_runner import CommandRunner
from .services.crypto_config import CryptoConfigGenerator
from .services.docker_runtime import DockerRuntimeService
from .services.filesystem import FileSystemService
from .services.gateway import TransactionGateway
from .services.output_parsing import parse_log_line
from .services.readiness import ReadinessProbe
from .services.topology import build_connection_profile, peer_endpoints

console = Console()
logger = logging.getLogger("fabricx")

TEARDOWN_TIMEOUT = 120.0


class FabricXService:
    """Service façade over the network lifecycle.

    Business failures come back as ``success=False`` responses. Only the
    caller's own cancellation or deadline is raised, as
    ``OperationCancelled`` / ``OperationTimeout``.
    """

    def __init__(
        self,
        registry: NetworkRegistry,
        runner: Optional[CommandRunner] = None,
        settings: Optional[RuntimeSettings] = None,
        logger: logging.Logger = logger,
        console: Console = console,
        requests_module=requests,
    ):
        self.registry = registry
        self.settings = settings or RuntimeSettings()
        self.logger = logger
        self.console = console
        self.runner = runner or CommandRunner(logger=logger, default_timeout=self.settings.command_timeout)

        self.filesystem = FileSystemService(logger=logger, console=console)
        self.docker_runtime = DockerRuntimeService(
            runner=self.runner,
            logger=logger,
            console=console,
            compose_cmd=self.settings.compose_command,
            tools_image=self.settings.tools_image,
        )
        self.crypto_generator = CryptoConfigGenerator(
            runner=self.runner,
            filesystem=self.filesystem,
            logger=logger,
            console=console,
            tools_image=self.settings.tools_image,
        )
        self.bootstrapper = NetworkBootstrapper(
            filesystem=self.filesystem,
            crypto_generator=self.crypto_generator,
            logger=logger,
            console=console,
            work_dir=self.settings.work_dir,
        )
        self.readiness = ReadinessProbe(
            requests_module=requests_module,
            logger=logger,
            interval=self.settings.readiness_interval,
            timeout=self.settings.readiness_timeout,
        )
        self.channel_service = ChannelService(
            docker_runtime=self.docker_runtime,
            crypto_generator=self.crypto_generator,
            logger=logger,
            console=console,
            settle_seconds=self.settings.join_settle_seconds,
        )
        self.deployer = ChaincodeDeployer(
            runner=self.runner,
            docker_runtime=self.docker_runtime,
            filesystem=self.filesystem,
            logger=logger,
            console=console,
            tools_image=self.settings.tools_image,
        )
        self.gateway = TransactionGateway(docker_runtime=self.docker_runtime, logger=logger)

    def _failure_message(self, operation: str, exc: FabricXError, token: CancellationToken) -> str:
        # The caller's own cancellation is not a business failure.
        token.check(operation)
        message = str(exc.wrap(operation))
        self.logger.error(message)
        return message

    def prepare(self, token: Optional[CancellationToken] = None):
        """Checks docker and compose, and pulls images when configured to."""
        token = ensure_token(token)
        self.docker_runtime.check_environment(token)
        if self.settings.pull_images:
            self.docker_runtime.pull_images(token)

    def _discard(self, network: Network):
        if network.id in self.registry:
            try:
                self.registry.remove(network.id)
            except NetworkNotFound:
                pass
        self.docker_runtime.teardown(network, CancellationToken.with_timeout(TEARDOWN_TIMEOUT))
        self.filesystem.cleanup_dir(network.base_path)

    def _start(self, network: Network, token: CancellationToken):
        try:
            self.registry.add(network)
            self.docker_runtime.start_network(network, token)
            self.readiness.wait_for_ready(network, token)
            self.channel_service.setup_channel(network, token)
        except BaseException:
            self.logger.warning("Initialization of network %s failed, rolling back", network.id)
            self._discard(network)
            raise

    def init_network(
        self,
        request: InitNetworkRequest,
        token: Optional[CancellationToken] = None,
    ) -> InitNetworkResponse:
        token = ensure_token(token)
        token.check("init_network")
        try:
            request = request.checked()
            config = NetworkConfig(
                network_name=request.network_name,
                num_orgs=request.num_orgs,
                channel_name=request.channel_name,
                custom_config=dict(request.custom_config),
            )
            network = self.bootstrapper.bootstrap(config, token)
            self._start(network, token)
        except FabricXError as exc:
            return InitNetworkResponse(success=False, message=self._failure_message("init_network", exc, token))

        self.console.print(f"[bold green]Network {network.name} ({network.id}) is ready.[/bold green]")
        return InitNetworkResponse(
            success=True,
            message=f"Network {network.name} initialized with {len(network.organizations)} organizations",
            network_id=network.id,
            endpoints=peer_endpoints(network),
        )

    def deploy_chaincode(
        self,
        request: DeployChaincodeRequest,
        token: Optional[CancellationToken] = None,
    ) -> DeployChaincodeResponse:
        token = ensure_token(token)
        token.check("deploy_chaincode")
        try:
            request = request.checked()
            network = self.registry.get(request.network_id)
            chaincode_id = self.deployer.deploy(
                network,
                DeployRequest(
                    name=request.chaincode_name,
                    path=request.chaincode_path,
                    version=request.version,
                    language=request.language,
                    endorsement_orgs=list(request.endorsement_policy_orgs or []),
                ),
                token,
            )
        except FabricXError as exc:
            return DeployChaincodeResponse(success=False, message=self._failure_message("deploy_chaincode", exc, token))

        return DeployChaincodeResponse(
            success=True,
            message=f"Chaincode {request.chaincode_name} deployed",
            chaincode_id=chaincode_id,
        )

    def invoke_transaction(
        self,
        request: InvokeTransactionRequest,
        token: Optional[CancellationToken] = None,
    ) -> InvokeTransactionResponse:
        token = ensure_token(token)
        token.check("invoke_transaction")
        try:
            request = request.checked()
            network = self.registry.get(request.network_id)
            if request.transient:
                tx_id, payload = self.gateway.invoke_with_transient(
                    network,
                    request.chaincode_name,
                    request.function_name,
                    request.args,
                    request.transient,
                    token,
                )
            else:
                tx_id, payload = self.gateway.invoke(
                    network,
                    request.chaincode_name,
                    request.function_name,
                    request.args,
                    token,
                )
        except FabricXError as exc:
            return InvokeTransactionResponse(
                success=False,
                message=self._failure_message("invoke_transaction", exc, token),
            )

        return InvokeTransactionResponse(
            success=True,
            message="Transaction submitted",
            transaction_id=tx_id,
            payload=payload,
        )

    def query_ledger(
        self,
        request: QueryLedgerRequest,
        token: Optional[CancellationToken] = None,
    ) -> QueryLedgerResponse:
        token = ensure_token(token)
        token.check("query_ledger")
        try:
            request = request.checked()
            network = self.registry.get(request.network_id)
            payload = self.gateway.query(
                network,
                request.chaincode_name,
                request.function_name,
                request.args,
                token,
            )
        except FabricXError as exc:
            return QueryLedgerResponse(success=False, message=self._failure_message("query_ledger", exc, token))

        return QueryLedgerResponse(success=True, message="Query executed", payload=payload)

    def get_network_status(
        self,
        request: GetNetworkStatusRequest,
        token: Optional[CancellationToken] = None,
    ) -> GetNetworkStatusResponse:
        token = ensure_token(token)
        token.check("get_network_status")
        try:
            request = request.checked()
        except FabricXError as exc:
            return GetNetworkStatusResponse(
                running=False,
                status=f"invalid request: {self._failure_message('get_network_status', exc, token)}",
            )
        network = self.registry.find(request.network_id)
        if network is None:
            return GetNetworkStatusResponse(running=False, status="not found")

        try:
            runtime = self.docker_runtime.get_status(network, token)
        except FabricXError as exc:
            return GetNetworkStatusResponse(
                running=False,
                status=f"error checking status: {self._failure_message('get_network_status', exc, token)}",
            )

        def state_of(service_name: str) -> str:
            if runtime.running_services is None:
                return "unknown"
            return "running" if service_name in runtime.running_services else "stopped"

        return GetNetworkStatusResponse(
            running=runtime.running,
            status=runtime.text,
            peers=[
                PeerStatus(
                    name=peer.name,
                    org=org.name,
                    status=state_of(peer.name),
                    endpoint=f"localhost:{peer.port}",
                )
                for org, peer in network.iter_peers()
            ],
            orderers=[
                OrdererStatus(
                    name=orderer.name,
                    status=state_of(orderer.name),
                    endpoint=f"localhost:{orderer.port}",
                )
                for orderer in network.orderers
            ],
        )

    def stream_logs(
        self,
        request: StreamLogsRequest,
        token: Optional[CancellationToken] = None,
    ) -> Iterator[LogMessage]:
        """Follows container logs; raises ``NetworkNotFound`` before the first line for unknown networks."""
        token = ensure_token(token)
        token.check("stream_logs")
        request = request.checked()
        network = self.registry.get(request.network_id)
        if not self.docker_runtime.is_started(network):
            raise NetworkNotFound(
                actionable_error("network_not_found", network_id=network.id),
                operation="stream_logs",
                details={"network_id": network.id},
            )
        lines = self.docker_runtime.stream_logs(network, request.container_name, token)
        return (parse_log_line(line, request.container_name) for line in lines)

    def stop_network(
        self,
        request: StopNetworkRequest,
        token: Optional[CancellationToken] = None,
    ) -> StopNetworkResponse:
        token = ensure_token(token)
        token.check("stop_network")
        try:
            request = request.checked()
            network = self.registry.remove(request.network_id)
            self.docker_runtime.stop_network(network, cleanup=request.cleanup, token=token)
        except FabricXError as exc:
            return StopNetworkResponse(success=False, message=self._failure_message("stop_network", exc, token))

        return StopNetworkResponse(success=True, message=f"Network {request.network_id} stopped")

    def get_channel_info(self, network_id: str, token: Optional[CancellationToken] = None) -> QueryLedgerResponse:
        token = ensure_token(token)
        token.check("get_channel_info")
        try:
            output = self.gateway.channel_info(self.registry.get(network_id), token)
        except FabricXError as exc:
            return QueryLedgerResponse(success=False, message=self._failure_message("get_channel_info", exc, token))
        return QueryLedgerResponse(success=True, message="Channel info retrieved", payload=output.encode("utf-8"))

    def get_transaction(
        self,
        network_id: str,
        tx_id: str,
        token: Optional[CancellationToken] = None,
    ) -> QueryLedgerResponse:
        token = ensure_token(token)
        token.check("get_transaction")
        try:
            output = self.gateway.get_transaction_by_id(self.registry.get(network_id), tx_id, token)
        except FabricXError as exc:
            return QueryLedgerResponse(success=False, message=self._failure_message("get_transaction", exc, token))
        return QueryLedgerResponse(success=True, message="Transaction retrieved", payload=output.encode("utf-8"))

    def get_connection_profile(self, network_id: str, org_name: str) -> Dict[str, Any]:
        return build_connection_profile(self.registry.get(network_id), org_name)

    def shutdown(self):
        """Stops every registered network, continuing past individual failures."""
        networks = self.registry.clear()
        if not networks:
            return
        self.console.print(f"[yellow]Stopping {len(networks)} network(s)...[/yellow]")
        cleanup = self.settings.cleanup_on_shutdown
        for network in networks:
            token = CancellationToken.with_timeout(TEARDOWN_TIMEOUT)
            try:
                if self.docker_runtime.is_started(network):
                    self.docker_runtime.stop_network(network, cleanup=cleanup, token=token)
                elif cleanup:
                    self.filesystem.cleanup_dir(network.base_path)
            except FabricXError as exc:
                self.logger.error("Failed to stop network %s: %s", network.id, exc)
        self.logger.info("Shutdown complete")

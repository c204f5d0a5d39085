"""Docker runtime services for the FabricX runtime."""

import shutil
import threading
from typing import Dict, Iterator, List, Optional

from fabricx.cancellation import CancellationToken, ensure_token
from fabricx.constants import FABRIC_IMAGES, FABRIC_TOOLS_IMAGE
from fabricx.errors import (
    ExternalCommandFailed,
    ExternalToolUnavailable,
    FabricXError,
    NetworkNotFound,
)
from fabricx.errors_catalog import actionable_error
from fabricx.models import Network, NetworkRuntimeState, RuntimeStatus


class DockerRuntimeService:
    """Manages docker-compose detection and the lifecycle of network container groups."""

    def __init__(
        self,
        runner,
        logger,
        console,
        compose_cmd: Optional[List[str]] = None,
        tools_image: str = FABRIC_TOOLS_IMAGE,
    ):
        self.runner = runner
        self.logger = logger
        self.console = console
        self.tools_image = tools_image
        self._compose_cmd = list(compose_cmd) if compose_cmd else None
        self._states: Dict[str, NetworkRuntimeState] = {}
        self._lock = threading.Lock()

    def get_docker_compose_cmd(self, token: Optional[CancellationToken] = None) -> List[str]:
        if self._compose_cmd:
            return list(self._compose_cmd)

        for candidate, probe in (
            (["docker", "compose"], ["docker", "compose", "version"]),
            (["docker-compose"], ["docker-compose", "--version"]),
        ):
            try:
                self.runner.run(probe, token=token, operation="compose_detect")
            except (ExternalCommandFailed, ExternalToolUnavailable):
                continue
            self._compose_cmd = candidate
            self.logger.debug("Using compose command: %s", " ".join(candidate))
            return list(candidate)

        raise ExternalToolUnavailable(actionable_error("compose_unavailable"), operation="compose_detect")

    def check_environment(self, token: Optional[CancellationToken] = None) -> List[str]:
        self.console.print("[blue]Validating Docker environment...[/blue]")
        try:
            self.runner.run(["docker", "version"], token=token, operation="check_environment")
        except ExternalCommandFailed as exc:
            raise ExternalToolUnavailable(
                actionable_error("docker_unavailable", reason=exc.output or str(exc)),
                operation="check_environment",
            ) from exc
        compose_cmd = self.get_docker_compose_cmd(token)
        self.console.print("[green]Docker is available.[/green]")
        return compose_cmd

    def pull_images(self, token: Optional[CancellationToken] = None):
        token = ensure_token(token)
        images = list(FABRIC_IMAGES)
        if self.tools_image not in images:
            images.append(self.tools_image)
        for image in images:
            self.console.print(f"[blue]Pulling {image}...[/blue]")
            try:
                self.runner.run(["docker", "pull", image], token=token, operation="pull_images")
            except FabricXError as exc:
                raise exc.wrap("pull_images", image=image) from exc
        self.console.print("[green]All Fabric images pulled.[/green]")

    def _compose(self, state: NetworkRuntimeState, *args: str, token=None) -> List[str]:
        return self.get_docker_compose_cmd(token) + ["-f", state.compose_path, "-p", state.project_name, *args]

    def _state(self, network_id: str) -> Optional[NetworkRuntimeState]:
        with self._lock:
            return self._states.get(network_id)

    def is_started(self, network: Network) -> bool:
        return self._state(network.id) is not None

    def start_network(self, network: Network, token: Optional[CancellationToken] = None):
        token = ensure_token(token)
        state = NetworkRuntimeState(compose_path=network.compose_path, project_name=network.project_name)

        self.console.print("[blue]Starting Fabric network containers...[/blue]")
        try:
            self.runner.run(
                self._compose(state, "up", "-d", token=token),
                token=token,
                operation="start_network",
            )
        except FabricXError as exc:
            raise exc.wrap("start_network", network_id=network.id) from exc

        with self._lock:
            self._states[network.id] = state
        self.console.print("[green]Network containers started.[/green]")
        self.logger.info("Network %s started as project %s", network.id, state.project_name)

    def stop_network(
        self,
        network: Network,
        cleanup: bool = False,
        token: Optional[CancellationToken] = None,
    ):
        token = ensure_token(token)
        state = self._state(network.id)
        if state is None:
            raise NetworkNotFound(
                actionable_error("network_not_found", network_id=network.id),
                operation="stop_network",
                details={"network_id": network.id},
            )

        self.console.print("[blue]Stopping Fabric network...[/blue]")
        args = ["down"]
        if cleanup:
            args.extend(["-v", "--remove-orphans"])
        try:
            self.runner.run(self._compose(state, *args, token=token), token=token, operation="stop_network")
        except FabricXError as exc:
            raise exc.wrap("stop_network", network_id=network.id) from exc

        with self._lock:
            self._states.pop(network.id, None)

        if cleanup:
            self.console.print("[dim]Cleaning up network files...[/dim]")
            try:
                shutil.rmtree(network.base_path)
            except FileNotFoundError:
                pass
            except OSError as exc:
                raise FabricXError(
                    f"Could not remove {network.base_path}: {exc}",
                    operation="stop_network",
                    details={"network_id": network.id},
                ) from exc
        self.console.print("[green]Network stopped.[/green]")

    def teardown(self, network: Network, token: Optional[CancellationToken] = None) -> bool:
        """Best-effort ``down -v`` for a network whose start may have half-succeeded."""
        state = self._state(network.id) or NetworkRuntimeState(
            compose_path=network.compose_path,
            project_name=network.project_name,
        )
        with self._lock:
            self._states.pop(network.id, None)
        try:
            result = self.runner.run(
                self._compose(state, "down", "-v", "--remove-orphans", token=token),
                token=token,
                check=False,
                operation="teardown",
            )
        except FabricXError as exc:
            self.logger.warning("Teardown of network %s failed: %s", network.id, exc)
            return False
        return result.returncode == 0

    def get_status(self, network: Network, token: Optional[CancellationToken] = None) -> RuntimeStatus:
        state = self._state(network.id)
        if state is None:
            return RuntimeStatus(started=False)

        result = self.runner.run(self._compose(state, "ps", "-q", token=token), token=token, operation="get_status")
        container_ids = [line for line in result.stdout.splitlines() if line.strip()]

        services = self.runner.run(
            self._compose(state, "ps", "--services", "--filter", "status=running", token=token),
            token=token,
            check=False,
            operation="get_status",
        )
        running_services = None
        if services.returncode == 0:
            running_services = sorted(line.strip() for line in services.stdout.splitlines() if line.strip())

        return RuntimeStatus(
            started=True,
            running_count=len(container_ids),
            running_services=running_services,
        )

    def stream_logs(
        self,
        network: Network,
        container_name: str = "",
        token: Optional[CancellationToken] = None,
    ) -> Iterator[str]:
        state = self._state(network.id)
        if state is None:
            raise NetworkNotFound(
                actionable_error("network_not_found", network_id=network.id),
                operation="stream_logs",
                details={"network_id": network.id},
            )

        args = ["logs", "-f", "--timestamps", "--no-color"]
        if container_name:
            args.append(container_name)
        stream = self.runner.stream(self._compose(state, *args, token=token), token=token)
        try:
            for line in stream:
                yield line
        finally:
            stream.close()

    def execute_in_container(
        self,
        container_name: str,
        command: List[str],
        env: Optional[Dict[str, str]] = None,
        token: Optional[CancellationToken] = None,
        operation: str = "execute_in_container",
    ) -> str:
        cmd = ["docker", "exec"]
        for key, value in (env or {}).items():
            cmd.extend(["-e", f"{key}={value}"])
        cmd.append(container_name)
        cmd.extend(command)
        return self.runner.run(cmd, token=token, operation=operation).stdout

    def copy_to_container(
        self,
        src_path: str,
        container_name: str,
        dst_path: str,
        token: Optional[CancellationToken] = None,
    ):
        self.runner.run(
            ["docker", "cp", src_path, f"{container_name}:{dst_path}"],
            token=token,
            operation="copy_to_container",
        )

    def copy_from_container(
        self,
        container_name: str,
        src_path: str,
        dst_path: str,
        token: Optional[CancellationToken] = None,
    ):
        self.runner.run(
            ["docker", "cp", f"{container_name}:{src_path}", dst_path],
            token=token,
            operation="copy_from_container",
        )

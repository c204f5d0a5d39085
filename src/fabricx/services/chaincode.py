"""Chaincode deployment pipeline: package, install, approve, commit, init."""

import os
import posixpath
import uuid
from typing import List, Optional

from fabricx.cancellation import CancellationToken, ensure_token
from fabricx.constants import (
    CHAINCODE_LANGUAGES,
    CLI_CONTAINER,
    DEFAULT_CHAINCODE_LANGUAGE,
    DEFAULT_CHAINCODE_VERSION,
)
from fabricx.errors import FabricXError, InvalidConfiguration, PackageIdentifierNotFound
from fabricx.errors_catalog import actionable_error
from fabricx.models import DeployRequest, Network, Organization
from fabricx.services.output_parsing import clean_output, extract_package_id
from fabricx.services.peer_cli import lead_environment, peer_address_args, peer_environment

CONTAINER_PACKAGE_DIR = "/tmp"


def package_file_name(request: DeployRequest) -> str:
    return f"{request.label}.tar.gz"


def container_package_path(package_path: str) -> str:
    """Archive location inside ``cli``, keyed by the archive name so deployments do not share it."""
    return posixpath.join(CONTAINER_PACKAGE_DIR, os.path.basename(package_path))


def build_endorsement_policy(organizations: List[Organization], requested: Optional[List[str]] = None) -> str:
    """``OR`` of member principals over the requested organizations.

    Unknown names are ignored. When nothing is requested, or nothing
    requested matches, every organization is included.
    """
    selected = []
    for name in requested or []:
        for org in organizations:
            if org.name == name and org not in selected:
                selected.append(org)
    if not selected:
        selected = list(organizations)
    principals = ",".join(f"'{org.msp_id}.member'" for org in selected)
    return f"OR({principals})"


def normalize_request(request: DeployRequest) -> DeployRequest:
    if not request.name or not request.path:
        raise InvalidConfiguration(
            "Chaincode name and path are required.",
            operation="deploy_chaincode",
        )
    language = (request.language or DEFAULT_CHAINCODE_LANGUAGE).lower()
    if language not in CHAINCODE_LANGUAGES:
        raise InvalidConfiguration(
            f"Unsupported chaincode language '{language}'. Use one of: {', '.join(CHAINCODE_LANGUAGES)}.",
            operation="deploy_chaincode",
        )
    return DeployRequest(
        name=request.name,
        path=os.path.abspath(request.path),
        version=request.version or DEFAULT_CHAINCODE_VERSION,
        language=language,
        endorsement_orgs=list(request.endorsement_orgs or []),
    )


class ChaincodeDeployer:
    """Deploys chaincode to every peer of a network.

    A failure in any mandatory phase aborts the deployment. Peers that were
    already reached keep what was installed on them; nothing is rolled back.
    """

    def __init__(self, runner, docker_runtime, filesystem, logger, console, tools_image: str):
        self.runner = runner
        self.docker_runtime = docker_runtime
        self.filesystem = filesystem
        self.logger = logger
        self.console = console
        self.tools_image = tools_image

    def package(self, network: Network, request: DeployRequest, token: CancellationToken) -> str:
        package_dir = network.chaincode_path
        package_path = os.path.join(package_dir, package_file_name(request))
        self.filesystem.ensure_dir(package_dir)

        token.check("package_chaincode")
        self.console.print(f"[blue]Packaging chaincode from {request.path}...[/blue]")
        self.runner.run(
            [
                "docker",
                "run",
                "--rm",
                "-v",
                f"{request.path}:/chaincode",
                "-v",
                f"{package_dir}:/output",
                self.tools_image,
                "peer",
                "lifecycle",
                "chaincode",
                "package",
                f"/output/{package_file_name(request)}",
                "--path",
                "/chaincode",
                "--lang",
                request.language,
                "--label",
                request.label,
            ],
            token=token,
            operation="package_chaincode",
        )
        self.console.print("[green]Chaincode packaged.[/green]")
        return package_path

    def install(self, network: Network, package_path: str, token: CancellationToken):
        target = container_package_path(package_path)
        for org, peer in network.iter_peers():
            token.check("install_chaincode")
            self.console.print(f"[blue]Installing on {peer.name}...[/blue]")
            try:
                self.docker_runtime.copy_to_container(package_path, CLI_CONTAINER, target, token=token)
                token.check("install_chaincode")
                self.docker_runtime.execute_in_container(
                    CLI_CONTAINER,
                    ["peer", "lifecycle", "chaincode", "install", target],
                    env=peer_environment(org, peer),
                    token=token,
                    operation="install_chaincode",
                )
            except FabricXError as exc:
                raise exc.wrap("install_chaincode", peer=peer.name, org=org.name) from exc
            self.console.print(f"[green]Installed on {peer.name}.[/green]")

    def resolve_package_id(
        self,
        network: Network,
        org: Organization,
        request: DeployRequest,
        token: CancellationToken,
    ) -> str:
        token.check("query_installed")
        peer = org.anchor_peer
        output = self.docker_runtime.execute_in_container(
            CLI_CONTAINER,
            ["peer", "lifecycle", "chaincode", "queryinstalled"],
            env=peer_environment(org, peer),
            token=token,
            operation="query_installed",
        )
        package_id = extract_package_id(output, request.label)
        if package_id is None:
            raise PackageIdentifierNotFound(
                actionable_error("package_id_not_found", label=request.label, peer=peer.name),
                operation="query_installed",
                details={"label": request.label, "org": org.name},
            )
        return package_id

    def approve(self, network: Network, request: DeployRequest, policy: str, token: CancellationToken):
        for org in network.organizations:
            token.check("approve_chaincode")
            self.console.print(f"[blue]Approving for {org.name}...[/blue]")
            try:
                package_id = self.resolve_package_id(network, org, request, token)
                token.check("approve_chaincode")
                self.docker_runtime.execute_in_container(
                    CLI_CONTAINER,
                    [
                        "peer",
                        "lifecycle",
                        "chaincode",
                        "approveformyorg",
                        "-o",
                        network.orderer.address,
                        "--channelID",
                        network.channel.name,
                        "--name",
                        request.name,
                        "--version",
                        request.version,
                        "--package-id",
                        package_id,
                        "--sequence",
                        "1",
                        "--signature-policy",
                        policy,
                    ],
                    env=peer_environment(org, org.anchor_peer),
                    token=token,
                    operation="approve_chaincode",
                )
            except FabricXError as exc:
                raise exc.wrap("approve_chaincode", org=org.name) from exc
            self.console.print(f"[green]Approved for {org.name}.[/green]")

    def commit(self, network: Network, request: DeployRequest, policy: str, token: CancellationToken):
        token.check("commit_chaincode")
        self.console.print("[blue]Committing chaincode to channel...[/blue]")
        try:
            self.docker_runtime.execute_in_container(
                CLI_CONTAINER,
                [
                    "peer",
                    "lifecycle",
                    "chaincode",
                    "commit",
                    "-o",
                    network.orderer.address,
                    "--channelID",
                    network.channel.name,
                    "--name",
                    request.name,
                    "--version",
                    request.version,
                    "--sequence",
                    "1",
                    "--signature-policy",
                    policy,
                    *peer_address_args(network),
                ],
                env=lead_environment(network),
                token=token,
                operation="commit_chaincode",
            )
        except FabricXError as exc:
            raise exc.wrap("commit_chaincode", chaincode=request.name) from exc
        self.console.print("[green]Chaincode committed.[/green]")

    def init(self, network: Network, request: DeployRequest, token: CancellationToken) -> bool:
        token.check("init_chaincode")
        try:
            self.docker_runtime.execute_in_container(
                CLI_CONTAINER,
                [
                    "peer",
                    "chaincode",
                    "invoke",
                    "-o",
                    network.orderer.address,
                    "-C",
                    network.channel.name,
                    "-n",
                    request.name,
                    "--isInit",
                    "-c",
                    '{"Args":["Init"]}',
                    *peer_address_args(network),
                ],
                env=lead_environment(network),
                token=token,
                operation="init_chaincode",
            )
        except FabricXError as exc:
            token.check("init_chaincode")
            output = clean_output(getattr(exc, "output", ""))
            self.logger.warning("Chaincode init for %s returned an error (may be expected): %s", request.name, output or exc)
            return False
        return True

    def deploy(self, network: Network, request: DeployRequest, token: Optional[CancellationToken] = None) -> str:
        token = ensure_token(token)
        token.check("deploy_chaincode")
        request = normalize_request(request)
        chaincode_id = f"{request.name}-{uuid.uuid4().hex[:8]}"
        policy = build_endorsement_policy(network.organizations, request.endorsement_orgs)
        self.logger.info("Deploying %s to network %s with policy %s", request.label, network.id, policy)

        package_path = self.package(network, request, token)
        self.install(network, package_path, token)
        self.approve(network, request, policy, token)
        self.commit(network, request, policy, token)
        self.init(network, request, token)

        self.console.print(f"[green]Chaincode {request.name} deployed as {chaincode_id}.[/green]")
        return chaincode_id

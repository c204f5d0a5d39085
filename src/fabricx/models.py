"""Shared domain models for the FabricX runtime."""

import os
import tempfile
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from fabricx.constants import (
    CHANNEL_PROFILE,
    COMPOSE_FILE_NAME,
    DEFAULT_CHAINCODE_LANGUAGE,
    DEFAULT_CHAINCODE_VERSION,
    FABRIC_TOOLS_IMAGE,
)


@dataclass(frozen=True)
class Peer:
    name: str
    port: int
    chaincode_port: int
    operations_port: int
    couchdb: bool = True
    db_port: int = 0


@dataclass(frozen=True)
class Organization:
    name: str
    msp_id: str
    domain: str
    ca_port: int
    peers: List[Peer] = field(default_factory=list)

    @property
    def ca_name(self) -> str:
        return f"ca.{self.domain}"

    @property
    def anchor_peer(self) -> Peer:
        return self.peers[0]


@dataclass(frozen=True)
class Orderer:
    name: str
    port: int
    domain: str
    operations_port: int

    @property
    def address(self) -> str:
        return f"{self.name}:{self.port}"


@dataclass(frozen=True)
class Channel:
    name: str
    profile_name: str = CHANNEL_PROFILE


@dataclass
class NetworkConfig:
    """Bootstrap request parameters; empty values are replaced by defaults."""

    network_name: str = ""
    num_orgs: int = 0
    channel_name: str = ""
    custom_config: Dict[str, str] = field(default_factory=dict)


@dataclass
class Network:
    """A bootstrapped network and the filesystem subtree that backs it."""

    id: str
    name: str
    base_path: str
    config: NetworkConfig
    channel: Channel
    organizations: List[Organization] = field(default_factory=list)
    orderers: List[Orderer] = field(default_factory=list)

    @property
    def crypto_path(self) -> str:
        return os.path.join(self.base_path, "crypto-config")

    @property
    def config_path(self) -> str:
        return os.path.join(self.base_path, "config")

    @property
    def compose_path(self) -> str:
        return os.path.join(self.config_path, COMPOSE_FILE_NAME)

    @property
    def chaincode_path(self) -> str:
        return os.path.join(self.base_path, "chaincode")

    @property
    def project_name(self) -> str:
        return f"fabricx-{self.id}"

    @property
    def docker_network(self) -> str:
        return f"fabricx_{self.id}"

    @property
    def orderer(self) -> Orderer:
        return self.orderers[0]

    @property
    def lead_organization(self) -> Organization:
        return self.organizations[0]

    def iter_peers(self):
        for org in self.organizations:
            for peer in org.peers:
                yield org, peer


@dataclass
class NetworkRuntimeState:
    compose_path: str
    project_name: str


@dataclass
class RuntimeStatus:
    started: bool
    running_count: int = 0
    # None when the running-services query failed
    running_services: Optional[List[str]] = field(default_factory=list)

    @property
    def running(self) -> bool:
        return self.started and self.running_count > 0

    @property
    def text(self) -> str:
        if not self.started:
            return "not started"
        return f"{self.running_count} containers running"


@dataclass
class DeployRequest:
    name: str
    path: str
    version: str = DEFAULT_CHAINCODE_VERSION
    language: str = DEFAULT_CHAINCODE_LANGUAGE
    endorsement_orgs: List[str] = field(default_factory=list)

    @property
    def label(self) -> str:
        return f"{self.name}_{self.version}"


@dataclass(frozen=True)
class LogMessage:
    timestamp: str
    container: str
    message: str


@dataclass
class RuntimeSettings:
    """Resolved runtime configuration (CLI options over config file over defaults)."""

    host: str = "0.0.0.0"
    port: int = 50051
    max_workers: int = 10
    work_dir: str = field(default_factory=tempfile.gettempdir)
    tools_image: str = FABRIC_TOOLS_IMAGE
    compose_command: Optional[List[str]] = None
    command_timeout: Optional[float] = None
    readiness_timeout: float = 120.0
    readiness_interval: float = 2.0
    join_settle_seconds: float = 2.0
    pull_images: bool = False
    cleanup_on_shutdown: bool = False

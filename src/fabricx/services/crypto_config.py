"""Crypto-material and channel-artifact generation.

Key material and blocks are produced by ``cryptogen`` and ``configtxgen``
running in a single-shot fabric-tools container; this module only writes
their input documents and drives the container.
"""

import os
from typing import Any, Dict, List, Optional

from fabricx.cancellation import CancellationToken, ensure_token
from fabricx.constants import (
    CONSORTIUM_NAME,
    FABRIC_TOOLS_IMAGE,
    GENESIS_PROFILE,
    ORDERER_DOMAIN,
    ORDERER_MSP_ID,
    SYSTEM_CHANNEL,
    TOOLS_CONFIG_DIR,
    TOOLS_CRYPTO_DIR,
)
from fabricx.errors import CryptoGenerationFailed, ExternalCommandFailed
from fabricx.errors_catalog import actionable_error
from fabricx.models import Network, Organization

V2_CAPABILITIES = {"V2_0": True}


def _signature(rule: str) -> Dict[str, str]:
    return {"Type": "Signature", "Rule": rule}


def _implicit(rule: str) -> Dict[str, str]:
    return {"Type": "ImplicitMeta", "Rule": rule}


def _base_policies() -> Dict[str, Any]:
    return {
        "Readers": _implicit("ANY Readers"),
        "Writers": _implicit("ANY Writers"),
        "Admins": _implicit("MAJORITY Admins"),
    }


def _application_policies() -> Dict[str, Any]:
    policies = _base_policies()
    policies["LifecycleEndorsement"] = _implicit("MAJORITY Endorsement")
    policies["Endorsement"] = _implicit("MAJORITY Endorsement")
    return policies


def _orderer_policies() -> Dict[str, Any]:
    policies = _base_policies()
    policies["BlockValidation"] = _implicit("ANY Writers")
    return policies


def build_crypto_config(network: Network) -> Dict[str, Any]:
    return {
        "OrdererOrgs": [
            {
                "Name": "Orderer",
                "Domain": ORDERER_DOMAIN,
                "Specs": [{"Hostname": orderer.name.split(".")[0]} for orderer in network.orderers],
            }
        ],
        "PeerOrgs": [
            {
                "Name": org.name,
                "Domain": org.domain,
                "EnableNodeOUs": True,
                "Template": {"Count": len(org.peers)},
                "Users": {"Count": 1},
            }
            for org in network.organizations
        ],
    }


def _orderer_org_definition() -> Dict[str, Any]:
    return {
        "Name": "OrdererOrg",
        "ID": ORDERER_MSP_ID,
        "MSPDir": f"{TOOLS_CRYPTO_DIR}/ordererOrganizations/{ORDERER_DOMAIN}/msp",
        "Policies": {
            "Readers": _signature(f"OR('{ORDERER_MSP_ID}.member')"),
            "Writers": _signature(f"OR('{ORDERER_MSP_ID}.member')"),
            "Admins": _signature(f"OR('{ORDERER_MSP_ID}.admin')"),
        },
    }


def _peer_org_definition(org: Organization) -> Dict[str, Any]:
    msp = org.msp_id
    return {
        "Name": org.name,
        "ID": msp,
        "MSPDir": f"{TOOLS_CRYPTO_DIR}/peerOrganizations/{org.domain}/msp",
        "Policies": {
            "Readers": _signature(f"OR('{msp}.admin', '{msp}.peer', '{msp}.client')"),
            "Writers": _signature(f"OR('{msp}.admin', '{msp}.client')"),
            "Admins": _signature(f"OR('{msp}.admin')"),
            "Endorsement": _signature(f"OR('{msp}.peer')"),
        },
        "AnchorPeers": [{"Host": org.anchor_peer.name, "Port": org.anchor_peer.port}],
    }


def _orderer_section(network: Network, organizations: Optional[List[Dict[str, Any]]]) -> Dict[str, Any]:
    section = {
        "OrdererType": "solo",
        "Addresses": [orderer.address for orderer in network.orderers],
        "BatchTimeout": "2s",
        "BatchSize": {
            "MaxMessageCount": 10,
            "AbsoluteMaxBytes": "99 MB",
            "PreferredMaxBytes": "512 KB",
        },
        "Organizations": organizations,
        "Policies": _orderer_policies(),
    }
    if organizations is not None:
        section["Capabilities"] = dict(V2_CAPABILITIES)
    return section


def build_configtx(network: Network) -> Dict[str, Any]:
    orderer_org = _orderer_org_definition()
    peer_orgs = [_peer_org_definition(org) for org in network.organizations]

    return {
        "Organizations": [orderer_org] + peer_orgs,
        "Capabilities": {
            "Channel": dict(V2_CAPABILITIES),
            "Orderer": dict(V2_CAPABILITIES),
            "Application": dict(V2_CAPABILITIES),
        },
        "Application": {
            "Organizations": None,
            "Policies": _application_policies(),
            "Capabilities": dict(V2_CAPABILITIES),
        },
        "Orderer": _orderer_section(network, None),
        "Channel": {
            "Policies": _base_policies(),
            "Capabilities": dict(V2_CAPABILITIES),
        },
        "Profiles": {
            GENESIS_PROFILE: {
                "Orderer": _orderer_section(network, [orderer_org]),
                "Consortiums": {CONSORTIUM_NAME: {"Organizations": peer_orgs}},
                "Capabilities": dict(V2_CAPABILITIES),
                "Policies": _base_policies(),
            },
            network.channel.profile_name: {
                "Consortium": CONSORTIUM_NAME,
                "Policies": _base_policies(),
                "Capabilities": dict(V2_CAPABILITIES),
                "Application": {
                    "Organizations": peer_orgs,
                    "Capabilities": dict(V2_CAPABILITIES),
                    "Policies": _application_policies(),
                },
            },
        },
    }


def build_core_config(network: Network) -> Dict[str, Any]:
    """Minimal core.yaml so the peer CLI inside the ``cli`` container can start."""
    lead_peer = network.lead_organization.anchor_peer
    return {
        "peer": {
            "id": "cli",
            "networkId": network.docker_network,
            "address": f"{lead_peer.name}:{lead_peer.port}",
            "addressAutoDetect": False,
            "gomaxprocs": -1,
            "keepalive": {
                "minInterval": "60s",
                "client": {"interval": "60s", "timeout": "20s"},
                "deliveryClient": {"interval": "60s", "timeout": "20s"},
            },
            "gossip": {
                "bootstrap": "127.0.0.1:7051",
                "useLeaderElection": True,
                "orgLeader": False,
                "maxBlockCountToStore": 100,
                "dialTimeout": "3s",
                "connTimeout": "2s",
                "aliveTimeInterval": "5s",
                "aliveExpirationTimeout": "25s",
                "reconnectInterval": "25s",
            },
            "tls": {"enabled": False},
            "bccsp": {"default": "SW", "sw": {"hash": "SHA2", "security": 256}},
            "fileSystemPath": "/var/hyperledger/production",
        },
        "vm": {"endpoint": "unix:///host/var/run/docker.sock"},
        "chaincode": {
            "builder": "$(DOCKER_NS)/fabric-ccenv:$(TWO_DIGIT_VERSION)",
            "pull": False,
            "golang": {
                "runtime": "$(DOCKER_NS)/fabric-baseos:$(TWO_DIGIT_VERSION)",
                "dynamicLink": False,
            },
            "java": {"runtime": "$(DOCKER_NS)/fabric-javaenv:$(TWO_DIGIT_VERSION)"},
            "node": {"runtime": "$(DOCKER_NS)/fabric-nodeenv:$(TWO_DIGIT_VERSION)"},
            "startuptimeout": "300s",
            "executetimeout": "30s",
            "mode": "net",
            "keepalive": 0,
        },
        "ledger": {"state": {"stateDatabase": "goleveldb"}},
    }


class CryptoConfigGenerator:
    """Writes generator inputs and renders key material, genesis block and channel tx."""

    def __init__(self, runner, filesystem, logger, console, tools_image: str = FABRIC_TOOLS_IMAGE):
        self.runner = runner
        self.filesystem = filesystem
        self.logger = logger
        self.console = console
        self.tools_image = tools_image

    def tools_command(self, network: Network, *args: str) -> List[str]:
        return [
            "docker",
            "run",
            "--rm",
            "-v",
            f"{network.config_path}:{TOOLS_CONFIG_DIR}",
            "-v",
            f"{network.crypto_path}:{TOOLS_CRYPTO_DIR}",
            "-e",
            f"FABRIC_CFG_PATH={TOOLS_CONFIG_DIR}",
            self.tools_image,
            *args,
        ]

    def _run_tool(self, network: Network, step: str, args: List[str], token: CancellationToken):
        token.check(step)
        try:
            self.runner.run(self.tools_command(network, *args), token=token, operation=step)
        except ExternalCommandFailed as exc:
            raise CryptoGenerationFailed(
                actionable_error("crypto_generation_failed", step=step, image=self.tools_image),
                operation=step,
                details={"network_id": network.id},
                returncode=exc.returncode,
                output=exc.output,
            ) from exc

    def generate(self, network: Network, token: Optional[CancellationToken] = None):
        token = ensure_token(token)
        self.filesystem.ensure_dir(network.config_path)
        self.filesystem.ensure_dir(network.crypto_path)

        self.filesystem.write_yaml(
            os.path.join(network.config_path, "crypto-config.yaml"),
            build_crypto_config(network),
        )
        self.console.print("[blue]Generating crypto material...[/blue]")
        self._run_tool(
            network,
            "cryptogen",
            [
                "cryptogen",
                "generate",
                f"--config={TOOLS_CONFIG_DIR}/crypto-config.yaml",
                f"--output={TOOLS_CRYPTO_DIR}",
            ],
            token,
        )

        self.filesystem.write_yaml(os.path.join(network.config_path, "configtx.yaml"), build_configtx(network))
        self.filesystem.write_yaml(os.path.join(network.config_path, "core.yaml"), build_core_config(network))

        self.console.print("[blue]Rendering genesis block...[/blue]")
        self._run_tool(
            network,
            "genesis_block",
            [
                "configtxgen",
                "-profile",
                GENESIS_PROFILE,
                "-channelID",
                SYSTEM_CHANNEL,
                "-outputBlock",
                f"{TOOLS_CONFIG_DIR}/genesis.block",
            ],
            token,
        )

        self.console.print("[blue]Rendering channel transaction...[/blue]")
        self._run_tool(
            network,
            "channel_tx",
            [
                "configtxgen",
                "-profile",
                network.channel.profile_name,
                "-outputCreateChannelTx",
                f"{TOOLS_CONFIG_DIR}/{network.channel.name}.tx",
                "-channelID",
                network.channel.name,
            ],
            token,
        )
        self.logger.info("Crypto material and channel artifacts ready for network %s", network.id)

    def generate_anchor_peer_update(
        self,
        network: Network,
        org: Organization,
        token: Optional[CancellationToken] = None,
    ) -> str:
        """Renders ``<Org>anchors.tx`` and returns its file name within the config tree."""
        file_name = f"{org.name}anchors.tx"
        token = ensure_token(token)
        token.check("anchor_peer_update")
        self.runner.run(
            self.tools_command(
                network,
                "configtxgen",
                "-profile",
                network.channel.profile_name,
                "-outputAnchorPeersUpdate",
                f"{TOOLS_CONFIG_DIR}/{file_name}",
                "-channelID",
                network.channel.name,
                "-asOrg",
                org.name,
            ),
            token=token,
            operation="anchor_peer_update",
        )
        return file_name

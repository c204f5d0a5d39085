"""Identity environment for ``peer`` commands issued through the ``cli`` container."""

from typing import Dict, List

from fabricx.constants import CLI_CONFIG_DIR
from fabricx.models import Network, Organization, Peer
from fabricx.services.compose import admin_msp_path


def peer_environment(org: Organization, peer: Peer) -> Dict[str, str]:
    return {
        "CORE_PEER_LOCALMSPID": org.msp_id,
        "CORE_PEER_ADDRESS": f"{peer.name}:{peer.port}",
        "CORE_PEER_MSPCONFIGPATH": admin_msp_path(org),
        "CORE_PEER_TLS_ENABLED": "false",
        "FABRIC_CFG_PATH": CLI_CONFIG_DIR,
    }


def lead_environment(network: Network) -> Dict[str, str]:
    lead = network.lead_organization
    return peer_environment(lead, lead.anchor_peer)


def peer_address_args(network: Network) -> List[str]:
    args = []
    for _, peer in network.iter_peers():
        args.extend(["--peerAddresses", f"{peer.name}:{peer.port}"])
    return args

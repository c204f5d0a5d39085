"""Topology planning: organizations, peers, orderers and their host ports.

Every per-organization port is ``base + index * PORT_STRIDE``. The bases
differ modulo the stride, so two organizations never collide and the
peer, chaincode, CA, CouchDB and operations ports of one organization are
pairwise distinct.
"""

from typing import Any, Dict, List, Tuple

from fabricx.constants import (
    CA_BASE_PORT,
    COUCHDB_BASE_PORT,
    DEFAULT_CHANNEL_NAME,
    DEFAULT_NETWORK_NAME,
    DEFAULT_ORG_COUNT,
    MAX_ORGANIZATIONS,
    OPERATIONS_BASE_PORT,
    ORDERER_DOMAIN,
    ORDERER_OPERATIONS_PORT,
    ORDERER_PORT,
    PEER_BASE_PORT,
    PORT_STRIDE,
)
from fabricx.errors import InvalidConfiguration
from fabricx.errors_catalog import actionable_error
from fabricx.models import Network, NetworkConfig, Orderer, Organization, Peer

STATE_DATABASES = ("couchdb", "goleveldb")


def apply_defaults(config: NetworkConfig) -> NetworkConfig:
    return NetworkConfig(
        network_name=config.network_name or DEFAULT_NETWORK_NAME,
        num_orgs=config.num_orgs or DEFAULT_ORG_COUNT,
        channel_name=config.channel_name or DEFAULT_CHANNEL_NAME,
        custom_config=dict(config.custom_config or {}),
    )


def _uses_couchdb(custom_config: Dict[str, str]) -> bool:
    state_database = str(custom_config.get("state_database", "couchdb")).strip().lower()
    if state_database not in STATE_DATABASES:
        raise InvalidConfiguration(
            f"Unsupported state_database '{state_database}'. Use one of: {', '.join(STATE_DATABASES)}.",
            operation="plan_topology",
        )
    return state_database == "couchdb"


def plan_organizations(num_orgs: int, couchdb: bool = True) -> List[Organization]:
    if num_orgs == 0:
        num_orgs = DEFAULT_ORG_COUNT
    if num_orgs < 1 or num_orgs > MAX_ORGANIZATIONS:
        raise InvalidConfiguration(
            actionable_error("invalid_org_count", count=str(num_orgs), maximum=str(MAX_ORGANIZATIONS)),
            operation="plan_topology",
        )

    organizations = []
    for index in range(num_orgs):
        number = index + 1
        offset = index * PORT_STRIDE
        domain = f"org{number}.example.com"
        peer = Peer(
            name=f"peer0.{domain}",
            port=PEER_BASE_PORT + offset,
            chaincode_port=PEER_BASE_PORT + 1 + offset,
            operations_port=OPERATIONS_BASE_PORT + offset,
            couchdb=couchdb,
            db_port=COUCHDB_BASE_PORT + offset if couchdb else 0,
        )
        organizations.append(
            Organization(
                name=f"Org{number}",
                msp_id=f"Org{number}MSP",
                domain=domain,
                ca_port=CA_BASE_PORT + offset,
                peers=[peer],
            )
        )
    return organizations


def plan_orderers() -> List[Orderer]:
    return [
        Orderer(
            name=f"orderer.{ORDERER_DOMAIN}",
            port=ORDERER_PORT,
            domain=ORDERER_DOMAIN,
            operations_port=ORDERER_OPERATIONS_PORT,
        )
    ]


def plan_topology(config: NetworkConfig) -> Tuple[List[Organization], List[Orderer]]:
    couchdb = _uses_couchdb(config.custom_config)
    return plan_organizations(config.num_orgs, couchdb=couchdb), plan_orderers()


def peer_endpoints(network: Network) -> List[str]:
    return [f"localhost:{peer.port}" for _, peer in network.iter_peers()]


def build_connection_profile(network: Network, org_name: str) -> Dict[str, Any]:
    """SDK connection profile for one organization of the network."""
    matches = [org for org in network.organizations if org.name == org_name]
    if not matches:
        raise InvalidConfiguration(
            f"Organization {org_name} is not part of network {network.id}",
            operation="build_connection_profile",
        )

    organizations = {}
    peers = {}
    certificate_authorities = {}
    for org in network.organizations:
        organizations[org.name] = {
            "mspid": org.msp_id,
            "peers": [peer.name for peer in org.peers],
            "certificateAuthorities": [org.ca_name],
        }
        certificate_authorities[org.ca_name] = {
            "url": f"http://localhost:{org.ca_port}",
            "caName": org.ca_name,
        }
        for peer in org.peers:
            peers[peer.name] = {"url": f"grpc://localhost:{peer.port}"}

    return {
        "name": f"{network.name}-network",
        "version": "1.0.0",
        "client": {"organization": org_name},
        "channels": {
            network.channel.name: {
                "orderers": [orderer.name for orderer in network.orderers],
                "peers": {name: {} for name in peers},
            }
        },
        "organizations": organizations,
        "orderers": {
            orderer.name: {"url": f"grpc://localhost:{orderer.port}"} for orderer in network.orderers
        },
        "peers": peers,
        "certificateAuthorities": certificate_authorities,
    }

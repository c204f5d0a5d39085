"""Docker compose manifest synthesis for a planned network."""

from typing import Any, Dict, List

from fabricx.constants import (
    CLI_CONFIG_DIR,
    CLI_CONTAINER,
    CLI_CRYPTO_DIR,
    COMPOSE_NETWORK_KEY,
    COUCHDB_CONTAINER_PORT,
    COUCHDB_IMAGE,
    COUCHDB_PASSWORD,
    COUCHDB_USER,
    FABRIC_CA_IMAGE,
    FABRIC_ORDERER_IMAGE,
    FABRIC_PEER_IMAGE,
    FABRIC_TOOLS_IMAGE,
    ORDERER_MSP_ID,
    PEER_OPERATIONS_CONTAINER_PORT,
)
from fabricx.models import Network, Orderer, Organization, Peer


def couchdb_service_name(org: Organization, index: int) -> str:
    return f"couchdb{index}.{org.domain}"


def peer_volume_name(org: Organization, index: int) -> str:
    return f"peer{index}.{org.domain}"


def admin_msp_path(org: Organization) -> str:
    return f"{CLI_CRYPTO_DIR}/peerOrganizations/{org.domain}/users/Admin@{org.domain}/msp"


def _volumes(network: Network) -> Dict[str, Any]:
    volumes: Dict[str, Any] = {}
    for orderer in network.orderers:
        volumes[orderer.name] = None
    for org in network.organizations:
        for index, peer in enumerate(org.peers):
            volumes[peer_volume_name(org, index)] = None
            if peer.couchdb:
                volumes[couchdb_service_name(org, index)] = None
    return volumes


def _orderer_service(network: Network, orderer: Orderer) -> Dict[str, Any]:
    crypto_dir = f"{network.crypto_path}/ordererOrganizations/{orderer.domain}/orderers/{orderer.name}"
    return {
        "container_name": orderer.name,
        "image": FABRIC_ORDERER_IMAGE,
        "environment": [
            "FABRIC_LOGGING_SPEC=INFO",
            "ORDERER_GENERAL_LISTENADDRESS=0.0.0.0",
            f"ORDERER_GENERAL_LISTENPORT={orderer.port}",
            f"ORDERER_GENERAL_LOCALMSPID={ORDERER_MSP_ID}",
            "ORDERER_GENERAL_LOCALMSPDIR=/var/hyperledger/orderer/msp",
            "ORDERER_GENERAL_TLS_ENABLED=false",
            "ORDERER_GENERAL_GENESISMETHOD=file",
            "ORDERER_GENERAL_GENESISFILE=/var/hyperledger/orderer/orderer.genesis.block",
            f"ORDERER_OPERATIONS_LISTENADDRESS=0.0.0.0:{orderer.operations_port}",
        ],
        "working_dir": "/opt/gopath/src/github.com/hyperledger/fabric",
        "command": "orderer",
        "volumes": [
            f"{network.config_path}/genesis.block:/var/hyperledger/orderer/orderer.genesis.block",
            f"{crypto_dir}/msp:/var/hyperledger/orderer/msp",
            f"{crypto_dir}/tls:/var/hyperledger/orderer/tls",
            f"{orderer.name}:/var/hyperledger/production/orderer",
        ],
        "ports": [
            f"{orderer.port}:{orderer.port}",
            f"{orderer.operations_port}:{orderer.operations_port}",
        ],
        "networks": [COMPOSE_NETWORK_KEY],
    }


def _ca_service(network: Network, org: Organization) -> Dict[str, Any]:
    return {
        "container_name": org.ca_name,
        "image": FABRIC_CA_IMAGE,
        "environment": [
            "FABRIC_CA_HOME=/etc/hyperledger/fabric-ca-server",
            f"FABRIC_CA_SERVER_CA_NAME={org.ca_name}",
            "FABRIC_CA_SERVER_TLS_ENABLED=false",
            f"FABRIC_CA_SERVER_PORT={org.ca_port}",
        ],
        "ports": [f"{org.ca_port}:{org.ca_port}"],
        "command": "sh -c 'fabric-ca-server start -b admin:adminpw -d'",
        "volumes": [
            f"{network.crypto_path}/peerOrganizations/{org.domain}/ca/:/etc/hyperledger/fabric-ca-server-config",
        ],
        "networks": [COMPOSE_NETWORK_KEY],
    }


def _couchdb_service(org: Organization, peer: Peer, index: int) -> Dict[str, Any]:
    name = couchdb_service_name(org, index)
    return {
        "container_name": name,
        "image": COUCHDB_IMAGE,
        "environment": [
            f"COUCHDB_USER={COUCHDB_USER}",
            f"COUCHDB_PASSWORD={COUCHDB_PASSWORD}",
        ],
        "ports": [f"{peer.db_port}:{COUCHDB_CONTAINER_PORT}"],
        "volumes": [f"{name}:/opt/couchdb/data"],
        "networks": [COMPOSE_NETWORK_KEY],
    }


def _peer_service(network: Network, org: Organization, peer: Peer, index: int) -> Dict[str, Any]:
    peer_dir = f"{network.crypto_path}/peerOrganizations/{org.domain}/peers/{peer.name}"
    environment = [
        "CORE_VM_ENDPOINT=unix:///host/var/run/docker.sock",
        f"CORE_VM_DOCKER_HOSTCONFIG_NETWORKMODE={network.docker_network}",
        "FABRIC_LOGGING_SPEC=INFO",
        f"CORE_PEER_ID={peer.name}",
        f"CORE_PEER_ADDRESS={peer.name}:{peer.port}",
        f"CORE_PEER_LISTENADDRESS=0.0.0.0:{peer.port}",
        f"CORE_PEER_CHAINCODEADDRESS={peer.name}:{peer.chaincode_port}",
        f"CORE_PEER_CHAINCODELISTENADDRESS=0.0.0.0:{peer.chaincode_port}",
        f"CORE_PEER_GOSSIP_EXTERNALENDPOINT={peer.name}:{peer.port}",
        f"CORE_PEER_GOSSIP_BOOTSTRAP={peer.name}:{peer.port}",
        f"CORE_PEER_LOCALMSPID={org.msp_id}",
        "CORE_PEER_MSPCONFIGPATH=/etc/hyperledger/fabric/msp",
        "CORE_PEER_TLS_ENABLED=false",
        f"CORE_OPERATIONS_LISTENADDRESS=0.0.0.0:{PEER_OPERATIONS_CONTAINER_PORT}",
    ]
    service: Dict[str, Any] = {
        "container_name": peer.name,
        "image": FABRIC_PEER_IMAGE,
        "environment": environment,
        "working_dir": "/opt/gopath/src/github.com/hyperledger/fabric/peer",
        "command": "peer node start",
        "volumes": [
            "/var/run/docker.sock:/host/var/run/docker.sock",
            f"{peer_dir}/msp:/etc/hyperledger/fabric/msp",
            f"{peer_dir}/tls:/etc/hyperledger/fabric/tls",
            f"{network.crypto_path}/peerOrganizations/{org.domain}/users:/etc/hyperledger/fabric/users",
            f"{peer_volume_name(org, index)}:/var/hyperledger/production",
            f"{network.config_path}:{CLI_CONFIG_DIR}",
        ],
        "ports": [
            f"{peer.port}:{peer.port}",
            f"{peer.operations_port}:{PEER_OPERATIONS_CONTAINER_PORT}",
        ],
        "networks": [COMPOSE_NETWORK_KEY],
    }

    if peer.couchdb:
        couch_name = couchdb_service_name(org, index)
        service["depends_on"] = [couch_name]
        environment.extend(
            [
                "CORE_LEDGER_STATE_STATEDATABASE=CouchDB",
                f"CORE_LEDGER_STATE_COUCHDBCONFIG_COUCHDBADDRESS={couch_name}:{COUCHDB_CONTAINER_PORT}",
                f"CORE_LEDGER_STATE_COUCHDBCONFIG_USERNAME={COUCHDB_USER}",
                f"CORE_LEDGER_STATE_COUCHDBCONFIG_PASSWORD={COUCHDB_PASSWORD}",
            ]
        )
    return service


def _cli_service(network: Network) -> Dict[str, Any]:
    lead = network.lead_organization
    volumes = [
        "/var/run/docker.sock:/host/var/run/docker.sock",
        f"{network.config_path}:{CLI_CONFIG_DIR}",
        f"{network.crypto_path}:{CLI_CRYPTO_DIR}",
    ]
    # every org admin identity, so the cli can act for any organization
    for org in network.organizations:
        volumes.append(
            f"{network.crypto_path}/peerOrganizations/{org.domain}/users:"
            f"{CLI_CRYPTO_DIR}/peerOrganizations/{org.domain}/users"
        )

    depends_on: List[str] = [orderer.name for orderer in network.orderers]
    depends_on.extend(peer.name for _, peer in network.iter_peers())

    return {
        "container_name": CLI_CONTAINER,
        "image": FABRIC_TOOLS_IMAGE,
        "tty": True,
        "stdin_open": True,
        "environment": [
            "GOPATH=/opt/gopath",
            "FABRIC_LOGGING_SPEC=INFO",
            f"FABRIC_CFG_PATH={CLI_CONFIG_DIR}",
            f"CORE_PEER_LOCALMSPID={lead.msp_id}",
            f"CORE_PEER_ADDRESS={lead.anchor_peer.name}:{lead.anchor_peer.port}",
            f"CORE_PEER_MSPCONFIGPATH={admin_msp_path(lead)}",
            "CORE_PEER_TLS_ENABLED=false",
        ],
        "working_dir": "/opt/gopath/src/github.com/hyperledger/fabric/peer",
        "command": "/bin/bash",
        "volumes": volumes,
        "networks": [COMPOSE_NETWORK_KEY],
        "depends_on": depends_on,
    }


def build_compose(network: Network) -> Dict[str, Any]:
    services: Dict[str, Any] = {}
    for orderer in network.orderers:
        services[orderer.name] = _orderer_service(network, orderer)

    for org in network.organizations:
        services[org.ca_name] = _ca_service(network, org)
        for index, peer in enumerate(org.peers):
            if peer.couchdb:
                services[couchdb_service_name(org, index)] = _couchdb_service(org, peer, index)
            services[peer.name] = _peer_service(network, org, peer, index)

    services[CLI_CONTAINER] = _cli_service(network)

    return {
        "networks": {COMPOSE_NETWORK_KEY: {"name": network.docker_network}},
        "volumes": _volumes(network),
        "services": services,
    }


def write_compose(network: Network, filesystem) -> str:
    filesystem.write_yaml(network.compose_path, build_compose(network))
    return network.compose_path

"""Shared constants for the FabricX runtime."""

DIR_MODE = 0o755

FABRIC_TOOLS_IMAGE = "hyperledger/fabric-tools:2.5"
FABRIC_PEER_IMAGE = "hyperledger/fabric-peer:2.5"
FABRIC_ORDERER_IMAGE = "hyperledger/fabric-orderer:2.5"
FABRIC_CA_IMAGE = "hyperledger/fabric-ca:1.5"
COUCHDB_IMAGE = "couchdb:3.3"

FABRIC_IMAGES = (
    FABRIC_PEER_IMAGE,
    FABRIC_ORDERER_IMAGE,
    FABRIC_CA_IMAGE,
    FABRIC_TOOLS_IMAGE,
    COUCHDB_IMAGE,
)

DEFAULT_NETWORK_NAME = "fabricx-network"
DEFAULT_CHANNEL_NAME = "mychannel"
DEFAULT_ORG_COUNT = 2
MAX_ORGANIZATIONS = 50

CHANNEL_PROFILE = "FabricXChannel"
GENESIS_PROFILE = "FabricXOrdererGenesis"
CONSORTIUM_NAME = "FabricXConsortium"
SYSTEM_CHANNEL = "system-channel"

ORDERER_DOMAIN = "example.com"
ORDERER_MSP_ID = "OrdererMSP"
ORDERER_PORT = 7050
ORDERER_OPERATIONS_PORT = 8443

PORT_STRIDE = 1000
PEER_BASE_PORT = 7051
CA_BASE_PORT = 7054
COUCHDB_BASE_PORT = 5984
OPERATIONS_BASE_PORT = 9443
COUCHDB_CONTAINER_PORT = 5984
PEER_OPERATIONS_CONTAINER_PORT = 9443

COUCHDB_USER = "admin"
COUCHDB_PASSWORD = "adminpw"

CLI_CONTAINER = "cli"
COMPOSE_FILE_NAME = "docker-compose.yaml"
COMPOSE_NETWORK_KEY = "fabricx"

# Paths as seen from inside the containers.
CLI_CONFIG_DIR = "/etc/hyperledger/fabric/config"
CLI_CRYPTO_DIR = "/etc/hyperledger/fabric/crypto"
TOOLS_CONFIG_DIR = "/config"
TOOLS_CRYPTO_DIR = "/crypto-config"

DEFAULT_CHAINCODE_VERSION = "1.0"
DEFAULT_CHAINCODE_LANGUAGE = "golang"
CHAINCODE_LANGUAGES = ("golang", "node", "java")
UNKNOWN_TX_ID = "unknown"

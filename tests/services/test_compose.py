import pytest
import yaml

from fabricx.errors import FabricXError
from fabricx.services.compose import build_compose, write_compose
from fabricx.services.filesystem import FileSystemService


def _published_ports(document):
    ports = []
    for service in document["services"].values():
        for mapping in service.get("ports", []):
            ports.append(int(mapping.split(":")[0]))
    return ports


def test_compose_declares_named_network(network):
    document = build_compose(network)

    assert document["networks"] == {"fabricx": {"name": "fabricx_abcd1234"}}
    assert all(service["networks"] == ["fabricx"] for service in document["services"].values())


def test_compose_has_one_service_per_process(network):
    services = build_compose(network)["services"]

    assert set(services) == {
        "orderer.example.com",
        "ca.org1.example.com",
        "ca.org2.example.com",
        "couchdb0.org1.example.com",
        "couchdb0.org2.example.com",
        "peer0.org1.example.com",
        "peer0.org2.example.com",
        "cli",
    }


def test_compose_exposes_every_planned_port(make_network, planned_host_ports):
    network = make_network(num_orgs=3)

    assert sorted(_published_ports(build_compose(network))) == sorted(planned_host_ports(network))


def test_peer_depends_on_couchdb(network):
    peer = build_compose(network)["services"]["peer0.org2.example.com"]

    assert peer["depends_on"] == ["couchdb0.org2.example.com"]
    assert "CORE_LEDGER_STATE_COUCHDBCONFIG_COUCHDBADDRESS=couchdb0.org2.example.com:5984" in peer["environment"]
    assert "CORE_PEER_LOCALMSPID=Org2MSP" in peer["environment"]
    assert "8051:8051" in peer["ports"]
    assert "10443:9443" in peer["ports"]


def test_goleveldb_peers_have_no_couchdb(make_network):
    network = make_network(num_orgs=1, couchdb=False)
    document = build_compose(network)

    assert "couchdb0.org1.example.com" not in document["services"]
    assert "depends_on" not in document["services"]["peer0.org1.example.com"]
    assert set(document["volumes"]) == {"orderer.example.com", "peer0.org1.example.com"}


def test_cli_mounts_every_org_admin(network):
    cli = build_compose(network)["services"]["cli"]

    for org in network.organizations:
        mount = (
            f"{network.crypto_path}/peerOrganizations/{org.domain}/users:"
            f"/etc/hyperledger/fabric/crypto/peerOrganizations/{org.domain}/users"
        )
        assert mount in cli["volumes"]
    assert cli["depends_on"] == ["orderer.example.com", "peer0.org1.example.com", "peer0.org2.example.com"]
    assert "CORE_PEER_LOCALMSPID=Org1MSP" in cli["environment"]


def test_write_compose_produces_loadable_yaml(network, dummy_logger, dummy_console):
    filesystem = FileSystemService(logger=dummy_logger, console=dummy_console)

    path = write_compose(network, filesystem)

    with open(path, encoding="utf-8") as file_obj:
        loaded = yaml.safe_load(file_obj)
    assert loaded["services"]["orderer.example.com"]["image"] == "hyperledger/fabric-orderer:2.5"


def test_write_compose_surfaces_write_errors(network, dummy_logger, dummy_console, tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    network.base_path = str(blocker)
    filesystem = FileSystemService(logger=dummy_logger, console=dummy_console)

    with pytest.raises(FabricXError):
        write_compose(network, filesystem)

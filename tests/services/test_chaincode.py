import re

import pytest

from fabricx.cancellation import CancellationToken
from fabricx.errors import ExternalCommandFailed, InvalidConfiguration, OperationCancelled, PackageIdentifierNotFound
from fabricx.models import DeployRequest
from fabricx.services.chaincode import ChaincodeDeployer, build_endorsement_policy, normalize_request
from fabricx.services.docker_runtime import DockerRuntimeService
from fabricx.services.filesystem import FileSystemService


def _deployer(runner, logger, console):
    docker_runtime = DockerRuntimeService(runner=runner, logger=logger, console=console, compose_cmd=["docker", "compose"])
    return ChaincodeDeployer(
        runner=runner,
        docker_runtime=docker_runtime,
        filesystem=FileSystemService(logger=logger, console=console),
        logger=logger,
        console=console,
        tools_image="hyperledger/fabric-tools:2.5",
    )


def _request(tmp_path, **overrides):
    values = {"name": "basic", "path": str(tmp_path / "chaincode"), "version": "", "language": ""}
    values.update(overrides)
    return DeployRequest(**values)


def test_default_policy_mentions_every_org_once(make_network):
    network = make_network(num_orgs=3)

    policy = build_endorsement_policy(network.organizations, [])

    assert policy == "OR('Org1MSP.member','Org2MSP.member','Org3MSP.member')"


def test_policy_for_subset_mentions_exactly_that_subset(make_network):
    network = make_network(num_orgs=3)

    policy = build_endorsement_policy(network.organizations, ["Org3", "Org1", "Org3"])

    assert policy == "OR('Org3MSP.member','Org1MSP.member')"


def test_policy_falls_back_when_nothing_matches(network):
    policy = build_endorsement_policy(network.organizations, ["Nobody"])

    assert policy == "OR('Org1MSP.member','Org2MSP.member')"


def test_normalize_request_applies_defaults(tmp_path):
    request = normalize_request(_request(tmp_path))

    assert request.version == "1.0"
    assert request.language == "golang"
    assert request.label == "basic_1.0"


def test_normalize_request_requires_name_and_path(tmp_path):
    with pytest.raises(InvalidConfiguration):
        normalize_request(_request(tmp_path, name=""))
    with pytest.raises(InvalidConfiguration):
        normalize_request(_request(tmp_path, path=""))


def test_deploy_runs_all_phases(network, happy_runner, dummy_logger, dummy_console, tmp_path):
    deployer = _deployer(happy_runner, dummy_logger, dummy_console)

    chaincode_id = deployer.deploy(network, _request(tmp_path))

    assert re.fullmatch(r"basic-[0-9a-f]{8}", chaincode_id)
    package = happy_runner.commands("lifecycle chaincode package")[0]
    assert package[package.index("--label") + 1] == "basic_1.0"
    assert package[package.index("--lang") + 1] == "golang"
    assert len(happy_runner.commands("docker cp")) == 2
    assert len(happy_runner.commands("lifecycle chaincode install")) == 2

    approvals = happy_runner.commands("approveformyorg")
    assert len(approvals) == 2
    assert all(cmd[cmd.index("--package-id") + 1] == "basic_1.0:4f1c2d3e9a8b" for cmd in approvals)
    assert all(cmd[cmd.index("--sequence") + 1] == "1" for cmd in approvals)

    commit = happy_runner.commands("lifecycle chaincode commit")[0]
    assert commit[commit.index("--signature-policy") + 1] == "OR('Org1MSP.member','Org2MSP.member')"
    assert commit.count("--peerAddresses") == 2
    assert len(happy_runner.commands("--isInit")) == 1


def test_phases_run_in_order(network, happy_runner, dummy_logger, dummy_console, tmp_path):
    deployer = _deployer(happy_runner, dummy_logger, dummy_console)

    deployer.deploy(network, _request(tmp_path))

    order = []
    for cmd in happy_runner.calls:
        joined = " ".join(cmd)
        for phase in ("chaincode package", "chaincode install", "approveformyorg", "chaincode commit", "--isInit"):
            if phase in joined and (not order or order[-1] != phase):
                order.append(phase)
    assert order == ["chaincode package", "chaincode install", "approveformyorg", "chaincode commit", "--isInit"]


def test_install_failure_aborts_without_rollback(network, happy_runner, dummy_logger, dummy_console, tmp_path):
    happy_runner.on("CORE_PEER_LOCALMSPID=Org2MSP", "chaincode install", returncode=1, output="install failed")
    deployer = _deployer(happy_runner, dummy_logger, dummy_console)

    with pytest.raises(ExternalCommandFailed, match="peer0.org2.example.com"):
        deployer.deploy(network, _request(tmp_path))

    assert len(happy_runner.commands("chaincode install")) == 2
    assert happy_runner.commands("approveformyorg") == []


def test_missing_package_id_stops_before_commit(network, happy_runner, dummy_logger, dummy_console, tmp_path):
    happy_runner.on("chaincode queryinstalled", output="Installed chaincodes on peer:\n")
    deployer = _deployer(happy_runner, dummy_logger, dummy_console)

    with pytest.raises(PackageIdentifierNotFound, match="basic_1.0"):
        deployer.deploy(network, _request(tmp_path))

    assert happy_runner.commands("approveformyorg") == []
    assert happy_runner.commands("chaincode commit") == []


def test_init_failure_is_not_fatal(network, happy_runner, dummy_logger, dummy_console, tmp_path):
    happy_runner.on("--isInit", returncode=1, output="Error: chaincode has no Init")
    deployer = _deployer(happy_runner, dummy_logger, dummy_console)

    chaincode_id = deployer.deploy(network, _request(tmp_path))

    assert chaincode_id.startswith("basic-")
    assert any(level == "warning" for level, _ in dummy_logger.messages)


def test_cancellation_between_phases(network, happy_runner, dummy_logger, dummy_console, tmp_path):
    token = CancellationToken()
    happy_runner.on("chaincode package", side_effect=lambda _cmd: token.cancel())
    deployer = _deployer(happy_runner, dummy_logger, dummy_console)

    with pytest.raises(OperationCancelled):
        deployer.deploy(network, _request(tmp_path), token)

    assert happy_runner.commands("chaincode install") == []


def test_deployments_use_separate_archives(network, happy_runner, dummy_logger, dummy_console, tmp_path):
    deployer = _deployer(happy_runner, dummy_logger, dummy_console)

    package_v1 = deployer.package(network, normalize_request(_request(tmp_path, version="1.0")), CancellationToken())
    package_v2 = deployer.package(network, normalize_request(_request(tmp_path, version="2.0")), CancellationToken())
    deployer.install(network, package_v1, CancellationToken())
    deployer.install(network, package_v2, CancellationToken())

    assert package_v1.endswith("basic_1.0.tar.gz")
    assert package_v2.endswith("basic_2.0.tar.gz")
    targets = {cmd[-1] for cmd in happy_runner.commands("docker cp")}
    assert targets == {"cli:/tmp/basic_1.0.tar.gz", "cli:/tmp/basic_2.0.tar.gz"}
    installed = {cmd[-1] for cmd in happy_runner.commands("lifecycle chaincode install")}
    assert installed == {"/tmp/basic_1.0.tar.gz", "/tmp/basic_2.0.tar.gz"}

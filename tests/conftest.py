import subprocess

import pytest

from fabricx.models import Channel, Network, NetworkConfig, RuntimeSettings
from fabricx.services.command_runner import CommandRunner
from fabricx.services.topology import plan_orderers, plan_organizations

QUERY_INSTALLED_OUTPUT = (
    "Installed chaincodes on peer:\n"
    "Package ID: other_2.0:ffff0000, Label: other_2.0\n"
    "Package ID: basic_1.0:4f1c2d3e9a8b, Label: basic_1.0\n"
)
INVOKE_OUTPUT = (
    "2024-05-01 10:00:00.000 UTC 0001 INFO [chaincodeCmd] ClientWait -> txid [abc123def456] "
    "committed with status (VALID) at peer0.org1.example.com:7051\n"
    "2024-05-01 10:00:00.100 UTC 0002 INFO [chaincodeCmd] chaincodeInvokeOrQuery -> "
    'Chaincode invoke successful. result: status:200 payload:"{\\"ID\\":\\"asset1\\",\\"Color\\":\\"blue\\"}"\n'
)
QUERY_OUTPUT = '{"ID":"asset1","Color":"blue","Size":5,"Owner":"Tom","AppraisedValue":35}\n'


class DummyLogger:
    def __init__(self):
        self.messages = []

    def _record(self, level, message, *args):
        self.messages.append((level, message % args if args else message))

    def debug(self, message, *args, **_kwargs):
        self._record("debug", message, *args)

    def info(self, message, *args, **_kwargs):
        self._record("info", message, *args)

    def warning(self, message, *args, **_kwargs):
        self._record("warning", message, *args)

    def error(self, message, *args, **_kwargs):
        self._record("error", message, *args)

    def exception(self, message, *args, **_kwargs):
        self._record("error", message, *args)


class DummyConsole:
    def __init__(self):
        self.lines = []

    def print(self, *args, **_kwargs):
        self.lines.append(" ".join(str(arg) for arg in args))


class FakeLineStream:
    def __init__(self, lines):
        self.lines = list(lines)
        self.closed = False

    def __iter__(self):
        for line in self.lines:
            if self.closed:
                return
            yield line

    def close(self):
        self.closed = True


class ScriptedRunner(CommandRunner):
    """Command runner that answers from rules instead of spawning processes.

    Rules match when every fragment occurs in the joined command line; the
    most recently added matching rule wins. Unmatched commands succeed
    with empty output.
    """

    def __init__(self):
        super().__init__(logger=DummyLogger())
        self.calls = []
        self.rules = []
        self.stream_lines = []
        self.streams = []

    def on(self, *fragments, returncode=0, output="", side_effect=None):
        self.rules.append((fragments, returncode, output, side_effect))
        return self

    def commands(self, *fragments):
        return [cmd for cmd in self.calls if all(fragment in " ".join(cmd) for fragment in fragments)]

    def _execute(self, cmd, token, operation):
        self.calls.append(list(cmd))
        joined = " ".join(cmd)
        for fragments, returncode, output, side_effect in reversed(self.rules):
            if all(fragment in joined for fragment in fragments):
                if side_effect is not None:
                    side_effect(cmd)
                return subprocess.CompletedProcess(cmd, returncode, stdout=output, stderr="")
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    def stream(self, cmd, token=None, queue_size=100):
        self.calls.append(list(cmd))
        stream = FakeLineStream(self.stream_lines)
        self.streams.append(stream)
        return stream


class FakeResponse:
    def __init__(self, status_code):
        self.status_code = status_code


class FakeRequestsModule:
    class RequestException(Exception):
        pass

    def __init__(self, status_code=200, failing_ports=()):
        self.status_code = status_code
        self.failing_ports = set(failing_ports)
        self.urls = []

    def get(self, url, timeout=None):
        self.urls.append(url)
        port = int(url.split(":")[2].split("/")[0])
        if port in self.failing_ports:
            raise self.RequestException(f"connection refused: {url}")
        return FakeResponse(self.status_code)


def script_happy_path(runner):
    runner.on("chaincode queryinstalled", output=QUERY_INSTALLED_OUTPUT)
    runner.on("chaincode invoke -o", output=INVOKE_OUTPUT)
    runner.on("chaincode query -C", output=QUERY_OUTPUT)
    runner.on("ps -q", output="c1\nc2\nc3\n")
    runner.on(
        "ps --services",
        output="orderer.example.com\npeer0.org1.example.com\npeer0.org2.example.com\ncli\n",
    )
    return runner


@pytest.fixture
def dummy_logger():
    return DummyLogger()


@pytest.fixture
def dummy_console():
    return DummyConsole()


@pytest.fixture
def scripted_runner():
    return ScriptedRunner()


@pytest.fixture
def happy_runner():
    return script_happy_path(ScriptedRunner())


@pytest.fixture
def fake_requests():
    return FakeRequestsModule()


@pytest.fixture
def fake_requests_factory():
    return FakeRequestsModule


@pytest.fixture
def settings(tmp_path):
    return RuntimeSettings(
        work_dir=str(tmp_path / "work"),
        compose_command=["docker", "compose"],
        readiness_interval=0.01,
        readiness_timeout=1.0,
        join_settle_seconds=0.0,
    )


@pytest.fixture
def make_network(tmp_path):
    def factory(num_orgs=2, couchdb=True, network_id="abcd1234", channel_name="mychannel"):
        return Network(
            id=network_id,
            name="test",
            base_path=str(tmp_path / "fabricx" / network_id),
            config=NetworkConfig(network_name="test", num_orgs=num_orgs, channel_name=channel_name),
            channel=Channel(name=channel_name),
            organizations=plan_organizations(num_orgs, couchdb=couchdb),
            orderers=plan_orderers(),
        )

    return factory


@pytest.fixture
def network(make_network):
    return make_network()


def _planned_host_ports(network):
    ports = []
    for orderer in network.orderers:
        ports.extend([orderer.port, orderer.operations_port])
    for org in network.organizations:
        ports.append(org.ca_port)
        for peer in org.peers:
            ports.extend([peer.port, peer.operations_port])
            if peer.couchdb:
                ports.append(peer.db_port)
    return ports


@pytest.fixture
def planned_host_ports():
    return _planned_host_ports

import sys
import threading
import time

import pytest

from fabricx.cancellation import CancellationToken
from fabricx.errors import (
    ExternalCommandFailed,
    ExternalToolUnavailable,
    OperationCancelled,
    OperationTimeout,
)
from fabricx.services.command_runner import CommandRunner


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None


def test_command_runner_raises_with_combined_output():
    runner = CommandRunner(logger=DummyLogger())

    with pytest.raises(ExternalCommandFailed, match="boom") as exc_info:
        runner.run(
            [sys.executable, "-c", "import sys; sys.stderr.write('boom'); sys.exit(3)"],
            operation="explode",
        )

    assert exc_info.value.returncode == 3
    assert exc_info.value.operation == "explode"
    assert "boom" in exc_info.value.output


def test_command_runner_combines_stdout_and_stderr():
    runner = CommandRunner(logger=DummyLogger())

    result = runner.run(
        [sys.executable, "-c", "import sys; print('out'); sys.stdout.flush(); sys.stderr.write('err')"],
    )

    assert result.returncode == 0
    assert "out" in result.stdout
    assert "err" in result.stdout


def test_command_runner_returns_when_check_disabled():
    runner = CommandRunner(logger=DummyLogger())

    result = runner.run([sys.executable, "-c", "import sys; sys.exit(1)"], check=False)

    assert result.returncode == 1


def test_command_runner_missing_binary_is_tool_unavailable():
    runner = CommandRunner(logger=DummyLogger())

    with pytest.raises(ExternalToolUnavailable, match="definitely-not-a-binary"):
        runner.run(["definitely-not-a-binary-fabricx"])


def test_command_runner_timeout_raises_error():
    runner = CommandRunner(logger=DummyLogger(), poll_interval=0.05)

    with pytest.raises(OperationTimeout, match="timed out"):
        runner.run([sys.executable, "-c", "import time; time.sleep(5)"], timeout=0.2)


def test_command_runner_refuses_cancelled_token():
    runner = CommandRunner(logger=DummyLogger())
    token = CancellationToken()
    token.cancel()

    with pytest.raises(OperationCancelled):
        runner.run([sys.executable, "-c", "print('never')"], token=token)


def test_command_runner_kills_process_on_cancel():
    runner = CommandRunner(logger=DummyLogger(), poll_interval=0.05)
    token = CancellationToken()
    threading.Timer(0.2, token.cancel).start()

    started = time.monotonic()
    with pytest.raises(OperationCancelled):
        runner.run([sys.executable, "-c", "import time; time.sleep(10)"], token=token)

    assert time.monotonic() - started < 5


def test_stream_yields_lines_until_eof():
    runner = CommandRunner(logger=DummyLogger(), poll_interval=0.05)

    stream = runner.stream([sys.executable, "-c", "print('one'); print('two'); print('three')"])

    assert list(stream) == ["one", "two", "three"]


def test_stream_raises_after_draining_on_failure():
    runner = CommandRunner(logger=DummyLogger(), poll_interval=0.05)
    stream = runner.stream([sys.executable, "-c", "import sys; print('partial'); sys.exit(2)"])

    lines = []
    with pytest.raises(ExternalCommandFailed):
        for line in stream:
            lines.append(line)

    assert lines == ["partial"]


def test_stream_stops_when_token_cancelled():
    runner = CommandRunner(logger=DummyLogger(), poll_interval=0.05)
    token = CancellationToken()
    stream = runner.stream(
        [sys.executable, "-u", "-c", "import time\nwhile True:\n    print('tick')\n    time.sleep(0.05)"],
        token=token,
    )

    received = []
    for line in stream:
        received.append(line)
        if len(received) == 3:
            token.cancel()

    assert len(received) >= 3
    assert stream.process.poll() is not None

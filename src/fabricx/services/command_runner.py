"""Subprocess execution service for the FabricX runtime."""

import queue
import subprocess
import threading
from typing import Iterator, List, Optional

from fabricx.cancellation import CancellationToken, ensure_token
from fabricx.errors import (
    ExternalCommandFailed,
    ExternalToolUnavailable,
    FabricXError,
    OperationTimeout,
)
from fabricx.errors_catalog import actionable_error

_EOF = object()


class LineStream:
    """Iterates over the output lines of a running process.

    A reader thread pushes lines into a bounded queue; iteration stops at EOF,
    when the token is cancelled, or after :meth:`close`.
    """

    def __init__(
        self,
        process: subprocess.Popen,
        cmd: List[str],
        token: CancellationToken,
        queue_size: int = 100,
        poll_interval: float = 0.2,
    ):
        self.process = process
        self.cmd = cmd
        self.token = token
        self.poll_interval = poll_interval
        self._lines: "queue.Queue" = queue.Queue(maxsize=queue_size)
        self._closed = threading.Event()
        self._reader = threading.Thread(target=self._pump, name="fabricx-line-stream", daemon=True)
        self._reader.start()

    def _pump(self):
        try:
            for line in self.process.stdout:
                if not self._put(line.rstrip("\r\n")):
                    return
        except (OSError, ValueError):
            # stdout closed underneath us by close()
            pass
        finally:
            self._put(_EOF)

    def _put(self, item) -> bool:
        while not self._closed.is_set():
            try:
                self._lines.put(item, timeout=self.poll_interval)
                return True
            except queue.Full:
                continue
        return False

    def __iter__(self) -> Iterator[str]:
        try:
            while True:
                if self.token.cancelled or self.token.expired:
                    return
                try:
                    item = self._lines.get(timeout=self.poll_interval)
                except queue.Empty:
                    if self._closed.is_set():
                        return
                    continue
                if item is _EOF:
                    break
                yield item

            returncode = self.process.wait()
            if returncode != 0 and not self._closed.is_set():
                raise ExternalCommandFailed(
                    f"Command failed ({returncode}): {' '.join(self.cmd)}",
                    operation="stream",
                    returncode=returncode,
                )
        finally:
            self.close()

    def close(self):
        if self._closed.is_set():
            return
        self._closed.set()
        if self.process.poll() is None:
            self.process.terminate()
            try:
                self.process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                self.process.kill()
                self.process.wait()
        if self.process.stdout is not None:
            self.process.stdout.close()


class CommandRunner:
    """Runs external commands with consistent error handling.

    ``run`` captures stdout and stderr combined; ``stream`` follows a
    long-running command line by line. Both honour a ``CancellationToken``.
    """

    def __init__(self, logger, default_timeout: Optional[float] = None, poll_interval: float = 0.2):
        self.logger = logger
        self.default_timeout = default_timeout
        self.poll_interval = poll_interval

    def run(
        self,
        cmd: List[str],
        token: Optional[CancellationToken] = None,
        check: bool = True,
        timeout: Optional[float] = None,
        operation: Optional[str] = None,
    ) -> subprocess.CompletedProcess:
        token = ensure_token(token)
        operation = operation or cmd[0]
        cmd_str = " ".join(cmd)
        token.check(operation)
        self.logger.debug("Executing: %s", cmd_str)

        effective_timeout = timeout if timeout is not None else self.default_timeout
        if effective_timeout is not None:
            token = token.child(effective_timeout)

        result = self._execute(cmd, token, operation)

        if result.stdout:
            self.logger.debug("Command output: %s", result.stdout.strip())

        if result.returncode == 0 or not check:
            if result.returncode != 0:
                self.logger.warning("Command failed (%s): %s", result.returncode, cmd_str)
            return result

        output = (result.stdout or "").strip()
        message = f"Command failed ({result.returncode}): {cmd_str}"
        if output:
            message = f"{message}\n{output}"
        raise ExternalCommandFailed(
            message,
            operation=operation,
            returncode=result.returncode,
            output=output,
        )

    def stream(
        self,
        cmd: List[str],
        token: Optional[CancellationToken] = None,
        queue_size: int = 100,
    ) -> LineStream:
        token = ensure_token(token)
        token.check(cmd[0])
        self.logger.debug("Streaming: %s", " ".join(cmd))
        process = self._spawn(cmd, bufsize=1)
        return LineStream(process, cmd, token, queue_size=queue_size, poll_interval=self.poll_interval)

    def _spawn(self, cmd: List[str], **kwargs) -> subprocess.Popen:
        try:
            return subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                **kwargs,
            )
        except FileNotFoundError as exc:
            raise ExternalToolUnavailable(
                actionable_error("command_not_found", command=cmd[0]),
                operation=cmd[0],
            ) from exc
        except OSError as exc:
            raise FabricXError(f"Failed to execute command: {' '.join(cmd)}. {exc}") from exc

    def _execute(
        self,
        cmd: List[str],
        token: CancellationToken,
        operation: str,
    ) -> subprocess.CompletedProcess:
        process = self._spawn(cmd)
        while True:
            try:
                output, _ = process.communicate(timeout=self.poll_interval)
                return subprocess.CompletedProcess(cmd, process.returncode, stdout=output or "", stderr="")
            except subprocess.TimeoutExpired:
                if not (token.cancelled or token.expired):
                    continue
                process.kill()
                process.communicate()
                try:
                    token.check(operation)
                except OperationTimeout as exc:
                    raise OperationTimeout(
                        f"Command timed out: {' '.join(cmd)}",
                        operation=operation,
                    ) from exc

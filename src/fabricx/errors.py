"""Domain errors for the FabricX runtime."""

from typing import Any, Dict, Optional


class FabricXError(RuntimeError):
    """Raised when a runtime operation cannot complete.

    Every error carries the name of the operation that failed and a small
    detail map. Outer layers re-scope errors with :meth:`wrap` so the message
    reads from the outermost operation inwards.
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.details: Dict[str, Any] = dict(details or {})

    def __str__(self) -> str:
        text = self.message
        if self.operation:
            text = f"{self.operation} failed: {text}"
        visible = {key: value for key, value in self.details.items() if key != "output"}
        if visible:
            rendered = ", ".join(f"{key}={value}" for key, value in sorted(visible.items()))
            text = f"{text} ({rendered})"
        return text

    def wrap(self, operation: str, **details: Any) -> "FabricXError":
        """Returns a copy of this error scoped to an enclosing operation."""
        wrapped = self.__class__.__new__(self.__class__)
        wrapped.__dict__.update(self.__dict__)
        wrapped.details = {**self.details, **details}
        inner = f"{self.operation}: " if self.operation else ""
        wrapped.message = f"{inner}{self.message}"
        wrapped.operation = operation
        wrapped.args = (wrapped.message,)
        wrapped.__cause__ = self
        return wrapped


class OperationCancelled(FabricXError):
    """The caller cancelled the operation."""


class OperationTimeout(FabricXError):
    """A deadline expired before the operation finished."""


class NetworkNotFound(FabricXError):
    """No network with the requested ID exists (or it was never started)."""


class InvalidConfiguration(FabricXError):
    """A request or configuration value cannot be honoured."""


class ExternalToolUnavailable(FabricXError):
    """A required binary (docker, docker compose) is not installed or not reachable."""


class ExternalCommandFailed(FabricXError):
    """An external command exited with a non-zero status."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        returncode: Optional[int] = None,
        output: str = "",
    ):
        merged = dict(details or {})
        merged.setdefault("output", output)
        super().__init__(message, operation=operation, details=merged)
        self.returncode = returncode
        self.output = output


class CryptoGenerationFailed(ExternalCommandFailed):
    """The crypto-material or channel-artifact toolchain failed."""


class PackageIdentifierNotFound(FabricXError):
    """The installed chaincode package could not be located by label."""

"""Request and response messages of the FabricX service surface."""

from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, get_args, get_origin

from .errors import InvalidConfiguration


def _invalid(message_cls, name: str, expected: str, value: Any) -> InvalidConfiguration:
    return InvalidConfiguration(
        f"Field '{name}' of {message_cls.__name__} must be {expected}, got {type(value).__name__}",
        operation="decode_request",
        details={"field": name},
    )


def _coerce_scalar(message_cls, name: str, annotation, value: Any) -> Any:
    if annotation is bool:
        if isinstance(value, bool):
            return value
        raise _invalid(message_cls, name, "a boolean", value)
    if annotation is int:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            try:
                return int(value.strip())
            except ValueError:
                pass
        raise _invalid(message_cls, name, "an integer", value)
    if annotation is str:
        if isinstance(value, str):
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        raise _invalid(message_cls, name, "a string", value)
    if annotation is bytes:
        if isinstance(value, bytes):
            return value
        if isinstance(value, str):
            return value.encode("utf-8")
        raise _invalid(message_cls, name, "bytes", value)
    if isinstance(annotation, type) and issubclass(annotation, Message):
        if isinstance(value, annotation):
            return value
        if isinstance(value, dict):
            return annotation.from_dict(value)
        raise _invalid(message_cls, name, f"a {annotation.__name__} object", value)
    return value


def _coerce(message_cls, name: str, annotation, value: Any) -> Any:
    origin = get_origin(annotation)
    if origin is list:
        if not isinstance(value, (list, tuple)):
            raise _invalid(message_cls, name, "a list", value)
        (item_type,) = get_args(annotation)
        return [_coerce_scalar(message_cls, name, item_type, item) for item in value]
    if origin is dict:
        if not isinstance(value, dict) or not all(isinstance(key, str) for key in value):
            raise _invalid(message_cls, name, "a mapping with string keys", value)
        _, value_type = get_args(annotation)
        return {key: _coerce_scalar(message_cls, name, value_type, item) for key, item in value.items()}
    return _coerce_scalar(message_cls, name, annotation, value)


class Message:
    """Plain-dict conversion shared by every request and response.

    ``from_dict`` ignores unknown keys, treats ``None`` as absent and checks
    every value against the field's type, raising ``InvalidConfiguration``
    for values that cannot be used. Integer fields accept numeric strings.
    """

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise InvalidConfiguration(
                f"{cls.__name__} must be a mapping, got {type(data).__name__}",
                operation="decode_request",
            )
        values = {}
        for item in fields(cls):
            if item.name in data and data[item.name] is not None:
                values[item.name] = _coerce(cls, item.name, item.type, data[item.name])
        try:
            return cls(**values)
        except TypeError as exc:
            raise InvalidConfiguration(f"Incomplete {cls.__name__}: {exc}", operation="decode_request") from exc

    def checked(self):
        """Returns a copy whose fields hold the declared types."""
        return type(self).from_dict(self.to_dict())


@dataclass
class InitNetworkRequest(Message):
    network_name: str = ""
    num_orgs: int = 0
    channel_name: str = ""
    custom_config: Dict[str, str] = field(default_factory=dict)


@dataclass
class InitNetworkResponse(Message):
    success: bool
    message: str
    network_id: str = ""
    endpoints: List[str] = field(default_factory=list)


@dataclass
class DeployChaincodeRequest(Message):
    network_id: str = ""
    chaincode_name: str = ""
    chaincode_path: str = ""
    version: str = ""
    language: str = ""
    endorsement_policy_orgs: List[str] = field(default_factory=list)


@dataclass
class DeployChaincodeResponse(Message):
    success: bool
    message: str
    chaincode_id: str = ""


@dataclass
class InvokeTransactionRequest(Message):
    network_id: str = ""
    chaincode_name: str = ""
    function_name: str = ""
    args: List[str] = field(default_factory=list)
    transient: Dict[str, bytes] = field(default_factory=dict)


@dataclass
class InvokeTransactionResponse(Message):
    success: bool
    message: str
    transaction_id: str = ""
    payload: bytes = b""


@dataclass
class QueryLedgerRequest(Message):
    network_id: str = ""
    chaincode_name: str = ""
    function_name: str = ""
    args: List[str] = field(default_factory=list)


@dataclass
class QueryLedgerResponse(Message):
    success: bool
    message: str
    payload: bytes = b""


@dataclass
class GetNetworkStatusRequest(Message):
    network_id: str = ""


@dataclass
class PeerStatus(Message):
    name: str
    org: str
    status: str
    endpoint: str


@dataclass
class OrdererStatus(Message):
    name: str
    status: str
    endpoint: str


@dataclass
class GetNetworkStatusResponse(Message):
    running: bool
    status: str
    peers: List[PeerStatus] = field(default_factory=list)
    orderers: List[OrdererStatus] = field(default_factory=list)


@dataclass
class StreamLogsRequest(Message):
    network_id: str = ""
    container_name: str = ""


@dataclass
class StopNetworkRequest(Message):
    network_id: str = ""
    cleanup: bool = False


@dataclass
class StopNetworkResponse(Message):
    success: bool
    message: str

"""gRPC transport for :class:`fabricx.core.FabricXService`.

The service is registered through a generic handler, so no generated stubs
are needed. Messages travel as UTF-8 JSON objects; ``bytes`` fields are
base64 strings.
"""

import base64
import json
import logging
import signal
import threading
from concurrent import futures
from typing import Any, Callable, Dict, Iterator, Optional, Tuple, Type

import grpc

from .cancellation import CancellationToken
from .errors import FabricXError, InvalidConfiguration, NetworkNotFound, OperationCancelled, OperationTimeout
from .messages import (
    DeployChaincodeRequest,
    DeployChaincodeResponse,
    GetNetworkStatusRequest,
    GetNetworkStatusResponse,
    InitNetworkRequest,
    InitNetworkResponse,
    InvokeTransactionRequest,
    InvokeTransactionResponse,
    Message,
    QueryLedgerRequest,
    QueryLedgerResponse,
    StopNetworkRequest,
    StopNetworkResponse,
    StreamLogsRequest,
)
from .models import LogMessage

SERVICE_NAME = "fabricx.FabricXService"

logger = logging.getLogger("fabricx")

_BYTES_FIELDS = {"payload"}


def _to_wire(value: Any) -> Any:
    if isinstance(value, bytes):
        return base64.b64encode(value).decode("ascii")
    if isinstance(value, dict):
        return {key: _to_wire(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_wire(item) for item in value]
    return value


def encode_message(message) -> bytes:
    if isinstance(message, Message):
        data = message.to_dict()
    elif isinstance(message, LogMessage):
        data = {"timestamp": message.timestamp, "container": message.container, "message": message.message}
    else:
        data = dict(message)
    return json.dumps(_to_wire(data), separators=(",", ":")).encode("utf-8")


def _decode_json(raw: bytes) -> Dict[str, Any]:
    data = json.loads(raw.decode("utf-8")) if raw else {}
    if not isinstance(data, dict):
        raise ValueError("message must be a JSON object")
    return data


def _decode_transient(transient: Any) -> Dict[str, bytes]:
    if not isinstance(transient, dict) or not all(isinstance(value, str) for value in transient.values()):
        raise InvalidConfiguration("transient must map keys to base64 strings", operation="decode_request")
    return {key: base64.b64decode(value, validate=True) for key, value in transient.items()}


def request_decoder(message_cls: Type[Message]) -> Callable[[bytes], Message]:
    """Decodes a request, raising ``InvalidConfiguration`` for anything malformed."""

    def decode(raw: bytes) -> Message:
        try:
            data = _decode_json(raw)
            if data.get("transient"):
                data["transient"] = _decode_transient(data["transient"])
        except ValueError as exc:
            raise InvalidConfiguration(f"Malformed {message_cls.__name__}: {exc}", operation="decode_request") from exc
        return message_cls.from_dict(data)

    return decode


def response_decoder(message_cls: Type[Message]) -> Callable[[bytes], Message]:
    def decode(raw: bytes) -> Message:
        data = _decode_json(raw)
        for key in _BYTES_FIELDS & set(data):
            data[key] = base64.b64decode(data[key] or "")
        return message_cls.from_dict(data)

    return decode


def decode_log_message(raw: bytes) -> LogMessage:
    data = _decode_json(raw)
    return LogMessage(
        timestamp=data.get("timestamp", ""),
        container=data.get("container", ""),
        message=data.get("message", ""),
    )


def token_for(context) -> CancellationToken:
    """Token bound to the RPC: it carries the call deadline and is cancelled when the call ends."""
    token = CancellationToken.with_timeout(context.time_remaining())
    context.add_callback(token.cancel)
    return token


UNARY_METHODS = {
    "InitNetwork": ("init_network", InitNetworkRequest, InitNetworkResponse),
    "DeployChaincode": ("deploy_chaincode", DeployChaincodeRequest, DeployChaincodeResponse),
    "InvokeTransaction": ("invoke_transaction", InvokeTransactionRequest, InvokeTransactionResponse),
    "QueryLedger": ("query_ledger", QueryLedgerRequest, QueryLedgerResponse),
    "GetNetworkStatus": ("get_network_status", GetNetworkStatusRequest, GetNetworkStatusResponse),
    "StopNetwork": ("stop_network", StopNetworkRequest, StopNetworkResponse),
}


class FabricXServicer:
    """Adapts the service façade to gRPC handlers and status codes."""

    def __init__(self, service):
        self.service = service

    def _abort(self, context, exc: FabricXError):
        if isinstance(exc, OperationCancelled):
            context.abort(grpc.StatusCode.CANCELLED, str(exc))
        if isinstance(exc, OperationTimeout):
            context.abort(grpc.StatusCode.DEADLINE_EXCEEDED, str(exc))
        if isinstance(exc, NetworkNotFound):
            context.abort(grpc.StatusCode.NOT_FOUND, str(exc))
        if isinstance(exc, InvalidConfiguration):
            context.abort(grpc.StatusCode.INVALID_ARGUMENT, str(exc))
        logger.exception("Unhandled error in RPC")
        context.abort(grpc.StatusCode.INTERNAL, str(exc))

    def unary(self, method_name: str, request_cls: Type[Message]):
        method = getattr(self.service, method_name)
        decode = request_decoder(request_cls)

        def handler(raw: bytes, context):
            token = token_for(context)
            try:
                return method(decode(raw), token)
            except FabricXError as exc:
                self._abort(context, exc)

        return handler

    def stream_logs(self, raw: bytes, context) -> Iterator[LogMessage]:
        token = token_for(context)
        try:
            request = request_decoder(StreamLogsRequest)(raw)
            for message in self.service.stream_logs(request, token):
                yield message
        except FabricXError as exc:
            self._abort(context, exc)

    def generic_handler(self) -> grpc.GenericRpcHandler:
        handlers = {}
        for rpc_name, (method_name, request_cls, _) in UNARY_METHODS.items():
            handlers[rpc_name] = grpc.unary_unary_rpc_method_handler(
                self.unary(method_name, request_cls),
                response_serializer=encode_message,
            )
        handlers["StreamLogs"] = grpc.unary_stream_rpc_method_handler(
            self.stream_logs,
            response_serializer=encode_message,
        )
        return grpc.method_handlers_generic_handler(SERVICE_NAME, handlers)


class FabricXClient:
    """Thin client over a gRPC channel, mirroring the server's codec."""

    def __init__(self, channel: grpc.Channel):
        for rpc_name, (method_name, _, response_cls) in UNARY_METHODS.items():
            setattr(
                self,
                method_name,
                channel.unary_unary(
                    f"/{SERVICE_NAME}/{rpc_name}",
                    request_serializer=encode_message,
                    response_deserializer=response_decoder(response_cls),
                ),
            )
        self.stream_logs = channel.unary_stream(
            f"/{SERVICE_NAME}/StreamLogs",
            request_serializer=encode_message,
            response_deserializer=decode_log_message,
        )


def create_server(service, host: str = "0.0.0.0", port: int = 50051, max_workers: int = 10) -> Tuple[grpc.Server, int]:
    server = grpc.server(futures.ThreadPoolExecutor(max_workers=max_workers))
    server.add_generic_rpc_handlers((FabricXServicer(service).generic_handler(),))
    bound_port = server.add_insecure_port(f"{host}:{port}")
    if bound_port == 0:
        raise FabricXError(f"Could not bind {host}:{port}", operation="create_server")
    return server, bound_port


def serve(
    service,
    host: str = "0.0.0.0",
    port: int = 50051,
    max_workers: int = 10,
    grace: float = 5.0,
    console=None,
) -> int:
    server, bound_port = create_server(service, host=host, port=port, max_workers=max_workers)
    stopped = threading.Event()

    def _stop(signum: Optional[int] = None, frame=None):
        if stopped.is_set():
            return
        stopped.set()
        logger.info("Shutting down (signal %s)", signum)
        try:
            service.shutdown()
        finally:
            server.stop(grace)

    if threading.current_thread() is threading.main_thread():
        signal.signal(signal.SIGINT, _stop)
        signal.signal(signal.SIGTERM, _stop)

    server.start()
    if console is not None:
        console.print(f"[bold green]FabricX runtime listening on {host}:{bound_port}[/bold green]")
    logger.info("FabricX runtime listening on %s:%d", host, bound_port)
    server.wait_for_termination()
    return 0

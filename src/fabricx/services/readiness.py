"""Readiness probing against the operations endpoints of a running network."""

from typing import Optional

import requests

from fabricx.cancellation import CancellationToken, ensure_token
from fabricx.errors import OperationTimeout
from fabricx.models import Network


class ReadinessProbe:
    """Polls ``/healthz`` until the orderer and at least one peer report healthy."""

    def __init__(self, requests_module=requests, logger=None, interval: float = 2.0, timeout: float = 120.0):
        self.requests = requests_module
        self.logger = logger
        self.interval = interval
        self.timeout = timeout

    def _healthy(self, port: int) -> bool:
        url = f"http://localhost:{port}/healthz"
        request_exception = getattr(self.requests, "RequestException", Exception)
        try:
            response = self.requests.get(url, timeout=max(self.interval, 1.0))
        except request_exception as exc:
            if self.logger:
                self.logger.debug("Health check %s not ready: %s", url, exc)
            return False
        return response.status_code == 200

    def is_ready(self, network: Network) -> bool:
        if not self._healthy(network.orderer.operations_port):
            return False
        return any(self._healthy(peer.operations_port) for _, peer in network.iter_peers())

    def wait_for_ready(self, network: Network, token: Optional[CancellationToken] = None):
        parent = ensure_token(token)
        deadline = parent.child(self.timeout)

        attempt = 0
        while True:
            parent.check("wait_for_ready")
            attempt += 1
            if self.is_ready(network):
                if self.logger:
                    self.logger.info("Network %s ready after %d probe(s)", network.id, attempt)
                return
            if deadline.expired:
                break
            try:
                deadline.sleep(self.interval, "wait_for_ready")
            except OperationTimeout:
                parent.check("wait_for_ready")
                break

        raise OperationTimeout(
            f"Network did not become ready within {self.timeout:g}s",
            operation="wait_for_ready",
            details={"network_id": network.id, "attempts": attempt},
        )

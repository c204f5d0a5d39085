"""In-memory network registry shared by concurrent service calls."""

import threading
from contextlib import contextmanager
from typing import Dict, List, Optional

from fabricx.errors import FabricXError, NetworkNotFound
from fabricx.errors_catalog import actionable_error
from fabricx.models import Network


class ReadWriteLock:
    """Many readers or one writer. Waiting writers block new readers."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    def acquire_read(self):
        with self._cond:
            while self._writer or self._waiting_writers:
                self._cond.wait()
            self._readers += 1

    def release_read(self):
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self):
        with self._cond:
            self._waiting_writers += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._waiting_writers -= 1
            self._writer = True

    def release_write(self):
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read(self):
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write(self):
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()


class NetworkRegistry:
    """Maps network IDs to networks for the lifetime of the process."""

    def __init__(self):
        self._networks: Dict[str, Network] = {}
        self._lock = ReadWriteLock()

    @staticmethod
    def _not_found(network_id: str, operation: str) -> NetworkNotFound:
        return NetworkNotFound(
            actionable_error("network_not_found", network_id=network_id),
            operation=operation,
            details={"network_id": network_id},
        )

    def add(self, network: Network):
        with self._lock.write():
            if network.id in self._networks:
                raise FabricXError(
                    f"Network {network.id} is already registered",
                    operation="register_network",
                    details={"network_id": network.id},
                )
            self._networks[network.id] = network

    def find(self, network_id: str) -> Optional[Network]:
        with self._lock.read():
            return self._networks.get(network_id)

    def get(self, network_id: str) -> Network:
        network = self.find(network_id)
        if network is None:
            raise self._not_found(network_id, "lookup_network")
        return network

    def remove(self, network_id: str) -> Network:
        with self._lock.write():
            network = self._networks.pop(network_id, None)
        if network is None:
            raise self._not_found(network_id, "remove_network")
        return network

    def snapshot(self) -> List[Network]:
        with self._lock.read():
            return list(self._networks.values())

    def clear(self) -> List[Network]:
        with self._lock.write():
            networks = list(self._networks.values())
            self._networks.clear()
        return networks

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._networks)

    def __contains__(self, network_id) -> bool:
        with self._lock.read():
            return network_id in self._networks

import threading

import pytest

from fabricx.errors import FabricXError, NetworkNotFound
from fabricx.registry import NetworkRegistry, ReadWriteLock


def test_add_get_remove(make_network):
    registry = NetworkRegistry()
    network = make_network()

    registry.add(network)

    assert registry.get("abcd1234") is network
    assert "abcd1234" in registry
    assert len(registry) == 1
    assert registry.remove("abcd1234") is network
    assert registry.find("abcd1234") is None


def test_duplicate_id_is_rejected(make_network):
    registry = NetworkRegistry()
    registry.add(make_network())

    with pytest.raises(FabricXError, match="already registered"):
        registry.add(make_network())


def test_unknown_id_raises_not_found():
    registry = NetworkRegistry()

    with pytest.raises(NetworkNotFound, match="missing1"):
        registry.get("missing1")
    with pytest.raises(NetworkNotFound):
        registry.remove("missing1")


def test_remove_succeeds_once_under_contention(make_network):
    registry = NetworkRegistry()
    registry.add(make_network())
    outcomes = []
    barrier = threading.Barrier(8)

    def worker():
        barrier.wait()
        try:
            registry.remove("abcd1234")
            outcomes.append("removed")
        except NetworkNotFound:
            outcomes.append("missing")

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert outcomes.count("removed") == 1
    assert outcomes.count("missing") == 7


def test_concurrent_adds_are_all_visible(make_network):
    registry = NetworkRegistry()
    networks = [make_network(network_id=f"net{i:05d}") for i in range(20)]
    threads = [threading.Thread(target=registry.add, args=(network,)) for network in networks]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(network.id for network in registry.snapshot()) == sorted(network.id for network in networks)


def test_clear_returns_everything(make_network):
    registry = NetworkRegistry()
    registry.add(make_network(network_id="aaaa0001"))
    registry.add(make_network(network_id="aaaa0002"))

    cleared = registry.clear()

    assert {network.id for network in cleared} == {"aaaa0001", "aaaa0002"}
    assert len(registry) == 0


def test_writer_waits_for_reader():
    lock = ReadWriteLock()
    events = []
    lock.acquire_read()

    def writer():
        with lock.write():
            events.append("write")

    thread = threading.Thread(target=writer)
    thread.start()
    thread.join(timeout=0.1)
    events.append("read released")
    lock.release_read()
    thread.join(timeout=2)

    assert events == ["read released", "write"]

"""Tests for the host port pool."""

import threading

import pytest

from malloctune.errors import EvaluationError
from malloctune.ports import PortAllocator, PortPoolExhausted


class TestPortAllocator:
    """Tests for PortAllocator."""

    def test_sequential_ports_wrap(self) -> None:
        """Ports increase to the top of the range, then wrap to the bottom."""
        ports = PortAllocator()
        seen = []
        for _ in range(ports.size + 1):
            with ports.lease() as port:
                seen.append(port)

        assert seen[0] == 12500
        assert seen[-2] == 12699
        assert seen[-1] == 12500
        cycle = seen[:-1]
        assert cycle == sorted(cycle)
        assert len(set(cycle)) == len(cycle) == 200

    def test_leased_ports_are_skipped(self) -> None:
        ports = PortAllocator(100, 104)
        held = ports.acquire()
        assert held == 100

        for expected in (101, 102, 103):
            port = ports.acquire()
            assert port == expected
            ports.release(port)

        # Wraps past the still-leased 100
        assert ports.acquire() == 101

    def test_exhausted_pool_raises(self) -> None:
        ports = PortAllocator(100, 102)
        ports.acquire()
        ports.acquire()

        with pytest.raises(PortPoolExhausted):
            ports.acquire()

    def test_exhaustion_is_an_evaluation_error(self) -> None:
        """Running out of ports fails only the evaluation that asked."""
        ports = PortAllocator(100, 101)
        ports.acquire()

        with pytest.raises(EvaluationError):
            with ports.lease():
                pass
        assert ports.leased == {100}

    def test_lease_released_on_error(self) -> None:
        ports = PortAllocator(100, 102)

        with pytest.raises(RuntimeError):
            with ports.lease():
                raise RuntimeError("boom")

        assert ports.leased == set()

    def test_concurrent_leases_are_distinct(self) -> None:
        ports = PortAllocator(100, 150)
        got = []
        lock = threading.Lock()

        def grab() -> None:
            port = ports.acquire()
            with lock:
                got.append(port)

        threads = [threading.Thread(target=grab) for _ in range(50)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(got) == list(range(100, 150))

    def test_empty_range_rejected(self) -> None:
        with pytest.raises(ValueError):
            PortAllocator(100, 100)

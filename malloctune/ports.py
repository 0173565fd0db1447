"""
Port allocation - hands out host ports for container DogStatsD listeners.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, Set

from .config import PORT_RANGE
from .errors import PortPoolExhausted

logger = logging.getLogger(__name__)


class PortAllocator:
    """
    Cyclic pool of host ports in [low, high).

    Ports are handed out in increasing order after the last one handed
    out, wrapping back to low. Leased ports are skipped until released,
    so concurrent evaluations never share a port.
    """

    def __init__(self, low: int = PORT_RANGE[0], high: int = PORT_RANGE[1]):
        if high <= low:
            raise ValueError(f"empty port range [{low}, {high})")
        self.low = low
        self.high = high
        self._next = low
        self._leased: Set[int] = set()
        self._lock = threading.Lock()

    @property
    def size(self) -> int:
        return self.high - self.low

    @property
    def leased(self) -> Set[int]:
        """Ports currently out on lease."""
        with self._lock:
            return set(self._leased)

    def acquire(self) -> int:
        with self._lock:
            for _ in range(self.size):
                port = self._next
                self._next = port + 1 if port + 1 < self.high else self.low
                if port not in self._leased:
                    self._leased.add(port)
                    return port
        raise PortPoolExhausted(
            f"all {self.size} ports in [{self.low}, {self.high}) are in use"
        )

    def release(self, port: int) -> None:
        with self._lock:
            self._leased.discard(port)

    @contextmanager
    def lease(self) -> Iterator[int]:
        """Acquire a port for the duration of the block."""
        port = self.acquire()
        logger.debug(f"Leased port {port}")
        try:
            yield port
        finally:
            self.release(port)
            logger.debug(f"Released port {port}")

"""
Synthetic DogStatsD load - keeps the Agent's aggregator busy while measuring.
"""

import logging
import time
from typing import Callable

from datadog.dogstatsd import DogStatsd

logger = logging.getLogger(__name__)

SERIES_PER_BATCH = 10_000
TAGS = ["nong:wong"]
GAUGE_VALUE = 12345


def _check_sent(client: DogStatsd, port: int) -> None:
    # The client logs and drops packets it fails to send; its telemetry
    # counter is the only trace of that
    if client.packets_dropped_writer > 0:
        raise OSError(f"DogStatsD packets to port {port} were dropped")


def spam(
    port: int,
    duration: float,
    series: int = SERIES_PER_BATCH,
    host: str = "127.0.0.1",
    clock: Callable[[], float] = time.monotonic,
) -> int:
    """
    Send counters and gauges to host:port until duration seconds pass.

    Each batch increments, decrements and sets a gauge for every series.
    Elapsed time is only checked between batches, so the last batch always
    completes. Send errors are not retried.

    Returns:
        Number of batches sent

    Raises:
        OSError: a packet could not be sent
    """
    client = DogStatsd(host=host, port=port, disable_buffering=True)
    start = clock()
    batches = 0
    try:
        while clock() - start <= duration:
            for i in range(series):
                client.increment(f"ziggle.counter{i}", tags=TAGS)
                _check_sent(client, port)
                client.decrement(f"ziggle.counter{i}", tags=TAGS)
                _check_sent(client, port)
                client.gauge(f"ziggle.guage{i}", GAUGE_VALUE, tags=TAGS)
                _check_sent(client, port)
            batches += 1
            logger.debug(f"Sent batch {batches} to port {port}")
            # Let other evaluations run between batches
            time.sleep(0)
    finally:
        client.close_socket()
    return batches

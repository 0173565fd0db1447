"""Shared fixtures: a fake Docker client and canned ps output."""

from unittest.mock import MagicMock

import pytest

from malloctune.candidate import Candidate
from malloctune.config import HarnessConfig

PS_OUTPUT = (
    "/bin/s6-svscan /var/run/s6/services                                    812\n"
    "/opt/datadog-agent/bin/agent/agent run                                1000\n"
    "/opt/datadog-agent/embedded/bin/process-agent --cfgpath=/etc/datadog-agent/datadog.yaml 2000\n"
    "/opt/datadog-agent/embedded/bin/security-agent start -c=/etc/datadog-agent/datadog.yaml 1500\n"
    "/opt/datadog-agent/embedded/bin/trace-agent --config=/etc/datadog-agent/datadog.yaml 500\n"
    "ps -aeo cmd,rss --no-headers                                          1320\n"
)


def exec_result(text: str, chunk_size: int = 64) -> MagicMock:
    """Streamed exec result yielding text in fixed-size byte chunks."""
    data = text.encode()
    chunks = [data[i:i + chunk_size] for i in range(0, len(data), chunk_size)]
    return MagicMock(exit_code=None, output=iter(chunks))


@pytest.fixture(autouse=True)
def reset_candidate_ids():
    Candidate.reset_id_counter()
    yield


@pytest.fixture
def container() -> MagicMock:
    """A started container whose ps reports all four Agent processes."""
    c = MagicMock()
    c.name = "groovin-TESTTEST01"
    c.exec_run.return_value = exec_result(PS_OUTPUT)
    return c


@pytest.fixture
def docker_client(container: MagicMock) -> MagicMock:
    client = MagicMock()
    client.containers.create.return_value = container
    return client


@pytest.fixture
def config() -> HarnessConfig:
    return HarnessConfig(seconds=1)

"""
Configuration - gene space and harness settings.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

# Each candidate is 7 genes, each drawn from [0, 20)
GENE_COUNT = 7
ALLELES = range(0, 20)

# Host ports handed out to DogStatsD listeners, [low, high)
PORT_RANGE = (12500, 12700)

RUN_FOR_SECONDS = 60


@dataclass
class HarnessConfig:
    """
    Settings for launching one Agent container.

    Attributes:
        image: Agent image to benchmark
        network: Docker network to attach to (None for the default bridge)
        hostname: Fixed hostname reported by the Agent
        base_env: Environment every container gets, tuned or not
        preload: Shared objects preloaded when a MALLOC_CONF is set
        agent_config_path: Where an overlay datadog.yaml is mounted
        nano_cpus: CPU quota (1e9 == one CPU)
        dogstatsd_port: Container-side DogStatsD listener
        port_range: Host port pool, [low, high)
        seconds: Default measurement window
        payloads: Send DogStatsD load during the window, else stay idle
    """
    image: str = "datadog/agent-dev:nightly-main-8ea4e935-py3"
    network: Optional[str] = "zorknet"
    hostname: str = "zogglebork"
    base_env: Dict[str, str] = field(default_factory=lambda: {
        "DD_SITE": "datad0g.com",
        "DD_API_KEY": "00001",
        "DD_DOGSTATSD_NON_LOCAL_TRAFFIC": "true",
        "DD_SERIALIZER_COMPRESSOR_KIND": "zstd",
        "DD_HOSTNAME": "zogglebork",
    })
    preload: List[str] = field(default_factory=lambda: [
        "/opt/lib/nosys.so",
        "/opt/datadog-agent/embedded/lib/libjemalloc.so",
    ])
    agent_config_path: str = "/etc/datadog-agent/datadog.yaml"
    docker_socket: str = "/var/run/docker.sock"
    nano_cpus: int = 2_000_000_000
    dogstatsd_port: str = "8125/udp"
    port_range: tuple = PORT_RANGE
    seconds: int = RUN_FOR_SECONDS
    payloads: bool = True
    fakeintake_image: str = "datadog/fakeintake"
    fakeintake_name: str = "faketake"

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "HarnessConfig":
        """Build a config from defaults overlaid with MALLOCTUNE_* variables."""
        environ = os.environ if environ is None else environ
        config = cls()
        if "MALLOCTUNE_IMAGE" in environ:
            config.image = environ["MALLOCTUNE_IMAGE"]
        if "MALLOCTUNE_NETWORK" in environ:
            # Empty means the daemon's default bridge
            config.network = environ["MALLOCTUNE_NETWORK"] or None
        if "MALLOCTUNE_SECONDS" in environ:
            config.seconds = int(environ["MALLOCTUNE_SECONDS"])
        return config


def validate_genes(genes: Sequence[int]) -> bool:
    """Check that a gene vector has the right length and alleles."""
    if len(genes) != GENE_COUNT:
        return False
    return all(isinstance(g, int) and g in ALLELES for g in genes)


def parse_genes(text: str) -> List[int]:
    """Parse comma-separated genes, e.g. "3,0,4,9,6,1,12"."""
    genes = []
    for item in text.split(","):
        try:
            genes.append(int(item.strip()))
        except ValueError:
            raise ValueError(f"gene should be a number: {item!r}") from None
    return genes

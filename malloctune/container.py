"""
Agent containers - launch a disposable Agent with a MALLOC_CONF, load it,
measure it, and tear it down.
"""

import logging
import random
import string
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence

import docker
from docker.errors import DockerException, NotFound

from .config import HarnessConfig
from .dogstatsd import spam
from .errors import EvaluationError
from .malloc_conf import encode
from .ports import PortAllocator
from .probe import MemoryProbe, MemoryStats

logger = logging.getLogger(__name__)


def container_name() -> str:
    """Generate a random container name."""
    alphabet = string.ascii_letters + string.digits
    return "groovin-" + "".join(random.choice(alphabet) for _ in range(10))


def build_environment(malloc_conf: str, config: HarnessConfig) -> Dict[str, str]:
    """Environment for the Agent; jemalloc is only preloaded when tuning."""
    env = dict(config.base_env)
    if malloc_conf:
        env["LD_PRELOAD"] = ":".join(config.preload)
        env["MALLOC_CONF"] = malloc_conf
    return env


def build_volumes(overlay: Optional[Path], config: HarnessConfig) -> List[str]:
    """Bind mounts: the Docker socket, plus an optional datadog.yaml overlay."""
    volumes = [f"{config.docker_socket}:{config.docker_socket}:ro"]
    if overlay is not None:
        host_path = (Path.cwd() / overlay).resolve()
        volumes.append(f"{host_path}:{config.agent_config_path}:ro")
    return volumes


class AgentHarness:
    """
    Runs one Agent container per evaluation and reports its memory.

    The harness owns a port allocator shared by all evaluations made
    through it, so it is safe to call evaluate() from several threads.
    """

    def __init__(
        self,
        client=None,
        config: Optional[HarnessConfig] = None,
        ports: Optional[PortAllocator] = None,
        probe: Optional[MemoryProbe] = None,
    ):
        """
        Args:
            client: Docker client (created from the environment on first use)
            config: Harness settings
            ports: Port allocator (one per harness by default)
            probe: Memory probe
        """
        self._client = client
        self.config = config or HarnessConfig()
        self.ports = ports or PortAllocator(*self.config.port_range)
        self.probe = probe or MemoryProbe()

    @property
    def client(self):
        if self._client is None:
            try:
                self._client = docker.from_env()
            except (DockerException, OSError) as e:
                raise EvaluationError(f"Cannot connect to Docker: {e}") from e
        return self._client

    @contextmanager
    def running(
        self,
        malloc_conf: str,
        port: int,
        overlay: Optional[Path] = None,
    ) -> Iterator["docker.models.containers.Container"]:
        """
        Run an Agent container for the duration of the block.

        The container is stopped (and auto-removed) however the block exits.
        """
        name = container_name()
        try:
            container = self.client.containers.create(
                self.config.image,
                name=name,
                hostname=self.config.hostname,
                environment=build_environment(malloc_conf, self.config),
                volumes=build_volumes(overlay, self.config),
                ports={self.config.dogstatsd_port: ("127.0.0.1", port)},
                network=self.config.network,
                nano_cpus=self.config.nano_cpus,
                auto_remove=True,
            )
        except (DockerException, OSError) as e:
            raise EvaluationError(f"Failed to create {name}: {e}", name) from e

        started = False
        try:
            try:
                container.start()
            except (DockerException, OSError) as e:
                raise EvaluationError(f"Failed to start {name}: {e}", name) from e
            started = True
            logger.info(f"Container {name} port {port} running with {malloc_conf!r}")
            yield container
        except BaseException:
            self._teardown(container, started, quiet=True)
            raise
        else:
            self._teardown(container, started)

    def _teardown(self, container, started: bool, quiet: bool = False) -> None:
        try:
            if started:
                container.stop()
            else:
                container.remove(force=True)
            logger.debug(f"Container {container.name} stopped")
        except NotFound:
            # Auto-removed already
            pass
        except (DockerException, OSError) as e:
            if quiet:
                logger.error(f"Failed to tear down {container.name}: {e}")
                return
            raise EvaluationError(
                f"Failed to stop {container.name}: {e}", container.name
            ) from e

    def evaluate(
        self,
        malloc_conf: str,
        seconds: float,
        payloads: bool,
        overlay: Optional[Path] = None,
    ) -> Optional[MemoryStats]:
        """
        Measure the Agent's memory with the given MALLOC_CONF.

        Args:
            malloc_conf: jemalloc options; empty for the baseline allocator
            seconds: How long to run before measuring
            payloads: Send DogStatsD load while running, else just wait
            overlay: Optional datadog.yaml to mount into the container

        Returns:
            Memory stats, or None if any Agent process could not be read

        Raises:
            EvaluationError: Docker, the port pool or the load generator failed
        """
        with self.ports.lease() as port:
            with self.running(malloc_conf, port, overlay) as container:
                try:
                    if payloads:
                        batches = spam(port, seconds)
                        logger.debug(f"Sent {batches} batches to {container.name}")
                    else:
                        time.sleep(seconds)
                except OSError as e:
                    raise EvaluationError(
                        f"Load generation failed for {container.name}: {e}",
                        container.name,
                    ) from e

                try:
                    memory = self.probe.sample(container)
                except (DockerException, OSError) as e:
                    raise EvaluationError(
                        f"Failed to read memory of {container.name}: {e}",
                        container.name,
                    ) from e

                if memory is not None:
                    logger.info(
                        f"Agent {container.name} memory {malloc_conf!r} "
                        f"{memory.to_dict()} total={memory.total}"
                    )
                else:
                    logger.info(f"Failed to get memory for {container.name}")
                return memory

    def fitness(self, genes: Sequence[int]) -> Optional[int]:
        """
        Total RSS for a gene vector (lower is better), or None if unscored.

        Infrastructure failures only invalidate this candidate.
        """
        malloc_conf = encode(genes)
        try:
            memory = self.evaluate(malloc_conf, self.config.seconds, self.config.payloads)
        except EvaluationError as e:
            logger.error(f"Evaluation of {list(genes)} failed: {e}")
            return None
        return memory.total if memory is not None else None


def run_fakeintake(client=None, config: Optional[HarnessConfig] = None) -> None:
    """
    Run datadog/fakeintake on the harness network until interrupted.

    Creates the network first and removes it again on the way out.
    """
    client = client or docker.from_env()
    config = config or HarnessConfig()
    if not config.network:
        raise ValueError("fakeintake needs a named network")

    network = client.networks.create(config.network)
    logger.info(f"Created network {config.network}")
    try:
        container = client.containers.run(
            config.fakeintake_image,
            name=config.fakeintake_name,
            network=config.network,
            detach=True,
            auto_remove=True,
        )
        try:
            for line in container.logs(stream=True, follow=True):
                logger.info(line.decode("utf-8", errors="replace").rstrip())
        finally:
            logger.info("Cleaning up...")
            try:
                container.stop()
            except NotFound:
                pass
    finally:
        network.remove()
        logger.info(f"Removed network {config.network}")

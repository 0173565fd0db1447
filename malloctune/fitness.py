"""
Fitness evaluation - runs the Agent with a candidate's MALLOC_CONF and
scores it by total RSS.
"""

import logging
import random
import threading
from pathlib import Path
from typing import Optional

from .candidate import Candidate
from .container import AgentHarness, EvaluationError

logger = logging.getLogger(__name__)


class FitnessEvaluator:
    """
    Evaluates fitness of candidates by running Agent containers.

    Fitness is the summed RSS of the four Agent processes in KiB; lower
    is better. Candidates that cannot be measured get None.
    """

    def __init__(
        self,
        harness: AgentHarness,
        seconds: Optional[float] = None,
        payloads: Optional[bool] = None,
        overlay: Optional[Path] = None,
    ):
        """
        Initialize the fitness evaluator.

        Args:
            harness: Runs and measures Agent containers
            seconds: Measurement window (defaults to the harness config)
            payloads: Send DogStatsD load during the window
            overlay: Optional datadog.yaml mounted into every container
        """
        self.harness = harness
        self.seconds = harness.config.seconds if seconds is None else seconds
        self.payloads = harness.config.payloads if payloads is None else payloads
        self.overlay = overlay
        self._evaluation_count = 0
        self._lock = threading.Lock()

    def _count(self) -> int:
        with self._lock:
            self._evaluation_count += 1
            return self._evaluation_count

    def evaluate(self, candidate: Candidate) -> Optional[int]:
        """
        Evaluate a candidate's fitness.

        Returns:
            Total RSS in KiB, or None if the run could not be scored
        """
        count = self._count()
        logger.info(f"Evaluating candidate {candidate._id} ({count})")
        logger.info(f"  Config: {candidate.malloc_conf}")

        try:
            memory = self.harness.evaluate(
                candidate.malloc_conf, self.seconds, self.payloads, self.overlay
            )
        except EvaluationError as e:
            logger.error(f"  Evaluation failed: {e}")
            return None

        if memory is None:
            logger.info(f"  Candidate {candidate._id}: incomplete reading")
            return None

        logger.info(f"  Candidate {candidate._id} fitness: {memory.total} KiB")
        return memory.total

    @property
    def evaluation_count(self) -> int:
        """Number of evaluations performed."""
        return self._evaluation_count


class MockFitnessEvaluator(FitnessEvaluator):
    """
    Mock evaluator for testing (doesn't run any containers).
    """

    BASELINE_RSS = 400_000

    def __init__(self, harness: Optional[AgentHarness] = None, seed: Optional[int] = None):
        super().__init__(harness or AgentHarness())
        self._rng = random.Random(seed)

    def evaluate(self, candidate: Candidate) -> Optional[int]:
        """Return a mock RSS that rewards a few arenas and eager purging."""
        self._count()
        conf = candidate.conf()
        rss = self.BASELINE_RSS

        # Few arenas are cheap, many are expensive
        rss += abs(conf.narenas - 2) * 4_000
        rss += conf.muzzy_decay_ms * 10
        rss += conf.tcache_max // 50
        if conf.background_thread:
            rss -= 8_000
        if conf.dss == "secondary":
            rss += 3_000

        with self._lock:
            rss += self._rng.randint(-2_000, 2_000)
        return max(0, rss)

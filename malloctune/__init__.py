"""
jemalloc tuning harness for the Datadog Agent

Evolutionary search for the MALLOC_CONF that minimises the Agent's total
resident memory, measured in disposable Docker containers under DogStatsD
load.
"""

from .config import HarnessConfig, GENE_COUNT, ALLELES
from .malloc_conf import MallocConf, encode
from .errors import EvaluationError, PortPoolExhausted
from .ports import PortAllocator
from .probe import MemoryProbe, MemoryStats, aggregate
from .container import AgentHarness
from .candidate import Candidate
from .fitness import FitnessEvaluator
from .evolution import EvolutionEngine

__version__ = "0.1.0"
__all__ = [
    "HarnessConfig",
    "GENE_COUNT",
    "ALLELES",
    "MallocConf",
    "encode",
    "PortAllocator",
    "PortPoolExhausted",
    "MemoryProbe",
    "MemoryStats",
    "aggregate",
    "AgentHarness",
    "EvaluationError",
    "Candidate",
    "FitnessEvaluator",
    "EvolutionEngine",
]

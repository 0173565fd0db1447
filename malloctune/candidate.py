"""
Candidate - represents an individual gene vector in the population.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from .config import validate_genes
from .malloc_conf import MallocConf, encode


@dataclass
class Candidate:
    """
    An individual jemalloc configuration in the evolution population.

    Attributes:
        genes: 7 integers in [0, 20)
        fitness: Total Agent RSS in KiB (lower is better), None if unscored
        generation: Which generation this candidate was created in
        parent_ids: IDs of parent candidates (for tracking lineage)
    """
    genes: List[int]
    fitness: Optional[int] = None
    generation: int = 0
    parent_ids: list[int] = field(default_factory=list)
    _id: int = field(default_factory=lambda: Candidate._next_id())

    _id_counter: int = 0

    @classmethod
    def _next_id(cls) -> int:
        cls._id_counter += 1
        return cls._id_counter

    @classmethod
    def reset_id_counter(cls):
        """Reset ID counter (useful for testing)."""
        cls._id_counter = 0

    def is_valid(self) -> bool:
        return validate_genes(self.genes)

    @property
    def malloc_conf(self) -> str:
        return encode(self.genes)

    def conf(self) -> MallocConf:
        return MallocConf.from_genes(self.genes)

    def __repr__(self) -> str:
        fitness_str = str(self.fitness) if self.fitness is not None else "?"
        return f"Candidate(id={self._id}, fitness={fitness_str}, gen={self.generation})"

    def config_summary(self) -> str:
        """Short summary of configuration for logging."""
        conf = self.conf()
        return (
            f"narenas={conf.narenas}, "
            f"tcache_max={conf.tcache_max}, "
            f"dss={conf.dss}, "
            f"bg={conf.background_thread}, "
            f"muzzy={conf.muzzy_decay_ms}ms"
        )

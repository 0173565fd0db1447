"""
MallocConf - maps a gene vector onto a jemalloc MALLOC_CONF string.
"""

from dataclasses import dataclass
from typing import Optional, Sequence

from .config import GENE_COUNT

# Bytes per step for the tcache and oversize thresholds
THRESHOLD_STEP = 6_500
DECAY_STEP_MS = 100


def _dss(gene: int) -> str:
    if gene < 3:
        return "disabled"
    if gene < 7:
        return "primary"
    return "secondary"


@dataclass(frozen=True)
class MallocConf:
    """
    jemalloc options derived from a candidate's genes.

    Attributes:
        narenas: Number of arenas
        tcache_max: Largest size class cached per thread, in bytes
        oversize_threshold: Allocations above this go to a dedicated arena
        dss: sbrk precedence relative to mmap
        background_thread: Whether jemalloc runs its purging thread
        muzzy_decay_ms: Time for muzzy pages to be purged
        lg_extent_max_active_fit: Max size ratio when reusing extents (log2)
    """
    narenas: int
    tcache_max: int
    oversize_threshold: int
    dss: str
    background_thread: bool
    muzzy_decay_ms: int
    lg_extent_max_active_fit: int

    @classmethod
    def from_genes(cls, genes: Sequence[int]) -> "MallocConf":
        if len(genes) != GENE_COUNT:
            raise ValueError(f"expected {GENE_COUNT} genes, got {len(genes)}")
        return cls(
            tcache_max=genes[0] * THRESHOLD_STEP,
            oversize_threshold=genes[1] * THRESHOLD_STEP,
            narenas=genes[2],
            dss=_dss(genes[3]),
            background_thread=genes[4] > 5,
            muzzy_decay_ms=genes[5] * DECAY_STEP_MS,
            lg_extent_max_active_fit=genes[6],
        )

    def fields(self) -> list[tuple[str, str]]:
        """Options in the order they are written to MALLOC_CONF."""
        return [
            ("background_thread", "true" if self.background_thread else "false"),
            ("narenas", str(self.narenas)),
            ("muzzy_decay_ms", str(self.muzzy_decay_ms)),
            ("tcache_max", str(self.tcache_max)),
            ("oversize_threshold", str(self.oversize_threshold)),
            ("dss", self.dss),
            ("lg_extent_max_active_fit", str(self.lg_extent_max_active_fit)),
        ]

    def to_string(self) -> str:
        return ",".join(f"{key}:{value}" for key, value in self.fields())

    def __str__(self) -> str:
        return self.to_string()


def encode(genes: Optional[Sequence[int]]) -> str:
    """
    Encode genes as a MALLOC_CONF value.

    No genes means the baseline run: the empty string, which tells the
    harness not to preload jemalloc at all.
    """
    if not genes:
        return ""
    return MallocConf.from_genes(genes).to_string()

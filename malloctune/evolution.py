"""
Evolution engine - selection, mutation, clone crossover over gene vectors.
"""

import logging
import math
import random
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional

from .candidate import Candidate
from .config import ALLELES, GENE_COUNT
from .fitness import FitnessEvaluator

logger = logging.getLogger(__name__)


def _rank_key(candidate: Candidate):
    # Unscored candidates sort after every scored one
    if candidate.fitness is None:
        return (1, 0)
    return (0, candidate.fitness)


class EvolutionEngine:
    """
    Evolutionary search for the MALLOC_CONF with the lowest Agent RSS.

    Keeps the elite share of each generation and refills the population
    with clones of survivors, each possibly mutated at a single gene.
    Stops when the target score is reached, when the best score has not
    improved for max_stale_generations, or after max_generations.
    """

    def __init__(
        self,
        evaluator: FitnessEvaluator,
        population_size: int = 20,
        selection_rate: float = 0.9,
        mutation_rate: float = 0.2,
        max_stale_generations: int = 50,
        target_fitness: int = 0,
        max_generations: Optional[int] = None,
        parallelism: int = 4,
        report_every: int = 10,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize the evolution engine.

        Args:
            evaluator: Fitness evaluator for candidates
            population_size: Number of candidates per generation
            selection_rate: Share of each generation kept as parents
            mutation_rate: Probability a child has one gene mutated
            max_stale_generations: Stop after this many generations without improvement
            target_fitness: Stop once the best score is at or below this
            max_generations: Hard cap on generations (None for no cap)
            parallelism: Candidates evaluated at once
            report_every: Log a progress report every N generations
            rng: Random source (seed it for reproducible runs)
        """
        self.evaluator = evaluator
        self.population_size = population_size
        self.selection_rate = selection_rate
        self.mutation_rate = mutation_rate
        self.max_stale_generations = max_stale_generations
        self.target_fitness = target_fitness
        self.max_generations = max_generations
        self.parallelism = max(1, parallelism)
        self.report_every = report_every
        self.rng = rng or random.Random()

        self._best_ever: Candidate | None = None
        self._history: List[Dict] = []

    def run(self) -> Candidate | None:
        """
        Run the evolutionary optimization.

        Returns:
            The best scored candidate, or None if nothing could be scored.
        """
        logger.info(f"Starting evolution: population {self.population_size}, "
                    f"stale limit {self.max_stale_generations}")

        population = self._initialize_population()
        stale = 0
        gen = 0

        with ThreadPoolExecutor(max_workers=self.parallelism) as pool:
            while True:
                gen += 1
                self._evaluate(pool, population, gen)
                population.sort(key=_rank_key)

                best = population[0]
                scored = [c.fitness for c in population if c.fitness is not None]
                self._history.append({
                    "generation": gen,
                    "best_fitness": best.fitness,
                    "scored": len(scored),
                    "best_genes": list(best.genes),
                })

                if self._improves(best):
                    self._best_ever = best
                    stale = 0
                    logger.info(f"Gen {gen}: new best {best.fitness} ({best.malloc_conf})")
                else:
                    stale += 1

                if self.report_every and gen % self.report_every == 0:
                    self._report(gen, population, stale)

                if self._best_ever is not None and self._best_ever.fitness <= self.target_fitness:
                    logger.info("Reached target fitness - stopping")
                    break
                if stale >= self.max_stale_generations:
                    logger.info(f"No improvement for {stale} generations - stopping")
                    break
                if self.max_generations is not None and gen >= self.max_generations:
                    logger.info(f"Reached {gen} generations - stopping")
                    break

                population = self._evolve(population, gen)

        if self._best_ever is not None:
            logger.info(f"Best fitness: {self._best_ever.fitness}")
            logger.info(f"Best genes: {self._best_ever.genes}")
            logger.info(f"Best config: {self._best_ever.malloc_conf}")
        else:
            logger.warning("No candidate could be scored")
        return self._best_ever

    def _improves(self, candidate: Candidate) -> bool:
        if candidate.fitness is None:
            return False
        if self._best_ever is None:
            return True
        return candidate.fitness < self._best_ever.fitness

    def _evaluate(self, pool: ThreadPoolExecutor, population: List[Candidate], gen: int) -> None:
        pending = [c for c in population if c.fitness is None]
        for candidate, fitness in zip(pending, pool.map(self.evaluator.evaluate, pending)):
            candidate.fitness = fitness
            candidate.generation = gen

    def _report(self, gen: int, population: List[Candidate], stale: int) -> None:
        scored = [c.fitness for c in population if c.fitness is not None]
        best = self._best_ever.fitness if self._best_ever else None
        mean = sum(scored) / len(scored) if scored else float("nan")
        logger.info(f"Gen {gen} report:")
        logger.info(f"  Best ever: {best}")
        logger.info(f"  Mean:      {mean:.0f} over {len(scored)}/{len(population)} scored")
        logger.info(f"  Stale:     {stale}")
        logger.info(f"  Evaluations: {self.evaluator.evaluation_count}")

    def _initialize_population(self) -> List[Candidate]:
        """Create an initial population of random gene vectors."""
        return [Candidate(genes=self._random_genes()) for _ in range(self.population_size)]

    def _random_genes(self) -> List[int]:
        return [self.rng.choice(ALLELES) for _ in range(GENE_COUNT)]

    def _evolve(self, population: List[Candidate], gen: int) -> List[Candidate]:
        """Create next generation through elite selection, cloning and mutation."""
        keep = max(1, math.ceil(self.selection_rate * len(population)))
        survivors = population[:keep]
        new_population = list(survivors)

        while len(new_population) < self.population_size:
            parent = self.rng.choice(survivors)
            genes = self._mutate(list(parent.genes))
            child = Candidate(genes=genes, generation=gen, parent_ids=[parent._id])
            if genes == parent.genes:
                # An unmutated clone scores the same as its parent
                child.fitness = parent.fitness
            new_population.append(child)

        return new_population

    def _mutate(self, genes: List[int]) -> List[int]:
        """Mutate one random gene with probability mutation_rate."""
        if self.rng.random() < self.mutation_rate:
            index = self.rng.randrange(len(genes))
            genes[index] = self.rng.choice(ALLELES)
        return genes

    @property
    def best_ever(self) -> Candidate | None:
        """The best candidate found so far."""
        return self._best_ever

    @property
    def history(self) -> List[Dict]:
        """Evolution history by generation."""
        return self._history

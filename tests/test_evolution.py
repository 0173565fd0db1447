"""Tests for candidates, fitness evaluators and the evolution engine."""

import random
from unittest.mock import MagicMock

from malloctune.candidate import Candidate
from malloctune.container import AgentHarness, EvaluationError
from malloctune.evolution import EvolutionEngine, _rank_key
from malloctune.fitness import FitnessEvaluator, MockFitnessEvaluator
from malloctune.malloc_conf import encode
from malloctune.probe import MemoryStats


class ScriptedEvaluator:
    """Scores candidates with a function of their genes."""

    def __init__(self, score):
        self.score = score
        self.evaluation_count = 0

    def evaluate(self, candidate: Candidate):
        self.evaluation_count += 1
        return self.score(candidate.genes)


class TestCandidate:
    """Tests for Candidate."""

    def test_ids_increment(self) -> None:
        a = Candidate(genes=[0] * 7)
        b = Candidate(genes=[0] * 7)
        assert (a._id, b._id) == (1, 2)

    def test_malloc_conf_follows_genes(self) -> None:
        c = Candidate(genes=[1, 2, 3, 4, 5, 6, 7], fitness=4200, generation=3)
        assert c.malloc_conf == encode(c.genes)
        c.genes = [0] * 7
        assert c.malloc_conf.startswith("background_thread:false,narenas:0")

    def test_validity(self) -> None:
        assert Candidate(genes=[0] * 7).is_valid()
        assert not Candidate(genes=[0] * 6).is_valid()

    def test_summary(self) -> None:
        summary = Candidate(genes=[1, 0, 2, 0, 9, 3, 0]).config_summary()
        assert "narenas=2" in summary
        assert "bg=True" in summary


class TestFitnessEvaluator:
    """Tests for FitnessEvaluator."""

    def test_scores_total_rss(self) -> None:
        harness = MagicMock(spec=AgentHarness)
        harness.config = MagicMock(seconds=5, payloads=True)
        harness.evaluate.return_value = MemoryStats(1000, 2000, 1500, 500)
        evaluator = FitnessEvaluator(harness)

        candidate = Candidate(genes=[0] * 7)
        assert evaluator.evaluate(candidate) == 5000
        harness.evaluate.assert_called_once_with(candidate.malloc_conf, 5, True, None)
        assert evaluator.evaluation_count == 1

    def test_incomplete_reading(self) -> None:
        harness = MagicMock(spec=AgentHarness)
        harness.config = MagicMock(seconds=5, payloads=False)
        harness.evaluate.return_value = None

        assert FitnessEvaluator(harness).evaluate(Candidate(genes=[0] * 7)) is None

    def test_infrastructure_failure_is_per_candidate(self) -> None:
        harness = MagicMock(spec=AgentHarness)
        harness.config = MagicMock(seconds=5, payloads=False)
        harness.evaluate.side_effect = EvaluationError("daemon gone")

        assert FitnessEvaluator(harness).evaluate(Candidate(genes=[0] * 7)) is None

    def test_mock_evaluator_is_seeded(self) -> None:
        genes = [3, 3, 2, 0, 8, 1, 4]
        a = MockFitnessEvaluator(seed=7).evaluate(Candidate(genes=genes))
        b = MockFitnessEvaluator(seed=7).evaluate(Candidate(genes=genes))
        assert a == b
        assert a > 0


class TestEvolutionEngine:
    """Tests for EvolutionEngine."""

    def test_stops_at_target(self) -> None:
        evaluator = ScriptedEvaluator(lambda genes: sum(genes))
        engine = EvolutionEngine(
            evaluator,
            population_size=10,
            target_fitness=1_000,
            rng=random.Random(1),
        )

        best = engine.run()

        assert best.fitness <= 1_000
        assert len(engine.history) == 1

    def test_stops_when_stale(self) -> None:
        evaluator = ScriptedEvaluator(lambda genes: 42)
        engine = EvolutionEngine(
            evaluator,
            population_size=6,
            max_stale_generations=3,
            rng=random.Random(2),
        )

        best = engine.run()

        assert best.fitness == 42
        # One improving generation, then three stale ones
        assert len(engine.history) == 4

    def test_minimises(self) -> None:
        evaluator = ScriptedEvaluator(lambda genes: sum(genes) + 1)
        engine = EvolutionEngine(
            evaluator,
            population_size=12,
            mutation_rate=1.0,
            max_stale_generations=20,
            max_generations=60,
            parallelism=2,
            rng=random.Random(3),
        )

        best = engine.run()
        history = [h["best_fitness"] for h in engine.history]

        assert best.fitness == min(history)
        assert history[-1] <= history[0]

    def test_unscored_ranks_last(self) -> None:
        population = [
            Candidate(genes=[0] * 7),
            Candidate(genes=[1] * 7, fitness=30),
            Candidate(genes=[2] * 7),
            Candidate(genes=[3] * 7, fitness=10),
        ]
        population.sort(key=_rank_key)

        assert [c.fitness for c in population] == [10, 30, None, None]

    def test_nothing_scored(self) -> None:
        evaluator = ScriptedEvaluator(lambda genes: None)
        engine = EvolutionEngine(evaluator, population_size=4, max_generations=2)

        assert engine.run() is None
        assert engine.best_ever is None

    def test_next_generation_keeps_elite(self) -> None:
        engine = EvolutionEngine(ScriptedEvaluator(sum), population_size=10, rng=random.Random(5))
        population = [Candidate(genes=[i] * 7, fitness=i) for i in range(10)]

        children = engine._evolve(population, gen=1)

        assert len(children) == 10
        assert children[:9] == population[:9]
        assert children[9].parent_ids[0] in {c._id for c in population[:9]}

#!/usr/bin/env python3
"""
jemalloc tuning harness for the Datadog Agent

Searches MALLOC_CONF settings for the lowest total RSS across the Agent's
processes, measuring each candidate in a disposable container.

Usage:
    # Run the genetic search
    python -m malloctune.harness evolve

    # Dry run with mock evaluator (no containers)
    python -m malloctune.harness evolve --mock --generations 5

    # Show the MALLOC_CONF a gene vector stands for
    python -m malloctune.harness interpret --genes 3,0,4,9,6,1,12

    # Measure one configuration (empty --malloc-conf is the baseline)
    python -m malloctune.harness run --malloc-conf "narenas:2" --seconds 30 --payloads

    # Fake intake for the Agents to report to (Ctrl-C to stop)
    python -m malloctune.harness intake
"""

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path

from malloctune.config import HarnessConfig, parse_genes, validate_genes
from malloctune.container import AgentHarness, EvaluationError, run_fakeintake
from malloctune.evolution import EvolutionEngine
from malloctune.fitness import FitnessEvaluator, MockFitnessEvaluator
from malloctune.malloc_conf import encode

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the harness."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(message)s",
        datefmt="%H:%M:%S",
    )


def cmd_evolve(args: argparse.Namespace, config: HarnessConfig) -> int:
    if args.mock:
        logger.info("Using MOCK evaluator (no containers)")
        evaluator = MockFitnessEvaluator(seed=args.seed)
    else:
        logger.info("Using REAL evaluator (will run Agent containers)")
        evaluator = FitnessEvaluator(AgentHarness(config=config), overlay=args.config)

    engine = EvolutionEngine(
        evaluator=evaluator,
        population_size=args.population,
        max_stale_generations=args.stale,
        max_generations=args.generations,
        parallelism=args.parallelism,
    )

    start_time = datetime.now()
    try:
        best = engine.run()
    except KeyboardInterrupt:
        logger.info("Evolution interrupted by user")
        best = engine.best_ever
        if best is not None:
            logger.info(f"Best so far: {best.fitness} {best.malloc_conf}")
        return 1
    logger.info(f"Evolution completed in {datetime.now() - start_time}")

    if best is None:
        print("Duff run")
        return 1

    print(f"Best genes {best.genes}")
    print(f"Best conf {best.malloc_conf}")
    print(f"Best score {best.fitness}")
    return 0


def cmd_interpret(args: argparse.Namespace, config: HarnessConfig) -> int:
    try:
        genes = parse_genes(args.genes)
    except ValueError as e:
        logger.error(str(e))
        return 2
    if not validate_genes(genes):
        logger.error(f"Expected 7 genes in [0, 20), got {genes}")
        return 2
    print(encode(genes))
    return 0


def cmd_run(args: argparse.Namespace, config: HarnessConfig) -> int:
    harness = AgentHarness(config=config)
    try:
        memory = harness.evaluate(args.malloc_conf, args.seconds, args.payloads, args.config)
    except EvaluationError as e:
        logger.error(f"Run failed: {e}")
        return 1

    if memory is None:
        print("Duff run")
        return 1
    print(f"RSS: {memory.total}")
    return 0


def cmd_intake(args: argparse.Namespace, config: HarnessConfig) -> int:
    try:
        run_fakeintake(config=config)
    except KeyboardInterrupt:
        pass
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="jemalloc tuning harness for the Datadog Agent",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--image", help="Agent image to benchmark")
    parser.add_argument("--network", help="Docker network for the containers")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Enable verbose logging")

    sub = parser.add_subparsers(dest="command", required=True)

    evolve = sub.add_parser("evolve", help="Run the genetic search")
    evolve.add_argument("--population", "-p", type=int, default=20,
                        help="Population size (default: 20)")
    evolve.add_argument("--stale", type=int, default=50,
                        help="Stop after N generations without improvement (default: 50)")
    evolve.add_argument("--generations", "-g", type=int,
                        help="Maximum number of generations (default: no limit)")
    evolve.add_argument("--parallelism", "-j", type=int, default=4,
                        help="Candidates evaluated at once (default: 4)")
    evolve.add_argument("--seconds", "-s", type=int,
                        help="Measurement window per candidate")
    evolve.add_argument("--config", type=Path,
                        help="datadog.yaml to mount into every Agent")
    evolve.add_argument("--mock", action="store_true",
                        help="Use mock evaluator (no containers)")
    evolve.add_argument("--seed", type=int, help="Seed for the mock evaluator")

    interpret = sub.add_parser("interpret", help="Interpret genes from an evolution")
    interpret.add_argument("--genes", "-g", required=True, help="Genes as CSV")

    run = sub.add_parser("run", help="Run the Agent with the given MALLOC_CONF")
    run.add_argument("--malloc-conf", "-m", default="",
                     help="jemalloc conf to use; empty runs without jemalloc")
    run.add_argument("--seconds", "-s", type=int,
                     help="Time in seconds to run for")
    run.add_argument("--payloads", "-p", action="store_true",
                     help="Send payloads via DogStatsD while running")
    run.add_argument("--config", type=Path,
                     help="datadog.yaml to mount into the Agent")

    sub.add_parser("intake", help="Run fakeintake on the harness network")
    return parser


COMMANDS = {
    "evolve": cmd_evolve,
    "interpret": cmd_interpret,
    "run": cmd_run,
    "intake": cmd_intake,
}


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    config = HarnessConfig.from_env()
    if args.image:
        config.image = args.image
    if args.network is not None:
        config.network = args.network or None
    if getattr(args, "seconds", None) is not None:
        config.seconds = args.seconds
    elif args.command == "run":
        args.seconds = config.seconds

    try:
        return COMMANDS[args.command](args, config)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 1
    except Exception as e:
        logger.exception(f"{args.command} failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())

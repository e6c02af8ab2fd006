from __future__ import annotations

import argparse
import datetime as dt
import signal
import sys
import threading
from pathlib import Path

from loguru import logger

from .config import EvolutionConfig
from .errors import EvaluationError, SerializationError
from .evolution import GenerationalTrainer
from .fitness import FITNESS_FUNCTIONS
from .visualization import plot_graph, plot_history


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Evolve a DAG controller for the cart-pole task")
    p.add_argument("--pop-size", type=int, default=100)
    p.add_argument("--generations", type=int, default=50)
    p.add_argument("--timesteps", type=int, default=1000)
    p.add_argument("--seed", type=int, default=0)
    p.add_argument("--workers", type=int, default=4)
    p.add_argument("--fitness", choices=sorted(FITNESS_FUNCTIONS), default="pole_top")
    p.add_argument("--initial-angle", type=float, default=None, help="degrees; random per generation if omitted")
    p.add_argument("--population-dir", type=str, default=None, help="resume from and save to this directory")
    p.add_argument("--out-root", type=str, default="artifacts")
    p.add_argument("--no-fail-fast", action="store_true", help="score failed episodes as -inf instead of aborting")
    p.add_argument("--plots", action="store_true")
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    cfg = EvolutionConfig(
        pop_size=args.pop_size,
        generations=args.generations,
        timesteps_per_episode=args.timesteps,
        seed=args.seed,
        num_workers=args.workers,
        fitness=args.fitness,
        initial_angle_deg=args.initial_angle,
        fail_fast=not args.no_fail_fast,
    )

    ts = dt.datetime.now().strftime("%Y%m%d_%H%M%S")
    out_dir = Path(args.out_root).resolve() / f"run_{ts}"
    population_dir = Path(args.population_dir).resolve() if args.population_dir else None

    stop_event = threading.Event()

    def _request_stop(signum, frame):
        logger.warning("Interrupt received; finishing the current generation")
        stop_event.set()

    signal.signal(signal.SIGINT, _request_stop)

    try:
        trainer = GenerationalTrainer(cfg=cfg, out_dir=out_dir, population_dir=population_dir)
        champion, artifacts = trainer.run(stop_event)
    except SerializationError as exc:
        logger.error(f"Could not load population: {exc}")
        return 1
    except EvaluationError as exc:
        logger.opt(exception=exc).error("Evaluation aborted")
        return 1

    if args.plots:
        plots_dir = out_dir / "plots"
        plot_history(trainer.history, plots_dir / "fitness_complexity.png")
        if champion is not None:
            plot_graph(champion.graph, plots_dir / "champion_graph.png", title="Champion Topology")
        for g, graph in trainer.champion_snapshots[:: max(1, len(trainer.champion_snapshots) // 3)]:
            plot_graph(graph, plots_dir / f"champion_graph_gen_{g}.png", title=f"Champion Topology (Generation {g})")
        artifacts["plots_dir"] = plots_dir

    print(f"Run complete: {out_dir}")
    for name, p in sorted(artifacts.items()):
        print(f"{name}: {p}")
    return 0


if __name__ == "__main__":
    sys.exit(main())

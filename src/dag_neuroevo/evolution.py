from __future__ import annotations

import csv
import math
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path

import numpy as np
from loguru import logger

from .agent import Agent
from .config import EvolutionConfig
from .envs import create_environment
from .errors import EvaluationError
from .fitness import FitnessFunction, resolve_fitness
from .graph import Graph, create_starting_graph
from .mutation import mutate_chain
from .persistence import load_population, save_graph, save_population, saved_graph_paths

FAILED_FITNESS = float("-inf")


@dataclass
class ScoredGraph:
    graph: Graph
    fitness: float


def run_episode(
    graph: Graph,
    cfg: EvolutionConfig,
    initial_angle: float,
    fitness_fn: FitnessFunction,
) -> float:
    """Run one fixed-length episode and return the summed fitness."""
    env = create_environment(cfg.initial_position, initial_angle, cfg.environment)
    agent = Agent(graph)
    for _ in range(cfg.timesteps_per_episode):
        force = agent.act(env.get_state())
        env.advance(force[0])
        agent.add_fitness(fitness_fn(env.get_state()))
    return agent.fitness


def rank(scored: list[ScoredGraph]) -> list[ScoredGraph]:
    """Fitness descending, then fewer nodes first."""
    return sorted(scored, key=lambda s: (-s.fitness, s.graph.node_count))


def seed_population(
    cfg: EvolutionConfig,
    rng: np.random.Generator,
    population_dir: Path | None = None,
) -> list[Graph]:
    # Any saved graph means resume; every index must then load.
    if population_dir is not None and saved_graph_paths(population_dir):
        return load_population(population_dir, cfg.pop_size)
    return [create_starting_graph(cfg, rng) for _ in range(cfg.pop_size)]


class GenerationalTrainer:
    def __init__(
        self,
        cfg: EvolutionConfig,
        out_dir: Path,
        population_dir: Path | None = None,
    ):
        self.cfg = cfg
        self.out_dir = out_dir
        self.out_dir.mkdir(parents=True, exist_ok=True)
        self.population_dir = population_dir if population_dir is not None else out_dir / "population"

        self.rng = np.random.default_rng(cfg.seed)
        self._child_seeds = np.random.SeedSequence(cfg.seed)
        self.fitness_fn = resolve_fitness(cfg.fitness, cfg.environment)

        self.population: list[Graph] = seed_population(cfg, self.rng, population_dir)
        self.history: list[dict[str, float]] = []
        self.champion_snapshots: list[tuple[int, Graph]] = []
        self.history_path = self.out_dir / "history.csv"

    def run(self, stop_event: threading.Event | None = None) -> tuple[ScoredGraph | None, dict[str, Path]]:
        best: ScoredGraph | None = None
        for gen in range(self.cfg.generations):
            if stop_event is not None and stop_event.is_set():
                logger.info(f"Stop requested; halting before generation {gen}")
                break

            scored = self.evaluate(gen)
            best = self._record_generation(gen, scored)
            self._write_history_csv(self.history_path)

            if gen < self.cfg.generations - 1:
                self.population = self.next_generation(scored)

        artifacts = self.save_artifacts(best)
        return best, artifacts

    # ------------------------------------------------------------------
    # Evaluate
    # ------------------------------------------------------------------

    def evaluate(self, gen: int) -> list[ScoredGraph]:
        angle = self._initial_angle()
        fitness: list[float] = [FAILED_FITNESS] * len(self.population)

        with ThreadPoolExecutor(max_workers=max(1, self.cfg.num_workers), thread_name_prefix="episode") as pool:
            futures = {
                pool.submit(run_episode, graph, self.cfg, angle, self.fitness_fn): i
                for i, graph in enumerate(self.population)
            }
            for future in as_completed(futures):
                i = futures[future]
                try:
                    value = future.result()
                except Exception as exc:
                    if self.cfg.fail_fast:
                        raise EvaluationError(i, gen) from exc
                    logger.opt(exception=exc).error(f"Episode for individual {i} failed in generation {gen}")
                    continue
                if math.isnan(value):
                    logger.warning(f"Individual {i} produced NaN fitness in generation {gen}")
                    continue
                fitness[i] = value

        return [ScoredGraph(graph, f) for graph, f in zip(self.population, fitness)]

    def _initial_angle(self) -> float:
        if self.cfg.initial_angle_deg is None:
            degrees = float(np.round(self.rng.random() * 360.0))
        else:
            degrees = self.cfg.initial_angle_deg
        return math.radians(degrees)

    # ------------------------------------------------------------------
    # Select & reproduce
    # ------------------------------------------------------------------

    def next_generation(self, scored: list[ScoredGraph]) -> list[Graph]:
        ranked = rank(scored)
        n = len(scored)
        n_elite = min(n, int(n * self.cfg.selection.elite_fraction))

        # Elites are cloned so the scored generation is never aliased.
        new_population = [s.graph.clone() for s in ranked[:n_elite]]

        remaining = n - n_elite
        counts = self._mutation_counts(remaining)
        parents = self._sample_parents(scored, remaining)
        child_rngs = [np.random.default_rng(s) for s in self._child_seeds.spawn(remaining)]
        for parent, count, child_rng in zip(parents, counts, child_rngs):
            child, _ = mutate_chain(parent.graph, count, child_rng, self.cfg)
            new_population.append(child)
        return new_population

    def _mutation_counts(self, remaining: int) -> list[int]:
        sel = self.cfg.selection
        counts: list[int] = []
        for n_mutations, fraction in sel.mutation_partition:
            counts.extend([n_mutations] * int(remaining * fraction))
        counts = counts[:remaining]
        counts.extend([sel.default_mutations] * (remaining - len(counts)))
        return counts

    def _sample_parents(self, scored: list[ScoredGraph], amount: int) -> list[ScoredGraph]:
        if amount <= 0:
            return []
        weights = np.array(
            [s.fitness if math.isfinite(s.fitness) and s.fitness > 0 else 0.0 for s in scored],
            dtype=float,
        )
        total = weights.sum()
        probs = weights / total if total > 0 else None
        picks = self.rng.choice(len(scored), size=amount, replace=True, p=probs)
        return [scored[i] for i in picks]

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def _record_generation(self, gen: int, scored: list[ScoredGraph]) -> ScoredGraph:
        best = rank(scored)[0]
        finite = np.array([s.fitness for s in scored if math.isfinite(s.fitness)], dtype=float)
        complexity = np.array([s.graph.complexity() for s in scored], dtype=float)
        best_hidden, best_edges = best.graph.complexity()

        record = {
            "generation": float(gen),
            "best_fitness": float(best.fitness),
            "mean_fitness": float(np.mean(finite)) if finite.size else FAILED_FITNESS,
            "failed": float(len(scored) - finite.size),
            "mean_hidden_nodes": float(np.mean(complexity[:, 0])),
            "mean_edges": float(np.mean(complexity[:, 1])),
            "champ_hidden_nodes": float(best_hidden),
            "champ_edges": float(best_edges),
            "champ_max_edges": float(best.graph.max_possible_edges()),
        }
        self.history.append(record)
        self.champion_snapshots.append((gen, best.graph.clone()))

        print(
            f"[gen {gen + 1:03d}/{self.cfg.generations:03d}] "
            f"best={record['best_fitness']:.3f} "
            f"mean={record['mean_fitness']:.3f} "
            f"edges={best_edges} "
            f"hidden={best_hidden}"
        )
        return best

    def save_artifacts(self, best: ScoredGraph | None) -> dict[str, Path]:
        artifacts: dict[str, Path] = {}

        self._write_history_csv(self.history_path)
        artifacts["history_csv"] = self.history_path

        if best is not None:
            champion_path = self.out_dir / "champion_graph.json"
            save_graph(best.graph, champion_path)
            artifacts["champion_json"] = champion_path

        save_population(self.population, self.population_dir)
        artifacts["population_dir"] = self.population_dir
        return artifacts

    def _write_history_csv(self, path: Path) -> None:
        if not self.history:
            return
        fieldnames = list(self.history[0].keys())
        with path.open("w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=fieldnames)
            writer.writeheader()
            for row in self.history:
                writer.writerow(row)

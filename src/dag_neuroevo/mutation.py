from __future__ import annotations

from typing import Callable

import numpy as np
from loguru import logger

from .config import EvolutionConfig
from .genes import hidden_node_factory
from .graph import Graph

MutationOperator = Callable[[Graph, np.random.Generator, EvolutionConfig], bool]


def _add_edge(graph: Graph, rng: np.random.Generator, cfg: EvolutionConfig) -> bool:
    return graph.add_random_edge(rng, cfg.init)


def _remove_edge(graph: Graph, rng: np.random.Generator, cfg: EvolutionConfig) -> bool:
    return graph.remove_random_edge(rng)


def _split_edge(graph: Graph, rng: np.random.Generator, cfg: EvolutionConfig) -> bool:
    return graph.split_random_edge(rng, cfg.init, hidden_node_factory(rng, cfg.init, "Split edge"))


def _add_node(graph: Graph, rng: np.random.Generator, cfg: EvolutionConfig) -> bool:
    return graph.add_random_node(rng, cfg.init, hidden_node_factory(rng, cfg.init, "Added node"))


def _remove_node(graph: Graph, rng: np.random.Generator, cfg: EvolutionConfig) -> bool:
    return graph.remove_random_node(rng)


def _bias(graph: Graph, rng: np.random.Generator, cfg: EvolutionConfig) -> bool:
    return graph.perturb_random_bias(rng, cfg.mutation.bias_mutate_power)


def _weight(graph: Graph, rng: np.random.Generator, cfg: EvolutionConfig) -> bool:
    return graph.perturb_random_weight(rng, cfg.mutation.weight_mutate_power)


MUTATION_OPERATORS: dict[str, MutationOperator] = {
    "add_edge": _add_edge,
    "remove_edge": _remove_edge,
    "split_edge": _split_edge,
    "add_node": _add_node,
    "remove_node": _remove_node,
    "bias": _bias,
    "weight": _weight,
}


def mutate(graph: Graph, rng: np.random.Generator, cfg: EvolutionConfig) -> str | None:
    """Apply one operator rolled from the probability table, in place.

    A failed operator is excluded and another one is rolled, at most
    ``max_retries`` times. Returns the name of the applied operator or
    ``None`` if every attempt failed.
    """
    table = cfg.mutation.operator_table()
    unknown = set(table) - set(MUTATION_OPERATORS)
    if unknown:
        raise ValueError(f"Unknown mutation operators: {sorted(unknown)}")

    failed: set[str] = set()
    for _ in range(max(1, cfg.mutation.max_retries)):
        names = [name for name, p in table.items() if p > 0 and name not in failed]
        if not names:
            break
        probs = np.asarray([table[name] for name in names], dtype=float)
        name = names[rng.choice(len(names), p=probs / probs.sum())]
        if MUTATION_OPERATORS[name](graph, rng, cfg):
            return name
        failed.add(name)

    logger.debug(f"No mutation applied to {graph!r}; failed operators: {sorted(failed)}")
    return None


def mutate_chain(
    parent: Graph,
    count: int,
    rng: np.random.Generator,
    cfg: EvolutionConfig,
) -> tuple[Graph, list[str]]:
    """Clone ``parent`` and apply ``count`` mutations, re-cloning between steps."""
    child = parent.clone()
    applied: list[str] = []
    for _ in range(count):
        child = child.clone()
        name = mutate(child, rng, cfg)
        if name is not None:
            applied.append(name)
    return child, applied

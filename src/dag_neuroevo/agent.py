from __future__ import annotations

import numpy as np

from .genes import INPUT, OUTPUT, Node
from .graph import Graph


class FeedForwardEvaluator:
    """Single forward pass over a graph's topological layers.

    The layering is computed once at construction; ``forward`` only reads the
    graph, so one evaluator (or several) can share a graph across threads.
    """

    def __init__(self, graph: Graph):
        layers, detached = graph.topological_layers()
        self.detached = detached
        self.output_size = len(graph.output_ids)

        included = {node.node_id for layer in layers for node in layer}
        self._plan: list[tuple[Node, list[tuple[int, float]]]] = []
        for layer in layers:
            for node in layer:
                parents = sorted(
                    (src, weight)
                    for src, weight in graph.incoming[node.node_id].items()
                    if src in included
                )
                self._plan.append((node, parents))

    def forward(self, state) -> np.ndarray:
        state = np.asarray(state, dtype=np.float64).reshape(-1)
        values: dict[int, float] = {}
        result = np.zeros(self.output_size, dtype=np.float64)

        for node, parents in self._plan:
            if node.kind == INPUT:
                total = float(state[node.port])
            else:
                total = 0.0
                for src, weight in parents:
                    if src not in values:
                        raise RuntimeError(f"Parent {src} of node {node.node_id} was not evaluated before it.")
                    total += values[src] * weight
            out = node.output(total)
            values[node.node_id] = out
            if node.kind == OUTPUT:
                result[node.port] = out
        return result


class Agent:
    """One graph paired with the fitness it accumulates over a single episode."""

    def __init__(self, graph: Graph):
        self.graph = graph
        self.evaluator = FeedForwardEvaluator(graph)
        self.fitness = 0.0

    def act(self, state) -> np.ndarray:
        return self.evaluator.forward(state)

    def add_fitness(self, score: float) -> None:
        self.fitness += float(score)

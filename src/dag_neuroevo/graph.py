from __future__ import annotations

import copy
from collections import deque
from typing import Iterable, Iterator

import numpy as np
from loguru import logger

from .config import EvolutionConfig, InitConfig
from .errors import InvariantViolation
from .genes import (
    HIDDEN,
    INPUT,
    OUTPUT,
    Edge,
    HiddenNodeFactory,
    Node,
    random_bias,
    random_weight,
)

INPUT_LABELS = ("Cart position", "Cart velocity", "Pole angle", "Pole angular velocity")
OUTPUT_LABELS = ("Force applied to cart",)


class Graph:
    """Weighted directed acyclic graph of controller nodes.

    Nodes live in an arena keyed by id. Edges are kept twice: ``incoming[dst]``
    maps each parent id to the edge weight and ``outgoing[src]`` is the set of
    child ids. Every mutating method leaves the graph acyclic or raises
    :class:`InvariantViolation` before touching it.
    """

    def __init__(self) -> None:
        self.nodes: dict[int, Node] = {}
        self.incoming: dict[int, dict[int, float]] = {}
        self.outgoing: dict[int, set[int]] = {}
        self._next_node_id = 0

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def node_count(self) -> int:
        return len(self.nodes)

    @property
    def input_ids(self) -> list[int]:
        return sorted((k for k, n in self.nodes.items() if n.kind == INPUT), key=lambda k: self.nodes[k].port)

    @property
    def output_ids(self) -> list[int]:
        return sorted((k for k, n in self.nodes.items() if n.kind == OUTPUT), key=lambda k: self.nodes[k].port)

    @property
    def hidden_ids(self) -> list[int]:
        return sorted(k for k, n in self.nodes.items() if n.kind == HIDDEN)

    def edges(self) -> Iterator[Edge]:
        for src in sorted(self.outgoing):
            for dst in sorted(self.outgoing[src]):
                yield Edge(src, dst, self.incoming[dst][src])

    def edge_count(self) -> int:
        return sum(len(children) for children in self.outgoing.values())

    def has_edge(self, src: int, dst: int) -> bool:
        return src in self.outgoing and dst in self.outgoing[src]

    def weight(self, src: int, dst: int) -> float:
        if not self.has_edge(src, dst):
            raise InvariantViolation(f"Edge {src}->{dst} does not exist.")
        return self.incoming[dst][src]

    def complexity(self) -> tuple[int, int]:
        return len(self.hidden_ids), self.edge_count()

    def max_possible_edges(self) -> int:
        n_in = len(self.input_ids)
        n_hidden = len(self.hidden_ids)
        n_out = len(self.output_ids)
        return n_in * (n_hidden + n_out) + n_hidden * (n_hidden - 1) // 2 + n_hidden * n_out

    def allocate_node_id(self) -> int:
        node_id = self._next_node_id
        self._next_node_id += 1
        return node_id

    # ------------------------------------------------------------------
    # Structural edits
    # ------------------------------------------------------------------

    def add_node(self, node: Node, outgoing: Iterable[tuple[Node, float]] = ()) -> None:
        """Insert ``node`` with edges to each ``(target, weight)`` in ``outgoing``.

        Targets that are not yet part of the graph are registered along the way.
        """
        if node.node_id in self.nodes:
            raise InvariantViolation(f"Node {node.node_id} already exists.")
        edges = list(outgoing)
        target_ids = [target.node_id for target, _ in edges]
        if len(set(target_ids)) != len(target_ids):
            raise InvariantViolation(f"Duplicate outgoing edge for node {node.node_id}.")
        if edges and node.kind == OUTPUT:
            raise InvariantViolation("Output nodes cannot have children.")
        if self.causes_cycle(node.node_id, target_ids):
            raise InvariantViolation(f"Adding node {node.node_id} causes a cycle.")

        new_targets: list[Node] = []
        for target, _ in edges:
            if target.kind == INPUT:
                raise InvariantViolation(f"Input node {target.node_id} cannot have parents.")
            if target.node_id not in self.nodes:
                self._check_port(target, pending=new_targets + [node])
                new_targets.append(target)
        self._check_port(node)

        self._register(node)
        for target in new_targets:
            self._register(target)
        for target, weight in edges:
            self._link(node.node_id, target.node_id, weight)

    def add_edge(self, src: int, dst: int, weight: float) -> None:
        for node_id in (src, dst):
            if node_id not in self.nodes:
                raise InvariantViolation(f"Node {node_id} does not exist in graph.")
        if self.nodes[dst].kind == INPUT:
            raise InvariantViolation(f"Input node {dst} cannot have parents.")
        if self.nodes[src].kind == OUTPUT:
            raise InvariantViolation(f"Output node {src} cannot have children.")
        if dst in self.outgoing[src]:
            raise InvariantViolation(f"Edge {src}->{dst} already exists.")
        if self.causes_cycle(src, [dst]):
            raise InvariantViolation(f"Adding edge {src}->{dst} causes a cycle.")
        self._link(src, dst, weight)

    def set_weight(self, src: int, dst: int, weight: float) -> None:
        if not self.has_edge(src, dst):
            raise InvariantViolation(f"Edge {src}->{dst} does not exist.")
        self.incoming[dst][src] = float(weight)

    def remove_edge(self, src: int, dst: int, prune: bool = False) -> None:
        """Remove ``src->dst``; with ``prune`` a hidden ``src`` left without children goes too."""
        if not self.has_edge(src, dst):
            raise InvariantViolation(f"Edge {src}->{dst} does not exist.")
        self.outgoing[src].discard(dst)
        del self.incoming[dst][src]

        if prune and self.nodes[src].kind == HIDDEN and not self.outgoing[src]:
            self.remove_node(src, prune=True)

    def remove_node(self, node_id: int, prune: bool = False) -> None:
        if node_id not in self.nodes:
            raise InvariantViolation(f"Node {node_id} does not exist in graph.")

        for child in sorted(self.outgoing[node_id]):
            self.remove_edge(node_id, child, prune=False)
        for parent in sorted(self.incoming[node_id]):
            if parent in self.incoming[node_id]:
                self.remove_edge(parent, node_id, prune=prune)

        del self.nodes[node_id]
        del self.incoming[node_id]
        del self.outgoing[node_id]

    def trim_dead_ends(self, single_pass: bool = False) -> int:
        """Remove hidden nodes without children, repeating until none are left."""
        before = self.node_count
        while True:
            dead_ends = [nid for nid in self.hidden_ids if not self.outgoing[nid]]
            for nid in dead_ends:
                if nid in self.nodes:
                    self.remove_node(nid, prune=True)
            if not dead_ends or single_pass:
                return before - self.node_count

    # ------------------------------------------------------------------
    # Reachability
    # ------------------------------------------------------------------

    def causes_cycle(self, src: int, targets: Iterable[int]) -> bool:
        """True when adding ``src->t`` for any ``t`` in ``targets`` would close a loop."""
        targets = list(targets)
        if src in targets:
            return True
        predecessors = self.incoming.get(src)
        if not predecessors:
            return False
        return any(self._reaches_any(start, predecessors) for start in targets)

    def path_exists(self, start: int, end: int) -> bool:
        return self._reaches_any(start, {end})

    def _reaches_any(self, start: int, goals) -> bool:
        seen = {start}
        queue = deque([start])
        while queue:
            current = queue.popleft()
            if current in goals:
                return True
            for child in self.outgoing.get(current, ()):
                if child not in seen:
                    seen.add(child)
                    queue.append(child)
        return False

    def _reachable(self, starts: Iterable[int], forward: bool = True) -> set[int]:
        seen = set(starts)
        queue = deque(seen)
        while queue:
            current = queue.popleft()
            neighbours = self.outgoing[current] if forward else self.incoming[current]
            for nxt in neighbours:
                if nxt not in seen:
                    seen.add(nxt)
                    queue.append(nxt)
        return seen

    # ------------------------------------------------------------------
    # Random structural mutations
    # ------------------------------------------------------------------

    def add_random_edge(self, rng: np.random.Generator, init: InitConfig) -> bool:
        pair = self._random_open_pair(rng)
        if pair is None:
            return False
        src, dst = pair
        self.add_edge(src, dst, random_weight(rng, init))
        return True

    def remove_random_edge(self, rng: np.random.Generator) -> bool:
        edges = list(self.edges())
        if not edges:
            return False
        edge = edges[rng.integers(len(edges))]
        self.remove_edge(edge.src, edge.dst, prune=True)
        return True

    def split_random_edge(
        self,
        rng: np.random.Generator,
        init: InitConfig,
        hidden_node_factory: HiddenNodeFactory,
    ) -> bool:
        edges = list(self.edges())
        if not edges:
            return False
        edge = edges[rng.integers(len(edges))]
        node = self._new_hidden_node(hidden_node_factory)

        self.remove_edge(edge.src, edge.dst, prune=False)
        self.add_node(node)
        self.add_edge(edge.src, node.node_id, edge.weight)
        try:
            self.add_edge(node.node_id, edge.dst, random_weight(rng, init))
        except InvariantViolation:
            logger.debug(f"Rolling back split of {edge.src}->{edge.dst}")
            self.remove_node(node.node_id, prune=False)
            self.add_edge(edge.src, edge.dst, edge.weight)
            return False
        return True

    def add_random_node(
        self,
        rng: np.random.Generator,
        init: InitConfig,
        hidden_node_factory: HiddenNodeFactory,
    ) -> bool:
        pair = self._random_open_pair(rng)
        if pair is None:
            return False
        src, dst = pair
        node = self._new_hidden_node(hidden_node_factory)
        self.add_node(node)
        self.add_edge(src, node.node_id, random_weight(rng, init))
        self.add_edge(node.node_id, dst, random_weight(rng, init))
        return True

    def remove_random_node(self, rng: np.random.Generator) -> bool:
        hidden = self.hidden_ids
        if not hidden:
            return False
        self.remove_node(hidden[rng.integers(len(hidden))], prune=True)
        return True

    def perturb_random_bias(self, rng: np.random.Generator, power: float) -> bool:
        node_ids = sorted(self.nodes)
        if not node_ids:
            return False
        node = self.nodes[node_ids[rng.integers(len(node_ids))]]
        node.bias += float(rng.normal(0.0, power))
        return True

    def perturb_random_weight(self, rng: np.random.Generator, power: float) -> bool:
        with_parents = [nid for nid in sorted(self.incoming) if self.incoming[nid]]
        if not with_parents:
            return False
        dst = with_parents[rng.integers(len(with_parents))]
        parents = sorted(self.incoming[dst])
        src = parents[rng.integers(len(parents))]
        self.incoming[dst][src] += float(rng.normal(0.0, power))
        return True

    def _random_open_pair(self, rng: np.random.Generator) -> tuple[int, int] | None:
        sources = [nid for nid in sorted(self.nodes) if self.nodes[nid].kind != OUTPUT]
        while sources:
            src = sources.pop(int(rng.integers(len(sources))))
            targets = [
                nid
                for nid in sorted(self.nodes)
                if self.nodes[nid].kind != INPUT
                and nid != src
                and nid not in self.incoming[src]
                and nid not in self.outgoing[src]
            ]
            while targets:
                dst = targets.pop(int(rng.integers(len(targets))))
                if not self.causes_cycle(src, [dst]):
                    return src, dst
        return None

    def _new_hidden_node(self, hidden_node_factory: HiddenNodeFactory) -> Node:
        node = hidden_node_factory(self.allocate_node_id())
        if node.kind != HIDDEN:
            raise InvariantViolation("Only hidden nodes can be inserted between two nodes.")
        return node

    # ------------------------------------------------------------------
    # Layering & copies
    # ------------------------------------------------------------------

    def topological_layers(self) -> tuple[list[list[Node]], list[Node]]:
        """Return ``(layers, detached)``.

        The first layer holds the inputs and the last layer the outputs, both
        ordered by port. Hidden nodes in between are grouped so that every
        parent sits in an earlier layer. Hidden nodes without a path from an
        input and to an output are returned as detached instead.
        """
        inputs = self.input_ids
        outputs = self.output_ids
        from_inputs = self._reachable(inputs, forward=True)
        to_outputs = self._reachable(outputs, forward=False)

        kept = [nid for nid in self.hidden_ids if nid in from_inputs and nid in to_outputs]
        kept_set = set(kept)
        detached = [self.nodes[nid] for nid in self.hidden_ids if nid not in kept_set]

        pending = {nid: sum(1 for p in self.incoming[nid] if p in kept_set) for nid in kept}
        layers = [[self.nodes[nid] for nid in inputs]]
        ready = [nid for nid in kept if pending[nid] == 0]
        while ready:
            layers.append([self.nodes[nid] for nid in ready])
            unlocked = []
            for nid in ready:
                for child in self.outgoing[nid]:
                    if child in pending:
                        pending[child] -= 1
                        if pending[child] == 0:
                            unlocked.append(child)
            ready = sorted(unlocked)
        layers.append([self.nodes[nid] for nid in outputs])
        return layers, detached

    def clone(self) -> "Graph":
        other = Graph()
        other.nodes = copy.deepcopy(self.nodes)
        other.incoming = {nid: dict(parents) for nid, parents in self.incoming.items()}
        other.outgoing = {nid: set(children) for nid, children in self.outgoing.items()}
        other._next_node_id = self._next_node_id
        return other

    def check_invariants(self) -> None:
        for src, children in self.outgoing.items():
            if children and self.nodes[src].kind == OUTPUT:
                raise InvariantViolation(f"Output node {src} has children.")
            for dst in children:
                if dst not in self.nodes or src not in self.incoming[dst]:
                    raise InvariantViolation(f"Edge {src}->{dst} is not mirrored.")
        for dst, parents in self.incoming.items():
            if parents and self.nodes[dst].kind == INPUT:
                raise InvariantViolation(f"Input node {dst} has parents.")
            for src in parents:
                if src not in self.nodes or dst not in self.outgoing[src]:
                    raise InvariantViolation(f"Edge {src}->{dst} is not mirrored.")
        for kind in (INPUT, OUTPUT):
            ports = [n.port for n in self.nodes.values() if n.kind == kind]
            if len(ports) != len(set(ports)):
                raise InvariantViolation(f"Duplicate {kind} port.")
        for nid in self.nodes:
            if any(self.path_exists(child, nid) for child in self.outgoing[nid]):
                raise InvariantViolation(f"Node {nid} lies on a cycle.")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _register(self, node: Node) -> None:
        self.nodes[node.node_id] = node
        self.incoming[node.node_id] = {}
        self.outgoing[node.node_id] = set()
        self._next_node_id = max(self._next_node_id, node.node_id + 1)

    def _link(self, src: int, dst: int, weight: float) -> None:
        self.outgoing[src].add(dst)
        self.incoming[dst][src] = float(weight)

    def _check_port(self, node: Node, pending: Iterable[Node] = ()) -> None:
        if node.port is None:
            return
        for other in [*self.nodes.values(), *pending]:
            if other.kind == node.kind and other.port == node.port and other.node_id != node.node_id:
                raise InvariantViolation(f"Port {node.port} is already used by {node.kind} node {other.node_id}.")

    def __repr__(self) -> str:
        hidden, edges = self.complexity()
        return f"Graph(nodes={self.node_count}, hidden={hidden}, edges={edges})"


def create_starting_graph(cfg: EvolutionConfig, rng: np.random.Generator) -> Graph:
    graph = Graph()
    init = cfg.init

    outputs = [
        Node(
            node_id=cfg.input_size + port,
            label=f"Output node: {OUTPUT_LABELS[port] if port < len(OUTPUT_LABELS) else port}",
            kind=OUTPUT,
            bias=random_bias(rng, init),
            port=port,
        )
        for port in range(cfg.output_size)
    ]
    for port in range(cfg.input_size):
        node = Node(
            node_id=port,
            label=f"Input node: {INPUT_LABELS[port] if port < len(INPUT_LABELS) else port}",
            kind=INPUT,
            bias=random_bias(rng, init),
            port=port,
        )
        graph.add_node(node)
    for node in outputs:
        graph.add_node(node)

    if init.connect_inputs:
        for src in graph.input_ids:
            for dst in graph.output_ids:
                graph.add_edge(src, dst, random_weight(rng, init))
    return graph

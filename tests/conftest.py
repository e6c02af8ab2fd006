from __future__ import annotations

import numpy as np
import pytest

from dag_neuroevo.config import EvolutionConfig, InitConfig
from dag_neuroevo.genes import HIDDEN, Node
from dag_neuroevo.graph import Graph, create_starting_graph


def zero_cfg(input_size: int = 4, output_size: int = 1, connect_inputs: bool = True) -> EvolutionConfig:
    return EvolutionConfig(
        input_size=input_size,
        output_size=output_size,
        init=InitConfig(bias_std=0.0, weight_std=0.0, connect_inputs=connect_inputs),
    )


def add_hidden(graph: Graph, bias: float = 0.0) -> int:
    node = Node(graph.allocate_node_id(), "Hidden node: test", HIDDEN, bias=bias)
    graph.add_node(node)
    return node.node_id


def assert_valid_layering(graph: Graph) -> None:
    layers, detached = graph.topological_layers()
    detached_ids = {n.node_id for n in detached}
    layer_of = {node.node_id: i for i, layer in enumerate(layers) for node in layer}
    assert set(layer_of) | detached_ids == set(graph.nodes)
    assert not set(layer_of) & detached_ids
    assert [n.node_id for n in layers[0]] == graph.input_ids
    assert [n.node_id for n in layers[-1]] == graph.output_ids
    for nid, depth in layer_of.items():
        for parent in graph.incoming[nid]:
            if parent in layer_of:
                assert layer_of[parent] < depth


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(1234)


@pytest.fixture
def io_graph() -> Graph:
    return create_starting_graph(zero_cfg(), np.random.default_rng(0))


@pytest.fixture
def bare_io_graph() -> Graph:
    return create_starting_graph(zero_cfg(connect_inputs=False), np.random.default_rng(0))

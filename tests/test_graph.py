from __future__ import annotations

import numpy as np
import pytest

from conftest import add_hidden, assert_valid_layering
from dag_neuroevo.config import InitConfig
from dag_neuroevo.errors import InvariantViolation
from dag_neuroevo.genes import HIDDEN, INPUT, OUTPUT, Node, hidden_node_factory
from dag_neuroevo.graph import Graph


def _chain(graph: Graph) -> tuple[int, int]:
    """input 0 -> h1 -> h2 -> output 4"""
    h1 = add_hidden(graph)
    h2 = add_hidden(graph)
    graph.add_edge(0, h1, 1.0)
    graph.add_edge(h1, h2, 1.0)
    graph.add_edge(h2, 4, 1.0)
    return h1, h2


def test_starting_graph_layout(io_graph):
    assert io_graph.input_ids == [0, 1, 2, 3]
    assert io_graph.output_ids == [4]
    assert io_graph.hidden_ids == []
    assert io_graph.edge_count() == 4
    assert [io_graph.nodes[i].port for i in io_graph.input_ids] == [0, 1, 2, 3]
    assert io_graph.nodes[0].label == "Input node: Cart position"
    assert io_graph.nodes[4].label == "Output node: Force applied to cart"
    io_graph.check_invariants()


def test_add_random_edge_fails_on_fully_connected_io_graph(io_graph, rng):
    assert io_graph.add_random_edge(rng, InitConfig()) is False
    assert io_graph.edge_count() == 4


def test_add_random_edge_fills_graph_to_max_possible_edges(bare_io_graph, rng):
    for _ in range(3):
        add_hidden(bare_io_graph)

    added = 0
    while bare_io_graph.add_random_edge(rng, InitConfig()):
        added += 1
        bare_io_graph.check_invariants()

    assert bare_io_graph.edge_count() == bare_io_graph.max_possible_edges()
    assert added == bare_io_graph.max_possible_edges()


def test_add_edge_rejects_cycles(bare_io_graph):
    h1, h2 = _chain(bare_io_graph)
    assert bare_io_graph.causes_cycle(h2, [h1])
    assert bare_io_graph.causes_cycle(h1, [h1])
    assert not bare_io_graph.causes_cycle(h1, [4])
    with pytest.raises(InvariantViolation):
        bare_io_graph.add_edge(h2, h1, 0.5)
    assert not bare_io_graph.has_edge(h2, h1)


@pytest.mark.parametrize(
    "src, dst",
    [
        (4, 0),  # output -> input
        (0, 1),  # input -> input
        (0, 99),  # missing endpoint
        (0, 4),  # duplicate edge
    ],
)
def test_add_edge_enforces_role_rules(io_graph, src, dst):
    with pytest.raises(InvariantViolation):
        io_graph.add_edge(src, dst, 1.0)


def test_output_nodes_cannot_have_children(bare_io_graph):
    h = add_hidden(bare_io_graph)
    with pytest.raises(InvariantViolation):
        bare_io_graph.add_edge(4, h, 1.0)


def test_add_node_rejects_bad_nodes(io_graph):
    with pytest.raises(InvariantViolation):
        io_graph.add_node(Node(0, "dup", HIDDEN))
    with pytest.raises(InvariantViolation):
        io_graph.add_node(Node(10, "second port 0", INPUT, port=0))
    with pytest.raises(InvariantViolation):
        Node(11, "hidden with port", HIDDEN, port=3)
    with pytest.raises(InvariantViolation):
        Node(12, "output without port", OUTPUT)


def test_add_node_with_outgoing_edges_registers_targets():
    graph = Graph()
    out = Node(1, "out", OUTPUT, port=0)
    graph.add_node(Node(0, "in", INPUT, port=0), [(out, 0.5)])
    assert graph.output_ids == [1]
    assert graph.weight(0, 1) == 0.5
    graph.check_invariants()


def test_split_random_edge_replaces_edge_with_two(bare_io_graph, rng):
    bare_io_graph.add_edge(2, 4, 0.75)
    factory = hidden_node_factory(rng, InitConfig(), "Split edge")

    assert bare_io_graph.split_random_edge(rng, InitConfig(), factory)

    [h] = bare_io_graph.hidden_ids
    assert not bare_io_graph.has_edge(2, 4)
    assert bare_io_graph.weight(2, h) == 0.75
    assert bare_io_graph.has_edge(h, 4)
    assert bare_io_graph.nodes[h].label == "Hidden node: Split edge"
    bare_io_graph.check_invariants()


def test_split_random_edge_rejects_non_hidden_factory(io_graph, rng):
    def bad_factory(node_id):
        return Node(node_id, "not hidden", OUTPUT, port=5)

    with pytest.raises(InvariantViolation):
        io_graph.split_random_edge(rng, InitConfig(), bad_factory)


def test_search_operators_report_failure_on_empty_graph(rng):
    graph = Graph()
    factory = hidden_node_factory(rng, InitConfig(), "x")
    assert graph.add_random_edge(rng, InitConfig()) is False
    assert graph.remove_random_edge(rng) is False
    assert graph.split_random_edge(rng, InitConfig(), factory) is False
    assert graph.add_random_node(rng, InitConfig(), factory) is False
    assert graph.remove_random_node(rng) is False
    assert graph.perturb_random_bias(rng, 0.5) is False
    assert graph.perturb_random_weight(rng, 0.5) is False


def test_remove_edge_prunes_dangling_hidden_chain(bare_io_graph):
    h1, h2 = _chain(bare_io_graph)
    bare_io_graph.remove_edge(h2, 4, prune=True)

    assert h1 not in bare_io_graph.nodes
    assert h2 not in bare_io_graph.nodes
    assert bare_io_graph.edge_count() == 0
    assert bare_io_graph.input_ids == [0, 1, 2, 3]
    bare_io_graph.check_invariants()


def test_remove_edge_without_prune_keeps_dead_end(bare_io_graph):
    _, h2 = _chain(bare_io_graph)
    bare_io_graph.remove_edge(h2, 4)
    assert h2 in bare_io_graph.nodes
    assert bare_io_graph.trim_dead_ends() == 2
    assert bare_io_graph.hidden_ids == []


def test_remove_node_keeps_parents_with_other_children(bare_io_graph):
    h1, h2 = _chain(bare_io_graph)
    bare_io_graph.add_edge(h1, 4, 1.0)
    bare_io_graph.remove_node(h2, prune=True)
    assert bare_io_graph.hidden_ids == [h1]
    assert bare_io_graph.has_edge(h1, 4)


def test_path_exists(bare_io_graph):
    h1, h2 = _chain(bare_io_graph)
    assert bare_io_graph.path_exists(0, 4)
    assert bare_io_graph.path_exists(h1, h2)
    assert not bare_io_graph.path_exists(h2, h1)
    assert not bare_io_graph.path_exists(1, 4)


def test_topological_layers_order_chain(bare_io_graph):
    h1, h2 = _chain(bare_io_graph)
    layers, detached = bare_io_graph.topological_layers()
    assert [[n.node_id for n in layer] for layer in layers] == [[0, 1, 2, 3], [h1], [h2], [4]]
    assert detached == []


def test_topological_layers_report_detached_nodes(bare_io_graph):
    h1, h2 = _chain(bare_io_graph)
    orphan = add_hidden(bare_io_graph)
    bare_io_graph.add_edge(orphan, h2, 1.0)
    dead_end = add_hidden(bare_io_graph)
    bare_io_graph.add_edge(1, dead_end, 1.0)

    _, detached = bare_io_graph.topological_layers()
    assert sorted(n.node_id for n in detached) == [orphan, dead_end]
    assert_valid_layering(bare_io_graph)


def test_clone_is_independent(io_graph, rng):
    copy = io_graph.clone()
    copy.nodes[0].bias = 5.0
    copy.set_weight(0, 4, 3.0)
    add_hidden(copy)

    assert io_graph.nodes[0].bias == 0.0
    assert io_graph.weight(0, 4) == 0.0
    assert io_graph.hidden_ids == []
    assert copy.allocate_node_id() == io_graph.allocate_node_id() + 1


def test_random_operations_preserve_invariants(io_graph):
    rng = np.random.default_rng(7)
    init = InitConfig()
    ops = [
        lambda g: g.add_random_edge(rng, init),
        lambda g: g.remove_random_edge(rng),
        lambda g: g.split_random_edge(rng, init, hidden_node_factory(rng, init, "Split edge")),
        lambda g: g.add_random_node(rng, init, hidden_node_factory(rng, init, "Added node")),
        lambda g: g.remove_random_node(rng),
        lambda g: g.perturb_random_bias(rng, 0.5),
        lambda g: g.perturb_random_weight(rng, 0.5),
    ]
    # Bias towards growth so the graph gets some depth.
    probs = np.array([3, 1, 3, 3, 1, 1, 1], dtype=float)
    probs /= probs.sum()

    graph = io_graph
    for _ in range(400):
        ops[rng.choice(len(ops), p=probs)](graph)
        graph.check_invariants()
        assert_valid_layering(graph)
        # No hidden node is ever left without a child.
        assert all(graph.outgoing[h] for h in graph.hidden_ids)
        assert graph.edge_count() <= graph.max_possible_edges()


def test_add_random_node_fails_on_fully_connected_io_graph(io_graph, rng):
    factory = hidden_node_factory(rng, InitConfig(), "Added node")
    assert io_graph.add_random_node(rng, InitConfig(), factory) is False
    assert io_graph.hidden_ids == []
    assert io_graph.edge_count() == 4


def test_add_random_node_bridges_an_unconnected_pair(bare_io_graph, rng):
    bare_io_graph.add_edge(0, 4, 1.0)
    bare_io_graph.add_edge(1, 4, 1.0)
    factory = hidden_node_factory(rng, InitConfig(), "Added node")

    assert bare_io_graph.add_random_node(rng, InitConfig(), factory)

    [h] = bare_io_graph.hidden_ids
    [parent] = bare_io_graph.incoming[h]
    assert parent in (2, 3)
    assert bare_io_graph.outgoing[h] == {4}
    bare_io_graph.check_invariants()


def test_split_random_edge_rolls_back_when_second_edge_is_refused(bare_io_graph, rng, monkeypatch):
    bare_io_graph.add_edge(1, 4, -0.4)
    existing = set(bare_io_graph.nodes)

    def refuse_new_sources(src, targets):
        return src not in existing and bool(list(targets))

    monkeypatch.setattr(bare_io_graph, "causes_cycle", refuse_new_sources)
    factory = hidden_node_factory(rng, InitConfig(), "Split edge")

    assert bare_io_graph.split_random_edge(rng, InitConfig(), factory) is False

    assert bare_io_graph.hidden_ids == []
    assert set(bare_io_graph.nodes) == existing
    assert bare_io_graph.weight(1, 4) == -0.4
    assert bare_io_graph.edge_count() == 1
    bare_io_graph.check_invariants()

from __future__ import annotations

import numpy as np
import pytest

from conftest import add_hidden
from dag_neuroevo.agent import Agent, FeedForwardEvaluator


def test_zero_graph_outputs_zero(io_graph):
    agent = Agent(io_graph)
    np.testing.assert_array_equal(agent.act([0.0, 0.0, 0.0, 0.0]), np.array([0.0]))


def test_forward_weighted_sum_and_bias(bare_io_graph):
    bare_io_graph.add_edge(0, 4, 2.0)
    bare_io_graph.add_edge(3, 4, -1.0)
    bare_io_graph.nodes[4].bias = 0.5

    out = FeedForwardEvaluator(bare_io_graph).forward([1.5, 9.0, 9.0, 2.0])
    assert out.shape == (1,)
    assert out[0] == pytest.approx(2.0 * 1.5 - 2.0 + 0.5)


def test_hidden_nodes_use_leaky_relu(bare_io_graph):
    h = add_hidden(bare_io_graph, bias=-1.0)
    bare_io_graph.add_edge(0, h, 1.0)
    bare_io_graph.add_edge(h, 4, 2.0)

    evaluator = FeedForwardEvaluator(bare_io_graph)
    # 0.5 - 1.0 = -0.5 -> leaky 0.1 * -0.5 = -0.05 -> times 2
    assert evaluator.forward([0.5, 0, 0, 0])[0] == pytest.approx(-0.1)
    # 3.0 - 1.0 = 2.0 -> passes through -> times 2
    assert evaluator.forward([3.0, 0, 0, 0])[0] == pytest.approx(4.0)


def test_detached_nodes_do_not_contribute(bare_io_graph):
    bare_io_graph.add_edge(1, 4, 1.0)
    orphan = add_hidden(bare_io_graph, bias=10.0)
    bare_io_graph.add_edge(orphan, 4, 1.0)

    evaluator = FeedForwardEvaluator(bare_io_graph)
    assert [n.node_id for n in evaluator.detached] == [orphan]
    assert evaluator.forward([0, 0.25, 0, 0])[0] == pytest.approx(0.25)


def test_forward_does_not_mutate_graph(io_graph):
    before = list(io_graph.edges())
    biases = {nid: n.bias for nid, n in io_graph.nodes.items()}
    Agent(io_graph).act([1.0, -1.0, 0.5, 2.0])
    assert list(io_graph.edges()) == before
    assert {nid: n.bias for nid, n in io_graph.nodes.items()} == biases


def test_agent_accumulates_fitness(io_graph):
    agent = Agent(io_graph)
    for score in (0.25, 0.5, 1.0):
        agent.add_fitness(score)
    assert agent.fitness == pytest.approx(1.75)

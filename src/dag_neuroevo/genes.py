from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

import numpy as np

from .activations import ACTIVATION_BY_KIND, apply_activation
from .config import InitConfig
from .errors import InvariantViolation

INPUT = "input"
HIDDEN = "hidden"
OUTPUT = "output"
NODE_KINDS = (INPUT, HIDDEN, OUTPUT)

HiddenNodeFactory = Callable[[int], "Node"]


@dataclass
class Node:
    node_id: int
    label: str
    kind: str
    bias: float = 0.0
    port: int | None = None

    def __post_init__(self) -> None:
        if self.kind not in NODE_KINDS:
            raise InvariantViolation(f"Unknown node kind: {self.kind!r}")
        if self.kind == HIDDEN and self.port is not None:
            raise InvariantViolation(f"Hidden node {self.node_id} cannot have a port.")
        if self.kind != HIDDEN and self.port is None:
            raise InvariantViolation(f"{self.kind.capitalize()} node {self.node_id} needs a port.")

    @property
    def activation(self) -> str:
        return ACTIVATION_BY_KIND[self.kind]

    def output(self, weighted_input: float) -> float:
        return float(apply_activation(self.activation, weighted_input + self.bias))

    def __repr__(self) -> str:
        port = "" if self.port is None else f", port={self.port}"
        return f"Node(id={self.node_id}, {self.kind}, bias={self.bias:.3f}{port})"


@dataclass(frozen=True)
class Edge:
    src: int
    dst: int
    weight: float


def random_bias(rng: np.random.Generator, init: InitConfig) -> float:
    return float(rng.normal(init.bias_mean, init.bias_std))


def random_weight(rng: np.random.Generator, init: InitConfig) -> float:
    return float(rng.normal(init.weight_mean, init.weight_std))


def hidden_node_factory(rng: np.random.Generator, init: InitConfig, label: str) -> HiddenNodeFactory:
    def make(node_id: int) -> Node:
        return Node(
            node_id=node_id,
            label=f"Hidden node: {label}",
            kind=HIDDEN,
            bias=random_bias(rng, init),
        )

    return make

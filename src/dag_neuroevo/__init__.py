"""Neuroevolution of weighted DAG controllers for the cart-pole task."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .config import EvolutionConfig
from .graph import Graph

if TYPE_CHECKING:
    from .evolution import GenerationalTrainer

__all__ = ["EvolutionConfig", "GenerationalTrainer", "Graph"]


def __getattr__(name: str):
    if name == "GenerationalTrainer":
        from .evolution import GenerationalTrainer as _GenerationalTrainer

        return _GenerationalTrainer
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

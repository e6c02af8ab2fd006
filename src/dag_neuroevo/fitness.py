from __future__ import annotations

import functools
import math
from typing import Callable

import numpy as np

from .config import EnvironmentConfig

FitnessFunction = Callable[[np.ndarray], float]


def pole_top_above_threshold(state, cfg: EnvironmentConfig) -> float:
    """Reward the height of the pole tip once it is above ``height_threshold`` of its length."""
    height_fraction = math.cos(float(state[2]))
    if height_fraction < cfg.height_threshold:
        return 0.0
    return (height_fraction - cfg.height_threshold) / (1.0 - cfg.height_threshold) * cfg.max_pole_height_reward


def angle_up_percentage(state, cfg: EnvironmentConfig | None = None) -> float:
    """1 when the pole points straight up, 0.5 when horizontal, 0 when hanging down."""
    degrees = abs(math.degrees(float(state[2]))) % 360.0
    if degrees >= 180.0:
        degrees = 360.0 - degrees
    return 1.0 - degrees / 180.0


def upright_centered(state, cfg: EnvironmentConfig) -> float:
    half_track = cfg.track_length / 2.0
    offset = abs(float(state[0]))
    if offset > half_track:
        return cfg.track_limit_punishment
    return angle_up_percentage(state) + cfg.center_reward * (1.0 - offset / half_track)


FITNESS_FUNCTIONS = {
    "pole_top": pole_top_above_threshold,
    "angle_up": angle_up_percentage,
    "upright_centered": upright_centered,
}


def resolve_fitness(name: str, cfg: EnvironmentConfig) -> FitnessFunction:
    if name not in FITNESS_FUNCTIONS:
        raise ValueError(f"Unsupported fitness function: {name}")
    return functools.partial(FITNESS_FUNCTIONS[name], cfg=cfg)

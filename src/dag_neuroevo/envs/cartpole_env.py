from __future__ import annotations

from typing import NamedTuple

import jax
import jax.numpy as jnp
import numpy as np

from ..config import EnvironmentConfig


class PoleParams(NamedTuple):
    gravity: float
    cart_mass: float
    pole_mass: float
    pole_half_length: float
    cart_friction: float
    pole_friction: float

    @classmethod
    def from_config(cls, cfg: EnvironmentConfig) -> "PoleParams":
        return cls(
            gravity=cfg.gravity,
            cart_mass=cfg.cart_mass,
            pole_mass=cfg.pole_mass,
            pole_half_length=cfg.pole_length / 2.0,
            cart_friction=cfg.cart_friction,
            pole_friction=cfg.pole_friction,
        )


def _derivatives(state: jnp.ndarray, force: jnp.ndarray, p: PoleParams) -> jnp.ndarray:
    # State: [cart position, cart velocity, pole angle from vertical, pole angular velocity].
    x_dot, theta, theta_dot = state[1], state[2], state[3]
    sin_t = jnp.sin(theta)
    cos_t = jnp.cos(theta)
    total_mass = p.cart_mass + p.pole_mass
    cart_drag = p.cart_friction * jnp.sign(x_dot)

    temp = (-force - p.pole_mass * p.pole_half_length * theta_dot**2 * sin_t + cart_drag) / total_mass
    theta_acc = (
        p.gravity * sin_t
        + cos_t * temp
        - p.pole_friction * theta_dot / (p.pole_mass * p.pole_half_length)
    ) / (p.pole_half_length * (4.0 / 3.0 - p.pole_mass * cos_t**2 / total_mass))
    x_acc = (
        force
        + p.pole_mass * p.pole_half_length * (theta_dot**2 * sin_t - theta_acc * cos_t)
        - cart_drag
    ) / total_mass
    return jnp.stack([x_dot, x_acc, theta_dot, theta_acc])


@jax.jit
def rk4_step(state: jnp.ndarray, force: jnp.ndarray, tau: jnp.ndarray, params: PoleParams) -> jnp.ndarray:
    k1 = _derivatives(state, force, params)
    k2 = _derivatives(state + 0.5 * tau * k1, force, params)
    k3 = _derivatives(state + 0.5 * tau * k2, force, params)
    k4 = _derivatives(state + tau * k3, force, params)
    return state + (tau / 6.0) * (k1 + 2.0 * k2 + 2.0 * k3 + k4)


class CartPoleEnvironment:
    """Single pole on a cart, advanced one fixed RK4 timestep per call."""

    def __init__(self, state, cfg: EnvironmentConfig):
        self.cfg = cfg
        self.params = PoleParams.from_config(cfg)
        self._tau = jnp.float32(cfg.tau)
        self.set_state(state)

    def get_state(self) -> np.ndarray:
        return np.asarray(self._state, dtype=np.float64)

    def set_state(self, state) -> None:
        state = np.asarray(state, dtype=np.float32).reshape(-1)
        if state.shape != (4,):
            raise ValueError(f"Cart-pole state must have 4 values, got {state.shape[0]}")
        self._state = jnp.asarray(state)

    def advance(self, force: float) -> None:
        force = float(np.clip(np.nan_to_num(force), -self.cfg.max_force, self.cfg.max_force))
        self._state = rk4_step(self._state, jnp.float32(force), self._tau, self.params)

    @property
    def cart_position(self) -> float:
        return float(self._state[0])

    @property
    def pole_angle(self) -> float:
        return float(self._state[2])


def create_environment(
    initial_position: float,
    initial_angle: float,
    cfg: EnvironmentConfig | None = None,
) -> CartPoleEnvironment:
    return CartPoleEnvironment(
        [initial_position, 0.0, initial_angle, 0.0],
        cfg if cfg is not None else EnvironmentConfig(),
    )

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class InitConfig:
    bias_mean: float = 0.0
    bias_std: float = 1.0
    weight_mean: float = 0.0
    weight_std: float = 1.0
    connect_inputs: bool = True


@dataclass
class MutationConfig:
    add_edge_prob: float = 0.02
    remove_edge_prob: float = 0.08
    split_edge_prob: float = 0.025
    add_node_prob: float = 0.025
    remove_node_prob: float = 0.05
    bias_prob: float = 0.50
    weight_prob: float = 0.30
    bias_mutate_power: float = 0.5
    weight_mutate_power: float = 0.5
    max_retries: int = 10

    def operator_table(self) -> dict[str, float]:
        return {
            "add_edge": self.add_edge_prob,
            "remove_edge": self.remove_edge_prob,
            "split_edge": self.split_edge_prob,
            "add_node": self.add_node_prob,
            "remove_node": self.remove_node_prob,
            "bias": self.bias_prob,
            "weight": self.weight_prob,
        }


@dataclass
class SelectionConfig:
    elite_fraction: float = 0.15
    # (mutation count, fraction of the non-elite slots) pairs; the rest get default_mutations.
    mutation_partition: tuple[tuple[int, float], ...] = ((2, 0.20), (4, 0.25))
    default_mutations: int = 3


@dataclass
class EnvironmentConfig:
    tau: float = 0.01
    gravity: float = 9.8
    cart_mass: float = 1.0
    pole_mass: float = 0.1
    pole_length: float = 2.0
    cart_friction: float = 0.001
    pole_friction: float = 0.001
    max_force: float = 10.0
    track_length: float = 14.0
    height_threshold: float = 0.8
    max_pole_height_reward: float = 1.0
    center_reward: float = 0.05
    track_limit_punishment: float = -1.0


@dataclass
class EvolutionConfig:
    pop_size: int = 100
    generations: int = 50
    timesteps_per_episode: int = 1000
    input_size: int = 4
    output_size: int = 1
    seed: int = 0
    num_workers: int = 4
    fitness: str = "pole_top"
    initial_position: float = 0.0
    # None draws a whole-degree angle in [0, 360) per generation.
    initial_angle_deg: float | None = None
    fail_fast: bool = True
    init: InitConfig = field(default_factory=InitConfig)
    mutation: MutationConfig = field(default_factory=MutationConfig)
    selection: SelectionConfig = field(default_factory=SelectionConfig)
    environment: EnvironmentConfig = field(default_factory=EnvironmentConfig)

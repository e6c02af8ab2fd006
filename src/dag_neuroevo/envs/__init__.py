from .cartpole_env import CartPoleEnvironment, PoleParams, create_environment

__all__ = ["CartPoleEnvironment", "PoleParams", "create_environment"]

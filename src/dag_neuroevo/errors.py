from __future__ import annotations


class InvariantViolation(ValueError):
    """Raised when an operation would break a structural rule of the graph."""


class SerializationError(RuntimeError):
    """Raised when a graph file cannot be written or read back."""

    def __init__(self, path, message: str):
        super().__init__(f"{path}: {message}")
        self.path = path


class EvaluationError(RuntimeError):
    """Raised when an episode worker fails and the run is configured to fail fast."""

    def __init__(self, index: int, generation: int):
        super().__init__(f"evaluation of individual {index} failed in generation {generation}")
        self.index = index
        self.generation = generation

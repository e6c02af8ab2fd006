from __future__ import annotations

import numpy as np

LEAKY_SLOPE = 0.1

# Activation is a function of the node kind only and is never persisted.
ACTIVATION_BY_KIND = {
    "input": "identity",
    "hidden": "leaky_relu",
    "output": "identity",
}


def apply_activation(name: str, x):
    if name == "leaky_relu":
        return np.maximum(LEAKY_SLOPE * x, x)
    return x

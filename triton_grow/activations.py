"""
activations.py
~~~~~~~~~~~~~~

Activation functions addressed by an enumerated tag.

Every derivative takes the ACTIVATED output y = f(z), not the weighted sum
z. The backward pass relies on this: it only ever has the cached output of
a layer to work with.
"""

from enum import Enum
from typing import Callable, NamedTuple

import numpy as np

ArrayFunction = Callable[[np.ndarray], np.ndarray]

LEAKY_SLOPE = 0.01


class ActivationFunction(NamedTuple):
    """A pure element-wise function paired with its derivative."""

    function: ArrayFunction
    derivative: ArrayFunction


def _sigmoid(z: np.ndarray) -> np.ndarray:
    return 1.0 / (1.0 + np.exp(-z))


def _sigmoid_prime(y: np.ndarray) -> np.ndarray:
    return y * (1.0 - y)


def _tanh_prime(y: np.ndarray) -> np.ndarray:
    return 1.0 - y ** 2


def _relu(z: np.ndarray) -> np.ndarray:
    return np.maximum(z, 0.0)


def _relu_prime(y: np.ndarray) -> np.ndarray:
    return np.where(y > 0.0, 1.0, 0.0)


def _leaky_relu(z: np.ndarray) -> np.ndarray:
    return np.where(z > 0.0, z, LEAKY_SLOPE * z)


def _leaky_relu_prime(y: np.ndarray) -> np.ndarray:
    return np.where(y > 0.0, 1.0, LEAKY_SLOPE)


def _identity(z: np.ndarray) -> np.ndarray:
    return z


def _identity_prime(y: np.ndarray) -> np.ndarray:
    return np.ones_like(y)


_FUNCTIONS = {
    'sigmoid': ActivationFunction(_sigmoid, _sigmoid_prime),
    'tanh': ActivationFunction(np.tanh, _tanh_prime),
    'relu': ActivationFunction(_relu, _relu_prime),
    'leaky_relu': ActivationFunction(_leaky_relu, _leaky_relu_prime),
    'linear': ActivationFunction(_identity, _identity_prime),
}


class Activations(Enum):
    """Available activation functions."""

    SIGMOID = 'sigmoid'
    TANH = 'tanh'
    RELU = 'relu'
    LEAKY_RELU = 'leaky_relu'
    LINEAR = 'linear'

    def get_function(self) -> ActivationFunction:
        """Resolve the tag to its (function, derivative) pair."""
        return _FUNCTIONS[self.value]

    @classmethod
    def from_name(cls, name: str) -> 'Activations':
        """
        Look up an activation by case-insensitive name.

        Raises:
            ValueError: If no activation has that name
        """
        try:
            return cls(name.strip().lower())
        except (ValueError, AttributeError):
            valid = ', '.join(member.value for member in cls)
            raise ValueError(
                f"Unknown activation '{name}', expected one of: {valid}"
            )


SIGMOID = Activations.SIGMOID
TANH = Activations.TANH
RELU = Activations.RELU
LEAKY_RELU = Activations.LEAKY_RELU
LINEAR = Activations.LINEAR

"""
input.py
~~~~~~~~

The Input capability: anything the network can consume as a sample.

The network and its layers only ever call ``to_param()`` and
``to_param_2d()``, so new input representations can be added here without
touching the core.
"""

from abc import ABC, abstractmethod
from typing import Any, List, Sequence

import numpy as np

from .errors import InvalidInput


class Input(ABC):
    """Converts a value into numeric parameters for the network."""

    @abstractmethod
    def to_param(self) -> List[float]:
        """Return the value as a flat list of floats."""

    @abstractmethod
    def to_param_2d(self) -> List[List[float]]:
        """Return the value as a row-major nested list of floats."""


class VectorInput(Input):
    """A plain feature vector, seen by the network as a single row."""

    def __init__(self, values: Sequence[float]):
        self.values = [float(value) for value in values]

    def to_param(self) -> List[float]:
        return list(self.values)

    def to_param_2d(self) -> List[List[float]]:
        return [list(self.values)]

    def __len__(self) -> int:
        return len(self.values)

    def __repr__(self) -> str:
        return f"VectorInput({self.values})"


class OneHotInput(Input):
    """
    A one-hot row: ``size`` zeros with a single 1.0 at ``index``.

    Raises:
        InvalidInput: If index is outside [0, size)
    """

    def __init__(self, index: int, size: int):
        if not 0 <= index < size:
            raise InvalidInput(
                f"One-hot index {index} out of range for size {size}"
            )
        self.index = index
        self.size = size

    def to_param(self) -> List[float]:
        values = [0.0] * self.size
        values[self.index] = 1.0
        return values

    def to_param_2d(self) -> List[List[float]]:
        return [self.to_param()]

    def __repr__(self) -> str:
        return f"OneHotInput(index={self.index}, size={self.size})"


def to_input(value: Any) -> Input:
    """
    Adapt a raw value to the Input capability.

    Input objects (Matrix included) pass through unchanged. Lists, tuples
    and 1-D numpy arrays become a VectorInput; 2-D numpy arrays become a
    Matrix.

    Args:
        value: The value to adapt

    Returns:
        Input: An object exposing to_param() and to_param_2d()

    Raises:
        InvalidInput: If the value cannot be interpreted as numeric input
    """
    if isinstance(value, Input):
        return value

    if isinstance(value, np.ndarray):
        if value.ndim == 1:
            return VectorInput(value.tolist())
        if value.ndim == 2:
            from .matrix import Matrix
            return Matrix(value)
        raise InvalidInput(f"Cannot use a {value.ndim}-D array as input")

    if isinstance(value, (list, tuple)):
        try:
            return VectorInput(value)
        except (TypeError, ValueError) as e:
            raise InvalidInput(f"Input values must be numbers: {e}")

    raise InvalidInput(f"Unsupported input type: {type(value).__name__}")

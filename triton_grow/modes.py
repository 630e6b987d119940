"""
modes.py
~~~~~~~~

Enumerations that select training behaviour.
"""

from enum import Enum
from typing import Sequence


class Mode(Enum):
    """How per-sample losses are combined into one dataset loss."""

    AVG = 'avg'
    MAX = 'max'
    MIN = 'min'

    def aggregate(self, losses: Sequence[float]) -> float:
        """
        Combine per-sample losses.

        Raises:
            ValueError: If losses is empty
        """
        if not losses:
            raise ValueError("Cannot aggregate an empty list of losses")
        if self is Mode.MAX:
            return max(losses)
        if self is Mode.MIN:
            return min(losses)
        return sum(losses) / len(losses)


class Optimizer(Enum):
    """
    Parameter update rule used by a layer's backward pass.

    SGD is the plain learning-rate-scaled step. ADAM keeps first and second
    moment estimates and consumes the layer's beta1, beta2, epsilon and time.
    """

    SGD = 'sgd'
    ADAM = 'adam'

"""
layers.py
~~~~~~~~~

Layer capability and the Dense layer.

The network is polymorphic over ``Layer``: it never looks at the concrete
kind, only at the operations below. A layer is built at compile time from
a ``LayerSpec``; the spec's width is the layer's input width and the next
spec's width is its output width.

Backward pass convention: a layer computes the parameter update for the
layer one step AHEAD of it (towards the output), using its own cached
forward output as that layer's input activation. The network writes the
returned weights and biases onto the adjacent layer.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import numpy as np

from .activations import Activations
from .errors import DimensionMismatch, InvalidInput, InvalidState
from .input import Input
from .matrix import Matrix
from .modes import Optimizer

logger = logging.getLogger(__name__)

BackwardResult = Tuple[Matrix, Matrix, Matrix, Matrix]


class Layer(ABC):
    """Operations the network needs from every layer kind."""

    @abstractmethod
    def forward(self, inputs: Input) -> Input:
        """Propagate a row vector through the layer."""

    @abstractmethod
    def backward(
        self,
        targets: Matrix,
        gradients: Matrix,
        errors: Matrix,
        adjacent_weights: Matrix,
        adjacent_biases: Matrix
    ) -> BackwardResult:
        """Return (new_biases, new_weights, gradients, errors) for the adjacent layer."""

    @abstractmethod
    def get_weights(self) -> Matrix: ...

    @abstractmethod
    def set_weights(self, weights: Matrix) -> None: ...

    @abstractmethod
    def get_bias(self) -> Matrix: ...

    @abstractmethod
    def set_bias(self, biases: Matrix) -> None: ...

    @abstractmethod
    def get_activation(self) -> Optional[Activations]:
        """The activation tag, or None for layer kinds without one."""

    @abstractmethod
    def get_loss(self) -> float: ...

    @abstractmethod
    def get_rows(self) -> int: ...

    @abstractmethod
    def get_cols(self) -> int: ...

    @abstractmethod
    def shape(self) -> Tuple[int, int, int]: ...


class Dense(Layer):
    """
    Fully connected layer: ``activation(weights · x + biases)``.

    Attributes:
        weights: Matrix of shape (layer_cols_before, size)
        biases: Matrix of shape (layer_cols_before, 1)
        data: Activated output of the last forward pass (column vector)
        activation_fn: Activation tag applied after the affine map
        learning_rate: Step size of the updates this layer computes
        optimizer: Update rule (plain scaled step or Adam)
        beta1, beta2, epsilon, time: Adam hyperparameters and step counter
    """

    def __init__(
        self,
        size: int,
        layer_cols_before: int,
        activation: Activations,
        learning_rate: float,
        optimizer: Optimizer = Optimizer.SGD,
        rng: Optional[np.random.Generator] = None
    ):
        """
        Args:
            size: Width of the data flowing into this layer
            layer_cols_before: Width of the data this layer produces
            activation: Activation tag
            learning_rate: Step size for the updates this layer computes
            optimizer: Update rule
            rng: Random generator for the initial weights and biases
        """
        self.weights = Matrix.new_random(layer_cols_before, size, rng)
        self.biases = Matrix.new_random(layer_cols_before, 1, rng)
        self.data = Matrix.zeros(0, 0)
        self.loss = 1.0

        self.activation_fn = activation
        self.learning_rate = learning_rate
        self.optimizer = optimizer

        self.beta1, self.beta2 = self._get_betas()
        self.epsilon = self._get_epsilon()
        self.time = 0

        # Adam moment estimates, keyed by which parameters they describe
        self._moments: Dict[str, Dict[str, Any]] = {}

    @staticmethod
    def _get_betas() -> Tuple[float, float]:
        return 0.9, 0.999

    @staticmethod
    def _get_epsilon() -> float:
        return 1e-10

    # ------------------------------------------------------------------
    # Forward / backward
    # ------------------------------------------------------------------

    def forward(self, inputs: Input) -> Matrix:
        """
        Move a row vector forward through this layer's weights and biases.

        The activated output is cached as a column vector in ``data`` for
        the backward pass.

        Args:
            inputs: Output of the previous layer, as a row vector

        Returns:
            Matrix: The activated output as a row vector

        Raises:
            DimensionMismatch: If the input width does not match the weights
        """
        column = Matrix.from_nested(inputs.to_param_2d()).transpose()
        weighted = self.weights * column + self.biases
        self.data = weighted.map(self.activation_fn.get_function().function)
        return self.data.transpose()

    def backward(
        self,
        targets: Matrix,
        gradients: Matrix,
        errors: Matrix,
        adjacent_weights: Matrix,
        adjacent_biases: Matrix
    ) -> BackwardResult:
        """
        Compute the update for the adjacent layer and move one step back.

        ``targets`` is part of the layer capability but the dense rule does
        not read it. The layer's own ``loss`` becomes the mean squared value
        of the propagated errors.

        Args:
            targets: Expected network output, as a row vector
            gradients: Activation derivative of the adjacent layer's output
            errors: Error at the adjacent layer's output
            adjacent_weights: Current weights of the adjacent layer
            adjacent_biases: Current biases of the adjacent layer

        Returns:
            tuple: (new_biases, new_weights, next_gradients, propagated_errors)

        Raises:
            InvalidState: If no forward pass has been made
            DimensionMismatch: If the matrices do not chain
        """
        if self.data.rows == 0:
            raise InvalidState("backward called before forward")

        weight_step, bias_step = self._step(
            'adjacent', self.data, gradients, errors
        )
        self.time = self._moments.get('adjacent', {}).get('time', self.time)

        new_weights = adjacent_weights + weight_step
        new_biases = adjacent_biases + bias_step

        propagated_errors = adjacent_weights.transpose() * errors

        squared = np.square(propagated_errors.data)
        self.loss = float(squared.mean()) if squared.size else 0.0

        next_gradients = self.data.map(self.activation_fn.get_function().derivative)
        return new_biases, new_weights, next_gradients, propagated_errors

    def update_from_input(
        self,
        inputs: Matrix,
        gradients: Matrix,
        errors: Matrix
    ) -> None:
        """
        Update this layer's own parameters from the network input.

        The backward chain never reaches the first layer, because no layer
        sits before it. This applies the same rule with the network input
        standing in for a previous layer's cached output.

        Args:
            inputs: The network input as a column vector
            gradients: Activation derivative of this layer's output
            errors: Error at this layer's output
        """
        weight_step, bias_step = self._step('own', inputs, gradients, errors)
        self.set_weights(self.weights + weight_step)
        self.set_bias(self.biases + bias_step)

    def _step(
        self,
        slot: str,
        source: Matrix,
        gradients: Matrix,
        errors: Matrix
    ) -> Tuple[Matrix, Matrix]:
        delta = gradients.dot_multiply(errors)

        if self.optimizer is Optimizer.ADAM:
            return self._adam_step(slot, delta * source.transpose(), delta)

        update = delta * self.learning_rate
        return update * source.transpose(), update

    def _adam_step(
        self,
        slot: str,
        weight_gradient: Matrix,
        bias_gradient: Matrix
    ) -> Tuple[Matrix, Matrix]:
        state = self._moments.get(slot)
        if state is None or state['m_w'].shape != weight_gradient.shape:
            state = {
                'm_w': np.zeros(weight_gradient.shape),
                'v_w': np.zeros(weight_gradient.shape),
                'm_b': np.zeros(bias_gradient.shape),
                'v_b': np.zeros(bias_gradient.shape),
                'time': 0,
            }
            self._moments[slot] = state

        state['time'] += 1
        t = state['time']

        steps = []
        for key, gradient in (('w', weight_gradient.data), ('b', bias_gradient.data)):
            m = self.beta1 * state[f'm_{key}'] + (1.0 - self.beta1) * gradient
            v = self.beta2 * state[f'v_{key}'] + (1.0 - self.beta2) * gradient ** 2
            state[f'm_{key}'], state[f'v_{key}'] = m, v

            m_hat = m / (1.0 - self.beta1 ** t)
            v_hat = v / (1.0 - self.beta2 ** t)
            steps.append(
                Matrix(self.learning_rate * m_hat / (np.sqrt(v_hat) + self.epsilon))
            )

        return steps[0], steps[1]

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def get_cols(self) -> int:
        return self.weights.columns

    def get_rows(self) -> int:
        return self.weights.rows

    def get_weights(self) -> Matrix:
        return Matrix(self.weights.data)

    def set_weights(self, weights: Matrix) -> None:
        if weights.shape != self.weights.shape:
            raise DimensionMismatch(
                f"New weights {weights.shape} do not match {self.weights.shape}"
            )
        self.weights = Matrix(weights.data)

    def get_bias(self) -> Matrix:
        return Matrix(self.biases.data)

    def set_bias(self, biases: Matrix) -> None:
        if biases.shape != self.biases.shape:
            raise DimensionMismatch(
                f"New biases {biases.shape} do not match {self.biases.shape}"
            )
        self.biases = Matrix(biases.data)

    def get_activation(self) -> Optional[Activations]:
        return self.activation_fn

    def shape(self) -> Tuple[int, int, int]:
        return self.get_rows(), self.get_cols(), 0

    def get_loss(self) -> float:
        return self.loss

    def __repr__(self) -> str:
        return (
            f"Dense(rows={self.get_rows()}, cols={self.get_cols()}, "
            f"activation={self.activation_fn.name}, "
            f"learning_rate={self.learning_rate}, optimizer={self.optimizer.name})"
        )


class LayerSpec(ABC):
    """An uncompiled layer: its declared width and how to build it."""

    @abstractmethod
    def get_size(self) -> int:
        """Declared width of the layer."""

    @abstractmethod
    def to_layer(
        self,
        layer_cols_before: int,
        rng: Optional[np.random.Generator] = None
    ) -> Layer:
        """Instantiate the layer, given the width of the next layer."""


@dataclass(frozen=True)
class DenseSpec(LayerSpec):
    """Specification of a Dense layer."""

    size: int
    activation: Activations = Activations.SIGMOID
    learning_rate: float = 0.1
    optimizer: Optimizer = Optimizer.SGD

    def __post_init__(self) -> None:
        if not isinstance(self.size, int) or isinstance(self.size, bool) or self.size < 1:
            raise InvalidInput(f"Layer size must be a positive integer, got {self.size!r}")
        if not isinstance(self.activation, Activations):
            raise InvalidInput(f"Unknown activation: {self.activation!r}")
        if self.learning_rate <= 0:
            raise InvalidInput(
                f"Learning rate must be positive, got {self.learning_rate}"
            )

    def get_size(self) -> int:
        return self.size

    def to_layer(
        self,
        layer_cols_before: int,
        rng: Optional[np.random.Generator] = None
    ) -> Dense:
        logger.debug(
            f"Building Dense layer {layer_cols_before}x{self.size} "
            f"({self.activation.name}, lr={self.learning_rate})"
        )
        return Dense(
            self.size,
            layer_cols_before,
            self.activation,
            self.learning_rate,
            optimizer=self.optimizer,
            rng=rng
        )

"""
network.py
~~~~~~~~~~

A feedforward neural network made of an ordered sequence of layers.

A Network starts out uncompiled and accepts layer specifications through
``add_layer``. ``compile`` turns every specification except the last into a
concrete layer (the last one only declares the output width). After that
the network can be fed forward and trained; adding layers is rejected.

Training schedule: every epoch runs ``iterations_per_epoch`` (10,000 by
default) passes over the dataset, and every pass does one feed forward and
one back propagation per sample in dataset order. A call to ``fit`` with
``epochs=e`` on ``n`` samples therefore makes ``e * 10000 * n`` updates.

Back propagation writes each update one layer ahead: layer ``i`` computes
the new parameters of layer ``i + 1``. The loop stops at layer 0, so the
first layer keeps its initial parameters unless the network is built with
``train_all_layers=True``, which also updates layer 0 from the network
input.
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np

from .activations import Activations
from .errors import InvalidInput, InvalidState
from .input import Input, to_input
from .layers import DenseSpec, Layer, LayerSpec
from .matrix import Matrix
from .modes import Mode, Optimizer

logger = logging.getLogger(__name__)

ITERATIONS_PER_EPOCH = 10000


class Network:
    """
    Feedforward neural network.

    Attributes:
        layer_sizes: Declared width of every layer, input included
        layers: Compiled layers (one fewer than the declared sizes)
        loss: Mean squared output error of the last back-propagated sample
        iterations_per_epoch: Dataset passes per epoch in ``fit``
        train_all_layers: Also update the first layer during back propagation
    """

    def __init__(
        self,
        iterations_per_epoch: int = ITERATIONS_PER_EPOCH,
        train_all_layers: bool = False,
        seed: Optional[int] = None
    ):
        """
        Create an empty, uncompiled network.

        Args:
            iterations_per_epoch: Dataset passes per training epoch
            train_all_layers: Update the first layer as well when back
                propagating
            seed: Seed for weight initialization and batch sampling
        """
        if iterations_per_epoch < 1:
            raise InvalidInput(
                f"iterations_per_epoch must be positive, got {iterations_per_epoch}"
            )

        self.layer_sizes: List[int] = []
        self.loss = 1.0
        self.layers: List[Layer] = []
        self._uncompiled_layers: List[LayerSpec] = []

        self.iterations_per_epoch = iterations_per_epoch
        self.train_all_layers = train_all_layers
        self.seed = seed
        self._rng = np.random.default_rng(seed)
        self._compiled = False
        self._last_input: Optional[Matrix] = None

    @classmethod
    def from_topology(
        cls,
        layer_sizes: Sequence[int],
        activation: Activations = Activations.SIGMOID,
        learning_rate: float = 0.1,
        optimizer: Optimizer = Optimizer.SGD,
        **kwargs: Any
    ) -> 'Network':
        """
        Build and compile a network with one Dense layer per width.

        Example:
            >>> net = Network.from_topology([2, 3, 1], Activations.SIGMOID, 0.1)
            >>> len(net.feed_forward([1.0, 0.0]))
            1
        """
        network = cls(**kwargs)
        for size in layer_sizes:
            network.add_layer(DenseSpec(size, activation, learning_rate, optimizer))
        network.compile()
        return network

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @property
    def sizes(self) -> List[int]:
        return list(self.layer_sizes)

    @property
    def uncompiled_layers(self) -> List[LayerSpec]:
        return list(self._uncompiled_layers)

    @property
    def is_compiled(self) -> bool:
        return self._compiled

    def add_layer(self, layer: LayerSpec) -> None:
        """
        Queue a layer specification.

        Args:
            layer: Specification of the layer, e.g. DenseSpec(4, SIGMOID, 0.01)

        Raises:
            InvalidState: If the network has already been compiled
        """
        if self._compiled:
            raise InvalidState("Cannot add a layer to a compiled network")
        if not isinstance(layer, LayerSpec):
            raise InvalidInput(f"Expected a LayerSpec, got {type(layer).__name__}")

        self.layer_sizes.append(layer.get_size())
        self._uncompiled_layers.append(layer)

    def compile(self) -> None:
        """
        Construct the concrete layers.

        Layer ``i`` is built from specification ``i`` with the width of
        specification ``i + 1`` as its output width, so this has to run
        after every layer has been added.

        Raises:
            InvalidState: If already compiled or fewer than two layers exist
        """
        if self._compiled:
            raise InvalidState("Network is already compiled")
        if len(self._uncompiled_layers) < 2:
            raise InvalidState(
                "A network needs at least an input and an output layer"
            )

        for i in range(len(self._uncompiled_layers) - 1):
            layer = self._uncompiled_layers[i].to_layer(
                self.layer_sizes[i + 1], rng=self._rng
            )
            self.layers.append(layer)

        self._compiled = True
        logger.info(
            f"Compiled network {self.layer_sizes} into {len(self.layers)} layer(s)"
        )

    def _require_compiled(self, operation: str) -> None:
        if not self._compiled:
            raise InvalidState(f"Network must be compiled before {operation}")

    # ------------------------------------------------------------------
    # Forward / backward
    # ------------------------------------------------------------------

    def feed_forward(self, input_obj: Any) -> List[float]:
        """
        Pass an input through every layer and return the final vector.

        Args:
            input_obj: Any Input, or a plain sequence of numbers

        Returns:
            list: The network output, one float per output unit

        Raises:
            InvalidState: If the network is not compiled
            InvalidInput: If the input length differs from the first layer size
        """
        self._require_compiled('feed_forward')
        inputs = to_input(input_obj).to_param()
        if len(inputs) != self.layer_sizes[0]:
            raise InvalidInput(
                f"Invalid number of inputs: got {len(inputs)}, "
                f"expected {self.layer_sizes[0]}"
            )

        data_at: Input = Matrix.from_nested([inputs])
        self._last_input = data_at.transpose()
        for layer in self.layers:
            data_at = layer.forward(data_at)

        return data_at.to_param()

    def predict(self, input_obj: Any) -> List[float]:
        """Alias of feed_forward."""
        return self.feed_forward(input_obj)

    def back_propagate(self, outputs: Sequence[float], target_obj: Any) -> None:
        """
        Walk backwards through the layers and update weights and biases.

        ``outputs`` must come from the most recent ``feed_forward`` call,
        since every layer uses its cached forward output.

        Args:
            outputs: Result of the last feed_forward
            target_obj: Expected output, as an Input or a plain sequence

        Raises:
            InvalidState: If not compiled, or the output layer has no activation
            InvalidInput: If outputs or targets do not match the output size
        """
        self._require_compiled('back_propagate')
        targets = to_input(target_obj).to_param()
        output_size = self.layer_sizes[-1]
        if len(targets) != output_size:
            raise InvalidInput(
                f"Output size does not match network output size: got "
                f"{len(targets)}, expected {output_size}"
            )
        if len(outputs) != output_size:
            raise InvalidInput(
                f"Expected {output_size} outputs, got {len(outputs)}"
            )

        activation = self.layers[-1].get_activation()
        if activation is None:
            raise InvalidState("Output layer is not a dense layer")

        parsed = Matrix.from_nested([list(outputs)]).transpose()
        target_matrix = Matrix.from_nested([targets])

        errors = target_matrix.transpose() - parsed
        self.loss = float(np.square(errors.data).mean())
        gradients = parsed.map(activation.get_function().derivative)

        for i in reversed(range(len(self.layers) - 1)):
            ahead = self.layers[i + 1]
            new_bias, new_weights, gradients, errors = self.layers[i].backward(
                target_matrix, gradients, errors,
                ahead.get_weights(), ahead.get_bias()
            )
            ahead.set_weights(new_weights)
            ahead.set_bias(new_bias)

        if self.train_all_layers:
            self._update_first_layer(gradients, errors)

    def _update_first_layer(self, gradients: Matrix, errors: Matrix) -> None:
        first = self.layers[0]
        update = getattr(first, 'update_from_input', None)
        if update is None:
            raise InvalidState(
                f"{type(first).__name__} cannot be updated from the network input"
            )
        if self._last_input is None:
            raise InvalidState("back_propagate called before feed_forward")
        update(self._last_input, gradients, errors)

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------

    def _prepare_dataset(
        self,
        train_in: Sequence[Any],
        train_out: Sequence[Any]
    ) -> List[tuple]:
        if len(train_in) != len(train_out):
            raise InvalidInput(
                f"Got {len(train_in)} inputs but {len(train_out)} targets"
            )
        return [(to_input(x), to_input(y)) for x, y in zip(train_in, train_out)]

    def _train_step(self, sample: Input, target: Input) -> None:
        outputs = self.feed_forward(sample)
        self.back_propagate(outputs, target)

    def fit(
        self,
        train_in: Sequence[Any],
        train_out: Sequence[Any],
        epochs: int,
        callback: Optional[Callable[[Dict[str, Any]], None]] = None,
        yield_func: Optional[Callable[[], None]] = None
    ) -> List[float]:
        """
        Train by repeatedly feeding forward and back propagating every sample.

        Args:
            train_in: Training inputs
            train_out: Expected outputs, same order as train_in
            epochs: Number of epochs
            callback: Called after every epoch with a dict holding
                'epoch', 'total_epochs', 'loss' and 'elapsed_time'
            yield_func: Called after every pass over the dataset, to let
                other tasks run

        Returns:
            list: Dataset loss (average per-sample MSE) after every epoch

        Raises:
            InvalidInput: On mismatched dataset lengths or sample shapes
            InvalidState: If the network is not compiled
        """
        self._require_compiled('fit')
        if epochs < 0:
            raise InvalidInput(f"epochs must be non-negative, got {epochs}")
        dataset = self._prepare_dataset(train_in, train_out)
        if not dataset:
            raise InvalidInput("Cannot train on an empty dataset")

        logger.info(
            f"Training {self.layer_sizes} for {epochs} epoch(s) x "
            f"{self.iterations_per_epoch} iteration(s) on {len(dataset)} sample(s)"
        )
        start_time = time.time()
        history = []

        for epoch in range(epochs):
            for _ in range(self.iterations_per_epoch):
                for sample, target in dataset:
                    self._train_step(sample, target)
                if yield_func is not None:
                    yield_func()

            epoch_loss = self._dataset_loss(dataset, Mode.AVG)
            history.append(epoch_loss)
            elapsed = time.time() - start_time
            logger.info(
                f"Epoch {epoch + 1}/{epochs}: loss={epoch_loss:.6f} "
                f"({elapsed:.2f}s)"
            )

            if callback is not None:
                callback({
                    'epoch': epoch + 1,
                    'total_epochs': epochs,
                    'loss': epoch_loss,
                    'elapsed_time': elapsed
                })

        logger.info("Trained")
        return history

    def _dataset_loss(self, dataset: List[tuple], mode: Mode) -> float:
        losses = []
        for sample, target in dataset:
            outputs = np.array(self.feed_forward(sample))
            expected = np.array(target.to_param())
            if expected.shape != outputs.shape:
                raise InvalidInput(
                    f"Target has {expected.size} values, network outputs {outputs.size}"
                )
            losses.append(float(np.square(expected - outputs).mean()))
        return mode.aggregate(losses)

    def evaluate_loss(
        self,
        train_in: Sequence[Any],
        train_out: Sequence[Any],
        mode: Mode = Mode.AVG
    ) -> float:
        """
        Mean squared output error per sample, combined according to mode.

        Raises:
            InvalidInput: On mismatched or empty datasets
        """
        self._require_compiled('evaluate_loss')
        dataset = self._prepare_dataset(train_in, train_out)
        if not dataset:
            raise InvalidInput("Cannot evaluate loss on an empty dataset")
        return self._dataset_loss(dataset, mode)

    def train_to_loss(
        self,
        train_in: Sequence[Any],
        train_out: Sequence[Any],
        desired_loss: float,
        steps: int,
        mode: Mode = Mode.AVG,
        max_rounds: Optional[int] = None,
        batch_size: Optional[int] = None,
        callback: Optional[Callable[[Dict[str, Any]], None]] = None
    ) -> 'Network':
        """
        Train in rounds until the dataset loss drops to desired_loss.

        Each round makes ``steps`` passes. A pass covers the whole dataset
        in order, or a random batch of ``batch_size`` samples when given.
        The loss is checked after every round.

        Args:
            train_in: Training inputs
            train_out: Expected outputs
            desired_loss: Stop once the aggregated loss is at or below this
            steps: Passes per round
            mode: How per-sample losses are combined
            max_rounds: Give up after this many rounds (None for no limit)
            batch_size: Samples per pass (None for the full dataset)
            callback: Called after every round with 'round', 'loss' and
                'elapsed_time'

        Returns:
            Network: self, so calls can be chained
        """
        self._require_compiled('train_to_loss')
        if steps < 1:
            raise InvalidInput(f"steps must be positive, got {steps}")
        if batch_size is not None and batch_size < 1:
            raise InvalidInput(f"batch_size must be positive, got {batch_size}")

        dataset = self._prepare_dataset(train_in, train_out)
        if not dataset:
            raise InvalidInput("Cannot train on an empty dataset")

        start_time = time.time()
        loss = self._dataset_loss(dataset, mode)
        rounds = 0
        logger.info(
            f"Training {self.layer_sizes} until {mode.value} loss <= {desired_loss} "
            f"(starting at {loss:.6f})"
        )

        while loss > desired_loss:
            if max_rounds is not None and rounds >= max_rounds:
                logger.warning(
                    f"Stopped after {rounds} round(s) with loss {loss:.6f} "
                    f"above {desired_loss}"
                )
                break

            for _ in range(steps):
                if batch_size is None:
                    batch = dataset
                else:
                    picks = self._rng.choice(
                        len(dataset), size=min(batch_size, len(dataset)), replace=False
                    )
                    batch = [dataset[i] for i in picks]
                for sample, target in batch:
                    self._train_step(sample, target)

            rounds += 1
            loss = self._dataset_loss(dataset, mode)
            elapsed = time.time() - start_time
            logger.debug(f"Round {rounds}: loss={loss:.6f}")

            if callback is not None:
                callback({'round': rounds, 'loss': loss, 'elapsed_time': elapsed})

        logger.info(f"Finished after {rounds} round(s), loss={loss:.6f}")
        return self

    def get_losses(self) -> List[float]:
        """Loss recorded by every layer during its last backward pass."""
        return [layer.get_loss() for layer in self.layers]

    def __repr__(self) -> str:
        state = 'compiled' if self._compiled else 'uncompiled'
        return f"Network(layer_sizes={self.layer_sizes}, {state})"

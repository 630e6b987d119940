"""
test_layers.py
~~~~~~~~~~~~~~

Unit tests for the Dense layer and layer specifications.
"""

import numpy as np
import pytest

from triton_grow.activations import Activations
from triton_grow.errors import DimensionMismatch, InvalidInput, InvalidState
from triton_grow.input import VectorInput
from triton_grow.layers import Dense, DenseSpec, Layer, LayerSpec
from triton_grow.matrix import Matrix
from triton_grow.modes import Optimizer


def sigmoid(z):
    return 1.0 / (1.0 + np.exp(-z))


@pytest.fixture
def dense():
    """A 2 -> 3 sigmoid layer with known parameters."""
    layer = Dense(2, 3, Activations.SIGMOID, 0.5, rng=np.random.default_rng(0))
    layer.set_weights(Matrix.from_nested([[0.1, 0.2], [-0.3, 0.4], [0.5, -0.6]]))
    layer.set_bias(Matrix.from_nested([[0.0], [0.1], [-0.1]]))
    return layer


@pytest.fixture
def adjacent():
    """Weights and biases of a 3 -> 1 layer ahead of the dense fixture."""
    return (
        Matrix.from_nested([[0.7, -0.2, 0.3]]),
        Matrix.from_nested([[0.05]])
    )


@pytest.mark.unit
class TestDenseConstruction:
    """Shapes and initial state."""

    def test_is_layer(self, dense):
        """Dense implements the Layer capability."""
        assert isinstance(dense, Layer)

    def test_parameter_shapes(self):
        """Weights and biases take their shapes from the layer widths."""
        layer = Dense(4, 6, Activations.TANH, 0.1)
        assert layer.get_weights().shape == (6, 4)
        assert layer.get_bias().shape == (6, 1)
        assert layer.get_rows() == 6
        assert layer.get_cols() == 4
        assert layer.shape() == (6, 4, 0)

    def test_initial_state(self):
        """A new layer starts with the default loss and Adam settings."""
        layer = Dense(2, 2, Activations.RELU, 0.1)
        assert layer.get_loss() == 1.0
        assert layer.get_activation() is Activations.RELU
        assert (layer.beta1, layer.beta2) == (0.9, 0.999)
        assert layer.epsilon == 1e-10
        assert layer.time == 0

    def test_seeded_initialization(self):
        """Equal seeds give equal parameters."""
        a = Dense(3, 2, Activations.SIGMOID, 0.1, rng=np.random.default_rng(5))
        b = Dense(3, 2, Activations.SIGMOID, 0.1, rng=np.random.default_rng(5))
        assert a.get_weights() == b.get_weights()
        assert a.get_bias() == b.get_bias()

    def test_set_weights_rejects_new_shape(self, dense):
        """Weights of a different shape raise DimensionMismatch."""
        with pytest.raises(DimensionMismatch):
            dense.set_weights(Matrix.zeros(2, 3))

    def test_set_bias_rejects_new_shape(self, dense):
        """Biases of a different shape raise DimensionMismatch."""
        with pytest.raises(DimensionMismatch):
            dense.set_bias(Matrix.zeros(2, 1))

    def test_get_weights_returns_copy(self, dense):
        """Mutating returned weights does not touch the layer."""
        weights = dense.get_weights()
        weights.data[0, 0] = 42.0
        assert dense.get_weights().data[0, 0] == 0.1


@pytest.mark.unit
class TestDenseForward:
    """activation(weights . input^T + biases)."""

    def test_forward_values(self, dense):
        """Forward computes activation(weights . input + biases)."""
        output = dense.forward(VectorInput([1.0, 2.0]))

        weights = np.array([[0.1, 0.2], [-0.3, 0.4], [0.5, -0.6]])
        biases = np.array([[0.0], [0.1], [-0.1]])
        expected = sigmoid(weights @ np.array([[1.0], [2.0]]) + biases)

        assert output.shape == (1, 3)
        assert np.allclose(output.data, expected.T)

    def test_forward_caches_column_output(self, dense):
        """The activated output is cached as a column."""
        output = dense.forward(VectorInput([1.0, 2.0]))
        assert dense.data.shape == (3, 1)
        assert dense.data.transpose() == output

    def test_forward_overwrites_cache(self, dense):
        """Each forward pass replaces the cached output."""
        dense.forward(VectorInput([1.0, 2.0]))
        first = dense.data
        dense.forward(VectorInput([-1.0, 0.0]))
        assert dense.data != first

    def test_forward_wrong_width(self, dense):
        """Input of the wrong width raises DimensionMismatch."""
        with pytest.raises(DimensionMismatch):
            dense.forward(VectorInput([1.0, 2.0, 3.0]))


@pytest.mark.unit
class TestDenseBackward:
    """Update of the adjacent layer and one step back along the chain."""

    def test_backward_before_forward(self, dense, adjacent):
        """Backward without a cached output raises InvalidState."""
        weights, biases = adjacent
        with pytest.raises(InvalidState):
            dense.backward(
                Matrix.zeros(1, 1), Matrix.zeros(1, 1), Matrix.zeros(1, 1),
                weights, biases
            )

    def test_backward_arithmetic(self, dense, adjacent):
        """Backward applies the scaled gradient step to the adjacent layer."""
        weights, biases = adjacent
        dense.forward(VectorInput([1.0, 2.0]))
        data = dense.data.data.copy()

        gradients = Matrix.from_nested([[0.2]])
        errors = Matrix.from_nested([[0.5]])
        new_biases, new_weights, next_gradients, propagated = dense.backward(
            Matrix.from_nested([[1.0]]), gradients, errors, weights, biases
        )

        update = 0.2 * 0.5 * 0.5
        assert np.allclose(new_weights.data, weights.data + update * data.T)
        assert np.allclose(new_biases.data, biases.data + update)
        assert np.allclose(propagated.data, weights.data.T * 0.5)
        assert np.allclose(next_gradients.data, data * (1.0 - data))
        assert dense.get_loss() == pytest.approx(
            float(np.mean((weights.data.T * 0.5) ** 2))
        )

    def test_backward_shapes_match_adjacent_layer(self, dense, adjacent):
        """Backward results keep the adjacent layer's shapes."""
        weights, biases = adjacent
        rng = np.random.default_rng(1)
        for _ in range(5):
            dense.forward(VectorInput(rng.uniform(-1, 1, 2).tolist()))
            new_biases, new_weights, next_gradients, propagated = dense.backward(
                Matrix.zeros(1, 1),
                Matrix.new_random(1, 1, rng),
                Matrix.new_random(1, 1, rng),
                weights,
                biases
            )
            assert new_weights.shape == weights.shape
            assert new_biases.shape == biases.shape
            assert next_gradients.shape == (3, 1)
            assert propagated.shape == (3, 1)

    def test_backward_does_not_touch_own_parameters(self, dense, adjacent):
        """Backward leaves the layer's own parameters alone."""
        weights, biases = adjacent
        own_weights = dense.get_weights()
        own_biases = dense.get_bias()
        dense.forward(VectorInput([1.0, 2.0]))
        dense.backward(
            Matrix.zeros(1, 1), Matrix.from_nested([[0.3]]),
            Matrix.from_nested([[0.4]]), weights, biases
        )
        assert dense.get_weights() == own_weights
        assert dense.get_bias() == own_biases

    def test_backward_does_not_mutate_arguments(self, dense, adjacent):
        """Backward does not modify the matrices it is given."""
        weights, biases = adjacent
        before = (weights.to_param(), biases.to_param())
        dense.forward(VectorInput([1.0, 2.0]))
        dense.backward(
            Matrix.zeros(1, 1), Matrix.from_nested([[0.3]]),
            Matrix.from_nested([[0.4]]), weights, biases
        )
        assert (weights.to_param(), biases.to_param()) == before

    def test_sgd_leaves_adam_state_unused(self, dense, adjacent):
        """The plain step does not advance the Adam counter."""
        weights, biases = adjacent
        dense.forward(VectorInput([1.0, 2.0]))
        dense.backward(
            Matrix.zeros(1, 1), Matrix.from_nested([[0.3]]),
            Matrix.from_nested([[0.4]]), weights, biases
        )
        assert dense.time == 0

    def test_adam_step(self, adjacent):
        """The first Adam step has the size of the learning rate."""
        weights, biases = adjacent
        layer = Dense(2, 3, Activations.SIGMOID, 0.01, optimizer=Optimizer.ADAM,
                      rng=np.random.default_rng(0))
        layer.forward(VectorInput([1.0, 2.0]))

        new_biases, new_weights, _, _ = layer.backward(
            Matrix.zeros(1, 1), Matrix.from_nested([[0.2]]),
            Matrix.from_nested([[0.5]]), weights, biases
        )

        # The first bias-corrected Adam step has magnitude ~learning_rate
        # in the direction of the gradient
        assert layer.time == 1
        assert np.allclose(new_biases.data - biases.data, 0.01)
        step = new_weights.data - weights.data
        assert np.allclose(np.abs(step), 0.01)
        assert np.array_equal(np.sign(step), np.sign(layer.data.data.T))

    def test_adam_time_advances(self, adjacent):
        """Every Adam step advances the time counter."""
        weights, biases = adjacent
        layer = Dense(2, 3, Activations.SIGMOID, 0.01, optimizer=Optimizer.ADAM)
        layer.forward(VectorInput([1.0, 2.0]))
        for _ in range(3):
            biases, weights, _, _ = layer.backward(
                Matrix.zeros(1, 1), Matrix.from_nested([[0.2]]),
                Matrix.from_nested([[0.5]]), weights, biases
            )
        assert layer.time == 3

    def test_update_from_input(self, dense):
        """The first layer can be updated from the network input."""
        before_weights = dense.get_weights()
        before_biases = dense.get_bias()
        inputs = Matrix.from_nested([[1.0], [2.0]])
        gradients = Matrix.from_nested([[0.1], [0.2], [0.3]])
        errors = Matrix.from_nested([[1.0], [1.0], [-1.0]])

        dense.update_from_input(inputs, gradients, errors)

        update = np.array([[0.1], [0.2], [-0.3]]) * 0.5
        assert np.allclose(
            dense.get_weights().data, before_weights.data + update @ np.array([[1.0, 2.0]])
        )
        assert np.allclose(dense.get_bias().data, before_biases.data + update)


@pytest.mark.unit
class TestDenseSpec:
    """Uncompiled layer specifications."""

    def test_is_layer_spec(self):
        """DenseSpec implements LayerSpec."""
        assert isinstance(DenseSpec(3), LayerSpec)

    def test_defaults(self):
        """DenseSpec defaults to sigmoid, 0.1 and the plain step."""
        spec = DenseSpec(3)
        assert spec.get_size() == 3
        assert spec.activation is Activations.SIGMOID
        assert spec.learning_rate == 0.1
        assert spec.optimizer is Optimizer.SGD

    def test_to_layer(self):
        """to_layer builds a Dense layer with the spec's settings."""
        spec = DenseSpec(3, Activations.TANH, 0.05, Optimizer.ADAM)
        layer = spec.to_layer(2)
        assert isinstance(layer, Dense)
        assert layer.get_weights().shape == (2, 3)
        assert layer.get_activation() is Activations.TANH
        assert layer.learning_rate == 0.05
        assert layer.optimizer is Optimizer.ADAM

    @pytest.mark.parametrize('kwargs', [
        {'size': 0},
        {'size': -2},
        {'size': 2.5},
        {'size': True},
        {'size': 2, 'learning_rate': 0.0},
        {'size': 2, 'activation': 'sigmoid'},
    ])
    def test_invalid_specs(self, kwargs):
        """Invalid specifications raise InvalidInput."""
        with pytest.raises(InvalidInput):
            DenseSpec(**kwargs)

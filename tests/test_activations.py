"""
test_activations.py
~~~~~~~~~~~~~~~~~~~

Unit tests for activation functions and their derivatives.
"""

import numpy as np
import pytest

from triton_grow.activations import Activations, ActivationFunction

Z = np.array([[-3.0, -0.5, 0.0, 0.5, 3.0]])


@pytest.mark.unit
class TestActivations:
    """Function/derivative pairs resolved from the enum tag."""

    def test_get_function_returns_pair(self):
        """Every activation resolves to a (function, derivative) pair."""
        pair = Activations.SIGMOID.get_function()
        assert isinstance(pair, ActivationFunction)
        assert callable(pair.function)
        assert callable(pair.derivative)

    def test_sigmoid_derivative_uses_activated_output(self):
        """Sigmoid derivative is y * (1 - y) of the activated output."""
        pair = Activations.SIGMOID.get_function()
        y = pair.function(Z)
        expected = np.exp(-Z) / (1.0 + np.exp(-Z)) ** 2
        assert np.allclose(pair.derivative(y), expected)

    def test_tanh_derivative_uses_activated_output(self):
        """Tanh derivative is 1 - y^2 of the activated output."""
        pair = Activations.TANH.get_function()
        y = pair.function(Z)
        assert np.allclose(pair.derivative(y), 1.0 / np.cosh(Z) ** 2)

    def test_relu(self):
        """ReLU clips negatives and its derivative is a step."""
        pair = Activations.RELU.get_function()
        y = pair.function(Z)
        assert y.tolist() == [[0.0, 0.0, 0.0, 0.5, 3.0]]
        assert pair.derivative(y).tolist() == [[0.0, 0.0, 0.0, 1.0, 1.0]]

    def test_leaky_relu(self):
        """Leaky ReLU keeps a small slope for negatives."""
        pair = Activations.LEAKY_RELU.get_function()
        y = pair.function(Z)
        assert np.allclose(y, [[-0.03, -0.005, 0.0, 0.5, 3.0]])
        assert np.allclose(pair.derivative(y), [[0.01, 0.01, 0.01, 1.0, 1.0]])

    def test_linear(self):
        """Linear is the identity with a derivative of one."""
        pair = Activations.LINEAR.get_function()
        assert np.array_equal(pair.function(Z), Z)
        assert np.array_equal(pair.derivative(Z), np.ones_like(Z))

    @pytest.mark.parametrize('activation', list(Activations))
    def test_functions_are_pure(self, activation):
        """Applying an activation leaves its argument unchanged."""
        pair = activation.get_function()
        z = Z.copy()
        pair.function(z)
        pair.derivative(z)
        assert np.array_equal(z, Z)

    @pytest.mark.parametrize('name,expected', [
        ('sigmoid', Activations.SIGMOID),
        ('TANH', Activations.TANH),
        (' ReLU ', Activations.RELU),
        ('leaky_relu', Activations.LEAKY_RELU),
    ])
    def test_from_name(self, name, expected):
        """Activations can be looked up by name."""
        assert Activations.from_name(name) is expected

    def test_from_name_unknown(self):
        """Unknown activation names raise ValueError."""
        with pytest.raises(ValueError) as exc_info:
            Activations.from_name('softplus')
        assert 'sigmoid' in str(exc_info.value)

"""
test_input.py
~~~~~~~~~~~~~

Unit tests for the Input capability and its adapters.
"""

import numpy as np
import pytest

from triton_grow.errors import InvalidInput
from triton_grow.input import Input, OneHotInput, VectorInput, to_input
from triton_grow.matrix import Matrix


@pytest.mark.unit
class TestAdapters:
    """Concrete input representations."""

    def test_vector_input(self):
        """VectorInput exposes its values as a row."""
        vector = VectorInput([1, 2.5])
        assert vector.to_param() == [1.0, 2.5]
        assert vector.to_param_2d() == [[1.0, 2.5]]
        assert len(vector) == 2

    def test_vector_input_returns_copies(self):
        """VectorInput hands out copies of its values."""
        vector = VectorInput([1.0])
        vector.to_param().append(2.0)
        assert vector.to_param() == [1.0]

    def test_one_hot(self):
        """OneHotInput sets a single position to one."""
        one_hot = OneHotInput(2, 4)
        assert one_hot.to_param() == [0.0, 0.0, 1.0, 0.0]
        assert one_hot.to_param_2d() == [[0.0, 0.0, 1.0, 0.0]]

    @pytest.mark.parametrize('index', [-1, 4])
    def test_one_hot_out_of_range(self, index):
        """Out of range one-hot indices raise InvalidInput."""
        with pytest.raises(InvalidInput):
            OneHotInput(index, 4)


@pytest.mark.unit
class TestToInput:
    """Adapting raw values."""

    def test_passes_inputs_through(self):
        """Input objects are returned unchanged."""
        matrix = Matrix.zeros(1, 2)
        assert to_input(matrix) is matrix

    @pytest.mark.parametrize('value', [[1, 2], (1, 2), np.array([1.0, 2.0])])
    def test_sequences_become_vectors(self, value):
        """Lists, tuples and 1-D arrays become VectorInput."""
        adapted = to_input(value)
        assert isinstance(adapted, VectorInput)
        assert adapted.to_param() == [1.0, 2.0]

    def test_two_dimensional_array_becomes_matrix(self):
        """A 2-D array becomes a Matrix."""
        adapted = to_input(np.array([[1.0, 2.0]]))
        assert isinstance(adapted, Matrix)
        assert adapted.to_param_2d() == [[1.0, 2.0]]

    def test_custom_input_is_accepted(self):
        """User-defined Input subclasses are accepted."""
        class Pair(Input):
            def to_param(self):
                return [3.0, 4.0]

            def to_param_2d(self):
                return [[3.0, 4.0]]

        pair = Pair()
        assert to_input(pair) is pair

    @pytest.mark.parametrize('value', ['abc', 3.0, {'a': 1}, np.zeros((1, 1, 1))])
    def test_unsupported_values(self, value):
        """Unsupported values raise InvalidInput."""
        with pytest.raises(InvalidInput):
            to_input(value)

    def test_non_numeric_sequence(self):
        """Sequences with non-numeric values raise InvalidInput."""
        with pytest.raises(InvalidInput):
            to_input(['a', 'b'])

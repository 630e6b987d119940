"""
conftest.py
~~~~~~~~~~~

Shared fixtures for the triton_grow test suite.
"""

import os
import sys

import pytest

# Make the package importable without installing it
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from triton_grow import Activations, Network  # noqa: E402

XOR_INPUTS = [[0.0, 0.0], [1.0, 0.0], [0.0, 1.0], [1.0, 1.0]]
XOR_TARGETS = [[0.0], [1.0], [1.0], [0.0]]


@pytest.fixture
def xor_data():
    """XOR inputs and targets."""
    return [list(x) for x in XOR_INPUTS], [list(y) for y in XOR_TARGETS]


@pytest.fixture
def temp_db_dir(tmp_path):
    """Create a temporary directory for database storage."""
    db_dir = tmp_path / "test_models"
    db_dir.mkdir()
    return str(db_dir)


@pytest.fixture
def simple_network():
    """A compiled [3, 4, 2] sigmoid network with a short training schedule."""
    return Network.from_topology(
        [3, 4, 2],
        Activations.SIGMOID,
        0.1,
        iterations_per_epoch=5,
        seed=1
    )


@pytest.fixture
def trained_network(simple_network):
    """The simple network after a little training."""
    import numpy as np

    rng = np.random.default_rng(3)
    inputs = [rng.standard_normal(3).tolist() for _ in range(10)]
    targets = [[1.0, 0.0] if i % 2 == 0 else [0.0, 1.0] for i in range(10)]

    simple_network.fit(inputs, targets, epochs=1)
    return simple_network

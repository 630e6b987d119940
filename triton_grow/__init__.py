"""
triton_grow package
~~~~~~~~~~~~~~~~~~~

Minimal feedforward neural network engine.
Contains the matrix algebra, activation functions, the layer abstraction
with its Dense implementation, the network orchestration, model
persistence, and the API server.
"""

from .activations import Activations
from .errors import DimensionMismatch, InvalidInput, InvalidState, NetworkError
from .input import Input, OneHotInput, VectorInput, to_input
from .layers import Dense, DenseSpec, Layer, LayerSpec
from .matrix import Matrix
from .modes import Mode, Optimizer
from .network import ITERATIONS_PER_EPOCH, Network

__version__ = "1.0.0"

__all__ = [
    'Activations',
    'Dense',
    'DenseSpec',
    'DimensionMismatch',
    'ITERATIONS_PER_EPOCH',
    'Input',
    'InvalidInput',
    'InvalidState',
    'Layer',
    'LayerSpec',
    'Matrix',
    'Mode',
    'Network',
    'NetworkError',
    'OneHotInput',
    'Optimizer',
    'VectorInput',
    'to_input',
]

"""
errors.py
~~~~~~~~~

Exception types raised by the network core.

All of them abort the current operation at the point of detection; nothing
in the core catches them.
"""


class NetworkError(Exception):
    """Base class for every error raised by triton_grow."""


class DimensionMismatch(NetworkError, ValueError):
    """Matrix shapes are incompatible for the requested operation."""


class InvalidInput(NetworkError, ValueError):
    """An argument does not match the declared shape of the network."""


class InvalidState(NetworkError, RuntimeError):
    """An operation was called out of sequence (e.g. before compile)."""

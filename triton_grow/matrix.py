"""
matrix.py
~~~~~~~~~

Dense 2-D numeric container used by every layer.

A Matrix has value semantics: every operation returns a new Matrix backed
by its own numpy buffer, and no operation mutates its operands. Callers
rebind instead of mutating.
"""

from typing import Any, Callable, List, Optional, Sequence, Tuple

import numpy as np

from .errors import DimensionMismatch
from .input import Input


class Matrix(Input):
    """
    A rows x columns matrix of floats.

    Attributes:
        rows: Number of rows
        columns: Number of columns
        data: 2-D numpy array of shape (rows, columns)
    """

    def __init__(self, data: Any):
        """
        Wrap a 2-D array-like. The values are always copied.

        Args:
            data: Anything numpy can turn into a 2-D float array

        Raises:
            DimensionMismatch: If the data is not rectangular and 2-D
        """
        try:
            array = np.array(data, dtype=np.float64)
        except ValueError as e:
            raise DimensionMismatch(f"Rows are not of equal length: {e}")

        if array.ndim != 2:
            raise DimensionMismatch(
                f"Matrix data must be 2-D, got {array.ndim}-D"
            )

        self.data = array
        self.rows, self.columns = array.shape

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def new_random(
        cls,
        rows: int,
        columns: int,
        rng: Optional[np.random.Generator] = None
    ) -> 'Matrix':
        """
        Create a matrix with every cell drawn from uniform(-1, 1).

        Args:
            rows: Number of rows
            columns: Number of columns
            rng: Random generator to draw from (a fresh one if omitted)

        Returns:
            Matrix: The randomly initialized matrix
        """
        if rng is None:
            rng = np.random.default_rng()
        return cls(rng.uniform(-1.0, 1.0, size=(rows, columns)))

    @classmethod
    def zeros(cls, rows: int, columns: int) -> 'Matrix':
        """Create a rows x columns matrix of zeros."""
        return cls(np.zeros((rows, columns)))

    @classmethod
    def from_nested(cls, values: Sequence[Sequence[float]]) -> 'Matrix':
        """
        Build a matrix from a row-major nested sequence.

        Rows of unequal length are rejected rather than padded.

        Args:
            values: Sequence of rows, each a sequence of numbers

        Returns:
            Matrix: len(values) x len(values[0]) matrix

        Raises:
            DimensionMismatch: If the rows are of unequal length
        """
        rows = [list(row) for row in values]
        if not rows:
            return cls(np.zeros((0, 0)))

        width = len(rows[0])
        for index, row in enumerate(rows):
            if len(row) != width:
                raise DimensionMismatch(
                    f"Row {index} has {len(row)} elements, expected {width}"
                )
        return cls(np.array(rows, dtype=np.float64).reshape(len(rows), width))

    # ------------------------------------------------------------------
    # Shape helpers
    # ------------------------------------------------------------------

    @property
    def shape(self) -> Tuple[int, int]:
        return self.rows, self.columns

    def _require_same_shape(self, other: 'Matrix', op: str) -> None:
        if self.shape != other.shape:
            raise DimensionMismatch(
                f"Cannot {op} matrices of shape {self.shape} and {other.shape}"
            )

    # ------------------------------------------------------------------
    # Algebra
    # ------------------------------------------------------------------

    def transpose(self) -> 'Matrix':
        """Return a new matrix with rows and columns swapped."""
        return Matrix(self.data.T)

    def map(self, function: Callable[[np.ndarray], np.ndarray]) -> 'Matrix':
        """
        Apply an element-wise function to every cell.

        Args:
            function: Callable applied cell by cell. It receives the cells
                as a numpy array, so numpy ufuncs and arithmetic lambdas
                both work.

        Returns:
            Matrix: A new matrix of the same shape

        Raises:
            DimensionMismatch: If the function returns neither a scalar nor
                an array of the source shape
        """
        result = np.asarray(function(self.data.copy()), dtype=np.float64)
        if result.ndim == 0:
            result = np.full(self.data.shape, float(result))
        elif result.shape != self.data.shape:
            raise DimensionMismatch(
                f"map function returned shape {result.shape}, expected {self.data.shape}"
            )
        return Matrix(result)

    def dot_multiply(self, other: 'Matrix') -> 'Matrix':
        """Element-wise (Hadamard) product."""
        self._require_same_shape(other, 'Hadamard-multiply')
        return Matrix(self.data * other.data)

    def __add__(self, other: 'Matrix') -> 'Matrix':
        self._require_same_shape(other, 'add')
        return Matrix(self.data + other.data)

    def __sub__(self, other: 'Matrix') -> 'Matrix':
        self._require_same_shape(other, 'subtract')
        return Matrix(self.data - other.data)

    def __mul__(self, other: Any) -> 'Matrix':
        """
        Matrix product, or scaling when other is a plain number.

        Raises:
            DimensionMismatch: If self.columns != other.rows
        """
        if isinstance(other, (int, float, np.floating, np.integer)):
            return Matrix(self.data * float(other))
        if not isinstance(other, Matrix):
            return NotImplemented
        if self.columns != other.rows:
            raise DimensionMismatch(
                f"Cannot multiply {self.shape} by {other.shape}: "
                f"left columns must equal right rows"
            )
        return Matrix(self.data @ other.data)

    def __rmul__(self, other: Any) -> 'Matrix':
        if isinstance(other, (int, float, np.floating, np.integer)):
            return Matrix(self.data * float(other))
        return NotImplemented

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Matrix):
            return NotImplemented
        return self.shape == other.shape and bool(np.array_equal(self.data, other.data))

    __hash__ = None

    def allclose(self, other: 'Matrix', atol: float = 1e-9) -> bool:
        """Compare with another matrix within a tolerance."""
        return self.shape == other.shape and bool(
            np.allclose(self.data, other.data, atol=atol)
        )

    # ------------------------------------------------------------------
    # Input capability
    # ------------------------------------------------------------------

    def to_param(self) -> List[float]:
        """Flatten to a row-major list of floats."""
        return [float(value) for value in self.data.flatten()]

    def to_param_2d(self) -> List[List[float]]:
        """Return the row-major nested list of floats."""
        return self.data.tolist()

    def __repr__(self) -> str:
        return f"Matrix(rows={self.rows}, columns={self.columns}, data={self.data.tolist()})"

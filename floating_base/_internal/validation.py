"""Runtime contract validation utilities.

Internal module for size and index checks at the call boundary.
"""

import casadi as ca
import numpy as np

from floating_base.errors import DimensionMismatch, IndexOutOfRange


def is_symbolic(vector) -> bool:
    """True for casadi expressions and numeric casadi matrices."""
    return isinstance(vector, (ca.SX, ca.MX, ca.DM))


def vector_length(vector, name: str) -> int:
    """Length of a 1-D numpy array or a casadi column vector.

    Raises:
        DimensionMismatch: If vector is not one dimensional
    """
    if is_symbolic(vector):
        if vector.size2() != 1:
            raise DimensionMismatch(
                f"{name} must be a column vector, got shape {vector.shape}"
            )
        return vector.size1()

    shape = np.shape(vector)
    if len(shape) != 1:
        raise DimensionMismatch(
            f"{name} must be one dimensional, got shape {shape}"
        )
    return shape[0]


def validate_vector(vector, expected: int, name: str) -> None:
    """Validate that a vector has the expected length.

    Raises:
        DimensionMismatch: If the length differs
    """
    length = vector_length(vector, name)
    if length != expected:
        raise DimensionMismatch(
            f"{name} must have length {expected}, got {length}"
        )


def as_vector(vector, expected: int, name: str) -> np.ndarray:
    """Validate and convert a numeric vector to a float numpy array."""
    if isinstance(vector, ca.DM):
        vector = vector.full().ravel() if vector.size2() == 1 else vector.full()
    array = np.asarray(vector, dtype=float)
    validate_vector(array, expected, name)
    return array


def validate_matrix(matrix: np.ndarray, rows, cols: int, name: str) -> None:
    """Validate a 2-D matrix shape, rows=None accepts any row count.

    Raises:
        DimensionMismatch: If the shape differs
    """
    if matrix.ndim != 2 or matrix.shape[1] != cols or (
            rows is not None and matrix.shape[0] != rows):
        expected = (rows if rows is not None else "rows", cols)
        raise DimensionMismatch(
            f"{name} must have shape {expected}, got {matrix.shape}"
        )


def validate_index(index: int, count: int, name: str) -> None:
    """Validate 0 <= index < count.

    Raises:
        IndexOutOfRange: If index is outside the range
    """
    if not 0 <= index < count:
        raise IndexOutOfRange(
            f"{name} index must be in [0, {count}), got {index}"
        )

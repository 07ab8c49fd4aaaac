"""
Cell-, tensor- and backend-related exceptions for celldnn.

This module defines the error taxonomy shared by every cell type and backend.
All errors derive from `CellError` so callers can catch the whole family with
a single clause, while still being able to distinguish structural
configuration problems from I/O problems or numeric contract violations.

Structural errors are raised at construction, `add_input` or `initialize`
time and are fatal for the cell; no operation is retried.
"""

from __future__ import annotations

from typing import Sequence


class CellError(RuntimeError):
    """
    Base class of every error raised by celldnn cells, tensors and backends.
    """


class InvalidConfiguration(CellError):
    """
    Raised when a cell parameter or lifecycle request is not valid.

    Typical causes are an out-of-range hyperparameter (e.g. batch-norm
    momentum outside ``(0, 1)``), an unknown parameter name, or a lifecycle
    call made in the wrong state (e.g. `add_input` after `initialize`).
    """


class UnsupportedConfiguration(InvalidConfiguration):
    """
    Raised when a configuration is well formed but not supported by a cell.

    Example: a batch-normalization cell connected to more than one input
    group.
    """


class DimensionMismatch(CellError, ValueError):
    """
    Raised when tensor dimensions are incompatible with an operation.
    """


class ShapeMismatch(DimensionMismatch):
    """
    Raised when an existing tensor does not have the shape a cell expects.

    Attributes
    ----------
    cell : str
        Name of the cell that detected the mismatch.
    what : str
        Short description of the offending tensor (e.g. "scale").
    expected : tuple[int, ...]
        Expected dims.
    actual : tuple[int, ...]
        Dims actually found.
    """

    def __init__(
        self,
        cell: str,
        what: str,
        expected: Sequence[int],
        actual: Sequence[int],
    ) -> None:
        self.cell = cell
        self.what = what
        self.expected = tuple(int(d) for d in expected)
        self.actual = tuple(int(d) for d in actual)
        super().__init__(
            f"{cell}: {what} shape mismatch, expected {list(self.expected)} "
            f"but got {list(self.actual)}."
        )


class ParameterFileCorrupt(CellError):
    """
    Raised when a parameter file is shorter or longer than the tensors it is
    loaded into.
    """


class ParameterIOError(CellError, OSError):
    """
    Raised when a parameter file cannot be opened for reading or writing.
    """


class UnsupportedBackend(CellError):
    """
    Raised when a (cell type, backend, element type) combination is not
    available.

    Attributes
    ----------
    backend : str
        Backend name that was requested (e.g. "Frame_CUDA").
    dtype : str
        Element type tag that was requested (e.g. "half").
    """

    def __init__(self, message: str, *, backend: str = "", dtype: str = "") -> None:
        super().__init__(message)
        self.backend = backend
        self.dtype = dtype


class PrecedingForwardRequired(CellError):
    """
    Raised when a backward pass needs caches that only a training forward
    pass produces.
    """


class DeviceNotSupportedError(CellError):
    """
    Raised when device-side storage is requested from a tensor that only
    lives in host memory.

    Attributes
    ----------
    op : str
        The name of the operation that was attempted.
    device : str
        String representation of the device the tensor lives on.
    """

    def __init__(self, op: str, device: str) -> None:
        super().__init__(f"{op} is not implemented for device '{device}'.")
        self.op = op
        self.device = device

"""
Element type tags.

Cells are instantiated for one of three floating-point element types, named
by the tags used in configuration and in the cell registry:
``"half"``, ``"float"`` and ``"double"``.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

import numpy as np

from ._errors import UnsupportedBackend


class DataType(Enum):
    """
    Floating-point element type of a cell instantiation.
    """

    HALF = "half"
    FLOAT = "float"
    DOUBLE = "double"

    @property
    def numpy_dtype(self) -> np.dtype:
        """
        NumPy dtype used to store elements of this type.
        """
        return np.dtype(_NUMPY_DTYPES[self])

    @property
    def itemsize(self) -> int:
        return self.numpy_dtype.itemsize

    @classmethod
    def parse(cls, value: Any) -> "DataType":
        """
        Resolve a tag string, a `DataType` or a NumPy dtype into a `DataType`.

        Raises
        ------
        UnsupportedBackend
            If `value` does not name one of the supported element types.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.lower())
            except ValueError:
                pass
        dt = None
        if value is not None:
            try:
                dt = np.dtype(value)
            except TypeError:
                pass
        for tag, np_type in _NUMPY_DTYPES.items():
            if dt is not None and dt == np.dtype(np_type):
                return tag
        raise UnsupportedBackend(
            f"Unsupported element type {value!r}; expected one of "
            f"{[t.value for t in cls]}.",
            dtype=str(value),
        )


_NUMPY_DTYPES = {
    DataType.HALF: np.float16,
    DataType.FLOAT: np.float32,
    DataType.DOUBLE: np.float64,
}

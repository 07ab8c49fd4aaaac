"""
Backend-agnostic contracts of celldnn: errors, lifecycle states, protocols
and type tags.
"""

from ._errors import (
    CellError,
    InvalidConfiguration,
    UnsupportedConfiguration,
    DimensionMismatch,
    ShapeMismatch,
    ParameterFileCorrupt,
    ParameterIOError,
    UnsupportedBackend,
    PrecedingForwardRequired,
    DeviceNotSupportedError,
)
from ._dtype import DataType
from ._cell import CellState, ICell
from ._solver import ISolver
from ._pooling import Pooling
from .device import Device, DeviceType

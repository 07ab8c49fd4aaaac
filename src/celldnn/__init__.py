"""
celldnn: a cell execution engine for neural networks with a host (NumPy)
backend and a CUDA (CuPy) backend.
"""

from .domain import (
    CellError,
    CellState,
    DataType,
    DeviceNotSupportedError,
    DimensionMismatch,
    InvalidConfiguration,
    ParameterFileCorrupt,
    ParameterIOError,
    Pooling,
    PrecedingForwardRequired,
    ShapeMismatch,
    UnsupportedBackend,
    UnsupportedConfiguration,
)
from .infrastructure.backends import FrameBackend, FrameCudaBackend, make_backend
from .infrastructure.cells import (
    BatchNormCell,
    Cell,
    ConvCell,
    DeconvCell,
    FcCell,
    PoolCell,
    ProposalCell,
)
from .infrastructure.gradient import GradientCheck, GradientCheckResult
from .infrastructure.solvers import AdamSolver, SGDSolver
from .infrastructure.tensor import CudaTensor, Interface, Tensor
from .infrastructure._parameter import Parameter
from .infrastructure._registry import CellRegistry, default_registry

__version__ = "0.1.0"

from ._tensor import Tensor
from ._cuda_storage import SyncState
from ._cuda_tensor import CudaTensor
from ._interface import Interface
from ._cupy import cuda_available, load_cupy

__all__ = [
    Tensor.__name__,
    CudaTensor.__name__,
    SyncState.__name__,
    Interface.__name__,
    cuda_available.__name__,
    load_cupy.__name__,
]

"""
Shared helpers for solvers.
"""

from __future__ import annotations

from typing import Any, Tuple

import numpy as np

from ..tensor._cuda_tensor import CudaTensor
from ..tensor._tensor import Tensor


def working_arrays(parameter: Tensor, gradient: Tensor) -> Tuple[Any, Any, Any]:
    """
    Return ``(xp, p, g)``: the array module and the arrays a solver updates.

    Device-mirrored parameters are updated on the device, host parameters on
    the host. `p` is obtained for writing, so the other side becomes stale.
    """
    if parameter.dims != gradient.dims:
        raise ValueError(
            f"parameter dims {list(parameter.dims)} do not match gradient dims "
            f"{list(gradient.dims)}"
        )
    if isinstance(parameter, CudaTensor):
        g = gradient.ensure_device() if isinstance(gradient, CudaTensor) else (
            parameter.xp.asarray(gradient.ensure_host())
        )
        return parameter.xp, parameter.ensure_device(write=True), g
    return np, parameter.ensure_host(write=True), gradient.ensure_host()


def check_batch_size(batch_size: int) -> int:
    batch_size = int(batch_size)
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")
    return batch_size

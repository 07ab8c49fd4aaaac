"""
Constant and random fillers.
"""

from __future__ import annotations

import numpy as np

from ...tensor._tensor import Tensor
from ._base import WeightInitializer


@WeightInitializer.register_initializer("constant")
def constant(tensor: Tensor, value: float = 0.0) -> Tensor:
    tensor.fill(value)
    return tensor


@WeightInitializer.register_initializer("zeros")
def zeros(tensor: Tensor) -> Tensor:
    tensor.fill(0.0)
    return tensor


@WeightInitializer.register_initializer("ones")
def ones(tensor: Tensor) -> Tensor:
    tensor.fill(1.0)
    return tensor


@WeightInitializer.register_initializer("uniform")
def uniform(tensor: Tensor, low: float = -0.05, high: float = 0.05) -> Tensor:
    w = np.random.uniform(low, high, size=tensor.shape)
    tensor.copy_from_numpy(w.astype(tensor.dtype, copy=False))
    return tensor


@WeightInitializer.register_initializer("normal")
def normal(tensor: Tensor, mean: float = 0.0, std: float = 0.05) -> Tensor:
    w = np.random.normal(mean, std, size=tensor.shape)
    tensor.copy_from_numpy(w.astype(tensor.dtype, copy=False))
    return tensor

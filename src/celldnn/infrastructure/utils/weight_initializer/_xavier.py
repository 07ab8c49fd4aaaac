"""
Xavier (Glorot) fillers.

Fan-in / fan-out are derived from the NumPy shape of the parameter, i.e.
``(nb_outputs, nb_inputs)`` for fully connected weights and
``(nb_outputs, nb_channels, kernel_height, kernel_width)`` for convolution
weights.
"""

from __future__ import annotations

import math

import numpy as np

from ....domain.utils._weight_initialization import _calculate_fan_in_and_fan_out
from ...tensor._tensor import Tensor
from ._base import WeightInitializer


def _fans(tensor: Tensor) -> tuple[int, int]:
    fan_in, fan_out = _calculate_fan_in_and_fan_out(tuple(tensor.shape))
    return max(1, int(fan_in)), max(1, int(fan_out))


@WeightInitializer.register_initializer("xavier")
def xavier(tensor: Tensor) -> Tensor:
    """
    Xavier normal: ``std = sqrt(2 / (fan_in + fan_out))``.
    """
    fan_in, fan_out = _fans(tensor)
    std = math.sqrt(2.0 / float(fan_in + fan_out))
    w = np.random.randn(*tensor.shape) * std
    tensor.copy_from_numpy(w.astype(tensor.dtype, copy=False))
    return tensor


@WeightInitializer.register_initializer("xavier_uniform")
def xavier_uniform(tensor: Tensor) -> Tensor:
    """
    Xavier uniform: ``U(-b, b)`` with ``b = sqrt(6 / (fan_in + fan_out))``.
    """
    fan_in, fan_out = _fans(tensor)
    bound = math.sqrt(6.0 / float(fan_in + fan_out))
    w = np.random.uniform(-bound, bound, size=tensor.shape)
    tensor.copy_from_numpy(w.astype(tensor.dtype, copy=False))
    return tensor

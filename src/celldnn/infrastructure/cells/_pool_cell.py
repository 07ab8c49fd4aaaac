"""
Pooling cell.

Output channel ``o`` pools, over each window, every input channel ``c`` of
every input group with ``mapping[c, o]`` set. Results of several input groups
are accumulated into the same output (``beta = 1`` from the second group on),
like the other multi-input cells.

Max pooling records, per output element and input group, the flat index
``channel * H * W + y * W + x`` of the selected element (``-1`` for a window
without any mapped in-bounds element). Average pooling divides by the number
of in-bounds positions times the number of mapped channels, in both
directions.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from ...domain._errors import InvalidConfiguration
from ...domain._pooling import Pooling
from ..ops.pool2d_cpu import (
    avgpool2d_backward_cpu,
    avgpool2d_forward_cpu,
    maxpool2d_backward_cpu,
    maxpool2d_forward_cpu,
    pool_out_hw,
)
from ..ops.pool2d_cuda import (
    avgpool2d_backward_cuda,
    avgpool2d_forward_cuda,
    maxpool2d_backward_cuda,
    maxpool2d_forward_cuda,
)
from ..tensor._tensor import Tensor
from ._cell import Cell, _to_dims2


class PoolFrameKernel:
    """
    Host kernels of `PoolCell`.
    """

    def __init__(self, xp: Any) -> None:
        pass

    def max_forward(self, alpha, x, beta, y, argmax, mapping, **geometry) -> None:
        maxpool2d_forward_cpu(alpha, x, beta, y, argmax, mapping, **geometry)

    def max_backward(self, alpha, dy, beta, dx, argmax) -> None:
        maxpool2d_backward_cpu(alpha, dy, beta, dx, argmax)

    def avg_forward(self, alpha, x, beta, y, mapping, **geometry) -> None:
        avgpool2d_forward_cpu(alpha, x, beta, y, mapping, **geometry)

    def avg_backward(self, alpha, dy, beta, dx, mapping, **geometry) -> None:
        avgpool2d_backward_cpu(alpha, dy, beta, dx, mapping, **geometry)


class PoolCudaKernel:
    """
    Device kernels of `PoolCell`.
    """

    def __init__(self, xp: Any) -> None:
        self.xp = xp

    def max_forward(self, alpha, x, beta, y, argmax, mapping, **geometry) -> None:
        maxpool2d_forward_cuda(self.xp, alpha, x, beta, y, argmax, mapping, **geometry)

    def max_backward(self, alpha, dy, beta, dx, argmax) -> None:
        maxpool2d_backward_cuda(self.xp, alpha, dy, beta, dx, argmax)

    def avg_forward(self, alpha, x, beta, y, mapping, **geometry) -> None:
        avgpool2d_forward_cuda(self.xp, alpha, x, beta, y, mapping, **geometry)

    def avg_backward(self, alpha, dy, beta, dx, mapping, **geometry) -> None:
        avgpool2d_backward_cuda(self.xp, alpha, dy, beta, dx, mapping, **geometry)


def _to_host(xp: Any, array: Any) -> np.ndarray:
    if hasattr(xp, "asnumpy"):
        return xp.asnumpy(array)
    return np.asarray(array)


class PoolCell(Cell):
    """
    Max or average pooling cell.

    Parameters
    ----------
    name : str
        Cell name.
    nb_outputs : int
        Number of output channels.
    pool_dims : int or (int, int)
        Window size ``(x, y)``.
    stride_dims : int or (int, int), optional
        Stride ``(x, y)``. Defaults to 1.
    padding_dims : int or (int, int), optional
        Padding ``(x, y)``. Defaults to 0.
    pooling : Pooling or str, optional
        "Max" (default) or "Average".
    backend, activation : optional
        See `Cell`.
    """

    TYPE = "Pool"
    _KERNELS = {"Frame": PoolFrameKernel, "Frame_CUDA": PoolCudaKernel}
    _PARAMETERS = {"pooling": Pooling.parse}
    _STRUCTURAL = frozenset({"pooling"})

    def __init__(
        self,
        name: str,
        nb_outputs: int,
        pool_dims: int | Sequence[int],
        *,
        stride_dims: int | Sequence[int] = 1,
        padding_dims: int | Sequence[int] = 0,
        pooling: Pooling | str = Pooling.MAX,
        backend: Any = None,
        activation: Any = None,
    ) -> None:
        super().__init__(name, nb_outputs, backend=backend, activation=activation)
        self._pool_dims = _to_dims2(pool_dims)
        self._stride_dims = _to_dims2(stride_dims)
        self._padding_dims = _to_dims2(padding_dims)
        self._pooling = Pooling.MAX
        self.set_parameter("pooling", pooling)
        self._argmax: List[Any] = []

    @property
    def pooling(self) -> Pooling:
        return self._pooling

    @property
    def pool_dims(self) -> Tuple[int, ...]:
        return self._pool_dims

    @property
    def stride_dims(self) -> Tuple[int, ...]:
        return self._stride_dims

    @property
    def padding_dims(self) -> Tuple[int, ...]:
        return self._padding_dims

    def get_config(self) -> Dict[str, Any]:
        cfg = super().get_config()
        cfg["parameters"]["pooling"] = self._pooling.value
        return cfg

    def _geometry_config(self) -> Dict[str, Any]:
        return {
            "pool_dims": list(self._pool_dims),
            "stride_dims": list(self._stride_dims),
            "padding_dims": list(self._padding_dims),
        }

    # kernels take (y, x) pairs
    def _geometry(self) -> Optional[Dict[str, Tuple[int, int]]]:
        dims = (self._pool_dims, self._stride_dims, self._padding_dims)
        if not all(len(d) == 2 for d in dims):
            return None
        return {
            "kernel_size": (self._pool_dims[1], self._pool_dims[0]),
            "stride": (self._stride_dims[1], self._stride_dims[0]),
            "padding": (self._padding_dims[1], self._padding_dims[0]),
        }

    def _check_input(self, tensor: Tensor) -> None:
        super()._check_input(tensor)
        self._check_same_spatial_size(tensor)

    def _output_dims(self) -> Tuple[int, ...]:
        first = self._inputs[0]
        g = self._geometry()
        H_out = W_out = 0
        if g is not None and min(self._stride_dims) > 0:
            H_out, W_out = pool_out_hw(
                first.dim_y, first.dim_x, g["kernel_size"], g["stride"], g["padding"]
            )
        return (W_out, H_out, self._nb_outputs, first.dim_b)

    def _initialize(self) -> None:
        dims = {
            "pool_dims": self._pool_dims,
            "stride_dims": self._stride_dims,
            "padding_dims": self._padding_dims,
        }
        for key, value in dims.items():
            if len(value) != 2:
                raise InvalidConfiguration(
                    f"{self._name}: {key} must have 2 dimensions for a 2-D pooling, "
                    f"got {len(value)}"
                )
        if min(self._pool_dims) <= 0 or min(self._stride_dims) <= 0:
            raise InvalidConfiguration(f"{self._name}: pool_dims and stride_dims must be > 0")
        if min(self._padding_dims) < 0:
            raise InvalidConfiguration(f"{self._name}: padding_dims must be >= 0")
        if self._outputs.empty():
            raise InvalidConfiguration(
                f"{self._name}: empty output for input {self.channels_width}x"
                f"{self.channels_height} and pool {list(self._pool_dims)}"
            )

        if self._pooling is Pooling.MAX:
            xp = self._backend.xp
            shape = self._outputs.shape
            self._argmax = [
                xp.full(shape, -1, dtype=xp.int64) for _ in range(len(self._inputs))
            ]
        else:
            self._argmax = []

    def argmax(self, index: int = 0) -> np.ndarray:
        """
        Host copy of the argmax indices of input group `index`, shape
        (N, nb_outputs, H_out, W_out).
        """
        return _to_host(self._backend.xp, self._argmax[index]).copy()

    def _propagate(self, inference: bool) -> None:
        geometry = self._geometry()
        y = self._backend.write(self._outputs)

        for k in range(len(self._inputs)):
            x = self._backend.read(self._inputs[k])
            beta = 0.0 if k == 0 else 1.0
            m = self._group_mapping(k)
            if self._pooling is Pooling.MAX:
                self._kernel.max_forward(1.0, x, beta, y, self._argmax[k], m, **geometry)
            else:
                self._kernel.avg_forward(1.0, x, beta, y, m, **geometry)

    def _back_propagate(self) -> None:
        geometry = self._geometry()
        dy = self._backend.read(self._diff_inputs)

        for k in range(len(self._inputs)):
            if self._pooling is Pooling.MAX:
                argmax = self._argmax[k]
                self._write_diff_output(
                    k, lambda beta, dx: self._kernel.max_backward(1.0, dy, beta, dx, argmax)
                )
            else:
                m = self._group_mapping(k)
                self._write_diff_output(
                    k,
                    lambda beta, dx: self._kernel.avg_backward(
                        1.0, dy, beta, dx, m, **geometry
                    ),
                )

    def _gradient_switch_state(self):
        if self._pooling is not Pooling.MAX:
            return None
        return lambda: tuple(
            _to_host(self._backend.xp, a).tobytes() for a in self._argmax
        )

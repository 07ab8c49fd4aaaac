"""
Convolution cell.

Each input group ``k`` is convolved with its own kernel bank of dims
``(kernel_x, kernel_y, channels_k, nb_outputs)`` (NumPy shape
``(nb_outputs, channels_k, kernel_y, kernel_x)``), restricted by the group's
rows of the connectivity mapping. Geometry is given in ``(x, y)`` order:

    out_x = floor((in_x + 2 * padding_x - kernel_x) / stride_x) + 1

and likewise for ``y``.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence, Tuple

from ...domain._errors import InvalidConfiguration
from ..ops.conv2d_cpu import (
    bias_backward_cpu,
    bias_forward_cpu,
    conv2d_backward_data_cpu,
    conv2d_backward_weights_cpu,
    conv2d_forward_cpu,
    conv_out_hw,
)
from ..ops.conv2d_cuda import (
    bias_backward_cuda,
    bias_forward_cuda,
    conv2d_backward_data_cuda,
    conv2d_backward_weights_cuda,
    conv2d_forward_cuda,
)
from ..tensor._tensor import Tensor
from ._cell import WeightedCell, _to_dims2


class ConvFrameKernel:
    """
    Host kernels of `ConvCell`.
    """

    def __init__(self, xp: Any) -> None:
        pass

    def forward(self, alpha, x, w, beta, y, mapping, **geometry) -> None:
        conv2d_forward_cpu(alpha, x, w, beta, y, mapping, **geometry)

    def backward_data(self, alpha, w, dy, beta, dx, mapping, **geometry) -> None:
        conv2d_backward_data_cpu(alpha, w, dy, beta, dx, mapping, **geometry)

    def backward_weights(self, alpha, x, dy, beta, dw, mapping, **geometry) -> None:
        conv2d_backward_weights_cpu(alpha, x, dy, beta, dw, mapping, **geometry)

    def bias_forward(self, b, y) -> None:
        bias_forward_cpu(b, y)

    def backward_bias(self, alpha, dy, beta, db) -> None:
        bias_backward_cpu(alpha, dy, beta, db)


class ConvCudaKernel:
    """
    Device kernels of `ConvCell`.
    """

    def __init__(self, xp: Any) -> None:
        self.xp = xp

    def forward(self, alpha, x, w, beta, y, mapping, **geometry) -> None:
        conv2d_forward_cuda(self.xp, alpha, x, w, beta, y, mapping, **geometry)

    def backward_data(self, alpha, w, dy, beta, dx, mapping, **geometry) -> None:
        conv2d_backward_data_cuda(self.xp, alpha, w, dy, beta, dx, mapping, **geometry)

    def backward_weights(self, alpha, x, dy, beta, dw, mapping, **geometry) -> None:
        conv2d_backward_weights_cuda(self.xp, alpha, x, dy, beta, dw, mapping, **geometry)

    def bias_forward(self, b, y) -> None:
        bias_forward_cuda(self.xp, b, y)

    def backward_bias(self, alpha, dy, beta, db) -> None:
        bias_backward_cuda(self.xp, alpha, dy, beta, db)


class ConvCell(WeightedCell):
    """
    2-D convolution cell with zero padding and optional connectivity mapping.

    Parameters
    ----------
    name : str
        Cell name.
    nb_outputs : int
        Number of output channels.
    kernel_dims : int or (int, int)
        Kernel size ``(x, y)``.
    stride_dims : int or (int, int), optional
        Stride ``(x, y)``. Defaults to 1.
    padding_dims : int or (int, int), optional
        Zero padding ``(x, y)``. Defaults to 0.
    **kwargs
        Forwarded to `WeightedCell` (backend, activation, no_bias, fillers,
        solvers).
    """

    TYPE = "Conv"
    _KERNELS = {"Frame": ConvFrameKernel, "Frame_CUDA": ConvCudaKernel}

    def __init__(
        self,
        name: str,
        nb_outputs: int,
        kernel_dims: int | Sequence[int],
        *,
        stride_dims: int | Sequence[int] = 1,
        padding_dims: int | Sequence[int] = 0,
        **kwargs: Any,
    ) -> None:
        super().__init__(name, nb_outputs, **kwargs)
        self._kernel_dims = _to_dims2(kernel_dims)
        self._stride_dims = _to_dims2(stride_dims)
        self._padding_dims = _to_dims2(padding_dims)

    @property
    def kernel_dims(self) -> Tuple[int, ...]:
        return self._kernel_dims

    @property
    def stride_dims(self) -> Tuple[int, ...]:
        return self._stride_dims

    @property
    def padding_dims(self) -> Tuple[int, ...]:
        return self._padding_dims

    def _geometry_config(self) -> Dict[str, Any]:
        return {
            "kernel_dims": list(self._kernel_dims),
            "stride_dims": list(self._stride_dims),
            "padding_dims": list(self._padding_dims),
        }

    # kernels take (y, x) pairs
    def _geometry(self) -> Optional[Dict[str, Tuple[int, int]]]:
        dims = (self._kernel_dims, self._stride_dims, self._padding_dims)
        if not all(len(d) == 2 for d in dims):
            return None
        return {
            "stride": (self._stride_dims[1], self._stride_dims[0]),
            "padding": (self._padding_dims[1], self._padding_dims[0]),
        }

    def _kernel_hw(self) -> Tuple[int, int]:
        return (self._kernel_dims[1], self._kernel_dims[0])

    def _out_hw(self, H: int, W: int) -> Tuple[int, int]:
        g = self._geometry()
        return conv_out_hw(H, W, self._kernel_hw(), g["stride"], g["padding"])

    def _check_input(self, tensor: Tensor) -> None:
        super()._check_input(tensor)
        self._check_same_spatial_size(tensor)

    def _output_dims(self) -> Tuple[int, ...]:
        first = self._inputs[0]
        H_out = W_out = 0
        if self._geometry() is not None and min(self._stride_dims) > 0:
            H_out, W_out = self._out_hw(first.dim_y, first.dim_x)
        return (max(W_out, 0), max(H_out, 0), self._nb_outputs, first.dim_b)

    def _weights_dims(self, index: int) -> Tuple[int, ...]:
        return (
            self._kernel_dims[0],
            self._kernel_dims[1],
            self._inputs[index].dim_z,
            self._nb_outputs,
        )

    def _validate_geometry(self) -> None:
        dims = {
            "kernel_dims": self._kernel_dims,
            "stride_dims": self._stride_dims,
            "padding_dims": self._padding_dims,
        }
        for key, value in dims.items():
            if len(value) != 2:
                raise InvalidConfiguration(
                    f"{self._name}: {key} must have 2 dimensions, got {len(value)}"
                )
        if min(self._kernel_dims) <= 0 or min(self._stride_dims) <= 0:
            raise InvalidConfiguration(
                f"{self._name}: kernel_dims and stride_dims must be > 0"
            )
        if min(self._padding_dims) < 0:
            raise InvalidConfiguration(f"{self._name}: padding_dims must be >= 0")
        if self._outputs.empty():
            raise InvalidConfiguration(
                f"{self._name}: empty output for input {self.channels_width}x"
                f"{self.channels_height} and kernel {list(self._kernel_dims)}"
            )

    def _initialize(self) -> None:
        self._validate_geometry()
        self._initialize_parameters()

    def _propagate(self, inference: bool) -> None:
        geometry = self._geometry()
        y = self._backend.write(self._outputs)

        for k, p in enumerate(self._weights):
            x = self._backend.read(self._inputs[k])
            w = self._backend.read(p.value)
            beta = 0.0 if k == 0 else 1.0
            self._kernel.forward(1.0, x, w, beta, y, self._group_mapping(k), **geometry)

        if not self._no_bias:
            self._kernel.bias_forward(self._backend.read(self._bias.value), y)

    def _back_propagate(self) -> None:
        geometry = self._geometry()
        dy = self._backend.read(self._diff_inputs)

        for k, p in enumerate(self._weights):
            x = self._backend.read(self._inputs[k])
            m = self._group_mapping(k)
            self._write_gradient(
                p,
                lambda beta, dw: self._kernel.backward_weights(
                    1.0, x, dy, beta, dw, m, **geometry
                ),
            )

        if not self._no_bias:
            self._write_gradient(
                self._bias, lambda beta, db: self._kernel.backward_bias(1.0, dy, beta, db)
            )

        for k, p in enumerate(self._weights):
            w = self._backend.read(p.value)
            m = self._group_mapping(k)
            self._write_diff_output(
                k,
                lambda beta, dx: self._kernel.backward_data(
                    1.0, w, dy, beta, dx, m, **geometry
                ),
            )

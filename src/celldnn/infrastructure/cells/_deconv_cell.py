"""
Deconvolution (transposed convolution) cell.

Same parameter layout and connectivity mapping as `ConvCell`; the output
size is

    out_x = (in_x - 1) * stride_x - 2 * padding_x + kernel_x
"""

from __future__ import annotations

from typing import Any, Tuple

from ..ops.conv2d_cpu import bias_backward_cpu, bias_forward_cpu
from ..ops.conv2d_cuda import bias_backward_cuda, bias_forward_cuda
from ..ops.conv2d_transpose_cpu import (
    conv2d_transpose_backward_data_cpu,
    conv2d_transpose_backward_weights_cpu,
    conv2d_transpose_forward_cpu,
    conv_transpose_out_hw,
)
from ..ops.conv2d_transpose_cuda import (
    conv2d_transpose_backward_data_cuda,
    conv2d_transpose_backward_weights_cuda,
    conv2d_transpose_forward_cuda,
)
from ._conv_cell import ConvCell


class DeconvFrameKernel:
    def __init__(self, xp: Any) -> None:
        pass

    def forward(self, alpha, x, w, beta, y, mapping, **geometry) -> None:
        conv2d_transpose_forward_cpu(alpha, x, w, beta, y, mapping, **geometry)

    def backward_data(self, alpha, w, dy, beta, dx, mapping, **geometry) -> None:
        conv2d_transpose_backward_data_cpu(alpha, w, dy, beta, dx, mapping, **geometry)

    def backward_weights(self, alpha, x, dy, beta, dw, mapping, **geometry) -> None:
        conv2d_transpose_backward_weights_cpu(alpha, x, dy, beta, dw, mapping, **geometry)

    def bias_forward(self, b, y) -> None:
        bias_forward_cpu(b, y)

    def backward_bias(self, alpha, dy, beta, db) -> None:
        bias_backward_cpu(alpha, dy, beta, db)


class DeconvCudaKernel:
    def __init__(self, xp: Any) -> None:
        self.xp = xp

    def forward(self, alpha, x, w, beta, y, mapping, **geometry) -> None:
        conv2d_transpose_forward_cuda(self.xp, alpha, x, w, beta, y, mapping, **geometry)

    def backward_data(self, alpha, w, dy, beta, dx, mapping, **geometry) -> None:
        conv2d_transpose_backward_data_cuda(
            self.xp, alpha, w, dy, beta, dx, mapping, **geometry
        )

    def backward_weights(self, alpha, x, dy, beta, dw, mapping, **geometry) -> None:
        conv2d_transpose_backward_weights_cuda(
            self.xp, alpha, x, dy, beta, dw, mapping, **geometry
        )

    def bias_forward(self, b, y) -> None:
        bias_forward_cuda(self.xp, b, y)

    def backward_bias(self, alpha, dy, beta, db) -> None:
        bias_backward_cuda(self.xp, alpha, dy, beta, db)


class DeconvCell(ConvCell):
    """
    Transposed 2-D convolution cell. Takes the same arguments as `ConvCell`.
    """

    TYPE = "Deconv"
    _KERNELS = {"Frame": DeconvFrameKernel, "Frame_CUDA": DeconvCudaKernel}

    def _out_hw(self, H: int, W: int) -> Tuple[int, int]:
        g = self._geometry()
        return conv_transpose_out_hw(H, W, self._kernel_hw(), g["stride"], g["padding"])

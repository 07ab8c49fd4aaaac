"""
Vectorized fully connected kernels for the `Frame_CUDA` backend.

Same contracts as `fc_cpu`; each kernel is one GEMM through `xp.matmul`
(cuBLAS under CuPy).
"""

from __future__ import annotations

from typing import Any

from .conv2d_cuda import _blend_into


def fc_forward_cuda(xp: Any, alpha: float, x: Any, w: Any, beta: float, y: Any) -> None:
    _blend_into(y, xp.matmul(x, w.T), alpha, beta)


def fc_backward_weights_cuda(
    xp: Any, alpha: float, x: Any, grad_out: Any, beta: float, grad_w: Any
) -> None:
    _blend_into(grad_w, xp.matmul(grad_out.T, x), alpha, beta)


def fc_backward_data_cuda(
    xp: Any, alpha: float, w: Any, grad_out: Any, beta: float, grad_x: Any
) -> None:
    _blend_into(grad_x, xp.matmul(grad_out, w), alpha, beta)

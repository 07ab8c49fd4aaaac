"""
CPU reference kernels for fully connected cells (NumPy backend).

Inputs are viewed as 2-D matrices (N, I) where ``I = C * H * W`` is the
flattened size of one sample of an input group; weights are (O, I) and
outputs (N, O). Every kernel blends its result into the destination with
``dst = alpha * result + beta * dst``.
"""

from __future__ import annotations

import numpy as np

from .conv2d_cpu import _blend_into


def fc_forward_cpu(
    alpha: float, x: np.ndarray, w: np.ndarray, beta: float, y: np.ndarray
) -> None:
    """
    ``y = alpha * x @ w.T + beta * y``, one dot product per output element.
    """
    N = x.shape[0]
    O = w.shape[0]
    out = np.zeros((N, O), dtype=np.float64)
    for n in range(N):
        for o in range(O):
            out[n, o] = np.dot(x[n].astype(np.float64), w[o].astype(np.float64))
    _blend_into(y, out.astype(y.dtype), alpha, beta)


def fc_backward_weights_cpu(
    alpha: float, x: np.ndarray, grad_out: np.ndarray, beta: float, grad_w: np.ndarray
) -> None:
    """
    ``grad_w = alpha * grad_out.T @ x + beta * grad_w``.
    """
    N = x.shape[0]
    O = grad_w.shape[0]
    acc = np.zeros(grad_w.shape, dtype=np.float64)
    for o in range(O):
        for n in range(N):
            acc[o] += float(grad_out[n, o]) * x[n].astype(np.float64)
    _blend_into(grad_w, acc.astype(grad_w.dtype), alpha, beta)


def fc_backward_data_cpu(
    alpha: float, w: np.ndarray, grad_out: np.ndarray, beta: float, grad_x: np.ndarray
) -> None:
    """
    ``grad_x = alpha * grad_out @ w + beta * grad_x``.
    """
    N = grad_out.shape[0]
    O = w.shape[0]
    acc = np.zeros(grad_x.shape, dtype=np.float64)
    for n in range(N):
        for o in range(O):
            acc[n] += float(grad_out[n, o]) * w[o].astype(np.float64)
    _blend_into(grad_x, acc.astype(grad_x.dtype), alpha, beta)

"""
CPU reference implementations of mapped transposed 2D convolution.

Transposed convolution scatters every input element, scaled by the kernel,
into the output:

    y_full[n, o, i * s_h + ki, j * s_w + kj] += x[n, c, i, j] * w[o, c, ki, kj]

for every mapped (c, o), and the output is `y_full` cropped by `padding` on
each side, giving

    H_out = (H - 1) * s_h - 2 * p_h + K_h
    W_out = (W - 1) * s_w - 2 * p_w + K_w

Weights use the same (C_out, C_in, K_h, K_w) layout and the same (C_in,
C_out) mapping matrix as `conv2d_cpu`, so a deconvolution cell shares the
parameter layout of a convolution cell.
"""

from __future__ import annotations

from typing import Tuple
import numpy as np

from .conv2d_cpu import _blend_into, _pair


def conv_transpose_out_hw(
    H: int, W: int, k: Tuple[int, int], s: Tuple[int, int], p: Tuple[int, int]
) -> Tuple[int, int]:
    """
    Output spatial size of a transposed convolution.
    """
    H_out = (H - 1) * s[0] - 2 * p[0] + k[0]
    W_out = (W - 1) * s[1] - 2 * p[1] + k[1]
    return H_out, W_out


def conv2d_transpose_forward_cpu(
    alpha: float,
    x: np.ndarray,
    w: np.ndarray,
    beta: float,
    y: np.ndarray,
    mapping: np.ndarray,
    *,
    stride: int | Tuple[int, int],
    padding: int | Tuple[int, int],
) -> None:
    """
    Compute ``y = alpha * conv_transpose(x, w) + beta * y``.

    Parameters
    ----------
    x : np.ndarray
        Input of shape (N, C_in, H, W).
    w : np.ndarray
        Weights of shape (C_out, C_in, K_h, K_w).
    y : np.ndarray
        Output of shape (N, C_out, H_out, W_out), updated in place.
    mapping : np.ndarray
        Boolean matrix of shape (C_in, C_out).
    """
    s_h, s_w = _pair(stride)
    p_h, p_w = _pair(padding)

    N, C_in, H, W = x.shape
    C_out, _, K_h, K_w = w.shape
    H_out, W_out = y.shape[2], y.shape[3]

    y_full = np.zeros(
        (N, C_out, (H - 1) * s_h + K_h, (W - 1) * s_w + K_w), dtype=np.float64
    )
    for n in range(N):
        for c in range(C_in):
            outputs = np.flatnonzero(mapping[c, :])
            if outputs.size == 0:
                continue
            w_c = w[outputs, c].astype(np.float64)
            for i in range(H):
                h0 = i * s_h
                for j in range(W):
                    w0 = j * s_w
                    y_full[n, outputs, h0 : h0 + K_h, w0 : w0 + K_w] += (
                        float(x[n, c, i, j]) * w_c
                    )

    value = y_full[:, :, p_h : p_h + H_out, p_w : p_w + W_out]
    _blend_into(y, value.astype(y.dtype), alpha, beta)


def conv2d_transpose_backward_data_cpu(
    alpha: float,
    w: np.ndarray,
    grad_out: np.ndarray,
    beta: float,
    grad_x: np.ndarray,
    mapping: np.ndarray,
    *,
    stride: int | Tuple[int, int],
    padding: int | Tuple[int, int],
) -> None:
    """
    Compute ``grad_x = alpha * dL/dx + beta * grad_x``.

    Each input element gathers the output gradients it was scattered to.
    """
    s_h, s_w = _pair(stride)
    p_h, p_w = _pair(padding)

    N, C_in, H, W = grad_x.shape
    C_out, _, K_h, K_w = w.shape

    g_full = np.pad(
        grad_out.astype(np.float64),
        ((0, 0), (0, 0), (p_h, p_h), (p_w, p_w)),
        mode="constant",
    )

    acc = np.zeros(grad_x.shape, dtype=np.float64)
    for n in range(N):
        for c in range(C_in):
            outputs = np.flatnonzero(mapping[c, :])
            if outputs.size == 0:
                continue
            w_c = w[outputs, c].astype(np.float64)
            for i in range(H):
                h0 = i * s_h
                for j in range(W):
                    w0 = j * s_w
                    patch = g_full[n, outputs, h0 : h0 + K_h, w0 : w0 + K_w]
                    acc[n, c, i, j] = np.sum(patch * w_c)

    _blend_into(grad_x, acc.astype(grad_x.dtype), alpha, beta)


def conv2d_transpose_backward_weights_cpu(
    alpha: float,
    x: np.ndarray,
    grad_out: np.ndarray,
    beta: float,
    grad_w: np.ndarray,
    mapping: np.ndarray,
    *,
    stride: int | Tuple[int, int],
    padding: int | Tuple[int, int],
) -> None:
    """
    Compute ``grad_w = alpha * dL/dw + beta * grad_w``.
    """
    s_h, s_w = _pair(stride)
    p_h, p_w = _pair(padding)

    N, C_in, H, W = x.shape
    C_out, _, K_h, K_w = grad_w.shape

    g_full = np.pad(
        grad_out.astype(np.float64),
        ((0, 0), (0, 0), (p_h, p_h), (p_w, p_w)),
        mode="constant",
    )

    acc = np.zeros(grad_w.shape, dtype=np.float64)
    for n in range(N):
        for c in range(C_in):
            outputs = np.flatnonzero(mapping[c, :])
            if outputs.size == 0:
                continue
            for i in range(H):
                h0 = i * s_h
                for j in range(W):
                    w0 = j * s_w
                    patch = g_full[n, outputs, h0 : h0 + K_h, w0 : w0 + K_w]
                    acc[outputs, c] += float(x[n, c, i, j]) * patch

    _blend_into(grad_w, acc.astype(grad_w.dtype), alpha, beta)

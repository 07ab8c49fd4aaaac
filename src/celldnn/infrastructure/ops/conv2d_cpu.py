"""
CPU-based naive mapped Conv2D kernels for celldnn.

This module provides reference implementations of the 2D convolution forward
and backward passes used by the `Frame` backend. The kernels are written with
explicit nested Python loops to prioritize correctness and clarity over
performance.

Connectivity mapping
--------------------
Every kernel takes a boolean matrix ``mapping`` of shape (C_in, C_out).
Output channel `o` only sees input channel `c` when ``mapping[c, o]`` is set:
unmapped weights never contribute to the output, and their gradient is 0.

Blending
--------
``dst = alpha * result + beta * dst``; ``beta == 0`` overwrites `dst`.

Tensor layout
-------------
Activations are NCHW; weights are (C_out, C_in, K_h, K_w).
"""

from __future__ import annotations

from typing import Tuple
import numpy as np


def _pair(v: int | Tuple[int, int]) -> Tuple[int, int]:
    """
    Normalize an integer or pair into a 2-tuple.
    """
    return tuple(v) if isinstance(v, (tuple, list)) else (v, v)


def conv_out_hw(
    H: int, W: int, k: Tuple[int, int], s: Tuple[int, int], p: Tuple[int, int]
) -> Tuple[int, int]:
    """
    Output spatial size of a convolution:
    ``floor((H + 2 * p_h - K_h) / s_h) + 1`` (same for W).
    """
    H_out = (H + 2 * p[0] - k[0]) // s[0] + 1
    W_out = (W + 2 * p[1] - k[1]) // s[1] + 1
    return H_out, W_out


def _blend_into(dst: np.ndarray, value: np.ndarray, alpha: float, beta: float) -> None:
    if beta == 0.0:
        dst[...] = alpha * value
    else:
        dst[...] = alpha * value + beta * dst


def conv2d_forward_cpu(
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
    Compute ``y = alpha * conv(x, w) + beta * y`` with zero padding.

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
    stride, padding : int or tuple[int, int]
        Convolution geometry.
    """
    s_h, s_w = _pair(stride)
    p_h, p_w = _pair(padding)

    N, C_in, H, W = x.shape
    C_out, _, K_h, K_w = w.shape
    H_out, W_out = y.shape[2], y.shape[3]

    x_pad = np.pad(x, ((0, 0), (0, 0), (p_h, p_h), (p_w, p_w)), mode="constant")

    out = np.zeros(y.shape, dtype=np.float64)
    for n in range(N):
        for o in range(C_out):
            channels = np.flatnonzero(mapping[:, o])
            if channels.size == 0:
                continue
            w_o = w[o, channels].astype(np.float64)
            for i in range(H_out):
                h0 = i * s_h
                for j in range(W_out):
                    w0 = j * s_w
                    patch = x_pad[n, channels, h0 : h0 + K_h, w0 : w0 + K_w]
                    out[n, o, i, j] = np.sum(patch * w_o)

    _blend_into(y, out.astype(y.dtype), alpha, beta)


def conv2d_backward_data_cpu(
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

    Parameters
    ----------
    w : np.ndarray
        Weights of shape (C_out, C_in, K_h, K_w).
    grad_out : np.ndarray
        Gradient w.r.t. the output, shape (N, C_out, H_out, W_out).
    grad_x : np.ndarray
        Gradient w.r.t. the input, shape (N, C_in, H, W), updated in place.
    """
    s_h, s_w = _pair(stride)
    p_h, p_w = _pair(padding)

    N, C_in, H, W = grad_x.shape
    C_out, _, K_h, K_w = w.shape
    H_out, W_out = grad_out.shape[2], grad_out.shape[3]

    gx_pad = np.zeros((N, C_in, H + 2 * p_h, W + 2 * p_w), dtype=np.float64)
    for n in range(N):
        for o in range(C_out):
            channels = np.flatnonzero(mapping[:, o])
            if channels.size == 0:
                continue
            w_o = w[o, channels].astype(np.float64)
            for i in range(H_out):
                h0 = i * s_h
                for j in range(W_out):
                    w0 = j * s_w
                    gx_pad[n, channels, h0 : h0 + K_h, w0 : w0 + K_w] += (
                        float(grad_out[n, o, i, j]) * w_o
                    )

    value = gx_pad[:, :, p_h : p_h + H, p_w : p_w + W]
    _blend_into(grad_x, value.astype(grad_x.dtype), alpha, beta)


def conv2d_backward_weights_cpu(
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

    Unmapped (c, o) pairs receive a zero contribution.
    """
    s_h, s_w = _pair(stride)
    p_h, p_w = _pair(padding)

    N, C_in, H, W = x.shape
    C_out, _, K_h, K_w = grad_w.shape
    H_out, W_out = grad_out.shape[2], grad_out.shape[3]

    x_pad = np.pad(x, ((0, 0), (0, 0), (p_h, p_h), (p_w, p_w)), mode="constant")

    acc = np.zeros(grad_w.shape, dtype=np.float64)
    for n in range(N):
        for o in range(C_out):
            channels = np.flatnonzero(mapping[:, o])
            if channels.size == 0:
                continue
            for i in range(H_out):
                h0 = i * s_h
                for j in range(W_out):
                    w0 = j * s_w
                    patch = x_pad[n, channels, h0 : h0 + K_h, w0 : w0 + K_w]
                    acc[o, channels] += float(grad_out[n, o, i, j]) * patch

    _blend_into(grad_w, acc.astype(grad_w.dtype), alpha, beta)


def bias_forward_cpu(bias: np.ndarray, y: np.ndarray) -> None:
    """
    Add a per-output-channel bias to an NCHW output in place.
    """
    N, C_out = y.shape[0], y.shape[1]
    for n in range(N):
        for o in range(C_out):
            y[n, o] += bias[o]


def bias_backward_cpu(
    alpha: float, grad_out: np.ndarray, beta: float, grad_b: np.ndarray
) -> None:
    """
    Compute ``grad_b = alpha * sum(grad_out over N, H, W) + beta * grad_b``.
    """
    C_out = grad_out.shape[1]
    acc = np.zeros((C_out,), dtype=np.float64)
    for o in range(C_out):
        acc[o] = float(np.sum(grad_out[:, o], dtype=np.float64))
    _blend_into(grad_b, acc.astype(grad_b.dtype), alpha, beta)

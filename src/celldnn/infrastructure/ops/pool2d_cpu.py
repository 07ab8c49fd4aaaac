"""
CPU reference implementations of mapped 2D pooling (NumPy backend).

This module provides **naive, readable, and correct** NumPy-based
implementations of max and average pooling for tensors in **NCHW** layout,
generalized to a channel-to-output connectivity mapping: output channel `o`
pools over every input channel `c` with ``mapping[c, o]`` set, in addition to
the spatial window.

These functions serve as:

- The kernels of the `Frame` backend
- The numerical ground truth the vectorized kernels are tested against

Blending
--------
Every kernel writes ``dst = alpha * result + beta * dst``. With ``beta == 0``
the previous contents of `dst` are ignored (never multiplied), so stale or
uninitialized values cannot leak into the result.

Windows and padding
-------------------
- Window ``(i, j)`` covers rows ``[i * s_h - p_h, i * s_h - p_h + k_h)`` and
  columns ``[j * s_w - p_w, j * s_w - p_w + k_w)``; only in-bounds positions
  take part.
- Max pooling records, per output element, the flat index
  ``c * H * W + h * W + w`` of the selected input element in its input group,
  or ``-1`` when the window holds no mapped in-bounds element.
- Average pooling divides by the number of in-bounds positions times the
  number of mapped channels (padding excluded), in both directions.
"""

from __future__ import annotations

from typing import Tuple
import numpy as np


def _pair(v: int | Tuple[int, int]) -> Tuple[int, int]:
    """
    Normalize an integer or pair into a 2-tuple.
    """
    return tuple(v) if isinstance(v, (tuple, list)) else (v, v)


def pool_out_hw(
    H: int, W: int, k: Tuple[int, int], s: Tuple[int, int], p: Tuple[int, int]
) -> Tuple[int, int]:
    """
    Compute output spatial dimensions for a 2D pooling operation.

    Parameters
    ----------
    H, W : int
        Input height and width.
    k : tuple[int, int]
        Window size (k_h, k_w).
    s : tuple[int, int]
        Stride (s_h, s_w).
    p : tuple[int, int]
        Padding (p_h, p_w).

    Returns
    -------
    tuple[int, int]
        Output height and width (H_out, W_out).
    """
    k_h, k_w = k
    s_h, s_w = s
    p_h, p_w = p
    H_out = (H + 2 * p_h - k_h) // s_h + 1
    W_out = (W + 2 * p_w - k_w) // s_w + 1
    return max(H_out, 0), max(W_out, 0)


def _window(i: int, size: int, k: int, s: int, p: int) -> Tuple[int, int]:
    start = i * s - p
    return max(start, 0), min(start + k, size)


def _blend(alpha: float, value: float, beta: float, old: float) -> float:
    return alpha * value + beta * old if beta != 0.0 else alpha * value


def maxpool2d_forward_cpu(
    alpha: float,
    x: np.ndarray,
    beta: float,
    y: np.ndarray,
    argmax: np.ndarray,
    mapping: np.ndarray,
    *,
    kernel_size: int | Tuple[int, int],
    stride: int | Tuple[int, int],
    padding: int | Tuple[int, int] = 0,
) -> None:
    """
    Naive mapped max-pooling forward pass.

    Parameters
    ----------
    alpha, beta : float
        Blending factors.
    x : np.ndarray
        Input of shape (N, C, H, W).
    y : np.ndarray
        Output of shape (N, O, H_out, W_out), updated in place.
    argmax : np.ndarray
        int64 array of shape (N, O, H_out, W_out) receiving the flat index of
        each selected input element (or -1).
    mapping : np.ndarray
        Boolean connectivity matrix of shape (C, O).
    kernel_size, stride, padding : int or tuple[int, int]
        Window geometry.

    Notes
    -----
    Ties resolve to the first maximum in (channel, row, column) order.
    """
    k_h, k_w = _pair(kernel_size)
    s_h, s_w = _pair(stride)
    p_h, p_w = _pair(padding)

    N, C, H, W = x.shape
    _, O, H_out, W_out = y.shape

    for n in range(N):
        for o in range(O):
            channels = np.flatnonzero(mapping[:, o])
            for i in range(H_out):
                h0, h1 = _window(i, H, k_h, s_h, p_h)
                for j in range(W_out):
                    w0, w1 = _window(j, W, k_w, s_w, p_w)

                    best = None
                    best_idx = -1
                    for c in channels:
                        for h in range(h0, h1):
                            for w in range(w0, w1):
                                v = x[n, c, h, w]
                                if best is None or v > best:
                                    best = v
                                    best_idx = c * H * W + h * W + w

                    value = 0.0 if best is None else float(best)
                    y[n, o, i, j] = _blend(alpha, value, beta, y[n, o, i, j])
                    argmax[n, o, i, j] = best_idx


def maxpool2d_backward_cpu(
    alpha: float,
    grad_out: np.ndarray,
    beta: float,
    grad_x: np.ndarray,
    argmax: np.ndarray,
) -> None:
    """
    Naive max-pooling backward pass.

    Routes ``alpha * grad_out`` to the input element recorded in `argmax`
    for each output element; every other input element receives no
    contribution.

    Parameters
    ----------
    grad_out : np.ndarray
        Upstream gradient of shape (N, O, H_out, W_out).
    grad_x : np.ndarray
        Gradient w.r.t. the input, shape (N, C, H, W), updated in place.
    argmax : np.ndarray
        Indices recorded by `maxpool2d_forward_cpu`.
    """
    N, C, H, W = grad_x.shape
    _, O, H_out, W_out = grad_out.shape

    if beta == 0.0:
        grad_x.fill(0)
    elif beta != 1.0:
        grad_x *= beta

    for n in range(N):
        flat = grad_x[n].reshape(-1)
        for o in range(O):
            for i in range(H_out):
                for j in range(W_out):
                    idx = int(argmax[n, o, i, j])
                    if idx >= 0:
                        flat[idx] += alpha * grad_out[n, o, i, j]


def avgpool2d_forward_cpu(
    alpha: float,
    x: np.ndarray,
    beta: float,
    y: np.ndarray,
    mapping: np.ndarray,
    *,
    kernel_size: int | Tuple[int, int],
    stride: int | Tuple[int, int],
    padding: int | Tuple[int, int] = 0,
) -> None:
    """
    Naive mapped average-pooling forward pass.

    The divisor of each output element is the number of in-bounds window
    positions times the number of channels mapped to it. An output with no
    mapped channel is 0.
    """
    k_h, k_w = _pair(kernel_size)
    s_h, s_w = _pair(stride)
    p_h, p_w = _pair(padding)

    N, C, H, W = x.shape
    _, O, H_out, W_out = y.shape

    for n in range(N):
        for o in range(O):
            channels = np.flatnonzero(mapping[:, o])
            for i in range(H_out):
                h0, h1 = _window(i, H, k_h, s_h, p_h)
                for j in range(W_out):
                    w0, w1 = _window(j, W, k_w, s_w, p_w)

                    count = len(channels) * max(h1 - h0, 0) * max(w1 - w0, 0)
                    acc = 0.0
                    for c in channels:
                        for h in range(h0, h1):
                            for w in range(w0, w1):
                                acc += float(x[n, c, h, w])

                    value = acc / count if count > 0 else 0.0
                    y[n, o, i, j] = _blend(alpha, value, beta, y[n, o, i, j])


def avgpool2d_backward_cpu(
    alpha: float,
    grad_out: np.ndarray,
    beta: float,
    grad_x: np.ndarray,
    mapping: np.ndarray,
    *,
    kernel_size: int | Tuple[int, int],
    stride: int | Tuple[int, int],
    padding: int | Tuple[int, int] = 0,
) -> None:
    """
    Naive mapped average-pooling backward pass.

    Each output gradient is spread evenly over the in-bounds positions of
    the mapped channels of its window, using the same divisor as the
    forward pass.
    """
    k_h, k_w = _pair(kernel_size)
    s_h, s_w = _pair(stride)
    p_h, p_w = _pair(padding)

    N, C, H, W = grad_x.shape
    _, O, H_out, W_out = grad_out.shape

    if beta == 0.0:
        grad_x.fill(0)
    elif beta != 1.0:
        grad_x *= beta

    for n in range(N):
        for o in range(O):
            channels = np.flatnonzero(mapping[:, o])
            for i in range(H_out):
                h0, h1 = _window(i, H, k_h, s_h, p_h)
                for j in range(W_out):
                    w0, w1 = _window(j, W, k_w, s_w, p_w)

                    count = len(channels) * max(h1 - h0, 0) * max(w1 - w0, 0)
                    if count == 0:
                        continue
                    g = alpha * grad_out[n, o, i, j] / count
                    for c in channels:
                        grad_x[n, c, h0:h1, w0:w1] += g

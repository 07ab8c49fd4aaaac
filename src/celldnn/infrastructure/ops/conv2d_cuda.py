"""
Vectorized mapped Conv2D kernels for the `Frame_CUDA` backend.

Same contracts as `conv2d_cpu`, written against an array module `xp`. The
convolution is expressed as a gather of ``K_h * K_w`` strided slices followed
by a single `einsum` contraction with the masked weights, which CuPy maps to
cuBLAS batched GEMMs.
"""

from __future__ import annotations

from typing import Any, Tuple

from .conv2d_cpu import _pair
from .pool2d_cuda import _gather_windows


def _blend_into(dst: Any, value: Any, alpha: float, beta: float) -> None:
    if beta == 0.0:
        dst[...] = alpha * value
    else:
        dst[...] = alpha * value + beta * dst


def _masked_weights(xp: Any, w: Any, mapping: Any) -> Any:
    """
    Zero the weights of unmapped (c, o) pairs and flatten the kernel:
    returns (C_out, C_in, K_h * K_w).
    """
    C_out, C_in, K_h, K_w = w.shape
    mask = xp.asarray(mapping).T.astype(w.dtype)
    return (w * mask[:, :, None, None]).reshape(C_out, C_in, K_h * K_w)


def conv2d_forward_cuda(
    xp: Any,
    alpha: float,
    x: Any,
    w: Any,
    beta: float,
    y: Any,
    mapping: Any,
    *,
    stride: int | Tuple[int, int],
    padding: int | Tuple[int, int],
) -> None:
    """
    ``y = alpha * conv(x, w) + beta * y``; see `conv2d_cpu.conv2d_forward_cpu`.
    """
    s = _pair(stride)
    p = _pair(padding)
    K_h, K_w = w.shape[2], w.shape[3]
    out_hw = (y.shape[2], y.shape[3])
    if y.size == 0:
        return

    win = _gather_windows(xp, x, (K_h, K_w), s, p, out_hw)
    wm = _masked_weights(xp, w, mapping)
    _blend_into(y, xp.einsum("nckij,ock->noij", win, wm), alpha, beta)


def conv2d_backward_data_cuda(
    xp: Any,
    alpha: float,
    w: Any,
    grad_out: Any,
    beta: float,
    grad_x: Any,
    mapping: Any,
    *,
    stride: int | Tuple[int, int],
    padding: int | Tuple[int, int],
) -> None:
    """
    ``grad_x = alpha * dL/dx + beta * grad_x``; see
    `conv2d_cpu.conv2d_backward_data_cpu`.
    """
    s_h, s_w = _pair(stride)
    p_h, p_w = _pair(padding)

    N, C_in, H, W = grad_x.shape
    K_h, K_w = w.shape[2], w.shape[3]
    H_out, W_out = grad_out.shape[2], grad_out.shape[3]

    if grad_out.size == 0:
        _blend_into(grad_x, xp.zeros_like(grad_x), alpha, beta)
        return

    wm = _masked_weights(xp, w, mapping)
    cols = xp.einsum("noij,ock->nckij", grad_out, wm)

    gx_pad = xp.zeros((N, C_in, H + 2 * p_h, W + 2 * p_w), dtype=grad_x.dtype)
    for ki in range(K_h):
        for kj in range(K_w):
            gx_pad[
                :,
                :,
                ki : ki + s_h * (H_out - 1) + 1 : s_h,
                kj : kj + s_w * (W_out - 1) + 1 : s_w,
            ] += cols[:, :, ki * K_w + kj]

    _blend_into(grad_x, gx_pad[:, :, p_h : p_h + H, p_w : p_w + W], alpha, beta)


def conv2d_backward_weights_cuda(
    xp: Any,
    alpha: float,
    x: Any,
    grad_out: Any,
    beta: float,
    grad_w: Any,
    mapping: Any,
    *,
    stride: int | Tuple[int, int],
    padding: int | Tuple[int, int],
) -> None:
    """
    ``grad_w = alpha * dL/dw + beta * grad_w``; see
    `conv2d_cpu.conv2d_backward_weights_cpu`.
    """
    s = _pair(stride)
    p = _pair(padding)
    C_out, C_in, K_h, K_w = grad_w.shape
    out_hw = (grad_out.shape[2], grad_out.shape[3])
    if grad_out.size == 0:
        _blend_into(grad_w, xp.zeros_like(grad_w), alpha, beta)
        return

    win = _gather_windows(xp, x, (K_h, K_w), s, p, out_hw)
    dw = xp.einsum("nckij,noij->ock", win, grad_out).reshape(grad_w.shape)
    mask = xp.asarray(mapping).T.astype(grad_w.dtype)
    _blend_into(grad_w, dw * mask[:, :, None, None], alpha, beta)


def bias_forward_cuda(xp: Any, bias: Any, y: Any) -> None:
    """
    Add a per-output-channel bias in place.
    """
    shape = (1, -1) + (1,) * (y.ndim - 2)
    y += bias.reshape(shape)


def bias_backward_cuda(
    xp: Any, alpha: float, grad_out: Any, beta: float, grad_b: Any
) -> None:
    """
    ``grad_b = alpha * sum(grad_out over all but axis 1) + beta * grad_b``.
    """
    axes = (0,) + tuple(range(2, grad_out.ndim))
    _blend_into(grad_b, grad_out.sum(axis=axes), alpha, beta)

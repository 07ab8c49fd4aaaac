"""
Vectorized mapped transposed Conv2D kernels for the `Frame_CUDA` backend.

Same contracts as `conv2d_transpose_cpu`. The forward pass scatters one
`einsum` contraction per kernel offset into a strided slice of the uncropped
output; the backward passes gather the padded output gradient with the same
window helper the convolution kernels use.
"""

from __future__ import annotations

from typing import Any, Tuple

from .conv2d_cpu import _pair
from .conv2d_cuda import _blend_into, _masked_weights
from .pool2d_cuda import _gather_windows


def conv2d_transpose_forward_cuda(
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
    ``y = alpha * conv_transpose(x, w) + beta * y``.
    """
    s_h, s_w = _pair(stride)
    p_h, p_w = _pair(padding)

    N, C_in, H, W = x.shape
    C_out, _, K_h, K_w = w.shape
    H_out, W_out = y.shape[2], y.shape[3]

    wm = _masked_weights(xp, w, mapping)
    y_full = xp.zeros((N, C_out, (H - 1) * s_h + K_h, (W - 1) * s_w + K_w), dtype=y.dtype)
    for ki in range(K_h):
        for kj in range(K_w):
            y_full[
                :,
                :,
                ki : ki + s_h * (H - 1) + 1 : s_h,
                kj : kj + s_w * (W - 1) + 1 : s_w,
            ] += xp.einsum("ncij,oc->noij", x, wm[:, :, ki * K_w + kj])

    _blend_into(y, y_full[:, :, p_h : p_h + H_out, p_w : p_w + W_out], alpha, beta)


def _gradient_windows(
    xp: Any, grad_out: Any, k: Tuple[int, int], s: Tuple[int, int], p: Tuple[int, int], hw: Tuple[int, int]
) -> Any:
    """
    Windows of the uncropped output gradient seen by each input position:
    shape (N, C_out, K_h * K_w, H, W).
    """
    p_h, p_w = p
    g_full = xp.pad(grad_out, ((0, 0), (0, 0), (p_h, p_h), (p_w, p_w)), mode="constant")
    return _gather_windows(xp, g_full, k, s, (0, 0), hw)


def conv2d_transpose_backward_data_cuda(
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
    ``grad_x = alpha * dL/dx + beta * grad_x``.
    """
    s = _pair(stride)
    p = _pair(padding)
    N, C_in, H, W = grad_x.shape
    K_h, K_w = w.shape[2], w.shape[3]
    if grad_x.size == 0:
        return

    win = _gradient_windows(xp, grad_out, (K_h, K_w), s, p, (H, W))
    wm = _masked_weights(xp, w, mapping)
    _blend_into(grad_x, xp.einsum("nokij,ock->ncij", win, wm), alpha, beta)


def conv2d_transpose_backward_weights_cuda(
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
    ``grad_w = alpha * dL/dw + beta * grad_w``.
    """
    s = _pair(stride)
    p = _pair(padding)
    N, C_in, H, W = x.shape
    C_out, _, K_h, K_w = grad_w.shape
    if x.size == 0:
        _blend_into(grad_w, xp.zeros_like(grad_w), alpha, beta)
        return

    win = _gradient_windows(xp, grad_out, (K_h, K_w), s, p, (H, W))
    dw = xp.einsum("ncij,nokij->ock", x, win).reshape(grad_w.shape)
    mask = xp.asarray(mapping).T.astype(grad_w.dtype)
    _blend_into(grad_w, dw * mask[:, :, None, None], alpha, beta)

"""
Vectorized mapped 2D pooling kernels for the `Frame_CUDA` backend.

The functions here implement exactly the semantics of `pool2d_cpu` but are
written against an array module `xp` (CuPy for device arrays). They never
loop over elements: windows are gathered with one strided slice per kernel
offset, channel mapping is applied with a mask, and gradients are scattered
with `xp.bincount` (max) or strided slice accumulation (average).

Passing ``xp=numpy`` runs the same code on host arrays, which is how the
kernels are checked against the naive reference on machines without CUDA.
"""

from __future__ import annotations

from typing import Any, Tuple

from .pool2d_cpu import _pair, pool_out_hw


def _store(y: Any, value: Any, alpha: float, beta: float) -> None:
    if beta == 0.0:
        y[...] = alpha * value
    else:
        y[...] = alpha * value + beta * y


def _scale_for_accumulation(grad_x: Any, beta: float) -> None:
    if beta == 0.0:
        grad_x.fill(0)
    elif beta != 1.0:
        grad_x *= beta


def _gather_windows(
    xp: Any,
    x: Any,
    k: Tuple[int, int],
    s: Tuple[int, int],
    p: Tuple[int, int],
    out_hw: Tuple[int, int],
) -> Any:
    """
    Return zero-padded windows of shape (N, C, k_h * k_w, H_out, W_out).
    """
    k_h, k_w = k
    s_h, s_w = s
    p_h, p_w = p
    H_out, W_out = out_hw

    x_pad = xp.pad(x, ((0, 0), (0, 0), (p_h, p_h), (p_w, p_w)), mode="constant")
    cols = []
    for ki in range(k_h):
        for kj in range(k_w):
            cols.append(
                x_pad[
                    :,
                    :,
                    ki : ki + s_h * (H_out - 1) + 1 : s_h,
                    kj : kj + s_w * (W_out - 1) + 1 : s_w,
                ]
            )
    return xp.stack(cols, axis=2)


def _window_positions(
    xp: Any,
    H: int,
    W: int,
    k: Tuple[int, int],
    s: Tuple[int, int],
    p: Tuple[int, int],
    out_hw: Tuple[int, int],
) -> Tuple[Any, Any]:
    """
    Return ``(inb, pos)``, both of shape (k_h * k_w, H_out, W_out): whether
    each window position is inside the input, and its flat ``h * W + w``.
    """
    k_h, k_w = k
    s_h, s_w = s
    p_h, p_w = p
    H_out, W_out = out_hw

    ki = xp.repeat(xp.arange(k_h), k_w)[:, None, None]
    kj = xp.tile(xp.arange(k_w), k_h)[:, None, None]
    h = xp.arange(H_out)[None, :, None] * s_h - p_h + ki
    w = xp.arange(W_out)[None, None, :] * s_w - p_w + kj

    inb = (h >= 0) & (h < H) & (w >= 0) & (w < W)
    pos = h * W + w
    return inb, pos


def maxpool2d_forward_cuda(
    xp: Any,
    alpha: float,
    x: Any,
    beta: float,
    y: Any,
    argmax: Any,
    mapping: Any,
    *,
    kernel_size: int | Tuple[int, int],
    stride: int | Tuple[int, int],
    padding: int | Tuple[int, int] = 0,
) -> None:
    """
    Mapped max-pooling forward pass; see `pool2d_cpu.maxpool2d_forward_cpu`.
    """
    k = _pair(kernel_size)
    s = _pair(stride)
    p = _pair(padding)

    N, C, H, W = x.shape
    O = y.shape[1]
    out_hw = pool_out_hw(H, W, k, s, p)
    if N == 0 or O == 0 or 0 in out_hw:
        return

    K = k[0] * k[1]
    mask = xp.asarray(mapping, dtype=bool).T  # (O, C)
    win = _gather_windows(xp, x, k, s, p, out_hw)
    inb, pos = _window_positions(xp, H, W, k, s, p, out_hw)

    neg_inf = xp.asarray(-xp.inf, dtype=x.dtype)
    win = xp.where(inb[None, None], win, neg_inf)
    vals = xp.where(mask[None, :, :, None, None, None], win[:, None], neg_inf)
    vals = vals.reshape(N, O, C * K, out_hw[0], out_hw[1])

    best_k = xp.argmax(vals, axis=2)
    best = xp.take_along_axis(vals, best_k[:, :, None], axis=2)[:, :, 0]

    ch = best_k // K
    kk = best_k % K
    ii = xp.arange(out_hw[0])[:, None]
    jj = xp.arange(out_hw[1])[None, :]
    idx = ch * (H * W) + pos[kk, ii, jj]

    valid = mask.any(axis=1)[:, None, None] & inb.any(axis=0)[None]
    valid = xp.broadcast_to(valid[None], idx.shape)

    _store(y, xp.where(valid, best, 0), alpha, beta)
    argmax[...] = xp.where(valid, idx, -1)


def maxpool2d_backward_cuda(
    xp: Any,
    alpha: float,
    grad_out: Any,
    beta: float,
    grad_x: Any,
    argmax: Any,
) -> None:
    """
    Max-pooling backward pass; see `pool2d_cpu.maxpool2d_backward_cpu`.
    """
    N, C, H, W = grad_x.shape
    _scale_for_accumulation(grad_x, beta)

    valid = argmax >= 0
    if not bool(valid.any()):
        return

    base = (xp.arange(N) * (C * H * W))[:, None, None, None]
    flat_idx = (argmax + base)[valid]
    weights = (alpha * grad_out)[valid].astype(xp.float64)
    acc = xp.bincount(flat_idx, weights=weights, minlength=N * C * H * W)
    grad_x += acc.reshape(grad_x.shape).astype(grad_x.dtype)


def avgpool2d_forward_cuda(
    xp: Any,
    alpha: float,
    x: Any,
    beta: float,
    y: Any,
    mapping: Any,
    *,
    kernel_size: int | Tuple[int, int],
    stride: int | Tuple[int, int],
    padding: int | Tuple[int, int] = 0,
) -> None:
    """
    Mapped average-pooling forward pass; see
    `pool2d_cpu.avgpool2d_forward_cpu`.
    """
    k = _pair(kernel_size)
    s = _pair(stride)
    p = _pair(padding)

    N, C, H, W = x.shape
    out_hw = pool_out_hw(H, W, k, s, p)
    if N == 0 or 0 in out_hw:
        return

    maskf = xp.asarray(mapping).astype(x.dtype)  # (C, O)
    win = _gather_windows(xp, x, k, s, p, out_hw)
    inb, _ = _window_positions(xp, H, W, k, s, p, out_hw)

    total = xp.einsum("nckij,co->noij", win, maskf)
    count = maskf.sum(axis=0)[:, None, None] * inb.sum(axis=0)[None].astype(x.dtype)
    safe = xp.where(count > 0, count, 1)

    _store(y, xp.where(count[None] > 0, total / safe[None], 0), alpha, beta)


def avgpool2d_backward_cuda(
    xp: Any,
    alpha: float,
    grad_out: Any,
    beta: float,
    grad_x: Any,
    mapping: Any,
    *,
    kernel_size: int | Tuple[int, int],
    stride: int | Tuple[int, int],
    padding: int | Tuple[int, int] = 0,
) -> None:
    """
    Mapped average-pooling backward pass; see
    `pool2d_cpu.avgpool2d_backward_cpu`.
    """
    k_h, k_w = k = _pair(kernel_size)
    s_h, s_w = s = _pair(stride)
    p_h, p_w = p = _pair(padding)

    N, C, H, W = grad_x.shape
    _scale_for_accumulation(grad_x, beta)

    out_hw = pool_out_hw(H, W, k, s, p)
    H_out, W_out = out_hw
    if N == 0 or 0 in out_hw:
        return

    maskf = xp.asarray(mapping).astype(grad_x.dtype)
    inb, _ = _window_positions(xp, H, W, k, s, p, out_hw)
    count = maskf.sum(axis=0)[:, None, None] * inb.sum(axis=0)[None].astype(grad_x.dtype)
    safe = xp.where(count > 0, count, 1)

    g = xp.where(count[None] > 0, alpha * grad_out / safe[None], 0)
    g_c = xp.einsum("noij,co->ncij", g, maskf)

    gx_pad = xp.zeros((N, C, H + 2 * p_h, W + 2 * p_w), dtype=grad_x.dtype)
    for ki in range(k_h):
        for kj in range(k_w):
            gx_pad[
                :,
                :,
                ki : ki + s_h * (H_out - 1) + 1 : s_h,
                kj : kj + s_w * (W_out - 1) + 1 : s_w,
            ] += g_c

    grad_x += gx_pad[:, :, p_h : p_h + H, p_w : p_w + W]

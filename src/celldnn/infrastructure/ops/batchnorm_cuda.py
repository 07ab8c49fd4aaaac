"""
Vectorized per-channel batch normalization for the `Frame_CUDA` backend.

Same contracts as `batchnorm_cpu`; reductions run over axes (0, 2, 3) in one
call each.
"""

from __future__ import annotations

from typing import Any

from .conv2d_cuda import _blend_into

_AXES = (0, 2, 3)


def _bc(v: Any) -> Any:
    return v.reshape(1, -1, 1, 1)


def batchnorm_forward_training_cuda(
    xp: Any,
    alpha: float,
    x: Any,
    beta: float,
    y: Any,
    scale: Any,
    bias: Any,
    running_mean: Any,
    running_var: Any,
    saved_mean: Any,
    saved_inv_var: Any,
    *,
    epsilon: float,
    momentum: float,
) -> None:
    xd = x.astype(xp.float64)
    mean = xd.mean(axis=_AXES)
    var = ((xd - _bc(mean)) ** 2).mean(axis=_AXES)
    inv = 1.0 / xp.sqrt(var + epsilon)

    saved_mean[...] = mean
    saved_inv_var[...] = inv
    running_mean[...] = momentum * running_mean + (1.0 - momentum) * mean
    running_var[...] = momentum * running_var + (1.0 - momentum) * var

    out = _bc(scale) * (xd - _bc(mean)) * _bc(inv) + _bc(bias)
    _blend_into(y, out.astype(y.dtype), alpha, beta)


def batchnorm_forward_inference_cuda(
    xp: Any,
    alpha: float,
    x: Any,
    beta: float,
    y: Any,
    scale: Any,
    bias: Any,
    running_mean: Any,
    running_var: Any,
    *,
    epsilon: float,
) -> None:
    inv = 1.0 / xp.sqrt(running_var.astype(xp.float64) + epsilon)
    out = _bc(scale) * (x.astype(xp.float64) - _bc(running_mean)) * _bc(inv) + _bc(bias)
    _blend_into(y, out.astype(y.dtype), alpha, beta)


def batchnorm_backward_cuda(
    xp: Any,
    alpha: float,
    x: Any,
    grad_out: Any,
    scale: Any,
    saved_mean: Any,
    saved_inv_var: Any,
    beta_params: float,
    grad_scale: Any,
    grad_bias: Any,
    beta_data: float,
    grad_x: Any,
) -> None:
    m = float(x.size // x.shape[1]) if x.shape[1] else 0.0
    g = grad_out.astype(xp.float64)
    inv = saved_inv_var.astype(xp.float64)
    x_hat = (x.astype(xp.float64) - _bc(saved_mean)) * _bc(inv)

    d_bias = g.sum(axis=_AXES)
    d_scale = (g * x_hat).sum(axis=_AXES)

    _blend_into(grad_scale, d_scale.astype(grad_scale.dtype), alpha, beta_params)
    _blend_into(grad_bias, d_bias.astype(grad_bias.dtype), alpha, beta_params)

    if grad_x is not None:
        dx = _bc(scale * inv / m) * (m * g - _bc(d_bias) - x_hat * _bc(d_scale))
        _blend_into(grad_x, dx.astype(grad_x.dtype), alpha, beta_data)

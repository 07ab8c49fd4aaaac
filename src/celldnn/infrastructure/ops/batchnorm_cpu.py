"""
CPU reference kernels for per-channel batch normalization (NumPy backend).

Layout and parameters
---------------------
- `x`, `y`, `grad_out`, `grad_x`: NCHW arrays.
- `scale`, `bias`, `running_mean`, `running_var`, `saved_mean`,
  `saved_inv_var`: 1-D arrays of length C, updated in place where noted.

Statistics
----------
Batch statistics are taken over the N, H and W axes of each channel. The
variance is the biased (population) estimator, both for normalization and
for the running average:

    running = momentum * running + (1 - momentum) * batch

The kernels loop over channels and accumulate in float64.
"""

from __future__ import annotations

import numpy as np


def _blend_channel(dst: np.ndarray, value: np.ndarray, alpha: float, beta: float) -> None:
    if beta == 0.0:
        dst[...] = (alpha * value).astype(dst.dtype)
    else:
        dst[...] = (alpha * value + beta * dst).astype(dst.dtype)


def batchnorm_forward_training_cpu(
    alpha: float,
    x: np.ndarray,
    beta: float,
    y: np.ndarray,
    scale: np.ndarray,
    bias: np.ndarray,
    running_mean: np.ndarray,
    running_var: np.ndarray,
    saved_mean: np.ndarray,
    saved_inv_var: np.ndarray,
    *,
    epsilon: float,
    momentum: float,
) -> None:
    """
    Training forward pass.

    Normalizes with the batch statistics, writes them to `saved_mean` /
    `saved_inv_var` (``1 / sqrt(var + epsilon)``) and folds them into the
    running statistics.
    """
    N, C = x.shape[0], x.shape[1]
    m = float(x[:, 0].size) if C else 0.0

    for c in range(C):
        xc = x[:, c].astype(np.float64)
        mean = float(xc.sum()) / m
        var = float(((xc - mean) ** 2).sum()) / m
        inv = 1.0 / np.sqrt(var + epsilon)

        saved_mean[c] = mean
        saved_inv_var[c] = inv
        running_mean[c] = momentum * float(running_mean[c]) + (1.0 - momentum) * mean
        running_var[c] = momentum * float(running_var[c]) + (1.0 - momentum) * var

        out = float(scale[c]) * (xc - mean) * inv + float(bias[c])
        _blend_channel(y[:, c], out, alpha, beta)


def batchnorm_forward_inference_cpu(
    alpha: float,
    x: np.ndarray,
    beta: float,
    y: np.ndarray,
    scale: np.ndarray,
    bias: np.ndarray,
    running_mean: np.ndarray,
    running_var: np.ndarray,
    *,
    epsilon: float,
) -> None:
    """
    Inference forward pass using the running statistics only.
    """
    C = x.shape[1]
    for c in range(C):
        xc = x[:, c].astype(np.float64)
        inv = 1.0 / np.sqrt(float(running_var[c]) + epsilon)
        out = float(scale[c]) * (xc - float(running_mean[c])) * inv + float(bias[c])
        _blend_channel(y[:, c], out, alpha, beta)


def batchnorm_backward_cpu(
    alpha: float,
    x: np.ndarray,
    grad_out: np.ndarray,
    scale: np.ndarray,
    saved_mean: np.ndarray,
    saved_inv_var: np.ndarray,
    beta_params: float,
    grad_scale: np.ndarray,
    grad_bias: np.ndarray,
    beta_data: float,
    grad_x: np.ndarray | None,
) -> None:
    """
    Backward pass from the statistics saved by the training forward pass.

    Parameters
    ----------
    beta_params : float
        Accumulation factor for `grad_scale` and `grad_bias`.
    beta_data : float
        Accumulation factor for `grad_x`.
    grad_x : np.ndarray or None
        Gradient w.r.t. the input; skipped when None.
    """
    C = x.shape[1]
    m = float(x[:, 0].size) if C else 0.0

    for c in range(C):
        xc = x[:, c].astype(np.float64)
        gc = grad_out[:, c].astype(np.float64)
        inv = float(saved_inv_var[c])
        x_hat = (xc - float(saved_mean[c])) * inv

        d_bias = float(gc.sum())
        d_scale = float((gc * x_hat).sum())

        _blend_channel(grad_scale[c : c + 1], np.array([d_scale]), alpha, beta_params)
        _blend_channel(grad_bias[c : c + 1], np.array([d_bias]), alpha, beta_params)

        if grad_x is not None:
            dx = float(scale[c]) * inv / m * (m * gc - d_bias - x_hat * d_scale)
            _blend_channel(grad_x[:, c], dx, alpha, beta_data)

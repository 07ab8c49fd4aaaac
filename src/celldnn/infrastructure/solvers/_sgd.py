"""
Stochastic Gradient Descent (SGD) solver.

This module provides the default solver of celldnn cells. A solver instance
updates one parameter tensor in place from the gradient summed over a
mini-batch, optionally with momentum and classical L2 weight decay.

Design notes
------------
- The gradient is a batch sum; the update divides it by `batch_size`.
- Momentum buffers are created lazily on the first update, with the shape
  of the parameter, on the side (host or device) the parameter is updated on.
- Every parameter tensor gets its own solver via `clone()`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

from ..tensor._tensor import Tensor
from ._base import check_batch_size, working_arrays


@dataclass
class SGDSolver:
    """
    Stochastic Gradient Descent solver.

    Update rule
    -----------
    For a parameter ``w`` with batch-summed gradient ``G``:

        g = G / batch_size + decay * w
        v = momentum * v - learning_rate * g
        w = w + v

    With ``momentum == 0`` this reduces to ``w -= learning_rate * g``.

    Parameters
    ----------
    learning_rate : float, optional
        Must be > 0. Defaults to 0.01.
    momentum : float, optional
        Must be in [0, 1). Defaults to 0.0.
    decay : float, optional
        L2 weight decay, must be >= 0. Defaults to 0.0.
    """

    learning_rate: float = 0.01
    momentum: float = 0.0
    decay: float = 0.0

    def __init__(
        self,
        learning_rate: float = 0.01,
        momentum: float = 0.0,
        decay: float = 0.0,
    ) -> None:
        self.learning_rate = float(learning_rate)
        self.momentum = float(momentum)
        self.decay = float(decay)

        if self.learning_rate <= 0.0:
            raise ValueError(f"learning_rate must be > 0, got {self.learning_rate}")
        if not (0.0 <= self.momentum < 1.0):
            raise ValueError(f"momentum must be in [0,1), got {self.momentum}")
        if self.decay < 0.0:
            raise ValueError(f"decay must be >= 0, got {self.decay}")

        # id(parameter) -> {"velocity": array}
        self._state: Dict[int, Dict[str, Any]] = {}

    def clone(self) -> "SGDSolver":
        return SGDSolver(self.learning_rate, self.momentum, self.decay)

    def update(self, parameter: Tensor, gradient: Tensor, batch_size: int) -> None:
        """
        Apply one SGD step to `parameter` in place.
        """
        batch_size = check_batch_size(batch_size)
        xp, p, g = working_arrays(parameter, gradient)

        step = g / float(batch_size)
        if self.decay != 0.0:
            step = step + self.decay * p

        if self.momentum == 0.0:
            p -= (self.learning_rate * step).astype(p.dtype)
            return

        st = self._state.get(id(parameter))
        if st is None:
            st = {"velocity": xp.zeros_like(p)}
            self._state[id(parameter)] = st

        v = st["velocity"]
        v[...] = self.momentum * v - self.learning_rate * step
        p += v

"""
Adam solver.

Maintains per-parameter first and second moment estimates, created lazily on
the first update on the side the parameter is updated on.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Tuple

from ..tensor._tensor import Tensor
from ._base import check_batch_size, working_arrays


@dataclass
class AdamSolver:
    """
    Adam solver.

    Update rule
    -----------
    With ``g_t`` the batch-averaged gradient at step ``t``:

        m_t = beta1 * m_{t-1} + (1 - beta1) * g_t
        v_t = beta2 * v_{t-1} + (1 - beta2) * (g_t ** 2)

        m_hat = m_t / (1 - beta1^t)
        v_hat = v_t / (1 - beta2^t)

        w <- w - learning_rate * m_hat / (sqrt(v_hat) + epsilon)

    Parameters
    ----------
    learning_rate : float, optional
        Must be > 0. Defaults to 1e-3.
    betas : tuple[float, float], optional
        Decay rates, each in (0, 1). Defaults to (0.9, 0.999).
    epsilon : float, optional
        Must be > 0. Defaults to 1e-8.
    decay : float, optional
        Classical L2 weight decay, must be >= 0. Defaults to 0.0.
    """

    learning_rate: float = 1e-3
    betas: Tuple[float, float] = (0.9, 0.999)
    epsilon: float = 1e-8
    decay: float = 0.0

    def __init__(
        self,
        learning_rate: float = 1e-3,
        betas: Tuple[float, float] = (0.9, 0.999),
        epsilon: float = 1e-8,
        decay: float = 0.0,
    ) -> None:
        self.learning_rate = float(learning_rate)
        self.betas = (float(betas[0]), float(betas[1]))
        self.epsilon = float(epsilon)
        self.decay = float(decay)

        b1, b2 = self.betas
        if self.learning_rate <= 0.0:
            raise ValueError(f"learning_rate must be > 0, got {self.learning_rate}")
        if not (0.0 < b1 < 1.0) or not (0.0 < b2 < 1.0):
            raise ValueError(f"betas must be in (0,1), got {self.betas}")
        if self.epsilon <= 0.0:
            raise ValueError(f"epsilon must be > 0, got {self.epsilon}")
        if self.decay < 0.0:
            raise ValueError(f"decay must be >= 0, got {self.decay}")

        # id(parameter) -> {"t": int, "m": array, "v": array}
        self._state: Dict[int, Dict[str, Any]] = {}

    def clone(self) -> "AdamSolver":
        return AdamSolver(self.learning_rate, self.betas, self.epsilon, self.decay)

    def update(self, parameter: Tensor, gradient: Tensor, batch_size: int) -> None:
        """
        Apply one Adam step to `parameter` in place.
        """
        batch_size = check_batch_size(batch_size)
        xp, p, g = working_arrays(parameter, gradient)

        g_eff = g / float(batch_size)
        if self.decay != 0.0:
            g_eff = g_eff + self.decay * p

        st = self._state.get(id(parameter))
        if st is None:
            st = {"t": 0, "m": xp.zeros_like(p), "v": xp.zeros_like(p)}
            self._state[id(parameter)] = st

        st["t"] = int(st["t"]) + 1
        t = int(st["t"])
        m = st["m"]
        v = st["v"]
        b1, b2 = self.betas

        m[...] = b1 * m + (1.0 - b1) * g_eff
        v[...] = b2 * v + (1.0 - b2) * (g_eff * g_eff)

        m_hat = m / (1.0 - (b1**t))
        v_hat = v / (1.0 - (b2**t))

        p -= (self.learning_rate * (m_hat / (xp.sqrt(v_hat) + self.epsilon))).astype(p.dtype)

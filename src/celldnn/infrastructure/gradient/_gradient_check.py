"""
Finite-difference gradient checking.

`GradientCheck` verifies the analytic gradients a cell computes in its
backward pass against central finite differences of the scalar loss

    L = sum(outputs * G)

where `G` is a fixed random tensor drawn once per check. With this loss the
gradient of L w.r.t. the outputs is exactly `G`, so a single backward pass
with ``diff_inputs = G`` yields the analytic gradient of every parameter and
every input at once.

For each element of a checked tensor the element is perturbed by
``+epsilon`` and ``-epsilon``, the forward pass is re-run, and

    numeric = (L(+epsilon) - L(-epsilon)) / (2 * epsilon)

is compared with the analytic value. An element fails when both its absolute
and its relative error exceed `max_error`. Elements whose perturbation flips
a discrete switch of the forward pass (e.g. which input a max-pooling window
selects) are skipped: the loss is not differentiable there.

Mismatches are reported through logging; the check never raises on a numeric
disagreement.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Callable, Optional

import numpy as np

from ..tensor._tensor import Tensor

logger = logging.getLogger(__name__)

_MAX_REPORTED = 10


@dataclass(frozen=True)
class GradientCheckResult:
    """
    Outcome of checking one tensor.

    Attributes
    ----------
    name : str
        Name of the checked gradient (e.g. "fc1_diff_weights[0]").
    nb_checked : int
        Elements compared.
    nb_skipped : int
        Elements skipped because a perturbation changed a forward switch.
    nb_failed : int
        Elements whose error exceeded the tolerance.
    max_error : float
        Largest error observed, taking for each element the smaller of its
        absolute and relative error.
    """

    name: str
    nb_checked: int
    nb_skipped: int
    nb_failed: int
    max_error: float

    @property
    def passed(self) -> bool:
        return self.nb_failed == 0


class GradientCheck:
    """
    Central finite-difference checker.

    Parameters
    ----------
    epsilon : float, optional
        Perturbation size. Must be > 0.
    max_error : float, optional
        Tolerance on the absolute and relative error. Must be > 0.
    seed : int or None, optional
        Seed of the random loss weights `G`.
    """

    def __init__(
        self, epsilon: float = 1.0e-4, max_error: float = 1.0e-6, seed: Optional[int] = None
    ) -> None:
        self.epsilon = float(epsilon)
        self.max_error = float(max_error)
        if self.epsilon <= 0.0:
            raise ValueError(f"epsilon must be > 0, got {self.epsilon}")
        if self.max_error <= 0.0:
            raise ValueError(f"max_error must be > 0, got {self.max_error}")
        self._rng = np.random.default_rng(seed)

        self._outputs: Optional[Tensor] = None
        self._propagate: Optional[Callable[[], None]] = None
        self._switch_state: Optional[Callable[[], Any]] = None
        self._loss_weights: Optional[np.ndarray] = None

    def initialize(
        self,
        outputs: Tensor,
        diff_inputs: Tensor,
        propagate: Callable[[], None],
        back_propagate: Callable[[], None],
        switch_state: Optional[Callable[[], Any]] = None,
    ) -> None:
        """
        Run the analytic pass.

        Parameters
        ----------
        outputs : Tensor
            Tensor written by `propagate`.
        diff_inputs : Tensor
            Gradient w.r.t. `outputs`, consumed by `back_propagate`.
        propagate, back_propagate : callable
            Training forward pass and backward pass of the checked cell. The
            caller clears the validity flags of every gradient it wants
            overwritten before calling this method.
        switch_state : callable, optional
            Returns a comparable snapshot of the discrete state of the forward
            pass.
        """
        self._outputs = outputs
        self._propagate = propagate
        self._switch_state = switch_state

        propagate()
        self._loss_weights = self._rng.standard_normal(outputs.shape)
        diff_inputs.copy_from_numpy(self._loss_weights.astype(diff_inputs.dtype))
        diff_inputs.set_valid()
        back_propagate()

    def _loss(self) -> float:
        self._propagate()
        out = self._outputs.to_numpy().astype(np.float64)
        return float(np.sum(out * self._loss_weights))

    def _switch(self) -> Any:
        return self._switch_state() if self._switch_state is not None else None

    def check(self, name: str, values: Tensor, diff: Tensor) -> GradientCheckResult:
        """
        Compare the analytic gradient `diff` of `values` with finite
        differences.
        """
        if self._loss_weights is None:
            raise RuntimeError("GradientCheck.initialize() must be called before check()")

        analytic = diff.to_numpy().astype(np.float64)
        base_switch = self._switch()

        nb_checked = nb_skipped = nb_failed = 0
        worst = 0.0

        for e in range(values.size):
            idx = np.unravel_index(e, values.shape)
            original = values.ensure_host()[idx].copy()

            values.ensure_host(write=True)[idx] = original + self.epsilon
            loss_plus = self._loss()
            switch_plus = self._switch()

            values.ensure_host(write=True)[idx] = original - self.epsilon
            loss_minus = self._loss()
            switch_minus = self._switch()

            values.ensure_host(write=True)[idx] = original

            if self._switch_state is not None and (
                switch_plus != base_switch or switch_minus != base_switch
            ):
                nb_skipped += 1
                continue

            numeric = (loss_plus - loss_minus) / (2.0 * self.epsilon)
            grad = float(analytic[idx])
            abs_err = abs(grad - numeric)
            scale = max(abs(grad), abs(numeric))
            rel_err = abs_err / scale if scale > 0.0 else 0.0
            err = min(abs_err, rel_err)

            nb_checked += 1
            worst = max(worst, err)
            if err > self.max_error:
                nb_failed += 1
                if nb_failed <= _MAX_REPORTED:
                    logger.warning(
                        "%s[%s]: analytic %.8g, numeric %.8g, error %.3g > %.3g",
                        name,
                        ",".join(str(int(i)) for i in idx),
                        grad,
                        numeric,
                        err,
                        self.max_error,
                    )

        # leave the outputs consistent with the restored values
        self._propagate()

        result = GradientCheckResult(name, nb_checked, nb_skipped, nb_failed, worst)
        if nb_failed:
            logger.warning(
                "Gradient check %s failed on %d of %d elements (max error %.3g)",
                name,
                nb_failed,
                nb_checked,
                worst,
            )
        else:
            logger.info(
                "Gradient check %s passed on %d elements (%d skipped, max error %.3g)",
                name,
                nb_checked,
                nb_skipped,
                worst,
            )
        return result

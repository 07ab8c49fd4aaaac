"""
Domain-level solver contracts for celldnn.

This module defines the `ISolver` protocol, the minimal interface a
parameter-update rule (e.g. SGD, Adam) implements.

Notes
-----
- Unlike a whole-model optimizer, a solver is attached to exactly one
  parameter tensor. It may keep per-parameter state (momentum, moment
  estimates) that is created lazily on the first `update` call.
- The gradient handed to `update` is the sum over the mini-batch; solvers
  divide by `batch_size` themselves.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class ISolver(Protocol):
    """
    Solver interface contract.

    Required methods
    ----------------
    - `update(parameter, gradient, batch_size)` updates `parameter` in place.
    - `clone()` returns a solver with identical hyperparameters and no state,
      used to give every parameter tensor its own solver instance.
    """

    def update(self, parameter: Any, gradient: Any, batch_size: int) -> None:
        """
        Apply one update step to `parameter` using the summed `gradient`.
        """
        ...

    def clone(self) -> "ISolver":
        """
        Return a fresh solver with the same hyperparameters.
        """
        ...

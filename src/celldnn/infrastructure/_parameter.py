"""
Trainable parameter of a cell.

A `Parameter` bundles everything a cell needs to train one parameter tensor:

- `value`: the parameter tensor itself,
- `grad`: the gradient accumulator, whose validity flag implements the
  accumulate-or-overwrite protocol of the backward pass,
- `solver`: the update rule, private to this parameter,
- the *owner of record*: the cell that created the parameter.

Weight sharing
--------------
A cell may adopt a `Parameter` created by another cell. Both cells then
accumulate into the same gradient (the first writer overwrites, later writers
add), but only the owner applies the solver in `update()`, so the shared
storage is updated exactly once per iteration.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence
import weakref

from ..domain._errors import ShapeMismatch
from ..domain._solver import ISolver
from .tensor._tensor import Tensor


class Parameter:
    """
    Parameter tensor, gradient accumulator and solver of one cell parameter.

    Parameters
    ----------
    name : str
        Parameter name within its cell (e.g. "weights[0]", "bias").
    value : Tensor
        Parameter storage; may be empty until the owning cell initializes.
    grad : Tensor
        Gradient accumulator, allocated by the same backend as `value`.
    solver : ISolver
        Update rule applied by the owner.
    owner : object
        Owning cell. Only a weak reference is kept.
    """

    def __init__(
        self,
        name: str,
        value: Tensor,
        grad: Tensor,
        *,
        solver: ISolver,
        owner: Any,
    ) -> None:
        self.name = name
        self.value = value
        self.grad = grad
        self.solver = solver
        self._owner = weakref.ref(owner)

    @property
    def owner(self) -> Optional[Any]:
        return self._owner()

    def is_owned_by(self, cell: Any) -> bool:
        return self._owner() is cell

    def allocate(self, dims: Sequence[int], cell_name: str) -> bool:
        """
        Give the parameter its dims.

        An empty parameter is allocated (returns True so the caller fills
        it). A parameter that already holds values keeps them when its dims
        match (returns False).

        Raises
        ------
        ShapeMismatch
            If the parameter already holds values with different dims.
        """
        dims = tuple(int(d) for d in dims)
        fresh = self.value.empty()
        if fresh:
            self.value.resize(dims)
        elif self.value.dims != dims:
            raise ShapeMismatch(cell_name, self.name, dims, self.value.dims)
        if self.grad.dims != dims:
            self.grad.resize(dims)
            self.grad.clear_valid()
        return fresh

    def apply_update(self, cell: Any, batch_size: int) -> bool:
        """
        Run the solver if `cell` is the owner and a gradient is pending.

        Returns True when the parameter was updated.
        """
        if not self.is_owned_by(cell) or not self.grad.valid:
            return False
        self.solver.update(self.value, self.grad, batch_size)
        self.grad.clear_valid()
        return True

    def release(self) -> None:
        self.value.release()
        self.grad.release()

    def __repr__(self) -> str:
        owner = self.owner
        owner_name = getattr(owner, "name", None)
        return (
            f"Parameter(name={self.name!r}, dims={list(self.value.dims)}, "
            f"owner={owner_name!r})"
        )

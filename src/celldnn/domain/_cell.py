"""
Domain-level cell contracts.

A *cell* is one layer of a dataflow network. It owns its output tensor and
its gradient-input tensor, reads the outputs of its producers through an
input interface, and writes gradients back into its producers' gradient
slots. This module defines the lifecycle states and the structural protocol
every cell implementation satisfies, independent of backend and element
type.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Protocol, runtime_checkable


class CellState(Enum):
    """
    Lifecycle state of a cell.

    ``CONSTRUCTED -> CONNECTED -> INITIALIZED -> READY``; a released cell is
    ``DESTROYED``. `add_input` is only legal before initialization, and
    `propagate` / `back_propagate` / `update` only after it.
    """

    CONSTRUCTED = "constructed"
    CONNECTED = "connected"
    INITIALIZED = "initialized"
    READY = "ready"
    DESTROYED = "destroyed"


@runtime_checkable
class ICell(Protocol):
    """
    Cell interface contract.

    Required members
    ----------------
    - `name` / `nb_outputs` identify the cell and its output channel count.
    - `add_input` connects a producer (cell or stimulus tensor).
    - `initialize` validates the configuration and allocates parameters.
    - `propagate` / `back_propagate` / `update` run one training step.
    - `check_gradient` compares analytic and numeric gradients.
    - `save_free_parameters` / `load_free_parameters` persist parameters.
    """

    @property
    def name(self) -> str: ...

    @property
    def nb_outputs(self) -> int: ...

    def add_input(self, producer: Any, mapping: Any = None) -> None: ...

    def initialize(self) -> None: ...

    def propagate(self, inference: bool = False) -> None: ...

    def back_propagate(self) -> None: ...

    def update(self) -> None: ...

    def check_gradient(self, epsilon: float, max_error: float) -> Any: ...

    def save_free_parameters(self, file_name: str) -> None: ...

    def load_free_parameters(
        self, file_name: str, ignore_not_exists: bool = False
    ) -> None: ...

"""
Weight filler registry and dispatch utilities.

This module defines `WeightInitializer`, the registry cells use to fill
their parameter tensors. Fillers are selected by name in cell configuration
(``weights_filler`` / ``bias_filler``).

Usage example
-------------
Registering a filler:

    @WeightInitializer.register_initializer("xavier")
    def xavier(tensor: Tensor) -> Tensor:
        ...

Applying a filler:

    init = WeightInitializer("xavier")
    init(weight_tensor)

Notes
-----
- Registration keys must be unique unless explicitly overwritten.
- Fillers mutate the tensor in place (through its host side) and return it.
- Fillers draw from NumPy's global random state, so seeding
  ``np.random.seed`` makes cell initialization reproducible.
"""

from __future__ import annotations

from typing import Any, Callable, ClassVar, Dict, TypeVar

from ...tensor._tensor import Tensor

T = TypeVar("T", bound=Callable[..., Tensor])


class WeightInitializer:
    """
    Registry-backed weight filler dispatcher.

    Raises
    ------
    ValueError
        If `initializer_name` is not registered.
    """

    INITIALIZERS: ClassVar[Dict[str, Callable[..., Tensor]]] = {}

    def __init__(self, initializer_name: str) -> None:
        try:
            self._initializer: Callable[..., Tensor] = self.INITIALIZERS[
                initializer_name
            ]
        except KeyError as e:
            available = ", ".join(sorted(self.INITIALIZERS)) or "<none>"
            raise ValueError(
                f"Unsupported initializer name: {initializer_name!r}. "
                f"Available: {available}"
            ) from e
        self.name = initializer_name

    @classmethod
    def register_initializer(
        cls, name: str, *, overwrite: bool = False
    ) -> Callable[[T], T]:
        """
        Decorator to register a filler under `name`.

        Parameters
        ----------
        name:
            Registry key used to retrieve the filler later.
        overwrite:
            If False (default), raises if `name` is already registered.
        """
        if not isinstance(name, str) or not name:
            raise ValueError("Initializer name must be a non-empty string")

        def decorator(func: T) -> T:
            if not overwrite and name in cls.INITIALIZERS:
                raise ValueError(f"Initializer already registered: {name!r}")
            cls.INITIALIZERS[name] = func
            return func

        return decorator

    @classmethod
    def available(cls) -> tuple[str, ...]:
        """Return registered filler names (sorted)."""
        return tuple(sorted(cls.INITIALIZERS))

    def __call__(self, tensor: Tensor, *args: Any, **kwargs: Any) -> Tensor:
        return self._initializer(tensor, *args, **kwargs)

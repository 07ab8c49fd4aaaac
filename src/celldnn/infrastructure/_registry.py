"""
Cell registry.

Maps ``(cell_type, backend_name, dtype)`` to a factory building a concrete
cell on a backend of that kind and element type. A registry is an explicit
object: nothing is registered at import time, `default_registry()` builds
the standard set.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from ..domain._dtype import DataType
from ..domain._errors import UnsupportedBackend
from .backends._backend import Backend, make_backend
from .cells import (
    BatchNormCell,
    Cell,
    ConvCell,
    DeconvCell,
    FcCell,
    PoolCell,
    ProposalCell,
)

logger = logging.getLogger(__name__)

CellFactory = Callable[..., Cell]
_Key = Tuple[str, str, DataType]


class CellRegistry:
    """
    Registry of cell factories keyed by cell type, backend name and element
    type.
    """

    def __init__(self) -> None:
        self._factories: Dict[_Key, CellFactory] = {}

    def register(
        self,
        cell_type: str,
        backend: str,
        dtype: DataType | str,
        factory: CellFactory,
        *,
        overwrite: bool = False,
    ) -> None:
        """
        Register `factory(*args, backend=<Backend>, **kwargs)` for the triple.

        Raises
        ------
        ValueError
            If the triple is already registered and `overwrite` is False.
        """
        key = (str(cell_type), str(backend), DataType.parse(dtype))
        if key in self._factories and not overwrite:
            raise ValueError(
                f"Cell factory already registered for {key[0]}/{key[1]}/{key[2].value}"
            )
        self._factories[key] = factory

    def is_registered(self, cell_type: str, backend: str, dtype: DataType | str) -> bool:
        try:
            key = (str(cell_type), str(backend), DataType.parse(dtype))
        except UnsupportedBackend:
            return False
        return key in self._factories

    def available(self) -> Tuple[Tuple[str, str, str], ...]:
        """
        Registered triples, sorted, with the element type as its tag.
        """
        return tuple(sorted((t, b, d.value) for t, b, d in self._factories))

    def create(
        self,
        cell_type: str,
        backend: str | Backend,
        dtype: DataType | str | None = None,
        *args: Any,
        backend_options: Optional[Dict[str, Any]] = None,
        **kwargs: Any,
    ) -> Cell:
        """
        Build a cell.

        Parameters
        ----------
        cell_type : str
            Registered type ("Fc", "Conv", ...).
        backend : str or Backend
            Backend name, or a backend instance whose name and element type
            select the factory.
        dtype : DataType or str, optional
            Element type; required when `backend` is a name.
        *args, **kwargs
            Constructor arguments of the cell (name, nb_outputs, geometry,
            options).
        backend_options : dict, optional
            Options forwarded to `make_backend` (``device_index``, ``xp``).

        Raises
        ------
        UnsupportedBackend
            If no factory is registered for the triple.
        """
        if isinstance(backend, Backend):
            instance: Optional[Backend] = backend
            backend_name = backend.name
            data_type = backend.data_type
        else:
            instance = None
            backend_name = str(backend)
            if dtype is None:
                raise UnsupportedBackend(
                    f"No element type given for backend {backend_name!r}",
                    backend=backend_name,
                )
            data_type = DataType.parse(dtype)

        key = (str(cell_type), backend_name, data_type)
        try:
            factory = self._factories[key]
        except KeyError:
            raise UnsupportedBackend(
                f"No {cell_type} cell registered for backend {backend_name!r} "
                f"and type {data_type.value!r}",
                backend=backend_name,
                dtype=data_type.value,
            ) from None

        if instance is None:
            instance = make_backend(backend_name, data_type, **(backend_options or {}))
        logger.debug("Creating %s cell on %r", cell_type, instance)
        return factory(*args, backend=instance, **kwargs)

    def create_from_config(
        self, config: Dict[str, Any], *, backend_options: Optional[Dict[str, Any]] = None
    ) -> Cell:
        """
        Rebuild a not yet connected cell from `Cell.get_config()` output.
        """
        cell_type = config["type"]
        probe = next(
            (f for (t, _, _), f in self._factories.items() if t == cell_type), None
        )
        cls = probe if isinstance(probe, type) else Cell
        args, kwargs = cls._config_arguments(config)

        cell = self.create(
            cell_type,
            config["backend"],
            config["dtype"],
            *args,
            backend_options=backend_options,
            activation=config.get("activation"),
            **kwargs,
        )
        for name, value in config.get("parameters", {}).items():
            cell.set_parameter(name, value)
        return cell


_DEFAULT_CELLS = (FcCell, ConvCell, DeconvCell, PoolCell, BatchNormCell)


def _register_all(
    registry: CellRegistry,
    cells: Iterable[type],
    dtypes: Iterable[DataType],
) -> None:
    dtypes = tuple(dtypes)
    for cls in cells:
        for backend in ("Frame", "Frame_CUDA"):
            for dtype in dtypes:
                registry.register(cls.TYPE, backend, dtype, cls)


def default_registry() -> CellRegistry:
    """
    Registry with every cell type for both backends: Fc, Conv, Deconv, Pool
    and BatchNorm in half, float and double; Proposal in float and double.
    """
    registry = CellRegistry()
    _register_all(registry, _DEFAULT_CELLS, DataType)
    _register_all(registry, (ProposalCell,), (DataType.FLOAT, DataType.DOUBLE))
    return registry

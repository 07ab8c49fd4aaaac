from ._parameter import Parameter
from ._registry import CellRegistry, default_registry

__all__ = [
    Parameter.__name__,
    CellRegistry.__name__,
    default_registry.__name__,
]

from ._backend import (
    Backend,
    FrameBackend,
    FrameCudaBackend,
    available_backends,
    make_backend,
)

__all__ = [
    Backend.__name__,
    FrameBackend.__name__,
    FrameCudaBackend.__name__,
    available_backends.__name__,
    make_backend.__name__,
]

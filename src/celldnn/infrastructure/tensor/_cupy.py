"""
CuPy loader.

CuPy is an optional dependency (``pip install celldnn[gpu]``). It is imported
lazily and only by the CUDA backend; when it is missing, or no CUDA device is
visible, requesting device storage raises `UnsupportedBackend`.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any

from ...domain._errors import UnsupportedBackend

try:
    import cupy as cp  # type: ignore

    has_cupy = True
except ImportError:
    cp = None
    has_cupy = False


@lru_cache(maxsize=None)
def load_cupy() -> Any:
    """
    Return the `cupy` module after checking that a CUDA device is usable.

    Raises
    ------
    UnsupportedBackend
        If CuPy is not installed or reports no CUDA device.
    """
    if not has_cupy:
        raise UnsupportedBackend(
            "The Frame_CUDA backend requires CuPy (pip install celldnn[gpu]).",
            backend="Frame_CUDA",
        )
    try:
        count = cp.cuda.runtime.getDeviceCount()
    except cp.cuda.runtime.CUDARuntimeError as e:
        raise UnsupportedBackend(
            f"CUDA runtime unavailable: {e}", backend="Frame_CUDA"
        ) from e
    if count == 0:
        raise UnsupportedBackend("No CUDA device found.", backend="Frame_CUDA")
    return cp


def cuda_available() -> bool:
    """
    Return True when `load_cupy()` would succeed.
    """
    try:
        load_cupy()
    except UnsupportedBackend:
        return False
    return True

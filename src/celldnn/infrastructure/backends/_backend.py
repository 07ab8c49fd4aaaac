"""
Execution backends.

A backend bundles what a cell needs to run on one kind of hardware for one
element type:

- a tensor factory (`tensor`, `empty`),
- access to the side of a tensor its kernels operate on (`read`, `write`),
- the input / gradient synchronization policy around each pass,
- the array module (`xp`) its kernels are written against.

Two backends exist:

``Frame``
    Host execution. Tensors are plain `Tensor`s; kernels are the naive NumPy
    loops of ``ops/*_cpu.py``. Inputs produced on a device are pulled to the
    host before the forward pass, and upstream gradients written on the host
    are pushed back to the device of device-mirrored producers.

``Frame_CUDA``
    Device execution. Tensors are `CudaTensor`s; kernels are the vectorized
    ``ops/*_cuda.py`` functions running on CuPy arrays. Inputs written on the
    host are pushed to the device before the forward pass. Upstream
    gradients stay on the device until a host consumer asks for them.
"""

from __future__ import annotations

import contextlib
import logging
from typing import Any, Iterator, List, Optional, Sequence
import warnings

import numpy as np

from ...domain._dtype import DataType
from ...domain._errors import InvalidConfiguration, UnsupportedBackend
from ...domain.device._device import Device
from ..tensor._cuda_tensor import CudaTensor
from ..tensor._cupy import load_cupy
from ..tensor._interface import Interface
from ..tensor._tensor import Tensor

logger = logging.getLogger(__name__)


class Backend:
    """
    Base class of the execution backends.

    Parameters
    ----------
    dtype : DataType or str
        Element type of every tensor the backend allocates.
    """

    name: str = ""

    def __init__(self, dtype: DataType | str = DataType.FLOAT) -> None:
        self._data_type = DataType.parse(dtype)
        self._scopes: List[List[Tensor]] = []

    @property
    def data_type(self) -> DataType:
        return self._data_type

    @property
    def dtype(self) -> np.dtype:
        return self._data_type.numpy_dtype

    @property
    def xp(self) -> Any:
        raise NotImplementedError

    @property
    def device(self) -> Device:
        raise NotImplementedError

    def _allocate(self, dims: Sequence[int], value: float) -> Tensor:
        raise NotImplementedError

    def tensor(self, dims: Sequence[int] = (), value: float = 0.0) -> Tensor:
        """
        Allocate a tensor of the backend's kind and element type.
        """
        t = self._allocate(dims, value)
        if self._scopes:
            self._scopes[-1].append(t)
        return t

    def empty(self) -> Tensor:
        return self.tensor(())

    @contextlib.contextmanager
    def scoped_allocations(self) -> Iterator[None]:
        """
        Release every tensor allocated inside the block if the block raises.
        """
        self._scopes.append([])
        try:
            yield
        except BaseException:
            allocated = self._scopes.pop()
            for t in allocated:
                t.release()
            logger.debug("%s: released %d tensor(s) after failure", self.name, len(allocated))
            raise
        else:
            done = self._scopes.pop()
            if self._scopes:
                self._scopes[-1].extend(done)

    def accepts(self, tensor: Tensor) -> bool:
        """
        Whether cells of this backend can read `tensor` directly.
        """
        raise NotImplementedError

    def read(self, tensor: Tensor) -> Any:
        """
        Array view of `tensor` on the backend's side, current for reading.
        """
        raise NotImplementedError

    def write(self, tensor: Tensor) -> Any:
        """
        Array view of `tensor` on the backend's side; the other side becomes
        stale.
        """
        raise NotImplementedError

    def to_xp(self, array: Any) -> Any:
        """
        Move a host array into the backend's array module.
        """
        return self.xp.asarray(array)

    def synchronize_inputs(self, inputs: Interface) -> None:
        raise NotImplementedError

    def synchronize_diff_outputs(self, diff_outputs: Interface) -> None:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}(dtype='{self._data_type.value}')"


class FrameBackend(Backend):
    """
    Host backend ("Frame").
    """

    name = "Frame"

    @property
    def xp(self) -> Any:
        return np

    @property
    def device(self) -> Device:
        return Device("cpu")

    def _allocate(self, dims: Sequence[int], value: float) -> Tensor:
        return Tensor(dims, value, dtype=self.dtype)

    def accepts(self, tensor: Tensor) -> bool:
        return True

    def read(self, tensor: Tensor) -> np.ndarray:
        return tensor.ensure_host()

    def write(self, tensor: Tensor) -> np.ndarray:
        return tensor.ensure_host(write=True)

    def synchronize_inputs(self, inputs: Interface) -> None:
        inputs.synchronize_d_based_to_h()

    def synchronize_diff_outputs(self, diff_outputs: Interface) -> None:
        diff_outputs.synchronize_h_based_to_d()


class FrameCudaBackend(Backend):
    """
    CUDA backend ("Frame_CUDA").

    Parameters
    ----------
    dtype : DataType or str
        Element type.
    device_index : int, optional
        CUDA device ordinal.
    xp : module, optional
        Array module to run the device kernels with. Defaults to CuPy; when
        CuPy is unavailable and no module is given, construction raises
        `UnsupportedBackend`.
    """

    name = "Frame_CUDA"

    def __init__(
        self,
        dtype: DataType | str = DataType.FLOAT,
        *,
        device_index: int = 0,
        xp: Optional[Any] = None,
    ) -> None:
        super().__init__(dtype)
        self._xp = xp if xp is not None else load_cupy()
        self._device_index = int(device_index)
        if self._data_type is DataType.HALF:
            warnings.warn(
                "Frame_CUDA half precision stores float16 but accumulates "
                "statistics in float64.",
                RuntimeWarning,
                stacklevel=2,
            )

    @property
    def xp(self) -> Any:
        return self._xp

    @property
    def device(self) -> Device:
        return Device.cuda(self._device_index)

    def _allocate(self, dims: Sequence[int], value: float) -> CudaTensor:
        return CudaTensor(
            dims, value, dtype=self.dtype, xp=self._xp, device_index=self._device_index
        )

    def accepts(self, tensor: Tensor) -> bool:
        return isinstance(tensor, CudaTensor) and tensor.xp is self._xp

    def read(self, tensor: Tensor) -> Any:
        return tensor.ensure_device()

    def write(self, tensor: Tensor) -> Any:
        return tensor.ensure_device(write=True)

    def synchronize_inputs(self, inputs: Interface) -> None:
        inputs.synchronize_h_based_to_d()

    def synchronize_diff_outputs(self, diff_outputs: Interface) -> None:
        pass


_BACKENDS = {
    FrameBackend.name: FrameBackend,
    FrameCudaBackend.name: FrameCudaBackend,
}


def make_backend(name: str, dtype: DataType | str = DataType.FLOAT, **kwargs: Any) -> Backend:
    """
    Instantiate backend `name` ("Frame" or "Frame_CUDA") for `dtype`.

    Raises
    ------
    UnsupportedBackend
        If the name is unknown, the element type is unknown, or the CUDA
        backend is requested without a usable CuPy installation.
    """
    try:
        cls = _BACKENDS[name]
    except KeyError:
        raise UnsupportedBackend(
            f"Unknown backend {name!r}; expected one of {sorted(_BACKENDS)}.",
            backend=str(name),
            dtype=str(dtype),
        ) from None
    if kwargs and cls is FrameBackend:
        raise InvalidConfiguration(f"Backend 'Frame' takes no options, got {sorted(kwargs)}")
    return cls(dtype, **kwargs)


def available_backends() -> tuple[str, ...]:
    return tuple(sorted(_BACKENDS))

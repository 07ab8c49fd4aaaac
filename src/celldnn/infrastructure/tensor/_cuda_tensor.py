"""
Device-mirrored tensor.

`CudaTensor` extends the host `Tensor` with a device copy kept in a
`_CudaStorage`. Kernels never manipulate the synchronization state directly;
they call:

- ``ensure_host(write)`` to obtain a current host array, and
- ``ensure_device(write)`` to obtain a current device array,

where ``write=True`` marks the other side stale. The explicit transfer
operations mirror the classic four-way protocol:

==========================  =============================================
``synchronize_h_to_d``      unconditional host -> device copy
``synchronize_d_to_h``      unconditional device -> host copy
``synchronize_h_based_to_d``  copy host -> device only if the host is ahead
``synchronize_d_based_to_h``  copy device -> host only if the device is ahead
==========================  =============================================

The array module is injectable; by default CuPy is loaded and a missing
installation surfaces as `UnsupportedBackend`.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence

import numpy as np

from ...domain.device._device import Device
from ._cuda_storage import SyncState, _CudaStorage
from ._cupy import load_cupy
from ._tensor import Tensor


class CudaTensor(Tensor):
    """
    Tensor with a host copy and a device copy.

    Parameters
    ----------
    dims : Sequence[int], optional
        Dimensions, innermost first.
    value : float, optional
        Initial value.
    dtype : numpy dtype, optional
        Element type.
    xp : module, optional
        Device array library. Defaults to CuPy.
    device_index : int, optional
        CUDA device ordinal.
    """

    def __init__(
        self,
        dims: Sequence[int] = (),
        value: float = 0.0,
        *,
        dtype: Any = np.float32,
        xp: Optional[Any] = None,
        device_index: int = 0,
    ) -> None:
        self._xp = xp if xp is not None else load_cupy()
        self._device_index = int(device_index)
        super().__init__(dims, value, dtype=dtype)

    def _new_storage(self, array: np.ndarray) -> _CudaStorage:
        storage = _CudaStorage(array=array, xp=self._xp, device_index=self._device_index)
        storage.allocate()
        return storage

    @property
    def xp(self) -> Any:
        return self._xp

    @property
    def device(self) -> Device:
        return Device.cuda(self._device_index)

    @property
    def sync_state(self) -> SyncState:
        return self._storage.state

    def _device_view(self) -> Any:
        arr = self._storage.device
        if self._key is not None:
            arr = arr[self._key]
        if arr.shape != self.shape:
            arr = arr.reshape(self.shape)
        return arr

    def _zero_storage(self) -> None:
        self._storage.zero()

    # ------------------------------------------------------------------
    # Explicit transfers
    # ------------------------------------------------------------------
    def synchronize_h_to_d(self) -> None:
        self._storage.push()

    def synchronize_d_to_h(self) -> None:
        self._storage.pull()

    def synchronize_h_based_to_d(self) -> None:
        if self._storage.state is SyncState.HOST_VALID:
            self._storage.push()

    def synchronize_d_based_to_h(self) -> None:
        if self._storage.state is SyncState.DEVICE_VALID:
            self._storage.pull()

    # ------------------------------------------------------------------
    # Kernel-facing access
    # ------------------------------------------------------------------
    def ensure_host(self, write: bool = False) -> np.ndarray:
        self.synchronize_d_based_to_h()
        if write:
            self._storage.state = SyncState.HOST_VALID
        return self._host_view()

    def ensure_device(self, write: bool = False) -> Any:
        if self._storage.device is None:
            self._storage.allocate()
        self.synchronize_h_based_to_d()
        if write:
            self._storage.state = SyncState.DEVICE_VALID
        return self._device_view()

    def fill(self, value: float) -> None:
        if not self.size:
            return
        if self._storage.state is SyncState.DEVICE_VALID:
            with self._storage.device_scope():
                self.ensure_device(write=True).fill(value)
        else:
            self.ensure_host(write=True).fill(value)

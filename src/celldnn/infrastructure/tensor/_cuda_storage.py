"""
Host/device mirrored storage.

This module defines `_CudaStorage`, the storage object behind `CudaTensor`.
It pairs one host allocation with one device allocation of the same shape and
tracks which side is authoritative:

- ``HOST_VALID``: the host copy is current, the device copy is stale.
- ``DEVICE_VALID``: the device copy is current, the host copy is stale.
- ``BOTH_VALID``: both copies hold the same values.

At most one side is stale at any time. Transfers always move the whole
allocation, so every view sharing the storage is kept coherent.

Lifetime
--------
Storages are shared by a tensor and its aliases. Each alias takes a
reference (`incref`); `decref` releases one. When the count reaches zero the
device allocation is dropped (returned to the array library's memory pool),
while the host copy is first brought up to date so no value is lost.

Thread safety
-------------
Reference count updates are protected by an internal lock. Transfers are not;
a storage must not be accessed concurrently from several threads.
"""

from __future__ import annotations

import contextlib
from dataclasses import dataclass, field
from enum import Enum
import threading
from typing import Any, Iterator

import numpy as np


class SyncState(Enum):
    """
    Which side of a mirrored storage holds the current values.
    """

    HOST_VALID = "host"
    DEVICE_VALID = "device"
    BOTH_VALID = "both"


@dataclass
class _CudaStorage:
    """
    Reference-counted host/device allocation pair.

    Attributes
    ----------
    array : np.ndarray
        Host copy.
    xp : module
        Array library providing the device copy (CuPy, or NumPy standing in
        for device memory).
    device_index : int
        CUDA device ordinal the device copy lives on.
    device : array or None
        Device copy; None until allocated or after release.
    state : SyncState
        Authoritative side.
    valid : bool
        Gradient accumulation validity flag shared by all aliases.
    """

    array: np.ndarray
    xp: Any
    device_index: int = 0
    device: Any = None
    state: SyncState = SyncState.HOST_VALID
    valid: bool = False

    _refcnt: int = 1
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @contextlib.contextmanager
    def device_scope(self) -> Iterator[None]:
        """
        Make this storage's device current for the enclosed allocations.
        """
        cuda = getattr(self.xp, "cuda", None)
        if cuda is None:
            yield
            return
        with cuda.Device(self.device_index):
            yield

    def allocate(self) -> None:
        """
        Allocate the device copy from the host copy, if not yet present.
        """
        if self.device is not None:
            return
        with self.device_scope():
            self.device = self.xp.array(self.array, copy=True)
        self.state = SyncState.BOTH_VALID

    def push(self) -> None:
        """
        Copy host to device unconditionally.
        """
        if self.device is None:
            self.allocate()
            return
        with self.device_scope():
            self.device[...] = self.xp.asarray(self.array)
        self.state = SyncState.BOTH_VALID

    def pull(self) -> None:
        """
        Copy device to host unconditionally.
        """
        if self.device is not None:
            asnumpy = getattr(self.xp, "asnumpy", np.asarray)
            with self.device_scope():
                self.array[...] = asnumpy(self.device)
        self.state = SyncState.BOTH_VALID

    def zero(self) -> None:
        self.array.fill(0)
        if self.device is not None:
            with self.device_scope():
                self.device.fill(0)
            self.state = SyncState.BOTH_VALID

    def incref(self) -> None:
        """
        Register one more tensor sharing this storage.
        """
        with self._lock:
            self._refcnt += 1

    def decref(self) -> None:
        """
        Release one reference; drop the device copy when none remain.
        """
        with self._lock:
            self._refcnt -= 1
            if self._refcnt > 0:
                return
            self._refcnt = 0
        if self.state is SyncState.DEVICE_VALID:
            self.pull()
        self.device = None
        self.state = SyncState.HOST_VALID

    @property
    def released(self) -> bool:
        return self._refcnt <= 0

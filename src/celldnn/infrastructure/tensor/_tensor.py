"""
Host tensor implementation.

`Tensor` is a dense, n-dimensional array of one floating-point element type
stored in host memory. Dimensions are listed innermost first, as in
``[width, height, channels, batch]``; the backing NumPy array therefore has
the reversed shape ``(batch, channels, height, width)`` and C-order iteration
of the array is the row-major iteration of the dims.

Aliasing
--------
Tensors created by `alias()` or `channel_slice()` share storage with the
tensor they were created from. The *validity flag* used by the gradient
accumulation protocol lives in the shared storage, so every alias of a
gradient buffer observes the same flag.

Device interaction
------------------
A plain `Tensor` only has a host side: the `synchronize_*` family are no-ops
and `ensure_device()` raises `DeviceNotSupportedError`. `CudaTensor`
overrides these to maintain a device mirror.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional, Sequence

import numpy as np

from ...domain._errors import DeviceNotSupportedError, DimensionMismatch
from ...domain.device._device import Device


def _normalize_dims(dims: Iterable[int]) -> tuple[int, ...]:
    out = tuple(int(d) for d in dims)
    if any(d < 0 for d in out):
        raise DimensionMismatch(f"Tensor dims must be non-negative, got {list(out)}")
    return out


def _shape_of(dims: tuple[int, ...]) -> tuple[int, ...]:
    return tuple(reversed(dims)) if dims else (0,)


class _HostStorage:
    """
    Host allocation shared by a tensor and all of its aliases.
    """

    __slots__ = ("array", "valid")

    def __init__(self, array: np.ndarray) -> None:
        self.array = array
        self.valid = False

    def incref(self) -> None:
        pass

    def decref(self) -> None:
        pass


class Tensor:
    """
    Dense host tensor with x-first ordered dims.

    Parameters
    ----------
    dims : Sequence[int], optional
        Dimensions, innermost first. An empty sequence creates an empty tensor
        (``size == 0``).
    value : float, optional
        Initial value of every element.
    dtype : numpy dtype, optional
        Element type. Defaults to float32.
    """

    def __init__(
        self,
        dims: Sequence[int] = (),
        value: float = 0.0,
        *,
        dtype: Any = np.float32,
    ) -> None:
        self._dims = _normalize_dims(dims)
        self._key: Optional[tuple] = None
        self._storage = self._new_storage(
            np.full(_shape_of(self._dims), value, dtype=np.dtype(dtype))
        )

    @classmethod
    def from_numpy(
        cls, array: Any, dims: Optional[Sequence[int]] = None, **kwargs: Any
    ) -> "Tensor":
        """
        Create a tensor holding a copy of `array`.

        When `dims` is omitted it is derived from the reversed array shape.
        """
        arr = np.asarray(array)
        if dims is None:
            dims = tuple(reversed(arr.shape))
        kwargs.setdefault("dtype", arr.dtype)
        t = cls(dims, **kwargs)
        t.copy_from_numpy(arr)
        return t

    def _new_storage(self, array: np.ndarray) -> Any:
        return _HostStorage(array)

    # ------------------------------------------------------------------
    # Shape
    # ------------------------------------------------------------------
    @property
    def dims(self) -> tuple[int, ...]:
        return self._dims

    @property
    def shape(self) -> tuple[int, ...]:
        """
        NumPy shape of the tensor (the reversed dims).
        """
        return _shape_of(self._dims)

    @property
    def nb_dims(self) -> int:
        return len(self._dims)

    @property
    def size(self) -> int:
        if not self._dims:
            return 0
        return int(np.prod(self._dims, dtype=np.int64))

    @property
    def dtype(self) -> np.dtype:
        return self._storage_array().dtype

    @property
    def device(self) -> Device:
        return Device("cpu")

    @property
    def dim_x(self) -> int:
        return self._dims[0] if len(self._dims) > 0 else 0

    @property
    def dim_y(self) -> int:
        return self._dims[1] if len(self._dims) > 1 else 1

    @property
    def dim_z(self) -> int:
        return self._dims[2] if len(self._dims) > 2 else 1

    @property
    def dim_b(self) -> int:
        return self._dims[-1] if self._dims else 0

    def empty(self) -> bool:
        return self.size == 0

    @property
    def is_view(self) -> bool:
        """
        True for a partial view (channel slice) of a larger storage.
        """
        return self._key is not None

    def resize(self, dims: Sequence[int], value: float = 0.0) -> None:
        """
        Reallocate the tensor with new dims. Aliasing is broken.
        """
        if self._key is not None:
            raise DimensionMismatch("Cannot resize a channel slice of another tensor")
        dtype = self.dtype
        self._storage.decref()
        self._dims = _normalize_dims(dims)
        self._storage = self._new_storage(
            np.full(_shape_of(self._dims), value, dtype=dtype)
        )

    def reshape(self, dims: Sequence[int]) -> None:
        """
        Change the dims in place, keeping the storage and the element count.

        Raises
        ------
        DimensionMismatch
            If the new dims do not describe the same number of elements, or
            the tensor is a channel slice.
        """
        new_dims = _normalize_dims(dims)
        new_size = int(np.prod(new_dims, dtype=np.int64)) if new_dims else 0
        if new_size != self.size:
            raise DimensionMismatch(
                f"Cannot reshape {list(self._dims)} ({self.size} elements) "
                f"to {list(new_dims)} ({new_size} elements)"
            )
        if self._key is not None:
            raise DimensionMismatch("Cannot reshape a channel slice of another tensor")
        self._dims = new_dims

    # ------------------------------------------------------------------
    # Aliasing
    # ------------------------------------------------------------------
    def _make_alias(self, key: Optional[tuple], dims: tuple[int, ...]) -> "Tensor":
        t = object.__new__(type(self))
        t.__dict__.update(self.__dict__)
        t._key = key
        t._dims = dims
        t._storage.incref()
        return t

    def alias(self) -> "Tensor":
        """
        Return a tensor sharing this tensor's storage and dims.
        """
        return self._make_alias(self._key, self._dims)

    def channel_slice(self, start: int, count: int) -> "Tensor":
        """
        Return a zero-copy view of channels ``[start, start + count)``.

        Channels are the second-to-last dim (``dim_z`` for a 4-D tensor).
        """
        if self._key is not None:
            raise DimensionMismatch("Cannot slice a channel slice of another tensor")
        if len(self._dims) < 2:
            raise DimensionMismatch("channel_slice() requires at least 2 dims")
        nb_channels = self._dims[-2]
        if start < 0 or count <= 0 or start + count > nb_channels:
            raise DimensionMismatch(
                f"Channel range [{start}, {start + count}) out of bounds "
                f"for {nb_channels} channels"
            )
        key = (slice(None), slice(start, start + count))
        dims = self._dims[:-2] + (count,) + self._dims[-1:]
        return self._make_alias(key, dims)

    def shares_storage(self, other: "Tensor") -> bool:
        return self._storage is other._storage

    # ------------------------------------------------------------------
    # Validity flag
    # ------------------------------------------------------------------
    @property
    def valid(self) -> bool:
        return self._storage.valid

    def set_valid(self) -> None:
        self._storage.valid = True

    def clear_valid(self) -> None:
        self._storage.valid = False

    def accumulate_beta(self) -> float:
        """
        Return the accumulation factor for the next write into this tensor.

        Returns 1.0 when the storage already holds a valid partial result,
        0.0 otherwise. When this tensor is a slice of an invalid storage, the
        whole storage is zeroed first so that the slices not written by this
        call do not keep stale values once the flag is set.
        """
        if self._storage.valid:
            return 1.0
        if self._key is not None:
            self._zero_storage()
        return 0.0

    def _zero_storage(self) -> None:
        self._storage.array.fill(0)

    # ------------------------------------------------------------------
    # Host / device access
    # ------------------------------------------------------------------
    def _storage_array(self) -> np.ndarray:
        return self._storage.array

    def _host_view(self) -> np.ndarray:
        arr = self._storage.array
        if self._key is not None:
            arr = arr[self._key]
        if arr.shape != self.shape:
            arr = arr.reshape(self.shape)
        return arr

    def ensure_host(self, write: bool = False) -> np.ndarray:
        """
        Return the host array of the tensor, current for reading.
        """
        return self._host_view()

    def ensure_device(self, write: bool = False) -> Any:
        raise DeviceNotSupportedError("ensure_device", str(self.device))

    @property
    def data(self) -> np.ndarray:
        """
        Host array view. Writing through it is visible to every alias.
        """
        return self.ensure_host(write=True)

    def synchronize_h_to_d(self) -> None:
        pass

    def synchronize_d_to_h(self) -> None:
        pass

    def synchronize_h_based_to_d(self) -> None:
        pass

    def synchronize_d_based_to_h(self) -> None:
        pass

    def release(self) -> None:
        self._storage.decref()

    # ------------------------------------------------------------------
    # Copies
    # ------------------------------------------------------------------
    def to_numpy(self) -> np.ndarray:
        """
        Return a host copy of the tensor values.
        """
        return np.array(self.ensure_host(), copy=True)

    def copy_from_numpy(self, array: Any) -> None:
        arr = np.asarray(array)
        if arr.size != self.size:
            raise DimensionMismatch(
                f"Cannot copy {arr.size} elements into a tensor of "
                f"{self.size} elements"
            )
        if self.size == 0:
            return
        self.ensure_host(write=True)[...] = arr.reshape(self.shape)

    def copy_from(self, other: "Tensor") -> None:
        self.copy_from_numpy(other.to_numpy())

    def fill(self, value: float) -> None:
        if self.size:
            self.ensure_host(write=True).fill(value)

    def __len__(self) -> int:
        return self._dims[-1] if self._dims else 0

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(dims={list(self._dims)}, dtype={self.dtype}, "
            f"device={self.device}, valid={self.valid})"
        )

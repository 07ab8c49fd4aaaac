"""
Ordered tensor collections.

An `Interface` groups the tensors a cell reads from (its inputs) or writes
gradients into (its upstream gradient slots). Each member is tagged with the
channel offset at which it starts, so the members together form one logical
tensor whose channels are the concatenation of the members' channels.

The channel axis is the second-to-last dim of each member: ``dim_z`` for 4-D
activations and the input-channel axis of 2-D and 4-D weight tensors.
"""

from __future__ import annotations

from bisect import bisect_right
from typing import Iterable, Iterator, List, Tuple

from ._tensor import Tensor


def _nb_channels(tensor: Tensor) -> int:
    dims = tensor.dims
    if not dims:
        return 0
    return dims[-2] if len(dims) >= 2 else 1


class Interface:
    """
    Ordered collection of tensors with monotonically increasing channel
    offsets.
    """

    def __init__(self, tensors: Iterable[Tensor] = ()) -> None:
        self._tensors: List[Tensor] = []
        self._offsets: List[int] = []
        for t in tensors:
            self.push_back(t)

    def push_back(self, tensor: Tensor) -> None:
        """
        Append `tensor`; its channels follow those of the previous members.
        """
        offset = 0
        if self._tensors:
            offset = self._offsets[-1] + _nb_channels(self._tensors[-1])
        self._tensors.append(tensor)
        self._offsets.append(offset)

    def __len__(self) -> int:
        return len(self._tensors)

    def __iter__(self) -> Iterator[Tensor]:
        return iter(self._tensors)

    def __getitem__(self, index: int) -> Tensor:
        return self._tensors[index]

    def empty(self) -> bool:
        return not self._tensors

    @property
    def offsets(self) -> Tuple[int, ...]:
        return tuple(self._offsets)

    def dim_z(self) -> int:
        """
        Total number of channels over all members.
        """
        if not self._tensors:
            return 0
        return self._offsets[-1] + _nb_channels(self._tensors[-1])

    def dim_b(self) -> int:
        """
        Batch size shared by the members (0 when the interface is empty).
        """
        return self._tensors[0].dim_b if self._tensors else 0

    def data_size(self) -> int:
        return sum(t.size for t in self._tensors)

    def get_tensor(self, channel: int) -> Tuple[Tensor, int]:
        """
        Locate the member holding global channel `channel`.

        Returns
        -------
        (Tensor, int)
            The member tensor and its channel offset.

        Raises
        ------
        IndexError
            If `channel` is outside ``[0, dim_z())``.
        """
        if channel < 0 or channel >= self.dim_z():
            raise IndexError(
                f"channel {channel} out of range for an interface of "
                f"{self.dim_z()} channels"
            )
        k = bisect_right(self._offsets, channel) - 1
        # zero-channel members share their offset with the next one
        while _nb_channels(self._tensors[k]) == 0 or channel >= (
            self._offsets[k] + _nb_channels(self._tensors[k])
        ):
            k += 1
        return self._tensors[k], self._offsets[k]

    def set_valid(self) -> None:
        for t in self._tensors:
            t.set_valid()

    def clear_valid(self) -> None:
        for t in self._tensors:
            t.clear_valid()

    def fill(self, value: float) -> None:
        for t in self._tensors:
            t.fill(value)

    def synchronize_h_to_d(self) -> None:
        for t in self._tensors:
            t.synchronize_h_to_d()

    def synchronize_d_to_h(self) -> None:
        for t in self._tensors:
            t.synchronize_d_to_h()

    def synchronize_h_based_to_d(self) -> None:
        for t in self._tensors:
            t.synchronize_h_based_to_d()

    def synchronize_d_based_to_h(self) -> None:
        for t in self._tensors:
            t.synchronize_d_based_to_h()

    def __repr__(self) -> str:
        members = ", ".join(str(list(t.dims)) for t in self._tensors)
        return f"Interface([{members}], offsets={list(self._offsets)})"

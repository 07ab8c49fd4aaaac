"""
Device descriptors.

A `Device` names where the authoritative copy of a tensor may live: host
memory ("cpu") or the memory of one CUDA device ("cuda:<index>"). Device
descriptors carry no resources; allocation is the job of the backends.
"""

from __future__ import annotations

from enum import Enum
import re


class DeviceType(Enum):
    """
    Category of a computation device.
    """

    CPU = "cpu"
    CUDA = "cuda"


class Device:
    """
    Normalized computation device descriptor.

    Parameters
    ----------
    device : str
        Either ``"cpu"`` or ``"cuda:<index>"`` with a non-negative index.

    Raises
    ------
    ValueError
        If the device string does not match one of the supported formats.
    """

    __slots__ = ("type", "index")

    _CUDA_PATTERN = re.compile(r"^cuda:(\d+)$")

    def __init__(self, device: str):
        if device == "cpu":
            self.type = DeviceType.CPU
            self.index = None
        else:
            m = self._CUDA_PATTERN.match(device)
            if not m:
                raise ValueError(
                    f"Invalid device '{device}'. Expected 'cpu' or 'cuda:<index>'"
                )
            self.type = DeviceType.CUDA
            self.index = int(m.group(1))

    @classmethod
    def cuda(cls, index: int = 0) -> "Device":
        """
        Build the descriptor of CUDA device `index`.
        """
        return cls(f"cuda:{int(index)}")

    def __str__(self) -> str:
        return "cpu" if self.type is DeviceType.CPU else f"cuda:{self.index}"

    def __repr__(self) -> str:
        return f"Device('{self}')"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Device):
            return NotImplemented
        return (self.type, self.index) == (other.type, other.index)

    def __hash__(self) -> int:
        return hash((self.type, self.index))

    def is_cpu(self) -> bool:
        """
        Return True for the host device.
        """
        return self.type is DeviceType.CPU

    def is_cuda(self) -> bool:
        """
        Return True for a CUDA device.
        """
        return self.type is DeviceType.CUDA

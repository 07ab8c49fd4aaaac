"""
Shared helpers for weight initialization.

Fan-in and fan-out are computed from the NumPy shape of a parameter tensor,
which for celldnn weights is ``(nb_outputs, nb_inputs)`` for fully connected
cells and ``(nb_outputs, nb_channels, kernel_height, kernel_width)`` for
convolution cells.
"""

from __future__ import annotations


def _calculate_fan_in_and_fan_out(shape: tuple[int, ...]) -> tuple[int, int]:
    """
    Compute both fan-in and fan-out values for a tensor shape.

    Parameters
    ----------
    shape:
        NumPy shape of the weight tensor.

    Returns
    -------
    tuple[int, int]
        A tuple of (fan_in, fan_out).
    """
    if len(shape) == 0:
        return 1, 1
    if len(shape) == 1:
        return int(shape[0]), int(shape[0])
    if len(shape) == 2:
        fan_out, fan_in = shape
        return int(fan_in), int(fan_out)

    receptive_field = 1
    for d in shape[2:]:
        receptive_field *= int(d)

    fan_in = int(shape[1]) * receptive_field
    fan_out = int(shape[0]) * receptive_field
    return fan_in, fan_out

"""
Raw parameter files.

A parameter file is the concatenation of the raw element values of a fixed,
ordered list of tensors: no header, no separators. Each tensor is written in
row-major order matching its dims (C order of its host array), with the
tensor's own element type. Loading therefore requires the tensors to be
allocated with the right dims and element type beforehand, and a file whose
length does not match exactly is rejected.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

import numpy as np

from ...domain._errors import ParameterFileCorrupt, ParameterIOError
from ..tensor._tensor import Tensor

logger = logging.getLogger(__name__)


def save_tensors(file_name: str | Path, tensors: Sequence[Tensor]) -> None:
    """
    Write `tensors` back to back to `file_name`.

    Raises
    ------
    ParameterIOError
        If the file cannot be created or written.
    """
    try:
        with open(file_name, "wb") as f:
            for t in tensors:
                f.write(np.ascontiguousarray(t.to_numpy()).tobytes())
    except OSError as e:
        raise ParameterIOError(f"Could not write parameter file: {file_name}") from e


def load_tensors(
    file_name: str | Path,
    tensors: Sequence[Tensor],
    *,
    ignore_not_exists: bool = False,
) -> bool:
    """
    Fill `tensors` from `file_name`.

    Returns
    -------
    bool
        True when the file was loaded, False when it does not exist and
        `ignore_not_exists` is set.

    Raises
    ------
    ParameterIOError
        If the file cannot be opened (and is not an ignored missing file).
    ParameterFileCorrupt
        If the file ends before every tensor is filled, or has trailing data.
    """
    path = Path(file_name)
    if not path.exists():
        if ignore_not_exists:
            logger.info("Parameter file %s does not exist, skipping", path)
            return False
        raise ParameterIOError(f"Could not open parameter file: {path}")

    try:
        raw = path.read_bytes()
    except OSError as e:
        raise ParameterIOError(f"Could not read parameter file: {path}") from e

    expected = sum(t.size * t.dtype.itemsize for t in tensors)
    if len(raw) < expected:
        raise ParameterFileCorrupt(
            f"Error while reading parameter file {path}: unexpected end of "
            f"file, {len(raw)} bytes found, {expected} required"
        )
    if len(raw) > expected:
        raise ParameterFileCorrupt(
            f"Parameter file size larger than expected: {path} holds {len(raw)} "
            f"bytes, {expected} expected"
        )

    # a rejected file leaves every tensor untouched
    offset = 0
    for t in tensors:
        values = np.frombuffer(raw, dtype=t.dtype, count=t.size, offset=offset)
        t.copy_from_numpy(values)
        offset += t.size * t.dtype.itemsize
    return True

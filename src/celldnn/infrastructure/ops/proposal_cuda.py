"""
Region-proposal selection for the `Frame_CUDA` backend.

Box decoding runs on the device; the ranking and greedy NMS are inherently
sequential and small (one pass over R boxes per sample), so the decoded
boxes and scores are brought to the host for selection and the chosen boxes
are written back to the device output.
"""

from __future__ import annotations

from typing import Any, List, Sequence

import numpy as np

from .proposal_cpu import select_proposals


def decode_boxes_cuda(
    xp: Any, rois: Any, deltas: Any, means: Sequence[float], stds: Sequence[float]
) -> Any:
    m = xp.asarray(means, dtype=xp.float64).reshape(1, 4, 1)
    s = xp.asarray(stds, dtype=xp.float64).reshape(1, 4, 1)
    r = rois.astype(xp.float64)
    d = deltas.astype(xp.float64) * s + m

    x, y, w, h = r[:, 0], r[:, 1], r[:, 2], r[:, 3]
    cx = x + 0.5 * w + d[:, 0] * w
    cy = y + 0.5 * h + d[:, 1] * h
    pw = xp.exp(d[:, 2]) * w
    ph = xp.exp(d[:, 3]) * h
    return xp.stack([cx - 0.5 * pw, cy - 0.5 * ph, pw, ph], axis=1)


def proposal_forward_cuda(
    xp: Any,
    rois: Any,
    deltas: Any,
    scores: Any,
    out: Any,
    *,
    nb_proposals: int,
    means: Sequence[float],
    stds: Sequence[float],
    apply_nms: bool,
    iou_threshold: float,
) -> List[int]:
    """
    Same contract as `proposal_cpu.proposal_forward_cpu`, on `xp` arrays.
    """
    asnumpy = getattr(xp, "asnumpy", np.asarray)
    boxes = asnumpy(decode_boxes_cuda(xp, rois, deltas, means, stds))
    host_scores = asnumpy(scores)

    selected = np.zeros(out.shape, dtype=np.float64)
    counts: List[int] = []
    for n in range(boxes.shape[0]):
        kept = select_proposals(
            boxes[n],
            host_scores[n],
            nb_proposals,
            apply_nms=apply_nms,
            iou_threshold=iou_threshold,
        )
        if kept:
            selected[n, :, : len(kept)] = boxes[n][:, kept]
        counts.append(len(kept))

    out[...] = xp.asarray(selected.astype(out.dtype))
    return counts

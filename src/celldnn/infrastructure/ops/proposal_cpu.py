"""
CPU kernels for region-proposal selection.

Boxes are stored as ``(x, y, w, h)`` with (x, y) the top-left corner. Arrays
passed to these kernels use a (N, 4, R) layout: batch, box coordinate, box
index.

Decoding follows the usual bounding-box regression parameterization. With
deltas de-normalized as ``d = delta * std + mean``:

    cx' = d_x * w + cx        w' = exp(d_w) * w
    cy' = d_y * h + cy        h' = exp(d_h) * h
"""

from __future__ import annotations

from typing import List, Sequence

import numpy as np


def decode_boxes_cpu(
    rois: np.ndarray,
    deltas: np.ndarray,
    means: Sequence[float],
    stds: Sequence[float],
) -> np.ndarray:
    """
    Apply regression `deltas` to `rois`; both (N, 4, R). Returns (N, 4, R)
    float64 boxes.
    """
    N, _, R = rois.shape
    out = np.zeros((N, 4, R), dtype=np.float64)
    for n in range(N):
        for r in range(R):
            x, y, w, h = (float(v) for v in rois[n, :, r])
            d = [float(deltas[n, k, r]) * stds[k] + means[k] for k in range(4)]

            cx = x + 0.5 * w + d[0] * w
            cy = y + 0.5 * h + d[1] * h
            pw = np.exp(d[2]) * w
            ph = np.exp(d[3]) * h

            out[n, :, r] = (cx - 0.5 * pw, cy - 0.5 * ph, pw, ph)
    return out


def box_iou(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Intersection over union of two ``(x, y, w, h)`` boxes.
    """
    ix = max(0.0, min(a[0] + a[2], b[0] + b[2]) - max(a[0], b[0]))
    iy = max(0.0, min(a[1] + a[3], b[1] + b[3]) - max(a[1], b[1]))
    inter = ix * iy
    union = a[2] * a[3] + b[2] * b[3] - inter
    return inter / union if union > 0.0 else 0.0


def select_proposals(
    boxes: np.ndarray,
    scores: np.ndarray,
    nb_proposals: int,
    *,
    apply_nms: bool,
    iou_threshold: float,
) -> List[int]:
    """
    Return the indices of at most `nb_proposals` boxes, best score first.

    Parameters
    ----------
    boxes : np.ndarray
        (4, R) decoded boxes of one sample.
    scores : np.ndarray
        (R,) scores of one sample.
    apply_nms : bool
        Greedily drop boxes overlapping an already kept box by more than
        `iou_threshold`.
    """
    # stable sort keeps the lower index first among equal scores
    order = np.argsort(-scores.astype(np.float64), kind="stable")
    kept: List[int] = []
    for r in order:
        if len(kept) == nb_proposals:
            break
        if apply_nms and any(
            box_iou(boxes[:, r], boxes[:, k]) > iou_threshold for k in kept
        ):
            continue
        kept.append(int(r))
    return kept


def proposal_forward_cpu(
    rois: np.ndarray,
    deltas: np.ndarray,
    scores: np.ndarray,
    out: np.ndarray,
    *,
    nb_proposals: int,
    means: Sequence[float],
    stds: Sequence[float],
    apply_nms: bool,
    iou_threshold: float,
) -> List[int]:
    """
    Decode, rank and select proposals for every sample.

    Parameters
    ----------
    rois, deltas : np.ndarray
        (N, 4, R).
    scores : np.ndarray
        (N, R).
    out : np.ndarray
        (N, 4, nb_proposals), overwritten; unused slots are zero.

    Returns
    -------
    list[int]
        Number of proposals actually selected per sample.
    """
    boxes = decode_boxes_cpu(rois, deltas, means, stds)
    out.fill(0)
    counts: List[int] = []
    for n in range(boxes.shape[0]):
        kept = select_proposals(
            boxes[n],
            scores[n],
            nb_proposals,
            apply_nms=apply_nms,
            iou_threshold=iou_threshold,
        )
        for p, r in enumerate(kept):
            out[n, :, p] = boxes[n, :, r]
        counts.append(len(kept))
    return counts

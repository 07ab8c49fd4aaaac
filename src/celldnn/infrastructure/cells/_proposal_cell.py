"""
Region proposal cell.

Takes three input groups, in this order:

- ROIs, dims ``(R, 1, 4, N)``: anchor boxes as ``x, y, w, h``,
- bounding-box regression deltas, dims ``(R, 1, 4, N)``,
- scores, dims ``(R, 1, 1, N)``.

Deltas are de-normalized (``d * std_factor + means_factor``) and applied to
the ROIs Faster R-CNN style; the best scoring boxes are kept, optionally after
greedy non-maximum suppression. The output has dims
``(nb_proposals, 1, 4, N)``; slots without a proposal are zero.

The cell has no parameters and propagates no gradient.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Sequence, Tuple

from ...domain._errors import DimensionMismatch, InvalidConfiguration
from ..ops.proposal_cpu import proposal_forward_cpu
from ..ops.proposal_cuda import proposal_forward_cuda
from ..gradient._gradient_check import GradientCheckResult
from ._cell import Cell, _to_bool

logger = logging.getLogger(__name__)


def _to_factors(value: Any) -> Tuple[float, ...]:
    return tuple(float(v) for v in value)


class ProposalFrameKernel:
    def __init__(self, xp: Any) -> None:
        pass

    def forward(self, rois, deltas, scores, out, **options) -> List[int]:
        return proposal_forward_cpu(rois, deltas, scores, out, **options)


class ProposalCudaKernel:
    def __init__(self, xp: Any) -> None:
        self.xp = xp

    def forward(self, rois, deltas, scores, out, **options) -> List[int]:
        return proposal_forward_cuda(self.xp, rois, deltas, scores, out, **options)


class ProposalCell(Cell):
    """
    Region proposal selection.

    Parameters
    ----------
    name : str
        Cell name.
    nb_proposals : int
        Maximum number of proposals per sample.
    means_factor, std_factor : sequence of 4 floats, optional
        De-normalization of the regression deltas. Default to 0 and 1.
    apply_nms : bool, optional
        Apply greedy non-maximum suppression. Defaults to True.
    iou_threshold : float, optional
        A box overlapping an already kept box by more than this IoU is
        suppressed. Defaults to 0.7.
    backend, activation : optional
        See `Cell`.
    """

    TYPE = "Proposal"
    _KERNELS = {"Frame": ProposalFrameKernel, "Frame_CUDA": ProposalCudaKernel}
    _PARAMETERS = {
        "means_factor": _to_factors,
        "std_factor": _to_factors,
        "apply_nms": _to_bool,
        "iou_threshold": float,
    }

    def __init__(
        self,
        name: str,
        nb_proposals: int,
        *,
        means_factor: Sequence[float] = (0.0, 0.0, 0.0, 0.0),
        std_factor: Sequence[float] = (1.0, 1.0, 1.0, 1.0),
        apply_nms: bool = True,
        iou_threshold: float = 0.7,
        backend: Any = None,
        activation: Any = None,
    ) -> None:
        super().__init__(name, 4, backend=backend, activation=activation)
        if int(nb_proposals) <= 0:
            raise InvalidConfiguration(f"{name}: nb_proposals must be > 0, got {nb_proposals}")
        self._nb_proposals = int(nb_proposals)
        for key, value in (
            ("means_factor", means_factor),
            ("std_factor", std_factor),
            ("apply_nms", apply_nms),
            ("iou_threshold", iou_threshold),
        ):
            self.set_parameter(key, value)
        self._nb_selected: List[int] = []

    @property
    def nb_proposals(self) -> int:
        return self._nb_proposals

    @property
    def nb_selected(self) -> List[int]:
        """
        Number of proposals selected for each sample by the last forward pass.
        """
        return list(self._nb_selected)

    def _geometry_config(self) -> Dict[str, Any]:
        return {"nb_proposals": self._nb_proposals}

    @classmethod
    def _config_arguments(cls, config: Dict[str, Any]) -> Tuple[tuple, Dict[str, Any]]:
        return (config["name"], config["geometry"]["nb_proposals"]), {}

    def _output_dims(self) -> Tuple[int, ...]:
        return (self._nb_proposals, 1, 4, self._inputs.dim_b())

    def _initialize(self) -> None:
        if len(self._inputs) != 3:
            raise InvalidConfiguration(
                f"{self._name}: Proposal cells take 3 inputs (rois, deltas, scores), "
                f"got {len(self._inputs)}"
            )
        rois, deltas, scores = self._inputs
        nb_rois = rois.dim_x
        expected = (
            (rois, (nb_rois, 1, 4), "rois"),
            (deltas, (nb_rois, 1, 4), "deltas"),
            (scores, (nb_rois, 1, 1), "scores"),
        )
        for tensor, dims, what in expected:
            if tensor.dims[:3] != dims:
                raise DimensionMismatch(
                    f"{self._name}: {what} input must have dims "
                    f"{list(dims) + [tensor.dim_b]}, got {list(tensor.dims)}"
                )
        for key in ("means_factor", "std_factor"):
            if len(self.get_parameter(key)) != 4:
                raise InvalidConfiguration(f"{self._name}: {key} must have 4 values")
        if not 0.0 <= self._iou_threshold <= 1.0:
            raise InvalidConfiguration(
                f"{self._name}: iou_threshold must be in [0, 1], got {self._iou_threshold}"
            )

    def _propagate(self, inference: bool) -> None:
        N = self._inputs.dim_b()
        R = self._inputs[0].dim_x
        rois = self._backend.read(self._inputs[0]).reshape(N, 4, R)
        deltas = self._backend.read(self._inputs[1]).reshape(N, 4, R)
        scores = self._backend.read(self._inputs[2]).reshape(N, R)
        out = self._backend.write(self._outputs).reshape(N, 4, self._nb_proposals)

        self._nb_selected = self._kernel.forward(
            rois,
            deltas,
            scores,
            out,
            nb_proposals=self._nb_proposals,
            means=self._means_factor,
            stds=self._std_factor,
            apply_nms=self._apply_nms,
            iou_threshold=self._iou_threshold,
        )

    def back_propagate(self) -> None:
        self._require_initialized("back_propagate")
        logger.debug("%s: Proposal cells propagate no gradient", self._name)

    def check_gradient(
        self, epsilon: float = 1.0e-4, max_error: float = 1.0e-6
    ) -> List[GradientCheckResult]:
        self._require_initialized("check_gradient")
        logger.info("%s: Proposal cells have no gradient to check", self._name)
        return []

"""
Fully connected cell.

Each input group ``k`` is flattened per sample (channel, row, column order)
and multiplied by its own weight matrix:

    out[n, o] = sum_k sum_i W_k[o, i] * x_k[n, i] + b[o]

Weights of group ``k`` have dims ``(input_size_k, nb_outputs)`` (NumPy shape
``(nb_outputs, input_size_k)``); the bias has dims ``(nb_outputs,)``. The
outputs have dims ``(1, 1, nb_outputs, batch)``.
"""

from __future__ import annotations

from typing import Any, Tuple

from ...domain._errors import UnsupportedConfiguration
from ..ops.conv2d_cpu import bias_backward_cpu, bias_forward_cpu
from ..ops.conv2d_cuda import bias_backward_cuda, bias_forward_cuda
from ..ops.fc_cpu import fc_backward_data_cpu, fc_backward_weights_cpu, fc_forward_cpu
from ..ops.fc_cuda import fc_backward_data_cuda, fc_backward_weights_cuda, fc_forward_cuda
from ._cell import WeightedCell


class FcFrameKernel:
    """
    Host kernels of `FcCell`.
    """

    def __init__(self, xp: Any) -> None:
        pass

    def forward(self, alpha: float, x: Any, w: Any, beta: float, y: Any) -> None:
        fc_forward_cpu(alpha, x, w, beta, y)

    def bias_forward(self, b: Any, y: Any) -> None:
        bias_forward_cpu(b, y)

    def backward_weights(self, alpha: float, x: Any, dy: Any, beta: float, dw: Any) -> None:
        fc_backward_weights_cpu(alpha, x, dy, beta, dw)

    def backward_bias(self, alpha: float, dy: Any, beta: float, db: Any) -> None:
        bias_backward_cpu(alpha, dy, beta, db)

    def backward_data(self, alpha: float, w: Any, dy: Any, beta: float, dx: Any) -> None:
        fc_backward_data_cpu(alpha, w, dy, beta, dx)


class FcCudaKernel:
    """
    Device kernels of `FcCell`.
    """

    def __init__(self, xp: Any) -> None:
        self.xp = xp

    def forward(self, alpha: float, x: Any, w: Any, beta: float, y: Any) -> None:
        fc_forward_cuda(self.xp, alpha, x, w, beta, y)

    def bias_forward(self, b: Any, y: Any) -> None:
        bias_forward_cuda(self.xp, b, y)

    def backward_weights(self, alpha: float, x: Any, dy: Any, beta: float, dw: Any) -> None:
        fc_backward_weights_cuda(self.xp, alpha, x, dy, beta, dw)

    def backward_bias(self, alpha: float, dy: Any, beta: float, db: Any) -> None:
        bias_backward_cuda(self.xp, alpha, dy, beta, db)

    def backward_data(self, alpha: float, w: Any, dy: Any, beta: float, dx: Any) -> None:
        fc_backward_data_cuda(self.xp, alpha, w, dy, beta, dx)


class FcCell(WeightedCell):
    """
    Fully connected cell.

    Parameters
    ----------
    name : str
        Cell name.
    nb_outputs : int
        Number of output neurons.
    backend : Backend, optional
        Execution backend.
    activation : optional
        Output activation.
    no_bias : bool, optional
        Disable the bias.
    weights_filler, bias_filler : str, optional
        Filler names for freshly allocated parameters.
    weights_solver, bias_solver : ISolver, optional
        Solver prototypes.

    Notes
    -----
    Only the full connectivity mapping is supported; a partial mapping is
    rejected by `initialize`.
    """

    TYPE = "Fc"
    _KERNELS = {"Frame": FcFrameKernel, "Frame_CUDA": FcCudaKernel}

    def _output_dims(self) -> Tuple[int, ...]:
        return (1, 1, self._nb_outputs, self._inputs.dim_b())

    def _input_size(self, index: int) -> int:
        t = self._inputs[index]
        return t.size // t.dim_b

    def _weights_dims(self, index: int) -> Tuple[int, ...]:
        return (self._input_size(index), self._nb_outputs)

    def _initialize(self) -> None:
        if not self._mapping.all():
            raise UnsupportedConfiguration(
                f"{self._name}: Fc cells only support the full connectivity mapping"
            )
        self._initialize_parameters()

    def _propagate(self, inference: bool) -> None:
        N = self._inputs.dim_b()
        y = self._backend.write(self._outputs).reshape(N, self._nb_outputs)

        for k, p in enumerate(self._weights):
            x = self._backend.read(self._inputs[k]).reshape(N, -1)
            w = self._backend.read(p.value)
            self._kernel.forward(1.0, x, w, 0.0 if k == 0 else 1.0, y)

        if not self._no_bias:
            self._kernel.bias_forward(self._backend.read(self._bias.value), y)

    def _back_propagate(self) -> None:
        N = self._inputs.dim_b()
        dy = self._backend.read(self._diff_inputs).reshape(N, self._nb_outputs)

        for k, p in enumerate(self._weights):
            x = self._backend.read(self._inputs[k]).reshape(N, -1)
            self._write_gradient(
                p, lambda beta, dw: self._kernel.backward_weights(1.0, x, dy, beta, dw)
            )

        if not self._no_bias:
            self._write_gradient(
                self._bias, lambda beta, db: self._kernel.backward_bias(1.0, dy, beta, db)
            )

        for k, p in enumerate(self._weights):
            w = self._backend.read(p.value)

            def backward_data(beta: float, dx: Any) -> None:
                # channel slices are not contiguous, so the flattened view
                # may be a copy
                flat = dx.reshape(N, -1)
                self._kernel.backward_data(1.0, w, dy, beta, flat)
                dx[...] = flat.reshape(dx.shape)

            self._write_diff_output(k, backward_data)

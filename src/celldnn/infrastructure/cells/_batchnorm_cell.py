"""
Batch normalization cell.

Per-channel normalization over the batch and spatial axes:

    y = scale * (x - mean) / sqrt(var + epsilon) + bias

Training passes use the biased batch statistics, cache them for the
backward pass (``saved_mean``, ``saved_inv_variance = 1 / sqrt(var +
epsilon)``) and fold them into the running statistics:

    running = momentum * running + (1 - momentum) * batch

Inference passes use the running statistics only and write neither the
caches nor the running statistics.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Tuple

import numpy as np

from ...domain._errors import (
    DimensionMismatch,
    InvalidConfiguration,
    PrecedingForwardRequired,
    ShapeMismatch,
    UnsupportedConfiguration,
)
from ...domain._solver import ISolver
from .._parameter import Parameter
from ..ops.batchnorm_cpu import (
    batchnorm_backward_cpu,
    batchnorm_forward_inference_cpu,
    batchnorm_forward_training_cpu,
)
from ..ops.batchnorm_cuda import (
    batchnorm_backward_cuda,
    batchnorm_forward_inference_cuda,
    batchnorm_forward_training_cuda,
)
from ..solvers._sgd import SGDSolver
from ..tensor._tensor import Tensor
from ._cell import Cell

logger = logging.getLogger(__name__)


class BatchNormFrameKernel:
    def __init__(self, xp: Any) -> None:
        pass

    def forward_training(self, *args, **kwargs) -> None:
        batchnorm_forward_training_cpu(*args, **kwargs)

    def forward_inference(self, *args, **kwargs) -> None:
        batchnorm_forward_inference_cpu(*args, **kwargs)

    def backward(self, *args) -> None:
        batchnorm_backward_cpu(*args)


class BatchNormCudaKernel:
    def __init__(self, xp: Any) -> None:
        self.xp = xp

    def forward_training(self, *args, **kwargs) -> None:
        batchnorm_forward_training_cuda(self.xp, *args, **kwargs)

    def forward_inference(self, *args, **kwargs) -> None:
        batchnorm_forward_inference_cuda(self.xp, *args, **kwargs)

    def backward(self, *args) -> None:
        batchnorm_backward_cuda(self.xp, *args)


class BatchNormCell(Cell):
    """
    Batch normalization cell.

    Parameters
    ----------
    name : str
        Cell name.
    nb_outputs : int
        Number of channels; must equal the input channel count.
    epsilon : float, optional
        Added to the variance before the square root. Defaults to 1e-5.
    moving_average_momentum : float, optional
        Weight of the previous running statistics, in (0, 1). Defaults to 0.9.
    scale_solver, bias_solver : ISolver, optional
        Solver prototypes of the trainable scale and bias.
    backend, activation : optional
        See `Cell`.

    Notes
    -----
    Parameters have dims ``(1, 1, nb_outputs, 1)`` and default to scale 1,
    bias 0, mean 0 and variance 1. They are persisted in that order.
    """

    TYPE = "BatchNorm"
    _KERNELS = {"Frame": BatchNormFrameKernel, "Frame_CUDA": BatchNormCudaKernel}
    _PARAMETERS = {"epsilon": float, "moving_average_momentum": float}

    def __init__(
        self,
        name: str,
        nb_outputs: int,
        *,
        epsilon: float = 1.0e-5,
        moving_average_momentum: float = 0.9,
        scale_solver: Optional[ISolver] = None,
        bias_solver: Optional[ISolver] = None,
        backend: Any = None,
        activation: Any = None,
    ) -> None:
        super().__init__(name, nb_outputs, backend=backend, activation=activation)
        self._epsilon = 1.0e-5
        self._moving_average_momentum = 0.9
        self.set_parameter("epsilon", epsilon)
        self.set_parameter("moving_average_momentum", moving_average_momentum)

        scale_solver = scale_solver if scale_solver is not None else SGDSolver()
        bias_solver = bias_solver if bias_solver is not None else scale_solver
        self._scale = self._new_parameter("scale", scale_solver)
        self._bias = self._new_parameter("bias", bias_solver)
        self._mean = self._backend.empty()
        self._variance = self._backend.empty()

        self._saved_mean = self._backend.empty()
        self._saved_inv_variance = self._backend.empty()
        self._has_saved_statistics = False
        self._nb_training_passes = 0

    @property
    def scale(self) -> Tensor:
        return self._scale.value

    @property
    def bias(self) -> Tensor:
        return self._bias.value

    @property
    def mean(self) -> Tensor:
        return self._mean

    @property
    def variance(self) -> Tensor:
        return self._variance

    @property
    def saved_mean(self) -> Tensor:
        return self._saved_mean

    @property
    def saved_inv_variance(self) -> Tensor:
        return self._saved_inv_variance

    @property
    def nb_training_passes(self) -> int:
        return self._nb_training_passes

    def _set_channel_values(self, target: Tensor, what: str, values: Any) -> None:
        """
        Copy per-channel `values` into `target`.

        `values` is a tensor with the parameter dims, or an array of
        ``nb_outputs`` elements (1-D) or of the parameter shape. An empty
        `target` is allocated first.

        Raises
        ------
        ShapeMismatch
            If `values` does not match the parameter dims.
        """
        dims = self._parameter_dims()
        if isinstance(values, Tensor):
            actual = tuple(values.dims)
            arr = values.to_numpy()
        else:
            arr = np.asarray(values)
            if arr.ndim == 1:
                actual = (1, 1, arr.shape[0], 1)
            else:
                actual = tuple(reversed(arr.shape))
        if actual != dims:
            raise ShapeMismatch(self._name, what, dims, actual)
        if target.empty():
            target.resize(dims)
        target.copy_from_numpy(arr)

    def set_scales(self, values: Any) -> None:
        self._set_channel_values(self._scale.value, "scale", values)

    def set_biases(self, values: Any) -> None:
        self._set_channel_values(self._bias.value, "bias", values)

    def set_means(self, values: Any) -> None:
        self._set_channel_values(self._mean, "mean", values)

    def set_variances(self, values: Any) -> None:
        self._set_channel_values(self._variance, "variance", values)

    def _check_input(self, tensor: Tensor) -> None:
        super()._check_input(tensor)
        self._check_same_spatial_size(tensor)

    def _output_dims(self) -> Tuple[int, ...]:
        first = self._inputs[0]
        return (first.dim_x, first.dim_y, self._nb_outputs, first.dim_b)

    def _parameter_dims(self) -> Tuple[int, ...]:
        return (1, 1, self._nb_outputs, 1)

    def _allocate_statistic(self, tensor: Tensor, what: str, value: float) -> None:
        dims = self._parameter_dims()
        if tensor.empty():
            tensor.resize(dims, value)
            self._fresh_tensors.append(tensor)
        elif tensor.dims != dims:
            raise ShapeMismatch(self._name, what, dims, tensor.dims)

    def _initialize(self) -> None:
        if len(self._inputs) > 1:
            raise UnsupportedConfiguration(
                f"{self._name}: BatchNorm cells do not support multiple input groups "
                f"({len(self._inputs)} given)"
            )
        if self.nb_channels != self._nb_outputs:
            raise DimensionMismatch(
                f"{self._name}: nb_outputs ({self._nb_outputs}) must equal the number "
                f"of input channels ({self.nb_channels})"
            )
        if not 0.0 < self._moving_average_momentum < 1.0:
            raise InvalidConfiguration(
                f"{self._name}: moving_average_momentum must be in (0, 1), "
                f"got {self._moving_average_momentum}"
            )
        if self._epsilon <= 0.0:
            raise InvalidConfiguration(f"{self._name}: epsilon must be > 0")

        dims = self._parameter_dims()
        self._allocate_parameter(self._scale, dims, "ones")
        self._allocate_parameter(self._bias, dims, "zeros")
        self._allocate_statistic(self._mean, "mean", 0.0)
        self._allocate_statistic(self._variance, "variance", 1.0)

        self._saved_mean = self._backend.tensor((self._nb_outputs,))
        self._saved_inv_variance = self._backend.tensor((self._nb_outputs,))
        self._has_saved_statistics = False
        logger.debug(
            "%s: %d channels, epsilon %g, momentum %g",
            self._name,
            self._nb_outputs,
            self._epsilon,
            self._moving_average_momentum,
        )

    def _channel_array(self, tensor: Tensor, write: bool = False) -> Any:
        arr = self._backend.write(tensor) if write else self._backend.read(tensor)
        return arr.reshape(-1)

    def _propagate(self, inference: bool) -> None:
        x = self._backend.read(self._inputs[0])
        y = self._backend.write(self._outputs)
        scale = self._channel_array(self._scale.value)
        bias = self._channel_array(self._bias.value)

        if inference:
            self._kernel.forward_inference(
                1.0,
                x,
                0.0,
                y,
                scale,
                bias,
                self._channel_array(self._mean),
                self._channel_array(self._variance),
                epsilon=self._epsilon,
            )
            self._has_saved_statistics = False
            return

        saved_mean = self._backend.write(self._saved_mean)
        saved_inv_variance = self._backend.write(self._saved_inv_variance)
        saved_mean.fill(0)
        saved_inv_variance.fill(0)

        self._kernel.forward_training(
            1.0,
            x,
            0.0,
            y,
            scale,
            bias,
            self._channel_array(self._mean, write=True),
            self._channel_array(self._variance, write=True),
            saved_mean,
            saved_inv_variance,
            epsilon=self._epsilon,
            momentum=self._moving_average_momentum,
        )
        self._has_saved_statistics = True
        self._nb_training_passes += 1

    def back_propagate(self) -> None:
        self._require_initialized("back_propagate")
        if not self._has_saved_statistics:
            raise PrecedingForwardRequired(
                f"{self._name}: back_propagate() requires a preceding training "
                f"propagate()"
            )
        super().back_propagate()

    def _back_propagate(self) -> None:
        x = self._backend.read(self._inputs[0])
        dy = self._backend.read(self._diff_inputs)

        beta_params = self._scale.grad.accumulate_beta()
        self._bias.grad.accumulate_beta()
        grad_scale = self._channel_array(self._scale.grad, write=True)
        grad_bias = self._channel_array(self._bias.grad, write=True)

        slot = self._diff_outputs[0]
        if slot.empty():
            beta_data, grad_x = 0.0, None
        else:
            beta_data = slot.accumulate_beta()
            grad_x = self._backend.write(slot)

        self._kernel.backward(
            1.0,
            x,
            dy,
            self._channel_array(self._scale.value),
            self._backend.read(self._saved_mean),
            self._backend.read(self._saved_inv_variance),
            beta_params,
            grad_scale,
            grad_bias,
            beta_data,
            grad_x,
        )

        self._scale.grad.set_valid()
        self._bias.grad.set_valid()
        if grad_x is not None:
            slot.set_valid()

    def _trainable_parameters(self) -> List[Parameter]:
        return [self._scale, self._bias]

    def _free_parameters(self) -> List[Tensor]:
        return [self._scale.value, self._bias.value, self._mean, self._variance]

    def release(self) -> None:
        self._mean.release()
        self._variance.release()
        self._saved_mean.release()
        self._saved_inv_variance.release()
        super().release()

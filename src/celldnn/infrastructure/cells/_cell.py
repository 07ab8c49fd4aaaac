"""
Cell base classes.

`Cell` implements what every layer type shares:

- the lifecycle state machine (``CONSTRUCTED -> CONNECTED -> INITIALIZED ->
  READY``),
- multi-input bookkeeping: the input interface, the upstream gradient slots
  and the channel-to-output connectivity mapping,
- the forward / backward / update templates around the type-specific
  kernels, including the activation,
- gradient checking, parameter persistence and typed configuration.

`WeightedCell` adds per-input-group weights and an optional bias, shared by
the fully connected, convolution and deconvolution cells.

Accumulation protocol
---------------------
Forward: the first input group overwrites the output (``beta = 0``), every
further group accumulates into it (``beta = 1``).

Backward: a gradient tensor is written with ``beta = 1`` when its validity
flag is set (another consumer or input group already wrote a partial sum)
and ``beta = 0`` otherwise; the flag is set after writing. A forward pass
clears the flag of the cell's own gradient input, so a stale gradient is
never mixed with a fresh one.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, ClassVar, Dict, List, Optional, Sequence, Tuple

import numpy as np

from ...domain._cell import CellState
from ...domain._errors import (
    DimensionMismatch,
    InvalidConfiguration,
)
from ...domain._solver import ISolver
from .._parameter import Parameter
from ..activations._activations import (
    Activation,
    activation_to_config,
    make_activation,
)
from ..backends._backend import Backend, FrameBackend
from ..gradient._gradient_check import GradientCheck, GradientCheckResult
from ..io._parameter_file import load_tensors, save_tensors
from ..solvers._sgd import SGDSolver
from ..tensor._interface import Interface
from ..tensor._tensor import Tensor
from ..utils.weight_initializer import WeightInitializer

logger = logging.getLogger(__name__)


def _to_bool(value: Any) -> bool:
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    if isinstance(value, (int, np.integer)) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        v = value.strip().lower()
        if v in ("1", "true", "yes", "on"):
            return True
        if v in ("0", "false", "no", "off"):
            return False
    raise ValueError(f"not a boolean: {value!r}")


def _to_filler(value: Any) -> str:
    name = str(value)
    WeightInitializer(name)
    return name


def _to_dims2(value: Any) -> Tuple[int, int]:
    """
    Coerce a scalar or a 2-element sequence into an ``(x, y)`` pair.
    Sequences of any other length are kept so `initialize` can reject them.
    """
    if isinstance(value, (int, np.integer)):
        return (int(value), int(value))
    return tuple(int(v) for v in value)


class Cell:
    """
    Base class of all cells.

    Parameters
    ----------
    name : str
        Unique cell name, used in messages and parameter file names.
    nb_outputs : int
        Number of output channels.
    backend : Backend, optional
        Execution backend. Defaults to the float32 host backend.
    activation : str, dict or Activation, optional
        Activation applied to the outputs. Defaults to linear.
    """

    TYPE: ClassVar[str] = "Cell"

    # name -> coercion function; names are stored as attributes "_<name>"
    _PARAMETERS: ClassVar[Dict[str, Callable[[Any], Any]]] = {}

    # parameters that fix tensor shapes and cannot change after initialize()
    _STRUCTURAL: ClassVar[frozenset] = frozenset()

    # backend name -> kernel class
    _KERNELS: ClassVar[Dict[str, Callable[[Any], Any]]] = {}

    def __init__(
        self,
        name: str,
        nb_outputs: int,
        *,
        backend: Optional[Backend] = None,
        activation: Any = None,
    ) -> None:
        if int(nb_outputs) <= 0:
            raise InvalidConfiguration(f"{name}: nb_outputs must be > 0, got {nb_outputs}")

        self._name = str(name)
        self._nb_outputs = int(nb_outputs)
        self._backend = backend if backend is not None else FrameBackend()
        try:
            self._activation: Activation = make_activation(activation)
        except ValueError as e:
            raise InvalidConfiguration(f"{self._name}: {e}") from e

        try:
            kernel_cls = self._KERNELS[self._backend.name]
        except KeyError:
            raise InvalidConfiguration(
                f"{self._name}: {self.TYPE} cells have no {self._backend.name} kernels"
            ) from None
        self._kernel = kernel_cls(self._backend.xp)

        self._state = CellState.CONSTRUCTED
        self._inputs = Interface()
        self._diff_outputs = Interface()
        self._mapping = np.zeros((0, self._nb_outputs), dtype=bool)
        self._outputs = self._backend.empty()
        self._diff_inputs = self._backend.empty()
        self._fresh_parameters: List[Parameter] = []
        self._fresh_tensors: List[Tensor] = []

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    @property
    def name(self) -> str:
        return self._name

    @property
    def nb_outputs(self) -> int:
        return self._nb_outputs

    @property
    def backend(self) -> Backend:
        return self._backend

    @property
    def state(self) -> CellState:
        return self._state

    @property
    def activation(self) -> Activation:
        return self._activation

    @property
    def inputs(self) -> Interface:
        return self._inputs

    @property
    def outputs(self) -> Tensor:
        return self._outputs

    @property
    def diff_inputs(self) -> Tensor:
        """
        Gradient of the loss w.r.t. this cell's outputs, written by the
        consumers of the cell.
        """
        return self._diff_inputs

    @property
    def diff_outputs(self) -> Interface:
        """
        Gradient slots of the producers, one per input group; empty tensors
        for stimulus inputs.
        """
        return self._diff_outputs

    @property
    def mapping(self) -> np.ndarray:
        """
        Copy of the (nb_channels, nb_outputs) connectivity matrix.
        """
        return self._mapping.copy()

    @property
    def nb_channels(self) -> int:
        return self._inputs.dim_z()

    @property
    def channels_width(self) -> int:
        return self._inputs[0].dim_x if len(self._inputs) else 0

    @property
    def channels_height(self) -> int:
        return self._inputs[0].dim_y if len(self._inputs) else 0

    @property
    def outputs_width(self) -> int:
        return self._outputs.dim_x

    @property
    def outputs_height(self) -> int:
        return self._outputs.dim_y

    @property
    def batch_size(self) -> int:
        return self._inputs.dim_b()

    def is_connection(self, channel: int, output: int) -> bool:
        return bool(self._mapping[channel, output])

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(name={self._name!r}, nb_outputs={self._nb_outputs}, "
            f"backend={self._backend!r}, state={self._state.value})"
        )

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------
    def set_parameter(self, name: str, value: Any) -> None:
        """
        Set a typed configuration parameter.

        Raises
        ------
        InvalidConfiguration
            If the name is unknown, the value cannot be coerced, or the
            parameter fixes tensor shapes and the cell is initialized.
        """
        try:
            coerce = self._PARAMETERS[name]
        except KeyError:
            raise InvalidConfiguration(
                f"{self._name}: unknown parameter {name!r} for {self.TYPE} cells; "
                f"known: {sorted(self._PARAMETERS)}"
            ) from None
        if name in self._STRUCTURAL and self._state in (
            CellState.INITIALIZED,
            CellState.READY,
        ):
            raise InvalidConfiguration(
                f"{self._name}: parameter {name!r} cannot change after initialize()"
            )
        try:
            coerced = coerce(value)
        except (TypeError, ValueError) as e:
            raise InvalidConfiguration(
                f"{self._name}: invalid value {value!r} for parameter {name!r}: {e}"
            ) from e
        setattr(self, "_" + name, coerced)

    def get_parameter(self, name: str) -> Any:
        if name not in self._PARAMETERS:
            raise InvalidConfiguration(
                f"{self._name}: unknown parameter {name!r} for {self.TYPE} cells"
            )
        return getattr(self, "_" + name)

    def _geometry_config(self) -> Dict[str, Any]:
        return {}

    @classmethod
    def _config_arguments(cls, config: Dict[str, Any]) -> Tuple[tuple, Dict[str, Any]]:
        """
        Constructor arguments of a cell described by `get_config`.
        """
        return (config["name"], config["nb_outputs"]), dict(config.get("geometry", {}))

    def get_config(self) -> Dict[str, Any]:
        """
        Return a configuration dictionary from which an identical, not yet
        connected cell can be rebuilt with `CellRegistry.create_from_config`.
        """
        return {
            "type": self.TYPE,
            "name": self._name,
            "nb_outputs": self._nb_outputs,
            "backend": self._backend.name,
            "dtype": self._backend.data_type.value,
            "activation": activation_to_config(self._activation),
            "geometry": self._geometry_config(),
            "parameters": {k: self.get_parameter(k) for k in sorted(self._PARAMETERS)},
        }

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------
    def add_input(
        self,
        producer: "Cell | Tensor",
        mapping: Any = None,
        *,
        channel_range: Optional[Tuple[int, int]] = None,
    ) -> None:
        """
        Connect a producer as a new input group.

        Parameters
        ----------
        producer : Cell or Tensor
            A cell (its outputs are read, its gradient input receives this
            cell's upstream gradient) or a stimulus tensor (no gradient).
        mapping : array-like of bool, optional
            (nb_channels_of_group, nb_outputs) connectivity; all-connected by
            default.
        channel_range : (start, count), optional
            Connect only a channel sub-range of the producer's outputs.

        Raises
        ------
        InvalidConfiguration
            If the cell is already initialized, or the backend cannot read the
            producer's tensors.
        DimensionMismatch
            If the producer has no 4-D output shape, zero channels, a batch or
            spatial size incompatible with the existing inputs, or if
            `mapping` has the wrong shape.
        """
        if self._state not in (CellState.CONSTRUCTED, CellState.CONNECTED):
            raise InvalidConfiguration(
                f"{self._name}: add_input() is only allowed before initialize() "
                f"(state is {self._state.value})"
            )

        if isinstance(producer, Cell):
            output = producer.outputs
            diff: Optional[Tensor] = producer.diff_inputs
            label = producer.name
        elif isinstance(producer, Tensor):
            output = producer
            diff = None
            label = "stimulus"
        else:
            raise TypeError(f"add_input() expects a Cell or a Tensor, got {type(producer)!r}")

        if output.empty():
            raise DimensionMismatch(f"{self._name}: input {label} has no output shape")
        if output.nb_dims != 4:
            raise DimensionMismatch(
                f"{self._name}: input {label} must be 4-D, got dims {list(output.dims)}"
            )

        if channel_range is not None:
            start, count = (int(v) for v in channel_range)
            output = output.channel_slice(start, count)
            if diff is not None and not diff.empty():
                diff = diff.channel_slice(start, count)

        if not self._backend.accepts(output):
            raise InvalidConfiguration(
                f"{self._name}: {self._backend.name} cells cannot read "
                f"{type(output).__name__} input {label}"
            )

        nb_channels = output.dim_z
        if nb_channels == 0:
            raise DimensionMismatch(f"{self._name}: input {label} has no channel")

        group_mapping = self._normalize_mapping(mapping, nb_channels)
        self._check_input(output)

        self._inputs.push_back(output)
        self._diff_outputs.push_back(
            diff if diff is not None and not diff.empty() else self._backend.empty()
        )
        self._mapping = np.concatenate([self._mapping, group_mapping], axis=0)

        self._on_input_added(len(self._inputs) - 1)
        self._set_outputs_dims()
        self._state = CellState.CONNECTED

    def _normalize_mapping(self, mapping: Any, nb_channels: int) -> np.ndarray:
        if mapping is None:
            return np.ones((nb_channels, self._nb_outputs), dtype=bool)
        arr = np.asarray(mapping).astype(bool)
        if arr.shape != (nb_channels, self._nb_outputs):
            raise DimensionMismatch(
                f"{self._name}: mapping must be {nb_channels}x{self._nb_outputs} "
                f"(channels x outputs), got {'x'.join(str(d) for d in arr.shape)}"
            )
        return arr

    def _check_input(self, tensor: Tensor) -> None:
        """
        Validate a new input against the existing ones (batch size by
        default).
        """
        if len(self._inputs) and tensor.dim_b != self._inputs.dim_b():
            raise DimensionMismatch(
                f"{self._name}: batch size {tensor.dim_b} of new input differs from "
                f"{self._inputs.dim_b()}"
            )

    def _check_same_spatial_size(self, tensor: Tensor) -> None:
        if len(self._inputs) and (tensor.dim_x, tensor.dim_y) != (
            self._inputs[0].dim_x,
            self._inputs[0].dim_y,
        ):
            raise DimensionMismatch(
                f"{self._name}: input size {tensor.dim_x}x{tensor.dim_y} differs from "
                f"{self._inputs[0].dim_x}x{self._inputs[0].dim_y}"
            )

    def _on_input_added(self, index: int) -> None:
        """
        Hook for per-input-group state (weights, argmax buffers).
        """

    def _output_dims(self) -> Tuple[int, ...]:
        raise NotImplementedError

    def _set_outputs_dims(self) -> None:
        dims = self._output_dims()
        if self._outputs.dims != dims:
            self._outputs.resize(dims)
            self._diff_inputs.resize(dims)

    def _group_mapping(self, index: int) -> np.ndarray:
        offset = self._inputs.offsets[index]
        return self._mapping[offset : offset + self._inputs[index].dim_z]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def _require_initialized(self, action: str) -> None:
        if self._state not in (CellState.INITIALIZED, CellState.READY):
            raise InvalidConfiguration(
                f"{self._name}: {action}() requires initialize() "
                f"(state is {self._state.value})"
            )

    def initialize(self) -> None:
        """
        Validate the configuration and allocate parameters.

        Parameters that already hold values with the expected dims (loaded
        or shared) are kept; allocations made before a failure are released.
        """
        if self._state is CellState.DESTROYED:
            raise InvalidConfiguration(f"{self._name}: cell was released")
        if self._inputs.empty():
            raise InvalidConfiguration(f"{self._name}: initialize() requires an input")

        self._fresh_parameters = []
        self._fresh_tensors = []
        try:
            with self._backend.scoped_allocations():
                self._initialize()
        except Exception:
            for p in self._fresh_parameters:
                p.value.resize(())
                p.grad.resize(())
            for t in self._fresh_tensors:
                t.resize(())
            raise
        finally:
            self._fresh_parameters = []
            self._fresh_tensors = []
        if self._state is not CellState.READY:
            self._state = CellState.INITIALIZED
        logger.debug("%s: initialized, outputs %s", self._name, list(self._outputs.dims))

    def _initialize(self) -> None:
        raise NotImplementedError

    def propagate(self, inference: bool = False) -> None:
        """
        Forward pass.

        Parameters
        ----------
        inference : bool, optional
            Inference mode: cells with training-only behavior (batch
            normalization) use their frozen statistics.
        """
        self._require_initialized("propagate")
        self._backend.synchronize_inputs(self._inputs)
        self._propagate(bool(inference))

        y = self._backend.write(self._outputs)
        self._activation.propagate(self._backend.xp, y)

        self._diff_inputs.clear_valid()
        self._state = CellState.READY

    def _propagate(self, inference: bool) -> None:
        raise NotImplementedError

    def back_propagate(self) -> None:
        """
        Backward pass: parameter gradients and upstream gradients.

        Cells without trainable parameters whose gradient slots are all empty
        return immediately.
        """
        self._require_initialized("back_propagate")
        has_slots = any(not t.empty() for t in self._diff_outputs)
        if not has_slots and not self._trainable_parameters():
            return

        y = self._backend.read(self._outputs)
        dy = self._backend.write(self._diff_inputs)
        self._activation.back_propagate(self._backend.xp, y, dy)

        self._back_propagate()
        self._backend.synchronize_diff_outputs(self._diff_outputs)

    def _back_propagate(self) -> None:
        raise NotImplementedError

    def _write_diff_output(
        self, index: int, kernel: Callable[[float, Any], None]
    ) -> None:
        """
        Run `kernel(beta, dst)` on gradient slot `index` following the
        accumulation protocol. Empty slots are skipped.
        """
        slot = self._diff_outputs[index]
        if slot.empty():
            return
        beta = slot.accumulate_beta()
        kernel(beta, self._backend.write(slot))
        slot.set_valid()

    def _write_gradient(
        self, parameter: Parameter, kernel: Callable[[float, Any], None]
    ) -> None:
        """
        Run `kernel(beta, dst)` on the gradient of `parameter`.
        """
        beta = parameter.grad.accumulate_beta()
        kernel(beta, self._backend.write(parameter.grad))
        parameter.grad.set_valid()

    def update(self) -> None:
        """
        Apply the solvers of the parameters this cell owns.
        """
        self._require_initialized("update")
        batch_size = self._inputs.dim_b()
        for p in self._trainable_parameters():
            p.apply_update(self, batch_size)

    def release(self) -> None:
        """
        Free the cell's tensors, including device allocations.
        """
        for p in self._trainable_parameters():
            if p.is_owned_by(self):
                p.release()
        self._outputs.release()
        self._diff_inputs.release()
        self._state = CellState.DESTROYED

    # ------------------------------------------------------------------
    # Parameters
    # ------------------------------------------------------------------
    def _new_parameter(self, name: str, solver: ISolver) -> Parameter:
        return Parameter(
            name,
            self._backend.empty(),
            self._backend.empty(),
            solver=solver.clone(),
            owner=self,
        )

    def _allocate_parameter(
        self, parameter: Parameter, dims: Sequence[int], filler: str, **filler_args: Any
    ) -> None:
        if parameter.allocate(dims, self._name):
            self._fresh_parameters.append(parameter)
            WeightInitializer(filler)(parameter.value, **filler_args)

    def _trainable_parameters(self) -> List[Parameter]:
        return []

    def _free_parameters(self) -> List[Tensor]:
        return [p.value for p in self._trainable_parameters()]

    def save_free_parameters(self, file_name: str) -> None:
        """
        Write the cell's parameters to a raw parameter file.
        """
        self._require_initialized("save_free_parameters")
        save_tensors(file_name, self._free_parameters())

    def load_free_parameters(self, file_name: str, ignore_not_exists: bool = False) -> None:
        """
        Read the cell's parameters from a raw parameter file.

        A missing file is a silent no-op when `ignore_not_exists` is set.
        """
        self._require_initialized("load_free_parameters")
        load_tensors(file_name, self._free_parameters(), ignore_not_exists=ignore_not_exists)

    # ------------------------------------------------------------------
    # Gradient check
    # ------------------------------------------------------------------
    def _gradient_switch_state(self) -> Optional[Callable[[], Any]]:
        return None

    def check_gradient(
        self, epsilon: float = 1.0e-4, max_error: float = 1.0e-6
    ) -> List[GradientCheckResult]:
        """
        Compare analytic gradients with central finite differences for every
        trainable parameter and every input with a gradient slot.

        Mismatches are logged; the returned results tell whether each
        checked tensor passed.
        """
        self._require_initialized("check_gradient")
        params = self._trainable_parameters()

        def back_propagate() -> None:
            for p in params:
                p.grad.clear_valid()
            self._diff_outputs.clear_valid()
            self.back_propagate()

        gc = GradientCheck(epsilon, max_error)
        gc.initialize(
            self._outputs,
            self._diff_inputs,
            lambda: self.propagate(False),
            back_propagate,
            self._gradient_switch_state(),
        )

        results = [
            gc.check(f"{self._name}_diff_{p.name}", p.value, p.grad) for p in params
        ]

        slots = [(k, t) for k, t in enumerate(self._diff_outputs) if not t.empty()]
        if not slots:
            logger.warning(
                "%s: empty diff outputs, input gradients are not checked", self._name
            )
        for k, slot in slots:
            results.append(
                gc.check(f"{self._name}_diff_outputs[{k}]", self._inputs[k], slot)
            )
        return results


class WeightedCell(Cell):
    """
    Cell with one weight tensor per input group and an optional bias.

    Parameters
    ----------
    no_bias : bool, optional
        Disable the bias.
    weights_filler, bias_filler : str, optional
        Registered filler names applied when parameters are allocated.
    weights_solver, bias_solver : ISolver, optional
        Solver prototypes; every parameter tensor receives a clone.
        Defaults to `SGDSolver()`.
    """

    _PARAMETERS = {
        "no_bias": _to_bool,
        "weights_filler": _to_filler,
        "bias_filler": _to_filler,
    }
    _STRUCTURAL = frozenset({"no_bias"})

    def __init__(
        self,
        name: str,
        nb_outputs: int,
        *,
        backend: Optional[Backend] = None,
        activation: Any = None,
        no_bias: bool = False,
        weights_filler: str = "xavier_uniform",
        bias_filler: str = "zeros",
        weights_solver: Optional[ISolver] = None,
        bias_solver: Optional[ISolver] = None,
    ) -> None:
        super().__init__(name, nb_outputs, backend=backend, activation=activation)
        self._no_bias = False
        self._weights_filler = "xavier_uniform"
        self._bias_filler = "zeros"
        self.set_parameter("no_bias", no_bias)
        self.set_parameter("weights_filler", weights_filler)
        self.set_parameter("bias_filler", bias_filler)

        self._weights_solver: ISolver = weights_solver if weights_solver is not None else SGDSolver()
        self._bias_solver: ISolver = bias_solver if bias_solver is not None else self._weights_solver

        self._weights: List[Parameter] = []
        self._bias = self._new_parameter("bias", self._bias_solver)

    def _on_input_added(self, index: int) -> None:
        self._weights.append(self._new_parameter(f"weights[{index}]", self._weights_solver))

    def _weights_dims(self, index: int) -> Tuple[int, ...]:
        raise NotImplementedError

    def _initialize_parameters(self) -> None:
        for k, p in enumerate(self._weights):
            self._allocate_parameter(p, self._weights_dims(k), self._weights_filler)
        if not self._no_bias:
            self._allocate_parameter(self._bias, (self._nb_outputs,), self._bias_filler)

    def _trainable_parameters(self) -> List[Parameter]:
        params = list(self._weights)
        if not self._no_bias:
            params.append(self._bias)
        return params

    # ------------------------------------------------------------------
    # Sharing
    # ------------------------------------------------------------------
    def set_weights(self, index: int, parameter: Parameter) -> None:
        """
        Use `parameter` (typically another cell's weights) as the weights of
        input group `index`. The other cell stays the owner of record.
        """
        if self._state in (CellState.INITIALIZED, CellState.READY):
            raise InvalidConfiguration(f"{self._name}: set_weights() before initialize() only")
        if not parameter.value.empty() and not self._inputs.empty():
            expected = self._weights_dims(index)
            if parameter.value.dims != expected:
                raise DimensionMismatch(
                    f"{self._name}: shared weights dims {list(parameter.value.dims)} "
                    f"differ from {list(expected)}"
                )
        self._weights[index] = parameter

    def share_weights(self, other: "WeightedCell") -> None:
        """
        Share every weight tensor (and the bias) of `other`, group by group.
        """
        if type(other) is not type(self) or len(other._weights) != len(self._weights):
            raise InvalidConfiguration(
                f"{self._name}: cannot share weights with {other.name}"
            )
        for k, p in enumerate(other._weights):
            self.set_weights(k, p)
        if not self._no_bias and not other._no_bias:
            self._bias = other._bias

    def weights_parameter(self, index: int) -> Parameter:
        return self._weights[index]

    @property
    def bias_parameter(self) -> Optional[Parameter]:
        return None if self._no_bias else self._bias

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    def get_weights(self) -> Interface:
        """
        Weight tensors of all input groups as one interface whose channel
        axis is the input-channel axis of the weights.
        """
        return Interface(p.value for p in self._weights)

    def get_biases(self) -> Tensor:
        if self._no_bias:
            raise InvalidConfiguration(f"{self._name}: cell has no bias")
        return self._bias.value

    def get_weight(self, output: int, channel: int) -> Tensor:
        """
        Weight (scalar or kernel) connecting input `channel` to `output`.
        """
        tensor, offset = self.get_weights().get_tensor(channel)
        value = np.array(tensor.ensure_host()[output, channel - offset])
        dims = tuple(reversed(value.shape)) or (1,)
        return Tensor.from_numpy(value, dims)

    def set_weight(self, output: int, channel: int, value: Any) -> None:
        tensor, offset = self.get_weights().get_tensor(channel)
        arr = value.to_numpy() if isinstance(value, Tensor) else np.asarray(value)
        host = tensor.ensure_host(write=True)
        target = host[output, channel - offset]
        host[output, channel - offset] = arr.reshape(np.shape(target))

    def get_bias(self, output: int) -> Tensor:
        bias = self.get_biases()
        return Tensor.from_numpy(np.array([bias.ensure_host()[output]]), (1,))

    def set_bias(self, output: int, value: Any) -> None:
        bias = self.get_biases()
        arr = value.to_numpy() if isinstance(value, Tensor) else np.asarray(value)
        bias.ensure_host(write=True)[output] = arr.reshape(())

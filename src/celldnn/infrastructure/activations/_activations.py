"""
Cell activations.

An activation is applied in place to a cell's output right after the cell's
kernels have produced it, and its derivative is applied in place to the
cell's gradient input before the kernels' backward pass. Every derivative is
expressed from the *activated* output, so no pre-activation copy is kept.

Each activation works on arrays of the cell backend's array module (`xp`),
so the same class serves both backends.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional, Type


_ACTIVATION_REGISTRY: Dict[str, Type["Activation"]] = {}


def register_activation(name: Optional[str] = None) -> Callable[[Type[Any]], Type[Any]]:
    """
    Decorator to register an activation class for configuration lookup.
    """

    def deco(cls: Type[Any]) -> Type[Any]:
        key = name or cls.__name__
        cls.TYPE = key
        _ACTIVATION_REGISTRY[key] = cls
        return cls

    return deco


class Activation:
    """
    Base activation: identity.
    """

    TYPE = "Linear"

    def propagate(self, xp: Any, y: Any) -> None:
        """
        Apply the activation to `y` in place.
        """

    def back_propagate(self, xp: Any, y: Any, dy: Any) -> None:
        """
        Multiply `dy` in place by the derivative, evaluated from the
        activated output `y`.
        """

    def get_config(self) -> Dict[str, Any]:
        return {}

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> "Activation":
        return cls(**cfg)

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


@register_activation("Linear")
class LinearActivation(Activation):
    """
    Identity activation (the default).
    """


@register_activation("Tanh")
class TanhActivation(Activation):
    """
    ``y = tanh(x)``, ``dy/dx = 1 - y^2``.
    """

    def propagate(self, xp: Any, y: Any) -> None:
        xp.tanh(y, out=y)

    def back_propagate(self, xp: Any, y: Any, dy: Any) -> None:
        dy *= 1 - y * y


@register_activation("Rectifier")
class RectifierActivation(Activation):
    """
    Leaky rectifier: ``y = x`` for ``x > 0``, ``leak_slope * x`` otherwise.

    Parameters
    ----------
    leak_slope : float, optional
        Slope of the negative part. Defaults to 0 (plain ReLU).
    """

    def __init__(self, leak_slope: float = 0.0) -> None:
        self.leak_slope = float(leak_slope)

    def propagate(self, xp: Any, y: Any) -> None:
        y[...] = xp.where(y > 0, y, self.leak_slope * y)

    def back_propagate(self, xp: Any, y: Any, dy: Any) -> None:
        dy[...] = xp.where(y > 0, dy, self.leak_slope * dy)

    def get_config(self) -> Dict[str, Any]:
        return {"leak_slope": self.leak_slope}

    def __repr__(self) -> str:
        return f"RectifierActivation(leak_slope={self.leak_slope})"


@register_activation("Logistic")
class LogisticActivation(Activation):
    """
    ``y = 1 / (1 + exp(-x))``, ``dy/dx = y (1 - y)``.
    """

    def propagate(self, xp: Any, y: Any) -> None:
        y[...] = 1 / (1 + xp.exp(-y))

    def back_propagate(self, xp: Any, y: Any, dy: Any) -> None:
        dy *= y * (1 - y)


def make_activation(spec: Any = None) -> Activation:
    """
    Resolve an activation from None, a registered name, a config dict
    ``{"type": ..., "config": {...}}`` or an `Activation` instance.
    """
    if spec is None:
        return LinearActivation()
    if isinstance(spec, Activation):
        return spec
    if isinstance(spec, dict):
        cls = _lookup(spec.get("type", "Linear"))
        return cls.from_config(dict(spec.get("config", {})))
    return _lookup(str(spec))()


def activation_to_config(activation: Activation) -> Dict[str, Any]:
    return {"type": activation.TYPE, "config": activation.get_config()}


def _lookup(name: str) -> Type[Activation]:
    try:
        return _ACTIVATION_REGISTRY[name]
    except KeyError:
        raise ValueError(
            f"Unknown activation {name!r}; available: {sorted(_ACTIVATION_REGISTRY)}"
        ) from None

from ._activations import (
    Activation,
    LinearActivation,
    TanhActivation,
    RectifierActivation,
    LogisticActivation,
    activation_to_config,
    make_activation,
    register_activation,
)

__all__ = [
    Activation.__name__,
    LinearActivation.__name__,
    TanhActivation.__name__,
    RectifierActivation.__name__,
    LogisticActivation.__name__,
    activation_to_config.__name__,
    make_activation.__name__,
    register_activation.__name__,
]

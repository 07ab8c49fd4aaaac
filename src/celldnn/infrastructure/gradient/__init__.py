from ._gradient_check import GradientCheck, GradientCheckResult

__all__ = [GradientCheck.__name__, GradientCheckResult.__name__]

from ._sgd import SGDSolver
from ._adam import AdamSolver

__all__ = [SGDSolver.__name__, AdamSolver.__name__]

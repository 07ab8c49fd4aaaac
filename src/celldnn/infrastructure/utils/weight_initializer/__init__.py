"""
Weight filler public API.

Importing this package registers the built-in fillers (constant, zeros,
ones, uniform, normal, xavier, xavier_uniform) into `WeightInitializer`.
"""

from ._basic import *
from ._xavier import *
from ._base import WeightInitializer

__all__ = [
    WeightInitializer.__name__,
]

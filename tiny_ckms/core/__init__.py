"""
Core functionality for tiny-ckms.
"""

from tiny_ckms.core.base import QuantileEstimator, StreamSummary
from tiny_ckms.core.invariant import (
    BiasedQuantileInvariant,
    Invariant,
    Quantile,
    TargetedQuantileInvariant,
)

__all__ = [
    # Base classes
    "StreamSummary",
    "QuantileEstimator",
    # Invariant functions
    "Quantile",
    "Invariant",
    "TargetedQuantileInvariant",
    "BiasedQuantileInvariant",
]

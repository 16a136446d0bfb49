"""
tiny-ckms - Streaming targeted quantiles

tiny-ckms computes approximate quantiles (median, p99, ...) over unbounded
data streams in bounded memory, with an error target chosen per quantile.
"""

__version__ = "0.1.0"

# Import main classes to make them available at the top level
from tiny_ckms.algorithms.ckms import CKMSStream
from tiny_ckms.algorithms.ingestion import IngestionBuffer
from tiny_ckms.core.base import QuantileEstimator, StreamSummary
from tiny_ckms.core.invariant import (
    BiasedQuantileInvariant,
    Invariant,
    Quantile,
    TargetedQuantileInvariant,
)

__all__ = [
    # Core base classes
    "StreamSummary",
    "QuantileEstimator",
    # Invariants
    "Quantile",
    "Invariant",
    "TargetedQuantileInvariant",
    "BiasedQuantileInvariant",
    # Algorithm implementations
    "CKMSStream",
    "IngestionBuffer",
]

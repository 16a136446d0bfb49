# tiny_ckms/core/invariant.py

"""
Invariant functions for the CKMS quantile summary.

An invariant bounds how much rank uncertainty a sample may carry, as a
function of the sample's rank and the number of values observed so far. The
summary consults it when it inserts a value (to size the new sample's delta)
and when it compresses (to decide whether two neighbours may be collapsed).

References:
    - Cormode, G., Korn, F., Muthukrishnan, S., & Srivastava, D. (2005).
      Effective computation of biased quantiles over data streams.
      ICDE 2005, Section 4, Definition 4.
"""

import abc
import math
from dataclasses import dataclass
from typing import Iterable, Tuple


@dataclass(frozen=True)
class Quantile:
    """
    A targeted quantile and the rank error allowed when answering it.

    Attributes:
        quantile: The quantile of interest, strictly between 0 and 1.
        error: Allowed rank error as a fraction of the stream length,
               strictly between 0 and 1.
    """

    quantile: float
    error: float

    def __post_init__(self) -> None:
        if not (0.0 < self.quantile < 1.0):
            raise ValueError(
                f"Quantile must be strictly between 0 and 1, got {self.quantile}"
            )
        if not (0.0 < self.error < 1.0):
            raise ValueError(
                f"Quantile error must be strictly between 0 and 1, got {self.error}"
            )

    def __str__(self) -> str:
        return f"Q{{q={self.quantile:f}, eps={self.error:f}}}"


class Invariant(abc.ABC):
    """
    Maximum allowed rank uncertainty ``f(rank, count)``.

    Implementations must be pure functions of their arguments and their
    (immutable) configuration, so they can be called from any thread.
    """

    @abc.abstractmethod
    def __call__(self, rank: float, count: int) -> float:
        """
        Args:
            rank: Rank of the sample within the summary (0 or more).
            count: Number of values observed so far.

        Returns:
            The largest acceptable ``g + delta`` for a sample at ``rank``.
        """
        pass


class TargetedQuantileInvariant(Invariant):
    """
    Invariant tuned for a small set of targeted quantiles.

    Precision is spent around rank ``q * n`` for every configured target and
    relaxed elsewhere, which keeps the summary small when only a handful of
    percentiles are of interest.
    """

    def __init__(self, targets: Iterable[Quantile] = ()):
        targets = tuple(targets)
        for target in targets:
            if not isinstance(target, Quantile):
                raise TypeError(
                    f"Targets must be Quantile instances, got {type(target).__name__}"
                )
        self._targets: Tuple[Quantile, ...] = targets

    @property
    def targets(self) -> Tuple[Quantile, ...]:
        """The configured target quantiles."""
        return self._targets

    def __call__(self, rank: float, count: int) -> float:
        bound = float(count + 1)
        for target in self._targets:
            q, eps = target.quantile, target.error
            if rank <= math.floor(q * count):
                f = 2.0 * eps * (count - rank) / (1.0 - q)
            else:
                f = 2.0 * eps * rank / q
            bound = min(bound, f)
        return bound

    def __repr__(self) -> str:
        return f"TargetedQuantileInvariant({', '.join(str(t) for t in self._targets)})"


class BiasedQuantileInvariant(Invariant):
    """
    Invariant giving uniform relative accuracy on low ranks.

    ``f(r, n) = 2 * error * r``. Useful when the interesting values sit at
    the bottom of the distribution (for example the fastest responses).
    """

    def __init__(self, error: float):
        if not (0.0 < error < 1.0):
            raise ValueError(f"Error must be strictly between 0 and 1, got {error}")
        self._error = float(error)

    @property
    def error(self) -> float:
        return self._error

    def __call__(self, rank: float, count: int) -> float:
        return min(float(count + 1), 2.0 * self._error * rank)

    def __repr__(self) -> str:
        return f"BiasedQuantileInvariant(error={self._error})"

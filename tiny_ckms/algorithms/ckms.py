# tiny_ckms/algorithms/ckms.py

"""
CKMS targeted-quantile summary.

The summary keeps a sorted list of samples ``(value, g, delta)``. ``g`` is the
number of ranks a sample covers relative to its predecessor and ``delta`` is
the uncertainty of its rank. Incoming values are buffered, merged into the
sample list in sorted order, and the list is then compressed by collapsing
neighbours whenever the invariant function allows it.

References:
    - Cormode, G., Korn, F., Muthukrishnan, S., & Srivastava, D. (2005).
      Effective computation of biased quantiles over data streams. ICDE 2005.
"""

import logging
import math
import sys
import time
from typing import Any, Dict, Iterable, List, Optional, Tuple, Type, TypeVar, Union

from tiny_ckms.core.base import QuantileEstimator
from tiny_ckms.core.invariant import Invariant, Quantile, TargetedQuantileInvariant

logger = logging.getLogger(__name__)

Number = Union[int, float]

# Type variable for the class itself (for from_dict)
CKMSStreamType = TypeVar("CKMSStreamType", bound="CKMSStream")


def _is_nan(value: Any) -> bool:
    return value != value


def _coerce_quantiles(
    quantiles: Iterable[Union[Quantile, Tuple[float, float]]]
) -> Tuple[Quantile, ...]:
    targets = []
    for item in quantiles:
        if isinstance(item, Quantile):
            targets.append(item)
            continue
        try:
            q, eps = item
        except (TypeError, ValueError) as e:
            raise TypeError(
                f"Targets must be Quantile objects or (quantile, error) pairs, got {item!r}"
            ) from e
        targets.append(Quantile(q, eps))
    return tuple(targets)


class _Sample:
    """Internal representation of one entry of the sample list."""

    __slots__ = ["value", "g", "delta"]

    def __init__(self, value: Number, g: int = 1, delta: int = 0):
        if g < 1:
            raise ValueError("Sample width g must be at least 1")
        if delta < 0:
            raise ValueError("Sample delta cannot be negative")
        self.value = value
        self.g = g
        self.delta = delta

    def __repr__(self) -> str:
        return f"Sample(value={self.value!r}, g={self.g}, delta={self.delta})"

    def to_list(self) -> List[Number]:
        """Serialize the sample as ``[value, g, delta]``."""
        return [self.value, self.g, self.delta]

    @classmethod
    def from_list(cls, data: List[Number]) -> "_Sample":
        """Deserialize a sample from ``[value, g, delta]``."""
        if len(data) != 3:
            raise ValueError(f"Sample must be [value, g, delta], got {data!r}")
        value, g, delta = data
        return cls(value=value, g=int(g), delta=int(delta))


class CKMSStream(QuantileEstimator):
    """
    Streaming quantile summary with per-quantile error targets.

    Memory is bounded by the invariant rather than by the stream length:
    samples far from every targeted quantile are collapsed aggressively while
    those near a target are kept with tight rank bounds. For every configured
    ``Quantile(q, e)``, ``query(q)`` returns a value whose true rank lies
    within roughly ``e * n`` of ``q * n``.

    A single instance is not thread-safe. Concurrent producers should go
    through :class:`tiny_ckms.algorithms.ingestion.IngestionBuffer`.
    """

    DEFAULT_BUFFER_CAPACITY: int = 4096
    DEFAULT_QUANTILES: Tuple[Quantile, ...] = (
        Quantile(0.5, 0.05),
        Quantile(0.99, 0.001),
    )

    def __init__(
        self,
        quantiles: Optional[Iterable[Union[Quantile, Tuple[float, float]]]] = None,
        buffer_capacity: int = DEFAULT_BUFFER_CAPACITY,
        invariant: Optional[Invariant] = None,
        memory_limit_bytes: Optional[int] = None,
    ):
        """
        Initialize a CKMS summary.

        Args:
            quantiles: Target quantiles, as Quantile objects or
                (quantile, error) pairs. None selects DEFAULT_QUANTILES.
            buffer_capacity: Number of buffered values that triggers a flush.
            invariant: Optional custom invariant. Defaults to a
                TargetedQuantileInvariant over ``quantiles``.
            memory_limit_bytes: Optional maximum memory usage in bytes.

        Raises:
            ValueError: If the capacity is not a positive integer, the target
                list is empty, or a target is out of range.
            TypeError: If a target or the invariant has the wrong type.
        """
        super().__init__(memory_limit_bytes)
        if (
            isinstance(buffer_capacity, bool)
            or not isinstance(buffer_capacity, int)
            or buffer_capacity < 1
        ):
            raise ValueError("Buffer capacity must be a positive integer")

        if quantiles is None:
            targets = self.DEFAULT_QUANTILES
        else:
            targets = _coerce_quantiles(quantiles)
            if not targets:
                raise ValueError("At least one target quantile is required")

        if invariant is None:
            invariant = TargetedQuantileInvariant(targets)
            self._custom_invariant = False
        elif not isinstance(invariant, Invariant):
            raise TypeError(
                f"invariant must be an Invariant, got {type(invariant).__name__}"
            )
        else:
            self._custom_invariant = True

        self._buffer_capacity: int = buffer_capacity
        self._quantiles: Tuple[Quantile, ...] = targets
        self._invariant: Invariant = invariant

        self._samples: List[_Sample] = []
        self._buffer: List[Number] = []
        self._count: int = 0

    @property
    def quantiles(self) -> Tuple[Quantile, ...]:
        return self._quantiles

    @property
    def invariant(self) -> Invariant:
        return self._invariant

    @property
    def buffer_capacity(self) -> int:
        return self._buffer_capacity

    @property
    def count(self) -> int:
        """Number of values merged into the sample list (excludes the buffer)."""
        return self._count

    def update(self, item: Number) -> None:
        """
        Add a value to the summary.

        The value is buffered; once the buffer holds ``buffer_capacity``
        values it is flushed into the sample list before returning.

        Args:
            item: Numeric value to add. NaN has no rank and is ignored.
        """
        if _is_nan(item):
            logger.debug("Ignoring NaN observation")
            return

        super().update(item)
        self._buffer.append(item)

        if len(self._buffer) >= self._buffer_capacity:
            self.flush()

    def insert(self, value: Number) -> None:
        """Alias of :meth:`update`."""
        self.update(value)

    def flush(self) -> None:
        """Merge the buffered values into the sample list and compress it."""
        if not self._buffer:
            return
        self._merge(self._buffer)
        self._buffer = []

    def merge_batch(self, values: Iterable[Number]) -> None:
        """
        Merge a batch of raw values straight into the sample list.

        The batch bypasses the internal buffer. ``values`` is not modified.
        The sample list is compressed afterwards.

        Args:
            values: Values to merge, in any order. NaN values are ignored.
        """
        raw = list(values)
        batch = [v for v in raw if not _is_nan(v)]
        if len(batch) != len(raw):
            logger.debug("Ignoring %d NaN values in batch", len(raw) - len(batch))
        self._items_processed += len(batch)
        self._merge(batch)

    def _merge(self, values: List[Number]) -> None:
        if not values:
            return

        start = time.perf_counter()
        batch = sorted(values)
        samples = self._samples
        f = self._invariant

        # Values arrive in ascending order, so the insertion point only moves
        # right. ``rank`` is the sum of g over samples[:idx], which includes
        # the samples inserted earlier in this batch.
        idx = 0
        rank = 0
        for value in batch:
            while idx < len(samples) and samples[idx].value <= value:
                rank += samples[idx].g
                idx += 1

            if idx == 0 or idx == len(samples):
                delta = 0
            else:
                delta = max(0, math.floor(f(rank, self._count)) - 1)

            samples.insert(idx, _Sample(value, 1, delta))
            self._count += 1
            rank += 1
            idx += 1

        logger.debug(
            "Merged %d values, %d samples, count=%d",
            len(batch),
            len(samples),
            self._count,
        )

        self.compress()
        self._record_flush_time(time.perf_counter() - start)

    def compress(self) -> None:
        """
        Collapse neighbouring samples where the invariant allows it.

        A sample ``prev`` is absorbed into its successor ``next`` when
        ``prev.g + next.g + next.delta <= f(r, n)``, ``r`` being the rank of
        ``prev``. The first sample (the minimum) is never absorbed and the
        last sample (the maximum) is never a candidate, so both extremes
        stay in the summary. The total of ``g`` does not change.
        """
        samples = self._samples
        if len(samples) < 3:
            return

        f = self._invariant
        n = self._count

        compressed = [samples[0]]
        prev = samples[1]
        rank = samples[0].g + prev.g
        for nxt in samples[2:]:
            width = nxt.g
            if prev.g + nxt.g + nxt.delta <= f(rank, n):
                nxt.g += prev.g
            else:
                compressed.append(prev)
            prev = nxt
            rank += width
        compressed.append(prev)

        removed = len(samples) - len(compressed)
        self._samples = compressed
        if removed:
            logger.debug(
                "Compressed %d samples, %d remain", removed, len(compressed)
            )

    def query(self, quantile: float) -> Optional[Number]:
        """
        Estimate the value at the given quantile.

        Buffered values are flushed first, so the answer reflects every value
        accepted so far.

        Args:
            quantile: Target quantile between 0.0 and 1.0. 0.0 returns the
                      minimum and 1.0 the maximum observed value.

        Returns:
            The approximate value, or None if nothing has been observed.

        Raises:
            ValueError: If quantile is not between 0.0 and 1.0.
        """
        self._check_quantile(quantile)
        self.flush()

        samples = self._samples
        if not samples:
            return None
        if quantile == 0.0:
            return samples[0].value
        if quantile == 1.0:
            return samples[-1].value

        n = self._count
        desired = math.floor(quantile * n)
        threshold = desired + self._invariant(desired, n) / 2.0

        rank = 0
        prev = samples[0]
        for i in range(1, len(samples)):
            cur = samples[i]
            rank += prev.g
            if rank + cur.g + cur.delta > threshold:
                return prev.value
            prev = cur

        return prev.value

    def get_samples(self) -> List[Tuple[Number, int, int]]:
        """
        Return the sample list as ``(value, g, delta)`` tuples.

        Flushes the buffer first. Intended for inspection and tests.
        """
        self.flush()
        return [(s.value, s.g, s.delta) for s in self._samples]

    def reset(self) -> None:
        """Alias of :meth:`clear`."""
        self.clear()

    def clear(self) -> None:
        """
        Reset the summary to its initial empty state.

        Configuration (targets, capacity, invariant) is preserved.
        """
        super().clear()
        self._samples = []
        self._buffer = []
        self._count = 0

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize the summary to a dictionary.

        Flushes the buffer first so the snapshot is complete.

        Raises:
            ValueError: If the summary uses a custom invariant, which cannot
                be restored from a dictionary.
        """
        if self._custom_invariant:
            raise ValueError("Summaries with a custom invariant cannot be serialized")

        self.flush()

        state = self._base_dict()
        state.update(
            {
                "buffer_capacity": self._buffer_capacity,
                "quantiles": [[q.quantile, q.error] for q in self._quantiles],
                "count": self._count,
                "samples": [s.to_list() for s in self._samples],
            }
        )
        return state

    @classmethod
    def from_dict(cls: Type[CKMSStreamType], data: Dict[str, Any]) -> CKMSStreamType:
        """
        Deserialize a summary from a dictionary representation.

        Args:
            data: Dictionary created by to_dict().

        Returns:
            A reconstructed CKMSStream instance.

        Raises:
            ValueError: If the dictionary is missing keys or is inconsistent.
        """
        if "type" not in data:
            raise ValueError("Invalid dictionary format for CKMSStream. Missing 'type'")

        if data.get("type") != cls.__name__:
            raise ValueError(
                f"Dictionary represents class '{data.get('type')}' but expected '{cls.__name__}'"
            )

        required_keys = {
            "buffer_capacity",
            "quantiles",
            "count",
            "samples",
            "items_processed",
        }
        missing_keys = required_keys - data.keys()
        if missing_keys:
            raise ValueError(
                f"Invalid dictionary format for CKMSStream. Missing keys: {missing_keys}"
            )

        instance = cls(
            quantiles=[tuple(pair) for pair in data["quantiles"]],
            buffer_capacity=data["buffer_capacity"],
            memory_limit_bytes=data.get("memory_limit_bytes"),
        )

        try:
            samples = [_Sample.from_list(s) for s in data["samples"]]
        except (ValueError, TypeError) as e:
            raise ValueError(f"Error deserializing samples: {e}") from e

        for a, b in zip(samples, samples[1:]):
            if b.value < a.value:
                raise ValueError("Serialized samples are not sorted by value")

        count = data["count"]
        if sum(s.g for s in samples) != count:
            raise ValueError(
                f"Serialized sample widths do not add up to count={count}"
            )

        instance._samples = samples
        instance._count = count
        instance._items_processed = data["items_processed"]
        return instance

    def estimate_size(self) -> int:
        """
        Estimate the memory footprint of the summary in bytes.

        Returns:
            Estimated size in bytes.
        """
        size = super().estimate_size()

        size += sys.getsizeof(self._samples)
        for s in self._samples:
            size += sys.getsizeof(s)
            size += sys.getsizeof(s.value) + sys.getsizeof(s.g) + sys.getsizeof(s.delta)

        size += sys.getsizeof(self._buffer)
        size += sum(sys.getsizeof(v) for v in self._buffer)

        return size

    def __len__(self) -> int:
        """Return the number of values accepted, merged or still buffered."""
        return self._count + len(self._buffer)

    @property
    def is_empty(self) -> bool:
        """Check if the summary has seen any data."""
        return self._count == 0 and not self._buffer

    def get_stats(self) -> Dict[str, Any]:
        """
        Get detailed statistics about the current state of the summary.

        Returns:
            A dictionary with structure, accuracy and timing information.
        """
        self.flush()
        stats = super().get_stats()

        stats.update(
            {
                "buffer_capacity": self._buffer_capacity,
                "count": self._count,
                "num_samples": len(self._samples),
                "buffer_items": len(self._buffer),
                "compression_ratio": len(self._samples) / max(1, self._count),
            }
        )

        if self._samples:
            widths = [s.g for s in self._samples]
            deltas = [s.delta for s in self._samples]
            stats.update(
                {
                    "min_value": self._samples[0].value,
                    "max_value": self._samples[-1].value,
                    "max_g": max(widths),
                    "avg_g": sum(widths) / len(widths),
                    "max_delta": max(deltas),
                    "avg_delta": sum(deltas) / len(deltas),
                }
            )

        if self._count > 0:
            stats["bytes_per_item"] = self.estimate_size() / self._count

        return stats

    def error_bounds(self) -> Dict[str, Any]:
        """
        Describe the accuracy guarantees of the summary.

        Reports the configured error of every target quantile and, once data
        is present, the rank error the invariant currently allows there.
        """
        self.flush()

        bounds: Dict[str, Any] = {
            "accuracy_model": "targeted (error per configured quantile)",
            "target_errors": {f"q{t.quantile:.3f}": t.error for t in self._quantiles},
        }

        if self._count == 0:
            bounds["state"] = "empty"
            return bounds

        n = self._count
        bounds["rank_error_at_targets"] = {
            f"q{t.quantile:.3f}": self._invariant(math.floor(t.quantile * n), n) / 2.0
            for t in self._quantiles
        }
        return bounds

"""
Base classes and interfaces for tiny-ckms stream summaries.

This module defines the abstract base classes that the quantile summaries
implement, so every summary exposes the same update/query/serialization
surface. It also provides flush timing hooks for benchmarking.
"""

import abc
import json
import sys
from collections import deque
from typing import (
    Any,
    Dict,
    Generic,
    Optional,
    Tuple,
    TypeVar,
    Union,
)

from tiny_ckms.core.invariant import Quantile

T = TypeVar("T")  # Type for the items being processed
R = TypeVar("R")  # Type for the result of queries


class StreamSummary(Generic[T, R], abc.ABC):
    """
    Abstract base class for streaming summaries.

    Defines the interface every summary implements: updating with new items,
    querying results and converting to and from a plain dictionary. There is
    no ``merge`` operation: summaries built from separate streams cannot be
    combined.
    """

    def __init__(self, memory_limit_bytes: Optional[int] = None):
        """
        Initialize a new stream summary.

        Args:
            memory_limit_bytes: Optional maximum memory usage in bytes.
                                None means no explicit limit.
        """
        self._memory_limit_bytes = memory_limit_bytes
        self._items_processed = 0

        # Flush timing
        self._last_flush_time: float = 0.0
        self._total_flush_time: float = 0.0
        self._flush_count: int = 0

        self._track_recent_flushes: bool = False
        self._recent_flush_times: Optional[deque] = None
        self._max_flush_history: int = 100

    @abc.abstractmethod
    def update(self, item: T) -> None:
        """
        Update the summary with a new item from the stream.

        Args:
            item: The new item to process.
        """
        self._items_processed += 1

    @abc.abstractmethod
    def query(self, *args: Any, **kwargs: Any) -> R:
        """
        Query the current state of the summary.

        Returns:
            The result of the query, which depends on the specific algorithm.
        """
        pass

    @abc.abstractmethod
    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the summary to a dictionary for serialization.

        Returns:
            A dictionary representation of the summary.
        """
        pass

    def _base_dict(self) -> Dict[str, Any]:
        """
        Create a dictionary with base attributes common to all summaries.

        Returns:
            A dictionary with base attributes.
        """
        return {
            "type": self.__class__.__name__,
            "items_processed": self._items_processed,
            "memory_limit_bytes": self._memory_limit_bytes,
        }

    @classmethod
    @abc.abstractmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StreamSummary[T, R]":
        """
        Create a summary from a dictionary representation.

        Args:
            data: The dictionary containing the summary state.

        Returns:
            A new stream summary initialized with the given state.
        """
        pass

    def serialize(self, format: str = "json") -> Union[str, bytes]:
        """
        Serialize the summary to a string or bytes.

        Args:
            format: The serialization format ('json' or 'binary').

        Returns:
            The serialized representation of the summary.

        Raises:
            ValueError: If the format is not supported.
        """
        if format == "json":
            return json.dumps(self.to_dict())
        elif format == "binary":
            return json.dumps(self.to_dict()).encode("utf-8")
        else:
            raise ValueError(f"Unsupported serialization format: {format}")

    @classmethod
    def deserialize(
        cls, data: Union[str, bytes], format: str = "json"
    ) -> "StreamSummary[T, R]":
        """
        Deserialize a summary from a string or bytes.

        Args:
            data: The serialized summary.
            format: The serialization format ('json' or 'binary').

        Returns:
            A new stream summary.

        Raises:
            ValueError: If the format is not supported.
        """
        if format == "json":
            if isinstance(data, bytes):
                data = data.decode("utf-8")
            return cls.from_dict(json.loads(data))
        elif format == "binary":
            if isinstance(data, str):
                data = data.encode("utf-8")
            return cls.from_dict(json.loads(data.decode("utf-8")))
        else:
            raise ValueError(f"Unsupported serialization format: {format}")

    def estimate_size(self) -> int:
        """
        Estimate the current memory usage of this summary in bytes.

        A rough figure based on ``sys.getsizeof``. Derived classes add the
        size of their own containers.

        Returns:
            Estimated memory usage in bytes.
        """
        size = sys.getsizeof(self)

        if hasattr(self, "__dict__"):
            size += sys.getsizeof(self.__dict__)

        if self._recent_flush_times is not None:
            size += sys.getsizeof(self._recent_flush_times)
            size += len(self._recent_flush_times) * sys.getsizeof(0.0)

        return size

    def check_memory_limit(self) -> bool:
        """
        Check if the current memory usage exceeds the limit.

        Returns:
            True if the memory usage is within limits, False otherwise.
        """
        if self._memory_limit_bytes is None:
            return True

        return self.estimate_size() <= self._memory_limit_bytes

    def clear(self) -> None:
        """
        Reset the summary to its initial empty state.

        Derived classes must override this method to clear their own data
        structures and call ``super().clear()`` to reset the base counters.
        """
        self._items_processed = 0
        self._total_flush_time = 0.0
        self._flush_count = 0
        self._last_flush_time = 0.0

        if self._recent_flush_times is not None:
            self._recent_flush_times.clear()

    def enable_performance_tracking(
        self, track_recent_flushes: bool = True, max_history: int = 100
    ) -> None:
        """
        Keep a history of recent flush durations for benchmarking.

        Args:
            track_recent_flushes: Whether to keep individual flush timings.
            max_history: Maximum number of recent flushes to keep.
        """
        self._track_recent_flushes = track_recent_flushes
        self._max_flush_history = max(1, max_history)

        if track_recent_flushes and self._recent_flush_times is None:
            self._recent_flush_times = deque(maxlen=self._max_flush_history)

    def disable_performance_tracking(self) -> None:
        """Stop keeping individual flush timings."""
        self._track_recent_flushes = False
        self._recent_flush_times = None

    def _record_flush_time(self, elapsed: float) -> None:
        """Account for one flush that took ``elapsed`` seconds."""
        self._last_flush_time = elapsed
        self._total_flush_time += elapsed
        self._flush_count += 1
        if self._track_recent_flushes and self._recent_flush_times is not None:
            self._recent_flush_times.append(elapsed)

    def get_performance_stats(self) -> Dict[str, Any]:
        """
        Get performance statistics for this summary.

        Returns:
            A dictionary with items processed, memory usage and, once at
            least one flush happened, flush timings in nanoseconds.
        """
        stats: Dict[str, Any] = {
            "items_processed": self._items_processed,
            "memory_bytes": self.estimate_size(),
            "flush_count": self._flush_count,
        }

        if self._flush_count > 0:
            stats["avg_flush_time_ns"] = (
                self._total_flush_time / self._flush_count
            ) * 1e9
            stats["last_flush_time_ns"] = self._last_flush_time * 1e9

        if self._recent_flush_times:
            recent_times_ns = [t * 1e9 for t in self._recent_flush_times]
            stats["recent_flush_times_ns"] = recent_times_ns
            stats["min_flush_time_ns"] = min(recent_times_ns)
            stats["max_flush_time_ns"] = max(recent_times_ns)

        return stats

    def get_stats(self) -> Dict[str, Any]:
        """
        Get detailed statistics about the current state of the summary.

        Derived classes extend this with algorithm-specific entries while
        calling ``super().get_stats()`` for the base metrics.

        Returns:
            A dictionary containing various statistics about the summary state.
        """
        stats: Dict[str, Any] = {
            "type": self.__class__.__name__,
            "items_processed": self._items_processed,
            "memory_bytes": self.estimate_size(),
            "flush_count": self._flush_count,
        }

        if self._memory_limit_bytes is not None:
            stats["memory_limit_bytes"] = self._memory_limit_bytes
            stats["memory_usage_pct"] = (
                self.estimate_size() / self._memory_limit_bytes
            ) * 100

        if self._flush_count > 0:
            stats["avg_flush_time_ns"] = (
                self._total_flush_time / self._flush_count
            ) * 1e9

        error_bounds = self.error_bounds()
        if error_bounds:
            stats.update(error_bounds)

        return stats

    def error_bounds(self) -> Dict[str, Any]:
        """
        Get the theoretical error bounds for this summary.

        The base implementation returns an empty dictionary.
        """
        return {}

    @property
    def items_processed(self) -> int:
        """Get the total number of items processed by this summary."""
        return self._items_processed


class QuantileEstimator(StreamSummary[float, Optional[float]], abc.ABC):
    """
    Abstract base class for approximate quantile summaries.

    ``query`` returns None until at least one value has been observed.
    """

    @property
    def quantiles(self) -> Tuple[Quantile, ...]:
        """Target quantiles this summary is tuned for."""
        return ()

    @abc.abstractmethod
    def query(self, quantile: float) -> Optional[float]:
        """
        Estimate the value at the given quantile.

        Args:
            quantile: Target quantile between 0.0 and 1.0.

        Returns:
            The approximate value, or None if the summary holds no data.
        """
        pass

    def get_snapshot(
        self, *quantiles: Union[float, Quantile]
    ) -> Dict[Union[float, Quantile], Optional[float]]:
        """
        Query several quantiles at once.

        Each entry is an independent query; there is no atomicity across
        entries.

        Args:
            *quantiles: Quantiles to query, either as floats or as Quantile
                        objects. Each argument is used as its own key.

        Returns:
            A dictionary mapping each requested quantile to its estimate.
        """
        snapshot: Dict[Union[float, Quantile], Optional[float]] = {}
        for q in quantiles:
            value = q.quantile if isinstance(q, Quantile) else q
            snapshot[q] = self.query(value)
        return snapshot

    def _check_quantile(self, quantile: float) -> None:
        # NaN fails the comparison too
        if not (0.0 <= quantile <= 1.0):
            raise ValueError(f"Quantile must be between 0.0 and 1.0, got {quantile}")

    def get_stats(self) -> Dict[str, Any]:
        """
        Get statistics about the current state of the quantile summary.

        Returns:
            Base statistics plus estimates at the configured target quantiles.
        """
        stats = super().get_stats()

        stats["target_estimates"] = {
            f"q{t.quantile:.3f}": self.query(t.quantile) for t in self.quantiles
        }

        return stats

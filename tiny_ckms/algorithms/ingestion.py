# tiny_ckms/algorithms/ingestion.py

"""
Non-blocking ingestion front end for CKMSStream.

Producer threads call :meth:`IngestionBuffer.observe`, which only appends to
a shared deque. When the number of pending values crosses the capacity, one
producer wins a test-and-set on the flush flag and hands the whole batch to
the summary; the others keep retrying without ever waiting on a lock.
"""

import itertools
import logging
import threading
import time
from collections import deque
from typing import Any, Deque, Dict, Iterator, List, Optional, Union

from tiny_ckms.algorithms.ckms import CKMSStream, Number
from tiny_ckms.core.invariant import Quantile

logger = logging.getLogger(__name__)


class IngestionBuffer:
    """
    Multi-producer buffer in front of a single CKMSStream.

    ``observe`` may be called from any number of threads. ``query``,
    ``get_snapshot``, ``force_merge`` and ``reset`` are consumer operations
    and must not run concurrently with each other or with producers that the
    caller expects to be included.
    """

    DEFAULT_CAPACITY: int = CKMSStream.DEFAULT_BUFFER_CAPACITY

    def __init__(
        self, capacity: int = DEFAULT_CAPACITY, summary: Optional[CKMSStream] = None
    ):
        """
        Initialize the buffer.

        Args:
            capacity: Number of pending values that triggers a flush.
            summary: Summary receiving the flushed batches. A new CKMSStream
                with default targets is created when omitted.

        Raises:
            ValueError: If capacity is not a positive integer.
            TypeError: If summary is not a CKMSStream.
        """
        if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity < 1:
            raise ValueError("Buffer capacity must be a positive integer")
        if summary is None:
            summary = CKMSStream()
        elif not isinstance(summary, CKMSStream):
            raise TypeError(
                f"summary must be a CKMSStream, got {type(summary).__name__}"
            )

        self._capacity = capacity
        self._summary = summary
        self._pending: Deque[Number] = deque()
        # next() on an itertools.count is atomic under the GIL
        self._pending_count: Iterator[int] = itertools.count(1)
        # Only ever used through acquire(blocking=False)
        self._flushing = threading.Lock()
        self._flush_count = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def summary(self) -> CKMSStream:
        return self._summary

    @property
    def pending(self) -> int:
        """Number of values waiting for the next flush."""
        return len(self._pending)

    @property
    def flush_count(self) -> int:
        """Number of flushes performed by producers."""
        return self._flush_count

    def observe(self, value: Number) -> None:
        """
        Record a value. Safe to call from many threads at once.

        The call never blocks: if the buffer is full and another thread is
        already flushing, it retries until it can either append the value or
        perform the flush itself.

        Args:
            value: Numeric value to record.
        """
        while True:
            if next(self._pending_count) <= self._capacity:
                self._pending.append(value)
                return

            if self._flushing.acquire(blocking=False):
                try:
                    batch = self._drain()
                    try:
                        self._summary.merge_batch(batch)
                    except Exception:
                        # Requeue so values from other producers survive
                        self._pending.extendleft(reversed(batch))
                        raise
                    # ``value`` takes the first slot of the new window
                    self._pending_count = itertools.count(2)
                    self._pending.append(value)
                    self._flush_count += 1
                finally:
                    self._flushing.release()
                logger.debug(
                    "Flushed %d pending values into summary (count=%d)",
                    len(batch),
                    self._summary.count,
                )
                return

            # Lost the race; give the flushing thread a chance to finish.
            time.sleep(0)

    def _drain(self) -> List[Number]:
        # popleft until empty: values appended after this stay for the next flush
        batch = []
        while True:
            try:
                batch.append(self._pending.popleft())
            except IndexError:
                return batch

    def force_merge(self) -> int:
        """
        Merge every pending value into the summary now.

        Not coordinated with concurrent producers; call it once they are
        idle (for example before a query or at shutdown).

        Returns:
            The number of values merged.
        """
        batch = self._drain()
        self._pending_count = itertools.count(1)
        if batch:
            self._summary.merge_batch(batch)
        return len(batch)

    def query(self, quantile: float) -> Optional[Number]:
        """Force a merge, then query the summary."""
        self.force_merge()
        return self._summary.query(quantile)

    def get_snapshot(
        self, *quantiles: Union[float, Quantile]
    ) -> Dict[Union[float, Quantile], Optional[Number]]:
        """Force a merge, then query several quantiles of the summary."""
        self.force_merge()
        return self._summary.get_snapshot(*quantiles)

    def reset(self) -> None:
        """Drop pending values and reset the summary to its empty state."""
        self._drain()
        self._pending_count = itertools.count(1)
        self._flush_count = 0
        self._summary.reset()

    def get_stats(self) -> Dict[str, Any]:
        """
        Get statistics about the buffer and its summary.

        Pending values are merged first.
        """
        self.force_merge()
        return {
            "type": self.__class__.__name__,
            "capacity": self._capacity,
            "pending": len(self._pending),
            "flush_count": self._flush_count,
            "summary": self._summary.get_stats(),
        }

"""
Example of feeding one summary from several producer threads.

Each worker calls IngestionBuffer.observe; whichever worker crosses the
buffer capacity merges the pending batch while the others keep appending.
"""

import argparse
import logging
import random
import threading
import time

from tiny_ckms import CKMSStream, IngestionBuffer

logger = logging.getLogger(__name__)


def producer(buffer: IngestionBuffer, count: int, seed: int) -> None:
    rng = random.Random(seed)
    for _ in range(count):
        buffer.observe(rng.expovariate(1 / 50.0))


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--threads", type=int, default=8)
    parser.add_argument("--per-thread", type=int, default=50000)
    parser.add_argument("--capacity", type=int, default=4096)
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    summary = CKMSStream(quantiles=[(0.5, 0.05), (0.95, 0.005), (0.99, 0.001)])
    buffer = IngestionBuffer(capacity=args.capacity, summary=summary)

    workers = [
        threading.Thread(target=producer, args=(buffer, args.per_thread, seed))
        for seed in range(args.threads)
    ]
    start = time.perf_counter()
    for w in workers:
        w.start()
    for w in workers:
        w.join()
    merged = buffer.force_merge()
    elapsed = time.perf_counter() - start

    logger.info(
        "Observed %d values in %.2fs (%d flushes, %d merged at shutdown)",
        summary.count,
        elapsed,
        buffer.flush_count,
        merged,
    )
    for q, value in buffer.get_snapshot(0.5, 0.95, 0.99).items():
        logger.info("q=%.2f -> %.3f", q, value)


if __name__ == "__main__":
    main()

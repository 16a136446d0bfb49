"""
Basic example of using tiny-ckms for stream processing.

This example feeds a latency-like stream into a CKMSStream and compares the
targeted quantile estimates with the exact values.
"""

import logging
import random

from tiny_ckms import CKMSStream, Quantile


def exact_quantile(values, q):
    ordered = sorted(values)
    return ordered[min(len(ordered) - 1, int(q * len(ordered)))]


def demonstrate_targeted_quantiles():
    """Track the median and the tail of a skewed stream."""
    print("\n=== Targeted Quantiles Demo ===")

    targets = [Quantile(0.5, 0.05), Quantile(0.9, 0.01), Quantile(0.99, 0.001)]
    stream = CKMSStream(quantiles=targets, buffer_capacity=1000)

    rng = random.Random(42)
    values = []
    print("Processing 100000 simulated latencies...")
    for i in range(100000):
        latency = rng.lognormvariate(3.0, 0.8)
        values.append(latency)
        stream.update(latency)

        if i % 20000 == 0:
            print(f"  Processed {i} items")

    print("\nQuantile   estimate   exact")
    for target in targets:
        estimate = stream.query(target.quantile)
        exact = exact_quantile(values, target.quantile)
        print(f"  {target.quantile:<8} {estimate:9.2f} {exact:9.2f}")

    stats = stream.get_stats()
    print(f"\nSamples kept: {stats['num_samples']} for {stats['count']} values")
    print(f"Compression ratio: {stats['compression_ratio']:.4f}")
    print(f"Approximate memory usage: {stream.estimate_size()} bytes")


def demonstrate_serialization():
    """Save a summary and restore it."""
    print("\n=== Serialization Demo ===")

    stream = CKMSStream()
    stream.merge_batch(range(1, 10001))

    serialized = stream.serialize(format="json")
    print(f"Serialized size: {len(serialized)} bytes")

    restored = CKMSStream.deserialize(serialized, format="json")
    print(f"Original median: {stream.query(0.5)}")
    print(f"Restored median: {restored.query(0.5)}")
    print(f"Snapshot: {restored.get_snapshot(0.5, 0.99)}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    demonstrate_targeted_quantiles()
    demonstrate_serialization()

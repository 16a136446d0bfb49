"""
Algorithm implementations for tiny-ckms.
"""

from tiny_ckms.algorithms.ckms import CKMSStream
from tiny_ckms.algorithms.ingestion import IngestionBuffer

__all__ = [
    "CKMSStream",
    "IngestionBuffer",
]

"""
Utility helpers for key math and constants used by the block store.
"""

import math

# Size of one read issued by the FUSE layer (128 KiB payload + 20 bytes of
# request overhead). A full-stripe read should hit roughly one aggregated
# record per stripe position.
FUSE_READ_SIZE = 1024 * 128 + 20

# Number of deserialized aggregated records kept in the read cache.
READ_CACHE_SIZE = 50

# Capacity of each half (positive / negative) of the existence cache.
STATUS_CACHE_SIZE = 50


def compute_buffer_size(total_size: int, read_size: int = FUSE_READ_SIZE) -> int:
    """
    Number of blocks aggregated into one backend record per position.

    Example:
        total_size = 4
        read_size  = 131092
        buffer_size = ceil(131092 / 4) = 32773
    """
    if total_size <= 0:
        raise ValueError(f"total_size must be positive; got {total_size}")
    if read_size <= 0:
        raise ValueError(f"read_size must be positive; got {read_size}")
    return math.ceil(read_size / total_size)


def aggregation_key(block_key: int, buffer_size: int) -> int:
    """
    Convert a block key into the key of the aggregated record holding it.

    Example:
        block_key = 70000
        buffer_size = 32773
        aggregation_key = 2
    """
    return block_key // buffer_size


def offset_in_aggregate(block_key: int, buffer_size: int) -> int:
    """
    Compute the offset of a block *inside* its aggregated record.
    """
    return block_key % buffer_size


def position_from_aggregation_key(agg_key: int, total_size: int) -> int:
    """
    Stripe position in [0, total_size) of an aggregated record.

    Python's % is a floored modulo, so negative keys still land in range.
    """
    return agg_key % total_size


def position_from_block_key(block_key: int, buffer_size: int, total_size: int) -> int:
    """
    Stripe position in [0, total_size) of a block key.

    Always equal to
        position_from_aggregation_key(aggregation_key(block_key, buffer_size), total_size)
    """
    return position_from_aggregation_key(
        aggregation_key(block_key, buffer_size), total_size
    )

"""
bootstrap.py
------------

Bootstraps a StorageBackend instance with the correct backend
(MemoryStorage, FileStorage or S3Storage) based on command-line flags or
environment variables, and initializes it for a given stripe width.

Run directly, it also performs a smoke round trip: stores --blocks values
on every stripe position, flushes, reads them back and reports how the
caches behaved.
"""

import argparse
import os
import sys
import time

from loguru import logger

from block_store.file_storage import FileStorage
from block_store.memory_storage import MemoryStorage
from block_store.s3_storage import S3Storage
from block_store.util import FUSE_READ_SIZE, READ_CACHE_SIZE, STATUS_CACHE_SIZE


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Aggregated block store bootstrapper")

    parser.add_argument("--backend", choices=["memory", "file", "s3"],
                        default=os.getenv("BLOCK_STORE_BACKEND", "memory"),
                        help="Storage backend type")

    parser.add_argument("--namespace", type=str, default="default",
                        help="Logical store name")

    parser.add_argument("--path", type=str, default="data/stores",
                        help="Base directory for FileStorage")

    # Stripe / cache sizing
    parser.add_argument("--total-size", type=int, default=9,
                        help="Stripe size + parity size")
    parser.add_argument("--read-size", type=int, default=FUSE_READ_SIZE,
                        help="Read granularity of the file-system layer")
    parser.add_argument("--read-cache-size", type=int, default=READ_CACHE_SIZE)
    parser.add_argument("--status-cache-size", type=int, default=STATUS_CACHE_SIZE)

    # S3 configuration
    parser.add_argument("--bucket", type=str, default=os.getenv("S3_BUCKET", "blockstore"))
    parser.add_argument("--endpoint", type=str, default=os.getenv("S3_ENDPOINT", "http://localhost:9000"))
    parser.add_argument("--access-key", type=str, default=os.getenv("AWS_ACCESS_KEY_ID", "minioadmin"))
    parser.add_argument("--secret-key", type=str, default=os.getenv("AWS_SECRET_ACCESS_KEY", "minioadmin"))

    parser.add_argument("--blocks", type=int, default=1000,
                        help="Blocks per position written by the smoke round trip")
    parser.add_argument("--log-level", type=str,
                        default=os.getenv("BLOCK_STORE_LOG_LEVEL", "INFO"))

    return parser


def configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


def create_backend_from_args(argv=None):
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    sizing = dict(
        read_size=args.read_size,
        read_cache_size=args.read_cache_size,
        status_cache_size=args.status_cache_size,
    )

    # -------------------------------------------------------------
    # Choose backend
    # -------------------------------------------------------------
    if args.backend == "memory":
        backend = MemoryStorage(**sizing)
        logger.info("[bootstrap] Using MemoryStorage")

    elif args.backend == "file":
        backend = FileStorage(args.path, namespace=args.namespace, **sizing)
        logger.info(f"[bootstrap] Using FileStorage at {args.path}")

    else:  # args.backend == "s3"
        backend = S3Storage(
            bucket=args.bucket,
            namespace=args.namespace,
            endpoint_url=args.endpoint,
            aws_access_key_id=args.access_key,
            aws_secret_access_key=args.secret_key,
            **sizing,
        )
        logger.info(f"[bootstrap] Using S3Storage bucket={args.bucket} endpoint={args.endpoint}")

    backend.initialize(args.total_size)
    logger.info(f"[bootstrap] Created {backend!r}")

    return backend, args


def smoke_round_trip(backend, blocks_per_position: int) -> int:
    """
    Store, flush and read back blocks on every position.

    Returns the number of mismatching blocks.
    """
    written = []
    start = time.perf_counter()
    for i in range(blocks_per_position):
        for position in range(backend.total_size):
            value = i * backend.total_size + position
            written.append((backend.store_block(value, position), value))
    backend.flush_all()
    logger.info(f"[bootstrap] Wrote {len(written)} blocks in {time.perf_counter() - start:.3f}s")

    backend.clear_caches()

    mismatches = 0
    start = time.perf_counter()
    for key, value in written:
        if backend.retrieve_block(key) != value:
            mismatches += 1
    logger.info(f"[bootstrap] Read {len(written)} blocks in {time.perf_counter() - start:.3f}s, "
                f"stats={backend.stats}")

    return mismatches


def main(argv=None) -> int:
    backend, args = create_backend_from_args(argv)
    try:
        mismatches = smoke_round_trip(backend, args.blocks)
    finally:
        backend.disconnect()

    if mismatches:
        logger.error(f"[bootstrap] {mismatches} blocks did not read back")
        return 1
    logger.info("[bootstrap] Round trip OK")
    return 0


if __name__ == "__main__":
    sys.exit(main())

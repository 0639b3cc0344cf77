from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from loguru import logger

from block_store.blocks_container import BlocksContainer, from_bytes, to_bytes
from block_store.cache import CacheSet, LRUCache
from block_store.metadata import FileMetadata
from block_store.util import (
    FUSE_READ_SIZE,
    READ_CACHE_SIZE,
    STATUS_CACHE_SIZE,
    aggregation_key,
    compute_buffer_size,
    offset_in_aggregate,
    position_from_aggregation_key,
    position_from_block_key,
)


class BackendError(Exception):
    """
    The underlying key-value store failed (I/O error, timeout, lost
    connection, ...). Never raised for a key that simply does not exist.
    """


class BackendNotInitializedError(RuntimeError):
    """
    A buffering/caching operation was used before initialize().
    """


@dataclass
class CacheStats:
    read_hits: int = 0
    read_misses: int = 0
    status_hits: int = 0
    status_misses: int = 0
    flushes: int = 0


class StorageBackend(ABC):
    """
    Stores file metadata and individual data blocks of an erasure-coded
    file system on top of a key-value store.

    Blocks are not written one by one. Each stripe position (0 .. total_size-1)
    owns a write buffer of buffer_size blocks; a full buffer is serialized and
    written as ONE aggregated record whose key is:

        aggregation_key = block_key // buffer_size

    Block keys handed out for a position are dense inside one aggregated
    record, then jump by total_size * buffer_size, so aggregated records are
    laid out round-robin across positions:

        aggregation_key 0 1 2 3 | 4 5 6 7 | ...
        position        0 1 2 3 | 0 1 2 3 | ...

    Reads go through an LRU cache of deserialized aggregated records and
    existence checks through a positive / negative membership cache. Both are
    pure accelerators: a miss always falls through to the backend.

    initialize(total_size) MUST be called before any other operation and
    disconnect() after usage. Instances are not thread-safe; serialize access
    externally.

    Subclasses implement the key-value primitives (*_aggregated_blocks) and
    the file metadata pass-through.
    """

    def __init__(
            self,
            read_size: int = FUSE_READ_SIZE,
            read_cache_size: int = READ_CACHE_SIZE,
            status_cache_size: int = STATUS_CACHE_SIZE,
    ) -> None:
        """
        Args:
            read_size: Read granularity of the file-system layer. Drives
                       buffer_size = ceil(read_size / total_size).
            read_cache_size: Number of aggregated records kept deserialized.
            status_cache_size: Capacity of each existence cache half.
        """
        self.read_size = read_size
        self.total_size = 0
        self.buffer_size = 0

        self._write_buffers: Optional[List[BlocksContainer]] = None
        self._counters: Optional[List[int]] = None

        self._read_cache: LRUCache[int, BlocksContainer] = LRUCache(
            read_cache_size, name="read-cache"
        )
        self._positive_cache: CacheSet[int] = CacheSet(
            status_cache_size, name="positive-cache"
        )
        self._negative_cache: CacheSet[int] = CacheSet(
            status_cache_size, name="negative-cache"
        )
        self.stats = CacheStats()

    # ------------------------
    # Backend primitives
    # ------------------------

    @abstractmethod
    def retrieve_aggregated_blocks(self, agg_key: int) -> Optional[bytes]:
        """
        Fetch one serialized aggregated record.

        Returns:
            The record, or None if the key does not exist.

        Raises:
            BackendError: the store could not be queried.
        """
        raise NotImplementedError

    @abstractmethod
    def store_aggregated_blocks(self, agg_key: int, blob: bytes) -> None:
        """
        Store one serialized aggregated record, overwriting any previous one.

        Raises:
            BackendError: the record could not be written.
        """
        raise NotImplementedError

    @abstractmethod
    def is_aggregated_block_available(self, agg_key: int) -> bool:
        """
        Whether the store holds a record under agg_key.

        Raises:
            BackendError: the store could not be queried.
        """
        raise NotImplementedError

    @abstractmethod
    def disconnect(self) -> None:
        """
        Release the connection and any resources held by the backend.
        """
        raise NotImplementedError

    # ------------------------
    # File metadata
    # ------------------------

    @abstractmethod
    def get_file_metadata(self, path: str) -> Optional[FileMetadata]:
        """
        Metadata of the file at `path`, or None if unknown.
        """
        raise NotImplementedError

    @abstractmethod
    def set_file_metadata(self, path: str, metadata: FileMetadata) -> None:
        raise NotImplementedError

    @abstractmethod
    def get_all_file_paths(self) -> List[str]:
        """
        All file paths stored in the system, exactly as they were passed to
        set_file_metadata(). Deleted files may or may not be listed.
        """
        raise NotImplementedError

    # ------------------------
    # Lifecycle
    # ------------------------

    @property
    def initialized(self) -> bool:
        return self._counters is not None

    def initialize(self, total_size: int) -> None:
        """
        Set the total size (stripe size + parity size) and allocate one write
        buffer and one key counter per stripe position.

        Must be called exactly once, before any other operation.
        """
        if self.initialized:
            raise RuntimeError(
                f"{type(self).__name__} already initialized with total_size={self.total_size}"
            )

        if isinstance(total_size, bool) or not isinstance(total_size, int):
            raise TypeError(f"total_size must be an int; got {total_size!r}")

        buffer_size = compute_buffer_size(total_size, self.read_size)
        write_buffers = [BlocksContainer(buffer_size) for _ in range(total_size)]
        counters = [position * buffer_size for position in range(total_size)]

        self.total_size = total_size
        self.buffer_size = buffer_size
        self._write_buffers = write_buffers
        self._counters = counters

        logger.debug(
            f"{type(self).__name__}: total_size={total_size}, buffer_size={buffer_size}"
        )

    define_total_size = initialize

    def _require_initialized(self) -> None:
        if not self.initialized:
            raise BackendNotInitializedError(
                f"{type(self).__name__}.initialize(total_size) must be called first"
            )

    def clear_caches(self) -> None:
        """
        Empty the read cache and both existence caches and reset the
        statistics. Write buffers and key counters are left untouched, so
        pending writes survive. Useful between two runs of a benchmark.
        """
        self._read_cache.clear()
        self._positive_cache.clear()
        self._negative_cache.clear()
        self.stats = CacheStats()

    clear_read_cache = clear_caches

    # ------------------------
    # Key / position mapping
    # ------------------------

    def aggregation_key(self, block_key: int) -> int:
        self._require_initialized()
        return aggregation_key(block_key, self.buffer_size)

    def position_from_block_key(self, block_key: int) -> int:
        """
        Stripe position in [0, total_size) that block_key was written to.
        """
        self._require_initialized()
        return position_from_block_key(block_key, self.buffer_size, self.total_size)

    def position_from_aggregation_key(self, agg_key: int) -> int:
        """
        Stripe position in [0, total_size) of an aggregated record.
        """
        self._require_initialized()
        return position_from_aggregation_key(agg_key, self.total_size)

    # ------------------------
    # Write path
    # ------------------------

    def store_block(self, value: int, position: int) -> int:
        """
        Buffer a data block and return the key to later ask for it.

        If the buffer of `position` becomes full it is written to the backend
        before returning.

        Args:
            value: The block to store.
            position: Position in [0, total_size). Spreads the load across
                      backend nodes.

        Returns:
            The unique key of the block.
        """
        self._require_initialized()
        if not 0 <= position < self.total_size:
            raise ValueError(
                f"position must be in [0, {self.total_size}); got {position}"
            )

        if self._write_buffers[position].is_full():
            # An earlier flush of this position failed; retry it first.
            self._flush(position)

        key = self._counters[position]
        buffer = self._write_buffers[position]
        buffer.put(value)

        if buffer.is_full():
            self._flush(position)
        else:
            self._counters[position] += 1

        return key

    def _flush(self, position: int) -> None:
        """
        Write the buffer of `position` to the backend and move the counter to
        the next aggregated record owned by this position.

        If the backend write raises, the buffer and counter are left as they
        were so the flush can be retried.
        """
        buffer = self._write_buffers[position]
        agg_key = self._counters[position] // self.buffer_size

        if buffer.is_empty():
            logger.debug(f"flush position={position}: empty buffer, skipping agg_key={agg_key}")
        else:
            blob = to_bytes(buffer)
            try:
                self.store_aggregated_blocks(agg_key, blob)
            except BackendError:
                logger.warning(f"flush position={position} agg_key={agg_key} failed")
                raise

            # A stale deserialized copy may exist if this record was
            # force-flushed and read before.
            self._read_cache.pop(agg_key)
            self._negative_cache.discard(agg_key)
            self._positive_cache.add(agg_key)
            self.stats.flushes += 1
            logger.debug(
                f"flush position={position}: agg_key={agg_key}, {len(buffer)} blocks"
            )

        self._write_buffers[position] = BlocksContainer(self.buffer_size)
        self._counters[position] = agg_key * self.buffer_size + self.total_size * self.buffer_size

    def flush_all(self) -> None:
        """
        Force-write all buffered blocks to the backend, full or not.
        """
        self._require_initialized()
        for position in range(self.total_size):
            self._flush(position)

    # ------------------------
    # Read path
    # ------------------------

    def retrieve_block(self, key: int) -> Optional[int]:
        """
        Retrieve a data block.

        Args:
            key: The block key returned by store_block().

        Returns:
            The block, or None if it cannot be found.
        """
        self._require_initialized()
        agg_key = aggregation_key(key, self.buffer_size)

        container = self._read_cache.get(agg_key)
        if container is None:
            self.stats.read_misses += 1
            container = self._fetch_and_cache(agg_key)
            if container is None:
                return None
        else:
            self.stats.read_hits += 1

        try:
            return container.get(offset_in_aggregate(key, self.buffer_size))
        except IndexError:
            # Force-flushed record shorter than buffer_size.
            return None

    def _fetch_and_cache(self, agg_key: int) -> Optional[BlocksContainer]:
        """
        Fetch an aggregated record from the backend and keep it in the read
        cache. Confirmed absence is remembered in the negative cache; a
        backend failure propagates and is not cached.
        """
        blob = self.retrieve_aggregated_blocks(agg_key)
        if blob is None:
            self._positive_cache.discard(agg_key)
            self._negative_cache.add(agg_key)
            logger.debug(f"fetch agg_key={agg_key}: not found")
            return None

        container = from_bytes(blob)
        self._read_cache.put(agg_key, container)
        self._negative_cache.discard(agg_key)
        self._positive_cache.add(agg_key)
        logger.debug(f"fetch agg_key={agg_key}: {len(container)} blocks")
        return container

    def is_block_available(self, key: int) -> bool:
        """
        Whether a block can be retrieved.

        If this returns False, retrieve_block() with the same key returns
        None too, unless the backend changed in the meantime. If it returns
        True and retrieve_block() then fails, something happened in between
        (or a bug was hit).
        """
        self._require_initialized()
        agg_key = aggregation_key(key, self.buffer_size)

        if agg_key in self._positive_cache:
            self.stats.status_hits += 1
            return True
        if agg_key in self._negative_cache:
            self.stats.status_hits += 1
            return False

        self.stats.status_misses += 1
        if self.is_aggregated_block_available(agg_key):
            self._positive_cache.add(agg_key)
            return True

        self._negative_cache.add(agg_key)
        return False

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(total_size={self.total_size}, "
            f"buffer_size={self.buffer_size})"
        )

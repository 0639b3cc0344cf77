from typing import Dict, List, Optional

from block_store.metadata import FileMetadata
from block_store.storage import StorageBackend


class MemoryStorage(StorageBackend):
    """
    Dictionary-backed storage, for tests and for benchmarking the buffering
    and caching layer without a live store.

    Every backend primitive call is counted so callers can observe how many
    round trips the caches saved.
    """

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.records: Dict[int, bytes] = {}
        self.metadata: Dict[str, str] = {}

        self.fetch_count = 0
        self.store_count = 0
        self.exists_count = 0
        self.connected = True

    def retrieve_aggregated_blocks(self, agg_key: int) -> Optional[bytes]:
        self.fetch_count += 1
        return self.records.get(agg_key)

    def store_aggregated_blocks(self, agg_key: int, blob: bytes) -> None:
        self.store_count += 1
        self.records[agg_key] = bytes(blob)

    def is_aggregated_block_available(self, agg_key: int) -> bool:
        self.exists_count += 1
        return agg_key in self.records

    def get_file_metadata(self, path: str) -> Optional[FileMetadata]:
        raw = self.metadata.get(path)
        if raw is None:
            return None
        return FileMetadata.from_json(raw)

    def set_file_metadata(self, path: str, metadata: FileMetadata) -> None:
        # Stored serialized so callers cannot mutate what was saved.
        self.metadata[path] = metadata.to_json()

    def get_all_file_paths(self) -> List[str]:
        return sorted(self.metadata)

    def disconnect(self) -> None:
        self.clear_caches()
        self.connected = False

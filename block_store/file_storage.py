import os
import stat
from typing import List, Optional
from urllib.parse import quote, unquote

from loguru import logger

from block_store.metadata import FileMetadata
from block_store.storage import BackendError, StorageBackend

_METADATA_SUFFIX = ".json"


class FileStorage(StorageBackend):
    """
    Local filesystem-backed storage.

    Aggregated records are stored under:
        <base_path>/<namespace>/blocks/<aggregation_key>

    File metadata is stored as JSON under:
        <base_path>/<namespace>/metadata/<quoted path>.json

    Missing files mean "not found"; any other OSError is reported as a
    BackendError.
    """

    def __init__(self, base_path: str = "data", namespace: str = "default", **kwargs):
        """
        Args:
            base_path: Root directory where namespaces will live.
            namespace: Logical store name, so several stores can share base_path.
        """
        super().__init__(**kwargs)
        self.base_path = base_path
        self.namespace = namespace

    def _record_path(self, agg_key: int) -> str:
        """
        Returns the full filesystem path for a given aggregated record.
        """
        return os.path.join(self.base_path, self.namespace, "blocks", str(agg_key))

    def _metadata_dir(self) -> str:
        return os.path.join(self.base_path, self.namespace, "metadata")

    def _metadata_path(self, path: str) -> str:
        # File paths contain "/", so they are quoted into a single file name.
        return os.path.join(self._metadata_dir(), quote(path, safe="") + _METADATA_SUFFIX)

    @staticmethod
    def _write_atomically(path: str, data: bytes) -> None:
        """
        Atomic write = write to <path>.tmp → rename to <path>.
        """
        os.makedirs(os.path.dirname(path), exist_ok=True)

        temp_path = f"{path}.tmp"
        with open(temp_path, "wb") as f:
            f.write(data)

        os.replace(temp_path, path)

    # ------------------------
    # Aggregated records
    # ------------------------

    def retrieve_aggregated_blocks(self, agg_key: int) -> Optional[bytes]:
        path = self._record_path(agg_key)

        try:
            with open(path, "rb") as f:
                return f.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning(f"FileStorage: reading {path} failed: {e}")
            raise BackendError(f"cannot read aggregated record {agg_key}") from e

    def store_aggregated_blocks(self, agg_key: int, blob: bytes) -> None:
        path = self._record_path(agg_key)

        try:
            self._write_atomically(path, blob)
        except OSError as e:
            logger.warning(f"FileStorage: writing {path} failed: {e}")
            raise BackendError(f"cannot write aggregated record {agg_key}") from e

    def is_aggregated_block_available(self, agg_key: int) -> bool:
        path = self._record_path(agg_key)

        try:
            st = os.stat(path)
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning(f"FileStorage: stat {path} failed: {e}")
            raise BackendError(f"cannot stat aggregated record {agg_key}") from e

        if not stat.S_ISREG(st.st_mode):
            raise BackendError(f"aggregated record {agg_key} is not a regular file: {path}")
        return True

    # ------------------------
    # File metadata
    # ------------------------

    def get_file_metadata(self, path: str) -> Optional[FileMetadata]:
        metadata_path = self._metadata_path(path)

        try:
            with open(metadata_path, "r", encoding="utf-8") as f:
                raw = f.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise BackendError(f"cannot read metadata of {path!r}") from e

        return FileMetadata.from_json(raw)

    def set_file_metadata(self, path: str, metadata: FileMetadata) -> None:
        try:
            self._write_atomically(
                self._metadata_path(path), metadata.to_json().encode("utf-8")
            )
        except OSError as e:
            raise BackendError(f"cannot write metadata of {path!r}") from e

    def get_all_file_paths(self) -> List[str]:
        try:
            names = os.listdir(self._metadata_dir())
        except FileNotFoundError:
            return []
        except OSError as e:
            raise BackendError("cannot list metadata directory") from e

        return sorted(
            unquote(name[: -len(_METADATA_SUFFIX)])
            for name in names
            if name.endswith(_METADATA_SUFFIX)
        )

    def disconnect(self) -> None:
        # Nothing is held open between calls.
        self.clear_caches()

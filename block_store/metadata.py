import json
from dataclasses import asdict, dataclass, field
from typing import List


@dataclass
class FileMetadata:
    """
    What the file-system layer needs to rebuild a file from its blocks.

    block_keys are the keys handed out by StorageBackend.store_block(),
    stripe by stripe (stripe_size data blocks then parity_size parity
    blocks per stripe).
    """

    file_size: int = 0
    block_keys: List[int] = field(default_factory=list)
    stripe_size: int = 0
    parity_size: int = 0

    def to_json(self) -> str:
        return json.dumps(asdict(self), sort_keys=True)

    @classmethod
    def from_json(cls, raw: str) -> "FileMetadata":
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValueError(f"invalid metadata record: {e}") from e

        return cls(
            file_size=int(data.get("file_size", 0)),
            block_keys=[int(k) for k in data.get("block_keys", [])],
            stripe_size=int(data.get("stripe_size", 0)),
            parity_size=int(data.get("parity_size", 0)),
        )

"""
Fixed-size group of blocks and its wire codec.

A BlocksContainer is what gets written to (and read from) the backend as a
single aggregated record. The serialized form is:

    +-----------------+------------------------------+
    | count: uint32   | count x value: int64         |
    +-----------------+------------------------------+

All integers are big-endian.
"""

import struct
from typing import List

_HEADER = struct.Struct(">I")
_VALUE = struct.Struct(">q")


class BlocksContainer:
    """
    Append-only buffer of block values with a fixed capacity.
    """

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError(f"capacity must be positive; got {capacity}")
        self.capacity = capacity
        self._values: List[int] = []

    def put(self, value: int) -> None:
        if self.is_full():
            raise OverflowError(
                f"BlocksContainer is full ({self.capacity} blocks)"
            )
        try:
            _VALUE.pack(value)
        except struct.error as e:
            raise ValueError(f"block value {value!r} is not a 64-bit integer: {e}") from e
        self._values.append(value)

    def get(self, offset: int) -> int:
        """
        Return the block stored at `offset`.

        Raises IndexError if nothing was stored there.
        """
        if offset < 0:
            raise IndexError(f"negative offset {offset}")
        return self._values[offset]

    def is_full(self) -> bool:
        return len(self._values) >= self.capacity

    def is_empty(self) -> bool:
        return not self._values

    def values(self) -> List[int]:
        return list(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"BlocksContainer(size={len(self._values)}, capacity={self.capacity})"


def to_bytes(container: BlocksContainer) -> bytes:
    """
    Serialize a container into a single aggregated record.
    """
    values = container.values()
    try:
        body = struct.pack(f">{len(values)}q", *values)
    except struct.error as e:
        raise ValueError(f"block value does not fit in 64 bits: {e}") from e
    return _HEADER.pack(len(values)) + body


def from_bytes(blob: bytes) -> BlocksContainer:
    """
    Deserialize an aggregated record.

    The returned container has exactly as much capacity as it has blocks,
    so it reports itself as full. It is meant for reading only.
    """
    if len(blob) < _HEADER.size:
        raise ValueError(
            f"aggregated record too short: {len(blob)} bytes, "
            f"need at least {_HEADER.size}"
        )

    (count,) = _HEADER.unpack_from(blob, 0)
    expected = _HEADER.size + count * _VALUE.size
    if len(blob) != expected:
        raise ValueError(
            f"aggregated record declares {count} blocks ({expected} bytes) "
            f"but is {len(blob)} bytes long"
        )

    container = BlocksContainer(max(count, 1))
    for value in struct.unpack_from(f">{count}q", blob, _HEADER.size):
        container.put(value)
    return container

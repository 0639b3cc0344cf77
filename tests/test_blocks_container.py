import struct

import pytest

from block_store.blocks_container import BlocksContainer, from_bytes, to_bytes


def test_container_fills_to_capacity():
    container = BlocksContainer(3)
    assert container.is_empty()

    container.put(1)
    container.put(-2)
    assert not container.is_full()
    container.put(3)

    assert container.is_full()
    assert len(container) == 3
    assert container.get(1) == -2

    with pytest.raises(OverflowError):
        container.put(4)


def test_get_past_end_raises():
    container = BlocksContainer(4)
    container.put(7)
    with pytest.raises(IndexError):
        container.get(1)
    with pytest.raises(IndexError):
        container.get(-1)


def test_wire_format():
    container = BlocksContainer(2)
    container.put(1)
    container.put(-1)

    blob = to_bytes(container)

    assert blob == struct.pack(">I", 2) + struct.pack(">qq", 1, -1)
    assert from_bytes(blob).values() == [1, -1]


def test_empty_container_round_trip():
    blob = to_bytes(BlocksContainer(5))
    assert blob == b"\x00\x00\x00\x00"
    assert len(from_bytes(blob)) == 0


def test_from_bytes_rejects_malformed_records():
    with pytest.raises(ValueError):
        from_bytes(b"\x00")
    with pytest.raises(ValueError):
        from_bytes(struct.pack(">I", 3) + struct.pack(">q", 1))


def test_put_rejects_values_that_do_not_fit_the_wire_format():
    container = BlocksContainer(3)
    container.put(1)

    for bad in (2 ** 64, -(2 ** 63) - 1, "7", 1.5, None):
        with pytest.raises(ValueError):
            container.put(bad)

    container.put(2 ** 63 - 1)
    assert from_bytes(to_bytes(container)).values() == [1, 2 ** 63 - 1]

import pytest

from chainvault.types import (
    BatchBlock,
    BatchExtrinsics,
    BatchStorage,
    Block,
    Die,
    Metadata,
    Storage,
)


def test_metadata_keeps_version_and_bytes():
    meta = Metadata(26, b"\xde\xad\xbe\xef")
    assert meta.version == 26
    assert meta.meta == b"\xde\xad\xbe\xef"


def test_metadata_rejects_negative_version():
    with pytest.raises(ValueError):
        Metadata(-1, b"")


def test_block_holds_inner_and_spec():
    block = Block({"header": "h"}, 9)
    assert block.inner == {"header": "h"}
    assert block.spec == 9


def test_block_rejects_oversized_spec():
    with pytest.raises(ValueError):
        Block(None, 2**32)


def test_batch_block_holds_blocks_in_order():
    blocks = [Block("a", 1), Block("b", 2)]
    batch = BatchBlock(blocks)
    assert [b.inner for b in batch.inner] == ["a", "b"]


def test_storage_is_full_reflects_flag():
    changes = [(b"\x13\x37", b"\x01"), (b"\x00", None)]
    full = Storage(b"\x13\x37", 5, True, changes)
    diff = Storage(b"\x13\x37", 5, False, changes)
    assert full.is_full() is True
    assert diff.is_full() is False
    assert full.changes == changes
    assert full.block_num == 5
    assert full.hash == b"\x13\x37"


def test_storage_changes_default_to_empty():
    assert Storage(b"", 0, False).changes == []


def test_storage_rejects_negative_block_number():
    with pytest.raises(ValueError):
        Storage(b"", -3, False, [])


def test_batch_storage_holds_storage():
    storage = [Storage(b"a", 1, False, []), Storage(b"b", 2, False, [])]
    batch = BatchStorage(storage)
    assert [s.block_num for s in batch.inner] == [1, 2]


def test_batch_extrinsics_length():
    batch = BatchExtrinsics(["x", "y", "z"])
    assert len(batch) == 3
    assert len(BatchExtrinsics()) == 0


def test_die_values_are_equal():
    first, second = Die(), Die()
    assert first == second
    assert len({first, second}) == 1
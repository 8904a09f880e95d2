import sqlite3

import pytest

from chainvault.errors import ArchiveError, MismatchedSpecNameError
from chainvault.models import (
    CONFIG_TABLE_DDL,
    BlockModel,
    Chain,
    EventModel,
    ExtrinsicsModel,
    PersistentConfig,
    StorageModel,
    batch_storage_models,
    storage_models,
    version_tuple,
)
from chainvault.types import BatchStorage, Storage


@pytest.fixture
def conn():
    connection = sqlite3.connect(":memory:")
    connection.execute(CONFIG_TABLE_DDL)
    yield connection
    connection.close()


def test_storage_models_copy_block_fields():
    storage = Storage(b"\x13\x37", 7, False, [(b"k1", b"v1"), (b"k2", None)])
    models = storage_models(storage)
    assert models == [
        StorageModel(b"\x13\x37", 7, False, b"k1", b"v1"),
        StorageModel(b"\x13\x37", 7, False, b"k2", None),
    ]
    assert not models[0].is_full()


def test_batch_storage_models_flatten_in_order():
    first = Storage(b"a", 1, True, [(b"x", b"1")])
    second = Storage(b"b", 2, False, [(b"y", None), (b"z", b"2")])
    models = batch_storage_models(BatchStorage([first, second]))
    assert [(m.block_num, m.key) for m in models] == [(1, b"x"), (2, b"y"), (2, b"z")]
    assert models[0].is_full()


def test_block_model_equality():
    fields = dict(
        id=1, parent_hash=b"\x13\x37", hash=b"\x13\x37", block_num=0,
        state_root=b"", extrinsics_root=b"", digest=b"", ext=b"", spec=0,
    )
    assert BlockModel(**fields) == BlockModel(**fields)
    assert BlockModel(**fields) != BlockModel(**{**fields, "spec": 1})


def test_extrinsics_model_create():
    model = ExtrinsicsModel.create(b"\xde\xad", 1337, [{"call": "x"}])
    assert model.id is None
    assert model.number == 1337
    assert model.hash == b"\xde\xad"
    assert model.extrinsics == [{"call": "x"}]


@pytest.mark.parametrize("number", [2**31, -1, 2**32])
def test_extrinsics_model_rejects_numbers_outside_i32(number):
    with pytest.raises(ArchiveError):
        ExtrinsicsModel.create(b"", number, [])


def test_event_model_fields():
    model = EventModel("1-0", "System", "ExtrinsicSuccess", 5)
    assert (model.module, model.event, model.block_height) == ("System", "ExtrinsicSuccess", 5)


@pytest.mark.parametrize(
    "name, expected",
    [
        ("Kusama", Chain.KUSAMA),
        ("POLKADOT", Chain.POLKADOT),
        ("westend", Chain.WESTEND),
        ("Centrifuge", Chain.CENTRIFUGE),
        ("rococo", Chain.ROCOCO),
    ],
)
def test_known_chains(conn, name, expected):
    conf = PersistentConfig.fetch_and_update(conn, name, b"", "testdb")
    assert conf.chain() == expected
    assert not conf.chain().is_custom


def test_custom_chain_is_lowercased(conn):
    conf = PersistentConfig.fetch_and_update(conn, "MyChain", b"", "testdb")
    assert conf.chain() == Chain("mychain")
    assert conf.chain().is_custom


def test_config_should_persist(conn):
    PersistentConfig.fetch_and_update(conn, "", b"", "testdb")
    stored = conn.execute("SELECT task_queue FROM _sa_config LIMIT 1").fetchone()[0]
    conf = PersistentConfig.fetch_and_update(conn, "", b"", "testdb")
    assert stored == conf.task_queue


def test_first_run_creates_config(conn):
    conf = PersistentConfig.fetch_and_update(conn, "polkadot", b"\x13\x37", "testdb")
    assert conf.task_queue.startswith("testdb-queue-")
    assert conf.genesis_hash == b"\x13\x37"
    assert conf.chain_name == "polkadot"
    assert (conf.major, conf.minor, conf.patch) == version_tuple()
    assert conn.execute("SELECT COUNT(*) FROM _sa_config").fetchone()[0] == 1


def test_second_run_updates_last_run(conn):
    first = PersistentConfig.fetch_and_update(conn, "kusama", b"", "testdb")
    PersistentConfig.fetch_and_update(conn, "kusama", b"", "testdb")
    stored = conn.execute("SELECT last_run FROM _sa_config").fetchone()[0]
    assert stored >= first.last_run.isoformat()
    assert conn.execute("SELECT COUNT(*) FROM _sa_config").fetchone()[0] == 1


def test_mismatched_chain_raises(conn):
    PersistentConfig.fetch_and_update(conn, "kusama", b"", "testdb")
    with pytest.raises(MismatchedSpecNameError) as info:
        PersistentConfig.fetch_and_update(conn, "polkadot", b"", "testdb")
    assert info.value.expected == "kusama"
    assert info.value.got == "polkadot"


def test_version_tuple_is_non_negative():
    parts = version_tuple()
    assert len(parts) == 3
    assert all(isinstance(p, int) and p >= 0 for p in parts)
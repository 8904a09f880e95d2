import json
import queue

import pytest

from chainvault.errors import ArchiveError
from chainvault.listener import (
    Action,
    Builder,
    Channel,
    Listener,
    MemoryNotificationSource,
    Notif,
    Table,
)

PAYLOAD = json.dumps({"table": "blocks", "action": "INSERT", "block_num": 1337})


def test_should_deserialize_into_block():
    notif = Notif.from_dict({"table": "blocks", "action": "INSERT", "block_num": 1337})
    assert notif == Notif(Table.BLOCKS, Action.INSERT, 1337)


def test_block_num_may_be_a_string():
    notif = Notif.from_json('{"table": "storage", "action": "DELETE", "block_num": "1337"}')
    assert notif == Notif(Table.STORAGE, Action.DELETE, 1337)


@pytest.mark.parametrize(
    "payload",
    [
        '{"table": "blocks", "action": "insert", "block_num": 1}',
        '{"table": "nope", "action": "INSERT", "block_num": 1}',
        '{"table": "blocks", "action": "INSERT"}',
        '{"table": "blocks", "action": "INSERT", "block_num": "x"}',
        '{"table": "blocks", "action": "INSERT", "block_num": 4294967296}',
        "not json",
    ],
)
def test_bad_payload_rejected(payload):
    with pytest.raises(ArchiveError):
        Notif.from_json(payload)


def test_channel_name():
    assert Channel.BLOCKS.channel_name() == "blocks_update"


def test_source_drops_unlistened_channels():
    source = MemoryNotificationSource()
    source.listen([Channel.BLOCKS])
    assert source.notify("other", "x") is False
    assert source.notify("blocks_update", "y") is True
    assert source.get(timeout=0) == "y"
    assert source.get(timeout=0) is None
    source.close()
    with pytest.raises(EOFError):
        source.get(timeout=0)


def test_should_get_notifications():
    source = MemoryNotificationSource()
    received = queue.Queue()
    listener = (
        Builder(source, "queue", lambda notif, handle: received.put((notif, handle)))
        .listen_on(Channel.BLOCKS)
        .spawn()
    )
    for _ in range(5):
        source.notify("blocks_update", PAYLOAD)
    counter = 0
    while True:
        try:
            notif, handle = received.get(timeout=0.5)
        except queue.Empty:
            break
        assert notif.block_num == 1337
        assert handle == "queue"
        counter += 1
    assert counter == 5
    listener.kill()


def test_pending_notifications_handled_on_kill():
    source = MemoryNotificationSource()
    seen = []
    listener = Listener.builder(source, None, lambda n, h: seen.append(n)).listen_on(Channel.BLOCKS).spawn()
    source.notify(Channel.BLOCKS, PAYLOAD)
    source.notify(Channel.BLOCKS, PAYLOAD)
    listener.kill()
    assert len(seen) == 2


def test_task_error_raised_on_kill():
    source = MemoryNotificationSource()

    def task(notif, handle):
        raise ArchiveError("boom")

    listener = Listener.builder(source, None, task).listen_on(Channel.BLOCKS).spawn()
    source.notify(Channel.BLOCKS, PAYLOAD)
    with pytest.raises(ArchiveError, match="boom"):
        listener.kill()


def test_context_manager_stops_listener():
    source = MemoryNotificationSource()
    seen = []
    with Listener.builder(source, None, lambda n, h: seen.append(n.block_num)).listen_on(
        Channel.BLOCKS
    ).spawn():
        source.notify(Channel.BLOCKS, PAYLOAD)
    assert seen == [1337]
# chainvault

Building blocks for archiving blockchain data into a relational database.

| Module | What it gives you |
| --- | --- |
| `chainvault.metadata` | Lookups of pallets, calls, events, errors, storage entries and constants in version 14 runtime metadata, and call encoding |
| `chainvault.batch` | Large parameterised statements split into chunks of at most 5,000 bound arguments |
| `chainvault.models` | Block, storage, extrinsic and event rows, and a configuration row kept between runs |
| `chainvault.listener` | A background listener that runs a task for each table-change notification |
| `chainvault.wasm_tracing` | Collection of spans and events, filtered by target and level |
| `chainvault.types` | Message types: blocks, storage changes and their batches |
| `chainvault.logger` | Console logging, with an optional log file |
| `chainvault.errors` | The exception hierarchy (`ArchiveError`, `TracingError`, `QueueError` and their subclasses) |

## Installation

```
pip install chainvault
```

To install the test dependencies as well:

```
pip install "chainvault[test]"
```

## Metadata

```python
from chainvault.metadata import Metadata

meta = Metadata.from_prefixed(prefixed)   # a RuntimeMetadataPrefixed
balances = meta.pallet("Balances")
encoded = balances.encode_call(my_transfer_call)   # a Call subclass
event = meta.event(5, 2)
print(event.pallet, event.event)
```

`encode_call` returns an `Encoded` object. Its bytes are the pallet index, then the call index, then the bytes from `call.encode()`. A lookup that finds nothing raises a subclass of `MetadataError`, such as `PalletNotFoundError` or `EventNotFoundError`. Metadata that has the wrong magic number, is not version 14, or points at a missing or non-enum type raises a subclass of `InvalidMetadataError`.

## Batched SQL

Queries use numbered placeholders (`$1`, `$2`, ...). A connection is any object that has an `execute(query, arguments)` method returning the number of affected rows.

```python
from chainvault.batch import Batch

batch = Batch("storage", "INSERT INTO storage (block_num, key) VALUES ", " ON CONFLICT DO NOTHING")
for i, (num, key) in enumerate(rows):
    batch.reserve(2)          # room for two more arguments; may start a new chunk
    if batch.current_num_arguments() > 0:
        batch.append(",")
    batch.append("(")
    batch.bind(num)
    batch.append(",")
    batch.bind(key)
    batch.append(")")

affected = batch.execute(conn)             # chunks one after another
# or: batch.execute_concurrent(conn, limit=4)  # chunks on parallel threads
```

A batch with no reserved rows runs nothing and returns 0. A batch can be executed only once; a second call raises `RuntimeError`. To prepare every chunk with extra SQL right after its leading text, use `Batch.new_with(name, leading, trailing, with_)`.

## Models and persistent configuration

`storage_models(storage)` and `batch_storage_models(batch)` turn storage changes into one `StorageModel` row per change. `ExtrinsicsModel.create` raises `ArchiveError` if the block number does not fit in a signed 32-bit integer.

`PersistentConfig.fetch_and_update(conn, spec_name, genesis, database_name)` takes a DB-API connection that uses qmark placeholders, such as `sqlite3`. `CONFIG_TABLE_DDL` holds the table schema for it. On the first run it creates the row, with a task-queue name of the form `<database_name>-queue-<timestamp>`. On later runs it updates the last-run time and the version. If the stored chain is not `spec_name`, it raises `MismatchedSpecNameError`.

```python
import sqlite3
from chainvault.models import CONFIG_TABLE_DDL, PersistentConfig

conn = sqlite3.connect("archive.db")
conn.execute(CONFIG_TABLE_DDL)
config = PersistentConfig.fetch_and_update(conn, "polkadot", b"\x00" * 32, "archive")
print(config.task_queue, config.chain())
```

## Notifications

```python
from chainvault.listener import Channel, Listener, MemoryNotificationSource

source = MemoryNotificationSource()

def on_block(notif, queue_handle):
    print(notif.table, notif.action, notif.block_num)

with Listener.builder(source, None, on_block).listen_on(Channel.BLOCKS).spawn():
    source.notify(Channel.BLOCKS, '{"table": "blocks", "action": "INSERT", "block_num": "1337"}')
```

Payloads are JSON objects with `table`, `action` and `block_num`. `block_num` may be given as a number or as a numeric string. The listener subscribes before its thread starts. When it is stopped, it handles any notifications still pending, for up to one second. `kill()` raises the first error the task met. Leaving the `with` block only logs that error.

## Execution tracing

```python
from chainvault.wasm_tracing import Level, TraceHandler, event, span

handler = TraceHandler("runtime=debug,test_wasm")

def work():
    with span("im_a_span", "test_wasm", Level.INFO, some_info="details"):
        event("im_an_event", "test_wasm", Level.INFO)
    return 42

spans, events, result = handler.scoped_trace(work)
```

Targets take the form `target` or `target=level`. A missing or unknown level means `TRACE`. A span is kept when its target, or the `target` value recorded on it, starts with a configured target, and its level is no more verbose than that target's level. Spans opened inside other spans get the outer span's id as `parent_id`.

## Logging

```python
from chainvault.logger import FileLoggerConfig, LoggerConfig, LogLevel, init

init(LoggerConfig(std=LogLevel.INFO, file=FileLoggerConfig()))
```

Log files go to `default_dir()` unless `FileLoggerConfig.dir` is set. The default file name is the current UTC time followed by `.log`. Calling `init` again replaces the handlers that an earlier call installed.

## What this package does not do

- It does not connect to a database server. Batches and configuration take a connection object that you supply.
- It has no background job queue or worker pool. The queue errors in `chainvault.errors` exist, but nothing in the package enqueues or runs jobs.
- It does not decode or execute blocks. The message types and tracing handler only hold data that you collect yourself.
- It has no command-line program.
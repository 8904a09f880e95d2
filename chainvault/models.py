"""Database row models and the configuration kept between runs."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from importlib.metadata import PackageNotFoundError, version
from typing import Any, ClassVar

from .errors import ArchiveError, MismatchedSpecNameError
from .types import BatchStorage, Storage

_I32_MAX = 2**31 - 1
_U32_MAX = 2**32 - 1
_FALLBACK_VERSION = "0.1.0"
_VERSION_RE = re.compile(r"^(\d+)\.(\d+)\.(\d+)(?:[-+.].*)?$")

CONFIG_TABLE_DDL = """
CREATE TABLE IF NOT EXISTS _sa_config (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    task_queue TEXT NOT NULL,
    last_run TEXT NOT NULL,
    major INTEGER NOT NULL,
    minor INTEGER NOT NULL,
    patch INTEGER NOT NULL,
    chain TEXT NOT NULL,
    genesis_hash BLOB NOT NULL
)
"""
"""Schema of the configuration table for a qmark-style (sqlite3) connection."""


@dataclass
class BlockModel:
    """A block row as stored in the database."""

    id: int
    parent_hash: bytes
    hash: bytes
    block_num: int
    state_root: bytes
    extrinsics_root: bytes
    digest: bytes
    ext: bytes
    spec: int


@dataclass
class StorageModel:
    """One storage change of one block, as stored in the database."""

    hash: Any
    block_num: int
    full_storage: bool
    key: bytes
    data: bytes | None = None

    def is_full(self) -> bool:
        return self.full_storage


def storage_models(storage: Storage) -> list[StorageModel]:
    """One row per change of a block's storage."""
    return [
        StorageModel(storage.hash, storage.block_num, storage.is_full(), key, data)
        for key, data in storage.changes
    ]


def batch_storage_models(batch: BatchStorage) -> list[StorageModel]:
    """Rows of every change of every block in the batch, in order."""
    return [model for storage in batch.inner for model in storage_models(storage)]


def _to_i32(name: str, value: int) -> int:
    if not 0 <= value <= _U32_MAX:
        raise ArchiveError(f"{name} {value} is not an unsigned 32-bit integer")
    if value > _I32_MAX:
        raise ArchiveError(f"{name} {value} does not fit in a signed 32-bit integer")
    return value


@dataclass
class ExtrinsicsModel:
    """The decoded extrinsics of one block."""

    id: int | None
    hash: bytes
    number: int
    extrinsics: list[Any] = field(default_factory=list)

    @classmethod
    def create(cls, hash: bytes, number: int, extrinsics: list[Any]) -> ExtrinsicsModel:
        """A new row, not yet stored; the number must fit in a signed 32-bit integer."""
        return cls(id=None, hash=bytes(hash), number=_to_i32("number", number), extrinsics=list(extrinsics))


@dataclass
class EventModel:
    """A runtime event of a block."""

    id: str
    module: str
    event: str
    block_height: int


_KNOWN_CHAINS = frozenset({"kusama", "polkadot", "westend", "centrifuge", "rococo"})


@dataclass(frozen=True)
class Chain:
    """A network, known by name or custom."""

    name: str

    KUSAMA: ClassVar[Chain]
    POLKADOT: ClassVar[Chain]
    WESTEND: ClassVar[Chain]
    CENTRIFUGE: ClassVar[Chain]
    ROCOCO: ClassVar[Chain]

    @property
    def is_custom(self) -> bool:
        return self.name not in _KNOWN_CHAINS


Chain.KUSAMA = Chain("kusama")
Chain.POLKADOT = Chain("polkadot")
Chain.WESTEND = Chain("westend")
Chain.CENTRIFUGE = Chain("centrifuge")
Chain.ROCOCO = Chain("rococo")


def version_tuple() -> tuple[int, int, int]:
    """Major, minor and patch version of this package."""
    try:
        text = version("chainvault")
    except PackageNotFoundError:
        text = _FALLBACK_VERSION
    match = _VERSION_RE.match(text)
    if match is None:
        raise ArchiveError(f"invalid version {text!r}")
    major, minor, patch = (int(part) for part in match.groups())
    for part in (major, minor, patch):
        if part > _I32_MAX:
            raise ArchiveError(f"version part {part} does not fit in 32 bits")
    return major, minor, patch


def _parse_time(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


@dataclass
class PersistentConfig:
    """Configuration stored in the database and restored on every run.

    It keeps the task-queue name between runs, with the library version and
    time of the last run for debugging.
    """

    id: int
    task_queue: str
    last_run: datetime
    major: int
    minor: int
    patch: int
    chain_name: str
    genesis_hash: bytes

    _COLUMNS: ClassVar[str] = "id, task_queue, last_run, major, minor, patch, chain, genesis_hash"

    @classmethod
    def _from_row(cls, row: Any) -> PersistentConfig:
        id_, task_queue, last_run, major, minor, patch, chain, genesis = row
        return cls(
            id=int(id_),
            task_queue=str(task_queue),
            last_run=_parse_time(last_run),
            major=int(major),
            minor=int(minor),
            patch=int(patch),
            chain_name=str(chain),
            genesis_hash=bytes(genesis),
        )

    @classmethod
    def fetch_and_update(
        cls, conn: Any, spec_name: str, genesis: bytes, database_name: str
    ) -> PersistentConfig:
        """Return the stored config, updating its run data, or create it if missing.

        ``conn`` is a DB-API connection using qmark placeholders. Raises
        MismatchedSpecNameError if the stored chain differs from ``spec_name``.
        """
        cursor = conn.cursor()
        cursor.execute(f"SELECT {cls._COLUMNS} FROM _sa_config ORDER BY id LIMIT 1")
        row = cursor.fetchone()

        last_run = datetime.now(timezone.utc)
        major, minor, patch = version_tuple()
        running_chain = str(spec_name)

        if row is None:
            # Database name, "-queue" and a timestamp keep queues apart when one
            # server runs several archives.
            task_queue = f"{database_name}-queue-{int(last_run.timestamp())}"
            genesis_hash = bytes(genesis)
            cursor.execute(
                "INSERT INTO _sa_config (task_queue, last_run, major, minor, patch, chain, genesis_hash) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (task_queue, last_run.isoformat(), major, minor, patch, running_chain, genesis_hash),
            )
            new_id = cursor.lastrowid
            conn.commit()
            return cls(
                id=int(new_id),
                task_queue=task_queue,
                last_run=last_run,
                major=major,
                minor=minor,
                patch=patch,
                chain_name=running_chain,
                genesis_hash=genesis_hash,
            )

        conf = cls._from_row(row)
        cursor.execute("SELECT chain FROM _sa_config")
        stored_chain = str(cursor.fetchone()[0])
        if stored_chain != running_chain:
            raise MismatchedSpecNameError(expected=stored_chain, got=running_chain)

        cursor.execute(
            "UPDATE _sa_config SET last_run = ?, major = ?, minor = ?, patch = ?",
            (last_run.isoformat(), major, minor, patch),
        )
        conn.commit()
        return conf

    def chain(self) -> Chain:
        """The network this database holds data of."""
        return Chain(self.chain_name.lower())
"""Messages passed between the parts of the archive."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

_U32_MAX = 2**32 - 1


def _check_u32(name: str, value: int) -> None:
    if not 0 <= value <= _U32_MAX:
        raise ValueError(f"{name} must fit in an unsigned 32-bit integer, got {value}")


@dataclass
class Metadata:
    """Encoded runtime metadata of one runtime version."""

    version: int
    meta: bytes

    def __post_init__(self) -> None:
        _check_u32("version", self.version)


@dataclass
class Block:
    """A signed block together with the runtime version it was built with."""

    inner: Any
    spec: int

    def __post_init__(self) -> None:
        _check_u32("spec", self.spec)


@dataclass
class BatchBlock:
    """Many blocks committed to the database at once."""

    inner: list[Block] = field(default_factory=list)


@dataclass
class Storage:
    """Storage changes made by one block."""

    hash: Any
    block_num: int
    full_storage: bool
    changes: list[tuple[bytes, bytes | None]] = field(default_factory=list)

    def __post_init__(self) -> None:
        _check_u32("block_num", self.block_num)

    def is_full(self) -> bool:
        """Whether the changes hold the whole state rather than a diff."""
        return self.full_storage


@dataclass
class BatchStorage:
    """Storage changes of many blocks committed at once."""

    inner: list[Storage] = field(default_factory=list)


@dataclass
class BatchExtrinsics:
    """Many decoded extrinsics committed at once."""

    inner: list[Any] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.inner)


@dataclass(frozen=True)
class Die:
    """Signal asking an actor to stop."""
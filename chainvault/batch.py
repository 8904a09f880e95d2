"""Batched parameterised inserts split into chunks of bounded size.

Queries use numbered placeholders (``$1``, ``$2``, ...). A connection is any
object with ``execute(query, arguments)`` returning the number of affected rows.
"""

from __future__ import annotations

from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Protocol

CHUNK_MAX = 5_000


class Connection(Protocol):
    def execute(self, query: str, arguments: list[Any]) -> int: ...


class Chunk:
    """One query together with the arguments bound into it."""

    def __init__(self, sql: str = "") -> None:
        self._parts: list[str] = [sql]
        self.arguments: list[Any] = []

    @property
    def query(self) -> str:
        return "".join(self._parts)

    @property
    def args_len(self) -> int:
        return len(self.arguments)

    def append(self, sql: str) -> None:
        self._parts.append(sql)

    def bind(self, value: Any) -> None:
        """Add an argument and write its placeholder into the query."""
        self.arguments.append(value)
        self._parts.append(f"${len(self.arguments)}")

    def execute(self, conn: Connection) -> int:
        return int(conn.execute(self.query, list(self.arguments)))


class Batch:
    """Rows of one insert statement, spread over chunks of at most CHUNK_MAX arguments."""

    def __init__(self, name: str, leading: str, trailing: str) -> None:
        self.name = name
        self.leading = leading
        self.trailing = trailing
        self._with: Callable[[Chunk], None] | None = None
        self._chunks: list[Chunk] = [Chunk(leading)]
        self._len = 0
        self._executed = False

    @classmethod
    def new_with(
        cls, name: str, leading: str, trailing: str, with_: Callable[[Chunk], None]
    ) -> Batch:
        """A batch whose every chunk is prepared by ``with_`` after the leading SQL."""
        batch = cls(name, leading, trailing)
        with_(batch._chunks[0])
        batch._with = with_
        return batch

    @property
    def chunks(self) -> tuple[Chunk, ...]:
        return tuple(self._chunks)

    def __len__(self) -> int:
        return self._len

    def reserve(self, arguments: int) -> None:
        """Count one more row and start a new chunk if it needs more room."""
        self._len += 1
        if self._chunks[-1].args_len + arguments > CHUNK_MAX:
            chunk = Chunk(self.leading)
            if self._with is not None:
                self._with(chunk)
            self._chunks.append(chunk)

    def append(self, sql: str) -> None:
        self._chunks[-1].append(sql)

    def bind(self, value: Any) -> None:
        self._chunks[-1].bind(value)

    def current_num_arguments(self) -> int:
        return self._chunks[-1].args_len

    def _finish(self) -> list[Chunk]:
        if self._executed:
            raise RuntimeError(f"batch {self.name!r} was already executed")
        self._executed = True
        if self._len == 0:
            return []
        for chunk in self._chunks:
            chunk.append(self.trailing)
        return self._chunks

    def execute(self, conn: Connection) -> int:
        """Run every chunk in turn; return the total of affected rows."""
        return sum(chunk.execute(conn) for chunk in self._finish())

    def execute_concurrent(self, pool: Connection, limit: int | None = None) -> int:
        """Run the chunks on parallel threads, at most ``limit`` at once.

        ``pool`` must be safe to use from several threads. No limit (or 0)
        runs every chunk at once.
        """
        chunks = self._finish()
        if not chunks:
            return 0
        workers = min(limit, len(chunks)) if limit else len(chunks)
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [executor.submit(chunk.execute, pool) for chunk in chunks]
            return sum(future.result() for future in futures)
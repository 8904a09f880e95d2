"""Listening for row notifications and running a task for each of them."""

from __future__ import annotations

import json
import logging
import threading
import time
from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from .errors import ArchiveError

log = logging.getLogger(__name__)

_I32_MIN = -(2**31)
_I32_MAX = 2**31 - 1
_POLL_INTERVAL = 0.05
_DRAIN_TIMEOUT = 1.0


class Table(Enum):
    BLOCKS = "blocks"
    STORAGE = "storage"


class Action(Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


def _block_num(value: Any) -> int:
    if isinstance(value, bool):
        raise ArchiveError(f"invalid block_num {value!r}")
    if isinstance(value, str):
        try:
            value = int(value)
        except ValueError:
            raise ArchiveError(f"invalid block_num {value!r}") from None
    if not isinstance(value, int) or not _I32_MIN <= value <= _I32_MAX:
        raise ArchiveError(f"invalid block_num {value!r}")
    return value


@dataclass(frozen=True)
class Notif:
    """A notification about a changed row."""

    table: Table
    action: Action
    block_num: int

    @classmethod
    def from_dict(cls, data: Any) -> Notif:
        """Build from decoded JSON; block_num may be a number or a numeric string."""
        if not isinstance(data, dict):
            raise ArchiveError("notification payload must be a JSON object")
        try:
            table = Table(data["table"])
            action = Action(data["action"])
            block_num = _block_num(data["block_num"])
        except KeyError as exc:
            raise ArchiveError(f"missing field {exc.args[0]}") from None
        except ValueError as exc:
            raise ArchiveError(str(exc)) from None
        return cls(table, action, block_num)

    @classmethod
    def from_json(cls, payload: str | bytes) -> Notif:
        try:
            data = json.loads(payload)
        except ValueError as exc:
            raise ArchiveError(str(exc)) from None
        return cls.from_dict(data)


class Channel(Enum):
    """Notification channels that can be listened on."""

    BLOCKS = "blocks"

    def channel_name(self) -> str:
        return {Channel.BLOCKS: "blocks_update"}[self]


def _name(channel: Channel | str) -> str:
    return channel.channel_name() if isinstance(channel, Channel) else channel


class NotificationSource(Protocol):
    def listen(self, channels: Iterable[Channel | str]) -> None: ...

    def get(self, timeout: float | None = None) -> str | None: ...


class MemoryNotificationSource:
    """An in-process notification channel.

    Payloads sent on channels nobody listens on are dropped. ``get`` returns
    None on timeout and raises EOFError once closed and drained.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._channels: set[str] = set()
        self._pending: deque[str] = deque()
        self._closed = False

    def listen(self, channels: Iterable[Channel | str]) -> None:
        with self._cond:
            self._channels.update(_name(c) for c in channels)

    def notify(self, channel: Channel | str, payload: str) -> bool:
        """Send a payload; return whether a listener was there to get it."""
        with self._cond:
            if self._closed or _name(channel) not in self._channels:
                return False
            self._pending.append(payload)
            self._cond.notify_all()
            return True

    def get(self, timeout: float | None = None) -> str | None:
        with self._cond:
            self._cond.wait_for(lambda: self._pending or self._closed, timeout)
            if self._pending:
                return self._pending.popleft()
            if self._closed:
                raise EOFError("notification source closed")
            return None

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()


Task = Callable[[Notif, Any], None]


class Builder:
    """Configures a listener; ``task(notif, queue_handle)`` runs for each notification."""

    def __init__(self, source: NotificationSource, queue_handle: Any, task: Task) -> None:
        self._source = source
        self._queue_handle = queue_handle
        self._task = task
        self._channels: list[Channel] = []

    def listen_on(self, channel: Channel) -> Builder:
        self._channels.append(channel)
        return self

    def _handle(self, payload: str) -> None:
        self._task(Notif.from_json(payload), self._queue_handle)

    def spawn(self) -> Listener:
        """Start listening and work on notifications on a background thread."""
        # Subscribe before the thread starts so that no notification is missed.
        self._source.listen(self._channels)
        listener = Listener(self)
        listener._start()
        return listener


class Listener:
    """A running listener; kill it (or leave its with-block) to stop it."""

    def __init__(self, builder: Builder) -> None:
        self._builder = builder
        self._stop = threading.Event()
        self._error: BaseException | None = None
        self._thread: threading.Thread | None = None

    @staticmethod
    def builder(source: NotificationSource, queue_handle: Any, task: Task) -> Builder:
        return Builder(source, queue_handle, task)

    def _start(self) -> None:
        self._thread = threading.Thread(target=self._run, name="chainvault-listener", daemon=True)
        self._thread.start()

    def _run(self) -> None:
        source = self._builder._source
        try:
            while not self._stop.is_set():
                try:
                    payload = source.get(timeout=_POLL_INTERVAL)
                except EOFError:
                    break
                if payload is not None:
                    self._builder._handle(payload)
            self._drain(source)
        except Exception as exc:  # handed to whoever kills the listener
            self._error = exc

    def _drain(self, source: NotificationSource) -> None:
        deadline = time.monotonic() + _DRAIN_TIMEOUT
        while True:
            if time.monotonic() >= deadline:
                log.warning("clean-up notification collection timed out")
                return
            try:
                payload = source.get(timeout=0)
            except EOFError:
                return
            if payload is None:
                return
            self._builder._handle(payload)

    def kill(self) -> None:
        """Stop the listener and raise any error its task met."""
        self._stop.set()
        thread, self._thread = self._thread, None
        if thread is None:
            return
        thread.join()
        error, self._error = self._error, None
        if error is not None:
            raise error

    def __enter__(self) -> Listener:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            self.kill()
        except Exception as error:
            log.error("failed to terminate listener %s", error)
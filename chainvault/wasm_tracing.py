"""Collection of spans and events emitted while a block executes.

A :class:`TraceHandler` gathers spans and events whose target matches one of
its configured targets. Code under trace reports through :func:`span` and
:func:`event`, which talk to the handler installed by
:meth:`TraceHandler.scoped_trace`.
"""

from __future__ import annotations

import itertools
import logging
import threading
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import IntEnum
from typing import Any, TypeVar, Union

from .errors import ArchiveError, TraceTypeError

log = logging.getLogger(__name__)

WASM_TRACE_IDENTIFIER = "wasm_tracing"
WASM_NAME_KEY = "name"
WASM_TARGET_KEY = "target"

_U32_MAX = 2**32 - 1

Value = Union[bool, int, str]
T = TypeVar("T")


class Level(IntEnum):
    """Verbosity of a span or event; more verbose levels compare greater."""

    ERROR = 1
    WARN = 2
    INFO = 3
    DEBUG = 4
    TRACE = 5

    @classmethod
    def parse(cls, text: str) -> Level:
        """Parse a level name (any case) or a number from 1 (ERROR) to 5 (TRACE)."""
        if text.isascii() and text.isdigit():
            number = int(text)
            if 1 <= number <= 5:
                return cls(number)
            raise ValueError(f"invalid level number {text!r}")
        try:
            return cls[text.upper()]
        except KeyError:
            raise ValueError(f"invalid level {text!r}") from None

    def __str__(self) -> str:
        return self.name


def _to_text(value: Value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _line_number(value: Value | None) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise TraceTypeError()
    if value > _U32_MAX:
        raise ArchiveError(f"line number {value} does not fit in 32 bits")
    return value


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TraceData:
    """Field values recorded on a span or event."""

    values: dict[str, Value] = field(default_factory=dict)

    def record(self, name: str, value: Any) -> None:
        """Record one field; values other than bool, int and str are stored as their repr."""
        if isinstance(value, (bool, int, str)):
            self.values[name] = value
        else:
            self.values[name] = repr(value)

    def update(self, values: Mapping[str, Any]) -> None:
        for name, value in values.items():
            self.record(name, value)

    def get(self, name: str, default: Value | None = None) -> Value | None:
        return self.values.get(name, default)

    def pop(self, name: str, default: Value | None = None) -> Value | None:
        return self.values.pop(name, default)

    def __getitem__(self, name: str) -> Value:
        return self.values[name]

    def __contains__(self, name: object) -> bool:
        return name in self.values

    def __len__(self) -> int:
        return len(self.values)


@dataclass
class EventMessage:
    """An event collected during tracing."""

    name: str
    target: str
    level: Level
    values: TraceData
    parent_id: int | None
    time: datetime
    file: str | None = None
    line: int | None = None


@dataclass
class SpanMessage:
    """A span collected during tracing."""

    id: int
    parent_id: int | None
    name: str
    target: str
    level: Level
    values: TraceData
    start_time: datetime
    overall_time: timedelta = timedelta(0)
    file: str | None = None
    line: int | None = None


@dataclass
class Traces:
    """Finished traces of one block, ready to be stored."""

    block_num: int = 0
    hash: bytes = b""
    events: list[EventMessage] = field(default_factory=list)
    spans: list[SpanMessage] = field(default_factory=list)


@dataclass
class SpansAndEvents:
    """Spans and events gathered so far, shared under a lock."""

    spans: list[SpanMessage] = field(default_factory=list)
    events: list[EventMessage] = field(default_factory=list)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)


_HANDLER: ContextVar[TraceHandler | None] = ContextVar("chainvault_trace_handler", default=None)
_SPAN_STACK: ContextVar[tuple[int, ...]] = ContextVar("chainvault_span_stack", default=())


def parse_target(s: str) -> tuple[str, Level]:
    """Split ``target=level``; the level defaults to TRACE when absent or invalid."""
    target, sep, level_text = s.partition("=")
    if not sep:
        return s, Level.TRACE
    try:
        return target, Level.parse(level_text)
    except ValueError:
        return target, Level.TRACE


class TraceHandler:
    """Collects spans and events whose targets match the configured ones."""

    def __init__(self, targets: str, span_events: SpansAndEvents | None = None) -> None:
        self.span_events = span_events if span_events is not None else SpansAndEvents()
        self.targets: list[tuple[str, Level]] = [parse_target(t) for t in targets.split(",")]
        self.targets.append((WASM_TRACE_IDENTIFIER, Level.TRACE))
        self._ids = itertools.count(1)

    def enabled(self, target: str) -> bool:
        """Whether anything with this target is traced at all."""
        return any(target.startswith(wanted) for wanted, _ in self.targets)

    def is_enabled(self, span: SpanMessage) -> bool:
        """Whether a span is kept, checking the wasm target as well as the native one."""
        wasm_value = span.values.get(WASM_TARGET_KEY)
        wasm_target = _to_text(wasm_value) if wasm_value is not None else None
        for wanted, level in self.targets:
            if wanted == WASM_TRACE_IDENTIFIER:
                continue
            native = span.target.startswith(wanted)
            wasm = wasm_target is not None and wasm_target.startswith(wanted)
            if (native or wasm) and span.level <= level:
                return True
        return False

    @staticmethod
    def _current_parent() -> int | None:
        stack = _SPAN_STACK.get()
        return stack[-1] if stack else None

    def _gather_span(self, span: SpanMessage) -> None:
        if span.name == WASM_TRACE_IDENTIFIER:
            name = span.values.pop(WASM_NAME_KEY)
            if name is not None:
                span.name = _to_text(name)
            target = span.values.pop(WASM_TARGET_KEY)
            if target is not None:
                span.target = _to_text(target)
            file = span.values.pop("file")
            span.file = _to_text(file) if file is not None else None
            span.line = _line_number(span.values.pop("line"))
        with self.span_events.lock:
            self.span_events.spans.append(span)

    def _gather_event(
        self,
        name: str,
        target: str,
        level: Level,
        values: Mapping[str, Any] | None,
        parent_id: int | None,
        time: datetime,
    ) -> None:
        data = TraceData()
        data.update(values or {})
        if parent_id is None:
            parent_id = self._current_parent()
        wasm_name = data.pop(WASM_NAME_KEY)
        wasm_target = data.pop(WASM_TARGET_KEY)
        file = data.pop("file")
        line = _line_number(data.pop("line"))
        message = EventMessage(
            name=_to_text(wasm_name) if wasm_name is not None else name,
            target=_to_text(wasm_target) if wasm_target is not None else target,
            level=level,
            values=data,
            parent_id=parent_id,
            time=time,
            file=_to_text(file) if file is not None else None,
            line=line,
        )
        with self.span_events.lock:
            self.span_events.events.append(message)

    def new_span(
        self,
        name: str,
        target: str,
        level: Level,
        values: Mapping[str, Any] | None = None,
        parent_id: int | None = None,
    ) -> int:
        """Open a span and return its id; the span is kept only if enabled."""
        span_id = next(self._ids)
        data = TraceData()
        data.update(values or {})
        message = SpanMessage(
            id=span_id,
            parent_id=parent_id if parent_id is not None else self._current_parent(),
            name=name,
            target=target,
            level=level,
            values=data,
            start_time=_now(),
        )
        if self.is_enabled(message):
            try:
                self._gather_span(message)
            except ArchiveError as exc:
                log.error("%s", exc)
        return span_id

    def on_record(self, span_id: int, values: Mapping[str, Any]) -> None:
        """Record more fields on a span that was kept."""
        with self.span_events.lock:
            for span in self.span_events.spans:
                if span.id == span_id:
                    span.values.update(values)
                    break

    def on_event(
        self,
        name: str,
        target: str,
        level: Level,
        values: Mapping[str, Any] | None = None,
        parent_id: int | None = None,
    ) -> None:
        """Collect an event; malformed events are logged and dropped."""
        time = _now()
        try:
            self._gather_event(name, target, level, values, parent_id, time)
        except ArchiveError as exc:
            log.error("%s", exc)

    def on_close(self, span_id: int) -> None:
        """Record how long a kept span was open."""
        end_time = _now()
        with self.span_events.lock:
            for span in self.span_events.spans:
                if span.id == span_id:
                    span.overall_time = end_time - span.start_time
                    break

    def scoped_trace(
        self, fun: Callable[[], T]
    ) -> tuple[list[SpanMessage], list[EventMessage], T]:
        """Run ``fun`` with this handler installed; return the spans, events and result."""
        handler_token = _HANDLER.set(self)
        stack_token = _SPAN_STACK.set(())
        try:
            result = fun()
        finally:
            _SPAN_STACK.reset(stack_token)
            _HANDLER.reset(handler_token)
        with self.span_events.lock:
            spans = list(self.span_events.spans)
            events = list(self.span_events.events)
            self.span_events.spans.clear()
            self.span_events.events.clear()
        return spans, events, result


def current_handler() -> TraceHandler | None:
    """The handler installed by the innermost running scoped_trace, if any."""
    return _HANDLER.get()


@contextmanager
def span(name: str, target: str, level: Level, /, **kwargs: Any) -> Iterator[int | None]:
    """Open a span for the duration of the block; yields its id, or None if not traced."""
    handler = _HANDLER.get()
    if handler is None or not handler.enabled(target):
        yield None
        return
    span_id = handler.new_span(name, target, level, kwargs)
    token = _SPAN_STACK.set(_SPAN_STACK.get() + (span_id,))
    try:
        yield span_id
    finally:
        _SPAN_STACK.reset(token)
        handler.on_close(span_id)


def event(name: str, target: str, level: Level, /, **kwargs: Any) -> None:
    """Emit an event to the current handler, if its target is traced."""
    handler = _HANDLER.get()
    if handler is None or not handler.enabled(target):
        return
    handler.on_event(name, target, level, kwargs)
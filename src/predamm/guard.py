"""Per-instance reentrancy guard with all-or-nothing call frames.

Each @nonreentrant call opens a frame. While a frame is open, the first write to
a journaled attribute (named in _journal_fields) or to a key of a JournalDict, and
the first append to a JournalList, records the prior value in the frame's undo
log. If the call raises, the frame's log is replayed in reverse and its events
dropped. A successful frame hands its undo log and events to the parent frame;
events are published when the outermost call returns.

Cost is proportional to what a call touches, not to the size of the state.
"""

from __future__ import annotations

import functools
from contextvars import ContextVar
from typing import TYPE_CHECKING, Any, Callable, Iterable, TypeVar

from predamm.errors import ReentrancyError

if TYPE_CHECKING:
    from predamm.events import EventSink
    from predamm.models.events import VenueEvent

F = TypeVar("F", bound=Callable[..., Any])

_MISSING = object()


class _Frame:
    __slots__ = ("undo", "touched", "events")

    def __init__(self) -> None:
        self.undo: list[tuple[Callable[..., None], tuple[Any, ...]]] = []
        self.touched: set[tuple[int, Any]] = set()
        self.events: list[tuple[EventSink, VenueEvent]] = []

    def note(self, target: object, key: Any, undo: Callable[..., None], *args: Any) -> None:
        mark = (id(target), key)
        if mark in self.touched:
            return
        self.touched.add(mark)
        self.undo.append((undo, args))

    def rollback(self) -> None:
        for undo, args in reversed(self.undo):
            undo(*args)


_frames: ContextVar[tuple[_Frame, ...]] = ContextVar("predamm_frames", default=())


def _current() -> _Frame | None:
    frames = _frames.get()
    return frames[-1] if frames else None


def _undo_attr(obj: object, name: str, old: Any) -> None:
    if old is _MISSING:
        object.__delattr__(obj, name)
    else:
        object.__setattr__(obj, name, old)


def _undo_key(mapping: dict, key: Any, old: Any) -> None:
    if old is _MISSING:
        dict.pop(mapping, key, None)
    else:
        dict.__setitem__(mapping, key, old)


def _undo_append(seq: list, length: int) -> None:
    del seq[length:]


class JournalDict(dict):
    """dict whose writes inside a guarded call are undone when the call fails."""

    __slots__ = ()

    def _note(self, key: Any) -> None:
        frame = _current()
        if frame is not None:
            frame.note(self, key, _undo_key, self, key, dict.get(self, key, _MISSING))

    def __setitem__(self, key: Any, value: Any) -> None:
        self._note(key)
        dict.__setitem__(self, key, value)

    def __delitem__(self, key: Any) -> None:
        self._note(key)
        dict.__delitem__(self, key)

    def pop(self, key: Any, *default: Any) -> Any:
        self._note(key)
        return dict.pop(self, key, *default)

    def setdefault(self, key: Any, default: Any = None) -> Any:
        self._note(key)
        return dict.setdefault(self, key, default)

    def update(self, *args: Any, **kwargs: Any) -> None:
        for key, value in dict(*args, **kwargs).items():
            self[key] = value

    def popitem(self) -> tuple[Any, Any]:
        key = next(reversed(self))
        return key, self.pop(key)

    def clear(self) -> None:
        for key in list(self):
            self._note(key)
        dict.clear(self)


class JournalList(list):
    """Append-only list whose appends inside a guarded call are undone when the call fails."""

    __slots__ = ()

    def _note(self) -> None:
        frame = _current()
        if frame is not None:
            # One mark per frame: truncating to the first length seen undoes every later append
            frame.note(self, None, _undo_append, self, len(self))

    def append(self, item: Any) -> None:
        self._note()
        list.append(self, item)

    def extend(self, items: Iterable[Any]) -> None:
        self._note()
        list.extend(self, items)


class Guarded:
    """Base for stateful components.

    Attributes named in _journal_fields are journaled on reassignment; mutable
    state kept under them must be JournalDict/JournalList or immutable values.
    """

    _journal_fields: tuple[str, ...] = ()
    _entered: bool = False

    def __setattr__(self, name: str, value: Any) -> None:
        if name in self._journal_fields:
            frame = _current()
            if frame is not None:
                frame.note(self, name, _undo_attr, self, name, getattr(self, name, _MISSING))
        object.__setattr__(self, name, value)

    def _publish(self, sink: EventSink | None, event: VenueEvent) -> None:
        if sink is None:
            return
        frame = _current()
        if frame is not None:
            frame.events.append((sink, event))
        else:
            sink.emit(event)


def in_call() -> bool:
    """True while any guarded call is executing."""
    return bool(_frames.get())


def nonreentrant(method: F) -> F:
    """Reject nested entry into the same instance; roll back everything written on failure."""

    @functools.wraps(method)
    def wrapper(self: Guarded, *args: Any, **kwargs: Any) -> Any:
        if self._entered:
            raise ReentrancyError(
                f"re-entrant call to {type(self).__name__}.{method.__name__}",
                component=type(self).__name__,
            )
        outer = _frames.get()
        frame = _Frame()
        token = _frames.set(outer + (frame,))
        self._entered = True
        try:
            result = method(self, *args, **kwargs)
        except BaseException:
            frame.rollback()
            raise
        finally:
            self._entered = False
            _frames.reset(token)
        if outer:
            outer[-1].undo.extend(frame.undo)
            outer[-1].events.extend(frame.events)
        else:
            for sink, event in frame.events:
                sink.emit(event)
        return result

    return wrapper  # type: ignore[return-value]

"""
Progress reporting for long-running reconstruction steps.

Builders and scanners only ever see a plain callback (``(loaded, total)`` or
``(percent, message)``). A ``ProgressBus`` turns those calls into
``ProgressEvent`` objects and fans them out to observers, so the CLI, a
viewer or a test can each render or react to progress in its own way.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Optional, Protocol, Tuple, Union
import sys
import time


@dataclass(frozen=True)
class ProgressEvent:
    """One progress update. ``loaded``/``total`` are set for counted work."""

    percent: int
    message: str
    stage: Optional[str] = None
    loaded: Optional[int] = None
    total: Optional[int] = None
    timestamp: float = field(default_factory=time.time)


class ProgressObserver(Protocol):
    def on_progress(self, event: ProgressEvent) -> None:
        ...


Observer = Union[Callable[[ProgressEvent], None], ProgressObserver]


def _clamp_percent(value) -> int:
    return max(0, min(100, int(value)))


class ProgressBus:
    """
    Fan-out of progress events to subscribed observers.

    Observers are either plain callables or objects with ``on_progress``.
    Exceptions raised by an observer propagate to the code reporting
    progress; ``CancelFlagObserver`` relies on this to abort a build.
    """

    def __init__(self) -> None:
        self._observers: List[Tuple[Observer, Callable[[ProgressEvent], None]]] = []

    def subscribe(self, observer: Observer) -> "ProgressBus":
        handler = getattr(observer, "on_progress", observer)
        self._observers.append((observer, handler))
        return self

    def unsubscribe(self, observer: Observer) -> "ProgressBus":
        self._observers = [(o, h) for o, h in self._observers if o != observer]
        return self

    def emit(self, event: ProgressEvent) -> None:
        for _, handler in list(self._observers):
            handler(event)

    def stage_callback(self, stage: str) -> Callable[[int, str], None]:
        """Callback taking (percent, message), as used by ``DicomFolderSource.scan``."""
        def callback(percent: int, message: str) -> None:
            self.emit(ProgressEvent(percent=_clamp_percent(percent), message=message, stage=stage))

        return callback

    def counter_callback(self, stage: str, noun: str = "slice") -> Callable[[int, int], None]:
        """Callback taking (loaded, total), as used by ``VolumeBuilder.build``."""
        def callback(loaded: int, total: int) -> None:
            percent = 100 * loaded / total if total > 0 else 100
            self.emit(ProgressEvent(
                percent=_clamp_percent(percent),
                message=f"Loaded {noun} {loaded}/{total}",
                stage=stage,
                loaded=loaded,
                total=total,
            ))

        return callback


class CancelFlagObserver:
    """
    Raises InterruptedError once ``is_cancelled()`` returns True.

    The error surfaces from the progress callback, so a build stops between
    slices and its partial volume is never returned.
    """

    def __init__(self, is_cancelled: Callable[[], bool], message: str = "Operation cancelled by user.") -> None:
        self._is_cancelled = is_cancelled
        self._message = message

    def on_progress(self, _event: ProgressEvent) -> None:
        if self._is_cancelled():
            raise InterruptedError(self._message)


class TerminalProgressObserver:
    """Single-line text progress bar for the CLI."""

    def __init__(self, bar_width: int = 30, stream=None) -> None:
        self.bar_width = bar_width
        self.stream = stream or sys.stdout

    def on_progress(self, event: ProgressEvent) -> None:
        filled = self.bar_width * event.percent // 100
        bar = "#" * filled + "." * (self.bar_width - filled)
        line = f"\r  [{event.stage or 'task'}] [{bar}] {event.percent:3d}%  {event.message:<48}"
        self.stream.write(line + ("\n" if event.percent >= 100 else ""))
        self.stream.flush()


__all__ = [
    "ProgressEvent",
    "ProgressObserver",
    "ProgressBus",
    "CancelFlagObserver",
    "TerminalProgressObserver",
]

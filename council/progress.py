"""Append-only progress log with a monotonic completion percentage."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger("council.progress")


@dataclass(frozen=True)
class ProgressEvent:
    """One observable change: a new log line, a new percentage, or a clear."""

    kind: str  # "log" | "progress" | "clear"
    percent: float
    message: Optional[str] = None


Observer = Callable[[ProgressEvent], None]


class ProgressLog:
    """Ordered, human-readable run log plus a percentage that never goes down.

    Safe to poll from any thread. Observers are called synchronously on the
    writer's thread, in registration order; an observer that raises is logged
    and skipped so it can't break the run.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: list[str] = []
        self._percent = 0.0
        self._observers: list[Observer] = []

    # -- reading ---------------------------------------------------------

    @property
    def entries(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    @property
    def percent(self) -> float:
        with self._lock:
            return self._percent

    def snapshot(self) -> tuple[list[str], float]:
        with self._lock:
            return list(self._entries), self._percent

    # -- writing ---------------------------------------------------------

    def append(self, message: str):
        with self._lock:
            self._entries.append(message)
            percent = self._percent
        logger.info(message)
        self._notify(ProgressEvent("log", percent, message))

    def advance(self, percent: float):
        """Move the percentage forward. Moving backwards is a caller bug."""
        percent = min(100.0, float(percent))
        with self._lock:
            if percent < self._percent:
                raise ValueError(
                    f"Progress cannot decrease within a run ({self._percent:.2f} -> {percent:.2f})"
                )
            if percent == self._percent:
                return
            self._percent = percent
        self._notify(ProgressEvent("progress", percent))

    def clear(self):
        with self._lock:
            self._entries.clear()
            self._percent = 0.0
        self._notify(ProgressEvent("clear", 0.0))

    # -- observers -------------------------------------------------------

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register an observer; returns a function that unsubscribes it."""
        with self._lock:
            self._observers.append(observer)

        def _unsubscribe():
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return _unsubscribe

    def _notify(self, event: ProgressEvent):
        with self._lock:
            observers = list(self._observers)
        for observer in observers:
            try:
                observer(event)
            except Exception:
                logger.exception("Progress observer failed")

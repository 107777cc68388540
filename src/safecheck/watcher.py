"""Filesystem watcher that reports new ``.eml`` files dropped into a directory."""

from __future__ import annotations

import logging
import os
import threading
import time
from collections.abc import Callable
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler, FileSystemMovedEvent
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from .mailsource import MESSAGE_SUFFIX

LOGGER = logging.getLogger(__name__)


class MailDropWatcher:
    """Watch a directory and invoke callbacks for each new message file."""

    def __init__(
        self,
        directory: Path,
        *,
        debounce_seconds: float = 0.2,
        observer_factory: Callable[[], BaseObserver] | None = None,
    ) -> None:
        self._directory = Path(directory).expanduser()
        self._observer_factory = observer_factory or Observer
        self._observer: BaseObserver | None = None
        self._callbacks: list[Callable[[Path], None]] = []
        self._debounce = max(0.0, debounce_seconds)
        self._lock = threading.Lock()

    @property
    def directory(self) -> Path:
        return self._directory

    def on_new_mail(self, callback: Callable[[Path], None]) -> None:
        self._callbacks.append(callback)

    def start(self) -> None:
        with self._lock:
            if self._observer is not None:
                return
            self._directory.mkdir(parents=True, exist_ok=True)
            observer = self._observer_factory()
            handler = _MailDropEventHandler(
                callback=self._emit_new_mail,
                debounce_seconds=self._debounce,
            )
            observer.schedule(handler, str(self._directory), recursive=False)
            observer.start()
            self._observer = observer
            LOGGER.info("Watching %s for new messages", self._directory)

    def stop(self) -> None:
        """Stop watching and wait for the observer thread to finish."""

        with self._lock:
            observer = self._observer
            if observer is None:
                return
            observer.stop()
            try:
                observer.join(timeout=5)
            except RuntimeError:  # pragma: no cover - watchdog internals
                LOGGER.warning("Failed to join mail drop observer thread")
            self._observer = None

    @property
    def is_running(self) -> bool:
        return self._observer is not None

    def _emit_new_mail(self, path: Path) -> None:
        for callback in list(self._callbacks):
            try:
                callback(path)
            except Exception:
                LOGGER.exception("New mail callback failed for path %s", path)


class _MailDropEventHandler(FileSystemEventHandler):
    def __init__(self, *, callback: Callable[[Path], None], debounce_seconds: float) -> None:
        super().__init__()
        self._callback = callback
        self._debounce_seconds = debounce_seconds
        self._recent: dict[Path, float] = {}
        self._recent_lock = threading.Lock()

    def on_created(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._handle_path(_event_path(event.src_path))

    def on_moved(self, event: FileSystemMovedEvent) -> None:
        if event.is_directory:
            return
        self._handle_path(_event_path(event.dest_path))

    def _handle_path(self, path: Path) -> None:
        if path.suffix.lower() != MESSAGE_SUFFIX or path.name.startswith("."):
            return
        resolved = path.resolve()
        if self._should_emit(resolved):
            self._callback(resolved)

    def _should_emit(self, path: Path) -> bool:
        if self._debounce_seconds <= 0:
            return True
        now = time.monotonic()
        with self._recent_lock:
            last = self._recent.get(path)
            if last is not None and now - last < self._debounce_seconds:
                return False
            self._recent[path] = now
            self._forget_before(now - max(self._debounce_seconds * 4, 1.0))
            return True

    def _forget_before(self, cutoff: float) -> None:
        """Drop drop-directory paths last seen before ``cutoff``."""

        for stale in [key for key, seen in self._recent.items() if seen < cutoff]:
            del self._recent[stale]


def _event_path(value: str | bytes) -> Path:
    if isinstance(value, bytes):
        return Path(os.fsdecode(value))
    return Path(value)


__all__ = ["MailDropWatcher"]

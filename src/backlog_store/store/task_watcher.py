"""File system watcher for the backlog folder."""

import logging
import threading
from collections.abc import Callable
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from backlog_store.config import CONFIG_FILENAMES

logger = logging.getLogger(__name__)


class BacklogWatcher:
    """Watches the backlog folder and fires one callback per burst of changes."""

    def __init__(self, backlog_path: Path, debounce_seconds: float = 0.3):
        """Initialize watcher.

        Args:
            backlog_path: Path to the backlog folder (watched recursively)
            debounce_seconds: Quiet period before the callback runs
        """
        self.backlog_path = backlog_path
        self.debounce_seconds = debounce_seconds
        self._observer: BaseObserver | None = None
        self._callback: Callable[[], None] | None = None
        self._handler: _BacklogEventHandler | None = None

    def set_callback(self, callback: Callable[[], None]) -> None:
        """Set the function called after changes settle."""
        self._callback = callback

    def start(self) -> None:
        """Start watching in the observer's background thread."""
        self._handler = _BacklogEventHandler(self.debounce_seconds, self._callback)
        self._observer = Observer()
        self._observer.schedule(self._handler, str(self.backlog_path), recursive=True)
        logger.info(f"[BacklogWatcher] Watching {self.backlog_path}")
        self._observer.start()

    def stop(self) -> None:
        """Stop watching and cancel any pending callback."""
        if self._handler:
            self._handler.cancel()
        if self._observer:
            logger.info(f"[BacklogWatcher] Stopping watcher for {self.backlog_path}")
            self._observer.stop()
            self._observer.join()
            self._observer = None


class _BacklogEventHandler(FileSystemEventHandler):
    """Collapses bursts of task and config file events into one callback."""

    def __init__(self, debounce_seconds: float, callback: Callable[[], None] | None):
        self.debounce_seconds = debounce_seconds
        self.callback = callback
        self._timer: threading.Timer | None = None
        self._lock = threading.Lock()

    @staticmethod
    def is_relevant(file_path: str) -> bool:
        """Task markdown files and the backlog config trigger reloads."""
        path = Path(file_path)
        return path.suffix == ".md" or path.name in CONFIG_FILENAMES

    def _handle_event(self, event_type: str, event: FileSystemEvent) -> None:
        if event.is_directory:
            return

        paths = [event.src_path, getattr(event, "dest_path", "")]
        # Convert bytes to str if needed
        paths = [p.decode("utf-8") if isinstance(p, bytes) else p for p in paths if p]
        if not any(self.is_relevant(p) for p in paths):
            return

        logger.debug(f"[BacklogEventHandler] {event_type}: {paths[0]}")
        self.schedule()

    def schedule(self) -> None:
        """(Re)start the debounce timer."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.debounce_seconds, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _fire(self) -> None:
        with self._lock:
            self._timer = None
        if self.callback:
            try:
                self.callback()
            except Exception as e:
                logger.error(f"[BacklogEventHandler] Callback error: {e}", exc_info=True)

    def on_modified(self, event: FileSystemEvent) -> None:
        """Handle file modification events."""
        self._handle_event("modified", event)

    def on_created(self, event: FileSystemEvent) -> None:
        """Handle file creation events."""
        self._handle_event("created", event)

    def on_deleted(self, event: FileSystemEvent) -> None:
        """Handle file deletion events."""
        self._handle_event("deleted", event)

    def on_moved(self, event: FileSystemEvent) -> None:
        """Handle file move/rename events."""
        self._handle_event("moved", event)

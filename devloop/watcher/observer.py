import os
import glob
import queue
import logging
import threading
from pathlib import Path
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence

from watchdog.observers import Observer

from devloop.local.config import effective_settings as config
from devloop.local.exceptions import WatchSetupError
from devloop.watcher.handler import WatchSetChangeHandler

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Trigger:
    """Something in the watch set changed. `seq` only numbers triggers for logging."""
    seq: int


def absolute_pattern(pattern: str, base_dir: Path) -> str:
    """Anchors a relative glob at base_dir."""
    if os.path.isabs(pattern):
        return os.path.abspath(pattern)
    return os.path.abspath(os.path.join(str(base_dir), pattern))


def resolve_watch_set(pattern: str, base_dir: Path) -> List[str]:
    """
    Expands the watch glob into the list of paths to monitor, like `ls src/*`.

    :param pattern: A glob, relative to base_dir unless absolute.
    :param base_dir: Directory the glob is anchored at.
    :return: Sorted absolute paths.
    :raises WatchSetupError: If nothing matches or a path is not readable.
    """
    full_pattern = absolute_pattern(pattern, base_dir)
    paths = sorted(glob.glob(full_pattern))
    if not paths:
        raise WatchSetupError(full_pattern, "no such file or directory")

    for path in paths:
        if not os.access(path, os.R_OK):
            raise WatchSetupError(path, "permission denied")
    return paths


class FileWatcher:
    """
    Owns a watchdog Observer for the watch set and turns its events into triggers.

    Events are coalesced: at most one trigger is pending at any time, and a
    burst of events inside the debounce window collapses into one trigger.
    An event that arrives after a trigger has been handed out always produces
    a new trigger, so no change is lost entirely.
    """

    def __init__(self, paths: Sequence[str], pattern: Optional[str] = None,
                 debounce_seconds: Optional[float] = None) -> None:
        if not paths:
            raise WatchSetupError(pattern or "", "watch set is empty")
        self.paths = [os.path.abspath(p) for p in paths]
        self.pattern = pattern
        self.debounce_seconds = config.DEBOUNCE_SECONDS if debounce_seconds is None else debounce_seconds

        self._pending: "queue.Queue[str]" = queue.Queue(maxsize=1)
        self._stop_event = threading.Event()
        self._observer: Optional[Observer] = None
        self._seq = 0

    @classmethod
    def from_glob(cls, pattern: str, base_dir: Path, debounce_seconds: Optional[float] = None) -> "FileWatcher":
        """Resolves the glob and builds a watcher for the result."""
        paths = resolve_watch_set(pattern, base_dir)
        log.info(f"Watching {len(paths)} path(s) matching '{pattern}' in {base_dir}")
        return cls(paths, pattern=absolute_pattern(pattern, base_dir), debounce_seconds=debounce_seconds)

    #* --- Observer lifecycle ---
    def _watched_dirs(self) -> List[str]:
        """Every distinct parent directory, so creations and deletions are seen too."""
        return sorted({os.path.dirname(p) for p in self.paths})

    def _build_observer(self) -> Observer:
        observer = Observer()
        handler = WatchSetChangeHandler(self.paths, self._on_change, pattern=self.pattern)
        for directory in self._watched_dirs():
            observer.schedule(handler, directory, recursive=False)
        return observer

    def start(self) -> None:
        """
        Starts the observer thread.

        :raises WatchSetupError: If a directory of the watch set cannot be monitored.
        """
        for path in self.paths:
            if not os.path.exists(path):
                raise WatchSetupError(path, "no such file or directory")

        self._stop_event.clear()
        try:
            observer = self._build_observer()
            observer.start()
        except OSError as e:
            raise WatchSetupError(", ".join(self._watched_dirs()), str(e)) from e
        self._observer = observer
        log.debug(f"Observer started for {self._watched_dirs()}")

    def stop(self) -> None:
        """Stops and joins the observer thread."""
        self._stop_event.set()
        if self._observer is None:
            return
        self._observer.stop()
        if self._observer.is_alive():
            self._observer.join(timeout=5)
        self._observer = None
        log.debug("Observer stopped.")

    def _ensure_observer_alive(self) -> None:
        """Restarts the observer if its thread died unexpectedly."""
        if self._observer is None or self._stop_event.is_set() or self._observer.is_alive():
            return
        log.error("Watchdog observer thread has stopped unexpectedly. Restarting observer.")
        self._observer.stop()
        self._observer = self._build_observer()
        self._observer.start()
        log.info("Observer restarted.")
        # Changes may have been missed while it was down.
        self._on_change(self._watched_dirs()[0])

    #* --- Triggers ---
    def _on_change(self, path_str: str) -> None:
        """Called from the observer thread for every relevant event."""
        try:
            self._pending.put_nowait(path_str)
        except queue.Full:
            # A trigger is already pending; this change is covered by it.
            pass

    def _drain(self) -> None:
        while True:
            try:
                self._pending.get_nowait()
            except queue.Empty:
                return

    def wait(self, timeout: Optional[float] = None) -> Optional[Trigger]:
        """
        Blocks until the watch set changes.

        :param timeout: Seconds to wait; None waits indefinitely.
        :return: A Trigger, or None if the timeout expired or the watcher was stopped.
        """
        self._ensure_observer_alive()
        try:
            path_str = self._pending.get(timeout=timeout)
        except queue.Empty:
            return None

        # Let the rest of the burst (editor temp files, rename-on-save) land.
        if self.debounce_seconds > 0 and self._stop_event.wait(self.debounce_seconds):
            return None
        self._drain()

        self._seq += 1
        log.info(f"Change detected in {path_str} (trigger #{self._seq}).")
        return Trigger(seq=self._seq)

    def triggers(self, poll_interval: float = 1.0) -> Iterator[Trigger]:
        """Yields a trigger per detected change until the watcher is stopped."""
        while not self._stop_event.is_set():
            trigger = self.wait(timeout=poll_interval)
            if trigger is not None:
                yield trigger

    def __iter__(self) -> Iterator[Trigger]:
        return self.triggers()

    def __enter__(self) -> "FileWatcher":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

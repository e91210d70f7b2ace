import os
import logging
from fnmatch import fnmatch
from typing import Callable, Iterable, Optional, Set

from watchdog.events import (EVENT_TYPE_CREATED, EVENT_TYPE_DELETED,
                             EVENT_TYPE_MODIFIED, EVENT_TYPE_MOVED,
                             FileSystemEvent, FileSystemEventHandler)

log = logging.getLogger(__name__)

# Open/close/access events carry no change.
RELEVANT_EVENT_TYPES = {EVENT_TYPE_MODIFIED, EVENT_TYPE_CREATED, EVENT_TYPE_DELETED, EVENT_TYPE_MOVED}


def _to_str(path) -> str:
    if isinstance(path, bytes):
        path = os.fsdecode(path)
    return os.path.abspath(path)


class WatchSetChangeHandler(FileSystemEventHandler):
    """A watchdog event handler that reports changes to paths of the watch set."""

    def __init__(self, paths: Iterable[str], on_change: Callable[[str], None], pattern: Optional[str] = None):
        """
        :param paths: The resolved watch set.
        :param on_change: Called with the changed path, from the observer thread.
        :param pattern: Absolute glob; files created later that match it also count.
        """
        super().__init__()
        self.paths: Set[str] = {_to_str(p) for p in paths}
        self.pattern = pattern
        self.on_change = on_change

    def is_watched(self, path_str: str) -> bool:
        """Checks if a path belongs to the watch set or matches its glob."""
        if path_str in self.paths:
            return True
        return bool(self.pattern) and fnmatch(path_str, self.pattern)

    def on_any_event(self, event: FileSystemEvent) -> None:
        """The main event handler method for watchdog, called on any file change."""
        if event.event_type not in RELEVANT_EVENT_TYPES:
            return

        candidates = [_to_str(event.src_path)]
        dest_path = getattr(event, "dest_path", None)
        if dest_path:
            candidates.append(_to_str(dest_path))

        for path_str in candidates:
            if self.is_watched(path_str):
                log.debug(f"Watchdog event: {event.event_type} on {path_str}")
                self.on_change(path_str)
                return

"""
The watcher package.
Turns filesystem events for the watch set into restart triggers.
"""
from .handler import WatchSetChangeHandler
from .observer import FileWatcher, Trigger, resolve_watch_set

__all__ = ['FileWatcher', 'Trigger', 'WatchSetChangeHandler', 'resolve_watch_set']

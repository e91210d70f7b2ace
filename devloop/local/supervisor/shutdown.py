import time
import psutil
import logging
import subprocess
from typing import TYPE_CHECKING, List, Optional

from devloop.local.config import effective_settings as config
from devloop.local.exceptions import ChildTerminationError

if TYPE_CHECKING:
    from .process_utils import ChildHandle

log = logging.getLogger(__name__)

WAIT_POLL_INTERVAL = 0.1


def identify_processes_to_stop(handle: "ChildHandle") -> List[psutil.Process]:
    """
    Collects the child and all of its descendants.

    Must run before anything is signalled: once the parent is gone its
    children are reparented and can no longer be found from it.

    :param handle: The running child.
    :return: The processes of the tree, parent first.
    """
    root = handle.process
    if root is None:
        if not handle.is_running():
            return []
        try:
            root = psutil.Process(handle.pid)
        except psutil.NoSuchProcess:
            return []
    procs = [root]
    try:
        procs.extend(root.children(recursive=True))
    except psutil.NoSuchProcess:
        log.debug(f"Process {handle.pid} no longer exists, skipping children retrieval.")
    return procs


def _terminate_processes(processes: List[psutil.Process]) -> None:
    """Sends SIGTERM to all processes."""
    for proc in processes:
        try:
            log.debug(f"Sending SIGTERM to PID {proc.pid}")
            proc.terminate()
        except psutil.NoSuchProcess:
            continue


def _forceful_kill(processes: List[psutil.Process]) -> None:
    """Forcefully kills the given processes."""
    for proc in processes:
        try:
            log.debug(f"Killing PID {proc.pid}")
            proc.kill()
        except psutil.NoSuchProcess:
            continue


def _is_zombie(proc: psutil.Process) -> bool:
    try:
        return proc.status() == psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return True


def _wait(processes: List[psutil.Process], timeout: float) -> List[psutil.Process]:
    """Waits for the processes to exit and returns the ones still alive."""
    # Orphaned descendants may linger as zombies until init reaps them; they
    # hold no resources, so they count as exited.
    alive = list(processes)
    deadline = time.monotonic() + timeout
    while alive:
        try:
            _, alive = psutil.wait_procs(alive, timeout=WAIT_POLL_INTERVAL)
        except psutil.NoSuchProcess:
            return []
        alive = [p for p in alive if not _is_zombie(p)]
        if time.monotonic() >= deadline:
            break
    return alive


def stop_child(handle: "ChildHandle", grace_seconds: Optional[float] = None,
               kill_timeout: Optional[float] = None) -> None:
    """
    Stops the child process tree and blocks until it has fully exited.

    With a grace period, SIGTERM goes out first and SIGKILL follows for
    whatever is still alive when it expires. Without one, SIGKILL is sent
    right away.

    :param handle: The running child.
    :param grace_seconds: Seconds between SIGTERM and SIGKILL; 0 skips SIGTERM.
    :param kill_timeout: Seconds to wait for the tree to disappear after SIGKILL.
    :raises ChildTerminationError: If a process survives SIGKILL.
    """
    grace_seconds = config.GRACEFUL_SHUTDOWN_TIMEOUT if grace_seconds is None else grace_seconds
    kill_timeout = config.KILL_TIMEOUT if kill_timeout is None else kill_timeout

    log.info(f"Stopping {handle.name} (PID {handle.pid})...")
    alive = identify_processes_to_stop(handle)

    if grace_seconds > 0:
        _terminate_processes(alive)
        alive = _wait(alive, grace_seconds)
        if alive:
            log.warning(f"{len(alive)} process(es) did not terminate gracefully. Forcing shutdown...")

    _forceful_kill(alive)
    alive = _wait(alive, kill_timeout)

    # Reap our direct child so no zombie is left behind.
    try:
        handle.popen.wait(timeout=kill_timeout)
    except subprocess.TimeoutExpired:
        raise ChildTerminationError(handle.pid)

    if alive:
        raise ChildTerminationError(alive[0].pid)
    log.info(f"{handle.name.capitalize()} (PID {handle.pid}) stopped.")

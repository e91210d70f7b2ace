import logging
import threading
from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional

from devloop.local.config import effective_settings as config
from devloop.local.exceptions import ChildStartError, ChildTerminationError
from devloop.local.invocation import Invocation
from devloop.local.supervisor import process_utils, shutdown
from devloop.local.supervisor.process_utils import ChildHandle

if TYPE_CHECKING:
    from devloop.watcher import FileWatcher

log = logging.getLogger(__name__)


class SupervisorState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPING = "stopping"

    def __str__(self):
        return self.name


class ProcessSupervisor:
    """
    Keeps exactly one instance of the supervised program alive and restarts
    it whenever the watcher reports a change.

    Restarts are strictly sequential: the old instance has fully exited
    before the new one is launched, so the two never compete for the same
    listening port.
    """

    def __init__(self, invocation: Invocation,
                 launcher: Optional[Callable[[Invocation], ChildHandle]] = None,
                 stopper: Optional[Callable[[ChildHandle], None]] = None) -> None:
        """
        :param invocation: The command line reused for every start.
        :param launcher: Starts a child; defaults to process_utils.launch_child.
        :param stopper: Stops a child and waits for it; defaults to shutdown.stop_child.
        """
        self.invocation = invocation
        self._launch = launcher or process_utils.launch_child
        self._stop = stopper or shutdown.stop_child

        self.child: Optional[ChildHandle] = None
        self.state = SupervisorState.IDLE
        self.restart_count = 0
        self.shutdown_signal_received = threading.Event()

    def start(self) -> bool:
        """
        Launches a new child. Only valid while no child is held.

        :return: True if the child is running, False if the start failed.
        """
        if self.child is not None:
            raise RuntimeError(f"Refusing to start a second instance while PID {self.child.pid} is held.")
        try:
            self.child = self._launch(self.invocation)
        except ChildStartError as e:
            log.error(f"{e}. Waiting for the next change to retry.")
            self.state = SupervisorState.IDLE
            return False
        self.state = SupervisorState.RUNNING
        return True

    def stop(self) -> bool:
        """
        Stops the current child and waits until it has exited.

        :return: True if no child is left, False if the child survived.
        """
        if self.child is None:
            self.state = SupervisorState.IDLE
            return True

        self.state = SupervisorState.STOPPING
        try:
            self._stop(self.child)
        except ChildTerminationError as e:
            # Keep the handle so the next trigger retries the stop.
            log.critical(f"{e} Keeping the old instance; the next change will retry.")
            self.state = SupervisorState.RUNNING
            return False

        self.child = None
        self.state = SupervisorState.IDLE
        return True

    def restart(self) -> bool:
        """Stops the running child, if any, then starts a new one."""
        self.restart_count += 1
        if not self.stop():
            return False
        return self.start()

    def check_child(self) -> None:
        """Notices a child that exited on its own and drops it."""
        if self.child is None:
            return
        returncode = self.child.poll()
        if returncode is None:
            return

        if returncode == 0:
            log.warning(f"{self.child.name.capitalize()} (PID {self.child.pid}) exited. "
                        "Waiting for the next change to start it again.")
        else:
            log.error(f"{self.child.name.capitalize()} (PID {self.child.pid}) exited with code {returncode}. "
                      "Waiting for the next change to retry.")
        self.child = None
        self.state = SupervisorState.IDLE

    def run(self, watcher: "FileWatcher") -> None:
        """
        Main supervisor loop: start the child, then restart it on every trigger.

        Returns once `shutdown_signal_received` is set. The child is left
        running; call shutdown() to stop it.
        """
        log.info(f"Supervisor started: {self.invocation}")
        self.start()

        while not self.shutdown_signal_received.is_set():
            trigger = watcher.wait(timeout=config.SUPERVISOR_SLEEP_INTERVAL)
            if trigger is None:
                self.check_child()
                continue
            log.info(f"Restarting (trigger #{trigger.seq}, state {self.state})...")
            self.restart()

    def shutdown(self) -> None:
        """Ends the loop and stops the child."""
        self.shutdown_signal_received.set()
        if self.child is not None:
            log.info("Stopping supervised process before exit...")
        self.stop()

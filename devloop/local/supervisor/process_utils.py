import sys
import psutil
import logging
import threading
import subprocess
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from devloop.local.config import effective_settings as config
from devloop.local.exceptions import ChildStartError, ChildTerminationError
from devloop.local.invocation import Invocation

log = logging.getLogger(__name__)


@dataclass
class ChildHandle:
    """The one running instance of the supervised program."""
    popen: subprocess.Popen
    process: Optional[psutil.Process]
    argv: List[str]
    name: str = "server"

    @property
    def pid(self) -> int:
        return self.popen.pid

    def poll(self) -> Optional[int]:
        """Returns the exit code, or None while the process is alive."""
        return self.popen.poll()

    def is_running(self) -> bool:
        return self.poll() is None


#* --- Process Output ---
def _read_pipe(pipe, process_name: str, level: int):
    """Target function for reader threads. Reads and logs lines from a subprocess pipe."""
    proc_logger = logging.getLogger(f"proc.{process_name}")
    try:
        for line_bytes in iter(pipe.readline, b""):
            line = line_bytes.decode("utf-8", errors="replace").rstrip()
            if not line:
                continue
            proc_logger.log(level, line)
    except (OSError, ValueError) as e:
        proc_logger.debug(f"Pipe reader for {process_name} stream exited: {e}")
    finally:
        pipe.close()


def log_process_output(process: subprocess.Popen, name: str) -> None:
    """
    Starts background threads to consume and log a process's stdout/stderr.

    Keeps the pipes drained so the child never blocks on a full pipe. Lines
    go to the `proc.<name>` logger, stdout at INFO and stderr at ERROR.
    """
    if process.stdout:
        threading.Thread(target=_read_pipe, args=(process.stdout, name, logging.INFO),
                         daemon=True, name=f"{name}-stdout").start()
    if process.stderr:
        threading.Thread(target=_read_pipe, args=(process.stderr, name, logging.ERROR),
                         daemon=True, name=f"{name}-stderr").start()


#* --- Process Creation ---
def _get_popen_creation_flags() -> Dict[str, Any]:
    """Returns platform-specific creation flags for subprocess.Popen."""
    if sys.platform == "win32":
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
    # Own session, so the whole tree can be stopped without touching devloop.
    return {"start_new_session": True}


def launch_child(invocation: Invocation, name: Optional[str] = None,
                 capture_output: Optional[bool] = None,
                 startup_check_seconds: Optional[float] = None) -> ChildHandle:
    """
    Launches the supervised program.

    :param invocation: The command line and working directory to use.
    :param name: Logical name used for the output loggers.
    :param capture_output: Pipe stdout/stderr through logging instead of inheriting them.
    :param startup_check_seconds: Window in which a non-zero exit counts as a failed start.
    :return: A handle for the new process.
    :raises ChildStartError: If the process cannot be spawned or dies right away.
    """
    name = name or config.CHILD_PROCESS_NAME
    capture_output = config.CAPTURE_CHILD_OUTPUT if capture_output is None else capture_output
    startup_check_seconds = config.STARTUP_CHECK_SECONDS if startup_check_seconds is None else startup_check_seconds

    log.info(f"Starting {name}: {invocation}")
    popen_kwargs = _get_popen_creation_flags()
    if capture_output:
        popen_kwargs.update(stdout=subprocess.PIPE, stderr=subprocess.PIPE)

    try:
        p = subprocess.Popen(invocation.args, stdin=subprocess.DEVNULL, cwd=str(invocation.cwd), **popen_kwargs)
    except OSError as e:
        raise ChildStartError(invocation.argv, str(e)) from e

    try:
        proc = psutil.Process(p.pid)
    except psutil.NoSuchProcess:
        proc = None
    handle = ChildHandle(popen=p, process=proc, argv=invocation.args, name=name)

    # Until the handle is returned nobody else can stop this process, and it
    # lives in its own session, so a Ctrl-C here must not leave it behind.
    try:
        if capture_output:
            log_process_output(p, name)

        if startup_check_seconds > 0:
            try:
                returncode = p.wait(timeout=startup_check_seconds)
            except subprocess.TimeoutExpired:
                returncode = None
            if returncode:
                raise ChildStartError(invocation.argv, f"exited with code {returncode}", returncode)
    except BaseException:
        _discard(handle)
        raise

    log.info(f"{name.capitalize()} started with PID: {p.pid}")
    return handle


def _discard(handle: ChildHandle) -> None:
    """Stops a child whose launch did not complete."""
    from devloop.local.supervisor.shutdown import stop_child
    try:
        stop_child(handle)
    except ChildTerminationError as e:
        log.critical(f"Could not clean up {handle.name} after an aborted start: {e}")

import sys
import signal
import logging
from typing import List, Optional, Sequence, Tuple

import setproctitle

# Basic console logger for messages BEFORE full setup is complete.
# This logger will be replaced by the full setup later.
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)-8s - [console] - %(message)s',
    stream=sys.stdout
)
log = logging.getLogger("console")

from devloop.log import setup_logging
from devloop.local import effective_settings as config
from devloop.local.exceptions import WatchSetupError
from devloop.local.invocation import build_invocation, derive_role
from devloop.local.supervisor import ProcessSupervisor
from devloop.watcher import FileWatcher

EXIT_OK = 0
EXIT_WATCH_SETUP_FAILED = 1
EXIT_CONFIG_INVALID = 2


def parse_args(argv: Sequence[str]) -> Tuple[Optional[str], bool]:
    """
    Splits the command line into the role selector and the verbose flag.

    :param argv: Arguments without the program name.
    :return tuple: (first positional argument or None, verbose).
    """
    args: List[str] = list(argv)
    verbose = "--verbose" in args
    positional = [a for a in args if a != "--verbose"]
    return (positional[0] if positional else None), verbose


def _install_signal_handlers(supervisor: ProcessSupervisor) -> None:
    """Turns SIGTERM/SIGHUP into a clean shutdown of the supervisor loop."""
    def _handle(signum, frame):
        log.info(f"Received signal {signal.Signals(signum).name}. Shutting down...")
        supervisor.shutdown_signal_received.set()

    for name in ("SIGTERM", "SIGHUP"):
        if hasattr(signal, name):
            signal.signal(getattr(signal, name), _handle)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """The main entry point for the devloop supervisor."""
    selector, verbose = parse_args(sys.argv[1:] if argv is None else argv)
    setup_logging(logging.DEBUG if verbose else None)

    role = derive_role(selector, config)
    try:
        invocation = build_invocation(role, config)
    except ValueError as e:
        log.critical(f"Invalid configuration: {e}")
        return EXIT_CONFIG_INVALID
    setproctitle.setproctitle(f"devloop - Supervisor ({role})")
    log.info(f"Role: {role}")

    try:
        watcher = FileWatcher.from_glob(config.WATCH_GLOB, config.WATCH_BASE_DIR)
        watcher.start()
    except WatchSetupError as e:
        log.critical(f"{e}. Nothing to supervise, exiting.")
        return EXIT_WATCH_SETUP_FAILED

    supervisor = ProcessSupervisor(invocation)
    _install_signal_handlers(supervisor)
    try:
        supervisor.run(watcher)
    except KeyboardInterrupt:
        log.warning("Supervisor loop interrupted by user.")
    finally:
        supervisor.shutdown()
        watcher.stop()
        log.info(f"Supervisor stopped after {supervisor.restart_count} restart(s).")
    return EXIT_OK


def run() -> None:
    """Console script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()

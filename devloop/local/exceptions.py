from typing import List, Optional, Sequence


class DevloopError(Exception):
    """Base class for all errors raised by devloop."""


class WatchSetupError(DevloopError):
    """The watch set cannot be monitored. Fatal for the supervisor."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot watch '{path}': {reason}")


class ChildStartError(DevloopError):
    """The supervised program could not be launched or died right after launch."""

    def __init__(self, argv: Sequence[str], reason: str, returncode: Optional[int] = None) -> None:
        self.argv: List[str] = list(argv)
        self.reason = reason
        self.returncode = returncode
        super().__init__(f"Failed to start '{' '.join(self.argv)}': {reason}")


class ChildTerminationError(DevloopError):
    """A process of the child tree survived a forceful kill."""

    def __init__(self, pid: int) -> None:
        self.pid = pid
        super().__init__(f"Process {pid} did not exit after SIGKILL.")

import logging
from pathlib import Path
from typing import List, Optional, Tuple, Union
from dataclasses import dataclass

from devloop.local.config import MergedSettings

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Primary:
    """The server runs as the primary and accepts writes directly."""

    def __str__(self) -> str:
        return "primary"


@dataclass(frozen=True)
class Replica:
    """The server runs as a replica of the primary at host:port."""
    host: str
    port: int

    def __str__(self) -> str:
        return f"replica of {self.host}:{self.port}"


Role = Union[Primary, Replica]


@dataclass(frozen=True)
class Invocation:
    """The fixed command line used for every start of the supervised program."""
    argv: Tuple[str, ...]
    cwd: Path

    @property
    def args(self) -> List[str]:
        return list(self.argv)

    def __str__(self) -> str:
        return " ".join(self.argv)


def derive_role(selector: Optional[str], settings: MergedSettings) -> Role:
    """
    Picks the role from the first command-line argument.

    Only the exact value of PRIMARY_ROLE_NAME ("master") selects the primary.
    Anything else, including no argument at all, selects a replica of
    PRIMARY_HOST:PRIMARY_PORT.

    :param selector: The first positional argument, or None if absent.
    :param settings: The effective settings.
    :return: The role for the lifetime of this process.
    """
    if selector == settings.PRIMARY_ROLE_NAME:
        return Primary()
    return Replica(host=settings.PRIMARY_HOST, port=int(settings.PRIMARY_PORT))


def get_server_args(role: Role, settings: MergedSettings) -> List[str]:
    """Returns the flags passed through to the server for the given role."""
    if isinstance(role, Replica):
        return [
            "--port", str(settings.REPLICA_PORT),
            "--replicaof", role.host, str(role.port),
        ]
    # The primary keeps the server's own default port.
    return []


def build_invocation(role: Role, settings: MergedSettings) -> Invocation:
    """
    Builds the command line for the supervised program.

    :param role: The role derived at startup.
    :param settings: The effective settings.
    :return: An Invocation that is reused unchanged on every restart.
    :raises ValueError: If the build command is empty.
    """
    build_command = list(settings.BUILD_COMMAND)
    if not build_command:
        raise ValueError("BUILD_COMMAND is empty. Nothing to run.")

    argv = build_command
    server_args = get_server_args(role, settings)
    if server_args:
        if settings.ARGS_SEPARATOR:
            argv.append(settings.ARGS_SEPARATOR)
        argv.extend(server_args)

    invocation = Invocation(argv=tuple(argv), cwd=Path(settings.WATCH_BASE_DIR))
    log.debug(f"Invocation for {role}: {invocation}")
    return invocation

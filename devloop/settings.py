"""
This module contains the default configuration settings for devloop.
It defines the build-and-run command, the watched files, the role ports and
the supervisor timings. Values can be overridden from the environment or
from a `.env` file in the working directory.
"""

import os
import shlex
import pathlib
from dotenv import dotenv_values

# Values from .env take precedence over the process environment.
# dotenv_values() leaves os.environ untouched, so the supervised program
# inherits the invoking shell's environment as-is.
_ENV = {**os.environ, **{k: v for k, v in dotenv_values(".env").items() if v is not None}}


def _env_bool(name: str, default: str) -> bool:
    return _ENV.get(name, default).lower() in ('true', '1', 't', 'yes', 'y')


#* --- Core Paths ---
WATCH_BASE_DIR = pathlib.Path(_ENV.get("DEVLOOP_WATCH_BASE_DIR", os.getcwd())).resolve()
STATE_DIR = WATCH_BASE_DIR / ".devloop"
OVERRIDES_JSON_PATH = pathlib.Path(_ENV.get("DEVLOOP_OVERRIDES", str(STATE_DIR / "overrides.json")))

#* --- Supervised Program ---
# The build-and-run command, split like a shell would split it.
BUILD_COMMAND = shlex.split(_ENV.get("DEVLOOP_BUILD_COMMAND", "cargo run"))
# Marker placed between the build command and the server flags (cargo's "--").
ARGS_SEPARATOR = _ENV.get("DEVLOOP_ARGS_SEPARATOR", "--")
CHILD_PROCESS_NAME = "server"

#* --- Roles ---
PRIMARY_ROLE_NAME = "master"
PRIMARY_HOST = _ENV.get("DEVLOOP_PRIMARY_HOST", "127.0.0.1")
PRIMARY_PORT = int(_ENV.get("DEVLOOP_PRIMARY_PORT", "6379"))
REPLICA_PORT = int(_ENV.get("DEVLOOP_REPLICA_PORT", "6380"))

#* --- Watcher Settings ---
WATCH_GLOB = _ENV.get("DEVLOOP_WATCH_GLOB", "src/*")
DEBOUNCE_SECONDS = float(_ENV.get("DEVLOOP_DEBOUNCE_SECONDS", "0.2"))

#* --- Supervisor Settings ---
SUPERVISOR_SLEEP_INTERVAL = 0.5
STARTUP_CHECK_SECONDS = float(_ENV.get("DEVLOOP_STARTUP_CHECK_SECONDS", "0.5"))
# 0 sends SIGKILL right away, anything else is the SIGTERM grace period.
GRACEFUL_SHUTDOWN_TIMEOUT = float(_ENV.get("DEVLOOP_GRACEFUL_SHUTDOWN_TIMEOUT", "0"))
KILL_TIMEOUT = 5  # seconds to wait for the tree to vanish after SIGKILL
CAPTURE_CHILD_OUTPUT = _env_bool("DEVLOOP_CAPTURE_CHILD_OUTPUT", "True")

#* --- Logging ---
LOG_LEVEL = _ENV.get("DEVLOOP_LOG_LEVEL", "INFO").upper()
LOG_FILE_PATH = pathlib.Path(_ENV["DEVLOOP_LOG_FILE"]) if _ENV.get("DEVLOOP_LOG_FILE") else None

#* --- MODIFIABLE SETTINGS (Changeable through overrides.json) ---
MODIFIABLE_SETTINGS = {
    # Supervised program
    "BUILD_COMMAND", "ARGS_SEPARATOR",
    # Roles
    "PRIMARY_HOST", "PRIMARY_PORT", "REPLICA_PORT",
    # Watcher
    "WATCH_GLOB", "DEBOUNCE_SECONDS",
    # Supervisor
    "STARTUP_CHECK_SECONDS", "GRACEFUL_SHUTDOWN_TIMEOUT", "CAPTURE_CHILD_OUTPUT",
}

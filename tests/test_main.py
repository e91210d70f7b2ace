import sys
import time
import threading
from pathlib import Path
from typing import List

import pytest

import devloop.main as devloop_main
from devloop.local import effective_settings as config
from devloop.local.invocation import Invocation
from devloop.local.supervisor import ProcessSupervisor
from devloop.local.supervisor import process_utils
from devloop.watcher import FileWatcher


@pytest.fixture
def project(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setattr(config, "WATCH_BASE_DIR", tmp_path)
    monkeypatch.setattr(config, "WATCH_GLOB", "src/*")
    monkeypatch.setattr(config, "BUILD_COMMAND", ["cargo", "run"])
    monkeypatch.setattr(config, "ARGS_SEPARATOR", "--")
    monkeypatch.setattr(config, "PRIMARY_HOST", "127.0.0.1")
    monkeypatch.setattr(config, "PRIMARY_PORT", 6379)
    monkeypatch.setattr(config, "REPLICA_PORT", 6380)
    monkeypatch.setattr(config, "LOG_FILE_PATH", None)
    monkeypatch.setattr(devloop_main, "_install_signal_handlers", lambda supervisor: None)
    monkeypatch.setattr(devloop_main, "setup_logging", lambda *a, **kw: None)
    monkeypatch.setattr(devloop_main.setproctitle, "setproctitle", lambda title: None)
    return tmp_path


class RecordingSupervisor:
    instances: List["RecordingSupervisor"] = []

    def __init__(self, invocation: Invocation) -> None:
        self.invocation = invocation
        self.restart_count = 0
        self.stopped = False
        RecordingSupervisor.instances.append(self)

    def run(self, watcher: FileWatcher) -> None:
        raise KeyboardInterrupt

    def shutdown(self) -> None:
        self.stopped = True


@pytest.mark.parametrize("argv, expected", [
    ([], (None, False)),
    (["master"], ("master", False)),
    (["--verbose", "replica"], ("replica", True)),
    (["replica", "extra"], ("replica", False)),
])
def test_parse_args(argv, expected) -> None:
    assert devloop_main.parse_args(argv) == expected


def test_missing_watch_path_is_fatal_and_starts_nothing(project: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    launched = []
    monkeypatch.setattr(process_utils, "launch_child", lambda *a, **kw: launched.append(a))

    assert devloop_main.main(["master"]) == devloop_main.EXIT_WATCH_SETUP_FAILED
    assert launched == []


def test_empty_build_command_is_a_config_error(project: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, "BUILD_COMMAND", [])

    assert devloop_main.main([]) == devloop_main.EXIT_CONFIG_INVALID


@pytest.mark.parametrize("argv, replica", [(["master"], False), (["replica"], True), ([], True)])
def test_main_supervises_role_invocation(project: Path, monkeypatch: pytest.MonkeyPatch, argv, replica) -> None:
    (project / "src").mkdir()
    (project / "src" / "main.rs").write_text("fn main() {}\n")
    RecordingSupervisor.instances.clear()
    monkeypatch.setattr(devloop_main, "ProcessSupervisor", RecordingSupervisor)

    assert devloop_main.main(argv) == devloop_main.EXIT_OK

    (supervisor,) = RecordingSupervisor.instances
    assert supervisor.stopped
    if replica:
        assert supervisor.invocation.args == [
            "cargo", "run", "--", "--port", "6380", "--replicaof", "127.0.0.1", "6379",
        ]
    else:
        assert supervisor.invocation.args == ["cargo", "run"]


def test_saving_a_watched_file_replaces_the_running_process(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, "SUPERVISOR_SLEEP_INTERVAL", 0.05)
    src = tmp_path / "src"
    src.mkdir()
    source = src / "main.rs"
    source.write_text("v1\n")

    invocation = Invocation(argv=(sys.executable, "-c", "import time; time.sleep(60)"), cwd=tmp_path)
    supervisor = ProcessSupervisor(
        invocation,
        launcher=lambda inv: process_utils.launch_child(inv, capture_output=False, startup_check_seconds=0),
    )
    watcher = FileWatcher.from_glob("src/*", tmp_path, debounce_seconds=0.05)
    watcher.start()
    loop = threading.Thread(target=supervisor.run, args=(watcher,), daemon=True)
    loop.start()
    try:
        deadline = time.monotonic() + 10
        while supervisor.child is None and time.monotonic() < deadline:
            time.sleep(0.05)
        first = supervisor.child
        assert first is not None

        source.write_text("v2\n")
        while (supervisor.child is None or supervisor.child is first) and time.monotonic() < deadline:
            time.sleep(0.05)

        second = supervisor.child
        assert second is not None and second is not first
        assert second.pid != first.pid
        assert first.poll() is not None
        assert second.argv == first.argv
    finally:
        supervisor.shutdown_signal_received.set()
        loop.join(timeout=5)
        supervisor.shutdown()
        watcher.stop()

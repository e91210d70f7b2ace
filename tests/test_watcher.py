import os
from pathlib import Path

import pytest

from devloop.local.exceptions import WatchSetupError
from devloop.watcher import FileWatcher, Trigger, WatchSetChangeHandler, resolve_watch_set
from watchdog.events import FileClosedEvent, FileCreatedEvent, FileModifiedEvent, FileMovedEvent


@pytest.fixture
def src_dir(tmp_path: Path) -> Path:
    src = tmp_path / "src"
    src.mkdir()
    (src / "main.rs").write_text("fn main() {}\n")
    (src / "server.rs").write_text("// server\n")
    return src


def test_resolve_watch_set_expands_glob(tmp_path: Path, src_dir: Path) -> None:
    paths = resolve_watch_set("src/*", tmp_path)

    assert paths == [str(src_dir / "main.rs"), str(src_dir / "server.rs")]


def test_resolve_watch_set_fails_when_nothing_matches(tmp_path: Path) -> None:
    with pytest.raises(WatchSetupError) as exc_info:
        resolve_watch_set("src/*", tmp_path)

    assert "src" in exc_info.value.path


@pytest.mark.skipif(os.name != "posix" or os.geteuid() == 0, reason="needs POSIX permissions as non-root")
def test_resolve_watch_set_fails_on_unreadable_path(tmp_path: Path, src_dir: Path) -> None:
    secret = src_dir / "secret.rs"
    secret.write_text("")
    secret.chmod(0)
    try:
        with pytest.raises(WatchSetupError) as exc_info:
            resolve_watch_set("src/*", tmp_path)
        assert exc_info.value.path == str(secret)
    finally:
        secret.chmod(0o644)


def test_empty_watch_set_is_rejected() -> None:
    with pytest.raises(WatchSetupError):
        FileWatcher([])


def test_start_fails_if_path_vanished(tmp_path: Path, src_dir: Path) -> None:
    watcher = FileWatcher.from_glob("src/*", tmp_path)
    (src_dir / "server.rs").unlink()

    with pytest.raises(WatchSetupError):
        watcher.start()


def test_handler_filters_events(src_dir: Path) -> None:
    seen = []
    handler = WatchSetChangeHandler([str(src_dir / "main.rs")], seen.append,
                                    pattern=str(src_dir / "*.rs"))

    handler.dispatch(FileModifiedEvent(str(src_dir / "main.rs")))
    handler.dispatch(FileCreatedEvent(str(src_dir / "new.rs")))
    handler.dispatch(FileModifiedEvent(str(src_dir / "notes.txt")))
    handler.dispatch(FileClosedEvent(str(src_dir / "main.rs")))
    handler.dispatch(FileMovedEvent(str(src_dir / "main.rs~"), str(src_dir / "main.rs")))

    assert seen == [str(src_dir / "main.rs"), str(src_dir / "new.rs"), str(src_dir / "main.rs")]


def test_burst_of_events_coalesces_into_one_trigger(tmp_path: Path, src_dir: Path) -> None:
    watcher = FileWatcher.from_glob("src/*", tmp_path, debounce_seconds=0.05)
    for _ in range(10):
        watcher._on_change(str(src_dir / "main.rs"))

    assert watcher.wait(timeout=1) == Trigger(seq=1)
    assert watcher.wait(timeout=0.1) is None


def test_change_after_trigger_is_not_lost(tmp_path: Path, src_dir: Path) -> None:
    watcher = FileWatcher.from_glob("src/*", tmp_path, debounce_seconds=0)
    watcher._on_change(str(src_dir / "main.rs"))
    assert watcher.wait(timeout=1) == Trigger(seq=1)

    watcher._on_change(str(src_dir / "server.rs"))

    assert watcher.wait(timeout=1) == Trigger(seq=2)


def test_modifying_a_watched_file_triggers(tmp_path: Path, src_dir: Path) -> None:
    with FileWatcher.from_glob("src/*", tmp_path, debounce_seconds=0.05) as watcher:
        (src_dir / "main.rs").write_text("fn main() { println!(\"hi\"); }\n")

        assert watcher.wait(timeout=5) is not None


def test_creating_and_removing_matching_files_triggers(tmp_path: Path, src_dir: Path) -> None:
    with FileWatcher.from_glob("src/*.rs", tmp_path, debounce_seconds=0.05) as watcher:
        (src_dir / "replication.rs").write_text("// new\n")
        assert watcher.wait(timeout=5) is not None

        (src_dir / "server.rs").unlink()
        assert watcher.wait(timeout=5) is not None


def test_unwatched_file_does_not_trigger(tmp_path: Path, src_dir: Path) -> None:
    with FileWatcher.from_glob("src/*.rs", tmp_path, debounce_seconds=0) as watcher:
        (src_dir / "notes.txt").write_text("todo\n")

        assert watcher.wait(timeout=0.5) is None


def test_triggers_iterator_stops_with_watcher(tmp_path: Path, src_dir: Path) -> None:
    watcher = FileWatcher.from_glob("src/*", tmp_path, debounce_seconds=0)
    watcher._on_change(str(src_dir / "main.rs"))
    triggers = iter(watcher)

    assert next(triggers) == Trigger(seq=1)
    watcher.stop()
    assert list(triggers) == []


def test_dead_observer_is_restarted_with_a_catch_up_trigger(tmp_path: Path, src_dir: Path) -> None:
    watcher = FileWatcher.from_glob("src/*", tmp_path, debounce_seconds=0)
    watcher.start()
    try:
        dead = watcher._observer
        dead.stop()
        dead.join(timeout=5)

        assert watcher.wait(timeout=2) == Trigger(seq=1)
        assert watcher._observer is not dead
        assert watcher._observer.is_alive()
    finally:
        watcher.stop()

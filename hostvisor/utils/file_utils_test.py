import os
import stat
from pathlib import Path

from hostvisor.utils.file_utils import atomic_write


def test_atomic_write_creates_file(tmp_path: Path) -> None:
    target = tmp_path / "output.json"

    atomic_write(target, "hello")

    assert target.read_text() == "hello"


def test_atomic_write_overwrites_existing_file(tmp_path: Path) -> None:
    target = tmp_path / "output.json"
    target.write_text("old content")

    atomic_write(target, "new content")

    assert target.read_text() == "new content"


def test_atomic_write_creates_parent_directories(tmp_path: Path) -> None:
    target = tmp_path / "hosts" / "nested" / "output.json"

    atomic_write(target, "nested")

    assert target.read_text() == "nested"


def test_atomic_write_preserves_existing_permissions(tmp_path: Path) -> None:
    target = tmp_path / "output.json"
    target.write_text("original")
    os.chmod(target, 0o644)

    atomic_write(target, "updated")

    assert stat.S_IMODE(target.stat().st_mode) == 0o644


def test_atomic_write_new_file_gets_requested_mode(tmp_path: Path) -> None:
    target = tmp_path / "secret.json"

    atomic_write(target, "content", new_file_mode=0o600)

    assert stat.S_IMODE(target.stat().st_mode) == 0o600


def test_atomic_write_leaves_no_temp_files(tmp_path: Path) -> None:
    target = tmp_path / "output.json"

    atomic_write(target, "first")
    atomic_write(target, "second")

    assert [p.name for p in tmp_path.iterdir()] == ["output.json"]

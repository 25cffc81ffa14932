import os
import stat
import tempfile
from pathlib import Path


def atomic_write(path: Path, content: str, new_file_mode: int = 0o600) -> None:
    """Write content to a file atomically using a temp file and rename.

    Writes to a temporary file in the same directory, flushes to disk with
    fsync, then atomically replaces the target file. Readers never see a
    partially-written document, which is what lets the directory-backed stores
    treat every save as a single whole-value write.

    If the target file already exists, its permissions are preserved on the
    new file. Otherwise the file gets new_file_mode.

    The caller is responsible for catching OSError if the write fails.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    try:
        mode = stat.S_IMODE(path.stat().st_mode)
    except FileNotFoundError:
        mode = new_file_mode

    with tempfile.NamedTemporaryFile(
        mode="w",
        dir=path.parent,
        suffix=".tmp",
        delete=False,
    ) as tmp_file:
        tmp_file.write(content)
        tmp_file.flush()
        os.fsync(tmp_file.fileno())
        tmp_path = Path(tmp_file.name)

    try:
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise

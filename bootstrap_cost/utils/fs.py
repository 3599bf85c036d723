"""
Filesystem utilities for the on-disk price cache.
"""
import os
import tempfile
from pathlib import Path
from typing import Iterator, Union


# Suffix of in-flight temporary files; never read as cache entries
TEMP_SUFFIX = ".tmp"


def ensure_directory(directory: Union[str, Path]) -> Path:
    """
    Create a directory (and parents) if it does not exist yet.

    Args:
        directory: Directory path

    Returns:
        The directory as a Path

    Raises:
        OSError: If the directory cannot be created
    """
    path = Path(directory).expanduser()
    path.mkdir(parents=True, exist_ok=True)
    return path


def atomic_write_text(file_path: Path, content: str) -> None:
    """
    Write text so that readers see either the old file or the complete new one.

    The content goes to a temporary file in the same directory, is flushed to
    disk, then moved over the target with os.replace.

    Args:
        file_path: Destination path
        content: Text to write (UTF-8)

    Raises:
        OSError: If the temporary file cannot be written or replaced
    """
    directory = file_path.parent
    with tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf-8",
        dir=directory,
        prefix=f".{file_path.name}.",
        suffix=TEMP_SUFFIX,
        delete=False,
    ) as temp_file:
        try:
            temp_file.write(content)
            temp_file.flush()
            os.fsync(temp_file.fileno())
        except OSError:
            temp_file.close()
            os.unlink(temp_file.name)
            raise

    try:
        os.replace(temp_file.name, file_path)
    finally:
        # Only left behind if replace failed
        if os.path.exists(temp_file.name):
            os.unlink(temp_file.name)


def iter_entry_files(directory: Path, suffix: str = ".json") -> Iterator[Path]:
    """
    Yield regular files with the given suffix, skipping temp files.

    A missing directory yields nothing.
    """
    if not directory.exists():
        return
    for entry in sorted(directory.iterdir()):
        if entry.name.endswith(TEMP_SUFFIX) or entry.name.startswith("."):
            continue
        if entry.suffix == suffix and entry.is_file():
            yield entry

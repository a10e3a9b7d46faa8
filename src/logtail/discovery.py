"""Initial directory scan and the shared file-name filter.

``scan_directory(directory, pattern)`` lists the files already present when
a tailer is constructed; they seed the pending queue.  Only the directory
itself is scanned (no recursion), and only regular files whose *name*
matches the glob ``pattern`` are returned.

Files are returned oldest-first by ``(mtime, path)``, which is the order
they arrived in for a writer that rotates by creating a new file.  The
newest file, usually the one still being written, ends up last.

While the tailer is not watching (before ``start()``, or between ``stop()``
and the next ``start()``) nothing queues new files.  ``snapshot_directory``
records what the directory looked like when watching stopped, and
``changed_since`` lists the files created or written to since then, so the
tailer can catch up when it starts watching again.
"""

from __future__ import annotations

import fnmatch
import os
from pathlib import Path

# (st_mtime_ns, st_size); a file whose stamp changed has been written to.
FileStamp = tuple[int, int]


def matches(path: str | os.PathLike[str], pattern: str) -> bool:
    """Return True if the file name of *path* matches the glob *pattern*.

    Matching follows the platform's case rules (case-insensitive on
    Windows), like the directory watch itself.
    """
    return fnmatch.fnmatch(os.path.basename(os.fspath(path)), pattern)


def snapshot_directory(directory: Path, pattern: str) -> dict[Path, FileStamp]:
    """Return ``{path: (mtime_ns, size)}`` for matching files in *directory*.

    Non-recursive; a missing directory gives an empty snapshot.
    """
    directory = Path(directory).absolute()
    if not directory.is_dir():
        return {}

    stamps: dict[Path, FileStamp] = {}
    with os.scandir(directory) as entries:
        for entry in entries:
            if not entry.is_file() or not matches(entry.name, pattern):
                continue
            try:
                st = entry.stat()
            except FileNotFoundError:
                continue  # removed between listing and stat
            stamps[directory / entry.name] = (st.st_mtime_ns, st.st_size)
    return stamps


def oldest_first(stamps: dict[Path, FileStamp]) -> list[Path]:
    """Paths of *stamps* sorted by ``(mtime, path)``."""
    return sorted(stamps, key=lambda path: (stamps[path][0], path))


def scan_directory(directory: Path, pattern: str) -> list[Path]:
    """Return matching files directly inside *directory*, oldest-first.

    Args:
        directory: Directory to list.  Returns an empty list if it does not
                   exist yet.
        pattern:   Glob matched against each file name (e.g. ``"LIS*.XML"``).

    Returns:
        Absolute paths sorted by ``(mtime, path)``.
    """
    return oldest_first(snapshot_directory(directory, pattern))


def changed_since(before: dict[Path, FileStamp], after: dict[Path, FileStamp]) -> list[Path]:
    """Paths in *after* that are new or whose stamp differs from *before*, oldest-first."""
    return oldest_first({path: stamp for path, stamp in after.items() if before.get(path) != stamp})

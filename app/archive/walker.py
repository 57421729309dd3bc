import os
from collections.abc import Iterator
from pathlib import Path


def list_files(directory: Path) -> Iterator[Path]:
    """Yield every regular file below ``directory``, depth-first.

    Entries are visited in name order so an unchanged tree always enumerates
    the same way. Symlinks are not followed.

    Raises:
        OSError: if a directory (including ``directory`` itself) cannot be read.
    """
    stack = [directory]
    while stack:
        current = stack.pop()
        with os.scandir(current) as it:
            entries = sorted(it, key=lambda entry: entry.name)
        subdirs: list[Path] = []
        for entry in entries:
            if entry.is_dir(follow_symlinks=False):
                subdirs.append(Path(entry.path))
            elif entry.is_file(follow_symlinks=False):
                yield Path(entry.path)
        stack.extend(reversed(subdirs))

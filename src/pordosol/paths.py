"""Path helpers and project-root discovery."""

import os
from pathlib import Path
from typing import TypeAlias

ROOT_MARKER = "src"
ROOT_SEARCH_LEVELS = 5

PathLike: TypeAlias = Path | str


def absolutize(path: PathLike) -> Path:
    """Return an absolute path without resolving symlinks."""
    return Path(os.path.abspath(os.fspath(path)))


def find_project_root(candidate: PathLike) -> Path:
    """Walk upward from ``candidate`` looking for a directory with ``src/``.

    The candidate itself and up to four of its parents are tested. When no
    level matches, the absolutized candidate is returned unchanged, so
    callers must cope with a root that has no sources.
    """
    start = absolutize(candidate)
    current = start.parent if start.is_file() else start
    for _ in range(ROOT_SEARCH_LEVELS):
        if (current / ROOT_MARKER).is_dir():
            return current
        parent = current.parent
        if parent == current:
            break
        current = parent
    return start


def relative_to_root(path: Path, root: Path) -> Path:
    try:
        return path.relative_to(root)
    except ValueError:
        return path


def path_is_within(child: Path, parent: Path) -> bool:
    try:
        child.relative_to(parent)
        return True
    except ValueError:
        return False

"""Source file discovery under ``<root>/src``."""

import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, Optional

SOURCE_DIR_NAME = "src"
SOURCE_EXTENSION = ".pr"
ENTRY_POINT_NAME = f"programa{SOURCE_EXTENSION}"
RECENT_WINDOW_SECONDS = 86400


@dataclass
class SourceEntry:
    """A source file with the stat details shown by ``listar``."""

    path: Path
    size: Optional[int] = None
    age_seconds: Optional[int] = None


def is_source_file(path: Path) -> bool:
    return path.suffix == SOURCE_EXTENSION and path.is_file()


def list_sources(project_root: Path) -> list[Path]:
    """
    Return every ``.pr`` file under ``<root>/src``.

    The walk is sorted so the order is stable for a given tree. The entry
    point ``src/programa.pr``, when present, is moved to the front; the
    other files keep their walk order. An empty list means "no sources"
    and is left for the caller to judge.
    """
    src_dir = project_root / SOURCE_DIR_NAME
    if not src_dir.is_dir():
        return []

    files: list[Path] = []
    for root, dirs, names in os.walk(src_dir):
        dirs.sort()
        for name in sorted(names):
            candidate = Path(root) / name
            if candidate.suffix == SOURCE_EXTENSION and candidate.is_file():
                files.append(candidate)

    preferred = src_dir / ENTRY_POINT_NAME
    if preferred in files:
        files.remove(preferred)
        files.insert(0, preferred)
    return files


def describe_sources(
    files: Iterable[Path],
    recent_only: bool = False,
    now: Optional[float] = None,
    window: int = RECENT_WINDOW_SECONDS,
) -> Iterator[SourceEntry]:
    """Attach size and age to each file.

    With ``recent_only`` files modified more than ``window`` seconds ago are
    dropped. Files whose stat fails are kept with unknown details.
    """
    current = time.time() if now is None else now
    for path in files:
        try:
            stat = path.stat()
        except OSError:
            yield SourceEntry(path)
            continue
        age = max(0, int(current - stat.st_mtime))
        if recent_only and age > window:
            continue
        yield SourceEntry(path, stat.st_size, age)

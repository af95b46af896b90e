"""Build planning: artifact naming, staleness checks and build-dir upkeep."""

import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from pordosol.errors import ConfigurationError, FileSystemError
from pordosol.paths import absolutize, path_is_within
from pordosol.sources import SOURCE_DIR_NAME

BUILD_DIR_NAME = "build"
ARTIFACT_EXTENSION = ".pbc"

REASON_SKIPPED = "skip-build requested"
REASON_FORCED = "rebuild forced"
REASON_MISSING = "artifact missing"
REASON_UNKNOWN = "freshness unknown"
REASON_STALE = "sources changed"
REASON_UP_TO_DATE = "up to date"


@dataclass
class BuildPlan:
    artifact: Path
    rebuild: bool
    reason: str
    changed: Optional[Path] = None


def _modified_ns(path: Path) -> Optional[int]:
    try:
        return path.stat().st_mtime_ns
    except OSError:
        return None


def plan_build(
    sources: Sequence[Path],
    artifact: Path,
    force: bool = False,
    no_build: bool = False,
) -> BuildPlan:
    """
    Decide whether ``artifact`` has to be rebuilt from ``sources``.

    A skip-build request always wins. Otherwise the artifact is rebuilt when
    forced, when it does not exist, when any source is strictly newer, or
    when any modification time cannot be read.
    """
    if no_build:
        return BuildPlan(artifact, False, REASON_SKIPPED)
    if force:
        return BuildPlan(artifact, True, REASON_FORCED)
    if not artifact.exists():
        return BuildPlan(artifact, True, REASON_MISSING)

    artifact_time = _modified_ns(artifact)
    if artifact_time is None:
        return BuildPlan(artifact, True, REASON_UNKNOWN)
    for source in sources:
        source_time = _modified_ns(source)
        if source_time is None:
            return BuildPlan(artifact, True, REASON_UNKNOWN, source)
        if source_time > artifact_time:
            return BuildPlan(artifact, True, REASON_STALE, source)
    return BuildPlan(artifact, False, REASON_UP_TO_DATE)


def needs_rebuild(
    sources: Sequence[Path],
    artifact: Path,
    force: bool = False,
    no_build: bool = False,
) -> bool:
    return plan_build(sources, artifact, force, no_build).rebuild


def require_artifact(artifact: Path) -> None:
    """Fail when a build was skipped but there is nothing to run."""
    if not artifact.exists():
        raise ConfigurationError(
            f"artifact not found at {artifact}",
            hint="run `pordosol build` first or drop --no-build",
        )


def artifact_name(source: Path) -> str:
    return f"{source.stem}{ARTIFACT_EXTENSION}"


def resolve_artifact_path(
    explicit_file: Optional[Path], sources: Sequence[Path], build_dir: Path
) -> Path:
    """Use an explicit artifact verbatim, else derive it from the first source."""
    if explicit_file is not None:
        return explicit_file
    if not sources:
        raise ConfigurationError(
            f"no source files to derive an artifact name in {build_dir.parent}"
        )
    return build_dir / artifact_name(sources[0])


def build_dir_for(project_root: Path, override: Optional[Path] = None) -> Path:
    if override is not None:
        return absolutize(override)
    return project_root / BUILD_DIR_NAME


def ensure_build_dir(path: Path) -> Path:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise FileSystemError(f"failed to create build dir {path}: {exc}") from exc
    return path


def list_build_outputs(build_dir: Path) -> list[tuple[str, int]]:
    """Regular files directly inside the build dir, with their sizes."""
    if not build_dir.is_dir():
        return []
    outputs = []
    for entry in sorted(build_dir.iterdir()):
        if not entry.is_file():
            continue
        try:
            size = entry.stat().st_size
        except OSError:
            continue
        outputs.append((entry.name, size))
    return outputs


def _is_dangerous_delete_target(path: Path, project_root: Path) -> bool:
    resolved = path.resolve()
    if resolved == Path(resolved.anchor):
        return True
    if resolved == Path.home().resolve():
        return True
    root = project_root.resolve()
    if resolved == root or resolved == root / SOURCE_DIR_NAME:
        return True
    return False


def clean_build_dir(build_dir: Path, project_root: Path) -> int:
    """Remove everything inside ``build_dir`` but keep the directory.

    Returns the number of removed entries. A missing build dir counts as
    clean; a build dir outside the project root is refused.
    """
    if not build_dir.exists():
        return 0
    if not build_dir.is_dir():
        raise ConfigurationError(f"build dir path is not a directory: {build_dir}")
    if not path_is_within(build_dir.resolve(), project_root.resolve()):
        raise ConfigurationError(
            f"refusing to clean build dir outside project root: {build_dir}"
        )
    if _is_dangerous_delete_target(build_dir, project_root):
        raise ConfigurationError(f"refusing to clean unsafe build dir at {build_dir}")

    count = 0
    for entry in sorted(build_dir.iterdir()):
        try:
            if entry.is_dir() and not entry.is_symlink():
                shutil.rmtree(entry)
            else:
                entry.unlink()
        except OSError as exc:
            raise FileSystemError(f"failed to remove {entry}: {exc}") from exc
        count += 1
    return count

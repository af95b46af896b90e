"""Toolchain discovery for the compiler, interpreter and standard library.

Each tool is searched through five tiers, first match wins:

1. an explicit override environment variable,
2. a ``tools/`` directory beside the running executable or one level up,
3. ``$PORDOSOL_HOME/tools``,
4. the executable search path,
5. legacy ``lib/`` folders at and above the project root.

Every failed attempt is recorded, and when no tier matches the failure of
the *first* attempted tier is returned. The resolver never reads the
process environment on its own: callers pass a ``ToolchainEnv`` snapshot
and a ``FileSystemProbe``, which defaults to the real disk.
"""

import enum
import os
import re
import shutil
import subprocess
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterator, Mapping, Optional, Protocol, Sequence

from pordosol.errors import ConfigurationError

COMPILER_NAME = "compilador"
INTERPRETER_NAME = "interpretador"
COMPILER_ENV = "PORDOSOL_COMPILADOR_PATH"
INTERPRETER_ENV = "PORDOSOL_INTERPRETADOR_PATH"
STDLIB_ENV = "PORDOSOL_STDLIB_PATH"
STDLIB_LEGACY_ENV = "PORDOSOL_BIBLIOTECA_PADRAO_PATH"
HOME_ENV = "PORDOSOL_HOME"

TOOLS_DIR_NAME = "tools"
LEGACY_LIB_DIR_NAME = "lib"
STDLIB_NAMES = ("stdlib", "sistema-padrao")
STDLIB_MANIFEST = "Sistema.toml"
STDLIB_SOURCE_DIR = "src"
LEGACY_SEARCH_LEVELS = 6
WINDOWS_EXE_SUFFIX = ".exe"
VERSION_FLAGS = ("--versao", "--version", "-V")

_VERSION_TOKEN = re.compile(r"[vV][0-9][0-9.\-]*")


class Tier(enum.Enum):
    """Search strategy that produced (or failed to produce) a tool path."""

    ENV_OVERRIDE = "env"
    INSTALL_TOOLS = "install"
    HOME_TOOLS = "home"
    SEARCH_PATH = "path"
    LEGACY_LIB = "legacy"
    UNRESOLVED = "unresolved"


@dataclass(frozen=True)
class ToolDescriptor:
    """Outcome of resolving one tool.

    ``origin`` is display text only; use ``tier`` for decisions.
    """

    name: str
    path: Path
    origin: str
    found: bool
    tier: Tier


@dataclass(frozen=True)
class ToolchainDiagnosis:
    compiler: ToolDescriptor
    interpreter: ToolDescriptor
    stdlib: ToolDescriptor

    @property
    def ready(self) -> bool:
        return self.compiler.found and self.interpreter.found and self.stdlib.found

    def roles(self) -> list[tuple[str, ToolDescriptor]]:
        return [
            ("compiler", self.compiler),
            ("interpreter", self.interpreter),
            ("standard library", self.stdlib),
        ]

    def missing(self) -> list[ToolDescriptor]:
        return [tool for _, tool in self.roles() if not tool.found]

    def remediation(self) -> list[str]:
        """One hint per missing tool, naming what to set or install."""
        hints = []
        if not self.compiler.found:
            hints.append(
                f"compiler: set {COMPILER_ENV} to the compiler binary or install "
                f"it as ${HOME_ENV}/{TOOLS_DIR_NAME}/{COMPILER_NAME}"
            )
        if not self.interpreter.found:
            hints.append(
                f"interpreter: set {INTERPRETER_ENV} to the interpreter binary or "
                f"install it as ${HOME_ENV}/{TOOLS_DIR_NAME}/{INTERPRETER_NAME}"
            )
        if not self.stdlib.found:
            hints.append(
                f"standard library: set {STDLIB_ENV} to a directory containing "
                f"{STDLIB_MANIFEST} or src/, or install it as "
                f"${HOME_ENV}/{TOOLS_DIR_NAME}/{STDLIB_NAMES[0]}"
            )
        return hints


def _current_executable() -> Optional[Path]:
    argv0 = sys.argv[0] if sys.argv else ""
    if not argv0:
        return None
    resolved = shutil.which(argv0) if os.sep not in argv0 else argv0
    if not resolved or not os.path.exists(resolved):
        return None
    return Path(os.path.realpath(resolved))


@dataclass(frozen=True)
class ToolchainEnv:
    """Snapshot of everything the resolver reads from the process."""

    variables: Mapping[str, str] = field(default_factory=dict)
    executable: Optional[Path] = None
    search_path: Optional[str] = None
    windows: bool = False

    @classmethod
    def from_process(cls) -> "ToolchainEnv":
        return cls(
            variables=dict(os.environ),
            executable=_current_executable(),
            search_path=os.environ.get("PATH", os.defpath),
            windows=os.name == "nt",
        )

    def path_var(self, name: str) -> Optional[Path]:
        """Return the variable as a path, ignoring unset or blank values."""
        value = self.variables.get(name)
        if value is None:
            return None
        value = value.strip()
        if not value:
            return None
        return Path(value)

    def exe_name(self, name: str) -> str:
        return f"{name}{WINDOWS_EXE_SUFFIX}" if self.windows else name

    def install_dirs(self) -> list[Path]:
        """Directory of the running executable, then its parent."""
        if self.executable is None:
            return []
        base = self.executable.parent
        dirs = [base]
        if base.parent != base:
            dirs.append(base.parent)
        return dirs

    def home(self) -> Optional[Path]:
        return self.path_var(HOME_ENV)


class FileSystemProbe(Protocol):
    def is_file(self, path: Path) -> bool: ...

    def is_dir(self, path: Path) -> bool: ...

    def which(self, name: str, search_path: Optional[str]) -> Optional[Path]: ...


class LocalFileSystem:
    """FileSystemProbe backed by the real disk."""

    def is_file(self, path: Path) -> bool:
        return path.is_file()

    def is_dir(self, path: Path) -> bool:
        return path.is_dir()

    def which(self, name: str, search_path: Optional[str]) -> Optional[Path]:
        if search_path is None:
            return None
        found = shutil.which(name, path=search_path)
        return Path(found) if found else None


@dataclass(frozen=True)
class _Candidate:
    tier: Tier
    path: Path
    label: str
    failure_label: str


def _levels(start: Path, count: int) -> Iterator[Path]:
    current = start
    for _ in range(count):
        yield current
        parent = current.parent
        if parent == current:
            break
        current = parent


def _first_match(
    name: str,
    candidates: Iterator[_Candidate],
    matches: Callable[[_Candidate], Optional[Path]],
    unresolved_path: Path,
) -> ToolDescriptor:
    first_failure: Optional[ToolDescriptor] = None
    for candidate in candidates:
        hit = matches(candidate)
        if hit is not None:
            return ToolDescriptor(name, hit, candidate.label, True, candidate.tier)
        if first_failure is None:
            first_failure = ToolDescriptor(
                name, candidate.path, candidate.failure_label, False, candidate.tier
            )
    if first_failure is not None:
        return first_failure
    return ToolDescriptor(name, unresolved_path, "unresolved", False, Tier.UNRESOLVED)


def _executable_candidates(
    exe: str, env_var: str, project_root: Path, env: ToolchainEnv
) -> Iterator[_Candidate]:
    override = env.path_var(env_var)
    if override is not None:
        yield _Candidate(
            Tier.ENV_OVERRIDE, override, f"env:{env_var}", f"env:{env_var} (invalid)"
        )
    for directory in env.install_dirs():
        yield _Candidate(
            Tier.INSTALL_TOOLS,
            directory / TOOLS_DIR_NAME / exe,
            "install/tools",
            "install/tools (missing)",
        )
    home = env.home()
    if home is not None:
        label = f"env:{HOME_ENV}/{TOOLS_DIR_NAME}"
        yield _Candidate(
            Tier.HOME_TOOLS, home / TOOLS_DIR_NAME / exe, label, f"{label} (missing)"
        )
    yield _Candidate(Tier.SEARCH_PATH, Path(exe), "PATH", "PATH (not found)")
    for level in _levels(project_root, LEGACY_SEARCH_LEVELS):
        yield _Candidate(
            Tier.LEGACY_LIB,
            level / LEGACY_LIB_DIR_NAME / exe,
            "fallback:lib",
            "fallback:lib (missing)",
        )


def resolve_executable(
    name: str,
    env_var: str,
    project_root: Path,
    env: Optional[ToolchainEnv] = None,
    fs: Optional[FileSystemProbe] = None,
) -> ToolDescriptor:
    """Locate the executable ``name`` for the project at ``project_root``."""
    env = env if env is not None else ToolchainEnv.from_process()
    probe = fs if fs is not None else LocalFileSystem()
    exe = env.exe_name(name)

    def matches(candidate: _Candidate) -> Optional[Path]:
        if candidate.tier is Tier.SEARCH_PATH:
            return probe.which(exe, env.search_path)
        return candidate.path if probe.is_file(candidate.path) else None

    return _first_match(
        name,
        _executable_candidates(exe, env_var, project_root, env),
        matches,
        Path(exe),
    )


def is_valid_stdlib(path: Path, fs: Optional[FileSystemProbe] = None) -> bool:
    probe = fs if fs is not None else LocalFileSystem()
    if not probe.is_dir(path):
        return False
    return probe.is_file(path / STDLIB_MANIFEST) or probe.is_dir(
        path / STDLIB_SOURCE_DIR
    )


def _stdlib_candidates(project_root: Path, env: ToolchainEnv) -> Iterator[_Candidate]:
    for var in (STDLIB_ENV, STDLIB_LEGACY_ENV):
        override = env.path_var(var)
        if override is not None:
            yield _Candidate(
                Tier.ENV_OVERRIDE, override, f"env:{var}", f"env:{var} (invalid)"
            )
    for base in STDLIB_NAMES:
        label = f"install/tools/{base}"
        for directory in env.install_dirs():
            yield _Candidate(
                Tier.INSTALL_TOOLS,
                directory / TOOLS_DIR_NAME / base,
                label,
                f"{label} (missing)",
            )
    home = env.home()
    if home is not None:
        for base in STDLIB_NAMES:
            label = f"env:{HOME_ENV}/{TOOLS_DIR_NAME}/{base}"
            yield _Candidate(
                Tier.HOME_TOOLS,
                home / TOOLS_DIR_NAME / base,
                label,
                f"{label} (missing)",
            )
    for level in _levels(project_root, LEGACY_SEARCH_LEVELS):
        for base in STDLIB_NAMES:
            yield _Candidate(
                Tier.LEGACY_LIB,
                level / LEGACY_LIB_DIR_NAME / base,
                "fallback:local",
                "fallback:local (missing)",
            )
        for base in STDLIB_NAMES:
            yield _Candidate(
                Tier.LEGACY_LIB, level / base, "fallback:local", "fallback:local (missing)"
            )


def resolve_stdlib(
    project_root: Path,
    env: Optional[ToolchainEnv] = None,
    fs: Optional[FileSystemProbe] = None,
) -> ToolDescriptor:
    """Locate the standard library directory.

    Same tiers as ``resolve_executable`` minus the search path, which only
    holds executables.
    """
    env = env if env is not None else ToolchainEnv.from_process()
    probe = fs if fs is not None else LocalFileSystem()

    def matches(candidate: _Candidate) -> Optional[Path]:
        return candidate.path if is_valid_stdlib(candidate.path, probe) else None

    return _first_match(
        STDLIB_NAMES[0],
        _stdlib_candidates(project_root, env),
        matches,
        project_root / STDLIB_NAMES[1],
    )


def diagnose_toolchain(
    project_root: Path,
    env: Optional[ToolchainEnv] = None,
    fs: Optional[FileSystemProbe] = None,
) -> ToolchainDiagnosis:
    env = env if env is not None else ToolchainEnv.from_process()
    probe = fs if fs is not None else LocalFileSystem()
    return ToolchainDiagnosis(
        compiler=resolve_executable(COMPILER_NAME, COMPILER_ENV, project_root, env, probe),
        interpreter=resolve_executable(
            INTERPRETER_NAME, INTERPRETER_ENV, project_root, env, probe
        ),
        stdlib=resolve_stdlib(project_root, env, probe),
    )


def extract_version(text: str) -> Optional[str]:
    """Pull a version token such as ``v1.2.3`` out of tool output.

    A parenthesized ``(v...)`` group wins; otherwise the first ``v``/``V``
    directly followed by a digit starts the token, which runs over digits,
    dots and hyphens.
    """
    start = text.find("(v")
    if start != -1:
        end = text.find(")", start + 1)
        if end != -1:
            return text[start + 1 : end]
    match = _VERSION_TOKEN.search(text)
    if match:
        return match.group(0)
    return None


def _probe_output(cmd: Sequence[str]) -> str:
    completed = subprocess.run(
        list(cmd),
        stdin=subprocess.DEVNULL,
        capture_output=True,
        check=False,
    )
    text = completed.stdout.decode("utf-8", errors="replace")
    stderr = completed.stderr.decode("utf-8", errors="replace")
    if stderr:
        text = f"{text}\n{stderr}" if text else stderr
    return text


def detect_version(
    path: Path, runner: Optional[Callable[[Sequence[str]], str]] = None
) -> Optional[str]:
    """Ask a binary for its version; ``None`` when nothing usable comes back."""
    if not path.is_file():
        return None
    probe = runner if runner is not None else _probe_output
    for flag in VERSION_FLAGS:
        try:
            text = probe([str(path), flag])
        except (OSError, ValueError, subprocess.SubprocessError):
            continue
        version = extract_version(text)
        if version:
            return version
    return None


def require_tool(tool: ToolDescriptor, env_var: str) -> Path:
    """Return the tool path or raise with the variable that would fix it."""
    if not tool.found:
        raise ConfigurationError(
            f"{tool.name} not found ({tool.origin})",
            hint=f"set {env_var} or install it under ${HOME_ENV}/{TOOLS_DIR_NAME}",
        )
    return tool.path


def locate_binaries(
    project_root: Path,
    env: Optional[ToolchainEnv] = None,
    fs: Optional[FileSystemProbe] = None,
) -> tuple[Path, Path]:
    """Compiler and interpreter paths for build and run commands."""
    env = env if env is not None else ToolchainEnv.from_process()
    probe = fs if fs is not None else LocalFileSystem()
    compiler = resolve_executable(COMPILER_NAME, COMPILER_ENV, project_root, env, probe)
    interpreter = resolve_executable(
        INTERPRETER_NAME, INTERPRETER_ENV, project_root, env, probe
    )
    return (
        require_tool(compiler, COMPILER_ENV),
        require_tool(interpreter, INTERPRETER_ENV),
    )

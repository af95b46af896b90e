"""Thin wrappers around the external compiler and interpreter processes.

Only exit status is interpreted; the tools' own output passes through to
the terminal untouched.
"""

import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from pordosol.console import echo_command
from pordosol.targets import Target


@dataclass
class ProcessResult:
    command: list[str]
    returncode: Optional[int] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.returncode == 0

    def describe(self) -> str:
        if self.returncode is None:
            return self.error or "process did not start"
        return f"exit code {self.returncode}"


def run_cmd(cmd: Sequence[str], cwd: Optional[Path] = None) -> ProcessResult:
    """Run a subprocess with stdin closed and report how it ended."""
    command = [str(part) for part in cmd]
    echo_command(command)
    try:
        completed = subprocess.run(
            command,
            cwd=str(cwd) if cwd else None,
            stdin=subprocess.DEVNULL,
            check=False,
        )
    except OSError as exc:
        return ProcessResult(command, error=f"failed to launch {command[0]}: {exc}")
    return ProcessResult(command, returncode=completed.returncode)


def compile_sources(
    compiler: Path, target: Target, sources: Sequence[Path], out_dir: Path
) -> ProcessResult:
    """Invoke ``<compiler> --target=<fmt> <sources...>`` inside ``out_dir``."""
    return run_cmd([str(compiler), target.flag, *map(str, sources)], cwd=out_dir)


def interpret(interpreter: Path, artifact: Path) -> ProcessResult:
    return run_cmd([str(interpreter), str(artifact)])

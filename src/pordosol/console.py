"""Console output helpers shared by the CLI and the library modules."""

import shlex
import sys
from typing import Sequence


PREFIX = "[pordosol]"


def info(message: str) -> None:
    """Print a standard informational message."""
    print(f"{PREFIX} {message}")


def warn(message: str) -> None:
    """Print a non-fatal warning to stderr."""
    print(f"warning: {message}", file=sys.stderr)


def error(message: str) -> None:
    """Print a standardized error message to stderr."""
    print(f"error: {message}", file=sys.stderr)


def echo_command(cmd: Sequence[str]) -> None:
    print("+", " ".join(shlex.quote(part) for part in cmd))

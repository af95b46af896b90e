"""Project manager for the Por do Sol compiler toolchain."""

from pordosol.cli import cli_version, main

__version__ = cli_version()

__all__ = ["__version__", "main"]

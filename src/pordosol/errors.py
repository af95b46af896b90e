"""Exception types raised by the library layer.

Only ``pordosol.cli`` turns these into messages and exit codes.
"""

from typing import Optional


class PordosolError(Exception):
    """Base class for expected failures."""

    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.hint = hint


class ConfigurationError(PordosolError):
    """Missing tools, missing manifest, bad manifest fields, bad arguments."""


class BuildError(PordosolError):
    """A compiler or interpreter process failed."""

    def __init__(
        self, message: str, returncode: Optional[int] = None, hint: Optional[str] = None
    ):
        super().__init__(message, hint)
        self.returncode = returncode


class FileSystemError(PordosolError):
    """Reading or writing a project file failed; the message names the path."""


class ScaffoldError(FileSystemError):
    """Project creation failed while writing files."""


class TemplateNotFoundError(ScaffoldError):
    """Neither a template directory nor a built-in template matched."""

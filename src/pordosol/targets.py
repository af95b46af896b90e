"""Compile target formats accepted by the compiler's ``--target`` flag."""

import enum
from typing import Optional

from pordosol.console import warn


class Target(enum.Enum):
    BYTECODE = "bytecode"
    LLVM_IR = "llvm-ir"
    CIL_BYTECODE = "cil-bytecode"
    CONSOLE = "console"
    UNIVERSAL = "universal"

    @property
    def flag(self) -> str:
        return f"--target={self.value}"


DEFAULT_TARGET = Target.BYTECODE
DEFAULT_RELEASE_TARGET = Target.LLVM_IR

_TARGET_ALIASES = {
    "bytecode": Target.BYTECODE,
    "bc": Target.BYTECODE,
    "llvm": Target.LLVM_IR,
    "llvm-ir": Target.LLVM_IR,
    "cil-bytecode": Target.CIL_BYTECODE,
    "console": Target.CONSOLE,
    "universal": Target.UNIVERSAL,
}

_RELEASE_ALIASES = {
    "llvm": Target.LLVM_IR,
    "llvm-ir": Target.LLVM_IR,
}


def _normalize(text: Optional[str]) -> str:
    return (text or "").strip().lower()


def lookup_target(text: Optional[str]) -> Optional[Target]:
    """Return the matching target, or ``None`` when the text is unknown."""
    return _TARGET_ALIASES.get(_normalize(text))


def parse_target(text: Optional[str]) -> Target:
    """Map free-form target text to a Target, defaulting to bytecode."""
    target = lookup_target(text)
    if target is None:
        warn(f"unknown target '{_normalize(text)}'; using {DEFAULT_TARGET.value}")
        return DEFAULT_TARGET
    return target


def parse_release_target(text: Optional[str]) -> Target:
    """Production builds only accept LLVM-flavoured targets."""
    target = _RELEASE_ALIASES.get(_normalize(text))
    if target is None:
        warn(
            f"unknown production target '{_normalize(text)}'; "
            f"using {DEFAULT_RELEASE_TARGET.value}"
        )
        return DEFAULT_RELEASE_TARGET
    return target

"""Project manifest (``pordosol.proj``) loading, validation and editing.

The manifest is a JSON object::

    {
        "nome": "app",
        "tipo": "console",
        "versao": "1.0.0",
        "descricao": "...",
        "autor": "",
        "dependencias": {"foo": "1.2.3", "bar": {"path": "../bar"}},
        "configuracao": {"target_padrao": "bytecode", "otimizacao": false}
    }

Edits are read-modify-write of the whole document with no locking, so
two concurrent invocations on one project can lose an update.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from pordosol.errors import ConfigurationError, FileSystemError

PROJECT_FILENAME = "pordosol.proj"
FIELD_NAME = "nome"
FIELD_TYPE = "tipo"
FIELD_VERSION = "versao"
FIELD_DESCRIPTION = "descricao"
FIELD_AUTHOR = "autor"
FIELD_DEPENDENCIES = "dependencias"
FIELD_SETTINGS = "configuracao"
FIELD_DEFAULT_TARGET = "target_padrao"
FIELD_OPTIMIZE = "otimizacao"
LOCAL_PATH_KEY = "path"
DEFAULT_DEPENDENCY_VERSION = "*"
DEFAULT_PROJECT_VERSION = "1.0.0"


def manifest_path(project_root: Path) -> Path:
    return project_root / PROJECT_FILENAME


def _parse(path: Path) -> dict:
    try:
        contents = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise FileSystemError(f"failed to read manifest {path}: {exc}") from exc
    try:
        data = json.loads(contents)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"invalid JSON in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"manifest {path} must contain a JSON object")
    return data


def load_manifest(project_root: Path) -> dict:
    """Read the manifest, failing when it is missing or malformed."""
    path = manifest_path(project_root)
    if not path.is_file():
        raise ConfigurationError(
            f"project file not found at {path}",
            hint="create a project with `pordosol new`",
        )
    return _parse(path)


def read_manifest(project_root: Path) -> Optional[dict]:
    """Lenient variant for informational commands: ``None`` on any problem."""
    try:
        return load_manifest(project_root)
    except (ConfigurationError, FileSystemError):
        return None


def write_manifest(path: Path, data: dict) -> None:
    contents = json.dumps(data, indent=4, ensure_ascii=False)
    try:
        path.write_text(f"{contents}\n", encoding="utf-8")
    except OSError as exc:
        raise FileSystemError(f"failed to write {path}: {exc}") from exc


def new_manifest(
    name: str,
    project_type: str,
    description: str,
    default_target: str,
    optimize: bool,
) -> dict:
    return {
        FIELD_NAME: name,
        FIELD_TYPE: project_type,
        FIELD_VERSION: DEFAULT_PROJECT_VERSION,
        FIELD_DESCRIPTION: description,
        FIELD_AUTHOR: "",
        FIELD_DEPENDENCIES: {},
        FIELD_SETTINGS: {
            FIELD_DEFAULT_TARGET: default_target,
            FIELD_OPTIMIZE: optimize,
        },
    }


def _optional_string(data: dict, key: str) -> Optional[str]:
    value = data.get(key)
    if value is None or isinstance(value, str):
        return value
    raise ConfigurationError(
        f"manifest field '{key}' must be a string, got {type(value).__name__}"
    )


def _settings(data: dict) -> dict:
    settings = data.get(FIELD_SETTINGS)
    if settings is None:
        return {}
    if not isinstance(settings, dict):
        raise ConfigurationError(f"manifest field '{FIELD_SETTINGS}' must be an object")
    return settings


@dataclass
class ProjectInfo:
    """Typed view of the descriptive manifest fields."""

    name: Optional[str] = None
    type: Optional[str] = None
    version: Optional[str] = None
    description: Optional[str] = None
    author: Optional[str] = None
    default_target: Optional[str] = None
    optimize: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> "ProjectInfo":
        settings = _settings(data)
        optimize = settings.get(FIELD_OPTIMIZE, False)
        if not isinstance(optimize, bool):
            raise ConfigurationError(
                f"manifest field '{FIELD_SETTINGS}.{FIELD_OPTIMIZE}' must be a boolean"
            )
        return cls(
            name=_optional_string(data, FIELD_NAME),
            type=_optional_string(data, FIELD_TYPE),
            version=_optional_string(data, FIELD_VERSION),
            description=_optional_string(data, FIELD_DESCRIPTION),
            author=_optional_string(data, FIELD_AUTHOR),
            default_target=_optional_string(settings, FIELD_DEFAULT_TARGET),
            optimize=optimize,
        )


def default_target(data: Optional[dict]) -> Optional[str]:
    """The manifest's ``configuracao.target_padrao`` if it is a string."""
    if not data:
        return None
    settings = data.get(FIELD_SETTINGS)
    if not isinstance(settings, dict):
        return None
    value = settings.get(FIELD_DEFAULT_TARGET)
    return value if isinstance(value, str) else None


def dependency_table(data: dict) -> dict[str, Any]:
    deps = data.get(FIELD_DEPENDENCIES)
    if not isinstance(deps, dict):
        raise ConfigurationError(
            f"manifest field '{FIELD_DEPENDENCIES}' is missing or not an object"
        )
    return deps


def _validate_dependency_name(name: Optional[str]) -> str:
    if name is None or not name.strip():
        raise ConfigurationError("dependency name is required")
    name = name.strip()
    if "\n" in name or "\r" in name:
        raise ConfigurationError("dependency name must not include newlines")
    return name


def add_dependency(
    data: dict,
    name: Optional[str],
    version: Optional[str] = None,
    local_path: Optional[Path] = None,
) -> bool:
    """Insert or replace a dependency entry in ``data``.

    A local path takes precedence over a version. Returns True when an
    existing entry was replaced.
    """
    deps = dependency_table(data)
    name = _validate_dependency_name(name)
    existed = name in deps
    if local_path is not None:
        deps[name] = {LOCAL_PATH_KEY: str(local_path)}
    else:
        deps[name] = version or DEFAULT_DEPENDENCY_VERSION
    return existed


def remove_dependency(data: dict, name: Optional[str]) -> bool:
    deps = dependency_table(data)
    name = _validate_dependency_name(name)
    if name not in deps:
        return False
    del deps[name]
    return True


def format_dependency(name: str, value: Any) -> str:
    if isinstance(value, str):
        return f"{name} = {value}"
    if isinstance(value, dict):
        if LOCAL_PATH_KEY in value:
            return f"{name} (path = {value[LOCAL_PATH_KEY]})"
        return f"{name} (obj) = {json.dumps(value)}"
    return f"{name} = {json.dumps(value)}"

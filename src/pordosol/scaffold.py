"""Project creation from template directories or the built-in templates.

A template directory is copied file by file. UTF-8 files get their
placeholders substituted, anything else is copied byte for byte, and a
trailing ``.tpl`` is dropped from file names. Placeholders may also appear
in path components, e.g. ``src/{{PROJECT_NAME}}.pr.tpl``.
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from pordosol.console import info
from pordosol.errors import ScaffoldError, TemplateNotFoundError
from pordosol.manifest import PROJECT_FILENAME, new_manifest, write_manifest
from pordosol.paths import absolutize
from pordosol.planner import BUILD_DIR_NAME
from pordosol.sources import ENTRY_POINT_NAME, SOURCE_DIR_NAME
from pordosol.targets import DEFAULT_TARGET, Target
from pordosol.toolchain import HOME_ENV, ToolchainEnv

TEMPLATES_ENV = "PORDOSOL_TEMPLATES_PATH"
TEMPLATES_DIR_NAME = "templates"
TEMPLATE_SUFFIX = ".tpl"
DEFAULT_TEMPLATE = "console"
DEFAULT_NAMESPACE = "Projeto"
BUILTIN_ORIGIN = "built-in"
README_NAME = "README.md"


@dataclass(frozen=True)
class TemplateVars:
    project_name: str
    namespace: str
    target: str


PLACEHOLDERS: dict[str, Callable[[TemplateVars], str]] = {
    "{{PROJECT_NAME}}": lambda values: values.project_name,
    "{{NAMESPACE}}": lambda values: values.namespace,
    "{{TARGET}}": lambda values: values.target,
}


@dataclass(frozen=True)
class BuiltinTemplate:
    description: str
    target: Target
    optimize: bool
    program: str


_CONSOLE_PROGRAM = """\
// programa.pr - exemplo inicial
funcao vazio Principal()
{
    imprima("Ola, Por do Sol!");

    var nome = "Mundo";
    var numero = 42;

    imprima($"Ola, {nome}! O numero e {numero}");
}
"""

_WEB_PROGRAM = """\
// programa.pr - template web inicial
funcao vazio Principal()
{
    imprima("Projeto web Por do Sol criado.");
    imprima("Proximo passo: configure rotas e servidor no seu framework web.");
}
"""

_LIBRARY_PROGRAM = """\
// biblioteca.pr - template de biblioteca
usando Sistema.IO;

classe publica MinhaClasse
{
    inteiro valor { get; set; }

    publico MinhaClasse(inteiro valorInicial)
    {
        este.valor = valorInicial;
    }

    publico inteiro ObterValorDobrado()
    {
        retorne este.valor * 2;
    }
}
"""

_CLASS_PROGRAM = """\
// classe.pr - template de classe
usando Sistema.IO;

classe MinhaClasse
{
    texto nome { get; set; }
    inteiro idade { get; set; }

    publico MinhaClasse(texto nome, inteiro idade)
    {
        este.nome = nome;
        este.idade = idade;
    }

    publico vazio ApresentarSe()
    {
        imprima($"Ola, eu sou {este.nome} e tenho {este.idade} anos.");
    }
}

funcao vazio Principal()
{
    var pessoa = novo MinhaClasse("Joao", 25);
    pessoa.ApresentarSe();
}
"""

BUILTIN_TEMPLATES: dict[str, BuiltinTemplate] = {
    "biblioteca": BuiltinTemplate(
        "Uma biblioteca em Por do Sol", Target.LLVM_IR, True, _LIBRARY_PROGRAM
    ),
    "classe": BuiltinTemplate(
        "Uma classe em Por do Sol", DEFAULT_TARGET, False, _CLASS_PROGRAM
    ),
    "console": BuiltinTemplate(
        "Uma aplicacao console em Por do Sol", DEFAULT_TARGET, False, _CONSOLE_PROGRAM
    ),
    "web": BuiltinTemplate(
        "Uma aplicacao web em Por do Sol", DEFAULT_TARGET, False, _WEB_PROGRAM
    ),
}

_TEMPLATE_ALIASES = {
    "library": "biblioteca",
    "class": "classe",
}

_README = """\
# {name}

A Por do Sol project.

## Usage

### Build and run
```bash
pordosol run
```

### Build only
```bash
pordosol build
```

### Production build
```bash
pordosol producao
```

### Clean build outputs
```bash
pordosol clean
```

## Layout

- `src/` - source code
- `build/` - build artifacts
- `pordosol.proj` - project manifest
"""

_NAMESPACE_SPLIT = re.compile(r"[^A-Za-z0-9]+")


@dataclass
class ScaffoldResult:
    root: Path
    template: str
    origin: str
    created: list[Path] = field(default_factory=list)
    skipped: list[Path] = field(default_factory=list)


def normalize_template_name(text: Optional[str]) -> str:
    name = (text or "").strip().lower()
    if not name:
        raise ScaffoldError(
            "template name is empty", hint="see `pordosol new list` for the choices"
        )
    return _TEMPLATE_ALIASES.get(name, name)


def _namespace_token(token: str) -> str:
    first, rest = token[0], token[1:].lower()
    if first.isdigit():
        return f"_{first}{rest}"
    return f"{first.upper()}{rest}"


def derive_namespace(directory: Path) -> str:
    """``my-app2`` becomes ``My.App2``; digit-led tokens get a ``_`` prefix."""
    tokens = [token for token in _NAMESPACE_SPLIT.split(directory.name) if token]
    if not tokens:
        return DEFAULT_NAMESPACE
    return ".".join(_namespace_token(token) for token in tokens)


def default_target_for(template: str) -> Target:
    builtin = BUILTIN_TEMPLATES.get(template)
    return builtin.target if builtin else DEFAULT_TARGET


def render_placeholders(text: str, values: TemplateVars) -> str:
    for placeholder, value in PLACEHOLDERS.items():
        text = text.replace(placeholder, value(values))
    return text


def render_relative_path(relative: Path, values: TemplateVars) -> Path:
    parts = []
    for part in relative.parts:
        rendered = render_placeholders(part, values)
        if rendered.endswith(TEMPLATE_SUFFIX):
            rendered = rendered[: -len(TEMPLATE_SUFFIX)]
        parts.append(rendered)
    return Path(*parts)


def locate_templates_dir(env: Optional[ToolchainEnv] = None) -> Optional[Path]:
    env = env if env is not None else ToolchainEnv.from_process()
    candidates = []
    override = env.path_var(TEMPLATES_ENV)
    if override is not None:
        candidates.append(override)
    home = env.path_var(HOME_ENV)
    if home is not None:
        candidates.append(home / TEMPLATES_DIR_NAME)
    candidates.extend(path / TEMPLATES_DIR_NAME for path in env.install_dirs())
    for candidate in candidates:
        if candidate.is_dir():
            return candidate
    return None


def available_templates(env: Optional[ToolchainEnv] = None) -> list[str]:
    templates_dir = locate_templates_dir(env)
    if templates_dir is None:
        return sorted(BUILTIN_TEMPLATES)
    return sorted(entry.name for entry in templates_dir.iterdir() if entry.is_dir())


def _write_file(
    path: Path, contents: bytes, overwrite: bool, result: ScaffoldResult
) -> None:
    if path.exists() and not overwrite:
        info(f"{path} already exists (not overwritten)")
        result.skipped.append(path)
        return
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(contents)
    except OSError as exc:
        raise ScaffoldError(f"failed to write {path}: {exc}") from exc
    info(f"created {path}")
    result.created.append(path)


def _render_file(source: Path, values: TemplateVars) -> bytes:
    try:
        raw = source.read_bytes()
    except OSError as exc:
        raise ScaffoldError(f"failed to read template file {source}: {exc}") from exc
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError:
        return raw
    return render_placeholders(text, values).encode("utf-8")


def _apply_template_dir(
    template_dir: Path, values: TemplateVars, overwrite: bool, result: ScaffoldResult
) -> None:
    for current, dirs, names in os.walk(template_dir):
        dirs.sort()
        for name in sorted(names):
            source = Path(current) / name
            if not source.is_file():
                continue
            relative = render_relative_path(source.relative_to(template_dir), values)
            _write_file(
                result.root / relative, _render_file(source, values), overwrite, result
            )


def _apply_builtin(
    builtin: BuiltinTemplate, values: TemplateVars, overwrite: bool, result: ScaffoldResult
) -> None:
    root = result.root
    try:
        (root / SOURCE_DIR_NAME).mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ScaffoldError(f"failed to create {root / SOURCE_DIR_NAME}: {exc}") from exc

    manifest = root / PROJECT_FILENAME
    if manifest.exists() and not overwrite:
        info(f"{manifest} already exists (not overwritten)")
        result.skipped.append(manifest)
    else:
        data = new_manifest(
            values.project_name,
            result.template,
            builtin.description,
            builtin.target.value,
            builtin.optimize,
        )
        write_manifest(manifest, data)
        info(f"created {manifest}")
        result.created.append(manifest)

    program = root / SOURCE_DIR_NAME / ENTRY_POINT_NAME
    _write_file(program, builtin.program.encode("utf-8"), overwrite, result)
    readme = _README.format(name=values.project_name)
    _write_file(root / README_NAME, readme.encode("utf-8"), overwrite, result)


def create_project(
    destination: Path,
    template: Optional[str] = DEFAULT_TEMPLATE,
    overwrite: bool = True,
    env: Optional[ToolchainEnv] = None,
) -> ScaffoldResult:
    """
    Create a project at ``destination`` from ``template``.

    A directory named after the template inside the templates directory
    wins over the built-in template of the same name. Existing files are
    replaced unless ``overwrite`` is False, in which case they are skipped
    and listed in ``ScaffoldResult.skipped``.
    """
    env = env if env is not None else ToolchainEnv.from_process()
    name = normalize_template_name(template)
    root = absolutize(destination)
    try:
        (root / BUILD_DIR_NAME).mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ScaffoldError(f"failed to create project dir {root}: {exc}") from exc

    values = TemplateVars(
        project_name=root.name,
        namespace=derive_namespace(root),
        target=default_target_for(name).value,
    )

    templates_dir = locate_templates_dir(env)
    if templates_dir is not None and (templates_dir / name).is_dir():
        result = ScaffoldResult(root, name, str(templates_dir / name))
        _apply_template_dir(templates_dir / name, values, overwrite, result)
    elif name in BUILTIN_TEMPLATES:
        result = ScaffoldResult(root, name, BUILTIN_ORIGIN)
        _apply_builtin(BUILTIN_TEMPLATES[name], values, overwrite, result)
    else:
        raise TemplateNotFoundError(
            f"template '{name}' not found",
            hint="see `pordosol new list` for the available templates",
        )

    info(f"{name} project ready at {root}")
    return result

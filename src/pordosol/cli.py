#!/usr/bin/env python3
"""Command-line entry point for managing Por do Sol projects."""

import argparse
import importlib.metadata
import sys
from pathlib import Path
from typing import Callable, Optional, Sequence

from pordosol.console import error, info, warn
from pordosol.errors import BuildError, ConfigurationError, PordosolError
from pordosol.manifest import (
    PROJECT_FILENAME,
    ProjectInfo,
    add_dependency,
    default_target,
    dependency_table,
    format_dependency,
    load_manifest,
    manifest_path,
    read_manifest,
    remove_dependency,
    write_manifest,
)
from pordosol.paths import absolutize, find_project_root, relative_to_root
from pordosol.planner import (
    ARTIFACT_EXTENSION,
    BUILD_DIR_NAME,
    build_dir_for,
    clean_build_dir,
    ensure_build_dir,
    list_build_outputs,
    plan_build,
    require_artifact,
    resolve_artifact_path,
)
from pordosol.runner import ProcessResult, compile_sources, interpret
from pordosol.scaffold import (
    BUILTIN_TEMPLATES,
    DEFAULT_TEMPLATE,
    available_templates,
    create_project,
    normalize_template_name,
)
from pordosol.sources import (
    SOURCE_DIR_NAME,
    SOURCE_EXTENSION,
    describe_sources,
    is_source_file,
    list_sources,
)
from pordosol.targets import (
    DEFAULT_RELEASE_TARGET,
    DEFAULT_TARGET,
    parse_release_target,
    parse_target,
)
from pordosol.toolchain import (
    COMPILER_ENV,
    COMPILER_NAME,
    ToolchainEnv,
    detect_version,
    diagnose_toolchain,
    locate_binaries,
    require_tool,
    resolve_executable,
)

DIST_NAME = "pordosol-cli"
FALLBACK_VERSION = "0.1.0"
LIST_TEMPLATES = "list"
DEP_ADD = {"add"}
DEP_REMOVE = {"remove", "rm"}
DEP_LIST = {"list", "ls", "listar"}

EXIT_FAILURE = 1
EXIT_USAGE = 2


def cli_version() -> str:
    try:
        return importlib.metadata.version(DIST_NAME)
    except importlib.metadata.PackageNotFoundError:
        return FALLBACK_VERSION


def _project_input(args: argparse.Namespace) -> Path:
    return Path(args.project) if args.project else Path(args.path)


def _collect_sources(target_input: Path, project_root: Path) -> list[Path]:
    if is_source_file(target_input):
        return [absolutize(target_input)]
    sources = list_sources(project_root)
    if not sources:
        raise ConfigurationError(
            f"no {SOURCE_EXTENSION} files found in {project_root / SOURCE_DIR_NAME}"
        )
    return sources


def _check(result: ProcessResult, action: str) -> None:
    if not result.success:
        raise BuildError(f"{action} failed ({result.describe()})", result.returncode)


def _print_outputs(build_dir: Path) -> None:
    outputs = list_build_outputs(build_dir)
    if not outputs:
        return
    print("generated files:")
    for name, size in outputs:
        print(f"  {name} ({size} bytes)")


def print_versions(env: ToolchainEnv) -> None:
    print(f"pordosol CLI v{cli_version()}")
    root = find_project_root(Path.cwd())
    compiler = resolve_executable(COMPILER_NAME, COMPILER_ENV, root, env)
    if not compiler.found:
        print(f"compiler not found ({compiler.origin})")
        return
    version = detect_version(compiler.path)
    if version:
        print(f"{COMPILER_NAME} {version}")
    else:
        print(f"{COMPILER_NAME} at {compiler.path}: version not detected")


def cmd_new(args: argparse.Namespace, env: ToolchainEnv) -> int:
    positional = args.type_or_path
    if positional and positional.strip().lower() == LIST_TEMPLATES:
        print("available templates:")
        for name in available_templates(env):
            print(f"  {name}")
        return 0

    template = args.template or args.type
    legacy_path: Optional[Path] = None
    if positional:
        known = set(available_templates(env)) | set(BUILTIN_TEMPLATES)
        candidate = positional.strip().lower()
        if not template and candidate and normalize_template_name(candidate) in known:
            template = candidate
        else:
            legacy_path = Path(positional)

    if args.name:
        destination = Path(args.output or ".") / args.name
    elif legacy_path is not None:
        destination = legacy_path
    elif args.output:
        destination = Path(args.output)
    else:
        destination = Path.cwd()

    create_project(
        destination,
        template or DEFAULT_TEMPLATE,
        overwrite=not args.no_overwrite,
        env=env,
    )
    return 0


def cmd_build(args: argparse.Namespace, env: ToolchainEnv) -> int:
    target_input = _project_input(args)
    root = find_project_root(target_input)
    target_text = args.target or default_target(read_manifest(root))
    target = parse_target(target_text) if target_text else DEFAULT_TARGET
    sources = _collect_sources(target_input, root)
    compiler = require_tool(
        resolve_executable(COMPILER_NAME, COMPILER_ENV, root, env), COMPILER_ENV
    )
    out_dir = ensure_build_dir(
        build_dir_for(root, Path(args.output) if args.output else None)
    )

    # only bytecode artifacts follow the <stem>.pbc naming
    if target is DEFAULT_TARGET:
        artifact = resolve_artifact_path(None, sources, out_dir)
        plan = plan_build(sources, artifact, force=args.force)
        if not plan.rebuild:
            info(f"{artifact.name} is up to date; skipping compilation")
            return 0

    info(f"compiling {len(sources)} file(s) for {target.value}")
    _check(compile_sources(compiler, target, sources, out_dir), "compilation")
    info(f"build succeeded; output in {out_dir}")
    _print_outputs(out_dir)
    return 0


def cmd_run(args: argparse.Namespace, env: ToolchainEnv) -> int:
    target_input = _project_input(args)
    root = find_project_root(target_input)
    explicit = Path(args.file) if args.file else None
    prebuilt = explicit is not None and explicit.suffix == ARTIFACT_EXTENSION

    if explicit is not None and explicit.suffix == SOURCE_EXTENSION:
        sources = [absolutize(explicit)]
        explicit = None
    elif prebuilt:
        sources = list_sources(root)
    else:
        sources = _collect_sources(target_input, root)

    compiler, interpreter = locate_binaries(root, env)
    build_dir = ensure_build_dir(build_dir_for(root))
    artifact = resolve_artifact_path(
        absolutize(explicit) if explicit is not None else None, sources, build_dir
    )

    plan = plan_build(sources, artifact, args.force, args.no_build or prebuilt)
    if plan.rebuild:
        info(f"compiling ({plan.reason})")
        _check(
            compile_sources(compiler, DEFAULT_TARGET, sources, build_dir),
            "compilation",
        )
        info("compilation finished")
    elif prebuilt:
        info("prebuilt artifact given; skipping compilation")
    elif args.no_build:
        info("--no-build set; skipping compilation")
    else:
        info("bytecode is up to date; skipping compilation")

    if args.no_build or prebuilt:
        require_artifact(artifact)

    info(f"running {artifact}")
    _check(interpret(interpreter, artifact), "run")
    return 0


def cmd_release(args: argparse.Namespace, env: ToolchainEnv) -> int:
    target_input = _project_input(args)
    root = find_project_root(target_input)
    target = (
        parse_release_target(args.target) if args.target else DEFAULT_RELEASE_TARGET
    )
    sources = _collect_sources(target_input, root)
    compiler = require_tool(
        resolve_executable(COMPILER_NAME, COMPILER_ENV, root, env), COMPILER_ENV
    )
    out_dir = ensure_build_dir(build_dir_for(root))

    info(f"production build for {target.value} with {len(sources)} file(s)")
    _check(compile_sources(compiler, target, sources, out_dir), "production build")
    info(f"production build finished; artifacts in {out_dir}")
    _print_outputs(out_dir)
    return 0


def cmd_clean(args: argparse.Namespace, env: ToolchainEnv) -> int:
    root = find_project_root(_project_input(args))
    build_dir = build_dir_for(root)
    if not build_dir.exists():
        info(f"no {BUILD_DIR_NAME}/ directory in {root}")
        return 0
    count = clean_build_dir(build_dir, root)
    info(f"removed {count} item(s) from {build_dir}")
    return 0


def _print_project_fields(root: Path) -> None:
    data = read_manifest(root)
    if data is None:
        print(f"project file ({PROJECT_FILENAME}) not found or unreadable")
        return
    try:
        project = ProjectInfo.from_dict(data)
    except ConfigurationError as exc:
        warn(f"{manifest_path(root)}: {exc.message}")
        return
    fields = [
        ("name", project.name),
        ("type", project.type),
        ("version", project.version),
        ("description", project.description),
        ("default target", project.default_target),
    ]
    for label, value in fields:
        if value:
            print(f"{label}: {value}")


def cmd_info(args: argparse.Namespace, env: ToolchainEnv) -> int:
    root = find_project_root(_project_input(args))
    print("=== project ===")
    print(f"root: {root}")
    _print_project_fields(root)

    sources = list_sources(root)
    print(f"\n{SOURCE_EXTENSION} files: {len(sources)}")
    for path in sources:
        print(f"  - {relative_to_root(path, root)}")

    print("\n=== tools ===")
    for role, tool in diagnose_toolchain(root, env).roles():
        state = "found" if tool.found else "missing"
        print(f"{role}: {tool.path} ({tool.origin}, {state})")

    build_dir = build_dir_for(root)
    if build_dir.is_dir():
        count = len(list(build_dir.iterdir()))
        print(f"\n{BUILD_DIR_NAME}/: {count} item(s)")
    else:
        print(f"\n{BUILD_DIR_NAME}/: missing")
    return 0


def cmd_doctor(args: argparse.Namespace, env: ToolchainEnv) -> int:
    root = find_project_root(_project_input(args))
    diagnosis = diagnose_toolchain(root, env)
    print(f"toolchain diagnosis for {root}")
    for role, tool in diagnosis.roles():
        status = "OK" if tool.found else "MISSING"
        line = f"  {role}: {status} {tool.path} ({tool.origin})"
        if tool.found and role != "standard library":
            version = detect_version(tool.path)
            if version:
                line = f"{line} {version}"
        print(line)

    if diagnosis.ready:
        print("result: toolchain ready")
        return 0
    missing = ", ".join(tool.name for tool in diagnosis.missing())
    print(f"result: toolchain incomplete (missing: {missing})")
    print("hints:")
    for hint in diagnosis.remediation():
        print(f"  - {hint}")
    return EXIT_FAILURE


def cmd_listar(args: argparse.Namespace, env: ToolchainEnv) -> int:
    root = find_project_root(_project_input(args))
    sources = list_sources(root)
    if not sources:
        print(f"no {SOURCE_EXTENSION} files found in {root / SOURCE_DIR_NAME}")
        return 0
    print(f"{SOURCE_EXTENSION} files in project:")
    for entry in describe_sources(sources, recent_only=args.recent):
        shown = relative_to_root(entry.path, root)
        if entry.size is None:
            print(f"  {shown}")
        elif args.recent:
            print(f"  {shown} (modified {entry.age_seconds}s ago)")
        else:
            print(f"  {shown} ({entry.size} bytes)")
    return 0


def cmd_dep(args: argparse.Namespace, env: ToolchainEnv) -> int:
    action = (args.action or "list").strip().lower()
    root = find_project_root(Path(args.project_dir))
    data = load_manifest(root)
    path = manifest_path(root)

    if action in DEP_ADD:
        local_path = Path(args.local_path) if args.local_path else None
        replaced = add_dependency(data, args.name, args.dep_version, local_path)
        name = args.name.strip()
        if replaced:
            info(f"dependency '{name}' already exists; updating")
        write_manifest(path, data)
        info(f"dependency '{name}' added")
        return 0

    if action in DEP_REMOVE:
        if remove_dependency(data, args.name):
            write_manifest(path, data)
            info(f"dependency '{args.name.strip()}' removed")
        else:
            info(f"dependency '{args.name.strip()}' not found")
        return 0

    if action in DEP_LIST:
        deps = dependency_table(data)
        if not deps:
            print("no dependencies declared")
            return 0
        print("dependencies:")
        for name, value in deps.items():
            print(f"  - {format_dependency(name, value)}")
        return 0

    raise ConfigurationError(
        f"unknown dep action '{action}'", hint="use add, remove or list"
    )


def _add_project_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("path", nargs="?", default=".", help="project dir or file")
    parser.add_argument(
        "-p", "--project", metavar="DIR", help="project dir (overrides path)"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pordosol",
        description="Project manager for the Por do Sol toolchain",
    )
    parser.add_argument(
        "-V",
        "--versao",
        "--version",
        dest="show_version",
        action="store_true",
        help="show the CLI version and the detected compiler version",
    )
    subparsers = parser.add_subparsers(dest="command")

    new = subparsers.add_parser(
        "new", aliases=["novo", "criar"], help="create a project from a template"
    )
    new.add_argument(
        "type_or_path", nargs="?", help="template name, `list`, or a project path"
    )
    new.add_argument("-n", "--name", help="project name (dir under --output)")
    new.add_argument("-o", "--output", help="parent dir for the new project")
    new.add_argument("-t", "--type", help="template name")
    new.add_argument("--template", help="template name")
    new.add_argument(
        "--nao-sobrescrever",
        "--no-overwrite",
        dest="no_overwrite",
        action="store_true",
        help="keep files that already exist",
    )
    new.set_defaults(handler=cmd_new)

    build = subparsers.add_parser(
        "build", aliases=["compilar"], help="compile the project sources"
    )
    _add_project_args(build)
    build.add_argument("--target", help="bytecode, llvm-ir, cil-bytecode, console, universal")
    build.add_argument("--saida", "--output", dest="output", help="output dir")
    build.add_argument("--force", action="store_true", help="always recompile")
    build.set_defaults(handler=cmd_build)

    run = subparsers.add_parser(
        "run", aliases=["rodar"], help="compile if needed, then run the bytecode"
    )
    _add_project_args(run)
    run.add_argument("--force", action="store_true", help="always recompile")
    run.add_argument(
        "--no-build", action="store_true", help="run the existing artifact only"
    )
    run.add_argument(
        "--arquivo", "--file", dest="file", help="artifact (.pbc) or source (.pr)"
    )
    run.set_defaults(handler=cmd_run)

    release = subparsers.add_parser(
        "producao", aliases=["release"], help="production build (LLVM)"
    )
    _add_project_args(release)
    release.add_argument("--target", help="llvm or llvm-ir")
    release.set_defaults(handler=cmd_release)

    clean = subparsers.add_parser(
        "clean", aliases=["limpar"], help="remove build outputs"
    )
    _add_project_args(clean)
    clean.set_defaults(handler=cmd_clean)

    info_parser = subparsers.add_parser("info", help="show project details")
    _add_project_args(info_parser)
    info_parser.set_defaults(handler=cmd_info)

    doctor = subparsers.add_parser(
        "doctor", aliases=["diagnostico"], help="check the toolchain setup"
    )
    _add_project_args(doctor)
    doctor.set_defaults(handler=cmd_doctor)

    listar = subparsers.add_parser("listar", help="list project source files")
    _add_project_args(listar)
    listar.add_argument(
        "--recentes",
        "--recent",
        dest="recent",
        action="store_true",
        help="only files changed in the last day",
    )
    listar.set_defaults(handler=cmd_listar)

    dep = subparsers.add_parser("dep", help="manage manifest dependencies")
    dep.add_argument("action", nargs="?", default="list", help="add, remove, list")
    dep.add_argument("name", nargs="?", help="dependency name")
    dep.add_argument("--versao", "--version", dest="dep_version", help="version")
    dep.add_argument("--caminho", "--path", dest="local_path", help="local path")
    dep.add_argument(
        "--projeto", dest="project_dir", default=".", help="project dir"
    )
    dep.set_defaults(handler=cmd_dep)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    env = ToolchainEnv.from_process()

    if args.show_version:
        print_versions(env)
        return 0

    handler: Optional[Callable[[argparse.Namespace, ToolchainEnv], int]] = getattr(
        args, "handler", None
    )
    if handler is None:
        parser.print_help()
        return EXIT_USAGE

    try:
        return handler(args, env)
    except ConfigurationError as exc:
        _report(exc)
        return EXIT_USAGE
    except PordosolError as exc:
        _report(exc)
        return EXIT_FAILURE


def _report(exc: PordosolError) -> None:
    error(exc.message)
    if exc.hint:
        print(f"hint: {exc.hint}", file=sys.stderr)


if __name__ == "__main__":
    raise SystemExit(main())

import json
import os
from pathlib import Path

import pytest

from pordosol import cli
from pordosol.runner import ProcessResult
from pordosol.toolchain import (
    COMPILER_ENV,
    HOME_ENV,
    INTERPRETER_ENV,
    STDLIB_ENV,
    STDLIB_LEGACY_ENV,
)
from pordosol.scaffold import TEMPLATES_ENV

TOOL_VARS = (
    COMPILER_ENV,
    INTERPRETER_ENV,
    STDLIB_ENV,
    STDLIB_LEGACY_ENV,
    HOME_ENV,
    TEMPLATES_ENV,
)


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    for name in TOOL_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("PATH", str(tmp_path / "empty-path"))
    monkeypatch.setattr(cli.ToolchainEnv, "from_process", classmethod(_bare_env))


def _bare_env(cls):
    return cls(variables=dict(os.environ), search_path=os.environ["PATH"])


def _fake_tools(tmp_path: Path, monkeypatch) -> tuple[Path, Path]:
    tools = tmp_path / "tools"
    tools.mkdir()
    compiler = tools / "compilador"
    interpreter = tools / "interpretador"
    compiler.write_text("")
    interpreter.write_text("")
    monkeypatch.setenv(COMPILER_ENV, str(compiler))
    monkeypatch.setenv(INTERPRETER_ENV, str(interpreter))
    return compiler, interpreter


def _new_console(tmp_path: Path) -> Path:
    assert cli.main(["new", "console", "-n", "app", "-o", str(tmp_path)]) == 0
    return tmp_path / "app"


def test_new_with_name_and_output(tmp_path):
    root = _new_console(tmp_path)

    data = json.loads((root / "pordosol.proj").read_text(encoding="utf-8"))
    assert data["nome"] == "app"
    assert data["configuracao"]["target_padrao"] == "bytecode"


def test_new_legacy_path_positional(tmp_path):
    assert cli.main(["novo", str(tmp_path / "legacy"), "--template", "web"]) == 0

    data = json.loads(
        (tmp_path / "legacy" / "pordosol.proj").read_text(encoding="utf-8")
    )
    assert data["tipo"] == "web"


def test_new_list_shows_builtins(capsys):
    assert cli.main(["new", "list"]) == 0

    out = capsys.readouterr().out
    for name in ("biblioteca", "classe", "console", "web"):
        assert f"  {name}" in out


def test_new_unknown_template_fails(tmp_path, capsys):
    code = cli.main(["new", "-t", "desktop", "-o", str(tmp_path / "d")])

    assert code == 1
    assert "template 'desktop' not found" in capsys.readouterr().err


def test_dep_add_list_remove(tmp_path, capsys):
    root = _new_console(tmp_path)
    capsys.readouterr()

    assert cli.main(["dep", "add", "foo", "--versao", "1.2.3", "--projeto", str(root)]) == 0
    assert cli.main(["dep", "add", "bar", "--caminho", "../bar", "--projeto", str(root)]) == 0
    assert cli.main(["dep", "list", "--projeto", str(root)]) == 0
    out = capsys.readouterr().out
    assert "foo = 1.2.3" in out
    assert "bar (path = ../bar)" in out

    assert cli.main(["dep", "rm", "foo", "--projeto", str(root)]) == 0
    assert cli.main(["dep", "ls", "--projeto", str(root)]) == 0
    assert "foo = 1.2.3" not in capsys.readouterr().out


def test_dep_remove_missing_is_not_an_error(tmp_path, capsys):
    root = _new_console(tmp_path)

    assert cli.main(["dep", "remove", "ghost", "--projeto", str(root)]) == 0
    assert "dependency 'ghost' not found" in capsys.readouterr().out


def test_dep_without_manifest_or_bad_action(tmp_path, capsys):
    assert cli.main(["dep", "list", "--projeto", str(tmp_path)]) == 2
    err = capsys.readouterr().err
    assert "project file not found" in err
    assert "hint:" in err

    root = _new_console(tmp_path)
    assert cli.main(["dep", "upgrade", "foo", "--projeto", str(root)]) == 2


def test_doctor_in_empty_env_reports_and_fails(tmp_path, capsys):
    code = cli.main(["doctor", "-p", str(tmp_path)])

    out = capsys.readouterr().out
    assert code == 1
    assert "MISSING" in out
    assert "result: toolchain incomplete" in out
    assert COMPILER_ENV in out


def test_doctor_ready(tmp_path, monkeypatch, capsys):
    _fake_tools(tmp_path, monkeypatch)
    stdlib = tmp_path / "stdlib"
    (stdlib / "src").mkdir(parents=True)
    monkeypatch.setenv(STDLIB_ENV, str(stdlib))
    monkeypatch.setattr(cli, "detect_version", lambda path: None)

    assert cli.main(["diagnostico", str(tmp_path)]) == 0
    assert "result: toolchain ready" in capsys.readouterr().out


def test_build_without_compiler_is_configuration_error(tmp_path, capsys):
    root = _new_console(tmp_path)

    assert cli.main(["build", "--project", str(root)]) == 2
    assert COMPILER_ENV in capsys.readouterr().err


def test_build_uses_manifest_default_target(tmp_path, monkeypatch):
    root = _new_console(tmp_path)
    _fake_tools(tmp_path, monkeypatch)
    manifest = root / "pordosol.proj"
    data = json.loads(manifest.read_text(encoding="utf-8"))
    data["configuracao"]["target_padrao"] = "llvm"
    manifest.write_text(json.dumps(data), encoding="utf-8")
    calls = []

    def fake_compile(compiler, target, sources, out_dir):
        calls.append((target, sources, out_dir))
        return ProcessResult([str(compiler)], returncode=0)

    monkeypatch.setattr(cli, "compile_sources", fake_compile)

    assert cli.main(["compilar", str(root)]) == 0
    target, sources, out_dir = calls[0]
    assert target.value == "llvm-ir"
    assert sources == [root / "src" / "programa.pr"]
    assert out_dir == root / "build"


def test_build_failure_carries_exit_code(tmp_path, monkeypatch, capsys):
    root = _new_console(tmp_path)
    _fake_tools(tmp_path, monkeypatch)
    monkeypatch.setattr(
        cli,
        "compile_sources",
        lambda *a: ProcessResult(["compilador"], returncode=4),
    )

    assert cli.main(["build", "-p", str(root)]) == 1
    assert "compilation failed (exit code 4)" in capsys.readouterr().err


def test_run_no_build_requires_artifact(tmp_path, monkeypatch, capsys):
    root = _new_console(tmp_path)
    _fake_tools(tmp_path, monkeypatch)

    assert cli.main(["run", "-p", str(root), "--no-build"]) == 2
    assert "artifact not found" in capsys.readouterr().err


def test_run_skips_compile_when_up_to_date(tmp_path, monkeypatch, capsys):
    root = _new_console(tmp_path)
    _fake_tools(tmp_path, monkeypatch)
    artifact = root / "build" / "programa.pbc"
    artifact.write_text("bc")
    source_time = (root / "src" / "programa.pr").stat().st_mtime
    os.utime(artifact, (source_time + 10, source_time + 10))
    ran = []
    monkeypatch.setattr(
        cli, "compile_sources", lambda *a: pytest.fail("should not compile")
    )
    monkeypatch.setattr(
        cli,
        "interpret",
        lambda interpreter, path: ran.append(path) or ProcessResult([], returncode=0),
    )

    assert cli.main(["rodar", str(root)]) == 0
    assert ran == [artifact]
    assert "up to date" in capsys.readouterr().out


def test_run_explicit_artifact_skips_compile(tmp_path, monkeypatch):
    root = _new_console(tmp_path)
    _fake_tools(tmp_path, monkeypatch)
    prebuilt = tmp_path / "other.pbc"
    prebuilt.write_text("bc")
    ran = []
    monkeypatch.setattr(
        cli, "compile_sources", lambda *a: pytest.fail("should not compile")
    )
    monkeypatch.setattr(
        cli,
        "interpret",
        lambda interpreter, path: ran.append(path) or ProcessResult([], returncode=0),
    )

    assert cli.main(["run", "-p", str(root), "--arquivo", str(prebuilt)]) == 0
    assert ran == [prebuilt]


def test_release_rejects_non_llvm_target(tmp_path, monkeypatch, capsys):
    root = _new_console(tmp_path)
    _fake_tools(tmp_path, monkeypatch)
    targets = []
    monkeypatch.setattr(
        cli,
        "compile_sources",
        lambda c, target, s, o: targets.append(target) or ProcessResult([], returncode=0),
    )

    assert cli.main(["release", "-p", str(root), "--target", "bytecode"]) == 0
    assert targets[0].value == "llvm-ir"
    assert "unknown production target" in capsys.readouterr().err


def test_clean_and_listar(tmp_path, capsys):
    root = _new_console(tmp_path)
    (root / "build" / "programa.pbc").write_text("bc")
    capsys.readouterr()

    assert cli.main(["limpar", str(root)]) == 0
    assert list((root / "build").iterdir()) == []
    assert "removed 1 item(s)" in capsys.readouterr().out

    assert cli.main(["listar", str(root), "--recentes"]) == 0
    assert "src/programa.pr" in capsys.readouterr().out


def test_info_prints_manifest_and_tools(tmp_path, capsys):
    root = _new_console(tmp_path)
    capsys.readouterr()

    assert cli.main(["info", "-p", str(root)]) == 0
    out = capsys.readouterr().out
    assert "name: app" in out
    assert ".pr files: 1" in out
    assert "compiler:" in out
    assert "build/: 0 item(s)" in out


def test_version_flag(capsys):
    assert cli.main(["--versao"]) == 0
    out = capsys.readouterr().out
    assert out.startswith("pordosol CLI v")
    assert "compiler not found" in out


def test_no_command_prints_help(capsys):
    assert cli.main([]) == 2
    assert "usage:" in capsys.readouterr().out


def _compiler_writing_artifact(calls):
    def fake_compile(compiler, target, sources, out_dir):
        calls.append(target)
        (out_dir / f"{sources[0].stem}.pbc").write_text("bc")
        return ProcessResult([str(compiler)], returncode=0)

    return fake_compile


def test_build_twice_skips_second_compile(tmp_path, monkeypatch, capsys):
    root = _new_console(tmp_path)
    _fake_tools(tmp_path, monkeypatch)
    source = root / "src" / "programa.pr"
    os.utime(source, (1_000_000, 1_000_000))
    calls = []
    monkeypatch.setattr(cli, "compile_sources", _compiler_writing_artifact(calls))

    assert cli.main(["build", str(root)]) == 0
    assert cli.main(["build", str(root)]) == 0

    assert len(calls) == 1
    assert "programa.pbc is up to date" in capsys.readouterr().out


def test_build_force_and_changed_source_recompile(tmp_path, monkeypatch):
    root = _new_console(tmp_path)
    _fake_tools(tmp_path, monkeypatch)
    source = root / "src" / "programa.pr"
    os.utime(source, (1_000_000, 1_000_000))
    calls = []
    monkeypatch.setattr(cli, "compile_sources", _compiler_writing_artifact(calls))

    assert cli.main(["build", str(root)]) == 0
    assert cli.main(["build", str(root), "--force"]) == 0
    artifact_time = (root / "build" / "programa.pbc").stat().st_mtime
    os.utime(source, (artifact_time + 10, artifact_time + 10))
    assert cli.main(["build", str(root)]) == 0

    assert len(calls) == 3


def test_build_non_bytecode_target_always_compiles(tmp_path, monkeypatch):
    root = _new_console(tmp_path)
    _fake_tools(tmp_path, monkeypatch)
    calls = []
    monkeypatch.setattr(cli, "compile_sources", _compiler_writing_artifact(calls))

    assert cli.main(["build", str(root), "--target", "llvm"]) == 0
    assert cli.main(["build", str(root), "--target", "llvm"]) == 0

    assert [target.value for target in calls] == ["llvm-ir", "llvm-ir"]


def test_doctor_names_missing_tools(tmp_path, monkeypatch, capsys):
    compiler, _ = _fake_tools(tmp_path, monkeypatch)
    monkeypatch.delenv(INTERPRETER_ENV)
    monkeypatch.setattr(cli, "detect_version", lambda path: None)

    assert cli.main(["doctor", str(tmp_path)]) == 1
    out = capsys.readouterr().out
    assert "missing: interpretador, stdlib" in out
    assert f"compiler: OK {compiler}" in out


def test_info_counts_every_build_entry(tmp_path, capsys):
    root = _new_console(tmp_path)
    (root / "build" / "programa.pbc").write_text("bc")
    (root / "build" / "cache").mkdir()
    capsys.readouterr()

    assert cli.main(["info", str(root)]) == 0
    assert "build/: 2 item(s)" in capsys.readouterr().out


def test_build_single_source_file(tmp_path, monkeypatch):
    root = _new_console(tmp_path)
    _fake_tools(tmp_path, monkeypatch)
    extra = root / "src" / "extra.pr"
    extra.write_text("")
    calls = []

    def fake_compile(compiler, target, sources, out_dir):
        calls.append(sources)
        return ProcessResult([str(compiler)], returncode=0)

    monkeypatch.setattr(cli, "compile_sources", fake_compile)

    assert cli.main(["build", str(extra)]) == 0
    assert calls == [[extra]]

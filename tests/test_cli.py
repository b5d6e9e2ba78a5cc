"""Tests for the unified CLI (cli/__init__.py).

Covers:
- Parser construction and argument parsing
- --help for all command groups
- Factory and manifest commands against fixture data
- build, create and sync end to end in a temporary project
- Error handling for invalid inputs
"""

import argparse
import json
import shutil
from pathlib import Path
from unittest.mock import patch

import pytest

from codefactory.cli import build_parser, main
from codefactory.cli.common import parse_params

FIXTURES = Path(__file__).parent / "fixtures"
FACTORIES = str(FIXTURES / "factories")


@pytest.fixture
def project(tmp_path, monkeypatch):
    """A temporary project holding a copy of the minimal manifest."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("CODEFACTORY_MARKER_ATTR", raising=False)
    monkeypatch.delenv("CODEFACTORY_ROOT", raising=False)
    shutil.copy(FIXTURES / "manifest-minimal.json", tmp_path / "manifest.json")
    return tmp_path


def _run(*argv, manifest="manifest.json"):
    cmd = ["codefactory", "--factories", FACTORIES]
    if manifest:
        cmd += ["--manifest", manifest]
    with patch("sys.argv", cmd + list(argv)):
        return main()


# ── Parser construction ──────────────────────────────────────────


class TestParserConstruction:

    def test_build_parser_returns_parser(self):
        parser = build_parser()
        assert isinstance(parser, argparse.ArgumentParser)

    def test_no_args_shows_help(self, capsys):
        with patch("sys.argv", ["codefactory"]):
            rc = main()
        assert rc == 0
        assert "codefactory" in capsys.readouterr().out

    def test_global_flags(self):
        args = build_parser().parse_args(
            ["--manifest", "/tmp/m.json", "--factories", "/tmp/f", "-v", "build", "--dry-run"]
        )
        assert args.manifest == "/tmp/m.json"
        assert args.factories == "/tmp/f"
        assert args.verbose is True
        assert args.dry_run is True

    def test_repeated_params_and_deps(self):
        args = build_parser().parse_args([
            "manifest", "add", "x", "greet_function", "x.ts",
            "--param", "fn=x", "--param", "msg=Hi",
            "--depends-on", "a", "--depends-on", "b",
        ])
        assert args.param == ["fn=x", "msg=Hi"]
        assert args.depends_on == ["a", "b"]

    def test_sync_requires_paths(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["sync"])


# ── Help output ──────────────────────────────────────────────────


class TestHelpOutput:

    @pytest.mark.parametrize("cmd", [
        ["--help"],
        ["factory", "--help"],
        ["manifest", "--help"],
        ["validate", "--help"],
        ["build", "--help"],
        ["create", "--help"],
        ["sync", "--help"],
    ])
    def test_help_exits_zero(self, cmd):
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(cmd)
        assert exc_info.value.code == 0

    def test_group_without_subcommand_shows_help(self):
        with patch("sys.argv", ["codefactory", "manifest"]):
            with pytest.raises(SystemExit) as exc_info:
                main()
        assert exc_info.value.code == 0


# ── Param parsing ────────────────────────────────────────────────


class TestParseParams:

    def test_json_values(self):
        params = parse_params(["port=8080", "debug=true", 'tags=["a", "b"]', "name=Counter"])
        assert params == {"port": 8080, "debug": True, "tags": ["a", "b"], "name": "Counter"}

    def test_value_may_contain_equals(self):
        assert parse_params(["expr=a=b"]) == {"expr": "a=b"}

    def test_missing_separator(self):
        with pytest.raises(ValueError, match="expected key=value"):
            parse_params(["oops"])


# ── Factory commands ─────────────────────────────────────────────


class TestFactoryCommands:

    def test_factory_list(self, capsys):
        rc = _run("factory", "list", manifest=None)
        assert rc == 0
        out = capsys.readouterr().out
        assert "greet_function" in out
        assert "signal_store" in out
        assert "3 factory(ies)" in out

    def test_factory_list_empty(self, tmp_path, capsys):
        with patch("sys.argv", ["codefactory", "--factories", str(tmp_path), "factory", "list"]):
            rc = main()
        assert rc == 0
        assert "No factories found." in capsys.readouterr().out

    def test_factory_show(self, capsys):
        rc = _run("factory", "show", "greet_function", manifest=None)
        assert rc == 0
        out = capsys.readouterr().out
        assert "src/{{fn}}.ts" in out
        assert "required" in out
        assert "default='Hello'" in out

    def test_factory_show_json(self, capsys):
        rc = _run("factory", "show", "service_config", "--json", manifest=None)
        assert rc == 0
        data = json.loads(capsys.readouterr().out)
        assert data["name"] == "service_config"
        assert set(data["params"]) == {"service", "debug", "port", "env"}

    def test_factory_show_missing(self, capsys):
        rc = _run("factory", "show", "nope", manifest=None)
        assert rc == 1
        assert "not found" in capsys.readouterr().out


# ── Manifest commands ────────────────────────────────────────────


class TestManifestCommands:

    def test_list(self, project, capsys):
        assert _run("manifest", "list") == 0
        out = capsys.readouterr().out
        assert "greet" in out
        assert "3 call(s)" in out

    def test_list_missing_manifest_is_empty(self, project, capsys):
        assert _run("manifest", "list", manifest="absent.json") == 0
        assert "Manifest is empty." in capsys.readouterr().out

    def test_add_persists(self, project, capsys):
        rc = _run(
            "manifest", "add", "hello", "greet_function", "src/hello.ts",
            "--param", "fn=hello", "--depends-on", "greet",
        )
        assert rc == 0
        assert "Added 'hello'" in capsys.readouterr().out
        data = json.loads((project / "manifest.json").read_text())
        added = data["factories"][-1]
        assert added["id"] == "hello"
        assert added["params"] == {"fn": "hello"}
        assert added["dependsOn"] == ["greet"]

    def test_add_duplicate_fails(self, project, capsys):
        before = (project / "manifest.json").read_text()
        rc = _run("manifest", "add", "greet", "greet_function", "other.ts")
        assert rc == 1
        assert "already exists" in capsys.readouterr().out
        assert (project / "manifest.json").read_text() == before

    def test_update_merges_params(self, project, capsys):
        assert _run("manifest", "update", "config", "--param", "port=9090") == 0
        data = json.loads((project / "manifest.json").read_text())
        config = next(c for c in data["factories"] if c["id"] == "config")
        assert config["params"] == {"service": "api", "port": 9090}

    def test_update_cycle_rejected(self, project, capsys):
        before = (project / "manifest.json").read_text()
        rc = _run("manifest", "update", "greet", "--depends-on", "config")
        assert rc == 1
        assert "Circular dependency" in capsys.readouterr().out
        assert (project / "manifest.json").read_text() == before

    def test_update_no_deps(self, project):
        assert _run("manifest", "update", "config", "--no-deps") == 0
        data = json.loads((project / "manifest.json").read_text())
        config = next(c for c in data["factories"] if c["id"] == "config")
        assert config["dependsOn"] == []

    def test_remove_with_dependents_refused(self, project, capsys):
        rc = _run("manifest", "remove", "greet")
        assert rc == 1
        assert "store" in capsys.readouterr().out

    def test_remove_forced(self, project, capsys):
        assert _run("manifest", "remove", "greet", "--force") == 0
        out = capsys.readouterr().out
        assert "Removed 'greet'" in out
        assert "WARNING" in out
        data = json.loads((project / "manifest.json").read_text())
        assert [c["id"] for c in data["factories"]] == ["store", "config"]

    def test_order(self, project, capsys):
        assert _run("manifest", "order") == 0
        lines = [line.strip() for line in capsys.readouterr().out.splitlines() if line.strip()]
        assert lines == ["1. greet", "2. store", "3. config"]


# ── Build, create, sync ──────────────────────────────────────────


class TestGenerationCommands:

    def test_validate(self, project, capsys):
        assert _run("validate") == 0
        assert "3 call(s) checked" in capsys.readouterr().out

    def test_validate_unknown_factory(self, project, capsys):
        _run("manifest", "add", "bad", "nope", "bad.ts")
        capsys.readouterr()
        assert _run("validate") == 1
        assert "unknown factory 'nope'" in capsys.readouterr().out

    def test_build_writes_files_and_stamps(self, project, capsys):
        assert _run("build") == 0
        assert "3 created" in capsys.readouterr().out
        assert (project / "src" / "greet.ts").exists()
        assert (project / "config" / "api.yaml").exists()
        data = json.loads((project / "manifest.json").read_text())
        assert data["lastGenerated"]

    def test_build_writes_under_project_root(self, project, monkeypatch, capsys):
        monkeypatch.setenv("CODEFACTORY_ROOT", str(project / "out"))
        assert _run("build") == 0
        assert (project / "out" / "src" / "greet.ts").exists()
        assert not (project / "src").exists()

    def test_build_dry_run(self, project, capsys):
        before = (project / "manifest.json").read_text()
        assert _run("build", "--dry-run") == 0
        assert "[DRY RUN]" in capsys.readouterr().out
        assert not (project / "src").exists()
        assert (project / "manifest.json").read_text() == before

    def test_create(self, project, capsys):
        rc = _run("create", "greet_function", "--param", "fn=hello")
        assert rc == 0
        assert "Created" in capsys.readouterr().out
        text = (project / "src" / "hello.ts").read_text()
        assert 'codefactory:start factory="greet_function"' in text

    def test_create_existing_file(self, project, capsys):
        (project / "taken.ts").write_text("// mine\n")
        rc = _run("create", "greet_function", "taken.ts", "--param", "fn=x")
        assert rc == 1
        assert "already exists" in capsys.readouterr().out
        assert (project / "taken.ts").read_text() == "// mine\n"

    def test_create_invalid_param(self, project, capsys):
        rc = _run("create", "greet_function", "x.ts", "--param", "fn=not valid")
        assert rc == 1
        assert "Parameter 'fn'" in capsys.readouterr().out
        assert not (project / "x.ts").exists()

    def test_sync_records_edit_in_manifest(self, project, capsys):
        _run("build")
        target = project / "src" / "greet.ts"
        target.write_text(target.read_text().replace("greet(", "sayHello("))
        capsys.readouterr()

        assert _run("sync", "src") == 0
        data = json.loads((project / "manifest.json").read_text())
        greet = next(c for c in data["factories"] if c["id"] == "greet")
        assert greet["params"]["fn"] == "sayHello"

    def test_sync_reports_failures(self, project, capsys):
        (project / "stray.ts").write_text(
            '// codefactory:start id="ghost"\nx\n// codefactory:end\n'
        )
        rc = _run("sync", "stray.ts")
        assert rc == 1
        assert "ghost" in capsys.readouterr().out

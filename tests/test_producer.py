"""Tests for building manifest calls and syncing edited files."""

from unittest.mock import patch

import pytest

from codefactory.errors import (
    CircularDependencyError,
    MarkerError,
    NotRecoverableError,
    OutputExistsError,
    ValidationError,
)
from codefactory.factories.loader import factory_from_text
from codefactory.manifest.store import GenerationCall, ManifestStore
from codefactory.markers import find_region
from codefactory.producer import BuildResult, CallError, FileResult, Producer


COUNTER = """---
name: counter_store
description: Signals with numeric initial values
params:
  name:
    type: string
  signals:
    type: record[]
    fields:
      initial: number
---
export const storeName = '{{name}}';
{{#each signals}}
export const {{this.name}} = signal<{{this.type}}>({{this.initial}});
{{/each}}
"""


def _producer(registry, manifest=None, root=None, **kwargs):
    return Producer(registry, manifest=manifest, root=root, **kwargs)


@pytest.fixture
def built(tmp_path, registry, manifest):
    """A project with every fixture manifest call built into tmp_path."""
    producer = _producer(registry, manifest, tmp_path)
    result = producer.build_manifest()
    assert result.success, result.summary()
    return producer


class TestBuild:
    def test_creates_files_in_dependency_order(self, tmp_path, registry, manifest):
        result = _producer(registry, manifest, tmp_path).build_manifest()
        assert [f.call_id for f in result.files] == ["greet", "store", "config"]
        assert [f.status for f in result.files] == ["created"] * 3
        assert (tmp_path / "src" / "greet.ts").exists()
        assert (tmp_path / "config" / "api.yaml").exists()

    def test_region_tagged_with_call_id(self, tmp_path, built):
        text = (tmp_path / "src" / "greet.ts").read_text()
        assert text == (
            '// codefactory:start id="greet"\n'
            "export function greet(name: string): string {\n"
            "  return `Welcome, ${name}!`;\n"
            "}\n"
            "// codefactory:end\n"
        )

    def test_comment_prefix_and_header(self, tmp_path, built):
        text = (tmp_path / "config" / "api.yaml").read_text()
        assert text.startswith("# Service configuration for api\n\n# codefactory:start id=\"config\"\n")
        assert "debug: false\nport: 8080\nenv: dev\n# codefactory:end\n" in text

    def test_rebuild_is_unchanged(self, built):
        result = built.build_manifest()
        assert [f.status for f in result.files] == ["unchanged"] * 3

    def test_rebuild_after_param_change(self, tmp_path, built):
        built.manifest.update("config", params={"port": 9090})
        result = built.build_manifest()
        statuses = {f.call_id: f.status for f in result.files}
        assert statuses == {"greet": "unchanged", "store": "unchanged", "config": "updated"}
        assert "port: 9090" in (tmp_path / "config" / "api.yaml").read_text()

    def test_build_stamps_last_generated(self, built):
        assert built.manifest.last_generated is not None

    def test_missing_marker_is_per_call_error(self, tmp_path, registry, manifest):
        target = tmp_path / "src" / "greet.ts"
        target.parent.mkdir(parents=True)
        target.write_text("// all hand-written\n")

        result = _producer(registry, manifest, tmp_path).build_manifest()
        assert not result.success
        assert [e.call_id for e in result.errors] == ["greet"]
        assert "no codefactory region" in result.errors[0].message
        assert target.read_text() == "// all hand-written\n"
        assert [f.call_id for f in result.files] == ["store", "config"]

    def test_unknown_factory_does_not_stop_batch(self, tmp_path, registry):
        store = ManifestStore()
        store.add(GenerationCall(id="bad", factory="nope", output_path="bad.ts"))
        store.add(GenerationCall(id="ok", factory="greet_function", output_path="ok.ts",
                                 params={"fn": "ok"}))
        result = _producer(registry, store, tmp_path).build_manifest()
        assert [e.call_id for e in result.errors] == ["bad"]
        assert [f.call_id for f in result.files] == ["ok"]

    def test_invalid_params_reported_with_param(self, tmp_path, registry):
        call = GenerationCall(id="g", factory="greet_function", output_path="g.ts",
                              params={"fn": "has space"})
        result = _producer(registry, root=tmp_path).build([call])
        assert result.errors[0].param == "fn"
        assert not (tmp_path / "g.ts").exists()

    def test_cycle_raises_before_writing(self, tmp_path, registry):
        store = ManifestStore([
            GenerationCall(id="a", factory="greet_function", output_path="a.ts",
                           params={"fn": "a"}, depends_on=["b"]),
            GenerationCall(id="b", factory="greet_function", output_path="b.ts",
                           params={"fn": "b"}, depends_on=["a"]),
        ])
        with pytest.raises(CircularDependencyError):
            _producer(registry, store, tmp_path).build_manifest()
        assert list(tmp_path.iterdir()) == []

    def test_dry_run_writes_nothing(self, tmp_path, registry, manifest):
        result = _producer(registry, manifest, tmp_path, dry_run=True).build_manifest()
        assert result.count("created") == 3
        assert list(tmp_path.iterdir()) == []
        assert manifest.last_generated is None
        assert result.summary().startswith("[DRY RUN]")

    def test_factory_marker_attribute(self, tmp_path, registry, manifest):
        _producer(registry, manifest, tmp_path, marker_attr="factory").build_manifest()
        text = (tmp_path / "src" / "greet.ts").read_text()
        assert text.startswith('// codefactory:start factory="greet_function"\n')

    def test_bad_marker_attribute(self, registry):
        with pytest.raises(ValueError):
            Producer(registry, marker_attr="name")

    def test_build_manifest_needs_manifest(self, registry):
        with pytest.raises(ValueError):
            Producer(registry).build_manifest()


class TestCreateFile:
    def test_create_from_output_pattern(self, tmp_path, registry):
        path = _producer(registry, root=tmp_path).create_file("greet_function", {"fn": "hello"})
        assert path == str(tmp_path / "src" / "hello.ts")
        text = (tmp_path / "src" / "hello.ts").read_text()
        assert text.startswith('// codefactory:start factory="greet_function"\n')
        assert "`Hello, ${name}!`" in text

    def test_create_with_call_tag(self, tmp_path, registry):
        producer = _producer(registry, root=tmp_path)
        producer.create_file("greet_function", {"fn": "hi"}, "hi.ts", tag="hi-call")
        assert find_region((tmp_path / "hi.ts").read_text(), "hi-call", attr="id")

    def test_existing_path_is_refused(self, tmp_path, registry):
        target = tmp_path / "taken.ts"
        target.write_text("// mine\n")
        with pytest.raises(OutputExistsError) as exc:
            _producer(registry, root=tmp_path).create_file("greet_function", {"fn": "x"}, "taken.ts")
        assert isinstance(exc.value, FileExistsError)
        assert target.read_text() == "// mine\n"

    def test_no_output_path(self, registry):
        with pytest.raises(ValidationError, match="outputPath"):
            Producer(registry).create_file("signal_store", {"name": "X"})


class TestSync:
    def test_unedited_files_are_byte_identical(self, tmp_path, built):
        paths = [tmp_path / "src" / "greet.ts", tmp_path / "src" / "store.ts",
                 tmp_path / "config" / "api.yaml"]
        before = [p.read_bytes() for p in paths]
        result = built.sync_all(paths)
        assert result.success, result.summary()
        assert [f.status for f in result.files] == ["unchanged"] * 3
        assert [p.read_bytes() for p in paths] == before

    def test_hand_edit_recovers_params(self, tmp_path, built):
        target = tmp_path / "src" / "greet.ts"
        edited = target.read_text().replace("greet(", "sayHello(").replace("Welcome", "Greetings")
        target.write_text(edited)

        built.sync_file(target)
        assert built.manifest.get("greet").params == {"fn": "sayHello", "msg": "Greetings"}
        assert target.read_text() == edited

    def test_sync_normalizes_to_template(self, tmp_path, built):
        target = tmp_path / "src" / "greet.ts"
        target.write_text(target.read_text().replace("function greet(", "function   sayHello("))
        result = built.sync_file(target)
        assert result.status == "updated"
        assert "export function sayHello(name: string): string {" in target.read_text()

    def test_region_isolation(self, tmp_path, built):
        target = tmp_path / "src" / "store.ts"
        before = "// custom before\nimport { signal } from './signals';\n\n"
        after = "\n// custom after\nexport default { ready: true };\n"
        generated = target.read_text()
        target.write_text(before + generated.replace("signal<number>(0)", "signal<number>(5)") + after)

        built.sync_file(target)
        text = target.read_text()
        assert text.startswith(before)
        assert text.endswith(after)
        assert "signal<number>(5)" in text
        assert built.manifest.get("store").params["signals"][0]["initial"] == "5"

    def test_loop_edit_adds_items(self, tmp_path, built):
        target = tmp_path / "src" / "store.ts"
        text = target.read_text().replace("  label: string;\n", "  label: string;\n  disabled: boolean;\n")
        target.write_text(text)
        built.sync_file(target)
        assert built.manifest.get("store").params["props"] == [
            "label: string", "disabled: boolean", "step?: number",
        ]

    def test_typed_values_recovered(self, tmp_path, built):
        target = tmp_path / "config" / "api.yaml"
        target.write_text(target.read_text().replace("debug: false", "debug: true"))
        built.sync_file(target)
        params = built.manifest.get("config").params
        assert params["debug"] is True
        assert params["port"] == 8080
        assert params["service"] == "api"

    def test_unrecoverable_leaves_file_untouched(self, tmp_path, built):
        target = tmp_path / "src" / "greet.ts"
        region = find_region(target.read_text(), "greet")
        text = target.read_text()
        gutted = text[:region.content_start] + "// emptied by hand\n" + text[region.content_end:]
        target.write_text(gutted)

        with pytest.raises(NotRecoverableError) as exc:
            built.sync_file(target)
        assert exc.value.params == ["fn"]
        assert target.read_text() == gutted
        assert built.manifest.get("greet").params["fn"] == "greet"

    def test_factory_tag_without_manifest(self, tmp_path, registry):
        producer = _producer(registry, root=tmp_path)
        path = producer.create_file("greet_function", {"fn": "hello", "msg": "Hi"})
        before = open(path).read()
        assert producer.sync_file(path).status == "unchanged"
        assert open(path).read() == before

    def test_multiple_regions_in_one_file(self, tmp_path, registry):
        producer = _producer(registry, root=tmp_path)
        first = tmp_path / "a.ts"
        second = tmp_path / "b.ts"
        producer.create_file("greet_function", {"fn": "one"}, "a.ts")
        producer.create_file("greet_function", {"fn": "two"}, "b.ts")
        combined = tmp_path / "both.ts"
        combined.write_text(first.read_text() + "\n// between\n\n" + second.read_text())
        combined.write_text(combined.read_text().replace("two(", "three("))

        assert producer.sync_file(combined).status == "unchanged"
        text = combined.read_text()
        assert "function one(" in text
        assert "function three(" in text
        assert "\n// between\n\n" in text

    def test_unknown_call_id(self, tmp_path, registry, manifest):
        target = tmp_path / "ghost.ts"
        target.write_text('// codefactory:start id="ghost"\nx\n// codefactory:end\n')
        result = _producer(registry, manifest, tmp_path).sync_all([target])
        assert result.errors[0].call_id == "ghost"

    def test_file_without_regions(self, tmp_path, registry):
        target = tmp_path / "plain.ts"
        target.write_text("nothing\n")
        with pytest.raises(MarkerError):
            _producer(registry).sync_file(target)

    def test_sync_all_isolates_failures(self, tmp_path, built):
        broken = tmp_path / "src" / "broken.ts"
        broken.write_text('// codefactory:start factory="missing"\nx\n// codefactory:end\n')
        result = built.sync_all([tmp_path / "src" / "greet.ts", broken])
        assert [f.call_id for f in result.files] == ["greet"]
        assert result.errors[0].path == str(broken)
        assert not result.success

    def test_sync_all_expands_directories(self, tmp_path, built):
        result = built.sync_all([tmp_path])
        assert result.count("unchanged") == 3

    def test_dry_run_sync(self, tmp_path, registry, manifest):
        _producer(registry, manifest, tmp_path).build_manifest()
        target = tmp_path / "src" / "greet.ts"
        edited = target.read_text().replace("function greet(", "function  greet2(")
        target.write_text(edited)

        result = _producer(registry, manifest, tmp_path, dry_run=True).sync_file(target)
        assert result.status == "updated"
        assert target.read_text() == edited
        assert manifest.get("greet").params["fn"] == "greet"

    def test_empty_string_value_is_stable(self, tmp_path, registry):
        producer = _producer(registry, root=tmp_path)
        path = producer.create_file("greet_function", {"fn": "hello", "msg": ""})
        before = open(path).read()
        assert "return `, ${name}!`;" in before
        assert producer.sync_file(path).status == "unchanged"
        assert open(path).read() == before

    def test_typed_record_fields_survive_sync(self, tmp_path, registry):
        registry.register(factory_from_text(COUNTER))
        signals = [{"name": "count", "type": "number", "initial": 0}]
        store = ManifestStore([
            GenerationCall(id="counter", factory="counter_store", output_path="counter.ts",
                           params={"name": "Counter", "signals": signals}),
        ])
        producer = _producer(registry, store, tmp_path)
        producer.build_manifest()
        target = tmp_path / "counter.ts"

        assert producer.sync_file(target).status == "unchanged"
        assert store.get("counter").params["signals"] == signals

        target.write_text(target.read_text().replace("(0)", "(3)"))
        producer.sync_file(target)
        assert store.get("counter").params["signals"] == [
            {"name": "count", "type": "number", "initial": 3},
        ]

    def test_rejected_manifest_update_leaves_file_untouched(self, tmp_path, built):
        target = tmp_path / "src" / "greet.ts"
        edited = target.read_text().replace("function greet(", "function   sayHello(")
        target.write_text(edited)

        rejection = ValidationError("params", "rejected")
        with patch.object(built.manifest, "preview_update", side_effect=rejection):
            with pytest.raises(ValidationError):
                built.sync_file(target)
            result = built.sync_all([target])
        assert result.errors[0].param == "params"
        assert target.read_text() == edited
        assert built.manifest.get("greet").params["fn"] == "greet"


class TestResults:
    def test_summary(self):
        result = BuildResult(
            files=[FileResult("a.ts", "created", "a"), FileResult("b.ts", "unchanged", "b")],
            errors=[CallError("c", "boom", "c.ts")],
        )
        summary = result.summary()
        assert "2 file(s): 1 created, 0 updated, 1 unchanged" in summary
        assert "c: boom" in summary
        assert result.written == ["a.ts"]
        assert not result.success

    def test_call_error_from_exception(self):
        error = CallError.from_exception(NotRecoverableError(["fn", "msg"]), path="x.ts")
        assert error.param == "fn, msg"
        assert error.path == "x.ts"

"""Tests for solscan.plugins.loader: import, namespacing, isolation, hooks and unload."""

import logging
import sys
import textwrap
from pathlib import Path

from solscan.plugins.loader import PluginLoader
from solscan.plugins.models import PluginErrorCode
from solscan.rules.registry import create_default_registry

EXAMPLE_PLUGIN = Path(__file__).resolve().parent.parent / "examples" / "plugins" / "example_plugin.py"

RULE_TEMPLATE = '''
from solscan.findings.models import Category, Severity
from solscan.rules.base import Rule, RuleMetadata


class {cls}(Rule):
    metadata = RuleMetadata(
        id="{rule_id}",
        category=Category.CUSTOM,
        severity=Severity.WARNING,
        title="{cls}",
        description="test rule",
    )

    def analyze(self, context):
        context.report("found by {cls}")
'''


def _write_plugin(directory: Path, filename: str, name: str, body: str = "", rules=("check",)) -> Path:
    """Write a plugin module exporting `plugin` with one rule class per entry of rules."""
    parts = []
    rule_entries = []
    for i, rule_name in enumerate(rules):
        cls = f"Rule{i}"
        parts.append(RULE_TEMPLATE.format(cls=cls, rule_id=f"{name}/{rule_name}"))
        rule_entries.append(f'"{rule_name}": {cls}')
    parts.append(textwrap.dedent(body))
    parts.append(
        "plugin = {\n"
        f'    "meta": {{"name": "{name}", "version": "1.0.0"}},\n'
        f'    "rules": {{{", ".join(rule_entries)}}},\n'
        '    "setup": globals().get("setup"),\n'
        '    "teardown": globals().get("teardown"),\n'
        "}\n"
    )
    path = directory / filename
    path.write_text("\n".join(parts), encoding="utf-8")
    return path


def test_load_example_plugin_namespaces_rules_and_presets():
    loader = PluginLoader()
    result = loader.load([str(EXAMPLE_PLUGIN)])

    assert result.success, [str(e) for e in result.errors]
    assert [p.meta.name for p in result.plugins] == ["example-plugin"]
    assert list(loader.get_all_rules()) == [
        "example-plugin/no-todo-comments",
        "example-plugin/no-magic-addresses",
    ]
    assert set(loader.get_all_presets()) == {"example-plugin/recommended", "example-plugin/strict"}
    assert loader.get_plugin("example-plugin").meta.version == "1.0.0"
    loader.unload_all()


def test_rule_instances_created_once(tmp_path):
    _write_plugin(tmp_path, "p.py", "p")
    loader = PluginLoader()
    loader.load(["p.py"], cwd=tmp_path)
    rule = loader.get_all_rules()["p/check"]
    assert not isinstance(rule, type)
    assert loader.get_all_rules()["p/check"] is rule
    assert loader.get_plugin("p").rules["p/check"] is rule


def test_relative_path_resolved_against_cwd(tmp_path):
    plugins_dir = tmp_path / "plugins"
    plugins_dir.mkdir()
    _write_plugin(plugins_dir, "local.py", "local")
    result = PluginLoader().load(["./plugins/local.py"], cwd=tmp_path)
    assert result.success
    assert result.plugins[0].source == "./plugins/local.py"


def test_package_directory_plugin(tmp_path):
    pkg = tmp_path / "pkgplugin"
    pkg.mkdir()
    (pkg / "helpers.py").write_text("MESSAGE = 'from helper'\n", encoding="utf-8")
    _write_plugin(pkg, "__init__.py", "pkg", body="from .helpers import MESSAGE\n")
    loader = PluginLoader()
    result = loader.load(["pkgplugin"], cwd=tmp_path)
    assert result.success, [str(e) for e in result.errors]
    assert "pkg/check" in loader.get_all_rules()


def test_module_name_with_prefix(tmp_path, monkeypatch):
    _write_plugin(tmp_path, "solscan_plugin_prefixed.py", "prefixed")
    monkeypatch.syspath_prepend(str(tmp_path))
    loader = PluginLoader()
    try:
        result = loader.load(["prefixed"], cwd=tmp_path / "elsewhere")
        assert result.success, [str(e) for e in result.errors]
        assert "prefixed/check" in loader.get_all_rules()
    finally:
        sys.modules.pop("solscan_plugin_prefixed", None)


def test_module_exporting_meta_directly(tmp_path):
    (tmp_path / "bare.py").write_text(
        RULE_TEMPLATE.format(cls="Bare", rule_id="bare/check")
        + '\nmeta = {"name": "bare", "version": "0.1.0"}\nrules = {"check": Bare}\n',
        encoding="utf-8",
    )
    loader = PluginLoader()
    result = loader.load(["bare.py"], cwd=tmp_path)
    assert result.success
    assert list(loader.get_all_rules()) == ["bare/check"]


def test_missing_and_broken_sources_are_isolated(tmp_path, caplog):
    _write_plugin(tmp_path, "good.py", "good")
    (tmp_path / "broken.py").write_text("raise ImportError('cannot load me')\n", encoding="utf-8")
    (tmp_path / "empty.py").write_text("x = 1\n", encoding="utf-8")

    loader = PluginLoader()
    with caplog.at_level(logging.ERROR):
        result = loader.load(
            ["missing.py", "broken.py", "good.py", "empty.py", "no_such_plugin_module_xyz"],
            cwd=tmp_path,
        )

    assert not result.success
    assert [p.meta.name for p in result.plugins] == ["good"]
    assert [e.code for e in result.errors] == [PluginErrorCode.LOAD_FAILED] * 4
    assert [e.plugin_name for e in result.errors] == [
        "missing.py",
        "broken.py",
        "empty.py",
        "no_such_plugin_module_xyz",
    ]
    assert "cannot load me" in result.errors[1].message
    assert "Failed to load plugin" in caplog.text


def test_invalid_plugin_rejected_with_all_errors(tmp_path):
    (tmp_path / "invalid.py").write_text(
        'plugin = {"meta": {"name": "invalid", "version": "1"}, "rules": {"Bad Name": 1}}\n',
        encoding="utf-8",
    )
    loader = PluginLoader()
    result = loader.load(["invalid.py"], cwd=tmp_path)
    assert result.plugins == []
    assert loader.get_loaded_plugins() == []
    assert {e.code for e in result.errors} == {PluginErrorCode.MISSING_METADATA, PluginErrorCode.INVALID_RULE}
    assert all(e.plugin_name == "invalid" for e in result.errors)


def test_duplicate_plugin_name_rejected(tmp_path):
    _write_plugin(tmp_path, "first.py", "dup", rules=("a",))
    _write_plugin(tmp_path, "second.py", "dup", rules=("b",))
    loader = PluginLoader()
    result = loader.load(["first.py", "second.py"], cwd=tmp_path)
    assert [e.code for e in result.errors] == [PluginErrorCode.DUPLICATE_RULE]
    # First registration wins.
    assert list(loader.get_all_rules()) == ["dup/a"]
    assert loader.get_plugin("dup").source == "first.py"


def test_key_colliding_with_core_rule_rejected(tmp_path):
    _write_plugin(tmp_path, "shadow.py", "security", rules=("tx-origin",))
    loader = PluginLoader(registry=create_default_registry())
    result = loader.load(["shadow.py"], cwd=tmp_path)
    assert [e.code for e in result.errors] == [PluginErrorCode.DUPLICATE_RULE]
    assert loader.get_all_rules() == {}


def test_setup_hook_runs_and_failure_is_isolated(tmp_path):
    calls = tmp_path / "calls.txt"
    ok_body = f"""
    def setup():
        with open({str(calls)!r}, "a") as f:
            f.write("setup-ok\\n")
    """
    failing_body = """
    def setup():
        raise RuntimeError("setup exploded")
    """
    _write_plugin(tmp_path, "failing.py", "failing", body=failing_body)
    _write_plugin(tmp_path, "ok.py", "ok", body=ok_body)

    loader = PluginLoader()
    result = loader.load(["failing.py", "ok.py"], cwd=tmp_path)

    assert not result.success
    assert [e.code for e in result.errors] == [PluginErrorCode.HOOK_FAILED]
    assert "setup exploded" in result.errors[0].message
    # A failing setup hook does not unload the plugin or block the next one.
    assert [p.meta.name for p in loader.get_loaded_plugins()] == ["failing", "ok"]
    assert calls.read_text() == "setup-ok\n"


def test_setup_runs_without_validation(tmp_path):
    calls = tmp_path / "calls.txt"
    body = f"""
    def setup():
        with open({str(calls)!r}, "a") as f:
            f.write("setup\\n")
    """
    _write_plugin(tmp_path, "unvalidated.py", "unvalidated", body=body)
    result = PluginLoader().load(["unvalidated.py"], validate=False, cwd=tmp_path)
    assert result.success
    assert calls.read_text() == "setup\n"


def test_unload_all_runs_teardown_in_load_order(tmp_path):
    log = tmp_path / "teardown.txt"
    for name in ("alpha", "beta", "gamma"):
        body = f"""
        def teardown():
            if {name!r} == "beta":
                raise ValueError("beta teardown failed")
            with open({str(log)!r}, "a") as f:
                f.write({name!r} + "\\n")
        """
        _write_plugin(tmp_path, f"{name}.py", name, body=body)

    loader = PluginLoader()
    loader.load(["alpha.py", "beta.py", "gamma.py"], cwd=tmp_path)
    errors = loader.unload_all()

    assert log.read_text().splitlines() == ["alpha", "gamma"]
    assert [(e.plugin_name, e.code) for e in errors] == [("beta", PluginErrorCode.HOOK_FAILED)]
    assert loader.get_loaded_plugins() == []
    assert loader.get_all_rules() == {}
    assert loader.get_all_presets() == {}


def test_load_twice_accumulates(tmp_path):
    _write_plugin(tmp_path, "one.py", "one")
    _write_plugin(tmp_path, "two.py", "two")
    loader = PluginLoader()
    loader.load(["one.py"], cwd=tmp_path)
    second = loader.load(["two.py"], cwd=tmp_path)
    assert [p.meta.name for p in second.plugins] == ["two"]
    assert list(loader.get_all_rules()) == ["one/check", "two/check"]


def test_malformed_rules_and_presets_rejected_without_validation(tmp_path):
    (tmp_path / "bad_rules.py").write_text(
        'plugin = {"meta": {"name": "bad-rules", "version": "1.0.0"}, "rules": ["x"]}\n', encoding="utf-8"
    )
    (tmp_path / "bad_presets.py").write_text(
        'plugin = {"meta": {"name": "bad-presets", "version": "1.0.0"}, "presets": 5}\n', encoding="utf-8"
    )
    _write_plugin(tmp_path, "good.py", "good")

    loader = PluginLoader()
    result = loader.load(["bad_rules.py", "bad_presets.py", "good.py"], validate=False, cwd=tmp_path)

    assert [e.code for e in result.errors] == [PluginErrorCode.INVALID_RULE, PluginErrorCode.INVALID_PRESET]
    assert [e.plugin_name for e in result.errors] == ["bad-rules", "bad-presets"]
    assert [p.meta.name for p in loader.get_loaded_plugins()] == ["good"]


def test_unexpected_registration_failure_is_recorded(tmp_path):
    (tmp_path / "exploding.py").write_text(
        textwrap.dedent(
            """
            class Rules(dict):
                def items(self):
                    raise RuntimeError("rules exploded")

            plugin = {"meta": {"name": "exploding", "version": "1.0.0"}, "rules": Rules()}
            """
        ),
        encoding="utf-8",
    )
    _write_plugin(tmp_path, "good.py", "good")

    loader = PluginLoader()
    result = loader.load(["exploding.py", "good.py"], validate=False, cwd=tmp_path)

    assert [e.code for e in result.errors] == [PluginErrorCode.LOAD_FAILED]
    assert result.errors[0].plugin_name == "exploding"
    assert "rules exploded" in result.errors[0].message
    assert [p.meta.name for p in result.plugins] == ["good"]


def test_raising_meta_property_is_a_validation_error(tmp_path):
    (tmp_path / "raising.py").write_text(
        textwrap.dedent(
            """
            class Meta:
                version = "1.0.0"

                @property
                def name(self):
                    raise RuntimeError("boom")


            class Plugin:
                meta = Meta()


            plugin = Plugin()
            """
        ),
        encoding="utf-8",
    )
    loader = PluginLoader()
    result = loader.load(["raising.py"], cwd=tmp_path)
    assert [e.code for e in result.errors] == [PluginErrorCode.MISSING_METADATA]
    assert result.errors[0].plugin_name == "raising.py"
    assert loader.get_loaded_plugins() == []


UNKNOWN_SEVERITY_PLUGIN = """
class LoudRule:
    metadata = {"id": "loud/shout", "severity": "critical"}

    def analyze(self, context):
        context.report("shout")


plugin = {"meta": {"name": "loud", "version": "1.0.0"}, "rules": {"shout": LoudRule}}
"""


def test_unknown_default_severity_rejected(tmp_path):
    (tmp_path / "loud.py").write_text(UNKNOWN_SEVERITY_PLUGIN, encoding="utf-8")

    for validate in (True, False):
        loader = PluginLoader()
        result = loader.load(["loud.py"], validate=validate, cwd=tmp_path)
        assert [e.code for e in result.errors] == [PluginErrorCode.INVALID_RULE]
        assert "critical" in result.errors[0].message
        assert loader.get_all_rules() == {}

"""End-to-end scenarios: real parser, default registry, plugins and the engine together."""

import logging
from pathlib import Path

from solscan.config import ResolvedConfig
from solscan.engine import AnalysisEngine
from solscan.findings.models import Category, Severity
from solscan.plugins.loader import PluginLoader
from solscan.rules.base import Rule, RuleMetadata
from solscan.rules.registry import create_default_registry

FIXTURES = Path(__file__).resolve().parent / "fixtures"
EXAMPLE_PLUGIN = Path(__file__).resolve().parent.parent / "examples" / "plugins" / "example_plugin.py"

TX_ORIGIN_SOURCE = """contract Test {
    function test() public {
        require(tx.origin == msg.sender);
    }
}
"""


def _write(tmp_path, name, content):
    path = tmp_path / name
    path.write_text(content, encoding="utf-8")
    return path


def test_tx_origin_reported_on_its_line(tmp_path):
    path = _write(tmp_path, "Test.sol", TX_ORIGIN_SOURCE)
    result = AnalysisEngine(create_default_registry()).analyze([path])

    assert result.total_issues == 1
    issue = result.files[0].issues[0]
    assert issue.rule_id == "security/tx-origin"
    assert issue.severity == Severity.ERROR
    assert issue.location.start.line == 3
    assert result.summary.errors == 1


def test_tx_origin_off_yields_no_errors(tmp_path):
    path = _write(tmp_path, "Test.sol", TX_ORIGIN_SOURCE)
    config = ResolvedConfig(rules={"security/tx-origin": "off"})
    result = AnalysisEngine(create_default_registry()).analyze([path], config)
    assert result.summary.errors == 0
    assert all(i.rule_id != "security/tx-origin" for f in result.files for i in f.issues)


def test_garbage_input_yields_one_parse_error(tmp_path):
    path = _write(tmp_path, "Garbage.sol", "@@@ !!! %%% ^^^ &&&")
    result = AnalysisEngine(create_default_registry()).analyze([path])

    file_result = result.files[0]
    assert len(file_result.issues) == 1
    issue = file_result.issues[0]
    assert issue.rule_id == "parse-error"
    assert issue.category == "syntax"
    assert issue.severity == Severity.ERROR
    assert issue.location.start.line == 1
    assert file_result.parse_errors
    assert result.has_parse_errors is True


def test_throwing_rule_does_not_stop_analysis(tmp_path, caplog):
    class BrokenRule(Rule):
        metadata = RuleMetadata(
            id="custom/broken",
            category=Category.CUSTOM,
            severity=Severity.WARNING,
            title="Broken",
            description="Raises on every file",
        )

        def analyze(self, context):
            raise KeyError("missing node field")

    registry = create_default_registry()
    registry.register(BrokenRule())
    paths = [_write(tmp_path, f"T{i}.sol", TX_ORIGIN_SOURCE) for i in range(3)]

    with caplog.at_level(logging.WARNING):
        result = AnalysisEngine(registry).analyze(paths, parallel=2)

    assert len(result.files) == 3
    assert result.summary.errors == 3
    for file_result in result.files:
        assert [d.rule_id for d in file_result.diagnostics] == ["custom/broken"]
        assert file_result.error is None
    assert "custom/broken" in caplog.text


def test_vulnerable_fixture_triggers_every_builtin_rule():
    result = AnalysisEngine(create_default_registry()).analyze([FIXTURES / "Vulnerable.sol"])
    found = {(i.rule_id, i.location.start.line) for i in result.files[0].issues}
    assert found == {
        ("security/floating-pragma", 2),
        ("security/tx-origin", 14),
        ("lint/max-line-length", 14),
        ("security/delegatecall", 19),
        ("security/avoid-selfdestruct", 24),
    }
    assert result.summary.errors == 1
    assert result.summary.warnings == 4


def test_clean_fixture_has_no_issues():
    result = AnalysisEngine(create_default_registry()).analyze([FIXTURES / "Clean.sol"])
    assert result.total_issues == 0
    assert result.has_parse_errors is False


def test_example_plugin_rules_and_presets(tmp_path):
    source = """pragma solidity 0.8.24;

contract Treasury {
    address constant ADMIN = 0x1111111111111111111111111111111111111111;
    // TODO: add a timelock
    function pay() public {
        // FIXME remove hardcoded payee
        payable(0x2222222222222222222222222222222222222222).transfer(1);
    }
}
"""
    path = _write(tmp_path, "Treasury.sol", source)
    registry = create_default_registry()
    loader = PluginLoader(registry=registry)
    load_result = loader.load([str(EXAMPLE_PLUGIN)])
    assert load_result.success

    engine = AnalysisEngine(registry, plugin_loader=loader)
    result = engine.analyze([path])
    by_rule = {}
    for issue in result.files[0].issues:
        by_rule.setdefault(issue.rule_id, []).append(issue)

    todo = by_rule["example-plugin/no-todo-comments"]
    assert [(i.location.start.line, i.severity) for i in todo] == [(5, Severity.INFO), (7, Severity.WARNING)]
    addresses = by_rule["example-plugin/no-magic-addresses"]
    assert [i.location.start.line for i in addresses] == [8]

    strict = loader.get_all_presets()["example-plugin/strict"]
    strict_result = engine.analyze([path], ResolvedConfig(rules=strict))
    strict_addresses = [
        i for i in strict_result.files[0].issues if i.rule_id == "example-plugin/no-magic-addresses"
    ]
    assert [i.severity for i in strict_addresses] == [Severity.ERROR]

    assert loader.unload_all() == []

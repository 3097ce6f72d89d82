"""Tests for the solscan command line interface."""

import json
from pathlib import Path

from typer.testing import CliRunner

from solscan.main import app

FIXTURES = Path(__file__).resolve().parent / "fixtures"
EXAMPLE_PLUGIN = Path(__file__).resolve().parent.parent / "examples" / "plugins" / "example_plugin.py"

runner = CliRunner(env={"COLUMNS": "200"})


def test_analyze_clean_file_exits_zero():
    result = runner.invoke(app, ["analyze", str(FIXTURES / "Clean.sol")])
    assert result.exit_code == 0, result.output
    assert "0 issues" in result.output


def test_analyze_vulnerable_file_exits_one():
    result = runner.invoke(app, ["analyze", str(FIXTURES / "Vulnerable.sol")])
    assert result.exit_code == 1
    assert "security/tx-origin" in result.output


def test_rule_override_turns_off_errors():
    result = runner.invoke(
        app, ["analyze", str(FIXTURES / "Vulnerable.sol"), "--rule", "security/tx-origin=off"]
    )
    assert result.exit_code == 0, result.output


def test_json_output():
    result = runner.invoke(app, ["analyze", str(FIXTURES), "--format", "json"])
    assert result.exit_code == 1
    data = json.loads(result.stdout)
    assert data["summary"]["errors"] == 1
    assert [Path(f["filePath"]).name for f in data["files"]] == ["Clean.sol", "Vulnerable.sol"]
    issue = data["files"][1]["issues"][0]
    assert set(issue) >= {"ruleId", "severity", "category", "message", "filePath", "location"}


def test_config_file(tmp_path):
    config = tmp_path / "solscan.json"
    config.write_text(json.dumps({"rules": {"security/tx-origin": "warning", "lint/max-line-length": ["warning", {"max": 200}]}}))
    result = runner.invoke(
        app, ["analyze", str(FIXTURES / "Vulnerable.sol"), "--config", str(config), "--format", "json"]
    )
    assert result.exit_code == 0, result.output
    data = json.loads(result.stdout)
    rule_ids = [i["ruleId"] for i in data["files"][0]["issues"]]
    assert "lint/max-line-length" not in rule_ids
    assert data["summary"]["errors"] == 0


def test_invalid_rule_override_is_reported():
    result = runner.invoke(app, ["analyze", str(FIXTURES / "Clean.sol"), "--rule", "security/tx-origin=loud"])
    assert result.exit_code == 2


def test_invalid_parallel_is_reported():
    result = runner.invoke(app, ["analyze", str(FIXTURES / "Clean.sol"), "--parallel", "0"])
    assert result.exit_code == 2


def test_cache_dir_persists_results(tmp_path):
    cache_dir = tmp_path / "cache"
    args = ["analyze", str(FIXTURES / "Clean.sol"), "--cache", "--cache-dir", str(cache_dir)]
    assert runner.invoke(app, args).exit_code == 0
    assert (cache_dir / "cache.json").exists()
    assert (cache_dir / "metadata.json").exists()


def test_list_rules_with_plugin():
    result = runner.invoke(app, ["list-rules", "--plugin", str(EXAMPLE_PLUGIN)])
    assert result.exit_code == 0, result.output
    assert "security/tx-origin" in result.output
    assert "example-plugin/no-todo-comments" in result.output


def test_fix_pins_floating_pragma(tmp_path):
    target = tmp_path / "Vulnerable.sol"
    target.write_text((FIXTURES / "Vulnerable.sol").read_text(encoding="utf-8"), encoding="utf-8")
    result = runner.invoke(app, ["analyze", str(target), "--fix", "--backup", "--format", "json"])
    assert result.exit_code == 1
    assert "pragma solidity 0.8.0;" in target.read_text(encoding="utf-8")
    assert (tmp_path / "Vulnerable.sol.bak").exists()

from __future__ import annotations

"""
Typer CLI entry point and orchestration of the analysis pipeline.

Commands:
- analyze: find .sol files under the targets, load plugins, run the engine
  and print the result (rich tables, or JSON with --format json). Exits 1
  when any error-severity issue is found. --fix rewrites files with the
  automatic fixes of fixable issues.
- list-rules: print every core and plugin rule with its default severity.
"""

import json
import logging
from pathlib import Path
from typing import Any, List, Optional

import typer
from rich.console import Console

from solscan.cache import ResultCache
from solscan.config import ResolvedConfig
from solscan.engine import AnalysisEngine
from solscan.errors import ConfigError
from solscan.fixer import FileFixResult, apply_fixes
from solscan.plugins.loader import PluginLoader
from solscan.reporting.console import print_result, print_rules
from solscan.rules.registry import RuleRegistry, create_default_registry
from solscan.traversal import collect_targets

logger = logging.getLogger(__name__)

app = typer.Typer(help="solscan - static security analysis for Solidity smart contracts.")

OUTPUT_FORMATS = ("text", "json")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _load_config(config_path: Optional[Path]) -> ResolvedConfig:
    """Read a JSON config file; base_path defaults to the file's directory."""
    if config_path is None:
        return ResolvedConfig()
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise typer.BadParameter(f"Cannot read config {config_path}: {e}") from e
    if isinstance(data, dict) and "base_path" not in data and "basePath" not in data:
        data["base_path"] = str(config_path.parent)
    try:
        return ResolvedConfig.from_dict(data)
    except ConfigError as e:
        raise typer.BadParameter(str(e)) from e


def _parse_rule_override(value: str) -> tuple[str, Any]:
    """Split an ID=SEVERITY override; numeric severities become ints."""
    rule_id, sep, severity = value.partition("=")
    if not sep or not rule_id.strip() or not severity.strip():
        raise typer.BadParameter(f"Rule override must look like ID=SEVERITY, got {value!r}")
    severity = severity.strip()
    return rule_id.strip(), int(severity) if severity.isdigit() else severity


def _report_fixes(fixed: List[FileFixResult]) -> None:
    applied = sum(f.fixes_applied for f in fixed)
    files = sum(1 for f in fixed if f.modified)
    for file_fix in fixed:
        if file_fix.error:
            typer.echo(f"fix: {file_fix.file_path}: {file_fix.error}", err=True)
    typer.echo(f"Applied {applied} fix(es) in {files} file(s)", err=True)


def _load_plugins(sources: List[str], registry: RuleRegistry, cwd: Path) -> PluginLoader:
    loader = PluginLoader(registry=registry)
    if not sources:
        return loader
    result = loader.load(sources, cwd=cwd)
    for error in result.errors:
        typer.echo(f"plugin: {error}", err=True)
    return loader


@app.command()
def analyze(
    targets: List[Path] = typer.Argument(
        ...,
        exists=True,
        readable=True,
        resolve_path=True,
        help="Solidity files or directories to analyze.",
    ),
    config_path: Optional[Path] = typer.Option(
        None, "--config", "-c", exists=True, dir_okay=False, help="JSON configuration file."
    ),
    plugins: List[str] = typer.Option([], "--plugin", "-p", help="Plugin path or module name (repeatable)."),
    rules: List[str] = typer.Option([], "--rule", "-r", help="Rule override ID=SEVERITY (repeatable)."),
    parallel: int = typer.Option(1, "--parallel", "-j", help="Number of files analyzed at once."),
    cache: bool = typer.Option(False, "--cache/--no-cache", help="Reuse results for unchanged files."),
    cache_dir: Optional[Path] = typer.Option(None, "--cache-dir", help="Persist the result cache here."),
    output_format: str = typer.Option("text", "--format", "-f", help="Output format: text or json."),
    fix: bool = typer.Option(False, "--fix", help="Apply automatic fixes of fixable issues in place."),
    backup: bool = typer.Option(False, "--backup", help="With --fix, keep originals as <file>.bak."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging and rule diagnostics."),
) -> None:
    """
    Analyze Solidity files, or every .sol file under the given directories.
    """
    _configure_logging(verbose)
    if output_format not in OUTPUT_FORMATS:
        raise typer.BadParameter(f"--format must be one of {', '.join(OUTPUT_FORMATS)}")

    config = _load_config(config_path)
    for override in rules:
        rule_id, severity = _parse_rule_override(override)
        config.rules[rule_id] = severity

    registry = create_default_registry()
    loader = _load_plugins([*config.plugins, *plugins], registry, config.base_path)

    result_cache = ResultCache(cache_dir=cache_dir)
    if cache:
        result_cache.load()

    try:
        files = collect_targets(targets)
    except FileNotFoundError as e:
        raise typer.BadParameter(str(e)) from e
    if not files:
        logger.warning("No .sol files found under %s", ", ".join(str(t) for t in targets))

    engine = AnalysisEngine(registry, plugin_loader=loader, cache=result_cache)
    try:
        result = engine.analyze(files, config, parallel=parallel, cache=cache)
    except ConfigError as e:
        typer.echo(f"Configuration error: {e}", err=True)
        raise typer.Exit(code=2)
    finally:
        for error in loader.unload_all():
            typer.echo(f"plugin: {error}", err=True)

    if cache:
        result_cache.save()

    if fix:
        _report_fixes(apply_fixes(result, backup=backup))

    if output_format == "json":
        typer.echo(json.dumps(result.to_wire(), indent=2))
    else:
        print_result(result, Console(), base_path=config.base_path, verbose=verbose)

    if result.summary.errors > 0:
        raise typer.Exit(code=1)


@app.command("list-rules")
def list_rules(
    plugins: List[str] = typer.Option([], "--plugin", "-p", help="Plugin path or module name (repeatable)."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
) -> None:
    """
    List every built-in rule, plus the rules of the given plugins.
    """
    _configure_logging(verbose)
    registry = create_default_registry()
    loader = _load_plugins(plugins, registry, Path.cwd())

    all_rules = {rule.metadata.id: rule for rule in registry.get_all_rules()}
    all_rules.update(loader.get_all_rules())
    print_rules(all_rules, Console())

    for error in loader.unload_all():
        typer.echo(f"plugin: {error}", err=True)


def main() -> None:
    """Entry point for the `solscan` console script and `python -m solscan.main`."""
    app()


if __name__ == "__main__":
    main()

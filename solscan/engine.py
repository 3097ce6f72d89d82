"""
Analysis engine: runs the active rule set over a batch of Solidity files.

Per file the pipeline is

    read -> fingerprint / cache lookup -> tolerant parse -> rules -> collect

Setup errors (bad `parallel`, malformed rule settings) raise ConfigError
before any file is touched. Everything after that is isolated per file: an
unreadable file, a broken parse or a rule that raises only affects that
file's FileAnalysisResult, never its siblings.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from enum import Enum
from fnmatch import fnmatch
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, Union

from solscan.cache import ResultCache, compute_fingerprint
from solscan.config import ResolvedConfig, parse_severity
from solscan.context import ActiveRule, AnalysisContext
from solscan.errors import ConfigError, RuleExecutionError
from solscan.findings.models import (
    PARSE_ERROR_RULE_ID,
    SYNTAX_CATEGORY,
    AnalysisResult,
    AnalysisSummary,
    Category,
    Diagnostic,
    FileAnalysisResult,
    Issue,
    ParseErrorInfo,
    Severity,
    SourceRange,
)
from solscan.parser import ParseResult, SolidityParser, SourceParser
from solscan.plugins.loader import PluginLoader
from solscan.plugins.models import get_field
from solscan.rules.base import Rule
from solscan.rules.registry import RuleRegistry

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]
ProgressCallback = Callable[[int, int], None]


@dataclass(frozen=True)
class RuleBinding:
    """A rule instance paired with its effective setting for one analyze() call."""

    rule: Rule
    active: ActiveRule


def _resolve_path(path: PathLike) -> str:
    return str(Path(path).resolve())


def _rule_defaults(rule: Any) -> tuple[Optional[Severity], str]:
    """Default severity and category from a rule's metadata (model or mapping)."""
    metadata = get_field(rule, "metadata")
    rule_id = get_field(metadata, "id") or type(rule).__name__
    severity = get_field(metadata, "severity")
    default = parse_severity(severity, rule_id) if severity is not None else Severity.WARNING
    category = get_field(metadata, "category") or Category.CUSTOM
    if isinstance(category, Enum):
        category = category.value
    return default, str(category)


def _parse_error_issue(file_path: str, errors: list[ParseErrorInfo]) -> Issue:
    first = errors[0] if errors else None
    line = max(first.line, 1) if first is not None else 1
    column = first.column if first is not None else 0
    message = f"Parse error: {first.message}" if first is not None else "Parse error: file could not be parsed"
    return Issue(
        rule_id=PARSE_ERROR_RULE_ID,
        severity=Severity.ERROR,
        category=SYNTAX_CATEGORY,
        message=message,
        file_path=file_path,
        location=SourceRange.from_points(line, column, line, column),
    )


def summarize(files: Iterable[FileAnalysisResult]) -> AnalysisSummary:
    """Count issues by severity over all files."""
    summary = AnalysisSummary()
    for result in files:
        for issue in result.issues:
            if issue.severity == Severity.ERROR:
                summary.errors += 1
            elif issue.severity == Severity.WARNING:
                summary.warnings += 1
            else:
                summary.info += 1
    return summary


class AnalysisEngine:
    """
    Runs core and plugin rules over Solidity files.

    Args:
        registry: Core rules, run in registration order.
        parser: Parser collaborator; a tree-sitter SolidityParser if omitted.
        plugin_loader: Source of plugin rules, run after core rules in load order.
        cache: Result cache used when analyze(cache=True); a fresh in-memory
               ResultCache if omitted.

    The registry and plugin tables are read concurrently by worker threads and
    must not be mutated while analyze() runs.
    """

    def __init__(
        self,
        registry: RuleRegistry,
        parser: Optional[SourceParser] = None,
        plugin_loader: Optional[PluginLoader] = None,
        cache: Optional[ResultCache] = None,
    ) -> None:
        self.registry = registry
        self.parser = parser if parser is not None else SolidityParser()
        self.plugin_loader = plugin_loader
        self.cache = cache if cache is not None else ResultCache()

    # --- setup ---

    def active_rules(self, config: Optional[ResolvedConfig] = None) -> list[RuleBinding]:
        """
        Resolve the rules that will run under config, in execution order.

        Raises:
            ConfigError: a rule setting is malformed.
        """
        config = config if config is not None else ResolvedConfig()
        config.validate()

        bindings: list[RuleBinding] = []
        for rule in self.registry.get_all_rules():
            binding = self._bind(rule.metadata.id, rule, config)
            if binding is not None:
                bindings.append(binding)

        if self.plugin_loader is not None:
            for key, rule in self.plugin_loader.get_all_rules().items():
                if self.registry.has_rule(key):
                    logger.warning("Skipping plugin rule %s: it shadows a core rule", key)
                    continue
                binding = self._bind(key, rule, config)
                if binding is not None:
                    bindings.append(binding)

        logger.debug("Active rules: %s", [b.active.rule_id for b in bindings])
        return bindings

    @staticmethod
    def _bind(rule_id: str, rule: Rule, config: ResolvedConfig) -> Optional[RuleBinding]:
        try:
            default, category = _rule_defaults(rule)
        except ConfigError as e:
            # only reachable for plugin rules loaded without validation
            logger.warning("Skipping rule %s: %s", rule_id, e)
            return None
        setting = config.resolve_rule(rule_id, default)
        if not setting.enabled:
            logger.debug("Rule %s is off", rule_id)
            return None
        active = ActiveRule(
            rule_id=rule_id,
            severity=setting.severity,
            category=category,
            options=dict(setting.options),
        )
        return RuleBinding(rule=rule, active=active)

    @staticmethod
    def is_excluded(path: PathLike, config: ResolvedConfig) -> bool:
        """True if path matches one of config.excluded_files (relative to base_path, or by basename)."""
        if not config.excluded_files:
            return False
        resolved = Path(path).resolve()
        try:
            relative: Optional[str] = resolved.relative_to(Path(config.base_path).resolve()).as_posix()
        except ValueError:
            relative = None

        for pattern in config.excluded_files:
            patterns = [pattern]
            if pattern.startswith("**/"):
                patterns.append(pattern[3:])
            for candidate in patterns:
                if relative is not None and fnmatch(relative, candidate):
                    return True
                if fnmatch(resolved.name, candidate):
                    return True
        return False

    # --- entry points ---

    def analyze(
        self,
        files: Iterable[PathLike],
        config: Optional[ResolvedConfig] = None,
        *,
        parallel: int = 1,
        cache: bool = False,
        on_progress: Optional[ProgressCallback] = None,
    ) -> AnalysisResult:
        """
        Analyze a batch of files.

        Args:
            files: Paths to analyze.
            config: Finished configuration; defaults to every rule at its default severity.
            parallel: Maximum number of files analyzed at once (>= 1).
            cache: Reuse and store results in self.cache.
            on_progress: Called as on_progress(done, total) after each file.

        Returns:
            Results sorted by resolved file path, with summary counts.

        Raises:
            ConfigError: parallel is not a positive int, or a rule setting is malformed.
        """
        start = time.perf_counter()
        if isinstance(parallel, bool) or not isinstance(parallel, int) or parallel < 1:
            raise ConfigError(f"parallel must be an integer >= 1, got {parallel!r}")

        config = config if config is not None else ResolvedConfig()
        bindings = self.active_rules(config)
        rule_set = [[b.active.rule_id, b.active.severity.value, dict(b.active.options)] for b in bindings]

        targets: list[PathLike] = []
        for path in files:
            if self.is_excluded(path, config):
                logger.debug("Excluded %s", path)
                continue
            targets.append(path)

        logger.info(
            "Analyzing %d file(s) with %d rule(s) (parallel=%d, cache=%s)",
            len(targets),
            len(bindings),
            parallel,
            cache,
        )

        results: list[FileAnalysisResult] = []
        total = len(targets)

        def record(result: FileAnalysisResult) -> None:
            results.append(result)
            if on_progress is not None:
                on_progress(len(results), total)

        if parallel > 1 and total > 1:
            with ThreadPoolExecutor(max_workers=min(parallel, total)) as executor:
                futures = {
                    executor.submit(self._analyze_path, path, config, bindings, rule_set, cache): path
                    for path in targets
                }
                for future in as_completed(futures):
                    path = futures[future]
                    try:
                        record(future.result())
                    except Exception as e:
                        record(self._failed(path, e))
        else:
            for path in targets:
                try:
                    record(self._analyze_path(path, config, bindings, rule_set, cache))
                except Exception as e:
                    record(self._failed(path, e))

        results.sort(key=lambda r: r.file_path)
        summary = summarize(results)
        duration = time.perf_counter() - start
        logger.info(
            "Analyzed %d file(s) in %.3fs: %d error(s), %d warning(s), %d info",
            len(results),
            duration,
            summary.errors,
            summary.warnings,
            summary.info,
        )
        return AnalysisResult(
            files=results,
            total_issues=summary.errors + summary.warnings + summary.info,
            summary=summary,
            has_parse_errors=any(r.parse_errors for r in results),
            duration=duration,
        )

    def analyze_file(
        self,
        path: PathLike,
        config: Optional[ResolvedConfig] = None,
        *,
        cache: bool = False,
    ) -> FileAnalysisResult:
        """Run one file through the same pipeline as analyze() (exclusions are not applied)."""
        config = config if config is not None else ResolvedConfig()
        bindings = self.active_rules(config)
        rule_set = [[b.active.rule_id, b.active.severity.value, dict(b.active.options)] for b in bindings]
        try:
            return self._analyze_path(path, config, bindings, rule_set, cache)
        except Exception as e:
            return self._failed(path, e)

    # --- per-file pipeline ---

    @staticmethod
    def _failed(path: PathLike, error: Exception) -> FileAnalysisResult:
        file_path = _resolve_path(path)
        logger.error("Unexpected failure analyzing %s: %s", file_path, error, exc_info=True)
        return FileAnalysisResult(file_path=file_path, error=f"{type(error).__name__}: {error}")

    def _analyze_path(
        self,
        path: PathLike,
        config: ResolvedConfig,
        bindings: list[RuleBinding],
        rule_set: list[Any],
        use_cache: bool,
    ) -> FileAnalysisResult:
        start = time.perf_counter()
        file_path = _resolve_path(path)

        try:
            source = Path(file_path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.error("Failed to read file %s: %s", file_path, e)
            return FileAnalysisResult(
                file_path=file_path,
                error=f"Failed to read file: {e}",
                duration=time.perf_counter() - start,
            )

        fingerprint: Optional[str] = None
        if use_cache:
            fingerprint = compute_fingerprint(file_path, source, rule_set)
            cached = self.cache.get_entry(fingerprint)
            if cached is not None:
                logger.debug("Cache hit for %s", file_path)
                return FileAnalysisResult(
                    file_path=file_path,
                    issues=cached.issues,
                    parse_errors=cached.parse_errors,
                    cached=True,
                    duration=time.perf_counter() - start,
                )

        parse_result = self._parse(file_path, source)
        if parse_result.errors:
            logger.warning("%d syntax error(s) in %s", len(parse_result.errors), file_path)

        diagnostics: list[Diagnostic] = []
        if parse_result.ast is None:
            issues = [_parse_error_issue(file_path, parse_result.errors)]
        else:
            context = AnalysisContext(file_path, source, parse_result.ast, config)
            for binding in bindings:
                diagnostic = self._run_rule(binding, context)
                if diagnostic is not None:
                    diagnostics.append(diagnostic)
            issues = context.issues

        # Partial results (a rule failed) are not cached; parse errors are stored with
        # the issues so a cache hit is identical to a fresh run.
        if fingerprint is not None and not diagnostics:
            self.cache.set(fingerprint, issues, parse_result.errors)

        duration = time.perf_counter() - start
        logger.debug("Analyzed %s: %d issue(s) in %.3fs", file_path, len(issues), duration)
        return FileAnalysisResult(
            file_path=file_path,
            issues=issues,
            parse_errors=parse_result.errors,
            diagnostics=diagnostics,
            duration=duration,
        )

    def _parse(self, file_path: str, source: str) -> ParseResult:
        try:
            return self.parser.parse(source, tolerant=True, loc=True)
        except Exception as e:
            # Tolerant parsing should not raise; treat a parser crash as an unparseable file.
            logger.warning("Parser failed on %s: %s", file_path, e)
            return ParseResult(ast=None, errors=[ParseErrorInfo(message=str(e) or type(e).__name__)])

    @staticmethod
    def _run_rule(binding: RuleBinding, context: AnalysisContext) -> Optional[Diagnostic]:
        rule_id = binding.active.rule_id
        context.begin_rule(binding.active)
        try:
            binding.rule.analyze(context)
        except Exception as e:
            error = RuleExecutionError(rule_id, context.file_path, e)
            logger.warning("%s", error, exc_info=logger.isEnabledFor(logging.DEBUG))
            return Diagnostic(rule_id=rule_id, message=f"{type(e).__name__}: {e}")
        finally:
            context.begin_rule(None)
        logger.debug("Rule %s finished on %s", rule_id, context.file_path)
        return None

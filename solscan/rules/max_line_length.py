# Line length lint: flags lines longer than the configured maximum (option "max", default 120).

from __future__ import annotations

from solscan.context import AnalysisContext
from solscan.findings.models import Category, Severity, SourceRange
from solscan.rules.base import Rule, RuleMetadata

DEFAULT_MAX_LENGTH = 120


class MaxLineLengthRule(Rule):
    """Reports each line longer than rule_options["max"] characters."""

    metadata = RuleMetadata(
        id="lint/max-line-length",
        category=Category.LINT,
        severity=Severity.WARNING,
        title="Maximum line length",
        description="Long lines are hard to read and review.",
        recommendation="Break long lines; the Solidity style guide recommends at most 120 characters.",
    )

    def analyze(self, context: AnalysisContext) -> None:
        max_length = context.rule_options.get("max", DEFAULT_MAX_LENGTH)
        if not isinstance(max_length, int) or isinstance(max_length, bool) or max_length < 1:
            raise ValueError(f"lint/max-line-length option 'max' must be a positive integer, got {max_length!r}")

        for line_no in range(1, context.line_count + 1):
            line = context.get_line_text(line_no).rstrip("\r")
            if len(line) <= max_length:
                continue
            context.report(
                f"Line is {len(line)} characters long (max {max_length}).",
                location=SourceRange.from_points(line_no, max_length, line_no, len(line)),
                metadata={"length": len(line), "max": max_length},
            )

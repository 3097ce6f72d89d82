# Floating pragma detection: `pragma solidity ^0.8.0;` lets the contract compile with untested versions.

from __future__ import annotations

import re
from typing import Optional

from solscan.context import AnalysisContext
from solscan.findings.models import Category, Fix, Severity, SourceRange
from solscan.rules.base import Rule, RuleMetadata

# pragma solidity <constraint>;  (constraint captured without the semicolon)
_PRAGMA_RE = re.compile(r"\bpragma\s+solidity\s+([^;]+);")
_FLOATING_RE = re.compile(r"[\^~><*]|\|\|")
# ^0.8.0 / ~0.8.0 have an obvious pinned equivalent; ranges do not.
_CARET_TILDE_RE = re.compile(r"^[\^~]\s*(\d+\.\d+\.\d+)$")


class FloatingPragmaRule(Rule):
    """Detects non-pinned `pragma solidity` version constraints."""

    metadata = RuleMetadata(
        id="security/floating-pragma",
        category=Category.SECURITY,
        severity=Severity.WARNING,
        title="Floating pragma",
        description="Contracts should be deployed with the compiler version they were tested with.",
        recommendation="Pin the compiler version, e.g. `pragma solidity 0.8.24;`.",
        fixable=True,
    )

    def analyze(self, context: AnalysisContext) -> None:
        for line_no in range(1, context.line_count + 1):
            line = context.get_line_text(line_no)
            stripped = line.lstrip()
            if stripped.startswith("//") or stripped.startswith("*"):
                continue
            for match in _PRAGMA_RE.finditer(line):
                constraint = match.group(1).strip()
                if not _FLOATING_RE.search(constraint):
                    continue
                context.report(
                    f"Floating pragma 'solidity {constraint}'; lock the compiler to a specific version.",
                    location=SourceRange.from_points(line_no, match.start(), line_no, match.end()),
                    metadata={"constraint": constraint},
                    fix=_pin_fix(line_no, match, constraint),
                )


def _pin_fix(line_no: int, match: re.Match, constraint: str) -> Optional[Fix]:
    """Replace `^X.Y.Z` / `~X.Y.Z` with `X.Y.Z`; None for ranges and wildcards."""
    pinned = _CARET_TILDE_RE.match(constraint)
    if pinned is None:
        return None
    raw = match.group(1)
    start = match.start(1) + len(raw) - len(raw.lstrip())
    return Fix(
        description=f"Pin pragma to {pinned.group(1)}",
        range=SourceRange.from_points(line_no, start, line_no, start + len(constraint)),
        text=pinned.group(1),
    )

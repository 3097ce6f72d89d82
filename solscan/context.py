# Per-file analysis context: file path, source, AST, config, and the append-only issue list.
# Rules report through AnalysisContext.report(); the engine sets the active rule
# (ID, effective severity, options) before each rule runs.

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Optional

from tree_sitter import Node as TSNode

from solscan.config import ResolvedConfig
from solscan.findings.models import Fix, Issue, Severity, SourceRange

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActiveRule:
    """The rule currently running against a context, with its effective setting."""

    rule_id: str
    severity: Severity
    category: str
    options: Mapping[str, Any] = field(default_factory=dict)


def get_line_col(node: TSNode, one_based: bool = True) -> tuple[int, int]:
    """
    Return (line, column) for the node's start position.

    tree-sitter uses 0-based (row, byte column). With one_based=True (default)
    the line is 1-based; the column stays 0-based, matching Issue locations.
    """
    row, col = node.start_point
    if one_based:
        return row + 1, col
    return row, col


class AnalysisContext:
    """
    Per-file state for one analysis run.

    Created by the engine for each file, handed to every active rule, and
    discarded once its issues are collected.
    """

    def __init__(
        self,
        file_path: str,
        source_code: str,
        ast: Any,
        config: Optional[ResolvedConfig] = None,
    ) -> None:
        self.file_path = file_path
        self.source_code = source_code
        self.ast = ast
        self.config = config if config is not None else ResolvedConfig()
        self._issues: list[Issue] = []
        self._lines = source_code.split("\n")
        self._source_bytes = source_code.encode("utf-8")
        self._active: Optional[ActiveRule] = None

    # --- rule bookkeeping (driven by the engine) ---

    def begin_rule(self, active: Optional[ActiveRule]) -> None:
        self._active = active

    @property
    def active_rule(self) -> Optional[ActiveRule]:
        return self._active

    @property
    def rule_options(self) -> Mapping[str, Any]:
        """Options configured for the running rule ({} when none were given)."""
        if self._active is None:
            return {}
        return self._active.options

    @property
    def issues(self) -> list[Issue]:
        """Issues reported so far, in report order. Returns a copy."""
        return list(self._issues)

    # --- source helpers ---

    @property
    def line_count(self) -> int:
        return len(self._lines)

    def get_line_text(self, line: int) -> str:
        """Return the text of a 1-based line, or '' if out of range."""
        if 1 <= line <= len(self._lines):
            return self._lines[line - 1]
        return ""

    def get_source_text(self, source_range: SourceRange) -> str:
        """Return the source text covered by a range (columns are 0-based, end exclusive)."""
        start, end = source_range.start, source_range.end
        if start.line == end.line:
            return self.get_line_text(start.line)[start.column : end.column]

        parts: list[str] = []
        for line_no in range(start.line, end.line + 1):
            text = self.get_line_text(line_no)
            if line_no == start.line:
                parts.append(text[start.column :])
            elif line_no == end.line:
                parts.append(text[: end.column])
            else:
                parts.append(text)
        return "\n".join(parts)

    def text_of(self, node: TSNode) -> str:
        """Return the source text of a tree-sitter node (bad UTF-8 is replaced); "" for other shapes."""
        if not isinstance(node, TSNode):
            return ""
        return self._source_bytes[node.start_byte : node.end_byte].decode("utf-8", errors="replace")

    def _char_column(self, row: int, byte_col: int) -> int:
        """Convert a tree-sitter byte column into a character column."""
        if not 0 <= row < len(self._lines):
            return byte_col
        prefix = self._lines[row].encode("utf-8")[:byte_col]
        return len(prefix.decode("utf-8", errors="ignore"))

    def location_of(self, node: Any) -> SourceRange:
        """
        Return the source range of a node.

        Handles tree-sitter nodes and mapping nodes carrying a
        {"loc": {"start": {"line", "column"}, "end": {...}}} entry. Anything
        else maps to the start of the file.
        """
        if isinstance(node, TSNode):
            (srow, scol), (erow, ecol) = node.start_point, node.end_point
            return SourceRange.from_points(
                srow + 1,
                self._char_column(srow, scol),
                erow + 1,
                self._char_column(erow, ecol),
            )
        if isinstance(node, Mapping):
            loc = node.get("loc")
            if isinstance(loc, Mapping) and isinstance(loc.get("start"), Mapping):
                start = loc["start"]
                end = loc.get("end") if isinstance(loc.get("end"), Mapping) else start
                return SourceRange.from_points(
                    max(1, int(start.get("line", 1))),
                    max(0, int(start.get("column", 0))),
                    max(1, int(end.get("line", 1))),
                    max(0, int(end.get("column", 0))),
                )
        return SourceRange.from_points(1, 0, 1, 0)

    def _clamp(self, source_range: SourceRange) -> SourceRange:
        """Force a range inside the file's line/column bounds."""

        def clamp_point(line: int, column: int) -> tuple[int, int]:
            line = min(max(line, 1), max(self.line_count, 1))
            column = min(max(column, 0), len(self.get_line_text(line)))
            return line, column

        sl, sc = clamp_point(source_range.start.line, source_range.start.column)
        el, ec = clamp_point(source_range.end.line, source_range.end.column)
        if (el, ec) < (sl, sc):
            el, ec = sl, sc
        clamped = SourceRange.from_points(sl, sc, el, ec)
        if clamped != source_range:
            logger.debug("Clamped issue location %s -> %s in %s", source_range, clamped, self.file_path)
        return clamped

    # --- reporting ---

    def report(
        self,
        message: str,
        *,
        node: Any = None,
        location: Optional[SourceRange] = None,
        severity: Optional[Severity] = None,
        rule_id: Optional[str] = None,
        category: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
        fix: Optional[Fix] = None,
    ) -> Issue:
        """
        Append an issue for the running rule and return it.

        rule_id, severity and category default to the active rule's ID,
        effective (configured) severity and category. The location comes from
        location, else from node, and is clamped to the file bounds. fix is an
        optional automatic replacement (see solscan.fixer).
        """
        active = self._active
        if rule_id is None:
            if active is None:
                raise ValueError("report() needs rule_id when no rule is active")
            rule_id = active.rule_id
        if severity is None:
            severity = active.severity if active is not None else Severity.WARNING
        if category is None:
            category = active.category if active is not None else "custom"
        if location is None:
            location = self.location_of(node)

        issue = Issue(
            rule_id=rule_id,
            severity=severity,
            category=category,
            message=message,
            file_path=self.file_path,
            location=self._clamp(location),
            metadata=metadata,
            fix=fix,
        )
        self._issues.append(issue)
        return issue

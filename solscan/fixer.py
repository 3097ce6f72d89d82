"""
Automatic fixes: apply the Fix attached to fixable issues back to source files.

Fixes are text replacements over (line, column) ranges. They are applied from
the end of the file towards the start so earlier offsets stay valid; a fix
that overlaps one already accepted is skipped, never merged.

Typical usage:
    result = engine.analyze(files)
    for file_fix in apply_fixes(result, write=True):
        print(file_fix.file_path, file_fix.fixes_applied)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional, Sequence

from solscan.findings.models import AnalysisResult, Fix, Issue, SourceRange

logger = logging.getLogger(__name__)

DEFAULT_BACKUP_EXTENSION = ".bak"


@dataclass(frozen=True)
class FixResult:
    rule_id: str
    description: str
    applied: bool
    error: Optional[str] = None


@dataclass
class FileFixResult:
    """Outcome of fixing one file (or one source string, with file_path None)."""

    file_path: Optional[str]
    original_source: str
    fixed_source: str
    results: list[FixResult] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def fixes_applied(self) -> int:
        return sum(1 for r in self.results if r.applied)

    @property
    def fixes_skipped(self) -> int:
        return sum(1 for r in self.results if not r.applied)

    @property
    def modified(self) -> bool:
        return self.fixed_source != self.original_source


@dataclass(frozen=True)
class _PlacedFix:
    issue: Issue
    fix: Fix
    start: int
    end: int


def _line_offsets(source: str) -> list[int]:
    offsets = [0]
    for i, char in enumerate(source):
        if char == "\n":
            offsets.append(i + 1)
    return offsets


def _to_offset(offsets: list[int], source_len: int, line: int, column: int) -> Optional[int]:
    if line < 1 or line > len(offsets) or column < 0:
        return None
    offset = offsets[line - 1] + column
    line_end = offsets[line] - 1 if line < len(offsets) else source_len
    return offset if offset <= line_end else None


def _overlaps(a: _PlacedFix, b: _PlacedFix) -> bool:
    if a.start == a.end == b.start == b.end:
        return True
    return a.start < b.end and b.start < a.end


class FixApplicator:
    """
    Applies issue fixes to source text and, optionally, to files on disk.

    Args:
        write: Write modified sources back to their files.
        backup: Keep the original next to the file as <file><backup_extension>.
        backup_extension: Suffix of backup files.
    """

    def __init__(
        self,
        write: bool = True,
        backup: bool = False,
        backup_extension: str = DEFAULT_BACKUP_EXTENSION,
    ) -> None:
        self.write = write
        self.backup = backup
        self.backup_extension = backup_extension

    def _place(self, source: str, issues: Iterable[Issue]) -> tuple[list[_PlacedFix], list[FixResult]]:
        offsets = _line_offsets(source)
        placed: list[_PlacedFix] = []
        invalid: list[FixResult] = []
        for issue in issues:
            fix = issue.fix
            if fix is None:
                continue
            start = _to_offset(offsets, len(source), fix.range.start.line, fix.range.start.column)
            end = _to_offset(offsets, len(source), fix.range.end.line, fix.range.end.column)
            if start is None or end is None or start > end:
                invalid.append(FixResult(issue.rule_id, fix.description, False, "Fix range is outside the source"))
                continue
            placed.append(_PlacedFix(issue, fix, start, end))
        # last fix first, so applying one never moves the offsets of the rest
        placed.sort(key=lambda p: (p.start, p.end), reverse=True)
        return placed, invalid

    def _select(self, placed: Sequence[_PlacedFix]) -> tuple[list[_PlacedFix], list[_PlacedFix]]:
        accepted: list[_PlacedFix] = []
        skipped: list[_PlacedFix] = []
        for candidate in placed:
            if any(_overlaps(candidate, other) for other in accepted):
                skipped.append(candidate)
            else:
                accepted.append(candidate)
        return accepted, skipped

    def apply_to_source(self, source: str, issues: Iterable[Issue]) -> FileFixResult:
        """Return source with every non-overlapping fix applied."""
        placed, results = self._place(source, issues)
        accepted, skipped = self._select(placed)

        for fix in skipped:
            results.append(FixResult(fix.issue.rule_id, fix.fix.description, False, "Skipped due to overlapping fix"))

        fixed = source
        for fix in accepted:
            fixed = fixed[: fix.start] + fix.fix.text + fixed[fix.end :]
            results.append(FixResult(fix.issue.rule_id, fix.fix.description, True))

        return FileFixResult(file_path=None, original_source=source, fixed_source=fixed, results=results)

    def apply_to_file(self, path: Path, issues: Iterable[Issue]) -> FileFixResult:
        """
        Fix one file. With write=True a modified file is rewritten in place.

        Raises:
            OSError: The file cannot be read or written.
        """
        path = Path(path)
        source = path.read_text(encoding="utf-8")
        result = self.apply_to_source(source, issues)
        result.file_path = str(path)

        if result.modified and self.write:
            if self.backup:
                backup_path = path.with_name(path.name + self.backup_extension)
                backup_path.write_text(source, encoding="utf-8")
                logger.debug("Wrote backup %s", backup_path)
            path.write_text(result.fixed_source, encoding="utf-8")
            logger.info("Applied %d fix(es) to %s", result.fixes_applied, path)
        return result

    def preview(self, source: str, issues: Iterable[Issue]) -> list[dict]:
        """Describe the fixes apply_to_source() would make, without applying them."""
        placed, _ = self._place(source, issues)
        accepted, _ = self._select(placed)
        return [
            {
                "rule_id": p.issue.rule_id,
                "description": p.fix.description,
                "original": source[p.start : p.end],
                "replacement": p.fix.text,
                "location": p.fix.range,
            }
            for p in accepted
        ]

    def get_diff(self, source: str, issues: Iterable[Issue]) -> str:
        lines: list[str] = []
        for change in self.preview(source, issues):
            location: SourceRange = change["location"]
            lines.append(f"--- {change['rule_id']}")
            lines.append(f"+++ {change['description']}")
            lines.append(
                f"@@ -{location.start.line},{location.start.column} "
                f"+{location.end.line},{location.end.column} @@"
            )
            lines.append(f"-{change['original']}")
            lines.append(f"+{change['replacement']}")
            lines.append("")
        return "\n".join(lines)


def apply_fixes(
    result: AnalysisResult,
    write: bool = True,
    backup: bool = False,
) -> list[FileFixResult]:
    """
    Apply the fixes of every fixable issue in an analysis result, file by file.

    Cached results carry their fixes too. A file that cannot be read or
    written gets an entry with error set; the other files are still fixed.
    """
    applicator = FixApplicator(write=write, backup=backup)
    fixed: list[FileFixResult] = []
    for file_result in result.files:
        fixable = [issue for issue in file_result.issues if issue.fix is not None]
        if not fixable:
            continue
        try:
            fixed.append(applicator.apply_to_file(Path(file_result.file_path), fixable))
        except OSError as e:
            logger.error("Failed to apply fixes to %s: %s", file_result.file_path, e)
            fixed.append(
                FileFixResult(
                    file_path=file_result.file_path,
                    original_source="",
                    fixed_source="",
                    error=f"Failed to apply fixes: {e}",
                )
            )
    return fixed

# Pydantic data models for analysis results: Issue, SourceRange, per-file and batch results.

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


class Severity(str, Enum):
    """Severity of a reported issue."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class Category(str, Enum):
    """Built-in rule categories. Plugins may report any other category string."""

    SECURITY = "security"
    LINT = "lint"
    GAS_OPTIMIZATION = "gas-optimization"
    BEST_PRACTICES = "best-practices"
    CUSTOM = "custom"


# Category of the synthetic issue emitted when a file has no usable AST.
SYNTAX_CATEGORY = "syntax"
PARSE_ERROR_RULE_ID = "parse-error"


class Position(BaseModel):
    """A point in a source file."""

    line: int = Field(..., ge=1, description="1-based line number")
    column: int = Field(..., ge=0, description="0-based column number")

    model_config = {"frozen": True}


class SourceRange(BaseModel):
    """Start and end positions of a finding."""

    start: Position
    end: Position

    model_config = {"frozen": True}

    @classmethod
    def from_points(cls, start_line: int, start_col: int, end_line: int, end_col: int) -> "SourceRange":
        return cls(
            start=Position(line=start_line, column=start_col),
            end=Position(line=end_line, column=end_col),
        )


class Fix(BaseModel):
    """Replacement of the text in range by text; applied by solscan.fixer."""

    description: str
    range: SourceRange
    text: str

    model_config = {"frozen": True}


class Issue(BaseModel):
    """A single finding reported by a rule (or a synthetic parse error)."""

    rule_id: str
    severity: Severity
    category: str
    message: str
    file_path: str
    location: SourceRange
    metadata: Optional[dict[str, Any]] = None
    fix: Optional[Fix] = None

    model_config = {"frozen": True}

    @field_validator("category", mode="before")
    @classmethod
    def _category_value(cls, value: Any) -> Any:
        if isinstance(value, Enum):
            return value.value
        return value

    def to_wire(self) -> dict[str, Any]:
        """Return the stable camelCase representation consumed by formatters."""
        data: dict[str, Any] = {
            "ruleId": self.rule_id,
            "severity": self.severity.value,
            "category": self.category,
            "message": self.message,
            "filePath": self.file_path,
            "location": {
                "start": {"line": self.location.start.line, "column": self.location.start.column},
                "end": {"line": self.location.end.line, "column": self.location.end.column},
            },
        }
        if self.metadata:
            data["metadata"] = dict(self.metadata)
        if self.fix is not None:
            data["fix"] = {
                "description": self.fix.description,
                "range": {
                    "start": {"line": self.fix.range.start.line, "column": self.fix.range.start.column},
                    "end": {"line": self.fix.range.end.line, "column": self.fix.range.end.column},
                },
                "text": self.fix.text,
            }
        return data


class ParseErrorInfo(BaseModel):
    """A syntax error collected during tolerant parsing."""

    message: str
    line: int = Field(0, ge=0, description="1-based line, 0 when unknown")
    column: int = Field(0, ge=0, description="0-based column")


class Diagnostic(BaseModel):
    """Internal, non-fatal record of a rule that raised while analyzing a file."""

    rule_id: str
    message: str


class FileAnalysisResult(BaseModel):
    """Issues and failure information for one analyzed file."""

    file_path: str
    issues: list[Issue] = Field(default_factory=list)
    parse_errors: list[ParseErrorInfo] = Field(default_factory=list)
    diagnostics: list[Diagnostic] = Field(default_factory=list)
    error: Optional[str] = None
    cached: bool = False
    duration: float = 0.0

    def to_wire(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "filePath": self.file_path,
            "issues": [issue.to_wire() for issue in self.issues],
        }
        if self.parse_errors:
            data["parseErrors"] = [e.model_dump() for e in self.parse_errors]
        if self.error:
            data["error"] = self.error
        return data


class AnalysisSummary(BaseModel):
    errors: int = 0
    warnings: int = 0
    info: int = 0


class AnalysisResult(BaseModel):
    """Aggregated result of one analyze() call."""

    files: list[FileAnalysisResult] = Field(default_factory=list)
    total_issues: int = 0
    summary: AnalysisSummary = Field(default_factory=AnalysisSummary)
    has_parse_errors: bool = False
    duration: float = 0.0

    def to_wire(self) -> dict[str, Any]:
        return {
            "files": [f.to_wire() for f in self.files],
            "totalIssues": self.total_issues,
            "summary": self.summary.model_dump(),
        }

# Rule interface (abstract base class): metadata plus analyze(context).
# Concrete rules (tx_origin, delegatecall, etc.) subclass Rule, set a class-level
# RuleMetadata and report issues through context.report().

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Optional

from pydantic import BaseModel, field_validator

from solscan.findings.models import Category, Severity
from solscan.walker import get_children

if TYPE_CHECKING:
    from solscan.context import AnalysisContext

_WHITESPACE_RE = re.compile(r"\s+")

# Longest node (in bytes) considered when matching short expressions by text.
MAX_MATCH_SPAN = 256


class RuleMetadata(BaseModel):
    """Static description of a rule. id is "category/kebab-name" and unique in a catalog."""

    id: str
    category: str
    severity: Severity
    title: str
    description: str
    recommendation: str = ""
    fixable: bool = False
    documentation_url: Optional[str] = None

    model_config = {"frozen": True}

    @field_validator("category", mode="before")
    @classmethod
    def _category_value(cls, value: Any) -> Any:
        if isinstance(value, Category):
            return value.value
        return value


class Rule(ABC):
    """
    Abstract base class for all analysis rules.

    Subclasses must define:
    - metadata: RuleMetadata, a class attribute (id, category, default severity, ...)
    - analyze(context) -> None, which inspects context.ast / context.source_code
      and calls context.report() for each finding

    The engine creates one instance per rule and reuses it for every file, so
    rules must keep no per-file state on self; anything per-file belongs in
    locals or on the context.
    """

    metadata: RuleMetadata

    @abstractmethod
    def analyze(self, context: AnalysisContext) -> None:
        """
        Analyze one file and report findings.

        Args:
            context: Per-file state (file_path, source_code, ast, config).
                     context.rule_options holds this rule's configured options.
        """
        ...

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.metadata.id}>"


def compact_text(context: AnalysisContext, node: Any) -> str:
    """Node source text with all whitespace removed (e.g. 'tx . origin' -> 'tx.origin')."""
    return _WHITESPACE_RE.sub("", context.text_of(node))


def is_innermost_match(context: AnalysisContext, node: Any, text: str) -> bool:
    """
    True if node's compact text is text and no child's compact text is.

    Wrapper nodes (e.g. an expression node around a member expression) share
    their child's text; this picks a single node per occurrence.
    """
    # Whole statements and blocks can never spell a short member access.
    if span_length(node) > MAX_MATCH_SPAN:
        return False
    if compact_text(context, node) != text:
        return False
    return not any(compact_text(context, child) == text for child in get_children(node))


def span_length(node: Any) -> int:
    """Byte length of a tree-sitter node's source span (0 for other node shapes)."""
    start = getattr(node, "start_byte", None)
    end = getattr(node, "end_byte", None)
    if start is None or end is None:
        return 0
    return end - start

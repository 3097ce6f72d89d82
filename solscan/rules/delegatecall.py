# delegatecall detection: code executed via delegatecall runs with the caller's storage.

from __future__ import annotations

from typing import Any

from solscan.context import AnalysisContext
from solscan.findings.models import Category, Severity
from solscan.rules.base import MAX_MATCH_SPAN, Rule, RuleMetadata, compact_text, span_length
from solscan.walker import find_nodes, get_children

_SUFFIX = ".delegatecall"


class DelegatecallRule(Rule):
    """Detects <expr>.delegatecall member accesses."""

    metadata = RuleMetadata(
        id="security/delegatecall",
        category=Category.SECURITY,
        severity=Severity.WARNING,
        title="Delegatecall usage",
        description="delegatecall executes external code in the context of this contract's storage.",
        recommendation=(
            "Only delegatecall into trusted, immutable targets, and never into an address "
            "controlled by the caller."
        ),
    )

    def analyze(self, context: AnalysisContext) -> None:
        def is_delegatecall_access(node: Any) -> bool:
            if span_length(node) > MAX_MATCH_SPAN:
                return False
            text = compact_text(context, node)
            if not text.endswith(_SUFFIX) or text == _SUFFIX:
                return False
            # innermost node spelling "<target>.delegatecall"
            return not any(compact_text(context, c).endswith(_SUFFIX) for c in get_children(node))

        for node in find_nodes(context.ast, is_delegatecall_access):
            target = compact_text(context, node)[: -len(_SUFFIX)]
            context.report(
                f"delegatecall to '{target}' runs external code with this contract's storage.",
                node=node,
                metadata={"target": target},
            )

# selfdestruct/suicide detection: contract destruction is deprecated and easy to misuse.

from __future__ import annotations

from typing import Any

from solscan.context import AnalysisContext
from solscan.findings.models import Category, Severity
from solscan.rules.base import Rule, RuleMetadata
from solscan.walker import find_nodes, get_children

DESTRUCT_BUILTINS = frozenset({"selfdestruct", "suicide"})


class AvoidSelfdestructRule(Rule):
    """Detects references to selfdestruct (and its legacy alias suicide)."""

    metadata = RuleMetadata(
        id="security/avoid-selfdestruct",
        category=Category.SECURITY,
        severity=Severity.WARNING,
        title="Avoid selfdestruct",
        description="selfdestruct can remove contract code and force-send ether; it is deprecated (EIP-6049).",
        recommendation="Remove selfdestruct, or guard it with strict access control if it is truly required.",
    )

    def analyze(self, context: AnalysisContext) -> None:
        def is_destruct_identifier(node: Any) -> bool:
            # Leaf identifiers only; the enclosing call/expression nodes have longer text.
            if get_children(node):
                return False
            return context.text_of(node).strip() in DESTRUCT_BUILTINS

        for node in find_nodes(context.ast, is_destruct_identifier):
            name = context.text_of(node).strip()
            message = f"Use of '{name}' detected; contract destruction is deprecated and dangerous."
            if name == "suicide":
                message += " 'suicide' is a removed alias of selfdestruct."
            context.report(message, node=node)

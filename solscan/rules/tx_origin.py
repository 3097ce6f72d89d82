# tx.origin detection: flags every tx.origin member access (phishing-prone authorization).

from __future__ import annotations

from typing import Any

from solscan.context import AnalysisContext
from solscan.findings.models import Category, Severity
from solscan.rules.base import Rule, RuleMetadata, is_innermost_match
from solscan.walker import find_nodes

TX_ORIGIN = "tx.origin"


class TxOriginRule(Rule):
    """Detects use of tx.origin, which is unsafe for authorization checks."""

    metadata = RuleMetadata(
        id="security/tx-origin",
        category=Category.SECURITY,
        severity=Severity.ERROR,
        title="Avoid tx.origin for authorization",
        description="Using tx.origin for authorization is vulnerable to phishing attacks.",
        recommendation=(
            "Use msg.sender instead of tx.origin. tx.origin is the original sender of the "
            "transaction, so a malicious contract called by a user passes a tx.origin check."
        ),
    )

    def analyze(self, context: AnalysisContext) -> None:
        def is_tx_origin(node: Any) -> bool:
            return is_innermost_match(context, node, TX_ORIGIN)

        for node in find_nodes(context.ast, is_tx_origin):
            context.report(
                "Avoid using tx.origin for authorization; use msg.sender instead to prevent phishing attacks.",
                node=node,
            )

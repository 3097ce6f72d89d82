"""
Example solscan plugin: two custom rules and two presets.

Load it with:

    solscan analyze contracts/ --plugin examples/plugins/example_plugin.py

Its rules are registered as "example-plugin/no-todo-comments" and
"example-plugin/no-magic-addresses".
"""

import logging
import re

from solscan.context import AnalysisContext
from solscan.findings.models import Category, Severity, SourceRange
from solscan.rules.base import Rule, RuleMetadata

logger = logging.getLogger(__name__)

_TODO_RE = re.compile(r"//\s*TODO:?\s*(.*)", re.IGNORECASE)
_FIXME_RE = re.compile(r"//\s*FIXME:?\s*(.*)", re.IGNORECASE)
_ADDRESS_RE = re.compile(r"0x[a-fA-F0-9]{40}")
_NAMED_CONSTANT_RE = re.compile(r"\b(?:constant|immutable)\s+\w+\s*=")


class NoTodoCommentsRule(Rule):
    """Reports TODO comments (at the configured severity) and FIXME comments (always warning)."""

    metadata = RuleMetadata(
        id="example-plugin/no-todo-comments",
        category=Category.LINT,
        severity=Severity.INFO,
        title="No TODO comments",
        description="Detects TODO and FIXME comments in source code.",
        recommendation="Resolve TODO items before deploying to production.",
    )

    def analyze(self, context: AnalysisContext) -> None:
        for line_no in range(1, context.line_count + 1):
            line = context.get_line_text(line_no)
            if not line:
                continue
            whole_line = SourceRange.from_points(line_no, 0, line_no, len(line))

            todo = _TODO_RE.search(line)
            if todo:
                text = todo.group(1).strip() or "No description"
                context.report(f'TODO comment found: "{text}"', location=whole_line)

            fixme = _FIXME_RE.search(line)
            if fixme:
                text = fixme.group(1).strip() or "No description"
                context.report(f'FIXME comment found: "{text}"', location=whole_line, severity=Severity.WARNING)


class NoMagicAddressesRule(Rule):
    """Reports hardcoded 20-byte addresses outside constant/immutable declarations."""

    metadata = RuleMetadata(
        id="example-plugin/no-magic-addresses",
        category=Category.SECURITY,
        severity=Severity.WARNING,
        title="No magic addresses",
        description="Detects hardcoded Ethereum addresses in source code.",
        recommendation="Use named constants or configuration for addresses.",
    )

    def analyze(self, context: AnalysisContext) -> None:
        for line_no in range(1, context.line_count + 1):
            line = context.get_line_text(line_no)
            if _NAMED_CONSTANT_RE.search(line):
                continue
            for match in _ADDRESS_RE.finditer(line):
                context.report(
                    f'Hardcoded address "{match.group(0)}" found. Consider using a named constant.',
                    location=SourceRange.from_points(line_no, match.start(), line_no, match.end()),
                    metadata={"address": match.group(0)},
                )


def setup() -> None:
    logger.info("example-plugin loaded")


def teardown() -> None:
    logger.info("example-plugin unloaded")


plugin = {
    "meta": {
        "name": "example-plugin",
        "version": "1.0.0",
        "description": "Example plugin demonstrating custom rules",
    },
    "rules": {
        "no-todo-comments": NoTodoCommentsRule,
        "no-magic-addresses": NoMagicAddressesRule,
    },
    "presets": {
        "recommended": {
            "rules": {
                "example-plugin/no-todo-comments": "info",
                "example-plugin/no-magic-addresses": "warning",
            },
        },
        "strict": {
            "rules": {
                "example-plugin/no-todo-comments": "warning",
                "example-plugin/no-magic-addresses": "error",
            },
        },
    },
    "setup": setup,
    "teardown": teardown,
}

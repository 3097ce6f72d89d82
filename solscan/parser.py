# Tree-sitter setup and Solidity parsing: tolerant/strict parse, syntax error collection.

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Protocol

import tree_sitter
from tree_sitter import Language
from tree_sitter import Node as TSNode
from tree_sitter_language_pack import get_language

from solscan.errors import ParseError
from solscan.findings.models import ParseErrorInfo

logger = logging.getLogger(__name__)

# Solidity grammar shipped with tree-sitter-language-pack
_SOLIDITY_LANGUAGE: Language = get_language("solidity")

# Top-level node types that never make a tree usable on their own.
_NON_DECLARATION_TYPES = frozenset({"ERROR", "comment"})

_SNIPPET_LIMIT = 40


def get_solidity_language() -> Language:
    """Return the tree-sitter Language object for Solidity."""
    return _SOLIDITY_LANGUAGE


def create_parser() -> tree_sitter.Parser:
    """Create and return a tree-sitter Parser configured for Solidity."""
    return tree_sitter.Parser(_SOLIDITY_LANGUAGE)


def parse_bytes(
    source: bytes,
    parser: Optional[tree_sitter.Parser] = None,
) -> tree_sitter.Tree:
    """
    Parse Solidity source bytes into a syntax tree.

    tree-sitter always returns a tree; syntax errors show up as ERROR or
    MISSING nodes (tree.root_node.has_error).
    """
    if parser is None:
        parser = create_parser()
    tree = parser.parse(source)
    if tree.root_node.has_error:
        logger.debug("Parse completed with errors: root=%s", tree.root_node.type)
    else:
        logger.debug("Parse succeeded: root=%s", tree.root_node.type)
    return tree


def parse_file(path: Path, parser: Optional[tree_sitter.Parser] = None) -> Optional[tree_sitter.Tree]:
    """
    Parse a Solidity source file into a syntax tree.

    Returns:
        The parse tree, or None if the file could not be read.
    """
    try:
        source = path.read_bytes()
    except OSError as e:
        logger.error("Failed to read file %s: %s", path, e)
        return None
    tree = parse_bytes(source, parser=parser)
    logger.info("Parsed file %s: success=%s", path, not tree.root_node.has_error)
    return tree


def _snippet(node: TSNode) -> str:
    text = (node.text or b"").decode("utf-8", errors="replace").strip()
    if len(text) > _SNIPPET_LIMIT:
        text = text[:_SNIPPET_LIMIT] + "..."
    return text


def collect_syntax_errors(root: TSNode) -> list[ParseErrorInfo]:
    """
    Return the top-most ERROR nodes and MISSING tokens under root, in source order.

    Only subtrees flagged has_error are descended into; ERROR nodes are not
    descended into, so one broken region yields one error.
    """
    errors: list[ParseErrorInfo] = []

    def _visit(node: TSNode) -> None:
        if node.type == "ERROR":
            row, col = node.start_point
            snippet = _snippet(node)
            message = f"Syntax error near '{snippet}'" if snippet else "Syntax error"
            errors.append(ParseErrorInfo(message=message, line=row + 1, column=col))
            return
        if node.is_missing:
            row, col = node.start_point
            errors.append(ParseErrorInfo(message=f"Missing '{node.type}'", line=row + 1, column=col))
            return
        for child in node.children:
            if child.has_error or child.is_missing:
                _visit(child)

    if root.has_error or root.type == "ERROR":
        _visit(root)
    return errors


def has_usable_ast(root: TSNode) -> bool:
    """
    True if rules can meaningfully run on the tree.

    A tree is unusable when the root itself is an ERROR node, or when it
    contains errors and no top-level declaration survived error recovery.
    """
    if root.type == "ERROR":
        return False
    if not root.has_error:
        return True
    return any(child.type not in _NON_DECLARATION_TYPES for child in root.named_children)


@dataclass
class ParseResult:
    """Outcome of a parse: best-effort AST (None if unusable) plus syntax errors."""

    ast: Optional[Any]
    errors: list[ParseErrorInfo] = field(default_factory=list)


class SourceParser(Protocol):
    """Parser collaborator used by the analysis engine."""

    def parse(self, source: str, *, tolerant: bool = True, loc: bool = True) -> ParseResult: ...


class SolidityParser:
    """
    Tree-sitter backed implementation of the SourceParser protocol.

    tree_sitter.Parser objects are not safe to share between threads, so one
    is kept per thread.
    """

    def __init__(self) -> None:
        self._local = threading.local()

    def _parser(self) -> tree_sitter.Parser:
        parser = getattr(self._local, "parser", None)
        if parser is None:
            parser = create_parser()
            self._local.parser = parser
        return parser

    def parse(self, source: str, *, tolerant: bool = True, loc: bool = True) -> ParseResult:
        """
        Parse source text.

        Tolerant mode never raises: it returns the root node (or None when the
        tree is unusable) together with every syntax error found. Strict mode
        raises ParseError for the first syntax error. Locations are always
        available on tree-sitter nodes, so loc is accepted for interface
        compatibility only.
        """
        tree = parse_bytes(source.encode("utf-8"), parser=self._parser())
        root = tree.root_node
        errors = collect_syntax_errors(root)

        if not tolerant and errors:
            first = errors[0]
            raise ParseError(first.message, line=first.line, column=first.column)

        if errors:
            logger.debug("Collected %d syntax error(s)", len(errors))
        ast = root if has_usable_ast(root) else None
        return ParseResult(ast=ast, errors=errors)

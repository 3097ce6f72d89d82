"""
AST walker: depth-first traversal with enter/exit hooks and SKIP/STOP control.

Two node shapes are understood:

- tree-sitter ``Node`` objects (what ``solscan.parser`` produces): children
  are the node's named children, so punctuation tokens are not visited.
- Mapping nodes (dict-shaped trees, e.g. from other Solidity parsers or hand
  built in tests): children are read from a fixed allowlist of structural
  fields, concatenated in ``CHILD_FIELDS`` order, with ``None`` entries dropped.

Anything else is treated as a leaf, so a tree from a newer grammar never
crashes the walk; unrecognized shapes simply contribute no children.

Typical usage:
    from solscan.walker import Visitor, VisitAction, walk, find_nodes

    calls = find_nodes(root, lambda n: n.type == "call_expression")

    def enter(node, parent):
        if node.type == "function_definition":
            return VisitAction.SKIP

    walk(root, Visitor(enter=enter))
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterator, Optional

from tree_sitter import Node as TSNode

# Structural fields that hold children in mapping-shaped ASTs, in traversal order.
CHILD_FIELDS: tuple[str, ...] = (
    "children",
    "subNodes",
    "body",
    "parameters",
    "returnParameters",
    "members",
    "baseContracts",
    "modifiers",
    "statements",
    "expression",
    "left",
    "right",
)


class VisitAction(Enum):
    """Control signal returned from Visitor.enter."""

    CONTINUE = "continue"
    SKIP = "skip"
    STOP = "stop"


EnterFn = Callable[[Any, Optional[Any]], Optional[VisitAction]]
ExitFn = Callable[[Any, Optional[Any]], None]
NodePredicate = Callable[[Any], bool]


@dataclass
class Visitor:
    """
    Callbacks for walk(). Both receive (node, parent); parent is None for the root.

    enter may return VisitAction.SKIP (do not descend, exit still fires for the
    node) or VisitAction.STOP (abort; no further enter/exit calls at all).
    Returning None means CONTINUE.
    """

    enter: Optional[EnterFn] = None
    exit: Optional[ExitFn] = None


def get_children(node: Any) -> list[Any]:
    """Return the structural children of node; unknown shapes have none."""
    if isinstance(node, TSNode):
        return [child for child in node.named_children if child is not None]

    if isinstance(node, Mapping):
        children: list[Any] = []
        for field_name in CHILD_FIELDS:
            value = node.get(field_name)
            if value is None:
                continue
            if isinstance(value, (list, tuple)):
                children.extend(item for item in value if item is not None)
            elif isinstance(value, Mapping):
                children.append(value)
        return children

    return []


def _enter(visitor: Visitor, node: Any, parent: Optional[Any]) -> VisitAction:
    if visitor.enter is None:
        return VisitAction.CONTINUE
    action = visitor.enter(node, parent)
    return action if action is not None else VisitAction.CONTINUE


def _exit(visitor: Visitor, node: Any, parent: Optional[Any]) -> None:
    if visitor.exit is not None:
        visitor.exit(node, parent)


_DONE = object()


def walk(root: Any, visitor: Visitor) -> bool:
    """
    Traverse root depth-first: enter in pre-order, exit in post-order.

    The traversal keeps an explicit stack, so very deep trees do not hit the
    interpreter recursion limit.

    Returns:
        False if a visitor returned STOP, True if the traversal completed.
    """
    if root is None:
        return True

    action = _enter(visitor, root, None)
    if action is VisitAction.STOP:
        return False
    if action is VisitAction.SKIP:
        _exit(visitor, root, None)
        return True

    # Each frame: (node, parent, iterator over node's remaining children)
    stack: list[tuple[Any, Optional[Any], Iterator[Any]]] = [
        (root, None, iter(get_children(root)))
    ]
    while stack:
        node, parent, children = stack[-1]
        child = next(children, _DONE)
        if child is _DONE:
            stack.pop()
            _exit(visitor, node, parent)
            continue

        action = _enter(visitor, child, node)
        if action is VisitAction.STOP:
            return False
        if action is VisitAction.SKIP:
            _exit(visitor, child, node)
            continue
        stack.append((child, node, iter(get_children(child))))

    return True


def iter_nodes(root: Any) -> Iterator[Any]:
    """Yield every node under root (root included) in pre-order."""
    if root is None:
        return
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(get_children(node)))


def find_nodes(root: Any, predicate: NodePredicate) -> list[Any]:
    """Return all nodes matching predicate, in traversal order."""
    return [node for node in iter_nodes(root) if predicate(node)]


def find_node(root: Any, predicate: NodePredicate) -> Optional[Any]:
    """Return the first node matching predicate, stopping the walk at the first hit."""
    found: list[Any] = []

    def enter(node: Any, parent: Optional[Any]) -> Optional[VisitAction]:
        if predicate(node):
            found.append(node)
            return VisitAction.STOP
        return None

    walk(root, Visitor(enter=enter))
    return found[0] if found else None


def same_node(a: Any, b: Any) -> bool:
    """Identity for mapping nodes; tree-sitter nodes compare by node id."""
    if a is b:
        return True
    if isinstance(a, TSNode) and isinstance(b, TSNode):
        return a == b
    return False


def get_node_path(root: Any, target: Any) -> Optional[list[Any]]:
    """
    Return the chain of nodes from root down to target (both included).

    Depth-first with backtracking; None if target is not reachable from root.
    """
    if root is None:
        return None

    path: list[Any] = [root]
    if same_node(root, target):
        return path

    stack: list[Iterator[Any]] = [iter(get_children(root))]
    while stack:
        child = next(stack[-1], _DONE)
        if child is _DONE:
            stack.pop()
            path.pop()
            continue
        path.append(child)
        if same_node(child, target):
            return path
        stack.append(iter(get_children(child)))

    return None

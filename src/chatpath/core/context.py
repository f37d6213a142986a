"""context a branch inherits from its ancestors.

every walk up the parent chain carries a visited set, so a malformed tree
with a parent cycle raises CycleDetected instead of looping forever.
"""

from __future__ import annotations

from typing import Iterator

from .errors import CycleDetected
from .models import ConversationNode, ConversationTree


def iter_ancestry(tree: ConversationTree, node: ConversationNode) -> Iterator[ConversationNode]:
    """yield node, parent, grandparent, ... up to the root.

    stops quietly at a missing parent.
    """
    seen: set[str] = set()
    current = node
    while current is not None:
        if current.id in seen:
            raise CycleDetected(current.id)
        seen.add(current.id)
        yield current
        current = tree.get_node(current.parent_id)


def get_full_context(tree: ConversationTree, node: ConversationNode) -> list[str]:
    """every ancestor's context, oldest ancestor first, node's own last."""
    chain = list(iter_ancestry(tree, node))
    context: list[str] = []
    for ancestor in reversed(chain):
        context.extend(ancestor.context)
    return context


def get_ancestry_path(tree: ConversationTree, node_id: str) -> list[str]:
    """node ids from root to ``node_id``; empty for an unknown id."""
    node = tree.get_node(node_id)
    if node is None:
        return []
    return [n.id for n in reversed(list(iter_ancestry(tree, node)))]


def is_descendant_of(tree: ConversationTree, node_id: str, ancestor_id: str) -> bool:
    """true if ``ancestor_id`` lies on the path from root to ``node_id`` (inclusive)."""
    return ancestor_id in get_ancestry_path(tree, node_id)


def get_branching_context(tree: ConversationTree, node_id: str, selected_text: str) -> str:
    """transcript a new branch off ``node_id`` should be aware of."""
    node = tree.get_node(node_id)
    if node is None:
        return ""
    context = "\n".join(get_full_context(tree, node))
    return f'Continuing from: "{selected_text}"\n\nPrevious context:\n{context}'


def collect_subtree(tree: ConversationTree, node_id: str) -> list[str]:
    """ids of ``node_id`` and all its descendants, parents before children."""
    if node_id not in tree.nodes:
        return []
    children: dict[str, list[str]] = {}
    for node in tree.nodes.values():
        if node.parent_id is not None:
            children.setdefault(node.parent_id, []).append(node.id)

    collected: list[str] = []
    seen: set[str] = set()
    stack = [node_id]
    while stack:
        current = stack.pop()
        if current in seen:
            raise CycleDetected(current)
        seen.add(current)
        collected.append(current)
        stack.extend(reversed(children.get(current, [])))
    return collected

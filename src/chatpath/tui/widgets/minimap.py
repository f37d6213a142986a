"""minimap widget: ascii tree of the conversation nodes.

click to change focus. shows structure at a glance.
"""

from __future__ import annotations

from textual.message import Message
from textual.widgets import Static
from rich.text import Text

from ...core.context import get_ancestry_path
from ...core.errors import CycleDetected
from ...core.models import ConversationEdge, ConversationNode, ConversationTree
from ...core.summary import generate_conversation_summary


class NodeClicked(Message):
    """message emitted when a node is clicked in the minimap."""

    def __init__(self, node_id: str) -> None:
        self.node_id = node_id
        super().__init__()


def node_label(tree: ConversationTree, node: ConversationNode) -> str:
    """short label: the incoming edge label, else a fresh summary."""
    if node.parent_id is None:
        return "root"
    edge = tree.edges.get(ConversationEdge.edge_id(node.parent_id, node.id))
    if edge and edge.label:
        return edge.label
    return generate_conversation_summary(node.messages)


def build_tree_lines(tree: ConversationTree) -> list[tuple[str, str]]:
    """(node_id, line) pairs in display order, depth-first from the root."""
    lines: list[tuple[str, str]] = []
    root = tree.root
    if root is None:
        return lines

    children: dict[str, list[str]] = {}
    for node in tree.nodes.values():
        if node.parent_id is not None:
            children.setdefault(node.parent_id, []).append(node.id)

    seen: set[str] = set()

    def render(node_id: str, prefix: str, is_last: bool, depth: int) -> None:
        if node_id in seen:
            return
        seen.add(node_id)
        node = tree.nodes[node_id]
        connector = "" if depth == 0 else ("└─" if is_last else "├─")
        count = len(node.messages)
        lines.append((node_id, f"{prefix}{connector}[{node_label(tree, node)}] ({count})"))

        child_prefix = "" if depth == 0 else prefix + ("  " if is_last else "│ ")
        kids = children.get(node_id, [])
        for i, child_id in enumerate(kids):
            render(child_id, child_prefix, i == len(kids) - 1, depth + 1)

    render(root.id, "", True, 0)
    return lines


class Minimap(Static):
    """ascii tree minimap of the conversation tree."""

    DEFAULT_CSS = """
    Minimap {
        height: auto;
        min-height: 5;
        max-height: 40%;
        padding: 1;
        border: solid $surface-lighten-2;
    }
    """

    def __init__(self, tree: ConversationTree, active_node_id: str | None = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self.conversation_tree = tree
        self.active_node_id = active_node_id
        self._rows: list[str] = []  # node id per rendered row

    def render(self) -> Text:
        """render the tree as ascii."""
        if self.conversation_tree.root is None:
            return Text("(empty tree)", style="dim")

        lines = build_tree_lines(self.conversation_tree)
        self._rows = [nid for nid, _ in lines]

        try:
            active_set = set(get_ancestry_path(self.conversation_tree, self.active_node_id or ""))
        except CycleDetected:
            active_set = set()

        text = Text()
        for node_id, line in lines:
            if node_id == self.active_node_id:
                text.append(line + "\n", style="bold green")
            elif node_id in active_set:
                text.append(line + "\n", style="bold cyan")
            else:
                text.append(line + "\n", style="dim")
        return text

    def on_click(self, event) -> None:
        """handle click to focus a node."""
        offset = event.get_content_offset(self)
        if offset is not None and 0 <= offset.y < len(self._rows):
            self.post_message(NodeClicked(self._rows[offset.y]))

    def refresh_tree(self, tree: ConversationTree, active_node_id: str | None) -> None:
        """update with new tree state."""
        self.conversation_tree = tree
        self.active_node_id = active_node_id
        self.refresh()

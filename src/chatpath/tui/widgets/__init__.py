"""textual widgets for chatpath."""

from .minimap import Minimap, NodeClicked, build_tree_lines
from .node_view import NodeView, MessageWidget, highlight_branches

__all__ = [
    "Minimap",
    "NodeClicked",
    "build_tree_lines",
    "NodeView",
    "MessageWidget",
    "highlight_branches",
]

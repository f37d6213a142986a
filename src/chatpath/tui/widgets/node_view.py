"""node view widget: the active conversation with full detail.

only the active node renders its messages - the minimap covers the rest.
"""

from __future__ import annotations

from textual.containers import ScrollableContainer
from textual.widgets import Static
from rich.panel import Panel
from rich.text import Text

from ...core.models import ConversationNode, Message, Role
from ...core.summary import conversation_title


def highlight_branches(message: Message) -> Text:
    """message text with every branched span underlined."""
    text = Text(message.content)
    for bp in message.branch_points:
        start = max(0, bp.start_offset)
        end = min(len(message.content), bp.end_offset)
        if start < end:
            text.stylize("underline magenta", start, end)
    return text


class MessageWidget(Static):
    """single message, numbered so it can be branched from."""

    DEFAULT_CSS = """
    MessageWidget {
        margin: 0 0 1 0;
        padding: 0;
    }
    """

    def __init__(self, message: Message, index: int, **kwargs) -> None:
        super().__init__(**kwargs)
        self.message = message
        self.index = index

    def render(self) -> Panel:
        """render the message as a panel."""
        if self.message.role == Role.USER:
            title = f"{self.index} · you"
            border_style = "blue"
        else:
            title = f"{self.index} · assistant"
            border_style = "green"

        branches = len(self.message.branch_points)
        subtitle = f"{branches} branch{'es' if branches != 1 else ''}" if branches else None

        return Panel(
            highlight_branches(self.message),
            title=title,
            title_align="left",
            subtitle=subtitle,
            subtitle_align="right",
            border_style=border_style,
            padding=(0, 1),
        )


class NodeView(ScrollableContainer):
    """renders the active node's messages."""

    DEFAULT_CSS = """
    NodeView {
        height: 1fr;
        padding: 1;
        border: solid $surface-lighten-2;
    }

    NodeView .node-header {
        text-style: bold;
        margin-bottom: 1;
    }
    """

    def __init__(self, node: ConversationNode | None = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self.conversation_node = node

    def compose(self):
        """compose the message widgets."""
        node = self.conversation_node
        if node is None:
            yield Static("(no active node)", classes="dim")
            return

        header = conversation_title(node)
        if node.context:
            header += f"  ({len(node.context)} inherited)"
        # titles are user text, never markup
        yield Static(header, markup=False, classes="node-header")

        for i, message in enumerate(node.messages, start=1):
            yield MessageWidget(message, i)

    async def refresh_node(self, node: ConversationNode | None) -> None:
        """update with the new active node."""
        self.conversation_node = node
        await self.remove_children()
        await self.mount_all(list(self.compose()))
        self.scroll_end(animate=False)

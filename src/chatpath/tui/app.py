"""chatpath: main textual application.

branching conversations in the terminal. type to talk to the active node,
branch from any message with ``/branch``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from rich.markup import escape
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Vertical
from textual.widgets import Footer, Header, Input, Static

from ..core.client import DEFAULT_REPLY_DELAY, MockClient, ReplyScheduler
from ..core.errors import ChatPathError
from ..core.models import MIN_SELECTION_LENGTH, Role, TextSelection
from ..core.store import SNAPSHOT_FILE, ConversationStore, get_data_dir
from .widgets.minimap import Minimap, NodeClicked
from .widgets.node_view import NodeView

logger = logging.getLogger(__name__)


HELP_TEXT = (
    "commands: /branch <n> <text>  /up  /delete  /layout  /reset  /focus <id-prefix>"
)


def parse_command(line: str) -> tuple[str, list[str]]:
    """split an input line into (command, args).

    plain text is the ``say`` command with the whole line as its one arg.
    ``/branch`` keeps everything after the message number as one arg.
    """
    line = line.strip()
    if not line.startswith("/"):
        return "say", [line]

    name, _, rest = line[1:].partition(" ")
    rest = rest.strip()
    if name == "branch":
        number, _, text = rest.partition(" ")
        return name, [number, text.strip()] if number else []
    return name, rest.split() if rest else []


class ChatPathApp(App):
    """main application."""

    TITLE = "chatpath"

    CSS = """
    Screen {
        layout: vertical;
    }

    #main-container {
        height: 1fr;
    }

    #status {
        display: none;
        text-align: center;
        padding: 0 1;
        background: $surface;
    }

    #status.visible {
        display: block;
    }

    #chat-input {
        margin: 0 1;
    }
    """

    BINDINGS = [
        Binding("ctrl+q", "quit", "quit"),
        Binding("ctrl+u", "parent", "parent"),
        Binding("ctrl+d", "delete", "delete"),
        Binding("ctrl+l", "layout", "layout"),
        Binding("escape", "focus_input", "input"),
    ]

    def __init__(
        self,
        snapshot_path: Optional[Path] = None,
        reply_delay: float = DEFAULT_REPLY_DELAY,
    ):
        super().__init__()
        self.store = ConversationStore(snapshot_path)
        self.client = MockClient(delay=reply_delay)
        self.scheduler = ReplyScheduler(self.client, self._deliver_reply)

    def compose(self) -> ComposeResult:
        """compose the app layout."""
        yield Header()

        with Vertical(id="main-container"):
            yield Static("assistant is typing...", id="status")
            yield Minimap(self.store.tree, id="minimap")
            yield NodeView(id="node-view")
            yield Input(placeholder="message, or / for commands", id="chat-input")

        yield Footer()

    async def on_mount(self) -> None:
        """load the stored tree on mount."""
        self.store.load()
        await self._refresh_all()
        self.query_one("#chat-input", Input).focus()

    def on_unmount(self) -> None:
        """drop replies that will never land."""
        self.scheduler.cancel_all()

    # --- input ---

    async def on_input_submitted(self, event: Input.Submitted) -> None:
        """route a submitted line to its command."""
        if event.input.id != "chat-input":
            return
        line = event.input.value.strip()
        event.input.value = ""
        if not line:
            return

        command, args = parse_command(line)
        handler = getattr(self, f"_cmd_{command}", None)
        if handler is None:
            self.notify(f"unknown command: /{escape(command)}. {HELP_TEXT}", severity="warning")
            return

        try:
            handler(args)
        except ChatPathError as e:
            self.notify(escape(str(e)), severity="error")
        await self._refresh_all()

    def _cmd_say(self, args: list[str]) -> None:
        node = self.store.state.active_node
        if node is None:
            self.notify("no active node", severity="warning")
            return
        self.store.add_message(node.id, args[0], Role.USER)
        self.store.set_loading(True)
        self.scheduler.schedule(node.id, args[0])

    def _cmd_branch(self, args: list[str]) -> None:
        node = self.store.state.active_node
        if node is None or len(args) != 2:
            self.notify("usage: /branch <message number> <text>", severity="warning")
            return
        try:
            index = int(args[0]) - 1
        except ValueError:
            self.notify(f"not a message number: {escape(args[0])}", severity="warning")
            return
        if not 0 <= index < len(node.messages):
            self.notify(f"no message {escape(args[0])} in this conversation", severity="warning")
            return

        selection = TextSelection.from_message(node.id, node.messages[index], args[1])
        if selection is None:
            self.notify(
                f"select at least {MIN_SELECTION_LENGTH} characters that appear in message {escape(args[0])}",
                severity="warning",
            )
            return

        child = self.store.create_branch(selection)
        self.store.set_active(child.id)
        self.notify("branched")

    def _cmd_up(self, args: list[str]) -> None:
        self._go_parent()

    def _cmd_delete(self, args: list[str]) -> None:
        self._delete_active()

    def _cmd_layout(self, args: list[str]) -> None:
        self._relayout()

    def _cmd_reset(self, args: list[str]) -> None:
        self.scheduler.cancel_all()
        self.store.reset()
        self._settle_loading()
        self.notify("started a new tree")

    def _cmd_focus(self, args: list[str]) -> None:
        if not args:
            self.notify("usage: /focus <id-prefix>", severity="warning")
            return
        matches = [nid for nid in self.store.tree.nodes if nid.startswith(args[0])]
        if len(matches) != 1:
            self.notify(f"{len(matches)} nodes match {escape(repr(args[0]))}", severity="warning")
            return
        self.store.set_active(matches[0])

    def _cmd_help(self, args: list[str]) -> None:
        self.notify(HELP_TEXT)

    # --- replies ---

    def _deliver_reply(self, node_id: str, text: str) -> None:
        """land a finished reply as one assistant message."""
        if self.store.add_message(node_id, text, Role.ASSISTANT) is None:
            logger.debug("reply for deleted node %s dropped", node_id)
        self._settle_loading()
        self.call_later(self._refresh_all)

    def _settle_loading(self) -> None:
        """clear the loading flag once no reply is outstanding."""
        if not self.scheduler.has_pending() and self.store.state.is_loading:
            self.store.set_loading(False)

    # --- events ---

    async def on_node_clicked(self, event: NodeClicked) -> None:
        """handle node click in minimap."""
        self.store.set_active(event.node_id)
        await self._refresh_all()

    async def _refresh_all(self) -> None:
        """refresh all widgets from the store."""
        session = self.store.state
        if session.should_zoom_to_parent:
            self.store.reset_zoom_flag()
        self.query_one("#minimap", Minimap).refresh_tree(session.tree, session.active_node_id)
        await self.query_one("#node-view", NodeView).refresh_node(session.active_node)
        status = self.query_one("#status")
        if session.is_loading:
            status.add_class("visible")
        else:
            status.remove_class("visible")

    def _go_parent(self) -> None:
        node = self.store.state.active_node
        if node is None or node.parent_id is None:
            self.notify("already at the root", severity="warning")
            return
        self.store.navigate_to_parent(node.id)

    def _delete_active(self) -> None:
        node = self.store.state.active_node
        if node is None or node.parent_id is None:
            self.notify("the root conversation cannot be deleted", severity="warning")
            return
        removed = self.store.delete_node(node.id)
        for nid in removed:
            self.scheduler.cancel(nid)
        # cancelled replies never land, so nothing else would clear the flag
        self._settle_loading()
        self.notify(f"deleted {len(removed)} conversation{'s' if len(removed) != 1 else ''}")

    def _relayout(self) -> None:
        self.store.recalculate_layout()
        self.notify("layout recalculated")

    # --- actions ---

    async def action_parent(self) -> None:
        """move focus to the parent conversation."""
        self._go_parent()
        await self._refresh_all()

    async def action_delete(self) -> None:
        """delete the active conversation and everything branched from it."""
        self._delete_active()
        await self._refresh_all()

    async def action_layout(self) -> None:
        """re-flow the whole tree."""
        self._relayout()
        await self._refresh_all()

    def action_focus_input(self) -> None:
        self.query_one("#chat-input", Input).focus()


def run(
    data_dir: Optional[str] = None,
    reply_delay: float = DEFAULT_REPLY_DELAY,
    persist: bool = True,
) -> None:
    """run the chatpath app."""
    snapshot_path = None
    if persist:
        directory = Path(data_dir) if data_dir else get_data_dir()
        directory.mkdir(parents=True, exist_ok=True)
        snapshot_path = directory / SNAPSHOT_FILE
    app = ChatPathApp(snapshot_path=snapshot_path, reply_delay=reply_delay)
    app.run()


if __name__ == "__main__":
    run()

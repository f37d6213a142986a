"""single owner of the session state.

every mutation goes through ``dispatch``, one transition at a time, and the
tree is written to disk after each transition that changed it (last write
wins). the convenience methods validate first and raise NotFound or
InvalidOperation so callers can report a reason; the reducer underneath
stays total.
"""

from __future__ import annotations

import logging
import threading
import uuid
from pathlib import Path
from typing import Optional

from .context import collect_subtree
from .errors import InvalidOperation, NotFound, PersistenceFailure
from .layout import DEFAULT_LAYOUT, LayoutConfig, layout_tree, place_new_node
from .models import (
    ConversationEdge,
    ConversationNode,
    ConversationTree,
    Position,
    Role,
    SessionState,
    TextSelection,
)
from .reducer import (
    Action,
    AddMessage,
    ApplyLayout,
    CreateBranch,
    DeleteNode,
    InitializeTree,
    NavigateToParent,
    ResetZoomFlag,
    SetActiveNode,
    SetLoading,
    SetTree,
    UpdateNodePosition,
    reduce,
)
from .summary import Summarizer, generate_conversation_summary

logger = logging.getLogger(__name__)


# --- configuration ---

STORAGE_KEY = "chatpath-conversation-tree"
SNAPSHOT_FILE = f"{STORAGE_KEY}.json"


def get_data_dir() -> Path:
    """get the default storage directory."""
    data_dir = Path.home() / ".chatpath"
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir


class ConversationStore:
    """state container with a defined lifecycle: load, mutate, reset."""

    def __init__(
        self,
        snapshot_path: Optional[Path] = None,
        layout: LayoutConfig = DEFAULT_LAYOUT,
        summarize: Summarizer = generate_conversation_summary,
    ):
        self.snapshot_path = snapshot_path
        self.layout = layout
        self.summarize = summarize
        self._state = SessionState()
        self._lock = threading.RLock()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def tree(self) -> ConversationTree:
        return self._state.tree

    def snapshot(self) -> tuple[list[ConversationNode], list[ConversationEdge], Optional[str], bool]:
        """what the renderer needs: nodes, edges, active id, zoom signal."""
        state = self._state
        return (
            list(state.tree.nodes.values()),
            list(state.tree.edges.values()),
            state.active_node_id,
            state.should_zoom_to_parent,
        )

    # --- core ---

    def dispatch(self, action: Action) -> SessionState:
        """apply one action and persist the tree if it changed."""
        with self._lock:
            previous = self._state
            self._state = reduce(previous, action, self.summarize)
            if self._state.tree is not previous.tree:
                self.save()
            return self._state

    # --- persistence ---

    def load(self) -> SessionState:
        """read the snapshot once at startup; start fresh if unusable."""
        tree = None
        if self.snapshot_path is not None:
            try:
                tree = ConversationTree.load(self.snapshot_path)
            except FileNotFoundError:
                logger.debug("no snapshot at %s", self.snapshot_path)
            except (PersistenceFailure, OSError) as e:
                logger.warning("discarding unreadable snapshot: %s", e)

        if tree is not None and tree.nodes:
            problems = tree.integrity_problems()
            if problems:
                logger.warning(
                    "discarding inconsistent snapshot (%d problems): %s",
                    len(problems), "; ".join(problems[:3]),
                )
                tree = None

        if tree is None or not tree.nodes:
            return self.dispatch(InitializeTree())
        return self.dispatch(SetTree(tree))

    def save(self) -> None:
        """write the current tree; failures are logged, never raised."""
        if self.snapshot_path is None or not self._state.tree.nodes:
            return
        try:
            self._state.tree.save(self.snapshot_path)
        except OSError as e:
            logger.warning("could not save snapshot to %s: %s", self.snapshot_path, e)

    def reset(self) -> SessionState:
        """drop the stored snapshot and start a fresh tree."""
        with self._lock:
            if self.snapshot_path is not None:
                self.snapshot_path.unlink(missing_ok=True)
            return self.dispatch(InitializeTree())

    # --- operations ---

    def require_node(self, node_id: str) -> ConversationNode:
        node = self.tree.get_node(node_id)
        if node is None:
            raise NotFound(f"node not found: {node_id}")
        return node

    def set_active(self, node_id: str) -> SessionState:
        self.require_node(node_id)
        return self.dispatch(SetActiveNode(node_id))

    def add_message(self, node_id: str, content: str, role: Role = Role.USER) -> Optional[str]:
        """append a message; returns the new message id, None if the node vanished.

        a missing node is not an error here: deferred replies may land
        after their node was deleted.
        """
        with self._lock:
            state = self.dispatch(AddMessage(node_id, content, role))
            node = state.tree.get_node(node_id)
            return node.messages[-1].id if node else None

    def create_branch(self, selection: TextSelection) -> ConversationNode:
        """carve a new child node out of a selected span."""
        with self._lock:
            parent = self.require_node(selection.node_id)
            if parent.get_message(selection.message_id) is None:
                raise NotFound(f"message not found: {selection.message_id}")
            if not 0 <= selection.start_offset < selection.end_offset:
                raise InvalidOperation(
                    f"empty or inverted selection [{selection.start_offset}, {selection.end_offset})"
                )

            new_id = str(uuid.uuid4())
            position = place_new_node(
                parent_id=parent.id,
                parent_position=parent.position,
                occupied=[n.position for n in self.tree.nodes.values()],
                node_ids=list(self.tree.nodes),
                edges=[(e.source, e.target) for e in self.tree.edges.values()],
                new_node_id=new_id,
                config=self.layout,
            )
            state = self.dispatch(CreateBranch(selection, new_id, parent.id, position))
            return state.tree.nodes[new_id]

    def move_node(self, node_id: str, position: Position) -> SessionState:
        self.require_node(node_id)
        return self.dispatch(UpdateNodePosition(node_id, position))

    def delete_node(self, node_id: str) -> list[str]:
        """delete a node and its subtree; returns the removed ids."""
        with self._lock:
            node = self.require_node(node_id)
            if node.parent_id is None:
                raise InvalidOperation("cannot delete the root node")
            removed = collect_subtree(self.tree, node_id)
            self.dispatch(DeleteNode(node_id, node.parent_id))
            return removed

    def navigate_to_parent(self, node_id: str) -> SessionState:
        node = self.require_node(node_id)
        if node.parent_id is None:
            raise InvalidOperation("root node has no parent")
        return self.dispatch(NavigateToParent(node_id))

    def reset_zoom_flag(self) -> SessionState:
        return self.dispatch(ResetZoomFlag())

    def set_loading(self, is_loading: bool) -> SessionState:
        return self.dispatch(SetLoading(is_loading))

    def compute_layout(self) -> dict[str, Position]:
        """global layout of the current tree, without applying it."""
        return layout_tree(self.tree, self.layout)

    def apply_layout(self, positions: dict[str, Position]) -> SessionState:
        return self.dispatch(ApplyLayout(positions))

    def recalculate_layout(self) -> SessionState:
        """re-flow the whole tree and apply the result."""
        with self._lock:
            return self.apply_layout(self.compute_layout())

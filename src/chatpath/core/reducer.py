"""pure state transitions for the conversation tree.

``reduce(state, action)`` never mutates its input and never raises:
actions naming missing nodes or disallowed operations return the state
unchanged. a transition that touches the tree works on a deep copy.
"""

from __future__ import annotations

import copy
import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Mapping, Union

from .context import collect_subtree
from .errors import CycleDetected
from .layout import get_edge_handles
from .models import (
    BranchPoint,
    ConversationEdge,
    ConversationNode,
    ConversationTree,
    EdgeData,
    Message,
    Position,
    Role,
    SessionState,
    TextSelection,
)
from .summary import Summarizer, create_branch_seed_message, generate_conversation_summary

logger = logging.getLogger(__name__)


WELCOME_MESSAGE = (
    "\U0001F333 Welcome to ChatPath!\n\n"
    "This is a conversational tree interface where you can branch off from any point "
    "in our conversation to explore different topics while preserving context.\n\n"
    "Here's how it works:\n"
    "• Select any text in this message or future responses\n"
    "• A branch button will appear\n"
    "• Use it to create a new conversation branch\n"
    "• Each branch maintains the full context up to that point\n\n"
    'Try it now! Select the phrase "explore different topics" above and create a branch.'
)

PROMPT_MESSAGE = (
    "What would you like to talk about today? I can help you with questions about "
    "technology, science, creative projects, problem-solving, or anything else that "
    "interests you!"
)


# --- actions ---

@dataclass(frozen=True)
class InitializeTree:
    """replace the whole tree with a freshly seeded root."""


@dataclass(frozen=True)
class SetTree:
    tree: ConversationTree


@dataclass(frozen=True)
class SetActiveNode:
    node_id: str


@dataclass(frozen=True)
class AddMessage:
    node_id: str
    content: str
    role: Role


@dataclass(frozen=True)
class CreateBranch:
    selection: TextSelection
    new_branch_id: str
    parent_node_id: str
    position: Position


@dataclass(frozen=True)
class UpdateNodePosition:
    node_id: str
    position: Position


@dataclass(frozen=True)
class ApplyLayout:
    """move many nodes at once and re-derive every edge's handles."""

    positions: Mapping[str, Position]


@dataclass(frozen=True)
class DeleteNode:
    node_id: str
    parent_node_id: str


@dataclass(frozen=True)
class NavigateToParent:
    node_id: str


@dataclass(frozen=True)
class SetLoading:
    is_loading: bool


@dataclass(frozen=True)
class ResetZoomFlag:
    """clear the one-shot zoom signal after the renderer acted on it."""


Action = Union[
    InitializeTree,
    SetTree,
    SetActiveNode,
    AddMessage,
    CreateBranch,
    UpdateNodePosition,
    ApplyLayout,
    DeleteNode,
    NavigateToParent,
    SetLoading,
    ResetZoomFlag,
]


# --- reducer ---

def reduce(
    state: SessionState,
    action: Action,
    summarize: Summarizer = generate_conversation_summary,
) -> SessionState:
    """return the state that results from applying ``action`` to ``state``."""
    if isinstance(action, InitializeTree):
        tree = new_tree()
        return SessionState(tree=tree, active_node_id=tree.root_node_id)

    if isinstance(action, SetTree):
        return replace(state, tree=action.tree, active_node_id=action.tree.root_node_id or None)

    if isinstance(action, SetActiveNode):
        if action.node_id not in state.tree.nodes:
            logger.debug("set active: node %s not found", action.node_id)
            return state
        return replace(state, active_node_id=action.node_id)

    if isinstance(action, AddMessage):
        return _add_message(state, action, summarize)

    if isinstance(action, CreateBranch):
        return _create_branch(state, action, summarize)

    if isinstance(action, UpdateNodePosition):
        if action.node_id not in state.tree.nodes:
            logger.debug("move: node %s not found", action.node_id)
            return state
        tree = copy.deepcopy(state.tree)
        tree.nodes[action.node_id].position = action.position
        return replace(state, tree=tree)

    if isinstance(action, ApplyLayout):
        return _apply_layout(state, action)

    if isinstance(action, DeleteNode):
        return _delete_node(state, action)

    if isinstance(action, NavigateToParent):
        node = state.tree.get_node(action.node_id)
        if node is None or node.parent_id is None:
            logger.debug("navigate: no parent for node %s", action.node_id)
            return state
        return replace(state, active_node_id=node.parent_id, should_zoom_to_parent=True)

    if isinstance(action, SetLoading):
        return replace(state, is_loading=action.is_loading)

    if isinstance(action, ResetZoomFlag):
        if not state.should_zoom_to_parent:
            return state
        return replace(state, should_zoom_to_parent=False)

    raise TypeError(f"unknown action: {action!r}")


def new_tree() -> ConversationTree:
    """tree with one root node holding the greeting messages."""
    root = ConversationNode(
        id=str(uuid.uuid4()),
        messages=[
            Message.create(WELCOME_MESSAGE, Role.ASSISTANT),
            Message.create(PROMPT_MESSAGE, Role.ASSISTANT),
        ],
        is_active=True,
    )
    return ConversationTree(nodes={root.id: root}, root_node_id=root.id)


def _add_message(state: SessionState, action: AddMessage, summarize: Summarizer) -> SessionState:
    if action.node_id not in state.tree.nodes:
        logger.debug("add message: node %s not found", action.node_id)
        return state

    tree = copy.deepcopy(state.tree)
    node = tree.nodes[action.node_id]
    node.messages.append(Message.create(action.content, action.role))

    # labels mirror node content, so every content change refreshes them
    for edge in tree.edges.values():
        if edge.target == action.node_id:
            edge.label = summarize(node.messages)
    return replace(state, tree=tree)


def _create_branch(state: SessionState, action: CreateBranch, summarize: Summarizer) -> SessionState:
    selection = action.selection
    parent = state.tree.get_node(action.parent_node_id)
    if parent is None:
        logger.debug("branch: parent %s not found", action.parent_node_id)
        return state
    if action.new_branch_id in state.tree.nodes:
        logger.warning("branch: node id %s already exists", action.new_branch_id)
        return state
    selected_index = parent.message_index(selection.message_id)
    if selected_index == -1:
        logger.debug("branch: message %s not in node %s", selection.message_id, parent.id)
        return state
    if not 0 <= selection.start_offset < selection.end_offset:
        logger.warning(
            "branch: bad offsets [%d, %d)", selection.start_offset, selection.end_offset
        )
        return state

    now = datetime.now()
    branch_point = BranchPoint(
        id=str(uuid.uuid4()),
        message_id=selection.message_id,
        selected_text=selection.text,
        start_offset=selection.start_offset,
        end_offset=selection.end_offset,
        child_node_id=action.new_branch_id,
        created_at=now,
    )

    seed = Message.create(create_branch_seed_message(selection.text), Role.ASSISTANT)
    child = ConversationNode(
        id=action.new_branch_id,
        parent_id=parent.id,
        position=action.position,
        messages=[seed],
        context=[m.serialize() for m in parent.messages[:selected_index + 1]],
        created_at=now,
        is_active=True,
    )

    source_handle, target_handle = get_edge_handles(parent.position, action.position)
    edge = ConversationEdge(
        id=ConversationEdge.edge_id(parent.id, child.id),
        source=parent.id,
        target=child.id,
        source_handle=source_handle,
        target_handle=target_handle,
        label=summarize([seed]),
        data=EdgeData(selected_text=selection.text, branch_point=branch_point),
    )

    tree = copy.deepcopy(state.tree)
    tree_parent = tree.nodes[parent.id]
    tree_parent.messages[selected_index].branch_points.append(branch_point)
    tree_parent.branches.append(branch_point)
    tree.nodes[child.id] = child
    tree.edges[edge.id] = edge
    return replace(state, tree=tree, active_node_id=child.id)


def _apply_layout(state: SessionState, action: ApplyLayout) -> SessionState:
    moves = {nid: pos for nid, pos in action.positions.items() if nid in state.tree.nodes}
    if not moves:
        return state

    tree = copy.deepcopy(state.tree)
    for nid, position in moves.items():
        tree.nodes[nid].position = position
    for edge in tree.edges.values():
        source = tree.get_node(edge.source)
        target = tree.get_node(edge.target)
        if source and target:
            edge.source_handle, edge.target_handle = get_edge_handles(source.position, target.position)
    return replace(state, tree=tree)


def _delete_node(state: SessionState, action: DeleteNode) -> SessionState:
    node = state.tree.get_node(action.node_id)
    if node is None:
        logger.debug("delete: node %s not found", action.node_id)
        return state
    if node.parent_id is None:
        logger.warning("delete: refusing to delete root node %s", node.id)
        return state
    if node.parent_id != action.parent_node_id:
        logger.warning(
            "delete: node %s has parent %s, not %s; using the real parent",
            node.id, node.parent_id, action.parent_node_id,
        )

    try:
        doomed = set(collect_subtree(state.tree, node.id))
    except CycleDetected as e:
        logger.warning("delete: %s", e)
        return state

    tree = copy.deepcopy(state.tree)
    for nid in doomed:
        del tree.nodes[nid]
    tree.edges = {
        eid: e for eid, e in tree.edges.items()
        if e.source not in doomed and e.target not in doomed
    }
    for survivor in tree.nodes.values():
        survivor.branches = [bp for bp in survivor.branches if bp.child_node_id not in doomed]
        for message in survivor.messages:
            message.branch_points = [
                bp for bp in message.branch_points if bp.child_node_id not in doomed
            ]

    return replace(
        state,
        tree=tree,
        active_node_id=node.parent_id,
        should_zoom_to_parent=True,
    )

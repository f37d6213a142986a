"""tests for the conversation tree reducer."""

import pytest

from chatpath.core.models import (
    ConversationTree,
    Position,
    Role,
    SessionState,
    TextSelection,
)
from chatpath.core.reducer import (
    PROMPT_MESSAGE,
    WELCOME_MESSAGE,
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


def _branch(state, node_id, text, new_id, position, message_index=0):
    node = state.tree.nodes[node_id]
    selection = TextSelection.from_message(node_id, node.messages[message_index], text)
    assert selection is not None
    return reduce(state, CreateBranch(selection, new_id, node_id, position))


class TestInitialize:
    """tests for InitializeTree."""

    def test_seeds_root(self, initialized_state):
        """one root with the two greeting messages and no edges."""
        tree = initialized_state.tree
        assert len(tree.nodes) == 1
        assert tree.edges == {}
        root = tree.root
        assert root.parent_id is None
        assert root.position == Position(0, 0)
        assert [m.content for m in root.messages] == [WELCOME_MESSAGE, PROMPT_MESSAGE]
        assert all(m.role == Role.ASSISTANT for m in root.messages)
        assert initialized_state.active_node_id == root.id

    def test_replaces_existing_tree(self, branched_state):
        """initializing again discards everything."""
        state = reduce(branched_state, InitializeTree())
        assert len(state.tree.nodes) == 1
        assert "child-1" not in state.tree.nodes


class TestCreateBranch:
    """tests for CreateBranch."""

    def test_branch_from_first_message(self, initialized_state):
        """child inherits messages up to and including the selected one."""
        root = initialized_state.tree.root
        m0 = root.messages[0]
        selection = TextSelection(
            text=m0.content[10:20],
            start_offset=10,
            end_offset=20,
            message_id=m0.id,
            node_id=root.id,
        )
        state = reduce(initialized_state, CreateBranch(selection, "n1", root.id, Position(600, 0)))

        child = state.tree.nodes["n1"]
        assert child.parent_id == root.id
        assert child.context == ["assistant: " + m0.content]
        assert len(child.messages) == 1
        assert child.messages[0].role == Role.ASSISTANT
        assert child.messages[0].content.startswith('Continuing from: "')

        edge = state.tree.edges[f"edge-{root.id}-n1"]
        assert edge.source == root.id
        assert edge.target == "n1"
        assert edge.data.selected_text == m0.content[10:20]
        assert state.active_node_id == "n1"
        assert state.tree.integrity_problems() == []

    def test_branch_from_second_message(self, initialized_state):
        """selecting the second message carries both into context."""
        root = initialized_state.tree.root
        state = _branch(initialized_state, root.id, "technology", "n1", Position(600, 0), 1)
        assert state.tree.nodes["n1"].context == [
            "assistant: " + WELCOME_MESSAGE,
            "assistant: " + PROMPT_MESSAGE,
        ]

    def test_branch_point_recorded_twice(self, branched_state):
        """the span is recorded on the message and on the node."""
        root = branched_state.tree.root
        bp = root.messages[0].branch_points[0]
        assert bp.child_node_id == "child-1"
        assert bp.selected_text == "explore different topics"
        assert root.messages[0].content[bp.start_offset:bp.end_offset] == "explore different topics"
        assert [b.id for b in root.branches] == [bp.id]

    def test_edge_label_from_seed(self, branched_state):
        """new edges are labelled from the quoted selection."""
        edge = branched_state.tree.edges[f"edge-{branched_state.tree.root_node_id}-child-1"]
        assert edge.label == "explore diff..."

    def test_handles_from_geometry(self, branched_state):
        """child to the right attaches right -> left."""
        edge = next(iter(branched_state.tree.edges.values()))
        assert (edge.source_handle, edge.target_handle) == ("right", "left")

    def test_missing_parent_is_noop(self, initialized_state):
        """unknown parent leaves the state untouched."""
        root = initialized_state.tree.root
        selection = TextSelection.from_message(root.id, root.messages[0], "Welcome")
        state = reduce(initialized_state, CreateBranch(selection, "n1", "ghost", Position(0, 0)))
        assert state is initialized_state

    def test_missing_message_is_noop(self, initialized_state):
        """selection on a message the parent does not hold is ignored."""
        root = initialized_state.tree.root
        selection = TextSelection("abc", 0, 3, "not-a-message", root.id)
        state = reduce(initialized_state, CreateBranch(selection, "n1", root.id, Position(0, 0)))
        assert state is initialized_state

    def test_duplicate_id_is_noop(self, branched_state):
        """reusing a node id is refused."""
        root = branched_state.tree.root
        selection = TextSelection.from_message(root.id, root.messages[1], "science")
        state = reduce(branched_state, CreateBranch(selection, "child-1", root.id, Position(0, 500)))
        assert state is branched_state

    def test_does_not_mutate_input(self, initialized_state):
        """the previous tree is left as it was."""
        before = initialized_state.tree.to_dict()
        _branch(initialized_state, initialized_state.tree.root_node_id, "Welcome", "n1", Position(600, 0))
        assert initialized_state.tree.to_dict() == before


class TestAddMessage:
    """tests for AddMessage."""

    def test_appends(self, initialized_state):
        """message lands at the end of the node."""
        root_id = initialized_state.tree.root_node_id
        state = reduce(initialized_state, AddMessage(root_id, "hello", Role.USER))
        root = state.tree.root
        assert len(root.messages) == 3
        assert root.messages[-1].content == "hello"
        assert root.messages[-1].role == Role.USER
        assert len(initialized_state.tree.root.messages) == 2

    def test_refreshes_incoming_edge_label(self, branched_state):
        """labels follow the node content."""
        state = reduce(branched_state, AddMessage("child-1", "quantum computing basics", Role.USER))
        edge = state.tree.edges[f"edge-{state.tree.root_node_id}-child-1"]
        assert edge.label == "Quantum"

    def test_custom_summarizer(self, branched_state):
        """any summarizer can be plugged in."""
        state = reduce(
            branched_state,
            AddMessage("child-1", "hi", Role.USER),
            summarize=lambda messages: f"{len(messages)} msgs",
        )
        edge = next(iter(state.tree.edges.values()))
        assert edge.label == "2 msgs"

    def test_missing_node_is_noop(self, initialized_state):
        """adding to a deleted node changes nothing."""
        state = reduce(initialized_state, AddMessage("ghost", "hello", Role.ASSISTANT))
        assert state is initialized_state


class TestDeleteNode:
    """tests for DeleteNode."""

    def test_delete_leaf(self, branched_state):
        """leaf, its edge and its branch points all go."""
        root_id = branched_state.tree.root_node_id
        state = reduce(branched_state, DeleteNode("child-1", root_id))

        assert set(state.tree.nodes) == {root_id}
        assert state.tree.edges == {}
        root = state.tree.root
        assert root.branches == []
        assert all(m.branch_points == [] for m in root.messages)
        assert state.active_node_id == root_id
        assert state.should_zoom_to_parent is True
        assert state.tree.integrity_problems() == []

    def test_cascades_to_descendants(self, branched_state):
        """deleting an inner node removes its whole subtree."""
        state = reduce(branched_state, AddMessage("child-1", "tell me about quantum physics", Role.USER))
        state = _branch(state, "child-1", "quantum physics", "grandchild", Position(1200, 0), 1)
        root_id = state.tree.root_node_id

        state = reduce(state, DeleteNode("child-1", root_id))
        assert set(state.tree.nodes) == {root_id}
        assert state.tree.edges == {}
        assert state.tree.integrity_problems() == []

    def test_keeps_siblings(self, branched_state):
        """only the deleted branch goes."""
        root_id = branched_state.tree.root_node_id
        state = _branch(branched_state, root_id, "technology", "child-2", Position(0, 500), 1)
        state = reduce(state, DeleteNode("child-1", root_id))

        assert set(state.tree.nodes) == {root_id, "child-2"}
        root = state.tree.root
        assert [bp.child_node_id for bp in root.branches] == ["child-2"]
        assert state.tree.integrity_problems() == []

    def test_root_is_noop(self, initialized_state):
        """the root cannot be deleted."""
        root_id = initialized_state.tree.root_node_id
        state = reduce(initialized_state, DeleteNode(root_id, root_id))
        assert state is initialized_state

    def test_wrong_parent_uses_real_parent(self, branched_state):
        """a stale parent id still deletes and focuses the real parent."""
        state = reduce(branched_state, DeleteNode("child-1", "stale"))
        assert "child-1" not in state.tree.nodes
        assert state.active_node_id == branched_state.tree.root_node_id

    def test_missing_node_is_noop(self, branched_state):
        """unknown node leaves the state untouched."""
        state = reduce(branched_state, DeleteNode("ghost", "child-1"))
        assert state is branched_state


class TestFocus:
    """tests for focus and zoom actions."""

    def test_set_active(self, branched_state):
        """active node follows clicks."""
        root_id = branched_state.tree.root_node_id
        state = reduce(branched_state, SetActiveNode(root_id))
        assert state.active_node_id == root_id
        assert state.tree is branched_state.tree

    def test_set_active_unknown(self, branched_state):
        """unknown ids are ignored."""
        assert reduce(branched_state, SetActiveNode("ghost")) is branched_state

    def test_navigate_to_parent(self, branched_state):
        """focus moves up and the zoom signal is raised."""
        state = reduce(branched_state, NavigateToParent("child-1"))
        assert state.active_node_id == branched_state.tree.root_node_id
        assert state.should_zoom_to_parent is True

    def test_navigate_from_root_is_noop(self, initialized_state):
        """root has nowhere to go."""
        root_id = initialized_state.tree.root_node_id
        assert reduce(initialized_state, NavigateToParent(root_id)) is initialized_state

    def test_reset_zoom_flag(self, branched_state):
        """the renderer clears the one-shot signal."""
        state = reduce(branched_state, NavigateToParent("child-1"))
        state = reduce(state, ResetZoomFlag())
        assert state.should_zoom_to_parent is False

    def test_set_loading(self, initialized_state):
        """loading flag toggles without touching the tree."""
        state = reduce(initialized_state, SetLoading(True))
        assert state.is_loading is True
        assert state.tree is initialized_state.tree


class TestPositions:
    """tests for UpdateNodePosition and ApplyLayout."""

    def test_update_position(self, branched_state):
        """drag-stop moves exactly one node."""
        state = reduce(branched_state, UpdateNodePosition("child-1", Position(42, 24)))
        assert state.tree.nodes["child-1"].position == Position(42, 24)
        assert branched_state.tree.nodes["child-1"].position == Position(600, 0)

    def test_update_unknown(self, branched_state):
        """unknown node leaves the state untouched."""
        assert reduce(branched_state, UpdateNodePosition("ghost", Position(1, 1))) is branched_state

    def test_apply_layout_recomputes_handles(self, branched_state):
        """moving the child below its parent flips the handles to vertical."""
        state = reduce(branched_state, ApplyLayout({"child-1": Position(0, 600)}))
        edge = next(iter(state.tree.edges.values()))
        assert (edge.source_handle, edge.target_handle) == ("bottom", "top")

    def test_apply_layout_ignores_unknown_ids(self, branched_state):
        """positions for nodes that do not exist are dropped."""
        assert reduce(branched_state, ApplyLayout({"ghost": Position(1, 1)})) is branched_state


class TestSetTree:
    """tests for SetTree."""

    def test_set_tree_focuses_root(self, branched_state):
        """a loaded tree starts focused on its root."""
        state = reduce(SessionState(), SetTree(branched_state.tree))
        assert state.tree is branched_state.tree
        assert state.active_node_id == branched_state.tree.root_node_id


class TestInvariants:
    """tree stays consistent across any action sequence."""

    def test_sequence_keeps_integrity(self, initialized_state):
        """branch, talk, move, re-layout, delete: no problems at any step."""
        state = initialized_state
        root_id = state.tree.root_node_id
        steps = [
            lambda s: _branch(s, root_id, "explore different topics", "a", Position(600, 0)),
            lambda s: reduce(s, AddMessage("a", "how do databases index data", Role.USER)),
            lambda s: _branch(s, "a", "databases", "b", Position(1200, 0), 1),
            lambda s: _branch(s, root_id, "science", "c", Position(0, 500), 1),
            lambda s: reduce(s, UpdateNodePosition("c", Position(-600, 0))),
            lambda s: reduce(s, ApplyLayout({"a": Position(700, 50), "b": Position(1350, 50)})),
            lambda s: reduce(s, DeleteNode("a", root_id)),
            lambda s: reduce(s, DeleteNode(root_id, root_id)),
        ]
        for step in steps:
            state = step(state)
            assert state.tree.integrity_problems() == []
            assert state.active_node_id in state.tree.nodes
        assert set(state.tree.nodes) == {root_id, "c"}

    def test_unknown_action(self, initialized_state):
        """non-actions are a programming error."""
        with pytest.raises(TypeError):
            reduce(initialized_state, object())

    def test_empty_tree(self):
        """a fresh session has nothing in it."""
        state = SessionState()
        assert state.tree == ConversationTree.empty()
        assert state.active_node is None

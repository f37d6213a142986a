"""pytest fixtures for chatpath tests."""

import pytest
import tempfile
from pathlib import Path

from chatpath.core.models import Position, SessionState, TextSelection
from chatpath.core.reducer import CreateBranch, InitializeTree, reduce
from chatpath.core.store import SNAPSHOT_FILE, ConversationStore


@pytest.fixture
def temp_dir():
    """temporary directory that cleans up after test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def initialized_state():
    """session with a freshly seeded root."""
    return reduce(SessionState(), InitializeTree())


@pytest.fixture
def branched_state(initialized_state):
    """root plus one child branched from the welcome message."""
    state = initialized_state
    root = state.tree.root
    selection = TextSelection.from_message(root.id, root.messages[0], "explore different topics")
    return reduce(state, CreateBranch(selection, "child-1", root.id, Position(600, 0)))


@pytest.fixture
def snapshot_path(temp_dir):
    """where the store persists its tree."""
    return temp_dir / SNAPSHOT_FILE


@pytest.fixture
def store(snapshot_path):
    """loaded store backed by a temp snapshot."""
    store = ConversationStore(snapshot_path)
    store.load()
    return store

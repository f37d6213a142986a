"""core primitives shared between frontends."""

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
from .errors import (
    ChatPathError,
    CycleDetected,
    InvalidOperation,
    LayoutFailure,
    NotFound,
    PersistenceFailure,
)
from .reducer import reduce
from .layout import LayoutConfig, DEFAULT_LAYOUT, compute_layout, place_new_node, get_edge_handles
from .context import get_full_context, get_ancestry_path, is_descendant_of, get_branching_context
from .summary import generate_conversation_summary, conversation_title
from .client import MockClient, ClientProtocol, ReplyScheduler
from .store import ConversationStore, get_data_dir

__all__ = [
    # models
    "BranchPoint",
    "ConversationEdge",
    "ConversationNode",
    "ConversationTree",
    "EdgeData",
    "Message",
    "Position",
    "Role",
    "SessionState",
    "TextSelection",
    # errors
    "ChatPathError",
    "CycleDetected",
    "InvalidOperation",
    "LayoutFailure",
    "NotFound",
    "PersistenceFailure",
    # reducer
    "reduce",
    # layout
    "LayoutConfig",
    "DEFAULT_LAYOUT",
    "compute_layout",
    "place_new_node",
    "get_edge_handles",
    # context
    "get_full_context",
    "get_ancestry_path",
    "is_descendant_of",
    "get_branching_context",
    # summary
    "generate_conversation_summary",
    "conversation_title",
    # client
    "MockClient",
    "ClientProtocol",
    "ReplyScheduler",
    # store
    "ConversationStore",
    "get_data_dir",
]

"""fastapi server for chatpath.

exposes the conversation tree to a rendering frontend: tree snapshots out,
drag/click/selection/re-layout events in.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from ..core.client import DEFAULT_REPLY_DELAY, ClientProtocol, MockClient, ReplyScheduler
from ..core.context import get_ancestry_path, get_branching_context, get_full_context
from ..core.errors import CycleDetected, InvalidOperation, NotFound
from ..core.models import (
    MIN_SELECTION_LENGTH,
    BranchPoint,
    ConversationEdge,
    ConversationNode,
    Message,
    Position,
    Role,
    TextSelection,
)
from ..core.store import SNAPSHOT_FILE, ConversationStore, get_data_dir
from ..core.summary import conversation_title

logger = logging.getLogger(__name__)


# --- pydantic models for api ---

class PositionModel(BaseModel):
    x: float
    y: float

    @classmethod
    def from_position(cls, position: Position) -> "PositionModel":
        return cls(x=position.x, y=position.y)

    def to_position(self) -> Position:
        return Position(self.x, self.y)


class MessageCreate(BaseModel):
    """request to add a message to a node."""
    content: str
    role: str = "user"
    request_reply: bool = True  # schedule a mock assistant reply


class SelectionCreate(BaseModel):
    """request to branch from a text selection."""
    text: str
    start_offset: int
    end_offset: int
    message_id: str
    node_id: str


class BranchPointResponse(BaseModel):
    id: str
    message_id: str
    selected_text: str
    start_offset: int
    end_offset: int
    child_node_id: str
    created_at: str

    @classmethod
    def from_branch_point(cls, bp: BranchPoint) -> "BranchPointResponse":
        return cls(
            id=bp.id,
            message_id=bp.message_id,
            selected_text=bp.selected_text,
            start_offset=bp.start_offset,
            end_offset=bp.end_offset,
            child_node_id=bp.child_node_id,
            created_at=bp.created_at.isoformat(),
        )


class MessageResponse(BaseModel):
    id: str
    content: str
    role: str
    timestamp: str
    branch_points: list[BranchPointResponse] = []

    @classmethod
    def from_message(cls, message: Message) -> "MessageResponse":
        return cls(
            id=message.id,
            content=message.content,
            role=message.role.value,
            timestamp=message.timestamp.isoformat(),
            branch_points=[BranchPointResponse.from_branch_point(bp) for bp in message.branch_points],
        )


class NodeResponse(BaseModel):
    """node in api response."""
    id: str
    parent_id: Optional[str]
    title: str
    position: PositionModel
    messages: list[MessageResponse]
    branches: list[BranchPointResponse]
    context: list[str]
    created_at: str
    is_active: bool

    @classmethod
    def from_node(cls, node: ConversationNode) -> "NodeResponse":
        return cls(
            id=node.id,
            parent_id=node.parent_id,
            title=conversation_title(node),
            position=PositionModel.from_position(node.position),
            messages=[MessageResponse.from_message(m) for m in node.messages],
            branches=[BranchPointResponse.from_branch_point(bp) for bp in node.branches],
            context=node.context,
            created_at=node.created_at.isoformat(),
            is_active=node.is_active,
        )


class EdgeResponse(BaseModel):
    """edge in api response."""
    id: str
    source: str
    target: str
    source_handle: Optional[str]
    target_handle: Optional[str]
    label: Optional[str]
    selected_text: Optional[str] = None

    @classmethod
    def from_edge(cls, edge: ConversationEdge) -> "EdgeResponse":
        return cls(
            id=edge.id,
            source=edge.source,
            target=edge.target,
            source_handle=edge.source_handle,
            target_handle=edge.target_handle,
            label=edge.label,
            selected_text=edge.data.selected_text if edge.data else None,
        )


class TreeResponse(BaseModel):
    """tree snapshot plus session focus state."""
    nodes: list[NodeResponse]
    edges: list[EdgeResponse]
    root_node_id: str
    active_node_id: Optional[str]
    should_zoom_to_parent: bool
    is_loading: bool


class ContextResponse(BaseModel):
    node_id: str
    title: str
    ancestry: list[str]
    full_context: list[str]
    branching_context: str = ""


class DeleteResponse(BaseModel):
    deleted: list[str]
    active_node_id: Optional[str]
    should_zoom_to_parent: bool


# --- app state ---

class AppState:
    """shared application state: the store plus the mock reply machinery."""

    def __init__(
        self,
        snapshot_path: Optional[Path] = None,
        reply_delay: float = DEFAULT_REPLY_DELAY,
    ):
        self.store = ConversationStore(snapshot_path)
        self.reply_delay = reply_delay
        self._client: Optional[ClientProtocol] = None
        self._scheduler: Optional[ReplyScheduler] = None

    @property
    def client(self) -> ClientProtocol:
        if self._client is None:
            self._client = MockClient(delay=self.reply_delay)
        return self._client

    @property
    def scheduler(self) -> ReplyScheduler:
        if self._scheduler is None:
            self._scheduler = ReplyScheduler(self.client, self.deliver_reply)
        return self._scheduler

    def deliver_reply(self, node_id: str, text: str) -> None:
        """land a finished reply as one assistant message."""
        if self.store.add_message(node_id, text, Role.ASSISTANT) is None:
            logger.debug("reply for deleted node %s dropped", node_id)
        self.settle_loading()

    def settle_loading(self) -> None:
        """clear the loading flag once no reply is outstanding."""
        if self._scheduler is not None and self._scheduler.has_pending():
            return
        if self.store.state.is_loading:
            self.store.set_loading(False)

    def tree_response(self) -> TreeResponse:
        session = self.store.state
        return TreeResponse(
            nodes=[NodeResponse.from_node(n) for n in session.tree.nodes.values()],
            edges=[EdgeResponse.from_edge(e) for e in session.tree.edges.values()],
            root_node_id=session.tree.root_node_id,
            active_node_id=session.active_node_id,
            should_zoom_to_parent=session.should_zoom_to_parent,
            is_loading=session.is_loading,
        )


state = AppState()


def _node_response(node_id: str) -> NodeResponse:
    """helper to build NodeResponse for an existing node."""
    node = state.store.tree.get_node(node_id)
    if node is None:
        raise HTTPException(status_code=404, detail=f"node not found: {node_id}")
    return NodeResponse.from_node(node)


# --- lifespan ---

@asynccontextmanager
async def lifespan(app: FastAPI):
    # startup: load snapshot or seed a fresh tree
    state.store.load()
    yield
    # shutdown: drop replies that will never land
    if state._scheduler is not None:
        state._scheduler.cancel_all()


# --- app ---

app = FastAPI(
    title="chatpath api",
    description="REST API for branching conversation trees",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # tighten in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- endpoints ---

@app.get("/health")
async def health():
    """health check."""
    return {"status": "ok"}


@app.get("/tree", response_model=TreeResponse)
async def get_tree():
    """current tree snapshot and focus state."""
    return state.tree_response()


@app.post("/tree/reset", response_model=TreeResponse)
async def reset_tree():
    """discard the tree and start over with a seeded root."""
    if state._scheduler is not None:
        state._scheduler.cancel_all()
    state.store.reset()
    state.settle_loading()
    return state.tree_response()


@app.post("/node/{node_id}/message", response_model=NodeResponse)
async def add_message(node_id: str, req: MessageCreate):
    """append a message; user messages get a deferred mock reply."""
    content = req.content.strip()
    if not content:
        raise HTTPException(status_code=400, detail="empty message")
    try:
        role = Role(req.role)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"invalid role: {req.role}")
    if node_id not in state.store.tree.nodes:
        raise HTTPException(status_code=404, detail=f"node not found: {node_id}")

    state.store.add_message(node_id, content, role)
    if role == Role.USER and req.request_reply:
        state.store.set_loading(True)
        state.scheduler.schedule(node_id, content)
    return _node_response(node_id)


@app.post("/branch", response_model=NodeResponse)
async def create_branch(req: SelectionCreate):
    """spawn a child conversation from a selected span of a message."""
    if len(req.text.strip()) < MIN_SELECTION_LENGTH:
        raise HTTPException(
            status_code=400,
            detail=f"selection must be at least {MIN_SELECTION_LENGTH} characters",
        )
    selection = TextSelection(
        text=req.text,
        start_offset=req.start_offset,
        end_offset=req.end_offset,
        message_id=req.message_id,
        node_id=req.node_id,
    )
    try:
        node = state.store.create_branch(selection)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidOperation as e:
        raise HTTPException(status_code=400, detail=str(e))
    return NodeResponse.from_node(node)


@app.put("/node/{node_id}/position", response_model=NodeResponse)
async def move_node(node_id: str, req: PositionModel):
    """drag-stop from the renderer."""
    try:
        state.store.move_node(node_id, req.to_position())
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _node_response(node_id)


@app.post("/focus/{node_id}")
async def set_focus(node_id: str):
    """node click from the renderer."""
    try:
        session = state.store.set_active(node_id)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"active_node_id": session.active_node_id}


@app.delete("/node/{node_id}", response_model=DeleteResponse)
async def delete_node(node_id: str):
    """delete a node and its subtree, focus moves to the parent."""
    try:
        removed = state.store.delete_node(node_id)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidOperation as e:
        raise HTTPException(status_code=400, detail=str(e))

    if state._scheduler is not None:
        for nid in removed:
            state._scheduler.cancel(nid)
    # cancelled replies never land, so nothing else would clear the flag
    state.settle_loading()
    session = state.store.state
    return DeleteResponse(
        deleted=removed,
        active_node_id=session.active_node_id,
        should_zoom_to_parent=session.should_zoom_to_parent,
    )


@app.post("/node/{node_id}/parent")
async def navigate_to_parent(node_id: str):
    """move focus to the parent node."""
    try:
        session = state.store.navigate_to_parent(node_id)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidOperation as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        "active_node_id": session.active_node_id,
        "should_zoom_to_parent": session.should_zoom_to_parent,
    }


@app.post("/zoom/reset")
async def reset_zoom():
    """renderer acknowledges the zoom-to-parent signal."""
    session = state.store.reset_zoom_flag()
    return {"should_zoom_to_parent": session.should_zoom_to_parent}


@app.post("/layout", response_model=TreeResponse)
async def recalculate_layout():
    """re-flow the whole tree with the layered layout."""
    positions = await run_in_threadpool(state.store.compute_layout)
    state.store.apply_layout(positions)
    return state.tree_response()


@app.get("/node/{node_id}/context", response_model=ContextResponse)
async def get_context(node_id: str, selected_text: Optional[str] = None):
    """inherited context and ancestry of a node."""
    tree = state.store.tree
    node = tree.get_node(node_id)
    if node is None:
        raise HTTPException(status_code=404, detail=f"node not found: {node_id}")
    try:
        return ContextResponse(
            node_id=node.id,
            title=conversation_title(node),
            ancestry=get_ancestry_path(tree, node.id),
            full_context=get_full_context(tree, node),
            branching_context=(
                get_branching_context(tree, node.id, selected_text) if selected_text else ""
            ),
        )
    except CycleDetected as e:
        raise HTTPException(status_code=409, detail=str(e))


# --- entrypoint ---

def main():
    """run the api server."""
    import argparse
    import uvicorn

    parser = argparse.ArgumentParser(description="chatpath api server")
    parser.add_argument("--host", default="127.0.0.1", help="host to bind")
    parser.add_argument("--port", "-p", type=int, default=8000, help="port to bind")
    parser.add_argument("--data-dir", "-d", help="directory for the tree snapshot (default: ~/.chatpath)")
    parser.add_argument(
        "--reply-delay",
        type=float,
        default=DEFAULT_REPLY_DELAY,
        help=f"mock reply delay in seconds (default: {DEFAULT_REPLY_DELAY})",
    )
    parser.add_argument("--no-persist", action="store_true", help="keep the tree in memory only")
    parser.add_argument("--verbose", "-v", action="store_true", help="debug logging")

    args = parser.parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    # configure state
    global state
    snapshot_path = None
    if not args.no_persist:
        data_dir = Path(args.data_dir) if args.data_dir else get_data_dir()
        snapshot_path = data_dir / SNAPSHOT_FILE
    state = AppState(snapshot_path=snapshot_path, reply_delay=args.reply_delay)

    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()

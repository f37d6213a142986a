"""core data model for chatpath.

a tree of conversations, not linear chat. nodes live in an arena
(dict id -> node) and point back at their parent by id.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Literal, Optional

from .errors import PersistenceFailure


# --- configuration ---

MIN_SELECTION_LENGTH = 3

Handle = Literal["top", "right", "bottom", "left"]


class Role(Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Position:
    """top-left corner of a node box."""

    x: float = 0.0
    y: float = 0.0

    def offset(self, dx: float, dy: float) -> Position:
        return Position(self.x + dx, self.y + dy)

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y}

    @classmethod
    def from_dict(cls, d: dict) -> Position:
        return cls(x=float(d.get("x", 0.0)), y=float(d.get("y", 0.0)))


@dataclass
class BranchPoint:
    """a carved-out span of one message that seeded a child node."""

    id: str
    message_id: str
    selected_text: str
    start_offset: int
    end_offset: int
    child_node_id: str
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "messageId": self.message_id,
            "selectedText": self.selected_text,
            "startOffset": self.start_offset,
            "endOffset": self.end_offset,
            "childNodeId": self.child_node_id,
            "createdAt": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, d: dict) -> BranchPoint:
        return cls(
            id=d["id"],
            message_id=d["messageId"],
            selected_text=d.get("selectedText", ""),
            start_offset=int(d["startOffset"]),
            end_offset=int(d["endOffset"]),
            child_node_id=d["childNodeId"],
            created_at=_parse_datetime(d.get("createdAt")),
        )


@dataclass
class Message:
    """one chat message. only branch_points ever changes after creation."""

    id: str
    content: str
    role: Role
    timestamp: datetime = field(default_factory=datetime.now)
    branch_points: list[BranchPoint] = field(default_factory=list)

    @classmethod
    def create(cls, content: str, role: Role) -> Message:
        """create a message with a fresh id and the current time."""
        return cls(id=_generate_id(), content=content, role=role)

    def serialize(self) -> str:
        """render as a context line, e.g. ``user: hello``."""
        return f"{self.role.value}: {self.content}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "content": self.content,
            "role": self.role.value,
            "timestamp": self.timestamp.isoformat(),
            "branchPoints": [bp.to_dict() for bp in self.branch_points],
        }

    @classmethod
    def from_dict(cls, d: dict) -> Message:
        return cls(
            id=d["id"],
            content=d["content"],
            role=Role(d["role"]),
            timestamp=_parse_datetime(d.get("timestamp")),
            branch_points=[BranchPoint.from_dict(bp) for bp in d.get("branchPoints", [])],
        )


@dataclass
class ConversationNode:
    """single conversation thread segment in the tree."""

    id: str
    parent_id: Optional[str] = None
    position: Position = field(default_factory=Position)
    messages: list[Message] = field(default_factory=list)
    branches: list[BranchPoint] = field(default_factory=list)  # branches carved FROM this node
    context: list[str] = field(default_factory=list)  # inherited ancestor excerpts
    created_at: datetime = field(default_factory=datetime.now)
    is_active: bool = False

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    def get_message(self, message_id: str) -> Optional[Message]:
        for message in self.messages:
            if message.id == message_id:
                return message
        return None

    def message_index(self, message_id: str) -> int:
        """index of a message in this node, -1 if absent."""
        for i, message in enumerate(self.messages):
            if message.id == message_id:
                return i
        return -1

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "parentId": self.parent_id,
            "position": self.position.to_dict(),
            "messages": [m.to_dict() for m in self.messages],
            "branches": [bp.to_dict() for bp in self.branches],
            "context": list(self.context),
            "createdAt": self.created_at.isoformat(),
            "isActive": self.is_active,
        }

    @classmethod
    def from_dict(cls, d: dict) -> ConversationNode:
        return cls(
            id=d["id"],
            parent_id=d.get("parentId"),
            position=Position.from_dict(d.get("position") or {}),
            messages=[Message.from_dict(m) for m in d.get("messages", [])],
            branches=[BranchPoint.from_dict(bp) for bp in d.get("branches", [])],
            context=list(d.get("context", [])),
            created_at=_parse_datetime(d.get("createdAt")),
            is_active=bool(d.get("isActive", False)),
        )


@dataclass
class EdgeData:
    selected_text: str
    branch_point: BranchPoint

    def to_dict(self) -> dict:
        return {
            "selectedText": self.selected_text,
            "branchPoint": self.branch_point.to_dict(),
        }

    @classmethod
    def from_dict(cls, d: dict) -> EdgeData:
        return cls(
            selected_text=d.get("selectedText", ""),
            branch_point=BranchPoint.from_dict(d["branchPoint"]),
        )


@dataclass
class ConversationEdge:
    """parent -> child link, one per branch."""

    id: str
    source: str
    target: str
    source_handle: Optional[Handle] = None
    target_handle: Optional[Handle] = None
    label: Optional[str] = None
    data: Optional[EdgeData] = None

    @staticmethod
    def edge_id(source: str, target: str) -> str:
        return f"edge-{source}-{target}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "source": self.source,
            "target": self.target,
            "sourceHandle": self.source_handle,
            "targetHandle": self.target_handle,
            "label": self.label,
            "data": self.data.to_dict() if self.data else None,
        }

    @classmethod
    def from_dict(cls, d: dict) -> ConversationEdge:
        data = d.get("data")
        return cls(
            id=d["id"],
            source=d["source"],
            target=d["target"],
            source_handle=d.get("sourceHandle"),
            target_handle=d.get("targetHandle"),
            label=d.get("label"),
            data=EdgeData.from_dict(data) if data else None,
        )


@dataclass
class ConversationTree:
    """the full conversation tree."""

    nodes: dict[str, ConversationNode] = field(default_factory=dict)
    edges: dict[str, ConversationEdge] = field(default_factory=dict)
    root_node_id: str = ""

    @classmethod
    def empty(cls) -> ConversationTree:
        return cls()

    @property
    def root(self) -> Optional[ConversationNode]:
        return self.nodes.get(self.root_node_id)

    def get_node(self, node_id: Optional[str]) -> Optional[ConversationNode]:
        if node_id is None:
            return None
        return self.nodes.get(node_id)

    def children_of(self, node_id: str) -> list[ConversationNode]:
        """direct children in insertion order."""
        return [n for n in self.nodes.values() if n.parent_id == node_id]

    def edges_for(self, node_id: str) -> list[ConversationEdge]:
        """edges with this node as source or target."""
        return [e for e in self.edges.values() if node_id in (e.source, e.target)]

    def integrity_problems(self) -> list[str]:
        """list every violated tree invariant. empty list means consistent."""
        problems: list[str] = []
        if not self.nodes:
            if self.edges:
                problems.append("edges present in a tree without nodes")
            return problems

        roots = [n.id for n in self.nodes.values() if n.parent_id is None]
        if roots != [self.root_node_id]:
            problems.append(f"expected single root {self.root_node_id!r}, found {roots}")

        for node in self.nodes.values():
            if node.parent_id is not None and node.parent_id not in self.nodes:
                problems.append(f"node {node.id} points at missing parent {node.parent_id}")

        for node_id in self.nodes:
            seen: set[str] = set()
            current: Optional[str] = node_id
            while current is not None and current in self.nodes:
                if current in seen:
                    problems.append(f"parent cycle through node {node_id}")
                    break
                seen.add(current)
                current = self.nodes[current].parent_id

        if len(self.edges) != len(self.nodes) - 1:
            problems.append(
                f"edge count {len(self.edges)} does not match node count {len(self.nodes)} - 1"
            )

        targets: dict[str, int] = {}
        for edge in self.edges.values():
            targets[edge.target] = targets.get(edge.target, 0) + 1
            if edge.source not in self.nodes or edge.target not in self.nodes:
                problems.append(f"edge {edge.id} references a missing node")
            elif self.nodes[edge.target].parent_id != edge.source:
                problems.append(f"edge {edge.id} disagrees with parent link of {edge.target}")

        for node in self.nodes.values():
            carved = {bp.id for m in node.messages for bp in m.branch_points}
            listed = {bp.id for bp in node.branches}
            if carved != listed:
                problems.append(f"node {node.id} branches out of sync with message branch points")
            for bp in node.branches:
                if bp.child_node_id not in self.nodes:
                    problems.append(f"branch point {bp.id} references missing node {bp.child_node_id}")
                if targets.get(bp.child_node_id, 0) != 1:
                    problems.append(f"branch point {bp.id} does not match exactly one edge")

        return problems

    def to_dict(self) -> dict:
        """serialize to the persisted snapshot shape."""
        return {
            "nodes": [n.to_dict() for n in self.nodes.values()],
            "edges": [e.to_dict() for e in self.edges.values()],
            "rootNodeId": self.root_node_id,
        }

    @classmethod
    def from_dict(cls, d: dict) -> ConversationTree:
        tree = cls(root_node_id=d.get("rootNodeId", ""))
        for nd in d["nodes"]:
            node = ConversationNode.from_dict(nd)
            tree.nodes[node.id] = node
        for ed in d.get("edges", []):
            edge = ConversationEdge.from_dict(ed)
            tree.edges[edge.id] = edge
        return tree

    def save(self, path: Path) -> None:
        """save tree snapshot to json file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, path: Path) -> ConversationTree:
        """load tree snapshot from json file.

        raises PersistenceFailure when the file is not valid json or is
        missing required fields. a missing file raises FileNotFoundError.
        """
        with open(path) as f:
            raw = f.read()
        try:
            return cls.from_dict(json.loads(raw))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError) as e:
            raise PersistenceFailure(f"malformed snapshot {path}: {e}") from e


@dataclass(frozen=True)
class TextSelection:
    """a span of one rendered message chosen by the user."""

    text: str
    start_offset: int
    end_offset: int
    message_id: str
    node_id: str

    @classmethod
    def from_message(cls, node_id: str, message: Message, text: str) -> Optional[TextSelection]:
        """locate text inside a message the way the browser helper does.

        uses the first occurrence. returns None for short or absent text.
        """
        text = text.strip()
        if len(text) < MIN_SELECTION_LENGTH:
            return None
        start = message.content.find(text)
        if start == -1:
            return None
        return cls(
            text=text,
            start_offset=start,
            end_offset=start + len(text),
            message_id=message.id,
            node_id=node_id,
        )


@dataclass(frozen=True)
class SessionState:
    """tree plus transient ui focus state."""

    tree: ConversationTree = field(default_factory=ConversationTree.empty)
    active_node_id: Optional[str] = None
    is_loading: bool = False
    should_zoom_to_parent: bool = False  # one-shot, cleared by the renderer

    @property
    def active_node(self) -> Optional[ConversationNode]:
        return self.tree.get_node(self.active_node_id)


def _generate_id() -> str:
    """generate a unique id."""
    return str(uuid.uuid4())


def _parse_datetime(value: Optional[str]) -> datetime:
    """parse an iso-8601 string, tolerating a trailing Z."""
    if not value:
        return datetime.now()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)

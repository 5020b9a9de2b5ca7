"""Core data models for ideatree.

Uses Pydantic v2 for validation, ULID for sortable unique IDs.
"""

import re
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field
from ulid import ULID

from .constants import DEFAULT_MODEL, DEFAULT_NODE_COLOR, FOLDER_NAME_MAX_LEN


def generate_id() -> str:
    """Generate a ULID (sortable, unique identifier)."""
    return str(ULID())


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(timezone.utc)


def sanitize_folder_name(label: str) -> str:
    """Turn a free-form label into a safe folder name.

    "My Cool App!" -> "my-cool-app". Falls back to "project" when
    nothing usable remains.
    """
    name = label.lower()
    name = re.sub(r"[^a-z0-9\s-]", "", name)
    name = re.sub(r"\s+", "-", name)
    name = re.sub(r"-+", "-", name)
    name = name.strip("-")
    return name[:FOLDER_NAME_MAX_LEN] or "project"


# ─────────────────────────────────────────────────────────────────────────────
# Conversations
# ─────────────────────────────────────────────────────────────────────────────

MessageRole = Literal["user", "assistant", "system"]


class Conversation(BaseModel):
    """A chat thread with the assistant."""

    id: str = Field(default_factory=generate_id)
    title: str
    system_prompt: str | None = None
    model: str = DEFAULT_MODEL
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class Message(BaseModel):
    """A single turn in a conversation."""

    id: str = Field(default_factory=generate_id)
    conversation_id: str
    role: MessageRole
    content: str
    content_blocks: list[dict[str, Any]] | None = None  # tool calls, text blocks, etc.
    thinking: str | None = None
    input_tokens: int | None = None
    output_tokens: int | None = None
    created_at: datetime = Field(default_factory=utc_now)


# ─────────────────────────────────────────────────────────────────────────────
# Ideas & Notes
# ─────────────────────────────────────────────────────────────────────────────

IdeaStatus = Literal["active", "completed", "archived"]


class Idea(BaseModel):
    """A unit of work: voice notes, a synthesized document, a graph and a project."""

    id: str = Field(default_factory=generate_id)
    title: str
    status: IdeaStatus = "active"
    conversation_id: str | None = None
    synthesis_content: str | None = None
    synthesis_version: int = 0
    synthesis_updated_at: datetime | None = None
    project_path: str | None = None  # idea project root; branch folders live inside
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def to_summary(self) -> dict:
        """Return a compact summary of this idea."""
        return {
            "id": self.id,
            "title": self.title,
            "status": self.status,
            "synthesis_version": self.synthesis_version,
            "has_project": self.project_path is not None,
            "updated_at": self.updated_at.isoformat(),
        }


class Note(BaseModel):
    """A transcribed voice note attached to an idea."""

    id: str = Field(default_factory=generate_id)
    idea_id: str
    content: str
    duration_ms: int | None = None
    created_at: datetime = Field(default_factory=utc_now)


# ─────────────────────────────────────────────────────────────────────────────
# Dependency Graph
# ─────────────────────────────────────────────────────────────────────────────


class GraphNode(BaseModel):
    """A dependency (API, library, service) on an idea's planning canvas."""

    id: str = Field(default_factory=generate_id)
    idea_id: str
    name: str
    provider: str
    description: str = ""
    pricing: dict[str, Any] | None = None
    position_x: int = 0
    position_y: int = 0
    color: str | None = DEFAULT_NODE_COLOR
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class GraphEdge(BaseModel):
    """A directed connection between two nodes of the same idea."""

    id: str = Field(default_factory=generate_id)
    idea_id: str
    from_node_id: str
    to_node_id: str
    label: str | None = None
    details: dict[str, Any] | None = None  # integration method, protocol, data flow
    created_at: datetime = Field(default_factory=utc_now)


class GraphState(BaseModel):
    """Nodes and edges of one idea's graph at a point in time.

    Identifiers are preserved through save/restore so that edges keep
    resolving against their endpoint nodes.
    """

    nodes: list[GraphNode] = Field(default_factory=list)
    edges: list[GraphEdge] = Field(default_factory=list)

    def node_ids(self) -> set[str]:
        return {n.id for n in self.nodes}

    def dangling_edges(self) -> list[GraphEdge]:
        """Edges whose endpoints are not in this state."""
        ids = self.node_ids()
        return [e for e in self.edges if e.from_node_id not in ids or e.to_node_id not in ids]

    def signature(self) -> tuple:
        """Comparable identity of the graph content, ignoring timestamps."""
        nodes = sorted(
            (n.id, n.name, n.provider, n.description, repr(n.pricing),
             n.position_x, n.position_y, n.color)
            for n in self.nodes
        )
        edges = sorted(
            (e.id, e.from_node_id, e.to_node_id, e.label, repr(e.details))
            for e in self.edges
        )
        return tuple(nodes), tuple(edges)


# ─────────────────────────────────────────────────────────────────────────────
# Files
# ─────────────────────────────────────────────────────────────────────────────


class ProjectFile(BaseModel):
    """A text file of an idea's project, path relative to the branch folder."""

    file_path: str
    content: str


# ─────────────────────────────────────────────────────────────────────────────
# Branches & Snapshots
# ─────────────────────────────────────────────────────────────────────────────


class ConversationBranch(BaseModel):
    """A node in an idea's conversation tree, bound to its own project folder.

    While the branch is active, its synthesis/graph fields are stale: the
    live state lives in the idea and graph tables. They are refreshed when
    the branch is deactivated.
    """

    id: str = Field(default_factory=generate_id)
    idea_id: str
    parent_branch_id: str | None = None  # None only for the root
    conversation_id: str | None = None
    label: str
    depth: int = 0
    folder_name: str
    synthesis_content: str | None = None
    graph: GraphState = Field(default_factory=GraphState)
    compaction_cache: str | None = None
    compaction_message_count: int | None = None
    is_active: bool = False
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_root(self) -> bool:
        return self.parent_branch_id is None

    def to_summary(self) -> dict:
        """Return a compact summary of this branch."""
        return {
            "id": self.id,
            "label": self.label,
            "parent_branch_id": self.parent_branch_id,
            "depth": self.depth,
            "folder_name": self.folder_name,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat(),
        }


class IdeaSnapshot(BaseModel):
    """An immutable, numbered version of an idea's text, graph and files."""

    id: str = Field(default_factory=generate_id)
    idea_id: str
    branch_id: str | None = None  # active branch when taken
    version_number: int
    synthesis_content: str | None = None
    files: list[ProjectFile] = Field(default_factory=list)
    nodes: list[GraphNode] = Field(default_factory=list)
    edges: list[GraphEdge] = Field(default_factory=list)
    tools_used: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)

    @property
    def graph(self) -> GraphState:
        return GraphState(nodes=self.nodes, edges=self.edges)

    def to_summary(self) -> dict:
        """Return a compact summary of this snapshot."""
        return {
            "id": self.id,
            "version_number": self.version_number,
            "files": len(self.files),
            "nodes": len(self.nodes),
            "edges": len(self.edges),
            "tools_used": self.tools_used,
            "created_at": self.created_at.isoformat(),
        }


# Tools that modify idea state and should trigger a snapshot
MODIFYING_TOOLS = frozenset({
    # Synthesis
    "update_synthesis",
    "modify_synthesis_lines",
    "add_to_synthesis",
    "remove_from_synthesis",
    # Dependency graph
    "create_dependency_node",
    "update_dependency_node",
    "delete_dependency_node",
    "connect_dependency_nodes",
    "disconnect_dependency_nodes",
    # Project files
    "write_file",
    "edit_file",
    "Write",
    "Edit",
    "MultiEdit",
    "Bash",
})


def has_modifying_tools(tools_used: list[str] | set[str]) -> bool:
    """Check whether any tool from an AI turn mutates idea state."""
    return any(tool in MODIFYING_TOOLS for tool in tools_used)

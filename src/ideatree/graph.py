"""Dependency graph storage: nodes and edges belonging to an idea.

Pure relational access, no tree logic. Edges cascade when either endpoint
node is deleted; both cascade when the idea is deleted.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Any

from .constants import DEFAULT_NODE_COLOR
from .database import Database, from_db_time, from_json, to_db_time, to_json
from .errors import NotFoundError
from .models import GraphEdge, GraphNode, GraphState, utc_now

logger = logging.getLogger(__name__)

_NODE_FIELDS = ("name", "provider", "description", "pricing", "position_x", "position_y", "color")


def _row_to_node(row: sqlite3.Row) -> GraphNode:
    return GraphNode(
        id=row["id"],
        idea_id=row["idea_id"],
        name=row["name"],
        provider=row["provider"],
        description=row["description"],
        pricing=from_json(row["pricing"]),
        position_x=row["position_x"],
        position_y=row["position_y"],
        color=row["color"],
        created_at=from_db_time(row["created_at"]),
        updated_at=from_db_time(row["updated_at"]),
    )


def _row_to_edge(row: sqlite3.Row) -> GraphEdge:
    return GraphEdge(
        id=row["id"],
        idea_id=row["idea_id"],
        from_node_id=row["from_node_id"],
        to_node_id=row["to_node_id"],
        label=row["label"],
        details=from_json(row["details"]),
        created_at=from_db_time(row["created_at"]),
    )


def _insert_node(conn: sqlite3.Connection, node: GraphNode) -> None:
    conn.execute(
        """
        INSERT INTO graph_nodes (id, idea_id, name, provider, description, pricing,
            position_x, position_y, color, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            node.id,
            node.idea_id,
            node.name,
            node.provider,
            node.description,
            to_json(node.pricing),
            node.position_x,
            node.position_y,
            node.color,
            to_db_time(node.created_at),
            to_db_time(node.updated_at),
        ),
    )


def _insert_edge(conn: sqlite3.Connection, edge: GraphEdge) -> None:
    conn.execute(
        """
        INSERT INTO graph_edges (id, idea_id, from_node_id, to_node_id, label, details,
            created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        (
            edge.id,
            edge.idea_id,
            edge.from_node_id,
            edge.to_node_id,
            edge.label,
            to_json(edge.details),
            to_db_time(edge.created_at),
        ),
    )


class GraphStore:
    """CRUD for an idea's dependency nodes and their connections."""

    def __init__(self, db: Database):
        self.db = db

    # ─────────────────────────────────────────────────────────────────────────
    # Nodes
    # ─────────────────────────────────────────────────────────────────────────

    def create_node(
        self,
        idea_id: str,
        name: str,
        provider: str,
        description: str = "",
        pricing: dict[str, Any] | None = None,
        position_x: int = 0,
        position_y: int = 0,
        color: str | None = DEFAULT_NODE_COLOR,
    ) -> GraphNode:
        node = GraphNode(
            idea_id=idea_id,
            name=name,
            provider=provider,
            description=description,
            pricing=pricing,
            position_x=position_x,
            position_y=position_y,
            color=color,
        )
        with self.db.transaction() as conn:
            _insert_node(conn, node)
        return node

    def get_node(self, node_id: str) -> GraphNode | None:
        row = self.db.fetchone("SELECT * FROM graph_nodes WHERE id = ?", (node_id,))
        return _row_to_node(row) if row else None

    def get_nodes_for_idea(self, idea_id: str) -> list[GraphNode]:
        rows = self.db.fetchall(
            "SELECT * FROM graph_nodes WHERE idea_id = ? ORDER BY created_at, id", (idea_id,)
        )
        return [_row_to_node(row) for row in rows]

    def update_node(self, node_id: str, **changes: Any) -> GraphNode:
        """Partially update a node.

        Args:
            node_id: Node to update
            **changes: Any of name, provider, description, pricing,
                position_x, position_y, color

        Raises:
            NotFoundError: If the node does not exist
            ValueError: If an unknown field is passed
        """
        node = self.get_node(node_id)
        if node is None:
            raise NotFoundError("Node", node_id)

        unknown = set(changes) - set(_NODE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown node fields: {sorted(unknown)}")

        updated = node.model_copy(update={**changes, "updated_at": utc_now()})
        self.db.execute(
            """
            UPDATE graph_nodes
            SET name = ?, provider = ?, description = ?, pricing = ?,
                position_x = ?, position_y = ?, color = ?, updated_at = ?
            WHERE id = ?
            """,
            (
                updated.name,
                updated.provider,
                updated.description,
                to_json(updated.pricing),
                updated.position_x,
                updated.position_y,
                updated.color,
                to_db_time(updated.updated_at),
                node_id,
            ),
        )
        return updated

    def delete_node(self, node_id: str) -> None:
        """Delete a node (its edges cascade)."""
        self.db.execute("DELETE FROM graph_nodes WHERE id = ?", (node_id,))

    def delete_all_nodes_for_idea(self, idea_id: str) -> None:
        """Delete every node of an idea (all its edges cascade)."""
        self.db.execute("DELETE FROM graph_nodes WHERE idea_id = ?", (idea_id,))

    # ─────────────────────────────────────────────────────────────────────────
    # Edges
    # ─────────────────────────────────────────────────────────────────────────

    def create_edge(
        self,
        idea_id: str,
        from_node_id: str,
        to_node_id: str,
        label: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> GraphEdge:
        """Connect two nodes of the same idea.

        Raises:
            NotFoundError: If either endpoint is missing or belongs to another idea
        """
        for node_id in (from_node_id, to_node_id):
            node = self.get_node(node_id)
            if node is None or node.idea_id != idea_id:
                raise NotFoundError("Node", node_id)

        edge = GraphEdge(
            idea_id=idea_id,
            from_node_id=from_node_id,
            to_node_id=to_node_id,
            label=label,
            details=details,
        )
        with self.db.transaction() as conn:
            _insert_edge(conn, edge)
        return edge

    def get_edge(self, edge_id: str) -> GraphEdge | None:
        row = self.db.fetchone("SELECT * FROM graph_edges WHERE id = ?", (edge_id,))
        return _row_to_edge(row) if row else None

    def get_edges_for_idea(self, idea_id: str) -> list[GraphEdge]:
        rows = self.db.fetchall(
            "SELECT * FROM graph_edges WHERE idea_id = ? ORDER BY created_at, id", (idea_id,)
        )
        return [_row_to_edge(row) for row in rows]

    def delete_edge(self, edge_id: str) -> None:
        self.db.execute("DELETE FROM graph_edges WHERE id = ?", (edge_id,))

    # ─────────────────────────────────────────────────────────────────────────
    # Whole-graph operations
    # ─────────────────────────────────────────────────────────────────────────

    def get_full_state(self, idea_id: str) -> GraphState:
        return GraphState(
            nodes=self.get_nodes_for_idea(idea_id),
            edges=self.get_edges_for_idea(idea_id),
        )

    def insert_state(self, idea_id: str, state: GraphState) -> None:
        """Insert nodes then edges, keeping their original identifiers.

        Rows are re-homed to idea_id. Edges whose endpoints are not part
        of the state are skipped with a warning rather than failing the
        whole insert.
        """
        with self.db.transaction() as conn:
            self._insert_state(conn, idea_id, state)

    def replace_state(self, idea_id: str, state: GraphState) -> None:
        """Swap the idea's whole graph for state in one transaction."""
        with self.db.transaction() as conn:
            conn.execute("DELETE FROM graph_nodes WHERE idea_id = ?", (idea_id,))
            self._insert_state(conn, idea_id, state)

    def _insert_state(self, conn: sqlite3.Connection, idea_id: str, state: GraphState) -> None:
        for node in state.nodes:
            _insert_node(conn, node.model_copy(update={"idea_id": idea_id}))

        dangling = {e.id for e in state.dangling_edges()}
        if dangling:
            logger.warning(f"Skipping {len(dangling)} edges with missing endpoints for idea {idea_id}")

        for edge in state.edges:
            if edge.id in dangling:
                continue
            _insert_edge(conn, edge.model_copy(update={"idea_id": idea_id}))

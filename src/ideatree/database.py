"""SQLite database shared by all ideatree stores.

One connection per Database, WAL journal, foreign keys enforced so that
idea/node/conversation deletes cascade the way the data model expects.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

SCHEMA = """
CREATE TABLE IF NOT EXISTS conversations (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    system_prompt TEXT,
    model TEXT NOT NULL,
    total_input_tokens INTEGER NOT NULL DEFAULT 0,
    total_output_tokens INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS messages (
    id TEXT PRIMARY KEY,
    conversation_id TEXT NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
    role TEXT NOT NULL CHECK (role IN ('user', 'assistant', 'system')),
    content TEXT NOT NULL,
    content_blocks TEXT,
    thinking TEXT,
    input_tokens INTEGER,
    output_tokens INTEGER,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS ideas (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'active'
        CHECK (status IN ('active', 'completed', 'archived')),
    conversation_id TEXT REFERENCES conversations(id) ON DELETE SET NULL,
    synthesis_content TEXT,
    synthesis_version INTEGER NOT NULL DEFAULT 0,
    synthesis_updated_at TEXT,
    project_path TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS notes (
    id TEXT PRIMARY KEY,
    idea_id TEXT NOT NULL REFERENCES ideas(id) ON DELETE CASCADE,
    content TEXT NOT NULL,
    duration_ms INTEGER,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS graph_nodes (
    id TEXT PRIMARY KEY,
    idea_id TEXT NOT NULL REFERENCES ideas(id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    provider TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    pricing TEXT,
    position_x INTEGER NOT NULL DEFAULT 0,
    position_y INTEGER NOT NULL DEFAULT 0,
    color TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS graph_edges (
    id TEXT PRIMARY KEY,
    idea_id TEXT NOT NULL REFERENCES ideas(id) ON DELETE CASCADE,
    from_node_id TEXT NOT NULL REFERENCES graph_nodes(id) ON DELETE CASCADE,
    to_node_id TEXT NOT NULL REFERENCES graph_nodes(id) ON DELETE CASCADE,
    label TEXT,
    details TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS conversation_branches (
    id TEXT PRIMARY KEY,
    idea_id TEXT NOT NULL REFERENCES ideas(id) ON DELETE CASCADE,
    parent_branch_id TEXT REFERENCES conversation_branches(id),
    conversation_id TEXT REFERENCES conversations(id) ON DELETE SET NULL,
    label TEXT NOT NULL,
    depth INTEGER NOT NULL DEFAULT 0,
    folder_name TEXT NOT NULL,
    synthesis_content TEXT,
    graph_snapshot TEXT NOT NULL DEFAULT '{"nodes": [], "edges": []}',
    compaction_cache TEXT,
    compaction_message_count INTEGER,
    is_active INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (idea_id, folder_name)
);

CREATE TABLE IF NOT EXISTS idea_snapshots (
    id TEXT PRIMARY KEY,
    idea_id TEXT NOT NULL REFERENCES ideas(id) ON DELETE CASCADE,
    branch_id TEXT,
    version_number INTEGER NOT NULL,
    synthesis_content TEXT,
    files_snapshot TEXT NOT NULL DEFAULT '[]',
    nodes_snapshot TEXT NOT NULL DEFAULT '[]',
    edges_snapshot TEXT NOT NULL DEFAULT '[]',
    tools_used TEXT NOT NULL DEFAULT '[]',
    created_at TEXT NOT NULL,
    UNIQUE (idea_id, version_number)
);

CREATE INDEX IF NOT EXISTS idx_messages_conversation ON messages(conversation_id);
CREATE INDEX IF NOT EXISTS idx_ideas_updated_at ON ideas(updated_at);
CREATE INDEX IF NOT EXISTS idx_ideas_status ON ideas(status);
CREATE INDEX IF NOT EXISTS idx_notes_idea ON notes(idea_id);
CREATE INDEX IF NOT EXISTS idx_graph_nodes_idea ON graph_nodes(idea_id);
CREATE INDEX IF NOT EXISTS idx_graph_edges_idea ON graph_edges(idea_id);
CREATE INDEX IF NOT EXISTS idx_graph_edges_from ON graph_edges(from_node_id);
CREATE INDEX IF NOT EXISTS idx_graph_edges_to ON graph_edges(to_node_id);
CREATE INDEX IF NOT EXISTS idx_branches_idea ON conversation_branches(idea_id);
CREATE INDEX IF NOT EXISTS idx_branches_parent ON conversation_branches(parent_branch_id);
CREATE INDEX IF NOT EXISTS idx_snapshots_idea_version ON idea_snapshots(idea_id, version_number);
"""


def to_db_time(value: datetime | None) -> str | None:
    """Serialize a datetime for a TEXT column."""
    return value.isoformat() if value is not None else None


def from_db_time(value: str | None) -> datetime | None:
    """Parse a TEXT column back into a datetime."""
    return datetime.fromisoformat(value) if value else None


def to_json(value: Any) -> str | None:
    """Serialize a structured payload for a TEXT column (None stays NULL)."""
    return json.dumps(value) if value is not None else None


def from_json(value: str | None) -> Any:
    return json.loads(value) if value else None


class Database:
    """Owns the sqlite connection and schema for one ideatree home."""

    def __init__(self, db_path: Path | str):
        """Open (and create if needed) the database.

        Args:
            db_path: Path to ideatree.db, or ":memory:" for tests
        """
        self.db_path = db_path
        if isinstance(db_path, Path):
            db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: sqlite3.Connection | None = None
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path), timeout=30.0)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys=ON")
            if str(self.db_path) != ":memory:":
                self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA busy_timeout=30000")
        return self._conn

    def _init_db(self) -> None:
        """Initialize database schema."""
        conn = self._get_conn()

        conn.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                created_at TEXT DEFAULT (datetime('now'))
            )
        """)

        version = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()[0]
        if version is None:
            conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
        elif version < SCHEMA_VERSION:
            logger.warning(f"Schema version {version} detected, may need migration")

        conn.executescript(SCHEMA)
        conn.commit()

    @property
    def conn(self) -> sqlite3.Connection:
        return self._get_conn()

    def execute(self, sql: str, params: tuple | dict = ()) -> sqlite3.Cursor:
        """Execute a single statement and commit."""
        conn = self._get_conn()
        cursor = conn.execute(sql, params)
        conn.commit()
        return cursor

    def fetchone(self, sql: str, params: tuple | dict = ()) -> sqlite3.Row | None:
        return self._get_conn().execute(sql, params).fetchone()

    def fetchall(self, sql: str, params: tuple | dict = ()) -> list[sqlite3.Row]:
        return self._get_conn().execute(sql, params).fetchall()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Group several statements into one commit; roll back on error."""
        conn = self._get_conn()
        try:
            yield conn
        except Exception:
            conn.rollback()
            raise
        else:
            conn.commit()

    def close(self) -> None:
        """Close database connection.

        Forces a WAL checkpoint before closing so the main database file
        holds every change.
        """
        if self._conn is not None:
            if str(self.db_path) != ":memory:":
                self._conn.execute("PRAGMA wal_checkpoint(TRUNCATE)")
            self._conn.close()
            self._conn = None

"""Versioned snapshots of an idea's text, graph and project files.

A snapshot captures a consistent triple at save time. Restore treats the
three parts as independently recoverable: text and graph are relational
writes, files are disk I/O, and a partial restore beats a failed one.

Files are read from, and restored into, the active branch's folder. Each
snapshot also gets an on-disk copy under <branch>/versions/v<N>/; the copy
stored in the database is only a fallback.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from .database import Database, from_db_time, to_db_time
from .errors import NotFoundError
from .materialize import (
    clear_project_files,
    copy_version_to_disk,
    read_project_files,
    save_version_to_disk,
    version_dir,
    write_project_files,
)
from .models import (
    GraphEdge,
    GraphNode,
    GraphState,
    IdeaSnapshot,
    ProjectFile,
    has_modifying_tools,
)

if TYPE_CHECKING:
    from .branches import BranchManager
    from .graph import GraphStore
    from .ideas import IdeaStore

logger = logging.getLogger(__name__)

FileSource = Literal["disk", "database", "none"]


@dataclass
class RestoreResult:
    """What a snapshot restore actually managed to put back."""

    snapshot_id: str
    version_number: int
    text_restored: bool = False
    files_restored: bool = False
    files_source: FileSource = "none"
    files_count: int = 0
    graph_restored: bool = False
    nodes_count: int = 0
    edges_count: int = 0

    @property
    def complete(self) -> bool:
        return self.text_restored and self.graph_restored and (
            self.files_restored or self.files_source == "none"
        )


def _row_to_snapshot(row: sqlite3.Row) -> IdeaSnapshot:
    return IdeaSnapshot(
        id=row["id"],
        idea_id=row["idea_id"],
        branch_id=row["branch_id"],
        version_number=row["version_number"],
        synthesis_content=row["synthesis_content"],
        files=[ProjectFile.model_validate(f) for f in json.loads(row["files_snapshot"])],
        nodes=[GraphNode.model_validate(n) for n in json.loads(row["nodes_snapshot"])],
        edges=[GraphEdge.model_validate(e) for e in json.loads(row["edges_snapshot"])],
        tools_used=json.loads(row["tools_used"]),
        created_at=from_db_time(row["created_at"]),
    )


def _dump_list(items: list) -> str:
    return json.dumps([item.model_dump(mode="json") for item in items])


class SnapshotManager:
    """Creates, lists and restores immutable idea snapshots."""

    def __init__(
        self,
        db: Database,
        ideas: "IdeaStore",
        graph: "GraphStore",
        branches: "BranchManager",
    ):
        self.db = db
        self._ideas = ideas
        self._graph = graph
        self._branches = branches

    # ─────────────────────────────────────────────────────────────────────────
    # Queries
    # ─────────────────────────────────────────────────────────────────────────

    def get_latest_version(self, idea_id: str) -> int:
        """Highest version number for an idea (0 if none exist)."""
        row = self.db.fetchone(
            "SELECT MAX(version_number) FROM idea_snapshots WHERE idea_id = ?", (idea_id,)
        )
        return row[0] or 0

    def get_snapshots(self, idea_id: str) -> list[IdeaSnapshot]:
        """All snapshots for an idea, newest version first."""
        rows = self.db.fetchall(
            "SELECT * FROM idea_snapshots WHERE idea_id = ? ORDER BY version_number DESC",
            (idea_id,),
        )
        return [_row_to_snapshot(row) for row in rows]

    def get_snapshot(self, snapshot_id: str) -> IdeaSnapshot | None:
        row = self.db.fetchone("SELECT * FROM idea_snapshots WHERE id = ?", (snapshot_id,))
        return _row_to_snapshot(row) if row else None

    def get_snapshot_by_version(self, idea_id: str, version_number: int) -> IdeaSnapshot | None:
        row = self.db.fetchone(
            "SELECT * FROM idea_snapshots WHERE idea_id = ? AND version_number = ?",
            (idea_id, version_number),
        )
        return _row_to_snapshot(row) if row else None

    @staticmethod
    def should_snapshot(tools_used: list[str] | set[str]) -> bool:
        """True if an AI turn used a state-mutating tool."""
        return has_modifying_tools(tools_used)

    # ─────────────────────────────────────────────────────────────────────────
    # Create
    # ─────────────────────────────────────────────────────────────────────────

    def create_snapshot(self, idea_id: str, tools_used: list[str]) -> IdeaSnapshot:
        """Snapshot the idea's live text, graph and active-branch files.

        A missing project path or branch folder just means an empty file
        list. Failing to write the versions/v<N>/ copy is logged, not
        raised: the database row stays authoritative.

        Raises:
            NotFoundError: If the idea does not exist
        """
        idea = self._ideas.require_idea(idea_id)

        active = self._branches.get_active_branch(idea_id)
        branch_folder = self._branches.get_active_branch_folder_path(idea_id)
        files: list[ProjectFile] = []
        if branch_folder is not None and branch_folder.is_dir():
            files = read_project_files(branch_folder)

        state = self._graph.get_full_state(idea_id)

        with self.db.transaction() as conn:
            row = conn.execute(
                "SELECT MAX(version_number) FROM idea_snapshots WHERE idea_id = ?", (idea_id,)
            ).fetchone()
            snapshot = IdeaSnapshot(
                idea_id=idea_id,
                branch_id=active.id if active else None,
                version_number=(row[0] or 0) + 1,
                synthesis_content=idea.synthesis_content,
                files=files,
                nodes=state.nodes,
                edges=state.edges,
                tools_used=list(tools_used),
            )
            conn.execute(
                """
                INSERT INTO idea_snapshots (id, idea_id, branch_id, version_number,
                    synthesis_content, files_snapshot, nodes_snapshot, edges_snapshot,
                    tools_used, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    snapshot.id,
                    idea_id,
                    snapshot.branch_id,
                    snapshot.version_number,
                    snapshot.synthesis_content,
                    _dump_list(snapshot.files),
                    _dump_list(snapshot.nodes),
                    _dump_list(snapshot.edges),
                    json.dumps(snapshot.tools_used),
                    to_db_time(snapshot.created_at),
                ),
            )

        target: Path | None = None
        if branch_folder is not None and files:
            try:
                target = save_version_to_disk(branch_folder, snapshot.version_number, files)
            except OSError as e:
                logger.error(
                    f"Failed to save version v{snapshot.version_number} to disk "
                    f"for idea {idea_id}: {e}"
                )

        logger.info(
            f"Created snapshot v{snapshot.version_number} for idea {idea_id}: "
            f"{len(files)} files, {len(state.nodes)} nodes, {len(state.edges)} edges, "
            f"tools={list(tools_used)}, version_dir={target or 'none'}"
        )
        return snapshot

    # ─────────────────────────────────────────────────────────────────────────
    # Restore
    # ─────────────────────────────────────────────────────────────────────────

    def restore_snapshot(self, snapshot_id: str) -> RestoreResult:
        """Put the idea's live text, files and graph back to a snapshot.

        Files come from <activeBranch>/versions/v<N>/ when present (full
        hot-swap), else from the file list stored in the database. Graph
        nodes and edges are re-inserted with their original identifiers.

        Raises:
            NotFoundError: If the snapshot does not exist (nothing is changed)
        """
        snapshot = self.get_snapshot(snapshot_id)
        if snapshot is None:
            raise NotFoundError("Snapshot", snapshot_id)

        idea_id = snapshot.idea_id
        result = RestoreResult(snapshot_id=snapshot.id, version_number=snapshot.version_number)

        logger.info(f"Restoring snapshot v{snapshot.version_number} for idea {idea_id}")

        # 1. Synthesized text
        try:
            self._ideas.replace_synthesis(idea_id, snapshot.synthesis_content)
            result.text_restored = True
        except (sqlite3.Error, NotFoundError) as e:
            logger.error(f"Failed to restore synthesis for idea {idea_id}: {e}")

        # 2. Files in the active branch folder
        try:
            self._restore_files(snapshot, result)
        except OSError as e:
            logger.error(f"Failed to restore files for snapshot v{snapshot.version_number}: {e}")

        # 3. Graph, identifiers preserved so historical edges keep resolving
        try:
            self._graph.replace_state(idea_id, snapshot.graph)
            result.graph_restored = True
            result.nodes_count = len(snapshot.nodes)
            result.edges_count = len(snapshot.edges)
        except sqlite3.Error as e:
            logger.error(f"Failed to restore graph for idea {idea_id}: {e}")

        logger.info(
            f"Restore of v{snapshot.version_number} completed for idea {idea_id}: "
            f"files from {result.files_source} ({result.files_count}), "
            f"{result.nodes_count} nodes, {result.edges_count} edges"
        )
        return result

    def _restore_files(self, snapshot: IdeaSnapshot, result: RestoreResult) -> None:
        branch_folder = self._branches.get_active_branch_folder_path(snapshot.idea_id)
        if branch_folder is None:
            return

        versions = version_dir(branch_folder, snapshot.version_number)
        if versions.is_dir():
            clear_project_files(branch_folder)
            result.files_count = copy_version_to_disk(versions, branch_folder)
            result.files_source = "disk"
            result.files_restored = True
            logger.info(f"Restored files from disk version folder {versions}")
        elif snapshot.files:
            clear_project_files(branch_folder)
            write_project_files(branch_folder, snapshot.files)
            result.files_count = len(snapshot.files)
            result.files_source = "database"
            result.files_restored = True
            logger.info(
                f"Restored {len(snapshot.files)} files from database fallback "
                f"(no disk version at {versions})"
            )

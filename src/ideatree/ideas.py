"""Idea and note storage.

Pure relational access: ideas, their synthesized text and version counter,
the conversation they are linked to, their project root, and voice notes.
"""

from __future__ import annotations

import logging
import shutil
import sqlite3
from pathlib import Path

from .database import Database, from_db_time, to_db_time
from .errors import NotFoundError
from .models import Idea, IdeaStatus, Note, utc_now

logger = logging.getLogger(__name__)

_UNSET = object()


def _row_to_idea(row: sqlite3.Row) -> Idea:
    return Idea(
        id=row["id"],
        title=row["title"],
        status=row["status"],
        conversation_id=row["conversation_id"],
        synthesis_content=row["synthesis_content"],
        synthesis_version=row["synthesis_version"],
        synthesis_updated_at=from_db_time(row["synthesis_updated_at"]),
        project_path=row["project_path"],
        created_at=from_db_time(row["created_at"]),
        updated_at=from_db_time(row["updated_at"]),
    )


def _row_to_note(row: sqlite3.Row) -> Note:
    return Note(
        id=row["id"],
        idea_id=row["idea_id"],
        content=row["content"],
        duration_ms=row["duration_ms"],
        created_at=from_db_time(row["created_at"]),
    )


class IdeaStore:
    """CRUD for ideas, synthesized text and notes."""

    def __init__(self, db: Database):
        self.db = db

    # ─────────────────────────────────────────────────────────────────────────
    # Ideas
    # ─────────────────────────────────────────────────────────────────────────

    def create_idea(self, title: str, project_path: Path | str | None = None) -> Idea:
        idea = Idea(title=title, project_path=str(project_path) if project_path else None)
        self.db.execute(
            """
            INSERT INTO ideas (id, title, status, project_path, synthesis_version,
                created_at, updated_at)
            VALUES (?, ?, ?, ?, 0, ?, ?)
            """,
            (
                idea.id,
                idea.title,
                idea.status,
                idea.project_path,
                to_db_time(idea.created_at),
                to_db_time(idea.updated_at),
            ),
        )
        logger.info(f"Created idea {idea.id} ({title!r})")
        return idea

    def get_idea(self, idea_id: str) -> Idea | None:
        row = self.db.fetchone("SELECT * FROM ideas WHERE id = ?", (idea_id,))
        return _row_to_idea(row) if row else None

    def require_idea(self, idea_id: str) -> Idea:
        """Load an idea or raise NotFoundError."""
        idea = self.get_idea(idea_id)
        if idea is None:
            raise NotFoundError("Idea", idea_id)
        return idea

    def list_ideas(self, status: IdeaStatus | None = None) -> list[Idea]:
        """All ideas, most recently updated first."""
        if status is None:
            rows = self.db.fetchall("SELECT * FROM ideas ORDER BY updated_at DESC, id DESC")
        else:
            rows = self.db.fetchall(
                "SELECT * FROM ideas WHERE status = ? ORDER BY updated_at DESC, id DESC",
                (status,),
            )
        return [_row_to_idea(row) for row in rows]

    def update_idea(
        self,
        idea_id: str,
        title: str | None = None,
        status: IdeaStatus | None = None,
    ) -> Idea:
        """Update title and/or status.

        Raises:
            NotFoundError: If the idea does not exist
        """
        idea = self.require_idea(idea_id)
        self.db.execute(
            "UPDATE ideas SET title = ?, status = ?, updated_at = ? WHERE id = ?",
            (
                title if title is not None else idea.title,
                status if status is not None else idea.status,
                to_db_time(utc_now()),
                idea_id,
            ),
        )
        return self.require_idea(idea_id)

    def set_project_path(self, idea_id: str, project_path: Path | str | None) -> Idea:
        self.require_idea(idea_id)
        self.db.execute(
            "UPDATE ideas SET project_path = ?, updated_at = ? WHERE id = ?",
            (str(project_path) if project_path else None, to_db_time(utc_now()), idea_id),
        )
        return self.require_idea(idea_id)

    def link_conversation(self, idea_id: str, conversation_id: str | None) -> None:
        self.require_idea(idea_id)
        self.db.execute(
            "UPDATE ideas SET conversation_id = ?, updated_at = ? WHERE id = ?",
            (conversation_id, to_db_time(utc_now()), idea_id),
        )

    def delete_idea(self, idea_id: str) -> None:
        """Delete an idea and everything under it, including its project folder.

        Notes, graph, branches and snapshots cascade in the database. The
        project root is removed from disk on a best-effort basis.
        """
        idea = self.get_idea(idea_id)
        if idea is None:
            return

        if idea.project_path:
            try:
                shutil.rmtree(idea.project_path)
                logger.info(f"Removed project folder {idea.project_path}")
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.error(f"Failed to remove project folder {idea.project_path}: {e}")

        with self.db.transaction() as conn:
            # Branch rows reference each other; clear them before the idea cascades
            conn.execute(
                "UPDATE conversation_branches SET parent_branch_id = NULL WHERE idea_id = ?",
                (idea_id,),
            )
            conn.execute("DELETE FROM ideas WHERE id = ?", (idea_id,))
        logger.info(f"Deleted idea {idea_id}")

    # ─────────────────────────────────────────────────────────────────────────
    # Synthesized text
    # ─────────────────────────────────────────────────────────────────────────

    def update_synthesis(self, idea_id: str, content: str) -> Idea:
        """Replace the synthesized text and bump its version counter.

        Raises:
            NotFoundError: If the idea does not exist
        """
        idea = self.require_idea(idea_id)
        now = to_db_time(utc_now())
        self.db.execute(
            """
            UPDATE ideas
            SET synthesis_content = ?, synthesis_version = ?,
                synthesis_updated_at = ?, updated_at = ?
            WHERE id = ?
            """,
            (content, idea.synthesis_version + 1, now, now, idea_id),
        )
        return self.require_idea(idea_id)

    def get_synthesis_content(self, idea_id: str) -> tuple[str | None, int]:
        """Return (text, version) for an idea.

        Raises:
            NotFoundError: If the idea does not exist
        """
        idea = self.require_idea(idea_id)
        return idea.synthesis_content, idea.synthesis_version

    def replace_synthesis(
        self,
        idea_id: str,
        content: str | None,
        conversation_id: str | None | object = _UNSET,
    ) -> None:
        """Overwrite synthesized text when restoring a snapshot or branch.

        Timestamps are bumped; the version counter is not, since no new
        text was authored. Pass conversation_id to relink the idea's
        conversation at the same time.
        """
        self.require_idea(idea_id)
        now = to_db_time(utc_now())
        if conversation_id is _UNSET:
            self.db.execute(
                """
                UPDATE ideas
                SET synthesis_content = ?, synthesis_updated_at = ?, updated_at = ?
                WHERE id = ?
                """,
                (content, now, now, idea_id),
            )
        else:
            self.db.execute(
                """
                UPDATE ideas
                SET synthesis_content = ?, synthesis_updated_at = ?, updated_at = ?,
                    conversation_id = ?
                WHERE id = ?
                """,
                (content, now, now, conversation_id, idea_id),
            )

    # ─────────────────────────────────────────────────────────────────────────
    # Notes
    # ─────────────────────────────────────────────────────────────────────────

    def add_note(self, idea_id: str, content: str, duration_ms: int | None = None) -> Note:
        """Attach a transcribed note to an idea and touch the idea's timestamp."""
        self.require_idea(idea_id)
        note = Note(idea_id=idea_id, content=content, duration_ms=duration_ms)
        with self.db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO notes (id, idea_id, content, duration_ms, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (note.id, idea_id, content, duration_ms, to_db_time(note.created_at)),
            )
            conn.execute(
                "UPDATE ideas SET updated_at = ? WHERE id = ?",
                (to_db_time(note.created_at), idea_id),
            )
        return note

    def get_note(self, note_id: str) -> Note | None:
        row = self.db.fetchone("SELECT * FROM notes WHERE id = ?", (note_id,))
        return _row_to_note(row) if row else None

    def get_notes(self, idea_id: str) -> list[Note]:
        """Notes for an idea, oldest first."""
        rows = self.db.fetchall(
            "SELECT * FROM notes WHERE idea_id = ? ORDER BY created_at, id", (idea_id,)
        )
        return [_row_to_note(row) for row in rows]

    def delete_note(self, note_id: str) -> None:
        self.db.execute("DELETE FROM notes WHERE id = ?", (note_id,))

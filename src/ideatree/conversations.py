"""Conversation and message storage."""

from __future__ import annotations

import logging
import sqlite3

from .constants import DEFAULT_MODEL
from .database import Database, from_db_time, from_json, to_db_time, to_json
from .errors import NotFoundError
from .models import Conversation, Message, MessageRole, utc_now

logger = logging.getLogger(__name__)


def _row_to_conversation(row: sqlite3.Row) -> Conversation:
    return Conversation(
        id=row["id"],
        title=row["title"],
        system_prompt=row["system_prompt"],
        model=row["model"],
        total_input_tokens=row["total_input_tokens"],
        total_output_tokens=row["total_output_tokens"],
        created_at=from_db_time(row["created_at"]),
        updated_at=from_db_time(row["updated_at"]),
    )


def _row_to_message(row: sqlite3.Row) -> Message:
    return Message(
        id=row["id"],
        conversation_id=row["conversation_id"],
        role=row["role"],
        content=row["content"],
        content_blocks=from_json(row["content_blocks"]),
        thinking=row["thinking"],
        input_tokens=row["input_tokens"],
        output_tokens=row["output_tokens"],
        created_at=from_db_time(row["created_at"]),
    )


class ConversationStore:
    """CRUD for conversations and their messages."""

    def __init__(self, db: Database):
        self.db = db

    # ─────────────────────────────────────────────────────────────────────────
    # Conversations
    # ─────────────────────────────────────────────────────────────────────────

    def create_conversation(
        self,
        title: str,
        system_prompt: str | None = None,
        model: str | None = None,
    ) -> Conversation:
        """Create a new, empty conversation."""
        conversation = Conversation(
            title=title,
            system_prompt=system_prompt,
            model=model or DEFAULT_MODEL,
        )
        self.db.execute(
            """
            INSERT INTO conversations (id, title, system_prompt, model,
                total_input_tokens, total_output_tokens, created_at, updated_at)
            VALUES (?, ?, ?, ?, 0, 0, ?, ?)
            """,
            (
                conversation.id,
                conversation.title,
                conversation.system_prompt,
                conversation.model,
                to_db_time(conversation.created_at),
                to_db_time(conversation.updated_at),
            ),
        )
        return conversation

    def get_conversation(self, conversation_id: str) -> Conversation | None:
        row = self.db.fetchone("SELECT * FROM conversations WHERE id = ?", (conversation_id,))
        return _row_to_conversation(row) if row else None

    def require_conversation(self, conversation_id: str) -> Conversation:
        conversation = self.get_conversation(conversation_id)
        if conversation is None:
            raise NotFoundError("Conversation", conversation_id)
        return conversation

    def delete_conversation(self, conversation_id: str) -> None:
        """Delete a conversation (messages cascade, idea links set to NULL)."""
        self.db.execute("DELETE FROM conversations WHERE id = ?", (conversation_id,))

    # ─────────────────────────────────────────────────────────────────────────
    # Messages
    # ─────────────────────────────────────────────────────────────────────────

    def add_message(
        self,
        conversation_id: str,
        role: MessageRole,
        content: str,
        content_blocks: list[dict] | None = None,
        thinking: str | None = None,
        input_tokens: int | None = None,
        output_tokens: int | None = None,
    ) -> Message:
        """Append a message and roll token usage into the conversation totals.

        Raises:
            NotFoundError: If the conversation does not exist
        """
        self.require_conversation(conversation_id)

        message = Message(
            conversation_id=conversation_id,
            role=role,
            content=content,
            content_blocks=content_blocks,
            thinking=thinking,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )
        with self.db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO messages (id, conversation_id, role, content, content_blocks,
                    thinking, input_tokens, output_tokens, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    message.id,
                    conversation_id,
                    role,
                    content,
                    to_json(content_blocks),
                    thinking,
                    input_tokens,
                    output_tokens,
                    to_db_time(message.created_at),
                ),
            )
            conn.execute(
                """
                UPDATE conversations
                SET updated_at = ?,
                    total_input_tokens = total_input_tokens + ?,
                    total_output_tokens = total_output_tokens + ?
                WHERE id = ?
                """,
                (
                    to_db_time(utc_now()),
                    input_tokens or 0,
                    output_tokens or 0,
                    conversation_id,
                ),
            )
        return message

    def get_messages(self, conversation_id: str) -> list[Message]:
        """Messages of a conversation, oldest first."""
        rows = self.db.fetchall(
            "SELECT * FROM messages WHERE conversation_id = ? ORDER BY created_at, id",
            (conversation_id,),
        )
        return [_row_to_message(row) for row in rows]

    def get_message_count(self, conversation_id: str) -> int:
        row = self.db.fetchone(
            "SELECT COUNT(*) FROM messages WHERE conversation_id = ?", (conversation_id,)
        )
        return row[0]

"""Conversation compaction for seeding child branches.

The summarization itself is an opaque, possibly slow and possibly failing
external call. This module only prepares the transcript and hands it over.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from .constants import (
    COMPACTION_EMPTY_CONVERSATION,
    COMPACTION_EMPTY_SUMMARY,
    COMPACTION_MAX_INPUT_CHARS,
    COMPACTION_NO_CONTENT,
    COMPACTION_TRUNCATION_MARKER,
)
from .models import Message

if TYPE_CHECKING:
    from .conversations import ConversationStore

logger = logging.getLogger(__name__)

# summarize(system_prompt, transcript) -> summary text
Summarizer = Callable[[str, str], str]

COMPACTION_SYSTEM_PROMPT = """You are a conversation summarizer. Create a comprehensive summary of a conversation between a user and an AI assistant about building an idea/product.

Your summary MUST capture:
1. Key decisions made: architecture, technology, design, naming
2. Requirements gathered: functional and non-functional
3. Current state: what has been built so far (files, APIs integrated, features)
4. Architecture: system design, data flow, component structure, API dependencies
5. Open questions: anything unresolved or explicitly deferred
6. User preferences: style, priorities, constraints

Format the summary as structured sections with bullet points. This summary is the ONLY context a new conversation branch receives.

Write in a factual, neutral tone. Do not add opinions or suggestions."""


def _message_text(message: Message) -> str | None:
    """Extract the text worth summarizing from a message, or None to drop it."""
    blocks = message.content_blocks

    if message.role == "system":
        return f"[System]: {message.content}"

    if message.role == "user":
        # Turns that only carry tool results are plumbing, not conversation
        if blocks and all(b.get("type") == "tool_result" for b in blocks):
            return None
        return f"[User]: {message.content}" if message.content.strip() else None

    if blocks:
        parts = [
            b.get("content") or b.get("text") or ""
            for b in blocks
            if b.get("type") == "text"
        ]
        text = "\n".join(p for p in parts if p.strip())
    else:
        text = message.content
    return f"[Assistant]: {text}" if text.strip() else None


def format_transcript(messages: list[Message], max_chars: int = COMPACTION_MAX_INPUT_CHARS) -> str:
    """Render messages as a transcript, dropping the oldest parts to fit max_chars."""
    parts = [text for m in messages if (text := _message_text(m)) is not None]
    if not parts:
        return ""

    transcript = "\n\n".join(parts)
    while len(transcript) > max_chars and len(parts) > 1:
        parts = parts[1:]
        transcript = f"{COMPACTION_TRUNCATION_MARKER}\n\n" + "\n\n".join(parts)
    return transcript


class Compactor:
    """Summarizes a stored conversation through an injected summarizer."""

    def __init__(
        self,
        conversations: "ConversationStore",
        summarize: Summarizer | None = None,
        max_input_chars: int = COMPACTION_MAX_INPUT_CHARS,
    ):
        """Initialize the compactor.

        Args:
            conversations: Store to load messages from
            summarize: External summarization call. When None the
                (truncated) transcript itself is used as the summary.
            max_input_chars: Character budget for the transcript
        """
        self._conversations = conversations
        self._summarize = summarize
        self.max_input_chars = max_input_chars

    def compact(self, conversation_id: str) -> str:
        """Compact a conversation into a summary string.

        Exceptions from the summarizer propagate; callers decide how to
        degrade.
        """
        messages = self._conversations.get_messages(conversation_id)
        if not messages:
            logger.warning(f"No messages found in conversation {conversation_id}")
            return COMPACTION_EMPTY_CONVERSATION

        transcript = format_transcript(messages, self.max_input_chars)
        if not transcript:
            logger.warning(f"No meaningful content in conversation {conversation_id}")
            return COMPACTION_NO_CONTENT

        logger.info(
            f"Compacting conversation {conversation_id}: "
            f"{len(messages)} messages, {len(transcript)} chars"
        )

        if self._summarize is None:
            return transcript

        summary = self._summarize(
            COMPACTION_SYSTEM_PROMPT,
            f"Here is the conversation to summarize:\n\n{transcript}",
        )
        return summary or COMPACTION_EMPTY_SUMMARY

    __call__ = compact

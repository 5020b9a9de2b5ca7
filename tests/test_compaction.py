"""Tests for transcript formatting and the Compactor."""

import pytest

from conftest import CountingSummarizer
from ideatree.compaction import COMPACTION_SYSTEM_PROMPT, Compactor, format_transcript
from ideatree.constants import (
    COMPACTION_EMPTY_CONVERSATION,
    COMPACTION_EMPTY_SUMMARY,
    COMPACTION_NO_CONTENT,
    COMPACTION_TRUNCATION_MARKER,
)
from ideatree.conversations import ConversationStore
from ideatree.models import Message


def _msg(role, content, blocks=None) -> Message:
    return Message(conversation_id="c", role=role, content=content, content_blocks=blocks)


@pytest.fixture
def conversations(db):
    return ConversationStore(db)


class TestFormatTranscript:
    def test_labels_roles(self):
        transcript = format_transcript([
            _msg("system", "context"),
            _msg("user", "hi"),
            _msg("assistant", "hello"),
        ])
        assert transcript == "[System]: context\n\n[User]: hi\n\n[Assistant]: hello"

    def test_drops_tool_result_only_user_turns(self):
        transcript = format_transcript([
            _msg("user", "", [{"type": "tool_result", "content": "file written"}]),
            _msg("user", "next step"),
        ])
        assert "file written" not in transcript
        assert transcript == "[User]: next step"

    def test_assistant_text_blocks_only(self):
        blocks = [
            {"type": "text", "text": "Writing the file."},
            {"type": "tool_use", "name": "Write", "input": {"path": "x"}},
            {"type": "text", "text": "Done."},
        ]
        transcript = format_transcript([_msg("assistant", "ignored", blocks)])
        assert transcript == "[Assistant]: Writing the file.\nDone."

    def test_truncates_from_the_front(self):
        messages = [
            _msg("user", "first " + "a" * 100),
            _msg("user", "second " + "b" * 100),
            _msg("user", "third " + "c" * 100),
        ]
        transcript = format_transcript(messages, max_chars=250)

        assert transcript.startswith(COMPACTION_TRUNCATION_MARKER)
        assert "first" not in transcript
        assert transcript.endswith("c" * 100)
        assert len(transcript) <= 250

    def test_nothing_meaningful(self):
        assert format_transcript([_msg("assistant", "   ")]) == ""


class TestCompactor:
    def test_empty_conversation(self, conversations):
        conv = conversations.create_conversation("Chat")
        assert Compactor(conversations)(conv.id) == COMPACTION_EMPTY_CONVERSATION

    def test_no_meaningful_content(self, conversations):
        conv = conversations.create_conversation("Chat")
        conversations.add_message(conv.id, "user", "", content_blocks=[{"type": "tool_result"}])
        assert Compactor(conversations)(conv.id) == COMPACTION_NO_CONTENT

    def test_without_summarizer_returns_transcript(self, conversations):
        conv = conversations.create_conversation("Chat")
        conversations.add_message(conv.id, "user", "build a todo app")
        assert Compactor(conversations).compact(conv.id) == "[User]: build a todo app"

    def test_calls_summarizer(self, conversations):
        conv = conversations.create_conversation("Chat")
        conversations.add_message(conv.id, "user", "build a todo app")
        summarizer = CountingSummarizer()

        assert Compactor(conversations, summarizer)(conv.id) == "Summary #1"
        system_prompt, transcript = summarizer.calls[0]
        assert system_prompt == COMPACTION_SYSTEM_PROMPT
        assert "[User]: build a todo app" in transcript

    def test_empty_summary(self, conversations):
        conv = conversations.create_conversation("Chat")
        conversations.add_message(conv.id, "user", "hi")
        assert Compactor(conversations, lambda s, t: "")(conv.id) == COMPACTION_EMPTY_SUMMARY

    def test_summarizer_errors_propagate(self, conversations):
        conv = conversations.create_conversation("Chat")
        conversations.add_message(conv.id, "user", "hi")
        with pytest.raises(RuntimeError):
            Compactor(conversations, CountingSummarizer(fail=True))(conv.id)

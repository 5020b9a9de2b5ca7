"""Shared test fixtures and helpers for ideatree tests."""

import tempfile
from pathlib import Path

import pytest

from ideatree.config import Settings
from ideatree.database import Database
from ideatree.engine import IdeaEngine
from ideatree.models import Idea


class CountingSummarizer:
    """Fake summarization call that records every invocation."""

    def __init__(self, fail: bool = False):
        self.calls: list[tuple[str, str]] = []
        self.fail = fail

    def __call__(self, system_prompt: str, transcript: str) -> str:
        self.calls.append((system_prompt, transcript))
        if self.fail:
            raise RuntimeError("summarizer unavailable")
        return f"Summary #{len(self.calls)}"


# --- Fixtures ---


@pytest.fixture
def temp_home():
    """Provide a temporary ideatree home directory.

    Yields a Path to a temporary directory that's cleaned up after the test.
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def settings(temp_home):
    return Settings.for_home(temp_home)


@pytest.fixture
def summarizer():
    return CountingSummarizer()


@pytest.fixture
def engine(settings, summarizer):
    """Provide a fresh IdeaEngine with a counting summarizer."""
    eng = IdeaEngine(settings, summarize=summarizer)
    yield eng
    eng.close()


@pytest.fixture
def db():
    """Provide an in-memory database."""
    database = Database(":memory:")
    yield database
    database.close()


@pytest.fixture
def idea(engine) -> Idea:
    """Provide an idea with a scaffolded project, a conversation and a root branch.

    The main folder holds index.html and a node_modules/ directory; the
    conversation has one user and one assistant message.
    """
    created = engine.create_idea("Test Idea")
    conversation = engine.start_conversation(created.id)
    engine.conversations.add_message(conversation.id, "user", "Build a todo app")
    engine.conversations.add_message(conversation.id, "assistant", "Starting with index.html")
    engine.branch_manager.ensure_root_branch(created.id)

    main = Path(created.project_path) / "main"
    write_file(main, "index.html", "<h1>v0</h1>")
    write_file(main, "node_modules/lib/index.js", "module.exports = 1;")
    return engine.ideas.require_idea(created.id)


# --- Helper Functions (not fixtures) ---


def write_file(folder: Path, relative: str, content: str) -> Path:
    """Write a file under folder, creating parents."""
    path = Path(folder) / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def main_folder(idea: Idea) -> Path:
    return Path(idea.project_path) / "main"

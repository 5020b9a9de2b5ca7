"""Idea engine - wires the stores and managers around one database."""

from __future__ import annotations

import logging
from pathlib import Path

from .branches import BranchManager
from .compaction import Compactor, Summarizer
from .config import Settings, load_settings
from .conversations import ConversationStore
from .database import Database
from .errors import NotFoundError
from .graph import GraphStore
from .ideas import IdeaStore
from .models import Conversation, Idea, IdeaSnapshot, has_modifying_tools, sanitize_folder_name
from .snapshots import SnapshotManager

logger = logging.getLogger(__name__)


class IdeaEngine:
    """Main entry point for idea, branch and snapshot operations.

    Every collaborator is built here and handed to the components that
    need it; the components never look each other up.

    Thread-safety: single-process, single-threaded use. Operations run to
    completion and take no locks.
    """

    def __init__(self, settings: Settings | Path | str | None = None, summarize: Summarizer | None = None):
        """Open the database under the settings' home.

        Args:
            settings: Resolved Settings, or a home directory to resolve them from
            summarize: External summarization call used when forking branches
        """
        if not isinstance(settings, Settings):
            settings = load_settings(settings)
        self.settings = settings

        self.db = Database(settings.db_path)
        self.conversations = ConversationStore(self.db)
        self.ideas = IdeaStore(self.db)
        self.graph = GraphStore(self.db)
        self.compactor = Compactor(
            self.conversations,
            summarize=summarize,
            max_input_chars=settings.compaction_max_chars,
        )

        self._branch_manager: BranchManager | None = None
        self._snapshot_manager: SnapshotManager | None = None

    @property
    def branch_manager(self) -> BranchManager:
        """Lazy-load branch manager."""
        if self._branch_manager is None:
            self._branch_manager = BranchManager(
                self.db,
                self.ideas,
                self.graph,
                self.conversations,
                compact=self.compactor,
                root_folder=self.settings.default_folder,
            )
        return self._branch_manager

    @property
    def snapshot_manager(self) -> SnapshotManager:
        """Lazy-load snapshot manager."""
        if self._snapshot_manager is None:
            self._snapshot_manager = SnapshotManager(
                self.db,
                self.ideas,
                self.graph,
                self.branch_manager,
            )
        return self._snapshot_manager

    # ─────────────────────────────────────────────────────────────────────────
    # Ideas
    # ─────────────────────────────────────────────────────────────────────────

    def _unique_project_path(self, title: str) -> Path:
        base = sanitize_folder_name(title)
        candidate = self.settings.projects_dir / base
        counter = 2
        while candidate.exists():
            candidate = self.settings.projects_dir / f"{base}-{counter}"
            counter += 1
        return candidate

    def create_idea(self, title: str, scaffold: bool = True) -> Idea:
        """Create an idea, optionally with a project root and its main folder.

        With scaffold, <projects_dir>/<title>[-n]/<default_folder>/ is created
        and recorded as the idea's project path.
        """
        if not scaffold:
            return self.ideas.create_idea(title)

        project_path = self._unique_project_path(title)
        (project_path / self.settings.default_folder).mkdir(parents=True)
        logger.info(f"Scaffolded project folder {project_path}")
        return self.ideas.create_idea(title, project_path=project_path)

    def delete_idea(self, idea_id: str) -> None:
        """Delete an idea with its branches, conversations and project folder.

        Raises:
            NotFoundError: If the idea does not exist
        """
        idea = self.ideas.require_idea(idea_id)
        conversation_ids = {
            b.conversation_id for b in self.branch_manager.get_branches(idea_id) if b.conversation_id
        }
        if idea.conversation_id:
            conversation_ids.add(idea.conversation_id)

        self.ideas.delete_idea(idea_id)
        for conversation_id in conversation_ids:
            self.conversations.delete_conversation(conversation_id)

    def start_conversation(self, idea_id: str) -> Conversation:
        """Return the idea's conversation, creating and linking one if absent.

        A freshly created conversation is also attached to the active
        branch when that branch has none.

        Raises:
            NotFoundError: If the idea does not exist
        """
        idea = self.ideas.require_idea(idea_id)
        if idea.conversation_id:
            existing = self.conversations.get_conversation(idea.conversation_id)
            if existing is not None:
                return existing

        conversation = self.conversations.create_conversation(
            title=f"Synthesis: {idea.title}",
            model=self.settings.model,
        )
        self.ideas.link_conversation(idea_id, conversation.id)
        self.branch_manager.attach_conversation(idea_id, conversation.id)
        logger.info(f"Started conversation {conversation.id} for idea {idea_id}")
        return conversation

    def record_turn(self, idea_id: str, tools_used: list[str]) -> IdeaSnapshot | None:
        """Bookkeeping after an AI turn: make sure a root branch exists, then
        snapshot if any tool modified idea state.

        Returns:
            The new snapshot, or None when nothing was modified

        Raises:
            NotFoundError: If the idea does not exist
        """
        if self.ideas.get_idea(idea_id) is None:
            raise NotFoundError("Idea", idea_id)

        self.branch_manager.ensure_root_branch(idea_id)
        if not has_modifying_tools(tools_used):
            logger.debug(f"No modifying tools in turn for idea {idea_id}: {tools_used}")
            return None
        return self.snapshot_manager.create_snapshot(idea_id, tools_used)

    def close(self) -> None:
        self.db.close()

    def __enter__(self) -> "IdeaEngine":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

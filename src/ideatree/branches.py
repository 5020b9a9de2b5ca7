"""Conversation branch tree for ideas.

Each idea has a tree of branches stored as flat rows with a parent pointer.
Exactly one branch per idea is active: its text and graph live in the
idea and graph tables, every other branch keeps a frozen copy on its row.
Every branch owns a folder under the idea's project root; switching
branches never moves files, it only changes which folder is "current".
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Iterator

from .constants import (
    COMPACTION_FAILED_PLACEHOLDER,
    DEFAULT_BRANCH_FOLDER,
    ROOT_BRANCH_LABEL,
)
from .database import Database, from_db_time, to_db_time
from .errors import InvariantError, NotFoundError
from .materialize import copy_folder, remove_folder
from .models import ConversationBranch, GraphState, sanitize_folder_name, utc_now

if TYPE_CHECKING:
    from .conversations import ConversationStore
    from .graph import GraphStore
    from .ideas import IdeaStore

logger = logging.getLogger(__name__)

# compact(conversation_id) -> summary text
CompactFn = Callable[[str], str]

CONTINUATION_PROMPT = (
    "You are continuing work on an idea. Here is a summary of the previous "
    "conversation branch:\n\n{summary}\n\nContinue working from this context. "
    "The user may want to explore a different direction or continue building "
    "on what was done."
)


def _row_to_branch(row: sqlite3.Row) -> ConversationBranch:
    return ConversationBranch(
        id=row["id"],
        idea_id=row["idea_id"],
        parent_branch_id=row["parent_branch_id"],
        conversation_id=row["conversation_id"],
        label=row["label"],
        depth=row["depth"],
        folder_name=row["folder_name"],
        synthesis_content=row["synthesis_content"],
        graph=GraphState.model_validate_json(row["graph_snapshot"]),
        compaction_cache=row["compaction_cache"],
        compaction_message_count=row["compaction_message_count"],
        is_active=bool(row["is_active"]),
        created_at=from_db_time(row["created_at"]),
        updated_at=from_db_time(row["updated_at"]),
    )


@dataclass
class BranchTree:
    """An idea's branches rebuilt into a tree.

    Branches are held by id; children is an index from parent id (None
    for roots) to child ids in creation order.
    """

    branches: dict[str, ConversationBranch] = field(default_factory=dict)
    children: dict[str | None, list[str]] = field(default_factory=dict)

    @classmethod
    def from_branches(cls, branches: list[ConversationBranch]) -> "BranchTree":
        tree = cls()
        for branch in branches:
            tree.branches[branch.id] = branch
            tree.children.setdefault(branch.parent_branch_id, []).append(branch.id)
        return tree

    @property
    def roots(self) -> list[ConversationBranch]:
        return [self.branches[i] for i in self.children.get(None, [])]

    @property
    def active(self) -> ConversationBranch | None:
        return next((b for b in self.branches.values() if b.is_active), None)

    def children_of(self, branch_id: str) -> list[ConversationBranch]:
        return [self.branches[i] for i in self.children.get(branch_id, [])]

    def path_to(self, branch_id: str) -> list[ConversationBranch]:
        """Branches from the root down to branch_id (inclusive).

        Raises:
            KeyError: If branch_id is not in the tree
        """
        path = []
        current: str | None = branch_id
        seen: set[str] = set()
        while current is not None and current not in seen:
            seen.add(current)
            branch = self.branches[current]
            path.append(branch)
            current = branch.parent_branch_id
            if current is not None and current not in self.branches:
                break
        return list(reversed(path))

    def descendants(self, branch_id: str) -> list[ConversationBranch]:
        """All branches below branch_id, depth-first, excluding itself."""
        result = []
        for child in self.children_of(branch_id):
            result.append(child)
            result.extend(self.descendants(child.id))
        return result

    def walk(self) -> Iterator[ConversationBranch]:
        """Depth-first traversal from every root."""
        for root in self.roots:
            yield root
            yield from self.descendants(root.id)

    def __len__(self) -> int:
        return len(self.branches)


class BranchManager:
    """Manages the branch tree of each idea and the live/frozen state swap.

    Collaborating stores are passed in; nothing here reaches for globals.
    """

    def __init__(
        self,
        db: Database,
        ideas: "IdeaStore",
        graph: "GraphStore",
        conversations: "ConversationStore",
        compact: CompactFn | None = None,
        root_folder: str = DEFAULT_BRANCH_FOLDER,
    ):
        """Initialize the branch manager.

        Args:
            db: Shared database
            ideas: Idea store (live text, conversation link, project root)
            graph: Graph store (live nodes and edges)
            conversations: Conversation store
            compact: Summarizes a conversation for a new child branch. When
                None, child branches start without a summary.
            root_folder: Folder name of each idea's root branch
        """
        self.db = db
        self._ideas = ideas
        self._graph = graph
        self._conversations = conversations
        self._compact = compact
        self.root_folder = root_folder

    # ─────────────────────────────────────────────────────────────────────────
    # Queries
    # ─────────────────────────────────────────────────────────────────────────

    def get_branch(self, branch_id: str) -> ConversationBranch | None:
        row = self.db.fetchone("SELECT * FROM conversation_branches WHERE id = ?", (branch_id,))
        return _row_to_branch(row) if row else None

    def require_branch(self, branch_id: str) -> ConversationBranch:
        branch = self.get_branch(branch_id)
        if branch is None:
            raise NotFoundError("Branch", branch_id)
        return branch

    def get_branches(self, idea_id: str) -> list[ConversationBranch]:
        """All branches of an idea, flat, in creation order."""
        rows = self.db.fetchall(
            "SELECT * FROM conversation_branches WHERE idea_id = ? ORDER BY created_at, id",
            (idea_id,),
        )
        return [_row_to_branch(row) for row in rows]

    def get_active_branch(self, idea_id: str) -> ConversationBranch | None:
        row = self.db.fetchone(
            "SELECT * FROM conversation_branches WHERE idea_id = ? AND is_active = 1",
            (idea_id,),
        )
        return _row_to_branch(row) if row else None

    def get_children(self, branch_id: str) -> list[ConversationBranch]:
        rows = self.db.fetchall(
            "SELECT * FROM conversation_branches WHERE parent_branch_id = ? ORDER BY created_at, id",
            (branch_id,),
        )
        return [_row_to_branch(row) for row in rows]

    def get_tree(self, idea_id: str) -> BranchTree:
        return BranchTree.from_branches(self.get_branches(idea_id))

    def _count_children(self, branch_id: str) -> int:
        row = self.db.fetchone(
            "SELECT COUNT(*) FROM conversation_branches WHERE parent_branch_id = ?", (branch_id,)
        )
        return row[0]

    # ─────────────────────────────────────────────────────────────────────────
    # Folder paths
    # ─────────────────────────────────────────────────────────────────────────

    def get_branch_folder_path(self, branch_id: str) -> Path | None:
        """Disk folder of a branch, or None if the idea has no project root."""
        branch = self.get_branch(branch_id)
        if branch is None:
            return None
        idea = self._ideas.get_idea(branch.idea_id)
        if idea is None or not idea.project_path:
            return None
        return Path(idea.project_path) / branch.folder_name

    def get_active_branch_folder_path(self, idea_id: str) -> Path | None:
        """Folder of the active branch.

        Falls back to <project_path>/<root_folder> when the idea has no
        branch yet.
        Returns None when the idea has no project root.
        """
        idea = self._ideas.get_idea(idea_id)
        if idea is None or not idea.project_path:
            return None

        active = self.get_active_branch(idea_id)
        if active is None:
            return Path(idea.project_path) / self.root_folder
        return Path(idea.project_path) / active.folder_name

    def _unique_folder_name(self, idea_id: str, project_path: Path, label: str) -> str:
        base = sanitize_folder_name(label)
        taken = {b.folder_name for b in self.get_branches(idea_id)}
        candidate = base
        counter = 2
        while candidate in taken or (project_path / candidate).exists():
            candidate = f"{base}-{counter}"
            counter += 1
        return candidate

    # ─────────────────────────────────────────────────────────────────────────
    # Root
    # ─────────────────────────────────────────────────────────────────────────

    def ensure_root_branch(self, idea_id: str) -> ConversationBranch:
        """Return the idea's root branch, creating it on first use.

        The new root is active, uses the root folder and is linked to the
        idea's current conversation.

        Raises:
            NotFoundError: If the idea does not exist
        """
        row = self.db.fetchone(
            "SELECT * FROM conversation_branches WHERE idea_id = ? AND parent_branch_id IS NULL",
            (idea_id,),
        )
        if row:
            return _row_to_branch(row)

        idea = self._ideas.require_idea(idea_id)
        root = ConversationBranch(
            idea_id=idea_id,
            conversation_id=idea.conversation_id,
            label=ROOT_BRANCH_LABEL,
            depth=0,
            folder_name=self.root_folder,
            is_active=True,
        )
        self._insert_branch(root)
        logger.info(f"Created root branch {root.id} for idea {idea_id}")
        return root

    def _insert_branch(self, branch: ConversationBranch) -> None:
        self.db.execute(
            """
            INSERT INTO conversation_branches (id, idea_id, parent_branch_id,
                conversation_id, label, depth, folder_name, synthesis_content,
                graph_snapshot, compaction_cache, compaction_message_count,
                is_active, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                branch.id,
                branch.idea_id,
                branch.parent_branch_id,
                branch.conversation_id,
                branch.label,
                branch.depth,
                branch.folder_name,
                branch.synthesis_content,
                branch.graph.model_dump_json(),
                branch.compaction_cache,
                branch.compaction_message_count,
                int(branch.is_active),
                to_db_time(branch.created_at),
                to_db_time(branch.updated_at),
            ),
        )

    def attach_conversation(self, idea_id: str, conversation_id: str) -> ConversationBranch | None:
        """Link the active branch to a conversation if it has none yet."""
        active = self.get_active_branch(idea_id)
        if active is None or active.conversation_id:
            return active
        self.db.execute(
            "UPDATE conversation_branches SET conversation_id = ?, updated_at = ? WHERE id = ?",
            (conversation_id, to_db_time(utc_now()), active.id),
        )
        return self.require_branch(active.id)

    def _set_active(self, branch_id: str, active: bool) -> None:
        self.db.execute(
            "UPDATE conversation_branches SET is_active = ?, updated_at = ? WHERE id = ?",
            (int(active), to_db_time(utc_now()), branch_id),
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Live state <-> branch row
    # ─────────────────────────────────────────────────────────────────────────

    def save_live_state_to_branch(self, branch_id: str) -> None:
        """Freeze the idea's live text and graph onto a branch row.

        Files are not copied: they already live in the branch's folder.

        Raises:
            NotFoundError: If the branch or its idea does not exist
        """
        branch = self.require_branch(branch_id)
        idea = self._ideas.require_idea(branch.idea_id)
        state = self._graph.get_full_state(branch.idea_id)

        self.db.execute(
            """
            UPDATE conversation_branches
            SET synthesis_content = ?, graph_snapshot = ?, updated_at = ?
            WHERE id = ?
            """,
            (idea.synthesis_content, state.model_dump_json(), to_db_time(utc_now()), branch_id),
        )
        logger.info(
            f"Saved live state to branch {branch_id}: "
            f"{len(state.nodes)} nodes, {len(state.edges)} edges"
        )

    def restore_branch_state(self, branch_id: str) -> None:
        """Load a branch's frozen text and graph into the live tables.

        Also relinks the idea to the branch's conversation. Node and edge
        identifiers are preserved.

        Raises:
            NotFoundError: If the branch does not exist
        """
        branch = self.require_branch(branch_id)
        self._ideas.replace_synthesis(
            branch.idea_id, branch.synthesis_content, conversation_id=branch.conversation_id
        )
        self._graph.replace_state(branch.idea_id, branch.graph)
        logger.info(
            f"Restored branch {branch_id} into idea {branch.idea_id}: "
            f"{len(branch.graph.nodes)} nodes, {len(branch.graph.edges)} edges"
        )

    def switch_to_branch(self, branch_id: str) -> ConversationBranch:
        """Make a branch the active one.

        The outgoing branch is fully saved and deactivated before the
        incoming one is restored. Switching to the active branch is a no-op.

        Raises:
            NotFoundError: If the branch does not exist
        """
        target = self.require_branch(branch_id)
        current = self.get_active_branch(target.idea_id)
        if current is not None and current.id == branch_id:
            return target

        if current is not None:
            self.save_live_state_to_branch(current.id)
            self._set_active(current.id, False)

        self.restore_branch_state(branch_id)
        self._set_active(branch_id, True)

        logger.info(
            f"Switched idea {target.idea_id} from branch "
            f"{current.id if current else None} to {branch_id} ({target.folder_name})"
        )
        return self.require_branch(branch_id)

    # ─────────────────────────────────────────────────────────────────────────
    # Create / delete / rename
    # ─────────────────────────────────────────────────────────────────────────

    def _summary_for(self, parent: ConversationBranch) -> str:
        """Compacted summary of the parent's conversation, cached on the parent.

        The cache is valid while the conversation's message count is
        unchanged. A failed compaction yields a placeholder that is not
        cached.
        """
        if not parent.conversation_id:
            return ""

        count = self._conversations.get_message_count(parent.conversation_id)
        if parent.compaction_cache and parent.compaction_message_count == count:
            logger.info(f"Using cached compaction for branch {parent.id} ({count} messages)")
            return parent.compaction_cache

        if self._compact is None:
            return ""

        try:
            summary = self._compact(parent.conversation_id)
        except Exception as e:
            logger.error(f"Compaction failed for branch {parent.id}, proceeding without summary: {e}")
            return COMPACTION_FAILED_PLACEHOLDER

        self.db.execute(
            """
            UPDATE conversation_branches
            SET compaction_cache = ?, compaction_message_count = ?, updated_at = ?
            WHERE id = ?
            """,
            (summary, count, to_db_time(utc_now()), parent.id),
        )
        logger.info(f"Compaction completed and cached for branch {parent.id} ({count} messages)")
        return summary

    def create_child_branch(self, parent_id: str, label: str | None = None) -> ConversationBranch:
        """Fork a branch: copy its folder, seed a new conversation, switch to it.

        Args:
            parent_id: Branch to fork from
            label: Display label (default "Branch <n>")

        Returns:
            The new child branch, now active

        Raises:
            NotFoundError: If the parent branch, its idea or its folder does not exist
            InvariantError: If the idea has no project root
        """
        parent = self.require_branch(parent_id)
        idea = self._ideas.require_idea(parent.idea_id)
        if not idea.project_path:
            raise InvariantError(f"Idea '{idea.id}' has no project path")
        project_path = Path(idea.project_path)
        parent_folder = project_path / parent.folder_name
        if not parent_folder.is_dir():
            raise NotFoundError("Branch folder", str(parent_folder))

        current = self.get_active_branch(idea.id)
        if current is not None:
            self.save_live_state_to_branch(current.id)

        child_label = label or f"Branch {self._count_children(parent_id) + 1}"
        folder_name = self._unique_folder_name(idea.id, project_path, child_label)
        child_folder = project_path / folder_name

        logger.info(f"Copying branch folder {parent_folder} -> {child_folder}")
        copy_folder(parent_folder, child_folder)

        # A frozen parent row is current only when the parent is inactive
        if current is not None and current.id == parent_id:
            synthesis = idea.synthesis_content
            graph_state = self._graph.get_full_state(idea.id)
        else:
            synthesis = parent.synthesis_content
            graph_state = parent.graph

        summary = self._summary_for(parent)
        conversation = self._conversations.create_conversation(
            title=child_label,
            system_prompt=CONTINUATION_PROMPT.format(summary=summary) if summary else None,
        )

        child = ConversationBranch(
            idea_id=idea.id,
            parent_branch_id=parent_id,
            conversation_id=conversation.id,
            label=child_label,
            depth=parent.depth + 1,
            folder_name=folder_name,
            synthesis_content=synthesis,
            graph=graph_state,
            is_active=False,
        )
        self._insert_branch(child)
        logger.info(
            f"Created child branch {child.id} ({child_label!r}, folder {folder_name}) "
            f"under {parent_id} at depth {child.depth}"
        )

        return self.switch_to_branch(child.id)

    def delete_branch(self, branch_id: str) -> None:
        """Delete a branch, its descendants, their folders and conversations.

        If the branch or one of its descendants is active, the branch's
        parent becomes active first.

        Raises:
            NotFoundError: If the branch does not exist
            InvariantError: If the branch is the root
        """
        branch = self.require_branch(branch_id)
        if branch.is_root:
            raise InvariantError("Cannot delete the root branch")

        active = self.get_active_branch(branch.idea_id)
        if active is not None:
            doomed = {branch_id} | {
                b.id for b in self.get_tree(branch.idea_id).descendants(branch_id)
            }
            if active.id in doomed:
                self.switch_to_branch(branch.parent_branch_id)

        for child in self.get_children(branch_id):
            self.delete_branch(child.id)

        folder = self.get_branch_folder_path(branch_id)
        if folder is not None:
            try:
                remove_folder(folder)
                logger.info(f"Deleted branch folder {folder}")
            except OSError as e:
                logger.error(f"Failed to delete branch folder {folder}: {e}")

        if branch.conversation_id:
            self._conversations.delete_conversation(branch.conversation_id)

        self.db.execute("DELETE FROM conversation_branches WHERE id = ?", (branch_id,))
        logger.info(f"Deleted branch {branch_id} of idea {branch.idea_id}")

    def rename_branch(self, branch_id: str, label: str) -> ConversationBranch:
        """Change a branch's display label. The folder name never changes.

        Raises:
            NotFoundError: If the branch does not exist
        """
        self.require_branch(branch_id)
        self.db.execute(
            "UPDATE conversation_branches SET label = ?, updated_at = ? WHERE id = ?",
            (label, to_db_time(utc_now()), branch_id),
        )
        return self.require_branch(branch_id)

    # ─────────────────────────────────────────────────────────────────────────
    # Reconciliation
    # ─────────────────────────────────────────────────────────────────────────

    def check_consistency(self, idea_id: str) -> list[str]:
        """Compare branch rows against each other and against disk.

        Reports problems left by an interrupted operation; repairs nothing.

        Returns:
            Human-readable problems, empty when consistent

        Raises:
            NotFoundError: If the idea does not exist
        """
        idea = self._ideas.require_idea(idea_id)
        tree = self.get_tree(idea_id)
        problems: list[str] = []

        if not tree.branches:
            return problems

        active = [b for b in tree.branches.values() if b.is_active]
        if len(active) != 1:
            problems.append(f"Expected exactly one active branch, found {len(active)}")

        roots = tree.roots
        if len(roots) != 1:
            problems.append(f"Expected exactly one root branch, found {len(roots)}")

        by_folder: dict[str, list[str]] = {}
        for branch in tree.branches.values():
            by_folder.setdefault(branch.folder_name, []).append(branch.id)
            if branch.parent_branch_id is None:
                if branch.depth != 0:
                    problems.append(f"Root branch {branch.id} has depth {branch.depth}")
                continue
            parent = tree.branches.get(branch.parent_branch_id)
            if parent is None:
                problems.append(
                    f"Branch {branch.id} points to missing parent {branch.parent_branch_id}"
                )
            elif branch.depth != parent.depth + 1:
                problems.append(
                    f"Branch {branch.id} has depth {branch.depth}, expected {parent.depth + 1}"
                )

        for folder_name, ids in by_folder.items():
            if len(ids) > 1:
                problems.append(f"Folder '{folder_name}' is shared by branches {sorted(ids)}")

        if idea.project_path:
            project_path = Path(idea.project_path)
            for folder_name in sorted(by_folder):
                if not (project_path / folder_name).is_dir():
                    problems.append(f"Branch folder '{folder_name}' is missing on disk")
            if project_path.is_dir():
                for entry in sorted(project_path.iterdir()):
                    if entry.is_dir() and entry.name not in by_folder:
                        problems.append(f"Folder '{entry.name}' has no branch")

        return problems

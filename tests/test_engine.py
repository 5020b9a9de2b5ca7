"""Tests for the IdeaEngine facade."""

from pathlib import Path

import pytest

from conftest import write_file
from ideatree.config import Settings
from ideatree.engine import IdeaEngine
from ideatree.errors import NotFoundError


class TestCreateIdea:
    def test_scaffolds_main_folder(self, engine, settings):
        created = engine.create_idea("My Cool App!")
        assert Path(created.project_path) == settings.projects_dir / "my-cool-app"
        assert (Path(created.project_path) / "main").is_dir()

    def test_unique_project_folders(self, engine):
        first = engine.create_idea("Same Title")
        second = engine.create_idea("Same Title")
        assert Path(first.project_path).name == "same-title"
        assert Path(second.project_path).name == "same-title-2"

    def test_without_scaffold(self, engine):
        assert engine.create_idea("Bare", scaffold=False).project_path is None


class TestConversation:
    def test_start_is_idempotent(self, engine):
        created = engine.create_idea("Idea")
        first = engine.start_conversation(created.id)
        second = engine.start_conversation(created.id)

        assert first.id == second.id
        assert first.title == "Synthesis: Idea"
        assert engine.ideas.require_idea(created.id).conversation_id == first.id

    def test_attaches_to_root_created_earlier(self, engine):
        created = engine.create_idea("Idea")
        root = engine.branch_manager.ensure_root_branch(created.id)
        assert root.conversation_id is None

        conversation = engine.start_conversation(created.id)
        assert engine.branch_manager.require_branch(root.id).conversation_id == conversation.id

    def test_missing_idea(self, engine):
        with pytest.raises(NotFoundError):
            engine.start_conversation("missing")


class TestRecordTurn:
    def test_read_only_turn(self, engine):
        created = engine.create_idea("Idea")
        assert engine.record_turn(created.id, ["Read", "Grep"]) is None
        assert engine.branch_manager.get_active_branch(created.id).is_root
        assert engine.snapshot_manager.get_snapshots(created.id) == []

    def test_modifying_turn_snapshots(self, engine):
        created = engine.create_idea("Idea")
        engine.ideas.update_synthesis(created.id, "text")

        first = engine.record_turn(created.id, ["update_synthesis"])
        second = engine.record_turn(created.id, ["Read", "Write"])

        assert first.version_number == 1
        assert second.version_number == 2
        assert second.tools_used == ["Read", "Write"]

    def test_missing_idea(self, engine):
        with pytest.raises(NotFoundError):
            engine.record_turn("missing", ["Write"])


class TestDeleteIdea:
    def test_removes_everything(self, engine, idea):
        root = engine.branch_manager.ensure_root_branch(idea.id)
        alt = engine.branch_manager.create_child_branch(root.id, "alt")
        engine.record_turn(idea.id, ["Write"])

        engine.delete_idea(idea.id)

        assert engine.ideas.get_idea(idea.id) is None
        assert not Path(idea.project_path).exists()
        assert engine.branch_manager.get_branches(idea.id) == []
        assert engine.snapshot_manager.get_snapshots(idea.id) == []
        assert engine.conversations.get_conversation(alt.conversation_id) is None
        assert engine.conversations.get_conversation(root.conversation_id) is None

    def test_missing_idea(self, engine):
        with pytest.raises(NotFoundError):
            engine.delete_idea("missing")


class TestEngineSetup:
    def test_from_home_path(self, temp_home, monkeypatch):
        monkeypatch.delenv("IDEATREE_PROJECTS", raising=False)
        with IdeaEngine(temp_home) as eng:
            assert eng.settings.home == temp_home
            assert eng.settings.db_path.exists()

    def test_data_survives_reopen(self, settings):
        with IdeaEngine(settings) as eng:
            created = eng.create_idea("Persistent")
        with IdeaEngine(settings) as eng:
            assert eng.ideas.require_idea(created.id).title == "Persistent"

    def test_managers_are_shared(self, engine):
        assert engine.branch_manager is engine.branch_manager
        assert engine.snapshot_manager is engine.snapshot_manager

    def test_compaction_budget_from_settings(self, temp_home):
        settings = Settings.for_home(temp_home, compaction_max_chars=1234)
        with IdeaEngine(settings) as eng:
            assert eng.compactor.max_input_chars == 1234


class TestCustomRootFolder:
    @pytest.fixture
    def app_engine(self, temp_home):
        with IdeaEngine(Settings.for_home(temp_home, default_folder="app")) as eng:
            yield eng

    def test_root_branch_uses_scaffolded_folder(self, app_engine):
        created = app_engine.create_idea("X")
        project = Path(created.project_path)
        write_file(project / "app", "index.html", "<h1>app</h1>")

        assert app_engine.branch_manager.get_active_branch_folder_path(created.id) == project / "app"
        root = app_engine.branch_manager.ensure_root_branch(created.id)

        assert root.folder_name == "app"
        assert sorted(p.name for p in project.iterdir()) == ["app"]
        assert app_engine.branch_manager.check_consistency(created.id) == []

        snap = app_engine.snapshot_manager.create_snapshot(created.id, ["Write"])
        assert [f.file_path for f in snap.files] == ["index.html"]
        assert (project / "app" / "versions" / "v1" / "index.html").exists()

    def test_child_branch_forks_from_root_folder(self, app_engine):
        created = app_engine.create_idea("X")
        project = Path(created.project_path)
        write_file(project / "app", "index.html", "<h1>app</h1>")
        root = app_engine.branch_manager.ensure_root_branch(created.id)

        child = app_engine.branch_manager.create_child_branch(root.id, "alt")

        assert (project / child.folder_name / "index.html").read_text() == "<h1>app</h1>"
        assert app_engine.branch_manager.check_consistency(created.id) == []

"""Tests for snapshot creation, listing and restore."""

import shutil

import pytest

from conftest import main_folder, write_file
from ideatree.errors import NotFoundError


def _snap(engine, idea_id, tools=("Write",)):
    return engine.snapshot_manager.create_snapshot(idea_id, list(tools))


class TestCreateSnapshot:
    def test_versions_are_sequential_per_idea(self, engine, idea):
        other = engine.create_idea("Other")

        assert [_snap(engine, idea.id).version_number for _ in range(3)] == [1, 2, 3]
        assert _snap(engine, other.id).version_number == 1
        assert engine.snapshot_manager.get_latest_version(idea.id) == 3

    def test_versions_continue_across_branches(self, engine, idea):
        branches = engine.branch_manager
        root = branches.ensure_root_branch(idea.id)
        project = main_folder(idea).parent

        _snap(engine, idea.id)
        alt = branches.create_child_branch(root.id, "alt")
        on_alt = _snap(engine, idea.id)
        branches.switch_to_branch(root.id)
        on_root = _snap(engine, idea.id)

        versions = [s.version_number for s in engine.snapshot_manager.get_snapshots(idea.id)]
        assert versions == [3, 2, 1]
        assert on_alt.branch_id == alt.id
        assert on_root.branch_id == root.id

        assert (project / "main" / "versions" / "v1").is_dir()
        assert (project / "alt" / "versions" / "v2").is_dir()
        assert not (project / "main" / "versions" / "v2").exists()
        assert (project / "main" / "versions" / "v3").is_dir()
        assert not (project / "alt" / "versions" / "v3").exists()

    def test_latest_version_without_snapshots(self, engine, idea):
        assert engine.snapshot_manager.get_latest_version(idea.id) == 0

    def test_captures_text_graph_and_files(self, engine, idea):
        engine.ideas.update_synthesis(idea.id, "# Todo app")
        a = engine.graph.create_node(idea.id, "Stripe", "stripe")
        b = engine.graph.create_node(idea.id, "Postgres", "supabase")
        engine.graph.create_edge(idea.id, a.id, b.id)

        snap = _snap(engine, idea.id, ["Write", "create_dependency_node"])

        assert snap.synthesis_content == "# Todo app"
        assert {n.id for n in snap.nodes} == {a.id, b.id}
        assert len(snap.edges) == 1
        assert [f.file_path for f in snap.files] == ["index.html"]
        assert snap.tools_used == ["Write", "create_dependency_node"]
        assert snap.branch_id == engine.branch_manager.get_active_branch(idea.id).id

    def test_writes_version_folder(self, engine, idea):
        _snap(engine, idea.id)
        copy = main_folder(idea) / "versions" / "v1" / "index.html"
        assert copy.read_text() == "<h1>v0</h1>"

    def test_version_folders_are_not_snapshotted(self, engine, idea):
        _snap(engine, idea.id)
        second = _snap(engine, idea.id)
        assert [f.file_path for f in second.files] == ["index.html"]

    def test_idea_without_project(self, engine):
        bare = engine.create_idea("No project", scaffold=False)
        snap = _snap(engine, bare.id)
        assert snap.files == []
        assert snap.version_number == 1

    def test_missing_idea(self, engine):
        with pytest.raises(NotFoundError):
            _snap(engine, "missing")

    def test_persisted_and_listed_newest_first(self, engine, idea):
        first = _snap(engine, idea.id)
        second = _snap(engine, idea.id)
        manager = engine.snapshot_manager

        assert [s.id for s in manager.get_snapshots(idea.id)] == [second.id, first.id]
        assert manager.get_snapshot(first.id).files == first.files
        assert manager.get_snapshot_by_version(idea.id, 2).id == second.id
        assert manager.get_snapshot_by_version(idea.id, 9) is None

    def test_should_snapshot(self, engine):
        assert engine.snapshot_manager.should_snapshot(["Edit"])
        assert not engine.snapshot_manager.should_snapshot(["Read"])


class TestRestoreSnapshot:
    def _make_v1_v2(self, engine, idea):
        """v1: text A, node X, index.html=v1. v2: text B, nodes X+Y, extra file."""
        folder = main_folder(idea)
        engine.ideas.update_synthesis(idea.id, "A")
        x = engine.graph.create_node(idea.id, "X", "x")
        write_file(folder, "index.html", "v1")
        v1 = _snap(engine, idea.id)

        engine.ideas.update_synthesis(idea.id, "B")
        y = engine.graph.create_node(idea.id, "Y", "y")
        engine.graph.create_edge(idea.id, x.id, y.id)
        write_file(folder, "index.html", "v2")
        write_file(folder, "src/extra.js", "extra")
        v2 = _snap(engine, idea.id)
        return v1, v2, x, y

    def test_restore_v1_then_v2(self, engine, idea):
        v1, v2, x, y = self._make_v1_v2(engine, idea)
        folder = main_folder(idea)
        manager = engine.snapshot_manager

        result = manager.restore_snapshot(v1.id)
        assert result.complete
        assert result.files_source == "disk"
        assert engine.ideas.require_idea(idea.id).synthesis_content == "A"
        assert engine.graph.get_full_state(idea.id).node_ids() == {x.id}
        assert (folder / "index.html").read_text() == "v1"
        assert not (folder / "src").exists()

        manager.restore_snapshot(v2.id)
        state = engine.graph.get_full_state(idea.id)
        assert engine.ideas.require_idea(idea.id).synthesis_content == "B"
        assert state.node_ids() == {x.id, y.id}
        assert state.signature() == v2.graph.signature()
        assert (folder / "src" / "extra.js").read_text() == "extra"

    def test_restore_keeps_dependencies_and_versions(self, engine, idea):
        v1, _, _, _ = self._make_v1_v2(engine, idea)
        engine.snapshot_manager.restore_snapshot(v1.id)

        folder = main_folder(idea)
        assert (folder / "node_modules" / "lib" / "index.js").exists()
        assert (folder / "versions" / "v2").is_dir()

    def test_falls_back_to_stored_files(self, engine, idea):
        v1, _, _, _ = self._make_v1_v2(engine, idea)
        shutil.rmtree(main_folder(idea) / "versions" / "v1")

        result = engine.snapshot_manager.restore_snapshot(v1.id)

        assert result.files_source == "database"
        assert result.files_count == 1
        assert (main_folder(idea) / "index.html").read_text() == "v1"
        assert not (main_folder(idea) / "src").exists()

    def test_restore_does_not_bump_synthesis_version(self, engine, idea):
        v1, _, _, _ = self._make_v1_v2(engine, idea)
        before = engine.ideas.require_idea(idea.id).synthesis_version

        engine.snapshot_manager.restore_snapshot(v1.id)
        assert engine.ideas.require_idea(idea.id).synthesis_version == before

    def test_missing_snapshot_changes_nothing(self, engine, idea):
        engine.ideas.update_synthesis(idea.id, "live")
        with pytest.raises(NotFoundError):
            engine.snapshot_manager.restore_snapshot("missing")
        assert engine.ideas.require_idea(idea.id).synthesis_content == "live"

    def test_restore_without_files_leaves_folder(self, engine):
        bare = engine.create_idea("Bare")
        empty = _snap(engine, bare.id)
        write_file(engine.branch_manager.get_active_branch_folder_path(bare.id), "keep.txt", "x")

        result = engine.snapshot_manager.restore_snapshot(empty.id)

        assert result.files_source == "none"
        assert result.complete
        assert (engine.branch_manager.get_active_branch_folder_path(bare.id) / "keep.txt").exists()

    def test_restore_into_active_child_branch(self, engine, idea):
        v1, _, _, _ = self._make_v1_v2(engine, idea)
        child = engine.branch_manager.create_child_branch(
            engine.branch_manager.ensure_root_branch(idea.id).id, "alt"
        )
        child_folder = main_folder(idea).parent / child.folder_name

        result = engine.snapshot_manager.restore_snapshot(v1.id)

        # versions/ was copied with the folder, so the child has its own v1
        assert result.files_source == "disk"
        assert (child_folder / "index.html").read_text() == "v1"
        assert (main_folder(idea) / "index.html").read_text() == "v2"

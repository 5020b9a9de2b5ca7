"""Tests for settings resolution."""

from pathlib import Path

import pytest

from ideatree.config import Settings, load_settings, read_frontmatter


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("IDEATREE_HOME", raising=False)
    monkeypatch.delenv("IDEATREE_PROJECTS", raising=False)


class TestDefaults:
    def test_paths_under_home(self, temp_home):
        settings = load_settings(temp_home)
        assert settings.home == temp_home
        assert settings.db_path == temp_home / "ideatree.db"
        assert settings.projects_dir == temp_home / "projects"
        assert settings.log_file == temp_home / "ideatree.log"
        assert settings.default_folder == "main"
        assert settings.compaction_max_chars == 680_000

    def test_home_from_env(self, temp_home, monkeypatch):
        monkeypatch.setenv("IDEATREE_HOME", str(temp_home))
        assert load_settings().home == temp_home

    def test_projects_from_env(self, temp_home, monkeypatch):
        monkeypatch.setenv("IDEATREE_PROJECTS", str(temp_home / "elsewhere"))
        assert load_settings(temp_home).projects_dir == temp_home / "elsewhere"


class TestSettingsFile:
    def test_frontmatter_overrides(self, temp_home):
        (temp_home / "settings.md").write_text(
            "---\ncompaction_max_chars: 5000\nmodel: claude-haiku\nunknown_key: 1\n---\n# Notes\n"
        )
        settings = load_settings(temp_home)
        assert settings.compaction_max_chars == 5000
        assert settings.model == "claude-haiku"

    def test_env_beats_file(self, temp_home, monkeypatch):
        (temp_home / "settings.md").write_text("---\nprojects_dir: /from/file\n---\n")
        monkeypatch.setenv("IDEATREE_PROJECTS", str(temp_home / "from-env"))
        assert load_settings(temp_home).projects_dir == temp_home / "from-env"

    def test_malformed_yaml_falls_back(self, temp_home):
        (temp_home / "settings.md").write_text("---\nmodel: [unclosed\n---\n")
        assert load_settings(temp_home) == Settings.for_home(temp_home)

    def test_invalid_values_fall_back(self, temp_home):
        (temp_home / "settings.md").write_text("---\ncompaction_max_chars: lots\n---\n")
        assert load_settings(temp_home).compaction_max_chars == 680_000

    def test_no_frontmatter(self, temp_home):
        path = temp_home / "settings.md"
        path.write_text("just notes\n")
        assert read_frontmatter(path) == {}

    def test_missing_file(self, temp_home):
        assert read_frontmatter(temp_home / "nope.md") == {}

    def test_explicit_overrides_win(self, temp_home):
        (temp_home / "settings.md").write_text("---\nmodel: from-file\n---\n")
        assert load_settings(temp_home, model="explicit").model == "explicit"

    def test_projects_dir_expands_user(self, temp_home):
        settings = Settings.for_home(temp_home, projects_dir="~/ideas")
        assert settings.projects_dir == Path.home() / "ideas"

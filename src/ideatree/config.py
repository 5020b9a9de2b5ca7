"""Runtime settings for ideatree.

Resolution order (later wins):
1. Built-in defaults (home at ~/.ideatree)
2. YAML frontmatter of <home>/settings.md
3. Environment variables (IDEATREE_HOME, IDEATREE_PROJECTS)
4. Explicit keyword arguments to load_settings()

settings.md is a markdown file whose frontmatter holds the overrides:

    ---
    projects_dir: ~/code/ideas
    compaction_max_chars: 200000
    ---
    Free-form notes about this install.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ValidationError

from .constants import COMPACTION_MAX_INPUT_CHARS, DEFAULT_BRANCH_FOLDER, DEFAULT_MODEL

logger = logging.getLogger(__name__)

HOME_ENV = "IDEATREE_HOME"
PROJECTS_ENV = "IDEATREE_PROJECTS"
SETTINGS_FILE = "settings.md"

_FRONTMATTER_PATTERN = re.compile(r"^---\s*\n(.*?)\n---\s*\n?", re.DOTALL)

# Keys settings.md may override; home itself is fixed by then
_FILE_KEYS = ("projects_dir", "log_file", "default_folder", "compaction_max_chars", "model")


class Settings(BaseModel):
    """Where ideatree keeps its data and how it behaves."""

    home: Path
    projects_dir: Path
    log_file: Path
    default_folder: str = DEFAULT_BRANCH_FOLDER
    compaction_max_chars: int = COMPACTION_MAX_INPUT_CHARS
    model: str = DEFAULT_MODEL

    @property
    def db_path(self) -> Path:
        return self.home / "ideatree.db"

    @classmethod
    def for_home(cls, home: Path | str, **overrides: Any) -> "Settings":
        """Defaults rooted at home, with overrides applied."""
        home = Path(home).expanduser()
        values: dict[str, Any] = {
            "home": home,
            "projects_dir": home / "projects",
            "log_file": home / "ideatree.log",
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        for key in ("projects_dir", "log_file"):
            values[key] = Path(values[key]).expanduser()
        return cls(**values)


def read_frontmatter(path: Path) -> dict[str, Any]:
    """Parse the YAML frontmatter of a markdown file.

    A missing file, a file without frontmatter, or malformed YAML all
    yield an empty dict; the last two with a warning.
    """
    if not path.exists():
        return {}

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        logger.warning(f"Cannot read {path}: {e}")
        return {}

    match = _FRONTMATTER_PATTERN.match(content)
    if not match:
        logger.warning(f"No YAML frontmatter in {path}, using defaults")
        return {}

    try:
        data = yaml.safe_load(match.group(1))
    except yaml.YAMLError as e:
        logger.warning(f"Invalid YAML frontmatter in {path}, using defaults: {e}")
        return {}

    if not isinstance(data, dict):
        logger.warning(f"Frontmatter in {path} must be a mapping, using defaults")
        return {}
    return data


def load_settings(home: Path | str | None = None, **overrides: Any) -> Settings:
    """Resolve settings from defaults, settings.md, environment and arguments."""
    if home is None:
        home = os.environ.get(HOME_ENV) or Path.home() / ".ideatree"
    home = Path(home).expanduser()

    values: dict[str, Any] = {}
    file_data = read_frontmatter(home / SETTINGS_FILE)
    unknown = set(file_data) - set(_FILE_KEYS)
    if unknown:
        logger.debug(f"Ignoring unknown settings keys: {sorted(unknown)}")
    values.update({k: file_data[k] for k in _FILE_KEYS if k in file_data})

    if env_projects := os.environ.get(PROJECTS_ENV):
        values["projects_dir"] = env_projects

    values.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return Settings.for_home(home, **values)
    except (ValidationError, TypeError) as e:
        logger.warning(f"Invalid settings in {home / SETTINGS_FILE}, using defaults: {e}")
        return Settings.for_home(home, **{k: v for k, v in overrides.items() if v is not None})

"""Tests for shared constants.

Verifies the disk layout and compaction values, and that no module
redefines a constant that lives in constants.py.
"""

import ast
from pathlib import Path

import pytest

import ideatree.constants as constants

PACKAGE_DIR = Path(constants.__file__).parent


class TestConstantValues:
    def test_branch_layout(self):
        assert constants.DEFAULT_BRANCH_FOLDER == "main"
        assert constants.ROOT_BRANCH_LABEL == "Main"
        assert constants.VERSIONS_DIR == "versions"

    def test_versions_dir_is_protected(self):
        assert constants.VERSIONS_DIR in constants.SKIP_DIRS
        assert {"node_modules", "dist", ".git", ".vite"} <= constants.SKIP_DIRS
        assert "package-lock.json" in constants.SKIP_FILES

    def test_compaction_budget(self):
        assert constants.COMPACTION_MAX_INPUT_CHARS == 680_000
        assert constants.COMPACTION_FAILED_PLACEHOLDER == "(Conversation summary could not be generated)"

    def test_time_constants(self):
        assert constants.SECONDS_PER_DAY == 86400
        assert constants.SECONDS_PER_WEEK == 604800


class TestNoDuplicateDefinitions:
    """Constants are imported from constants.py, never redefined."""

    def _get_module_level_assignments(self, filepath: Path) -> set[str]:
        """Parse a Python file and return top-level assignment names."""
        tree = ast.parse(filepath.read_text())
        names = set()
        for node in ast.iter_child_nodes(tree):
            if isinstance(node, ast.Assign):
                for target in node.targets:
                    if isinstance(target, ast.Name) and target.id.isupper():
                        names.add(target.id)
        return names

    @pytest.mark.parametrize(
        "module",
        ["branches.py", "snapshots.py", "materialize.py", "compaction.py", "engine.py", "config.py"],
    )
    def test_module_does_not_redefine(self, module):
        shared = {name for name in dir(constants) if name.isupper()}
        overlap = self._get_module_level_assignments(PACKAGE_DIR / module) & shared
        assert overlap == set(), f"Constants redefined in {module}: {overlap}"

"""Branch and snapshot versioning for voice-captured ideas.

Public API:
- IdeaEngine: composition root over one ideatree home
- BranchManager / BranchTree: conversation branch tree with per-branch folders
- SnapshotManager / RestoreResult: numbered versions of text, graph and files
- Settings / load_settings: data locations and behaviour
"""

from .branches import BranchManager, BranchTree
from .config import Settings, load_settings
from .engine import IdeaEngine
from .errors import IdeaTreeError, InvariantError, NotFoundError
from .snapshots import RestoreResult, SnapshotManager

__version__ = "0.1.0"

__all__ = [
    "IdeaEngine",
    "BranchManager",
    "BranchTree",
    "SnapshotManager",
    "RestoreResult",
    "Settings",
    "load_settings",
    "IdeaTreeError",
    "NotFoundError",
    "InvariantError",
]

"""Shared constants for ideatree.

Folder conventions, disk skip lists, and compaction budgets live here so
that stores, managers and the CLI agree on them.
"""

# --- Disk layout ---

DEFAULT_BRANCH_FOLDER = "main"  # root branch folder inside an idea's project root
ROOT_BRANCH_LABEL = "Main"
VERSIONS_DIR = "versions"  # per-branch snapshot copies: <branch>/versions/v<N>/
FOLDER_NAME_MAX_LEN = 50

# Skipped when reading a project folder, protected when clearing it
SKIP_DIRS = frozenset({"node_modules", "dist", ".git", ".vite", VERSIONS_DIR})
SKIP_FILES = frozenset({"package-lock.json"})

# --- Graph ---

DEFAULT_NODE_COLOR = "#3b82f6"

# --- Compaction ---

# ~4 chars per token, 170k token budget
COMPACTION_MAX_INPUT_CHARS = 680_000
COMPACTION_TRUNCATION_MARKER = "...(earlier conversation truncated)..."
COMPACTION_FAILED_PLACEHOLDER = "(Conversation summary could not be generated)"
COMPACTION_EMPTY_CONVERSATION = "(Empty conversation, no prior context)"
COMPACTION_NO_CONTENT = "(Conversation had no meaningful text content)"
COMPACTION_EMPTY_SUMMARY = "(Failed to generate summary)"

# --- Conversations ---

DEFAULT_MODEL = "claude-sonnet-4-5"

# --- Time ---

SECONDS_PER_MINUTE = 60
SECONDS_PER_HOUR = 3600
SECONDS_PER_DAY = 86400
SECONDS_PER_WEEK = 604800
SECONDS_PER_MONTH = 2592000  # 30 days
SECONDS_PER_YEAR = 31536000  # 365 days

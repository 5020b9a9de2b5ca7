"""Disk materialization of branch project folders.

Reads a project folder into an in-memory file list, writes a file list
back, clears a folder's tracked contents and clones whole folders. Build
artifacts, dependencies and the per-branch versions/ tree are never read
or cleared.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from .constants import SKIP_DIRS, SKIP_FILES, VERSIONS_DIR
from .models import ProjectFile

logger = logging.getLogger(__name__)


def read_project_files(folder: Path | str) -> list[ProjectFile]:
    """Read every tracked text file under folder.

    Paths are relative to folder, POSIX style, sorted. Skipped directories
    and files are not descended into. Unreadable or non-UTF-8 files are
    skipped rather than failing the scan. A missing folder yields [].
    """
    root = Path(folder)
    if not root.is_dir():
        return []

    files: list[ProjectFile] = []

    def walk(directory: Path) -> None:
        try:
            entries = sorted(directory.iterdir(), key=lambda p: p.name)
        except OSError as e:
            logger.debug(f"Cannot list {directory}: {e}")
            return

        for entry in entries:
            if entry.name in SKIP_DIRS or entry.name in SKIP_FILES:
                continue
            if entry.is_symlink():
                continue
            if entry.is_dir():
                walk(entry)
            elif entry.is_file():
                try:
                    content = entry.read_text(encoding="utf-8")
                except (OSError, UnicodeDecodeError) as e:
                    logger.debug(f"Skipping unreadable file {entry}: {e}")
                    continue
                files.append(
                    ProjectFile(file_path=entry.relative_to(root).as_posix(), content=content)
                )

    walk(root)
    return files


def write_project_files(folder: Path | str, files: list[ProjectFile]) -> None:
    """Write files under folder, creating directories as needed."""
    root = Path(folder)
    root.mkdir(parents=True, exist_ok=True)
    for f in files:
        target = root / f.file_path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(f.content, encoding="utf-8")


def clear_project_files(folder: Path | str) -> None:
    """Remove tracked contents of folder, keeping protected entries.

    Dependencies, build output, .git and the versions/ tree survive.
    """
    root = Path(folder)
    if not root.is_dir():
        return

    for entry in root.iterdir():
        if entry.name in SKIP_DIRS or entry.name in SKIP_FILES:
            continue
        if entry.is_dir() and not entry.is_symlink():
            shutil.rmtree(entry)
        else:
            entry.unlink()


def copy_folder(src: Path | str, dst: Path | str) -> None:
    """Clone src into dst recursively, dependencies included.

    Raises:
        FileNotFoundError: If src does not exist
        FileExistsError: If dst already exists
    """
    src, dst = Path(src), Path(dst)
    if not src.is_dir():
        raise FileNotFoundError(f"Source folder {src} does not exist")
    if dst.exists():
        raise FileExistsError(f"Destination folder {dst} already exists")
    shutil.copytree(src, dst, symlinks=True)


def remove_folder(folder: Path | str) -> None:
    """Delete folder recursively; a missing folder is not an error."""
    try:
        shutil.rmtree(folder)
    except FileNotFoundError:
        pass


# ─────────────────────────────────────────────────────────────────────────────
# Version folders
# ─────────────────────────────────────────────────────────────────────────────


def version_dir(branch_folder: Path | str, version_number: int) -> Path:
    """Path of the on-disk copy for a snapshot version: <branch>/versions/v<N>."""
    return Path(branch_folder) / VERSIONS_DIR / f"v{version_number}"


def save_version_to_disk(
    branch_folder: Path | str, version_number: int, files: list[ProjectFile]
) -> Path:
    """Copy a file list into the branch's versions/v<N>/ folder."""
    target = version_dir(branch_folder, version_number)
    write_project_files(target, files)
    return target


def copy_version_to_disk(version_folder: Path | str, branch_folder: Path | str) -> int:
    """Copy a version folder's files back into the branch folder.

    Returns:
        Number of files written
    """
    files = read_project_files(version_folder)
    write_project_files(branch_folder, files)
    return len(files)

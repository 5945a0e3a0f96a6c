from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from .config import DEFAULT_VIDEO_EXTENSIONS
from .errors import FilesystemError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FolderInfo:
    name: str
    path: Path
    video_count: int


def is_eligible(path: Path, extensions: Iterable[str] = DEFAULT_VIDEO_EXTENSIONS) -> bool:
    return path.suffix.lower() in extensions


def list_eligible_files(
    folder: Path,
    extensions: Iterable[str] = DEFAULT_VIDEO_EXTENSIONS,
) -> list[Path]:
    """Return the video files directly inside ``folder``, sorted by name.

    Subdirectories are never descended into. Raises FilesystemError when the
    folder cannot be listed.
    """
    folder = Path(folder).expanduser().absolute()
    allowed = frozenset(extensions)
    files: list[Path] = []
    for entry in _read_entries(folder):
        path = Path(entry.path)
        if not is_eligible(path, allowed):
            continue
        if not _entry_is_file(entry):
            continue
        files.append(path)
    files.sort(key=lambda path: path.name.lower())
    return files


def scan_folder(
    folder: Path,
    extensions: Iterable[str] = DEFAULT_VIDEO_EXTENSIONS,
) -> FolderInfo:
    folder = Path(folder).expanduser().absolute()
    files = list_eligible_files(folder, extensions)
    return FolderInfo(name=folder.name, path=folder, video_count=len(files))


def scan_root(
    root: Path,
    extensions: Iterable[str] = DEFAULT_VIDEO_EXTENSIONS,
    *,
    include_hidden: bool = True,
) -> list[FolderInfo]:
    """Describe every immediate subdirectory of ``root``.

    Dot-prefixed folders are listed too unless ``include_hidden`` is False.
    Either the whole listing succeeds or FilesystemError is raised; a folder
    that cannot be read aborts the scan instead of being left out.
    """
    root = Path(root).expanduser().absolute()
    allowed = frozenset(extensions)
    folders = [
        scan_folder(Path(entry.path), allowed)
        for entry in _child_directories(root, include_hidden)
    ]
    logger.debug("scanned %s: %d folder(s)", root, len(folders))
    return folders


async def scan_root_async(
    root: Path,
    extensions: Iterable[str] = DEFAULT_VIDEO_EXTENSIONS,
    *,
    include_hidden: bool = True,
) -> list[FolderInfo]:
    root = Path(root).expanduser().absolute()
    allowed = frozenset(extensions)
    entries = await asyncio.to_thread(_child_directories, root, include_hidden)
    return list(
        await asyncio.gather(
            *(asyncio.to_thread(scan_folder, Path(entry.path), allowed) for entry in entries)
        )
    )


async def collect_folder_files(
    folders: Iterable[FolderInfo | Path],
    extensions: Iterable[str] = DEFAULT_VIDEO_EXTENSIONS,
) -> list[list[Path]]:
    """List eligible files for each folder concurrently, preserving input order."""
    allowed = frozenset(extensions)
    paths = [folder.path if isinstance(folder, FolderInfo) else Path(folder) for folder in folders]
    results = await asyncio.gather(
        *(asyncio.to_thread(list_eligible_files, path, allowed) for path in paths)
    )
    return list(results)


def _child_directories(root: Path, include_hidden: bool) -> list[os.DirEntry]:
    entries = [entry for entry in _read_entries(root) if _entry_is_dir(entry)]
    if not include_hidden:
        entries = [entry for entry in entries if not entry.name.startswith(".")]
    entries.sort(key=lambda entry: entry.name.lower())
    return entries


def _read_entries(folder: Path) -> list[os.DirEntry]:
    try:
        with os.scandir(folder) as iterator:
            return list(iterator)
    except FileNotFoundError as exc:
        raise FilesystemError(f"Folder not found: {folder}", folder) from exc
    except NotADirectoryError as exc:
        raise FilesystemError(f"Not a folder: {folder}", folder) from exc
    except PermissionError as exc:
        raise FilesystemError(f"Permission denied: {folder}", folder) from exc
    except OSError as exc:
        raise FilesystemError(f"Failed to read folder: {folder} ({exc})", folder) from exc


def _entry_is_dir(entry: os.DirEntry) -> bool:
    try:
        return entry.is_dir()
    except OSError:
        return False


def _entry_is_file(entry: os.DirEntry) -> bool:
    try:
        return entry.is_file()
    except OSError:
        return False

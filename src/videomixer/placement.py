from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable

from .errors import FilesystemError

logger = logging.getLogger(__name__)

Clock = Callable[[], int]

OUTPUT_PREFIX = "mixed_"


def now_millis() -> int:
    return time.time_ns() // 1_000_000


def ensure_output_dir(path: Path) -> Path:
    path = Path(path).expanduser()
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise FilesystemError(f"Failed to create output directory: {path} ({exc})", path) from exc
    return path


def output_path_for(directory: Path, timestamp_ms: int, ext: str = "mp4") -> Path:
    """First free ``mixed_<timestamp>[_<n>].<ext>`` name in ``directory``."""
    return _candidate(directory, timestamp_ms, ext, _first_free_index(directory, timestamp_ms, ext))


def reserve_output(directory: Path, timestamp_ms: int, ext: str = "mp4") -> Path:
    """Create an empty placeholder under a free name and return its path.

    The placeholder is created exclusively, so two requests racing for the
    same timestamp end up with different files.
    """
    index = _first_free_index(directory, timestamp_ms, ext)
    while True:
        path = _candidate(directory, timestamp_ms, ext, index)
        try:
            with path.open("xb"):
                pass
        except FileExistsError:
            index += 1
            continue
        except OSError as exc:
            raise FilesystemError(f"Failed to create output file: {path} ({exc})", path) from exc
        return path


def prepare_output(directory: Path, ext: str = "mp4", clock: Clock | None = None) -> Path:
    clock = clock or now_millis
    directory = ensure_output_dir(directory)
    path = reserve_output(directory, clock(), ext)
    logger.debug("output path %s", path)
    return path


def discard_output(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        return
    except OSError as exc:
        logger.warning("could not remove partial output %s: %s", path, exc)
        return
    logger.info("removed partial output %s", path)


def _first_free_index(directory: Path, timestamp_ms: int, ext: str) -> int:
    index = 0
    while _candidate(directory, timestamp_ms, ext, index).exists():
        index += 1
    return index


def _candidate(directory: Path, timestamp_ms: int, ext: str, index: int) -> Path:
    ext = ext.lower().lstrip(".")
    base = f"{OUTPUT_PREFIX}{timestamp_ms}"
    if index:
        base = f"{base}_{index}"
    return directory / f"{base}.{ext}"

from __future__ import annotations

import logging
import random
from pathlib import Path
from typing import MutableSequence, Sequence, TypeVar

from .errors import NoEligibleMediaError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def draw_one(files: Sequence[T], rng: random.Random) -> T | None:
    if not files:
        return None
    return files[rng.randrange(len(files))]


def shuffle_in_place(items: MutableSequence[T], rng: random.Random) -> None:
    """Fisher-Yates shuffle; every permutation is equally likely."""
    for i in range(len(items) - 1, 0, -1):
        j = rng.randrange(i + 1)
        items[i], items[j] = items[j], items[i]


def select_clips(
    folder_files: Sequence[Sequence[Path]],
    rng: random.Random | None = None,
) -> list[Path]:
    """Pick one file per folder, then shuffle the picks.

    ``folder_files`` holds the eligible files of each input folder. Folders
    without files contribute nothing.
    """
    rng = rng or random.Random()
    selected: list[Path] = []
    for files in folder_files:
        choice = draw_one(files, rng)
        if choice is not None:
            selected.append(choice)
    if not selected:
        raise NoEligibleMediaError("No video files found in the chosen folders")
    shuffle_in_place(selected, rng)
    logger.debug("selected %d clip(s) from %d folder(s)", len(selected), len(folder_files))
    return selected

from __future__ import annotations

import asyncio
import logging
import random
from pathlib import Path
from typing import Iterable

from .config import MixerSettings
from .ffmpeg_runner import ConcatJob, Observer, Spawner, probe_total_duration
from .manifest import write_manifest
from .placement import Clock, discard_output, prepare_output
from .scanner import FolderInfo, collect_folder_files
from .selection import select_clips

logger = logging.getLogger(__name__)


async def start_mixing(
    folders: Iterable[FolderInfo | Path],
    observer: Observer | None = None,
    *,
    settings: MixerSettings | None = None,
    rng: random.Random | None = None,
    spawn: Spawner | None = None,
    clock: Clock | None = None,
) -> Path:
    """Mix one random clip from each folder into a new output file.

    Returns the path of the written file. Raises FilesystemError,
    NoEligibleMediaError or MixingJobError; nothing is written before a
    selection has been made.
    """
    settings = settings or MixerSettings()
    folders = list(folders)
    folder_files = await collect_folder_files(folders, settings.extensions)
    selection = select_clips(folder_files, rng)
    for index, path in enumerate(selection, start=1):
        logger.info("clip %d: %s", index, path)

    output = prepare_output(settings.output_dir, settings.output_format, clock)
    try:
        total_seconds = await probe_total_duration(selection, settings.ffprobe, spawn)
        manifest = write_manifest(selection, settings.temp_dir)
    except BaseException:
        discard_output(output)
        raise
    job = ConcatJob(
        manifest,
        output,
        ffmpeg=settings.ffmpeg,
        total_seconds=total_seconds,
        keep_partial_output=settings.keep_partial_output,
        spawn=spawn,
    )
    return await job.run(observer)


def mix_folders_sync(
    folders: Iterable[FolderInfo | Path],
    observer: Observer | None = None,
    **kwargs,
) -> Path:
    return asyncio.run(start_mixing(folders, observer, **kwargs))

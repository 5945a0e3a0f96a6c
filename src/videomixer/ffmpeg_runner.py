from __future__ import annotations

import asyncio
import logging
import shlex
import subprocess
from collections import deque
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Iterable

from .errors import MixingJobError
from .manifest import remove_manifest
from .placement import discard_output
from .timemark import format_timemark, parse_timemark

logger = logging.getLogger(__name__)

Observer = Callable[["ProgressEvent"], None]
Spawner = Callable[[list[str]], Awaitable[asyncio.subprocess.Process]]

STDERR_TAIL_LINES = 40
_UNSET_VALUES = {"", "n/a", "nan", "none"}


class JobState(Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class ProgressEvent:
    percent: int
    timemark: str


def build_ffmpeg_command(manifest: Path, output: Path, ffmpeg: str = "ffmpeg") -> list[str]:
    return [
        ffmpeg,
        "-hide_banner",
        "-nostdin",
        "-y",
        "-f",
        "concat",
        "-safe",
        "0",
        "-i",
        str(manifest),
        "-c",
        "copy",
        "-progress",
        "pipe:1",
        "-nostats",
        str(output),
    ]


def build_ffprobe_command(path: Path, ffprobe: str = "ffprobe") -> list[str]:
    return [
        ffprobe,
        "-v",
        "error",
        "-show_entries",
        "format=duration",
        "-of",
        "default=noprint_wrappers=1:nokey=1",
        str(path),
    ]


class ProgressParser:
    """Turns ffmpeg ``-progress`` key/value output into ProgressEvents.

    ffmpeg writes one block of ``key=value`` lines per update, terminated by
    ``progress=continue`` (or ``progress=end`` for the last block). An event is
    produced for every terminator line. Percentages never go backwards.
    """

    def __init__(self, total_seconds: float | None = None) -> None:
        self.total_seconds = total_seconds if total_seconds and total_seconds > 0 else None
        self._out_seconds = 0.0
        self._percent = 0

    def feed(self, line: str) -> ProgressEvent | None:
        key, sep, value = line.strip().partition("=")
        if not sep:
            return None
        key = key.strip()
        value = value.strip()
        if key == "out_time_us" or key == "out_time_ms":
            # Both keys are in microseconds.
            micros = _parse_float(value)
            if micros is not None:
                self._out_seconds = max(self._out_seconds, micros / 1_000_000)
        elif key == "out_time":
            if value.lower() not in _UNSET_VALUES:
                try:
                    self._out_seconds = max(self._out_seconds, parse_timemark(value))
                except ValueError:
                    pass
        elif key == "progress":
            if value == "end":
                self._percent = 100
            else:
                self._percent = max(self._percent, self._current_percent())
            return ProgressEvent(percent=self._percent, timemark=format_timemark(self._out_seconds))
        return None

    def _current_percent(self) -> int:
        if self.total_seconds is None:
            return 0
        percent = round(self._out_seconds / self.total_seconds * 100)
        return max(0, min(100, percent))


class ConcatJob:
    """One ffmpeg concat-demuxer stream copy from a manifest to an output file.

    The job owns the manifest: it is removed when the job succeeds or fails.
    ``output`` is expected to be a name reserved with placement.prepare_output;
    ffmpeg overwrites that placeholder. A job runs once.
    """

    def __init__(
        self,
        manifest: Path,
        output: Path,
        *,
        ffmpeg: str = "ffmpeg",
        total_seconds: float | None = None,
        keep_partial_output: bool = False,
        spawn: Spawner | None = None,
    ) -> None:
        self.manifest = manifest
        self.output = output
        self.ffmpeg = ffmpeg
        self.total_seconds = total_seconds
        self.keep_partial_output = keep_partial_output
        self.state = JobState.PENDING
        self._spawn = spawn or _spawn_subprocess

    async def run(self, observer: Observer | None = None) -> Path:
        if self.state is not JobState.PENDING:
            raise RuntimeError(f"Job already {self.state.value}")
        self.state = JobState.RUNNING
        command = build_ffmpeg_command(self.manifest, self.output, self.ffmpeg)
        logger.info("running %s", shlex.join(command))
        try:
            try:
                returncode, diagnostic = await self._execute(command, observer)
            except MixingJobError:
                raise
            except Exception as exc:
                raise MixingJobError(f"Mixing job failed: {exc}") from exc
            if returncode != 0:
                raise MixingJobError(
                    _summarize_error(diagnostic, returncode),
                    diagnostic=diagnostic,
                    returncode=returncode,
                )
        except BaseException:
            self.state = JobState.FAILED
            if not self.keep_partial_output:
                discard_output(self.output)
            raise
        finally:
            remove_manifest(self.manifest)
        self.state = JobState.SUCCEEDED
        logger.info("mixing job finished: %s", self.output)
        return self.output

    async def _execute(self, command: list[str], observer: Observer | None) -> tuple[int, str]:
        try:
            process = await self._spawn(command)
        except FileNotFoundError as exc:
            raise MixingJobError(f"{command[0]} not found on PATH", diagnostic=str(exc)) from exc

        parser = ProgressParser(self.total_seconds)
        stderr_tail: deque[str] = deque(maxlen=STDERR_TAIL_LINES)

        async def read_progress() -> None:
            if process.stdout is None:
                return
            async for raw in process.stdout:
                event = parser.feed(raw.decode("utf-8", "replace"))
                if event is not None and observer is not None:
                    observer(event)

        async def read_diagnostics() -> None:
            if process.stderr is None:
                return
            async for raw in process.stderr:
                line = raw.decode("utf-8", "replace").strip()
                if line:
                    stderr_tail.append(line)

        readers = [
            asyncio.create_task(read_progress()),
            asyncio.create_task(read_diagnostics()),
        ]
        try:
            await asyncio.gather(*readers)
            returncode = await process.wait()
        except BaseException:
            for reader in readers:
                reader.cancel()
            await asyncio.gather(*readers, return_exceptions=True)
            await _terminate_process(process)
            raise
        return returncode, "\n".join(stderr_tail)


async def probe_duration(
    path: Path,
    ffprobe: str = "ffprobe",
    spawn: Spawner | None = None,
) -> float | None:
    spawn = spawn or _spawn_subprocess
    command = build_ffprobe_command(path, ffprobe)
    try:
        process = await spawn(command)
    except OSError as exc:
        logger.debug("could not run %s (%s); progress percentages unavailable", ffprobe, exc)
        return None
    stdout, stderr = await process.communicate()
    if process.returncode != 0:
        logger.debug(
            "ffprobe failed for %s: %s",
            path,
            (stderr or b"").decode("utf-8", "replace").strip(),
        )
        return None
    text = (stdout or b"").decode("utf-8", "replace").strip()
    duration = _parse_float(text.splitlines()[0] if text else "")
    if duration is None or duration < 0:
        logger.debug("ffprobe returned no duration for %s", path)
        return None
    return duration


async def probe_total_duration(
    paths: Iterable[Path],
    ffprobe: str = "ffprobe",
    spawn: Spawner | None = None,
) -> float | None:
    """Sum clip durations; None if any clip could not be probed."""
    durations = await asyncio.gather(*(probe_duration(path, ffprobe, spawn) for path in paths))
    if not durations or any(value is None for value in durations):
        return None
    return float(sum(durations))


async def _spawn_subprocess(command: list[str]) -> asyncio.subprocess.Process:
    return await asyncio.create_subprocess_exec(
        *command,
        stdin=subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )


async def _terminate_process(process: asyncio.subprocess.Process) -> None:
    if process.returncode is not None:
        return
    try:
        process.terminate()
        await asyncio.wait_for(process.wait(), timeout=2)
    except ProcessLookupError:
        return
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()


def _summarize_error(diagnostic: str, returncode: int) -> str:
    lines = [line for line in diagnostic.splitlines() if line.strip()]
    if not lines:
        return f"ffmpeg failed with exit code {returncode}"
    return f"ffmpeg failed with exit code {returncode}: {lines[-1]}"


def _parse_float(value: str | None) -> float | None:
    if value is None:
        return None
    cleaned = value.strip()
    if cleaned.lower() in _UNSET_VALUES:
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from fake_ffmpeg import CLIP_SECONDS, make_spawner
from videomixer.config import MixerSettings
from videomixer.errors import MixingJobError
from videomixer.ffmpeg_runner import (
    ConcatJob,
    JobState,
    ProgressEvent,
    ProgressParser,
    build_ffmpeg_command,
    probe_duration,
    probe_total_duration,
)
from videomixer.manifest import write_manifest
from videomixer.mixer import start_mixing


def _feed(parser: ProgressParser, text: str) -> list[ProgressEvent]:
    events = []
    for line in text.splitlines():
        event = parser.feed(line)
        if event is not None:
            events.append(event)
    return events


def test_build_ffmpeg_command_stream_copy() -> None:
    cmd = build_ffmpeg_command(Path("/tmp/list.txt"), Path("/out/mixed_1.mp4"))
    assert cmd[0] == "ffmpeg"
    assert cmd[cmd.index("-f") + 1] == "concat"
    assert cmd[cmd.index("-safe") + 1] == "0"
    assert cmd[cmd.index("-i") + 1] == "/tmp/list.txt"
    assert cmd[cmd.index("-c") + 1] == "copy"
    assert cmd[cmd.index("-progress") + 1] == "pipe:1"
    assert "-y" in cmd
    assert cmd[-1] == "/out/mixed_1.mp4"


def test_progress_parser_percent_and_timemark() -> None:
    parser = ProgressParser(total_seconds=10.0)
    events = _feed(
        parser,
        "frame=1\nout_time_us=2500000\nout_time=00:00:02.500000\nprogress=continue\n"
        "out_time_us=5000000\nprogress=continue\n"
        "progress=end\n",
    )
    assert events == [
        ProgressEvent(percent=25, timemark="00:00:02.50"),
        ProgressEvent(percent=50, timemark="00:00:05.00"),
        ProgressEvent(percent=100, timemark="00:00:05.00"),
    ]


def test_progress_parser_never_goes_backwards() -> None:
    parser = ProgressParser(total_seconds=10.0)
    events = _feed(
        parser,
        "out_time_us=6000000\nprogress=continue\n"
        "out_time_us=3000000\nprogress=continue\n"
        "out_time=N/A\nout_time_us=N/A\nprogress=continue\n",
    )
    percents = [event.percent for event in events]
    assert percents == [60, 60, 60]


def test_progress_parser_clamps_to_100() -> None:
    parser = ProgressParser(total_seconds=1.0)
    events = _feed(parser, "out_time_ms=5000000\nprogress=continue\n")
    assert events[0].percent == 100


def test_progress_parser_unknown_total() -> None:
    parser = ProgressParser(total_seconds=None)
    events = _feed(parser, "out_time_us=5000000\nprogress=continue\nprogress=end\n")
    assert [event.percent for event in events] == [0, 100]
    assert events[0].timemark == "00:00:05.00"


def test_progress_parser_ignores_noise() -> None:
    parser = ProgressParser(total_seconds=4.0)
    assert parser.feed("") is None
    assert parser.feed("Input #0, concat, from 'list.txt':") is None
    assert parser.feed("bitrate=N/A") is None


def _make_job_inputs(tmp_path: Path, count: int = 2) -> tuple[list[Path], Path, Path]:
    clips = []
    for index in range(count):
        clip = tmp_path / "clips" / f"{index}.mp4"
        clip.parent.mkdir(parents=True, exist_ok=True)
        clip.write_bytes(b"")
        clips.append(clip)
    temp_dir = tmp_path / "tmp"
    temp_dir.mkdir()
    manifest = write_manifest(clips, temp_dir)
    output = tmp_path / "out" / "mixed_1.mp4"
    output.parent.mkdir()
    return clips, manifest, output


def test_concat_job_success_removes_manifest(tmp_path: Path) -> None:
    clips, manifest, output = _make_job_inputs(tmp_path, count=2)
    events: list[ProgressEvent] = []
    spawn = make_spawner("ok")
    job = ConcatJob(manifest, output, total_seconds=2 * CLIP_SECONDS, spawn=spawn)
    assert job.state is JobState.PENDING

    result = asyncio.run(job.run(events.append))

    assert result == output
    assert job.state is JobState.SUCCEEDED
    assert output.exists()
    assert not manifest.exists()
    assert [event.percent for event in events] == [50, 100, 100]
    assert events[-1].timemark == "00:00:04.00"
    assert spawn.calls[0][0] == "ffmpeg"


def test_concat_job_failure_raises_and_cleans_up(tmp_path: Path) -> None:
    _, manifest, output = _make_job_inputs(tmp_path)
    job = ConcatJob(manifest, output, spawn=make_spawner("fail"))

    with pytest.raises(MixingJobError) as excinfo:
        asyncio.run(job.run())

    assert job.state is JobState.FAILED
    assert not manifest.exists()
    assert not output.exists()
    assert excinfo.value.returncode == 1
    assert "Impossible to open" in excinfo.value.diagnostic
    assert "No such file or directory" in str(excinfo.value)


def test_concat_job_failure_can_keep_partial_output(tmp_path: Path) -> None:
    _, manifest, output = _make_job_inputs(tmp_path)
    job = ConcatJob(manifest, output, keep_partial_output=True, spawn=make_spawner("fail"))

    with pytest.raises(MixingJobError):
        asyncio.run(job.run())

    assert not manifest.exists()
    assert output.read_bytes() == b"partial"


def test_concat_job_missing_executable(tmp_path: Path) -> None:
    _, manifest, output = _make_job_inputs(tmp_path)

    async def spawn(command: list[str]):
        raise FileNotFoundError(command[0])

    job = ConcatJob(manifest, output, ffmpeg="no-such-ffmpeg", spawn=spawn)
    with pytest.raises(MixingJobError) as excinfo:
        asyncio.run(job.run())
    assert "no-such-ffmpeg not found" in str(excinfo.value)
    assert job.state is JobState.FAILED
    assert not manifest.exists()


def test_concat_job_observer_error_fails_job(tmp_path: Path) -> None:
    _, manifest, output = _make_job_inputs(tmp_path)

    def observer(event: ProgressEvent) -> None:
        raise ValueError("observer broke")

    job = ConcatJob(manifest, output, spawn=make_spawner("ok"))
    with pytest.raises(MixingJobError) as excinfo:
        asyncio.run(job.run(observer))
    assert isinstance(excinfo.value.__cause__, ValueError)
    assert job.state is JobState.FAILED
    assert not manifest.exists()


def test_concat_job_runs_once(tmp_path: Path) -> None:
    _, manifest, output = _make_job_inputs(tmp_path)
    job = ConcatJob(manifest, output, spawn=make_spawner("ok"))
    asyncio.run(job.run())
    with pytest.raises(RuntimeError):
        asyncio.run(job.run())


def test_probe_duration(tmp_path: Path) -> None:
    clip = tmp_path / "a.mp4"
    assert asyncio.run(probe_duration(clip, spawn=make_spawner("ok"))) == CLIP_SECONDS
    assert asyncio.run(probe_duration(clip, spawn=make_spawner("probe-fail"))) is None


def test_probe_total_duration(tmp_path: Path) -> None:
    clips = [tmp_path / "a.mp4", tmp_path / "b.mp4", tmp_path / "c.mp4"]
    total = asyncio.run(probe_total_duration(clips, spawn=make_spawner("ok")))
    assert total == pytest.approx(3 * CLIP_SECONDS)
    assert asyncio.run(probe_total_duration(clips, spawn=make_spawner("probe-fail"))) is None
    assert asyncio.run(probe_total_duration([], spawn=make_spawner("ok"))) is None


def test_probe_duration_missing_ffprobe(tmp_path: Path) -> None:
    async def spawn(command: list[str]):
        raise FileNotFoundError(command[0])

    assert asyncio.run(probe_duration(tmp_path / "a.mp4", spawn=spawn)) is None


def _ffprobe_not_executable():
    fallback = make_spawner("ok")

    async def spawn(command: list[str]):
        if command[0] == "ffprobe":
            raise PermissionError(13, "Permission denied", command[0])
        return await fallback(command)

    spawn.calls = fallback.calls  # type: ignore[attr-defined]
    return spawn


def test_probe_duration_ffprobe_not_executable(tmp_path: Path) -> None:
    spawn = _ffprobe_not_executable()
    assert asyncio.run(probe_duration(tmp_path / "a.mp4", spawn=spawn)) is None


def test_mix_succeeds_when_ffprobe_cannot_run(tmp_path: Path) -> None:
    folder = tmp_path / "library" / "a"
    folder.mkdir(parents=True)
    (folder / "a.mp4").write_bytes(b"")
    temp_dir = tmp_path / "tmp"
    temp_dir.mkdir()
    settings = MixerSettings(output_dir=tmp_path / "out", temp_dir=temp_dir)
    events: list[ProgressEvent] = []

    output = asyncio.run(
        start_mixing([folder], events.append, settings=settings, spawn=_ffprobe_not_executable())
    )

    assert output.exists()
    assert events[-1].percent == 100
    assert all(event.percent in (0, 100) for event in events)
    assert list(temp_dir.iterdir()) == []


def test_concat_job_observer_error_leaves_no_reader_tasks(tmp_path: Path) -> None:
    _, manifest, output = _make_job_inputs(tmp_path)

    def observer(event: ProgressEvent) -> None:
        raise ValueError("observer broke")

    async def scenario() -> set[asyncio.Task]:
        job = ConcatJob(manifest, output, spawn=make_spawner("ok"))
        with pytest.raises(MixingJobError):
            await job.run(observer)
        return asyncio.all_tasks() - {asyncio.current_task()}

    assert asyncio.run(scenario()) == set()
    assert not manifest.exists()

from __future__ import annotations

import argparse
import dataclasses
import logging
import random
import sys
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn, TimeElapsedColumn
from rich.text import Text
from textual.app import App, ComposeResult
from textual.containers import Horizontal, Vertical
from textual.logging import TextualHandler
from textual.widgets import Label, ListItem, ListView, ProgressBar, Static

from .config import (
    AppConfig,
    MixerSettings,
    is_valid_output_format,
    load_config,
    normalize_output_format,
    resolve_settings,
    save_config,
)
from .errors import MixerError
from .ffmpeg_runner import ProgressEvent, Spawner
from .mixer import mix_folders_sync, start_mixing
from .paths import config_path
from .scanner import FolderInfo, scan_root, scan_root_async
from .ui.screens import HelpScreen, PathInputScreen

TIP_TEXT = "Tip: space toggles a folder, m starts mixing, ? shows help"
HELP_NOTES = (
    "Each included folder contributes one randomly chosen video. The chosen\n"
    "clips are shuffled and joined without re-encoding, so they should share\n"
    "codec, resolution and frame rate."
)


class FolderListItem(ListItem):
    def __init__(self, folder: FolderInfo, included: bool = True) -> None:
        self.folder = folder
        self.included = included
        self._label = Label(_format_folder_label(folder, included), classes="folder_label")
        super().__init__(self._label, classes="folder_item")

    def set_included(self, included: bool) -> None:
        if self.included == included:
            return
        self.included = included
        self._label.update(_format_folder_label(self.folder, included))


class VideoMixerApp(App):
    BINDINGS = [
        ("q", "quit", "Quit"),
        ("o", "open_root", "Choose the root folder"),
        ("d", "output_dir", "Choose the output directory"),
        ("r", "rescan", "Rescan the root folder"),
        ("space", "toggle_folder", "Include or exclude the highlighted folder"),
        ("a", "toggle_all", "Include or exclude all folders"),
        ("m", "mix", "Mix one random clip from each included folder"),
        ("?", "help", "Show this help"),
    ]

    CSS = """
    Screen {
        background: $background;
        color: $text;
    }

    #root {
        height: 100%;
    }

    #main {
        height: 1fr;
        padding: 1 1;
        border: round $primary;
        background: $surface;
    }

    #folder_list {
        height: 1fr;
    }

    #progress_row {
        height: 1;
        padding: 0 1;
    }

    #mix_progress {
        width: 1fr;
    }

    #status_bar, #tip_bar {
        height: 1;
        padding: 0 1;
    }

    #tip_bar {
        color: $text-muted;
    }
    """

    def __init__(
        self,
        root: Path,
        settings: MixerSettings,
        config: AppConfig,
        *,
        config_error: str | None = None,
        config_file: Path | None = None,
        spawn: Spawner | None = None,
    ) -> None:
        super().__init__()
        self.root = root
        self.settings = settings
        self.config = config
        self._config_error = config_error
        self._config_file = config_file
        self._spawn = spawn
        self._mixing = False
        self.last_output: Path | None = None
        self.last_error: str | None = None

    def compose(self) -> ComposeResult:
        with Vertical(id="root"):
            with Vertical(id="main"):
                yield Label("", id="root_label")
                yield Label("", id="output_label")
                yield ListView(id="folder_list")
            with Horizontal(id="progress_row"):
                yield ProgressBar(total=100, show_eta=False, id="mix_progress")
            yield Static("", id="status_bar")
            yield Static(TIP_TEXT, id="tip_bar")

    def on_mount(self) -> None:
        self._folder_list = self.query_one("#folder_list", ListView)
        self._progress_bar = self.query_one("#mix_progress", ProgressBar)
        self._status_bar = self.query_one("#status_bar", Static)
        self._update_header()
        if self._config_error:
            self._set_status(self._config_error)
        self.call_later(self.action_rescan)

    def action_help(self) -> None:
        self.push_screen(HelpScreen(self.BINDINGS, HELP_NOTES))

    def action_open_root(self) -> None:
        self.push_screen(
            PathInputScreen("Root folder", self.root, must_exist=True),
            self._handle_root,
        )

    def action_output_dir(self) -> None:
        self.push_screen(
            PathInputScreen("Output directory", self.settings.output_dir),
            self._handle_output_dir,
        )

    def action_rescan(self) -> None:
        self.run_worker(self._scan(), exclusive=True, group="scan")

    def action_toggle_folder(self) -> None:
        item = self._folder_list.highlighted_child
        if isinstance(item, FolderListItem):
            item.set_included(not item.included)

    def action_toggle_all(self) -> None:
        items = self._folder_items()
        include = not all(item.included for item in items)
        for item in items:
            item.set_included(include)

    def action_mix(self) -> None:
        if self._mixing:
            self._set_status("A mix is already running.")
            return
        folders = [item.folder for item in self._folder_items() if item.included]
        if not folders:
            self._set_status("No folders included.")
            return
        self._mixing = True
        self._progress_bar.update(total=100, progress=0)
        self._set_status(f"Mixing {len(folders)} folder(s)...")
        self.run_worker(self._mix(folders), exclusive=True, group="mix")

    async def _scan(self) -> None:
        self._set_status(f"Scanning {self.root}...")
        try:
            folders = await scan_root_async(self.root, self.settings.extensions)
        except MixerError as exc:
            await self._folder_list.clear()
            self._set_status(str(exc))
            return
        await self._folder_list.clear()
        await self._folder_list.extend(
            FolderListItem(folder, included=folder.video_count > 0) for folder in folders
        )
        total = sum(folder.video_count for folder in folders)
        self._set_status(f"{len(folders)} folder(s), {total} video(s)")

    async def _mix(self, folders: list[FolderInfo]) -> None:
        try:
            output = await start_mixing(
                folders,
                self._apply_progress,
                settings=self.settings,
                spawn=self._spawn,
            )
        except MixerError as exc:
            self.last_error = str(exc)
            self._set_status(f"Mixing failed: {exc}")
            return
        finally:
            self._mixing = False
        self.last_output = output
        self._progress_bar.update(progress=100)
        self._set_status(f"Done: {output}")

    def _apply_progress(self, event: ProgressEvent) -> None:
        self._progress_bar.update(progress=event.percent)
        self._set_status(f"Mixing... {event.percent}% ({event.timemark})")

    def _handle_root(self, path: Path | None) -> None:
        if path is None:
            return
        self.root = path
        self.config.last_root = str(path)
        self._save_config()
        self._update_header()
        self.action_rescan()

    def _handle_output_dir(self, path: Path | None) -> None:
        if path is None:
            return
        self.settings = dataclasses.replace(self.settings, output_dir=path)
        self.config.output_dir = str(path)
        self._save_config()
        self._update_header()

    def _save_config(self) -> None:
        error = save_config(self.config, self._config_file)
        if error:
            self._set_status(error)

    def _folder_items(self) -> list[FolderListItem]:
        return [item for item in self._folder_list.children if isinstance(item, FolderListItem)]

    def _update_header(self) -> None:
        self.query_one("#root_label", Label).update(f"Root: {self.root}")
        self.query_one("#output_label", Label).update(f"Output: {self.settings.output_dir}")

    def _set_status(self, message: str) -> None:
        self._status_bar.update(Text(message))


def _format_folder_label(folder: FolderInfo, included: bool) -> Text:
    marker = "[x]" if included else "[ ]"
    text = Text(f"{marker} {folder.name}")
    count = "1 video" if folder.video_count == 1 else f"{folder.video_count} videos"
    text.append(f"  {count}", style="dim" if folder.video_count else "red")
    return text


def _cli_help_text() -> str:
    return (
        "Mixes one random video from each subfolder of ROOT into a single file\n"
        "using ffmpeg stream copy (no re-encoding).\n\n"
        f"Config file: {config_path()}"
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="videomixer",
        description=_cli_help_text(),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("root", nargs="?", help="Folder whose subfolders hold the clips")
    parser.add_argument("--output-dir", help="Directory for mixed videos")
    parser.add_argument("--output-format", help="Output container, e.g. mp4 or mkv")
    parser.add_argument("--ffmpeg", help="Path to the ffmpeg executable")
    parser.add_argument("--ffprobe", help="Path to the ffprobe executable")
    parser.add_argument(
        "--headless",
        action="store_true",
        help="Mix once without the interactive UI and print the output path",
    )
    parser.add_argument(
        "--folders",
        nargs="+",
        metavar="NAME",
        help="Subfolder names to mix in headless mode (default: all)",
    )
    parser.add_argument("--seed", type=int, help="Random seed for reproducible headless mixes")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def run_headless(
    root: Path,
    settings: MixerSettings,
    *,
    names: list[str] | None = None,
    seed: int | None = None,
    console: Console | None = None,
    spawn: Spawner | None = None,
) -> int:
    console = console or Console()
    try:
        folders = scan_root(root, settings.extensions)
    except MixerError as exc:
        console.print(f"[red]Error:[/red] {escape(str(exc))}")
        return 1
    if names:
        by_name = {folder.name: folder for folder in folders}
        missing = [name for name in names if name not in by_name]
        if missing:
            console.print(f"[red]Error:[/red] Unknown folder(s): {escape(', '.join(missing))}")
            return 1
        folders = [by_name[name] for name in names]
    rng = random.Random(seed) if seed is not None else None

    with Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("Mixing", total=100)

        def on_progress(event: ProgressEvent) -> None:
            progress.update(task, completed=event.percent, description=f"Mixing {event.timemark}")

        try:
            output = mix_folders_sync(
                folders, on_progress, settings=settings, rng=rng, spawn=spawn
            )
        except MixerError as exc:
            progress.stop()
            console.print(f"[red]Mixing failed:[/red] {escape(str(exc))}")
            return 1
    console.print(str(output), markup=False, highlight=False, soft_wrap=True)
    return 0


def main() -> None:
    parser = _build_parser()
    args = parser.parse_args()
    level = logging.DEBUG if args.verbose else logging.WARNING

    config, config_error = load_config()
    output_dir = Path(args.output_dir).expanduser() if args.output_dir else None
    output_format = None
    if args.output_format is not None:
        output_format = normalize_output_format(args.output_format)
        if not is_valid_output_format(output_format):
            parser.error(f"Invalid output format: {args.output_format}")
    settings = resolve_settings(
        config,
        output_dir=output_dir,
        output_format=output_format,
        ffmpeg=args.ffmpeg,
        ffprobe=args.ffprobe,
    )

    if args.headless:
        logging.basicConfig(level=level, stream=sys.stderr, format="%(levelname)s: %(message)s")
        if not args.root:
            parser.error("root is required with --headless")
        if config_error:
            logging.warning(config_error)
        code = run_headless(
            Path(args.root).expanduser(),
            settings,
            names=args.folders,
            seed=args.seed,
        )
        if code:
            raise SystemExit(code)
        return

    logging.basicConfig(level=level, handlers=[TextualHandler()])
    root = Path(args.root or config.last_root or ".").expanduser().absolute()
    app = VideoMixerApp(root, settings, config, config_error=config_error)
    app.run()

from __future__ import annotations

import tempfile
from pathlib import Path

from platformdirs import user_config_path, user_desktop_path

APP_NAME = "videomixer"
OUTPUT_DIR_NAME = "VideoMixer_Output"


def config_root() -> Path:
    root = user_config_path(APP_NAME)
    root.mkdir(parents=True, exist_ok=True)
    return root


def config_path() -> Path:
    return config_root() / "config.json"


def desktop_dir() -> Path:
    return user_desktop_path()


def default_output_dir() -> Path:
    return desktop_dir() / OUTPUT_DIR_NAME


def transient_dir() -> Path:
    return Path(tempfile.gettempdir())

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .paths import config_path, default_output_dir, transient_dir

logger = logging.getLogger(__name__)

CONFIG_VERSION = 1
DEFAULT_OUTPUT_FORMAT = "mp4"
DEFAULT_VIDEO_EXTENSIONS = frozenset({".mp4", ".mov", ".avi", ".mkv"})


@dataclass
class AppConfig:
    version: int = CONFIG_VERSION
    output_dir: str | None = None
    output_format: str | None = None
    extensions: list[str] | None = None
    ffmpeg: str | None = None
    ffprobe: str | None = None
    keep_partial_output: bool | None = None
    last_root: str | None = None


@dataclass(frozen=True)
class MixerSettings:
    """Resolved settings for one mixing request."""

    output_dir: Path = field(default_factory=default_output_dir)
    output_format: str = DEFAULT_OUTPUT_FORMAT
    extensions: frozenset[str] = DEFAULT_VIDEO_EXTENSIONS
    ffmpeg: str = "ffmpeg"
    ffprobe: str = "ffprobe"
    temp_dir: Path = field(default_factory=transient_dir)
    keep_partial_output: bool = False


def load_config(path: Path | None = None) -> tuple[AppConfig, str | None]:
    path = path or config_path()
    if not path.exists():
        return AppConfig(), None
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        return AppConfig(), f"Failed to read config: {path} ({exc})"
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        return AppConfig(), f"Config file is not valid JSON: {path}"
    if not isinstance(data, dict):
        return AppConfig(), f"Config file must be a JSON object: {path}"
    return _parse_config_data(data), None


def save_config(config: AppConfig, path: Path | None = None) -> str | None:
    path = path or config_path()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        return f"Failed to create config directory: {path.parent} ({exc})"
    payload = _config_to_dict(config)
    try:
        path.write_text(
            json.dumps(payload, ensure_ascii=True, indent=2),
            encoding="utf-8",
        )
    except OSError as exc:
        return f"Failed to write config: {path} ({exc})"
    return None


def resolve_settings(
    config: AppConfig,
    *,
    output_dir: Path | None = None,
    output_format: str | None = None,
    ffmpeg: str | None = None,
    ffprobe: str | None = None,
) -> MixerSettings:
    """Merge command line overrides over config values over defaults."""
    settings = MixerSettings()
    if output_dir is None and config.output_dir:
        output_dir = Path(config.output_dir).expanduser()
    if output_format is None and config.output_format:
        output_format = normalize_output_format(config.output_format)
        if not is_valid_output_format(output_format):
            logger.warning(
                "Ignoring invalid output_format %r in config; using %s",
                config.output_format,
                settings.output_format,
            )
            output_format = None
    return MixerSettings(
        output_dir=output_dir or settings.output_dir,
        output_format=normalize_output_format(output_format or settings.output_format),
        extensions=normalize_extensions(config.extensions) or settings.extensions,
        ffmpeg=ffmpeg or config.ffmpeg or settings.ffmpeg,
        ffprobe=ffprobe or config.ffprobe or settings.ffprobe,
        temp_dir=settings.temp_dir,
        keep_partial_output=bool(config.keep_partial_output),
    )


def normalize_output_format(value: str) -> str:
    return value.strip().lower().lstrip(".")


def is_valid_output_format(value: str) -> bool:
    if not value:
        return False
    return value.isalnum() and len(value) <= 6


def normalize_extensions(values: list[str] | None) -> frozenset[str]:
    if not values:
        return frozenset()
    result = set()
    for value in values:
        cleaned = value.strip().lower()
        if not cleaned or cleaned == ".":
            continue
        if not cleaned.startswith("."):
            cleaned = f".{cleaned}"
        result.add(cleaned)
    return frozenset(result)


def _parse_config_data(data: dict[str, Any]) -> AppConfig:
    return AppConfig(
        version=_as_int(data.get("version")) or CONFIG_VERSION,
        output_dir=_as_str(data.get("output_dir")),
        output_format=_as_str(data.get("output_format")),
        extensions=_as_str_list(data.get("extensions")),
        ffmpeg=_as_str(data.get("ffmpeg")),
        ffprobe=_as_str(data.get("ffprobe")),
        keep_partial_output=_as_bool(data.get("keep_partial_output")),
        last_root=_as_str(data.get("last_root")),
    )


def _config_to_dict(config: AppConfig) -> dict[str, Any]:
    data: dict[str, Any] = {"version": config.version}
    _set_if(data, "output_dir", config.output_dir)
    _set_if(data, "output_format", config.output_format)
    _set_if(data, "extensions", config.extensions)
    _set_if(data, "ffmpeg", config.ffmpeg)
    _set_if(data, "ffprobe", config.ffprobe)
    _set_if(data, "keep_partial_output", config.keep_partial_output)
    _set_if(data, "last_root", config.last_root)
    return data


def _set_if(data: dict[str, Any], key: str, value: Any) -> None:
    if value is not None:
        data[key] = value


def _as_str(value: Any) -> str | None:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return None


def _as_str_list(value: Any) -> list[str] | None:
    if not isinstance(value, list):
        return None
    items = [item.strip() for item in value if isinstance(item, str) and item.strip()]
    return items or None


def _as_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    return None


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None

from __future__ import annotations

import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator

from .errors import FilesystemError
from .paths import transient_dir

logger = logging.getLogger(__name__)

MANIFEST_PREFIX = "videomixer-"
MANIFEST_SUFFIX = ".txt"


def build_concat_list(paths: Iterable[Path]) -> str:
    lines = [f"file {_concat_quote(Path(path))}" for path in paths]
    return "\n".join(lines) + "\n" if lines else ""


def parse_concat_list(text: str) -> list[Path]:
    paths: list[Path] = []
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        keyword, _, rest = line.partition(" ")
        if keyword != "file":
            continue
        paths.append(Path(_concat_unquote(rest.strip())))
    return paths


def write_manifest(paths: Iterable[Path], directory: Path | None = None) -> Path:
    """Write a concat list to a fresh file in the transient directory."""
    directory = directory or transient_dir()
    content = build_concat_list(Path(path).absolute() for path in paths)
    try:
        fd, name = tempfile.mkstemp(
            prefix=MANIFEST_PREFIX,
            suffix=MANIFEST_SUFFIX,
            dir=directory,
        )
    except OSError as exc:
        raise FilesystemError(
            f"Failed to create concat list in {directory} ({exc})", directory
        ) from exc
    path = Path(name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as handle:
            handle.write(content)
    except OSError as exc:
        remove_manifest(path)
        raise FilesystemError(f"Failed to write concat list: {path} ({exc})", path) from exc
    logger.debug("wrote concat list %s", path)
    return path


def remove_manifest(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        return
    logger.debug("removed concat list %s", path)


@contextmanager
def manifest_file(paths: Iterable[Path], directory: Path | None = None) -> Iterator[Path]:
    path = write_manifest(paths, directory)
    try:
        yield path
    finally:
        remove_manifest(path)


def _concat_quote(path: Path) -> str:
    text = path.as_posix() if os.name == "nt" else str(path)
    text = text.replace("'", "'\\''")
    return f"'{text}'"


def _concat_unquote(token: str) -> str:
    # Inverse of _concat_quote: quoted runs joined by escaped quotes.
    result: list[str] = []
    i = 0
    while i < len(token):
        char = token[i]
        if char == "'":
            end = token.find("'", i + 1)
            if end < 0:
                raise ValueError(f"Unterminated quote in concat entry: {token}")
            result.append(token[i + 1 : end])
            i = end + 1
        elif char == "\\" and i + 1 < len(token):
            result.append(token[i + 1])
            i += 2
        else:
            result.append(char)
            i += 1
    return "".join(result)

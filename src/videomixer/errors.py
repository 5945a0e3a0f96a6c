from __future__ import annotations

from pathlib import Path


class MixerError(Exception):
    """Base class for errors that abort a mixing request."""


class FilesystemError(MixerError):
    def __init__(self, message: str, path: Path | None = None) -> None:
        super().__init__(message)
        self.path = path


class NoEligibleMediaError(MixerError):
    pass


class MixingJobError(MixerError):
    def __init__(
        self,
        message: str,
        diagnostic: str = "",
        returncode: int | None = None,
    ) -> None:
        super().__init__(message)
        self.diagnostic = diagnostic
        self.returncode = returncode

"""Exceptions raised by the dev-hud ingestion pipeline."""

from pathlib import Path


class DevHudError(Exception):
    """Base class for dev-hud errors."""


class WatcherError(DevHudError):
    """The watcher could not be started (e.g. projects dir is missing)."""


class ScannerError(DevHudError):
    """An unexpected I/O failure while reading one tracked file."""

    def __init__(self, path: Path, cause: OSError):
        super().__init__(f"I/O error reading {path}: {cause}")
        self.path = path
        self.cause = cause

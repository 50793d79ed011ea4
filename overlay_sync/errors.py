"""
Errors — Exception hierarchy for overlay-sync.

Fatal errors (configuration, ledger, lock) abort the run with a non-zero
exit code. Everything else is logged and processing continues.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class OverlaySyncError(Exception):
    """Base class for all overlay-sync errors."""


class ConfigurationError(OverlaySyncError):
    """Raised when configuration is missing or invalid."""

    def __init__(self, message: str, path: Optional[Path] = None):
        self.message = message
        self.path = path
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.path:
            return f"{self.path}: {self.message}"
        return self.message


class LedgerError(OverlaySyncError):
    """Raised when the processed-commit ledger cannot be loaded."""


class LedgerWriteError(LedgerError):
    """Raised when a ledger mark cannot be durably persisted."""


class StateLockError(OverlaySyncError):
    """Raised when another process already holds the state directory."""


class UnsafePathError(OverlaySyncError):
    """Raised when a change path would escape its working tree."""

    def __init__(self, path: str, root: Path):
        self.path = path
        self.root = root
        super().__init__(f"Path {path!r} escapes working tree {root}")

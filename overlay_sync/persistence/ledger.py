"""
Ledger — Durable record of processed commits per (role, branch).

State is stored in state.json in the state directory:

    {
      "base":    {"main": ["<hash>", ...]},
      "overlay": {"main": [...]},
      "merged":  {"main": [...]}
    }

The ledger only grows. Every mark is persisted before it returns, using
atomic write (write to temp, fsync, then replace) so a crash never leaves a
partially written file.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, List, Set, Tuple

from ..errors import LedgerError, LedgerWriteError
from ..models.changes import Role

logger = logging.getLogger(__name__)

LEDGER_FILENAME = "state.json"


class Ledger:
    """
    Append-only processed-commit ledger.

    Usage:
        ledger = Ledger.load(state_dir / "state.json")
        if not ledger.is_processed(Role.BASE, "main", commit):
            ...
            ledger.mark_processed(Role.BASE, "main", commit)
    """

    def __init__(self, path: Path, entries: Dict[Role, Dict[str, List[str]]] | None = None):
        self.path = path
        self._entries: Dict[Role, Dict[str, List[str]]] = {role: {} for role in Role}
        self._index: Dict[Tuple[Role, str], Set[str]] = {}
        for role, branches in (entries or {}).items():
            for branch, hashes in branches.items():
                self._entries[role][branch] = list(hashes)
                self._index[(role, branch)] = set(hashes)

    @classmethod
    def load(cls, path: Path) -> "Ledger":
        """
        Load the ledger from disk. A missing file gives an empty ledger.

        Raises:
            LedgerError: If the file exists but cannot be read or parsed
        """
        if not path.exists():
            logger.info(f"[ledger] No ledger at {path}, starting empty")
            return cls(path)

        try:
            with path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise LedgerError(f"Failed to load ledger {path}: {e}") from e

        ledger = cls(path, cls._parse(data, path))
        logger.debug(f"[ledger] Loaded {ledger.total()} commit(s) from {path}")
        return ledger

    @staticmethod
    def _parse(data: object, path: Path) -> Dict[Role, Dict[str, List[str]]]:
        if not isinstance(data, dict):
            raise LedgerError(f"Ledger {path} must be a JSON object")

        entries: Dict[Role, Dict[str, List[str]]] = {}
        for name, branches in data.items():
            role = Role.from_name(name)
            if role is None:
                logger.warning(f"[ledger] Ignoring unknown role '{name}' in {path}")
                continue
            if not isinstance(branches, dict):
                raise LedgerError(f"Ledger {path}: '{name}' must map branch → hashes")

            role_entries = entries.setdefault(role, {})
            for branch, hashes in branches.items():
                if not isinstance(hashes, list) or not all(isinstance(h, str) for h in hashes):
                    raise LedgerError(
                        f"Ledger {path}: '{name}.{branch}' must be a list of hashes"
                    )
                role_entries.setdefault(branch, []).extend(hashes)
        return entries

    def is_processed(self, role: Role, branch: str, commit: str) -> bool:
        """True if the commit has already been propagated for (role, branch)."""
        return commit in self._index.get((role, branch), ())

    def mark_processed(self, role: Role, branch: str, commit: str) -> None:
        """
        Append a commit and persist the ledger before returning.

        Raises:
            LedgerWriteError: If the ledger cannot be written. The mark is
                undone in memory so the commit is not considered processed.
        """
        hashes = self._entries[role].setdefault(branch, [])
        index = self._index.setdefault((role, branch), set())
        already = commit in index

        hashes.append(commit)
        index.add(commit)
        try:
            self.save()
        except OSError as e:
            hashes.pop()
            if not already:
                index.discard(commit)
            raise LedgerWriteError(
                f"Failed to persist ledger mark {role.value}/{branch}/{commit}: {e}"
            ) from e

        logger.debug(f"[ledger] Marked {role.value}/{branch}/{commit[:12]}")

    def processed(self, role: Role, branch: str) -> List[str]:
        """Processed hashes for (role, branch), in the order they were marked."""
        return list(self._entries[role].get(branch, []))

    def to_dict(self) -> Dict[str, Dict[str, List[str]]]:
        return {
            role.value: {branch: list(hashes) for branch, hashes in branches.items()}
            for role, branches in self._entries.items()
        }

    def save(self) -> None:
        """Atomically replace the ledger file with the current contents."""
        self.path.parent.mkdir(parents=True, exist_ok=True)

        fd, temp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent)
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self.to_dict(), f, indent=2)
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_name, self.path)
        except BaseException:
            try:
                os.unlink(temp_name)
            except FileNotFoundError:
                pass
            raise

    def total(self) -> int:
        return sum(len(h) for branches in self._entries.values() for h in branches.values())

    def summary(self) -> Dict[str, Dict[str, int]]:
        """Count of processed hashes per role and branch."""
        return {
            role.value: {branch: len(hashes) for branch, hashes in branches.items()}
            for role, branches in self._entries.items()
        }

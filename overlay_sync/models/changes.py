"""
Change Models — Repository roles and file-level changes.

A FileChange is derived fresh from version-control history on every pass
and is never persisted.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional


class Role(str, Enum):
    """The three fixed repository identities."""

    BASE = "base"
    OVERLAY = "overlay"
    MERGED = "merged"

    @classmethod
    def from_name(cls, name: str) -> Optional["Role"]:
        """Resolve a configured role name (or legacy alias) to a Role."""
        key = name.strip().lower()
        for role in cls:
            if role.value == key:
                return role
        return LEGACY_ROLE_ALIASES.get(key)


# Role keys written by earlier versions of the state files.
LEGACY_ROLE_ALIASES: Dict[str, Role] = {
    "repo1": Role.BASE,
    "repo2": Role.OVERLAY,
    "repo3": Role.MERGED,
}

# Fixed replay order within a branch.
ROLE_ORDER = (Role.BASE, Role.OVERLAY, Role.MERGED)


class FileAction(str, Enum):
    """Per-file status of a commit relative to its parent."""

    ADDED = "A"
    DELETED = "D"
    MODIFIED = "M"

    @classmethod
    def from_token(cls, token: str) -> Optional["FileAction"]:
        """Map a ``--name-status`` token to an action, or None if unsupported."""
        token = token.strip()
        for action in cls:
            if action.value == token:
                return action
        return None


@dataclass(frozen=True)
class FileChange:
    """A single file-level change within a commit."""

    action: FileAction
    path: str

    def __str__(self) -> str:
        return f"{self.action.value} {self.path}"

"""
Change Extraction — Turn one commit into an ordered list of FileChanges.
"""

from __future__ import annotations

import logging
from typing import List

from ..models.changes import FileAction, FileChange, Role
from ..vcs.git import VersionControl

logger = logging.getLogger(__name__)


class ChangeExtractor:
    """Reads a commit's file-status summary through the version-control collaborator."""

    def __init__(self, vcs: VersionControl):
        self.vcs = vcs

    def extract(self, role: Role, commit: str) -> List[FileChange]:
        """
        Extract the file-level changes of a commit.

        An unreadable commit yields an empty list; the caller still marks it
        processed so a permanently broken commit is not retried forever.
        """
        try:
            actions = self.vcs.commit_file_actions(role, commit)
        except Exception:
            logger.exception(f"[extract] Could not read {role.value} commit {commit[:12]}")
            return []

        changes: List[FileChange] = []
        for token, path in actions:
            if not path:
                continue
            action = FileAction.from_token(token)
            if action is None:
                logger.debug(
                    f"[extract] Ignoring '{token}' for {path} in {role.value} commit {commit[:12]}"
                )
                continue
            changes.append(FileChange(action=action, path=path))

        if not changes:
            logger.info(
                f"[extract] No file changes read for {role.value} commit {commit[:12]}",
                extra={"role": role.value, "commit": commit},
            )
        return changes

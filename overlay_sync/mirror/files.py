"""
File Mirror — Copy and remove files between role working trees.

Both primitives are idempotent: copying onto an identical file and
removing an absent file are no-ops.
"""

from __future__ import annotations

import errno
import filecmp
import logging
import os
import shutil
from pathlib import Path, PurePosixPath
from typing import Dict

from ..errors import UnsafePathError
from ..models.changes import Role

logger = logging.getLogger(__name__)


class FileMirror:
    """
    Whole-file mirror over the three working trees.

    Usage:
        mirror = FileMirror({Role.BASE: base, Role.OVERLAY: overlay, Role.MERGED: merged})
        if not mirror.exists(Role.OVERLAY, "docs/readme.md"):
            mirror.copy(Role.BASE, Role.MERGED, "docs/readme.md")
    """

    def __init__(self, roots: Dict[Role, Path]):
        missing = [r.value for r in Role if r not in roots]
        if missing:
            raise ValueError(f"No working tree for role(s): {', '.join(missing)}")
        self.roots = {role: Path(path) for role, path in roots.items()}

    def resolve(self, role: Role, path: str) -> Path:
        """
        Resolve a repository-relative path inside a role's tree.

        Raises:
            UnsafePathError: If the path is absolute or climbs out of the tree
        """
        root = self.roots[role]
        rel = PurePosixPath(path.replace("\\", "/"))
        if rel.is_absolute() or ".." in rel.parts or not rel.parts:
            raise UnsafePathError(path, root)
        return root.joinpath(*rel.parts)

    def exists(self, role: Role, path: str) -> bool:
        """True if the path is present in the role's working tree."""
        return self.resolve(role, path).exists()

    def copy(self, source: Role, target: Role, path: str) -> bool:
        """
        Copy a file from one tree to the same path in another.

        Returns True if the target was written.

        Raises:
            IsADirectoryError: If the target path is an existing directory
        """
        src = self.resolve(source, path)
        dst = self.resolve(target, path)

        if not src.is_file():
            logger.warning(
                f"[mirror] Source file does not exist: {path} in {source.value}"
            )
            return False

        if dst.is_file() and filecmp.cmp(src, dst, shallow=False):
            logger.debug(f"[mirror] {path} already identical in {target.value}")
            return False

        if dst.is_dir() and not dst.is_symlink():
            raise IsADirectoryError(errno.EISDIR, "Target path is a directory", str(dst))

        dst.parent.mkdir(parents=True, exist_ok=True)
        if dst.is_symlink():
            dst.unlink()
        shutil.copy2(src, dst)
        logger.info(f"[mirror] Copied {path}: {source.value} → {target.value}")
        return True

    def remove(self, role: Role, path: str) -> bool:
        """
        Remove a file from a role's tree if present.

        Returns True if something was removed.
        """
        target = self.resolve(role, path)
        if not os.path.lexists(target):
            return False

        target.unlink()
        logger.info(f"[mirror] Removed {path} from {role.value}")
        return True

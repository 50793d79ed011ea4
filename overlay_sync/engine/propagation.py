"""
Propagation — Apply the precedence rules for one commit's file changes.

Each (source role, action) pair maps to exactly one rule:

| Source  | Action   | Rule                                                     |
|---------|----------|----------------------------------------------------------|
| base    | added    | if absent from overlay: copy base → merged               |
| base    | deleted  | if absent from overlay: remove from merged               |
| base    | modified | if absent from overlay: copy base → merged               |
| overlay | added    | copy overlay → merged                                    |
| overlay | deleted  | if absent from base: remove from merged                  |
| overlay | modified | copy overlay → merged                                    |
| merged  | added    | copy merged → overlay                                    |
| merged  | deleted  | remove from base and from overlay                        |
| merged  | modified | if present in overlay: merged → overlay, else → base     |

Overlay wins over base whenever it has the path. Edits made in merged are
routed back to whichever of base/overlay owns the path, where presence in
overlay decides ownership. Existence is checked at the moment each rule
fires, never from an earlier snapshot.

## Usage

    engine = PropagationEngine(exists=mirror.exists, mirror=mirror)
    engine.propagate(Role.BASE, changes)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Protocol, Sequence, Tuple

from ..errors import UnsafePathError
from ..models.changes import FileAction, FileChange, Role

logger = logging.getLogger(__name__)

ExistsFn = Callable[[Role, str], bool]


class Mirror(Protocol):
    def copy(self, source: Role, target: Role, path: str) -> bool: ...

    def remove(self, role: Role, path: str) -> bool: ...


@dataclass
class PropagationStats:
    """Counts for one propagate() call."""

    copied: int = 0
    removed: int = 0
    suppressed: int = 0
    failed: int = 0


class _Context:
    """What a rule needs: existence checks, the mirror, and the stats to update."""

    def __init__(self, exists: ExistsFn, mirror: Mirror, stats: PropagationStats):
        self.exists = exists
        self.mirror = mirror
        self.stats = stats

    def copy(self, source: Role, target: Role, path: str) -> None:
        if self.mirror.copy(source, target, path):
            self.stats.copied += 1

    def remove(self, role: Role, path: str) -> None:
        if self.mirror.remove(role, path):
            self.stats.removed += 1

    def suppress(self, path: str, owner: Role) -> None:
        logger.debug(f"[propagate] {path} is owned by {owner.value}, not propagating")
        self.stats.suppressed += 1


Rule = Callable[[_Context, str], None]


# ─── Base ───────────────────────────────────────────────────


def _base_upsert(ctx: _Context, path: str) -> None:
    if ctx.exists(Role.OVERLAY, path):
        ctx.suppress(path, Role.OVERLAY)
        return
    ctx.copy(Role.BASE, Role.MERGED, path)


def _base_delete(ctx: _Context, path: str) -> None:
    if ctx.exists(Role.OVERLAY, path):
        ctx.suppress(path, Role.OVERLAY)
        return
    ctx.remove(Role.MERGED, path)


# ─── Overlay ────────────────────────────────────────────────


def _overlay_upsert(ctx: _Context, path: str) -> None:
    ctx.copy(Role.OVERLAY, Role.MERGED, path)


def _overlay_delete(ctx: _Context, path: str) -> None:
    # Base still has the path, so merged keeps it
    if ctx.exists(Role.BASE, path):
        ctx.suppress(path, Role.BASE)
        return
    ctx.remove(Role.MERGED, path)


# ─── Merged ─────────────────────────────────────────────────


def _merged_add(ctx: _Context, path: str) -> None:
    ctx.copy(Role.MERGED, Role.OVERLAY, path)


def _merged_delete(ctx: _Context, path: str) -> None:
    ctx.remove(Role.BASE, path)
    ctx.remove(Role.OVERLAY, path)


def _merged_modify(ctx: _Context, path: str) -> None:
    if ctx.exists(Role.OVERLAY, path):
        ctx.copy(Role.MERGED, Role.OVERLAY, path)
    else:
        ctx.copy(Role.MERGED, Role.BASE, path)


RULES: Dict[Tuple[Role, FileAction], Rule] = {
    (Role.BASE, FileAction.ADDED): _base_upsert,
    (Role.BASE, FileAction.DELETED): _base_delete,
    (Role.BASE, FileAction.MODIFIED): _base_upsert,
    (Role.OVERLAY, FileAction.ADDED): _overlay_upsert,
    (Role.OVERLAY, FileAction.DELETED): _overlay_delete,
    (Role.OVERLAY, FileAction.MODIFIED): _overlay_upsert,
    (Role.MERGED, FileAction.ADDED): _merged_add,
    (Role.MERGED, FileAction.DELETED): _merged_delete,
    (Role.MERGED, FileAction.MODIFIED): _merged_modify,
}


class PropagationEngine:
    """Mirrors one role's file changes onto the other two trees."""

    def __init__(self, exists: ExistsFn, mirror: Mirror):
        self.exists = exists
        self.mirror = mirror

    def propagate(self, role: Role, changes: Sequence[FileChange]) -> None:
        """
        Apply the rule for each change, in order.

        A failing change is logged and skipped; the rest of the commit still
        applies and nothing is rolled back.
        """
        stats = PropagationStats()
        ctx = _Context(self.exists, self.mirror, stats)

        for change in changes:
            rule = RULES[(role, change.action)]
            try:
                rule(ctx, change.path)
            except (OSError, UnsafePathError) as e:
                stats.failed += 1
                logger.warning(
                    f"[propagate] {role.value} {change}: {e}",
                    extra={"role": role.value},
                )

        logger.info(
            f"[propagate] {role.value}: {len(changes)} change(s) → "
            f"copied={stats.copied} removed={stats.removed} "
            f"suppressed={stats.suppressed} failed={stats.failed}"
        )

"""
Branch Orchestrator — The per-branch sync pass.

Each branch runs through a fixed sequence of stages, with no loops back:

    SYNC_WORKING_TREES
        → PROCESS_BASE_COMMITS
        → PROCESS_OVERLAY_COMMITS
        → PROCESS_MERGED_COMMITS
        → PERSIST_RESULTS
        → DONE

If any working tree cannot be brought to the branch, the pass stops after
SYNC_WORKING_TREES: no commit is replayed and nothing is committed there.

Base commits are replayed before overlay commits, and merged commits come
last, so within one pass overlay can override base and merged dominates
both. Each role's commits are replayed oldest first.

## Usage

    orchestrator = BranchOrchestrator(vcs, ledger, engine)
    results = orchestrator.run(config.branches)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

from ..models.changes import ROLE_ORDER, Role
from ..persistence.ledger import Ledger
from ..vcs.git import VersionControl
from .extractor import ChangeExtractor
from .propagation import PropagationEngine

logger = logging.getLogger(__name__)


class BranchStage(str, Enum):
    SYNC_WORKING_TREES = "sync_working_trees"
    PROCESS_BASE_COMMITS = "process_base_commits"
    PROCESS_OVERLAY_COMMITS = "process_overlay_commits"
    PROCESS_MERGED_COMMITS = "process_merged_commits"
    PERSIST_RESULTS = "persist_results"
    DONE = "done"


TRANSITIONS: Dict[BranchStage, BranchStage] = {
    BranchStage.SYNC_WORKING_TREES: BranchStage.PROCESS_BASE_COMMITS,
    BranchStage.PROCESS_BASE_COMMITS: BranchStage.PROCESS_OVERLAY_COMMITS,
    BranchStage.PROCESS_OVERLAY_COMMITS: BranchStage.PROCESS_MERGED_COMMITS,
    BranchStage.PROCESS_MERGED_COMMITS: BranchStage.PERSIST_RESULTS,
    BranchStage.PERSIST_RESULTS: BranchStage.DONE,
}

STAGE_ROLES: Dict[BranchStage, Role] = {
    BranchStage.PROCESS_BASE_COMMITS: Role.BASE,
    BranchStage.PROCESS_OVERLAY_COMMITS: Role.OVERLAY,
    BranchStage.PROCESS_MERGED_COMMITS: Role.MERGED,
}


@dataclass
class BranchResult:
    """Result of one branch pass."""

    branch: str
    stages: List[BranchStage] = field(default_factory=list)
    processed: Dict[Role, int] = field(default_factory=lambda: {r: 0 for r in Role})
    skipped: Dict[Role, int] = field(default_factory=lambda: {r: 0 for r in Role})
    sync_commits: Dict[Role, str] = field(default_factory=dict)
    unsynced: List[Role] = field(default_factory=list)

    @property
    def total_processed(self) -> int:
        return sum(self.processed.values())

    @property
    def synced(self) -> bool:
        """True when every working tree reached the branch."""
        return not self.unsynced

    def describe(self) -> str:
        if self.unsynced:
            roles = ", ".join(role.value for role in self.unsynced)
            return f"{self.branch}: skipped ({roles} not on branch)"
        parts = [
            f"{role.value}={self.processed[role]} new/{self.skipped[role]} skipped"
            for role in ROLE_ORDER
        ]
        return f"{self.branch}: " + ", ".join(parts)


def commit_message(role: Role, branch: str) -> str:
    return f"overlay-sync: propagate changes into {role.value} for branch {branch}"


STATE_COMMIT_MESSAGE = "overlay-sync: update processed-commit ledger"


class BranchOrchestrator:
    """Drives extraction, propagation, and ledger marks for each branch."""

    def __init__(
        self,
        vcs: VersionControl,
        ledger: Ledger,
        engine: PropagationEngine,
        extractor: Optional[ChangeExtractor] = None,
    ):
        self.vcs = vcs
        self.ledger = ledger
        self.engine = engine
        self.extractor = extractor or ChangeExtractor(vcs)
        self._handlers: Dict[BranchStage, Callable[[BranchStage, BranchResult], None]] = {
            BranchStage.SYNC_WORKING_TREES: self._sync_working_trees,
            BranchStage.PROCESS_BASE_COMMITS: self._process_commits,
            BranchStage.PROCESS_OVERLAY_COMMITS: self._process_commits,
            BranchStage.PROCESS_MERGED_COMMITS: self._process_commits,
            BranchStage.PERSIST_RESULTS: self._persist_results,
        }

    def run(self, branches: List[str]) -> List[BranchResult]:
        """Process every branch in order, then commit the state store."""
        results = [self.run_branch(branch) for branch in branches]

        self.vcs.commit_state_store(STATE_COMMIT_MESSAGE)
        logger.info(f"[orchestrator] Processing complete: {len(results)} branch(es)")
        return results

    def run_branch(self, branch: str) -> BranchResult:
        """Walk one branch through every stage."""
        logger.info(f"{'═' * 50}")
        logger.info(f"[orchestrator] Processing branch: {branch}")

        result = BranchResult(branch=branch)
        stage = BranchStage.SYNC_WORKING_TREES
        while stage is not BranchStage.DONE:
            self._handlers[stage](stage, result)
            result.stages.append(stage)
            stage = TRANSITIONS[stage] if result.synced else BranchStage.DONE

        logger.info(f"[orchestrator] Branch {result.describe()}")
        return result

    # ─── Stages ─────────────────────────────────────────────

    def _sync_working_trees(self, stage: BranchStage, result: BranchResult) -> None:
        for role in ROLE_ORDER:
            if not self.vcs.checkout_branch(role, result.branch):
                result.unsynced.append(role)

        if result.unsynced:
            roles = ", ".join(role.value for role in result.unsynced)
            logger.warning(
                f"[orchestrator] Skipping branch {result.branch}: {roles} could not be checked out",
                extra={"branch": result.branch},
            )

    def _process_commits(self, stage: BranchStage, result: BranchResult) -> None:
        role = STAGE_ROLES[stage]
        branch = result.branch

        for commit in self.vcs.list_commits(role, branch):
            if self.ledger.is_processed(role, branch, commit):
                logger.debug(f"[orchestrator] Skipping processed {role.value} commit {commit[:12]}")
                result.skipped[role] += 1
                continue

            logger.info(
                f"[orchestrator] Processing {role.value} commit {commit[:12]} on {branch}",
                extra={"role": role.value, "branch": branch, "commit": commit},
            )
            changes = self.extractor.extract(role, commit)
            self.engine.propagate(role, changes)
            self.ledger.mark_processed(role, branch, commit)
            result.processed[role] += 1

    def _persist_results(self, stage: BranchStage, result: BranchResult) -> None:
        branch = result.branch
        for role in ROLE_ORDER:
            head = self.vcs.commit_and_push_pending(role, commit_message(role, branch))
            if head is None:
                continue
            # Sync commits carry only propagated changes and are never replayed
            self.ledger.mark_processed(role, branch, head)
            result.sync_commits[role] = head

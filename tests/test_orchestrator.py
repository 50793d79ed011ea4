"""
Tests for the branch orchestrator.

These tests verify:
- Stage order per branch (sync → base → overlay → merged → persist)
- Replay skip: marked commits never reach the propagation engine
- End-to-end: a base commit lands in merged and is recorded in the ledger
- Sync commits created by the pass are recorded as processed
- Ledger write failures abort the run
- A branch some tree cannot check out is skipped entirely

Version control is scripted; file trees are real directories under tmp_path.
"""

from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple
from unittest import mock

import pytest

from overlay_sync.engine.orchestrator import (
    STATE_COMMIT_MESSAGE,
    BranchOrchestrator,
    BranchStage,
)
from overlay_sync.engine.propagation import PropagationEngine
from overlay_sync.errors import LedgerWriteError
from overlay_sync.mirror.files import FileMirror
from overlay_sync.models.changes import Role
from overlay_sync.persistence.ledger import Ledger


class ScriptedVcs:
    """Version control stand-in: commits are (hash, [(token, path), ...])."""

    def __init__(self):
        self.history: Dict[Tuple[Role, str], List[str]] = {}
        self.actions: Dict[str, List[Tuple[str, str]]] = {}
        self.sync_heads: Dict[Role, str] = {}
        self.events: List[Tuple] = []
        self.missing_branches: Set[Tuple[Role, str]] = set()

    def add_commit(self, role: Role, branch: str, commit: str, actions: List[Tuple[str, str]]):
        self.history.setdefault((role, branch), []).append(commit)
        self.actions[commit] = actions

    def list_commits(self, role: Role, branch: str) -> List[str]:
        self.events.append(("list", role, branch))
        return list(self.history.get((role, branch), []))

    def commit_file_actions(self, role: Role, commit: str) -> List[Tuple[str, str]]:
        return list(self.actions.get(commit, []))

    def checkout_branch(self, role: Role, branch: str) -> bool:
        self.events.append(("checkout", role, branch))
        return (role, branch) not in self.missing_branches

    def commit_and_push_pending(self, role: Role, message: str) -> Optional[str]:
        self.events.append(("commit", role, message))
        return self.sync_heads.pop(role, None)

    def commit_state_store(self, message: str) -> Optional[str]:
        self.events.append(("state", message))
        return None


@pytest.fixture
def roots(tmp_path: Path) -> Dict[Role, Path]:
    paths = {role: tmp_path / role.value for role in Role}
    for path in paths.values():
        path.mkdir()
    return paths


@pytest.fixture
def ledger(tmp_path: Path) -> Ledger:
    return Ledger.load(tmp_path / "state.json")


def make_orchestrator(vcs: ScriptedVcs, ledger: Ledger, roots: Dict[Role, Path]) -> BranchOrchestrator:
    mirror = FileMirror(roots)
    engine = PropagationEngine(exists=mirror.exists, mirror=mirror)
    return BranchOrchestrator(vcs, ledger, engine)


class TestStageOrder:
    def test_stages_run_in_fixed_order(self, roots, ledger):
        vcs = ScriptedVcs()
        result = make_orchestrator(vcs, ledger, roots).run_branch("main")

        assert result.stages == [
            BranchStage.SYNC_WORKING_TREES,
            BranchStage.PROCESS_BASE_COMMITS,
            BranchStage.PROCESS_OVERLAY_COMMITS,
            BranchStage.PROCESS_MERGED_COMMITS,
            BranchStage.PERSIST_RESULTS,
        ]

    def test_collaborator_call_order(self, roots, ledger):
        vcs = ScriptedVcs()
        make_orchestrator(vcs, ledger, roots).run_branch("main")

        kinds = [(e[0], e[1]) for e in vcs.events]
        assert kinds == [
            ("checkout", Role.BASE),
            ("checkout", Role.OVERLAY),
            ("checkout", Role.MERGED),
            ("list", Role.BASE),
            ("list", Role.OVERLAY),
            ("list", Role.MERGED),
            ("commit", Role.BASE),
            ("commit", Role.OVERLAY),
            ("commit", Role.MERGED),
        ]

    def test_branches_in_config_order_then_state_commit(self, roots, ledger):
        vcs = ScriptedVcs()
        results = make_orchestrator(vcs, ledger, roots).run(["main", "develop"])

        assert [r.branch for r in results] == ["main", "develop"]
        checkouts = [e[2] for e in vcs.events if e[0] == "checkout"]
        assert checkouts == ["main"] * 3 + ["develop"] * 3
        assert vcs.events[-1] == ("state", STATE_COMMIT_MESSAGE)


class TestEndToEnd:
    def test_base_add_reaches_merged(self, roots, ledger, tmp_path):
        """All trees empty, one base commit adding a.txt."""
        (roots[Role.BASE] / "a.txt").write_text("from base")
        vcs = ScriptedVcs()
        vcs.add_commit(Role.BASE, "main", "c1", [("A", "a.txt")])

        result = make_orchestrator(vcs, ledger, roots).run_branch("main")

        assert (roots[Role.MERGED] / "a.txt").read_text() == "from base"
        assert not (roots[Role.OVERLAY] / "a.txt").exists()
        assert result.processed[Role.BASE] == 1
        assert Ledger.load(tmp_path / "state.json").is_processed(Role.BASE, "main", "c1")

    def test_second_pass_changes_nothing(self, roots, ledger):
        (roots[Role.BASE] / "a.txt").write_text("from base")
        vcs = ScriptedVcs()
        vcs.add_commit(Role.BASE, "main", "c1", [("A", "a.txt")])
        orchestrator = make_orchestrator(vcs, ledger, roots)
        orchestrator.run_branch("main")

        with mock.patch.object(orchestrator.engine, "propagate") as propagate:
            result = orchestrator.run_branch("main")

        propagate.assert_not_called()
        assert result.processed[Role.BASE] == 0
        assert result.skipped[Role.BASE] == 1
        assert ledger.processed(Role.BASE, "main") == ["c1"]

    def test_overlay_overrides_base_within_one_pass(self, roots, ledger):
        """Base and overlay both add config/app.yaml; overlay runs later and wins."""
        (roots[Role.BASE] / "config").mkdir()
        (roots[Role.BASE] / "config" / "app.yaml").write_text("base: true\n")
        (roots[Role.OVERLAY] / "config").mkdir()
        (roots[Role.OVERLAY] / "config" / "app.yaml").write_text("overlay: true\n")
        vcs = ScriptedVcs()
        vcs.add_commit(Role.BASE, "main", "b1", [("A", "config/app.yaml")])
        vcs.add_commit(Role.OVERLAY, "main", "o1", [("A", "config/app.yaml")])

        make_orchestrator(vcs, ledger, roots).run_branch("main")

        merged = (roots[Role.MERGED] / "config" / "app.yaml").read_bytes()
        assert merged == (roots[Role.OVERLAY] / "config" / "app.yaml").read_bytes()

    def test_unreadable_commit_still_marked(self, roots, ledger):
        vcs = ScriptedVcs()
        vcs.add_commit(Role.MERGED, "main", "broken", [])

        make_orchestrator(vcs, ledger, roots).run_branch("main")

        assert ledger.is_processed(Role.MERGED, "main", "broken")

    def test_ledger_is_per_branch(self, roots, ledger):
        (roots[Role.BASE] / "a.txt").write_text("x")
        vcs = ScriptedVcs()
        vcs.add_commit(Role.BASE, "main", "c1", [("A", "a.txt")])
        vcs.add_commit(Role.BASE, "develop", "c1", [("A", "a.txt")])

        results = make_orchestrator(vcs, ledger, roots).run(["main", "develop"])

        assert [r.processed[Role.BASE] for r in results] == [1, 1]


class TestSyncCommits:
    def test_sync_commit_recorded_as_processed(self, roots, ledger):
        (roots[Role.BASE] / "a.txt").write_text("x")
        vcs = ScriptedVcs()
        vcs.add_commit(Role.BASE, "main", "c1", [("A", "a.txt")])
        vcs.sync_heads[Role.MERGED] = "sync-merged"

        result = make_orchestrator(vcs, ledger, roots).run_branch("main")

        assert result.sync_commits == {Role.MERGED: "sync-merged"}
        assert ledger.is_processed(Role.MERGED, "main", "sync-merged")

    def test_sync_commit_not_replayed_next_pass(self, roots, ledger):
        """Without this, merged's sync commit would copy a.txt into overlay."""
        (roots[Role.BASE] / "a.txt").write_text("x")
        vcs = ScriptedVcs()
        vcs.add_commit(Role.BASE, "main", "c1", [("A", "a.txt")])
        vcs.sync_heads[Role.MERGED] = "sync-merged"
        orchestrator = make_orchestrator(vcs, ledger, roots)
        orchestrator.run_branch("main")

        vcs.add_commit(Role.MERGED, "main", "sync-merged", [("A", "a.txt")])
        orchestrator.run_branch("main")

        assert not (roots[Role.OVERLAY] / "a.txt").exists()


class TestLedgerFailure:
    def test_write_failure_aborts_and_leaves_commit_unmarked(self, roots, ledger):
        (roots[Role.BASE] / "a.txt").write_text("x")
        vcs = ScriptedVcs()
        vcs.add_commit(Role.BASE, "main", "c1", [("A", "a.txt")])
        vcs.add_commit(Role.BASE, "main", "c2", [("M", "a.txt")])
        orchestrator = make_orchestrator(vcs, ledger, roots)

        with mock.patch("overlay_sync.persistence.ledger.os.replace", side_effect=OSError("read-only")):
            with pytest.raises(LedgerWriteError):
                orchestrator.run_branch("main")

        assert not ledger.is_processed(Role.BASE, "main", "c1")
        assert not any(e[0] == "commit" for e in vcs.events)


class TestCheckoutFailure:
    def _vcs_with_dev_missing_in_overlay(self, roots) -> ScriptedVcs:
        (roots[Role.MERGED] / "m.txt").write_text("from merged dev")
        vcs = ScriptedVcs()
        vcs.missing_branches.add((Role.OVERLAY, "dev"))
        vcs.add_commit(Role.MERGED, "dev", "m1", [("A", "m.txt")])
        return vcs

    def test_branch_skipped_after_sync_stage(self, roots, ledger):
        vcs = self._vcs_with_dev_missing_in_overlay(roots)

        result = make_orchestrator(vcs, ledger, roots).run_branch("dev")

        assert result.stages == [BranchStage.SYNC_WORKING_TREES]
        assert result.unsynced == [Role.OVERLAY]
        assert not result.synced
        assert result.describe() == "dev: skipped (overlay not on branch)"

    def test_nothing_propagated_committed_or_marked(self, roots, ledger):
        vcs = self._vcs_with_dev_missing_in_overlay(roots)

        make_orchestrator(vcs, ledger, roots).run_branch("dev")

        assert not (roots[Role.OVERLAY] / "m.txt").exists()
        assert not (roots[Role.BASE] / "m.txt").exists()
        assert not ledger.is_processed(Role.MERGED, "dev", "m1")
        assert [e[0] for e in vcs.events] == ["checkout"] * 3

    def test_other_branches_still_run(self, roots, ledger, caplog):
        vcs = self._vcs_with_dev_missing_in_overlay(roots)
        (roots[Role.BASE] / "a.txt").write_text("x")
        vcs.add_commit(Role.BASE, "main", "c1", [("A", "a.txt")])

        results = make_orchestrator(vcs, ledger, roots).run(["dev", "main"])

        assert [r.synced for r in results] == [False, True]
        assert results[1].processed[Role.BASE] == 1
        assert vcs.events[-1] == ("state", STATE_COMMIT_MESSAGE)
        assert "Skipping branch dev: overlay could not be checked out" in caplog.text

    def test_skipped_commits_replay_once_branch_exists(self, roots, ledger):
        vcs = self._vcs_with_dev_missing_in_overlay(roots)
        orchestrator = make_orchestrator(vcs, ledger, roots)
        orchestrator.run_branch("dev")

        vcs.missing_branches.clear()
        result = orchestrator.run_branch("dev")

        assert result.processed[Role.MERGED] == 1
        assert ledger.is_processed(Role.MERGED, "dev", "m1")

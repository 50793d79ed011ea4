"""
Git Collaborator — Thin wrapper over the git CLI for each role's working tree.

Every git call runs to completion via subprocess. A failing call is logged
and treated as an empty result; it never raises into the sync pass.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

from ..models.changes import Role

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 120
NETWORK_TIMEOUT = 600


class VersionControl(Protocol):
    """The operations the orchestrator and extractor depend on."""

    def list_commits(self, role: Role, branch: str) -> List[str]: ...

    def commit_file_actions(self, role: Role, commit: str) -> List[Tuple[str, str]]: ...

    def checkout_branch(self, role: Role, branch: str) -> bool: ...

    def commit_and_push_pending(self, role: Role, message: str) -> Optional[str]: ...

    def commit_state_store(self, message: str) -> Optional[str]: ...


def _git(
    repo: Path, *args: str, timeout: int = DEFAULT_TIMEOUT
) -> Optional[subprocess.CompletedProcess]:
    """Run a git command in a repo, logging failures. Returns None on failure."""
    cmd = ["git", *args]
    try:
        result = subprocess.run(
            cmd,
            cwd=str(repo),
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.warning(f"[git] {' '.join(args)} in {repo} failed: {e}")
        return None

    if result.returncode != 0:
        error = result.stderr.strip() or result.stdout.strip() or f"exit {result.returncode}"
        logger.warning(f"[git] {' '.join(args)} in {repo} failed: {error}")
        return None
    return result


def _git_output(repo: Path, *args: str, timeout: int = DEFAULT_TIMEOUT) -> str:
    """Run a git command and return its stdout, or '' on failure."""
    result = _git(repo, *args, timeout=timeout)
    return result.stdout if result else ""


def parse_name_status(output: str) -> List[Tuple[str, str]]:
    """
    Parse ``--name-status -z`` output into (action token, path) pairs.

    Fields are NUL-separated: "A\\0path\\0M\\0other\\0". Paths are taken
    verbatim, since -z output is never C-quoted. Rename and copy tokens
    (R<score>, C<score>) carry two paths; the new path is reported.
    """
    fields = output.split("\0")
    actions: List[Tuple[str, str]] = []
    i = 0
    while i < len(fields):
        token = fields[i].strip()
        i += 1
        if not token:
            continue

        path_count = 2 if token[0] in "RC" else 1
        paths = fields[i:i + path_count]
        i += path_count
        if len(paths) < path_count or not paths[-1]:
            continue
        actions.append((token, paths[-1]))
    return actions


def is_git_repo(path: Path) -> bool:
    return (path / ".git").exists()


class GitCollaborator:
    """
    Git operations over the role working trees in a state directory.

    Usage:
        git = GitCollaborator(state_dir, config.role_paths(state_dir))
        for commit in git.list_commits(Role.BASE, "main"):
            ...
    """

    def __init__(
        self,
        state_dir: Path,
        role_paths: Dict[Role, Path],
        push: bool = True,
    ):
        self.state_dir = Path(state_dir)
        self.role_paths = dict(role_paths)
        self.push = push

    def path(self, role: Role) -> Path:
        return self.role_paths[role]

    # ─── Setup ──────────────────────────────────────────────

    def clone_missing(self, repos: Dict[str, str]) -> List[str]:
        """
        Clone each configured repo whose working tree does not exist yet.

        Returns the names that were cloned.
        """
        cloned: List[str] = []
        for name, url in repos.items():
            local_path = self.state_dir / name
            if local_path.exists():
                logger.info(f"[git] Repository {name} already exists at {local_path}")
                continue

            logger.info(f"[git] Cloning {name} from {url} into {local_path}")
            if _git(self.state_dir, "clone", url, name, timeout=NETWORK_TIMEOUT):
                cloned.append(name)
            else:
                logger.warning(f"[git] Could not clone {name}; it will be treated as empty")
        return cloned

    # ─── History ────────────────────────────────────────────

    def list_commits(self, role: Role, branch: str) -> List[str]:
        """Commit hashes reachable from branch, oldest first."""
        output = _git_output(
            self.path(role), "log", "--reverse", "--pretty=format:%H", branch, "--"
        )
        return [line.strip() for line in output.splitlines() if line.strip()]

    def commit_file_actions(self, role: Role, commit: str) -> List[Tuple[str, str]]:
        """File-status summary of a commit relative to its parent."""
        output = _git_output(
            self.path(role),
            "-c", "core.quotePath=false",
            "show", "--no-renames", "--name-status", "-z", "--pretty=format:", commit,
        )
        return parse_name_status(output)

    # ─── Working trees ──────────────────────────────────────

    def current_branch(self, role: Role) -> Optional[str]:
        """Name of the branch HEAD points at, or None when detached or unreadable."""
        name = _git_output(self.path(role), "rev-parse", "--abbrev-ref", "HEAD").strip()
        if not name or name == "HEAD":
            return None
        return name

    def checkout_branch(self, role: Role, branch: str) -> bool:
        """
        Bring a role's working tree to the tip of branch (creating it if needed).

        Returns True only when HEAD ends up on branch. Fetch and pull failures
        are logged and do not count against the checkout.
        """
        repo = self.path(role)
        logger.info(f"[git] Checking out {branch} in {role.value}")

        _git(repo, "fetch", timeout=NETWORK_TIMEOUT)
        if _git(repo, "checkout", branch) is None:
            logger.info(f"[git] Branch {branch} not found locally in {role.value}, creating it")
            _git(repo, "checkout", "-b", branch, f"origin/{branch}")

        current = self.current_branch(role)
        if current != branch:
            logger.warning(
                f"[git] Could not check out {branch} in {role.value} "
                f"(HEAD is on {current or 'no branch'})"
            )
            return False

        _git(repo, "pull", timeout=NETWORK_TIMEOUT)
        return True

    def commit_and_push_pending(self, role: Role, message: str) -> Optional[str]:
        """Commit all pending changes in a role's tree. Returns the new HEAD, if any."""
        return self._commit_and_push(self.path(role), message)

    def commit_state_store(self, message: str) -> Optional[str]:
        """Commit the ledger and configuration when the state dir is itself a repo."""
        if not is_git_repo(self.state_dir):
            logger.debug(f"[git] {self.state_dir} is not a git repository, not committing state")
            return None

        paths = [
            name for name in ("state.json", "config.json", "config.yaml", "config.yml")
            if (self.state_dir / name).exists()
        ]
        if not paths:
            return None
        return self._commit_and_push(self.state_dir, message, paths)

    def _commit_and_push(
        self,
        repo: Path,
        message: str,
        paths: Sequence[str] = (),
    ) -> Optional[str]:
        status = _git(repo, "status", "--porcelain", "--", *paths)
        if status is None:
            return None
        if not status.stdout.strip():
            logger.info(f"[git] No changes to commit in {repo}")
            return None

        if _git(repo, "add", "-A", "--", *paths) is None:
            return None
        if _git(repo, "commit", "-m", message) is None:
            return None

        head = _git_output(repo, "rev-parse", "HEAD").strip() or None

        if self.push:
            if _git(repo, "push", timeout=NETWORK_TIMEOUT):
                logger.info(f"[git] Committed and pushed {head and head[:12]} in {repo}")
            else:
                logger.warning(f"[git] Committed {head and head[:12]} in {repo} but push failed")
        else:
            logger.info(f"[git] Committed {head and head[:12]} in {repo} (push disabled)")
        return head

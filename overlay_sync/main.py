"""
overlay-sync — CLI Entry Point

Usage:
    overlay-sync STATE_DIR [--no-push] [--log-level DEBUG] [--log-format json]
    python -m overlay_sync STATE_DIR

STATE_DIR holds config.json, the state.json ledger, and one working tree
per configured repository. Configuration, ledger, and lock problems are
fatal (exit 1); failures of individual git calls or file copies are logged
as warnings and the pass continues.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import click
from dotenv import load_dotenv

from .config.loader import SyncConfig, load_config
from .engine.orchestrator import BranchOrchestrator, BranchResult
from .engine.propagation import PropagationEngine
from .errors import OverlaySyncError
from .logging_config import FORMATTERS, setup_logging
from .mirror.files import FileMirror
from .persistence.ledger import LEDGER_FILENAME, Ledger
from .persistence.lock import StateDirLock
from .vcs.git import GitCollaborator

logger = logging.getLogger(__name__)


def run_sync(state_dir: Path, config: SyncConfig, push: bool = True) -> List[BranchResult]:
    """
    Run one full sync pass over every configured branch.

    Args:
        state_dir: The state directory
        config: Loaded configuration
        push: Push sync commits to each repo's remote

    Returns:
        One BranchResult per branch, in configuration order
    """
    role_paths = config.role_paths(state_dir)
    vcs = GitCollaborator(state_dir, role_paths, push=push)
    vcs.clone_missing(config.repos)

    ledger = Ledger.load(state_dir / LEDGER_FILENAME)
    mirror = FileMirror(role_paths)
    engine = PropagationEngine(exists=mirror.exists, mirror=mirror)

    orchestrator = BranchOrchestrator(vcs, ledger, engine)
    return orchestrator.run(config.branches)


@click.command()
@click.argument(
    "state_dir",
    type=click.Path(exists=True, file_okay=False, dir_okay=True, path_type=Path),
)
@click.option("--push/--no-push", default=True, help="Push sync commits to the remotes")
@click.option("--log-level", default=None, help="DEBUG, INFO, WARNING, ERROR (default: $LOG_LEVEL or INFO)")
@click.option(
    "--log-format",
    type=click.Choice(FORMATTERS),
    default=None,
    help="Log output format (default: $LOG_FORMAT or text)",
)
def cli(state_dir: Path, push: bool, log_level: Optional[str], log_format: Optional[str]) -> None:
    """Propagate committed changes between the base, overlay, and merged repos."""
    state_dir = state_dir.resolve()

    env_file = state_dir / ".env"
    if env_file.exists():
        load_dotenv(env_file)

    setup_logging(level=log_level, format_type=log_format)

    try:
        config = load_config(state_dir)
        with StateDirLock(state_dir):
            results = run_sync(state_dir, config, push=push)
    except OverlaySyncError as e:
        logger.error(str(e))
        raise click.ClickException(str(e)) from e

    for result in results:
        click.echo(f"  {result.describe()}")
    click.secho("✓ Processing complete", fg="green")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()

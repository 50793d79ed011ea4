"""
Config Loader — Load the sync configuration from the state directory.

The state directory holds the configuration, the ledger, and one working
tree per configured repository:

    state-dir/
    ├── config.json      (or config.yaml / config.yml)
    ├── state.json       processed-commit ledger
    ├── base/            working tree for the base role
    ├── overlay/
    └── merged/

## Example config.json

    {
      "branches": ["main", "develop"],
      "repos": {
        "base": "git@example.com:team/base.git",
        "overlay": "git@example.com:team/overlay.git",
        "merged": "git@example.com:team/merged.git"
      }
    }

The legacy role keys (repo1, repo2, repo3) are accepted as
aliases. Any other repo key is cloned but not synchronized.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from ..errors import ConfigurationError
from ..models.changes import Role

logger = logging.getLogger(__name__)

CONFIG_FILENAMES = ("config.json", "config.yaml", "config.yml")


class SyncConfig(BaseModel):
    """The config.json schema."""

    branches: List[str] = Field(min_length=1)
    repos: Dict[str, str]

    @field_validator("branches")
    @classmethod
    def _branches_not_blank(cls, value: List[str]) -> List[str]:
        for branch in value:
            if not branch.strip():
                raise ValueError("branch names must not be blank")
        return value

    @model_validator(mode="after")
    def _all_roles_present(self) -> "SyncConfig":
        seen: Dict[Role, str] = {}
        for name in self.repos:
            role = Role.from_name(name)
            if role is None:
                continue
            if role in seen:
                raise ValueError(
                    f"repos '{seen[role]}' and '{name}' both map to role {role.value}"
                )
            seen[role] = name

        missing = [r.value for r in Role if r not in seen]
        if missing:
            raise ValueError(f"repos is missing role(s): {', '.join(missing)}")
        return self

    def role_names(self) -> Dict[Role, str]:
        """Map each role to the repo key it is configured under."""
        names: Dict[Role, str] = {}
        for name in self.repos:
            role = Role.from_name(name)
            if role is not None:
                names[role] = name
        return names

    def role_paths(self, state_dir: Path) -> Dict[Role, Path]:
        """Working tree path of each role (a subdirectory named after its key)."""
        return {role: state_dir / name for role, name in self.role_names().items()}

    def extra_repos(self) -> Dict[str, str]:
        """Repos that are cloned but play no role in propagation."""
        return {
            name: url for name, url in self.repos.items()
            if Role.from_name(name) is None
        }


def find_config_file(state_dir: Path) -> Optional[Path]:
    """Return the first configuration file present in the state directory."""
    for filename in CONFIG_FILENAMES:
        path = state_dir / filename
        if path.is_file():
            return path
    return None


def _read_raw(path: Path) -> Any:
    with path.open("r", encoding="utf-8") as f:
        if path.suffix == ".json":
            return json.load(f)
        return yaml.safe_load(f)


def load_config(state_dir: Path) -> SyncConfig:
    """
    Load and validate the configuration from a state directory.

    Args:
        state_dir: Path to the state directory

    Returns:
        Validated SyncConfig

    Raises:
        ConfigurationError: If the file is missing, unparseable, or invalid
    """
    path = find_config_file(state_dir)
    if path is None:
        raise ConfigurationError(
            f"Missing configuration file (looked for {', '.join(CONFIG_FILENAMES)})",
            path=state_dir,
        )

    logger.debug(f"Loading configuration from {path}")
    try:
        data = _read_raw(path)
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Could not parse configuration: {e}", path=path) from e

    if not isinstance(data, dict):
        raise ConfigurationError("Configuration must be a mapping", path=path)

    try:
        config = SyncConfig(**data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}", path=path) from e

    logger.info(
        f"Loaded configuration: {len(config.branches)} branch(es), "
        f"{len(config.repos)} repo(s)"
    )
    return config

"""Run configuration."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from git_main.errors import ConfigError

TRUTHY = {"1", "true", "yes", "on"}


def _default_git_env() -> dict[str, str]:
    # git output is parsed for "Already up to date" and ": gone]"
    return {"LC_ALL": "C"}


@dataclass
class GitMainConfig:
    """Settings for a single git-main run.

    Attributes:
        path: Directory inside the repository to operate on
        debug: Log every git command and workflow stage
        stale_after_months: Minimum age of a remote-gone branch before it is offered for deletion
        max_stale_selection: Maximum number of stale branches offered in one prompt
        random_seed: Seed for picking stale branches when there are too many
        git_env: Environment overrides for every git process
    """

    path: Path = Path(".")
    debug: bool = False
    stale_after_months: int = 1
    max_stale_selection: int = 5
    random_seed: Optional[int] = None
    git_env: dict[str, str] = field(default_factory=_default_git_env)


def _normalize_empty(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _parse_int(name: str, raw: str, minimum: int) -> int:
    try:
        value = int(raw)
    except ValueError as err:
        raise ConfigError(f"Invalid {name}: expected an integer, got '{raw}'") from err
    if value < minimum:
        raise ConfigError(f"Invalid {name}: must be >= {minimum}")
    return value


def load_config(env: Mapping[str, str], path: Path = Path(".")) -> GitMainConfig:
    """Build the run configuration from environment variables."""
    config = GitMainConfig(path=path)

    debug = _normalize_empty(env.get("GIT_MAIN_DEBUG"))
    if debug is not None:
        config.debug = debug.lower() in TRUTHY

    stale_months = _normalize_empty(env.get("GIT_MAIN_STALE_MONTHS"))
    if stale_months is not None:
        config.stale_after_months = _parse_int("GIT_MAIN_STALE_MONTHS", stale_months, minimum=0)

    max_stale = _normalize_empty(env.get("GIT_MAIN_MAX_STALE"))
    if max_stale is not None:
        config.max_stale_selection = _parse_int("GIT_MAIN_MAX_STALE", max_stale, minimum=1)

    seed = _normalize_empty(env.get("GIT_MAIN_RANDOM_SEED"))
    if seed is not None:
        config.random_seed = _parse_int("GIT_MAIN_RANDOM_SEED", seed, minimum=0)

    return config

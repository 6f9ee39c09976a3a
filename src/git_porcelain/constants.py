import os
from pathlib import Path

"""Global constants and configuration path definitions for git-porcelain.

This module defines the filesystem layout (adhering to XDG standards where applicable),
application identifiers, and the default Git behaviour used across the package.
"""

# --- Identity ---
APP_NAME = "git-porcelain"
"""str: The human-readable application name (also the logger name)."""

# --- Paths ---
_XDG_STATE = os.environ.get("XDG_STATE_HOME")
_BASE_STATE = Path(_XDG_STATE) if _XDG_STATE else Path.home() / ".local/state"

STATE_DIR = _BASE_STATE / "git-porcelain"
"""Path: The directory for runtime state data (logs)."""

LOG_FILE = STATE_DIR / "git-porcelain.log"
"""Path: The file path for the CLI log."""

# --- Configuration Paths ---
CONFIG_DIR: Path = Path.home() / ".config/git-porcelain"
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = CONFIG_DIR / "config.toml"
"""Path: The main configuration file path."""

LOCAL_CONFIG_NAME = ".git-porcelain.toml"
"""str: Per-repository configuration file name."""

PYPROJECT_SECTION = "tool.git-porcelain"
"""str: The pyproject.toml table holding per-repository configuration."""

# --- Git / Logic Constants ---
DEFAULT_SUBMODULE_DEPTH = 3
"""int: How many levels of nested submodules a walk descends into."""

GITLINK_MODE = "160000"
"""str: The index file mode git records for submodule entries."""

ZERO_SHA = "0" * 40
"""str: The null object id; as a log start it means "from the root"."""

DEFAULT_REMOTE = "origin"

DEFAULT_SSH_OPTIONS = {"StrictHostKeyChecking": "no"}
"""dict[str, str]: ssh -o options applied when no others are configured."""

RESET_MODES = ("hard", "keep", "merge", "mixed", "soft")
"""tuple[str, ...]: Modes accepted by `git reset`."""

MERGE_STRATEGIES = {
    "ours": ["-s", "ours"],
    "resolve": ["-s", "resolve"],
    "ort": ["-s", "ort"],
    "theirs": ["-X", "theirs"],
}
"""dict[str, list[str]]: Merge strategy names mapped to `git merge` flags."""

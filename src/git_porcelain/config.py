import logging
import re
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from .cleanup import CleanOptions
from .constants import (
    APP_NAME,
    CONFIG_FILE,
    DEFAULT_REMOTE,
    DEFAULT_SSH_OPTIONS,
    DEFAULT_SUBMODULE_DEPTH,
    LOCAL_CONFIG_NAME,
    PYPROJECT_SECTION,
)
from .transport import TransportConfig

logger = logging.getLogger(APP_NAME)


def parse_size(value: int | str) -> int:
    """Converts human-readable size strings (e.g., '100MB') to bytes."""
    if isinstance(value, int):
        return value
    match = re.match(r"^(\d+(?:\.\d+)?)\s*([kmg]b?)$", str(value).strip().lower())
    if not match:
        raise ValueError(f"Invalid size format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "k": 1024,
        "kb": 1024,
        "m": 1024**2,
        "mb": 1024**2,
        "g": 1024**3,
        "gb": 1024**3,
    }
    return int(num * multiplier[unit])


def parse_depth(value: int | str) -> int:
    """Validates a submodule walk depth (a positive integer)."""
    if isinstance(value, bool):
        raise ValueError(f"Invalid depth '{value}'")
    try:
        depth = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid depth '{value}'") from None
    if depth < 1:
        raise ValueError(f"Depth must be at least 1, got {depth}")
    return depth


def parse_bool(value: Any) -> bool:
    """Accepts only real TOML booleans."""
    if not isinstance(value, bool):
        raise ValueError(f"Expected true or false, got '{value}'")
    return value


@dataclass
class CoreConfig:
    """Core settings.

    Attributes:
        remote_name (str): The remote submodule fetches use.
    """

    remote_name: str = DEFAULT_REMOTE


@dataclass
class SubmodulesConfig:
    """Submodule walk settings.

    Attributes:
        max_depth (int): How many nested levels a walk descends into.
    """

    max_depth: int = DEFAULT_SUBMODULE_DEPTH


@dataclass
class CleanConfig:
    """Defaults for `clean`.

    Attributes:
        remove_untracked_dirs (bool): Remove untracked directories too.
        force_non_empty_dirs (bool): Force-remove paths git cannot delete.
        ignore_excluded (bool): Keep files matched by ignore rules.
    """

    remove_untracked_dirs: bool = False
    force_non_empty_dirs: bool = False
    ignore_excluded: bool = True


@dataclass
class SshConfig:
    """SSH transport settings.

    Attributes:
        identity_files (list[str]): Private keys to offer (appended across layers).
        options (dict[str, str]): `ssh -o` options (merged across layers).
        exclusive (bool): Offer only the configured identities.
    """

    identity_files: list[str] = field(default_factory=list)
    options: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_SSH_OPTIONS))
    exclusive: bool = False


@dataclass
class LimitsConfig:
    """Resource limitation settings.

    Attributes:
        max_log_size (int): Max bytes for log files before rotation.
    """

    max_log_size: int = 5 * 1024 * 1024


_PARSERS = {
    "max_log_size": parse_size,
    "max_depth": parse_depth,
    "remove_untracked_dirs": parse_bool,
    "force_non_empty_dirs": parse_bool,
    "ignore_excluded": parse_bool,
    "exclusive": parse_bool,
}


@dataclass
class Config:
    """Global configuration aggregator.

    Attributes:
        core (CoreConfig): Core settings.
        submodules (SubmodulesConfig): Submodule walk settings.
        clean (CleanConfig): Clean defaults.
        ssh (SshConfig): SSH transport settings.
        limits (LimitsConfig): Resource limits.
    """

    core: CoreConfig = field(default_factory=CoreConfig)
    submodules: SubmodulesConfig = field(default_factory=SubmodulesConfig)
    clean: CleanConfig = field(default_factory=CleanConfig)
    ssh: SshConfig = field(default_factory=SshConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)

    # Cache for the base global configuration
    _global_cache: "Config | None" = None

    @classmethod
    def load(cls, repo_path: Path | None = None) -> "Config":
        """Loads and merges configuration from defaults, global, and local sources.

        Args:
            repo_path (Path | None): The repository root to search for local config.

        Returns:
            Config: The fully merged configuration object.
        """
        # 1. Load or Retrieve Global Config
        if cls._global_cache is None:
            instance = cls()
            if CONFIG_FILE.exists():
                instance._merge_from_file(CONFIG_FILE)
            cls._global_cache = instance

        # Copy every section so local merges never leak into the cache
        cached = cls._global_cache
        instance = cls(
            core=replace(cached.core),
            submodules=replace(cached.submodules),
            clean=replace(cached.clean),
            ssh=replace(
                cached.ssh,
                identity_files=list(cached.ssh.identity_files),
                options=dict(cached.ssh.options),
            ),
            limits=replace(cached.limits),
        )

        # 2. Load Local Config (if applicable)
        if repo_path:
            local_toml = repo_path / LOCAL_CONFIG_NAME
            pyproject = repo_path / "pyproject.toml"

            if local_toml.exists():
                instance._merge_from_file(local_toml)
            elif pyproject.exists():
                instance._merge_from_file(pyproject, section=PYPROJECT_SECTION)

        return instance

    def transport(self) -> TransportConfig:
        """Builds the SSH transport settings for remote operations."""
        return TransportConfig(
            identity_files=tuple(self.ssh.identity_files),
            options=dict(self.ssh.options),
            exclusive=self.ssh.exclusive,
        )

    def clean_options(self, paths: list[str] | None = None, **overrides: Any) -> CleanOptions:
        """Builds clean options from the `[clean]` section.

        Args:
            paths (list[str] | None): Paths to restrict cleaning to.
            **overrides: Option values that take precedence (None is ignored).
        """
        values = {
            "remove_untracked_dirs": self.clean.remove_untracked_dirs,
            "force_non_empty_dirs": self.clean.force_non_empty_dirs,
            "ignore_excluded": self.clean.ignore_excluded,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return CleanOptions(paths=frozenset(paths or ()), **values)

    def _merge_from_file(self, path: Path, section: str | None = None) -> None:
        """Parses a TOML file and merges it into the current instance.

        Args:
            path (Path): Path to the TOML file.
            section (str | None): Dot-separated section path (e.g., 'tool.git-porcelain').
        """
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)

            if section:
                for key in section.split("."):
                    data = data.get(key, {})

            if not data:
                return

            # Merge Logic
            if "core" in data:
                self.core = self._update_dataclass("core", self.core, data["core"])
            if "submodules" in data:
                self.submodules = self._update_dataclass(
                    "submodules", self.submodules, data["submodules"]
                )
            if "clean" in data:
                self.clean = self._update_dataclass("clean", self.clean, data["clean"])
            if "limits" in data:
                self.limits = self._update_dataclass(
                    "limits", self.limits, data["limits"]
                )
            if "ssh" in data:
                # Collections accumulate across layers instead of being replaced
                ssh = dict(data["ssh"])
                new_identities = ssh.pop("identity_files", [])
                new_options = ssh.pop("options", {})
                self.ssh = self._update_dataclass("ssh", self.ssh, ssh)
                if new_identities:
                    self.ssh.identity_files.extend(new_identities)
                    self.ssh.identity_files = list(
                        dict.fromkeys(self.ssh.identity_files)
                    )
                if new_options:
                    self.ssh.options.update(
                        {str(k): str(v) for k, v in new_options.items()}
                    )

        except tomllib.TOMLDecodeError as e:
            logger.error(f"Config syntax error in {path}: {e}")
        except Exception as e:
            logger.warning(f"Failed to load config from {path}: {e}")

    @staticmethod
    def _update_dataclass(section_name: str, instance: Any, updates: dict) -> Any:
        """Updates a dataclass, warning on invalid keys and parsing human-readable formats."""
        valid_keys = instance.__dataclass_fields__.keys()
        filtered_updates = {}

        # 1. Catch and warn about typos / unknown keys
        invalid_keys = set(updates.keys()) - set(valid_keys)
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in [{section_name}]: {', '.join(sorted(invalid_keys))}. Ignoring."
            )

        # 2. Process valid keys
        for k, v in updates.items():
            if k not in valid_keys:
                continue

            try:
                parser = _PARSERS.get(k)
                filtered_updates[k] = parser(v) if parser else v
            except ValueError as e:
                logger.warning(
                    f"Config error in [{section_name}].{k}: {e}. Falling back to default."
                )

        return replace(instance, **filtered_updates)

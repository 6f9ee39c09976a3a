"""Tests for the configuration management subsystem."""

import logging
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from git_porcelain.cleanup import CleanOptions
from git_porcelain.config import Config, parse_bool, parse_depth, parse_size


@pytest.fixture(autouse=True)
def clear_config_cache(tmp_path: Path, mocker: MagicMock) -> Any:
    """Ensures every test starts with a clean config cache and no global file."""
    mocker.patch("git_porcelain.config.CONFIG_FILE", tmp_path / "missing.toml")
    Config._global_cache = None
    yield
    Config._global_cache = None


def test_config_defaults() -> None:
    """Verifies that the configuration initializes with sensible defaults."""
    conf = Config()
    assert conf.core.remote_name == "origin"
    assert conf.submodules.max_depth == 3
    assert conf.clean.force_non_empty_dirs is False
    assert conf.ssh.identity_files == []
    assert conf.ssh.options == {"StrictHostKeyChecking": "no"}


def test_config_load_merges_layers(tmp_path: Path, mocker: MagicMock) -> None:
    """Verifies the cascading merge logic (Defaults -> Global -> Local).

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
        mocker (MagicMock): Pytest fixture for mocking.
    """
    global_config_path = tmp_path / "global_config.toml"
    global_config_path.write_text(
        '[core]\nremote_name = "upstream"\n'
        "[submodules]\nmax_depth = 5\n"
        '[ssh]\nidentity_files = ["~/.ssh/id_work"]\n'
        'options = { UserKnownHostsFile = "/dev/null" }\n'
    )

    local_toml = tmp_path / ".git-porcelain.toml"
    local_toml.write_text(
        "[submodules]\nmax_depth = 2\n"
        '[ssh]\nidentity_files = ["~/.ssh/id_deploy", "~/.ssh/id_work"]\n'
        "exclusive = true\n"
    )

    mocker.patch("git_porcelain.config.CONFIG_FILE", global_config_path)

    conf = Config.load(repo_path=tmp_path)

    assert conf.core.remote_name == "upstream"  # From Global
    assert conf.submodules.max_depth == 2  # Local overrides Global
    assert conf.ssh.identity_files == ["~/.ssh/id_work", "~/.ssh/id_deploy"]
    assert conf.ssh.options == {
        "StrictHostKeyChecking": "no",
        "UserKnownHostsFile": "/dev/null",
    }
    assert conf.ssh.exclusive is True


def test_local_layer_does_not_leak_into_cache(tmp_path: Path) -> None:
    repo_a = tmp_path / "a"
    repo_a.mkdir()
    (repo_a / ".git-porcelain.toml").write_text('[ssh]\nidentity_files = ["k"]\n')
    repo_b = tmp_path / "b"
    repo_b.mkdir()

    assert Config.load(repo_path=repo_a).ssh.identity_files == ["k"]
    assert Config.load(repo_path=repo_b).ssh.identity_files == []


def test_config_load_from_pyproject(tmp_path: Path) -> None:
    """Verifies that configuration can be loaded from pyproject.toml."""
    pyproject = tmp_path / "pyproject.toml"
    pyproject.write_text(
        '[tool.git-porcelain.core]\nremote_name = "backup"\n'
        "[tool.git-porcelain.clean]\nforce_non_empty_dirs = true\n"
    )

    conf = Config.load(repo_path=tmp_path)

    assert conf.core.remote_name == "backup"
    assert conf.clean.force_non_empty_dirs is True


def test_dedicated_file_wins_over_pyproject(tmp_path: Path) -> None:
    (tmp_path / "pyproject.toml").write_text(
        '[tool.git-porcelain.core]\nremote_name = "backup"\n'
    )
    (tmp_path / ".git-porcelain.toml").write_text('[core]\nremote_name = "mirror"\n')

    assert Config.load(repo_path=tmp_path).core.remote_name == "mirror"


def test_parse_size() -> None:
    """Verifies that human-readable sizes are correctly converted to bytes."""
    assert parse_size(100) == 100
    assert parse_size("100kb") == 102400
    assert parse_size("10 MB") == 10485760
    assert parse_size("1.5gb") == int(1.5 * 1024**3)

    with pytest.raises(ValueError, match=r"Invalid size format '100 bits'"):
        parse_size("100 bits")


def test_parse_depth() -> None:
    assert parse_depth(3) == 3
    assert parse_depth("7") == 7

    for bad in (0, -1, "deep", True):
        with pytest.raises(ValueError):
            parse_depth(bad)


def test_parse_bool() -> None:
    assert parse_bool(False) is False
    with pytest.raises(ValueError, match="Expected true or false"):
        parse_bool("yes")


def test_config_invalid_keys_and_values(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    """Verifies that unknown keys are ignored and invalid values fallback to defaults.

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
        caplog (pytest.LogCaptureFixture): Pytest fixture for capturing logs.
    """
    caplog.set_level(logging.WARNING)

    local_toml = tmp_path / ".git-porcelain.toml"
    local_toml.write_text(
        "[submodules]\n"
        "max_depth = 0\n"
        'fake_setting = "ignored"\n'
        "[limits]\n"
        'max_log_size = "10 gallons"\n'
    )

    conf = Config.load(repo_path=tmp_path)

    assert conf.submodules.max_depth == 3
    assert conf.limits.max_log_size == 5242880

    assert "Unknown config keys in [submodules]: fake_setting" in caplog.text
    assert "Config error in [submodules].max_depth: Depth must be at least 1" in caplog.text
    assert "Config error in [limits].max_log_size: Invalid size format" in caplog.text


def test_config_syntax_error_is_logged(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    (tmp_path / ".git-porcelain.toml").write_text("[core\nremote_name = \n")

    conf = Config.load(repo_path=tmp_path)

    assert conf.core.remote_name == "origin"
    assert "Config syntax error" in caplog.text


def test_transport_from_ssh_section() -> None:
    conf = Config()
    conf.ssh.identity_files = ["/keys/a"]
    conf.ssh.exclusive = True

    transport = conf.transport()

    assert transport.identity_files == ("/keys/a",)
    assert "IdentitiesOnly=yes" in transport.ssh_command()


def test_clean_options_overrides() -> None:
    conf = Config()
    conf.clean.force_non_empty_dirs = True

    options = conf.clean_options(["build/"], remove_untracked_dirs=True, ignore_excluded=None)

    assert options == CleanOptions(
        remove_untracked_dirs=True,
        force_non_empty_dirs=True,
        ignore_excluded=True,
        paths=frozenset({"build/"}),
    )

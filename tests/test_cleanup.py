"""Tests for the resilient working-tree clean."""

import subprocess
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from conftest import requires_git
from git_porcelain.cleanup import CleanOptions, clean, force_delete
from git_porcelain.errors import (
    CouldNotDeleteFile,
    GitError,
    RepeatedDeletionFailure,
)
from git_porcelain.git_wrapper import GitRepo


def _engine(tmp_path: Path, *outcomes: object) -> MagicMock:
    """A repository whose successive `git clean` runs yield `outcomes`."""
    repo = MagicMock(spec=GitRepo)
    repo.path = tmp_path
    repo.clean_untracked.side_effect = list(outcomes)
    return repo


def test_clean_passes_options_to_engine(tmp_path: Path) -> None:
    """build/ holding only ignored files: git removes nothing, so neither do we."""
    repo = _engine(tmp_path, set())
    options = CleanOptions(remove_untracked_dirs=True, paths=frozenset({"build/"}))

    assert clean(repo, options) == set()
    repo.clean_untracked.assert_called_once_with(
        dirs=True, ignore=True, paths=frozenset({"build/"})
    )


def test_clean_defaults(tmp_path: Path) -> None:
    repo = _engine(tmp_path, {"a.txt"})

    assert clean(repo) == {"a.txt"}
    repo.clean_untracked.assert_called_once_with(
        dirs=False, ignore=True, paths=frozenset()
    )


def test_deletion_failure_propagates_without_force(
    tmp_path: Path, mocker: MagicMock
) -> None:
    mock_delete = mocker.patch("git_porcelain.cleanup.force_delete")
    failure = CouldNotDeleteFile("a/b")
    repo = _engine(tmp_path, failure)

    with pytest.raises(CouldNotDeleteFile) as exc:
        clean(repo, CleanOptions(remove_untracked_dirs=True))

    assert exc.value is failure
    assert not isinstance(exc.value, RepeatedDeletionFailure)
    mock_delete.assert_not_called()


def test_force_deletes_once_then_returns_retry_result(tmp_path: Path) -> None:
    stuck = tmp_path / "a" / "b"
    stuck.mkdir(parents=True)
    (stuck / "locked.bin").write_bytes(b"\x00")
    repo = _engine(tmp_path, CouldNotDeleteFile("a/b"), {"a/"})

    result = clean(repo, CleanOptions(remove_untracked_dirs=True, force_non_empty_dirs=True))

    assert result == {"a/"}
    assert not stuck.exists()
    assert repo.clean_untracked.call_count == 2


def test_repeated_failure_on_same_path_is_fatal(
    tmp_path: Path, mocker: MagicMock
) -> None:
    mock_delete = mocker.patch("git_porcelain.cleanup.force_delete")
    second = CouldNotDeleteFile("a/b")
    repo = _engine(tmp_path, CouldNotDeleteFile("a/b"), second, {"never"})

    with pytest.raises(RepeatedDeletionFailure) as exc:
        clean(repo, CleanOptions(force_non_empty_dirs=True))

    assert exc.value.path == "a/b"
    assert exc.value.__cause__ is second
    assert isinstance(exc.value, CouldNotDeleteFile)
    mock_delete.assert_called_once_with(tmp_path / "a/b")
    assert repo.clean_untracked.call_count == 2


def test_distinct_paths_are_each_forced_once(tmp_path: Path, mocker: MagicMock) -> None:
    mock_delete = mocker.patch("git_porcelain.cleanup.force_delete")
    repo = _engine(
        tmp_path, CouldNotDeleteFile("x"), CouldNotDeleteFile("y"), {"x", "y"}
    )

    assert clean(repo, CleanOptions(force_non_empty_dirs=True)) == {"x", "y"}
    assert [c.args[0] for c in mock_delete.call_args_list] == [
        tmp_path / "x",
        tmp_path / "y",
    ]


def test_other_engine_errors_are_never_retried(
    tmp_path: Path, mocker: MagicMock
) -> None:
    mock_delete = mocker.patch("git_porcelain.cleanup.force_delete")
    repo = _engine(tmp_path, GitError("fatal: bad pathspec"), set())

    with pytest.raises(GitError, match="bad pathspec"):
        clean(repo, CleanOptions(force_non_empty_dirs=True))

    assert repo.clean_untracked.call_count == 1
    mock_delete.assert_not_called()


def test_force_delete_failure_propagates(tmp_path: Path, mocker: MagicMock) -> None:
    mocker.patch(
        "git_porcelain.cleanup.force_delete", side_effect=PermissionError("denied")
    )
    repo = _engine(tmp_path, CouldNotDeleteFile("a"), set())

    with pytest.raises(PermissionError):
        clean(repo, CleanOptions(force_non_empty_dirs=True))


def test_force_delete_logs_a_warning(
    tmp_path: Path, mocker: MagicMock, caplog: pytest.LogCaptureFixture
) -> None:
    mocker.patch("git_porcelain.cleanup.force_delete")
    repo = _engine(tmp_path, CouldNotDeleteFile("cache"), set())

    clean(repo, CleanOptions(force_non_empty_dirs=True))

    assert "git could not delete 'cache'" in caplog.text


def test_force_delete_handles_dirs_files_and_missing_paths(tmp_path: Path) -> None:
    tree = tmp_path / "tree"
    (tree / "nested").mkdir(parents=True)
    (tree / "nested" / "f.txt").write_text("x")
    single = tmp_path / "single.txt"
    single.write_text("x")

    force_delete(tree)
    force_delete(single)
    force_delete(tmp_path / "does-not-exist")

    assert not tree.exists()
    assert not single.exists()


@requires_git
def test_clean_real_repository(git_repo: GitRepo) -> None:
    (git_repo.path / "junk.txt").write_text("junk")
    (git_repo.path / "build").mkdir()
    (git_repo.path / "build" / "out.o").write_text("obj")
    (git_repo.path / "debug.log").write_text("log")
    (git_repo.path / ".git" / "info").mkdir(exist_ok=True)
    (git_repo.path / ".git" / "info" / "exclude").write_text("*.log\n")

    assert clean(git_repo) == {"junk.txt"}
    assert (git_repo.path / "build" / "out.o").exists()

    assert clean(git_repo, CleanOptions(remove_untracked_dirs=True)) == {"build/"}
    assert (git_repo.path / "debug.log").exists()

    assert clean(git_repo, CleanOptions(ignore_excluded=False)) == {"debug.log"}


@requires_git
def test_clean_real_repository_restricted_to_paths(git_repo: GitRepo) -> None:
    (git_repo.path / "keep.txt").write_text("x")
    (git_repo.path / "drop.txt").write_text("x")

    assert clean(git_repo, CleanOptions(paths=frozenset({"drop.txt"}))) == {"drop.txt"}
    assert (git_repo.path / "keep.txt").exists()


def test_force_delete_uses_unquoted_path(tmp_path: Path, mocker: MagicMock) -> None:
    """A quoted name from git is force-removed under its real name."""
    (tmp_path / ".git").mkdir()
    repo = GitRepo(tmp_path)
    stuck = tmp_path / 'we"ird'
    stuck.mkdir()
    (stuck / "f").write_text("x")
    mocker.patch.object(
        repo,
        "_exec",
        side_effect=[
            subprocess.CompletedProcess(
                [],
                1,
                stdout="",
                stderr='warning: failed to remove "we\\"ird/f": Permission denied\n',
            ),
            subprocess.CompletedProcess([], 0, stdout='Removing "we\\"ird/"\n', stderr=""),
        ],
    )

    result = clean(repo, CleanOptions(remove_untracked_dirs=True, force_non_empty_dirs=True))

    assert result == {'we"ird/'}
    assert not (stuck / "f").exists()


@requires_git
def test_clean_real_repository_in_translated_locale(
    git_repo: GitRepo, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("LANGUAGE", "de")
    monkeypatch.setenv("LANG", "de_DE.UTF-8")
    (git_repo.path / "junk.txt").write_text("junk")

    assert clean(git_repo) == {"junk.txt"}
    assert not (git_repo.path / "junk.txt").exists()


@requires_git
def test_clean_real_repository_with_quoted_names(git_repo: GitRepo) -> None:
    (git_repo.path / 'we"ird.txt').write_text("x")
    (git_repo.path / "tab\there.txt").write_text("x")

    assert clean(git_repo) == {'we"ird.txt', "tab\there.txt"}

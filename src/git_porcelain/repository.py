"""Locating, creating and cloning repositories."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from .constants import APP_NAME, DEFAULT_REMOTE
from .errors import RepositoryNotFoundError
from .git_wrapper import GitRepo, run_git
from .transport import TransportConfig, transport_env

logger = logging.getLogger(APP_NAME)


@dataclass
class CloneResult:
    """Outcome of `clone_full`.

    Attributes:
        repo (GitRepo): The new repository.
        fetch_output (str): git's report for the follow-up fetch.
        merge_output (str): git's summary of the follow-up merge.
    """

    repo: GitRepo
    fetch_output: str
    merge_output: str


def discover_repo(path: str | os.PathLike) -> Path | None:
    """Finds the git directory for `path`.

    Args:
        path (str | os.PathLike): A working tree, a `.git` directory, or a
                                  bare repository.

    Returns:
        Path | None: The git directory, or None if nothing looks like one.
    """
    path = Path(path)
    if path.name.endswith(".git"):
        return path
    if (path / ".git").exists():
        return path / ".git"
    if (path / "refs").exists():
        return path
    return None


def load_repo(path: str | os.PathLike) -> GitRepo:
    """Loads a repository from its working tree or its git directory.

    Raises:
        RepositoryNotFoundError: If no repository can be located at `path`.
    """
    git_dir = discover_repo(path)
    if git_dir is None:
        raise RepositoryNotFoundError(
            f"The Git repository at '{path}' could not be located."
        )
    if git_dir.name == ".git":
        return GitRepo(git_dir.parent)
    return GitRepo(git_dir, bare=True)


def init(directory: str | os.PathLike = ".", bare: bool = False) -> GitRepo:
    """Creates (or reinitialises) a repository and loads it."""
    target = Path(directory)
    target.mkdir(parents=True, exist_ok=True)
    cmd = ["init", "-q"]
    if bare:
        cmd.append("--bare")
    run_git([*cmd, str(target)])
    return load_repo(target)


def name_from_uri(uri: str) -> str:
    """Derives a directory name from a clone URI.

    `git@github.com:user/project.git` and `https://host/user/project/` both
    become `project`.
    """
    name = uri.rstrip("/").removesuffix(".git")
    for sep in ("/", ":"):
        name = name.rsplit(sep, 1)[-1]
    return name


def clone(
    uri: str,
    path: str | os.PathLike | None = None,
    remote: str = DEFAULT_REMOTE,
    branch: str | None = None,
    bare: bool = False,
    all_branches: bool = True,
    transport: TransportConfig | None = None,
) -> GitRepo:
    """Clones `uri` and loads the result.

    Args:
        uri (str): The repository to clone.
        path (str | os.PathLike | None, optional): Destination; derived from the
                                                   URI when omitted.
        remote (str, optional): Name for the origin remote.
        branch (str | None, optional): Branch to check out; the remote's HEAD
                                       when omitted.
        bare (bool, optional): Create a bare repository.
        all_branches (bool, optional): Fetch every branch rather than only `branch`.
        transport (TransportConfig | None, optional): SSH settings.
    """
    target = Path(path) if path is not None else Path(name_from_uri(uri))
    cmd = ["clone", "-q", "--origin", remote]
    if branch:
        cmd.extend(["--branch", branch])
    if bare:
        cmd.append("--bare")
    if not all_branches:
        cmd.append("--single-branch")
    cmd.extend(["--", uri, str(target)])

    logger.info(f"Cloning {uri} into {target}")
    run_git(cmd, env=transport_env(transport))
    return load_repo(target)


def clone_full(
    uri: str,
    path: str | os.PathLike | None = None,
    remote: str = DEFAULT_REMOTE,
    branch: str | None = None,
    transport: TransportConfig | None = None,
) -> CloneResult:
    """Clones, fetches `remote` and merges its copy of the checked-out branch."""
    repo = clone(uri, path, remote=remote, branch=branch, transport=transport)
    fetch_output = repo.fetch(remote, transport=transport)
    merge_output = repo.merge(f"{remote}/{branch or repo.current_branch()}")
    return CloneResult(repo=repo, fetch_output=fetch_output, merge_output=merge_output)

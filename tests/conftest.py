"""Shared fixtures: in-memory repositories for walker tests and real git repos."""

import shutil
from pathlib import Path

import pytest

from git_porcelain.constants import ZERO_SHA
from git_porcelain.errors import RepositoryAccessError
from git_porcelain.git_wrapper import GitRepo, SubmoduleEntry, run_git

requires_git = pytest.mark.skipif(
    shutil.which("git") is None, reason="git executable not available"
)


class FakeRepo:
    """A repository double exposing only the submodule engine operations.

    Attributes:
        name (str): Identifies the repository in assertions.
        queries (int): How many times its index was enumerated.
    """

    def __init__(self, name: str, broken: bool = False):
        self.name = name
        self.path = Path(name)
        self.broken = broken
        self.queries = 0
        self._children: list[tuple[str, "FakeRepo | None"]] = []

    def add(self, entry_path: str, child: "FakeRepo | None") -> "FakeRepo | None":
        """Registers a submodule entry; None means it is not checked out."""
        self._children.append((entry_path, child))
        return child

    def submodule_entries(self) -> list[SubmoduleEntry]:
        self.queries += 1
        if self.broken:
            raise RepositoryAccessError(f"Cannot read the index of {self.name}")
        return [SubmoduleEntry(path=p, sha=ZERO_SHA) for p, _ in self._children]

    def resolve_submodule(self, entry: SubmoduleEntry) -> "FakeRepo | None":
        return dict(self._children)[entry.path]

    def __repr__(self) -> str:
        return f"FakeRepo({self.name!r})"


def names(repos: list) -> list[str]:
    return [r.name for r in repos]


def make_git_repo(path: Path) -> GitRepo:
    """Initialises an empty repository at `path`."""
    path.mkdir(parents=True, exist_ok=True)
    run_git(["init", "-q", str(path)])
    return GitRepo(path)


def register_gitlink(repo: GitRepo, sub_path: str, sha: str = "a" * 40) -> None:
    """Records a submodule entry in the index without cloning anything."""
    repo._run(["update-index", "--add", "--cacheinfo", f"160000,{sha},{sub_path}"])


@pytest.fixture
def git_repo(tmp_path: Path) -> GitRepo:
    """A freshly initialised, empty repository."""
    return make_git_repo(tmp_path / "repo")

"""git-porcelain: convenience porcelain over the git command line.

This package wraps repository operations (clone, commit, branch, merge, stash,
submodules) as plain functions and `GitRepo` methods. It adds a depth-bounded
submodule walk and a working-tree clean that can force-remove directories git
itself fails to delete.
"""

from . import (
    cleanup,
    cli,
    config,
    constants,
    errors,
    git_wrapper,
    ops,
    repository,
    submodules,
    transport,
)
from .cleanup import CleanOptions, clean, force_delete
from .errors import (
    CouldNotDeleteFile,
    GitError,
    RepeatedDeletionFailure,
    RepositoryAccessError,
    RepositoryNotFoundError,
)
from .git_wrapper import CommitInfo, GitRepo, Identity, SubmoduleEntry
from .repository import clone, clone_full, discover_repo, init, load_repo
from .transport import TransportConfig

__all__ = [
    "cleanup",
    "cli",
    "config",
    "constants",
    "errors",
    "git_wrapper",
    "ops",
    "repository",
    "submodules",
    "transport",
    "CleanOptions",
    "clean",
    "force_delete",
    "CouldNotDeleteFile",
    "GitError",
    "RepeatedDeletionFailure",
    "RepositoryAccessError",
    "RepositoryNotFoundError",
    "CommitInfo",
    "GitRepo",
    "Identity",
    "SubmoduleEntry",
    "clone",
    "clone_full",
    "discover_repo",
    "init",
    "load_repo",
    "TransportConfig",
]

"""Exception hierarchy for git-porcelain.

Every failure reported by the git engine is a `GitError`. The subclasses mark
the failures that callers are expected to tell apart: an unreadable index
during a submodule walk, and paths that `git clean` could not delete.
"""


class GitError(RuntimeError):
    """A git command failed.

    Attributes:
        returncode (int): The exit status of the git process.
        stderr (str): The stripped standard error output.
    """

    def __init__(self, message: str, returncode: int = 1, stderr: str = ""):
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message)


class RepositoryAccessError(GitError):
    """The engine could not enumerate a repository's index (missing or corrupt)."""


class CouldNotDeleteFile(GitError):
    """The engine could not remove a path from the working tree.

    Attributes:
        path (str): The offending path, relative to the repository root.
    """

    def __init__(self, path: str, returncode: int = 1, stderr: str = ""):
        self.path = path
        super().__init__(f"Could not delete file {path}", returncode, stderr)


class RepeatedDeletionFailure(CouldNotDeleteFile):
    """A path still could not be deleted after it was force-removed once."""


class RepositoryNotFoundError(FileNotFoundError):
    """No git repository exists at the given location."""

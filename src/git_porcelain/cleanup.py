import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from .constants import APP_NAME
from .errors import CouldNotDeleteFile, RepeatedDeletionFailure
from .git_wrapper import GitRepo

logger = logging.getLogger(APP_NAME)


@dataclass(frozen=True)
class CleanOptions:
    """Settings for a working-tree clean.

    Attributes:
        remove_untracked_dirs (bool): Remove untracked directories, not just files.
        force_non_empty_dirs (bool): Delete paths git refuses to remove ourselves,
                                     then retry.
        ignore_excluded (bool): Honour ignore rules; when False ignored files go too.
        paths (frozenset[str]): Relative paths to restrict cleaning to (all if empty).
    """

    remove_untracked_dirs: bool = False
    force_non_empty_dirs: bool = False
    ignore_excluded: bool = True
    paths: frozenset[str] = field(default_factory=frozenset)


def force_delete(path: Path) -> None:
    """Recursively removes a directory, or unlinks a file, outside of git.

    A path that no longer exists is left alone. Any other filesystem error
    propagates.
    """
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    elif path.exists() or path.is_symlink():
        path.unlink()


def clean(repo: GitRepo, options: CleanOptions | None = None) -> set[str]:
    """Removes untracked files from the working tree.

    When `force_non_empty_dirs` is set and git reports a path it could not
    delete, the path is removed directly and the clean is run again. Each path
    is force-removed at most once per call; if git reports it again the call
    fails with `RepeatedDeletionFailure`.

    Args:
        repo (GitRepo): The repository to clean.
        options (CleanOptions | None, optional): Defaults to `CleanOptions()`.

    Returns:
        set[str]: Paths reported as removed by the final, successful git run.

    Raises:
        CouldNotDeleteFile: If git cannot delete a path and forcing is disabled.
        RepeatedDeletionFailure: If a force-removed path is reported again.
        GitError: For any other engine failure.
    """
    options = options or CleanOptions()
    retried: set[str] = set()

    while True:
        try:
            return repo.clean_untracked(
                dirs=options.remove_untracked_dirs,
                ignore=options.ignore_excluded,
                paths=options.paths,
            )
        except CouldNotDeleteFile as e:
            if not options.force_non_empty_dirs:
                raise
            if e.path in retried:
                raise RepeatedDeletionFailure(
                    e.path, returncode=e.returncode, stderr=e.stderr
                ) from e

            logger.warning(f"git could not delete '{e.path}'; removing it directly.")
            force_delete(repo.path / e.path)
            retried.add(e.path)

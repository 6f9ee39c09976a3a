import logging

from .constants import APP_NAME
from .git_wrapper import GitRepo

logger = logging.getLogger(APP_NAME)


def drop_stash(repo: GitRepo, ref_id: str | None = None) -> str | None:
    """Drops a stash entry.

    Args:
        repo (GitRepo): The repository.
        ref_id (str | None, optional): The stash commit SHA to drop. The newest
                                       entry is dropped when omitted.

    Returns:
        str | None: The SHA that was dropped, or None if `ref_id` is not a
                    stash entry (nothing is dropped then).
    """
    stashes = repo.stash_list()
    if ref_id is None:
        if not stashes:
            return None
        repo.stash_drop()
        return stashes[0]

    if ref_id not in stashes:
        logger.debug(f"No stash entry {ref_id}; nothing dropped.")
        return None
    repo.stash_drop(stashes.index(ref_id))
    return ref_id


def pop_stash(repo: GitRepo, ref_id: str | None = None) -> str | None:
    """Applies a stash entry and then drops it.

    Returns:
        str | None: The SHA that was dropped (see `drop_stash`).
    """
    repo.stash_apply(ref_id)
    return drop_stash(repo, ref_id)


def add_and_commit(repo: GitRepo, message: str, **kwargs) -> str:
    """Commits every tracked modification (`git commit -a`).

    Keyword arguments are passed on to `GitRepo.commit`.
    """
    return repo.commit(message, all_changes=True, **kwargs)

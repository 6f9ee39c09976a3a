"""Depth-bounded submodule traversal and the porcelain built on it.

`walk` flattens the tree of checked-out submodules into one depth-first list.
The fetch/update/sync/init helpers run their single-repository command in
every repository of that list.
"""

import logging

from .constants import APP_NAME, DEFAULT_SUBMODULE_DEPTH
from .git_wrapper import GitRepo
from .transport import TransportConfig

logger = logging.getLogger(APP_NAME)


def walk(repo: GitRepo, max_depth: int = DEFAULT_SUBMODULE_DEPTH) -> list[GitRepo]:
    """Collects every checked-out submodule below `repo`, depth first.

    Submodules that are registered in the index but not checked out are
    skipped. Nesting deeper than `max_depth` levels is not visited, which also
    bounds walks over cyclic `.gitmodules` setups. Repeated repositories are
    not deduplicated.

    Args:
        repo (GitRepo): The repository to start from (not included in the result).
        max_depth (int, optional): Number of submodule levels to descend into.

    Returns:
        list[GitRepo]: Submodules in depth-first, index order.

    Raises:
        RepositoryAccessError: If any visited repository's index cannot be read.
    """
    return _walk(repo, 0, max_depth)


def _walk(repo: GitRepo, depth: int, max_depth: int) -> list[GitRepo]:
    if depth >= max_depth:
        return []

    found: list[GitRepo] = []
    for entry in repo.submodule_entries():
        sub = repo.resolve_submodule(entry)
        if sub is None:
            continue
        found.append(sub)
        found.extend(_walk(sub, depth + 1, max_depth))
    return found


def fetch_all(
    repo: GitRepo,
    remote: str | None = None,
    transport: TransportConfig | None = None,
    max_depth: int = DEFAULT_SUBMODULE_DEPTH,
) -> list[GitRepo]:
    """Fetches every submodule below `repo`.

    Returns:
        list[GitRepo]: The submodules that were fetched.
    """
    subs = walk(repo, max_depth)
    for sub in subs:
        logger.info(f"Fetching submodule {sub.path}")
        sub.fetch(remote, transport=transport)
    return subs


def update_all(
    repo: GitRepo,
    path: str | None = None,
    transport: TransportConfig | None = None,
    max_depth: int = DEFAULT_SUBMODULE_DEPTH,
) -> list[GitRepo]:
    """Fetches every submodule, then runs `submodule update` inside each one.

    Args:
        repo (GitRepo): The superproject.
        path (str | None, optional): Limit each update to this submodule path.
        transport (TransportConfig | None, optional): SSH settings.
        max_depth (int, optional): Walk depth.
    """
    subs = fetch_all(repo, transport=transport, max_depth=max_depth)
    for sub in subs:
        sub.submodule_update(path, transport=transport)
    return subs


def sync_all(
    repo: GitRepo, path: str | None = None, max_depth: int = DEFAULT_SUBMODULE_DEPTH
) -> list[GitRepo]:
    """Runs `submodule sync` inside every submodule."""
    subs = walk(repo, max_depth)
    for sub in subs:
        sub.submodule_sync(path)
    return subs


def init_all(
    repo: GitRepo, path: str | None = None, max_depth: int = DEFAULT_SUBMODULE_DEPTH
) -> list[GitRepo]:
    """Runs `submodule init` inside every submodule."""
    subs = walk(repo, max_depth)
    for sub in subs:
        sub.submodule_init(path)
    return subs


def add(
    repo: GitRepo, uri: str, path: str, transport: TransportConfig | None = None
) -> GitRepo:
    """Registers a new submodule in `repo` itself (no walk)."""
    logger.info(f"Adding submodule {uri} at {path}")
    return repo.submodule_add(uri, path, transport=transport)

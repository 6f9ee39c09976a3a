import logging
import os
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path

from .constants import APP_NAME, GITLINK_MODE, MERGE_STRATEGIES, RESET_MODES, ZERO_SHA
from .errors import (
    CouldNotDeleteFile,
    GitError,
    RepositoryAccessError,
    RepositoryNotFoundError,
)
from .transport import TransportConfig, transport_env

logger = logging.getLogger(APP_NAME)

STATUS_FIELDS = (
    "added",
    "changed",
    "missing",
    "modified",
    "removed",
    "untracked",
    "conflicting",
)

_UNMERGED = {"DD", "AU", "UD", "UA", "DU", "AA", "UU"}

# `git clean` reports undeletable paths on stderr and carries on.
_CLEAN_FAILURE_PATTERNS = (
    re.compile(r"^warning: failed to remove (.+): [^:]*$"),
    re.compile(r"^warning: could not open directory '(.+)': [^:]*$"),
)

_LOG_FORMAT = "%H%x1f%an%x1f%ae%x1f%ct%x1f%s%x1e"

# Parsed output must not be translated.
_UNTRANSLATED = {"LC_ALL": "C", "LANGUAGE": "C"}

_C_ESCAPES = {
    "a": 7,
    "b": 8,
    "t": 9,
    "n": 10,
    "v": 11,
    "f": 12,
    "r": 13,
    '"': 34,
    "\\": 92,
}
_OCTAL = re.compile(r"[0-7]{3}")


def unquote_path(name: str) -> str:
    """Reverses git's C-style quoting of a path.

    `core.quotepath=off` only stops git from escaping non-ASCII bytes; names with
    quotes, backslashes or control characters are still printed as `"a\\"b"`.
    Unquoted names are returned unchanged.
    """
    if len(name) < 2 or not (name.startswith('"') and name.endswith('"')):
        return name

    body = name[1:-1]
    out = bytearray()
    i = 0
    while i < len(body):
        ch = body[i]
        if ch != "\\":
            out.extend(ch.encode("utf-8"))
            i += 1
            continue
        escape = body[i + 1 : i + 2]
        if escape in _C_ESCAPES:
            out.append(_C_ESCAPES[escape])
            i += 2
        elif _OCTAL.fullmatch(body[i + 1 : i + 4]):
            out.append(int(body[i + 1 : i + 4], 8))
            i += 4
        else:
            out.extend(b"\\")
            i += 1
    return out.decode("utf-8", errors="surrogateescape")


def run_git(
    args: list[str],
    cwd: Path | None = None,
    env: dict | None = None,
    check: bool = True,
    capture: bool = True,
) -> subprocess.CompletedProcess:
    """Runs a git command, optionally outside of any repository.

    Args:
        args (list[str]): Arguments after `git`.
        cwd (Path | None, optional): Working directory. Defaults to the CWD.
        env (dict | None, optional): Environment for the subprocess.
                                    Defaults to `os.environ`; the locale is
                                    always forced to `C`.
        check (bool, optional): Raise on a non-zero exit. Defaults to True.
        capture (bool, optional): Capture stdout/stderr. Defaults to True.

    Returns:
        subprocess.CompletedProcess: The finished process.

    Raises:
        GitError: If git is missing, or the command fails and `check` is set.
    """
    cmd = ["git", "-c", "core.quotepath=off", *args]
    env = {**(os.environ if env is None else env), **_UNTRANSLATED}
    logger.debug(f"Running: {' '.join(cmd)} (cwd={cwd or Path.cwd()})")
    try:
        res = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=capture,
            text=True,
            check=False,
            env=env,
        )
    except FileNotFoundError as e:
        raise GitError("git command not found. Is git installed?") from e

    if check and res.returncode != 0:
        stderr = (res.stderr or "").strip()
        raise GitError(
            f"Git error: {stderr or ' '.join(args)}",
            returncode=res.returncode,
            stderr=stderr,
        )
    return res


@dataclass(frozen=True)
class Identity:
    """A name/email pair used for authorship."""

    name: str
    email: str

    def __str__(self) -> str:
        return f"{self.name} <{self.email}>"


@dataclass(frozen=True)
class SubmoduleEntry:
    """A gitlink recorded in a repository's index.

    Attributes:
        path (str): The submodule path, relative to the parent's root.
        sha (str): The commit the parent records for it.
    """

    path: str
    sha: str


@dataclass(frozen=True)
class CommitInfo:
    """A single entry from `git log`."""

    sha: str
    author_name: str
    author_email: str
    timestamp: int
    subject: str


class GitRepo:
    """A wrapper around the Git command-line interface for a specific repository.

    This class provides methods to execute common Git operations using `subprocess`,
    abstracting away the command construction and output handling. Higher level
    porcelain (submodule walks, resilient clean, stash helpers) is built on top
    of these methods.

    Attributes:
        path (Path): The file system path to the repository root
                     (the git directory itself for bare repositories).
        bare (bool): Whether the repository has no working tree.
    """

    def __init__(self, path: Path, bare: bool = False):
        """Initializes the GitRepo instance.

        Args:
            path (Path): The path to the repository root directory.
            bare (bool, optional): Treat `path` as a bare git directory.
                                   Defaults to False.

        Raises:
            RepositoryNotFoundError: If the path does not hold a repository.
        """
        self.path = Path(path)
        self.bare = bare
        if bare:
            found = (self.path / "HEAD").exists() and (self.path / "refs").exists()
        else:
            # Submodule checkouts carry a `.git` file rather than a directory.
            found = (self.path / ".git").exists()
        if not found:
            raise RepositoryNotFoundError(f"Not a git repository: {self.path}")

    def __repr__(self) -> str:
        return f"GitRepo({str(self.path)!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, GitRepo):
            return NotImplemented
        return self.path == other.path and self.bare == other.bare

    def __hash__(self) -> int:
        return hash((self.path, self.bare))

    def _exec(
        self,
        args: list[str],
        env: dict | None = None,
        check: bool = True,
        capture: bool = True,
    ) -> subprocess.CompletedProcess:
        """Executes a Git command within the repository context.

        See `run_git` for the arguments.
        """
        return run_git(args, cwd=self.path, env=env, check=check, capture=capture)

    def _run(
        self, args: list[str], capture: bool = True, env: dict | None = None
    ) -> str:
        """Executes a Git command and returns its stripped stdout.

        Args:
            args (list[str]): A list of arguments to pass to the git command.
            capture (bool, optional):   Whether to capture and return stdout.
                                        Defaults to True.
            env (Optional[dict], optional): Environment variables to pass to the
                                            subprocess. Defaults to None.

        Returns:
            str:    The stripped stdout of the command if capture is True,
                    otherwise an empty string.

        Raises:
            GitError: If the git command returns a non-zero exit code.
        """
        res = self._exec(args, env=env, capture=capture)
        return res.stdout.strip() if capture else ""

    # --- Index & commits ---

    def add(self, pattern: str, only_update: bool = False) -> None:
        """Stages a file or every file below a directory.

        Args:
            pattern (str): A file name or directory.
            only_update (bool, optional): Only stage files already in the index.
                                          Defaults to False.
        """
        cmd = ["add"]
        if only_update:
            cmd.append("-u")
        cmd.extend(["--", pattern])
        self._run(cmd, capture=False)

    def rm(self, pattern: str) -> None:
        """Removes a path from the index and the working tree."""
        self._run(["rm", "-q", "--", pattern])

    def commit(
        self,
        message: str,
        author: Identity | None = None,
        committer: Identity | None = None,
        amend: bool = False,
        all_changes: bool = False,
    ) -> str:
        """Creates a new commit with the provided message.

        Args:
            message (str): The commit message.
            author (Identity | None, optional): Overrides the configured author.
            committer (Identity | None, optional): Overrides the configured committer.
            amend (bool, optional): Replace the tip of the current branch.
            all_changes (bool, optional): Stage modified and deleted tracked files
                                          first (`git commit -a`).

        Returns:
            str: The SHA-1 of the new HEAD.
        """
        cmd = ["commit", "-q", "-m", message]
        if author:
            cmd.extend(["--author", str(author)])
        if amend:
            cmd.append("--amend")
        if all_changes:
            cmd.append("-a")

        env = None
        if committer:
            env = os.environ.copy()
            env["GIT_COMMITTER_NAME"] = committer.name
            env["GIT_COMMITTER_EMAIL"] = committer.email

        self._run(cmd, env=env)
        return self._run(["rev-parse", "HEAD"])

    def rev_parse(self, rev: str) -> str | None:
        """Resolves a revision (tag, branch, relative ref) to a full SHA-1 hash.

        Returns:
            Optional[str]:  The full SHA-1 hash,
                            or None if the revision could not be resolved.
        """
        try:
            return self._run(["rev-parse", "--verify", "-q", rev])
        except GitError as e:
            logger.debug(f"rev-parse failed for '{rev}': {e}")
            return None

    def status(self, *fields: str) -> dict[str, set[str]]:
        """Summarises the working tree and index.

        Args:
            *fields (str): Restrict the result to these keys. Any of `added`,
                           `changed`, `missing`, `modified`, `removed`,
                           `untracked`, `conflicting`. Defaults to all.

        Returns:
            dict[str, set[str]]: Paths grouped by state.

        Raises:
            ValueError: If an unknown field is requested.
        """
        unknown = set(fields) - set(STATUS_FIELDS)
        if unknown:
            raise ValueError(f"Unknown status fields: {', '.join(sorted(unknown))}")

        res = self._exec(["status", "--porcelain", "-z"])
        result: dict[str, set[str]] = {name: set() for name in STATUS_FIELDS}

        records = iter(res.stdout.split("\0"))
        for record in records:
            if len(record) < 4:
                continue
            xy, path = record[:2], record[3:]
            index_state, tree_state = xy

            if xy == "??":
                result["untracked"].add(path)
                continue
            if xy == "!!":
                continue
            if xy in _UNMERGED:
                result["conflicting"].add(path)
                continue

            if index_state in "RC":
                # Renames and copies are followed by their source path.
                source = next(records, "")
                result["added"].add(path)
                if index_state == "R" and source:
                    result["removed"].add(source)
            elif index_state == "A":
                result["added"].add(path)
            elif index_state in "MT":
                result["changed"].add(path)
            elif index_state == "D":
                result["removed"].add(path)

            if tree_state in "MT":
                result["modified"].add(path)
            elif tree_state == "D":
                result["missing"].add(path)

        if fields:
            return {name: result[name] for name in fields}
        return result

    def log(self, rev: str | None = None, until: str | None = None) -> list[CommitInfo]:
        """Lists commits, newest first.

        Args:
            rev (str | None, optional): A commit-ish to start from, or the lower
                                        bound of a range when `until` is given.
            until (str | None, optional): Upper bound of a `rev..until` range. A
                                          zero SHA as `rev` means "from the root".

        Returns:
            list[CommitInfo]: The matching commits.
        """
        cmd = ["log", f"--format={_LOG_FORMAT}"]
        if until is not None:
            if rev is None or rev == ZERO_SHA:
                cmd.append(until)
            else:
                cmd.append(f"{rev}..{until}")
        elif rev is not None:
            cmd.append(rev)

        output = self._exec(cmd).stdout
        commits = []
        for record in output.split("\x1e"):
            record = record.strip("\n")
            if not record:
                continue
            sha, name, email, ts, subject = record.split("\x1f", 4)
            commits.append(CommitInfo(sha, name, email, int(ts), subject))
        return commits

    def reset(self, ref: str, mode: str = "mixed") -> None:
        """Moves HEAD to `ref` using one of `hard keep merge mixed soft`.

        Raises:
            ValueError: If the mode is unknown.
        """
        if mode not in RESET_MODES:
            raise ValueError(f"Unknown reset mode '{mode}'")
        self._run(["reset", "-q", f"--{mode}", ref])

    # --- Branches ---

    def branch_list(self, mode: str = "local") -> list[str]:
        """Lists branches as fully qualified ref names.

        Args:
            mode (str, optional): `local`, `remote` or `all`. Defaults to `local`.
        """
        flags = {"local": [], "remote": ["-r"], "all": ["-a"]}
        if mode not in flags:
            raise ValueError(f"Unknown branch list mode '{mode}'")
        output = self._run(["branch", "--format=%(refname)", *flags[mode]])
        return output.splitlines() if output else []

    def current_branch_ref(self) -> str:
        """Returns the full ref HEAD points at, or the commit SHA when detached."""
        res = self._exec(["symbolic-ref", "-q", "HEAD"], check=False)
        if res.returncode == 0:
            return res.stdout.strip()
        return self._run(["rev-parse", "HEAD"])

    def current_branch(self) -> str:
        """Retrieves the name of the currently checked-out branch.

        Returns:
            str: The short branch name, or the commit SHA in detached HEAD state.
        """
        return self.current_branch_ref().removeprefix("refs/heads/")

    def is_branch_attached(self) -> bool:
        """Whether HEAD is on a branch rather than detached."""
        return self.current_branch_ref().startswith("refs/heads/")

    def branch_create(
        self, name: str, force: bool = False, start_point: str | None = None
    ) -> None:
        """Creates a branch, optionally at a given start point."""
        cmd = ["branch"]
        if force:
            cmd.append("-f")
        cmd.append(name)
        if start_point:
            cmd.append(start_point)
        self._run(cmd)

    def branch_delete(self, names: list[str], force: bool = False) -> None:
        """Deletes branches; unmerged ones only when `force` is set."""
        if not names:
            return
        self._run(["branch", "-D" if force else "-d", *names])

    def checkout(
        self,
        name: str,
        create_branch: bool = False,
        force: bool = False,
        start_point: str | None = None,
        file: str | None = None,
    ) -> None:
        """Checks out a branch, creates one, or restores a file.

        Args:
            name (str): The target branch name or commit hash.
            create_branch (bool, optional): Create `name` first (`-b`).
            force (bool, optional): Discard local changes. Defaults to False.
            start_point (str | None, optional): Where a new branch starts.
            file (str | None, optional): Restore only this path from `name`.
        """
        cmd = ["checkout", "-q"]
        if force:
            cmd.append("-f")
        if create_branch:
            cmd.extend(["-b", name])
            if start_point:
                cmd.append(start_point)
        else:
            cmd.append(name)
        if file:
            cmd.extend(["--", file])
        self._run(cmd)

    def merge(self, ref: str, strategy: str | None = None) -> str:
        """Merges `ref` into the current branch.

        Args:
            ref (str): The commit-ish to merge.
            strategy (str | None, optional): `ours`, `resolve`, `ort` or `theirs`.

        Returns:
            str: git's merge summary.
        """
        cmd = ["merge", "--no-edit"]
        if strategy is not None:
            if strategy not in MERGE_STRATEGIES:
                raise ValueError(f"Unknown merge strategy '{strategy}'")
            cmd.extend(MERGE_STRATEGIES[strategy])
        cmd.append(ref)
        return self._run(cmd)

    # --- Remotes ---

    def fetch(
        self,
        remote: str | None = None,
        refspecs: tuple[str, ...] | list[str] = (),
        transport: TransportConfig | None = None,
    ) -> str:
        """Fetches from a remote.

        Args:
            remote (str | None, optional): The remote; git's default if omitted.
            refspecs (list[str], optional): Explicit refspecs (require `remote`).
            transport (TransportConfig | None, optional): SSH settings.

        Returns:
            str: git's fetch report.
        """
        if refspecs and not remote:
            raise ValueError("refspecs require an explicit remote")
        cmd = ["fetch"]
        if remote:
            cmd.append(remote)
            cmd.extend(refspecs)
        res = self._exec(cmd, env=transport_env(transport))
        return (res.stdout + res.stderr).strip()

    def pull(
        self,
        remote: str | None = None,
        branch: str | None = None,
        transport: TransportConfig | None = None,
    ) -> str:
        """Fetches and integrates the upstream of the current branch."""
        cmd = ["pull", "--no-edit"]
        if remote:
            cmd.append(remote)
            if branch:
                cmd.append(branch)
        return self._run(cmd, env=transport_env(transport))

    def ls_remote(
        self,
        remote: str | None = None,
        heads: bool = False,
        tags: bool = False,
        transport: TransportConfig | None = None,
    ) -> dict[str, str]:
        """Lists references advertised by a remote.

        Returns:
            dict[str, str]: Reference names mapped to their SHA-1.
        """
        cmd = ["ls-remote"]
        if heads:
            cmd.append("--heads")
        if tags:
            cmd.append("--tags")
        if remote:
            cmd.append(remote)
        output = self._run(cmd, env=transport_env(transport))
        refs = {}
        for line in output.splitlines():
            sha, _, ref = line.partition("\t")
            if ref:
                refs[ref] = sha
        return refs

    # --- Stash ---

    def stash_create(self) -> str | None:
        """Stashes local changes and resets the working tree.

        Returns:
            str | None: The stash commit SHA, or None if there was nothing to stash.
        """
        output = self._run(["stash", "push"])
        if "No local changes to save" in output:
            return None
        return self.rev_parse("stash@{0}")

    def stash_list(self) -> list[str]:
        """Returns stash commit SHAs, newest first."""
        output = self._run(["stash", "list", "--format=%H"])
        return output.splitlines() if output else []

    def stash_apply(self, ref: str | None = None) -> None:
        """Applies a stash (the newest one by default) to the working tree."""
        cmd = ["stash", "apply"]
        if ref:
            cmd.append(ref)
        self._run(cmd)

    def stash_drop(self, index: int | None = None) -> None:
        """Drops the stash entry at `index` (the newest one by default)."""
        cmd = ["stash", "drop"]
        if index is not None:
            cmd.append(f"stash@{{{index}}}")
        self._run(cmd)

    # --- Submodules ---

    def submodule_entries(self) -> list[SubmoduleEntry]:
        """Lists the submodules registered in the index, in index order.

        Raises:
            RepositoryAccessError: If the index cannot be read.
        """
        try:
            output = self._exec(["ls-files", "--stage", "-z"]).stdout
        except GitError as e:
            raise RepositoryAccessError(
                f"Cannot read the index of {self.path}: {e.stderr or e}",
                returncode=e.returncode,
                stderr=e.stderr,
            ) from e

        # Conflicted entries appear once per stage; "ours" (stage 2) wins.
        entries: dict[str, SubmoduleEntry] = {}
        for record in output.split("\0"):
            meta, _, path = record.partition("\t")
            if not path:
                continue
            mode, sha, stage = meta.split()
            if mode != GITLINK_MODE:
                continue
            if path not in entries or stage == "2":
                entries[path] = SubmoduleEntry(path=path, sha=sha)
        return list(entries.values())

    def resolve_submodule(self, entry: SubmoduleEntry) -> "GitRepo | None":
        """Opens a submodule's repository.

        Returns:
            GitRepo | None: The submodule, or None if it is not checked out.
        """
        candidate = self.path / entry.path
        if not (candidate / ".git").exists():
            logger.debug(f"Submodule {entry.path} in {self.path} is not checked out.")
            return None
        return GitRepo(candidate)

    def submodule_update(
        self, path: str | None = None, transport: TransportConfig | None = None
    ) -> None:
        """Checks out the recorded commit of each (or one) submodule."""
        cmd = ["submodule", "update"]
        if path:
            cmd.extend(["--", path])
        self._run(cmd, env=transport_env(transport))

    def submodule_sync(self, path: str | None = None) -> None:
        """Copies submodule URLs from `.gitmodules` into the repository config."""
        cmd = ["submodule", "sync"]
        if path:
            cmd.extend(["--", path])
        self._run(cmd)

    def submodule_init(self, path: str | None = None) -> None:
        """Registers submodules from `.gitmodules` in the repository config."""
        cmd = ["submodule", "init"]
        if path:
            cmd.extend(["--", path])
        self._run(cmd)

    def submodule_add(
        self, uri: str, path: str, transport: TransportConfig | None = None
    ) -> "GitRepo":
        """Clones `uri` into `path` and registers it as a submodule.

        Returns:
            GitRepo: The newly added submodule.
        """
        self._run(["submodule", "add", "--", uri, path], env=transport_env(transport))
        return GitRepo(self.path / path)

    # --- Working tree cleanup ---

    def clean_untracked(
        self,
        dirs: bool = False,
        ignore: bool = True,
        paths: frozenset[str] | set[str] | tuple[str, ...] = (),
    ) -> set[str]:
        """Runs `git clean -f` once.

        Args:
            dirs (bool, optional): Also remove untracked directories (`-d`).
            ignore (bool, optional): Honour ignore rules; when False ignored
                                     files are removed too (`-x`).
            paths (Iterable[str], optional): Limit cleaning to these paths.

        Returns:
            set[str]: Paths git reports as removed, relative to the root.

        Raises:
            CouldNotDeleteFile: If git could not remove a path.
            GitError: For any other failure.
        """
        cmd = ["clean", "-f"]
        if dirs:
            cmd.append("-d")
        if not ignore:
            cmd.append("-x")
        if paths:
            cmd.extend(["--", *sorted(paths)])

        res = self._exec(cmd, check=False)
        stderr = (res.stderr or "").strip()

        for line in stderr.splitlines():
            for pattern in _CLEAN_FAILURE_PATTERNS:
                match = pattern.match(line)
                if match:
                    raise CouldNotDeleteFile(
                        unquote_path(match.group(1)),
                        returncode=res.returncode,
                        stderr=stderr,
                    )

        if res.returncode != 0:
            raise GitError(
                f"Git error: {stderr or 'clean failed'}",
                returncode=res.returncode,
                stderr=stderr,
            )

        return {
            unquote_path(line.removeprefix("Removing "))
            for line in res.stdout.splitlines()
            if line.startswith("Removing ")
        }

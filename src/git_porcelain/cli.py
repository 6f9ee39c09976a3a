import argparse
import logging
import os
import subprocess
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.table import Table
from rich.text import Text

from . import ops, submodules
from .cleanup import clean
from .config import CONFIG_FILE, Config, LimitsConfig
from .constants import APP_NAME, LOG_FILE
from .errors import GitError, RepositoryNotFoundError
from .git_wrapper import STATUS_FIELDS, GitRepo
from .repository import load_repo

logger = logging.getLogger(APP_NAME)
console = Console()
err_console = Console(stderr=True)

STATUS_STYLES = {
    "added": "green",
    "changed": "green",
    "removed": "red",
    "modified": "yellow",
    "missing": "red",
    "untracked": "cyan",
    "conflicting": "bold red",
}


def setup_logging(verbose: bool, max_log_size: int) -> None:
    """Configures the logging subsystem.

    Args:
        verbose (bool): Log debug messages (including every git invocation).
        max_log_size (int): Bytes before the log file is rotated.
    """
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    stream_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    logger.addHandler(stream_handler)

    try:
        LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            LOG_FILE,
            maxBytes=max_log_size,
            backupCount=5,
        )
    except OSError as e:
        logger.warning(f"Could not open log file {LOG_FILE}: {e}")
        return
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)


def show_status(repo: GitRepo) -> None:
    """Displays the working tree status grouped by state."""
    status = repo.status()

    header = Text()
    header.append("Branch: ", style="bold")
    if repo.is_branch_attached():
        header.append(repo.current_branch(), style="cyan")
    else:
        header.append(f"detached at {repo.current_branch()[:12]}", style="yellow")
    console.print(header)

    if not any(status.values()):
        console.print("[dim]Working tree clean.[/dim]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("State")
    table.add_column("Path", style="cyan")
    for state in STATUS_FIELDS:
        for path in sorted(status[state]):
            table.add_row(Text(state, style=STATUS_STYLES[state]), path)
    console.print(table)


def run_clean(repo: GitRepo, config: Config, args: argparse.Namespace) -> None:
    """Cleans the working tree and lists what was removed."""
    options = config.clean_options(
        args.paths,
        remove_untracked_dirs=True if args.dirs else None,
        force_non_empty_dirs=True if args.force_dirs else None,
        ignore_excluded=False if args.ignored else None,
    )
    with console.status("Cleaning working tree...", spinner="dots"):
        removed = clean(repo, options)

    if not removed:
        console.print("[dim]Nothing to clean.[/dim]")
        return
    for path in sorted(removed):
        console.print(f"   - {path}", style="red")
    console.print(f"[bold green]✔ Removed {len(removed)} paths.[/bold green]")


def list_submodules(repo: GitRepo, depth: int) -> None:
    """Prints every checked-out submodule found by the walk."""
    subs = submodules.walk(repo, depth)
    if not subs:
        console.print("[yellow]No checked-out submodules.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Submodule", style="cyan")
    table.add_column("Branch", style="dim")
    for sub in subs:
        try:
            branch = sub.current_branch()
        except GitError as e:
            logger.debug(f"Failed to read HEAD of {sub.path}: {e}")
            branch = "-"
        table.add_row(os.path.relpath(sub.path, repo.path), branch)
    console.print(table)


def run_submodules(repo: GitRepo, config: Config, args: argparse.Namespace) -> None:
    """Dispatches the `submodules` subcommands."""
    depth = args.depth or config.submodules.max_depth
    transport = config.transport()

    if args.action == "list":
        list_submodules(repo, depth)
        return
    if args.action == "add":
        sub = submodules.add(repo, args.uri, args.dest, transport=transport)
        console.print(f"[bold green]✔ Added submodule {sub.path}.[/bold green]")
        return

    actions = {
        "fetch": lambda: submodules.fetch_all(
            repo, config.core.remote_name, transport=transport, max_depth=depth
        ),
        "update": lambda: submodules.update_all(
            repo, args.path, transport=transport, max_depth=depth
        ),
        "sync": lambda: submodules.sync_all(repo, args.path, max_depth=depth),
        "init": lambda: submodules.init_all(repo, args.path, max_depth=depth),
    }
    with console.status(f"Running submodule {args.action}...", spinner="dots"):
        subs = actions[args.action]()
    console.print(
        f"[bold green]✔ {args.action.capitalize()} done in {len(subs)} submodules.[/bold green]"
    )


def run_stash(repo: GitRepo, args: argparse.Namespace) -> None:
    """Dispatches the `stash` subcommands."""
    if args.action == "push":
        sha = repo.stash_create()
        if sha is None:
            console.print("[dim]No local changes to save.[/dim]")
        else:
            console.print(f"Saved stash [cyan]{sha[:12]}[/cyan]")
    elif args.action == "list":
        for index, sha in enumerate(repo.stash_list()):
            console.print(f"stash@{{{index}}}  [cyan]{sha}[/cyan]")
    elif args.action == "apply":
        repo.stash_apply(args.ref)
        console.print("[bold green]✔ Stash applied.[/bold green]")
    elif args.action in ("drop", "pop"):
        handler = ops.pop_stash if args.action == "pop" else ops.drop_stash
        dropped = handler(repo, args.ref)
        if dropped is None:
            console.print("[yellow]No matching stash entry.[/yellow]")
        else:
            console.print(f"Dropped stash [cyan]{dropped[:12]}[/cyan]")


def list_branches(repo: GitRepo, mode: str) -> None:
    """Prints branches, marking the checked-out one."""
    current = repo.current_branch_ref()
    for ref in repo.branch_list(mode):
        if ref == current:
            console.print(f"* {ref}", style="bold green")
        else:
            console.print(f"  {ref}")


def open_config() -> None:
    """Opens the global configuration file in the system default editor."""
    if not CONFIG_FILE.exists():
        CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
        with open(CONFIG_FILE, "w") as f:
            f.write(
                "# git-porcelain Configuration\n\n"
                "[submodules]\n"
                "# max_depth = 3\n\n"
                "[clean]\n"
                "# force_non_empty_dirs = false\n"
            )

    editor = os.environ.get("EDITOR")
    if not editor:
        if sys.platform == "darwin":
            editor = "open"
        else:
            editor = "nano"

    console.print(f"Opening [cyan]{CONFIG_FILE}[/cyan]...")

    try:
        subprocess.run([editor, str(CONFIG_FILE)])
    except OSError as e:
        console.print(f"[red]Could not open editor: {e}[/red]")


def show_config_reference() -> None:
    """Displays a formatted table of all available configuration options."""
    table = Table(title="git-porcelain Configuration Schema", show_lines=True)
    table.add_column("Section", style="cyan", justify="right")
    table.add_column("Key", style="green")
    table.add_column("Type", style="dim")
    table.add_column("Default", style="yellow")
    table.add_column("Description")

    table.add_row(
        "core", "remote_name", "str", '"origin"', "Remote fetched by `submodules fetch`."
    )
    table.add_row(
        "submodules",
        "max_depth",
        "int",
        "3",
        "How many levels of nested submodules a walk descends into.",
    )
    table.add_row(
        "clean",
        "remove_untracked_dirs",
        "bool",
        "false",
        "Remove untracked directories, not just files.",
    )
    table.add_row(
        "",
        "force_non_empty_dirs",
        "bool",
        "false",
        "Delete paths git cannot remove directly, then retry once per path.",
    )
    table.add_row(
        "",
        "ignore_excluded",
        "bool",
        "true",
        "Keep files matched by .gitignore rules.",
    )
    table.add_row("ssh", "identity_files", "list", "[]", "Private keys offered to remotes.")
    table.add_row(
        "",
        "options",
        "table",
        '{StrictHostKeyChecking = "no"}',
        "Extra `ssh -o` options.",
    )
    table.add_row("", "exclusive", "bool", "false", "Offer only the configured keys.")
    table.add_row(
        "limits",
        "max_log_size",
        "int | str",
        '"5mb"',
        "Max size for log files before rotation (e.g., '5mb', '1gb').",
    )

    console.print(table)


class PorcelainHelpFormatter(argparse.HelpFormatter):
    """Groups the subcommands into logical categories in the help output."""

    def _format_action(self, action: argparse.Action) -> str:
        if isinstance(action, argparse._SubParsersAction):
            parts = []

            groups = {
                "Working Tree": ["status", "clean"],
                "Submodules": ["submodules"],
                "History": ["branch", "stash"],
                "General": ["config", "help"],
            }

            subactions = list(self._iter_indented_subactions(action))

            for group_name, commands in groups.items():
                group_actions = [a for a in subactions if a.dest in commands]
                if not group_actions:
                    continue

                parts.append(f"\n  {group_name}:\n")

                self._indent()
                for subaction in group_actions:
                    parts.append(self._format_action(subaction))
                self._dedent()

            return self._join_parts(parts)

        return super()._format_action(action)


def build_parser() -> argparse.ArgumentParser:
    """Builds the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        usage=argparse.SUPPRESS,
        formatter_class=PorcelainHelpFormatter,
        add_help=False,
    )
    parser.add_argument(
        "-h",
        "--help",
        action="help",
        default=argparse.SUPPRESS,
        help=argparse.SUPPRESS,
    )

    # Global flags
    parser.add_argument(
        "-C", dest="repo_dir", default=".", help=argparse.SUPPRESS
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help=argparse.SUPPRESS
    )

    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("status", help="Show working tree status")

    clean_parser = subparsers.add_parser("clean", help="Remove untracked files")
    clean_parser.add_argument(
        "-d", "--dirs", action="store_true", help="Remove untracked directories too"
    )
    clean_parser.add_argument(
        "--force-dirs",
        action="store_true",
        help="Delete directories git cannot remove, then retry",
    )
    clean_parser.add_argument(
        "-x", "--ignored", action="store_true", help="Remove ignored files too"
    )
    clean_parser.add_argument("paths", nargs="*", help="Limit cleaning to these paths")

    sub_parser = subparsers.add_parser(
        "submodules", help="Walk, fetch, update, sync or init submodules"
    )
    sub_actions = sub_parser.add_subparsers(dest="action", required=True)
    for name, text in (
        ("list", "List checked-out submodules"),
        ("fetch", "Fetch every submodule"),
        ("update", "Fetch, then update inside every submodule"),
        ("sync", "Sync URLs inside every submodule"),
        ("init", "Init inside every submodule"),
    ):
        action_parser = sub_actions.add_parser(name, help=text)
        action_parser.add_argument("--path", help="Limit to this submodule path")
        action_parser.add_argument(
            "--depth", type=int, help="Walk depth (default: from config)"
        )
    add_parser = sub_actions.add_parser("add", help="Add a submodule")
    add_parser.add_argument("uri", help="Repository to add")
    add_parser.add_argument("dest", help="Path inside this repository")
    add_parser.set_defaults(depth=None)

    stash_parser = subparsers.add_parser("stash", help="Save, list, apply or drop stashes")
    stash_parser.add_argument(
        "action", choices=["push", "list", "apply", "drop", "pop"], help="Stash action"
    )
    stash_parser.add_argument("ref", nargs="?", help="Stash commit to act on")

    branch_parser = subparsers.add_parser("branch", help="List branches")
    mode = branch_parser.add_mutually_exclusive_group()
    mode.add_argument("-a", "--all", action="store_true", help="Include remote branches")
    mode.add_argument("-r", "--remote", action="store_true", help="Only remote branches")

    config_parser = subparsers.add_parser(
        "config", help="Open global config file or view options"
    )
    config_parser.add_argument(
        "--list",
        "-l",
        action="store_true",
        help="List all available configuration options and their descriptions",
    )

    subparsers.add_parser("help", help="Show this help message")
    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the git-porcelain CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command in (None, "help"):
        parser.print_help()
        return
    if args.command == "config":
        if args.list:
            show_config_reference()
        else:
            open_config()
        return

    try:
        # Config warnings need handlers before the configured log size is known.
        setup_logging(args.verbose, LimitsConfig().max_log_size)
        repo = load_repo(Path(args.repo_dir))
        config = Config.load(repo.path)
        setup_logging(args.verbose, config.limits.max_log_size)

        if args.command == "status":
            show_status(repo)
        elif args.command == "clean":
            run_clean(repo, config, args)
        elif args.command == "submodules":
            run_submodules(repo, config, args)
        elif args.command == "stash":
            run_stash(repo, args)
        elif args.command == "branch":
            list_branches(repo, "all" if args.all else "remote" if args.remote else "local")
    except (GitError, RepositoryNotFoundError) as e:
        logger.debug(f"{args.command} failed: {e}")
        err_console.print(f"[bold red]ERROR:[/bold red] {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()

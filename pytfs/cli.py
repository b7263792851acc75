"""CLI interface for pytfs."""

import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any, Optional

import click

from .api import TfsClient
from .config import Config, load_config
from .exceptions import TfsConfigError, TfsFilesystemError
from .output import OutputFormatter
from .sync import TreeSynchronizer

logger = logging.getLogger(__name__)


def configure_logging(
    verbose: bool,
    trace: bool,
    log_file: Optional[str] = None,
    level: str = "WARNING",
) -> None:
    """Configure process-wide logging.

    Args:
        verbose: Enable debug output with logger names
        trace: Enable the HTTP wire trace
        log_file: Write log records to this file instead of stderr
        level: Log level when not verbose
    """
    file_kwargs: dict[str, Any] = {}
    if log_file:
        file_kwargs = {
            "filename": str(Path(log_file).expanduser()),
            "encoding": "utf-8",
        }

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
            **file_kwargs,
        )
        logging.getLogger("pytfs").setLevel(logging.DEBUG)
    else:
        logging.basicConfig(
            level=getattr(logging, level, logging.WARNING),
            format="%(asctime)s %(message)s",
            datefmt="%Y.%m.%d-%H:%M:%S",
            **file_kwargs,
        )

    if trace:
        logging.getLogger("pytfs.http.wire").setLevel(logging.INFO)


def project_from_path(remote_path: str) -> str:
    """Guess the team project from a server path ("$/Project/..." -> "Project")."""
    parts = remote_path.split("/")
    if len(parts) > 1 and parts[0] == "$":
        return parts[1]
    return ""


def _load_config(ctx: Any) -> Config:
    """Load settings and set up logging, exiting on configuration errors."""
    out: OutputFormatter = ctx.obj["out"]
    try:
        config = load_config(ctx.obj.get("config_path"))
    except TfsConfigError as e:
        out.error(str(e))
        ctx.exit(1)

    if ctx.obj.get("insecure"):
        config.insecure = True

    configure_logging(
        verbose=ctx.obj.get("verbose", False),
        trace=ctx.obj.get("trace", False),
        log_file=ctx.obj.get("log_file") or config.log_file,
        level=config.log_level,
    )
    return config


def _create_client(ctx: Any, config: Config) -> TfsClient:
    return TfsClient.from_config(config, verbose=ctx.obj.get("trace", False))


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    help="Configuration file (default: ~/.tfsrc)",
)
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.option("--trace", is_flag=True, help="Log the full HTTP wire trace")
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False),
    help="Write log messages to a file",
)
@click.option(
    "--insecure",
    is_flag=True,
    help="Do not verify TLS certificates (self-signed servers only)",
)
@click.version_option()
@click.pass_context
def main(
    ctx: Any,
    config_path: Optional[str],
    quiet: bool,
    json: bool,
    verbose: bool,
    trace: bool,
    log_file: Optional[str],
    insecure: bool,
) -> None:
    """pytfs - Clone folders from Team Foundation Server version control."""
    # Store settings in context for subcommands to access
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)
    ctx.obj["verbose"] = verbose
    ctx.obj["trace"] = trace
    ctx.obj["log_file"] = log_file
    ctx.obj["insecure"] = insecure


@main.command()
@click.argument("remote_path")
@click.argument("destination", required=False, type=click.Path(file_okay=False))
@click.option("--project", "-p", help="Team project (default: from configuration)")
@click.pass_context
def clone(
    ctx: Any, remote_path: str, destination: Optional[str], project: Optional[str]
) -> None:
    """Clone a remote folder onto local disk.

    REMOTE_PATH: Server path of the folder, e.g. $/Project/Main/Src

    DESTINATION: Local directory (default: current directory)

    Every file is fetched again on each run. Files that fail to download are
    reported and skipped; the clone carries on with the rest of the tree.
    """
    out: OutputFormatter = ctx.obj["out"]
    config = _load_config(ctx)
    project = project or config.project or project_from_path(remote_path)
    if not project:
        out.error("No team project given. Use --project or set 'project' in [tfs].")
        ctx.exit(1)

    dest = Path(destination) if destination else Path.cwd()
    client = _create_client(ctx, config)
    try:
        engine = TreeSynchronizer(client, project, out)
        stats = engine.clone(remote_path, dest)
    except TfsFilesystemError as e:
        out.error(str(e))
        ctx.exit(1)
    finally:
        client.close()

    if stats.errors:
        out.warning(f"{stats.errors} item(s) could not be cloned, see the log")

    out.print_summary(
        "Clone Complete",
        [
            ("Remote path", remote_path),
            ("Destination", str(dest)),
            ("Folders", str(stats.folders)),
            ("Files", str(stats.files)),
            ("Errors", str(stats.errors)),
        ],
    )


@main.command("ls")
@click.argument("remote_path")
@click.option("--project", "-p", help="Team project (default: from configuration)")
@click.pass_context
def ls(ctx: Any, remote_path: str, project: Optional[str]) -> None:
    """List the direct children of a remote folder.

    REMOTE_PATH: Server path of the folder, e.g. $/Project/Main
    """
    out: OutputFormatter = ctx.obj["out"]
    config = _load_config(ctx)
    project = project or config.project or project_from_path(remote_path)
    if not project:
        out.error("No team project given. Use --project or set 'project' in [tfs].")
        ctx.exit(1)

    client = _create_client(ctx, config)
    try:
        entries = client.list_path(project, remote_path)
    finally:
        client.close()

    rows = [
        ["folder" if entry.is_folder else "file", entry.name, str(entry.version)]
        for entry in entries
    ]
    if not rows and not out.json_output:
        out.info("No entries found")
        return
    out.print_table(["Type", "Name", "Version"], rows)


@main.command()
@click.argument("from_id", type=int)
@click.option(
    "--comments/--no-comments",
    default=True,
    help="Fetch the comment of each changeset (default: yes)",
)
@click.option("--changes", is_flag=True, help="List the items each changeset changed")
@click.pass_context
def history(ctx: Any, from_id: int, comments: bool, changes: bool) -> None:
    """Show changesets on the configured branch, starting at FROM_ID."""
    out: OutputFormatter = ctx.obj["out"]
    config = _load_config(ctx)

    client = _create_client(ctx, config)
    try:
        changesets = client.get_changes_after(from_id)
        if changesets is None:
            out.error("Could not fetch changesets, see the log for details")
            ctx.exit(1)

        for changeset in changesets:
            if comments:
                client.get_changeset_comment(changeset)
            if changes:
                client.get_changeset_changes(changeset)
    finally:
        client.close()

    if out.json_output:
        out.output_json([asdict(changeset) for changeset in changesets])
        return

    if not changesets:
        out.info(f"No changesets since {from_id}")
        return

    for changeset in changesets:
        summary = changeset.comment.splitlines()[0] if changeset.comment else ""
        out.print(f"C{changeset.changeset_id}  {changeset.author}  {summary}".rstrip())
        for change in changeset.changes:
            out.print(f"    {change.change_type:<12} {change.path}")


@main.command("get-changeset")
@click.argument("changeset_id", type=int)
@click.argument("destination", required=False, type=click.Path(file_okay=False))
@click.pass_context
def get_changeset(ctx: Any, changeset_id: int, destination: Optional[str]) -> None:
    """Download the files changed by a changeset, as of that changeset.

    CHANGESET_ID: Changeset number

    DESTINATION: Local directory (default: current directory)
    """
    out: OutputFormatter = ctx.obj["out"]
    config = _load_config(ctx)

    dest = Path(destination) if destination else Path.cwd()
    client = _create_client(ctx, config)
    try:
        engine = TreeSynchronizer(client, config.project, out)
        changeset, stats = engine.fetch_changeset(changeset_id, dest)
    except TfsFilesystemError as e:
        out.error(str(e))
        ctx.exit(1)
    finally:
        client.close()

    if changeset is None:
        out.error(f"Could not fetch changes of changeset {changeset_id}")
        ctx.exit(1)

    out.print_summary(
        f"Changeset {changeset_id}",
        [
            ("Destination", str(dest)),
            ("Files", str(stats.files)),
            ("Errors", str(stats.errors)),
        ],
    )


if __name__ == "__main__":
    main()

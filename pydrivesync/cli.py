"""CLI interface for pydrivesync."""

import logging
import sys
from typing import Any, Optional

import click

from .api import HttpRemoteStore
from .config import config
from .exceptions import ConfigurationError, DriveSyncError
from .output import OutputFormatter
from .store import RemoteStore
from .sync import (
    ConflictPolicy,
    FolderSelector,
    ReplicationOptions,
    SelectionMethod,
    SyncEngine,
)
from .utils import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_TIMEOUT,
    MAX_BATCH_SIZE,
    MAX_MAX_CONCURRENCY,
    MIN_BATCH_SIZE,
    MIN_MAX_CONCURRENCY,
)

logger = logging.getLogger(__name__)


def _get_store(ctx: Any) -> RemoteStore:
    """Create the remote store from the global options, exiting on bad config."""
    out: OutputFormatter = ctx.obj["out"]
    try:
        return HttpRemoteStore(api_key=ctx.obj["api_key"], api_url=ctx.obj["api_url"])
    except ConfigurationError as e:
        out.error(str(e))
        out.info("Run 'pydrivesync init' to configure your API key.")
        raise click.exceptions.Exit(1) from e


def _get_engine(ctx: Any) -> SyncEngine:
    return SyncEngine(_get_store(ctx), ctx.obj["out"])


@click.group()
@click.option(
    "--api-key", "-k", envvar="DRIVESYNC_API_KEY", help="Storage backend API key"
)
@click.option("--api-url", envvar="DRIVESYNC_API_URL", help="Storage backend API URL")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option(package_name="pydrivesync")
@click.pass_context
def main(
    ctx: Any,
    api_key: Optional[str],
    api_url: Optional[str],
    quiet: bool,
    json: bool,
    verbose: bool,
) -> None:
    """PyDriveSync - Compare and replicate remote folder trees."""
    ctx.ensure_object(dict)
    ctx.obj["api_key"] = api_key
    ctx.obj["api_url"] = api_url
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("pydrivesync").setLevel(logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)


@main.command()
@click.option(
    "--api-key",
    "-k",
    prompt="Enter your API key",
    hide_input=True,
    help="API key to store in the config file",
)
@click.pass_context
def init(ctx: Any, api_key: str) -> None:
    """Save the API key to the config file."""
    out: OutputFormatter = ctx.obj["out"]
    config.save_api_key(api_key)
    out.success("Configuration saved successfully")
    out.info(f"Config file: {config.get_config_path()}")


@main.command()
@click.argument("source")
@click.argument("destination")
@click.option(
    "--recursive/--no-recursive",
    default=True,
    help="Whether to recursively compare subfolders (default: recursive)",
)
@click.option(
    "--deep",
    is_flag=True,
    help="Compare MD5 checksums too (slower but more accurate)",
)
@click.pass_context
def compare(
    ctx: Any, source: str, destination: str, recursive: bool, deep: bool
) -> None:
    """Compare SOURCE and DESTINATION folders and show the sync plan.

    SOURCE and DESTINATION are folder IDs.
    """
    out: OutputFormatter = ctx.obj["out"]
    engine = _get_engine(ctx)

    report = engine.run_comparison(source, destination, recursive, deep)

    if out.json_output:
        out.output_json(report.to_dict())
    else:
        engine.display_comparison(report)

    if not report.success:
        if out.json_output or out.quiet:
            out.error(report.summary)
        ctx.exit(1)


@main.command()
@click.argument("source")
@click.argument("destination")
@click.option(
    "--recursive/--no-recursive",
    default=True,
    help="Whether to include subfolders (default: recursive)",
)
@click.option("--deep", is_flag=True, help="Compare MD5 checksums too")
@click.pass_context
def plan(
    ctx: Any, source: str, destination: str, recursive: bool, deep: bool
) -> None:
    """Print the ordered sync plan for SOURCE -> DESTINATION."""
    out: OutputFormatter = ctx.obj["out"]
    engine = _get_engine(ctx)

    try:
        comparison = engine.compare_trees(source, destination, recursive, deep)
    except DriveSyncError as e:
        out.error(f"Folder comparison failed: {e}")
        ctx.exit(1)
        return

    actions = engine.build_sync_plan(comparison)
    if out.json_output:
        out.output_json([action.to_dict() for action in actions])
        return

    if not actions:
        out.info("No changes needed - everything is in sync!")
        return
    for action in actions:
        kind = "folder" if action.subject.is_folder else "file"
        out.print(f"{action.priority} {action.action.value:<6} {kind:<6} {action.path}")


@main.command()
@click.argument("source")
@click.argument("destination")
@click.option(
    "--recursive/--no-recursive",
    default=True,
    help="Whether to copy subfolders (default: recursive)",
)
@click.option(
    "--flat",
    is_flag=True,
    help="Copy only the files of SOURCE, without recreating folders",
)
@click.option(
    "--on-conflict",
    type=click.Choice([p.value for p in ConflictPolicy]),
    default=ConflictPolicy.RENAME.value,
    show_default=True,
    help="How to handle files that already exist in the destination",
)
@click.option(
    "--batch-size",
    type=click.IntRange(MIN_BATCH_SIZE, MAX_BATCH_SIZE),
    default=DEFAULT_BATCH_SIZE,
    show_default=True,
    help="Number of files to process in each batch",
)
@click.option(
    "--max-concurrency",
    type=click.IntRange(MIN_MAX_CONCURRENCY, MAX_MAX_CONCURRENCY),
    default=DEFAULT_MAX_CONCURRENCY,
    show_default=True,
    help="Maximum number of files to copy concurrently",
)
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=DEFAULT_TIMEOUT,
    show_default=True,
    help="Stop the run after this many seconds (partial results are kept)",
)
@click.option(
    "--file-id",
    "file_ids",
    multiple=True,
    help="Only copy this file (can be repeated)",
)
@click.pass_context
def replicate(
    ctx: Any,
    source: str,
    destination: str,
    recursive: bool,
    flat: bool,
    on_conflict: str,
    batch_size: int,
    max_concurrency: int,
    timeout: float,
    file_ids: tuple[str, ...],
) -> None:
    """Copy folders and files from SOURCE into DESTINATION."""
    out: OutputFormatter = ctx.obj["out"]
    engine = _get_engine(ctx)

    options = ReplicationOptions(
        recursive=recursive,
        preserve_structure=not flat,
        conflict_policy=ConflictPolicy(on_conflict),
        batch_size=batch_size,
        max_concurrency=max_concurrency,
        timeout=timeout,
        file_ids=list(file_ids) or None,
    )
    result = engine.replicate(source, destination, options)

    if out.json_output:
        out.output_json(result.to_dict())
    else:
        engine.display_replication(result)

    if not result.success:
        ctx.exit(1)


@main.command()
@click.option(
    "--method",
    type=click.Choice([m.value for m in SelectionMethod]),
    default=SelectionMethod.FOLDER_IDS.value,
    show_default=True,
    help="How source folders are specified",
)
@click.option("--folder-id", "folder_ids", multiple=True, help="Source folder ID")
@click.option("--folder-name", "folder_names", multiple=True, help="Source folder name")
@click.option("--destination", help="Destination parent folder ID")
@click.option("--subfolders/--no-subfolders", default=True, help="Include subfolders")
@click.option(
    "--preserve-structure/--flat",
    default=True,
    help="Keep the folder hierarchy in the destination",
)
@click.pass_context
def select(
    ctx: Any,
    method: str,
    folder_ids: tuple[str, ...],
    folder_names: tuple[str, ...],
    destination: Optional[str],
    subfolders: bool,
    preserve_structure: bool,
) -> None:
    """Resolve and list the source folders of a sync job."""
    out: OutputFormatter = ctx.obj["out"]
    selector = FolderSelector(_get_store(ctx))

    try:
        selection = selector.select(
            method,
            folder_ids=list(folder_ids),
            folder_names=list(folder_names),
            destination_parent_id=destination,
            sync_subfolders=subfolders,
            preserve_structure=preserve_structure,
        )
    except DriveSyncError as e:
        out.error(str(e))
        ctx.exit(1)
        return

    if out.json_output:
        out.output_json(selection.to_dict())
        return

    out.output_table(
        ["ID", "Name", "Source"],
        [[f.id, f.name, f.source] for f in selection.folders],
        title="Source folders",
    )
    out.success(selection.summary)


if __name__ == "__main__":
    sys.exit(main())

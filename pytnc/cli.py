"""CLI interface for the TNC sync client."""

import logging
from collections import Counter
from pathlib import Path
from typing import Any, Optional

import click

from .api import TncClient
from .config import config
from .exceptions import (
    TncAPIError,
    TncCommitError,
    TncConfigError,
    TncInvalidResponseError,
    TncStateError,
)
from .output import OutputFormatter
from .project import Project, ProjectMeta
from .sync import (
    ConflictDetector,
    PullEngine,
    SyncEngine,
    TncMetadataCommitter,
    TncUploader,
    summarize,
)
from .utils import get_machine_id, parse_iso_timestamp

logger = logging.getLogger(__name__)


def _make_client(ctx: Any, out: OutputFormatter) -> TncClient:
    """Build an API client from the stored credentials or exit."""
    try:
        token, email = config.require_credentials()
    except TncConfigError as e:
        out.error(str(e))
        ctx.exit(1)
        raise  # Unreachable, ctx.exit raises
    return TncClient(token, email, api_url=ctx.obj.get("api_url") or config.api_url)


def _load_project(ctx: Any, out: OutputFormatter) -> tuple[Project, ProjectMeta]:
    """Return the project in the working directory or exit."""
    project = Project(Path.cwd())
    try:
        return project, project.load_meta()
    except TncConfigError as e:
        out.error(str(e))
        ctx.exit(1)
        raise  # Unreachable, ctx.exit raises


@click.group()
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.option("--api-url", envvar="TNC_API_URL", help="TNC server base URL")
@click.version_option()
@click.pass_context
def main(
    ctx: Any, quiet: bool, json: bool, verbose: bool, api_url: Optional[str]
) -> None:
    """TNC - Push and pull versioned project files to a TNC room."""
    ctx.ensure_object(dict)
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)
    ctx.obj["api_url"] = api_url
    ctx.obj["verbose"] = verbose

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("pytnc").setLevel(logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)


@main.command()
@click.argument("room_id")
@click.option(
    "--name",
    "-n",
    "project_name",
    prompt="Enter project name",
    help="Name of the new project",
)
@click.pass_context
def init(ctx: Any, room_id: str, project_name: str) -> None:
    """Initialize a TNC project in the current directory.

    Registers the project for ROOM_ID on the server and writes
    .tnc/.tncmeta.json with an empty push record.
    """
    out: OutputFormatter = ctx.obj["out"]
    project = Project(Path.cwd())

    if project.is_initialized():
        out.error(f"Project already initialized in {project.root}")
        ctx.exit(1)

    client = _make_client(ctx, out)
    try:
        response = client.init_project(project_name, room_id, get_machine_id())
        try:
            project_id = response["project"]["_id"]
        except (KeyError, TypeError) as e:
            raise TncInvalidResponseError(
                f"Unexpected init response: {response!r}"
            ) from e

        meta = ProjectMeta(
            project_id=project_id, project_name=project_name, room_id=room_id
        )
        project.initialize(meta)
    except TncAPIError as e:
        out.error(f"Failed to initialize project: {e}")
        ctx.exit(1)
    finally:
        client.close()

    if out.json_output:
        out.output_json(meta.to_dict())
        return
    out.success("Project initialized successfully!")
    out.info(f"Project ID: {project_id}")


@main.command()
@click.pass_context
def whoami(ctx: Any) -> None:
    """Show the account the client is logged in with."""
    out: OutputFormatter = ctx.obj["out"]

    try:
        logged_in = config.is_logged_in()
        email = config.email
    except TncStateError as e:
        out.error(str(e))
        ctx.exit(1)

    if out.json_output:
        out.output_json({"logged_in": logged_in, "email": email if logged_in else None})
        return

    if logged_in:
        click.echo(f"You are logged in as: {email}")
    else:
        click.echo("You are not logged in")


@main.command()
@click.pass_context
def status(ctx: Any) -> None:
    """Show which files changed since the last push."""
    out: OutputFormatter = ctx.obj["out"]
    project, meta = _load_project(ctx, out)

    out.print_summary(
        "TNC Project Status",
        [("Project ID", meta.project_id), ("Directory", str(project.root))],
    )
    out.print("")

    engine = SyncEngine.for_project(project, out)
    if not engine.version_store.exists():
        if out.json_output:
            out.output_json({"project_id": meta.project_id, "tracked": 0})
        else:
            out.info("No previous versions found. Run 'tnc push' first.")
        return

    try:
        result, versions = engine.scan_and_diff(project)
        last_push = engine.push_store.load()
    except TncStateError as e:
        out.error(str(e))
        ctx.exit(1)

    summary = summarize(result, versions)
    latest_version = max((r.version for r in versions.values()), default=1)
    file_types = Counter(
        Path(path).suffix or "(no ext)" for path in sorted(versions.keys())
    )

    if out.json_output:
        data = summary.to_dict()
        data.update(
            {
                "project_id": meta.project_id,
                "tracked": len(versions),
                "latest_version": latest_version,
                "file_types": dict(file_types),
                "last_push": last_push.to_dict() if last_push else None,
            }
        )
        out.output_json(data)
        return

    out.info(f"Total tracked files: {len(versions)}")
    out.print("")
    out.print_summary(
        "Change Summary",
        [
            ("Unchanged files", len(summary.unchanged)),
            ("Modified files", len(summary.modified)),
            ("New files", len(summary.new)),
        ],
    )
    out.print("")

    if summary.has_changes:
        out.info("Detailed Changes:")
        for path in summary.new:
            out.success(f"  {path} (new)")
        for path in summary.modified:
            out.warning(f"  {path} (modified)")
    else:
        out.success("No changes detected. Everything is up to date!")

    out.print("")
    out.info(f"Latest version: {latest_version}")
    if file_types:
        out.print("")
        out.info("File Types:")
        for ext, count in file_types.most_common():
            out.info(f"  {ext}: {count} file(s)")

    out.print("")
    pushed_at = parse_iso_timestamp(last_push.pushed_at) if last_push else None
    if pushed_at is not None and last_push is not None:
        out.info(
            f"Last push: {pushed_at:%Y-%m-%d %H:%M:%S} by {last_push.pushed_by}"
        )
    else:
        out.info("Last push: never")


@main.command()
@click.argument("room_id")
@click.argument("path", type=click.Path(exists=True), default=".")
@click.option(
    "--workers",
    "-j",
    type=int,
    default=1,
    show_default=True,
    help="Number of parallel uploads",
)
@click.pass_context
def push(ctx: Any, room_id: str, path: str, workers: int) -> None:
    """Push changed files of PATH (default: the project root) to ROOM_ID.

    Only files whose content or modification time changed since the last
    push are uploaded. Unchanged files keep their previous URL and version.
    """
    out: OutputFormatter = ctx.obj["out"]
    project, meta = _load_project(ctx, out)

    target = Path(path)
    try:
        project.relative_path(target)
    except ValueError:
        out.error(f"{path} is not inside the project {project.root}")
        ctx.exit(1)

    client = _make_client(ctx, out)
    branch = meta.active_branch
    engine = SyncEngine.for_project(project, out, max_workers=workers)

    try:
        result = engine.push(
            project,
            target,
            room_id=room_id,
            actor=client.email,
            uploader=TncUploader(client, room_id),
            committer=TncMetadataCommitter(
                client, room_id, meta.project_id, branch, meta.branch_id
            ),
            conflict_detector=ConflictDetector(client, room_id, branch),
        )
    except KeyboardInterrupt:
        out.warning("\nPush cancelled by user")
        ctx.exit(130)
    except TncCommitError as e:
        logger.debug("Commit failed after uploading %d node(s)", len(e.uploaded_tree))
        out.error(f"Push failed: {e}")
        ctx.exit(1)
    except TncConfigError as e:
        out.error(str(e))
        ctx.exit(1)
    except TncAPIError as e:
        out.error(f"API error: {e}")
        ctx.exit(1)
    finally:
        client.close()

    if out.json_output:
        out.output_json(result.to_dict())


@main.command()
@click.argument("room_id")
@click.option(
    "--version",
    "-V",
    "version_number",
    type=int,
    default=None,
    help="Version to pull (default: latest)",
)
@click.pass_context
def pull(ctx: Any, room_id: str, version_number: Optional[int]) -> None:
    """Download the latest (or a given) version of ROOM_ID's project.

    Existing files with the same size are kept. The previous version file
    is backed up once to .tncversions.backup.
    """
    out: OutputFormatter = ctx.obj["out"]
    project, _meta = _load_project(ctx, out)
    client = _make_client(ctx, out)

    label = f"version {version_number}" if version_number is not None else "latest"
    out.info(f"Pulling {label} from room {room_id}...")

    try:
        stats = PullEngine(client, out).pull(project, room_id, version_number)
    except KeyboardInterrupt:
        out.warning("\nPull cancelled by user")
        ctx.exit(130)
    except TncConfigError as e:
        out.error(str(e))
        ctx.exit(1)
    except TncAPIError as e:
        out.error(f"Pull failed: {e}")
        ctx.exit(1)
    finally:
        client.close()

    if out.json_output:
        out.output_json(stats.to_dict())


if __name__ == "__main__":
    main()

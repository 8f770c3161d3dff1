"""
CLI interface for session ledger operations.

Provides command-line tools for creating sessions, recording messages and
presentations, and browsing, reverting, branching and diffing versions.
Commands operate on a SQL document store so state survives between runs.
"""

import json
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional, Tuple

import click

from session_ledger.config import config
from session_ledger.errors import LedgerError
from session_ledger.logging import initialize_logging
from session_ledger.sessions import SessionService
from session_ledger.store import SqlDocumentStore


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


@contextmanager
def _reporting_errors() -> Iterator[None]:
    """Report ledger errors on stderr and exit with status 1."""
    try:
        yield
    except LedgerError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def _service(ctx: click.Context) -> SessionService:
    """Open the SQL-backed service once per invocation."""
    if "service" not in ctx.obj:
        with _reporting_errors():
            store = SqlDocumentStore(ctx.obj["database_url"])
        service = SessionService(store=store)
        ctx.call_on_close(service.close)
        ctx.obj["service"] = service
    return ctx.obj["service"]


@click.group()
@click.option(
    "--database-url",
    default=config.store.database_url,
    show_default=True,
    help="Database connection URL",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    default="WARNING",
    help="Console log level",
)
@click.pass_context
def cli(ctx: click.Context, database_url: str, log_level: str):
    """Session Ledger CLI."""
    initialize_logging(
        log_dir=Path(config.logging.log_dir),
        level=log_level,
        enable_file_logging=config.logging.enable_file_logging,
    )
    ctx.ensure_object(dict)
    ctx.obj["database_url"] = database_url


@cli.command()
@click.option("--title", default="New Session", help="Session title")
@click.option("--description", default="", help="Session description")
@click.option("--owner", "owner_id", help="Owner id (omit for anonymous)")
@click.option("--message", "initial_message", help="Initial user message")
@click.option("--tag", "tags", multiple=True, help="Tag (repeatable)")
@click.option("--session-id", help="Explicit session id")
@click.pass_context
def create(
    ctx: click.Context,
    title: str,
    description: str,
    owner_id: Optional[str],
    initial_message: Optional[str],
    tags: Tuple[str, ...],
    session_id: Optional[str],
):
    """Create a session and its first version."""
    service = _service(ctx)
    with _reporting_errors():
        session_id, session = service.create_session(
            {
                "session_id": session_id,
                "title": title,
                "description": description,
                "owner_id": owner_id,
                "initial_message": initial_message,
                "tags": list(tags),
            }
        )
    _echo_json(
        {
            "session_id": session_id,
            "version_id": session.current_version_id,
            "message_count": len(session.messages),
        }
    )


@cli.command("add-message")
@click.argument("session_id")
@click.argument("content")
@click.option(
    "--role",
    type=click.Choice(["user", "assistant", "system"]),
    default="user",
    help="Message role",
)
@click.option("--no-version", is_flag=True, help="Do not create a version")
@click.pass_context
def add_message(ctx: click.Context, session_id: str, content: str, role: str, no_version: bool):
    """Append a message to a session."""
    service = _service(ctx)
    with _reporting_errors():
        message = service.add_message(
            session_id, content, role=role, create_version=not no_version
        )
        session = service.get_session(session_id)
    _echo_json(
        {
            "message_id": message.message_id,
            "version_id": session.current_version_id,
            "total_versions": session.total_versions,
        }
    )


@cli.command("add-presentation")
@click.argument("session_id")
@click.argument("presentation_id")
@click.argument("title")
@click.option("--slides", "slide_count", type=int, default=0, help="Number of slides")
@click.option("--file-name", help="Presentation file name")
@click.option("--no-version", is_flag=True, help="Do not create a version")
@click.pass_context
def add_presentation(
    ctx: click.Context,
    session_id: str,
    presentation_id: str,
    title: str,
    slide_count: int,
    file_name: Optional[str],
    no_version: bool,
):
    """Attach a generated presentation to a session."""
    service = _service(ctx)
    with _reporting_errors():
        ref = service.add_generated_presentation(
            session_id,
            {
                "id": presentation_id,
                "title": title,
                "slide_count": slide_count,
                "file_name": file_name,
            },
            create_version=not no_version,
        )
    _echo_json(ref.model_dump(mode="json"))


@cli.command()
@click.argument("session_id")
@click.option("--limit", type=int, help="Maximum versions to show")
@click.option("--asc", is_flag=True, help="Oldest first")
@click.pass_context
def history(ctx: click.Context, session_id: str, limit: Optional[int], asc: bool):
    """Show the version history of a session."""
    service = _service(ctx)
    with _reporting_errors():
        versions = service.get_version_history(
            session_id, order="asc" if asc else "desc", limit=limit
        )

    for version in versions:
        parent = version.parent_version_id or "-"
        click.echo(
            f"{version.version_id:>5}  {version.change_type.value:<18} "
            f"parent={parent:<5} msgs={version.stats.message_count:<3} "
            f"{version.description}"
        )


@cli.command()
@click.argument("session_id")
@click.option("--version", "version_id", help="Show a version instead of the working copy")
@click.pass_context
def show(ctx: click.Context, session_id: str, version_id: Optional[str]):
    """Show a session or one of its versions as JSON."""
    service = _service(ctx)
    with _reporting_errors():
        if version_id:
            _echo_json(service.get_version(session_id, version_id).to_document())
        else:
            _echo_json(service.get_session(session_id).to_document())


@cli.command()
@click.argument("session_id")
@click.argument("version_id")
@click.pass_context
def revert(ctx: click.Context, session_id: str, version_id: str):
    """Revert a session to an earlier version."""
    service = _service(ctx)
    with _reporting_errors():
        version = service.revert_to_version(session_id, version_id)
    click.echo(f"Created {version.version_id}: {version.description}")


@cli.command()
@click.argument("session_id")
@click.argument("version_id")
@click.argument("branch_name")
@click.option("--title", help="Title of the new session")
@click.pass_context
def branch(
    ctx: click.Context,
    session_id: str,
    version_id: str,
    branch_name: str,
    title: Optional[str],
):
    """Fork a version into a new session."""
    service = _service(ctx)
    with _reporting_errors():
        new_session_id, session = service.create_branch(
            session_id, version_id, branch_name, title=title
        )
    _echo_json(
        {
            "session_id": new_session_id,
            "title": session.title,
            "branch_name": branch_name,
            "message_count": len(session.messages),
        }
    )


@cli.command()
@click.argument("session_id")
@click.argument("version_a")
@click.argument("version_b")
@click.option("--json", "as_json", is_flag=True, help="Output JSON")
@click.option("--detect-modified", is_flag=True, help="Report changed elements")
@click.pass_context
def diff(
    ctx: click.Context,
    session_id: str,
    version_a: str,
    version_b: str,
    as_json: bool,
    detect_modified: bool,
):
    """Compare two versions of a session."""
    service = _service(ctx)
    with _reporting_errors():
        result = service.generate_diff(
            session_id, version_a, version_b, detect_modified=detect_modified
        )

    if as_json:
        _echo_json(result.to_dict())
    else:
        click.echo(result.format())


@cli.command("list")
@click.option("--owner", "owner_id", help="Owner id (omit for anonymous)")
@click.option(
    "--status",
    type=click.Choice(["active", "archived", "all"]),
    default="active",
    help="Status filter",
)
@click.option("--bookmarked", is_flag=True, help="Only bookmarked sessions")
@click.option("--tag", "tags", multiple=True, help="Match any of these tags")
@click.option("--limit", type=int, help="Page size")
@click.option("--offset", type=int, default=0, help="Sessions to skip")
@click.pass_context
def list_sessions(
    ctx: click.Context,
    owner_id: Optional[str],
    status: str,
    bookmarked: bool,
    tags: Tuple[str, ...],
    limit: Optional[int],
    offset: int,
):
    """List sessions of an owner."""
    service = _service(ctx)
    with _reporting_errors():
        page = service.get_user_sessions(
            owner_id,
            status=status,
            bookmarked_only=bookmarked,
            tags=list(tags) or None,
            limit=limit,
            offset=offset,
        )

    click.echo(f"{page.total} sessions")
    for summary in page.sessions:
        preview = summary.message_preview or ""
        click.echo(
            f"  {summary.session_id}  v{summary.current_version_number}  "
            f"{summary.title}  {preview}"
        )
    if page.has_more:
        click.echo(f"  ... more (use --offset {page.offset + len(page.sessions)})")


@cli.command()
@click.argument("session_id")
@click.pass_context
def archive(ctx: click.Context, session_id: str):
    """Archive a session."""
    service = _service(ctx)
    with _reporting_errors():
        service.archive_session(session_id)
    click.echo(f"Archived {session_id}")


@cli.command()
@click.argument("session_id")
@click.pass_context
def restore(ctx: click.Context, session_id: str):
    """Restore an archived session."""
    service = _service(ctx)
    with _reporting_errors():
        service.restore_session(session_id)
    click.echo(f"Restored {session_id}")


@cli.command()
@click.argument("session_id")
@click.option("--keep-versions", is_flag=True, help="Keep the version history")
@click.pass_context
def delete(ctx: click.Context, session_id: str, keep_versions: bool):
    """Delete a session permanently."""
    service = _service(ctx)
    with _reporting_errors():
        existed = service.delete_session(session_id, purge_versions=not keep_versions)
    if not existed:
        click.echo(f"Error: Session {session_id} not found", err=True)
        sys.exit(1)
    click.echo(f"Deleted {session_id}")


@cli.command()
@click.argument("session_id")
@click.option("--output", type=click.Path(dir_okay=False), help="Write to file")
@click.pass_context
def export(ctx: click.Context, session_id: str, output: Optional[str]):
    """Export a session and its version summaries as JSON."""
    service = _service(ctx)
    with _reporting_errors():
        document = service.export_session(session_id)

    if output:
        Path(output).write_text(document)
        click.echo(f"Exported {session_id} to {output}")
    else:
        click.echo(document)


if __name__ == "__main__":
    cli()

"""
CLI interface for the math vault.

Usage:
    mathvault create '{"type": "surface3d", "content": {"zExpr": "sin(x)*cos(y)"}}'
    mathvault list --tag calculus -q sin
    mathvault get ID
    mathvault patch ID --content '[[[1, 2], [3, 4]]]'

JSON bodies may also be piped on stdin.
"""

import json
import os
import select
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

import typer
from typing_extensions import Annotated

from .api import Vault
from .errors import VaultError
from .logging_config import configure_quiet_mode, enable_debug_mode
from .query import dims_label

DEFAULT_OWNER = "local"


def _has_stdin_data() -> bool:
    """Check if stdin has data available without blocking.

    Returns True only when stdin is a pipe with data ready to read.
    """
    if sys.stdin.isatty():
        return False
    try:
        ready, _, _ = select.select([sys.stdin], [], [], 0)
        return bool(ready)
    except (ValueError, OSError):
        return False


# Quiet by default; MATHVAULT_VERBOSE=1 enables debug mode via environment
if os.environ.get("MATHVAULT_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from . import __version__
        print(f"mathvault {__version__}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False
_store_override: Optional[Path] = None
_owner = os.environ.get("MATHVAULT_OWNER", DEFAULT_OWNER)


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _store_callback(value: Optional[Path]):
    global _store_override
    if value is not None:
        _store_override = value


def _owner_callback(value: Optional[str]):
    global _owner
    if value:
        _owner = value


app = typer.Typer(
    name="mathvault",
    help="Store of equations, 3D curves, surfaces and arrays.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
    store: Annotated[Optional[Path], typer.Option(
        "--store", "-s",
        envvar="MATHVAULT_STORE_PATH",
        help="Path to the store directory (default: ~/.mathvault/)",
        callback=_store_callback,
        is_eager=True,
    )] = None,
    owner: Annotated[Optional[str], typer.Option(
        "--owner", "-o",
        envvar="MATHVAULT_OWNER",
        help=f"Owner id whose items to operate on (default: {DEFAULT_OWNER})",
        callback=_owner_callback,
        is_eager=True,
    )] = None,
):
    """Store of equations, 3D curves, surfaces and arrays."""


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def _get_vault() -> Vault:
    """Open the vault, turning setup failures into a clean error."""
    import atexit

    try:
        vault = Vault.open(_store_override)
    except (OSError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    atexit.register(vault.close)
    return vault


@contextmanager
def _vault_errors() -> Iterator[None]:
    """Report NotFound / InvalidArgument as a one-line error and exit 1."""
    try:
        yield
    except VaultError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


def _read_body(body: Optional[str]) -> Any:
    """Parse a JSON body from the argument, or from stdin when omitted."""
    if body is None:
        if not _has_stdin_data():
            typer.echo("Error: Provide a JSON body as an argument or on stdin", err=True)
            raise typer.Exit(1)
        body = sys.stdin.read()
    try:
        return json.loads(body)
    except json.JSONDecodeError as e:
        typer.echo(f"Error: Invalid JSON body: {e}", err=True)
        raise typer.Exit(1)


def _preview(item) -> str:
    """Short type-specific preview for one-line output."""
    if item.formula:
        return item.formula
    if item.expr:
        return item.expr
    return dims_label(item)


def _format_line(item) -> str:
    line = f"{item.id}  {item.type:<9}  {item.title}"
    preview = _preview(item)
    if preview:
        line += f"  ({preview})"
    if item.tags:
        line += f"  [{', '.join(item.tags)}]"
    return line


def _echo_item(item) -> None:
    if _json_output:
        typer.echo(json.dumps(item.to_dict(), indent=2, ensure_ascii=False))
    else:
        typer.echo(_format_line(item))


def _echo_items(items: list) -> None:
    if _json_output:
        typer.echo(json.dumps([it.to_dict() for it in items], indent=2, ensure_ascii=False))
        return
    for it in items:
        typer.echo(_format_line(it))


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

BodyArgument = Annotated[
    Optional[str],
    typer.Argument(help="JSON body (read from stdin when omitted)"),
]


@app.command()
def create(body: BodyArgument = None):
    """Create an item. The body must include "type"."""
    payload = _read_body(body)
    vault = _get_vault()
    with _vault_errors():
        item = vault.create(_owner, payload)
    _echo_item(item)


@app.command()
def get(id: Annotated[str, typer.Argument(help="Item id")]):
    """Show one item in full."""
    vault = _get_vault()
    with _vault_errors():
        item = vault.get_owned(_owner, id)
    if _json_output:
        _echo_item(item)
        return
    typer.echo(_format_line(item))
    if item.content is not None:
        typer.echo(json.dumps(item.content, ensure_ascii=False))


@app.command("list")
def list_items(
    tag: Annotated[Optional[str], typer.Option(
        "--tag", "-t",
        help="Only items carrying this tag",
    )] = None,
    query: Annotated[Optional[str], typer.Option(
        "--query", "-q",
        help="Case-insensitive text search (title, type, formula, expr, tags, WxHxD)",
    )] = None,
    full: Annotated[bool, typer.Option(
        "--full", "-F",
        help="Include content and links (JSON output)",
    )] = False,
    limit: Annotated[Optional[int], typer.Option(
        "--limit", "-n",
        help="Maximum results to return",
    )] = None,
):
    """List items, most recently updated first."""
    vault = _get_vault()
    if full:
        items = vault.list_full(_owner, tag=tag, q=query, limit=limit)
    else:
        items = vault.list_summary(_owner, tag=tag, q=query, limit=limit)
    _echo_items(items)


@app.command()
def update(
    id: Annotated[str, typer.Argument(help="Item id")],
    body: BodyArgument = None,
):
    """Replace an item; fields missing from the body keep their values."""
    payload = _read_body(body)
    vault = _get_vault()
    with _vault_errors():
        item = vault.update(_owner, id, payload)
    _echo_item(item)


@app.command()
def patch(
    id: Annotated[str, typer.Argument(help="Item id")],
    body: BodyArgument = None,
    meta: Annotated[bool, typer.Option(
        "--meta",
        help="Body is {title, tags, formula}",
    )] = False,
    content: Annotated[bool, typer.Option(
        "--content",
        help="Body is the content tree (or {\"content\": tree})",
    )] = False,
):
    """Partially update an item."""
    if meta and content:
        typer.echo("Error: Use either --meta or --content, not both", err=True)
        raise typer.Exit(1)
    payload = _read_body(body)
    vault = _get_vault()
    with _vault_errors():
        if meta:
            item = vault.patch_meta(_owner, id, payload)
        elif content:
            item = vault.patch_content(_owner, id, payload)
        else:
            item = vault.patch_item(_owner, id, payload)
    _echo_item(item)


@app.command()
def delete(id: Annotated[str, typer.Argument(help="Item id")]):
    """Delete an item (no error if it doesn't exist)."""
    vault = _get_vault()
    deleted = vault.delete(_owner, id)
    if _json_output:
        typer.echo(json.dumps({"id": id, "deleted": deleted}))
    elif deleted:
        typer.echo(f"Deleted {id}")


@app.command()
def history(
    scope: Annotated[Optional[str], typer.Option("--scope", help="VAULT or STUDIO")] = None,
    entity: Annotated[Optional[str], typer.Option("--entity", "-e", help="Entity id")] = None,
    event_type: Annotated[Optional[str], typer.Option(
        "--type",
        help="CREATE, UPDATE, DELETE or SNAPSHOT",
    )] = None,
    limit: Annotated[int, typer.Option("--limit", "-n", help="Maximum events")] = 50,
):
    """Show recent history events, newest first."""
    vault = _get_vault()
    events = vault.history(_owner, scope=scope, entity_id=entity, type=event_type, limit=limit)
    if _json_output:
        typer.echo(json.dumps([ev.to_dict() for ev in events], indent=2, ensure_ascii=False))
        return
    for ev in events:
        typer.echo(f"{ev.to_dict()['createdAt']}  {ev.scope:<6}  {ev.type:<8}  {ev.entity_id}")


# -----------------------------------------------------------------------------
# Entry point
# -----------------------------------------------------------------------------

def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        from .errors import log_exception
        log_path = log_exception(e, context="mathvault CLI")
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()

"""
CLI interface for treekeep.

Usage:
    treekeep open notes.gko
    treekeep save <workspace> notes.gko
    treekeep import legacy.json
    treekeep destroy <doc-id>
    treekeep hash notes.gko
"""

import json
import os
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from . import __version__
from .api import DocumentLibrary
from .errors import log_exception
from .hashing import content_digest
from .logging_config import enable_debug_mode


# -----------------------------------------------------------------------------
# Global Options
# -----------------------------------------------------------------------------

_json_output = False
_data_dir_override: Optional[Path] = None


def _version_callback(value: bool):
    if value:
        typer.echo(f"treekeep {__version__}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value or os.environ.get("TREEKEEP_VERBOSE"):
        enable_debug_mode()


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _data_dir_callback(value: Optional[Path]):
    global _data_dir_override
    _data_dir_override = value


app = typer.Typer(
    name="treekeep",
    help="Safe persistence for outline documents.",
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
    data_dir: Annotated[Optional[Path], typer.Option(
        "--data-dir", "-d",
        envvar="TREEKEEP_DATA_DIR",
        help="Application data directory",
        callback=_data_dir_callback,
        is_eager=True,
    )] = None,
):
    """Safe persistence for outline documents."""


def _emit(data: dict, text: str) -> None:
    if _json_output:
        typer.echo(json.dumps(data, ensure_ascii=False))
    else:
        typer.echo(text)


def _fail(e: Exception, context: str) -> None:
    log_path = log_exception(e, context)
    typer.echo(f"Error: {e}", err=True)
    typer.echo(f"Details logged to {log_path}", err=True)
    raise typer.Exit(1)


def _get_library() -> DocumentLibrary:
    """Open the document library, handling errors gracefully."""
    try:
        return DocumentLibrary(_data_dir_override)
    except (OSError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

@app.command("open")
def open_cmd(
    container: Annotated[Path, typer.Argument(help="Container file (.gko)")],
):
    """Back up a container and extract it into a swap workspace."""
    with _get_library() as lib:
        try:
            workspace = lib.open_file(container)
        except OSError as e:
            _fail(e, "open")
        _emit({"workspace": str(workspace), "container": str(container)}, str(workspace))


@app.command("save")
def save_cmd(
    workspace: Annotated[Path, typer.Argument(help="Workspace or store directory")],
    output: Annotated[Path, typer.Argument(help="File to write")],
):
    """Save a store to a file with dual-write verification."""
    if not workspace.is_dir():
        typer.echo(f"Error: not a directory: {workspace}", err=True)
        raise typer.Exit(1)

    with _get_library() as lib:
        store = lib.mount(workspace)
        try:
            result = lib.save(store, output)
        except Exception as e:
            _fail(e, "save")
        finally:
            store.close()
        _emit({"path": str(result.path), "hash": result.hash}, result.hash)


@app.command("import")
def import_cmd(
    file: Annotated[Path, typer.Argument(help="Native dump or plain tree JSON file")],
):
    """Import a file into a new document store."""
    if not file.exists():
        typer.echo(f"Error: file not found: {file}", err=True)
        raise typer.Exit(1)

    with _get_library() as lib:
        try:
            result = lib.import_document(file)
            with lib.store_for_import(result) as store:
                count = store.count()
        except Exception as e:
            _fail(e, "import")
        _emit(
            {"id": result.doc_id, "name": result.name, "format": result.format, "nodes": count},
            f"{result.doc_id}\t{result.name}",
        )


@app.command("destroy")
def destroy_cmd(
    doc_id: Annotated[str, typer.Argument(help="Document ID")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation")] = False,
):
    """Delete a document store and its window state."""
    if not yes and not typer.confirm(f"Destroy document {doc_id}?"):
        raise typer.Exit(0)

    with _get_library() as lib:
        try:
            lib.destroy(doc_id)
        except (OSError, ValueError) as e:
            _fail(e, "destroy")
    typer.echo(f"Destroyed {doc_id}", err=True)


@app.command("hash")
def hash_cmd(
    file: Annotated[Path, typer.Argument(help="Dump file")],
):
    """Print the start_time-masked digest of a dump."""
    try:
        digest = content_digest(file)
    except OSError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    _emit({"path": str(file), "hash": digest}, digest)


def main():
    app()


if __name__ == "__main__":
    main()

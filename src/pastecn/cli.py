"""Command line interface for pastecn."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

import typer
import uvicorn
from rich.console import Console
from rich.markup import escape
from rich.syntax import Syntax
from pydantic import ValidationError
from rich.table import Table

from pastecn.config import AppConfig
from pastecn.errors import SnippetError
from pastecn.models import CreateSnippetInput, CreateSnippetInputFile, SnippetType
from pastecn.security.auth import PasswordCredential
from pastecn.security.passwords import generate_password
from pastecn.snippets.access import AccessState, decide_access
from pastecn.snippets.create import create_snippet
from pastecn.snippets.mapper import to_snippet, to_snippet_metadata
from pastecn.storage.blob import FilesystemBlobStore
from pastecn.storage.repository import SnippetRepository
from pastecn.utils.validation import strip_json_suffix, validate_id

console = Console()
app = typer.Typer(help="pastecn - share code snippets as shadcn registry items")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _load_config(data_dir: Optional[Path]) -> AppConfig:
    try:
        config = AppConfig()
    except ValidationError as exc:
        console.print(f"[red]Invalid configuration:[/red]\n{escape(str(exc))}")
        raise typer.Exit(code=2) from exc
    if data_dir is not None:
        config.data_dir = data_dir
    return config


def _open_repository(config: AppConfig) -> SnippetRepository:
    return SnippetRepository(FilesystemBlobStore(config.resolve_data_dir(Path.cwd())))


@app.command()
def create(
    inputs: List[Path] = typer.Argument(
        ..., help="Files to include in the snippet.", exists=True, dir_okay=False
    ),
    name: Optional[str] = typer.Option(None, "--name", help="Snippet name (defaults to the first file name)"),
    snippet_type: SnippetType = typer.Option(SnippetType.FILE, "--type", help="Registry item type"),
    target: Optional[str] = typer.Option(None, "--target", help="Install target for a single file"),
    password: Optional[str] = typer.Option(None, "--password", help="Protect the snippet with this password"),
    generate: bool = typer.Option(False, "--generate-password", help="Protect with a generated password"),
    expires_in: str = typer.Option("never", "--expires-in", help="1h | 24h | 7d | 30d | never"),
    data_dir: Path = typer.Option(None, "--data-dir", help="Snippet storage directory"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Create a snippet from local files."""
    _setup_logging(verbose)
    config = _load_config(data_dir)

    if target is not None and len(inputs) != 1:
        raise typer.BadParameter("--target can only be used with a single file")
    if generate and password:
        raise typer.BadParameter("Use either --password or --generate-password")

    files = [
        CreateSnippetInputFile(
            path=path.name,
            content=path.read_text(encoding="utf-8"),
            target=target,
        )
        for path in inputs
    ]
    snippet_input = CreateSnippetInput(
        name=name or inputs[0].stem,
        type=snippet_type.value,
        files=files,
        password=generate_password() if generate else password,
        expires_in=expires_in,
    )

    try:
        result = create_snippet(
            snippet_input,
            repository=_open_repository(config),
            base_url=config.base_url,
            allow_test_expirations=config.allow_test_expirations,
            max_content_bytes=config.max_content_bytes,
        )
    except SnippetError as exc:
        console.print(f"[red]{exc.code.value}: {escape(exc.message)}[/red]")
        raise typer.Exit(code=1)

    console.print(f"Created snippet [bold]{result.id}[/bold]")
    console.print(f"View:     {result.url}")
    console.print(f"Registry: {result.registry_url}")
    if result.password:
        console.print(f"Password: [bold yellow]{result.password}[/bold yellow] (shown only once)")


@app.command()
def show(
    snippet_id: str = typer.Argument(..., help="Snippet ID"),
    password: Optional[str] = typer.Option(None, "--password", help="Password for protected snippets"),
    data_dir: Path = typer.Option(None, "--data-dir", help="Snippet storage directory"),
) -> None:
    """Print a snippet from the local store."""
    config = _load_config(data_dir)
    snippet_id = strip_json_suffix(snippet_id)
    if not validate_id(snippet_id):
        raise typer.BadParameter(f"Invalid snippet ID: {snippet_id}")

    document = _open_repository(config).fetch_document(snippet_id)
    decision = decide_access(
        snippet_id,
        document,
        now=datetime.now(timezone.utc),
        credential=PasswordCredential(password) if password else None,
    )
    if decision.state in (AccessState.NOT_FOUND, AccessState.EXPIRED) or document is None:
        console.print("[yellow]Snippet not found.[/yellow]")
        raise typer.Exit(code=1)

    metadata = to_snippet_metadata(snippet_id, document)
    table = Table(show_header=True, header_style="bold magenta", title=escape(metadata.name))
    table.add_column("Path")
    table.add_column("Target")
    table.add_column("Language")
    table.add_column("Type")
    for entry in metadata.files:
        table.add_row(escape(entry.path), escape(entry.target), entry.language, entry.type)
    console.print(table)
    if metadata.meta.expires_at:
        console.print(f"Expires at {metadata.meta.expires_at}")

    if decision.state is AccessState.AUTH_REQUIRED:
        console.print("[yellow]Snippet is password-protected; pass --password to view it.[/yellow]")
        raise typer.Exit(code=2)
    if decision.state is AccessState.AUTH_INVALID:
        console.print("[red]Invalid password.[/red]")
        raise typer.Exit(code=2)

    for entry in to_snippet(snippet_id, document).files:
        console.rule(escape(entry.path))
        console.print(Syntax(entry.content, entry.language, line_numbers=False))


@app.command("password")
def password_command() -> None:
    """Print a generated snippet password."""
    console.print(generate_password())


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Server port"),
    data_dir: Path = typer.Option(None, "--data-dir", help="Snippet storage directory"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Start the HTTP API."""
    _setup_logging(verbose)
    config = _load_config(data_dir)
    from pastecn.web.app import create_app

    if config.uses_default_secret:
        console.print("[yellow]Warning: UNLOCK_SESSION_SECRET is not set, using the development secret.[/yellow]")

    console.print(
        f"Starting pastecn on http://{host}:{port} (data: {config.resolve_data_dir(Path.cwd())})"
    )
    uvicorn.run(
        create_app(config),
        host=host,
        port=port,
        reload=False,
        log_level="debug" if verbose else "info",
    )

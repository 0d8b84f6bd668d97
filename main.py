import logging
import subprocess
import sys
from typing import List, Optional

import typer
from rich.console import Console

from config import settings
from errors import StoreError
from library import Library
from mailer import send_digest
from ui_helpers import set_output_mode, print_quote_list, print_stats_result

APP_NAME = "Quote CLI"

console = Console()

app = typer.Typer(help=APP_NAME)


def _open_library(db_file: Optional[str]) -> Library:
    """Open the quote store or exit with an error message."""
    path = db_file or settings.database_file
    try:
        return Library.open(path)
    except StoreError as e:
        console.print(f"[bold red]Could not open quote database: {e}[/]")
        raise typer.Exit(code=1)


@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    ),
    log_level: str = typer.Option(settings.log_level, "--log-level", help="Logging level"),
):
    """Global CLI options (output mode, logging)."""
    logging.basicConfig(level=log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    if output:
        set_output_mode(output)


@app.command("init-db")
def cli_init_db(db_file: Optional[str] = typer.Option(None, "--db", help="Database file")):
    """Create the schema if needed and show row counts."""
    lib = _open_library(db_file)
    try:
        print_stats_result(lib.get_statistics())
    finally:
        lib.close()


@app.command("quotes")
def cli_quotes(db_file: Optional[str] = typer.Option(None, "--db", help="Database file")):
    """List all quotes."""
    lib = _open_library(db_file)
    try:
        print_quote_list(lib.get_quotes())
    finally:
        lib.close()


@app.command("search")
def cli_search(
    words: List[str] = typer.Argument(..., help="Words to look for in quote texts"),
    db_file: Optional[str] = typer.Option(None, "--db", help="Database file"),
):
    """Search quotes containing any of the given words."""
    lib = _open_library(db_file)
    try:
        print_quote_list(lib.search_many(lib.search_quotes, words))
    finally:
        lib.close()


@app.command("digest")
def cli_digest(db_file: Optional[str] = typer.Option(None, "--db", help="Database file")):
    """Send the quote digest e-mail right now."""
    lib = _open_library(db_file)
    try:
        sent = send_digest(lib, settings)
    except OSError as e:
        console.print(f"[bold red]Sending the digest failed: {e}[/]")
        raise typer.Exit(code=1)
    finally:
        lib.close()
    if sent:
        print(f"Digest with {sent} quotes sent.")
    else:
        print("Nothing sent.")


@app.command("serve")
def cli_serve(
    host: str = typer.Option(settings.api_host, "--host"),
    port: int = typer.Option(settings.api_port, "--port"),
    reload: bool = typer.Option(False, "--reload", help="Restart on code changes"),
):
    """Start the REST API with uvicorn."""
    print(f"Starting quote API on http://{host}:{port}/api")
    args = [
        sys.executable,
        "-m", "uvicorn",
        "api:create_app",
        "--factory",
        "--host", host,
        "--port", str(port),
    ]
    if reload:
        args.append("--reload")
    try:
        subprocess.run(args)
    except FileNotFoundError:
        console.print("[bold red]Error:[/] `uvicorn` could not be started. Make sure it is installed.")
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()

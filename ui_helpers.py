import os
import json
from typing import List, Any, Dict
from rich.console import Console
from rich.table import Table
from rich.panel import Panel

# Environment variable to control CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "QUOTE_CLI_OUTPUT"

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def print_quote_list(quotes: List[Any]) -> None:
    """Print quotes according to the current output mode.
    - plain: '<id> - "<quote>" (<title>, p. <page>) by <author>' lines, or 'No quotes stored.'
    - json: JSON array of the quote dicts
    - rich: Rich table
    """
    mode = get_output_mode()

    if not quotes:
        print("No quotes stored.")
        return

    if mode == "json":
        print(json.dumps([q.to_dict() for q in quotes], ensure_ascii=False))
    elif mode == "rich":
        table = Table(title="Quotes", show_lines=True, header_style="bold cyan")
        table.add_column("Id", style="magenta", no_wrap=True)
        table.add_column("Quote", style="white")
        table.add_column("Book", style="white")
        table.add_column("Author", style="white")
        table.add_column("Page", justify="right")
        for q in quotes:
            table.add_row(str(q.id), q.quote, q.book.title, q.book.author.name, str(q.page))
        _console.print(table)
    else:
        for q in quotes:
            print(f'{q.id} - "{q.quote}" ({q.book.title}, p. {q.page}) by {q.book.author.name}')


def print_stats_result(stats: Dict[str, Any]) -> None:
    """Print row counts according to the current output mode."""
    mode = get_output_mode()

    if mode == "json":
        print(json.dumps(stats, ensure_ascii=False))
    elif mode == "rich":
        content = "\n".join(f"[bold]{name.title()}:[/] {count}" for name, count in stats.items())
        _console.print(Panel.fit(content, title="Quote store", border_style="blue"))
    else:
        for name, count in stats.items():
            print(f"{name.title()}: {count}")

"""localmem CLI with Rich output.

Provides commands for:
- Running the backend server
- Showing the auth token and server status
- Adding, searching, listing and forgetting memories
- Viewing a container tag's profile

Usage:
    localmem serve                   # Run the backend on 127.0.0.1
    localmem status                  # Show backend status
    localmem add "note" -t proj1     # Store a memory
    localmem search "query" -t proj1 # Search memories
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional

import typer
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from localmem.client import LocalMemoryClient, MemoryBackendError, RateLimitExceeded

# Initialize Typer app and Rich console
app = typer.Typer(
    name="localmem",
    help="localmem - Self-hosted memory backend",
    rich_markup_mode="rich",
    no_args_is_help=True,
)
console = Console()

TagOption = typer.Option(None, "--tag", "-t", help="Container tag (default: 'default')")


def print_banner():
    """Print localmem banner."""
    from localmem import __version__

    banner = Text()
    banner.append("localmem", style="bold cyan")
    banner.append(f" {__version__}", style="cyan")
    console.print(Panel(banner, border_style="cyan", box=box.ROUNDED))


def _call(fn: Callable[[LocalMemoryClient], Awaitable[Any]], url: Optional[str] = None) -> Any:
    """Run one client call, exiting with status 1 on backend errors."""

    async def runner():
        async with LocalMemoryClient(base_url=url) as client:
            return await fn(client)

    try:
        return asyncio.run(runner())
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    except RateLimitExceeded as e:
        console.print(f"[yellow]{e}[/yellow]")
        raise typer.Exit(1)
    except MemoryBackendError as e:
        if e.status_code == 0:
            console.print(f"[red]Backend unreachable:[/red] {e.error}")
            console.print("[dim]Start it with: localmem serve[/dim]")
        else:
            console.print(f"[red]Error {e.status_code}:[/red] {e.error}")
        raise typer.Exit(1)


def _results_table(results: list[dict], title: str) -> Table:
    table = Table(title=title, box=box.ROUNDED)
    table.add_column("Similarity", justify="right", style="green")
    table.add_column("ID", style="dim")
    table.add_column("Memory")

    for r in results:
        table.add_row(f"{r.get('similarity', 0):.2f}", r["id"][:8], (r.get("content") or "")[:80])
    return table


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Loopback bind address (default: LOCALMEM_HOST)"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Listen port (default: LOCALMEM_PORT)"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Console log level"),
):
    """Run the backend server (loopback only)."""
    from localmem.backend.main import run

    try:
        run(host=host, port=port, log_level=log_level)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


@app.command()
def token(
    show: bool = typer.Option(False, "--show", help="Print the full token"),
):
    """Show the auth token, creating it on first use."""
    from localmem.backend.config import get_config
    from localmem.security import load_or_create_token

    config = get_config()
    value = load_or_create_token(config.data_dir)
    if show:
        console.print(value, highlight=False)
    else:
        console.print(f"[bold]Token:[/bold] {value[:8]}... [dim](use --show for the full token)[/dim]")
    console.print(f"[dim]File: {config.token_path}[/dim]")


@app.command()
def status(
    url: Optional[str] = typer.Option(None, "--url", help="Backend URL"),
):
    """Show backend status."""
    print_banner()

    info = _call(lambda c: c.health_check(), url)

    table = Table(title="Backend Status", box=box.ROUNDED)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Status", f"[green]{info.get('status')}[/green]")
    table.add_row("Version", str(info.get("version", "-")))
    table.add_row("Storage", str(info.get("storage", "-")))
    table.add_row("Memories", str(info.get("memories", 0)))
    console.print(table)


@app.command()
def add(
    content: str = typer.Argument(..., help="Memory content"),
    tag: Optional[str] = TagOption,
    custom_id: Optional[str] = typer.Option(None, "--id", help="Custom memory id"),
):
    """Store a memory."""
    result = _call(lambda c: c.add_memory(content, container_tag=tag, custom_id=custom_id))
    console.print(f"[green]Stored[/green] {result['id']} in [cyan]{result['containerTag']}[/cyan]")


@app.command()
def search(
    query: str = typer.Argument(..., help="Search query"),
    tag: Optional[str] = TagOption,
    limit: int = typer.Option(10, "--limit", "-n", help="Maximum results (at most 50)"),
):
    """Search memories by keyword."""
    result = _call(lambda c: c.search(query, container_tag=tag, limit=limit))
    results = result.get("results", [])
    if not results:
        console.print("[yellow]No matching memories.[/yellow]")
        return
    console.print(_results_table(results, f"{result.get('total', len(results))} results"))
    console.print(f"[dim]{result.get('timing', 0)} ms[/dim]")


@app.command("list")
def list_memories(
    tag: Optional[str] = TagOption,
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum memories"),
):
    """List the most recent memories, newest first."""
    result = _call(lambda c: c.list_memories(container_tag=tag, limit=limit))
    memories = result.get("memories", [])
    if not memories:
        console.print("[yellow]No memories.[/yellow]")
        return

    table = Table(box=box.ROUNDED)
    table.add_column("ID", style="dim")
    table.add_column("Created", style="cyan")
    table.add_column("Title")
    for m in memories:
        table.add_row(m["id"], m.get("createdAt", ""), m.get("title") or "-")
    console.print(table)


@app.command()
def forget(
    memory_id: str = typer.Argument(..., help="Memory id to delete"),
):
    """Soft-delete a memory."""
    _call(lambda c: c.delete_memory(memory_id))
    console.print(f"[green]Forgot[/green] {memory_id}")


@app.command()
def profile(
    tag: Optional[str] = TagOption,
    query: Optional[str] = typer.Option(None, "--query", "-q", help="Also search for this query"),
):
    """Show the extracted profile of a container tag."""
    result = _call(lambda c: c.get_profile(container_tag=tag, query=query))
    facts = result.get("profile", {})

    for label, key in (("Static", "static"), ("Dynamic", "dynamic")):
        console.print(f"\n[bold]{label}[/bold]")
        items = facts.get(key) or []
        if not items:
            console.print("  [dim]none[/dim]")
        for item in items:
            console.print(f"  - {item}")

    search_results = result.get("searchResults")
    if search_results and search_results.get("results"):
        console.print()
        console.print(_results_table(search_results["results"], f"Matches for '{query}'"))


def main():
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()

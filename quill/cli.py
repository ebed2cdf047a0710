"""CLI entry points: `quill configure`, `quill generate`, `quill serve` and helpers."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from pathlib import Path
from typing import TypeVar

import typer
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.live import Live
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from quill.config import ensure_dirs, load_config, save_config
from quill.core import Notice, QuillError, Severity
from quill.generation.orchestrator import Orchestrator, get_orchestrator, reset_orchestrator
from quill.notebook.models import Artifact, Builder, Note

T = TypeVar("T")

app = typer.Typer(name="quill", help="Streaming artifact generation for notebooks.")
console = Console()

_NOTICE_STYLES = {
    Severity.ERROR: "red",
    Severity.WARNING: "yellow",
    Severity.INFO: "cyan",
    Severity.SUCCESS: "green",
}


class LiveObserver:
    """Renders the in-flight artifact in a rich Live panel."""

    def __init__(self, live: Live) -> None:
        self._live = live
        self.final: Artifact | None = None

    def on_artifact_update(self, artifact: Artifact, is_final: bool = False, correlation_id: str | None = None) -> None:
        if artifact.is_removal_marker:
            self._live.update(Panel("[dim]discarded[/dim]", title="generation failed"))
            return
        subtitle = "generating..." if artifact.is_generating else artifact.id
        self._live.update(Panel(Markdown(artifact.content or " "), title=artifact.title, subtitle=subtitle))
        if is_final:
            self.final = artifact

    def on_generation_state_change(self, is_generating: bool) -> None:
        pass

    def on_notice(self, notice: Notice) -> None:
        style = _NOTICE_STYLES.get(notice.severity, "white")
        console.print(f"[{style}]{notice.message}[/{style}]")


@app.command()
def configure(
    endpoint: str = typer.Option(None, "--endpoint", help="Chat completions endpoint URL"),
    model: str = typer.Option(None, "--model", "-m", help="Model name"),
    store: str = typer.Option(None, "--store", help="Record store kind: file or http"),
    store_url: str = typer.Option(None, "--store-url", help="Base URL of the HTTP record store"),
    creator: str = typer.Option(None, "--creator", help="Default creator id"),
) -> None:
    """Update ~/.quill/config.json."""
    config = load_config()
    if endpoint:
        config.llm.endpoint = endpoint
    if model:
        config.llm.model = model
    if store:
        if store not in ("file", "http"):
            console.print(f"[red]Unknown store kind:[/red] {store}")
            raise typer.Exit(1)
        config.store.kind = store
    if store_url:
        config.store.base_url = store_url
    if creator:
        config.settings.default_creator = creator
    save_config(config)
    console.print_json(config.model_dump_json())


async def _closing(orchestrator: Orchestrator, awaitable: Awaitable[T]) -> T:
    """Await within a single event loop, then close and drop the orchestrator."""
    try:
        return await awaitable
    finally:
        await orchestrator.aclose()
        reset_orchestrator()


@app.command("new-notebook")
def new_notebook(title: str = typer.Argument(help="Notebook title")) -> None:
    """Create a notebook record and print its id."""
    ensure_dirs()
    orchestrator = get_orchestrator(load_config())
    try:
        notebook = asyncio.run(_closing(orchestrator, orchestrator.repository.create_notebook(title)))
    except QuillError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e
    console.print(f"[green]Created notebook[/green] {notebook.id}")


@app.command()
def builders() -> None:
    """List the available builders."""
    orchestrator = get_orchestrator(load_config())
    try:
        items = asyncio.run(_closing(orchestrator, orchestrator.repository.list_builders()))
    except QuillError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e

    t = Table(title="Builders")
    t.add_column("ID", style="cyan")
    t.add_column("Title")
    t.add_column("Type", style="green")
    for builder in items:
        t.add_row(builder.id, builder.title, builder.type)
    console.print(t)


@app.command("seed-builders")
def seed_builders(path: Path = typer.Argument(help="YAML file with a `builders` list")) -> None:
    """Create or update builders from a YAML file."""
    try:
        data = yaml.safe_load(path.read_text())
    except (OSError, yaml.YAMLError) as e:
        console.print(f"[red]Failed to read {path}:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e

    entries = data.get("builders", []) if isinstance(data, dict) else []
    parsed: list[Builder] = []
    for i, entry in enumerate(item for item in entries if isinstance(item, dict)):
        try:
            parsed.append(Builder.model_validate(entry))
        except ValidationError as e:
            console.print(f"[red]Invalid builder #{i + 1} ({entry.get('id', '?')}):[/red] {escape(str(e))}")
            raise typer.Exit(1) from e
    orchestrator = get_orchestrator(load_config())

    async def _save() -> None:
        for builder in parsed:
            await orchestrator.repository.save_builder(builder)

    ensure_dirs()
    try:
        asyncio.run(_closing(orchestrator, _save()))
    except QuillError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e
    console.print(f"[green]Saved {len(parsed)} builders[/green]")


@app.command()
def generate(
    notebook: str = typer.Argument(help="Notebook id"),
    builder_id: str = typer.Argument(help="Builder id"),
    note_files: list[Path] = typer.Argument(help="Note files used as context, in order"),
    creator: str = typer.Option(None, "--creator", help="Creator id"),
) -> None:
    """Generate an artifact from note files, showing the document as it streams."""
    try:
        notes = [Note(title=p.stem, content=p.read_text()) for p in note_files]
    except OSError as e:
        console.print(f"[red]Failed to read note:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e
    config = load_config()
    orchestrator = get_orchestrator(config)
    creator = creator or config.settings.default_creator
    asyncio.run(_closing(orchestrator, _generate(orchestrator, notebook, builder_id, notes, creator)))


async def _generate(
    orchestrator: Orchestrator, notebook: str, builder_id: str, notes: list[Note], creator: str
) -> None:
    try:
        builders = await orchestrator.repository.list_builders()
    except QuillError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e
    builder = next((b for b in builders if b.id == builder_id), None)
    if builder is None:
        console.print(f"[red]Builder {builder_id} not found.[/red] Run [bold]quill builders[/bold].")
        raise typer.Exit(1)

    with Live(Panel("[dim]requesting...[/dim]", title=builder.title), console=console, refresh_per_second=8) as live:
        observer = LiveObserver(live)
        session = await orchestrator.start(builder, notes, notebook=notebook, creator=creator, observer=observer)

    if session is None or observer.final is None:
        raise typer.Exit(1)
    if session.stats.skipped:
        console.print(f"[yellow]Skipped {session.stats.skipped} malformed frames[/yellow]")
    console.print(f"[green]Saved artifact [bold]{observer.final.id}[/bold][/green]")


@app.command()
def serve(
    port: int = typer.Option(8000, "--port", "-p", help="Port to serve on"),
) -> None:
    """Start the Quill API server."""
    import logging

    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")

    ensure_dirs()
    console.print(f"[bold]Starting Quill on port {port}...[/bold]")
    uvicorn.run("quill.server:app", host="0.0.0.0", port=port, reload=False)


def main() -> None:
    app()

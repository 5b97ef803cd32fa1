"""Command-line interface for the kgrag retrieval engine.

Commands:
- chunk: Analyze and display document chunking results
- ingest: Add a document to a workspace
- search: Retrieve passages, entities and relations for a query
- ask: Ask a question and get a grounded, cited answer
- info: Show configuration
"""

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from kgrag.config.loader import get_default_config_path, load_config
from kgrag.config.schema import AppConfig, StoreType
from kgrag.observability.logging import configure_from_config, get_logger

app = typer.Typer(
    name="kgrag",
    help="Multi-tenant retrieval over passages and a knowledge graph",
    add_completion=False,
)

console = Console()
logger = get_logger(__name__)

CONFIG_OPTION = typer.Option(None, "--config", "-c", help="Config file path")
PROFILE_OPTION = typer.Option(None, "--profile", "-p", help="Config profile")


def _preview(text: str, limit: int = 80) -> str:
    text = text.replace("\n", " ")
    return text if len(text) <= limit else text[:limit] + "..."


async def _services(config: AppConfig):
    from kgrag.providers import EmbeddingUnavailable
    from kgrag.service.stores import initialize_services

    try:
        return await initialize_services(config)
    except EmbeddingUnavailable as e:
        console.print(f"[red]Embedding provider unavailable: {e.message}[/red]")
        raise typer.Exit(1)
    except Exception as e:
        console.print(f"[red]Error initializing services: {str(e)}[/red]")
        raise typer.Exit(1)


@app.command()
def chunk(
    path: Path = typer.Argument(..., help="File to chunk"),
    target: Optional[int] = typer.Option(None, "--target", help="Target chunk size in tokens"),
    overlap: Optional[int] = typer.Option(None, "--overlap", help="Overlap in tokens"),
    config_file: Optional[Path] = CONFIG_OPTION,
    profile: Optional[str] = PROFILE_OPTION,
):
    """Show how a file would be chunked."""
    from kgrag.core.chunking import chunk_text

    config = _load_config(config_file, profile)

    if not path.is_file():
        console.print(f"[red]File not found: {path}[/red]")
        raise typer.Exit(1)

    target_tokens = target if target is not None else config.chunking.target_tokens
    overlap_tokens = overlap if overlap is not None else config.chunking.overlap_tokens

    try:
        chunks = chunk_text(path.read_text(encoding="utf-8"), target_tokens, overlap_tokens)
    except ValueError as e:
        console.print(f"[red]{str(e)}[/red]")
        raise typer.Exit(1)

    if not chunks:
        console.print("[yellow]No text to chunk[/yellow]")
        return

    table = Table(title=f"Chunk Analysis Results: {path.name}")
    table.add_column("Index", style="cyan", no_wrap=True)
    table.add_column("Tokens", style="yellow", no_wrap=True)
    table.add_column("Range", style="blue", no_wrap=True)
    table.add_column("Content Preview", style="green")

    for idx, item in enumerate(chunks):
        tokens = f"{item.token_count}" + (" [red](oversized)[/red]" if item.oversized else "")
        table.add_row(str(idx), tokens, f"{item.start_offset}-{item.end_offset}", _preview(item.content))

    console.print(table)
    console.print(f"\n[green]{len(chunks)} chunk(s), target {target_tokens}, overlap {overlap_tokens}[/green]")


@app.command()
def ingest(
    path: Path = typer.Argument(..., help="File to ingest"),
    workspace: Optional[str] = typer.Option(None, "--workspace", "-w", help="Workspace (defaults to config default_workspace)"),
    config_file: Optional[Path] = CONFIG_OPTION,
    profile: Optional[str] = PROFILE_OPTION,
):
    """Ingest a document into a workspace."""
    asyncio.run(_ingest_async(path, workspace, config_file, profile))


async def _ingest_async(path: Path, workspace: Optional[str], config_file: Optional[Path], profile: Optional[str]):
    """Async implementation of ingest command."""
    from kgrag.entities import Document
    from kgrag.pipelines.ingestion import IngestionError

    config = _load_config(config_file, profile)

    if not path.is_file():
        console.print(f"[red]File not found: {path}[/red]")
        raise typer.Exit(1)

    if config.store.store_type == StoreType.MEMORY:
        console.print("[yellow]Store type is 'memory': the document is discarded when this command exits[/yellow]")

    services = await _services(config)
    try:
        document = Document(
            workspace=workspace or config.default_workspace,
            file_name=path.name,
            file_type=path.suffix.lstrip(".").lower() or "txt",
            content=path.read_text(encoding="utf-8"),
        )
        console.print(f"[cyan]Ingesting {path.name} into workspace '{document.workspace}'...[/cyan]")
        result = await services.ingestion.ingest(document)
        console.print(f"[green]✓ Stored {result.passage_count} passage(s), document ID {result.document_id}[/green]")
    except IngestionError as e:
        console.print(f"[red]Ingestion failed: {e.message}[/red]")
        logger.error("ingest_error", error=e.message)
        raise typer.Exit(1)
    finally:
        await services.close()


@app.command()
def search(
    query: str = typer.Argument(..., help="Search query"),
    mode: Optional[str] = typer.Option(None, "--mode", "-m", help="naive, local, global, hybrid or mix"),
    top_k: Optional[int] = typer.Option(None, "--top-k", "-k", help="Number of results (1-50)"),
    workspace: Optional[str] = typer.Option(None, "--workspace", "-w", help="Workspace (defaults to config default_workspace)"),
    config_file: Optional[Path] = CONFIG_OPTION,
    profile: Optional[str] = PROFILE_OPTION,
):
    """Retrieve evidence for a query without calling the LLM."""
    asyncio.run(_search_async(query, mode, top_k, workspace, config_file, profile))


async def _search_async(
    query: str,
    mode: Optional[str],
    top_k: Optional[int],
    workspace: Optional[str],
    config_file: Optional[Path],
    profile: Optional[str],
):
    """Async implementation of search command."""
    from kgrag.pipelines.retrieval import QueryError
    from kgrag.providers import EmbeddingUnavailable

    config = _load_config(config_file, profile)
    services = await _services(config)

    try:
        result = await services.retriever.retrieve(
            query,
            mode=mode or config.retrieval.default_mode,
            workspace=workspace or config.default_workspace,
            top_k=top_k if top_k is not None else config.retrieval.top_k,
        )
    except (QueryError, EmbeddingUnavailable) as e:
        console.print(f"[red]Search error: {str(e)}[/red]")
        raise typer.Exit(1)
    finally:
        await services.close()

    if result.is_empty and not result.relations:
        console.print("[yellow]No results found[/yellow]")
        return

    if result.passages:
        table = Table(title="Passages")
        table.add_column("#", style="cyan", no_wrap=True)
        table.add_column("Score", style="yellow", no_wrap=True)
        table.add_column("Document", style="dim", no_wrap=True)
        table.add_column("Content Preview", style="green")
        for i, item in enumerate(result.passages, 1):
            table.add_row(str(i), f"{item.similarity:.3f}", item.passage.document_id[:8], _preview(item.passage.content))
        console.print(table)

    if result.entities:
        table = Table(title="Entities")
        table.add_column("Score", style="yellow", no_wrap=True)
        table.add_column("Name", style="cyan")
        table.add_column("Type", style="magenta")
        for item in result.entities:
            table.add_row(f"{item.similarity:.3f}", item.entity.entity_name, item.entity.entity_type or "-")
        console.print(table)

    if result.relations:
        table = Table(title="Relations")
        table.add_column("Score", style="yellow", no_wrap=True)
        table.add_column("Type", style="magenta")
        table.add_column("Description", style="green")
        for item in result.relations:
            table.add_row(f"{item.similarity:.3f}", item.relation.relation_type, item.relation.description or "")
        console.print(table)


@app.command()
def ask(
    question: str = typer.Argument(..., help="Question to answer"),
    mode: Optional[str] = typer.Option(None, "--mode", "-m", help="naive, local, global, hybrid or mix"),
    top_k: Optional[int] = typer.Option(None, "--top-k", "-k", help="Number of items to retrieve (1-50)"),
    workspace: Optional[str] = typer.Option(None, "--workspace", "-w", help="Workspace (defaults to config default_workspace)"),
    model: Optional[str] = typer.Option(None, "--model", help="LLM model override"),
    config_file: Optional[Path] = CONFIG_OPTION,
    profile: Optional[str] = PROFILE_OPTION,
):
    """Ask a question and get an LLM-generated answer with sources."""
    asyncio.run(_ask_async(question, mode, top_k, workspace, model, config_file, profile))


async def _ask_async(
    question: str,
    mode: Optional[str],
    top_k: Optional[int],
    workspace: Optional[str],
    model: Optional[str],
    config_file: Optional[Path],
    profile: Optional[str],
):
    """Async implementation of ask command."""
    from kgrag.entities import AnswerStatus
    from kgrag.pipelines.query import ChatSettings
    from kgrag.pipelines.retrieval import QueryError
    from kgrag.providers import ProviderError

    config = _load_config(config_file, profile)
    services = await _services(config)

    try:
        response = await services.query.answer(
            question,
            mode=mode or config.retrieval.default_mode,
            workspace=workspace or config.default_workspace,
            top_k=top_k if top_k is not None else config.retrieval.top_k,
            settings=ChatSettings(model=model),
        )
    except (QueryError, ProviderError) as e:
        console.print(f"[red]Error: {str(e)}[/red]")
        logger.error("ask_error", error=str(e))
        raise typer.Exit(1)
    finally:
        await services.close()

    color = {
        AnswerStatus.GENERATED: "green",
        AnswerStatus.NO_EVIDENCE: "yellow",
        AnswerStatus.GENERATION_FAILED: "red",
    }[response.status]
    console.print(f"[{color}]{escape(response.response)}[/{color}]\n")

    if response.sources:
        table = Table(title="Sources")
        table.add_column("#", style="cyan", no_wrap=True)
        table.add_column("Score", style="yellow", no_wrap=True)
        table.add_column("Document", style="magenta")
        table.add_column("Content Preview", style="green")
        for i, source in enumerate(response.sources, 1):
            table.add_row(str(i), f"{source.similarity:.3f}", source.document_name, _preview(source.content))
        console.print(table)

    if response.entities:
        names = ", ".join(f"{e.name} ({e.type})" for e in response.entities)
        console.print(f"[dim]Entities: {names}[/dim]")


@app.command()
def info(
    config_file: Optional[Path] = CONFIG_OPTION,
    profile: Optional[str] = PROFILE_OPTION,
):
    """Show system information and configuration."""
    config = _load_config(config_file, profile)

    table = Table(title="kgrag Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Default Workspace", config.default_workspace)
    table.add_row("Log Level", config.logging.level.value)
    table.add_row("Embedding Provider", config.embedding.provider.value)
    table.add_row("Embedding Model", config.embedding.model_name)
    table.add_row("Embedding Dimension", str(config.embedding.dimension))
    table.add_row("LLM Provider", config.llm.provider.value)
    table.add_row("LLM Model", config.llm.model_name)
    table.add_row("Store", config.store.store_type.value)
    table.add_row("Chunking", f"{config.chunking.target_tokens} tokens, overlap {config.chunking.overlap_tokens}")
    table.add_row("Retrieval Mode", config.retrieval.default_mode)
    table.add_row("Top K", str(config.retrieval.top_k))
    table.add_row("Match Threshold", str(config.retrieval.match_threshold))

    console.print(table)


def _load_config(config_file: Optional[Path], profile: Optional[str] = None) -> AppConfig:
    """Load configuration and setup logging."""
    if config_file is None:
        config_file = get_default_config_path()

    config = load_config(config_file, profile=profile, env_file=Path.cwd() / ".env")
    configure_from_config(config.logging)

    return config


if __name__ == "__main__":
    app()

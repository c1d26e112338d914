"""Main CLI entry point for Novel Cast Pipeline."""
import asyncio
import json
import re
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from execution.llm_client import LLMError, OpenAICompatibleClient
from extraction.book_analyzer import AnalysisError, BookAnalyzer
from extraction.models import AnalysisResult, PipelinePolicy
from ingestion.models import BookSource
from ingestion.text_loader import TextBookLoader, TextLoadError
from monitoring.progress_tracker import ProgressTracker, create_progress
from utils.logger import setup_logger
import config

logger = setup_logger(__name__)
console = Console()


def _require_api_key(api_key: Optional[str]) -> Optional[str]:
    if not api_key:
        console.print("[red]Error: LLM_API_KEY not set in environment (or pass --api-key)[/red]")
    return api_key


def _output_path(result: AnalysisResult, output: Optional[str]) -> Path:
    if output:
        return Path(output)
    slug = re.sub(r'[^A-Za-z0-9]+', '_', result.book_title).strip('_').lower() or "analysis"
    return config.ANALYSES_DIR / f"{slug}.json"


async def _run_analysis(
    source: BookSource,
    api_key: str,
    base_url: str,
    model: str,
    context_length: Optional[int],
    max_parallel: int,
    progress: ProgressTracker
) -> AnalysisResult:
    async with OpenAICompatibleClient(api_key, base_url) as client:
        analyzer = BookAnalyzer(
            client,
            model=model,
            policy=PipelinePolicy(),
            max_parallel=max_parallel,
            progress=progress,
        )
        result = await analyzer.analyze(source, context_length=context_length)
        logger.info(f"Requests: {client.request_count}, tokens used: {client.total_tokens_used:,}")
        return result


@click.group()
@click.option('--api-key', envvar='LLM_API_KEY', default=config.LLM_API_KEY, help='API key for the LLM provider')
@click.option('--base-url', default=config.LLM_API_BASE_URL, show_default=True, help='OpenAI-compatible API base URL')
@click.pass_context
def cli(ctx, api_key, base_url):
    """Novel Cast Pipeline - characters and world info from a book"""
    ctx.ensure_object(dict)
    ctx.obj['api_key'] = api_key
    ctx.obj['base_url'] = base_url


@cli.command('test-connection')
@click.pass_context
def test_connection(ctx):
    """Check that the API key and base URL work."""
    api_key = _require_api_key(ctx.obj['api_key'])
    if not api_key:
        return

    async def _check():
        async with OpenAICompatibleClient(api_key, ctx.obj['base_url']) as client:
            return await client.test_connection()

    status = asyncio.run(_check())
    if status.success:
        console.print(f"[green]✓ Connected: {status.model_count} models available[/green]")
    else:
        console.print(f"[red]Connection failed: {status.error}[/red]")


@cli.command()
@click.option('--search', default=None, help='Only show model ids containing this text')
@click.option('--free-only', is_flag=True, help='Only show free models')
@click.pass_context
def models(ctx, search, free_only):
    """List available models and their context windows."""
    api_key = _require_api_key(ctx.obj['api_key'])
    if not api_key:
        return

    async def _list():
        async with OpenAICompatibleClient(api_key, ctx.obj['base_url']) as client:
            return await client.list_models()

    try:
        available = asyncio.run(_list())
    except LLMError as e:
        console.print(f"[red]Failed to fetch models: {e}[/red]")
        return

    if search:
        available = [m for m in available if search.lower() in m.id.lower()]
    if free_only:
        available = [m for m in available if m.is_free]

    table = Table(title=f"Models ({len(available)})")
    table.add_column("ID", style="cyan")
    table.add_column("Context", justify="right")
    table.add_column("Max output", justify="right")
    table.add_column("Free", justify="center")
    for m in sorted(available, key=lambda m: m.id):
        table.add_row(
            m.id,
            f"{m.context_length:,}",
            f"{m.max_completion_tokens:,}" if m.max_completion_tokens else "-",
            "✓" if m.is_free else "",
        )
    console.print(table)


@cli.command()
@click.option('--text', 'text_path', type=click.Path(exists=True, dir_okay=False), help='Path to a plain-text book')
@click.option('--summary', default=None, help='Pasted book summary instead of a file')
@click.option('--title', default=None, help='Book title (defaults to the file name)')
@click.option('--model', default=config.LLM_MODEL, show_default=True, help='Model id')
@click.option('--context-length', type=int, default=None, help='Model context window in tokens (looked up if omitted)')
@click.option('--max-parallel', type=int, default=config.MAX_PARALLEL_DETAILS, show_default=True, help='Profiles generated at once')
@click.option('--output', type=click.Path(dir_okay=False), default=None, help='Output JSON path')
@click.pass_context
def analyze(ctx, text_path, summary, title, model, context_length, max_parallel, output):
    """Extract characters and world info from a book or summary."""
    console.print("\n[bold cyan]Book Analysis[/bold cyan]\n")

    api_key = _require_api_key(ctx.obj['api_key'])
    if not api_key:
        return
    if bool(text_path) == bool(summary):
        console.print("[red]Error: pass exactly one of --text or --summary[/red]")
        return

    loader = TextBookLoader()
    try:
        source = loader.load(text_path, title=title) if text_path else loader.from_text(summary, title=title)
    except TextLoadError as e:
        console.print(f"[red]Error: {e}[/red]")
        return

    console.print(f"Text: {len(source.text):,} characters, {len(source.chapters)} chapters")
    console.print(f"Model: [cyan]{model}[/cyan]\n")

    with create_progress(console) as progress:
        task = progress.add_task("Analyzing book with AI... This may take a few minutes.", total=None)
        tracker = ProgressTracker(
            on_update=lambda session_id, message: progress.update(task, description=message)
        )

        try:
            result = asyncio.run(_run_analysis(
                source, api_key, ctx.obj['base_url'], model, context_length, max_parallel, tracker
            ))
        except (AnalysisError, LLMError) as e:
            console.print(f"[red]Error: {e}[/red]")
            logger.debug("Analysis failed", exc_info=True)
            return

    output_path = _output_path(result, output)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, 'w', encoding='utf-8') as f:
        json.dump(result.model_dump(mode='json', by_alias=True), f, indent=2, ensure_ascii=False)

    table = Table(show_header=False)
    table.add_row("Title", result.book_title)
    table.add_row("Characters", ", ".join(c.name for c in result.characters))
    table.add_row("World entries", str(result.world_info.entry_count))
    console.print(table)
    console.print(f"\n[green]✓ Analysis complete![/green] Exported to: [cyan]{output_path}[/cyan]")


if __name__ == '__main__':
    cli()

"""
Image Gateway CLI Tool

Command-line interface for inspecting the provider chain and running
image generation with fallback from a terminal.

Usage:
    image-gateway chain              - Show the resolved provider chain
    image-gateway generate "prompt"  - Generate an image to a file
    image-gateway serve              - Start the API server
"""
import asyncio
import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from image_gateway import __version__
from image_gateway.config import API_KEY_SETTINGS, ProviderName, get_settings
from image_gateway.core.catalog import IMAGE_SIZES, resolve_model_tier, resolve_replicate_model
from image_gateway.core.chain import resolve_chain
from image_gateway.core.errors import StorageError, user_facing_message
from image_gateway.core.orchestrator import (
    ImageOperation,
    OrchestrationResult,
    ProviderRuntime,
    run_with_provider_fallback,
)
from image_gateway.core.providers import GenerationRequest
from image_gateway.services.delivery import load_image_bytes
from image_gateway.storage.naming import extension_for_mime

# Load environment variables
load_dotenv()

console = Console()


@click.group()
@click.version_option(version=__version__, prog_name="Image Gateway")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logs")
def main(verbose: bool):
    """
    Image Gateway - multi-provider image generation with fallback.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else get_settings().LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@main.command()
def chain():
    """
    Show the provider chain resolved from IMAGE_PROVIDERS and credentials.

    Example:
        image-gateway chain
    """
    settings = get_settings()
    resolved = resolve_chain(settings)

    table = Table(title="Image providers", show_header=True, header_style="bold cyan")
    table.add_column("#", justify="right")
    table.add_column("Provider", style="cyan")
    table.add_column("Credential")
    table.add_column("Status")

    for position, name in enumerate(settings.provider_order, start=1):
        try:
            provider = ProviderName(name)
        except ValueError:
            table.add_row(str(position), name, "-", "[red]unknown[/red]")
            continue
        credential = API_KEY_SETTINGS[provider]
        if resolved.is_enabled(provider):
            status = f"[green]active ({resolved.index(provider) + 1})[/green]"
        elif settings.has_provider(provider):
            status = "[yellow]duplicate[/yellow]"
        else:
            status = "[yellow]missing key[/yellow]"
        table.add_row(str(position), name, credential, status)

    console.print(table)
    if not resolved:
        console.print("[red]✗ No image providers configured[/red]")
        sys.exit(1)
    console.print(f"\nChain: [cyan]{resolved}[/cyan]")


async def _generate(request: GenerationRequest) -> tuple[OrchestrationResult, bytes, str]:
    runtime = ProviderRuntime()
    try:
        result = await run_with_provider_fallback(ImageOperation.GENERATE, request, runtime)
        data, content_type = await load_image_bytes(result.image_url)
        return result, data, content_type
    finally:
        await runtime.close()


@main.command()
@click.argument("prompt")
@click.option("--aspect-ratio", default="1:1", help="Aspect ratio, e.g. 9:16")
@click.option("--size", type=click.Choice(IMAGE_SIZES), default="1K", help="Output resolution")
@click.option("--model", default=None, help="Model name (selects standard or pro tier)")
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Output file (default: image-gateway-output.<ext>)",
)
def generate(prompt: str, aspect_ratio: str, size: str, model: str | None, output: Path | None):
    """
    Generate an image and save it to a file.

    Example:
        image-gateway generate "Poker night flyer, neon" --aspect-ratio 9:16 --size 2K
    """
    request = GenerationRequest(
        prompt=prompt,
        aspect_ratio=aspect_ratio,
        image_size=size,
        model_tier=resolve_model_tier(model),
        replicate_model=resolve_replicate_model(model),
    )

    console.print(Panel(f"[bold cyan]{prompt}[/bold cyan]", title="Generating", border_style="cyan"))

    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            progress.add_task("Generating...", total=None)
            result, data, content_type = asyncio.run(_generate(request))
    except StorageError as e:
        console.print(f"\n[red]✗ Image storage failed: {e}[/red]")
        sys.exit(1)
    except Exception as e:
        logging.getLogger(__name__).debug(f"Generation failed: {e!r}")
        console.print(f"\n[red]✗ {user_facing_message(e)}[/red]")
        console.print(f"[dim]{e}[/dim]")
        sys.exit(1)

    path = output or Path(f"image-gateway-output.{extension_for_mime(content_type)}")
    path.write_bytes(data)

    console.print(f"\n[green]✓[/green] Saved to [cyan]{path}[/cyan]")
    console.print(f"Provider: [cyan]{result.used_provider}[/cyan]  Model: [cyan]{result.used_model}[/cyan]")
    if result.used_fallback:
        failed = ", ".join(a.provider for a in result.attempts if not a.succeeded)
        console.print(f"[yellow]⚠ Fallback used (failed: {failed})[/yellow]")


@main.command()
@click.option("--host", default="0.0.0.0", help="Interface to bind")
@click.option("--port", default=8000, help="Port to run server on")
@click.option("--reload", is_flag=True, help="Reload on code changes")
def serve(host: str, port: int, reload: bool):
    """
    Start the API server.

    Example:
        image-gateway serve --port 8000
    """
    import uvicorn

    console.print(Panel(
        f"[bold green]Starting Image Gateway[/bold green]\n\n"
        f"API: [cyan]http://localhost:{port}/api/v1/images[/cyan]\n"
        f"Health: [cyan]http://localhost:{port}/health[/cyan]\n\n"
        f"[dim]Press Ctrl+C to stop[/dim]",
        border_style="green"
    ))
    uvicorn.run("image_gateway.main:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    main()

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import ConfigError, SDPConfig
from .errors import ProviderError
from .generate import generate_images
from .registry import ProviderRegistry

app = typer.Typer(add_completion=False, no_args_is_help=True)
console = Console()


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _load_registry(config: Optional[Path]) -> ProviderRegistry:
    try:
        return ProviderRegistry.from_config_file(config)
    except ConfigError as e:
        console.print(f"[bold red]Config error:[/bold red] {e}")
        raise typer.Exit(code=2) from e


@app.command()
def models(
    provider: Optional[str] = typer.Option(None, "--provider", "-p", help="Provider name"),
    config: Optional[Path] = typer.Option(None, "--config", dir_okay=False),
):
    """List the models the backend can serve."""
    registry = _load_registry(config)
    try:
        backend = registry.get_provider(provider) if provider else registry.get_default_provider()
        names = asyncio.run(backend.list_models())
    except (ConfigError, ProviderError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1) from e

    table = Table(title=f"{backend.provider_id} models")
    table.add_column("#", justify="right")
    table.add_column("Model")
    for i, name in enumerate(names, start=1):
        table.add_row(str(i), name)
    console.print(table)


@app.command()
def generate(
    prompt: str = typer.Argument(...),
    model: str = typer.Option(..., "--model", "-m", help="Model id or checkpoint filename"),
    provider: Optional[str] = typer.Option(None, "--provider", "-p", help="Override default provider"),
    n: int = typer.Option(1, "-n", min=1, help="Number of images"),
    size: Optional[str] = typer.Option(None, "--size", help="WIDTHxHEIGHT"),
    seed: Optional[int] = typer.Option(None, "--seed"),
    negative: Optional[str] = typer.Option(None, "--negative", help="Negative prompt"),
    steps: Optional[int] = typer.Option(None, "--steps", min=1),
    cfg_scale: Optional[float] = typer.Option(None, "--cfg-scale"),
    check_model: bool = typer.Option(False, "--check-model", help="Fail if the model is not installed"),
    out_dir: Path = typer.Option(Path("outputs"), "--out-dir", file_okay=False),
    config: Optional[Path] = typer.Option(None, "--config", dir_okay=False),
):
    """Generate images and write them to --out-dir."""
    registry = _load_registry(config)
    provider_name = provider or registry.config.default_provider

    try:
        image_model = registry.get_provider(provider_name).image(model)
        result = asyncio.run(
            generate_images(
                image_model,
                prompt,
                n=n,
                size=size,
                seed=seed,
                provider_options={
                    provider_name: _provider_options(negative, steps, cfg_scale, check_model)
                },
            )
        )
    except (ConfigError, ProviderError) as e:
        console.print(f"[bold red]Generation failed:[/bold red] {e}")
        raise typer.Exit(code=1) from e

    out_dir.mkdir(parents=True, exist_ok=True)
    for i, data in enumerate(result.images, start=1):
        out_path = out_dir / f"image_{i}.png"
        out_path.write_bytes(data)
        console.print(f"[bold green]Wrote[/bold green] {out_path} ({len(data)} bytes)")

    for w in result.warnings:
        console.print(f"[yellow]⚠ {w.setting}: {w.details}[/yellow]")


def _provider_options(
    negative: Optional[str],
    steps: Optional[int],
    cfg_scale: Optional[float],
    check_model: bool,
) -> dict[str, Any]:
    options: dict[str, Any] = {"negative_prompt": negative, "steps": steps, "cfg_scale": cfg_scale}
    if check_model:
        options["check_model_exists"] = True
    return {k: v for k, v in options.items() if v is not None}


@app.command("config-schema")
def config_schema():
    """Print the JSON schema of sdp.toml."""
    console.print_json(json.dumps(SDPConfig.model_json_schema()))


if __name__ == "__main__":
    app()

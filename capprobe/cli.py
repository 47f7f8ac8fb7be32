"""capprobe CLI."""

import asyncio
import json
from datetime import datetime
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from capprobe import __version__
from capprobe.config import settings
from capprobe.logging_config import intercept_standard_logging, setup_logging
from capprobe.models.enums import OutputFormat, ProgressStatus, Provider
from capprobe.services.capability_cache import CapabilityCache
from capprobe.services.credentials import resolve_api_keys
from capprobe.services.probe import ModelProbeResult, ProbeProgress, probe_models
from capprobe.services.probe.adapters import provider_requires_api_key
from capprobe.services.probe.fixtures import get_fixture_stats
from capprobe.services.probe.report import (
    PROBE_TABLE_HEADERS,
    format_probe_table_row,
    generate_probe_report,
)
from capprobe.services.probe.service import summarize_probe_result
from capprobe.services.quick_list import resolve_quick_list

app = typer.Typer(
    name="capprobe",
    help="Probe LLM endpoints for multimodal and message-format capabilities",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)


def _parse_endpoints(values: list[str]) -> dict[Provider, str]:
    endpoints: dict[Provider, str] = {}
    for value in values:
        name, sep, url = value.partition("=")
        if not sep or not url:
            raise typer.BadParameter(
                f"Expected PROVIDER=URL, got {value!r}", param_hint="--endpoint"
            )
        try:
            endpoints[Provider(name.strip())] = url.strip()
        except ValueError:
            raise typer.BadParameter(f"Unknown provider: {name}", param_hint="--endpoint") from None
    return endpoints


def _print_progress(progress: ProbeProgress) -> None:
    if progress.status == ProgressStatus.PROBING:
        return
    mark = "[green]done[/green]" if progress.status == ProgressStatus.DONE else "[red]error[/red]"
    label = escape(f"[{progress.current}/{progress.total}] {progress.provider}:{progress.model}")
    console.print(f"{label} {mark}")


def _print_rich_table(results: list[ModelProbeResult]) -> None:
    """Display probe results as a Rich table of ASCII symbols."""
    table = Table(title="Model Capabilities")
    for header in PROBE_TABLE_HEADERS:
        is_model = header == "Model"
        table.add_column(header, style="cyan" if is_model else None, no_wrap=is_model)
    for result in results:
        table.add_row(*(escape(cell) for cell in format_probe_table_row(result).cells()))
    console.print(table)
    console.print("Y supported, ~ partial, N unsupported, - not applicable")


def _print_minimal(results: list[ModelProbeResult]) -> None:
    for result in results:
        status = "OK" if summarize_probe_result(result).success else "FAIL"
        print(f"{result.provider}:{result.model} - {status}")


@app.command()
def probe(
    output: OutputFormat = typer.Option(
        OutputFormat.TABLE, "--output", "-o", help="Output format"
    ),
    json_output: bool = typer.Option(False, "--json", help="Shorthand for --output json"),
    minimal: bool = typer.Option(False, "--minimal", help="Shorthand for --output minimal"),
    write_cache: bool = typer.Option(
        False, "--write-cache", "-w", help="Write results to the cache file"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    timeout: int = typer.Option(
        None, "--timeout", help="Probe timeout in milliseconds", min=1
    ),
    quick_list: str = typer.Option(
        None, "--quick-list", help='JSON list: [{"provider": ..., "model": ...}]'
    ),
    keys_file: Path = typer.Option(None, "--keys-file", help="API keys JSON file"),
    endpoint: list[str] = typer.Option(
        [], "--endpoint", help="Custom endpoint as PROVIDER=URL (repeatable)"
    ),
    streaming: bool = typer.Option(False, "--streaming", help="Also run the streaming probe"),
    report: bool = typer.Option(
        False, "--report", help="Print a markdown report after the results"
    ),
):
    """Probe the quick-list models and report their capabilities."""
    setup_logging("DEBUG" if verbose else None)
    intercept_standard_logging()

    if json_output:
        output = OutputFormat.JSON
    elif minimal:
        output = OutputFormat.MINIMAL

    endpoints = _parse_endpoints(endpoint)
    models = resolve_quick_list(quick_list, settings.quick_list_path)
    if not models:
        err_console.print("[red]No models to probe. Set QUICK_LIST_JSON or use --quick-list.[/red]")
        example = """QUICK_LIST_JSON='[{"provider":"openai","model":"gpt-4o"}]' capprobe probe"""
        err_console.print(f"Example: {escape(example)}")
        raise typer.Exit(1)

    if verbose:
        stats = get_fixture_stats()
        err_console.print(f"Probing {len(models)} model(s)...")
        err_console.print(
            f"Fixture sizes: PNG={stats.png_size_bytes}B, PDF={stats.pdf_size_bytes}B"
        )

    api_keys = resolve_api_keys(keys_file or settings.keys_file)
    missing = sorted(
        {
            m.provider
            for m in models
            if provider_requires_api_key(m.provider) and m.provider not in api_keys
        }
    )
    if missing:
        err_console.print(f"[yellow]Warning: Missing API keys for: {', '.join(missing)}[/yellow]")

    cache = CapabilityCache(path=settings.cache_path)
    cache.load_from_file()

    config = settings.probe_config(
        timeout_ms=timeout,
        verbose_logging=verbose,
        skip_streaming_probe=False if streaming else None,
    )

    results = asyncio.run(
        probe_models(
            [(m.provider, m.model) for m in models],
            api_keys.get,
            endpoints.get,
            config,
            on_progress=_print_progress if output == OutputFormat.TABLE else None,
        )
    )

    match output:
        case OutputFormat.JSON:
            print(json.dumps([r.to_json_dict() for r in results], indent=2))
        case OutputFormat.MINIMAL:
            _print_minimal(results)
        case _:
            _print_rich_table(results)

    if report:
        print(generate_probe_report(results))

    if write_cache:
        cache.update_from_probe_results(results)
        path = cache.save_to_file()
        err_console.print(f"[green]Cache written to: {path}[/green]")

    successful = sum(1 for r in results if r.text_probe.success)
    failed = len(results) - successful
    if verbose or failed > 0:
        err_console.print(f"Summary: {successful} OK, {failed} failed")

    if failed > 0 and failed == len(results):
        raise typer.Exit(1)


@app.command()
def capabilities(
    provider: Provider = typer.Argument(..., help="Provider name"),
    model: str = typer.Argument(..., help="Model ID"),
    json_output: bool = typer.Option(False, "--json", help="Machine-readable JSON output"),
):
    """Show the resolved capabilities of a model and where they came from."""
    cache = CapabilityCache(path=settings.cache_path)
    cache.load_from_file()

    caps = cache.get_capabilities(provider, model)
    source = cache.get_capability_source(provider, model)

    if json_output:
        print(json.dumps({"source": source.value, "capabilities": caps.to_json_dict()}, indent=2))
        return

    table = Table(title=f"{provider}:{model} ({source})")
    table.add_column("Capability", style="cyan")
    table.add_column("Value", style="green")
    for name, value in caps.to_json_dict().items():
        table.add_row(name, str(value))
    console.print(table)


def _format_ms(value: int | None) -> str:
    if not value:
        return "-"
    return datetime.fromtimestamp(value / 1000).strftime("%Y-%m-%d %H:%M:%S")


@app.command()
def cache_stats():
    """Show statistics about the capability cache file."""
    cache = CapabilityCache(path=settings.cache_path)
    if cache.load_from_file() is None:
        console.print(f"[yellow]No capability cache at {cache.path}[/yellow]")
        return

    stats = cache.stats()
    console.print(f"Models: {stats.model_count}")
    console.print(f"Last updated: {_format_ms(stats.last_updated)}")
    console.print(f"Oldest entry: {_format_ms(stats.oldest_entry)}")
    console.print(f"Newest entry: {_format_ms(stats.newest_entry)}")

    if stats.provider_breakdown:
        table = Table(title="Cached Models by Provider")
        table.add_column("Provider", style="cyan")
        table.add_column("Models", style="green")
        for name, count in sorted(stats.provider_breakdown.items()):
            table.add_row(name, str(count))
        console.print(table)


@app.command()
def version():
    """Show version information."""
    console.print(f"capprobe v{__version__}")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()

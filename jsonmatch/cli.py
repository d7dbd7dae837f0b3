from __future__ import annotations

import json
from pathlib import Path
from typing import List, Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from jsonmatch.analysis import analyze_text, sort_matches
from jsonmatch.config import load_provider_config, load_runtime_settings
from jsonmatch.enhance import enhance_json
from jsonmatch.errors import InvalidResponseFormatError, JsonMatchError
from jsonmatch.normalize import validate_and_format
from jsonmatch.provider.config import get_provider_capabilities
from jsonmatch.provider.factory import CompletionService
from jsonmatch.provider.registry import list_registered_aliases, list_registered_providers, resolve_provider
from jsonmatch.reconcile import MIN_CONFIDENCE, check_structure, update_json
from jsonmatch.schemas import MatchResult

app = typer.Typer(help="Match free text against a JSON structure and fill in the values")
console = Console()


@app.callback()
def _root_callback():
    """jsonmatch CLI root."""
    pass


def _read(path: Path) -> str:
    return path.read_text(encoding="utf-8")


def _write_or_print(payload: str, out: Optional[Path]) -> None:
    if out:
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(payload + "\n", encoding="utf-8")
        typer.echo(f"Wrote {out}")
    else:
        typer.echo(payload)


def _build_service(
    provider: Optional[str],
    model: Optional[str],
    api_key: Optional[str],
    config: Optional[Path],
    mock: bool,
) -> CompletionService:
    load_dotenv()
    if mock:
        provider, api_key = "mock", api_key or "mock"
        model = model if model and model.startswith("mock") else None
    cfg = load_provider_config(config, provider=provider, model=model, api_key=api_key)
    try:
        cfg.validate()
    except ValueError as exc:
        typer.echo(f"ERROR: {exc}", err=True)
        raise typer.Exit(1)
    settings = load_runtime_settings()
    service = CompletionService(timeout=settings.request_timeout)
    if not service.configure(cfg.provider, cfg.model, cfg.api_key):
        typer.echo(f"ERROR: {service.last_error}", err=True)
        raise typer.Exit(1)
    return service


def _load_matches(path: Path) -> List[MatchResult]:
    try:
        data = json.loads(_read(path))
    except ValueError as exc:
        _fail(exc)
    if isinstance(data, dict):
        data = data.get("matches", [])
    if not isinstance(data, list):
        typer.echo("ERROR: matches file must hold a list or an object with a 'matches' list", err=True)
        raise typer.Exit(1)
    try:
        return [MatchResult.model_validate(item) for item in data]
    except ValueError as exc:
        _fail(exc)


def _dump_matches(matches: List[MatchResult]) -> str:
    return json.dumps({"matches": [m.to_wire() for m in matches]}, indent=2, ensure_ascii=False)


def _matches_table(matches: List[MatchResult]) -> Table:
    table = Table(title=f"Matches (applied at confidence >= {MIN_CONFIDENCE})")
    table.add_column("Property", style="cyan")
    table.add_column("Matched text")
    table.add_column("Span", justify="right")
    table.add_column("Confidence", justify="right")
    table.add_column("Type")
    for m in sort_matches(matches):
        style = None if m.confidence >= MIN_CONFIDENCE else "dim"
        table.add_row(
            m.property,
            m.matched_text,
            f"{m.position.start}-{m.position.end}",
            str(m.confidence),
            m.match_type,
            style=style,
        )
    return table


def _fail(exc: Exception) -> None:
    typer.echo(f"ERROR: {exc}", err=True)
    raise typer.Exit(1)


@app.command("providers")
def cmd_providers():
    """List registered providers with their default models and aliases."""
    aliases = list_registered_aliases()
    table = Table(title="Providers")
    table.add_column("Provider", style="cyan")
    table.add_column("Default model")
    table.add_column("JSON mode")
    table.add_column("Aliases")
    for provider in list_registered_providers():
        caps = get_provider_capabilities(provider)
        alias_list = [a for a in aliases if a != provider and resolve_provider(a) == provider]
        table.add_row(
            provider,
            caps.default_model if caps else "-",
            "yes" if caps and caps.supports_json_mode else "no",
            ", ".join(alias_list) or "-",
        )
    console.print(table)


@app.command("validate")
def cmd_validate(
    json_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON file to validate"),
    raw: bool = typer.Option(False, help="Print the compact form instead of the indented one"),
):
    """Validate a JSON file and print its canonical form."""
    result = validate_and_format(_read(json_file))
    if not result.is_valid:
        typer.echo(f"Invalid JSON: {result.error.message if result.error else 'unknown error'}", err=True)
        raise typer.Exit(1)
    typer.echo(result.raw if raw else result.formatted)


@app.command("analyze")
def cmd_analyze(
    schema: Path = typer.Option(..., exists=True, dir_okay=False, help="JSON structure to match against"),
    text: Path = typer.Option(..., exists=True, dir_okay=False, help="Text file to analyze"),
    out: Optional[Path] = typer.Option(None, help="Write matches as JSON to this file"),
    provider: Optional[str] = typer.Option(None, help="Provider id or alias (openai, anthropic, ...)"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model name"),
    api_key: Optional[str] = typer.Option(None, help="API key (defaults to the provider's env var)"),
    config: Optional[Path] = typer.Option(None, exists=True, dir_okay=False, help="Provider config YAML/JSON"),
    mock: bool = typer.Option(False, help="Use deterministic mock provider (no network)"),
):
    """Find spans of the text that correspond to properties of the JSON structure."""
    service = _build_service(provider, model, api_key, config, mock)
    try:
        matches = analyze_text(_read(text), _read(schema), service)
    except JsonMatchError as exc:
        _fail(exc)
    console.print(_matches_table(matches))
    if out:
        _write_or_print(_dump_matches(matches), out)


@app.command("apply")
def cmd_apply(
    schema: Path = typer.Option(..., exists=True, dir_okay=False, help="JSON document to update"),
    matches_file: Path = typer.Option(..., "--matches", exists=True, dir_okay=False, help="Matches JSON from 'analyze --out'"),
    strategy: str = typer.Option("deterministic", help="deterministic or delegated"),
    out: Optional[Path] = typer.Option(None, help="Write the updated JSON to this file"),
    provider: Optional[str] = typer.Option(None, help="Provider id or alias (delegated strategy only)"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model name"),
    api_key: Optional[str] = typer.Option(None, help="API key (defaults to the provider's env var)"),
    config: Optional[Path] = typer.Option(None, exists=True, dir_okay=False, help="Provider config YAML/JSON"),
    mock: bool = typer.Option(False, help="Use deterministic mock provider (no network)"),
):
    """Write matched values into the JSON document."""
    if strategy not in {"deterministic", "delegated"}:
        typer.echo("ERROR: strategy must be 'deterministic' or 'delegated'", err=True)
        raise typer.Exit(1)
    service = _build_service(provider, model, api_key, config, mock) if strategy == "delegated" else None
    try:
        updated = update_json(_read(schema), _load_matches(matches_file), service=service, strategy=strategy)
    except JsonMatchError as exc:
        _fail(exc)
    _write_or_print(updated, out)


@app.command("enhance")
def cmd_enhance(
    json_file: Path = typer.Option(..., "--json", exists=True, dir_okay=False, help="JSON document to enrich"),
    matches_file: Optional[Path] = typer.Option(None, "--matches", exists=True, dir_okay=False, help="Matches used as context"),
    out: Optional[Path] = typer.Option(None, help="Write the enhanced JSON to this file"),
    provider: Optional[str] = typer.Option(None, help="Provider id or alias"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model name"),
    api_key: Optional[str] = typer.Option(None, help="API key (defaults to the provider's env var)"),
    config: Optional[Path] = typer.Option(None, exists=True, dir_okay=False, help="Provider config YAML/JSON"),
    mock: bool = typer.Option(False, help="Use deterministic mock provider (no network)"),
):
    """Fill empty or incomplete fields without touching populated ones."""
    service = _build_service(provider, model, api_key, config, mock)
    matches = _load_matches(matches_file) if matches_file else []
    try:
        enhanced = enhance_json(_read(json_file), matches, service)
    except JsonMatchError as exc:
        _fail(exc)
    _write_or_print(enhanced, out)


@app.command("check")
def cmd_check(
    original: Path = typer.Argument(..., exists=True, dir_okay=False, help="Original JSON"),
    updated: Path = typer.Argument(..., exists=True, dir_okay=False, help="Updated JSON"),
):
    """Verify that the updated JSON keeps the original's keys and value types."""
    result = check_structure(_read(original), _read(updated))
    if not result.is_valid:
        typer.echo(f"Structure mismatch: {result.error}", err=True)
        raise typer.Exit(1)
    typer.echo("Structure preserved")


@app.command("run")
def cmd_run(
    schema: Path = typer.Option(..., exists=True, dir_okay=False, help="JSON structure to fill"),
    text: Path = typer.Option(..., exists=True, dir_okay=False, help="Text file to analyze"),
    strategy: str = typer.Option("deterministic", help="deterministic or delegated"),
    enhance: bool = typer.Option(False, help="Run the enhancement pass after applying matches"),
    out: Optional[Path] = typer.Option(None, help="Write the final JSON to this file"),
    provider: Optional[str] = typer.Option(None, help="Provider id or alias"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model name"),
    api_key: Optional[str] = typer.Option(None, help="API key (defaults to the provider's env var)"),
    config: Optional[Path] = typer.Option(None, exists=True, dir_okay=False, help="Provider config YAML/JSON"),
    mock: bool = typer.Option(False, help="Use deterministic mock provider (no network)"),
):
    """Validate, analyze, apply and optionally enhance in one go."""
    if strategy not in {"deterministic", "delegated"}:
        typer.echo("ERROR: strategy must be 'deterministic' or 'delegated'", err=True)
        raise typer.Exit(1)
    validation = validate_and_format(_read(schema))
    if not validation.is_valid or validation.raw is None:
        typer.echo(f"Invalid JSON: {validation.error.message if validation.error else 'unknown error'}", err=True)
        raise typer.Exit(1)
    service = _build_service(provider, model, api_key, config, mock)
    try:
        matches = analyze_text(_read(text), validation.raw, service)
        result = update_json(validation.raw, matches, service=service, strategy=strategy)
        if enhance:
            try:
                result = enhance_json(result, matches, service)
            except InvalidResponseFormatError as exc:
                typer.echo(f"WARNING: enhancement rejected, keeping updated JSON ({exc})", err=True)
    except JsonMatchError as exc:
        _fail(exc)
    console.print(_matches_table(matches))
    _write_or_print(result, out)


def main() -> None:
    app()


if __name__ == "__main__":
    main()

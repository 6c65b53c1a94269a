"""CLI entrypoint for adagent."""

import json
import logging
from pathlib import Path

import click

from adagent import __version__
from adagent.config import PipelineConfig, load_settings
from adagent.contracts import ChatResult
from adagent.io.ingest import format_ingest_summary, ingest_file
from adagent.io.record_source import DuckDBRecordSource, record_source_from_settings
from adagent.orchestrator.runtime import ChatPipeline


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load_history(path: Path) -> list[dict]:
    """Read a JSON list of {role, content, goal?} turns; missing file means none."""
    if not path.exists():
        return []
    with open(path) as f:
        history = json.load(f)
    if not isinstance(history, list):
        raise click.BadParameter(f"{path} must contain a JSON list of messages", param_hint="--history")
    return history


def _save_history(path: Path, history: list[dict], question: str, result: ChatResult) -> None:
    """Append this turn so the next `ask --history` can resolve follow-ups."""
    history = history + [
        {"role": "user", "content": question},
        {"role": "assistant", "content": result.answer, "goal": result.goal.value},
    ]
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(history, f, indent=2)


@click.group()
@click.version_option(__version__)
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging")
def main(verbose: bool):
    """adagent: ask questions about video ad campaign performance."""
    _configure_logging(verbose)


@main.command()
@click.argument("question")
@click.option(
    "--history",
    "history_path",
    default=None,
    type=click.Path(dir_okay=False),
    help="JSON file with earlier turns; this turn is appended to it",
)
@click.option(
    "--db",
    "db_path",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="Local DuckDB database (default: AA_DUCKDB_PATH or Supabase)",
)
@click.option(
    "--json",
    "as_json",
    is_flag=True,
    default=False,
    help="Print the full result as JSON",
)
def ask(question: str, history_path: str | None, db_path: str | None, as_json: bool):
    """Answer a question about campaign performance."""
    settings = load_settings()
    try:
        source = DuckDBRecordSource(db_path) if db_path else record_source_from_settings(settings)
    except ValueError as e:
        click.echo(f"❌ {e}", err=True)
        raise click.Abort()

    history = _load_history(Path(history_path)) if history_path else []
    pipeline = ChatPipeline(source, config=PipelineConfig.from_settings(settings))
    result = pipeline.run(question, history)

    if as_json:
        click.echo(result.model_dump_json(indent=2))
    else:
        click.echo(result.answer)
        if result.sql:
            click.echo(f"\nSQL: {result.sql}")
        click.echo(f"Goal: {result.goal.value}")

    if history_path:
        _save_history(Path(history_path), history, question, result)

    if not result.success:
        raise SystemExit(1)


@main.command()
@click.argument("file_path", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--db",
    "db_path",
    required=True,
    type=click.Path(dir_okay=False),
    help="DuckDB database file to write",
)
@click.option(
    "--sheet",
    default=None,
    help="Sheet name or index to read from .xlsx files (default: first sheet)",
)
@click.option(
    "--append",
    is_flag=True,
    default=False,
    help="Append to the existing table instead of replacing it",
)
def ingest(file_path: str, db_path: str, sheet: str | None, append: bool):
    """Load a CSV or .xlsx export into a local DuckDB database."""
    sheet_arg: str | int | None = sheet
    if sheet is not None and sheet.isdigit():
        sheet_arg = int(sheet)

    result = ingest_file(file_path, db_path, sheet=sheet_arg, replace=not append)
    click.echo(format_ingest_summary(result))
    if result["status"] == "failed":
        raise click.Abort()


@main.command()
@click.option("--host", default="0.0.0.0", help="Bind address (default: 0.0.0.0)")
@click.option("--port", default=None, type=int, help="Port (default: PORT or 3000)")
@click.option("--reload", is_flag=True, default=False, help="Reload on code changes")
def serve(host: str, port: int | None, reload: bool):
    """Run the HTTP API."""
    import uvicorn

    port = port or load_settings().port
    click.echo(f"🚀 Serving adagent API on http://{host}:{port}")
    uvicorn.run("adagent.api.server:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    main()

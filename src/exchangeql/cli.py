"""CLI entrypoint for exchangeql."""

import asyncio
import json
from pathlib import Path

import click

from exchangeql.config import EngineConfig
from exchangeql.errors import ClassificationFailure
from exchangeql.execution.duckdb_store import init_database
from exchangeql.logging_setup import configure_logging
from exchangeql.orchestrator.engine import QueryEngine, QueryRequest
from exchangeql.planning.extractors import ExtractionPipeline
from exchangeql.planning.planner import QueryPlanner
from exchangeql.sql.templates import SqlSynthesizer


def _load_config(config_path: str | None, db_path: str | None) -> EngineConfig:
    config = EngineConfig.from_env()
    if config_path:
        config = EngineConfig.from_file(config_path, config)
    if db_path:
        config = EngineConfig.from_mapping({"db_path": db_path}, config)
    return config


def _build_engine(ctx: click.Context) -> QueryEngine:
    engine = QueryEngine.from_config(ctx.obj["config"])
    engine.learning.load()
    return engine


@click.group()
@click.version_option()
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False), help="YAML config file")
@click.option("--db-path", type=click.Path(), help="Path to DuckDB database (overrides config)")
@click.option("--log-level", default=None, help="Log level (default: EXQL_LOG_LEVEL or INFO)")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, db_path: str | None, log_level: str | None):
    """exchangeql - Natural-language questions over 1031 exchange data."""
    configure_logging(log_level)
    try:
        config = _load_config(config_path, db_path)
    except ValueError as e:
        raise click.BadParameter(str(e))
    ctx.ensure_object(dict)
    ctx.obj["config"] = config


@main.command()
@click.argument("question")
@click.option("--user-id", default=None, help="Acting user identifier")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print the full outcome as JSON")
@click.pass_context
def ask(ctx: click.Context, question: str, user_id: str | None, as_json: bool):
    """Answer a question against the database."""
    engine = _build_engine(ctx)

    async def run():
        try:
            return await engine.process_query(QueryRequest(text=question, user_id=user_id))
        finally:
            await engine.learning.try_flush()

    outcome = asyncio.run(run())

    if as_json:
        click.echo(outcome.model_dump_json(indent=2))
        return

    click.echo(outcome.explanation)
    if outcome.generated_sql:
        click.echo(f"\nSQL ({outcome.source}): {outcome.generated_sql}")
    for row in outcome.results[:10]:
        click.echo(json.dumps(row, default=str))
    if outcome.row_count > 10:
        click.echo(f"... {outcome.row_count - 10} more row(s)")
    if outcome.suggested_actions:
        click.echo("\nSuggested actions:")
        for action in outcome.suggested_actions:
            click.echo(f"  - {action}")
    if outcome.error_kind:
        raise SystemExit(1)


@main.command()
@click.argument("question")
@click.option("--all-rules", is_flag=True, default=False, help="Also show what every rule matched")
@click.pass_context
def plan(ctx: click.Context, question: str, all_rules: bool):
    """Show how a question is interpreted, without running it."""
    config = ctx.obj["config"]
    pipeline = ExtractionPipeline.from_order(config.extractor_order)
    try:
        query_plan = QueryPlanner(pipeline).plan(question)
    except ClassificationFailure as e:
        raise click.ClickException(str(e))

    query = SqlSynthesizer(config).synthesize(query_plan)
    click.echo(f"Rule order: {', '.join(pipeline.order)}")
    click.echo(f"Entity: {query_plan.entity}  Shape: {query_plan.shape.value}")
    if query_plan.match is not None:
        click.echo(f"Match: {json.dumps(query_plan.match.to_dict(), default=str)}")
    for note in query_plan.notes:
        click.echo(f"Note: {note}")
    if query is None:
        click.echo("No template for this combination")
    else:
        click.echo(f"SQL: {query.sql}")
        click.echo(f"Params: {json.dumps(query.params, default=str)}")

    if all_rules:
        click.echo("\nAll rules:")
        for name, match in pipeline.extract_all(question).items():
            click.echo(f"  {name}: {match.normalized() if match else '-'}")


@main.command()
@click.option("--partial", default="", help="Partial question to rank suggestions against")
@click.option("--limit", default=10, type=int, help="Maximum suggestions (default: 10)")
@click.pass_context
def suggest(ctx: click.Context, partial: str, limit: int):
    """Show suggested questions learned from past queries."""
    engine = _build_engine(ctx)
    for suggestion in engine.learning.suggest(partial, limit=limit):
        click.echo(suggestion)


@main.command()
@click.pass_context
def stats(ctx: click.Context):
    """Show learning statistics."""
    engine = _build_engine(ctx)
    click.echo(json.dumps(engine.learning.stats(), indent=2))


@main.command()
@click.pass_context
def schema(ctx: click.Context):
    """Describe the database schema and business rules."""
    engine = _build_engine(ctx)
    click.echo(engine.catalog.describe())


@main.command()
@click.option("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
@click.option("--port", default=8000, type=int, help="Port (default: 8000)")
@click.pass_context
def serve(ctx: click.Context, host: str, port: int):
    """Run the HTTP API."""
    import uvicorn

    from exchangeql.api.server import create_app

    app = create_app(config=ctx.obj["config"])
    uvicorn.run(app, host=host, port=port, log_level="info")


@main.command("init-db")
@click.pass_context
def init_db(ctx: click.Context):
    """Create the database schema if it does not exist."""
    path = init_database(Path(ctx.obj["config"].db_path))
    click.echo(f"Initialized schema in {path}")


if __name__ == "__main__":
    main()

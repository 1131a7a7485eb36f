import asyncio, os, time
import click
from dotenv import load_dotenv
from rich.console import Console

from .application.router import EventRouter
from .application.use_cases import backfill_once, init_db, list_checkpoints, run_indexer
from .config import IndexerSettings, load_settings
from .domain.errors import ConfigurationError
from .presentation.logs import configure_logging
from .presentation.tables import checkpoints_table, routes_table, summary_panel

console = Console()


def _settings(ctx: click.Context) -> IndexerSettings:
    return ctx.obj["settings"]


@click.group()
@click.option("--env-file", type=click.Path(dir_okay=False), default=".env", show_default=True,
              help="Optional .env file loaded before reading settings")
@click.option("--network", default=None, help="Override INDEXER_NETWORK")
@click.option("--database-url", default=None, help="Override DATABASE_URL")
@click.option("--log-level", default=None, help="Override INDEXER_LOG_LEVEL (debug|info|warn|error)")
@click.pass_context
def cli(ctx, env_file, network, database_url, log_level):
    """liraindex: Lira contract event indexer."""
    load_dotenv(env_file, override=False)
    env = dict(os.environ)
    overrides = {"INDEXER_NETWORK": network, "DATABASE_URL": database_url, "INDEXER_LOG_LEVEL": log_level}
    env.update({k: v for k, v in overrides.items() if v})
    try:
        settings = load_settings(env)
    except ConfigurationError as e:
        raise click.ClickException(str(e))
    configure_logging(settings.log_level)
    ctx.obj = {"settings": settings}


@cli.command("run")
@click.option("--create-schema/--no-create-schema", default=False, show_default=True,
              help="Create missing tables before starting")
@click.pass_context
def run_cmd(ctx, create_schema):
    """Backfill, then follow the chain until SIGINT/SIGTERM."""
    settings = _settings(ctx)
    console.print(f"[bold]network[/]: {settings.network.name} (chain {settings.network.chain_id})")
    try:
        asyncio.run(run_indexer(settings, create_schema=create_schema))
    except RuntimeError as e:
        raise click.ClickException(str(e))


@cli.command("backfill")
@click.option("--create-schema/--no-create-schema", default=False, show_default=True)
@click.pass_context
def backfill_cmd(ctx, create_schema):
    """Catch every tracked contract up to the current head once and exit."""
    settings = _settings(ctx)
    t0 = time.time()
    try:
        summary = asyncio.run(backfill_once(settings, create_schema=create_schema))
    except RuntimeError as e:
        raise click.ClickException(str(e))
    console.print(summary_panel(summary, time.time() - t0))


@cli.command("init-db")
@click.pass_context
def init_db_cmd(ctx):
    """Create the read-model tables."""
    asyncio.run(init_db(_settings(ctx)))
    console.print("[bold]done[/]: schema created")


@cli.command("checkpoints")
@click.pass_context
def checkpoints_cmd(ctx):
    """Show the persisted checkpoint of every contract."""
    rows = asyncio.run(list_checkpoints(_settings(ctx)))
    console.print(checkpoints_table(rows))


@cli.command("routes")
def routes_cmd():
    """List the (contract, event) -> handler table."""
    console.print(routes_table(EventRouter().routes()))


if __name__ == "__main__":
    cli()

"""lexicard CLI: add words, review them, inspect and maintain the card store."""

import asyncio
import json
import logging
import sys
from collections import Counter
from pathlib import Path
from typing import Annotated, Any

import typer
from pydantic import ValidationError

from lexicard.application import backup
from lexicard.application.config import config_files, resolve_config
from lexicard.application.factory import build_services, get_card_store
from lexicard.application.lifecycle import local_now
from lexicard.application.migration import migrate
from lexicard.application.queue_builder import eligible_scope_keys
from lexicard.application.scheduler import format_interval
from lexicard.domain.constants import LEGACY_SCHEMA_VERSION, SCHEMA_VERSION
from lexicard.domain.exceptions import LexicardError, StorageError
from lexicard.domain.models import DueState, Rating
from lexicard.domain.scope import Scope
from lexicard.infrastructure.adapters.sqlite_store import SqliteCardStore

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="lexicard: spaced-repetition review for words collected in chats and documents.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

config_app = typer.Typer(help="Manage lexicard configuration.")
app.add_typer(config_app, name="config")

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

_LOG_LEVELS = {0: logging.WARNING, 1: logging.INFO}


def _scope_option(value: str | None) -> Scope:
    try:
        return Scope.parse(value)
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e


ScopeOption = Annotated[
    str | None,
    typer.Option(
        "--scope",
        "-s",
        help="Review context: 'global', 'chat:<id>' or 'document:<id>'. Defaults to global.",
    ),
]


def _run(ctx: typer.Context, coro_fn) -> Any:
    """Run an async command body, turning storage failures into exit code 1."""
    config = resolve_config(ctx.obj.get("overrides") if ctx.obj else None)
    try:
        return asyncio.run(coro_fn(config))
    except StorageError as e:
        logger.error(f"Storage failure: {e}")
        typer.secho(f"Storage error: {e}", fg="red")
        raise typer.Exit(1) from e


# ---------------------------------------------------------------------------
# Global callback
# ---------------------------------------------------------------------------


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose", "-v", count=True, help="Increase verbosity. Repeat for more detail."
        ),
    ] = 0,
    db_path: Annotated[
        Path | None, typer.Option("--db", help="Card database path (overrides config).")
    ] = None,
    backend: Annotated[
        str | None, typer.Option(help="Card store backend: sqlite or memory.")
    ] = None,
    seed: Annotated[
        int | None, typer.Option(help="Shuffle seed for reproducible review order.")
    ] = None,
):
    """Global settings for lexicard."""
    ctx.ensure_object(dict)
    ctx.obj["overrides"] = {
        "db_path": db_path,
        "backend": backend,
        "shuffle_seed": seed,
        "verbose": verbose or None,
    }
    try:
        config = resolve_config(ctx.obj["overrides"])
    except ValidationError as e:
        raise typer.BadParameter(str(e)) from e
    logging.getLogger().setLevel(_LOG_LEVELS.get(config.verbose, logging.DEBUG))


# ---------------------------------------------------------------------------
# Cards
# ---------------------------------------------------------------------------


@app.command()
def add(
    ctx: typer.Context,
    words: Annotated[list[str], typer.Argument(help="Word(s) to add.")],
    scope: ScopeOption = None,
):
    """[bold green]Add[/bold green] words to a scope. Existing cards are left untouched."""
    target = _scope_option(scope)

    async def run(config):
        services = await build_services(config)
        try:
            for word in words:
                try:
                    result = await services.lifecycle.add(word, target)
                except ValueError as e:
                    typer.secho(f"Skipped {word!r}: {e}", fg="yellow")
                    continue
                if result.created:
                    typer.secho(f'"{result.card.word}" added to {target.key}.', fg="green")
                else:
                    typer.echo(f'"{result.card.word}" already exists in {target.key}.')
        finally:
            await services.store.close()

    _run(ctx, run)


@app.command()
def review(
    ctx: typer.Context,
    scope: ScopeOption = None,
):
    """Review due cards for a scope (global cards are always included)."""
    target = _scope_option(scope)

    async def run(config):
        services = await build_services(config)
        try:
            session = await services.queue.open(target)
            stats = session.stats()
            typer.echo(f"New: {stats.new_count}  Review: {stats.review_count}")

            while (card := session.next()) is not None:
                typer.secho(f"\n  {card.word}", bold=True)
                choices = "  ".join(
                    f"[{rating.value}] {rating.name.title()} ({format_interval(update.interval)})"
                    for rating, update in services.lifecycle.preview(card).items()
                )
                typer.echo(f"  {choices}")

                rating = _prompt_rating()
                if rating is None:
                    session.close()
                    break
                await services.lifecycle.rate_current(session, rating)

            typer.secho(f"\nReviewed {session.reviewed} card(s).", fg="green")
        finally:
            await services.store.close()

    _run(ctx, run)


def _prompt_rating() -> Rating | None:
    """Ask until the answer is a rating; None means quit."""
    while True:
        answer = typer.prompt("Rating (1-4, again/hard/good/easy, q to quit)", default="3")
        if answer.strip().lower() in {"q", "quit"}:
            return None
        try:
            return Rating.parse(answer)
        except ValueError:
            typer.secho(f"Not a rating: {answer!r}", fg="yellow")


@app.command()
def due(
    ctx: typer.Context,
    scope: ScopeOption = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """Show due-state counts for a scope and the size of the next review."""
    target = _scope_option(scope)

    async def run(config):
        services = await build_services(config)
        try:
            cards = await services.store.get_by_scope(eligible_scope_keys(target))
            counts = Counter(services.lifecycle.due_state(card) for card in cards)
            queue = await services.queue.collect(target)
        finally:
            await services.store.close()

        new_count = sum(1 for c in queue if c.repetitions == 0)
        summary = {
            "scope": target.key,
            "total": len(cards),
            **{state.value: counts.get(state, 0) for state in DueState},
            "queue_new": new_count,
            "queue_review": len(queue) - new_count,
        }
        if json_output:
            typer.echo(json.dumps(summary, indent=2))
            return
        typer.echo(f"Scope:     {summary['scope']}  ({summary['total']} cards)")
        for state in DueState:
            typer.echo(f"{state.value.title() + ':':<10} {summary[state.value]}")
        typer.echo(f"Next review: {summary['queue_new']} new, {summary['queue_review']} review")

    _run(ctx, run)


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------


@app.command("migrate")
def migrate_cmd(
    ctx: typer.Context,
    legacy_file: Annotated[
        Path | None,
        typer.Option(help="JSON list of legacy (unscoped) card records to load and migrate."),
    ] = None,
):
    """Upgrade the card store schema, optionally importing legacy records first."""

    async def run(config):
        records = None
        if legacy_file is not None:
            if not legacy_file.exists():
                typer.secho(f"File not found: {legacy_file}", fg="red")
                raise typer.Exit(1)
            try:
                records = json.loads(legacy_file.read_text(encoding="utf-8"))
            except ValueError as e:
                typer.secho(f"Invalid JSON in {legacy_file}: {e}", fg="red")
                raise typer.Exit(1) from e
            if not isinstance(records, list):
                typer.secho("Legacy file must contain a JSON list of records.", fg="red")
                raise typer.Exit(1)

        store = get_card_store(config)
        try:
            now = local_now()
            if records is not None:
                if not isinstance(store, SqliteCardStore):
                    typer.secho("Legacy import requires the sqlite backend.", fg="red")
                    raise typer.Exit(1)
                await store.add_legacy_records(r for r in records if isinstance(r, dict))

            old = await store.get_schema_version()
            start = min(old, LEGACY_SCHEMA_VERSION) if records is not None else old
            report = await migrate(store, start, SCHEMA_VERSION, now)
            await store.set_schema_version(max(old, SCHEMA_VERSION))
        finally:
            await store.close()

        typer.echo(f"Schema: v{old} -> v{max(old, SCHEMA_VERSION)}")
        typer.echo(
            f"Migrated {report.migrated} card(s), "
            f"{report.existing} already present, {report.skipped} skipped."
        )

    _run(ctx, run)


@app.command("export")
def export_cmd(
    ctx: typer.Context,
    path: Annotated[Path, typer.Argument(help="Destination JSON file.")],
):
    """Export every card to a JSON backup."""

    async def run(config):
        services = await build_services(config)
        try:
            data = await backup.export_cards(services.store, local_now())
        finally:
            await services.store.close()
        backup.write_backup(data, path)
        typer.secho(f"Exported {len(data.cards)} card(s) to {path}", fg="green")

    _run(ctx, run)


@app.command("import")
def import_cmd(
    ctx: typer.Context,
    path: Annotated[Path, typer.Argument(help="JSON backup produced by 'export'.")],
    replace: Annotated[
        bool, typer.Option("--replace", help="Clear all cards before restoring.")
    ] = False,
):
    """Restore cards from a JSON backup (merges by card id unless --replace)."""
    if not path.exists():
        typer.secho(f"File not found: {path}", fg="red")
        raise typer.Exit(1)
    try:
        data = backup.read_backup(path)
    except (ValidationError, ValueError) as e:
        typer.secho(f"Invalid backup file: {e}", fg="red")
        raise typer.Exit(1) from e

    async def run(config):
        services = await build_services(config)
        try:
            count = await backup.import_cards(services.store, data, replace=replace)
            services.lifecycle.cache.clear()
        finally:
            await services.store.close()
        typer.secho(f"Imported {count} card(s).", fg="green")

    _run(ctx, run)


@app.command()
def serve(
    port: Annotated[int | None, typer.Option(help="Port to bind the server to.")] = None,
    host: Annotated[str | None, typer.Option(help="Host to bind the server to.")] = None,
    reload: Annotated[bool, typer.Option(help="Enable auto-reload.")] = False,
):
    """Start the HTTP API."""
    import uvicorn

    config = resolve_config({"port": port, "host": host})
    uvicorn.run("lexicard.server:app", host=config.host, port=config.port, reload=reload)


# ---------------------------------------------------------------------------
# Config subgroup
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show(ctx: typer.Context):
    """Display final resolved configuration."""
    config = resolve_config(ctx.obj.get("overrides") if ctx.obj else None)
    d = {k: str(v) if isinstance(v, Path) else v for k, v in config.model_dump().items()}
    typer.echo(json.dumps(d, indent=2))


@config_app.command("path")
def config_path():
    """Print the config file locations, highest priority first."""
    for f in config_files():
        marker = "*" if f.exists() else " "
        typer.echo(f"{marker} {f}")


def main():
    try:
        app()
    except LexicardError as e:
        logger.error(f"{e}")
        sys.exit(1)

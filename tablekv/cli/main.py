"""
tablekv CLI entry point.

Commands:
    tablekv init     — Create the table
    tablekv ping     — Check the database
    tablekv get      — Print a value
    tablekv add      — Insert a value, print its key
    tablekv set      — Insert or overwrite a value
    tablekv update   — Overwrite an existing value
    tablekv delete   — Remove a value
    tablekv keys     — List every key
"""

from __future__ import annotations

import asyncio
import json
import sqlite3
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import typer
from rich.console import Console
from rich.markup import escape

from tablekv.core.config import TableKVConfig
from tablekv.core.errors import NotFoundError, TableKVError
from tablekv.core.logging import setup_logging
from tablekv.store.codec import JSONCodec
from tablekv.store.sqlite import SQLiteDatabase, connect
from tablekv.store.store import Store

app = typer.Typer(
    name="tablekv",
    help="tablekv — document-store semantics over a single SQL table.",
    add_completion=False,
)

console = Console()

DbOption = typer.Option(None, "--db", "-d", help="SQLite database file")
TableOption = typer.Option(None, "--table", "-t", help="Table name")


def load_config(db: str | None, table: str | None) -> TableKVConfig:
    overrides: dict[str, Any] = {}
    if db:
        overrides["database"] = {"path": db}
    if table:
        overrides["store"] = {"table": table}
    return TableKVConfig.load(overrides=overrides)


@asynccontextmanager
async def open_store(config: TableKVConfig, create_table: bool | None = None) -> AsyncIterator[Store]:
    """Open connection and store; close both on exit."""
    conn = await connect(config.database.resolved_path(), timeout=config.database.timeout)
    try:
        store = await Store.open(
            SQLiteDatabase(conn),
            config.store.table,
            create_table=config.store.create_table if create_table is None else create_table,
            timeout=config.store.operation_timeout,
            key_buffer=config.store.key_buffer,
            error_buffer=config.store.error_buffer,
        )
        async with store:
            yield store
    finally:
        await conn.close()


def _run(
    db: str | None,
    table: str | None,
    action: Any,
    create_table: bool | None = None,
) -> Any:
    """Run an async action against the configured store, mapping failures to exit 1."""
    try:
        config = load_config(db, table)
    except TableKVError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(1)

    setup_logging(config.logging.level, config.logging.file)

    async def main() -> Any:
        async with open_store(config, create_table) as store:
            return await action(store)

    try:
        return asyncio.run(main())
    except NotFoundError as e:
        console.print(f"[yellow]{e.message}[/yellow]")
        raise typer.Exit(1)
    except (TableKVError, sqlite3.Error) as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}", highlight=False)
        raise typer.Exit(1)


def _parse(value: str) -> Any:
    try:
        return JSONCodec().decode(value)
    except TableKVError as e:
        console.print(f"[red]Invalid JSON value:[/red] {escape(value)}", highlight=False)
        raise typer.Exit(1) from e


def _print_json(value: Any) -> None:
    console.print(json.dumps(value), markup=False, highlight=False, soft_wrap=True)


# ━━━ Commands ━━━


@app.command()
def version() -> None:
    """Show tablekv version."""
    from tablekv import __version__

    console.print(f"tablekv v{__version__}")


@app.command()
def init(db: str = DbOption, table: str = TableOption) -> None:
    """Create the table if it does not exist."""

    async def action(store: Store) -> str:
        return store.table

    name = _run(db, table, action, create_table=True)
    console.print(f"[green]Table '{name}' ready[/green]")


@app.command()
def ping(db: str = DbOption, table: str = TableOption) -> None:
    """Check that the database answers."""

    async def action(store: Store) -> None:
        await store.ping()

    _run(db, table, action)
    console.print("[green]ok[/green]")


@app.command()
def get(
    key: str = typer.Argument(..., help="Key to read"),
    db: str = DbOption,
    table: str = TableOption,
) -> None:
    """Print the JSON value stored under KEY."""

    async def action(store: Store) -> tuple[bool, Any]:
        return await store.get(key)

    found, value = _run(db, table, action)
    if not found:
        console.print(f"[yellow]Key '{key}' not found[/yellow]")
        raise typer.Exit(1)
    _print_json(value)


@app.command()
def add(
    value: str = typer.Argument(..., help="JSON value"),
    key: str = typer.Option(None, "--key", "-k", help="Use this key instead of a random UUID"),
    db: str = DbOption,
    table: str = TableOption,
) -> None:
    """Insert VALUE under a new key and print the key."""
    parsed = _parse(value)

    async def action(store: Store) -> str:
        return await store.add(parsed, key=key)

    console.print(_run(db, table, action), markup=False, highlight=False)


@app.command("set")
def set_(
    key: str = typer.Argument(..., help="Key to write"),
    value: str = typer.Argument(..., help="JSON value"),
    db: str = DbOption,
    table: str = TableOption,
) -> None:
    """Insert or overwrite KEY."""
    parsed = _parse(value)

    async def action(store: Store) -> None:
        await store.set(key, parsed)

    _run(db, table, action)


@app.command()
def update(
    key: str = typer.Argument(..., help="Existing key"),
    value: str = typer.Argument(..., help="JSON value"),
    db: str = DbOption,
    table: str = TableOption,
) -> None:
    """Overwrite KEY; fails if it does not exist."""
    parsed = _parse(value)

    async def action(store: Store) -> None:
        await store.update(key, parsed)

    _run(db, table, action)


@app.command()
def delete(
    key: str = typer.Argument(..., help="Key to remove"),
    db: str = DbOption,
    table: str = TableOption,
) -> None:
    """Remove KEY; fails if it does not exist."""

    async def action(store: Store) -> None:
        await store.delete(key)

    _run(db, table, action)


@app.command()
def keys(db: str = DbOption, table: str = TableOption) -> None:
    """List every key, in database order."""

    async def action(store: Store) -> tuple[list[str], list[Exception]]:
        stream = await store.keys()
        return await stream.collect()

    found, errors = _run(db, table, action)
    for key in found:
        console.print(key, markup=False, highlight=False)
    for error in errors:
        console.print(f"[red]Error:[/red] {escape(str(error))}", highlight=False)
    if errors:
        raise typer.Exit(1)

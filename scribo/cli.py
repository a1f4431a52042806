# scribo/cli.py

import asyncio
from typing import Optional

import typer
from pydantic import ValidationError

from scribo import __version__
from scribo.api.auth import KeyIssuer
from scribo.common.config import Config
from scribo.common.db import DatabaseError, DatabaseManager
from scribo.common.models import get_node_by_name
from scribo.common.utils import setup_logging

app = typer.Typer(help="Scribo: record latency pings between network nodes.")


def _load_config(config_path: Optional[str]) -> Config:
    config = Config(config_path)
    setup_logging(config)
    return config


def _version_callback(value: bool):
    if value:
        typer.echo(f"scribo {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(False, "--version", callback=_version_callback, is_eager=True,
                                 help="Show the version and exit."),
):
    """Scribo command line."""


@app.command("serve")
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Interface to bind (default from config)"),
    port: Optional[int] = typer.Option(None, "--port", help="Port to listen on (default from config)"),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to config.yaml"),
):
    """Run the HTTP API."""
    from scribo.main import run

    run(host=host, port=port, config=_load_config(config_path))


async def _migrate(config: Config, index: Optional[int], apply_all: bool) -> int:
    db = DatabaseManager()
    await db.connect(config.get("database.path", "scribo.db"))
    try:
        return await db.migrate(index=index, apply_all=apply_all)
    finally:
        await db.close()


@app.command("migrate")
def migrate(
    index: Optional[int] = typer.Argument(None, help="Run only the migration with this index"),
    apply_all: bool = typer.Option(False, "--all", help="Run all migrations from the beginning"),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to config.yaml"),
):
    """Execute migration SQL against the database (the latest one by default)."""
    config = _load_config(config_path)
    try:
        applied = asyncio.run(_migrate(config, index, apply_all))
    except DatabaseError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(1)
    typer.echo(f"Applied {applied} migration(s)")


async def _register(config: Config, name: str, addr: Optional[str], dns: Optional[str]):
    db = DatabaseManager()
    await db.connect(config.get("database.path", "scribo.db"))
    try:
        node = await get_node_by_name(db, name)
        if addr:
            node.address = addr
        if dns:
            node.dns = dns
        node.update_key(KeyIssuer(config.get("security.secret")))
        created = await node.save(db)
        return node, created
    finally:
        await db.close()


@app.command("register")
def register(
    name: str = typer.Argument(..., help="Name of the node to register"),
    addr: Optional[str] = typer.Option(None, "--addr", help="The IP address of the node"),
    dns: Optional[str] = typer.Option(None, "--dns", help="The domain name of the node"),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to config.yaml"),
):
    """Register a node (or rotate its key) and print the key used to sign requests."""
    config = _load_config(config_path)
    try:
        node, created = asyncio.run(_register(config, name, addr, dns))
    except DatabaseError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(3)
    except ValidationError as e:
        typer.echo(f"Invalid node: {e}", err=True)
        raise typer.Exit(2)

    where = node.address or node.dns or "Unknown Address"
    typer.echo(f"{'Created' if created else 'Updated'} Node {node.name} ({where})")
    typer.echo(f"Key: {node.key}\n")


if __name__ == "__main__":
    app()

"""CLI entrypoint for bookmarchive."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Optional

import requests
import typer
import uvicorn

from bookmarchive import __version__
from bookmarchive.core.config import ENV_PREFIX, Settings
from bookmarchive.core.errors import ConfigError
from bookmarchive.core.logging import valid_log_levels

app = typer.Typer(name="bookmarchive", help="Searchable archive of your Mastodon bookmarks")

DEFAULT_SERVER = "http://127.0.0.1:8080"


def _resolve_server(override: Optional[str]) -> str:
    if override:
        return override.rstrip("/")
    env_server = os.environ.get(f"{ENV_PREFIX}SERVER")
    if env_server:
        return env_server.rstrip("/")
    return DEFAULT_SERVER


def _request(method: str, path: str, server: Optional[str] = None, **kwargs) -> requests.Response:
    url = f"{_resolve_server(server)}{path}"
    try:
        resp = requests.request(method, url, timeout=60, **kwargs)
    except requests.RequestException as exc:
        typer.echo(f"Request failed: {exc}", err=True)
        raise typer.Exit(code=1)
    if not resp.ok:
        try:
            detail = resp.json()
        except ValueError:
            detail = resp.text
        typer.echo(f"Request failed ({resp.status_code}): {detail}", err=True)
        raise typer.Exit(code=1)
    return resp


@app.command()
def serve(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to a TOML or YAML config file"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override the configured log level"),
    host: Optional[str] = typer.Option(None, "--host", help="Override the listen address"),
    port: Optional[int] = typer.Option(None, "--port", help="Override the listen port"),
) -> None:
    """Run the web server and the ingestion worker."""
    if log_level is not None:
        if log_level.lower() not in valid_log_levels():
            typer.echo(
                f"Invalid log level {log_level!r}; expected one of {', '.join(valid_log_levels())}",
                err=True,
            )
            raise typer.Exit(code=2)
        os.environ[f"{ENV_PREFIX}LOG_LEVEL"] = log_level.lower()
    if config is not None:
        os.environ[f"{ENV_PREFIX}CONFIG"] = str(config.expanduser())

    try:
        settings = Settings.from_file()
        if settings.ingest_enabled:
            settings.require_remote()
    except ConfigError as exc:
        typer.echo(f"Configuration error: {exc}", err=True)
        raise typer.Exit(code=1)

    uvicorn.run(
        "bookmarchive.app:app",
        host=host or settings.listen,
        port=port or settings.port,
        log_config=None,
    )


@app.command()
def search(
    query: str = typer.Argument("", help="Full-text query; empty lists recent bookmarks"),
    limit: int = typer.Option(20, "--limit", help="Number of results to return"),
    offset: int = typer.Option(0, "--offset", help="Results to skip"),
    mine: bool = typer.Option(False, "--mine", help="Only bookmarks of your own posts"),
    highlight: bool = typer.Option(False, "--highlight", help="Include highlighted snippets"),
    server: Optional[str] = typer.Option(None, "--server", help="Override the server URL"),
) -> None:
    """Search a running archive."""
    payload: dict[str, object] = {
        "query": query,
        "limit": limit,
        "offset": offset,
        "enable_highlighting": highlight,
    }
    if mine:
        payload["filter_by_account"] = "my_posts"
    resp = _request("POST", "/api/search", server=server, json=payload)
    typer.echo(json.dumps(resp.json(), indent=2))


@app.command()
def stats(
    server: Optional[str] = typer.Option(None, "--server", help="Override the server URL"),
) -> None:
    """Show archive statistics."""
    resp = _request("GET", "/api/stats", server=server)
    typer.echo(json.dumps(resp.json(), indent=2))


@app.command()
def version() -> None:
    """Print the version."""
    typer.echo(f"bookmarchive {__version__}")


if __name__ == "__main__":
    app()

"""QOTD CLI — run the server, add quotes, list them, watch the live feed.

Usage:
    qotd serve --port 8080                       # Run the service
    qotd add "Talk is cheap." --author Linus     # POST a quote
    qotd list                                    # Print every stored quote
    qotd watch                                   # Stream new quotes as they arrive
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import os
import sys
from typing import NoReturn, Optional

import click
import httpx
import websockets

from qotd import __version__
from qotd.config import Settings
from qotd.errors import StartupError

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:8080"


def _api_url() -> str:
    return os.environ.get("QOTD_API_URL", DEFAULT_API_URL).rstrip("/")


def _ws_url() -> str:
    url = _api_url()
    if url.startswith("https://"):
        return "wss://" + url[len("https://"):] + "/realtime"
    return "ws://" + url.removeprefix("http://") + "/realtime"


def _client() -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the QOTD server."""
    return httpx.AsyncClient(base_url=_api_url(), timeout=30.0)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from synchronous Click handler.

    Handles nested event loops (e.g. when invoked via Click CliRunner
    inside an existing async context like tests) by offloading to a thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _fail(message: str) -> NoReturn:
    click.secho(f"Error: {message}", fg="red", err=True)
    sys.exit(1)


def _print_table(rows: list[dict], columns: list[tuple[str, str, int]]):
    """Print a simple ASCII table.

    columns: list of (header, dict_key, width)
    """
    header = "  ".join(h.ljust(w) for h, _, w in columns)
    click.secho(header, bold=True)
    click.echo("-" * len(header))
    for row in rows:
        line = "  ".join(str(row.get(k, "—"))[:w].ljust(w) for _, k, w in columns)
        click.echo(line)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="qotd")
def main():
    """QOTD — store quotes and stream new ones to live subscribers."""


# ---------------------------------------------------------------------------
# qotd serve
# ---------------------------------------------------------------------------


@main.command()
@click.option("--port", "-p", type=int, help="HTTP port (default 8080, or QOTD_HTTP_PORT)")
@click.option("--host", help="Bind address (default 0.0.0.0)")
@click.option(
    "--config", "config_path", type=click.Path(exists=True, dir_okay=False),
    help='JSON config file, e.g. {"http.port": 8080}',
)
def serve(port: Optional[int], host: Optional[str], config_path: Optional[str]):
    """Run the server until interrupted."""
    from qotd.server import run

    overrides = {"http_port": port, "host": host}
    try:
        if config_path:
            settings = Settings.from_json_file(config_path, **overrides)
        else:
            settings = Settings(**{k: v for k, v in overrides.items() if v is not None})
    except ValueError as e:
        _fail(f"invalid configuration: {e}")

    try:
        run(settings)
    except StartupError as e:
        _fail(f"startup failed: {e}")


# ---------------------------------------------------------------------------
# qotd add
# ---------------------------------------------------------------------------


@main.command()
@click.argument("text")
@click.option("--author", "-a", help='Quote author (server defaults to "Unknown")')
def add(text: str, author: Optional[str]):
    """Add a quote. TEXT is the quote itself."""
    _run(_add_impl(text, author))


async def _add_impl(text: str, author: Optional[str]):
    body: dict = {"text": text}
    if author:
        body["author"] = author
    async with _client() as c:
        try:
            r = await c.post("/quotes", json=body)
        except httpx.HTTPError as e:
            _fail(f"server not reachable at {_api_url()}: {e}")
    if r.status_code != 200:
        _fail(f"{r.status_code} {r.text}")
    click.secho("Quote added", fg="green")


# ---------------------------------------------------------------------------
# qotd list
# ---------------------------------------------------------------------------


@main.command(name="list")
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON")
def list_quotes(as_json: bool):
    """List every stored quote."""
    _run(_list_impl(as_json))


async def _list_impl(as_json: bool):
    async with _client() as c:
        try:
            r = await c.get("/quotes")
        except httpx.HTTPError as e:
            _fail(f"server not reachable at {_api_url()}: {e}")
    if r.status_code != 200:
        _fail(f"{r.status_code} {r.text}")

    rows = r.json()
    if as_json:
        click.echo(json.dumps(rows, indent=2))
        return
    if not rows:
        click.echo("No quotes yet.")
        return
    _print_table(rows, [("AUTHOR", "AUTHOR", 24), ("TEXT", "TEXT", 72)])


# ---------------------------------------------------------------------------
# qotd watch
# ---------------------------------------------------------------------------


@main.command()
@click.option("--count", "-n", type=int, help="Exit after this many quotes")
def watch(count: Optional[int]):
    """Print new quotes as they are accepted."""
    try:
        _run(_watch_impl(count))
    except KeyboardInterrupt:
        pass


async def _watch_impl(count: Optional[int]):
    uri = _ws_url()
    try:
        async with websockets.connect(uri) as ws:
            click.echo(f"Connected to {uri}, waiting for quotes...")
            seen = 0
            async for message in ws:
                quote = json.loads(message)
                click.echo(f"“{quote.get('text')}” — {quote.get('author')}")
                seen += 1
                if count is not None and seen >= count:
                    return
    except (OSError, websockets.exceptions.WebSocketException) as e:
        _fail(f"realtime feed unavailable at {uri}: {e}")

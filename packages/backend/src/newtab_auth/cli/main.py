"""newtab-auth CLI — exercise the token endpoints and maintain the ledger.

Usage:
    newtab-auth guest                            # Tokens for a fresh guest
    newtab-auth register a@x.com --password pw   # Create account + tokens
    newtab-auth login a@x.com --password pw      # Tokens for an account
    newtab-auth refresh <refresh_token>          # Rotate a refresh token
    newtab-auth validate <access_token>          # Show identity + trust headers
    newtab-auth logout <refresh_token>           # Forget a refresh token
    newtab-auth sweep                            # Purge expired ledger rows (direct DB)
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import os
import sys

import click
import httpx

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:8000"


def _api_url() -> str:
    return os.environ.get("NEWTAB_AUTH_API_URL", DEFAULT_API_URL).rstrip("/")


def _client() -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the auth service."""
    return httpx.AsyncClient(base_url=_api_url(), timeout=30.0)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from a synchronous Click handler.

    Handles nested event loops (e.g. CliRunner inside an async test) by
    offloading to a thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _pretty_json(data: dict | list) -> str:
    return json.dumps(data, indent=2, default=str)


def _fail(r: httpx.Response) -> None:
    try:
        body = r.json()
        detail = f"{body.get('detail')} ({body.get('code')})"
    except ValueError:
        detail = r.text
    click.secho(f"Error {r.status_code}: {detail}", fg="red", err=True)
    sys.exit(1)


async def _call(method: str, path: str, **kwargs) -> httpx.Response:
    async with _client() as c:
        return await c.request(method, f"/api/auth{path}", **kwargs)


def _show_tokens(r: httpx.Response) -> None:
    if r.status_code != 200:
        _fail(r)
    body = r.json()
    click.secho(f"{body['userType']}: {body['email']}", fg="green")
    click.echo(_pretty_json(body))


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version="0.1.0", prog_name="newtab-auth")
def main():
    """newtab-auth — issue, rotate and validate identity tokens."""


@main.command()
def guest():
    """Get tokens for a new anonymous guest."""
    _show_tokens(_run(_call("POST", "/guest")))


@main.command()
@click.argument("email")
@click.password_option()
def register(email: str, password: str):
    """Register EMAIL and print its tokens."""
    _show_tokens(_run(_call("POST", "/register", json={"email": email, "password": password})))


@main.command()
@click.argument("email")
@click.option("--password", prompt=True, hide_input=True)
def login(email: str, password: str):
    """Log in as EMAIL and print its tokens."""
    _show_tokens(_run(_call("POST", "/login", json={"email": email, "password": password})))


@main.command()
@click.argument("refresh_token")
def refresh(refresh_token: str):
    """Exchange REFRESH_TOKEN for a new pair (the old one stops working)."""
    _show_tokens(_run(_call("POST", "/refresh", json={"refreshToken": refresh_token})))


@main.command()
@click.argument("access_token")
def validate(access_token: str):
    """Validate ACCESS_TOKEN and show the forwarded trust headers."""
    r = _run(_call("GET", "/validate", headers={"Authorization": f"Bearer {access_token}"}))
    if r.status_code != 200:
        _fail(r)
    body = r.json()
    click.secho(f"valid: {body['userType']}: {body['email']}", fg="green")
    for header in ("X-User-Email", "X-User-Type"):
        click.echo(f"  {header}: {r.headers.get(header, '-')}")


@main.command()
@click.argument("refresh_token")
def logout(refresh_token: str):
    """Forget REFRESH_TOKEN."""
    r = _run(_call("POST", "/logout", json={"refreshToken": refresh_token}))
    if r.status_code != 204:
        _fail(r)
    click.secho("Logged out", fg="green")


@main.command()
def sweep():
    """Delete expired refresh tokens directly in the database."""
    from newtab_auth.services.ledger_sweeper import LedgerSweeper

    removed = _run(LedgerSweeper(interval=0).sweep_once())
    click.secho(f"Removed {removed} expired refresh token(s)", fg="green")

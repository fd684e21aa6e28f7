"""vidstream CLI — log in, rotate sessions, and manage your videos.

Usage:
    vidstream serve                          # Run the API with uvicorn
    vidstream login alice                    # Prompts for password, stores tokens
    vidstream whoami                         # Current account
    vidstream refresh                        # Rotate the refresh token
    vidstream videos --query cats            # Search videos
    vidstream toggle-publish <video-id>      # Publish / unpublish one of yours
    vidstream logout                         # End the session, forget tokens

Tokens live in a JSON session file (VIDSTREAM_SESSION_FILE, default
~/.vidstream/session.json). Requests that come back 401 are retried once
after a token refresh.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import os
import sys
from pathlib import Path
from typing import Optional

import click
import httpx

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:8000"


def _api_url() -> str:
    return os.environ.get("VIDSTREAM_API_URL", DEFAULT_API_URL).rstrip("/")


def _session_path() -> Path:
    default = Path.home() / ".vidstream" / "session.json"
    return Path(os.environ.get("VIDSTREAM_SESSION_FILE", default))


def _client() -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the vidstream backend."""
    return httpx.AsyncClient(base_url=_api_url(), timeout=30.0)


# ---------------------------------------------------------------------------
# Session file
# ---------------------------------------------------------------------------


def _load_session() -> dict:
    path = _session_path()
    if not path.exists():
        return {}
    try:
        return json.loads(path.read_text())
    except json.JSONDecodeError:
        return {}


def _save_session(data: dict) -> None:
    path = _session_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2))
    path.chmod(0o600)


def _clear_session() -> None:
    _session_path().unlink(missing_ok=True)


def _require_session() -> dict:
    session = _load_session()
    if not session.get("access_token"):
        click.secho("Not logged in. Run: vidstream login <username>", fg="red", err=True)
        sys.exit(1)
    return session


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


def _fail(r: httpx.Response) -> None:
    try:
        message = r.json().get("message", r.text)
    except ValueError:
        message = r.text
    click.secho(f"Error {r.status_code}: {message}", fg="red", err=True)
    sys.exit(1)


def _auth_headers(session: dict) -> dict:
    return {"Authorization": f"Bearer {session['access_token']}"}


async def _rotate(c: httpx.AsyncClient, session: dict) -> bool:
    """Refresh the stored token pair. Returns False if the server refused."""
    r = await c.post(
        "/api/v1/users/refresh-token",
        json={"refresh_token": session.get("refresh_token")},
    )
    if r.status_code != 200:
        return False
    data = r.json()["data"]
    session["access_token"] = data["access_token"]
    session["refresh_token"] = data["refresh_token"]
    _save_session(session)
    return True


async def _authed(c: httpx.AsyncClient, method: str, url: str, **kwargs) -> httpx.Response:
    """Send an authenticated request, refreshing once on 401."""
    session = _require_session()
    r = await c.request(method, url, headers=_auth_headers(session), **kwargs)
    if r.status_code == 401 and await _rotate(c, session):
        r = await c.request(method, url, headers=_auth_headers(session), **kwargs)
    return r


def _print_table(rows: list[dict], columns: list[tuple[str, str, int]]):
    """Print a simple ASCII table. columns: (header, dict_key, width)."""
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
@click.version_option(version="0.1.0", prog_name="vidstream")
def main():
    """vidstream — video sharing backend and API client."""


@main.command()
@click.option("--host", default=None, help="Bind address (default from settings)")
@click.option("--port", default=None, type=int, help="Port (default from settings)")
@click.option("--reload", is_flag=True, help="Auto-reload on code changes")
def serve(host: Optional[str], port: Optional[int], reload: bool):
    """Run the API server."""
    import uvicorn

    from vidstream.config import settings

    uvicorn.run(
        "vidstream.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
    )


@main.command()
@click.argument("identifier")
@click.password_option(confirmation_prompt=False)
def login(identifier: str, password: str):
    """Log in with USERNAME or email."""
    _run(_login_impl(identifier, password))


async def _login_impl(identifier: str, password: str):
    key = "email" if "@" in identifier else "username"
    async with _client() as c:
        r = await c.post(
            "/api/v1/users/login",
            json={key: identifier, "password": password},
        )
    if r.status_code != 200:
        _fail(r)
    data = r.json()["data"]
    _save_session({
        "access_token": data["access_token"],
        "refresh_token": data["refresh_token"],
        "username": data["account"]["username"],
    })
    click.secho(f"Logged in as {data['account']['username']}", fg="green")


@main.command()
def whoami():
    """Show the current account."""
    _run(_whoami_impl())


async def _whoami_impl():
    async with _client() as c:
        r = await _authed(c, "GET", "/api/v1/users/me")
    if r.status_code != 200:
        _fail(r)
    account = r.json()["data"]
    click.echo(f"{account['username']} <{account['email']}>  {account['full_name']}")
    click.echo(f"id: {account['id']}")


@main.command()
def refresh():
    """Rotate the session's refresh token."""
    _run(_refresh_impl())


async def _refresh_impl():
    session = _require_session()
    async with _client() as c:
        rotated = await _rotate(c, session)
    if not rotated:
        click.secho("Session expired or revoked. Log in again.", fg="red", err=True)
        sys.exit(1)
    click.secho("Session refreshed", fg="green")


@main.command()
def logout():
    """End the session on the server and forget local tokens."""
    _run(_logout_impl())


async def _logout_impl():
    async with _client() as c:
        r = await _authed(c, "POST", "/api/v1/users/logout")
    _clear_session()
    if r.status_code != 200:
        _fail(r)
    click.secho("Logged out", fg="green")


@main.command()
@click.option("--query", "-q", help="Search title and description")
@click.option("--user-id", help="Only videos from this account")
@click.option("--page", default=1, show_default=True)
@click.option("--limit", default=10, show_default=True)
@click.option("--sort-by", default="created_at", show_default=True)
@click.option("--sort-type", type=click.Choice(["asc", "desc"]), default="desc")
@click.option("--json", "as_json", is_flag=True, help="Raw JSON output")
def videos(query, user_id, page, limit, sort_by, sort_type, as_json):
    """List videos."""
    _run(_videos_impl(query, user_id, page, limit, sort_by, sort_type, as_json))


async def _videos_impl(query, user_id, page, limit, sort_by, sort_type, as_json):
    params = {"page": page, "limit": limit, "sort_by": sort_by, "sort_type": sort_type}
    if query:
        params["query"] = query
    if user_id:
        params["user_id"] = user_id

    async with _client() as c:
        r = await _authed(c, "GET", "/api/v1/videos", params=params)
    if r.status_code != 200:
        _fail(r)
    data = r.json()["data"]

    if as_json:
        click.echo(json.dumps(data, indent=2, default=str))
        return

    _print_table(data["items"], [
        ("ID", "id", 36),
        ("TITLE", "title", 30),
        ("VIEWS", "views", 6),
        ("PUBLISHED", "is_published", 9),
    ])
    click.echo(f"\npage {data['page']}/{max(data['pages'], 1)} · {data['total']} total")


@main.command("toggle-publish")
@click.argument("video_id")
def toggle_publish(video_id: str):
    """Publish or unpublish one of your videos."""
    _run(_toggle_impl(video_id))


async def _toggle_impl(video_id: str):
    async with _client() as c:
        r = await _authed(c, "PATCH", f"/api/v1/videos/toggle/publish/{video_id}")
    if r.status_code != 200:
        _fail(r)
    video = r.json()["data"]
    state = "published" if video["is_published"] else "unpublished"
    click.secho(f"{video['title']} is now {state}", fg="green")


if __name__ == "__main__":
    main()

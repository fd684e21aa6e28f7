"""CLI tests — click commands against a mocked HTTP backend."""

import json

import httpx
import pytest
from click.testing import CliRunner

from vidstream.cli import main as cli


class FakeBackend:
    """Just enough of the users/videos API for the CLI to talk to."""

    def __init__(self):
        self.current_access = "access-1"
        self.current_refresh = "refresh-1"
        self.rotations = 0
        self.requests: list[httpx.Request] = []

    def _tokens(self) -> dict:
        return {
            "access_token": self.current_access,
            "refresh_token": self.current_refresh,
            "token_type": "bearer",
            "expires_in": 900,
            "account": {"username": "alice"},
        }

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/api/v1/users/login":
            body = json.loads(request.content)
            if body.get("password") != "password_123":
                return httpx.Response(
                    401, json={"message": "Invalid username or password"}
                )
            return httpx.Response(200, json={"data": self._tokens()})

        if path == "/api/v1/users/refresh-token":
            body = json.loads(request.content)
            if body.get("refresh_token") != self.current_refresh:
                return httpx.Response(400, json={"message": "Stale credential"})
            self.rotations += 1
            self.current_access = f"access-{self.rotations + 1}"
            self.current_refresh = f"refresh-{self.rotations + 1}"
            return httpx.Response(200, json={"data": self._tokens()})

        if request.headers.get("Authorization") != f"Bearer {self.current_access}":
            return httpx.Response(401, json={"message": "Access token has expired"})

        if path == "/api/v1/users/me":
            return httpx.Response(
                200,
                json={
                    "data": {
                        "id": "7d9c0c52-1111-4c8e-9f00-000000000001",
                        "username": "alice",
                        "email": "alice@example.com",
                        "full_name": "Alice Example",
                    }
                },
            )
        if path == "/api/v1/users/logout":
            return httpx.Response(200, json={"data": None})
        if path == "/api/v1/videos":
            return httpx.Response(
                200,
                json={
                    "data": {
                        "items": [
                            {"id": "v1", "title": "Cats", "views": 3, "is_published": True}
                        ],
                        "total": 1,
                        "page": 1,
                        "limit": 10,
                        "pages": 1,
                    }
                },
            )
        if path.startswith("/api/v1/videos/toggle/publish/"):
            return httpx.Response(
                200, json={"data": {"title": "Cats", "is_published": False}}
            )
        return httpx.Response(404, json={"message": "Not found"})


@pytest.fixture()
def backend(monkeypatch, tmp_path):
    fake = FakeBackend()
    monkeypatch.setenv("VIDSTREAM_SESSION_FILE", str(tmp_path / "session.json"))
    monkeypatch.setattr(
        cli,
        "_client",
        lambda: httpx.AsyncClient(
            transport=httpx.MockTransport(fake), base_url="http://test"
        ),
    )
    return fake


@pytest.fixture()
def runner():
    return CliRunner()


def session_file(tmp_path) -> dict:
    return json.loads((tmp_path / "session.json").read_text())


def test_login_saves_session(runner, backend, tmp_path):
    result = runner.invoke(cli.main, ["login", "alice", "--password", "password_123"])
    assert result.exit_code == 0, result.output
    assert "Logged in as alice" in result.output
    saved = session_file(tmp_path)
    assert saved["access_token"] == "access-1"
    assert saved["refresh_token"] == "refresh-1"


def test_login_by_email_sends_email_field(runner, backend):
    runner.invoke(cli.main, ["login", "alice@example.com", "--password", "password_123"])
    body = json.loads(backend.requests[0].content)
    assert body["email"] == "alice@example.com"
    assert "username" not in body


def test_login_failure(runner, backend, tmp_path):
    result = runner.invoke(cli.main, ["login", "alice", "--password", "nope"])
    assert result.exit_code == 1
    assert "Invalid username or password" in result.output
    assert not (tmp_path / "session.json").exists()


def test_whoami_requires_login(runner, backend):
    result = runner.invoke(cli.main, ["whoami"])
    assert result.exit_code == 1
    assert "Not logged in" in result.output


def test_whoami(runner, backend):
    runner.invoke(cli.main, ["login", "alice", "--password", "password_123"])
    result = runner.invoke(cli.main, ["whoami"])
    assert result.exit_code == 0, result.output
    assert "alice <alice@example.com>" in result.output


def test_refresh_rotates_stored_tokens(runner, backend, tmp_path):
    runner.invoke(cli.main, ["login", "alice", "--password", "password_123"])
    result = runner.invoke(cli.main, ["refresh"])
    assert result.exit_code == 0, result.output
    assert session_file(tmp_path)["refresh_token"] == "refresh-2"


def test_expired_access_token_is_refreshed_once(runner, backend, tmp_path):
    runner.invoke(cli.main, ["login", "alice", "--password", "password_123"])
    # Server rotated behind our back: our access token is now rejected
    # but the refresh token is still current.
    backend.current_access = "access-rotated"

    result = runner.invoke(cli.main, ["whoami"])
    assert result.exit_code == 0, result.output
    assert backend.rotations == 1
    assert session_file(tmp_path)["access_token"] == "access-2"


def test_refresh_rejected(runner, backend):
    runner.invoke(cli.main, ["login", "alice", "--password", "password_123"])
    backend.current_refresh = "someone-else-rotated"
    result = runner.invoke(cli.main, ["refresh"])
    assert result.exit_code == 1
    assert "Log in again" in result.output


def test_videos_table(runner, backend):
    runner.invoke(cli.main, ["login", "alice", "--password", "password_123"])
    result = runner.invoke(cli.main, ["videos", "--query", "cats"])
    assert result.exit_code == 0, result.output
    assert "Cats" in result.output
    assert "1 total" in result.output
    assert backend.requests[-1].url.params["query"] == "cats"


def test_toggle_publish(runner, backend):
    runner.invoke(cli.main, ["login", "alice", "--password", "password_123"])
    result = runner.invoke(cli.main, ["toggle-publish", "v1"])
    assert result.exit_code == 0, result.output
    assert "Cats is now unpublished" in result.output


def test_logout_forgets_session(runner, backend, tmp_path):
    runner.invoke(cli.main, ["login", "alice", "--password", "password_123"])
    result = runner.invoke(cli.main, ["logout"])
    assert result.exit_code == 0, result.output
    assert not (tmp_path / "session.json").exists()

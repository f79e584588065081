"""CLI tests — HTTP calls are answered by an httpx.MockTransport."""

import httpx
import pytest
from click.testing import CliRunner

from newtab_auth.cli import main as cli


def _mock_api(handler):
    def _client():
        return httpx.AsyncClient(
            base_url="http://auth.test", transport=httpx.MockTransport(handler)
        )
    return _client


@pytest.fixture()
def runner():
    return CliRunner()


def test_guest_prints_tokens(runner, monkeypatch):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "POST"
        assert request.url.path == "/api/auth/guest"
        return httpx.Response(200, json={
            "token": "acc",
            "refreshToken": "ref",
            "type": "Bearer",
            "userType": "guest",
            "email": "guest-abc@guest.newtab",
        })

    monkeypatch.setattr(cli, "_client", _mock_api(handler))
    result = runner.invoke(cli.main, ["guest"])

    assert result.exit_code == 0
    assert "guest: guest-abc@guest.newtab" in result.output


def test_validate_shows_trust_headers(runner, monkeypatch):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["Authorization"] == "Bearer acc"
        return httpx.Response(
            200,
            json={"email": "a@x.com", "userType": "registered"},
            headers={"X-User-Email": "a@x.com", "X-User-Type": "registered"},
        )

    monkeypatch.setattr(cli, "_client", _mock_api(handler))
    result = runner.invoke(cli.main, ["validate", "acc"])

    assert result.exit_code == 0
    assert "X-User-Type: registered" in result.output


def test_refresh_failure_exits_nonzero(runner, monkeypatch):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            401, json={"detail": "Refresh token not recognized", "code": "token_not_found"}
        )

    monkeypatch.setattr(cli, "_client", _mock_api(handler))
    result = runner.invoke(cli.main, ["refresh", "stale"])

    assert result.exit_code == 1
    assert "token_not_found" in result.output

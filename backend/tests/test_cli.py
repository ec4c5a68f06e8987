"""Tests for the ctxa command-line client."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest
import requests
from typer.testing import CliRunner

from context_atlas.cli import main as cli

runner = CliRunner()


@pytest.fixture
def fake_request(monkeypatch: pytest.MonkeyPatch) -> MagicMock:
    response = MagicMock()
    response.ok = True
    response.json.return_value = {"success": True}
    request = MagicMock(return_value=response)
    monkeypatch.setattr(cli.requests, "request", request)
    monkeypatch.delenv("CTXA_HOST", raising=False)
    return request


def test_add_markdown_source_uploads_body(tmp_path: Path, fake_request: MagicMock) -> None:
    notes = tmp_path / "notes.md"
    notes.write_text("# Notes\n\nbody", encoding="utf-8")

    result = runner.invoke(
        cli.app,
        ["sources", "add", "notes", "--type", "markdown", "--markdown", str(notes), "--workspace", "ws-1"],
    )

    assert result.exit_code == 0, result.output
    method, url = fake_request.call_args.args
    assert (method, url) == ("POST", "http://127.0.0.1:5173/knowledge/sources")
    payload = fake_request.call_args.kwargs["json"]
    assert payload["content"] == "# Notes\n\nbody"
    assert payload["type"] == "markdown"
    assert payload["workspace_id"] == "ws-1"


def test_host_override_from_environment(monkeypatch: pytest.MonkeyPatch, fake_request: MagicMock) -> None:
    monkeypatch.setenv("CTXA_HOST", "http://atlas.internal:9000/")

    result = runner.invoke(cli.app, ["context", "binding", "--workspace", "ws-1"])

    assert result.exit_code == 0, result.output
    assert fake_request.call_args.args == ("POST", "http://atlas.internal:9000/context")


def test_failed_request_exits_non_zero(fake_request: MagicMock) -> None:
    fake_request.return_value.ok = False
    fake_request.return_value.status_code = 404
    fake_request.return_value.json.return_value = {"detail": "Knowledge source ks-1 not found"}

    result = runner.invoke(cli.app, ["sources", "remove", "ks-1"])

    assert result.exit_code == 1
    assert fake_request.call_args.args == ("DELETE", "http://127.0.0.1:5173/knowledge/sources/ks-1")


def test_connection_error_exits_non_zero(fake_request: MagicMock) -> None:
    fake_request.side_effect = requests.ConnectionError("refused")

    result = runner.invoke(cli.app, ["sources", "refresh-all"])

    assert result.exit_code == 1

"""CLI entrypoint for Context Atlas."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Optional

import requests
import typer

app = typer.Typer(name="ctxa", help="Context Atlas command-line interface")
sources_app = typer.Typer(name="sources", help="Manage knowledge sources")
app.add_typer(sources_app, name="sources")

DEFAULT_HOST = "http://127.0.0.1:5173"


def _resolve_host(override: Optional[str]) -> str:
    if override:
        return override.rstrip('/')
    env_host = os.environ.get("CTXA_HOST")
    if env_host:
        return env_host.rstrip('/')
    return DEFAULT_HOST


def _request(method: str, path: str, host: Optional[str] = None, **kwargs) -> requests.Response:
    base = _resolve_host(host)
    url = f"{base}{path}"
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


def _echo_json(payload: object) -> None:
    typer.echo(json.dumps(payload, indent=2))


@sources_app.command("list")
def list_sources(
    workspace: str = typer.Option(..., "--workspace", help="Workspace ID"),
    space: Optional[str] = typer.Option(None, "--space", help="Space ID"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """List sources visible to a workspace."""
    params = {"workspace_id": workspace}
    if space:
        params["space_id"] = space
    resp = _request("GET", "/knowledge/sources", host=host, params=params)
    _echo_json(resp.json())


@sources_app.command("add")
def add_source(
    name: str = typer.Argument(..., help="Display name"),
    type: str = typer.Option("url", "--type", help="url, page, markdown or file"),
    url: Optional[str] = typer.Option(None, "--url", help="URL to fetch (url sources)"),
    page_id: Optional[str] = typer.Option(None, "--page-id", help="Page to ingest (page sources)"),
    file_id: Optional[str] = typer.Option(None, "--file-id", help="Stored file ID (file sources)"),
    markdown: Optional[Path] = typer.Option(None, "--markdown", help="Markdown file to upload (markdown sources)"),
    scope: str = typer.Option("workspace", "--scope", help="system, workspace or space"),
    workspace: Optional[str] = typer.Option(None, "--workspace", help="Workspace ID"),
    space: Optional[str] = typer.Option(None, "--space", help="Space ID"),
    schedule: Optional[str] = typer.Option(None, "--schedule", help="Sync schedule label"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Register a knowledge source; ingestion starts in the background."""
    payload = {
        "name": name,
        "type": type,
        "scope": scope,
        "source_url": url,
        "page_id": page_id,
        "file_id": file_id,
        "content": markdown.expanduser().read_text(encoding="utf-8") if markdown else None,
        "workspace_id": workspace,
        "space_id": space,
        "sync_schedule": schedule,
    }
    resp = _request("POST", "/knowledge/sources", host=host, json=payload)
    _echo_json(resp.json())


@sources_app.command("remove")
def remove_source(
    source_id: str = typer.Argument(..., help="Source identifier"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Delete a source and its chunks."""
    resp = _request("DELETE", f"/knowledge/sources/{source_id}", host=host)
    _echo_json(resp.json())


@sources_app.command("refresh")
def refresh_source(
    source_id: str = typer.Argument(..., help="Source identifier"),
    markdown: Optional[Path] = typer.Option(None, "--markdown", help="Markdown body for markdown sources"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Re-ingest one source."""
    body = {"content": markdown.expanduser().read_text(encoding="utf-8")} if markdown else None
    resp = _request("POST", f"/knowledge/sources/{source_id}/refresh", host=host, json=body)
    _echo_json(resp.json())


@sources_app.command("refresh-all")
def refresh_all(
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Re-ingest every source that is not already processing."""
    resp = _request("POST", "/knowledge/sources/refresh-all", host=host)
    _echo_json(resp.json())


@app.command()
def search(
    q: str = typer.Argument(..., help="Query text"),
    workspace: str = typer.Option(..., "--workspace", help="Workspace ID"),
    space: Optional[str] = typer.Option(None, "--space", help="Space ID"),
    limit: int = typer.Option(5, "--limit", help="Number of chunks to return"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Similarity search over knowledge chunks."""
    payload = {"query": q, "workspace_id": workspace, "space_id": space, "limit": limit}
    resp = _request("POST", "/knowledge/search", host=host, json=payload)
    _echo_json(resp.json())


@app.command()
def context(
    q: str = typer.Argument(..., help="Query text"),
    workspace: str = typer.Option(..., "--workspace", help="Workspace ID"),
    space: Optional[str] = typer.Option(None, "--space", help="Space ID"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Assemble the context bundle for a query."""
    payload = {"query": q, "workspace_id": workspace, "space_id": space}
    resp = _request("POST", "/context", host=host, json=payload)
    _echo_json(resp.json())


if __name__ == "__main__":
    app()

#!/usr/bin/env python3
"""
Push Sync CLI Tool
Part of the Push Sync Service

Operator commands for the GitHub → Rally push sync service: replay saved
push payloads against a running service, check service status and metrics,
and try artifact and keyword matching against Rally without pushing.
"""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Dict, Any, Optional

import click
import httpx
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from config.settings import Settings, export_config, settings, validate_configuration
from .artifacts import ArtifactMatcher, ArtifactResolver
from .signature import SIGNATURE_256_HEADER, sign
from .state import StateTransitioner
from .tracker import create_rally_client

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.monitoring.log_level),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

console = Console()


class PushSyncCLI:
    """HTTP client for a running Push Sync Service."""

    def __init__(self, base_url: Optional[str] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = Settings()
        self.base_url = base_url or f"http://localhost:{self.settings.service.port}"
        self.client = httpx.AsyncClient(timeout=30.0, transport=transport)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.client.aclose()

    async def replay(self, payload: bytes, secret: Optional[str] = None) -> httpx.Response:
        """POST a saved push payload, signing it when a secret is given."""
        headers = {"Content-Type": "application/json", "X-GitHub-Event": "push"}
        if secret:
            headers[SIGNATURE_256_HEADER] = sign(secret, payload)
        try:
            return await self.client.post(f"{self.base_url}/api/receive", content=payload, headers=headers)
        except httpx.ConnectError:
            raise Exception("Could not connect to Push Sync Service. Is it running?")

    async def get_json(self, path: str) -> Dict[str, Any]:
        try:
            response = await self.client.get(f"{self.base_url}{path}")
        except httpx.ConnectError:
            raise Exception("Could not connect to Push Sync Service. Is it running?")
        response.raise_for_status()
        return response.json()


def display_artifacts(message: str, artifacts: Dict[str, str]):
    """Display matched identifiers and their Rally refs."""
    matcher = ArtifactMatcher()
    table = Table(title="Referenced Artifacts", show_header=True, header_style="bold magenta")
    table.add_column("Identifier", style="cyan")
    table.add_column("Kind", style="yellow")
    table.add_column("Rally Ref", style="green")

    for reference in matcher.find(message):
        table.add_row(
            reference.identifier,
            reference.kind.value,
            artifacts.get(reference.identifier, "not found"),
        )
    console.print(table)


@click.group()
@click.version_option(version="1.0.0")
def cli():
    """Push Sync CLI - operate the GitHub → Rally push sync service."""
    pass


@cli.command()
@click.argument('payload_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--url', '-u', help='Service base URL (default: http://localhost:<port>)')
@click.option('--secret', '-s', envvar='GITHUB__WEBHOOK_SECRET', help='Webhook secret used to sign the payload')
def replay(payload_file: Path, url: Optional[str], secret: Optional[str]):
    """Replay a saved GitHub push payload against the service."""
    async def run():
        try:
            async with PushSyncCLI(url) as cli_tool:
                response = await cli_tool.replay(payload_file.read_bytes(), secret)
        except Exception as e:
            console.print(f"[red]❌ Error: {str(e)}[/red]")
            sys.exit(1)

        style = "green" if response.is_success else "red"
        console.print(Panel(response.text, title=f"HTTP {response.status_code}", border_style=style))
        if not response.is_success:
            sys.exit(1)

    asyncio.run(run())


@cli.command()
@click.option('--url', '-u', help='Service base URL (default: http://localhost:<port>)')
def status(url: Optional[str]):
    """Check the status of the Push Sync Service."""
    async def run():
        try:
            async with PushSyncCLI(url) as cli_tool:
                health = await cli_tool.get_json("/health")
                metrics = await cli_tool.get_json("/metrics")
        except Exception as e:
            console.print(f"[red]❌ Error: {str(e)}[/red]")
            sys.exit(1)

        console.print("[green]✅ Push Sync Service is running[/green]")
        console.print(f"[dim]Workspace: {health.get('workspace')} | "
                      f"pending pushes: {health.get('pending_pushes')} | "
                      f"events: {health.get('events')}[/dim]")

        table = Table(title="Push Metrics", show_header=True, header_style="bold magenta")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="green")
        for key, value in metrics.items():
            if key != "methods":
                table.add_row(key, str(value))
        console.print(table)

    asyncio.run(run())


@cli.command('find-artifacts')
@click.argument('message')
def find_artifacts(message: str):
    """Resolve the artifacts a commit MESSAGE references, against Rally."""
    async def run():
        config = Settings()
        try:
            async with create_rally_client(config.rally) as client:
                artifacts = await ArtifactResolver(client).resolve(message)
        except Exception as e:
            console.print(f"[red]❌ Error: {str(e)}[/red]")
            sys.exit(1)
        display_artifacts(message, artifacts)

    asyncio.run(run())


@cli.command('detect-state')
@click.argument('message')
@click.argument('identifier')
def detect_state(message: str, identifier: str):
    """Show the schedule state MESSAGE sets for IDENTIFIER (offline)."""
    state = StateTransitioner().target_state(message, identifier)
    if state is None:
        console.print(f"[yellow]No state change for {identifier}[/yellow]")
    else:
        console.print(f"[green]{identifier} → {state.value}[/green]")


@cli.command('config')
def show_config():
    """Validate and print the current configuration (no secrets)."""
    config = Settings()
    validation = validate_configuration(config)
    console.print(Panel(json.dumps(export_config(config), indent=2), title="Configuration"))

    for warning in validation["warnings"]:
        console.print(f"[yellow]⚠ {warning}[/yellow]")
    if not validation["valid"]:
        for error in validation["errors"]:
            console.print(f"[red]❌ {error}[/red]")
        sys.exit(1)
    console.print("[green]✅ Configuration is valid[/green]")


if __name__ == "__main__":
    cli()

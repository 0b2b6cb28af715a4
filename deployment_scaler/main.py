"""
Deployment Scaler — CLI Entry Point

Usage:
    python -m deployment_scaler serve [--host H] [--port P] [--debug]
    python -m deployment_scaler check-config
    python -m deployment_scaler snapshot [--namespace NS] [--json]
"""

from __future__ import annotations

# Load .env before anything reads the environment
from pathlib import Path
from dotenv import load_dotenv

_env_file = Path.cwd() / ".env"
if _env_file.exists():
    load_dotenv(_env_file)

import json
import sys
from typing import Optional

import click

from .config.settings import ScalerSettings
from .errors import CacheSyncError
from .logging_config import setup_logging
from .store.base import StoreError
from .validation import ConfigurationError

setup_logging()


def _load_settings() -> ScalerSettings:
    try:
        settings = ScalerSettings.from_env()
        settings.require_valid()
    except ConfigurationError as e:
        click.secho(f"Configuration error: {e}", fg="red", err=True)
        sys.exit(1)
    return settings


@click.group()
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Deployment Scaler — read and set Deployment replica counts over HTTP."""
    ctx.ensure_object(dict)


@cli.command()
@click.option("--host", default=None, help="Bind address (default: SERVER_HOST)")
@click.option("--port", type=int, default=None, help="Port (default: SERVER_PORT)")
@click.option("--debug", is_flag=True, help="Debug logging")
@click.pass_context
def serve(ctx: click.Context, host: Optional[str], port: Optional[int], debug: bool) -> None:
    """Sync the deployment cache and serve the HTTP API."""
    from .context import build_context
    from .lifecycle import Lifecycle

    if debug:
        setup_logging(level="DEBUG")

    settings = _load_settings()
    if host:
        settings.host = host
    if port is not None:
        settings.port = port

    try:
        context = build_context(settings)
        Lifecycle(context).run()
    except (CacheSyncError, StoreError) as e:
        click.secho(f"Startup failed: {e}", fg="red", err=True)
        sys.exit(1)


@cli.command("check-config")
@click.pass_context
def check_config(ctx: click.Context) -> None:
    """Validate environment configuration without starting anything."""
    settings = ScalerSettings.from_env()
    problems = settings.validate()

    click.echo("\n📋 Scaler Configuration\n")
    for key, value in settings.to_dict().items():
        click.echo(f"  {key:<24} {value}")
    click.echo()

    if problems:
        for problem in problems:
            click.secho(f"  ✗ {problem}", fg="red")
        sys.exit(1)

    click.secho("  ✓ Configuration OK", fg="green")


@cli.command()
@click.option("--namespace", "-n", default=None, help="Only this namespace")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def snapshot(ctx: click.Context, namespace: Optional[str], as_json: bool) -> None:
    """Sync the cache once and print every deployment with its replica count."""
    from .context import build_context
    from .store import build_store

    settings = _load_settings()
    settings.resync_period_seconds = 0

    try:
        context = build_context(settings, store=build_store(settings.store_backend, settings.kubeconfig))
        context.synchronizer.start()
    except (CacheSyncError, StoreError) as e:
        click.secho(f"Sync failed: {e}", fg="red", err=True)
        sys.exit(1)

    try:
        keys = context.query.query_list(namespace)
        objects = [context.mirror.get(ns, name) for ns, name in keys]
        resource_version = context.synchronizer.resource_version
    finally:
        context.synchronizer.stop()

    if as_json:
        click.echo(json.dumps({
            "resourceVersion": resource_version,
            "deployments": [o.to_dict() for o in objects if o is not None],
        }, indent=2))
        return

    click.echo(f"Resource version {resource_version}, {len(objects)} deployment(s)")
    for obj in objects:
        if obj is not None:
            click.echo(f"  {obj.display_name:<48} {obj.replicas}")


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()

# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/bakerst/cli/app.py
from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Optional

import typer

from bakerst import __version__
from bakerst.cli.console import ConsoleFrontend, render_status_table
from bakerst.config.loader import load_settings
from bakerst.config.models import InstallerSettings
from bakerst.engine.controller import Installer
from bakerst.engine.headless import run_headless
from bakerst.k8s.client import ClusterClient, ClusterError
from bakerst.logging.log import init_logging
from bakerst.manifest.loader import ManifestError, fetch_manifest, load_manifest_from_file
from bakerst.manifest.models import ReleaseManifest, default_manifest
from bakerst.observers.dispatcher import EventBus
from bakerst.observers.logger import JsonFileObserver, LoggerObserver
from bakerst.utils.retry import RetryError

# ------------------------------------------------------------------------------
# CLI setup
# ------------------------------------------------------------------------------

app = typer.Typer(help="Baker Street Kubernetes installer")

LOG_DIR = Path.home() / ".bakerst" / "logs"


def _resolve_manifest(settings: InstallerSettings) -> ReleaseManifest:
    """
    Local file if given, else the GitHub release; falls back to the
    built-in development manifest when the fetch fails.
    """
    if settings.manifest:
        try:
            return load_manifest_from_file(settings.manifest)
        except ManifestError as e:
            typer.secho(f"ERROR: {e}", fg=typer.colors.RED)
            raise typer.Exit(code=1)

    try:
        return fetch_manifest(settings.release)
    except (ManifestError, RetryError) as e:
        if settings.release:
            typer.secho(f"ERROR: release {settings.release}: {e}", fg=typer.colors.RED)
            raise typer.Exit(code=1)
        typer.secho(f"WARNING: could not fetch release manifest ({e}); using local images", fg=typer.colors.YELLOW)
        return default_manifest()


def _cluster_factory(settings: InstallerSettings):
    return lambda: ClusterClient(kube_context=settings.kube_context)


def _connect(kube_context: Optional[str]) -> ClusterClient:
    try:
        return ClusterClient(kube_context=kube_context)
    except ClusterError as e:
        typer.secho(f"ERROR: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)


@app.command()
def install(
    manifest: Optional[str] = typer.Option(None, "--manifest", help="Use a local release-manifest.json"),
    release: Optional[str] = typer.Option(None, "--release", help="Release tag to install (default: latest)"),
    namespace: Optional[str] = typer.Option(None, "--namespace", help="Target namespace (default: bakerst)"),
    context: Optional[str] = typer.Option(None, "--context", help="Kubernetes context"),
    config: Optional[Path] = typer.Option(None, "--config", help="Installer settings YAML"),
    non_interactive: bool = typer.Option(False, "--non-interactive", help="Read secrets from env vars, no prompts"),
    skip_extensions: bool = typer.Option(False, "--skip-extensions", help="Do not deploy extension pods"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    try:
        settings = load_settings(
            config,
            manifest=manifest,
            release=release,
            namespace=namespace,
            kube_context=context,
            skip_extensions=skip_extensions or None,
            verbose=verbose or None,
        )
    except FileNotFoundError as e:
        typer.secho(f"ERROR: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    # the interactive frontend owns the terminal; keep log lines off it
    logger, run_id, log_path = init_logging(verbose=settings.verbose, console=non_interactive)
    bus = EventBus(observers=[
        LoggerObserver(logger),
        JsonFileObserver(LOG_DIR / f"{run_id}.jsonl", run_id),
    ])

    typer.secho(f"Baker Street Installer v{__version__}", bold=True)
    typer.echo(f"  Log file : {log_path}")

    release_manifest = _resolve_manifest(settings)
    typer.echo(f"  Release  : {release_manifest.version}")

    if non_interactive:
        code = asyncio.run(run_headless(
            release_manifest,
            settings,
            os.environ,
            cluster_factory=_cluster_factory(settings),
            bus=bus,
        ))
        raise typer.Exit(code=code)

    installer = Installer(
        release_manifest,
        settings,
        cluster_factory=_cluster_factory(settings),
        bus=bus,
    )
    try:
        final = asyncio.run(installer.run(ConsoleFrontend()))
    except KeyboardInterrupt:
        logger.warning("install interrupted in phase %s", installer.state.phase.label)
        typer.secho("\nInterrupted.", fg=typer.colors.YELLOW)
        raise typer.Exit(code=130)
    if final.health_failed:
        raise typer.Exit(code=1)


@app.command()
def status(
    namespace: str = typer.Option("bakerst", "--namespace"),
    context: Optional[str] = typer.Option(None, "--context"),
):
    """Show deployment status."""
    cluster = _connect(context)
    try:
        deployments = cluster.deployments_status(namespace)
    except Exception as e:
        typer.secho(f"ERROR: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    if not deployments:
        typer.echo(f"No deployments in namespace {namespace}")
        raise typer.Exit(code=1)

    render_status_table([
        {"NAME": d.name, "READY": f"{d.ready}/{d.desired}", "IMAGE": d.image}
        for d in deployments
    ])


@app.command()
def uninstall(
    namespace: str = typer.Option("bakerst", "--namespace"),
    context: Optional[str] = typer.Option(None, "--context"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """Delete the Baker Street namespace and everything in it."""
    if not yes:
        typer.confirm(f"Delete namespace {namespace} and all its resources?", abort=True)

    cluster = _connect(context)
    try:
        deleted = cluster.delete_namespace(namespace)
    except ClusterError as e:
        typer.secho(f"ERROR: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    if deleted:
        typer.echo(f"Namespace {namespace} deleted")
    else:
        typer.echo(f"Namespace {namespace} does not exist")


@app.command()
def version():
    """Print the installer version."""
    typer.echo(__version__)


if __name__ == "__main__":
    app()

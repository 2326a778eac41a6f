"""Typer CLI entrypoint."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import typer

from hearthgate.core.config import load_config
from hearthgate.core.errors import HearthgateError
from hearthgate.core.service import GatewayService

app = typer.Typer(help="Home-network device gateway with pluggable drivers")

ConfigOption = typer.Option(None, "--config", "-c", help="Path to a hearthgate config.yaml")


def _build_service(config_path: Path | None) -> GatewayService:
    config = load_config(config_path)
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return GatewayService(config)


def _load(service: GatewayService) -> None:
    asyncio.run(service.load_plugins())
    for warning in getattr(service, "load_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)


@app.command("interfaces")
def list_interfaces(config: Path | None = ConfigOption) -> None:
    """List loaded capability interfaces and their required methods."""
    try:
        service = _build_service(config)
        _load(service)
        interfaces = service.list_interfaces()
        if not interfaces:
            typer.echo("No interfaces loaded")
            raise typer.Exit(code=1)

        for interface in interfaces:
            methods = ", ".join(sorted(interface.required_methods))
            typer.echo(f"{interface.type}: {methods}")
    except HearthgateError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("drivers")
def list_drivers(config: Path | None = ConfigOption) -> None:
    """List validated drivers, then the files that were rejected."""
    try:
        service = _build_service(config)
        _load(service)
        drivers = service.list_drivers()
        if not drivers:
            typer.echo("No drivers loaded")
        for plugin in drivers:
            details = plugin.details
            strategy = "discover" if plugin.discoverable else f"keywords: {', '.join(plugin.keywords) or '-'}"
            typer.echo(f"{plugin.id}: {details.make} {details.model} v{details.version} [{details.type}] ({strategy})")
        for filename, message in service.load_errors:
            typer.echo(f"Rejected {filename}: {message}", err=True)
        if not drivers:
            raise typer.Exit(code=1)
    except HearthgateError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("scan")
def scan(config: Path | None = ConfigOption) -> None:
    """Scan the network once and pair the endpoints found with drivers."""
    try:
        service = _build_service(config)
        _load(service)
        report = asyncio.run(service.scan_once())
        if report is None:
            typer.echo("Error: network scan failed", err=True)
            raise typer.Exit(code=1)

        for mac, device in sorted(service.engine.devices.items()):
            typer.echo(f"{mac} {device.name} @ {device.address} -> {device.driver_id}")
        typer.echo(f"Paired {report.paired} new, {report.known} known, {report.misses} missed")
        if report.supported == 0:
            typer.echo("No supported devices were found")
    except HearthgateError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("run")
def run_gateway(config: Path | None = ConfigOption) -> None:
    """Load plugins and keep scanning and pairing until interrupted."""
    try:
        service = _build_service(config)
    except HearthgateError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None

    try:
        asyncio.run(service.run())
    except KeyboardInterrupt:
        pass
    except HearthgateError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None
    finally:
        service.shutdown()


def run() -> None:
    app()


if __name__ == "__main__":
    run()

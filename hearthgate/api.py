"""Stable public API for building tooling on top of hearthgate.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.
"""

from __future__ import annotations

from hearthgate.core.config import GatewayConfig, load_config
from hearthgate.core.driver import DeviceDriver
from hearthgate.core.errors import (
    ConfigError,
    DriverValidationError,
    HearthgateError,
    InterfaceValidationError,
    PairingError,
    PluginLoadError,
    PluginLoadTimeoutError,
    PluginValidationError,
    ScanError,
)
from hearthgate.core.model import (
    DeviceRecord,
    DiscoveredDevice,
    DriverDetails,
    DriverPlugin,
    InterfaceDefinition,
    NetworkEndpoint,
    PairingReport,
)
from hearthgate.core.service import GatewayService
from hearthgate.core.store import JsonFileStateStore, MemoryStateStore, StateStore
from hearthgate.scanners.base import ScanProvider

__all__ = [
    "HearthgateError",
    "ConfigError",
    "PluginLoadError",
    "PluginLoadTimeoutError",
    "PluginValidationError",
    "InterfaceValidationError",
    "DriverValidationError",
    "ScanError",
    "PairingError",
    "DeviceDriver",
    "DeviceRecord",
    "DiscoveredDevice",
    "DriverDetails",
    "DriverPlugin",
    "InterfaceDefinition",
    "NetworkEndpoint",
    "PairingReport",
    "GatewayConfig",
    "load_config",
    "StateStore",
    "MemoryStateStore",
    "JsonFileStateStore",
    "ScanProvider",
    "Gateway",
]


class Gateway:
    """Public handle on a running hearthgate instance.

    Wraps plugin loading, scanning and pairing behind a small API intended
    for embedding applications (dashboards, rule engines, scripts). Hooks
    added with ``on_ready`` run once the first scan cycle has settled.
    """

    def __init__(
        self,
        config: GatewayConfig | None = None,
        *,
        store: StateStore | None = None,
        scanner: ScanProvider | None = None,
    ) -> None:
        self._service = GatewayService(config, store=store, scanner=scanner)

    @property
    def load_warnings(self) -> tuple[str, ...]:
        return self._service.load_warnings

    @property
    def devices(self) -> dict[str, DeviceDriver]:
        return dict(self._service.engine.devices)

    def list_interfaces(self) -> list[InterfaceDefinition]:
        return self._service.list_interfaces()

    def list_drivers(self) -> list[DriverPlugin]:
        return self._service.list_drivers()

    def on_ready(self, hook) -> None:
        self._service.ready_hooks.append(hook)

    def unpair(self, mac: str) -> DeviceDriver | None:
        return self._service.engine.unpair(mac)

    async def load(self) -> None:
        await self._service.load_plugins()

    async def scan_once(self) -> PairingReport | None:
        return await self._service.scan_once()

    async def run(self) -> None:
        await self._service.run()

    def shutdown(self) -> None:
        self._service.shutdown()

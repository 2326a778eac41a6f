"""Service layer used by the CLI and embedding applications."""

from __future__ import annotations

import logging
import platform
import time
from collections.abc import Callable

from hearthgate.core.config import GatewayConfig, load_config
from hearthgate.core.discovery import DiscoveryCoordinator
from hearthgate.core.drivers import DriverRegistry
from hearthgate.core.errors import PluginLoadTimeoutError
from hearthgate.core.interfaces import InterfaceRegistry
from hearthgate.core.model import DriverPlugin, InterfaceDefinition, PairingReport
from hearthgate.core.pairing import PairingEngine
from hearthgate.core.store import JsonFileStateStore, MemoryStateStore, StateStore
from hearthgate.scanners.base import ScanProvider
from hearthgate.scanners.neighbour import NeighbourScanner

LOGGER = logging.getLogger(__name__)

ReadyHook = Callable[[PairingReport | None], None]


class GatewayService:
    def __init__(
        self,
        config: GatewayConfig | None = None,
        *,
        store: StateStore | None = None,
        scanner: ScanProvider | None = None,
    ) -> None:
        self.config = config or load_config()
        if store is None:
            store = JsonFileStateStore(self.config.state_file) if self.config.state_file else MemoryStateStore()
        self.store = store
        self.scanner = scanner or NeighbourScanner()
        self.interfaces = InterfaceRegistry()
        self.drivers = DriverRegistry()
        self.engine = PairingEngine(
            self.store,
            device_discover_timeout=self.config.device_discover_timeout,
            settle_limit=self.config.settle_limit,
            poll_interval=self.config.poll_interval,
        )
        self.coordinator = DiscoveryCoordinator(
            self.scanner,
            self.engine,
            self.drivers.all,
            self.store,
            scan_interval=self.config.scan_interval,
            on_first_cycle=self._first_cycle_settled,
        )
        self.ready_hooks: list[ReadyHook] = []
        self.load_errors: list[tuple[str, str]] = []
        self._loaded = False

    @property
    def load_warnings(self) -> tuple[str, ...]:
        return tuple(self.interfaces.warnings) + tuple(self.drivers.warnings)

    def list_interfaces(self) -> list[InterfaceDefinition]:
        return self.interfaces.all()

    def list_drivers(self) -> list[DriverPlugin]:
        return self.drivers.all()

    async def load_plugins(self) -> None:
        """Load interfaces, then drivers validated against them.

        A batch timeout is fatal: it is recorded in the status and re-raised.
        """
        if self._loaded:
            return
        LOGGER.info("Loading device interfaces from %s", self.config.interface_directory)
        try:
            interface_loader = await self.interfaces.load(
                self.config.interface_directory,
                timeout=self.config.plugin_load_timeout,
            )
            LOGGER.info("Loading device drivers from %s", self.config.driver_directory)
            driver_loader = await self.drivers.load(
                self.config.driver_directory,
                self.interfaces,
                timeout=self.config.plugin_load_timeout,
            )
        except PluginLoadTimeoutError as exc:
            LOGGER.critical("%s. hearthgate cannot continue.", exc)
            self.store.update_status(status=f"Error: {exc}", code=1, reachable=False)
            raise
        self.load_errors = [
            (path.name, message) for path, message in interface_loader.errors + driver_loader.errors
        ]
        self._loaded = True

    async def start(self) -> None:
        LOGGER.warning("hearthgate booting on '%s'...", platform.system())
        self.store.update_status(last_startup=time.time(), status="startup pending", code=0)
        await self.load_plugins()
        self.coordinator.start()

    async def run(self) -> None:
        """Start the gateway and keep scanning until cancelled.

        Any unexpected error is published as a fatal status before it
        propagates. Load timeouts have already been published by then.
        """
        try:
            await self.start()
            await self.coordinator.start()
        except PluginLoadTimeoutError:
            raise
        except Exception as exc:
            LOGGER.critical("hearthgate stopped on an unexpected error: %s", exc, exc_info=True)
            self.store.update_status(status=f"Error: {exc}", code=1, reachable=False)
            raise
        finally:
            await self.coordinator.stop()

    async def scan_once(self) -> PairingReport | None:
        await self.load_plugins()
        return await self.coordinator.run_cycle()

    async def wait_ready(self) -> None:
        await self.coordinator.first_cycle.wait()

    def shutdown(self) -> None:
        LOGGER.warning("hearthgate shutting down...")
        self.store.clear_devices()
        self.store.update_status(reachable=False, last_shutdown_status=0, last_shutdown=time.time())

    def _first_cycle_settled(self, report: PairingReport | None) -> None:
        for hook in self.ready_hooks:
            hook(report)

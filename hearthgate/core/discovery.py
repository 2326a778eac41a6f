"""Periodic network scanning feeding the pairing engine."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterable

from hearthgate.core.errors import ScanError
from hearthgate.core.model import DriverPlugin, PairingReport
from hearthgate.core.pairing import PairingEngine
from hearthgate.core.store import StateStore
from hearthgate.scanners.base import ScanProvider

LOGGER = logging.getLogger(__name__)


class DiscoveryCoordinator:
    def __init__(
        self,
        scanner: ScanProvider,
        engine: PairingEngine,
        drivers: Callable[[], Iterable[DriverPlugin]],
        store: StateStore,
        *,
        scan_interval: float,
        on_first_cycle: Callable[[PairingReport | None], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.scanner = scanner
        self.engine = engine
        self.drivers = drivers
        self.store = store
        self.scan_interval = scan_interval
        self.on_first_cycle = on_first_cycle
        self.clock = clock
        self.first_cycle = asyncio.Event()
        self.cycles = 0
        self.last_report: PairingReport | None = None
        self._task: asyncio.Task[None] | None = None

    async def run_cycle(self) -> PairingReport | None:
        """Scan once and pair the result. Returns ``None`` if the scan failed."""
        self.store.update_status(status="Scanning Network for Connected Devices", code=0, reachable=True)
        LOGGER.info("Scanning network for connected devices. Please wait...")
        try:
            endpoints = await self.scanner.scan()
        except ScanError as exc:
            LOGGER.error("Network scan failed: %s", exc)
            self.store.update_status(status=f"Network scan failed: {exc}", code=0, reachable=True)
            report = None
        else:
            listing = "\n".join(f"    - {endpoint.name}" for endpoint in endpoints.values())
            LOGGER.info("Network scan complete, %d devices found:\n%s", len(endpoints), listing)
            report = await self.engine.pair(endpoints, list(self.drivers()), scanner=self.scanner)
            self.last_report = report

        self.cycles += 1
        if not self.first_cycle.is_set():
            self.first_cycle.set()
            if self.on_first_cycle is not None:
                self.on_first_cycle(report)
        return report

    async def run_forever(self) -> None:
        while True:
            started = self.clock()
            await self.run_cycle()
            remaining = self.scan_interval - (self.clock() - started)
            await asyncio.sleep(max(remaining, 0))

    def start(self) -> asyncio.Task[None]:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run_forever(), name="hearthgate-discovery")
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        await asyncio.wait([task])

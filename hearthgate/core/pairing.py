"""Pairing of scanned endpoints with loaded drivers."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from hearthgate.core.device_match import keyword_candidates, normalize_device_name, resolve_mac
from hearthgate.core.driver import DeviceDriver, overrides_discover
from hearthgate.core.errors import PairingError
from hearthgate.core.model import DeviceRecord, DiscoveredDevice, DriverPlugin, NetworkEndpoint, PairingReport
from hearthgate.core.store import StateStore
from hearthgate.scanners.base import ScanProvider

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Candidate:
    plugin: DriverPlugin
    mac: str
    name: str
    address: str
    port: int | None
    via: str


@dataclass
class _Cycle:
    paired: int = 0
    known: int = 0
    errors: list[PairingError] = field(default_factory=list)
    closed: bool = False


class PairingEngine:
    """Binds endpoints to drivers and owns the resulting device instances.

    Keyword matches and active-discovery reports are both turned into
    candidates and pushed onto one queue. A single resolver task consumes
    that queue, so "is this MAC already paired, otherwise instantiate" is
    never interleaved between two candidates for the same MAC.
    """

    def __init__(
        self,
        store: StateStore,
        *,
        device_discover_timeout: float,
        settle_limit: float,
        poll_interval: float = 0.06,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.device_discover_timeout = device_discover_timeout
        self.settle_limit = settle_limit
        self.poll_interval = poll_interval
        self.clock = clock
        self._devices: dict[str, DeviceDriver] = {}
        self._last_report: float | None = None

    @property
    def devices(self) -> Mapping[str, DeviceDriver]:
        return MappingProxyType(self._devices)

    def get(self, mac: str) -> DeviceDriver | None:
        return self._devices.get(mac)

    def unpair(self, mac: str) -> DeviceDriver | None:
        """Forget the instance bound to ``mac`` so the next cycle may pair it again."""
        instance = self._devices.pop(mac, None)
        if instance is not None:
            LOGGER.info("Unpaired %s", instance)
            self.store.upsert_device(
                DeviceRecord(
                    name=instance.name,
                    address=instance.address,
                    mac=mac,
                    port=instance.port or 0,
                    supported=False,
                )
            )
        return instance

    def reconcile(self, endpoints: Mapping[str, NetworkEndpoint]) -> None:
        """Bring the remote listing in line with this scan.

        Unpaired endpoints get an unsupported placeholder, rows for paired
        devices are kept, and rows for MACs that are neither scanned nor
        paired are removed.
        """
        scanned = {endpoint.mac for endpoint in endpoints.values()}
        for mac in sorted(self.store.device_macs() - scanned - set(self._devices)):
            self.store.remove_device(mac)
        for endpoint in endpoints.values():
            if endpoint.mac in self._devices:
                continue
            self.store.upsert_device(
                DeviceRecord(
                    name=endpoint.name,
                    address=endpoint.address,
                    mac=endpoint.mac,
                    port=endpoint.port or 0,
                    supported=False,
                )
            )

    async def pair(
        self,
        endpoints: Mapping[str, NetworkEndpoint],
        drivers: Iterable[DriverPlugin],
        *,
        scanner: ScanProvider | None = None,
    ) -> PairingReport:
        started = self.clock()
        self._last_report = None
        self.store.update_status(status="Pairing Devices with Drivers")
        self.reconcile(endpoints)

        cycle = _Cycle()
        queue: asyncio.Queue[_Candidate] = asyncio.Queue()
        resolver = asyncio.create_task(self._resolve(queue, cycle))
        discoveries: list[asyncio.Task[None]] = []

        for plugin in drivers:
            if plugin.discoverable and overrides_discover(plugin.driver_class):
                discoveries.append(asyncio.create_task(self._discover(plugin, endpoints, queue, cycle)))
                continue
            for endpoint, keyword in keyword_candidates(endpoints, plugin):
                LOGGER.debug("Endpoint '%s' matched keyword '%s' of driver %s", endpoint.name, keyword, plugin.id)
                queue.put_nowait(
                    _Candidate(
                        plugin=plugin,
                        mac=endpoint.mac,
                        name=endpoint.name,
                        address=endpoint.address,
                        port=endpoint.port,
                        via="keyword",
                    )
                )

        try:
            await self._settle(started, scanner)
        finally:
            cycle.closed = True
            for task in discoveries:
                task.cancel()
            await asyncio.gather(*discoveries, return_exceptions=True)
            await queue.join()
            resolver.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await resolver

        report = PairingReport(
            paired=cycle.paired,
            known=cycle.known,
            misses=len(cycle.errors),
            settled_after=self.clock() - started,
            errors=tuple(str(error) for error in cycle.errors),
        )
        if report.supported <= 0:
            LOGGER.warning("No supported devices were found!")
            self.store.update_status(status="Ready", code=0, last_startup_status=0, warning="No supported devices were found")
        else:
            self.store.update_status(status="Ready", code=0, last_startup_status=0, warning=None)
        return report

    async def _settle(self, started: float, scanner: ScanProvider | None) -> None:
        while True:
            now = self.clock()
            reference = started
            activity = getattr(scanner, "last_activity", None) if scanner is not None else None
            if activity is not None:
                reference = max(reference, activity)
            if self._last_report is not None:
                reference = max(reference, self._last_report)

            if now - reference > self.device_discover_timeout:
                return
            if now - started > self.settle_limit:
                LOGGER.warning("Discovery still active after %ss, settling anyway", self.settle_limit)
                return
            await asyncio.sleep(self.poll_interval)

    async def _discover(
        self,
        plugin: DriverPlugin,
        endpoints: Mapping[str, NetworkEndpoint],
        queue: asyncio.Queue[_Candidate],
        cycle: _Cycle,
    ) -> None:
        identity = plugin.details.identity()

        def report(found: DiscoveredDevice) -> None:
            if cycle.closed:
                LOGGER.debug("Ignoring late discovery from %s for %s", identity, found.address)
                return
            self._last_report = self.clock()
            mac = resolve_mac(found.address, endpoints)
            if mac is None:
                error = PairingError(
                    f"Unable to pair driver ({identity}) discovered device with a MAC address "
                    f"for device @ {found.address}"
                )
                LOGGER.error("%s", error)
                cycle.errors.append(error)
                return
            queue.put_nowait(
                _Candidate(
                    plugin=plugin,
                    mac=mac,
                    name=normalize_device_name(found.name),
                    address=found.address,
                    port=found.port,
                    via="discover",
                )
            )

        try:
            await plugin.driver_class.discover(report)
        except asyncio.CancelledError:
            raise
        except Exception:
            LOGGER.exception("Discovery failed for driver %s (%s)", plugin.id, identity)

    async def _resolve(self, queue: asyncio.Queue[_Candidate], cycle: _Cycle) -> None:
        while True:
            candidate = await queue.get()
            try:
                self._bind(candidate, cycle)
            except Exception:
                LOGGER.exception("Pairing %s with driver %s failed", candidate.mac, candidate.plugin.id)
            finally:
                queue.task_done()

    def _bind(self, candidate: _Candidate, cycle: _Cycle) -> None:
        existing = self._devices.get(candidate.mac)
        if existing is not None:
            if existing.driver_id == candidate.plugin.id:
                cycle.known += 1
            LOGGER.debug("%s already paired, skipping %s match by %s", candidate.mac, candidate.via, candidate.plugin.id)
            return

        plugin = candidate.plugin
        try:
            instance = plugin.driver_class(candidate.name, candidate.address, candidate.mac, candidate.port)
        except Exception:
            LOGGER.exception("Driver %s could not be instantiated for %s", plugin.id, candidate.mac)
            return
        instance.driver_id = plugin.id

        self.store.upsert_device(
            DeviceRecord(
                name=candidate.name,
                address=candidate.address,
                mac=candidate.mac,
                port=candidate.port or 0,
                supported=True,
                driver=plugin.details.as_record(),
            )
        )
        self._devices[candidate.mac] = instance
        LOGGER.info("Found supported %s", instance)
        try:
            instance.on_instantiated()
        except Exception:
            LOGGER.exception("Device %s failed its instantiation hook", instance)
        cycle.paired += 1

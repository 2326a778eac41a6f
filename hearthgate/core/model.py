"""Core data models used across loaders, pairing, and CLI."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from hearthgate.core.driver import DeviceDriver


@dataclass(frozen=True)
class InterfaceDefinition:
    type: str
    required_methods: frozenset[str]
    description: str = ""
    source: Path | None = None


@dataclass(frozen=True)
class DriverDetails:
    make: str
    model: str
    version: str
    type: str

    def identity(self) -> str:
        return f"{self.make}:{self.model}:{self.version}"

    def as_record(self) -> dict[str, str]:
        return {
            "make": self.make,
            "type": self.type,
            "model": self.model,
            "version": self.version,
        }


@dataclass(frozen=True)
class DriverPlugin:
    id: str
    details: DriverDetails
    keywords: tuple[str, ...]
    discoverable: bool
    driver_class: type[DeviceDriver]
    implemented_methods: frozenset[str]
    source: Path | None = None


@dataclass(frozen=True)
class NetworkEndpoint:
    name: str
    address: str
    mac: str
    port: int | None = None


@dataclass(frozen=True)
class DiscoveredDevice:
    """A device reported by a driver's own discovery procedure."""

    name: str
    address: str
    port: int | None = None


@dataclass(frozen=True)
class DeviceRecord:
    """Row of the remote device listing, keyed by MAC."""

    name: str
    address: str
    mac: str
    port: int
    supported: bool
    driver: str | dict[str, str] = "none"

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "address": self.address,
            "mac": self.mac,
            "port": self.port,
            "supported": self.supported,
            "driver": self.driver,
        }


@dataclass(frozen=True)
class PairingReport:
    """Outcome of one pairing cycle."""

    paired: int
    known: int
    misses: int
    settled_after: float
    errors: tuple[str, ...] = ()

    @property
    def supported(self) -> int:
        return self.paired + self.known


class BatchState(Enum):
    LOADING = "loading"
    COMPLETE = "complete"
    TIMED_OUT = "timed_out"


@dataclass
class BatchLoad:
    """Completion bookkeeping for one plugin directory load."""

    expected: int
    completed: int = 0
    clock: Callable[[], float] = time.monotonic
    started: float = field(init=False)
    timed_out: bool = False

    def __post_init__(self) -> None:
        self.started = self.clock()

    @property
    def elapsed(self) -> float:
        return self.clock() - self.started

    def mark_done(self) -> None:
        self.completed += 1

    def is_complete(self) -> bool:
        return self.completed >= self.expected

    def is_timed_out(self, threshold: float) -> bool:
        if self.is_complete():
            return False
        return self.elapsed > threshold

    @property
    def state(self) -> BatchState:
        if self.timed_out:
            return BatchState.TIMED_OUT
        if self.is_complete():
            return BatchState.COMPLETE
        return BatchState.LOADING

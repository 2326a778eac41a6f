"""Base class device drivers subclass."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, ClassVar

from hearthgate.core.model import DiscoveredDevice, DriverDetails

ReportFn = Callable[[DiscoveredDevice], None]

# Methods every driver must define regardless of the interface it implements.
BEHAVIOUR_METHODS = ("on_state_update", "set_widgets")


class DeviceDriver:
    """A driver for one make/model/version of network device.

    Subclasses declare their identity in ``details`` and either a list of
    ``keywords`` (regexes matched against endpoint names) or
    ``discoverable = True`` together with an async ``discover``.

    An instance of the driver is the live device bound to one endpoint.
    """

    details: ClassVar[DriverDetails | None] = None
    keywords: ClassVar[tuple[str, ...] | None] = None
    discoverable: ClassVar[bool] = False

    def __init__(self, name: str, address: str, mac: str, port: int | None = None) -> None:
        self.name = name
        self.address = address
        self.mac = mac
        self.port = port
        self.driver_id: str | None = None

    @classmethod
    async def discover(cls, report: ReportFn) -> None:
        """Find devices this driver supports and pass each one to ``report``."""
        raise NotImplementedError

    def on_instantiated(self) -> None:
        """Called once after the gateway binds this instance to an endpoint."""

    def describe(self) -> dict[str, Any]:
        details = self.details
        return {
            "name": self.name,
            "address": self.address,
            "mac": self.mac,
            "port": self.port,
            "driver_id": self.driver_id,
            "driver": details.as_record() if details else None,
        }

    def __str__(self) -> str:
        details = self.details
        label = f"{details.make} {details.model}" if details else type(self).__name__
        return f"{label} '{self.name}' @ {self.address} ({self.mac})"


def overrides_discover(driver_class: type[DeviceDriver]) -> bool:
    return getattr(driver_class.discover, "__func__", None) is not DeviceDriver.discover.__func__


def implemented_methods(driver_class: type) -> frozenset[str]:
    """Public callables a driver class provides, including inherited ones."""
    names = set()
    for name in dir(driver_class):
        if name.startswith("_"):
            continue
        if callable(getattr(driver_class, name, None)):
            names.add(name)
    return frozenset(names)

"""Remote state store boundary and the stores shipped with hearthgate."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Protocol

from hearthgate.core.model import DeviceRecord

LOGGER = logging.getLogger(__name__)


class StateStore(Protocol):
    def upsert_device(self, record: DeviceRecord) -> None:
        """Insert or replace the listing row for ``record.mac``."""

    def remove_device(self, mac: str) -> None:
        """Drop the listing row for ``mac`` if present."""

    def device_macs(self) -> set[str]:
        """MACs currently present in the listing."""

    def clear_devices(self) -> None:
        """Drop every listing row."""

    def update_status(self, **fields: Any) -> None:
        """Merge ``fields`` into the gateway status record."""


class MemoryStateStore:
    def __init__(self) -> None:
        self.devices: dict[str, dict[str, Any]] = {}
        self.status: dict[str, Any] = {}
        self.status_history: list[dict[str, Any]] = []

    def upsert_device(self, record: DeviceRecord) -> None:
        self.devices[record.mac] = record.as_dict()

    def remove_device(self, mac: str) -> None:
        self.devices.pop(mac, None)

    def device_macs(self) -> set[str]:
        return set(self.devices)

    def clear_devices(self) -> None:
        self.devices.clear()

    def update_status(self, **fields: Any) -> None:
        self.status.update(fields)
        self.status_history.append(dict(fields))


class JsonFileStateStore(MemoryStateStore):
    """Keeps the listing and status in one JSON document on disk.

    Every change is written through so external observers see it at once.
    """

    def __init__(self, path: Path) -> None:
        super().__init__()
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.load()

    def load(self) -> None:
        if not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            LOGGER.warning("Ignoring unreadable state file %s: %s", self.path, exc)
            return
        self.devices = dict(data.get("devices", {}))
        self.status = dict(data.get("status", {}))

    def save(self) -> None:
        data = {"devices": self.devices, "status": self.status}
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
        os.replace(tmp, self.path)

    def upsert_device(self, record: DeviceRecord) -> None:
        super().upsert_device(record)
        self.save()

    def remove_device(self, mac: str) -> None:
        super().remove_device(mac)
        self.save()

    def clear_devices(self) -> None:
        super().clear_devices()
        self.save()

    def update_status(self, **fields: Any) -> None:
        super().update_status(**fields)
        self.save()

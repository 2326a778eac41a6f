"""Yeelight Wi-Fi bulb driver (LAN control on TCP 55443)."""

from __future__ import annotations

import itertools
import json
import socket
from typing import Any

from hearthgate.core.driver import DeviceDriver
from hearthgate.core.model import DriverDetails

_PORT = 55443


class YeelightBulb(DeviceDriver):
    details = DriverDetails(make="Yeelight", model="Color Bulb", version="1", type="light")
    keywords = ("yeelink", "yeelight")

    timeout_s = 3.0

    def __init__(self, name: str, address: str, mac: str, port: int | None = None) -> None:
        super().__init__(name, address, mac, port)
        self._ids = itertools.count(1)

    def _call(self, method: str, *params: Any) -> list[Any]:
        request = {"id": next(self._ids), "method": method, "params": list(params)}
        with socket.create_connection((self.address, self.port or _PORT), timeout=self.timeout_s) as conn:
            conn.sendall(json.dumps(request).encode("utf-8") + b"\r\n")
            reply = conn.makefile("r", encoding="utf-8").readline()
        return json.loads(reply).get("result", []) if reply else []

    def turn_on(self) -> None:
        self._call("set_power", "on", "smooth", 300)

    def turn_off(self) -> None:
        self._call("set_power", "off", "smooth", 300)

    def set_brightness(self, level: int) -> None:
        self._call("set_bright", max(1, min(100, int(level))), "smooth", 300)

    def get_state(self) -> dict[str, Any]:
        power, bright = (self._call("get_prop", "power", "bright") + [None, None])[:2]
        return {"power": power, "brightness": int(bright) if bright else None}

    def on_state_update(self, data: dict[str, Any]) -> None:
        if "brightness" in data:
            self.set_brightness(data["brightness"])
        if data.get("power") == "on":
            self.turn_on()
        elif data.get("power") == "off":
            self.turn_off()

    def set_widgets(self) -> list[dict[str, Any]]:
        return [
            {"widget": "toggle", "field": "power", "label": "Power"},
            {"widget": "slider", "field": "brightness", "label": "Brightness", "min": 1, "max": 100},
        ]


driver = YeelightBulb

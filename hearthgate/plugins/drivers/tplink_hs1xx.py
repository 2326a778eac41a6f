"""TP-Link HS100/HS110 smart plug driver (local protocol on TCP 9999)."""

from __future__ import annotations

import json
import socket
import struct
from typing import Any

from hearthgate.core.driver import DeviceDriver
from hearthgate.core.model import DriverDetails

_PORT = 9999
_KEY = 171


def _encrypt(payload: str) -> bytes:
    key = _KEY
    out = bytearray()
    for byte in payload.encode("utf-8"):
        key = key ^ byte
        out.append(key)
    return struct.pack(">I", len(out)) + bytes(out)


def _decrypt(data: bytes) -> str:
    key = _KEY
    out = bytearray()
    for byte in data:
        out.append(key ^ byte)
        key = byte
    return out.decode("utf-8")


class TPLinkSmartPlug(DeviceDriver):
    details = DriverDetails(make="TP-Link", model="HS1xx", version="1.0", type="switch")
    keywords = (r"\bhs1[01]0\b", r"kasa", r"smart\s*plug")

    timeout_s = 3.0

    def _send(self, command: dict[str, Any]) -> dict[str, Any]:
        with socket.create_connection((self.address, self.port or _PORT), timeout=self.timeout_s) as conn:
            conn.sendall(_encrypt(json.dumps(command)))
            header = conn.recv(4)
            length = struct.unpack(">I", header)[0] if len(header) == 4 else 0
            body = b""
            while len(body) < length:
                chunk = conn.recv(length - len(body))
                if not chunk:
                    break
                body += chunk
        return json.loads(_decrypt(body)) if body else {}

    def turn_on(self) -> None:
        self._send({"system": {"set_relay_state": {"state": 1}}})

    def turn_off(self) -> None:
        self._send({"system": {"set_relay_state": {"state": 0}}})

    def get_state(self) -> dict[str, Any]:
        info = self._send({"system": {"get_sysinfo": {}}})
        sysinfo = info.get("system", {}).get("get_sysinfo", {})
        return {"power": "on" if sysinfo.get("relay_state") == 1 else "off"}

    def on_state_update(self, data: dict[str, Any]) -> None:
        power = data.get("power")
        if power == "on":
            self.turn_on()
        elif power == "off":
            self.turn_off()

    def set_widgets(self) -> list[dict[str, Any]]:
        return [{"widget": "toggle", "field": "power", "label": "Power"}]


driver = TPLinkSmartPlug

"""Scan provider reading the operating system's neighbour (ARP/NDP) table."""

from __future__ import annotations

import asyncio
import logging
import re
import socket
import subprocess
import time
from collections.abc import Callable, Sequence

from hearthgate.core.device_match import normalize_mac
from hearthgate.core.errors import ScanError
from hearthgate.core.model import NetworkEndpoint

LOGGER = logging.getLogger(__name__)

_IP_NEIGH_RE = re.compile(
    r"^(?P<address>\S+)\s+dev\s+\S+.*?\blladdr\s+(?P<mac>[0-9a-f]{2}(?::[0-9a-f]{2}){5})",
    re.IGNORECASE,
)
_ARP_RE = re.compile(
    r"\((?P<address>[0-9a-f.:]+)\)\s+at\s+(?P<mac>[0-9a-f]{1,2}(?::[0-9a-f]{1,2}){5})",
    re.IGNORECASE,
)
_COMMANDS: tuple[tuple[list[str], re.Pattern[str]], ...] = (
    (["ip", "neigh", "show"], _IP_NEIGH_RE),
    (["arp", "-an"], _ARP_RE),
)


def _reverse_lookup(address: str) -> str:
    try:
        return socket.gethostbyaddr(address)[0]
    except OSError:
        return address


def _pad_mac(mac: str) -> str:
    # arp on BSD prints octets without a leading zero
    return ":".join(part.zfill(2) for part in mac.split(":"))


class NeighbourScanner:
    """Lists hosts the kernel currently knows on the local link."""

    def __init__(
        self,
        *,
        resolve_name: Callable[[str], str] = _reverse_lookup,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.resolve_name = resolve_name
        self.clock = clock
        self.last_activity: float | None = None

    async def scan(self) -> dict[str, NetworkEndpoint]:
        return await asyncio.to_thread(self.scan_sync)

    def scan_sync(self) -> dict[str, NetworkEndpoint]:
        command_errors: list[str] = []

        for cmd, pattern in _COMMANDS:
            result = _run_scan_command(cmd)
            if result is None:
                continue
            if result.returncode != 0:
                stderr = (result.stderr or "").strip()
                if stderr:
                    command_errors.append(f"{' '.join(cmd)} -> {stderr}")
                continue

            endpoints: dict[str, NetworkEndpoint] = {}
            for line in result.stdout.splitlines():
                match = pattern.search(line.strip())
                if not match:
                    continue
                mac = normalize_mac(_pad_mac(match.group("mac")))
                if mac in endpoints or mac == "00:00:00:00:00:00":
                    continue
                address = match.group("address")
                endpoints[mac] = NetworkEndpoint(name=self.resolve_name(address), address=address, mac=mac)
                self.last_activity = self.clock()

            self.last_activity = self.clock()
            return endpoints

        if command_errors:
            joined = " | ".join(command_errors)
            raise ScanError(f"Network scan failed. Details: {joined}")
        raise ScanError("Network scan failed: neither 'ip' nor 'arp' is available")


def _run_scan_command(cmd: Sequence[str]) -> subprocess.CompletedProcess[str] | None:
    try:
        return subprocess.run(
            cmd,
            check=False,
            capture_output=True,
            text=True,
        )
    except FileNotFoundError:
        return None

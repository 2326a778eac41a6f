"""Scan provider interface."""

from __future__ import annotations

from typing import Protocol

from hearthgate.core.model import NetworkEndpoint


class ScanProvider(Protocol):
    last_activity: float | None

    async def scan(self) -> dict[str, NetworkEndpoint]:
        """Scan the network and return endpoints keyed by an endpoint key."""

"""Endpoint-to-driver matching logic."""

from __future__ import annotations

import re
from collections.abc import Mapping

from hearthgate.core.model import DriverPlugin, NetworkEndpoint


def first_keyword_match(endpoint: NetworkEndpoint, plugin: DriverPlugin) -> str | None:
    """Return the first keyword of ``plugin`` found in the endpoint name.

    Keywords are tested in declaration order and testing stops at the first hit.
    """
    for keyword in plugin.keywords:
        if re.search(keyword, endpoint.name, re.IGNORECASE):
            return keyword
    return None


def keyword_candidates(
    endpoints: Mapping[str, NetworkEndpoint],
    plugin: DriverPlugin,
) -> list[tuple[NetworkEndpoint, str]]:
    matches: list[tuple[NetworkEndpoint, str]] = []
    for endpoint in endpoints.values():
        keyword = first_keyword_match(endpoint, plugin)
        if keyword is not None:
            matches.append((endpoint, keyword))
    return matches


def resolve_mac(address: str, endpoints: Mapping[str, NetworkEndpoint]) -> str | None:
    """Find the MAC of the endpoint at ``address``; the last one wins on duplicates."""
    found: str | None = None
    for endpoint in endpoints.values():
        if endpoint.address == address:
            found = endpoint.mac
    return found


def normalize_mac(mac: str) -> str:
    return mac.strip().upper().replace("-", ":")


def normalize_device_name(name: str) -> str:
    return re.sub(r"\s+", "_", name.strip().lower())

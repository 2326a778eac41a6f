import re

import pytest

from hearthgate.core import device_match
from hearthgate.core.device_match import (
    first_keyword_match,
    keyword_candidates,
    normalize_device_name,
    normalize_mac,
    resolve_mac,
)
from hearthgate.core.driver import DeviceDriver
from hearthgate.core.model import DriverDetails, DriverPlugin, NetworkEndpoint


def _plugin(keywords: tuple[str, ...]) -> DriverPlugin:
    return DriverPlugin(
        id="0x0",
        details=DriverDetails(make="Acme", model="Lamp", version="1", type="light"),
        keywords=keywords,
        discoverable=False,
        driver_class=DeviceDriver,
        implemented_methods=frozenset(),
    )


def _endpoint(name: str, address: str = "192.168.1.20", mac: str = "AA:BB:CC:00:00:01") -> NetworkEndpoint:
    return NetworkEndpoint(name=name, address=address, mac=mac)


def test_keyword_match_stops_at_first_hit(monkeypatch: pytest.MonkeyPatch) -> None:
    tested: list[str] = []
    real_search = re.search

    def spy(pattern, string, flags=0):
        tested.append(pattern)
        return real_search(pattern, string, flags)

    monkeypatch.setattr(device_match.re, "search", spy)

    keyword = first_keyword_match(_endpoint("Living Room Lamp"), _plugin(("lamp", "bulb")))

    assert keyword == "lamp"
    assert tested == ["lamp"]


def test_keyword_match_is_case_insensitive_regex() -> None:
    plugin = _plugin((r"^yee(light|link)",))
    assert first_keyword_match(_endpoint("YEELINK-bulb"), plugin) is not None
    assert first_keyword_match(_endpoint("my yeelight"), plugin) is None


def test_keyword_candidates_cover_every_endpoint() -> None:
    endpoints = {
        "a": _endpoint("Kitchen Bulb", mac="AA:BB:CC:00:00:01"),
        "b": _endpoint("Printer", mac="AA:BB:CC:00:00:02"),
        "c": _endpoint("Hall lamp", mac="AA:BB:CC:00:00:03"),
    }
    matches = keyword_candidates(endpoints, _plugin(("lamp", "bulb")))
    assert [(e.mac, k) for e, k in matches] == [
        ("AA:BB:CC:00:00:01", "bulb"),
        ("AA:BB:CC:00:00:03", "lamp"),
    ]


def test_driver_without_keywords_never_matches() -> None:
    assert first_keyword_match(_endpoint("Living Room Lamp"), _plugin(())) is None


def test_resolve_mac_by_address() -> None:
    endpoints = {
        "a": _endpoint("one", address="10.0.0.2", mac="AA:BB:CC:00:00:01"),
        "b": _endpoint("two", address="10.0.0.3", mac="AA:BB:CC:00:00:02"),
    }
    assert resolve_mac("10.0.0.3", endpoints) == "AA:BB:CC:00:00:02"
    assert resolve_mac("10.0.0.9", endpoints) is None


def test_normalizers() -> None:
    assert normalize_mac(" aa-bb-cc-dd-ee-ff ") == "AA:BB:CC:DD:EE:FF"
    assert normalize_device_name("  Living  Room\tLamp ") == "living_room_lamp"

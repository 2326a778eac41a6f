from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from hearthgate.core.config import BUILTIN_DRIVERS, BUILTIN_INTERFACES
from hearthgate.core.driver import DeviceDriver
from hearthgate.core.drivers import DriverRegistry, validate_driver
from hearthgate.core.errors import DriverValidationError
from hearthgate.core.interfaces import InterfaceRegistry
from hearthgate.core.model import DriverDetails, InterfaceDefinition

SWITCH_METHODS = ("turn_on", "turn_off", "get_state")


def _interfaces() -> InterfaceRegistry:
    registry = InterfaceRegistry()
    registry.register(InterfaceDefinition(type="switch", required_methods=frozenset(SWITCH_METHODS)))
    return registry


def _driver_source(
    *,
    make: str = "Acme",
    model: str = "Plug",
    version: str = "1",
    type_: str = "switch",
    methods: tuple[str, ...] = SWITCH_METHODS,
    behaviour: tuple[str, ...] = ("on_state_update", "set_widgets"),
    keywords: str = '("acme",)',
    extra: str = "",
) -> str:
    body = "\n".join(f"    def {name}(self, *args):\n        return None\n" for name in methods + behaviour)
    return f"""
from hearthgate.core.driver import DeviceDriver
from hearthgate.core.model import DriverDetails


class Driver(DeviceDriver):
    details = DriverDetails(make="{make}", model="{model}", version="{version}", type="{type_}")
    keywords = {keywords}
{extra}
{body}

driver = Driver
"""


def _write_driver(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def _load(directory: Path, interfaces: InterfaceRegistry | None = None):
    registry = DriverRegistry()
    loader = asyncio.run(registry.load(directory, interfaces or _interfaces(), timeout=5.0))
    return registry, loader


def test_only_valid_drivers_are_stored_with_increasing_ids(tmp_path: Path) -> None:
    _write_driver(tmp_path / "a_plug.py", _driver_source(model="A"))
    _write_driver(tmp_path / "b_broken.py", _driver_source(model="B", methods=("turn_on",)))
    _write_driver(tmp_path / "c_plug.py", _driver_source(model="C"))
    _write_driver(tmp_path / "d_syntax.py", "def broken(:\n")
    _write_driver(tmp_path / "e_plug.py", _driver_source(model="E"))

    registry, loader = _load(tmp_path)

    plugins = registry.all()
    assert [p.details.model for p in plugins] == ["A", "C", "E"]
    ids = [int(p.id, 16) for p in plugins]
    assert ids == sorted(ids)
    assert len(set(ids)) == 3
    assert [p.id for p in plugins] == ["0x0", "0x1", "0x2"]
    assert sorted(path.name for path, _ in loader.errors) == ["b_broken.py", "d_syntax.py"]


def test_missing_interface_method_is_named(tmp_path: Path) -> None:
    _write_driver(tmp_path / "plug.py", _driver_source(methods=("turn_on", "turn_off")))

    registry, loader = _load(tmp_path)

    assert len(registry) == 0
    [(path, message)] = loader.errors
    assert path.name == "plug.py"
    assert "Missing method 'get_state'" in message
    assert "turn_on" not in message.split("interface:")[1]


def test_validate_driver_reports_missing_method() -> None:
    class HalfSwitch(DeviceDriver):
        details = DriverDetails(make="Acme", model="Half", version="1", type="switch")
        keywords = ("half",)

        def on_state_update(self, data):
            return None

        def set_widgets(self):
            return []

        def turn_on(self):
            return None

        def turn_off(self):
            return None

    with pytest.raises(DriverValidationError) as excinfo:
        validate_driver(HalfSwitch, "half.py", _interfaces())
    assert excinfo.value.missing == ("get_state",)


@pytest.mark.parametrize("missing", ["on_state_update", "set_widgets"])
def test_behaviour_methods_are_required(tmp_path: Path, missing: str) -> None:
    behaviour = tuple(m for m in ("on_state_update", "set_widgets") if m != missing)
    _write_driver(tmp_path / "plug.py", _driver_source(behaviour=behaviour))

    registry, loader = _load(tmp_path)

    assert len(registry) == 0
    assert f"'{missing}'" in loader.errors[0][1]


def test_empty_module_is_rejected(tmp_path: Path) -> None:
    _write_driver(tmp_path / "empty.py", "\n")
    registry, loader = _load(tmp_path)
    assert len(registry) == 0
    assert "is empty" in loader.errors[0][1]


def test_single_driver_subclass_is_found_without_export(tmp_path: Path) -> None:
    source = _driver_source().replace("driver = Driver\n", "")
    _write_driver(tmp_path / "plug.py", source)
    registry, _ = _load(tmp_path)
    assert len(registry) == 1


def test_missing_details_rejected(tmp_path: Path) -> None:
    source = _driver_source().replace(
        'details = DriverDetails(make="Acme", model="Plug", version="1", type="switch")', "pass"
    )
    _write_driver(tmp_path / "plug.py", source)
    registry, loader = _load(tmp_path)
    assert len(registry) == 0
    assert "driver details" in loader.errors[0][1]


def test_details_may_be_a_mapping() -> None:
    class MappedSwitch(DeviceDriver):
        details = {"make": "Acme", "model": "Mapped", "version": 2, "type": "Switch"}
        keywords = ("mapped",)

        def on_state_update(self, data):
            return None

        def set_widgets(self):
            return []

        def turn_on(self):
            return None

        def turn_off(self):
            return None

        def get_state(self):
            return {}

    registry = DriverRegistry()
    plugin = registry.register(MappedSwitch, _interfaces())
    assert plugin.details.version == "2"
    assert plugin.details.type == "Switch"


def test_missing_keywords_only_warns(tmp_path: Path) -> None:
    _write_driver(tmp_path / "plug.py", _driver_source(keywords="None"))
    registry, loader = _load(tmp_path)
    assert len(registry) == 1
    assert registry.all()[0].keywords == ()
    assert any("keywords" in warning for warning in registry.warnings)
    assert loader.errors == []


def test_invalid_keyword_regex_rejected(tmp_path: Path) -> None:
    _write_driver(tmp_path / "plug.py", _driver_source(keywords='("acme[",)'))
    registry, loader = _load(tmp_path)
    assert len(registry) == 0
    assert "invalid keyword" in loader.errors[0][1]


def test_unknown_interface_type_rejected(tmp_path: Path) -> None:
    _write_driver(tmp_path / "lock.py", _driver_source(type_="lock"))
    registry, loader = _load(tmp_path)
    assert len(registry) == 0
    assert "'lock'" in loader.errors[0][1]


def test_discoverable_driver_needs_discover(tmp_path: Path) -> None:
    _write_driver(tmp_path / "plug.py", _driver_source(extra="    discoverable = True\n"))
    registry, loader = _load(tmp_path)
    assert len(registry) == 0
    assert "discover" in loader.errors[0][1]


def test_discoverable_driver_with_discover_loads(tmp_path: Path) -> None:
    extra = (
        "    discoverable = True\n\n"
        "    @classmethod\n"
        "    async def discover(cls, report):\n"
        "        return None\n"
    )
    _write_driver(tmp_path / "plug.py", _driver_source(extra=extra))
    registry, _ = _load(tmp_path)
    assert len(registry) == 1
    assert registry.all()[0].discoverable is True


def test_lookup_by_identity_is_case_insensitive(tmp_path: Path) -> None:
    _write_driver(tmp_path / "a.py", _driver_source(make="Acme", model="Plug", version="1"))
    _write_driver(tmp_path / "b.py", _driver_source(make="ACME", model="plug", version="1"))
    _write_driver(tmp_path / "c.py", _driver_source(make="Acme", model="Plug", version="2"))

    registry, _ = _load(tmp_path)

    assert registry.lookup_by_identity("acme", "PLUG", "1") == "0x0"
    assert registry.lookup_by_identity("Acme", "Plug", 2) == "0x2"
    assert registry.lookup_by_identity("Acme", "Socket", "1") is None


def test_packaged_drivers_validate_against_packaged_interfaces() -> None:
    interfaces = InterfaceRegistry()
    asyncio.run(interfaces.load(BUILTIN_INTERFACES, timeout=5.0))

    registry, loader = _load(BUILTIN_DRIVERS, interfaces)

    assert loader.errors == []
    makes = {p.details.make for p in registry.all()}
    assert {"TP-Link", "Yeelight"} <= makes


def test_non_list_keywords_are_rejected_without_stopping_the_batch(tmp_path: Path) -> None:
    _write_driver(tmp_path / "a_good.py", _driver_source(model="Good"))
    _write_driver(tmp_path / "b_bad.py", _driver_source(model="Bad", keywords="5"))

    registry, loader = _load(tmp_path)

    assert [p.details.model for p in registry.all()] == ["Good"]
    assert [path.name for path, _ in loader.errors] == ["b_bad.py"]
    assert "keywords must be a string or a list of strings" in loader.errors[0][1]


def test_non_string_detail_field_is_rejected(tmp_path: Path) -> None:
    source = _driver_source(model="Bad").replace('type="switch"', "type=None")
    _write_driver(tmp_path / "a_good.py", _driver_source(model="Good"))
    _write_driver(tmp_path / "b_bad.py", source)

    registry, loader = _load(tmp_path)

    assert [p.details.model for p in registry.all()] == ["Good"]
    assert "driver details must be strings: type" in loader.errors[0][1]


def test_similar_file_names_load_as_separate_modules(tmp_path: Path) -> None:
    _write_driver(tmp_path / "a-b.py", _driver_source(model="Dashed"))
    _write_driver(tmp_path / "a_b.py", _driver_source(model="Underscored"))

    registry, loader = _load(tmp_path)

    plugins = registry.all()
    assert loader.errors == []
    assert [p.details.model for p in plugins] == ["Dashed", "Underscored"]
    assert plugins[0].driver_class.__module__ != plugins[1].driver_class.__module__

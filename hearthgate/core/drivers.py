"""Driver module loading and capability validation."""

from __future__ import annotations

import importlib.util
import inspect
import itertools
import logging
import re
import sys
from pathlib import Path
from types import ModuleType

from hearthgate.core.driver import BEHAVIOUR_METHODS, DeviceDriver, implemented_methods, overrides_discover
from hearthgate.core.errors import DriverValidationError, PluginLoadError
from hearthgate.core.interfaces import InterfaceRegistry
from hearthgate.core.model import DriverDetails, DriverPlugin
from hearthgate.core.plugin_loader import PluginLoader

LOGGER = logging.getLogger(__name__)

DRIVER_SUFFIXES = (".py",)
_MODULE_PREFIX = "hearthgate_drivers"
_DETAIL_FIELDS = ("make", "model", "version", "type")
_module_ids = itertools.count()


def _import_driver_module(path: Path) -> ModuleType:
    # suffixed so "a-b.py" and "a_b.py" never share a module
    stem = re.sub(r"[^0-9A-Za-z_]", "_", path.stem)
    module_name = f"{_MODULE_PREFIX}.{stem}_{next(_module_ids)}"
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise PluginLoadError(f"Device driver '{path.name}' cannot be imported")
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except Exception as exc:
        sys.modules.pop(module_name, None)
        raise PluginLoadError(f"Device driver '{path.name}' failed to import: {exc}") from exc
    return module


def _exported_driver(module: ModuleType, filename: str) -> object:
    exported = getattr(module, "driver", None)
    if exported is not None:
        return exported

    defined = [
        obj
        for _, obj in inspect.getmembers(module, inspect.isclass)
        if issubclass(obj, DeviceDriver) and obj is not DeviceDriver and obj.__module__ == module.__name__
    ]
    if not defined:
        raise DriverValidationError(
            f"Device driver '{filename}' is empty. Did you forget to export your driver class as 'driver'?"
        )
    if len(defined) > 1:
        names = ", ".join(sorted(cls.__name__ for cls in defined))
        raise DriverValidationError(
            f"Device driver '{filename}' defines several drivers ({names}); export one as 'driver'"
        )
    return defined[0]


def _coerce_details(raw: object, filename: str) -> DriverDetails:
    if isinstance(raw, DriverDetails):
        values = {name: getattr(raw, name) for name in _DETAIL_FIELDS}
    elif isinstance(raw, dict):
        missing = [name for name in _DETAIL_FIELDS if name not in raw]
        if missing:
            raise DriverValidationError(
                f"Device driver '{filename}' driver details are missing: {', '.join(missing)}",
                missing=tuple(missing),
            )
        values = {name: raw[name] for name in _DETAIL_FIELDS}
    else:
        raise DriverValidationError(f"Device driver '{filename}' does not define its driver details ('details')")

    malformed = [
        name
        for name, value in values.items()
        if isinstance(value, bool) or not isinstance(value, (str, int, float))
    ]
    if malformed:
        raise DriverValidationError(
            f"Device driver '{filename}' driver details must be strings: {', '.join(malformed)}",
            missing=tuple(malformed),
        )
    details = DriverDetails(**{name: str(value) for name, value in values.items()})

    empty = [name for name in _DETAIL_FIELDS if not str(getattr(details, name)).strip()]
    if empty:
        raise DriverValidationError(
            f"Device driver '{filename}' driver details are empty: {', '.join(empty)}",
            missing=tuple(empty),
        )
    return details


def validate_driver(
    candidate: object,
    filename: str,
    interfaces: InterfaceRegistry,
) -> tuple[DriverDetails, tuple[str, ...], frozenset[str], list[str]]:
    """Check a driver class against its declared interface.

    Returns the driver details, keywords, implemented methods and any
    warnings. Raises ``DriverValidationError`` naming what is missing.
    """
    if not inspect.isclass(candidate):
        raise DriverValidationError(f"Device driver '{filename}' does not export a driver class")

    for method in BEHAVIOUR_METHODS:
        if not callable(getattr(candidate, method, None)):
            raise DriverValidationError(
                f"Device driver '{filename}' does not implement the '{method}' method.",
                missing=(method,),
            )

    details = _coerce_details(getattr(candidate, "details", None), filename)

    warnings: list[str] = []
    raw_keywords = getattr(candidate, "keywords", None)
    if not raw_keywords:
        warnings.append(
            f"Device driver '{filename}' does not define any keywords. "
            "It will be unable to be paired by name."
        )
        keywords: tuple[str, ...] = ()
    elif isinstance(raw_keywords, str):
        keywords = (raw_keywords,)
    elif isinstance(raw_keywords, (list, tuple, set, frozenset)) and all(
        isinstance(k, str) for k in raw_keywords
    ):
        keywords = tuple(raw_keywords)
    else:
        raise DriverValidationError(
            f"Device driver '{filename}' keywords must be a string or a list of strings, "
            f"not {raw_keywords!r}"
        )

    for keyword in keywords:
        try:
            re.compile(keyword, re.IGNORECASE)
        except re.error as exc:
            raise DriverValidationError(f"Device driver '{filename}' has invalid keyword '{keyword}': {exc}") from exc

    interface_type = details.type.lower()
    interface = interfaces.lookup(interface_type)
    if interface is None:
        raise DriverValidationError(
            f"Device driver '{filename}' declares type '{interface_type}' but no such interface is loaded"
        )

    methods = implemented_methods(candidate)
    missing = tuple(sorted(interface.required_methods - methods))
    if missing:
        lines = "\n".join(f"  - Missing method '{name}'" for name in missing)
        raise DriverValidationError(
            f"Device driver '{filename}' does not fully implement the '{interface_type}' interface:\n{lines}",
            missing=missing,
        )

    if getattr(candidate, "discoverable", False):
        if not (issubclass(candidate, DeviceDriver) and overrides_discover(candidate)):
            raise DriverValidationError(
                f"Device driver '{filename}' is discoverable but does not implement 'discover'",
                missing=("discover",),
            )

    return details, keywords, methods, warnings


class DriverRegistry:
    """Validated drivers keyed by an identifier assigned in load order."""

    def __init__(self) -> None:
        self._drivers: dict[str, DriverPlugin] = {}
        self._counter = itertools.count()
        self.warnings: list[str] = []

    def __len__(self) -> int:
        return len(self._drivers)

    def __iter__(self):
        return iter(self._drivers.values())

    def _next_id(self) -> str:
        return hex(next(self._counter))

    def register(
        self,
        driver_class: type[DeviceDriver],
        interfaces: InterfaceRegistry,
        *,
        source: Path | None = None,
    ) -> DriverPlugin:
        filename = source.name if source else driver_class.__name__
        details, keywords, methods, warnings = validate_driver(driver_class, filename, interfaces)
        for warning in warnings:
            LOGGER.warning(warning)
            self.warnings.append(warning)

        plugin = DriverPlugin(
            id=self._next_id(),
            details=details,
            keywords=keywords,
            discoverable=bool(getattr(driver_class, "discoverable", False)),
            driver_class=driver_class,
            implemented_methods=methods,
            source=source,
        )
        self._drivers[plugin.id] = plugin
        LOGGER.info(
            "Device driver for '%s %s' (v%s, id:%s) loaded",
            details.make,
            details.model,
            details.version,
            plugin.id,
        )
        return plugin

    def get(self, driver_id: str) -> DriverPlugin | None:
        return self._drivers.get(driver_id)

    def all(self) -> list[DriverPlugin]:
        return list(self._drivers.values())

    def lookup_by_identity(self, make: str, model: str, version: str | int | float) -> str | None:
        wanted = (make.lower(), model.lower(), str(version).lower())
        for driver_id, plugin in self._drivers.items():
            details = plugin.details
            if (details.make.lower(), details.model.lower(), details.version.lower()) == wanted:
                return driver_id
        return None

    async def load(
        self,
        directory: Path,
        interfaces: InterfaceRegistry,
        *,
        timeout: float,
        poll_interval: float = 0.01,
    ) -> PluginLoader:
        """Import and validate every driver module in ``directory``.

        Identifiers are assigned once the whole batch finished, in file order,
        so they follow load-attempt order regardless of thread scheduling.
        """
        loader: PluginLoader[object] = PluginLoader(
            "driver",
            DRIVER_SUFFIXES,
            lambda path: _exported_driver(_import_driver_module(path), path.name),
            timeout=timeout,
            poll_interval=poll_interval,
        )
        for path, candidate in await loader.load(directory):
            try:
                self.register(candidate, interfaces, source=path)
            except DriverValidationError as exc:
                LOGGER.error(
                    "%s\nThis driver will not load, and supported devices will be unable to use it.", exc
                )
                loader.errors.append((path, str(exc)))
        return loader

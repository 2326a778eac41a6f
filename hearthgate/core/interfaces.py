"""Capability interface definitions loaded from YAML files."""

from __future__ import annotations

import logging
from pathlib import Path

from hearthgate.core.errors import InterfaceValidationError
from hearthgate.core.model import InterfaceDefinition
from hearthgate.core.plugin_loader import PluginLoader, read_yaml, validate_document

LOGGER = logging.getLogger(__name__)

INTERFACE_SUFFIXES = (".yaml", ".yml")


def load_interface_file(path: Path) -> InterfaceDefinition:
    doc = read_yaml(path)
    if not doc.get("type"):
        raise InterfaceValidationError(
            f"Interface with filename '{path.name}' doesn't declare a type. This interface will not be loaded."
        )
    validate_document(doc, "interface", path)
    return InterfaceDefinition(
        type=str(doc["type"]).lower(),
        required_methods=frozenset(doc.get("required_methods", [])),
        description=doc.get("description", ""),
        source=path,
    )


class InterfaceRegistry:
    def __init__(self) -> None:
        self._interfaces: dict[str, InterfaceDefinition] = {}
        self.warnings: list[str] = []

    def __len__(self) -> int:
        return len(self._interfaces)

    def __contains__(self, type_name: str) -> bool:
        return type_name.lower() in self._interfaces

    def register(self, definition: InterfaceDefinition) -> None:
        key = definition.type.lower()
        previous = self._interfaces.get(key)
        if previous is not None:
            warning = f"Interface '{key}' from {definition.source} replaces the one from {previous.source}"
            LOGGER.warning(warning)
            self.warnings.append(warning)
        self._interfaces[key] = definition
        LOGGER.info("Interface for '%s' devices loaded", key)

    def lookup(self, type_name: str) -> InterfaceDefinition | None:
        return self._interfaces.get(type_name.lower())

    def types(self) -> list[str]:
        return sorted(self._interfaces)

    def all(self) -> list[InterfaceDefinition]:
        return [self._interfaces[key] for key in self.types()]

    async def load(self, directory: Path, *, timeout: float, poll_interval: float = 0.01) -> PluginLoader:
        """Load every interface file in ``directory``.

        Raises ``PluginLoadTimeoutError`` if the batch does not finish in time.
        """
        loader: PluginLoader[InterfaceDefinition] = PluginLoader(
            "interface",
            INTERFACE_SUFFIXES,
            load_interface_file,
            timeout=timeout,
            poll_interval=poll_interval,
        )
        for _, definition in await loader.load(directory):
            self.register(definition)
        return loader

"""Directory loading with batch completion and timeout tracking."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import threading
import time
from collections.abc import Callable, Iterable
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any, Generic, TypeVar

import yaml
from jsonschema import ValidationError, validators

from hearthgate.core.errors import (
    HearthgateError,
    PluginLoadError,
    PluginLoadTimeoutError,
    PluginValidationError,
)
from hearthgate.core.model import BatchLoad

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


UniqueKeyLoader.yaml_implicit_resolvers = {
    key: list(value) for key, value in yaml.SafeLoader.yaml_implicit_resolvers.items()
}

for first_char, mappings in list(UniqueKeyLoader.yaml_implicit_resolvers.items()):
    UniqueKeyLoader.yaml_implicit_resolvers[first_char] = [
        (tag, regexp)
        for tag, regexp in mappings
        if tag != "tag:yaml.org,2002:bool"
    ]


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise PluginValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@lru_cache(maxsize=None)
def load_schema_validator(name: str) -> Any:
    schema_text = resources.files("hearthgate.schemas").joinpath(f"{name}.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def validate_document(doc: dict[str, Any], schema: str, source: Path | str) -> None:
    try:
        load_schema_validator(schema).validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise PluginValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc


def read_yaml(path: Path) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise PluginLoadError(f"Could not read plugin file {path}: {exc}") from exc
    except UnicodeDecodeError as exc:
        raise PluginLoadError(f"Plugin file {path} is not valid UTF-8: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise PluginValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise PluginValidationError(f"Plugin file {path} must contain a mapping at root")
    return loaded


def iter_plugin_paths(directory: Path, suffixes: Iterable[str]) -> list[Path]:
    allowed = {s.lower() for s in suffixes}
    try:
        entries = sorted(directory.iterdir(), key=lambda p: p.name)
    except OSError as exc:
        raise PluginLoadError(f"Could not read plugin directory {directory}: {exc}") from exc
    return [p for p in entries if p.is_file() and p.suffix.lower() in allowed and not p.name.startswith("_")]


def run_in_daemon_thread(func: Callable[[Path], T], path: Path) -> asyncio.Future[T]:
    """Run ``func(path)`` on a daemon thread and return a future for its result.

    Daemon threads are not joined at interpreter exit, so a load that hangs
    past the batch timeout does not keep the process alive.
    """
    loop = asyncio.get_running_loop()
    future: asyncio.Future[T] = loop.create_future()

    def deliver(result: Any, error: Exception | None) -> None:
        if future.done():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(result)

    def target() -> None:
        try:
            result, error = func(path), None
        except Exception as exc:
            result, error = None, exc
        # the loop is gone once a timed out batch has been abandoned
        with contextlib.suppress(RuntimeError):
            loop.call_soon_threadsafe(deliver, result, error)

    threading.Thread(target=target, name=f"hearthgate-load-{path.name}", daemon=True).start()
    return future


class PluginLoader(Generic[T]):
    """Load every eligible file in a directory with ``load_file``.

    Each file is loaded on its own daemon thread. A file whose load raises is
    logged and skipped but still counts toward completion, so a broken
    plugin never holds up the batch. ``wait`` polls the batch and either
    returns the loaded plugins or raises ``PluginLoadTimeoutError``.
    """

    def __init__(
        self,
        kind: str,
        suffixes: Iterable[str],
        load_file: Callable[[Path], T],
        *,
        timeout: float,
        poll_interval: float = 0.01,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.kind = kind
        self.suffixes = tuple(suffixes)
        self.load_file = load_file
        self.timeout = timeout
        self.poll_interval = poll_interval
        self._clock = clock or time.monotonic
        self.errors: list[tuple[Path, str]] = []
        self.batch: BatchLoad | None = None

    def start(self, directory: Path) -> tuple[BatchLoad, list[asyncio.Task[tuple[Path, T | None]]]]:
        paths = iter_plugin_paths(directory, self.suffixes)
        batch = BatchLoad(expected=len(paths), clock=self._clock)
        self.batch = batch
        LOGGER.info("Loading %d %s file(s) from %s", len(paths), self.kind, directory)
        tasks = [asyncio.create_task(self._load_one(path, batch)) for path in paths]
        return batch, tasks

    async def _load_one(self, path: Path, batch: BatchLoad) -> tuple[Path, T | None]:
        try:
            return path, await run_in_daemon_thread(self.load_file, path)
        except (HearthgateError, OSError) as exc:
            LOGGER.error("%s file '%s' was not loaded: %s", self.kind.capitalize(), path.name, exc)
            self.errors.append((path, str(exc)))
            return path, None
        finally:
            batch.mark_done()

    async def wait(self, batch: BatchLoad) -> None:
        while True:
            if batch.is_complete():
                LOGGER.info("%s loading complete (%d file(s))", self.kind.capitalize(), batch.completed)
                return
            if batch.is_timed_out(self.timeout):
                batch.timed_out = True
                raise PluginLoadTimeoutError(
                    f"Unable to load {self.kind} files: {batch.completed}/{batch.expected} "
                    f"finished after {self.timeout}s"
                )
            await asyncio.sleep(self.poll_interval)

    async def load(self, directory: Path) -> list[tuple[Path, T]]:
        """Load a directory and return ``(path, plugin)`` pairs in file order."""
        batch, tasks = self.start(directory)
        try:
            await self.wait(batch)
        except PluginLoadTimeoutError:
            for task in tasks:
                task.cancel()
            raise
        loaded = [task.result() for task in tasks]
        return [(path, plugin) for path, plugin in loaded if plugin is not None]

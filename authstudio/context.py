"""Request-level resolution of the host configuration and its adapter."""

import asyncio
import inspect
import logging
from collections import defaultdict
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from authstudio.adapters.facade import AdapterFacade, bind
from authstudio.config.extractor import ConfigExtractor, find_export
from authstudio.config.loader import ModuleLoader
from authstudio.config.locator import ConfigLocator
from authstudio.config.node import NodeRunner
from authstudio.config.schema import AuthConfig
from authstudio.config.types import LoadKind, LoadResult
from authstudio.exceptions import AdapterUnavailableError, ConfigNotFoundError
from authstudio.settings import StudioSettings

logger = logging.getLogger(__name__)

_CONTEXT_ATTRIBUTES = ("$context", "context", "_context")


@dataclass
class Resolution:
    path: Path | None
    result: LoadResult | None
    config: AuthConfig

    @property
    def kind(self) -> str:
        if self.result is None:
            return "not-found"
        return self.result.kind.value


def _get(value: Any, name: str) -> Any:
    if isinstance(value, Mapping):
        return value.get(name)
    return getattr(value, name, None)


async def find_raw_adapter(result: LoadResult | None) -> Any:
    """Return the persistence adapter exposed by a loaded module.

    Raises:
        AdapterUnavailableError: If the result carries no executed auth instance
            or the instance exposes no adapter
    """
    if result is None or result.kind in (LoadKind.FAILED, LoadKind.EXTRACTED) or result.degraded:
        raise AdapterUnavailableError("Configuration was not executed")

    auth = find_export(result.module)
    if auth is None:
        raise AdapterUnavailableError("Configuration has no auth export")

    for name in _CONTEXT_ATTRIBUTES:
        context = _get(auth, name)
        if context is None:
            continue
        try:
            if callable(context):
                context = context()
            if inspect.isawaitable(context):
                context = await context
        except Exception as exc:
            logger.debug(f"Resolving {name} failed, trying auth.adapter: {exc!r}")
            break

        adapter = _get(context, "adapter")
        if adapter is not None:
            return adapter

    adapter = _get(auth, "adapter")
    if adapter is not None:
        return adapter
    raise AdapterUnavailableError("Auth instance exposes no adapter")


class StudioContext:
    """Resolves configuration per request and caches adapter facades per config path.

    Binding holds a lock for its own path only, so requests for a facade that
    is already cached never wait on another path being bound.

    Each application (and each test) owns its own context, so caches never
    leak between them.
    """

    def __init__(
        self,
        cwd: str | Path | None = None,
        settings: StudioSettings | None = None,
        locator: ConfigLocator | None = None,
        loader: ModuleLoader | None = None,
        extractor: ConfigExtractor | None = None,
    ):
        self.cwd = Path(cwd or Path.cwd()).resolve()
        self.settings = settings or StudioSettings()
        self.locator = locator or ConfigLocator(max_depth=self.settings.max_depth)
        self.extractor = extractor or ConfigExtractor()
        self.loader = loader or ModuleLoader(
            NodeRunner(self.settings.node_binary, self.settings.node_timeout), self.extractor
        )
        self._facades: dict[Path | None, AdapterFacade] = {}
        self._locks: defaultdict[Path | None, asyncio.Lock] = defaultdict(asyncio.Lock)

    def config_path(self) -> Path | None:
        return self.locator.resolve(self.cwd, self.settings.config_path)

    async def resolve(self) -> Resolution:
        """Locate, load and extract the configuration afresh."""
        try:
            path = self.locator.require(self.cwd, self.settings.config_path)
        except ConfigNotFoundError as exc:
            logger.debug(f"{exc.message}, using defaults")
            return Resolution(None, None, AuthConfig())

        result = await self.loader.load(path)
        if not result.ok:
            return Resolution(path, result, AuthConfig())

        source = _read_source(path)
        if result.kind is LoadKind.EXTRACTED:
            return Resolution(path, result, self.extractor.normalize(result.module, source))
        return Resolution(path, result, self.extractor.extract(result.module, source))

    async def config(self) -> AuthConfig:
        return (await self.resolve()).config

    async def facade(self) -> AdapterFacade:
        """Return the facade for the current configuration path, binding it on first use."""
        path = self.config_path()
        if (facade := self._facades.get(path)) is not None:
            return facade

        async with self._locks[path]:
            facade = self._facades.get(path)
            if facade is None:
                facade = await self._bind(path)
                self._facades[path] = facade
            return facade

    async def _bind(self, path: Path | None) -> AdapterFacade:
        if path is None:
            return bind(None)

        result = await self.loader.load(path)
        try:
            raw = await find_raw_adapter(result)
        except AdapterUnavailableError as exc:
            logger.info(f"No adapter for {path} ({exc.message}), using mock data")
            return bind(None)
        return bind(raw)

    def clear(self):
        """Forget every cached facade."""
        self._facades.clear()


def _read_source(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return None
